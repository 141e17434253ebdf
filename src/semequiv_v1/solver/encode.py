# Signed fixed-width integers are unbounded z3 integers plus an explicit range
# check. Every term carries a fault code beside its value (0 none, 1 overflow,
# 2 division by zero), matching the evaluator.

from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Dict, List, Optional

import z3

from ..errors import FAULT_DIVISION_BY_ZERO, FAULT_OVERFLOW
from ..symbolic.expr import BOOL, INT, STR, Expr, int_range


class EncodingError(Exception):
    pass


@dataclass
class Term:
    value: z3.ExprRef
    sort: str
    fault: Optional[z3.ArithRef] = None


class Encoder:
    def __init__(self, ctx: z3.Context, bits: int = 64) -> None:
        self.ctx = ctx
        self.min_int, self.max_int = int_range(bits)
        self.symbols: Dict[str, z3.ArithRef] = {}

    def symbol(self, name: str) -> z3.ArithRef:
        if name not in self.symbols:
            self.symbols[name] = z3.Int(name, self.ctx)
        return self.symbols[name]

    def in_range(self, value: z3.ArithRef, low: int, high: int) -> z3.BoolRef:
        return z3.And(value >= low, value <= high)

    def full_range(self, value: z3.ArithRef) -> z3.BoolRef:
        return self.in_range(value, self.min_int, self.max_int)

    def _code(self, value: int) -> z3.ArithRef:
        return z3.IntVal(value, self.ctx)

    def _overflow(self, value: z3.ArithRef) -> z3.ArithRef:
        return z3.If(
            z3.Not(self.full_range(value)), self._code(FAULT_OVERFLOW), self._code(0), self.ctx
        )

    def fault_of(self, term: Term) -> z3.ArithRef:
        return term.fault if term.fault is not None else self._code(0)

    def _worst(self, faults: List[Optional[z3.ArithRef]]) -> Optional[z3.ArithRef]:
        present = [fault for fault in faults if fault is not None]
        if not present:
            return None
        return reduce(lambda left, right: z3.If(left >= right, left, right, self.ctx), present)

    def _then(
        self, arg_fault: Optional[z3.ArithRef], op_fault: Optional[z3.ArithRef]
    ) -> Optional[z3.ArithRef]:
        # operand faults win over the operation's own fault
        if arg_fault is None:
            return op_fault
        if op_fault is None:
            return arg_fault
        return z3.If(arg_fault != 0, arg_fault, op_fault, self.ctx)

    def as_int(self, term: Term) -> z3.ArithRef:
        if term.sort == INT:
            return term.value
        if term.sort == BOOL:
            return z3.If(term.value, self._code(1), self._code(0), self.ctx)
        raise EncodingError("string used where an integer is required")

    def as_bool(self, term: Term) -> z3.BoolRef:
        if term.sort == BOOL:
            return term.value
        if term.sort == INT:
            return term.value != 0
        raise EncodingError("string used where a boolean is required")

    def as_text(self, term: Term) -> z3.SeqRef:
        if term.sort == STR:
            return term.value
        if term.sort == BOOL:
            return z3.If(
                term.value, z3.StringVal("true", self.ctx), z3.StringVal("false", self.ctx), self.ctx
            )
        value = term.value
        negative = z3.Concat(z3.StringVal("-", self.ctx), z3.IntToStr(-value))
        return z3.If(value >= 0, z3.IntToStr(value), negative, self.ctx)

    def equal(self, left: Term, right: Term) -> z3.BoolRef:
        if left.sort == STR or right.sort == STR:
            if left.sort == right.sort:
                return left.value == right.value
            return z3.BoolVal(False, self.ctx)
        return self.as_int(left) == self.as_int(right)

    def term(self, expr: Expr) -> Term:
        kind = expr["kind"]
        if kind == "int":
            return Term(z3.IntVal(expr["value"], self.ctx), INT)
        if kind == "bool":
            return Term(z3.BoolVal(expr["value"], self.ctx), BOOL)
        if kind == "str":
            return Term(z3.StringVal(expr["value"], self.ctx), STR)
        if kind == "var":
            return Term(self.symbol(expr["name"]), INT)
        if kind == "neg":
            arg = self.term(expr["arg"])
            value = -self.as_int(arg)
            return Term(value, INT, self._then(arg.fault, self._overflow(value)))
        if kind == "not":
            arg = self.term(expr["arg"])
            return Term(z3.Not(self.as_bool(arg)), BOOL, arg.fault)
        if kind == "to_str":
            arg = self.term(expr["arg"])
            return Term(self.as_text(arg), STR, arg.fault)
        if kind == "if":
            return self._if(expr)
        if kind == "binop":
            return self._binop(expr["op"], [self.term(arg) for arg in expr["args"]])
        if kind == "differs":
            left, right = expr["args"]
            return Term(self.differs(left, right), BOOL)
        if kind == "fails":
            arg = self.term(expr["arg"])
            return Term(z3.Or(self.fault_of(arg) != 0, z3.Not(self.as_bool(arg))), BOOL)
        raise EncodingError(f"unknown expr kind {kind}")

    def _if(self, expr: Expr) -> Term:
        cond = self.term(expr["cond"])
        then = self.term(expr["then"])
        otherwise = self.term(expr["else"])
        test = self.as_bool(cond)
        if then.sort == otherwise.sort:
            value = z3.If(test, then.value, otherwise.value, self.ctx)
            sort = then.sort
        else:
            value = z3.If(test, self.as_int(then), self.as_int(otherwise), self.ctx)
            sort = INT
        branch_fault: Optional[z3.ArithRef] = None
        if then.fault is not None or otherwise.fault is not None:
            branch_fault = z3.If(test, self.fault_of(then), self.fault_of(otherwise), self.ctx)
        return Term(value, sort, self._then(cond.fault, branch_fault))

    def _binop(self, op: str, args: List[Term]) -> Term:
        arg_fault = self._worst([arg.fault for arg in args])
        if op in {"+", "*"}:
            values = [self.as_int(arg) for arg in args]
            if op == "+":
                total = reduce(lambda left, right: left + right, values)
            else:
                total = reduce(lambda left, right: left * right, values)
            return Term(total, INT, self._then(arg_fault, self._overflow(total)))
        if op in {"and", "or"}:
            values = [self.as_bool(arg) for arg in args]
            combined = z3.And(*values) if op == "and" else z3.Or(*values)
            return Term(combined, BOOL, arg_fault)
        if op == "concat":
            return Term(z3.Concat(*[self.as_text(arg) for arg in args]), STR, arg_fault)
        left, right = args
        if op == "-":
            value = self.as_int(left) - self.as_int(right)
            return Term(value, INT, self._then(arg_fault, self._overflow(value)))
        if op in {"/", "%"}:
            return self._division(op, left, right, arg_fault)
        if op == "==":
            return Term(self.equal(left, right), BOOL, arg_fault)
        if op == "!=":
            return Term(z3.Not(self.equal(left, right)), BOOL, arg_fault)
        if left.sort == STR or right.sort == STR:
            raise EncodingError(f"ordering {op} is not defined on strings")
        lhs, rhs = self.as_int(left), self.as_int(right)
        if op == "<":
            return Term(lhs < rhs, BOOL, arg_fault)
        if op == "<=":
            return Term(lhs <= rhs, BOOL, arg_fault)
        if op == ">":
            return Term(lhs > rhs, BOOL, arg_fault)
        if op == ">=":
            return Term(lhs >= rhs, BOOL, arg_fault)
        raise EncodingError(f"unknown op {op}")

    def _division(
        self, op: str, left: Term, right: Term, arg_fault: Optional[z3.ArithRef]
    ) -> Term:
        dividend, divisor = self.as_int(left), self.as_int(right)
        # z3 integer division floors; on magnitudes it truncates
        magnitude = z3.If(dividend >= 0, dividend, -dividend, self.ctx) / z3.If(
            divisor >= 0, divisor, -divisor, self.ctx
        )
        quotient = z3.If(z3.Xor(dividend < 0, divisor < 0), -magnitude, magnitude, self.ctx)
        op_fault = z3.If(
            divisor == 0,
            self._code(FAULT_DIVISION_BY_ZERO),
            self._overflow(quotient),
            self.ctx,
        )
        value = quotient if op == "/" else dividend - divisor * quotient
        return Term(value, INT, self._then(arg_fault, op_fault))

    def differs(self, left: Expr, right: Expr) -> z3.BoolRef:
        first = self.term(left)
        second = self.term(right)
        first_fault = self.fault_of(first)
        second_fault = self.fault_of(second)
        values_differ = z3.Not(self.equal(first, second))
        return z3.Or(first_fault != second_fault, z3.And(first_fault == 0, values_differ))

    def holds(self, expr: Expr) -> z3.BoolRef:
        # a clause holds when it evaluates to true without a fault
        kind = expr["kind"]
        if kind == "bool":
            return z3.BoolVal(expr["value"], self.ctx)
        if kind == "differs":
            left, right = expr["args"]
            return self.differs(left, right)
        if kind == "binop" and expr["op"] == "and":
            return z3.And(*[self.holds(arg) for arg in expr["args"]])
        term = self.term(expr)
        truth = self.as_bool(term)
        if term.fault is None:
            return truth
        return z3.And(term.fault == 0, truth)
