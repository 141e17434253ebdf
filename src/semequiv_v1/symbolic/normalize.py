from __future__ import annotations

from typing import Any, List, Optional

from ..errors import ExpressionTypeError
from .evaluate import Evaluator, Fault, to_text
from .expr import (
    ASSOCIATIVE_OPS,
    BOOL,
    COMMUTATIVE_OPS,
    INT,
    STR,
    Expr,
    differs,
    fails,
    expr_hash,
    if_expr,
    int_range,
    is_literal,
    lit_bool,
    lit_int,
    lit_str,
    neg,
    not_,
    sort_of,
    to_str,
)

FLATTENED_OPS = {"and", "or", "concat"}
IDENTITY = {"+": 0, "*": 1, "and": True, "or": False, "concat": ""}
RESULT_SORT = {"+": INT, "*": INT, "and": BOOL, "or": BOOL, "concat": STR}
SWAPPED = {">": "<", ">=": "<="}
NEGATED = {"<": "<=", "<=": "<"}


def _literal(value: Any) -> Expr:
    if isinstance(value, bool):
        return lit_bool(value)
    if isinstance(value, int):
        return lit_int(value)
    return lit_str(value)


class Normalizer:
    def __init__(self, bits: int = 64) -> None:
        self.bits = bits
        self.min_int, self.max_int = int_range(bits)

    def _in_range(self, value: int) -> bool:
        return self.min_int <= value <= self.max_int

    def _fold(self, expr: Expr) -> Optional[Expr]:
        try:
            value = Evaluator({}, self.bits).eval(expr)
        except ExpressionTypeError:
            return None
        if isinstance(value, Fault):
            return None
        return _literal(value)

    def run(self, expr: Expr) -> Expr:
        kind = expr["kind"]
        if kind in {"int", "bool", "str"}:
            return {"kind": kind, "value": expr["value"]}
        if kind == "var":
            return {"kind": "var", "name": expr["name"]}
        if kind == "neg":
            arg = self.run(expr["arg"])
            if arg["kind"] == "int" and self._in_range(-arg["value"]):
                return lit_int(-arg["value"])
            return neg(arg)
        if kind == "not":
            return self._not(self.run(expr["arg"]))
        if kind == "to_str":
            arg = self.run(expr["arg"])
            if is_literal(arg):
                return lit_str(to_text(arg["value"]))
            if sort_of(arg) == STR:
                return arg
            return to_str(arg)
        if kind == "if":
            cond = self.run(expr["cond"])
            then = self.run(expr["then"])
            otherwise = self.run(expr["else"])
            if cond["kind"] == "bool" and sort_of(then) == sort_of(otherwise):
                return then if cond["value"] else otherwise
            return if_expr(cond, then, otherwise)
        if kind == "binop":
            return self._binop(expr["op"], [self.run(arg) for arg in expr["args"]])
        if kind == "differs":
            left, right = expr["args"]
            return differs(self.run(left), self.run(right))
        if kind == "fails":
            return fails(self.run(expr["arg"]))
        raise ValueError(f"unknown expr kind {kind}")

    def _not(self, arg: Expr) -> Expr:
        if arg["kind"] == "bool":
            return lit_bool(not arg["value"])
        if arg["kind"] == "not" and sort_of(arg["arg"]) == BOOL:
            return arg["arg"]
        if arg["kind"] == "binop":
            op = arg["op"]
            if op in NEGATED:
                left, right = arg["args"]
                return self._binop(NEGATED[op], [right, left])
            if op == "==":
                return self._binop("!=", list(arg["args"]))
            if op == "!=":
                return self._binop("==", list(arg["args"]))
        return not_(arg)

    def _binop(self, op: str, args: List[Expr]) -> Expr:
        if op in SWAPPED:
            op = SWAPPED[op]
            args = list(reversed(args))
        if op in FLATTENED_OPS:
            flat: List[Expr] = []
            for arg in args:
                if arg["kind"] == "binop" and arg["op"] == op:
                    flat.extend(arg["args"])
                else:
                    flat.append(arg)
            return self._associative(op, flat)
        if op in ASSOCIATIVE_OPS:
            # a nested sum overflows on its own partial result, so +/* never flatten
            node = self._associative(op, args)
            return self._shift(node) if op == "+" else node
        node = {"kind": "binop", "op": op, "args": args}
        if all(is_literal(arg) for arg in args):
            folded = self._fold(node)
            if folded is not None:
                return folded
        if op in COMMUTATIVE_OPS:
            node["args"] = sorted(args, key=expr_hash)
        return node

    def _associative(self, op: str, args: List[Expr]) -> Expr:
        if op in {"+", "*"}:
            args = self._combine_numeric(op, args)
        elif op in {"and", "or"}:
            args = self._combine_logical(op, args)
        else:
            args = self._combine_concat(args)

        identity = IDENTITY[op]
        kept = [arg for arg in args if not (is_literal(arg) and arg["value"] == identity
                                            and type(arg["value"]) is type(identity))]
        if not kept:
            return _literal(identity)
        if len(kept) == 1:
            single = kept[0]
            if sort_of(single) == RESULT_SORT[op]:
                return single
            if op == "concat":
                return self.run(to_str(single))
            kept.append(_literal(identity))
        if op in COMMUTATIVE_OPS:
            kept.sort(key=expr_hash)
        return {"kind": "binop", "op": op, "args": kept}

    def _shift(self, node: Expr) -> Expr:
        # (e + c1) + c2 keeps its overflow behaviour as e + (c1 + c2) only when
        # c1 and c2 push in the same direction
        if node["kind"] != "binop" or node["op"] != "+" or len(node["args"]) != 2:
            return node
        outer = [arg for arg in node["args"] if arg["kind"] == "int"]
        inner = [arg for arg in node["args"] if arg["kind"] == "binop" and arg["op"] == "+"]
        if len(outer) != 1 or len(inner) != 1 or len(inner[0]["args"]) != 2:
            return node
        offsets = [arg for arg in inner[0]["args"] if arg["kind"] == "int"]
        if len(offsets) != 1:
            return node
        base = next(arg for arg in inner[0]["args"] if arg["kind"] != "int")
        first, second = offsets[0]["value"], outer[0]["value"]
        total = first + second
        if first * second <= 0 or not self._in_range(total):
            return node
        return self._binop("+", [base, lit_int(total)])

    def _combine_numeric(self, op: str, args: List[Expr]) -> List[Expr]:
        literals = [arg for arg in args if arg["kind"] == "int"]
        others = [arg for arg in args if arg["kind"] != "int"]
        if len(literals) < 2:
            return others + literals
        total = IDENTITY[op]
        for literal in literals:
            if op == "+":
                total += literal["value"]
            else:
                total *= literal["value"]
        if self._in_range(total):
            return others + [lit_int(total)]
        return others + literals

    def _combine_logical(self, op: str, args: List[Expr]) -> List[Expr]:
        seen: set[str] = set()
        unique: List[Expr] = []
        for arg in args:
            key = expr_hash(arg)
            if key not in seen:
                seen.add(key)
                unique.append(arg)
        literals = [arg for arg in unique if arg["kind"] == "bool"]
        others = [arg for arg in unique if arg["kind"] != "bool"]
        if len(literals) < 2:
            return others + literals
        values = [literal["value"] for literal in literals]
        combined = all(values) if op == "and" else any(values)
        return others + [lit_bool(combined)]

    def _combine_concat(self, args: List[Expr]) -> List[Expr]:
        merged: List[Expr] = []
        for arg in args:
            if is_literal(arg):
                arg = lit_str(to_text(arg["value"]))
                if merged and merged[-1]["kind"] == "str":
                    merged[-1] = lit_str(merged[-1]["value"] + arg["value"])
                    continue
            merged.append(arg)
        return merged


def normalize(expr: Expr, bits: int = 64) -> Expr:
    return Normalizer(bits).run(expr)


def structurally_equal(left: Expr, right: Expr, bits: int = 64) -> bool:
    return normalize(left, bits) == normalize(right, bits)
