from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Union

import orjson

from ..errors import (
    FAULT_DIVISION_BY_ZERO,
    FAULT_OVERFLOW,
    FAULTS_BY_CODE,
    ExpressionTypeError,
    UnboundVariable,
)
from .expr import INT, Expr, free_vars, int_range, sort_of


@dataclass(frozen=True)
class Fault:
    code: int

    @property
    def marker(self) -> str:
        return FAULTS_BY_CODE[self.code].marker


Value = Union[int, bool, str, Fault]


def _worst(faults: List[Fault]) -> Fault:
    return max(faults, key=lambda fault: fault.code)


def trunc_div(left: int, right: int) -> int:
    quotient = abs(left) // abs(right)
    if (left < 0) != (right < 0):
        quotient = -quotient
    return quotient


def as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    raise ExpressionTypeError(f"expected an integer, got {value!r}")


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    raise ExpressionTypeError(f"expected a boolean, got {value!r}")


def to_text(value: Any) -> str:
    if isinstance(value, Fault):
        return value.marker
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_value(value: Any) -> str:
    if isinstance(value, str):
        return orjson.dumps(value).decode("utf-8")
    return to_text(value)


def values_equal(left: Any, right: Any) -> bool:
    if isinstance(left, str) or isinstance(right, str):
        return isinstance(left, str) and isinstance(right, str) and left == right
    return as_int(left) == as_int(right)


def observations_differ(left: Any, right: Any) -> bool:
    if isinstance(left, Fault) or isinstance(right, Fault):
        if isinstance(left, Fault) and isinstance(right, Fault):
            return left.code != right.code
        return True
    return not values_equal(left, right)


class Evaluator:
    def __init__(self, model: Mapping[str, int], bits: int = 64) -> None:
        self.model = model
        self.min_int, self.max_int = int_range(bits)

    def _checked(self, value: int) -> Value:
        if value < self.min_int or value > self.max_int:
            return Fault(FAULT_OVERFLOW)
        return value

    def eval(self, expr: Expr) -> Value:
        kind = expr["kind"]
        if kind in {"int", "bool", "str"}:
            return expr["value"]
        if kind == "var":
            return int(self.model[expr["name"]])
        if kind == "neg":
            value = self.eval(expr["arg"])
            if isinstance(value, Fault):
                return value
            return self._checked(-as_int(value))
        if kind == "not":
            value = self.eval(expr["arg"])
            if isinstance(value, Fault):
                return value
            return not as_bool(value)
        if kind == "to_str":
            value = self.eval(expr["arg"])
            if isinstance(value, Fault):
                return value
            return to_text(value)
        if kind == "if":
            cond = self.eval(expr["cond"])
            if isinstance(cond, Fault):
                return cond
            branch = expr["then"] if as_bool(cond) else expr["else"]
            value = self.eval(branch)
            if isinstance(value, Fault):
                return value
            if sort_of(expr["then"]) != sort_of(expr["else"]) and sort_of(expr) == INT:
                return as_int(value)
            return value
        if kind == "binop":
            values = [self.eval(arg) for arg in expr["args"]]
            faults = [value for value in values if isinstance(value, Fault)]
            if faults:
                return _worst(faults)
            return self._apply(expr["op"], values)
        if kind in {"differs", "fails"}:
            raise ExpressionTypeError(f"{kind} only appears in solver queries")
        raise ValueError(f"unknown expr kind {kind}")

    def _apply(self, op: str, values: List[Any]) -> Value:
        if op == "+":
            return self._checked(sum(as_int(value) for value in values))
        if op == "*":
            product = 1
            for value in values:
                product *= as_int(value)
            return self._checked(product)
        if op == "and":
            return all([as_bool(value) for value in values])
        if op == "or":
            return any([as_bool(value) for value in values])
        if op == "concat":
            return "".join(to_text(value) for value in values)
        left, right = values
        if op == "-":
            return self._checked(as_int(left) - as_int(right))
        if op in {"/", "%"}:
            dividend, divisor = as_int(left), as_int(right)
            if divisor == 0:
                return Fault(FAULT_DIVISION_BY_ZERO)
            quotient = self._checked(trunc_div(dividend, divisor))
            if isinstance(quotient, Fault) or op == "/":
                return quotient
            return dividend - divisor * quotient
        if op == "==":
            return values_equal(left, right)
        if op == "!=":
            return not values_equal(left, right)
        if isinstance(left, str) or isinstance(right, str):
            raise ExpressionTypeError(f"ordering {op} is not defined on strings")
        if op == "<":
            return as_int(left) < as_int(right)
        if op == "<=":
            return as_int(left) <= as_int(right)
        if op == ">":
            return as_int(left) > as_int(right)
        if op == ">=":
            return as_int(left) >= as_int(right)
        raise ValueError(f"unknown op {op}")


def evaluate(expr: Expr, model: Mapping[str, int], bits: int = 64) -> Value:
    missing = free_vars(expr) - set(model.keys())
    if missing:
        raise UnboundVariable(missing)
    return Evaluator(model, bits).eval(expr)


def substitute(expr: Expr, model: Mapping[str, int], bits: int = 64) -> Any:
    value = evaluate(expr, model, bits)
    if isinstance(value, Fault):
        fault_cls = FAULTS_BY_CODE[value.code]
        raise fault_cls(f"evaluation stopped: {value.marker}")
    return value
