from __future__ import annotations

from typing import Any, Dict, Iterable, List, Set

from ..utils import stable_hash

Expr = Dict[str, Any]

ARITH_OPS = {"+", "-", "*", "/", "%"}
COMPARE_OPS = {"==", "!=", "<", "<=", ">", ">="}
LOGIC_OPS = {"and", "or"}
STRING_OPS = {"concat"}
BINARY_OPS = ARITH_OPS | COMPARE_OPS | LOGIC_OPS | STRING_OPS

# n-ary after normalization
ASSOCIATIVE_OPS = {"+", "*", "and", "or", "concat"}
COMMUTATIVE_OPS = {"+", "*", "and", "or", "==", "!="}

INT = "int"
BOOL = "bool"
STR = "str"


def int_range(bits: int) -> tuple[int, int]:
    return -(1 << (bits - 1)), (1 << (bits - 1)) - 1


def lit_int(value: int) -> Expr:
    return {"kind": "int", "value": int(value)}


def lit_bool(value: bool) -> Expr:
    return {"kind": "bool", "value": bool(value)}


def lit_str(value: str) -> Expr:
    return {"kind": "str", "value": str(value)}


def var(name: str) -> Expr:
    return {"kind": "var", "name": name}


def binop(op: str, left: Expr, right: Expr) -> Expr:
    if op not in BINARY_OPS:
        raise ValueError(f"unknown op {op}")
    return {"kind": "binop", "op": op, "args": [left, right]}


def nary(op: str, args: List[Expr]) -> Expr:
    if op not in ASSOCIATIVE_OPS:
        raise ValueError(f"op {op} is not associative")
    return {"kind": "binop", "op": op, "args": list(args)}


def neg(arg: Expr) -> Expr:
    return {"kind": "neg", "arg": arg}


def not_(arg: Expr) -> Expr:
    return {"kind": "not", "arg": arg}


def if_expr(cond: Expr, then: Expr, otherwise: Expr) -> Expr:
    return {"kind": "if", "cond": cond, "then": then, "else": otherwise}


def to_str(arg: Expr) -> Expr:
    return {"kind": "to_str", "arg": arg}


# query-only predicates; summaries never contain them
def differs(left: Expr, right: Expr) -> Expr:
    return {"kind": "differs", "args": [left, right]}


def fails(clause: Expr) -> Expr:
    return {"kind": "fails", "arg": clause}


def conj(items: Iterable[Expr]) -> Expr:
    args = list(items)
    if not args:
        return lit_bool(True)
    if len(args) == 1:
        return args[0]
    return nary("and", args)


def disj(items: Iterable[Expr]) -> Expr:
    args = list(items)
    if not args:
        return lit_bool(False)
    if len(args) == 1:
        return args[0]
    return nary("or", args)


def is_literal(expr: Expr) -> bool:
    return expr["kind"] in {"int", "bool", "str"}


def children(expr: Expr) -> List[Expr]:
    kind = expr["kind"]
    if kind in {"binop", "differs"}:
        return list(expr["args"])
    if kind in {"neg", "not", "to_str", "fails"}:
        return [expr["arg"]]
    if kind == "if":
        return [expr["cond"], expr["then"], expr["else"]]
    return []


def free_vars(expr: Expr) -> Set[str]:
    names: Set[str] = set()
    stack = [expr]
    while stack:
        node = stack.pop()
        if node["kind"] == "var":
            names.add(node["name"])
        else:
            stack.extend(children(node))
    return names


def free_vars_all(exprs: Iterable[Expr]) -> Set[str]:
    names: Set[str] = set()
    for expr in exprs:
        names |= free_vars(expr)
    return names


def expr_hash(expr: Expr) -> str:
    return stable_hash(expr)


def sort_of(expr: Expr) -> str:
    kind = expr["kind"]
    if kind in {"int", "var", "neg"}:
        return INT
    if kind in {"bool", "not", "differs", "fails"}:
        return BOOL
    if kind in {"str", "to_str"}:
        return STR
    if kind == "if":
        then_sort = sort_of(expr["then"])
        else_sort = sort_of(expr["else"])
        if then_sort == else_sort:
            return then_sort
        return INT
    if kind == "binop":
        op = expr["op"]
        if op in ARITH_OPS:
            return INT
        if op in STRING_OPS:
            return STR
        return BOOL
    raise ValueError(f"unknown expr kind {kind}")


def validate_expr(expr: Any) -> Expr:
    if not isinstance(expr, dict) or not isinstance(expr.get("kind"), str):
        raise ValueError("expression must be an object with a 'kind'")
    kind = expr["kind"]
    if kind == "int":
        if not isinstance(expr.get("value"), int) or isinstance(expr.get("value"), bool):
            raise ValueError("int literal needs an integer value")
    elif kind == "bool":
        if not isinstance(expr.get("value"), bool):
            raise ValueError("bool literal needs a boolean value")
    elif kind == "str":
        if not isinstance(expr.get("value"), str):
            raise ValueError("str literal needs a string value")
    elif kind == "var":
        if not isinstance(expr.get("name"), str) or not expr["name"]:
            raise ValueError("var needs a name")
    elif kind == "binop":
        op = expr.get("op")
        args = expr.get("args")
        if op not in BINARY_OPS:
            raise ValueError(f"unknown op {op}")
        if not isinstance(args, list) or len(args) < 2:
            raise ValueError(f"op {op} needs at least two args")
        if len(args) > 2 and op not in ASSOCIATIVE_OPS:
            raise ValueError(f"op {op} takes exactly two args")
    elif kind in {"neg", "not", "to_str"}:
        if "arg" not in expr:
            raise ValueError(f"{kind} needs an arg")
    elif kind == "if":
        if not all(key in expr for key in ("cond", "then", "else")):
            raise ValueError("if needs cond, then and else")
    else:
        raise ValueError(f"unknown expr kind {kind}")
    for child in children(expr):
        validate_expr(child)
    return expr


def check_types(expr: Expr) -> Expr:
    kind = expr["kind"]
    for child in children(expr):
        check_types(child)
    if kind in {"neg", "not"} and sort_of(expr["arg"]) == STR:
        raise ValueError(f"{kind} applied to a string")
    if kind == "if":
        if sort_of(expr["cond"]) == STR:
            raise ValueError("string used as an if condition")
        if (sort_of(expr["then"]) == STR) != (sort_of(expr["else"]) == STR):
            raise ValueError("if branches mix strings with numbers")
    if kind == "binop":
        op = expr["op"]
        if op in ARITH_OPS | LOGIC_OPS | {"<", "<=", ">", ">="}:
            if any(sort_of(arg) == STR for arg in expr["args"]):
                raise ValueError(f"op {op} applied to a string")
    return expr


def out_of_range_literals(expr: Expr, bits: int) -> List[int]:
    low, high = int_range(bits)
    found: List[int] = []
    stack = [expr]
    while stack:
        node = stack.pop()
        if node["kind"] == "int" and not low <= node["value"] <= high:
            found.append(node["value"])
        stack.extend(children(node))
    return sorted(set(found))
