from __future__ import annotations

from typing import Any, List, Tuple

import orjson
from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from ..errors import ExpressionSyntaxError
from .expr import Expr, binop, if_expr, lit_bool, lit_int, lit_str, neg, not_, to_str, var

EXPR_GRAMMAR = Grammar(r"""
    expression      = _ or_expr _

    or_expr         = and_expr or_tail*
    or_tail         = _ or_op _ and_expr
    or_op           = "||" / ~r"or\b"

    and_expr        = not_expr and_tail*
    and_tail        = _ and_op _ not_expr
    and_op          = "&&" / ~r"and\b"

    not_expr        = negation / comparison
    negation        = not_op _ not_expr
    not_op          = ~r"!(?!=)" / ~r"not\b"

    comparison      = concat_expr compare_tail?
    compare_tail    = _ compare_op _ concat_expr
    compare_op      = "==" / "!=" / "<=" / ">=" / "<" / ">"

    concat_expr     = additive concat_tail*
    concat_tail     = _ "++" _ additive

    additive        = term add_tail*
    add_tail        = _ add_op _ term
    add_op          = ~r"\+(?!\+)" / "-"

    term            = unary mul_tail*
    mul_tail        = _ mul_op _ unary
    mul_op          = "*" / "/" / "%"

    unary           = minus / primary
    minus           = "-" _ unary

    primary         = call / literal / identifier / group
    call            = function _ "(" _ arguments _ ")"
    function        = ~r"(str|ite)\b"
    arguments       = or_expr argument_tail*
    argument_tail   = _ "," _ or_expr
    group           = "(" _ or_expr _ ")"

    literal         = integer / boolean / string
    integer         = ~r"[0-9]+"
    boolean         = ~r"(true|false)\b"
    string          = ~r'"(?:[^"\\]|\\.)*"'
    identifier      = ~r"[A-Za-z_][A-Za-z0-9_]*"

    _               = ~r"\s*"
""")

RESERVED = {"and", "or", "not", "true", "false", "str", "ite"}
MAX_LITERAL = (1 << 63) - 1
FUNCTION_ARITY = {"str": 1, "ite": 3}


def _items(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


class _ExprBuilder(NodeVisitor):
    unwrapped_exceptions = (ExpressionSyntaxError,)

    def __init__(self, text: str) -> None:
        self.text = text

    def generic_visit(self, node: Node, visited_children: List[Any]) -> Any:
        return visited_children or node

    @staticmethod
    def _chain(op: str, first: Expr, rest: List[Expr]) -> Expr:
        result = first
        for operand in rest:
            result = binop(op, result, operand)
        return result

    @staticmethod
    def _fold_ops(first: Expr, rest: List[Tuple[str, Expr]]) -> Expr:
        result = first
        for op, operand in rest:
            result = binop(op, result, operand)
        return result

    def visit_expression(self, node: Node, children: List[Any]) -> Expr:
        _, expr, _ = children
        return expr

    def visit_or_expr(self, node: Node, children: List[Any]) -> Expr:
        first, rest = children
        return self._chain("or", first, _items(rest))

    def visit_or_tail(self, node: Node, children: List[Any]) -> Expr:
        return children[3]

    def visit_and_expr(self, node: Node, children: List[Any]) -> Expr:
        first, rest = children
        return self._chain("and", first, _items(rest))

    def visit_and_tail(self, node: Node, children: List[Any]) -> Expr:
        return children[3]

    def visit_not_expr(self, node: Node, children: List[Any]) -> Expr:
        return children[0]

    def visit_negation(self, node: Node, children: List[Any]) -> Expr:
        return not_(children[2])

    def visit_comparison(self, node: Node, children: List[Any]) -> Expr:
        first, tail = children
        tail = _items(tail)
        if not tail:
            return first
        op, right = tail[0]
        return binop(op, first, right)

    def visit_compare_tail(self, node: Node, children: List[Any]) -> Tuple[str, Expr]:
        return children[1], children[3]

    def visit_compare_op(self, node: Node, children: List[Any]) -> str:
        return node.text

    def visit_concat_expr(self, node: Node, children: List[Any]) -> Expr:
        first, rest = children
        return self._chain("concat", first, _items(rest))

    def visit_concat_tail(self, node: Node, children: List[Any]) -> Expr:
        return children[3]

    def visit_additive(self, node: Node, children: List[Any]) -> Expr:
        first, rest = children
        return self._fold_ops(first, _items(rest))

    def visit_add_tail(self, node: Node, children: List[Any]) -> Tuple[str, Expr]:
        return children[1], children[3]

    def visit_add_op(self, node: Node, children: List[Any]) -> str:
        return node.text

    def visit_term(self, node: Node, children: List[Any]) -> Expr:
        first, rest = children
        return self._fold_ops(first, _items(rest))

    def visit_mul_tail(self, node: Node, children: List[Any]) -> Tuple[str, Expr]:
        return children[1], children[3]

    def visit_mul_op(self, node: Node, children: List[Any]) -> str:
        return node.text

    def visit_unary(self, node: Node, children: List[Any]) -> Expr:
        return children[0]

    def visit_minus(self, node: Node, children: List[Any]) -> Expr:
        return neg(children[2])

    def visit_primary(self, node: Node, children: List[Any]) -> Expr:
        return children[0]

    def visit_call(self, node: Node, children: List[Any]) -> Expr:
        name = children[0]
        args = children[4]
        if len(args) != FUNCTION_ARITY[name]:
            raise ExpressionSyntaxError(
                self.text, f"{name}() takes {FUNCTION_ARITY[name]} argument(s), got {len(args)}"
            )
        if name == "str":
            return to_str(args[0])
        return if_expr(args[0], args[1], args[2])

    def visit_function(self, node: Node, children: List[Any]) -> str:
        return node.text

    def visit_arguments(self, node: Node, children: List[Any]) -> List[Expr]:
        first, rest = children
        return [first] + _items(rest)

    def visit_argument_tail(self, node: Node, children: List[Any]) -> Expr:
        return children[3]

    def visit_group(self, node: Node, children: List[Any]) -> Expr:
        return children[2]

    def visit_literal(self, node: Node, children: List[Any]) -> Expr:
        return children[0]

    def visit_integer(self, node: Node, children: List[Any]) -> Expr:
        value = int(node.text)
        if value > MAX_LITERAL:
            raise ExpressionSyntaxError(self.text, f"integer literal {node.text} out of range")
        return lit_int(value)

    def visit_boolean(self, node: Node, children: List[Any]) -> Expr:
        return lit_bool(node.text == "true")

    def visit_string(self, node: Node, children: List[Any]) -> Expr:
        try:
            return lit_str(orjson.loads(node.text))
        except orjson.JSONDecodeError as exc:
            raise ExpressionSyntaxError(self.text, f"bad string literal {node.text}") from exc

    def visit_identifier(self, node: Node, children: List[Any]) -> Expr:
        if node.text in RESERVED:
            raise ExpressionSyntaxError(self.text, f"reserved word {node.text!r} used as a name")
        return var(node.text)


def parse_expr(text: str) -> Expr:
    try:
        tree = EXPR_GRAMMAR.parse(text)
    except ParseError as exc:
        raise ExpressionSyntaxError(text, str(exc)) from exc
    try:
        return _ExprBuilder(text).visit(tree)
    except VisitationError as exc:
        raise ExpressionSyntaxError(text, str(exc)) from exc


PRECEDENCE = {
    "or": 1,
    "and": 2,
    "==": 4,
    "!=": 4,
    "<": 4,
    "<=": 4,
    ">": 4,
    ">=": 4,
    "concat": 5,
    "+": 6,
    "-": 6,
    "*": 7,
    "/": 7,
    "%": 7,
}
SYMBOLS = {"or": "||", "and": "&&", "concat": "++"}
NOT_PREC = 3
UNARY_PREC = 8
ATOM_PREC = 9


def _render(expr: Expr) -> Tuple[str, int]:
    kind = expr["kind"]
    if kind == "int":
        return str(expr["value"]), UNARY_PREC if expr["value"] < 0 else ATOM_PREC
    if kind == "bool":
        return ("true" if expr["value"] else "false"), ATOM_PREC
    if kind == "str":
        return orjson.dumps(expr["value"]).decode("utf-8"), ATOM_PREC
    if kind == "var":
        return expr["name"], ATOM_PREC
    if kind == "neg":
        return "-" + _wrap(expr["arg"], UNARY_PREC), UNARY_PREC
    if kind == "not":
        return "!" + _wrap(expr["arg"], UNARY_PREC), NOT_PREC
    if kind == "to_str":
        return f"str({render(expr['arg'])})", ATOM_PREC
    if kind == "if":
        parts = ", ".join(render(expr[key]) for key in ("cond", "then", "else"))
        return f"ite({parts})", ATOM_PREC
    if kind == "differs":
        left, right = expr["args"]
        return f"differs({render(left)}, {render(right)})", ATOM_PREC
    if kind == "fails":
        return f"fails({render(expr['arg'])})", ATOM_PREC
    if kind == "binop":
        op = expr["op"]
        prec = PRECEDENCE[op]
        first, *rest = expr["args"]
        first_prec = prec + 1 if prec == 4 else prec
        pieces = [_wrap(first, first_prec)]
        pieces.extend(_wrap(arg, prec + 1) for arg in rest)
        return f" {SYMBOLS.get(op, op)} ".join(pieces), prec
    raise ValueError(f"unknown expr kind {kind}")


def _wrap(expr: Expr, min_prec: int) -> str:
    text, prec = _render(expr)
    if prec < min_prec:
        return f"({text})"
    return text


def render(expr: Expr) -> str:
    return _render(expr)[0]
