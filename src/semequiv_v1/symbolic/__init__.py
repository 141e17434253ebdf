from .evaluate import Fault, evaluate, observations_differ, render_value, substitute
from .expr import Expr, free_vars, sort_of
from .normalize import normalize, structurally_equal
from .parser import parse_expr, render

__all__ = [
    "Expr",
    "Fault",
    "evaluate",
    "free_vars",
    "normalize",
    "observations_differ",
    "parse_expr",
    "render",
    "render_value",
    "sort_of",
    "structurally_equal",
    "substitute",
]
