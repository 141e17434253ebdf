from __future__ import annotations

from typing import Iterable, Optional


class EquivalenceError(Exception):
    failure_atom = "EQUIVALENCE_ERROR"

    def __init__(self, message: str, failure_atom: Optional[str] = None) -> None:
        super().__init__(message)
        if failure_atom is not None:
            self.failure_atom = failure_atom


class BoundsError(EquivalenceError):
    failure_atom = "BAD_BOUNDS"


class ConfigError(EquivalenceError):
    failure_atom = "BAD_CONFIG"


class ExpressionSyntaxError(EquivalenceError):
    failure_atom = "EXPR_SYNTAX"

    def __init__(self, text: str, detail: str) -> None:
        super().__init__(f"cannot parse expression {text!r}: {detail}")
        self.text = text
        self.detail = detail


class InvalidSummaryError(EquivalenceError):
    failure_atom = "BAD_SUMMARY"


class PathOverlapError(EquivalenceError):
    failure_atom = "PATH_OVERLAP"

    def __init__(self, origin: str, path_ids: Iterable[str]) -> None:
        self.origin = origin
        self.path_ids = list(path_ids)
        super().__init__(
            f"overlapping path conditions in {origin}: {', '.join(self.path_ids)}"
        )


class UnboundVariable(EquivalenceError):
    failure_atom = "UNBOUND_VARIABLE"

    def __init__(self, names: Iterable[str]) -> None:
        self.names = sorted(names)
        super().__init__(f"no value for variable(s): {', '.join(self.names)}")


class ModelIncompleteError(EquivalenceError):
    failure_atom = "MODEL_INCOMPLETE"

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = sorted(missing)
        super().__init__(f"solver model omits declared input(s): {', '.join(self.missing)}")


class EvaluationFault(EquivalenceError):
    code = 0
    marker = "<fault>"


class Overflow(EvaluationFault):
    failure_atom = "OVERFLOW"
    code = 1
    marker = "<overflow>"


class DivisionByZero(EvaluationFault):
    failure_atom = "DIVISION_BY_ZERO"
    code = 2
    marker = "<division-by-zero>"


class ExpressionTypeError(EquivalenceError):
    failure_atom = "EXPR_TYPE"


FAULT_NONE = 0
FAULT_OVERFLOW = Overflow.code
FAULT_DIVISION_BY_ZERO = DivisionByZero.code

FAULTS_BY_CODE = {
    FAULT_OVERFLOW: Overflow,
    FAULT_DIVISION_BY_ZERO: DivisionByZero,
}
