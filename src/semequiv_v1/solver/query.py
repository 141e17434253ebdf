from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Literal, Optional, Tuple

from ..schemas import InputBound, UnknownReason
from ..symbolic.expr import Expr

OutcomeStatus = Literal["sat", "unsat", "unknown"]


@dataclass(frozen=True)
class Query:
    """A closed formula over the declared inputs and shared environment symbols.

    Variables that are not declared in ``bounds`` range over the whole integer
    width. They stand for state the symbolic executors left symbolic (initial
    global values, say) and are shared by name between the two programs.
    """

    formula: Expr
    bounds: Tuple[InputBound, ...]
    minimize: bool = False
    label: str = ""
    symbols: Tuple[str, ...] = ()

    def bound_names(self) -> Tuple[str, ...]:
        return tuple(bound.name for bound in self.bounds)


@dataclass(frozen=True)
class SolverOutcome:
    status: OutcomeStatus
    model: Dict[str, int] = field(default_factory=dict)
    reason: Optional[UnknownReason] = None

    @classmethod
    def satisfiable(cls, model: Dict[str, int]) -> "SolverOutcome":
        return cls(status="sat", model=dict(model))

    @classmethod
    def unsatisfiable(cls) -> "SolverOutcome":
        return cls(status="unsat")

    @classmethod
    def unknown(cls, reason: UnknownReason) -> "SolverOutcome":
        return cls(status="unknown", reason=reason)

    @property
    def is_sat(self) -> bool:
        return self.status == "sat"

    @property
    def is_unsat(self) -> bool:
        return self.status == "unsat"

    @property
    def is_unknown(self) -> bool:
        return self.status == "unknown"

    def describe(self) -> Dict[str, object]:
        data: Dict[str, object] = {"status": self.status}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.model:
            data["model"] = dict(sorted(self.model.items()))
        return data
