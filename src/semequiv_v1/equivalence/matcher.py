from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import PathOverlapError
from ..ledger.ledger import Ledger
from ..schemas import CoverageRecord, InputBound, Origin, UnknownReason
from ..solver.adapter import Z3SolverAdapter
from ..solver.budget import CancellationToken, RunBudget
from ..solver.query import Query, SolverOutcome
from ..summaries.store import PathSummary, PathSummaryStore
from ..symbolic.expr import Expr, conj, disj, expr_hash, fails, int_range, not_
from ..symbolic.normalize import Normalizer


@dataclass(frozen=True)
class Region:
    index: int
    first: PathSummary
    second: PathSummary

    def condition(self) -> Expr:
        return conj(list(self.first.path_condition) + list(self.second.path_condition))

    def label(self) -> str:
        return f"{self.first.id}/{self.second.id}"


@dataclass
class MatchResult:
    regions: List[Region] = field(default_factory=list)
    coverage: List[CoverageRecord] = field(default_factory=list)
    pruned: int = 0
    unresolved: List[str] = field(default_factory=list)
    unresolved_reasons: List[UnknownReason] = field(default_factory=list)

    def note_unresolved(self, label: str, reason: UnknownReason) -> None:
        self.unresolved.append(label)
        self.unresolved_reasons.append(reason)


def _interval_clause(clause: Expr) -> Optional[Tuple[str, int, int]]:
    if clause["kind"] != "binop" or clause["op"] not in {"<", "<=", "=="}:
        return None
    left, right = clause["args"]
    op = clause["op"]
    if left["kind"] == "var" and right["kind"] == "int":
        name, value, var_on_left = left["name"], right["value"], True
    elif left["kind"] == "int" and right["kind"] == "var":
        name, value, var_on_left = right["name"], left["value"], False
    else:
        return None
    unbounded = 1 << 80
    if op == "==":
        return name, value, value
    if var_on_left:
        return name, -unbounded, value - 1 if op == "<" else value
    return name, value + 1 if op == "<" else value, unbounded


class DomainPartitionMatcher:
    def __init__(
        self,
        adapter: Z3SolverAdapter,
        bounds: Sequence[InputBound],
        budget: RunBudget,
        bits: int = 64,
        ledger: Optional[Ledger] = None,
        token: Optional[CancellationToken] = None,
    ) -> None:
        self.adapter = adapter
        self.bounds = tuple(bounds)
        self.budget = budget
        self.bits = bits
        self.ledger = ledger
        self.token = token
        self._normalizer = Normalizer(bits)

    def _log(self, event_type: str, payload: Dict[str, object]) -> None:
        if self.ledger is not None:
            self.ledger.append(event_type, payload)

    def _solve(self, formula: Expr, label: str, minimize: bool = False) -> SolverOutcome:
        query = Query(formula=formula, bounds=self.bounds, minimize=minimize, label=label)
        return self.adapter.solve(query, self.budget, self.token)

    def trivially_disjoint(self, clauses: Sequence[Expr]) -> bool:
        hashes = {expr_hash(clause) for clause in clauses}
        for clause in clauses:
            if clause["kind"] == "bool" and not clause["value"]:
                return True
            negated = self._normalizer.run(not_(clause))
            if expr_hash(negated) in hashes:
                return True
        low, high = int_range(self.bits)
        intervals: Dict[str, Tuple[int, int]] = {}
        for bound in self.bounds:
            intervals[bound.name] = (bound.min, bound.max)
        for clause in clauses:
            parsed = _interval_clause(clause)
            if parsed is None:
                continue
            name, clause_low, clause_high = parsed
            current_low, current_high = intervals.get(name, (low, high))
            current_low = max(current_low, clause_low)
            current_high = min(current_high, clause_high)
            if current_low > current_high:
                return True
            intervals[name] = (current_low, current_high)
        return False

    def check_disjointness(
        self, origin: Origin, paths: Sequence[PathSummary], result: MatchResult
    ) -> None:
        checked = 0
        for i, left in enumerate(paths):
            for right in paths[i + 1 :]:
                clauses = list(left.path_condition) + list(right.path_condition)
                checked += 1
                if self.trivially_disjoint(clauses):
                    continue
                label = f"disjointness {origin} {left.id}/{right.id}"
                outcome = self._solve(conj(clauses), label)
                if outcome.is_sat:
                    self._log(
                        "DISJOINTNESS_CHECKED",
                        {
                            "origin": origin,
                            "overlap": [left.id, right.id],
                            "witness": outcome.model,
                        },
                    )
                    raise PathOverlapError(origin, [left.id, right.id])
                if outcome.is_unknown:
                    result.note_unresolved(label, outcome.reason or "SolverLimitation")
        self._log(
            "DISJOINTNESS_CHECKED",
            {"origin": origin, "pairs": checked, "unresolved": len(result.unresolved)},
        )

    def check_coverage(self, origin: Origin, paths: Sequence[PathSummary]) -> CoverageRecord:
        # an input is uncovered when some clause of every path fails on it
        uncovered = conj(
            [disj([fails(clause) for clause in path.path_condition]) for path in paths]
        )
        outcome = self._solve(uncovered, f"coverage {origin}", minimize=True)
        if outcome.is_unsat:
            record = CoverageRecord(origin=origin, status="complete")
        elif outcome.is_sat:
            record = CoverageRecord(
                origin=origin, status="incomplete", uncovered_example=outcome.model
            )
        else:
            record = CoverageRecord(origin=origin, status="unproved", reason=outcome.reason)
        self._log("COVERAGE_CHECKED", record.model_dump())
        return record

    def candidate_regions(
        self, first: Sequence[PathSummary], second: Sequence[PathSummary], result: MatchResult
    ) -> None:
        for left in first:
            for right in second:
                clauses = list(left.path_condition) + list(right.path_condition)
                if self.trivially_disjoint(clauses):
                    result.pruned += 1
                    continue
                outcome = self._solve(conj(clauses), f"region {left.id}/{right.id}")
                if outcome.is_unsat:
                    result.pruned += 1
                    continue
                # an undecided pair stays in and is settled by its divergence query
                result.regions.append(Region(index=len(result.regions), first=left, second=right))
        self._log(
            "REGIONS_MATCHED",
            {
                "regions": [region.label() for region in result.regions],
                "pruned": result.pruned,
            },
        )

    def match(self, store: PathSummaryStore) -> MatchResult:
        result = MatchResult()
        first, second = store.first, store.second
        self.check_disjointness("FirstProgram", first, result)
        self.check_disjointness("SecondProgram", second, result)
        result.coverage.append(self.check_coverage("FirstProgram", first))
        result.coverage.append(self.check_coverage("SecondProgram", second))
        self.candidate_regions(first, second, result)
        return result
