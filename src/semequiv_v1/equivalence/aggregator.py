from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..schemas import (
    Counterexample,
    CoverageRecord,
    EquivalenceResult,
    RegionRecord,
    RunUnknownReason,
    UnknownReason,
)
from ..solver.query import SolverOutcome
from .matcher import Region


class AggregatorState(str, Enum):
    SCANNING = "Scanning"
    DIVERGED = "Diverged"
    PROVED = "Proved"
    INDETERMINATE = "Indeterminate"


@dataclass(frozen=True)
class RegionResolution:
    region: Region
    outcome: SolverOutcome
    counterexample: Optional[Counterexample] = None
    dispatched: bool = True

    @classmethod
    def not_dispatched(cls, region: Region) -> "RegionResolution":
        return cls(
            region=region,
            outcome=SolverOutcome.unknown("PathBudgetExceeded"),
            dispatched=False,
        )

    @property
    def index(self) -> int:
        return self.region.index

    @property
    def diverged(self) -> bool:
        return self.counterexample is not None

    def record(self) -> RegionRecord:
        if self.diverged:
            status = "diverged"
        elif self.outcome.is_unknown:
            status = "unknown"
        else:
            status = "unsat"
        return RegionRecord(
            index=self.index,
            first_id=self.region.first.id,
            second_id=self.region.second.id,
            status=status,
            reason=self.outcome.reason,
        )


class VerdictAggregator:
    """Applies region resolutions strictly in region index order.

    Resolutions may arrive in any order; they wait in a reorder buffer until
    every lower index has been applied, so the verdict, the counterexample and
    ``paths_compared`` match a sequential scan.
    """

    def __init__(self, regions: Sequence[Region]) -> None:
        self.regions = list(regions)
        self.state = AggregatorState.SCANNING
        self.paths_compared = 0
        self.counterexample: Optional[Counterexample] = None
        self.divergence_index: Optional[int] = None
        self.region_reasons: List[UnknownReason] = []
        self.records: List[RegionRecord] = []
        self._pending: Dict[int, RegionResolution] = {}
        self._next = 0

    @property
    def done(self) -> bool:
        return self.state != AggregatorState.SCANNING

    def offer(self, resolution: RegionResolution) -> List[RegionResolution]:
        """Buffer one resolution; returns the ones applied as a result."""
        if self.done:
            return []
        self._pending[resolution.index] = resolution
        applied: List[RegionResolution] = []
        while not self.done and self._next in self._pending:
            current = self._pending.pop(self._next)
            self._apply(current)
            applied.append(current)
            self._next += 1
        return applied

    def _apply(self, resolution: RegionResolution) -> None:
        if resolution.dispatched:
            self.paths_compared += 1
        self.records.append(resolution.record())
        if resolution.diverged:
            self.state = AggregatorState.DIVERGED
            self.counterexample = resolution.counterexample
            self.divergence_index = resolution.index
            self._pending.clear()
        elif resolution.outcome.is_unknown:
            self.region_reasons.append(resolution.outcome.reason or "SolverLimitation")

    def skipped_records(self) -> List[RegionRecord]:
        return [
            RegionRecord(
                index=region.index,
                first_id=region.first.id,
                second_id=region.second.id,
                status="skipped",
            )
            for region in self.regions[self._next :]
        ]

    def finish(
        self,
        coverage: Sequence[CoverageRecord],
        unresolved_reasons: Sequence[UnknownReason],
        time_taken: float,
    ) -> Tuple[EquivalenceResult, Optional[RunUnknownReason]]:
        if self.state == AggregatorState.DIVERGED:
            result = EquivalenceResult(
                verdict="NotEquivalent",
                paths_compared=self.paths_compared,
                counterexample=self.counterexample,
                time_taken=time_taken,
            )
            return result, None
        if self._next < len(self.regions):
            raise RuntimeError(
                f"aggregator finished with {len(self.regions) - self._next} region(s) unapplied"
            )
        reasons: List[RunUnknownReason] = list(self.region_reasons)
        reasons.extend(unresolved_reasons)
        for record in coverage:
            if record.status == "incomplete":
                reasons.append("IncompleteCoverage")
            elif record.status == "unproved":
                reasons.append(record.reason or "SolverLimitation")
        if reasons:
            self.state = AggregatorState.INDETERMINATE
            verdict = "Unknown"
        else:
            self.state = AggregatorState.PROVED
            verdict = "Equivalent"
        result = EquivalenceResult(
            verdict=verdict,
            paths_compared=self.paths_compared,
            counterexample=None,
            time_taken=time_taken,
        )
        return result, reasons[0] if reasons else None
