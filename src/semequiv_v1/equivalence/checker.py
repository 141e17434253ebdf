from __future__ import annotations

import queue
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..config import Settings
from ..errors import BoundsError, EquivalenceError, InvalidSummaryError
from ..ledger.ledger import Ledger
from ..schemas import AnalysisConfig, EquivalenceReport, InputBound, UnknownReason
from ..solver.adapter import Z3SolverAdapter
from ..solver.budget import CancellationToken, RunBudget
from ..solver.query import Query, SolverOutcome
from ..summaries.store import PathSummaryStore
from ..symbolic.expr import int_range
from .aggregator import RegionResolution, VerdictAggregator
from .counterexample import build_counterexample
from .divergence import divergence_formula
from .matcher import DomainPartitionMatcher, Region
from .sampling import spot_check


def _check_bounds(bounds: Sequence[InputBound], bits: int) -> None:
    low, high = int_range(bits)
    for bound in bounds:
        if bound.min < low or bound.max > high:
            raise BoundsError(f"bound {bound.name} [{bound.min}, {bound.max}] exceeds {bits}-bit range")


class RegionWorker:
    def __init__(
        self,
        adapter: Z3SolverAdapter,
        bounds: Sequence[InputBound],
        budget: RunBudget,
        symbols: Sequence[str],
        bits: int,
    ) -> None:
        self.adapter = adapter
        self.bounds = tuple(bounds)
        self.budget = budget
        self.symbols = tuple(symbols)
        self.bits = bits

    def resolve(self, region: Region, token: CancellationToken) -> RegionResolution:
        formula = divergence_formula(region.first, region.second)
        if formula["kind"] == "bool" and not formula["value"]:
            return RegionResolution(region=region, outcome=SolverOutcome.unsatisfiable())
        query = Query(
            formula=formula,
            bounds=self.bounds,
            minimize=True,
            label=f"divergence {region.label()}",
            symbols=self.symbols,
        )
        outcome = self.adapter.solve(query, self.budget, token)
        if not outcome.is_sat:
            return RegionResolution(region=region, outcome=outcome)
        counterexample = build_counterexample(
            region.first, region.second, outcome.model, self.bounds, self.bits
        )
        if counterexample is None:
            # the model satisfies the query but replays to identical behavior
            return RegionResolution(region=region, outcome=SolverOutcome.unknown("SolverLimitation"))
        return RegionResolution(region=region, outcome=outcome, counterexample=counterexample)

    def run(
        self, region: Region, token: CancellationToken, results: "queue.Queue[Tuple[int, Any]]"
    ) -> None:
        payload: Any = RuntimeError(f"worker for region {region.index} stopped")
        try:
            payload = self.resolve(region, token)
        except Exception as exc:
            payload = exc
        finally:
            results.put((region.index, payload))


def check_equivalence(
    store: PathSummaryStore,
    config: AnalysisConfig,
    settings: Optional[Settings] = None,
    ledger: Optional[Ledger] = None,
    adapter: Optional[Z3SolverAdapter] = None,
    clock: Callable[[], float] = time.monotonic,
) -> EquivalenceReport:
    settings = settings or Settings()
    bits = settings.int_bits
    started = clock()

    def log(event_type: str, payload: dict) -> None:
        if ledger is not None:
            ledger.append(event_type, payload)

    log(
        "RUN_START",
        {
            "function": config.function_name,
            "bounds": [bound.model_dump() for bound in config.bounds],
            "max_paths": config.max_paths,
            "timeout": config.timeout,
            "settings": settings.fingerprint(),
        },
    )
    try:
        _check_bounds(config.bounds, bits)
        if store.function_name is not None and store.function_name != config.function_name:
            raise InvalidSummaryError(
                f"summaries are for {store.function_name!r}, not {config.function_name!r}"
            )
        if store.bits != bits:
            raise InvalidSummaryError(
                f"summaries were normalized for {store.bits}-bit integers, run uses {bits}"
            )
        log("SUMMARIES_LOADED", {**store.counts(), "hashes": _summary_hashes(store)})

        budget = RunBudget(config.max_paths, config.timeout, clock)
        adapter = adapter or Z3SolverAdapter(bits=bits, minimize=settings.minimize_counterexamples)
        matcher = DomainPartitionMatcher(
            adapter, config.bounds, budget, bits=bits, ledger=ledger
        )
        match = matcher.match(store)

        declared = set(config.bound_names())
        symbols = sorted(store.free_vars() - declared)
        worker = RegionWorker(adapter, config.bounds, budget, symbols, bits)
        aggregator = VerdictAggregator(match.regions)
        _scan(match.regions, worker, aggregator, budget, settings.worker_count(), log)
    except EquivalenceError as exc:
        log(
            "RUN_ERROR",
            {"error": type(exc).__name__, "failure_atom": exc.failure_atom, "message": str(exc)},
        )
        raise

    result, unknown_reason = aggregator.finish(
        match.coverage, match.unresolved_reasons, clock() - started
    )
    spot = None
    if settings.spot_check_samples > 0:
        spot = spot_check(store, config.bounds, settings.spot_check_samples, settings.spot_check_seed)
        log("SPOT_CHECK", spot.model_dump(mode="json"))
    report = EquivalenceReport(
        function_name=config.function_name,
        bounds=list(config.bounds),
        result=result,
        unknown_reason=unknown_reason,
        coverage=match.coverage,
        regions=aggregator.records + aggregator.skipped_records(),
        candidate_regions=len(match.regions),
        pruned_pairs=match.pruned,
        unresolved_checks=match.unresolved,
        summary_hashes=_summary_hashes(store),
        spot_check=spot,
    )
    log(
        "VERDICT",
        {
            "verdict": result.verdict,
            "paths_compared": result.paths_compared,
            "unknown_reason": unknown_reason,
            "report_hash": report.stable_hash(),
        },
    )
    return report


def _summary_hashes(store: PathSummaryStore) -> dict:
    return {
        "FirstProgram": store.summary_hash("FirstProgram"),
        "SecondProgram": store.summary_hash("SecondProgram"),
    }


def _scan(
    regions: List[Region],
    worker: RegionWorker,
    aggregator: VerdictAggregator,
    budget: RunBudget,
    workers: int,
    log: Callable[[str, dict], None],
) -> None:
    tokens = [CancellationToken() for _ in regions]
    results: "queue.Queue[Tuple[int, Any]]" = queue.Queue()
    failure: Optional[BaseException] = None
    best_divergence = len(regions)

    def cancel_from(start: int, reason: UnknownReason) -> None:
        for token in tokens[start:]:
            token.cancel(reason)

    def apply(resolution: RegionResolution) -> None:
        for applied in aggregator.offer(resolution):
            log(
                "REGION_RESOLVED",
                {"region": applied.record().model_dump(), "outcome": applied.outcome.describe()},
            )

    with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="semequiv-region") as pool:
        in_flight = 0
        for region, token in zip(regions, tokens):
            if not budget.acquire_path():
                apply(RegionResolution.not_dispatched(region))
                continue
            pool.submit(worker.run, region, token, results)
            in_flight += 1

        while in_flight:
            index, payload = results.get()
            in_flight -= 1
            if isinstance(payload, BaseException):
                if failure is None:
                    failure = payload
                    cancel_from(0, "SolverLimitation")
                continue
            if failure is not None:
                continue
            if payload.diverged and index < best_divergence:
                best_divergence = index
                cancel_from(index + 1, "SolverLimitation")
            elif payload.outcome.reason == "Timeout":
                cancel_from(0, "Timeout")
            apply(payload)
    # leaving the executor waits for every worker to return
    if failure is not None:
        raise failure
