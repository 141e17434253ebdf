from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from hypothesis import given
from hypothesis import seed as hypo_seed
from hypothesis import settings as hypo_settings
from hypothesis import strategies as st

from ..schemas import InputBound, SpotCheckRecord
from ..summaries.store import PathSummary, PathSummaryStore
from ..symbolic.evaluate import Fault, as_bool, evaluate
from .counterexample import build_counterexample


def sample_inputs(bounds: Sequence[InputBound], count: int, seed_value: int) -> List[Dict[str, int]]:
    strat = st.fixed_dictionaries(
        {bound.name: st.integers(min_value=bound.min, max_value=bound.max) for bound in bounds}
    )
    inputs: List[Dict[str, int]] = []

    @hypo_settings(derandomize=True, max_examples=count, database=None, deadline=None)
    @hypo_seed(seed_value)
    @given(values=strat)
    def _collect(values: Dict[str, int]) -> None:
        if values not in inputs:
            inputs.append(dict(values))

    _collect()
    return inputs


def active_path(
    paths: Sequence[PathSummary], inputs: Mapping[str, int], bits: int
) -> Optional[PathSummary]:
    for path in paths:
        holds = True
        for clause in path.path_condition:
            value = evaluate(clause, inputs, bits)
            if isinstance(value, Fault) or not as_bool(value):
                holds = False
                break
        if holds:
            return path
    return None


def spot_check(
    store: PathSummaryStore,
    bounds: Sequence[InputBound],
    count: int,
    seed_value: int,
) -> SpotCheckRecord:
    declared = {bound.name for bound in bounds}
    environment = sorted(store.free_vars() - declared)
    if environment:
        return SpotCheckRecord(skipped_reason=f"free symbols outside the bounds: {', '.join(environment)}")
    samples = sample_inputs(bounds, count, seed_value)
    compared = 0
    uncovered = 0
    for inputs in samples:
        first = active_path(store.first, inputs, store.bits)
        second = active_path(store.second, inputs, store.bits)
        if first is None or second is None:
            uncovered += 1
            continue
        compared += 1
        disagreement = build_counterexample(first, second, inputs, bounds, store.bits)
        if disagreement is not None:
            return SpotCheckRecord(
                samples=len(samples),
                compared=compared,
                uncovered=uncovered,
                disagreement=disagreement,
            )
    return SpotCheckRecord(samples=len(samples), compared=compared, uncovered=uncovered)
