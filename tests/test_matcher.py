from __future__ import annotations

import pytest

from semequiv_v1.equivalence.matcher import DomainPartitionMatcher
from semequiv_v1.equivalence.sampling import active_path
from semequiv_v1.errors import PathOverlapError
from semequiv_v1.ledger.ledger import Ledger
from semequiv_v1.schemas import InputBound
from semequiv_v1.solver import RunBudget, Z3SolverAdapter
from semequiv_v1.summaries.store import PathSummary, PathSummaryStore
from semequiv_v1.symbolic.expr import lit_bool
from semequiv_v1.symbolic.normalize import normalize
from semequiv_v1.symbolic.parser import parse_expr

BOUNDS = [InputBound(name="x", min=0, max=10)]


def _store(first: list[str], second: list[str]) -> PathSummaryStore:
    store = PathSummaryStore(function_name="f")
    for index, condition in enumerate(first):
        store.add(PathSummary(id=f"A{index}", origin="FirstProgram", path_condition=[condition]))
    for index, condition in enumerate(second):
        store.add(PathSummary(id=f"B{index}", origin="SecondProgram", path_condition=[condition]))
    return store


def _matcher(ledger: Ledger | None = None) -> DomainPartitionMatcher:
    return DomainPartitionMatcher(
        Z3SolverAdapter(), BOUNDS, RunBudget(max_paths=100, timeout=30.0), ledger=ledger
    )


def test_regions_follow_first_program_order() -> None:
    result = _matcher().match(_store(["x > 5", "x <= 5"], ["x >= 0"]))
    assert [region.label() for region in result.regions] == ["A0/B0", "A1/B0"]
    assert [region.index for region in result.regions] == [0, 1]
    assert [record.status for record in result.coverage] == ["complete", "complete"]
    assert result.pruned == 0
    assert result.unresolved == []


def test_empty_intersections_are_pruned() -> None:
    result = _matcher().match(_store(["x < 5", "x >= 5"], ["x < 3", "x >= 3"]))
    assert [region.label() for region in result.regions] == ["A0/B0", "A0/B1", "A1/B1"]
    assert result.pruned == 1


def test_solver_prunes_what_intervals_miss() -> None:
    result = _matcher().match(_store(["x * 2 < 6", "x * 2 >= 6"], ["x < 3", "x >= 3"]))
    assert [region.label() for region in result.regions] == ["A0/B0", "A1/B1"]
    assert result.pruned == 2


def test_trivially_disjoint() -> None:
    matcher = _matcher()
    below = normalize(parse_expr("x < 5"))
    above = normalize(parse_expr("x >= 5"))
    assert matcher.trivially_disjoint([below, above])
    assert matcher.trivially_disjoint([lit_bool(False)])
    assert matcher.trivially_disjoint([normalize(parse_expr("x > 20"))])
    assert not matcher.trivially_disjoint([below, normalize(parse_expr("x > 2"))])


def test_overlapping_paths_raise(tmp_path) -> None:
    ledger = Ledger(tmp_path / "ledger.jsonl")
    with pytest.raises(PathOverlapError) as excinfo:
        _matcher(ledger).match(_store(["x > 2", "x > 5"], ["x >= 0"]))
    assert excinfo.value.origin == "FirstProgram"
    assert excinfo.value.path_ids == ["A0", "A1"]
    overlap = ledger.events("DISJOINTNESS_CHECKED")[-1]["payload"]
    assert overlap["overlap"] == ["A0", "A1"]
    assert 6 <= overlap["witness"]["x"] <= 10


def test_incomplete_coverage_has_a_witness() -> None:
    result = _matcher().match(_store(["x < 5"], ["x >= 0"]))
    first, second = result.coverage
    assert first.status == "incomplete"
    assert first.uncovered_example == {"x": 5}
    assert second.status == "complete"


def test_faulting_condition_leaves_a_gap() -> None:
    # 10 / x faults on x == 0, so neither path runs there
    result = _matcher().match(_store(["10 / x > 2", "10 / x <= 2"], ["x >= 0"]))
    assert result.coverage[0].status == "incomplete"
    assert result.coverage[0].uncovered_example == {"x": 0}


def test_negated_condition_agrees_with_concrete_replay() -> None:
    condition = "10 / x > 0 && 10 / x < 100"
    store = _store([condition, f"!({condition})"], ["x >= 0"])
    result = _matcher().match(store)
    assert result.coverage[0].status == "incomplete"
    assert result.coverage[0].uncovered_example == {"x": 0}
    assert active_path(store.first, {"x": 0}, 64) is None
    assert active_path(store.first, {"x": 4}, 64).id == "A0"


def test_match_logs_events(tmp_path) -> None:
    ledger = Ledger(tmp_path / "ledger.jsonl")
    _matcher(ledger).match(_store(["x > 5", "x <= 5"], ["x >= 0"]))
    types = [event["type"] for event in ledger.events()]
    assert types == [
        "DISJOINTNESS_CHECKED",
        "DISJOINTNESS_CHECKED",
        "COVERAGE_CHECKED",
        "COVERAGE_CHECKED",
        "REGIONS_MATCHED",
    ]
    assert ledger.events("REGIONS_MATCHED")[0]["payload"]["regions"] == ["A0/B0", "A1/B0"]
