from __future__ import annotations

from pathlib import Path

import pytest

from semequiv_v1.config import Settings
from semequiv_v1.equivalence import check_equivalence
from semequiv_v1.errors import BoundsError, InvalidSummaryError, PathOverlapError
from semequiv_v1.ledger.ledger import Ledger
from semequiv_v1.schemas import AnalysisConfig, InputBound
from semequiv_v1.summaries.store import PathSummary, PathSummaryStore


def _store(first: list[dict], second: list[dict], bits: int = 64) -> PathSummaryStore:
    store = PathSummaryStore(function_name="f", bits=bits)
    for index, fields in enumerate(first):
        store.add(PathSummary(id=f"A{index}", origin="FirstProgram", **fields))
    for index, fields in enumerate(second):
        store.add(PathSummary(id=f"B{index}", origin="SecondProgram", **fields))
    return store


def _config(high: int, max_paths: int = 100, low: int = 0) -> AnalysisConfig:
    return AnalysisConfig(
        function_name="f",
        bounds=[InputBound(name="x", min=low, max=high)],
        max_paths=max_paths,
        timeout=60.0,
    )


def _settings(**overrides) -> Settings:
    return Settings(workers=2, spot_check_samples=0, **overrides)


SPLIT_AT_FIVE = [
    {"path_condition": ["x > 5"], "return_expr": "x + 1"},
    {"path_condition": ["x <= 5"], "return_expr": "x"},
]
IDENTITY = [{"path_condition": ["x >= 0"], "return_expr": "x"}]
PARTITION = [
    {"path_condition": ["x < 50"], "return_expr": "x * 2"},
    {"path_condition": ["x >= 50"], "return_expr": "x + 1"},
]


def test_return_value_divergence() -> None:
    report = check_equivalence(_store(SPLIT_AT_FIVE, IDENTITY), _config(10), _settings())
    result = report.result
    assert result.verdict == "NotEquivalent"
    assert result.paths_compared == 1
    assert result.counterexample.inputs == {"x": 6}
    [difference] = result.counterexample.differences
    assert difference.kind == "ReturnValue"
    assert (difference.first_value, difference.second_value) == ("7", "6")
    assert report.unknown_reason is None


def test_identical_partitions_are_equivalent() -> None:
    report = check_equivalence(_store(PARTITION, PARTITION), _config(100), _settings())
    assert report.result.verdict == "Equivalent"
    # only the two non-empty intersections of the 2x2 cross product are compared
    assert report.result.paths_compared == 2
    assert report.candidate_regions == 2
    assert report.pruned_pairs == 2
    assert report.result.counterexample is None


def test_incomplete_coverage_is_unknown() -> None:
    half = [{"path_condition": ["x <= 50"], "return_expr": "x"}]
    report = check_equivalence(_store(half, IDENTITY), _config(100), _settings())
    assert report.result.verdict == "Unknown"
    assert report.unknown_reason == "IncompleteCoverage"
    assert report.coverage[0].uncovered_example == {"x": 51}


@pytest.mark.parametrize("max_paths, compared", [(0, 0), (1, 1)])
def test_path_budget(max_paths: int, compared: int) -> None:
    report = check_equivalence(
        _store(PARTITION, PARTITION), _config(100, max_paths=max_paths), _settings()
    )
    assert report.result.verdict == "Unknown"
    assert report.unknown_reason == "PathBudgetExceeded"
    assert report.result.paths_compared == compared


def test_first_divergent_region_is_reported() -> None:
    first = [
        {"path_condition": ["x < 5"], "return_expr": "x + 1"},
        {"path_condition": ["x >= 5"], "return_expr": "x + 2"},
    ]
    for workers in (1, 4):
        report = check_equivalence(_store(first, IDENTITY), _config(10), _settings().model_copy(
            update={"workers": workers}
        ))
        assert report.result.verdict == "NotEquivalent"
        assert report.result.paths_compared == 1
        assert report.result.counterexample.inputs == {"x": 0}
        assert [record.status for record in report.regions] == ["diverged", "skipped"]


def test_division_fault_is_observable() -> None:
    first = [{"path_condition": ["x >= 0"], "return_expr": "10 / x"}]
    second = [{"path_condition": ["x >= 0"], "return_expr": "ite(x == 0, 0, 10 / x)"}]
    report = check_equivalence(_store(first, second), _config(10), _settings())
    assert report.result.verdict == "NotEquivalent"
    assert report.result.counterexample.inputs == {"x": 0}
    assert report.result.counterexample.first_behavior.return_value == "<division-by-zero>"


def test_global_variable_divergence() -> None:
    first = [{"path_condition": ["x >= 0"], "global_writes": [["counter", "x + 1"]]}]
    second = [{"path_condition": ["x >= 0"], "global_writes": [["counter", "x"]]}]
    report = check_equivalence(_store(first, second), _config(10), _settings())
    difference = report.result.counterexample.differences[0]
    assert difference.kind == {"GlobalVariable": "counter"}
    assert (difference.first_value, difference.second_value) == ("1", "0")


def test_stdout_divergence() -> None:
    first = [{"path_condition": ["x >= 0"], "stdout_log": ['"n=" ++ str(x)']}]
    second = [{"path_condition": ["x >= 0"], "stdout_log": ['"n=" ++ str(10 - x)']}]
    report = check_equivalence(_store(first, second), _config(10), _settings())
    difference = report.result.counterexample.differences[0]
    assert difference.kind == "Stdout"
    assert (difference.first_value, difference.second_value) == ('["n=0"]', '["n=10"]')


@pytest.mark.slow
def test_stdout_divergence_with_negative_numbers() -> None:
    first = [{"path_condition": ["x >= -1000000"], "stdout_log": ['"n=" ++ str(x)']}]
    second = [{"path_condition": ["x >= -1000000"], "stdout_log": ['"n=" ++ str(0 - x)']}]
    report = check_equivalence(
        _store(first, second), _config(1000000, low=-1000000), _settings()
    )
    difference = report.result.counterexample.differences[0]
    assert report.result.counterexample.inputs == {"x": -1000000}
    assert (difference.first_value, difference.second_value) == ('["n=-1000000"]', '["n=1000000"]')


def test_environment_symbols_are_shared() -> None:
    first = [{"path_condition": ["x >= 0"], "return_expr": "g + x"}]
    second = [{"path_condition": ["x >= 0"], "return_expr": "x + g"}]
    report = check_equivalence(_store(first, second), _config(10), _settings())
    assert report.result.verdict == "Equivalent"


def test_overflow_only_in_one_program() -> None:
    first = [{"path_condition": ["x >= 0"], "return_expr": "x * 2 / 2"}]
    second = [{"path_condition": ["x >= 0"], "return_expr": "x"}]
    report = check_equivalence(
        _store(first, second, bits=8), _config(100), _settings(int_bits=8)
    )
    assert report.result.verdict == "NotEquivalent"
    assert report.result.counterexample.inputs == {"x": 64}
    assert report.result.counterexample.first_behavior.return_value == "<overflow>"


def test_shared_intermediate_overflow_is_equivalent() -> None:
    first = [{"path_condition": ["x >= 0"], "return_expr": "x + 100 + -100"}]
    second = [{"path_condition": ["x >= 0"], "return_expr": "x + 100 - 100"}]
    report = check_equivalence(
        _store(first, second, bits=8), _config(100), _settings(int_bits=8)
    )
    assert report.result.verdict == "Equivalent"
    assert report.result.paths_compared == 1


def _write(data: str) -> dict:
    return {"kind": "write", "filename": "log", "data": data}


def test_file_write_divergence() -> None:
    first = [{"path_condition": ["x >= 0"], "file_ops": [_write("x")]}]
    second = [{"path_condition": ["x >= 0"], "file_ops": [_write("x % 5")]}]
    report = check_equivalence(_store(first, second), _config(10), _settings())
    assert report.result.verdict == "NotEquivalent"
    assert report.result.counterexample.inputs == {"x": 5}
    [difference] = report.result.counterexample.differences
    assert difference.kind == "FileOperation"


def test_overlap_is_an_error(tmp_path: Path) -> None:
    ledger = Ledger(tmp_path / "ledger.jsonl")
    first = [{"path_condition": ["x > 2"]}, {"path_condition": ["x > 5"]}]
    with pytest.raises(PathOverlapError):
        check_equivalence(_store(first, IDENTITY), _config(10), _settings(), ledger=ledger)
    [error] = ledger.events("RUN_ERROR")
    assert error["payload"]["failure_atom"] == "PATH_OVERLAP"


def test_configuration_mismatches() -> None:
    with pytest.raises(BoundsError):
        check_equivalence(
            _store(IDENTITY, IDENTITY, bits=8), _config(300), _settings(int_bits=8)
        )
    with pytest.raises(InvalidSummaryError):
        check_equivalence(_store(IDENTITY, IDENTITY, bits=8), _config(10), _settings())
    store = _store(IDENTITY, IDENTITY)
    config = _config(10).model_copy(update={"function_name": "g"})
    with pytest.raises(InvalidSummaryError):
        check_equivalence(store, config, _settings())


def test_run_is_recorded_in_the_ledger(tmp_path: Path) -> None:
    ledger = Ledger(tmp_path / "ledger.jsonl")
    report = check_equivalence(
        _store(SPLIT_AT_FIVE, IDENTITY), _config(10), _settings(), ledger=ledger
    )
    types = [event["type"] for event in ledger.events()]
    assert types[0] == "RUN_START"
    assert types[1] == "SUMMARIES_LOADED"
    assert types[-1] == "VERDICT"
    assert "REGION_RESOLVED" in types
    verdict = ledger.events("VERDICT")[0]["payload"]
    assert verdict["verdict"] == "NotEquivalent"
    assert verdict["report_hash"] == report.stable_hash()
    ok, _ = Ledger.verify_chain(tmp_path / "ledger.jsonl")
    assert ok


def test_result_serializes_with_the_four_fields() -> None:
    report = check_equivalence(_store(PARTITION, PARTITION), _config(100), _settings())
    data = report.result.model_dump(mode="json")
    assert set(data) == {"verdict", "paths_compared", "counterexample", "time_taken"}
    assert data["time_taken"] >= 0


def test_spot_check_runs_alongside() -> None:
    report = check_equivalence(
        _store(PARTITION, PARTITION), _config(100), Settings(workers=1, spot_check_samples=8)
    )
    assert report.result.verdict == "Equivalent"
    spot = report.spot_check
    assert spot is not None
    assert spot.disagreement is None
    assert spot.samples >= 1
    assert spot.compared == spot.samples
