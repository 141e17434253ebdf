from __future__ import annotations

import pytest

from semequiv_v1.equivalence.counterexample import build_counterexample
from semequiv_v1.equivalence.divergence import channel_checks, divergence_formula
from semequiv_v1.errors import ModelIncompleteError
from semequiv_v1.schemas import InputBound
from semequiv_v1.summaries.store import PathSummary
from semequiv_v1.symbolic.expr import lit_bool

BOUNDS = [InputBound(name="x", min=0, max=10)]


def _path(origin: str, **fields) -> PathSummary:
    path_id = "A1" if origin == "FirstProgram" else "B1"
    return PathSummary(id=path_id, origin=origin, **fields).normalized(64)


def _pair(first: dict, second: dict) -> tuple[PathSummary, PathSummary]:
    return _path("FirstProgram", **first), _path("SecondProgram", **second)


def test_identical_paths_cannot_diverge() -> None:
    first, second = _pair(
        {"path_condition": ["x > 1"], "return_expr": "x + 1", "stdout_log": ['"hi"']},
        {"path_condition": ["x >= 0"], "return_expr": "1 + x", "stdout_log": ['"hi"']},
    )
    assert channel_checks(first, second) == []
    assert divergence_formula(first, second) == lit_bool(False)


def test_channels_are_named() -> None:
    first, second = _pair(
        {"return_expr": "x", "stdout_log": ["x"], "global_writes": {"g": "1"}},
        {"return_expr": "x * 2", "stdout_log": ["x", "x"], "global_writes": {"g": "2", "h": "0"}},
    )
    channels = [check.channel for check in channel_checks(first, second)]
    assert channels == ["return", "stdout.length", "global.g", "global.h"]


def test_constant_mismatch_reduces_to_the_region() -> None:
    first, second = _pair(
        {"path_condition": ["x > 5"], "return_expr": "x"},
        {"path_condition": ["x < 8"]},
    )
    formula = divergence_formula(first, second)
    assert formula["kind"] == "binop"
    assert formula["op"] == "and"
    assert len(formula["args"]) == 2


def test_file_operations_compare_kind_and_name() -> None:
    first, second = _pair(
        {"file_ops": [{"kind": "open", "filename": "a.txt"}]},
        {"file_ops": [{"kind": "open", "filename": "b.txt"}]},
    )
    assert [check.channel for check in channel_checks(first, second)] == ["file_ops[0]"]


def test_return_value_counterexample() -> None:
    first, second = _pair({"return_expr": "x + 1"}, {"return_expr": "x"})
    counterexample = build_counterexample(first, second, {"x": 6}, BOUNDS)
    assert counterexample is not None
    assert counterexample.inputs == {"x": 6}
    assert counterexample.first_behavior.return_value == "7"
    assert counterexample.second_behavior.return_value == "6"
    [difference] = counterexample.differences
    assert difference.kind == "ReturnValue"
    assert (difference.first_value, difference.second_value) == ("7", "6")


def test_fault_counterexample() -> None:
    first, second = _pair({"return_expr": "10 / x"}, {"return_expr": "0"})
    counterexample = build_counterexample(first, second, {"x": 0}, BOUNDS)
    assert counterexample.first_behavior.return_value == "<division-by-zero>"
    assert counterexample.differences[0].second_value == "0"


def test_stdout_and_global_differences() -> None:
    first, second = _pair(
        {"stdout_log": ['"n=" ++ str(x)'], "global_writes": {"counter": "x"}},
        {"stdout_log": ['"n=" ++ str(10 - x)']},
    )
    counterexample = build_counterexample(first, second, {"x": 0}, BOUNDS)
    kinds = [difference.label() for difference in counterexample.differences]
    assert kinds == ["Stdout", "GlobalVariable(counter)"]
    stdout, counter = counterexample.differences
    assert stdout.first_value == '["n=0"]'
    assert stdout.second_value == '["n=10"]'
    assert counter.kind == {"GlobalVariable": "counter"}
    assert counter.second_value == "<unwritten>"
    assert counterexample.first_behavior.globals == {"counter": "0"}


def test_environment_symbols_follow_declared_inputs() -> None:
    first, second = _pair({"return_expr": "x + g"}, {"return_expr": "x"})
    counterexample = build_counterexample(first, second, {"g": 1, "x": 3}, BOUNDS)
    assert list(counterexample.inputs) == ["x", "g"]


def test_identical_replay_returns_none() -> None:
    first, second = _pair({"return_expr": "x * 2"}, {"return_expr": "x + x"})
    assert build_counterexample(first, second, {"x": 4}, BOUNDS) is None


def test_missing_declared_input() -> None:
    first, second = _pair({"return_expr": "x"}, {"return_expr": "x + 1"})
    with pytest.raises(ModelIncompleteError):
        build_counterexample(first, second, {}, BOUNDS)


def test_file_write_data_difference() -> None:
    first, second = _pair(
        {"file_ops": [{"kind": "write", "filename": "out.txt", "data": "x"}]},
        {"file_ops": [{"kind": "write", "filename": "out.txt", "data": "x + 1"}]},
    )
    assert [check.channel for check in channel_checks(first, second)] == ["file_ops[0].data"]
    counterexample = build_counterexample(first, second, {"x": 3}, BOUNDS)
    [difference] = counterexample.differences
    assert difference.kind == "FileOperation"
    assert counterexample.first_behavior.file_ops[0].data == "3"
    assert counterexample.second_behavior.file_ops[0].data == "4"
    assert difference.first_value != difference.second_value


def test_stderr_difference() -> None:
    first, second = _pair(
        {"return_expr": "x", "stderr_log": ['"err " ++ str(x)']},
        {"return_expr": "x", "stderr_log": ['"err"']},
    )
    counterexample = build_counterexample(first, second, {"x": 0}, BOUNDS)
    [difference] = counterexample.differences
    assert difference.kind == "Stderr"
    assert (difference.first_value, difference.second_value) == ('["err 0"]', '["err"]')
    assert counterexample.first_behavior.stderr == ["err 0"]
