from __future__ import annotations

from pathlib import Path

import pytest

from semequiv_v1.errors import EquivalenceError, InvalidSummaryError
from semequiv_v1.summaries.store import PathSummary, PathSummaryStore
from semequiv_v1.symbolic.expr import lit_int, to_str, var
from semequiv_v1.symbolic.normalize import normalize
from semequiv_v1.symbolic.parser import parse_expr
from semequiv_v1.utils import write_json


def _document(origin: str, paths: list[dict], function: str = "f") -> dict:
    return {"function": function, "origin": origin, "paths": paths}


def test_add_normalizes_expressions() -> None:
    store = PathSummaryStore(function_name="f")
    summary = store.add(
        PathSummary(id="A1", origin="FirstProgram", path_condition=["x > 5"], return_expr="x + 1")
    )
    assert summary.path_condition == [normalize(parse_expr("5 < x"))]
    assert summary.return_expr == normalize(parse_expr("1 + x"))
    assert store.counts() == {"FirstProgram": 1, "SecondProgram": 0}


def test_logs_coerce_to_text() -> None:
    summary = PathSummary(id="A1", origin="FirstProgram", stdout_log="x", stderr_log=['"err"'])
    assert summary.stdout_log == [to_str(var("x"))]
    assert summary.stderr_log == [{"kind": "str", "value": "err"}]


def test_global_writes_keep_last_write() -> None:
    summary = PathSummary(
        id="A1",
        origin="FirstProgram",
        global_writes=[["g", "1"], ["h", "x"], ["g", "2"]],
    )
    assert summary.global_writes == {"g": lit_int(2), "h": var("x")}


def test_structured_expressions_are_accepted() -> None:
    summary = PathSummary(
        id="A1",
        origin="FirstProgram",
        path_condition=[{"kind": "binop", "op": "<", "args": [var("x"), lit_int(3)]}],
        return_expr=7,
    )
    assert summary.return_expr == lit_int(7)
    assert summary.free_vars() == {"x"}


def test_duplicate_path_id_rejected() -> None:
    store = PathSummaryStore()
    store.add(PathSummary(id="A1", origin="FirstProgram"))
    store.add(PathSummary(id="A1", origin="SecondProgram"))
    with pytest.raises(InvalidSummaryError):
        store.add(PathSummary(id="A1", origin="FirstProgram"))


def test_literals_must_fit_the_width() -> None:
    store = PathSummaryStore(bits=8)
    with pytest.raises(InvalidSummaryError, match="200"):
        store.add(PathSummary(id="A1", origin="FirstProgram", return_expr="200"))
    with pytest.raises(InvalidSummaryError):
        store.add(PathSummary(id="A2", origin="FirstProgram", path_condition=["x < -129"]))
    summary = store.add(PathSummary(id="A3", origin="FirstProgram", return_expr="-128"))
    assert summary.return_expr == lit_int(-128)
    store.add(PathSummary(id="A4", origin="FirstProgram", return_expr="100 + 100"))


@pytest.mark.parametrize(
    "path",
    [
        {"id": "A1", "path_condition": ['"text"']},
        {"id": "A1", "return_expr": '"a" + 1'},
        {"id": "A1", "return_expr": 'ite(x > 0, "a", 1)'},
        {"id": "A1", "global_writes": [["g"]]},
        {"id": "A1", "file_ops": [{"kind": "delete", "filename": "out.txt"}]},
        {"path_condition": []},
    ],
)
def test_invalid_paths_rejected(path: dict) -> None:
    store = PathSummaryStore()
    with pytest.raises(InvalidSummaryError):
        store.load_document(_document("FirstProgram", [path]))


def test_unparseable_expression_rejected() -> None:
    store = PathSummaryStore()
    with pytest.raises(EquivalenceError):
        store.load_document(_document("FirstProgram", [{"id": "A1", "return_expr": "x +"}]))


def test_load_json_checks_origin_and_function(tmp_path: Path) -> None:
    first = tmp_path / "first.json"
    write_json(first, _document("FirstProgram", [{"id": "A1", "path_condition": ["x < 3"]}]))
    store = PathSummaryStore(function_name="f")
    loaded = store.load_json(first, origin="FirstProgram")
    assert [path.id for path in loaded] == ["A1"]

    with pytest.raises(InvalidSummaryError):
        PathSummaryStore(function_name="g").load_json(first)
    with pytest.raises(InvalidSummaryError):
        PathSummaryStore().load_json(first, origin="SecondProgram")
    with pytest.raises(InvalidSummaryError):
        PathSummaryStore().load_json(tmp_path / "missing.json")


def test_load_document_adopts_function_name() -> None:
    store = PathSummaryStore()
    store.load_document(_document("SecondProgram", [{"id": "B1"}], function="area"))
    assert store.function_name == "area"
    assert store.second[0].origin == "SecondProgram"


def test_file_operations_and_hash() -> None:
    store = PathSummaryStore()
    store.load_document(
        _document(
            "FirstProgram",
            [
                {
                    "id": "A1",
                    "file_ops": [
                        {"kind": "open", "filename": "out.txt"},
                        {"kind": "write", "filename": "out.txt", "data": "x * 1"},
                        {"kind": "close", "filename": "out.txt"},
                    ],
                }
            ],
        )
    )
    ops = store.first[0].file_ops
    assert [op.kind for op in ops] == ["open", "write", "close"]
    assert ops[1].data == to_str(var("x"))
    assert store.free_vars() == {"x"}
    assert store.summary_hash("FirstProgram") == store.summary_hash("FirstProgram")
    assert store.summary_hash("FirstProgram") != store.summary_hash("SecondProgram")
