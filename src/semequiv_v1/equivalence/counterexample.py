from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import ModelIncompleteError
from ..schemas import BehaviorSnapshot, Counterexample, Difference, FileOpRecord, InputBound
from ..summaries.store import PathSummary
from ..symbolic.evaluate import evaluate, observations_differ, render_value, to_text
from ..symbolic.expr import Expr
from ..utils import canonical_dumps

NO_RETURN = "<none>"
UNWRITTEN = "<unwritten>"

_MISSING = object()


class _Observed:
    def __init__(self, summary: PathSummary, model: Mapping[str, int], bits: int) -> None:
        self.returned = self._value(summary.return_expr, model, bits)
        self.stdout = [evaluate(expr, model, bits) for expr in summary.stdout_log]
        self.stderr = [evaluate(expr, model, bits) for expr in summary.stderr_log]
        self.globals = {
            name: evaluate(expr, model, bits) for name, expr in summary.global_writes.items()
        }
        self.file_ops: List[Tuple[str, str, Any]] = [
            (op.kind, op.filename, self._value(op.data, model, bits)) for op in summary.file_ops
        ]

    @staticmethod
    def _value(expr: Optional[Expr], model: Mapping[str, int], bits: int) -> Any:
        if expr is None:
            return _MISSING
        return evaluate(expr, model, bits)


def _differ(left: Any, right: Any) -> bool:
    if left is _MISSING or right is _MISSING:
        return left is not right
    return observations_differ(left, right)


def _sequences_differ(left: Sequence[Any], right: Sequence[Any]) -> bool:
    if len(left) != len(right):
        return True
    return any(_differ(first, second) for first, second in zip(left, right))


def _file_ops_differ(left: Sequence[Tuple[str, str, Any]], right: Sequence[Tuple[str, str, Any]]) -> bool:
    if len(left) != len(right):
        return True
    for (kind_a, name_a, data_a), (kind_b, name_b, data_b) in zip(left, right):
        if kind_a != kind_b or name_a != name_b or _differ(data_a, data_b):
            return True
    return False


def _render(value: Any, missing: str) -> str:
    if value is _MISSING:
        return missing
    return render_value(value)


def _text_lines(values: Sequence[Any]) -> List[str]:
    return [to_text(value) for value in values]


def _file_records(ops: Sequence[Tuple[str, str, Any]]) -> List[FileOpRecord]:
    return [
        FileOpRecord(kind=kind, filename=filename, data=None if data is _MISSING else to_text(data))
        for kind, filename, data in ops
    ]


def _snapshot(observed: _Observed, global_names: Sequence[str]) -> BehaviorSnapshot:
    return BehaviorSnapshot(
        return_value=_render(observed.returned, NO_RETURN),
        stdout=_text_lines(observed.stdout),
        stderr=_text_lines(observed.stderr),
        globals={
            name: _render(observed.globals.get(name, _MISSING), UNWRITTEN) for name in global_names
        },
        file_ops=_file_records(observed.file_ops),
    )


def _joined(items: Sequence[Any]) -> str:
    return canonical_dumps(list(items)).decode("utf-8")


def build_counterexample(
    first: PathSummary,
    second: PathSummary,
    model: Mapping[str, int],
    bounds: Sequence[InputBound],
    bits: int = 64,
) -> Optional[Counterexample]:
    missing = [bound.name for bound in bounds if bound.name not in model]
    if missing:
        raise ModelIncompleteError(missing)
    inputs: Dict[str, int] = {bound.name: int(model[bound.name]) for bound in bounds}
    for name in sorted(set(model) - set(inputs)):
        inputs[name] = int(model[name])

    one = _Observed(first, inputs, bits)
    two = _Observed(second, inputs, bits)
    global_names = sorted(set(one.globals) | set(two.globals))
    first_behavior = _snapshot(one, global_names)
    second_behavior = _snapshot(two, global_names)

    differences: List[Difference] = []
    if _differ(one.returned, two.returned):
        differences.append(
            Difference(
                kind="ReturnValue",
                first_value=first_behavior.return_value,
                second_value=second_behavior.return_value,
            )
        )
    if _sequences_differ(one.stdout, two.stdout):
        differences.append(
            Difference(
                kind="Stdout",
                first_value=_joined(first_behavior.stdout),
                second_value=_joined(second_behavior.stdout),
            )
        )
    if _sequences_differ(one.stderr, two.stderr):
        differences.append(
            Difference(
                kind="Stderr",
                first_value=_joined(first_behavior.stderr),
                second_value=_joined(second_behavior.stderr),
            )
        )
    for name in global_names:
        if _differ(one.globals.get(name, _MISSING), two.globals.get(name, _MISSING)):
            differences.append(
                Difference.global_variable(
                    name, first_behavior.globals[name], second_behavior.globals[name]
                )
            )
    if _file_ops_differ(one.file_ops, two.file_ops):
        differences.append(
            Difference(
                kind="FileOperation",
                first_value=_joined(
                    [record.model_dump() for record in first_behavior.file_ops]
                ),
                second_value=_joined(
                    [record.model_dump() for record in second_behavior.file_ops]
                ),
            )
        )
    if not differences:
        return None
    return Counterexample(
        inputs=inputs,
        first_behavior=first_behavior,
        second_behavior=second_behavior,
        differences=differences,
    )
