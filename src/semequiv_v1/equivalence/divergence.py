from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..summaries.store import PathSummary
from ..symbolic.expr import Expr, conj, differs, disj, lit_bool


@dataclass(frozen=True)
class ChannelCheck:
    channel: str
    formula: Expr

    @property
    def constant(self) -> bool:
        return self.formula["kind"] == "bool"


MISMATCH = lit_bool(True)


def _pair(channel: str, left: Optional[Expr], right: Optional[Expr]) -> List[ChannelCheck]:
    if left is None and right is None:
        return []
    if left is None or right is None:
        return [ChannelCheck(channel, MISMATCH)]
    # summaries are normalized on entry, so equal dicts are the same observation
    if left == right:
        return []
    return [ChannelCheck(channel, differs(left, right))]


def _sequence(channel: str, left: Sequence[Expr], right: Sequence[Expr]) -> List[ChannelCheck]:
    if len(left) != len(right):
        return [ChannelCheck(f"{channel}.length", MISMATCH)]
    checks: List[ChannelCheck] = []
    for position, (first, second) in enumerate(zip(left, right)):
        checks.extend(_pair(f"{channel}[{position}]", first, second))
    return checks


def channel_checks(first: PathSummary, second: PathSummary) -> List[ChannelCheck]:
    checks: List[ChannelCheck] = []
    checks.extend(_pair("return", first.return_expr, second.return_expr))
    checks.extend(_sequence("stdout", first.stdout_log, second.stdout_log))
    checks.extend(_sequence("stderr", first.stderr_log, second.stderr_log))
    for name in sorted(set(first.global_writes) | set(second.global_writes)):
        checks.extend(
            _pair(f"global.{name}", first.global_writes.get(name), second.global_writes.get(name))
        )
    if len(first.file_ops) != len(second.file_ops):
        checks.append(ChannelCheck("file_ops.length", MISMATCH))
    else:
        for position, (left, right) in enumerate(zip(first.file_ops, second.file_ops)):
            channel = f"file_ops[{position}]"
            if left.kind != right.kind or left.filename != right.filename:
                checks.append(ChannelCheck(channel, MISMATCH))
                continue
            checks.extend(_pair(f"{channel}.data", left.data, right.data))
    return checks


def divergence_formula(first: PathSummary, second: PathSummary) -> Expr:
    checks = channel_checks(first, second)
    if not checks:
        return lit_bool(False)
    region = list(first.path_condition) + list(second.path_condition)
    if any(check.constant for check in checks):
        return conj(region)
    return conj(region + [disj([check.formula for check in checks])])
