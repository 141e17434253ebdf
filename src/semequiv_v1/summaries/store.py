from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import InvalidSummaryError
from ..schemas import ORIGINS, Origin
from ..symbolic.expr import (
    STR,
    Expr,
    check_types,
    conj,
    free_vars_all,
    out_of_range_literals,
    sort_of,
    to_str,
    validate_expr,
)
from ..symbolic.normalize import Normalizer
from ..symbolic.parser import parse_expr
from ..utils import read_json, stable_hash

FileOpKind = Literal["open", "write", "close"]


def _coerce_expr(value: Any) -> Expr:
    if isinstance(value, str):
        return check_types(parse_expr(value))
    if isinstance(value, bool):
        return {"kind": "bool", "value": value}
    if isinstance(value, int):
        return {"kind": "int", "value": value}
    return check_types(validate_expr(value))


def _coerce_text(value: Any) -> Expr:
    expr = _coerce_expr(value)
    if sort_of(expr) != STR:
        return to_str(expr)
    return expr


class FileOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FileOpKind
    filename: str
    data: Optional[Dict[str, Any]] = None

    @field_validator("data", mode="before")
    @classmethod
    def _parse_data(cls, value: Any) -> Any:
        if value is None:
            return None
        return _coerce_text(value)


class PathSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    origin: Origin
    path_condition: List[Dict[str, Any]] = Field(default_factory=list)
    return_expr: Optional[Dict[str, Any]] = None
    stdout_log: List[Dict[str, Any]] = Field(default_factory=list)
    stderr_log: List[Dict[str, Any]] = Field(default_factory=list)
    global_writes: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    file_ops: List[FileOperation] = Field(default_factory=list)

    @field_validator("path_condition", mode="before")
    @classmethod
    def _parse_condition(cls, value: Any) -> Any:
        if isinstance(value, (str, dict)):
            value = [value]
        exprs = [_coerce_expr(item) for item in value]
        for expr in exprs:
            if sort_of(expr) == STR:
                raise ValueError("path condition clauses must be boolean")
        return exprs

    @field_validator("return_expr", mode="before")
    @classmethod
    def _parse_return(cls, value: Any) -> Any:
        if value is None:
            return None
        return _coerce_expr(value)

    @field_validator("stdout_log", "stderr_log", mode="before")
    @classmethod
    def _parse_log(cls, value: Any) -> Any:
        if isinstance(value, (str, dict)):
            value = [value]
        return [_coerce_text(item) for item in value]

    @field_validator("global_writes", mode="before")
    @classmethod
    def _parse_globals(cls, value: Any) -> Any:
        # a list of [name, expr] pairs keeps only the last write per name
        if isinstance(value, dict):
            items = list(value.items())
        else:
            items = []
            for pair in value:
                if len(pair) != 2:
                    raise ValueError(f"global write {pair!r} is not a [name, expr] pair")
                items.append((pair[0], pair[1]))
        writes: Dict[str, Expr] = {}
        for name, expr in items:
            writes[str(name)] = _coerce_expr(expr)
        return writes

    def expressions(self) -> List[Expr]:
        exprs = list(self.path_condition) + list(self.stdout_log) + list(self.stderr_log)
        if self.return_expr is not None:
            exprs.append(self.return_expr)
        exprs.extend(self.global_writes.values())
        exprs.extend(op.data for op in self.file_ops if op.data is not None)
        return exprs

    def free_vars(self) -> set[str]:
        return free_vars_all(self.expressions())

    def normalized(self, bits: int) -> "PathSummary":
        normalizer = Normalizer(bits)
        return self.model_copy(
            update={
                "path_condition": [normalizer.run(expr) for expr in self.path_condition],
                "return_expr": None
                if self.return_expr is None
                else normalizer.run(self.return_expr),
                "stdout_log": [normalizer.run(expr) for expr in self.stdout_log],
                "stderr_log": [normalizer.run(expr) for expr in self.stderr_log],
                "global_writes": {
                    name: normalizer.run(expr) for name, expr in self.global_writes.items()
                },
                "file_ops": [
                    op
                    if op.data is None
                    else op.model_copy(update={"data": normalizer.run(op.data)})
                    for op in self.file_ops
                ],
            }
        )


class PathSummaryStore:
    def __init__(self, function_name: Optional[str] = None, bits: int = 64) -> None:
        self.function_name = function_name
        self.bits = bits
        self._paths: Dict[str, List[PathSummary]] = {origin: [] for origin in ORIGINS}

    def add(self, summary: PathSummary) -> PathSummary:
        existing = {path.id for path in self._paths[summary.origin]}
        if summary.id in existing:
            raise InvalidSummaryError(f"duplicate path id {summary.id!r} in {summary.origin}")
        normalized = summary.normalized(self.bits)
        literals = out_of_range_literals(conj(normalized.expressions()), self.bits)
        if literals:
            listed = ", ".join(str(value) for value in literals)
            raise InvalidSummaryError(
                f"path {summary.id}: integer literal(s) {listed} outside the {self.bits}-bit range"
            )
        self._paths[summary.origin].append(normalized)
        return normalized

    def extend(self, summaries: Iterable[PathSummary]) -> None:
        for summary in summaries:
            self.add(summary)

    def load_document(
        self, document: Any, origin: Optional[Origin] = None, source: str = "<memory>"
    ) -> List[PathSummary]:
        if not isinstance(document, dict) or not isinstance(document.get("paths"), list):
            raise InvalidSummaryError(f"{source}: expected an object with a 'paths' list")
        declared = document.get("origin")
        if declared is not None and origin is not None and declared != origin:
            raise InvalidSummaryError(f"{source}: origin {declared} does not match {origin}")
        origin = origin or declared
        if origin not in ORIGINS:
            raise InvalidSummaryError(f"{source}: unknown origin {origin!r}")
        function = document.get("function")
        if function is not None:
            if self.function_name is None:
                self.function_name = function
            elif function != self.function_name:
                raise InvalidSummaryError(
                    f"{source}: summaries are for {function!r}, not {self.function_name!r}"
                )
        loaded: List[PathSummary] = []
        for index, raw in enumerate(document["paths"]):
            if not isinstance(raw, dict):
                raise InvalidSummaryError(f"{source}: path #{index} is not an object")
            try:
                summary = PathSummary.model_validate({**raw, "origin": origin})
            except ValidationError as exc:
                raise InvalidSummaryError(f"{source}: path #{index}: {exc}") from exc
            loaded.append(self.add(summary))
        return loaded

    def load_json(self, path: Path, origin: Optional[Origin] = None) -> List[PathSummary]:
        try:
            document = read_json(path)
        except (OSError, ValueError) as exc:
            raise InvalidSummaryError(f"cannot read summaries from {path}: {exc}") from exc
        return self.load_document(document, origin=origin, source=str(path))

    def paths(self, origin: Origin) -> List[PathSummary]:
        return list(self._paths[origin])

    @property
    def first(self) -> List[PathSummary]:
        return self.paths("FirstProgram")

    @property
    def second(self) -> List[PathSummary]:
        return self.paths("SecondProgram")

    def free_vars(self) -> set[str]:
        names: set[str] = set()
        for origin in ORIGINS:
            for summary in self._paths[origin]:
                names |= summary.free_vars()
        return names

    def summary_hash(self, origin: Origin) -> str:
        return stable_hash([path.model_dump(mode="json") for path in self._paths[origin]])

    def counts(self) -> Dict[str, int]:
        return {origin: len(self._paths[origin]) for origin in ORIGINS}
