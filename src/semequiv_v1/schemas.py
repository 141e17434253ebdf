from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .utils import CANONICALIZATION, HASH_ALGORITHM, stable_hash

Verdict = Literal["Equivalent", "NotEquivalent", "Unknown"]
Origin = Literal["FirstProgram", "SecondProgram"]
UnknownReason = Literal["Timeout", "PathBudgetExceeded", "SolverLimitation"]
RunUnknownReason = Literal["Timeout", "PathBudgetExceeded", "SolverLimitation", "IncompleteCoverage"]
DifferenceKindName = Literal["ReturnValue", "Stdout", "Stderr", "FileOperation"]

ORIGINS: tuple[Origin, Origin] = ("FirstProgram", "SecondProgram")


class HashableModel(BaseModel):
    schema_version: str = "v1"
    canonicalization: str = CANONICALIZATION
    hash_algorithm: str = HASH_ALGORITHM
    hash_inputs: List[str] = Field(default_factory=list)

    def hash_payload(self) -> Dict[str, Any]:
        data = self.model_dump()
        keys = self.hash_inputs or [key for key in data.keys() if key != "hash_inputs"]
        return {key: data[key] for key in keys if key in data}

    def stable_hash(self) -> str:
        return stable_hash(self.hash_payload())


class InputBound(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    min: int
    max: int

    @model_validator(mode="after")
    def _check_range(self) -> "InputBound":
        if not self.name:
            raise ValueError("bound needs a name")
        if self.min > self.max:
            raise ValueError(f"bound {self.name}: min {self.min} > max {self.max}")
        return self


class AnalysisConfig(BaseModel):
    function_name: str
    bounds: List[InputBound]
    max_paths: int = Field(default=100, ge=0)
    timeout: float = Field(default=60.0, ge=0)
    first_summaries: Optional[str] = None
    second_summaries: Optional[str] = None

    @model_validator(mode="after")
    def _unique_names(self) -> "AnalysisConfig":
        names = [bound.name for bound in self.bounds]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate bound names: {', '.join(duplicates)}")
        return self

    def bound_names(self) -> List[str]:
        return [bound.name for bound in self.bounds]


class FileOpRecord(BaseModel):
    kind: str
    filename: str
    data: Optional[str] = None


class BehaviorSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    return_value: str
    stdout: List[str] = Field(default_factory=list)
    stderr: List[str] = Field(default_factory=list)
    globals: Dict[str, str] = Field(default_factory=dict)
    file_ops: List[FileOpRecord] = Field(default_factory=list)


class Difference(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Union[DifferenceKindName, Dict[Literal["GlobalVariable"], str]]
    first_value: str
    second_value: str

    @classmethod
    def global_variable(cls, name: str, first_value: str, second_value: str) -> "Difference":
        return cls(kind={"GlobalVariable": name}, first_value=first_value, second_value=second_value)

    @property
    def kind_name(self) -> str:
        if isinstance(self.kind, dict):
            return "GlobalVariable"
        return self.kind

    @property
    def variable(self) -> Optional[str]:
        if isinstance(self.kind, dict):
            return self.kind["GlobalVariable"]
        return None

    def label(self) -> str:
        if self.variable is not None:
            return f"GlobalVariable({self.variable})"
        return self.kind_name


class Counterexample(BaseModel):
    model_config = ConfigDict(frozen=True)

    inputs: Dict[str, int]
    first_behavior: BehaviorSnapshot
    second_behavior: BehaviorSnapshot
    differences: List[Difference]


class EquivalenceResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    verdict: Verdict
    paths_compared: int
    counterexample: Optional[Counterexample] = None
    time_taken: float


class SpotCheckRecord(BaseModel):
    samples: int = 0
    compared: int = 0
    uncovered: int = 0
    disagreement: Optional[Counterexample] = None
    skipped_reason: Optional[str] = None


class CoverageRecord(BaseModel):
    origin: Origin
    status: Literal["complete", "incomplete", "unproved"]
    reason: Optional[UnknownReason] = None
    uncovered_example: Optional[Dict[str, int]] = None


class RegionRecord(BaseModel):
    index: int
    first_id: str
    second_id: str
    status: Literal["unsat", "diverged", "unknown", "skipped"]
    reason: Optional[UnknownReason] = None


class EquivalenceReport(HashableModel):
    function_name: str
    bounds: List[InputBound]
    result: EquivalenceResult
    unknown_reason: Optional[RunUnknownReason] = None
    coverage: List[CoverageRecord] = Field(default_factory=list)
    regions: List[RegionRecord] = Field(default_factory=list)
    candidate_regions: int = 0
    pruned_pairs: int = 0
    unresolved_checks: List[str] = Field(default_factory=list)
    summary_hashes: Dict[str, str] = Field(default_factory=dict)
    spot_check: Optional[SpotCheckRecord] = None

    @model_validator(mode="after")
    def _set_hash_inputs(self) -> "EquivalenceReport":
        if not self.hash_inputs:
            self.hash_inputs = [
                "schema_version",
                "canonicalization",
                "hash_algorithm",
                "function_name",
                "bounds",
                "result",
                "unknown_reason",
                "coverage",
                "regions",
                "candidate_regions",
                "pruned_pairs",
                "unresolved_checks",
                "summary_hashes",
                "spot_check",
            ]
        return self

    def hash_payload(self) -> Dict[str, Any]:
        payload = super().hash_payload()
        if "result" in payload:
            payload["result"] = self.result.model_dump(exclude={"time_taken"})
        return payload

    @property
    def verdict(self) -> Verdict:
        return self.result.verdict


class ArtifactRecord(HashableModel):
    path: str
    content_hash: str
    bytes: int
    kind: str

    @model_validator(mode="after")
    def _set_hash_inputs(self) -> "ArtifactRecord":
        if not self.hash_inputs:
            self.hash_inputs = [
                "schema_version",
                "canonicalization",
                "hash_algorithm",
                "path",
                "content_hash",
                "bytes",
                "kind",
            ]
        return self


def export_schemas(output_dir: str) -> None:
    from pathlib import Path

    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)
    models = [
        EquivalenceReport,
        EquivalenceResult,
        Counterexample,
        BehaviorSnapshot,
        Difference,
        InputBound,
        AnalysisConfig,
        SpotCheckRecord,
        ArtifactRecord,
    ]
    for model in models:
        schema = model.model_json_schema()  # type: ignore[attr-defined]
        path = output / f"{model.__name__}.schema.json"
        path.write_bytes(orjson.dumps(schema, option=orjson.OPT_SORT_KEYS))
