from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import BoundsError, ConfigError
from .schemas import InputBound
from .utils import read_json, stable_hash


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SEMEQUIV_")

    max_paths: int = Field(default=100, ge=0)
    timeout: float = Field(default=60.0, ge=0)
    workers: int = Field(default=0, ge=0)
    int_bits: int = Field(default=64, ge=2, le=64)
    minimize_counterexamples: bool = True
    spot_check_samples: int = Field(default=16, ge=0)
    spot_check_seed: int = 1337

    def worker_count(self) -> int:
        if self.workers > 0:
            return self.workers
        return os.cpu_count() or 1

    def fingerprint(self) -> str:
        return stable_hash(self.model_dump())


def load_settings(config_path: Optional[Path] = None, **overrides: Any) -> Settings:
    data: Dict[str, Any] = {}
    if config_path is not None:
        try:
            raw = read_json(config_path)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"cannot read config file {config_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"config file {config_path} must hold a JSON object")
        data.update(raw)
    data.update({key: value for key, value in overrides.items() if value is not None})
    return Settings(**data)


def parse_bounds(text: str) -> List[InputBound]:
    bounds: List[InputBound] = []
    seen: set[str] = set()
    for item in text.split(","):
        item = item.strip()
        if not item:
            raise BoundsError(f"empty bound in {text!r}")
        parts = item.rsplit(":", 2)
        if len(parts) != 3:
            raise BoundsError(f"bound {item!r} is not name:min:max")
        name, low, high = (part.strip() for part in parts)
        try:
            bound = InputBound(name=name, min=int(low), max=int(high))
        except ValueError as exc:
            if isinstance(exc, ValidationError):
                detail = "; ".join(error["msg"] for error in exc.errors())
            else:
                detail = f"non-integer limit in {item!r}"
            raise BoundsError(f"bad bound {item!r}: {detail}") from exc
        if bound.name in seen:
            raise BoundsError(f"duplicate bound name {bound.name!r}")
        seen.add(bound.name)
        bounds.append(bound)
    if not bounds:
        raise BoundsError("no input bounds given")
    return bounds
