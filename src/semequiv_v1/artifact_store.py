from __future__ import annotations

from pathlib import Path
from typing import Any

from .ledger.ledger import Ledger
from .schemas import ArtifactRecord
from .utils import canonical_dumps, ensure_dir, hash_bytes


class ArtifactStore:
    def __init__(self, root: Path, ledger: Ledger) -> None:
        self.root = root
        self.ledger = ledger
        ensure_dir(root)

    def _write(self, rel_path: str, data: bytes, kind: str) -> ArtifactRecord:
        path = self.root / rel_path
        ensure_dir(path.parent)
        path.write_bytes(data)
        record = ArtifactRecord(
            path=str(path), content_hash=hash_bytes(data), bytes=len(data), kind=kind
        )
        self.ledger.append(
            "ARTIFACT_WRITTEN",
            {
                "path": record.path,
                "content_hash": record.content_hash,
                "bytes": record.bytes,
                "kind": record.kind,
            },
        )
        return record

    def write_json(self, rel_path: str, data: Any, kind: str) -> ArtifactRecord:
        return self._write(rel_path, canonical_dumps(data) + b"\n", kind)

    def write_model(self, rel_path: str, model: Any, kind: str) -> ArtifactRecord:
        return self.write_json(rel_path, model.model_dump(mode="json"), kind)
