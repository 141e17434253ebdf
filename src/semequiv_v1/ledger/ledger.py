from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..utils import now_ts_ns, read_jsonl, stable_hash, to_jsonable, write_jsonl_line

EVENT_FIELDS = ("ts", "type", "payload", "prev_hash")


class Ledger:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._last_hash = ""
        self._lock = threading.Lock()
        if path.exists():
            entries = read_jsonl(path)
            if entries:
                self._last_hash = entries[-1].get("hash", "")

    @property
    def head(self) -> str:
        return self._last_hash

    def append(self, event_type: str, payload: Dict[str, Any]) -> str:
        payload_json = to_jsonable(payload)
        with self._lock:
            event = {
                "ts": now_ts_ns(),
                "type": event_type,
                "payload": payload_json,
                "prev_hash": self._last_hash,
            }
            event_hash = stable_hash(event)
            event["hash"] = event_hash
            write_jsonl_line(self.path, event)
            self._last_hash = event_hash
        return event_hash

    def events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        entries = read_jsonl(self.path)
        if event_type is None:
            return entries
        return [entry for entry in entries if entry.get("type") == event_type]

    @staticmethod
    def verify_chain(path: Path) -> Tuple[bool, str]:
        if not path.exists():
            return False, f"missing ledger {path}"
        entries = read_jsonl(path)
        prev_hash = ""
        for idx, entry in enumerate(entries):
            expected_hash = entry.get("hash", "")
            recomputed = stable_hash({key: entry.get(key) for key in EVENT_FIELDS})
            if entry.get("prev_hash") != prev_hash:
                return False, f"prev_hash mismatch at {idx}"
            if recomputed != expected_hash:
                return False, f"hash mismatch at {idx}"
            prev_hash = expected_hash
        return True, f"ok ({len(entries)} entries)"
