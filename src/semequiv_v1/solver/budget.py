from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

from ..schemas import UnknownReason


class CancellationToken:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reason: Optional[UnknownReason] = None
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self, reason: UnknownReason = "Timeout") -> None:
        with self._lock:
            if self._reason is not None:
                return
            self._reason = reason
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def is_cancelled(self) -> bool:
        with self._lock:
            return self._reason is not None

    @property
    def reason(self) -> Optional[UnknownReason]:
        with self._lock:
            return self._reason

    def register(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._reason is None:
                self._callbacks.append(callback)
                return
        callback()

    def unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


class RunBudget:
    def __init__(
        self,
        max_paths: int,
        timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_paths = max_paths
        self.timeout = timeout
        self._clock = clock
        self._started = clock()
        self._deadline = self._started + timeout
        self._paths_used = 0
        self._lock = threading.Lock()

    def acquire_path(self) -> bool:
        with self._lock:
            if self._paths_used >= self.max_paths:
                return False
            self._paths_used += 1
            return True

    @property
    def paths_used(self) -> int:
        with self._lock:
            return self._paths_used

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> float:
        return max(0.0, self._deadline - self._clock())

    def remaining_ms(self) -> int:
        return int(self.remaining() * 1000)

    def expired(self) -> bool:
        return self.remaining_ms() <= 0
