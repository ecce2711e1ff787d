"""Process-level counters reported by the stats endpoint."""

from __future__ import annotations

import threading
import time
from collections import Counter


class ProcessStats:
    def __init__(self) -> None:
        self._started = time.monotonic()
        self._requests: Counter[str] = Counter()
        self._lock = threading.Lock()

    def record_request(self, route: str) -> None:
        with self._lock:
            self._requests[route] += 1

    def uptime_seconds(self) -> float:
        return round(time.monotonic() - self._started, 3)

    def request_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._requests)


__all__ = ["ProcessStats"]
