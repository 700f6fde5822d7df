"""Per-process request and pipeline counters."""

import threading
import time
from collections import Counter
from typing import Any, Callable


class MetricsCollector:
    """
    Counters for one process. Created in the application lifespan and handed
    to the components that report into it, so tests can use their own
    instance instead of reading module state.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started = clock()
        self._counters: Counter[str] = Counter()
        self._lock = threading.Lock()  # also incremented from executor threads

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def record_request(self) -> None:
        self.increment("requests")

    def record_error(self) -> None:
        self.increment("errors")

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
        return {
            "requests": counters.pop("requests", 0),
            "errors": counters.pop("errors", 0),
            "uptime_seconds": int(self._clock() - self._started),
            "counters": counters,
        }
