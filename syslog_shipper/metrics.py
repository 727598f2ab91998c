"""Thread-safe counters for the shipping pipeline."""

import threading
import time
from collections import defaultdict
from typing import Callable

COUNTERS = (
    "datagrams_received",
    "receive_errors",
    "records_queued",
    "records_dropped",
    "batches_flushed",
    "events_flushed",
    "flush_errors",
    "delivery_attempts",
    "deliveries_succeeded",
    "deliveries_failed",
    "files_dead_lettered",
    "files_recovered",
)


class PipelineMetrics:
    def __init__(self):
        self._lock = threading.Lock()
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, Callable[[], int]] = {}
        self._start_time = time.monotonic()

    def increment(self, name: str, amount: int = 1):
        """Bump the counter *name* by *amount*."""
        with self._lock:
            self._counters[name] += amount

    def register_gauge(self, name: str, read):
        """Report the value of *read()* under *name* in every snapshot."""
        with self._lock:
            self._gauges[name] = read

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> dict:
        """Return a point-in-time snapshot of all counters and gauges."""
        with self._lock:
            counters = {name: self._counters[name] for name in COUNTERS}
            counters.update(self._counters)
            gauges = dict(self._gauges)
            elapsed = time.monotonic() - self._start_time

        snap = dict(counters)
        for name, read in gauges.items():
            snap[name] = read()
        snap["uptime_seconds"] = round(elapsed, 2)
        return snap
