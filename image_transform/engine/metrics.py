"""Per-process counters and timings for native calls.

The binding records every primitive it dispatches (``binding.calls.<op>``),
every one that failed (``binding.failures.<op>``) and how long each took
(``binding.<op>``, the last ``TIMING_WINDOW`` samples per key). Tests read
them back to assert which primitives ran, or that a request was rejected
before any of them did.

Usage:
    from image_transform.engine.metrics import metrics
    with metrics.native_call("affine"):
        ...
    metrics.count("binding.calls.affine")
    metrics.snapshot(prefix="binding.failures.")
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from collections.abc import Iterator
from contextlib import contextmanager
from threading import RLock
from typing import Any

# samples kept per timing key; older ones are dropped
TIMING_WINDOW = 256


class _Metrics:
    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._timings: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=TIMING_WINDOW))
        self._lock = RLock()

    def inc(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += int(amount)

    def count(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def record(self, key: str, seconds: float) -> None:
        with self._lock:
            self._timings[key].append(seconds)

    @contextmanager
    def timed(self, key: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(key, time.perf_counter() - start)

    @contextmanager
    def native_call(self, operation: str) -> Iterator[None]:
        """Count, time and (on exception) mark as failed one native primitive."""
        self.inc(f"binding.calls.{operation}")
        try:
            with self.timed(f"binding.{operation}"):
                yield
        except Exception:
            self.inc(f"binding.failures.{operation}")
            raise

    def snapshot(self, prefix: str = "") -> dict[str, Any]:
        with self._lock:
            return {
                "counters": {k: v for k, v in self._counters.items() if k.startswith(prefix)},
                "timings": {k: list(v) for k, v in self._timings.items() if k.startswith(prefix)},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()


metrics = _Metrics()
