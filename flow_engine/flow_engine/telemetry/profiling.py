"""Timing of hot-path analysis operations.

``@profile_operation(name)`` wraps a function and ``profiled(name)`` wraps
a block; both measure wall time with ``perf_counter_ns``, log it at DEBUG
level and record it into the thread-safe :class:`ProfileCollector`
singleton.

Usage::

    from flow_engine.telemetry.profiling import profile_operation

    @profile_operation("flow.analyze")
    def analyze_statement(sql, dialect):
        ...

The collector keeps the last ``max_results`` samples per operation and
reports p50/p95/p99/mean through ``get_stats()``.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class ProfileResult:
    """One timed run of an operation."""

    operation: str
    duration_ms: float
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------


class ProfileCollector:
    """Thread-safe store of recent samples per operation name.

    Parameters
    ----------
    max_results:
        Number of samples retained per operation.
    """

    _instance: ProfileCollector | None = None
    _lock_cls = threading.Lock()

    def __init__(self, max_results: int = 100) -> None:
        self._max_results = max_results
        self._data: dict[str, deque[ProfileResult]] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> ProfileCollector:
        if cls._instance is None:
            with cls._lock_cls:
                if cls._instance is None:
                    cls._instance = ProfileCollector()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (for testing)."""
        with cls._lock_cls:
            cls._instance = None

    def record(self, result: ProfileResult) -> None:
        with self._lock:
            samples = self._data.setdefault(result.operation, deque(maxlen=self._max_results))
            samples.append(result)

    def operations(self) -> list[str]:
        with self._lock:
            return sorted(self._data)

    def get_stats(self, operation: str) -> dict[str, Any] | None:
        """Aggregate the samples of *operation*.

        Returns
        -------
        dict or None
            ``{"operation", "count", "mean_ms", "p50_ms", "p95_ms",
            "p99_ms", "min_ms", "max_ms"}``, or ``None`` when the operation
            has no samples.
        """
        with self._lock:
            samples = self._data.get(operation)
            if not samples:
                return None
            durations = sorted(r.duration_ms for r in samples)

        count = len(durations)
        return {
            "operation": operation,
            "count": count,
            "mean_ms": round(sum(durations) / count, 3),
            "p50_ms": round(_percentile(durations, 50), 3),
            "p95_ms": round(_percentile(durations, 95), 3),
            "p99_ms": round(_percentile(durations, 99), 3),
            "min_ms": round(durations[0], 3),
            "max_ms": round(durations[-1], 3),
        }

    def get_all_stats(self) -> list[dict[str, Any]]:
        return [s for op in self.operations() if (s := self.get_stats(op)) is not None]

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


def _percentile(sorted_data: list[float], p: float) -> float:
    """Linear-interpolated p-th percentile of already sorted data."""
    if not sorted_data:
        return 0.0
    n = len(sorted_data)
    k = (p / 100.0) * (n - 1)
    lower = int(k)
    upper = min(lower + 1, n - 1)
    return sorted_data[lower] + (k - lower) * (sorted_data[upper] - sorted_data[lower])


# ---------------------------------------------------------------------------
# Instrumentation
# ---------------------------------------------------------------------------


def _finish(name: str, start_ns: int, metadata: dict[str, Any]) -> None:
    duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
    ProfileCollector.get_instance().record(
        ProfileResult(operation=name, duration_ms=round(duration_ms, 3), metadata=metadata)
    )
    logger.debug("PROFILE %s: %.3f ms", name, duration_ms)


@contextmanager
def profiled(name: str, **metadata: Any) -> Iterator[dict[str, Any]]:
    """Time the enclosed block under *name*.

    The yielded dict is stored as the sample's metadata, so the block can
    attach counts it only knows at the end.
    """
    extra = dict(metadata)
    start_ns = time.perf_counter_ns()
    try:
        yield extra
    finally:
        _finish(name, start_ns, extra)


def profile_operation(name: str) -> Callable[[F], F]:
    """Decorator recording each call of the wrapped function under *name*."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_ns = time.perf_counter_ns()
            try:
                return func(*args, **kwargs)
            finally:
                _finish(name, start_ns, {})

        return wrapper  # type: ignore[return-value]

    return decorator
