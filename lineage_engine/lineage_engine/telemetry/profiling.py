"""Timing for the lineage hot path.

``@profile_operation(name)`` times sync and async callables (decode,
resolve, run) with ``perf_counter_ns``.  The most recent calls per
operation are kept in the :class:`ProfileCollector` singleton so a batch
of ingestions can report where its time went::

    @profile_operation("script.decode")
    def decode_script(raw):
        ...

    ProfileCollector.get_instance().all_stats()
"""

from __future__ import annotations

import functools
import inspect
import logging
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class ProfileResult:
    operation: str
    duration_ms: float
    failed: bool = False


class ProfileCollector:
    """Bounded, thread-safe history of profiled calls per operation."""

    _instance: ProfileCollector | None = None
    _instance_lock = threading.Lock()

    def __init__(self, max_results: int = 100) -> None:
        self._lock = threading.Lock()
        self._history: defaultdict[str, deque[ProfileResult]] = defaultdict(lambda: deque(maxlen=max_results))

    @classmethod
    def get_instance(cls) -> ProfileCollector:
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton; the next ``get_instance`` starts empty."""
        with cls._instance_lock:
            cls._instance = None

    def record(self, result: ProfileResult) -> None:
        with self._lock:
            self._history[result.operation].append(result)

    def get_stats(self, operation: str) -> dict[str, Any] | None:
        """Summarise the retained calls of *operation*, or ``None`` if never seen.

        Keys: ``operation``, ``count``, ``failures``, ``mean_ms``, ``max_ms``.
        """
        with self._lock:
            results = list(self._history.get(operation, ()))
        if not results:
            return None
        durations = [r.duration_ms for r in results]
        return {
            "operation": operation,
            "count": len(results),
            "failures": sum(r.failed for r in results),
            "mean_ms": round(sum(durations) / len(durations), 3),
            "max_ms": round(max(durations), 3),
        }

    def all_stats(self) -> list[dict[str, Any]]:
        with self._lock:
            operations = sorted(self._history)
        return [stats for op in operations if (stats := self.get_stats(op)) is not None]


def _finish(name: str, start_ns: int, failed: bool) -> None:
    elapsed_ms = round((time.perf_counter_ns() - start_ns) / 1_000_000, 3)
    ProfileCollector.get_instance().record(ProfileResult(name, elapsed_ms, failed))
    logger.debug("%s took %.3f ms%s", name, elapsed_ms, " (failed)" if failed else "")


def profile_operation(name: str) -> Callable[[F], F]:
    """Record the wall time of every call to the decorated function under *name*.

    A call that raises is recorded with ``failed=True`` and the exception
    propagates unchanged.
    """

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def timed_async(*args: Any, **kwargs: Any) -> Any:
                start_ns, failed = time.perf_counter_ns(), True
                try:
                    result = await func(*args, **kwargs)
                    failed = False
                    return result
                finally:
                    _finish(name, start_ns, failed)

            return timed_async  # type: ignore[return-value]

        @functools.wraps(func)
        def timed(*args: Any, **kwargs: Any) -> Any:
            start_ns, failed = time.perf_counter_ns(), True
            try:
                result = func(*args, **kwargs)
                failed = False
                return result
            finally:
                _finish(name, start_ns, failed)

        return timed  # type: ignore[return-value]

    return decorator
