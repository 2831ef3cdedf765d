"""
Timing helpers for the synchronous hot paths (bootstrap application, batch reads).

Durations above CUDATEL_PERF_THRESHOLD_MS are logged as warnings; tracking can
be switched off with CUDATEL_PERF_TRACKING=0.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from cudatel_live.logging_abstraction import LiveLogger, get_logger

__all__ = [
    "measure_time",
    "timed",
]

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)


def measure_time(start_time: float) -> float:
    """Milliseconds elapsed since ``start_time`` (from time.perf_counter())."""
    return (time.perf_counter() - start_time) * 1000


def timed(operation_name: str | None = None) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator timing a synchronous callable.

    Example:
        @timed("bootstrap_apply")
        def fill(self, channel, records): ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from cudatel_live.const import CUDATEL_PERF_THRESHOLD_MS, CUDATEL_PERF_TRACKING

            if not CUDATEL_PERF_TRACKING:
                return func(*args, **kwargs)

            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _log_timing(logger, operation_name or func.__name__, measure_time(start_time), CUDATEL_PERF_THRESHOLD_MS)

        return wrapper

    return decorator


def _log_timing(log: LiveLogger, operation_name: str, elapsed_ms: float, threshold_ms: int) -> None:
    context: dict[str, object] = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
    }
    if elapsed_ms > threshold_ms:
        log.warning("[%s] completed in %.1fms (threshold: %dms)", operation_name, elapsed_ms, threshold_ms, extra=context)
    else:
        log.debug("[%s] completed in %.1fms", operation_name, elapsed_ms, extra=context)
