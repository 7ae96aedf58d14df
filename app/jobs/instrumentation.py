"""Explicit timing instrumentation for orchestration-boundary calls."""

from __future__ import annotations

import functools
import logging
import time
from typing import Callable, TypeVar

_PERFORMANCE_LOGGER = logging.getLogger("PERFORMANCE")
_DEFAULT_SLOW_THRESHOLD_MS = 1000

_configured_slow_threshold_ms = _DEFAULT_SLOW_THRESHOLD_MS

_CallableT = TypeVar("_CallableT", bound=Callable[..., object])


def job_configure_slow_threshold(slow_threshold_ms: int) -> None:
    """Set the process-wide slow threshold used by decorated boundaries.

    Decorators without an explicit threshold read this value on every call,
    so it applies to methods decorated at import time.

    Args:
        slow_threshold_ms: Elapsed milliseconds above which a call is slow.

    Returns:
        None: Threshold is stored as side effect.

    Raises:
        ValueError: Raised when threshold is not positive.
    """

    global _configured_slow_threshold_ms  # pylint: disable=global-statement

    if slow_threshold_ms < 1:
        raise ValueError("slow_threshold_ms must be >= 1")
    _configured_slow_threshold_ms = slow_threshold_ms


def job_resolve_slow_threshold() -> int:
    """Return the currently configured slow threshold in milliseconds."""

    return _configured_slow_threshold_ms


def job_measure_performance(layer: str, slow_threshold_ms: int | None = None) -> Callable[[_CallableT], _CallableT]:
    """Build a decorator logging elapsed time and outcome of each call.

    Outcomes are logged as `SUCCESS` (info), `SLOW` (warning, above threshold)
    or `FAILED` (error, exception re-raised unchanged).

    Args:
        layer: Layer label rendered in log lines (`SERVICE`, `JOB`).
        slow_threshold_ms: Fixed threshold; when None the configured process-wide
            threshold is resolved at call time.

    Returns:
        Callable[[_CallableT], _CallableT]: Decorator preserving the wrapped signature.

    Raises:
        ValueError: Raised when layer is blank or threshold is not positive.
    """

    if not layer.strip():
        raise ValueError("layer must not be blank")
    if slow_threshold_ms is not None and slow_threshold_ms < 1:
        raise ValueError("slow_threshold_ms must be >= 1")

    def decorator(function: _CallableT) -> _CallableT:
        @functools.wraps(function)
        def wrapper(*args, **kwargs):
            started_at = time.perf_counter()
            try:
                result = function(*args, **kwargs)
            except Exception as error:
                elapsed_ms = int((time.perf_counter() - started_at) * 1000)
                _PERFORMANCE_LOGGER.error(
                    "[%s] %s FAILED - %sms - %s: %s",
                    layer,
                    function.__qualname__,
                    elapsed_ms,
                    type(error).__name__,
                    error,
                )
                raise

            elapsed_ms = int((time.perf_counter() - started_at) * 1000)
            threshold_ms = job_resolve_slow_threshold() if slow_threshold_ms is None else slow_threshold_ms
            if elapsed_ms > threshold_ms:
                _PERFORMANCE_LOGGER.warning("[%s] %s SLOW - %sms", layer, function.__qualname__, elapsed_ms)
            else:
                _PERFORMANCE_LOGGER.info("[%s] %s SUCCESS - %sms", layer, function.__qualname__, elapsed_ms)
            return result

        return wrapper  # type: ignore[return-value]

    return decorator


__all__ = ["job_configure_slow_threshold", "job_measure_performance", "job_resolve_slow_threshold"]
