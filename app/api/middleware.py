"""HTTP request timing middleware."""

from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

_PERFORMANCE_LOGGER = logging.getLogger("PERFORMANCE")


class ApiRequestTimingMiddleware(BaseHTTPMiddleware):
    """Log elapsed time and outcome of every HTTP request.

    Requests above the slow threshold log at warning level; unhandled
    exceptions log at error level and propagate unchanged.
    """

    def __init__(self, app: ASGIApp, slow_threshold_ms: int = 1000) -> None:
        super().__init__(app)
        if slow_threshold_ms < 1:
            raise ValueError("slow_threshold_ms must be >= 1")
        self._slow_threshold_ms = slow_threshold_ms

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        started_at = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as error:
            elapsed_ms = int((time.perf_counter() - started_at) * 1000)
            _PERFORMANCE_LOGGER.error(
                "[HTTP] %s %s FAILED - %sms - %s: %s",
                request.method,
                request.url.path,
                elapsed_ms,
                type(error).__name__,
                error,
            )
            raise

        elapsed_ms = int((time.perf_counter() - started_at) * 1000)
        if elapsed_ms > self._slow_threshold_ms:
            _PERFORMANCE_LOGGER.warning(
                "[HTTP] %s %s %s SLOW - %sms",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
            )
        else:
            _PERFORMANCE_LOGGER.info(
                "[HTTP] %s %s %s SUCCESS - %sms",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
            )
        return response


__all__ = ["ApiRequestTimingMiddleware"]
