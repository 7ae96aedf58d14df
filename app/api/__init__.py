"""HTTP layer: FastAPI application factory, timing middleware and ledger routers."""

from .application import create_api_application
from .middleware import ApiRequestTimingMiddleware

__all__ = ["ApiRequestTimingMiddleware", "create_api_application"]
