"""Liveness and database readiness endpoint for the ledger service."""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.db import DatabaseHealthPort

logger = logging.getLogger(__name__)

_SERVICE_NAME = "trade-journal-ledger"


def api_create_health_router(db_health_service: DatabaseHealthPort, environment_name: str) -> APIRouter:
    """Create the `/health` router reporting app and ledger database state.

    Args:
        db_health_service: DB-layer health service interface.
        environment_name: Runtime environment label echoed in the payload.

    Returns:
        APIRouter: Router exposing `/health` endpoint.

    Raises:
        ValueError: Raised when db_health_service is invalid.
    """

    if db_health_service is None:
        raise ValueError("db_health_service must not be None")

    router = APIRouter(tags=["health"])

    @router.get("/health")
    def api_health_status() -> JSONResponse:
        """Return 200 when the ledger tables answer, 503 otherwise."""

        payload = {
            "service": _SERVICE_NAME,
            "environment": environment_name,
            "app": "up",
            "target": db_health_service.db_connection_label(),
        }
        try:
            db_health = db_health_service.db_check_health()
        except ConnectionError as error:
            logger.warning("health check degraded: %s", error)
            payload.update({"status": "degraded", "database": "down", "detail": str(error)})
            return JSONResponse(content=payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        payload.update({"status": "ok", "database": db_health.status, "detail": db_health.detail})
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router
