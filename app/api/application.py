"""FastAPI application factory for the trade journal ledger.

This module defines API application composition used by the runtime.
"""

from fastapi import FastAPI

from app.config import AppSettings
from app.db import DatabaseHealthPort, LedgerStoreRepositoryPort
from app.jobs import JobOrchestratorPort
from app.ledger import LedgerServicePort

from .middleware import ApiRequestTimingMiddleware
from .routers import (
    api_create_health_router,
    api_create_ledger_router,
    api_create_positions_router,
    api_create_transactions_router,
)


def create_api_application(
    settings: AppSettings,
    db_health_service: DatabaseHealthPort,
    ledger_repository: LedgerStoreRepositoryPort,
    ledger_service: LedgerServicePort,
    migration_orchestrator: JobOrchestratorPort,
) -> FastAPI:
    """Create the FastAPI application instance for the service.

    Args:
        settings: Validated application settings used for runtime metadata.
        db_health_service: Database health service used by health endpoints.
        ledger_repository: Ledger store for entry and position reads.
        ledger_service: Ledger orchestration service for writes and recalculation.
        migration_orchestrator: Job orchestrator for FIFO migration triggers.

    Returns:
        FastAPI: Framework application instance with ledger routes.

    Raises:
        RuntimeError: Raised if application initialization fails.
    """
    application = FastAPI(title="Trade Journal Ledger")
    application.add_middleware(
        ApiRequestTimingMiddleware,
        slow_threshold_ms=settings.performance_slow_threshold_ms,
    )

    @application.get("/", tags=["foundation"])
    def foundation_index() -> dict[str, str]:
        """Return a minimal foundation response for bootstrap verification.

        Returns:
            dict[str, str]: Minimal response for API framework verification.

        Raises:
            RuntimeError: Raised if route handler cannot produce a response.
        """

        return {
            "service": "trade-journal-ledger",
            "status": "foundation-ready",
            "environment": settings.environment_name,
        }

    application.include_router(
        api_create_health_router(
            db_health_service=db_health_service,
            environment_name=settings.environment_name,
        )
    )
    application.include_router(
        api_create_transactions_router(
            settings=settings,
            ledger_service=ledger_service,
            ledger_repository=ledger_repository,
        )
    )
    application.include_router(
        api_create_positions_router(
            settings=settings,
            ledger_repository=ledger_repository,
        )
    )
    application.include_router(
        api_create_ledger_router(
            ledger_service=ledger_service,
            migration_orchestrator=migration_orchestrator,
        )
    )

    return application
