"""Application bootstrap wiring for startup validation and dependency assembly."""

from fastapi import FastAPI
from sqlalchemy import Engine

from app.api import create_api_application
from app.config import AppSettings, config_configure_logging, config_load_settings
from app.db import SQLAlchemyDatabaseHealthService, SQLAlchemyLedgerStoreService, db_create_engine
from app.jobs import FifoMigrationOrchestrator, FifoMigrationOrchestratorConfig, job_configure_slow_threshold
from app.ledger import LedgerService

_BASE_POOL_SIZE = 5


def bootstrap_configure_runtime(settings: AppSettings) -> None:
    """Apply process-wide logging and performance instrumentation settings.

    Args:
        settings: Validated application settings.

    Returns:
        None: Logging and slow-call threshold are configured as side effects.

    Raises:
        ValueError: Raised when settings values are invalid.
    """

    config_configure_logging(settings)
    job_configure_slow_threshold(settings.performance_slow_threshold_ms)


def bootstrap_create_engine(settings: AppSettings) -> Engine:
    """Create the engine with a pool covering parallel migration pair transactions."""

    return db_create_engine(
        database_url=settings.database_url,
        pool_size=max(_BASE_POOL_SIZE, settings.ledger_migration_max_workers),
    )


def bootstrap_create_application() -> FastAPI:
    """Assemble the runtime application after validating startup configuration.

    Returns:
        FastAPI: Fully initialized FastAPI application instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    settings = config_load_settings()
    bootstrap_configure_runtime(settings)
    engine = bootstrap_create_engine(settings)
    ledger_repository = SQLAlchemyLedgerStoreService(engine=engine)
    ledger_service = LedgerService(repository=ledger_repository)
    return create_api_application(
        settings=settings,
        db_health_service=SQLAlchemyDatabaseHealthService(engine=engine),
        ledger_repository=ledger_repository,
        ledger_service=ledger_service,
        migration_orchestrator=bootstrap_build_migration_orchestrator(settings, ledger_service),
    )


def bootstrap_create_ledger_service() -> LedgerService:
    """Build the ledger service for non-HTTP trigger surfaces.

    Returns:
        LedgerService: Fully wired ledger service instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    settings = config_load_settings()
    bootstrap_configure_runtime(settings)
    return LedgerService(repository=SQLAlchemyLedgerStoreService(engine=bootstrap_create_engine(settings)))


def bootstrap_create_migration_orchestrator() -> FifoMigrationOrchestrator:
    """Build FIFO migration orchestrator for non-HTTP trigger surfaces.

    Returns:
        FifoMigrationOrchestrator: Fully wired migration orchestrator instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    settings = config_load_settings()
    bootstrap_configure_runtime(settings)
    ledger_service = LedgerService(repository=SQLAlchemyLedgerStoreService(engine=bootstrap_create_engine(settings)))
    return bootstrap_build_migration_orchestrator(settings, ledger_service)


def bootstrap_build_migration_orchestrator(
    settings: AppSettings,
    ledger_service: LedgerService,
) -> FifoMigrationOrchestrator:
    """Wire the migration orchestrator from settings and an existing ledger service.

    Args:
        settings: Validated application settings.
        ledger_service: Ledger service performing pair recalculation.

    Returns:
        FifoMigrationOrchestrator: Migration orchestrator instance.

    Raises:
        ValueError: Raised when configuration values are invalid.
    """

    return FifoMigrationOrchestrator(
        migration_service=ledger_service,
        config=FifoMigrationOrchestratorConfig(max_workers=settings.ledger_migration_max_workers),
    )
