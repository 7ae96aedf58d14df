"""Job-layer orchestrator for whole-ledger FIFO migration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from app.domain import domain_build_stage_event
from app.ledger.interfaces import LedgerMigrationPort

from .instrumentation import job_measure_performance
from .interfaces import JobExecutionResult, JobOrchestratorPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FifoMigrationOrchestratorConfig:
    """Configuration values for FIFO migration execution.

    Attributes:
        max_workers: Maximum pairs recalculated concurrently.
    """

    max_workers: int = 4


class FifoMigrationOrchestrator(JobOrchestratorPort):
    """Concrete orchestrator recalculating every pair of the ledger."""

    _MIGRATION_JOB_NAME = "fifo_migration"

    def __init__(
        self,
        migration_service: LedgerMigrationPort,
        config: FifoMigrationOrchestratorConfig,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize FIFO migration dependencies.

        Args:
            migration_service: Ledger-layer migration service.
            config: Migration configuration values.
            clock: Optional UTC clock for timeline timestamps.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: Raised when dependencies or config values are invalid.
        """

        if migration_service is None:
            raise ValueError("migration_service must not be None")
        if config.max_workers < 1:
            raise ValueError("config.max_workers must be >= 1")

        self._migration_service = migration_service
        self._config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def job_supported_names(self) -> tuple[str, ...]:
        """Return supported job names.

        Returns:
            tuple[str, ...]: Supported job names.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return (self._MIGRATION_JOB_NAME,)

    @job_measure_performance(layer="JOB")
    def job_execute(self, job_name: str) -> JobExecutionResult:
        """Recalculate FIFO state and positions of every ledger pair.

        Pair failures are collected into the timeline and mark the run
        `failed` without stopping the remaining pairs.

        Args:
            job_name: Name of job to execute.

        Returns:
            JobExecutionResult: Final execution status payload with stage timeline.

        Raises:
            ValueError: Raised when job name is unsupported.
            RuntimeError: Raised when the migration cannot start.
        """

        normalized_job_name = job_name.strip()
        if normalized_job_name != self._MIGRATION_JOB_NAME:
            raise ValueError(f"unsupported job_name={normalized_job_name}")

        timeline: list[dict[str, object]] = [
            domain_build_stage_event(stage="run", status="started", at_utc=self._clock())
        ]
        timeline.append(
            domain_build_stage_event(
                stage="fifo_recalculation",
                status="started",
                details={"max_workers": self._config.max_workers},
                at_utc=self._clock(),
            )
        )

        try:
            migration_result = self._migration_service.ledger_migrate_all(max_workers=self._config.max_workers)
        except Exception as error:
            logger.exception("fifo migration could not run max_workers=%s", self._config.max_workers)
            raise RuntimeError("fifo migration execution failed") from error

        timeline.append(
            domain_build_stage_event(
                stage="fifo_recalculation",
                status="completed",
                details={
                    "pair_count": migration_result.pair_count,
                    "recalculated_count": len(migration_result.recalculated),
                    "failed_count": len(migration_result.failures),
                    "shortfall_count": sum(result.shortfall_count for result in migration_result.recalculated),
                },
                at_utc=self._clock(),
            )
        )

        if not migration_result.succeeded:
            logger.error(
                "fifo migration finished with failed pairs failed_count=%s pair_count=%s",
                len(migration_result.failures),
                migration_result.pair_count,
            )
            timeline.append(
                domain_build_stage_event(
                    stage="run",
                    status="failed",
                    details={
                        "failed_pairs": [
                            {
                                "account_id": failure.pair_key.account_id,
                                "instrument_id": failure.pair_key.instrument_id,
                                "error_type": failure.error_type,
                                "error_message": failure.error_message,
                            }
                            for failure in migration_result.failures
                        ]
                    },
                    at_utc=self._clock(),
                )
            )
            return JobExecutionResult(job_name=self._MIGRATION_JOB_NAME, status="failed", timeline=tuple(timeline))

        timeline.append(domain_build_stage_event(stage="run", status="success", at_utc=self._clock()))
        return JobExecutionResult(job_name=self._MIGRATION_JOB_NAME, status="success", timeline=tuple(timeline))
