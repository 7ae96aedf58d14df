"""Job layer package for workflow orchestration boundaries."""

from .interfaces import JobExecutionResult, JobOrchestratorPort
from .instrumentation import job_configure_slow_threshold, job_measure_performance
from .fifo_migration_orchestrator import FifoMigrationOrchestrator, FifoMigrationOrchestratorConfig

__all__ = [
	"JobExecutionResult",
	"JobOrchestratorPort",
	"job_configure_slow_threshold",
	"job_measure_performance",
	"FifoMigrationOrchestrator",
	"FifoMigrationOrchestratorConfig",
]
