"""Ledger maintenance API router for FIFO recalculation triggers."""

from __future__ import annotations

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from app.jobs import JobOrchestratorPort
from app.ledger import LedgerServicePort, LedgerValidationError

from .responses import api_error_response, api_serialize_position_state


def api_create_ledger_router(
    ledger_service: LedgerServicePort,
    migration_orchestrator: JobOrchestratorPort,
) -> APIRouter:
    """Create ledger router exposing pair recalculation and full migration.

    Args:
        ledger_service: Ledger-layer orchestration service.
        migration_orchestrator: Job orchestrator running `fifo_migration`.

    Returns:
        APIRouter: Router exposing `/ledger` endpoints.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if ledger_service is None:
        raise ValueError("ledger_service must not be None")
    if migration_orchestrator is None:
        raise ValueError("migration_orchestrator must not be None")

    router = APIRouter(prefix="/ledger", tags=["ledger"])

    @router.post("/recalculate")
    def api_ledger_recalculate_pair(
        account_id: str = Query(),
        instrument_id: str = Query(),
    ) -> JSONResponse:
        """Recalculate FIFO state and position of one pair.

        Args:
            account_id: Account identifier.
            instrument_id: Instrument identifier.

        Returns:
            JSONResponse: Recalculation summary, or a 400 error envelope.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

        try:
            recalculation = ledger_service.ledger_recalculate_pair(account_id, instrument_id)
        except LedgerValidationError as error:
            return api_error_response("VALIDATION_ERROR", str(error), status.HTTP_400_BAD_REQUEST)

        payload = {
            "account_id": recalculation.pair_key.account_id,
            "instrument_id": recalculation.pair_key.instrument_id,
            "buy_count": recalculation.buy_count,
            "sell_count": recalculation.sell_count,
            "shortfall_count": recalculation.shortfall_count,
            "clamp_count": recalculation.clamp_count,
            "position": api_serialize_position_state(recalculation.position),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.post("/migrate")
    def api_ledger_migrate_trigger() -> JSONResponse:
        """Trigger one whole-ledger FIFO migration via orchestrator.

        Returns:
            JSONResponse: Trigger result payload with stage timeline.

        Raises:
            RuntimeError: Raised when execution fails unexpectedly.
        """

        execution_result = migration_orchestrator.job_execute(job_name="fifo_migration")
        payload = {
            "job_name": execution_result.job_name,
            "status": execution_result.status,
            "timeline": list(execution_result.timeline),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router


__all__ = ["api_create_ledger_router"]
