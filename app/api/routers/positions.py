"""Position API router composition for current holdings reads."""

from __future__ import annotations

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from app.config import AppSettings
from app.db import LedgerStoreRepositoryPort

from .responses import api_serialize_position_record


def api_create_positions_router(
    settings: AppSettings,
    ledger_repository: LedgerStoreRepositoryPort,
) -> APIRouter:
    """Create position router exposing holdings list API.

    Args:
        settings: Runtime settings used for pagination defaults.
        ledger_repository: DB-layer ledger store.

    Returns:
        APIRouter: Router exposing `/positions` endpoint.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if settings is None:
        raise ValueError("settings must not be None")
    if ledger_repository is None:
        raise ValueError("ledger_repository must not be None")

    router = APIRouter(prefix="/positions", tags=["positions"])

    @router.get("")
    def api_position_list(
        account_id: str = Query(min_length=1),
        limit: int = Query(default=settings.api_default_limit, ge=1),
        offset: int = Query(default=0, ge=0),
    ) -> JSONResponse:
        """List open positions of one account ordered by instrument.

        Returns:
            JSONResponse: Position list envelope payload.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        applied_limit = min(limit, settings.api_max_limit)
        position_rows = ledger_repository.db_position_list(
            account_id=account_id,
            limit=applied_limit,
            offset=offset,
        )
        payload = {
            "items": [api_serialize_position_record(position_row) for position_row in position_rows],
            "page": {
                "limit": limit,
                "applied_limit": applied_limit,
                "offset": offset,
                "returned": len(position_rows),
            },
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router


__all__ = ["api_create_positions_router"]
