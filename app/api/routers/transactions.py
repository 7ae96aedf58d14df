"""Transaction API router composition for ledger entry writes and reads."""
# pylint: disable=duplicate-code

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.config import AppSettings
from app.db import LedgerStoreRepositoryPort
from app.domain import TradeDirection
from app.ledger import (
    LedgerEntryNotFoundError,
    LedgerServicePort,
    LedgerTransactionCreateRequest,
    LedgerTransactionUpdateRequest,
    LedgerTransactionWriteResult,
    LedgerValidationError,
)

from .responses import api_error_response, api_serialize_ledger_entry, api_serialize_position_state


class TransactionCreateBody(BaseModel):
    """Request body for recording one BUY or SELL."""

    account_id: str = Field(min_length=1)
    instrument_id: str = Field(min_length=1)
    direction: str
    quantity: Decimal
    price: Decimal
    commission: Decimal | None = None
    trade_timestamp_utc: datetime
    notes: str | None = None


class TransactionUpdateBody(BaseModel):
    """Request body for editing one recorded entry."""

    quantity: Decimal
    price: Decimal
    commission: Decimal | None = None
    trade_timestamp_utc: datetime
    notes: str | None = None


def api_create_transactions_router(
    settings: AppSettings,
    ledger_service: LedgerServicePort,
    ledger_repository: LedgerStoreRepositoryPort,
) -> APIRouter:
    """Create transaction router exposing ledger entry write, list and lookup APIs.

    Args:
        settings: Runtime settings used for pagination defaults.
        ledger_service: Ledger-layer orchestration service.
        ledger_repository: DB-layer ledger store for reads.

    Returns:
        APIRouter: Router exposing `/transactions` endpoints.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if settings is None:
        raise ValueError("settings must not be None")
    if ledger_service is None:
        raise ValueError("ledger_service must not be None")
    if ledger_repository is None:
        raise ValueError("ledger_repository must not be None")

    router = APIRouter(prefix="/transactions", tags=["transactions"])

    @router.post("")
    def api_transaction_create(body: TransactionCreateBody) -> JSONResponse:
        """Record one entry and return it with the resulting position.

        Args:
            body: Entry values.

        Returns:
            JSONResponse: Created entry envelope, or a 400 error envelope.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

        try:
            direction = TradeDirection.parse(body.direction)
        except ValueError as error:
            return api_error_response("INVALID_DIRECTION", str(error), status.HTTP_400_BAD_REQUEST)

        try:
            write_result = ledger_service.ledger_transaction_create(
                LedgerTransactionCreateRequest(
                    account_id=body.account_id,
                    instrument_id=body.instrument_id,
                    direction=direction,
                    quantity=body.quantity,
                    price=body.price,
                    commission=body.commission,
                    trade_timestamp_utc=body.trade_timestamp_utc,
                    notes=body.notes,
                )
            )
        except LedgerValidationError as error:
            return api_error_response("VALIDATION_ERROR", str(error), status.HTTP_400_BAD_REQUEST)

        return JSONResponse(
            content=api_serialize_write_result(write_result),
            status_code=status.HTTP_201_CREATED,
        )

    @router.get("")
    def api_transaction_list(
        account_id: str = Query(min_length=1),
        instrument_id: str | None = Query(default=None, min_length=1),
        from_utc: datetime | None = Query(default=None),
        to_utc: datetime | None = Query(default=None),
        limit: int = Query(default=settings.api_default_limit, ge=1),
        offset: int = Query(default=0, ge=0),
    ) -> JSONResponse:
        """List ledger entries of one account in FIFO order.

        Args:
            account_id: Account identifier.
            instrument_id: Optional instrument filter.
            from_utc: Optional inclusive lower trade timestamp bound.
            to_utc: Optional inclusive upper trade timestamp bound.
            limit: Max rows to return.
            offset: Rows to skip.

        Returns:
            JSONResponse: Entry list envelope payload, or a 400 error envelope.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        for bound in (from_utc, to_utc):
            if bound is not None and bound.utcoffset() is None:
                return api_error_response(
                    "VALIDATION_ERROR",
                    "from_utc and to_utc must carry a UTC offset",
                    status.HTTP_400_BAD_REQUEST,
                )
        if from_utc is not None and to_utc is not None and from_utc > to_utc:
            return api_error_response(
                "VALIDATION_ERROR",
                "from_utc must not be later than to_utc",
                status.HTTP_400_BAD_REQUEST,
            )

        applied_limit = min(limit, settings.api_max_limit)
        try:
            entries = ledger_repository.db_ledger_entry_list(
                account_id=account_id,
                instrument_id=instrument_id,
                limit=applied_limit,
                offset=offset,
                from_utc=from_utc,
                to_utc=to_utc,
            )
        except ValueError as error:
            return api_error_response("VALIDATION_ERROR", str(error), status.HTTP_400_BAD_REQUEST)
        payload = {
            "items": [api_serialize_ledger_entry(entry) for entry in entries],
            "page": {
                "limit": limit,
                "applied_limit": applied_limit,
                "offset": offset,
                "returned": len(entries),
            },
            "filters": {
                "account_id": account_id,
                "instrument_id": instrument_id,
                "from_utc": None if from_utc is None else from_utc.isoformat(),
                "to_utc": None if to_utc is None else to_utc.isoformat(),
            },
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/{ledger_entry_id}")
    def api_transaction_get(ledger_entry_id: str) -> JSONResponse:
        """Return one entry with its derived FIFO fields.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            JSONResponse: Entry payload, or a 404 error envelope.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        entry = ledger_repository.db_ledger_entry_get_by_id(ledger_entry_id)
        if entry is None:
            return api_error_response(
                "NOT_FOUND",
                f"ledger entry {ledger_entry_id} not found",
                status.HTTP_404_NOT_FOUND,
            )
        return JSONResponse(content=api_serialize_ledger_entry(entry), status_code=status.HTTP_200_OK)

    @router.put("/{ledger_entry_id}")
    def api_transaction_update(ledger_entry_id: str, body: TransactionUpdateBody) -> JSONResponse:
        """Edit one entry and return it after pair recalculation.

        Args:
            ledger_entry_id: Entry identifier.
            body: New editable field values.

        Returns:
            JSONResponse: Updated entry envelope, or a 400/404 error envelope.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

        try:
            write_result = ledger_service.ledger_transaction_update(
                ledger_entry_id,
                LedgerTransactionUpdateRequest(
                    quantity=body.quantity,
                    price=body.price,
                    commission=body.commission,
                    trade_timestamp_utc=body.trade_timestamp_utc,
                    notes=body.notes,
                ),
            )
        except LedgerEntryNotFoundError as error:
            return api_error_response("NOT_FOUND", str(error), status.HTTP_404_NOT_FOUND)
        except LedgerValidationError as error:
            return api_error_response("VALIDATION_ERROR", str(error), status.HTTP_400_BAD_REQUEST)

        return JSONResponse(content=api_serialize_write_result(write_result), status_code=status.HTTP_200_OK)

    @router.delete("/{ledger_entry_id}")
    def api_transaction_delete(ledger_entry_id: str) -> JSONResponse:
        """Delete one entry and return the recalculated pair summary.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            JSONResponse: Recalculation summary, or a 404 error envelope.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

        try:
            recalculation = ledger_service.ledger_transaction_delete(ledger_entry_id)
        except LedgerEntryNotFoundError as error:
            return api_error_response("NOT_FOUND", str(error), status.HTTP_404_NOT_FOUND)
        except LedgerValidationError as error:
            return api_error_response("VALIDATION_ERROR", str(error), status.HTTP_400_BAD_REQUEST)

        payload = {
            "status": "deleted",
            "ledger_entry_id": ledger_entry_id,
            "account_id": recalculation.pair_key.account_id,
            "instrument_id": recalculation.pair_key.instrument_id,
            "position": api_serialize_position_state(recalculation.position),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router


def api_serialize_write_result(write_result: LedgerTransactionWriteResult) -> dict[str, object]:
    """Serialize one create/update result to JSON payload.

    Args:
        write_result: Ledger write result.

    Returns:
        dict[str, object]: JSON-serializable write payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    match_result = write_result.match_result
    return {
        "entry": api_serialize_ledger_entry(write_result.entry),
        "position": api_serialize_position_state(write_result.position),
        "recalculated": write_result.recalculated,
        "unmatched_quantity": None if match_result is None else str(match_result.unmatched_quantity),
    }


__all__ = [
    "TransactionCreateBody",
    "TransactionUpdateBody",
    "api_create_transactions_router",
    "api_serialize_write_result",
]
