"""Shared JSON payload builders for ledger routers."""

from __future__ import annotations

from fastapi.responses import JSONResponse

from app.db import PositionRecord
from app.domain import LedgerEntry, PositionState


def api_error_response(code: str, message: str, status_code: int) -> JSONResponse:
    """Build the standard error envelope.

    Args:
        code: Stable machine-readable error code.
        message: Human-readable error message.
        status_code: HTTP status code.

    Returns:
        JSONResponse: Error envelope response.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    payload = {
        "status": "error",
        "code": code,
        "message": message,
    }
    return JSONResponse(content=payload, status_code=status_code)


def api_serialize_ledger_entry(entry: LedgerEntry) -> dict[str, object]:
    """Serialize one ledger entry; decimals render as exact strings.

    Args:
        entry: Ledger entry.

    Returns:
        dict[str, object]: JSON-serializable entry payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return {
        "ledger_entry_id": entry.ledger_entry_id,
        "account_id": entry.account_id,
        "instrument_id": entry.instrument_id,
        "direction": entry.direction.value,
        "quantity": str(entry.quantity),
        "price": str(entry.price),
        "commission": _api_optional_text(entry.commission),
        "trade_timestamp_utc": entry.trade_timestamp_utc.isoformat(),
        "sequence_number": entry.sequence_number,
        "remaining_quantity": _api_optional_text(entry.remaining_quantity),
        "cost_basis": _api_optional_text(entry.cost_basis),
        "realized_pnl": _api_optional_text(entry.realized_pnl),
        "notes": entry.notes,
        "created_at_utc": None if entry.created_at_utc is None else entry.created_at_utc.isoformat(),
        "updated_at_utc": None if entry.updated_at_utc is None else entry.updated_at_utc.isoformat(),
    }


def api_serialize_position_state(state: PositionState | None) -> dict[str, object] | None:
    """Serialize one position state, or None for a flat pair."""

    if state is None:
        return None
    return {
        "quantity": str(state.quantity),
        "average_cost": str(state.average_cost),
        "total_invested": str(state.total_invested),
    }


def api_serialize_position_record(record: PositionRecord) -> dict[str, object]:
    """Serialize one persisted position row."""

    return {
        "account_id": record.account_id,
        "instrument_id": record.instrument_id,
        **(api_serialize_position_state(record.state) or {}),
        "updated_at_utc": record.updated_at_utc.isoformat(),
    }


def _api_optional_text(value: object | None) -> str | None:
    return None if value is None else str(value)


__all__ = [
    "api_error_response",
    "api_serialize_ledger_entry",
    "api_serialize_position_record",
    "api_serialize_position_state",
]
