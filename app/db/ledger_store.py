"""Database service for ledger entries, FIFO-derived fields and positions."""
# pylint: disable=duplicate-code

from __future__ import annotations

import hashlib
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Sequence
from uuid import UUID

from sqlalchemy import Connection, Engine, text
from sqlalchemy.exc import SQLAlchemyError

from app.domain import LedgerEntry, LedgerPairKey, PositionState, TradeDirection

from .interfaces import (
    LedgerEntryFieldUpdateRequest,
    LedgerEntryInsertRequest,
    LedgerPairTransactionPort,
    LedgerStoreRepositoryPort,
    PositionRecord,
)

_LEDGER_ENTRY_SELECT_COLUMNS = (
    "SELECT "
    "ledger_entry_id, account_id, instrument_id, direction, quantity, price, commission, "
    "trade_timestamp_utc, sequence_number, remaining_quantity, cost_basis, realized_pnl, notes, "
    "created_at_utc, updated_at_utc "
    "FROM ledger_entry "
)

_LEDGER_ENTRY_FIFO_ORDER = "ORDER BY trade_timestamp_utc asc, sequence_number asc, ledger_entry_id asc"


class SQLAlchemyLedgerStoreService(LedgerStoreRepositoryPort):
    """SQLAlchemy implementation for ledger entry and position persistence."""

    def __init__(self, engine: Engine):
        """Initialize ledger store database service.

        Args:
            engine: SQLAlchemy engine used for persistence and reads.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: Raised when engine is invalid.
        """

        if engine is None:
            raise ValueError("engine must not be None")
        self._engine = engine

    @contextmanager
    def db_ledger_pair_transaction(
        self,
        account_id: str,
        instrument_id: str,
    ) -> Iterator[LedgerPairTransactionPort]:
        """Open one transaction holding the pair's advisory lock until commit.

        Args:
            account_id: Account identifier.
            instrument_id: Instrument identifier.

        Yields:
            LedgerPairTransactionPort: Pair-bound operations sharing this transaction.

        Raises:
            ValueError: Raised when identifiers are blank.
            RuntimeError: Raised when locking, reads, writes or commit fail.
        """

        pair_key = LedgerPairKey(
            account_id=db_ledger_validate_non_empty_text(account_id, "account_id"),
            instrument_id=db_ledger_validate_non_empty_text(instrument_id, "instrument_id"),
        )
        advisory_key_1, advisory_key_2 = db_ledger_build_pair_lock_keys(pair_key)

        try:
            with self._engine.begin() as connection:
                connection.execute(
                    text("SELECT pg_advisory_xact_lock(:key_1, :key_2)"),
                    {"key_1": advisory_key_1, "key_2": advisory_key_2},
                )
                yield _SQLAlchemyLedgerPairTransaction(connection=connection, pair_key=pair_key)
        except SQLAlchemyError as error:
            raise RuntimeError("ledger pair transaction failed") from error

    def db_ledger_entry_find_pair(self, ledger_entry_id: str) -> LedgerPairKey | None:
        """Resolve the pair owning one entry.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            LedgerPairKey | None: Owning pair, or None when the entry is absent or the id is not a UUID.

        Raises:
            ValueError: Raised when identifier is blank.
            RuntimeError: Raised when database read fails.
        """

        normalized_entry_id = db_ledger_validate_non_empty_text(ledger_entry_id, "ledger_entry_id")
        try:
            UUID(normalized_entry_id)
        except ValueError:
            return None
        try:
            with self._engine.connect() as connection:
                row = connection.execute(
                    text(
                        "SELECT account_id, instrument_id FROM ledger_entry "
                        "WHERE ledger_entry_id = CAST(:ledger_entry_id AS uuid)"
                    ),
                    {"ledger_entry_id": normalized_entry_id},
                ).mappings().first()
        except SQLAlchemyError as error:
            raise RuntimeError("ledger entry pair lookup failed") from error

        if row is None:
            return None
        return LedgerPairKey(account_id=row["account_id"], instrument_id=row["instrument_id"])

    def db_ledger_entry_get_by_id(self, ledger_entry_id: str) -> LedgerEntry | None:
        """Fetch one entry with its derived FIFO fields.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            LedgerEntry | None: Stored entry, or None when absent or the id is not a UUID.

        Raises:
            ValueError: Raised when identifier is blank.
            RuntimeError: Raised when database read fails.
        """

        normalized_entry_id = db_ledger_validate_non_empty_text(ledger_entry_id, "ledger_entry_id")
        try:
            UUID(normalized_entry_id)
        except ValueError:
            return None
        try:
            with self._engine.connect() as connection:
                row = connection.execute(
                    text(_LEDGER_ENTRY_SELECT_COLUMNS + "WHERE ledger_entry_id = CAST(:ledger_entry_id AS uuid)"),
                    {"ledger_entry_id": normalized_entry_id},
                ).mappings().first()
        except SQLAlchemyError as error:
            raise RuntimeError("ledger entry read failed") from error

        if row is None:
            return None
        return db_ledger_map_entry(row)

    def db_ledger_pair_list_distinct(self) -> list[LedgerPairKey]:
        """List every distinct pair present in the ledger.

        Returns:
            list[LedgerPairKey]: Pairs ordered by account then instrument.

        Raises:
            RuntimeError: Raised when database read fails.
        """

        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text(
                        "SELECT DISTINCT account_id, instrument_id FROM ledger_entry "
                        "ORDER BY account_id asc, instrument_id asc"
                    ),
                    {},
                ).mappings().all()
        except SQLAlchemyError as error:
            raise RuntimeError("ledger pair enumeration failed") from error

        return [LedgerPairKey(account_id=row["account_id"], instrument_id=row["instrument_id"]) for row in rows]

    def db_ledger_entry_list(
        self,
        account_id: str,
        instrument_id: str | None,
        limit: int,
        offset: int,
        from_utc: datetime | None = None,
        to_utc: datetime | None = None,
    ) -> list[LedgerEntry]:
        """List entries for API surfaces in FIFO order.

        Args:
            account_id: Account identifier.
            instrument_id: Optional instrument filter.
            from_utc: Optional inclusive lower trade timestamp bound.
            to_utc: Optional inclusive upper trade timestamp bound.
            limit: Maximum row count.
            offset: Number of rows to skip.

        Returns:
            list[LedgerEntry]: Ordered entries.

        Raises:
            ValueError: Raised when inputs are invalid.
            RuntimeError: Raised when database read fails.
        """

        normalized_account_id = db_ledger_validate_non_empty_text(account_id, "account_id")
        db_ledger_validate_pagination(limit=limit, offset=offset)
        normalized_instrument_id = None
        if instrument_id is not None:
            normalized_instrument_id = db_ledger_validate_non_empty_text(instrument_id, "instrument_id")

        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text(
                        _LEDGER_ENTRY_SELECT_COLUMNS
                        + "WHERE account_id = :account_id "
                        + "AND (CAST(:instrument_id AS text) IS NULL OR instrument_id = CAST(:instrument_id AS text)) "
                        + "AND (CAST(:from_utc AS timestamptz) IS NULL OR trade_timestamp_utc >= CAST(:from_utc AS timestamptz)) "
                        + "AND (CAST(:to_utc AS timestamptz) IS NULL OR trade_timestamp_utc <= CAST(:to_utc AS timestamptz)) "
                        + "ORDER BY instrument_id asc, trade_timestamp_utc asc, sequence_number asc "
                        + "LIMIT :limit OFFSET :offset"
                    ),
                    {
                        "account_id": normalized_account_id,
                        "instrument_id": normalized_instrument_id,
                        "from_utc": None if from_utc is None else from_utc.isoformat(),
                        "to_utc": None if to_utc is None else to_utc.isoformat(),
                        "limit": limit,
                        "offset": offset,
                    },
                ).mappings().all()
        except SQLAlchemyError as error:
            raise RuntimeError("ledger entry list read failed") from error

        return [db_ledger_map_entry(row) for row in rows]

    def db_position_list(self, account_id: str, limit: int, offset: int) -> list[PositionRecord]:
        """List position rows of one account ordered by instrument.

        Args:
            account_id: Account identifier.
            limit: Maximum row count.
            offset: Number of rows to skip.

        Returns:
            list[PositionRecord]: Position rows.

        Raises:
            ValueError: Raised when inputs are invalid.
            RuntimeError: Raised when database read fails.
        """

        normalized_account_id = db_ledger_validate_non_empty_text(account_id, "account_id")
        db_ledger_validate_pagination(limit=limit, offset=offset)

        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text(
                        "SELECT account_id, instrument_id, quantity, average_cost, total_invested, updated_at_utc "
                        "FROM ledger_position "
                        "WHERE account_id = :account_id "
                        "ORDER BY instrument_id asc LIMIT :limit OFFSET :offset"
                    ),
                    {"account_id": normalized_account_id, "limit": limit, "offset": offset},
                ).mappings().all()
        except SQLAlchemyError as error:
            raise RuntimeError("ledger position list read failed") from error

        return [
            PositionRecord(
                account_id=row["account_id"],
                instrument_id=row["instrument_id"],
                state=db_ledger_map_position_state(row),
                updated_at_utc=row["updated_at_utc"],
            )
            for row in rows
        ]


class _SQLAlchemyLedgerPairTransaction(LedgerPairTransactionPort):
    """Pair-bound ledger operations executed on one open connection."""

    def __init__(self, connection: Connection, pair_key: LedgerPairKey):
        self._connection = connection
        self.pair_key = pair_key

    def db_ledger_entry_insert(self, request: LedgerEntryInsertRequest) -> LedgerEntry:
        """Insert one entry of this pair; BUY rows start fully unconsumed."""

        if LedgerPairKey(request.account_id, request.instrument_id) != self.pair_key:
            raise ValueError("insert request targets a different account/instrument pair")

        remaining_quantity = request.quantity if request.direction is TradeDirection.BUY else None
        row = self._connection.execute(
            text(
                "INSERT INTO ledger_entry ("
                "ledger_entry_id, account_id, instrument_id, direction, quantity, price, commission, "
                "trade_timestamp_utc, remaining_quantity, notes, created_at_utc, updated_at_utc"
                ") VALUES ("
                "CAST(:ledger_entry_id AS uuid), :account_id, :instrument_id, :direction, "
                "CAST(:quantity AS numeric), CAST(:price AS numeric), CAST(:commission AS numeric), "
                "CAST(:trade_timestamp_utc AS timestamptz), CAST(:remaining_quantity AS numeric), :notes, "
                "CAST(:created_at_utc AS timestamptz), CAST(:created_at_utc AS timestamptz)"
                ") RETURNING sequence_number"
            ),
            {
                "ledger_entry_id": request.ledger_entry_id,
                "account_id": request.account_id,
                "instrument_id": request.instrument_id,
                "direction": request.direction.value,
                "quantity": str(request.quantity),
                "price": str(request.price),
                "commission": db_ledger_optional_decimal_text(request.commission),
                "trade_timestamp_utc": request.trade_timestamp_utc.isoformat(),
                "remaining_quantity": db_ledger_optional_decimal_text(remaining_quantity),
                "notes": request.notes,
                "created_at_utc": request.created_at_utc.isoformat(),
            },
        ).mappings().one()

        return LedgerEntry(
            ledger_entry_id=request.ledger_entry_id,
            account_id=request.account_id,
            instrument_id=request.instrument_id,
            direction=request.direction,
            quantity=request.quantity,
            price=request.price,
            commission=request.commission,
            trade_timestamp_utc=request.trade_timestamp_utc,
            sequence_number=int(row["sequence_number"]),
            remaining_quantity=remaining_quantity,
            notes=request.notes,
            created_at_utc=request.created_at_utc,
            updated_at_utc=request.created_at_utc,
        )

    def db_ledger_entry_get(self, ledger_entry_id: str) -> LedgerEntry | None:
        """Fetch one entry of this pair, locking the row for update."""

        row = self._connection.execute(
            text(
                _LEDGER_ENTRY_SELECT_COLUMNS
                + "WHERE ledger_entry_id = CAST(:ledger_entry_id AS uuid) "
                + "AND account_id = :account_id AND instrument_id = :instrument_id "
                + "FOR UPDATE"
            ),
            {
                "ledger_entry_id": ledger_entry_id,
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
            },
        ).mappings().first()
        if row is None:
            return None
        return db_ledger_map_entry(row)

    def db_ledger_entry_update_fields(
        self,
        ledger_entry_id: str,
        request: LedgerEntryFieldUpdateRequest,
    ) -> LedgerEntry:
        """Update editable fields of one entry; a BUY lot restarts fully unconsumed until recalculated."""

        updated_row = self._connection.execute(
            text(
                "UPDATE ledger_entry SET "
                "quantity = CAST(:quantity AS numeric), "
                "remaining_quantity = CASE WHEN direction = 'BUY' THEN CAST(:quantity AS numeric) ELSE NULL END, "
                "price = CAST(:price AS numeric), "
                "commission = CAST(:commission AS numeric), "
                "trade_timestamp_utc = CAST(:trade_timestamp_utc AS timestamptz), "
                "notes = :notes, "
                "updated_at_utc = CAST(:updated_at_utc AS timestamptz) "
                "WHERE ledger_entry_id = CAST(:ledger_entry_id AS uuid) "
                "AND account_id = :account_id AND instrument_id = :instrument_id "
                "RETURNING ledger_entry_id"
            ),
            {
                "quantity": str(request.quantity),
                "price": str(request.price),
                "commission": db_ledger_optional_decimal_text(request.commission),
                "trade_timestamp_utc": request.trade_timestamp_utc.isoformat(),
                "notes": request.notes,
                "updated_at_utc": request.updated_at_utc.isoformat(),
                "ledger_entry_id": ledger_entry_id,
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
            },
        ).mappings().first()
        if updated_row is None:
            raise LookupError(f"ledger entry not found ledger_entry_id={ledger_entry_id}")

        updated_entry = self.db_ledger_entry_get(ledger_entry_id)
        if updated_entry is None:
            raise LookupError(f"ledger entry not found ledger_entry_id={ledger_entry_id}")
        return updated_entry

    def db_ledger_entry_delete(self, ledger_entry_id: str) -> None:
        """Delete one entry of this pair."""

        deleted_row = self._connection.execute(
            text(
                "DELETE FROM ledger_entry "
                "WHERE ledger_entry_id = CAST(:ledger_entry_id AS uuid) "
                "AND account_id = :account_id AND instrument_id = :instrument_id "
                "RETURNING ledger_entry_id"
            ),
            {
                "ledger_entry_id": ledger_entry_id,
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
            },
        ).mappings().first()
        if deleted_row is None:
            raise LookupError(f"ledger entry not found ledger_entry_id={ledger_entry_id}")

    def db_ledger_entry_list_available_buys(self, cutoff_utc: datetime) -> list[LedgerEntry]:
        """List unconsumed BUY lots dated at or before the cutoff, oldest first."""

        rows = self._connection.execute(
            text(
                _LEDGER_ENTRY_SELECT_COLUMNS
                + "WHERE account_id = :account_id AND instrument_id = :instrument_id "
                + "AND direction = 'BUY' AND remaining_quantity > 0 "
                + "AND trade_timestamp_utc <= CAST(:cutoff_utc AS timestamptz) "
                + _LEDGER_ENTRY_FIFO_ORDER
            ),
            {
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
                "cutoff_utc": cutoff_utc.isoformat(),
            },
        ).mappings().all()
        return [db_ledger_map_entry(row) for row in rows]

    def db_ledger_entry_latest_timestamp(self) -> datetime | None:
        """Return the latest trade timestamp recorded for this pair."""

        row = self._connection.execute(
            text(
                "SELECT MAX(trade_timestamp_utc) AS latest_timestamp_utc FROM ledger_entry "
                "WHERE account_id = :account_id AND instrument_id = :instrument_id"
            ),
            {
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
            },
        ).mappings().first()
        if row is None:
            return None
        return row["latest_timestamp_utc"]

    def db_ledger_entry_list_history(self) -> list[LedgerEntry]:
        """List the full pair history in FIFO order."""

        rows = self._connection.execute(
            text(
                _LEDGER_ENTRY_SELECT_COLUMNS
                + "WHERE account_id = :account_id AND instrument_id = :instrument_id "
                + _LEDGER_ENTRY_FIFO_ORDER
            ),
            {
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
            },
        ).mappings().all()
        return [db_ledger_map_entry(row) for row in rows]

    def db_ledger_entry_save_derived_many(self, entries: Sequence[LedgerEntry], updated_at_utc: datetime) -> None:
        """Persist FIFO-derived fields for many entries with one executemany."""

        if len(entries) == 0:
            return

        parameters = []
        for entry in entries:
            if entry.pair_key != self.pair_key:
                raise ValueError("derived-field batch contains an entry from a different pair")
            parameters.append(
                {
                    "ledger_entry_id": entry.ledger_entry_id,
                    "remaining_quantity": db_ledger_optional_decimal_text(entry.remaining_quantity),
                    "cost_basis": db_ledger_optional_decimal_text(entry.cost_basis),
                    "realized_pnl": db_ledger_optional_decimal_text(entry.realized_pnl),
                    "updated_at_utc": updated_at_utc.isoformat(),
                }
            )
            entry.updated_at_utc = updated_at_utc

        self._connection.execute(
            text(
                "UPDATE ledger_entry SET "
                "remaining_quantity = CAST(:remaining_quantity AS numeric), "
                "cost_basis = CAST(:cost_basis AS numeric), "
                "realized_pnl = CAST(:realized_pnl AS numeric), "
                "updated_at_utc = CAST(:updated_at_utc AS timestamptz) "
                "WHERE ledger_entry_id = CAST(:ledger_entry_id AS uuid)"
            ),
            parameters,
        )

    def db_position_get(self) -> PositionState | None:
        """Fetch the position row of this pair."""

        row = self._connection.execute(
            text(
                "SELECT quantity, average_cost, total_invested FROM ledger_position "
                "WHERE account_id = :account_id AND instrument_id = :instrument_id"
            ),
            {
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
            },
        ).mappings().first()
        if row is None:
            return None
        return db_ledger_map_position_state(row)

    def db_position_upsert(self, state: PositionState, updated_at_utc: datetime) -> None:
        """Create or replace the position row of this pair."""

        self._connection.execute(
            text(
                "INSERT INTO ledger_position ("
                "account_id, instrument_id, quantity, average_cost, total_invested, created_at_utc, updated_at_utc"
                ") VALUES ("
                ":account_id, :instrument_id, CAST(:quantity AS numeric), CAST(:average_cost AS numeric), "
                "CAST(:total_invested AS numeric), CAST(:updated_at_utc AS timestamptz), "
                "CAST(:updated_at_utc AS timestamptz)"
                ") ON CONFLICT ON CONSTRAINT uq_ledger_position_account_instrument DO UPDATE SET "
                "quantity = EXCLUDED.quantity, "
                "average_cost = EXCLUDED.average_cost, "
                "total_invested = EXCLUDED.total_invested, "
                "updated_at_utc = EXCLUDED.updated_at_utc"
            ),
            {
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
                "quantity": str(state.quantity),
                "average_cost": str(state.average_cost),
                "total_invested": str(state.total_invested),
                "updated_at_utc": updated_at_utc.isoformat(),
            },
        )

    def db_position_delete(self) -> None:
        """Delete the position row of this pair when present."""

        self._connection.execute(
            text("DELETE FROM ledger_position WHERE account_id = :account_id AND instrument_id = :instrument_id"),
            {
                "account_id": self.pair_key.account_id,
                "instrument_id": self.pair_key.instrument_id,
            },
        )


def db_ledger_map_entry(row: Any) -> LedgerEntry:
    """Map SQLAlchemy row mapping to a typed ledger entry.

    Args:
        row: SQLAlchemy mapping row.

    Returns:
        LedgerEntry: Typed ledger entry.

    Raises:
        ValueError: Raised when stored direction is unsupported.
    """

    return LedgerEntry(
        ledger_entry_id=str(row["ledger_entry_id"]),
        account_id=row["account_id"],
        instrument_id=row["instrument_id"],
        direction=TradeDirection.parse(row["direction"]),
        quantity=Decimal(str(row["quantity"])),
        price=Decimal(str(row["price"])),
        commission=db_ledger_optional_decimal(row["commission"]),
        trade_timestamp_utc=row["trade_timestamp_utc"],
        sequence_number=int(row["sequence_number"]),
        remaining_quantity=db_ledger_optional_decimal(row["remaining_quantity"]),
        cost_basis=db_ledger_optional_decimal(row["cost_basis"]),
        realized_pnl=db_ledger_optional_decimal(row["realized_pnl"]),
        notes=row["notes"],
        created_at_utc=row["created_at_utc"],
        updated_at_utc=row["updated_at_utc"],
    )


def db_ledger_map_position_state(row: Any) -> PositionState:
    """Map SQLAlchemy row mapping to position state."""

    return PositionState(
        quantity=Decimal(str(row["quantity"])),
        average_cost=Decimal(str(row["average_cost"])),
        total_invested=Decimal(str(row["total_invested"])),
    )


def db_ledger_optional_decimal(value: Any) -> Decimal | None:
    """Convert nullable numeric column value to Decimal."""

    if value is None:
        return None
    return Decimal(str(value))


def db_ledger_optional_decimal_text(value: Decimal | None) -> str | None:
    """Render nullable Decimal as numeric text for CAST bindings."""

    if value is None:
        return None
    return str(value)


def db_ledger_build_pair_lock_keys(pair_key: LedgerPairKey) -> tuple[int, int]:
    """Create deterministic advisory lock keys for one ledger pair.

    Args:
        pair_key: Account/instrument pair identity.

    Returns:
        tuple[int, int]: Two signed int32 lock keys for PostgreSQL advisory lock.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    lock_identity = f"ledger_pair:{pair_key.account_id}:{pair_key.instrument_id}"
    digest = hashlib.sha256(lock_identity.encode("utf-8")).digest()
    key_1 = int.from_bytes(digest[0:4], byteorder="big", signed=True)
    key_2 = int.from_bytes(digest[4:8], byteorder="big", signed=True)
    return key_1, key_2


def db_ledger_validate_non_empty_text(value: str, field_name: str) -> str:
    """Validate required text input and return stripped value.

    Args:
        value: Candidate string value.
        field_name: Field name for error reporting.

    Returns:
        str: Stripped non-empty value.

    Raises:
        ValueError: Raised when value is blank or not a string.
    """

    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    stripped_value = value.strip()
    if not stripped_value:
        raise ValueError(f"{field_name} must not be blank")
    return stripped_value


def db_ledger_validate_pagination(limit: int, offset: int) -> None:
    """Validate list pagination arguments."""

    if limit < 1:
        raise ValueError("limit must be >= 1")
    if offset < 0:
        raise ValueError("offset must be >= 0")


__all__ = ["SQLAlchemyLedgerStoreService", "db_ledger_build_pair_lock_keys", "db_ledger_map_entry"]
