"""Typed interfaces for database-layer services.

All SQL access must remain in the db package and its submodules.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol, Sequence

from app.domain import HealthStatus, LedgerEntry, LedgerPairKey, PositionState, TradeDirection


class DatabaseHealthPort(Protocol):
    """Port definition for database connectivity verification."""

    def db_connection_label(self) -> str:
        """Return a password-free label for the active database target.

        Returns:
            str: Database target label for diagnostics.

        Raises:
            RuntimeError: Raised when connection metadata is unavailable.
        """

    def db_check_health(self) -> HealthStatus:
        """Check database connectivity.

        Returns:
            HealthStatus: Database health status payload.

        Raises:
            ConnectionError: Raised when database cannot be reached.
        """


@dataclass(frozen=True)
class LedgerEntryInsertRequest:
    """Input payload for one ledger entry insert.

    Attributes:
        ledger_entry_id: New entry identifier.
        account_id: Account identifier.
        instrument_id: Instrument identifier.
        direction: Entry direction.
        quantity: Positive quantity.
        price: Positive unit price.
        commission: Optional non-negative commission.
        trade_timestamp_utc: Offset-aware trade timestamp.
        notes: Optional journal note.
        created_at_utc: Explicit creation timestamp, also used as first update timestamp.
    """

    ledger_entry_id: str
    account_id: str
    instrument_id: str
    direction: TradeDirection
    quantity: Decimal
    price: Decimal
    commission: Decimal | None
    trade_timestamp_utc: datetime
    notes: str | None
    created_at_utc: datetime


@dataclass(frozen=True)
class LedgerEntryFieldUpdateRequest:
    """Input payload for editable ledger entry fields.

    Attributes:
        quantity: Positive quantity.
        price: Positive unit price.
        commission: Optional non-negative commission.
        trade_timestamp_utc: Offset-aware trade timestamp.
        notes: Optional journal note.
        updated_at_utc: Explicit update timestamp.
    """

    quantity: Decimal
    price: Decimal
    commission: Decimal | None
    trade_timestamp_utc: datetime
    notes: str | None
    updated_at_utc: datetime


@dataclass(frozen=True)
class PositionRecord:
    """Persisted position summary row.

    Attributes:
        account_id: Account identifier.
        instrument_id: Instrument identifier.
        state: Quantity, average cost and invested amount.
        updated_at_utc: Last write timestamp.
    """

    account_id: str
    instrument_id: str
    state: PositionState
    updated_at_utc: datetime


class LedgerPairTransactionPort(Protocol):
    """Operations bound to one locked (account, instrument) database transaction."""

    pair_key: LedgerPairKey

    def db_ledger_entry_insert(self, request: LedgerEntryInsertRequest) -> LedgerEntry:
        """Insert one entry of this pair.

        Args:
            request: Insert payload; BUY rows start fully unconsumed.

        Returns:
            LedgerEntry: Stored entry including its sequence number.

        Raises:
            ValueError: Raised when the request targets another pair.
            RuntimeError: Raised when persistence fails.
        """

    def db_ledger_entry_get(self, ledger_entry_id: str) -> LedgerEntry | None:
        """Fetch one entry of this pair by identifier.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            LedgerEntry | None: Matching entry, or None when absent.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_ledger_entry_update_fields(
        self,
        ledger_entry_id: str,
        request: LedgerEntryFieldUpdateRequest,
    ) -> LedgerEntry:
        """Update editable fields of one entry.

        Args:
            ledger_entry_id: Entry identifier.
            request: New field values.

        Returns:
            LedgerEntry: Updated entry.

        Raises:
            LookupError: Raised when the entry is not found in this pair.
            RuntimeError: Raised when persistence fails.
        """

    def db_ledger_entry_delete(self, ledger_entry_id: str) -> None:
        """Delete one entry.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            None: Deletion is applied as side effect.

        Raises:
            LookupError: Raised when the entry is not found in this pair.
            RuntimeError: Raised when persistence fails.
        """

    def db_ledger_entry_list_available_buys(self, cutoff_utc: datetime) -> list[LedgerEntry]:
        """List unconsumed BUY lots dated at or before the cutoff, oldest first.

        Args:
            cutoff_utc: Inclusive timestamp cutoff.

        Returns:
            list[LedgerEntry]: Lots ordered by timestamp then sequence number.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_ledger_entry_latest_timestamp(self) -> datetime | None:
        """Return the latest trade timestamp recorded for this pair.

        Returns:
            datetime | None: Latest timestamp, or None when the pair has no entries.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_ledger_entry_list_history(self) -> list[LedgerEntry]:
        """List the full pair history ordered by timestamp then sequence number.

        Returns:
            list[LedgerEntry]: Ordered pair history.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_ledger_entry_save_derived_many(self, entries: Sequence[LedgerEntry], updated_at_utc: datetime) -> None:
        """Persist FIFO-derived fields for many entries in this transaction.

        Args:
            entries: Entries carrying new remaining quantity, cost basis and realized PnL.
            updated_at_utc: Explicit update timestamp.

        Returns:
            None: Persistence is applied as side effect.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

    def db_position_get(self) -> PositionState | None:
        """Fetch the position row of this pair.

        Returns:
            PositionState | None: Current position, or None when absent.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_position_upsert(self, state: PositionState, updated_at_utc: datetime) -> None:
        """Create or replace the position row of this pair.

        Args:
            state: Position values.
            updated_at_utc: Explicit update timestamp.

        Returns:
            None: Persistence is applied as side effect.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

    def db_position_delete(self) -> None:
        """Delete the position row of this pair when present.

        Returns:
            None: Deletion is applied as side effect.

        Raises:
            RuntimeError: Raised when persistence fails.
        """


class LedgerStoreRepositoryPort(Protocol):
    """Port definition for ledger entry and position persistence."""

    def db_ledger_pair_transaction(
        self,
        account_id: str,
        instrument_id: str,
    ) -> AbstractContextManager[LedgerPairTransactionPort]:
        """Open one exclusive, all-or-nothing transaction for one pair.

        Args:
            account_id: Account identifier.
            instrument_id: Instrument identifier.

        Returns:
            AbstractContextManager[LedgerPairTransactionPort]: Context committing on exit, rolling back on error.

        Raises:
            ValueError: Raised when identifiers are blank.
            RuntimeError: Raised when the transaction cannot be opened or committed.
        """

    def db_ledger_entry_find_pair(self, ledger_entry_id: str) -> LedgerPairKey | None:
        """Resolve the pair owning one entry.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            LedgerPairKey | None: Owning pair, or None when the entry is absent.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_ledger_entry_get_by_id(self, ledger_entry_id: str) -> LedgerEntry | None:
        """Fetch one entry with its derived FIFO fields.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            LedgerEntry | None: Stored entry, or None when absent.

        Raises:
            RuntimeError: Raised when database read fails.
        """

    def db_ledger_pair_list_distinct(self) -> list[LedgerPairKey]:
        """List every distinct pair present in the ledger.

        Returns:
            list[LedgerPairKey]: Pairs ordered by account then instrument.

        Raises:
            RuntimeError: Raised when database read fails.
        """

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
            ValueError: Raised when pagination arguments are invalid.
            RuntimeError: Raised when database read fails.
        """

    def db_position_list(self, account_id: str, limit: int, offset: int) -> list[PositionRecord]:
        """List position rows of one account ordered by instrument.

        Args:
            account_id: Account identifier.
            limit: Maximum row count.
            offset: Number of rows to skip.

        Returns:
            list[PositionRecord]: Position rows.

        Raises:
            ValueError: Raised when pagination arguments are invalid.
            RuntimeError: Raised when database read fails.
        """
