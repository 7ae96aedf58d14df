"""Shared in-memory ledger store test double and fixtures."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator, Sequence

import pytest

from app.db.interfaces import LedgerEntryFieldUpdateRequest, LedgerEntryInsertRequest, PositionRecord
from app.domain import LedgerEntry, LedgerPairKey, PositionState, TradeDirection

BASE_TIMESTAMP_UTC = datetime(2026, 1, 5, 14, 30, tzinfo=timezone.utc)


def build_ledger_entry(
    ledger_entry_id: str,
    direction: TradeDirection,
    quantity: str,
    price: str,
    commission: str | None = None,
    day_offset: int = 0,
    sequence_number: int = 0,
    account_id: str = "ACC-1",
    instrument_id: str = "AAPL",
) -> LedgerEntry:
    """Build one ledger entry with FIFO fields in their pre-matching state.

    Args:
        ledger_entry_id: Entry identifier.
        direction: Entry direction.
        quantity: Quantity text.
        price: Price text.
        commission: Optional commission text.
        day_offset: Days after the shared base timestamp.
        sequence_number: Insertion sequence number.
        account_id: Account identifier.
        instrument_id: Instrument identifier.

    Returns:
        LedgerEntry: Entry ready for matching.

    Raises:
        ValueError: This helper does not raise value errors.
    """

    parsed_quantity = Decimal(quantity)
    return LedgerEntry(
        ledger_entry_id=ledger_entry_id,
        account_id=account_id,
        instrument_id=instrument_id,
        direction=direction,
        quantity=parsed_quantity,
        price=Decimal(price),
        commission=None if commission is None else Decimal(commission),
        trade_timestamp_utc=BASE_TIMESTAMP_UTC + timedelta(days=day_offset),
        sequence_number=sequence_number,
        remaining_quantity=parsed_quantity if direction is TradeDirection.BUY else None,
    )


def store_check_entry_bounds(entry: LedgerEntry) -> None:
    """Enforce the ledger_entry check constraints on one row write.

    Args:
        entry: Row about to be written.

    Returns:
        None: Valid rows pass silently.

    Raises:
        RuntimeError: Raised when a constraint would be violated, as the SQL store wraps CheckViolation.
    """

    remaining_quantity = entry.remaining_quantity
    if entry.direction is TradeDirection.BUY:
        if remaining_quantity is None or not Decimal("0") <= remaining_quantity <= entry.quantity:
            raise RuntimeError(f"ledger_entry remaining quantity bounds violated ledger_entry_id={entry.ledger_entry_id}")
    elif remaining_quantity is not None:
        raise RuntimeError(f"ledger_entry sell carries remaining quantity ledger_entry_id={entry.ledger_entry_id}")


class InMemoryLedgerStore:
    """Ledger store double with per-pair locks and snapshot rollback.

    Entries are copied on every read and write so callers observe persisted
    state only, as with a real database round trip.
    """

    def __init__(self):
        """Initialize empty store state.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: This stub does not raise value errors.
        """

        self.entries: dict[str, LedgerEntry] = {}
        self.positions: dict[LedgerPairKey, PositionRecord] = {}
        self.failing_pairs: set[LedgerPairKey] = set()
        self.committed_pairs: list[LedgerPairKey] = []
        self._sequence_number = 0
        self._state_lock = threading.Lock()
        self._pair_locks: dict[LedgerPairKey, threading.Lock] = {}

    @contextmanager
    def db_ledger_pair_transaction(self, account_id: str, instrument_id: str) -> Iterator[_InMemoryPairTransaction]:
        """Open one serialized pair transaction rolling back on error.

        Args:
            account_id: Account identifier.
            instrument_id: Instrument identifier.

        Returns:
            Iterator[_InMemoryPairTransaction]: Pair transaction context.

        Raises:
            ValueError: Raised when identifiers are blank.
        """

        if not account_id.strip() or not instrument_id.strip():
            raise ValueError("account_id and instrument_id must not be blank")
        pair_key = LedgerPairKey(account_id=account_id, instrument_id=instrument_id)
        with self._state_lock:
            pair_lock = self._pair_locks.setdefault(pair_key, threading.Lock())

        with pair_lock:
            with self._state_lock:
                entries_snapshot = copy.deepcopy(
                    {key: entry for key, entry in self.entries.items() if entry.pair_key == pair_key}
                )
                position_snapshot = self.positions.get(pair_key)
            try:
                yield _InMemoryPairTransaction(store=self, pair_key=pair_key)
            except Exception:
                with self._state_lock:
                    for ledger_entry_id in [key for key, entry in self.entries.items() if entry.pair_key == pair_key]:
                        del self.entries[ledger_entry_id]
                    self.entries.update(entries_snapshot)
                    self.positions.pop(pair_key, None)
                    if position_snapshot is not None:
                        self.positions[pair_key] = position_snapshot
                raise
            self.committed_pairs.append(pair_key)

    def db_ledger_entry_find_pair(self, ledger_entry_id: str) -> LedgerPairKey | None:
        """Resolve the owning pair of one entry."""

        entry = self.entries.get(ledger_entry_id)
        return None if entry is None else entry.pair_key

    def db_ledger_entry_get_by_id(self, ledger_entry_id: str) -> LedgerEntry | None:
        """Fetch one entry by identifier."""

        entry = self.entries.get(ledger_entry_id)
        return None if entry is None else replace(entry)

    def db_ledger_pair_list_distinct(self) -> list[LedgerPairKey]:
        """List distinct pairs ordered by account then instrument."""

        return sorted({entry.pair_key for entry in self.store_entries_snapshot()})

    def db_ledger_entry_list(
        self,
        account_id: str,
        instrument_id: str | None,
        limit: int,
        offset: int,
        from_utc: datetime | None = None,
        to_utc: datetime | None = None,
    ) -> list[LedgerEntry]:
        """List entries of one account in FIFO order within optional inclusive bounds."""

        if instrument_id is not None and not instrument_id.strip():
            raise ValueError("instrument_id must not be blank")
        matching_entries = [
            entry
            for entry in self.entries.values()
            if entry.account_id == account_id
            and (instrument_id is None or entry.instrument_id == instrument_id)
            and (from_utc is None or entry.trade_timestamp_utc >= from_utc)
            and (to_utc is None or entry.trade_timestamp_utc <= to_utc)
        ]
        ordered_entries = sorted(
            matching_entries,
            key=lambda entry: (entry.instrument_id, entry.trade_timestamp_utc, entry.sequence_number),
        )
        return [replace(entry) for entry in ordered_entries[offset : offset + limit]]

    def db_position_list(self, account_id: str, limit: int, offset: int) -> list[PositionRecord]:
        """List position rows of one account ordered by instrument."""

        rows = sorted(
            (record for record in self.positions.values() if record.account_id == account_id),
            key=lambda record: record.instrument_id,
        )
        return rows[offset : offset + limit]

    def store_next_sequence_number(self) -> int:
        """Return the next insertion sequence number."""

        with self._state_lock:
            self._sequence_number += 1
            return self._sequence_number

    def store_entries_snapshot(self) -> list[LedgerEntry]:
        """Return persisted entries captured under the state lock."""

        with self._state_lock:
            return list(self.entries.values())

    def store_pair_entries(self, pair_key: LedgerPairKey) -> list[LedgerEntry]:
        """Return persisted entries of one pair in FIFO order."""

        return sorted(
            (entry for entry in self.store_entries_snapshot() if entry.pair_key == pair_key),
            key=lambda entry: (entry.trade_timestamp_utc, entry.sequence_number, entry.ledger_entry_id),
        )


class _InMemoryPairTransaction:
    """Pair-bound operations over the in-memory store."""

    def __init__(self, store: InMemoryLedgerStore, pair_key: LedgerPairKey):
        """Bind the transaction to one pair.

        Args:
            store: Owning store.
            pair_key: Locked pair.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: This stub does not raise value errors.
        """

        self._store = store
        self.pair_key = pair_key

    def db_ledger_entry_insert(self, request: LedgerEntryInsertRequest) -> LedgerEntry:
        """Insert one entry with the next sequence number."""

        entry = LedgerEntry(
            ledger_entry_id=request.ledger_entry_id,
            account_id=request.account_id,
            instrument_id=request.instrument_id,
            direction=request.direction,
            quantity=request.quantity,
            price=request.price,
            commission=request.commission,
            trade_timestamp_utc=request.trade_timestamp_utc,
            sequence_number=self._store.store_next_sequence_number(),
            remaining_quantity=request.quantity if request.direction is TradeDirection.BUY else None,
            notes=request.notes,
            created_at_utc=request.created_at_utc,
            updated_at_utc=request.created_at_utc,
        )
        self._store.entries[entry.ledger_entry_id] = replace(entry)
        return entry

    def db_ledger_entry_get(self, ledger_entry_id: str) -> LedgerEntry | None:
        """Fetch one entry of this pair."""

        entry = self._store.entries.get(ledger_entry_id)
        if entry is None or entry.pair_key != self.pair_key:
            return None
        return replace(entry)

    def db_ledger_entry_update_fields(
        self,
        ledger_entry_id: str,
        request: LedgerEntryFieldUpdateRequest,
    ) -> LedgerEntry:
        """Update editable fields of one entry."""

        stored_entry = self.db_ledger_entry_get(ledger_entry_id)
        if stored_entry is None:
            raise LookupError(f"ledger entry not found ledger_entry_id={ledger_entry_id}")
        updated_entry = replace(
            stored_entry,
            quantity=request.quantity,
            remaining_quantity=request.quantity if stored_entry.direction is TradeDirection.BUY else None,
            price=request.price,
            commission=request.commission,
            trade_timestamp_utc=request.trade_timestamp_utc,
            notes=request.notes,
            updated_at_utc=request.updated_at_utc,
        )
        store_check_entry_bounds(updated_entry)
        self._store.entries[ledger_entry_id] = updated_entry
        return replace(updated_entry)

    def db_ledger_entry_delete(self, ledger_entry_id: str) -> None:
        """Delete one entry of this pair."""

        if self.db_ledger_entry_get(ledger_entry_id) is None:
            raise LookupError(f"ledger entry not found ledger_entry_id={ledger_entry_id}")
        del self._store.entries[ledger_entry_id]

    def db_ledger_entry_list_available_buys(self, cutoff_utc: datetime) -> list[LedgerEntry]:
        """List unconsumed lots dated at or before the cutoff."""

        return [
            replace(entry)
            for entry in self._store.store_pair_entries(self.pair_key)
            if entry.direction is TradeDirection.BUY
            and entry.remaining_quantity is not None
            and entry.remaining_quantity > 0
            and entry.trade_timestamp_utc <= cutoff_utc
        ]

    def db_ledger_entry_latest_timestamp(self) -> datetime | None:
        """Return the latest trade timestamp of this pair."""

        timestamps = [entry.trade_timestamp_utc for entry in self._store.store_pair_entries(self.pair_key)]
        return max(timestamps) if timestamps else None

    def db_ledger_entry_list_history(self) -> list[LedgerEntry]:
        """List the full pair history in FIFO order."""

        return [replace(entry) for entry in self._store.store_pair_entries(self.pair_key)]

    def db_ledger_entry_save_derived_many(self, entries: Sequence[LedgerEntry], updated_at_utc: datetime) -> None:
        """Persist derived fields; fails for pairs registered as failing."""

        if self.pair_key in self._store.failing_pairs:
            raise RuntimeError("ledger entry derived field update failed")
        for entry in entries:
            store_check_entry_bounds(entry)
            entry.updated_at_utc = updated_at_utc
            self._store.entries[entry.ledger_entry_id] = replace(entry)

    def db_position_get(self) -> PositionState | None:
        """Fetch the position of this pair."""

        record = self._store.positions.get(self.pair_key)
        return None if record is None else record.state

    def db_position_upsert(self, state: PositionState, updated_at_utc: datetime) -> None:
        """Create or replace the position of this pair."""

        self._store.positions[self.pair_key] = PositionRecord(
            account_id=self.pair_key.account_id,
            instrument_id=self.pair_key.instrument_id,
            state=state,
            updated_at_utc=updated_at_utc,
        )

    def db_position_delete(self) -> None:
        """Delete the position of this pair when present."""

        self._store.positions.pop(self.pair_key, None)


@pytest.fixture
def ledger_store() -> InMemoryLedgerStore:
    """Return an empty in-memory ledger store."""

    return InMemoryLedgerStore()


@pytest.fixture
def fixed_clock():
    """Return a deterministic UTC clock."""

    return lambda: datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def entry_factory():
    """Return the ledger entry builder."""

    return build_ledger_entry
