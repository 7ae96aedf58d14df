"""Typed request and result contracts for ledger orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from app.domain import LedgerEntry, LedgerPairKey, PositionState, TradeDirection

from .fifo_engine import FifoMatchResult


@dataclass(frozen=True)
class LedgerTransactionCreateRequest:
    """Input payload for recording one BUY or SELL.

    Attributes:
        account_id: Account identifier.
        instrument_id: Instrument identifier.
        direction: Entry direction.
        quantity: Positive quantity.
        price: Positive unit price.
        commission: Optional non-negative commission.
        trade_timestamp_utc: Offset-aware trade timestamp.
        notes: Optional journal note.
    """

    account_id: str
    instrument_id: str
    direction: TradeDirection
    quantity: Decimal
    price: Decimal
    commission: Decimal | None
    trade_timestamp_utc: datetime
    notes: str | None = None


@dataclass(frozen=True)
class LedgerTransactionUpdateRequest:
    """Input payload for editing one recorded entry.

    Direction and pair are immutable; change them by deleting and re-creating.

    Attributes:
        quantity: Positive quantity.
        price: Positive unit price.
        commission: Optional non-negative commission.
        trade_timestamp_utc: Offset-aware trade timestamp.
        notes: Optional journal note.
    """

    quantity: Decimal
    price: Decimal
    commission: Decimal | None
    trade_timestamp_utc: datetime
    notes: str | None = None


@dataclass(frozen=True)
class LedgerTransactionWriteResult:
    """Result payload for one create or update.

    Attributes:
        entry: Stored entry with derived fields as persisted.
        position: Position after the write, or None when flat.
        recalculated: Whether the pair was fully replayed instead of matched incrementally.
        match_result: Incremental sell match, when one was computed.
    """

    entry: LedgerEntry
    position: PositionState | None
    recalculated: bool
    match_result: FifoMatchResult | None = None


@dataclass(frozen=True)
class PairRecalculationResult:
    """Result payload for one pair recalculation.

    Attributes:
        pair_key: Recalculated pair.
        buy_count: BUY entries replayed.
        sell_count: SELL entries replayed.
        shortfall_count: Sells exceeding matched lot history.
        clamp_count: Lot decrements clamped at zero.
        position: Rebuilt position, or None when flat.
    """

    pair_key: LedgerPairKey
    buy_count: int
    sell_count: int
    shortfall_count: int
    clamp_count: int
    position: PositionState | None


@dataclass(frozen=True)
class LedgerPairFailure:
    """One pair whose recalculation failed during migration.

    Attributes:
        pair_key: Failed pair.
        error_type: Exception class name.
        error_message: Exception message.
    """

    pair_key: LedgerPairKey
    error_type: str
    error_message: str


@dataclass(frozen=True)
class LedgerMigrationResult:
    """Result payload for a full-ledger FIFO migration.

    Attributes:
        pair_count: Distinct pairs enumerated.
        recalculated: Successful pair results ordered by pair key.
        failures: Failed pairs ordered by pair key.
    """

    pair_count: int
    recalculated: tuple[PairRecalculationResult, ...]
    failures: tuple[LedgerPairFailure, ...]

    @property
    def succeeded(self) -> bool:
        """Return whether every pair was recalculated."""

        return len(self.failures) == 0


class LedgerMigrationPort(Protocol):
    """Port definition for whole-ledger FIFO recalculation."""

    def ledger_migrate_all(self, max_workers: int) -> LedgerMigrationResult:
        """Recalculate every distinct pair, parallel across pairs.

        Args:
            max_workers: Maximum pairs processed concurrently.

        Returns:
            LedgerMigrationResult: Per-pair outcomes.

        Raises:
            ValueError: Raised when max_workers is invalid.
            RuntimeError: Raised when pair enumeration fails.
        """



class LedgerServicePort(LedgerMigrationPort, Protocol):
    """Port definition for ledger writes and pair maintenance used by API surfaces."""

    def ledger_transaction_create(self, request: LedgerTransactionCreateRequest) -> LedgerTransactionWriteResult:
        """Record one BUY or SELL.

        Args:
            request: Entry values.

        Returns:
            LedgerTransactionWriteResult: Stored entry and position.

        Raises:
            LedgerValidationError: Raised when request values are invalid.
            RuntimeError: Raised when persistence fails.
        """

    def ledger_transaction_update(
        self,
        ledger_entry_id: str,
        request: LedgerTransactionUpdateRequest,
    ) -> LedgerTransactionWriteResult:
        """Edit one entry and recalculate its pair.

        Args:
            ledger_entry_id: Entry identifier.
            request: New editable field values.

        Returns:
            LedgerTransactionWriteResult: Recalculated entry and rebuilt position.

        Raises:
            LedgerEntryNotFoundError: Raised when the entry does not exist.
            LedgerValidationError: Raised when request values are invalid.
        """

    def ledger_transaction_delete(self, ledger_entry_id: str) -> PairRecalculationResult:
        """Delete one entry and recalculate its pair.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            PairRecalculationResult: Recalculation summary.

        Raises:
            LedgerEntryNotFoundError: Raised when the entry does not exist.
        """

    def ledger_recalculate_pair(self, account_id: str, instrument_id: str) -> PairRecalculationResult:
        """Reset and replay one pair, then rebuild its position.

        Args:
            account_id: Account identifier.
            instrument_id: Instrument identifier.

        Returns:
            PairRecalculationResult: Recalculation summary.

        Raises:
            LedgerValidationError: Raised when identifiers are blank.
        """


__all__ = [
    "LedgerMigrationPort",
    "LedgerMigrationResult",
    "LedgerPairFailure",
    "LedgerServicePort",
    "LedgerTransactionCreateRequest",
    "LedgerTransactionUpdateRequest",
    "LedgerTransactionWriteResult",
    "PairRecalculationResult",
]
