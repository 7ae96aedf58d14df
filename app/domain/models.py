"""Typed domain models shared across runtime layers.

This module provides the ledger entry, pair identity and position contracts
used by the ledger engine, the db layer and the API surfaces.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


@dataclass(frozen=True)
class HealthStatus:
    """Health response contract used by health-check surfaces.

    Attributes:
        status: Overall status text for service health.
        detail: Additional message suitable for operational diagnostics.
    """

    status: str
    detail: str


class TradeDirection(str, Enum):
    """Closed set of ledger entry directions."""

    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: str) -> TradeDirection:
        """Parse direction text into a closed enum member.

        Args:
            value: Direction text (`BUY` or `SELL`, case-insensitive).

        Returns:
            TradeDirection: Matching direction member.

        Raises:
            ValueError: Raised when value is not a supported direction.
        """

        normalized_value = str(value).strip().upper()
        try:
            return cls(normalized_value)
        except ValueError as error:
            raise ValueError(f"unsupported trade direction={value}") from error


@dataclass(frozen=True, order=True)
class LedgerPairKey:
    """Identity of one (account, instrument) ledger pair.

    Attributes:
        account_id: Account identifier.
        instrument_id: Instrument identifier.
    """

    account_id: str
    instrument_id: str


@dataclass
class LedgerEntry:
    """One BUY or SELL ledger entry with its FIFO-derived fields.

    Attributes:
        ledger_entry_id: Entry identifier.
        account_id: Account identifier.
        instrument_id: Instrument identifier.
        direction: Entry direction.
        quantity: Positive traded quantity.
        price: Positive unit price.
        commission: Optional non-negative commission.
        trade_timestamp_utc: Offset-aware trade timestamp used for FIFO ordering.
        sequence_number: Insertion order used to break timestamp ties.
        remaining_quantity: Unconsumed lot quantity (BUY only).
        cost_basis: Matched acquisition cost (SELL only, None until computed).
        realized_pnl: Proceeds minus cost basis (SELL only, None until computed).
        notes: Optional free-text journal note.
        created_at_utc: Row creation timestamp.
        updated_at_utc: Last row update timestamp.
    """

    ledger_entry_id: str
    account_id: str
    instrument_id: str
    direction: TradeDirection
    quantity: Decimal
    price: Decimal
    commission: Decimal | None
    trade_timestamp_utc: datetime
    sequence_number: int = 0
    remaining_quantity: Decimal | None = None
    cost_basis: Decimal | None = None
    realized_pnl: Decimal | None = None
    notes: str | None = None
    created_at_utc: datetime | None = None
    updated_at_utc: datetime | None = None

    @property
    def pair_key(self) -> LedgerPairKey:
        """Return the (account, instrument) identity of this entry."""

        return LedgerPairKey(account_id=self.account_id, instrument_id=self.instrument_id)

    def ledger_entry_total_amount(self) -> Decimal:
        """Return settlement amount: commission adds to buys and reduces sells.

        Returns:
            Decimal: Price times quantity adjusted by commission.

        Raises:
            ValueError: Raised when direction is not a known member.
        """

        amount = self.price * self.quantity
        commission = self.commission or Decimal("0")
        if self.direction is TradeDirection.BUY:
            return amount + commission
        if self.direction is TradeDirection.SELL:
            return amount - commission
        raise ValueError(f"unsupported trade direction={self.direction}")


@dataclass(frozen=True)
class PositionState:
    """Derived holding summary for one ledger pair.

    Attributes:
        quantity: Quantity currently held.
        average_cost: Weighted-average unit cost.
        total_invested: Invested amount still attributed to the holding.
    """

    quantity: Decimal
    average_cost: Decimal
    total_invested: Decimal
