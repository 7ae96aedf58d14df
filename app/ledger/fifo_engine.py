"""FIFO lot matching primitives for sell cost-basis computation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from app.domain import LedgerEntry, TradeDirection

from .errors import LedgerInvalidOperationError

_ZERO = Decimal("0")


@dataclass(frozen=True)
class FifoConsumption:
    """One lot consumption produced by FIFO matching.

    Attributes:
        buy_entry: Consumed BUY lot.
        consumed_quantity: Quantity taken from the lot.
        consumed_cost: Lot unit cost times consumed quantity.
    """

    buy_entry: LedgerEntry
    consumed_quantity: Decimal
    consumed_cost: Decimal


@dataclass(frozen=True)
class FifoMatchResult:
    """Output payload for one FIFO sell match.

    Attributes:
        realized_pnl: Sell proceeds minus matched cost basis.
        cost_basis: Sum of consumed lot costs.
        consumptions: Ordered lot consumptions (oldest lot first).
        unmatched_quantity: Sell quantity not covered by any lot.
    """

    realized_pnl: Decimal
    cost_basis: Decimal
    consumptions: tuple[FifoConsumption, ...]
    unmatched_quantity: Decimal

    @property
    def has_shortfall(self) -> bool:
        """Return whether the sell exceeded the available lot history."""

        return self.unmatched_quantity > _ZERO


def fifo_match_sell(sell: LedgerEntry, eligible_buys: Sequence[LedgerEntry]) -> FifoMatchResult:
    """Match one SELL entry against eligible BUY lots, oldest first.

    `eligible_buys` must already be limited to the sell's pair, to lots dated at
    or before the sell, and sorted by `fifo_entry_sort_key`. Lots without
    remaining quantity are skipped. Uncovered sell quantity contributes zero
    cost and is reported through `unmatched_quantity`.

    Args:
        sell: SELL ledger entry to cost.
        eligible_buys: Ordered candidate BUY lots.

    Returns:
        FifoMatchResult: Cost basis, realized PnL and lot consumptions.

    Raises:
        LedgerInvalidOperationError: Raised when `sell` is not a SELL entry.
    """

    if sell.direction is not TradeDirection.SELL:
        raise LedgerInvalidOperationError(
            f"FIFO matching applies only to SELL entries, got direction={sell.direction.value}"
        )

    remaining_to_fill = sell.quantity
    cost_basis = _ZERO
    consumptions: list[FifoConsumption] = []

    for buy_entry in eligible_buys:
        if remaining_to_fill <= _ZERO:
            break

        available_quantity = buy_entry.remaining_quantity
        if available_quantity is None or available_quantity <= _ZERO:
            continue

        take_quantity = min(remaining_to_fill, available_quantity)
        consumed_cost = fifo_lot_unit_cost(buy_entry) * take_quantity

        consumptions.append(
            FifoConsumption(
                buy_entry=buy_entry,
                consumed_quantity=take_quantity,
                consumed_cost=consumed_cost,
            )
        )
        cost_basis += consumed_cost
        remaining_to_fill -= take_quantity

    return FifoMatchResult(
        realized_pnl=fifo_sell_proceeds(sell) - cost_basis,
        cost_basis=cost_basis,
        consumptions=tuple(consumptions),
        unmatched_quantity=max(remaining_to_fill, _ZERO),
    )


def fifo_lot_unit_cost(buy_entry: LedgerEntry) -> Decimal:
    """Return commission-inclusive unit cost over the lot's original quantity.

    Args:
        buy_entry: BUY lot.

    Returns:
        Decimal: Unit cost, or zero for a zero-quantity lot.

    Raises:
        LedgerInvalidOperationError: Raised when `buy_entry` is not a BUY entry.
    """

    if buy_entry.direction is not TradeDirection.BUY:
        raise LedgerInvalidOperationError("lot unit cost applies only to BUY entries")
    if buy_entry.quantity == _ZERO:
        return _ZERO
    return buy_entry.ledger_entry_total_amount() / buy_entry.quantity


def fifo_sell_proceeds(sell: LedgerEntry) -> Decimal:
    """Return sell proceeds net of the sell commission.

    Args:
        sell: SELL ledger entry.

    Returns:
        Decimal: Price times quantity minus commission.

    Raises:
        LedgerInvalidOperationError: Raised when `sell` is not a SELL entry.
    """

    if sell.direction is not TradeDirection.SELL:
        raise LedgerInvalidOperationError("sell proceeds apply only to SELL entries")
    return sell.ledger_entry_total_amount()


def fifo_entry_sort_key(entry: LedgerEntry) -> tuple[datetime, int, str]:
    """Return deterministic FIFO ordering key (timestamp, insertion order, id)."""

    return (entry.trade_timestamp_utc, entry.sequence_number, entry.ledger_entry_id)


def fifo_select_eligible_buys(sell: LedgerEntry, entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """Select BUY lots a SELL may consume, ordered oldest first.

    Args:
        sell: SELL ledger entry defining pair and timestamp cutoff.
        entries: Candidate ledger entries (any direction, any pair).

    Returns:
        list[LedgerEntry]: Same-pair BUY lots with remaining quantity dated at or before the sell.

    Raises:
        LedgerInvalidOperationError: Raised when `sell` is not a SELL entry.
    """

    if sell.direction is not TradeDirection.SELL:
        raise LedgerInvalidOperationError("eligible lot selection applies only to SELL entries")

    sell_pair_key = sell.pair_key
    eligible_buys = [
        entry
        for entry in entries
        if entry.direction is TradeDirection.BUY
        and entry.pair_key == sell_pair_key
        and entry.remaining_quantity is not None
        and entry.remaining_quantity > _ZERO
        and entry.trade_timestamp_utc <= sell.trade_timestamp_utc
    ]
    return sorted(eligible_buys, key=fifo_entry_sort_key)


__all__ = [
    "FifoConsumption",
    "FifoMatchResult",
    "fifo_entry_sort_key",
    "fifo_lot_unit_cost",
    "fifo_match_sell",
    "fifo_select_eligible_buys",
    "fifo_sell_proceeds",
]
