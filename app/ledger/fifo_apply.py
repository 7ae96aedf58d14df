"""Commit step for FIFO match results onto in-memory ledger entries."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.domain import LedgerEntry, TradeDirection

from .errors import LedgerInvalidOperationError
from .fifo_engine import FifoMatchResult

_ZERO = Decimal("0")


@dataclass(frozen=True)
class FifoClampAdjustment:
    """Remaining-quantity clamp applied to keep one lot non-negative.

    Attributes:
        ledger_entry_id: Clamped BUY lot identifier.
        expected_remaining_quantity: Negative value the decrement would have produced.
        applied_remaining_quantity: Value actually written (zero).
    """

    ledger_entry_id: str
    expected_remaining_quantity: Decimal
    applied_remaining_quantity: Decimal


@dataclass(frozen=True)
class FifoApplyOutcome:
    """Entries touched by one apply step.

    Attributes:
        touched_entries: Consumed BUY lots followed by the SELL, for one batch write.
        clamp_adjustments: Lots whose decrement was clamped at zero.
    """

    touched_entries: tuple[LedgerEntry, ...]
    clamp_adjustments: tuple[FifoClampAdjustment, ...]


def fifo_apply_match(sell: LedgerEntry, match_result: FifoMatchResult) -> FifoApplyOutcome:
    """Write match results onto the sell and decrement consumed lots.

    The returned entries must be persisted together; callers own the
    transactional boundary.

    Args:
        sell: SELL entry that was matched.
        match_result: Result of `fifo_match_sell` for this sell.

    Returns:
        FifoApplyOutcome: Touched entries and any clamp adjustments.

    Raises:
        LedgerInvalidOperationError: Raised when `sell` is not a SELL or a consumption references a non-BUY.
    """

    if sell.direction is not TradeDirection.SELL:
        raise LedgerInvalidOperationError("FIFO apply step applies only to SELL entries")

    sell.cost_basis = match_result.cost_basis
    sell.realized_pnl = match_result.realized_pnl

    touched_entries: list[LedgerEntry] = []
    clamp_adjustments: list[FifoClampAdjustment] = []

    for consumption in match_result.consumptions:
        buy_entry = consumption.buy_entry
        if buy_entry.direction is not TradeDirection.BUY:
            raise LedgerInvalidOperationError(
                f"consumption references non-BUY entry ledger_entry_id={buy_entry.ledger_entry_id}"
            )

        current_remaining = buy_entry.remaining_quantity
        if current_remaining is None:
            current_remaining = _ZERO
        expected_remaining = current_remaining - consumption.consumed_quantity
        applied_remaining = max(expected_remaining, _ZERO)
        if applied_remaining != expected_remaining:
            clamp_adjustments.append(
                FifoClampAdjustment(
                    ledger_entry_id=buy_entry.ledger_entry_id,
                    expected_remaining_quantity=expected_remaining,
                    applied_remaining_quantity=applied_remaining,
                )
            )

        buy_entry.remaining_quantity = applied_remaining
        if all(touched is not buy_entry for touched in touched_entries):
            touched_entries.append(buy_entry)

    touched_entries.append(sell)
    return FifoApplyOutcome(
        touched_entries=tuple(touched_entries),
        clamp_adjustments=tuple(clamp_adjustments),
    )


__all__ = ["FifoApplyOutcome", "FifoClampAdjustment", "fifo_apply_match"]
