"""Weighted-average position aggregation for one ledger pair.

Position cost uses the pre-sell average cost and is independent from FIFO cost
basis; the two figures are expected to diverge.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from app.domain import LedgerEntry, PositionState, TradeDirection

from .fifo_engine import fifo_entry_sort_key

_ZERO = Decimal("0")


def position_apply_entry(state: PositionState | None, entry: LedgerEntry) -> PositionState | None:
    """Apply one written ledger entry to a position summary.

    Args:
        state: Current position, or None when no row exists.
        entry: Ledger entry that was written.

    Returns:
        PositionState | None: Updated position, or None when the holding is flat.

    Raises:
        ValueError: Raised when entry direction is unknown.
    """

    current_quantity = state.quantity if state is not None else _ZERO
    current_invested = state.total_invested if state is not None else _ZERO
    new_quantity, new_invested = _position_step(current_quantity, current_invested, entry)
    return _position_build_state(new_quantity, new_invested)


def position_replay(entries: Iterable[LedgerEntry]) -> PositionState | None:
    """Rebuild a position from the full pair history in FIFO order.

    Running quantity is carried through the whole history, so the rebuilt
    quantity always equals total bought minus total sold.

    Args:
        entries: Complete history of one ledger pair.

    Returns:
        PositionState | None: Final position, or None when flat.

    Raises:
        ValueError: Raised when an entry direction is unknown.
    """

    quantity = _ZERO
    invested = _ZERO
    for entry in sorted(entries, key=fifo_entry_sort_key):
        quantity, invested = _position_step(quantity, invested, entry)
    return _position_build_state(quantity, invested)


def _position_step(quantity: Decimal, invested: Decimal, entry: LedgerEntry) -> tuple[Decimal, Decimal]:
    """Advance running quantity and invested amount by one entry.

    Args:
        quantity: Running quantity before the entry.
        invested: Running invested amount before the entry.
        entry: Ledger entry to apply.

    Returns:
        tuple[Decimal, Decimal]: Running quantity and invested amount after the entry.

    Raises:
        ValueError: Raised when entry direction is unknown.
    """

    if entry.direction is TradeDirection.BUY:
        return (
            quantity + entry.quantity,
            invested + entry.price * entry.quantity + (entry.commission or _ZERO),
        )

    if entry.direction is TradeDirection.SELL:
        if quantity > _ZERO and invested > _ZERO:
            sold_ratio = min(entry.quantity / quantity, Decimal("1"))
            invested -= invested * sold_ratio
        return quantity - entry.quantity, invested

    raise ValueError(f"unsupported trade direction={entry.direction}")


def _position_build_state(quantity: Decimal, invested: Decimal) -> PositionState | None:
    """Build position state, collapsing flat or short holdings to None."""

    if quantity <= _ZERO:
        return None
    return PositionState(
        quantity=quantity,
        average_cost=invested / quantity,
        total_invested=invested,
    )


__all__ = ["position_apply_entry", "position_replay"]
