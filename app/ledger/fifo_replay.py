"""Full-history FIFO replay used by pair recalculation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from app.domain import LedgerEntry, TradeDirection

from .fifo_apply import FifoClampAdjustment, fifo_apply_match
from .fifo_engine import fifo_entry_sort_key, fifo_match_sell, fifo_select_eligible_buys


@dataclass(frozen=True)
class FifoShortfall:
    """Sell quantity left uncovered by lot history during replay.

    Attributes:
        ledger_entry_id: SELL entry identifier.
        unmatched_quantity: Quantity costed at zero.
    """

    ledger_entry_id: str
    unmatched_quantity: Decimal


@dataclass(frozen=True)
class FifoReplayResult:
    """Output payload for one pair history replay.

    Attributes:
        entries: Replayed entries in FIFO order with derived fields rewritten.
        buy_count: Number of BUY entries.
        sell_count: Number of SELL entries.
        shortfalls: Sells whose quantity exceeded matched history.
        clamp_adjustments: Lot decrements clamped at zero.
    """

    entries: tuple[LedgerEntry, ...]
    buy_count: int
    sell_count: int
    shortfalls: tuple[FifoShortfall, ...]
    clamp_adjustments: tuple[FifoClampAdjustment, ...]


def fifo_reset_derived_fields(entries: Iterable[LedgerEntry]) -> None:
    """Reset FIFO-derived fields to their pre-matching state.

    Args:
        entries: Entries to reset in place.

    Returns:
        None: Entries are mutated in place.

    Raises:
        ValueError: Raised when an entry carries an unknown direction.
    """

    for entry in entries:
        if entry.direction is TradeDirection.BUY:
            entry.remaining_quantity = entry.quantity
        elif entry.direction is TradeDirection.SELL:
            entry.remaining_quantity = None
        else:
            raise ValueError(f"unsupported trade direction={entry.direction}")
        entry.cost_basis = None
        entry.realized_pnl = None


def fifo_replay_history(entries: Iterable[LedgerEntry]) -> FifoReplayResult:
    """Rebuild FIFO-derived fields for one pair by replaying its full history.

    Each sell may draw on every lot dated at or before it, including lots
    recorded later at the same timestamp. Sells observe lots as already
    decremented by earlier sells in the replay.
    Running the replay twice over the same entries yields identical fields.

    Args:
        entries: Complete history of one (account, instrument) pair.

    Returns:
        FifoReplayResult: Replayed entries plus shortfall and clamp diagnostics.

    Raises:
        ValueError: Raised when entries span more than one pair.
    """

    ordered_entries = sorted(entries, key=fifo_entry_sort_key)
    pair_keys = {entry.pair_key for entry in ordered_entries}
    if len(pair_keys) > 1:
        raise ValueError("fifo replay requires entries from exactly one account/instrument pair")

    fifo_reset_derived_fields(ordered_entries)

    buy_lots = [entry for entry in ordered_entries if entry.direction is TradeDirection.BUY]
    shortfalls: list[FifoShortfall] = []
    clamp_adjustments: list[FifoClampAdjustment] = []
    sell_count = 0

    for entry in ordered_entries:
        if entry.direction is TradeDirection.BUY:
            continue

        sell_count += 1
        match_result = fifo_match_sell(entry, fifo_select_eligible_buys(entry, buy_lots))
        apply_outcome = fifo_apply_match(entry, match_result)
        clamp_adjustments.extend(apply_outcome.clamp_adjustments)
        if match_result.has_shortfall:
            shortfalls.append(
                FifoShortfall(
                    ledger_entry_id=entry.ledger_entry_id,
                    unmatched_quantity=match_result.unmatched_quantity,
                )
            )

    return FifoReplayResult(
        entries=tuple(ordered_entries),
        buy_count=len(buy_lots),
        sell_count=sell_count,
        shortfalls=tuple(shortfalls),
        clamp_adjustments=tuple(clamp_adjustments),
    )


__all__ = ["FifoReplayResult", "FifoShortfall", "fifo_replay_history", "fifo_reset_derived_fields"]
