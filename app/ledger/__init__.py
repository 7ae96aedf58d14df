"""Ledger layer package for FIFO cost-basis matching and position boundaries."""

from .errors import LedgerEntryNotFoundError, LedgerInvalidOperationError, LedgerValidationError
from .fifo_engine import (
	FifoConsumption,
	FifoMatchResult,
	fifo_entry_sort_key,
	fifo_lot_unit_cost,
	fifo_match_sell,
	fifo_select_eligible_buys,
	fifo_sell_proceeds,
)
from .fifo_apply import FifoApplyOutcome, FifoClampAdjustment, fifo_apply_match
from .fifo_replay import FifoReplayResult, FifoShortfall, fifo_replay_history, fifo_reset_derived_fields
from .position import position_apply_entry, position_replay
from .interfaces import (
	LedgerMigrationPort,
	LedgerMigrationResult,
	LedgerPairFailure,
	LedgerServicePort,
	LedgerTransactionCreateRequest,
	LedgerTransactionUpdateRequest,
	LedgerTransactionWriteResult,
	PairRecalculationResult,
)
from .service import LedgerService

__all__ = [
	"LedgerEntryNotFoundError",
	"LedgerInvalidOperationError",
	"LedgerValidationError",
	"FifoConsumption",
	"FifoMatchResult",
	"fifo_entry_sort_key",
	"fifo_lot_unit_cost",
	"fifo_match_sell",
	"fifo_select_eligible_buys",
	"fifo_sell_proceeds",
	"FifoApplyOutcome",
	"FifoClampAdjustment",
	"fifo_apply_match",
	"FifoReplayResult",
	"FifoShortfall",
	"fifo_replay_history",
	"fifo_reset_derived_fields",
	"position_apply_entry",
	"position_replay",
	"LedgerMigrationPort",
	"LedgerMigrationResult",
	"LedgerPairFailure",
	"LedgerServicePort",
	"LedgerTransactionCreateRequest",
	"LedgerTransactionUpdateRequest",
	"LedgerTransactionWriteResult",
	"PairRecalculationResult",
	"LedgerService",
]
