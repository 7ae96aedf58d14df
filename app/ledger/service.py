"""Ledger orchestration: transaction writes, FIFO recalculation and position upkeep."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence
from uuid import uuid4

from app.db import (
    LedgerEntryFieldUpdateRequest,
    LedgerEntryInsertRequest,
    LedgerPairTransactionPort,
    LedgerStoreRepositoryPort,
)
from app.domain import LedgerEntry, LedgerPairKey, PositionState, TradeDirection
from app.jobs.instrumentation import job_measure_performance

from .errors import LedgerEntryNotFoundError, LedgerValidationError
from .fifo_apply import FifoApplyOutcome, FifoClampAdjustment, fifo_apply_match
from .fifo_engine import FifoMatchResult, fifo_match_sell
from .fifo_replay import fifo_replay_history
from .interfaces import (
    LedgerServicePort,
    LedgerMigrationResult,
    LedgerPairFailure,
    LedgerTransactionCreateRequest,
    LedgerTransactionUpdateRequest,
    LedgerTransactionWriteResult,
    PairRecalculationResult,
)
from .position import position_apply_entry, position_replay

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_MIGRATION_PROGRESS_INTERVAL = 10


def _ledger_utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ledger_new_entry_id() -> str:
    return str(uuid4())


class LedgerService(LedgerServicePort):
    """Coordinate FIFO matching, recalculation and position upkeep per pair.

    Every mutating operation runs inside one pair transaction from the
    repository, so the entry write, the lot decrements, the sell's derived
    fields and the position row commit or roll back together.
    """

    def __init__(
        self,
        repository: LedgerStoreRepositoryPort,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        """Initialize ledger service dependencies.

        Args:
            repository: DB-layer ledger store.
            clock: Optional UTC clock used for created/updated timestamps.
            id_factory: Optional ledger entry identifier factory.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: Raised when repository is invalid.
        """

        if repository is None:
            raise ValueError("repository must not be None")
        self._repository = repository
        self._clock = clock or _ledger_utc_now
        self._id_factory = id_factory or _ledger_new_entry_id

    @job_measure_performance(layer="SERVICE")
    def ledger_transaction_create(self, request: LedgerTransactionCreateRequest) -> LedgerTransactionWriteResult:
        """Record one BUY or SELL and update FIFO state and position.

        A SELL is matched against available lots and applied immediately. An
        entry dated at or before the latest recorded entry of its pair triggers a
        full pair recalculation instead, so earlier or same-time sells see it.

        Args:
            request: Entry values.

        Returns:
            LedgerTransactionWriteResult: Stored entry, position and match details.

        Raises:
            LedgerValidationError: Raised when request values are invalid.
            RuntimeError: Raised when persistence fails.
        """

        _ledger_validate_entry_values(
            quantity=request.quantity,
            price=request.price,
            commission=request.commission,
            trade_timestamp_utc=request.trade_timestamp_utc,
        )
        account_id = _ledger_validate_identifier(request.account_id, "account_id")
        instrument_id = _ledger_validate_identifier(request.instrument_id, "instrument_id")
        if not isinstance(request.direction, TradeDirection):
            raise LedgerValidationError(f"unsupported trade direction={request.direction}")

        with self._repository.db_ledger_pair_transaction(account_id, instrument_id) as pair_transaction:
            latest_timestamp_utc = pair_transaction.db_ledger_entry_latest_timestamp()
            written_at_utc = self._clock()
            entry = pair_transaction.db_ledger_entry_insert(
                LedgerEntryInsertRequest(
                    ledger_entry_id=self._id_factory(),
                    account_id=account_id,
                    instrument_id=instrument_id,
                    direction=request.direction,
                    quantity=request.quantity,
                    price=request.price,
                    commission=request.commission,
                    trade_timestamp_utc=request.trade_timestamp_utc,
                    notes=request.notes,
                    created_at_utc=written_at_utc,
                )
            )

            if latest_timestamp_utc is not None and request.trade_timestamp_utc <= latest_timestamp_utc:
                logger.info(
                    "back-dated or same-time ledger entry triggers pair recalculation ledger_entry_id=%s account_id=%s instrument_id=%s",
                    entry.ledger_entry_id,
                    account_id,
                    instrument_id,
                )
                recalculation = self._ledger_recalculate_in_transaction(pair_transaction)
                return LedgerTransactionWriteResult(
                    entry=_ledger_find_replayed_entry(recalculation.entries, entry.ledger_entry_id),
                    position=recalculation.position,
                    recalculated=True,
                )

            match_result = None
            if entry.direction is TradeDirection.SELL:
                eligible_buys = pair_transaction.db_ledger_entry_list_available_buys(entry.trade_timestamp_utc)
                match_result = self.ledger_match_sell(entry, eligible_buys)
                self.ledger_apply_match(pair_transaction, entry, match_result)

            position = self.position_on_transaction_written(pair_transaction, entry)
            return LedgerTransactionWriteResult(
                entry=entry,
                position=position,
                recalculated=False,
                match_result=match_result,
            )

    @job_measure_performance(layer="SERVICE")
    def ledger_transaction_update(
        self,
        ledger_entry_id: str,
        request: LedgerTransactionUpdateRequest,
    ) -> LedgerTransactionWriteResult:
        """Edit one entry, then recalculate its pair and rebuild the position.

        Args:
            ledger_entry_id: Entry identifier.
            request: New editable field values.

        Returns:
            LedgerTransactionWriteResult: Entry with recalculated derived fields and rebuilt position.

        Raises:
            LedgerEntryNotFoundError: Raised when the entry does not exist.
            LedgerValidationError: Raised when request values are invalid.
            RuntimeError: Raised when persistence fails.
        """

        _ledger_validate_entry_values(
            quantity=request.quantity,
            price=request.price,
            commission=request.commission,
            trade_timestamp_utc=request.trade_timestamp_utc,
        )
        pair_key = self._ledger_resolve_pair(ledger_entry_id)

        with self._repository.db_ledger_pair_transaction(
            pair_key.account_id,
            pair_key.instrument_id,
        ) as pair_transaction:
            if pair_transaction.db_ledger_entry_get(ledger_entry_id) is None:
                raise LedgerEntryNotFoundError(f"ledger entry not found ledger_entry_id={ledger_entry_id}")

            pair_transaction.db_ledger_entry_update_fields(
                ledger_entry_id,
                LedgerEntryFieldUpdateRequest(
                    quantity=request.quantity,
                    price=request.price,
                    commission=request.commission,
                    trade_timestamp_utc=request.trade_timestamp_utc,
                    notes=request.notes,
                    updated_at_utc=self._clock(),
                ),
            )
            recalculation = self._ledger_recalculate_in_transaction(pair_transaction)
            return LedgerTransactionWriteResult(
                entry=_ledger_find_replayed_entry(recalculation.entries, ledger_entry_id),
                position=recalculation.position,
                recalculated=True,
            )

    @job_measure_performance(layer="SERVICE")
    def ledger_transaction_delete(self, ledger_entry_id: str) -> PairRecalculationResult:
        """Delete one entry, then recalculate its pair and rebuild the position.

        Args:
            ledger_entry_id: Entry identifier.

        Returns:
            PairRecalculationResult: Recalculation summary of the affected pair.

        Raises:
            LedgerEntryNotFoundError: Raised when the entry does not exist.
            RuntimeError: Raised when persistence fails.
        """

        pair_key = self._ledger_resolve_pair(ledger_entry_id)

        with self._repository.db_ledger_pair_transaction(
            pair_key.account_id,
            pair_key.instrument_id,
        ) as pair_transaction:
            if pair_transaction.db_ledger_entry_get(ledger_entry_id) is None:
                raise LedgerEntryNotFoundError(f"ledger entry not found ledger_entry_id={ledger_entry_id}")
            pair_transaction.db_ledger_entry_delete(ledger_entry_id)
            return self._ledger_recalculate_in_transaction(pair_transaction).summary

    def ledger_match_sell(self, sell: LedgerEntry, eligible_buys: Sequence[LedgerEntry]) -> FifoMatchResult:
        """Match one sell and log a warning when lot history is insufficient.

        Args:
            sell: SELL entry.
            eligible_buys: Ordered eligible lots of the same pair.

        Returns:
            FifoMatchResult: Pure match result.

        Raises:
            LedgerInvalidOperationError: Raised when `sell` is not a SELL entry.
        """

        match_result = fifo_match_sell(sell, eligible_buys)
        if match_result.has_shortfall:
            logger.warning(
                "sell quantity exceeds available lots; uncovered quantity costed at zero "
                "ledger_entry_id=%s account_id=%s instrument_id=%s unmatched_quantity=%s",
                sell.ledger_entry_id,
                sell.account_id,
                sell.instrument_id,
                match_result.unmatched_quantity,
            )
        return match_result

    def ledger_apply_match(
        self,
        pair_transaction: LedgerPairTransactionPort,
        sell: LedgerEntry,
        match_result: FifoMatchResult,
    ) -> FifoApplyOutcome:
        """Apply a match and persist the sell plus consumed lots as one batch.

        Args:
            pair_transaction: Open transaction of the sell's pair.
            sell: SELL entry that was matched.
            match_result: Match to commit.

        Returns:
            FifoApplyOutcome: Touched entries and clamp adjustments.

        Raises:
            LedgerInvalidOperationError: Raised when `sell` is not a SELL entry.
            RuntimeError: Raised when persistence fails; the pair transaction rolls back.
        """

        apply_outcome = fifo_apply_match(sell, match_result)
        _ledger_log_clamp_adjustments(apply_outcome.clamp_adjustments)
        pair_transaction.db_ledger_entry_save_derived_many(apply_outcome.touched_entries, self._clock())
        logger.debug(
            "fifo match applied ledger_entry_id=%s realized_pnl=%s cost_basis=%s consumed_lot_count=%s",
            sell.ledger_entry_id,
            match_result.realized_pnl,
            match_result.cost_basis,
            len(apply_outcome.touched_entries) - 1,
        )
        return apply_outcome

    def position_on_transaction_written(
        self,
        pair_transaction: LedgerPairTransactionPort,
        entry: LedgerEntry,
    ) -> PositionState | None:
        """Apply the incremental position rule for one newly written entry.

        Args:
            pair_transaction: Open transaction of the entry's pair.
            entry: Written entry.

        Returns:
            PositionState | None: Updated position, or None when the row was deleted.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

        current_position = pair_transaction.db_position_get()
        if entry.direction is TradeDirection.SELL and (
            current_position is None or entry.quantity > current_position.quantity
        ):
            logger.warning(
                "sell exceeds held position quantity ledger_entry_id=%s account_id=%s instrument_id=%s",
                entry.ledger_entry_id,
                entry.account_id,
                entry.instrument_id,
            )

        new_position = position_apply_entry(current_position, entry)
        self._position_store(pair_transaction, new_position)
        return new_position

    @job_measure_performance(layer="SERVICE")
    def position_rebuild(self, account_id: str, instrument_id: str) -> PositionState | None:
        """Rebuild one pair's position from its full history.

        Args:
            account_id: Account identifier.
            instrument_id: Instrument identifier.

        Returns:
            PositionState | None: Rebuilt position, or None when flat.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

        with self._repository.db_ledger_pair_transaction(
            _ledger_validate_identifier(account_id, "account_id"),
            _ledger_validate_identifier(instrument_id, "instrument_id"),
        ) as pair_transaction:
            return self._position_rebuild_in_transaction(
                pair_transaction,
                pair_transaction.db_ledger_entry_list_history(),
            )

    @job_measure_performance(layer="SERVICE")
    def ledger_recalculate_pair(self, account_id: str, instrument_id: str) -> PairRecalculationResult:
        """Reset and replay one pair's FIFO state, then rebuild its position.

        Args:
            account_id: Account identifier.
            instrument_id: Instrument identifier.

        Returns:
            PairRecalculationResult: Recalculation summary.

        Raises:
            LedgerValidationError: Raised when identifiers are blank.
            RuntimeError: Raised when persistence fails.
        """

        normalized_account_id = _ledger_validate_identifier(account_id, "account_id")
        normalized_instrument_id = _ledger_validate_identifier(instrument_id, "instrument_id")
        logger.info(
            "fifo recalculation started account_id=%s instrument_id=%s",
            normalized_account_id,
            normalized_instrument_id,
        )
        with self._repository.db_ledger_pair_transaction(
            normalized_account_id,
            normalized_instrument_id,
        ) as pair_transaction:
            summary = self._ledger_recalculate_in_transaction(pair_transaction).summary

        logger.info(
            "fifo recalculation completed account_id=%s instrument_id=%s buy_count=%s sell_count=%s",
            normalized_account_id,
            normalized_instrument_id,
            summary.buy_count,
            summary.sell_count,
        )
        return summary

    @job_measure_performance(layer="SERVICE")
    def ledger_migrate_all(self, max_workers: int) -> LedgerMigrationResult:
        """Recalculate every distinct pair, parallel across pairs.

        Each pair replays sequentially inside its own transaction; a failing
        pair is recorded and does not stop the others.

        Args:
            max_workers: Maximum pairs processed concurrently.

        Returns:
            LedgerMigrationResult: Per-pair outcomes ordered by pair key.

        Raises:
            ValueError: Raised when max_workers is invalid.
            RuntimeError: Raised when pair enumeration fails.
        """

        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        pair_keys = self._repository.db_ledger_pair_list_distinct()
        pair_count = len(pair_keys)
        logger.info("fifo migration started pair_count=%s max_workers=%s", pair_count, max_workers)

        recalculated: list[PairRecalculationResult] = []
        failures: list[LedgerPairFailure] = []
        if pair_count == 0:
            return LedgerMigrationResult(pair_count=0, recalculated=(), failures=())

        with ThreadPoolExecutor(max_workers=min(max_workers, pair_count)) as executor:
            future_by_pair = {
                executor.submit(self.ledger_recalculate_pair, pair_key.account_id, pair_key.instrument_id): pair_key
                for pair_key in pair_keys
            }
            for processed_count, future in enumerate(as_completed(future_by_pair), start=1):
                pair_key = future_by_pair[future]
                try:
                    recalculated.append(future.result())
                except Exception as error:  # pylint: disable=broad-exception-caught
                    logger.exception(
                        "fifo migration pair failed account_id=%s instrument_id=%s",
                        pair_key.account_id,
                        pair_key.instrument_id,
                    )
                    failures.append(
                        LedgerPairFailure(
                            pair_key=pair_key,
                            error_type=type(error).__name__,
                            error_message=str(error),
                        )
                    )
                if processed_count % _MIGRATION_PROGRESS_INTERVAL == 0:
                    logger.info("fifo migration progress processed=%s pair_count=%s", processed_count, pair_count)

        logger.info(
            "fifo migration completed pair_count=%s failed_count=%s",
            pair_count,
            len(failures),
        )
        return LedgerMigrationResult(
            pair_count=pair_count,
            recalculated=tuple(sorted(recalculated, key=lambda result: result.pair_key)),
            failures=tuple(sorted(failures, key=lambda failure: failure.pair_key)),
        )

    def _ledger_recalculate_in_transaction(self, pair_transaction: LedgerPairTransactionPort) -> _PairRecalculation:
        """Replay pair history, persist derived fields and rebuild the position.

        Args:
            pair_transaction: Open pair transaction.

        Returns:
            _PairRecalculation: Replayed entries and summary.

        Raises:
            RuntimeError: Raised when persistence fails.
        """

        history = pair_transaction.db_ledger_entry_list_history()
        replay_result = fifo_replay_history(history)

        for shortfall in replay_result.shortfalls:
            logger.warning(
                "sell quantity exceeds available lots during replay; uncovered quantity costed at zero "
                "ledger_entry_id=%s account_id=%s instrument_id=%s unmatched_quantity=%s",
                shortfall.ledger_entry_id,
                pair_transaction.pair_key.account_id,
                pair_transaction.pair_key.instrument_id,
                shortfall.unmatched_quantity,
            )
        _ledger_log_clamp_adjustments(replay_result.clamp_adjustments)

        pair_transaction.db_ledger_entry_save_derived_many(replay_result.entries, self._clock())
        position = self._position_rebuild_in_transaction(pair_transaction, replay_result.entries)

        return _PairRecalculation(
            entries=replay_result.entries,
            summary=PairRecalculationResult(
                pair_key=pair_transaction.pair_key,
                buy_count=replay_result.buy_count,
                sell_count=replay_result.sell_count,
                shortfall_count=len(replay_result.shortfalls),
                clamp_count=len(replay_result.clamp_adjustments),
                position=position,
            ),
        )

    def _position_rebuild_in_transaction(
        self,
        pair_transaction: LedgerPairTransactionPort,
        history: Sequence[LedgerEntry],
    ) -> PositionState | None:
        """Delete the position row and write the replayed state."""

        pair_transaction.db_position_delete()
        position = position_replay(history)
        self._position_store(pair_transaction, position)
        return position

    def _position_store(self, pair_transaction: LedgerPairTransactionPort, position: PositionState | None) -> None:
        """Upsert a non-flat position or delete the row of a flat one."""

        if position is None:
            pair_transaction.db_position_delete()
            return
        pair_transaction.db_position_upsert(position, self._clock())

    def _ledger_resolve_pair(self, ledger_entry_id: str) -> LedgerPairKey:
        """Resolve the owning pair of one entry or raise not-found."""

        normalized_entry_id = _ledger_validate_identifier(ledger_entry_id, "ledger_entry_id")
        pair_key = self._repository.db_ledger_entry_find_pair(normalized_entry_id)
        if pair_key is None:
            raise LedgerEntryNotFoundError(f"ledger entry not found ledger_entry_id={normalized_entry_id}")
        return pair_key


@dataclass(frozen=True)
class _PairRecalculation:
    """Replayed entries paired with their recalculation summary."""

    entries: tuple[LedgerEntry, ...]
    summary: PairRecalculationResult

    @property
    def position(self) -> PositionState | None:
        return self.summary.position


def _ledger_find_replayed_entry(entries: Sequence[LedgerEntry], ledger_entry_id: str) -> LedgerEntry:
    for entry in entries:
        if entry.ledger_entry_id == ledger_entry_id:
            return entry
    raise LedgerEntryNotFoundError(f"ledger entry not found ledger_entry_id={ledger_entry_id}")


def _ledger_log_clamp_adjustments(clamp_adjustments: Sequence[FifoClampAdjustment]) -> None:
    for adjustment in clamp_adjustments:
        logger.warning(
            "negative remaining quantity clamped ledger_entry_id=%s expected=%s applied=%s",
            adjustment.ledger_entry_id,
            adjustment.expected_remaining_quantity,
            adjustment.applied_remaining_quantity,
        )


def _ledger_validate_identifier(value: str, field_name: str) -> str:
    """Validate a required identifier and return it stripped.

    Args:
        value: Candidate identifier.
        field_name: Field name for error reporting.

    Returns:
        str: Stripped identifier.

    Raises:
        LedgerValidationError: Raised when value is blank or not a string.
    """

    if not isinstance(value, str) or not value.strip():
        raise LedgerValidationError(f"{field_name} must not be blank")
    return value.strip()


def _ledger_validate_entry_values(
    quantity: Decimal,
    price: Decimal,
    commission: Decimal | None,
    trade_timestamp_utc: datetime,
) -> None:
    """Validate entry value invariants shared by create and update.

    Args:
        quantity: Candidate quantity.
        price: Candidate unit price.
        commission: Candidate commission.
        trade_timestamp_utc: Candidate trade timestamp.

    Returns:
        None: Validation passes silently.

    Raises:
        LedgerValidationError: Raised when any value violates entry invariants.
    """

    if not isinstance(quantity, Decimal) or not quantity.is_finite() or quantity <= _ZERO:
        raise LedgerValidationError("quantity must be a positive decimal")
    if not isinstance(price, Decimal) or not price.is_finite() or price <= _ZERO:
        raise LedgerValidationError("price must be a positive decimal")
    if commission is not None and (
        not isinstance(commission, Decimal) or not commission.is_finite() or commission < _ZERO
    ):
        raise LedgerValidationError("commission must be a non-negative decimal")
    if not isinstance(trade_timestamp_utc, datetime):
        raise LedgerValidationError("trade_timestamp_utc must be a datetime")
    if trade_timestamp_utc.tzinfo is None or trade_timestamp_utc.utcoffset() is None:
        raise LedgerValidationError("trade_timestamp_utc must be offset-aware")


__all__ = ["LedgerService"]
