"""Regression tests for fixed SQL templates in the ledger store."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from app.db.interfaces import LedgerEntryFieldUpdateRequest, LedgerEntryInsertRequest
from app.db.ledger_store import (
    SQLAlchemyLedgerStoreService,
    db_ledger_build_pair_lock_keys,
    db_ledger_map_entry,
)
from app.domain import LedgerEntry, LedgerPairKey, PositionState, TradeDirection

_TIMESTAMP_UTC = datetime(2026, 1, 5, 14, 30, tzinfo=timezone.utc)


class _MappingResultStub:
    """Stub mapping result wrapper for SQLAlchemy-like query responses."""

    def __init__(self, rows: list[dict]):
        """Initialize mapping result rows.

        Args:
            rows: Row mappings returned by a query.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: This stub does not raise value errors.
        """

        self._rows = rows

    def mappings(self) -> _MappingResultStub:
        """Return self to emulate SQLAlchemy mappings chain."""

        return self

    def all(self) -> list[dict]:
        """Return all row mappings."""

        return self._rows

    def first(self) -> dict | None:
        """Return the first row mapping, or None when empty."""

        return self._rows[0] if self._rows else None

    def one(self) -> dict:
        """Return the single row mapping."""

        assert len(self._rows) == 1
        return self._rows[0]


class _ConnectionStub:
    """Connection stub capturing executed SQL and returning queued rows."""

    def __init__(self, queued_rows: list[list[dict]] | None = None, error: Exception | None = None):
        """Initialize connection capture state.

        Args:
            queued_rows: Rows returned by successive execute() calls.
            error: Optional error raised by every execute() call.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: This stub does not raise value errors.
        """

        self._queued_rows = list(queued_rows or [])
        self._error = error
        self.executed_queries: list[str] = []
        self.executed_parameters: list[object] = []

    def __enter__(self) -> _ConnectionStub:
        """Enter context manager."""

        return self

    def __exit__(self, exc_type, exc, traceback) -> bool:
        """Exit context manager without suppressing errors."""

        _ = (exc_type, exc, traceback)
        return False

    def execute(self, statement, parameters=None):
        """Capture execute input and return the next queued rows.

        Args:
            statement: SQLAlchemy text clause or raw string.
            parameters: Bound query parameters or executemany parameter list.

        Returns:
            _MappingResultStub: Query result stub.

        Raises:
            Exception: Raised when the stub is configured with an error.
        """

        statement_text = getattr(statement, "text", str(statement))
        self.executed_queries.append(statement_text)
        self.executed_parameters.append(parameters)
        if self._error is not None:
            raise self._error
        rows = self._queued_rows.pop(0) if self._queued_rows else []
        return _MappingResultStub(rows=rows)


class _EngineStub:
    """Engine stub that returns a predefined connection object."""

    def __init__(self, connection: _ConnectionStub):
        """Initialize engine with a deterministic connection stub.

        Args:
            connection: Connection stub instance.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: This stub does not raise value errors.
        """

        self._connection = connection

    def begin(self) -> _ConnectionStub:
        """Return the connection stub as a transaction context."""

        return self._connection

    def connect(self) -> _ConnectionStub:
        """Return the connection stub as a connection context."""

        return self._connection


def _store_entry_row(ledger_entry_id: str, direction: str = "BUY") -> dict:
    return {
        "ledger_entry_id": ledger_entry_id,
        "account_id": "ACC-1",
        "instrument_id": "AAPL",
        "direction": direction,
        "quantity": Decimal("10"),
        "price": Decimal("100"),
        "commission": Decimal("5"),
        "trade_timestamp_utc": _TIMESTAMP_UTC,
        "sequence_number": 3,
        "remaining_quantity": Decimal("4") if direction == "BUY" else None,
        "cost_basis": None,
        "realized_pnl": None,
        "notes": None,
        "created_at_utc": _TIMESTAMP_UTC,
        "updated_at_utc": _TIMESTAMP_UTC,
    }


def test_pair_transaction_takes_advisory_lock_first() -> None:
    """Every pair transaction starts with the pair's transaction-scoped advisory lock.

    Returns:
        None: Assertions validate SQL order and lock keys.

    Raises:
        AssertionError: Raised when SQL differs.
    """

    connection = _ConnectionStub()
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    with service.db_ledger_pair_transaction(" ACC-1 ", "AAPL") as pair_transaction:
        assert pair_transaction.pair_key == LedgerPairKey("ACC-1", "AAPL")
        pair_transaction.db_ledger_entry_list_available_buys(_TIMESTAMP_UTC)

    key_1, key_2 = db_ledger_build_pair_lock_keys(LedgerPairKey("ACC-1", "AAPL"))
    assert connection.executed_queries[0] == "SELECT pg_advisory_xact_lock(:key_1, :key_2)"
    assert connection.executed_parameters[0] == {"key_1": key_1, "key_2": key_2}
    available_buys_query = connection.executed_queries[1]
    assert "direction = 'BUY' AND remaining_quantity > 0" in available_buys_query
    assert "trade_timestamp_utc <= CAST(:cutoff_utc AS timestamptz)" in available_buys_query
    assert available_buys_query.endswith("ORDER BY trade_timestamp_utc asc, sequence_number asc, ledger_entry_id asc")


def test_pair_transaction_wraps_database_errors() -> None:
    """Driver errors surface as runtime errors from the pair transaction."""

    connection = _ConnectionStub(error=OperationalError("SELECT 1", {}, Exception("connection lost")))
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    with pytest.raises(RuntimeError, match="ledger pair transaction failed"):
        with service.db_ledger_pair_transaction("ACC-1", "AAPL"):
            pass


def test_pair_transaction_rejects_blank_identifiers() -> None:
    """Blank pair identifiers are rejected before any SQL runs."""

    connection = _ConnectionStub()
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    with pytest.raises(ValueError):
        with service.db_ledger_pair_transaction("ACC-1", "  "):
            pass
    assert connection.executed_queries == []


def test_insert_sets_explicit_timestamps_and_full_lot_remaining() -> None:
    """A BUY insert binds remaining quantity and both timestamps explicitly."""

    ledger_entry_id = str(uuid4())
    connection = _ConnectionStub(queued_rows=[[], [{"sequence_number": 42}]])
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))
    created_at_utc = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)

    with service.db_ledger_pair_transaction("ACC-1", "AAPL") as pair_transaction:
        entry = pair_transaction.db_ledger_entry_insert(
            LedgerEntryInsertRequest(
                ledger_entry_id=ledger_entry_id,
                account_id="ACC-1",
                instrument_id="AAPL",
                direction=TradeDirection.BUY,
                quantity=Decimal("10"),
                price=Decimal("100"),
                commission=None,
                trade_timestamp_utc=_TIMESTAMP_UTC,
                notes="first lot",
                created_at_utc=created_at_utc,
            )
        )

    insert_query = connection.executed_queries[1]
    insert_parameters = connection.executed_parameters[1]
    assert insert_query.startswith("INSERT INTO ledger_entry (")
    assert insert_query.endswith("RETURNING sequence_number")
    assert insert_parameters["direction"] == "BUY"
    assert insert_parameters["remaining_quantity"] == "10"
    assert insert_parameters["commission"] is None
    assert insert_parameters["created_at_utc"] == "2026-02-01T09:00:00+00:00"
    assert entry.sequence_number == 42
    assert entry.created_at_utc == created_at_utc
    assert entry.updated_at_utc == created_at_utc


def test_insert_rejects_other_pair() -> None:
    """Inserting an entry of another pair through a locked transaction is rejected."""

    connection = _ConnectionStub()
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    with pytest.raises(ValueError):
        with service.db_ledger_pair_transaction("ACC-1", "AAPL") as pair_transaction:
            pair_transaction.db_ledger_entry_insert(
                LedgerEntryInsertRequest(
                    ledger_entry_id=str(uuid4()),
                    account_id="ACC-1",
                    instrument_id="MSFT",
                    direction=TradeDirection.SELL,
                    quantity=Decimal("1"),
                    price=Decimal("1"),
                    commission=None,
                    trade_timestamp_utc=_TIMESTAMP_UTC,
                    notes=None,
                    created_at_utc=_TIMESTAMP_UTC,
                )
            )


def test_save_derived_many_uses_one_executemany() -> None:
    """Derived fields of a whole batch are written with one statement and stamped."""

    connection = _ConnectionStub()
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))
    buy = db_ledger_map_entry(_store_entry_row(str(uuid4())))
    sell = db_ledger_map_entry(_store_entry_row(str(uuid4()), direction="SELL"))
    sell.cost_basis = Decimal("603")
    sell.realized_pnl = Decimal("117")
    updated_at_utc = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)

    with service.db_ledger_pair_transaction("ACC-1", "AAPL") as pair_transaction:
        pair_transaction.db_ledger_entry_save_derived_many([buy, sell], updated_at_utc)

    assert len(connection.executed_queries) == 2
    assert connection.executed_queries[1].startswith("UPDATE ledger_entry SET remaining_quantity")
    assert connection.executed_parameters[1] == [
        {
            "ledger_entry_id": buy.ledger_entry_id,
            "remaining_quantity": "4",
            "cost_basis": None,
            "realized_pnl": None,
            "updated_at_utc": "2026-02-01T09:00:00+00:00",
        },
        {
            "ledger_entry_id": sell.ledger_entry_id,
            "remaining_quantity": None,
            "cost_basis": "603",
            "realized_pnl": "117",
            "updated_at_utc": "2026-02-01T09:00:00+00:00",
        },
    ]
    assert buy.updated_at_utc == updated_at_utc
    assert sell.updated_at_utc == updated_at_utc


def test_delete_of_missing_entry_raises_lookup_error() -> None:
    """Deleting a row that does not exist reports a lookup error."""

    connection = _ConnectionStub()
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    with pytest.raises(LookupError):
        with service.db_ledger_pair_transaction("ACC-1", "AAPL") as pair_transaction:
            pair_transaction.db_ledger_entry_delete(str(uuid4()))


def test_position_upsert_targets_pair_constraint() -> None:
    """Position writes upsert on the pair unique constraint."""

    connection = _ConnectionStub()
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))
    state = PositionState(quantity=Decimal("6"), average_cost=Decimal("100.5"), total_invested=Decimal("603"))

    with service.db_ledger_pair_transaction("ACC-1", "AAPL") as pair_transaction:
        pair_transaction.db_position_upsert(state, _TIMESTAMP_UTC)

    assert "ON CONFLICT ON CONSTRAINT uq_ledger_position_account_instrument" in connection.executed_queries[1]
    assert connection.executed_parameters[1]["average_cost"] == "100.5"


def test_find_pair_treats_non_uuid_identifier_as_missing() -> None:
    """Identifiers that are not UUIDs resolve to no pair without querying."""

    connection = _ConnectionStub()
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    assert service.db_ledger_entry_find_pair("missing") is None
    assert connection.executed_queries == []


def test_list_distinct_pairs_orders_by_account_and_instrument() -> None:
    """Distinct pair enumeration maps rows to pair keys in SQL order."""

    connection = _ConnectionStub(
        queued_rows=[
            [
                {"account_id": "ACC-1", "instrument_id": "AAPL"},
                {"account_id": "ACC-1", "instrument_id": "MSFT"},
            ]
        ]
    )
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    pair_keys = service.db_ledger_pair_list_distinct()

    assert pair_keys == [LedgerPairKey("ACC-1", "AAPL"), LedgerPairKey("ACC-1", "MSFT")]
    assert connection.executed_queries[0].endswith("ORDER BY account_id asc, instrument_id asc")


def test_entry_list_rejects_invalid_pagination() -> None:
    """Invalid pagination is rejected before querying."""

    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(_ConnectionStub()))

    with pytest.raises(ValueError):
        service.db_ledger_entry_list(account_id="ACC-1", instrument_id=None, limit=0, offset=0)
    with pytest.raises(ValueError):
        service.db_position_list(account_id="ACC-1", limit=10, offset=-1)


def test_pair_lock_keys_are_deterministic_per_pair() -> None:
    """Lock keys are stable for a pair and differ between pairs."""

    first_keys = db_ledger_build_pair_lock_keys(LedgerPairKey("ACC-1", "AAPL"))

    assert first_keys == db_ledger_build_pair_lock_keys(LedgerPairKey("ACC-1", "AAPL"))
    assert first_keys != db_ledger_build_pair_lock_keys(LedgerPairKey("ACC-1", "MSFT"))
    assert all(-(2**31) <= key < 2**31 for key in first_keys)


def test_map_entry_converts_row_types() -> None:
    """Row mapping converts identifiers, direction and nullable decimals."""

    row = _store_entry_row(str(uuid4()), direction="SELL")
    row["cost_basis"] = Decimal("1005.0")

    entry = db_ledger_map_entry(row)

    assert isinstance(entry, LedgerEntry)
    assert entry.direction is TradeDirection.SELL
    assert entry.remaining_quantity is None
    assert entry.cost_basis == Decimal("1005")
    assert entry.sequence_number == 3


def test_update_fields_resets_buy_remaining_with_quantity() -> None:
    """Editing quantity rewrites BUY remaining quantity in the same statement."""

    ledger_entry_id = str(uuid4())
    updated_row = _store_entry_row(ledger_entry_id)
    updated_row["quantity"] = Decimal("5")
    updated_row["remaining_quantity"] = Decimal("5")
    connection = _ConnectionStub(queued_rows=[[], [{"ledger_entry_id": ledger_entry_id}], [updated_row]])
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    with service.db_ledger_pair_transaction("ACC-1", "AAPL") as pair_transaction:
        entry = pair_transaction.db_ledger_entry_update_fields(
            ledger_entry_id,
            LedgerEntryFieldUpdateRequest(
                quantity=Decimal("5"),
                price=Decimal("100"),
                commission=Decimal("5"),
                trade_timestamp_utc=_TIMESTAMP_UTC,
                notes=None,
                updated_at_utc=_TIMESTAMP_UTC,
            ),
        )

    update_query = connection.executed_queries[1]
    assert "remaining_quantity = CASE WHEN direction = 'BUY' THEN CAST(:quantity AS numeric) ELSE NULL END" in update_query
    assert connection.executed_parameters[1]["quantity"] == "5"
    assert entry.remaining_quantity == Decimal("5")


def test_get_by_id_maps_row_and_skips_query_for_non_uuid() -> None:
    """Lookup by id maps the stored row and never queries with a malformed id."""

    ledger_entry_id = str(uuid4())
    connection = _ConnectionStub(queued_rows=[[_store_entry_row(ledger_entry_id, direction="BUY")]])
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    entry = service.db_ledger_entry_get_by_id(ledger_entry_id)
    missing_entry = service.db_ledger_entry_get_by_id("missing")

    assert entry is not None
    assert entry.ledger_entry_id == ledger_entry_id
    assert entry.remaining_quantity == Decimal("4")
    assert missing_entry is None
    assert len(connection.executed_queries) == 1
    assert "WHERE ledger_entry_id = CAST(:ledger_entry_id AS uuid)" in connection.executed_queries[0]


def test_entry_list_binds_inclusive_timestamp_bounds() -> None:
    """Optional timestamp bounds are bound as ISO strings or NULL."""

    connection = _ConnectionStub(queued_rows=[[], []])
    service = SQLAlchemyLedgerStoreService(engine=_EngineStub(connection))

    service.db_ledger_entry_list(
        account_id="ACC-1",
        instrument_id="AAPL",
        limit=10,
        offset=0,
        from_utc=_TIMESTAMP_UTC,
    )
    service.db_ledger_entry_list(account_id="ACC-1", instrument_id=None, limit=10, offset=0)

    assert "trade_timestamp_utc >= CAST(:from_utc AS timestamptz)" in connection.executed_queries[0]
    assert "trade_timestamp_utc <= CAST(:to_utc AS timestamptz)" in connection.executed_queries[0]
    assert connection.executed_parameters[0]["from_utc"] == "2026-01-05T14:30:00+00:00"
    assert connection.executed_parameters[0]["to_utc"] is None
    assert connection.executed_parameters[1]["from_utc"] is None
