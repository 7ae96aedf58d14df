"""Database layer package for all SQL and persistence boundaries."""

from .health import SQLAlchemyDatabaseHealthService
from .interfaces import (
	DatabaseHealthPort,
	LedgerEntryFieldUpdateRequest,
	LedgerEntryInsertRequest,
	LedgerPairTransactionPort,
	LedgerStoreRepositoryPort,
	PositionRecord,
)
from .ledger_store import SQLAlchemyLedgerStoreService
from .session import db_create_engine

__all__ = [
	"DatabaseHealthPort",
	"LedgerEntryFieldUpdateRequest",
	"LedgerEntryInsertRequest",
	"LedgerPairTransactionPort",
	"LedgerStoreRepositoryPort",
	"PositionRecord",
	"SQLAlchemyDatabaseHealthService",
	"SQLAlchemyLedgerStoreService",
	"db_create_engine",
]
