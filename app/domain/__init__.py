"""Domain models used across application layer boundaries."""

from .models import HealthStatus, LedgerEntry, LedgerPairKey, PositionState, TradeDirection
from .timeline import domain_build_stage_event

__all__ = [
	"HealthStatus",
	"LedgerEntry",
	"LedgerPairKey",
	"PositionState",
	"TradeDirection",
	"domain_build_stage_event",
]
