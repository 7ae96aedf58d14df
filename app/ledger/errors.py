"""Ledger-layer error taxonomy."""


class LedgerInvalidOperationError(ValueError):
    """Raised when a ledger operation is invoked on an unsupported entry kind."""


class LedgerValidationError(ValueError):
    """Raised when ledger entry input values violate entry invariants."""


class LedgerEntryNotFoundError(LookupError):
    """Raised when a ledger entry identifier does not resolve to a stored entry."""


__all__ = ["LedgerEntryNotFoundError", "LedgerInvalidOperationError", "LedgerValidationError"]
