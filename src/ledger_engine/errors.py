"""Exception taxonomy shared by every layer of the ledger engine.

Business failures derive from :class:`BusinessRuleViolation` so callers can
present them to the user. :class:`DataIntegrityFault` and :class:`StoreError`
are deliberately outside that branch: the former means stored records have
drifted out of sync, the latter that a commit did not happen.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .arap import UpdatedTotals


class LedgerError(Exception):
    """Base class for every error raised by the ledger engine."""


class BusinessRuleViolation(LedgerError):
    """Raised when a requested operation violates a domain constraint."""


class ValidationError(BusinessRuleViolation):
    """Raised when caller-supplied values cannot be composed into a write-set."""


class MissingReferenceError(ValidationError):
    """Raised when a referenced entry, payment, or inventory item is unknown."""


class InsufficientStockError(ValidationError):
    """Raised when an inventory exit requests more than the item holds."""

    def __init__(self, item_name: str, available: Decimal, requested: Decimal) -> None:
        super().__init__(
            f"Insufficient stock for '{item_name}': available {available}, requested {requested}"
        )
        self.item_name = item_name
        self.available = available
        self.requested = requested


class OverpaymentWarning(BusinessRuleViolation):
    """Signals that a payment exceeds the remaining balance of its entry.

    The warning carries the totals that *would* result so the caller can
    decide to proceed without recomputing them.
    """

    def __init__(self, message: str, totals: "UpdatedTotals") -> None:
        super().__init__(message)
        self.totals = totals


class DataIntegrityFault(LedgerError):
    """Raised when stored records describe a state that cannot be reversed."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        expected: Optional[Decimal] = None,
        actual: Optional[Decimal] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        details = f"operation={self.operation}, {self.entity_type}={self.entity_id}"
        if self.expected is not None or self.actual is not None:
            details += f", expected>={self.expected}, actual={self.actual}"
        return f"{self.args[0]} ({details})"


class StoreError(LedgerError):
    """Raised when the store cannot commit a write-set."""


class ConcurrentModificationError(StoreError):
    """Raised when a record changed between the read and the atomic write."""


class DuplicateTransactionError(StoreError):
    """Raised when a write-set inserts a ledger entry whose transaction id is taken."""

    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"Duplicate transaction id: {transaction_id}")
        self.transaction_id = transaction_id


__all__ = [
    "LedgerError",
    "BusinessRuleViolation",
    "ValidationError",
    "MissingReferenceError",
    "InsufficientStockError",
    "OverpaymentWarning",
    "DataIntegrityFault",
    "StoreError",
    "ConcurrentModificationError",
    "DuplicateTransactionError",
]
