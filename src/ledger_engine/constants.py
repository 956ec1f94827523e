"""Enumerations shared across the ledger engine modules.

Centralises domain constants so that the data access layer (DAL), the pure
composition modules, and the CLI rely on a single source of truth for the
labels persisted in the workbook.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

COGS_PREFIX = "COGS-"
DEFAULT_COGS_CATEGORY = "Cost of Goods Sold"
DEFAULT_COGS_SUB_CATEGORY = "Sales"
DEFAULT_PARTY = "Unspecified"

# Declining-balance assets depreciate at a flat annual rate of the purchase amount.
DECLINING_BALANCE_RATE = Decimal("0.20")


class EntryDirection(str, Enum):
    """Enumerate the two sides a ledger entry can fall on."""

    INCOME = "income"
    EXPENSE = "expense"


class PaymentStatus(str, Enum):
    """Settlement state of an AR/AP tracked ledger entry."""

    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"


class PaymentDirection(str, Enum):
    """Direction of a cash-equivalent movement."""

    RECEIPT = "receipt"
    DISBURSEMENT = "disbursement"


class PaymentMethod(str, Enum):
    """Instrument used to settle a payment."""

    CASH = "cash"
    CHEQUE = "cheque"


class ChequeDirection(str, Enum):
    """Whether a cheque was received or issued by the business."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class ChequeKind(str, Enum):
    """Physical nature of the cheque."""

    NORMAL = "normal"
    ENDORSED = "endorsed"


class ChequeStatus(str, Enum):
    """Status label stamped on a cheque by the cheque policy."""

    PENDING = "pending"
    CLEARED = "cleared"
    ENDORSED = "endorsed"


class AccountingType(str, Enum):
    """How a cheque is accounted for at the moment it is recorded."""

    CASHED = "cashed"
    POSTPONED = "postponed"
    ENDORSED = "endorsed"


class MovementDirection(str, Enum):
    """Direction of an inventory movement."""

    ENTRY = "entry"
    EXIT = "exit"


class DepreciationMethod(str, Enum):
    """Supported fixed-asset depreciation methods."""

    STRAIGHT_LINE = "straight-line"
    DECLINING = "declining"


class AssetStatus(str, Enum):
    """Lifecycle status of a fixed asset."""

    ACTIVE = "active"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    LEDGER = "Ledger"
    PAYMENTS = "Payments"
    CHEQUES = "Cheques"
    INVENTORY = "Inventory"
    INVENTORY_MOVEMENTS = "InventoryMovements"
    FIXED_ASSETS = "FixedAssets"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "COGS_PREFIX",
    "DEFAULT_COGS_CATEGORY",
    "DEFAULT_COGS_SUB_CATEGORY",
    "DEFAULT_PARTY",
    "DECLINING_BALANCE_RATE",
    "EntryDirection",
    "PaymentStatus",
    "PaymentDirection",
    "PaymentMethod",
    "ChequeDirection",
    "ChequeKind",
    "ChequeStatus",
    "AccountingType",
    "MovementDirection",
    "DepreciationMethod",
    "AssetStatus",
    "SheetName",
]
