"""Data access layer for the ledger engine.

This module provides low-level helpers that read from and write to the
``ledger_master.xlsx`` workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: converting rows to and from the record dataclasses and
   appending, updating, or deleting individual rows.
"""


from __future__ import annotations

import configparser
import os
import re
import tempfile
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import COGS_PREFIX, DEFAULT_COGS_CATEGORY, DEFAULT_PARTY, SheetName
from .errors import ValidationError


CONFIG_FILE_NAME = "config.ini"
TRANSACTION_ID_PATTERN = re.compile(r"^TXN-\d{8}-\d{6}-\d{3}$")


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    default_party: str = DEFAULT_PARTY
    cogs_category: str = DEFAULT_COGS_CATEGORY


@dataclass(frozen=True)
class TransactionRef:
    """Correlation key linking dependent records to their ledger entry.

    Only identifiers in the ``TXN-YYYYMMDD-HHMMSS-NNN`` format are accepted,
    so a dependent record can never be tied to a COGS entry or to free text.
    """

    transaction_id: str

    def __post_init__(self) -> None:
        if not TRANSACTION_ID_PATTERN.match(self.transaction_id or ""):
            raise ValidationError(f"Malformed transaction id: {self.transaction_id!r}")

    @property
    def cogs_id(self) -> str:
        return f"{COGS_PREFIX}{self.transaction_id}"

    def __str__(self) -> str:
        return self.transaction_id


@dataclass(frozen=True)
class LedgerEntryRow:
    """In-memory view of a row from the ``Ledger`` sheet."""

    entry_id: str
    transaction_id: str
    entry_date: date
    description: str
    direction: str
    amount: Decimal
    category: str
    sub_category: Optional[str]
    associated_party: str
    reference: Optional[str]
    notes: Optional[str]
    is_arap_entry: bool
    total_paid: Optional[Decimal]
    remaining_balance: Optional[Decimal]
    payment_status: Optional[str]
    immediate_settlement: bool
    auto_generated: bool
    linked_transaction: Optional[TransactionRef]
    created_at: str


@dataclass(frozen=True)
class PaymentRow:
    """In-memory view of a row from the ``Payments`` sheet."""

    payment_id: str
    party_name: str
    amount: Decimal
    direction: str
    linked_transaction: TransactionRef
    method: str
    payment_date: date
    notes: Optional[str]
    is_endorsement: bool
    no_cash_movement: bool
    created_at: str
    linked_cheque_id: Optional[str] = None


@dataclass(frozen=True)
class ChequeRow:
    """In-memory view of a row from the ``Cheques`` sheet."""

    cheque_id: str
    cheque_number: str
    party_name: str
    amount: Decimal
    direction: str
    cheque_kind: str
    status: str
    accounting_type: str
    linked_transaction: TransactionRef
    issue_date: date
    due_date: Optional[date]
    bank_name: Optional[str]
    endorsed_party: Optional[str]
    notes: Optional[str]
    created_at: str


@dataclass(frozen=True)
class InventoryItemRow:
    """In-memory view of a row from the ``Inventory`` sheet."""

    item_id: str
    item_name: str
    category: str
    quantity: Decimal
    unit: Optional[str]
    unit_price: Decimal
    thickness: Optional[Decimal]
    width: Optional[Decimal]
    length: Optional[Decimal]
    last_purchase_price: Optional[Decimal]
    last_purchase_date: Optional[date]
    last_purchase_amount: Optional[Decimal]
    min_stock: Decimal
    location: Optional[str]
    notes: Optional[str]


@dataclass(frozen=True)
class InventoryMovementRow:
    """In-memory view of a row from the ``InventoryMovements`` sheet."""

    movement_id: str
    item_id: str
    item_name: str
    direction: str
    quantity: Decimal
    unit: Optional[str]
    thickness: Optional[Decimal]
    width: Optional[Decimal]
    length: Optional[Decimal]
    linked_transaction: TransactionRef
    notes: Optional[str]
    created_at: str


@dataclass(frozen=True)
class FixedAssetRow:
    """In-memory view of a row from the ``FixedAssets`` sheet."""

    asset_id: str
    asset_number: str
    asset_name: str
    purchase_amount: Decimal
    purchase_date: date
    useful_life_years: Decimal
    salvage_value: Decimal
    depreciation_method: str
    annual_depreciation: Decimal
    accumulated_depreciation: Decimal
    book_value: Decimal
    linked_transaction: TransactionRef
    status: str
    notes: Optional[str]
    created_at: str


@dataclass(frozen=True)
class CollectionSchema:
    """Describe how one record type is laid out on its worksheet."""

    sheet: SheetName
    record_type: type
    key_attribute: str
    columns: Sequence[tuple[str, str]]
    deserialize: Callable[[Sequence[object]], Any]

    @property
    def headers(self) -> list[str]:
        return [header for header, _ in self.columns]

    def header_for(self, attribute: str) -> str:
        for header, name in self.columns:
            if name == attribute:
                return header
        raise KeyError(f"Unknown {self.sheet.value} field: {attribute}")


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``DataFile``, ``BusinessName`` and ``SchemaVersion`` are mandatory. The
    ``[Defaults]`` section is optional and falls back to the package
    constants. Relative data file paths are anchored to ``base_path`` (or the
    current working directory) and resolved.

    Raises:
        KeyError: If one of the required sections or options is missing from the
            configuration.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    default_party = parser.get("Defaults", "DefaultParty", fallback=DEFAULT_PARTY)
    cogs_category = parser.get("Defaults", "CogsCategory", fallback=DEFAULT_COGS_CATEGORY)

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        default_party=default_party,
        cogs_category=cogs_category,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
        KeyError: If one of the expected sheets is missing.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    missing = [sheet.value for sheet in SheetName if sheet.value not in wb.sheetnames]
    if missing:
        raise KeyError(f"Workbook {data_file} is missing sheets: {', '.join(missing)}")
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook atomically at ``destination``.

    The workbook is written to a temporary file in the destination directory
    and then moved over the target, so readers never observe a half-written
    file and a failed save leaves the previous file untouched.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.stem}-", suffix=dest.suffix, dir=dest.parent)
    os.close(fd)
    try:
        workbook.save(tmp_name)
        os.replace(tmp_name, dest)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def new_record_id() -> str:
    return uuid.uuid4().hex


def iter_records(workbook: Workbook, sheet: SheetName) -> Iterable[Any]:
    """Stream typed records from ``sheet``, skipping the header and blank rows."""

    schema = SCHEMAS[sheet]
    worksheet = workbook[sheet.value]
    for raw in worksheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield schema.deserialize(raw)


def append_record(workbook: Workbook, sheet: SheetName, record: Any) -> None:
    """Append ``record`` to its worksheet in column order."""

    workbook[sheet.value].append(serialize_record(SCHEMAS[sheet], record))


def update_record(workbook: Workbook, sheet: SheetName, record_id: str, *, field_values: Mapping[str, Any]) -> None:
    """Update selected attributes of an existing record.

    Args:
        workbook (Workbook): Workbook containing the target sheet.
        sheet (SheetName): Collection holding the record.
        record_id (str): Primary key of the record.
        field_values (Mapping[str, Any]): Dataclass attribute names mapped to
            replacement values.

    Raises:
        KeyError: If the record or any referenced attribute cannot be found.
    """

    schema = SCHEMAS[sheet]
    row_index = locate_row(workbook, sheet.value, schema.header_for(schema.key_attribute), record_id)
    if row_index is None:
        raise KeyError(f"{sheet.value} record not found: {record_id}")

    worksheet = workbook[sheet.value]
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(worksheet[1])}
    for attribute, value in field_values.items():
        header = schema.header_for(attribute)
        if header not in header_map:
            raise KeyError(f"Unknown {sheet.value} column: {header}")
        worksheet.cell(row=row_index, column=header_map[header], value=to_cell_value(value))


def delete_record(workbook: Workbook, sheet: SheetName, record_id: str) -> None:
    """Remove the row holding ``record_id``.

    Raises:
        KeyError: If no row carries the identifier.
    """

    schema = SCHEMAS[sheet]
    row_index = locate_row(workbook, sheet.value, schema.header_for(schema.key_attribute), record_id)
    if row_index is None:
        raise KeyError(f"{sheet.value} record not found: {record_id}")
    workbook[sheet.value].delete_rows(row_index)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value == key_value:
            return row_idx

    return None


def to_cell_value(value: Any) -> Any:
    """Convert a record attribute into something openpyxl can store.

    Decimals stay numeric; dates, enums and transaction references are
    stored as text so they survive the round trip unchanged.
    """

    if isinstance(value, TransactionRef):
        return value.transaction_id
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def serialize_record(schema: CollectionSchema, record: Any) -> list[object]:
    """Convert a record dataclass into the worksheet column ordering."""

    return [to_cell_value(getattr(record, attribute)) for _, attribute in schema.columns]


def _decimal(raw: object, default: str = "0") -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal(default)


def _optional_decimal(raw: object) -> Optional[Decimal]:
    return Decimal(str(raw)) if raw is not None else None


def _text(raw: object) -> str:
    return str(raw) if raw is not None else ""


def _optional_text(raw: object) -> Optional[str]:
    return str(raw) if raw is not None else None


def _date(raw: object) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw))


def _optional_date(raw: object) -> Optional[date]:
    return _date(raw) if raw is not None else None


def _ref(raw: object) -> TransactionRef:
    return TransactionRef(str(raw))


def _optional_ref(raw: object) -> Optional[TransactionRef]:
    return TransactionRef(str(raw)) if raw is not None else None


def deserialize_ledger_entry(raw_row: Sequence[object]) -> LedgerEntryRow:
    """Convert a raw ``Ledger`` row into a :class:`LedgerEntryRow`.

    AR/AP tracking columns stay ``None`` for entries that are not tracked, so
    callers can tell "not tracked" apart from "nothing paid yet".
    """

    (
        entry_id,
        transaction_id,
        entry_date,
        description,
        direction,
        amount,
        category,
        sub_category,
        associated_party,
        reference,
        notes,
        is_arap_entry,
        total_paid,
        remaining_balance,
        payment_status,
        immediate_settlement,
        auto_generated,
        linked_transaction,
        created_at,
    ) = raw_row

    return LedgerEntryRow(
        entry_id=str(entry_id),
        transaction_id=str(transaction_id),
        entry_date=_date(entry_date),
        description=_text(description),
        direction=_text(direction),
        amount=_decimal(amount, "0.00"),
        category=_text(category),
        sub_category=_optional_text(sub_category),
        associated_party=_text(associated_party),
        reference=_optional_text(reference),
        notes=_optional_text(notes),
        is_arap_entry=bool(is_arap_entry),
        total_paid=_optional_decimal(total_paid),
        remaining_balance=_optional_decimal(remaining_balance),
        payment_status=_optional_text(payment_status),
        immediate_settlement=bool(immediate_settlement),
        auto_generated=bool(auto_generated),
        linked_transaction=_optional_ref(linked_transaction),
        created_at=_text(created_at),
    )


def deserialize_payment(raw_row: Sequence[object]) -> PaymentRow:
    """Convert a raw ``Payments`` row into a :class:`PaymentRow`."""

    (
        payment_id,
        party_name,
        amount,
        direction,
        linked_transaction,
        method,
        payment_date,
        notes,
        is_endorsement,
        no_cash_movement,
        created_at,
        linked_cheque_id,
    ) = raw_row

    return PaymentRow(
        payment_id=str(payment_id),
        party_name=_text(party_name),
        amount=_decimal(amount, "0.00"),
        direction=_text(direction),
        linked_transaction=_ref(linked_transaction),
        method=_text(method),
        payment_date=_date(payment_date),
        notes=_optional_text(notes),
        is_endorsement=bool(is_endorsement),
        no_cash_movement=bool(no_cash_movement),
        created_at=_text(created_at),
        linked_cheque_id=_optional_text(linked_cheque_id),
    )


def deserialize_cheque(raw_row: Sequence[object]) -> ChequeRow:
    (
        cheque_id,
        cheque_number,
        party_name,
        amount,
        direction,
        cheque_kind,
        status,
        accounting_type,
        linked_transaction,
        issue_date,
        due_date,
        bank_name,
        endorsed_party,
        notes,
        created_at,
    ) = raw_row

    return ChequeRow(
        cheque_id=str(cheque_id),
        cheque_number=_text(cheque_number),
        party_name=_text(party_name),
        amount=_decimal(amount, "0.00"),
        direction=_text(direction),
        cheque_kind=_text(cheque_kind),
        status=_text(status),
        accounting_type=_text(accounting_type),
        linked_transaction=_ref(linked_transaction),
        issue_date=_date(issue_date),
        due_date=_optional_date(due_date),
        bank_name=_optional_text(bank_name),
        endorsed_party=_optional_text(endorsed_party),
        notes=_optional_text(notes),
        created_at=_text(created_at),
    )


def deserialize_inventory_item(raw_row: Sequence[object]) -> InventoryItemRow:
    """Convert a raw ``Inventory`` row into an :class:`InventoryItemRow`.

    Quantities and prices default to zero when blank; dimensions and
    last-purchase columns stay ``None`` because blank means "never set".
    """

    (
        item_id,
        item_name,
        category,
        quantity,
        unit,
        unit_price,
        thickness,
        width,
        length,
        last_purchase_price,
        last_purchase_date,
        last_purchase_amount,
        min_stock,
        location,
        notes,
    ) = raw_row

    return InventoryItemRow(
        item_id=str(item_id),
        item_name=_text(item_name),
        category=_text(category),
        quantity=_decimal(quantity),
        unit=_optional_text(unit),
        unit_price=_decimal(unit_price, "0.00"),
        thickness=_optional_decimal(thickness),
        width=_optional_decimal(width),
        length=_optional_decimal(length),
        last_purchase_price=_optional_decimal(last_purchase_price),
        last_purchase_date=_optional_date(last_purchase_date),
        last_purchase_amount=_optional_decimal(last_purchase_amount),
        min_stock=_decimal(min_stock),
        location=_optional_text(location),
        notes=_optional_text(notes),
    )


def deserialize_inventory_movement(raw_row: Sequence[object]) -> InventoryMovementRow:
    (
        movement_id,
        item_id,
        item_name,
        direction,
        quantity,
        unit,
        thickness,
        width,
        length,
        linked_transaction,
        notes,
        created_at,
    ) = raw_row

    return InventoryMovementRow(
        movement_id=str(movement_id),
        item_id=_text(item_id),
        item_name=_text(item_name),
        direction=_text(direction),
        quantity=_decimal(quantity),
        unit=_optional_text(unit),
        thickness=_optional_decimal(thickness),
        width=_optional_decimal(width),
        length=_optional_decimal(length),
        linked_transaction=_ref(linked_transaction),
        notes=_optional_text(notes),
        created_at=_text(created_at),
    )


def deserialize_fixed_asset(raw_row: Sequence[object]) -> FixedAssetRow:
    (
        asset_id,
        asset_number,
        asset_name,
        purchase_amount,
        purchase_date,
        useful_life_years,
        salvage_value,
        depreciation_method,
        annual_depreciation,
        accumulated_depreciation,
        book_value,
        linked_transaction,
        status,
        notes,
        created_at,
    ) = raw_row

    return FixedAssetRow(
        asset_id=str(asset_id),
        asset_number=_text(asset_number),
        asset_name=_text(asset_name),
        purchase_amount=_decimal(purchase_amount, "0.00"),
        purchase_date=_date(purchase_date),
        useful_life_years=_decimal(useful_life_years),
        salvage_value=_decimal(salvage_value, "0.00"),
        depreciation_method=_text(depreciation_method),
        annual_depreciation=_decimal(annual_depreciation, "0.00"),
        accumulated_depreciation=_decimal(accumulated_depreciation, "0.00"),
        book_value=_decimal(book_value, "0.00"),
        linked_transaction=_ref(linked_transaction),
        status=_text(status),
        notes=_optional_text(notes),
        created_at=_text(created_at),
    )


SCHEMAS: Mapping[SheetName, CollectionSchema] = {
    SheetName.LEDGER: CollectionSchema(
        sheet=SheetName.LEDGER,
        record_type=LedgerEntryRow,
        key_attribute="entry_id",
        columns=(
            ("EntryID", "entry_id"),
            ("TransactionID", "transaction_id"),
            ("Date", "entry_date"),
            ("Description", "description"),
            ("Direction", "direction"),
            ("Amount", "amount"),
            ("Category", "category"),
            ("SubCategory", "sub_category"),
            ("AssociatedParty", "associated_party"),
            ("Reference", "reference"),
            ("Notes", "notes"),
            ("IsARAPEntry", "is_arap_entry"),
            ("TotalPaid", "total_paid"),
            ("RemainingBalance", "remaining_balance"),
            ("PaymentStatus", "payment_status"),
            ("ImmediateSettlement", "immediate_settlement"),
            ("AutoGenerated", "auto_generated"),
            ("LinkedTransactionID", "linked_transaction"),
            ("CreatedAt", "created_at"),
        ),
        deserialize=deserialize_ledger_entry,
    ),
    SheetName.PAYMENTS: CollectionSchema(
        sheet=SheetName.PAYMENTS,
        record_type=PaymentRow,
        key_attribute="payment_id",
        columns=(
            ("PaymentID", "payment_id"),
            ("PartyName", "party_name"),
            ("Amount", "amount"),
            ("Direction", "direction"),
            ("LinkedTransactionID", "linked_transaction"),
            ("Method", "method"),
            ("Date", "payment_date"),
            ("Notes", "notes"),
            ("IsEndorsement", "is_endorsement"),
            ("NoCashMovement", "no_cash_movement"),
            ("CreatedAt", "created_at"),
            ("LinkedChequeID", "linked_cheque_id"),
        ),
        deserialize=deserialize_payment,
    ),
    SheetName.CHEQUES: CollectionSchema(
        sheet=SheetName.CHEQUES,
        record_type=ChequeRow,
        key_attribute="cheque_id",
        columns=(
            ("ChequeID", "cheque_id"),
            ("ChequeNumber", "cheque_number"),
            ("PartyName", "party_name"),
            ("Amount", "amount"),
            ("Direction", "direction"),
            ("ChequeKind", "cheque_kind"),
            ("Status", "status"),
            ("AccountingType", "accounting_type"),
            ("LinkedTransactionID", "linked_transaction"),
            ("IssueDate", "issue_date"),
            ("DueDate", "due_date"),
            ("BankName", "bank_name"),
            ("EndorsedParty", "endorsed_party"),
            ("Notes", "notes"),
            ("CreatedAt", "created_at"),
        ),
        deserialize=deserialize_cheque,
    ),
    SheetName.INVENTORY: CollectionSchema(
        sheet=SheetName.INVENTORY,
        record_type=InventoryItemRow,
        key_attribute="item_id",
        columns=(
            ("ItemID", "item_id"),
            ("ItemName", "item_name"),
            ("Category", "category"),
            ("Quantity", "quantity"),
            ("Unit", "unit"),
            ("UnitPrice", "unit_price"),
            ("Thickness", "thickness"),
            ("Width", "width"),
            ("Length", "length"),
            ("LastPurchasePrice", "last_purchase_price"),
            ("LastPurchaseDate", "last_purchase_date"),
            ("LastPurchaseAmount", "last_purchase_amount"),
            ("MinStock", "min_stock"),
            ("Location", "location"),
            ("Notes", "notes"),
        ),
        deserialize=deserialize_inventory_item,
    ),
    SheetName.INVENTORY_MOVEMENTS: CollectionSchema(
        sheet=SheetName.INVENTORY_MOVEMENTS,
        record_type=InventoryMovementRow,
        key_attribute="movement_id",
        columns=(
            ("MovementID", "movement_id"),
            ("ItemID", "item_id"),
            ("ItemName", "item_name"),
            ("Direction", "direction"),
            ("Quantity", "quantity"),
            ("Unit", "unit"),
            ("Thickness", "thickness"),
            ("Width", "width"),
            ("Length", "length"),
            ("LinkedTransactionID", "linked_transaction"),
            ("Notes", "notes"),
            ("CreatedAt", "created_at"),
        ),
        deserialize=deserialize_inventory_movement,
    ),
    SheetName.FIXED_ASSETS: CollectionSchema(
        sheet=SheetName.FIXED_ASSETS,
        record_type=FixedAssetRow,
        key_attribute="asset_id",
        columns=(
            ("AssetID", "asset_id"),
            ("AssetNumber", "asset_number"),
            ("AssetName", "asset_name"),
            ("PurchaseAmount", "purchase_amount"),
            ("PurchaseDate", "purchase_date"),
            ("UsefulLifeYears", "useful_life_years"),
            ("SalvageValue", "salvage_value"),
            ("DepreciationMethod", "depreciation_method"),
            ("AnnualDepreciation", "annual_depreciation"),
            ("AccumulatedDepreciation", "accumulated_depreciation"),
            ("BookValue", "book_value"),
            ("LinkedTransactionID", "linked_transaction"),
            ("Status", "status"),
            ("Notes", "notes"),
            ("CreatedAt", "created_at"),
        ),
        deserialize=deserialize_fixed_asset,
    ),
}

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    sheet.value: schema.headers for sheet, schema in SCHEMAS.items()
}


def schema_for_record(record: Any) -> CollectionSchema:
    """Return the schema whose record type matches ``record``."""

    for schema in SCHEMAS.values():
        if isinstance(record, schema.record_type):
            return schema
    raise TypeError(f"Unsupported record type: {type(record).__name__}")


def record_key(record: Any) -> str:
    schema = schema_for_record(record)
    return getattr(record, schema.key_attribute)
