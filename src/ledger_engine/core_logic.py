"""Business logic layer for the ledger engine.

This module orchestrates the compose-then-commit workflows. Every user action
reads the records it needs from the store, hands them to a pure composer
(:mod:`ledger_engine.composer`, :mod:`ledger_engine.reversal`,
:mod:`ledger_engine.arap`) and commits the resulting write-set in a single
atomic call. Inventory mutations are serialized per item so two submissions
can never both build on the same stale quantity.
"""

from __future__ import annotations

import random
import threading
import weakref
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from . import data_manager, log
from .arap import UpdatedTotals, apply_payment, reverse_payment
from .composer import EntryDraft, Riders, compose
from .constants import (
    COGS_PREFIX,
    EXPECTED_SCHEMA_VERSION,
    EntryDirection,
    PaymentDirection,
    PaymentMethod,
    SheetName,
)
from .currency import ZERO, add, round_currency, subtract
from .errors import (
    DataIntegrityFault,
    DuplicateTransactionError,
    MissingReferenceError,
    StoreError,
    ValidationError,
)
from .reversal import ReversalSnapshot, compose_reversal
from .store import Delete, Insert, Update, WorkbookStore, WriteSet


MAX_TRANSACTION_ID_ATTEMPTS = 25


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the store used by the BLL."""

    settings: data_manager.ConfigSettings
    store: WorkbookStore


@dataclass(frozen=True)
class RecordEntryCommand:
    """User intent for recording a ledger entry with its optional riders."""

    draft: EntryDraft
    riders: Riders = field(default_factory=Riders)
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentCommand:
    """User intent for adding a payment to an existing AR/AP entry."""

    transaction_id: str
    amount: Decimal
    payment_date: Optional[date] = None
    method: PaymentMethod = PaymentMethod.CASH
    party_name: Optional[str] = None
    notes: Optional[str] = None
    allow_overpayment: bool = False
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentResult:
    """Payment that was committed and the entry totals it produced."""

    payment: data_manager.PaymentRow
    totals: UpdatedTotals


# Entries live only while a caller holds the lock.
_ITEM_LOCKS: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_ITEM_LOCKS_GUARD = threading.Lock()


def _item_lock(item_name: str) -> threading.Lock:
    key = item_name.strip().casefold()
    with _ITEM_LOCKS_GUARD:
        lock = _ITEM_LOCKS.get(key)
        if lock is None:
            lock = _ITEM_LOCKS[key] = threading.Lock()
        return lock


@contextmanager
def _locked_items(item_names: Iterable[str]) -> Iterator[None]:
    """Hold the locks of every named item, acquired in a stable order."""

    keys = sorted({name.strip().casefold() for name in item_names})
    with ExitStack() as stack:
        for key in keys:
            stack.enter_context(_item_lock(key))
        yield


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    return candidate if candidate is not None else datetime.now(UTC)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and open a workbook-backed store.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, store=WorkbookStore(workbook, settings.data_file))


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist in-memory workbook changes to the configured data file."""

    context.store.save()


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context over a newly opened workbook.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, store=WorkbookStore(workbook, context.settings.data_file))


def generate_transaction_id(*, when: Optional[datetime] = None, sequence: Optional[int] = None) -> str:
    """Generate a ``TXN-YYYYMMDD-HHMMSS-NNN`` identifier.

    Args:
        when (datetime | None): Timestamp encoded in the identifier. Defaults
            to the current UTC time.
        sequence (int | None): Three-digit suffix. A random value is used
            when omitted.
    """
    when = _resolve_timestamp(when)
    suffix = random.randint(0, 999) if sequence is None else sequence
    return f"TXN-{when.strftime('%Y%m%d-%H%M%S')}-{suffix % 1000:03d}"


def _unique_transaction_id(context: RuntimeContext, when: datetime) -> str:
    for _ in range(MAX_TRANSACTION_ID_ATTEMPTS):
        candidate = generate_transaction_id(when=when)
        if not context.store.query(SheetName.LEDGER, transaction_id=candidate):
            return candidate
        log.debug("Transaction id '%s' already taken, retrying", candidate)
    log.error("Exhausted %d transaction id attempts for %s", MAX_TRANSACTION_ID_ATTEMPTS, when.isoformat())
    raise StoreError("Could not allocate a unique transaction id")


def get_entry(context: RuntimeContext, transaction_id: str) -> data_manager.LedgerEntryRow:
    """Resolve a ledger entry by its transaction identifier.

    Raises:
        MissingReferenceError: If no entry carries ``transaction_id``.
    """
    matches = context.store.query(SheetName.LEDGER, transaction_id=transaction_id)
    if not matches:
        log.warning("Ledger entry lookup failed for '%s'", transaction_id)
        raise MissingReferenceError(f"Unknown transaction id: {transaction_id}")
    return matches[0]


def list_entries(
    context: RuntimeContext,
    *,
    direction: Optional[EntryDirection] = None,
    include_auto_generated: bool = True,
) -> List[data_manager.LedgerEntryRow]:
    """Return ledger entries in workbook order, optionally filtered."""

    entries = context.store.all(SheetName.LEDGER)
    if direction is not None:
        entries = [entry for entry in entries if entry.direction == direction.value]
    if not include_auto_generated:
        entries = [entry for entry in entries if not entry.auto_generated]
    return entries


def list_payments(context: RuntimeContext, transaction_id: Optional[str] = None) -> List[data_manager.PaymentRow]:
    if transaction_id is None:
        return context.store.all(SheetName.PAYMENTS)
    return context.store.query(SheetName.PAYMENTS, linked_transaction=transaction_id)


def list_cheques(context: RuntimeContext, transaction_id: Optional[str] = None) -> List[data_manager.ChequeRow]:
    if transaction_id is None:
        return context.store.all(SheetName.CHEQUES)
    return context.store.query(SheetName.CHEQUES, linked_transaction=transaction_id)


def list_inventory(context: RuntimeContext) -> List[data_manager.InventoryItemRow]:
    return context.store.all(SheetName.INVENTORY)


def find_inventory_item(context: RuntimeContext, item_name: str) -> Optional[data_manager.InventoryItemRow]:
    """Return the item whose name matches ``item_name``, ignoring case."""

    wanted = item_name.strip().casefold()
    for item in context.store.all(SheetName.INVENTORY):
        if item.item_name.strip().casefold() == wanted:
            return item
    return None


def calculate_cash_flow(context: RuntimeContext) -> Dict[str, Decimal]:
    """Sum receipts and disbursements that actually moved cash.

    Endorsement legs carry ``no_cash_movement`` and are skipped.

    Returns:
        dict[str, Decimal]: ``receipts``, ``disbursements`` and ``net``.
    """
    receipts = ZERO
    disbursements = ZERO
    for payment in context.store.all(SheetName.PAYMENTS):
        if payment.no_cash_movement:
            continue
        if payment.direction == PaymentDirection.RECEIPT.value:
            receipts = add(receipts, payment.amount)
        else:
            disbursements = add(disbursements, payment.amount)
    net = subtract(receipts, disbursements)
    log.debug("Calculated cash flow: receipts=%s disbursements=%s net=%s", receipts, disbursements, net)
    return {"receipts": receipts, "disbursements": disbursements, "net": net}


def calculate_outstanding_balances(context: RuntimeContext) -> Dict[str, Dict[str, Decimal]]:
    """Group open AR/AP balances by party.

    Income entries contribute to ``receivable`` and expense entries to
    ``payable``. Fully settled or overpaid entries are left out.
    """
    balances: Dict[str, Dict[str, Decimal]] = {}
    for entry in context.store.all(SheetName.LEDGER):
        if not entry.is_arap_entry or entry.remaining_balance is None or entry.remaining_balance <= 0:
            continue
        bucket = balances.setdefault(entry.associated_party, {"receivable": ZERO, "payable": ZERO})
        side = "receivable" if entry.direction == EntryDirection.INCOME.value else "payable"
        bucket[side] = add(bucket[side], entry.remaining_balance)
    log.debug("Calculated outstanding balances for %d parties", len(balances))
    return balances


def record_entry(context: RuntimeContext, command: RecordEntryCommand) -> data_manager.LedgerEntryRow:
    """Compose and commit a ledger entry together with its dependents.

    The inventory item named by the rider is read while holding that item's
    lock, and the composed update carries the quantity it was based on, so a
    concurrent writer surfaces as a
    :class:`~ledger_engine.errors.ConcurrentModificationError` instead of a
    lost update.

    Args:
        context (RuntimeContext): Runtime context providing the store.
        command (RecordEntryCommand): Draft entry plus riders.

    Returns:
        data_manager.LedgerEntryRow: The committed ledger entry.

    Raises:
        ValidationError: If the composer rejects the submission.
        StoreError: If the write-set cannot be committed or every
            candidate transaction id is already taken.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    for attempt in range(1, MAX_TRANSACTION_ID_ATTEMPTS + 1):
        transaction_id = _unique_transaction_id(context, timestamp)
        try:
            write_set = _commit_entry(context, transaction_id, command, timestamp)
        except DuplicateTransactionError:
            log.warning("Transaction id '%s' was claimed concurrently (attempt %d)", transaction_id, attempt)
            continue
        break
    else:
        log.error("Exhausted %d transaction id attempts for %s", MAX_TRANSACTION_ID_ATTEMPTS, timestamp.isoformat())
        raise StoreError("Could not allocate a unique transaction id")

    entry = write_set.operations[0].record
    log.info(
        "Recorded %s entry '%s' (amount=%s, operations=%d)",
        entry.direction,
        entry.transaction_id,
        entry.amount,
        len(write_set),
    )
    return entry


def _commit_entry(
    context: RuntimeContext,
    transaction_id: str,
    command: RecordEntryCommand,
    timestamp: datetime,
) -> WriteSet:
    rider = command.riders.inventory
    item_names = [rider.item_name] if rider is not None else []

    with _locked_items(item_names):
        item = find_inventory_item(context, rider.item_name) if rider is not None else None
        write_set = compose(
            transaction_id,
            command.draft,
            command.riders,
            inventory_item=item,
            now=timestamp,
            default_party=context.settings.default_party,
            cogs_category=context.settings.cogs_category,
        )
        context.store.atomic_write(write_set)
    return write_set


def collect_reversal_snapshot(context: RuntimeContext, transaction_id: str) -> ReversalSnapshot:
    """Read the entry and every record linked to it."""

    store = context.store
    entries = store.query(SheetName.LEDGER, transaction_id=transaction_id)
    if len(entries) > 1:
        log.error("Found %d ledger entries sharing transaction id '%s'", len(entries), transaction_id)
        raise DataIntegrityFault(
            "Several ledger entries share one transaction id",
            operation="delete_entry",
            entity_type="ledger_entry",
            entity_id=transaction_id,
        )
    movements = tuple(store.query(SheetName.INVENTORY_MOVEMENTS, linked_transaction=transaction_id))
    items = {}
    for movement in movements:
        item = store.get(SheetName.INVENTORY, movement.item_id)
        if item is not None:
            items[item.item_id] = item
    return ReversalSnapshot(
        entry=entries[0] if entries else None,
        payments=tuple(store.query(SheetName.PAYMENTS, linked_transaction=transaction_id)),
        cheques=tuple(store.query(SheetName.CHEQUES, linked_transaction=transaction_id)),
        movements=movements,
        fixed_assets=tuple(store.query(SheetName.FIXED_ASSETS, linked_transaction=transaction_id)),
        cogs_entries=tuple(store.query(SheetName.LEDGER, transaction_id=f"{COGS_PREFIX}{transaction_id}")),
        items=items,
    )


def delete_entry(context: RuntimeContext, transaction_id: str) -> WriteSet:
    """Delete a ledger entry and undo everything it created.

    Returns:
        WriteSet: The committed reversal.

    Raises:
        ValidationError: If ``transaction_id`` names an auto-generated entry.
        MissingReferenceError: If nothing carries ``transaction_id``.
        DataIntegrityFault: If the stored records cannot be reversed.
        StoreError: If the write-set cannot be committed.
    """
    first_look = collect_reversal_snapshot(context, transaction_id)
    with _locked_items(movement.item_name for movement in first_look.movements):
        snapshot = collect_reversal_snapshot(context, transaction_id)
        write_set = compose_reversal(transaction_id, snapshot)
        context.store.atomic_write(write_set)

    log.info("Deleted entry '%s' with %d operation(s)", transaction_id, len(write_set))
    return write_set


def build_payment(
    command: PaymentCommand,
    entry: data_manager.LedgerEntryRow,
    *,
    timestamp: datetime,
) -> data_manager.PaymentRow:
    """Create the payment row for an "add payment" request."""

    direction = PaymentDirection.RECEIPT if entry.direction == EntryDirection.INCOME.value else PaymentDirection.DISBURSEMENT
    return data_manager.PaymentRow(
        payment_id=data_manager.new_record_id(),
        party_name=(command.party_name or "").strip() or entry.associated_party,
        amount=round_currency(command.amount),
        direction=direction.value,
        linked_transaction=data_manager.TransactionRef(entry.transaction_id),
        method=command.method.value,
        payment_date=command.payment_date or timestamp.date(),
        notes=command.notes,
        is_endorsement=False,
        no_cash_movement=False,
        created_at=timestamp.isoformat(),
    )


def record_payment(context: RuntimeContext, command: PaymentCommand) -> PaymentResult:
    """Add a payment to an AR/AP entry and update its running totals.

    Raises:
        MissingReferenceError: If the entry does not exist.
        ValidationError: If the entry is not AR/AP tracked or the amount is
            not positive.
        OverpaymentWarning: If the payment exceeds the remaining balance and
            ``command.allow_overpayment`` is false. Nothing is written.
        StoreError: If the write-set cannot be committed.
    """
    entry = get_entry(context, command.transaction_id)
    totals = apply_payment(entry, command.amount, allow_overpayment=command.allow_overpayment)
    payment = build_payment(command, entry, timestamp=_resolve_timestamp(command.timestamp))
    write_set = WriteSet(
        (
            Insert(payment),
            Update(
                SheetName.LEDGER,
                entry.entry_id,
                changes=totals.as_changes(),
                expected={"total_paid": entry.total_paid},
            ),
        )
    )
    context.store.atomic_write(write_set)
    if totals.overpaid:
        log.warning("Recorded overpayment on '%s': remaining %s", entry.transaction_id, totals.remaining_balance)
    log.info(
        "Recorded payment '%s' of %s on '%s' (status=%s)",
        payment.payment_id,
        payment.amount,
        entry.transaction_id,
        totals.payment_status.value,
    )
    return PaymentResult(payment=payment, totals=totals)


def delete_payment(context: RuntimeContext, payment_id: str) -> Optional[UpdatedTotals]:
    """Delete a payment and reverse it from its entry's AR/AP totals.

    Returns:
        UpdatedTotals | None: New totals of the parent entry, or ``None`` when
            the entry does not track AR/AP.

    Raises:
        MissingReferenceError: If the payment does not exist.
        ValidationError: If the payment is an endorsement leg or backs a
            cheque; those are removed together with their entry.
        DataIntegrityFault: If the parent entry is missing or the reversal
            exceeds what the entry records as paid.
    """
    payment = context.store.get(SheetName.PAYMENTS, payment_id)
    if payment is None:
        log.warning("Payment lookup failed for '%s'", payment_id)
        raise MissingReferenceError(f"Unknown payment id: {payment_id}")
    if payment.is_endorsement:
        log.warning("Refused to delete endorsement leg '%s' on its own", payment_id)
        raise ValidationError("Endorsement payments are removed together with their entry")
    if payment.linked_cheque_id is not None:
        log.warning("Refused to delete payment '%s' backing cheque '%s'", payment_id, payment.linked_cheque_id)
        raise ValidationError("Cheque payments are removed together with their entry")

    parents = context.store.query(SheetName.LEDGER, transaction_id=payment.linked_transaction)
    if not parents:
        log.error("Payment '%s' references missing entry '%s'", payment_id, payment.linked_transaction)
        raise DataIntegrityFault(
            "Payment references a ledger entry that does not exist",
            operation="delete_payment",
            entity_type="payment",
            entity_id=payment_id,
        )
    entry = parents[0]

    operations = [Delete(SheetName.PAYMENTS, payment_id)]
    totals = None
    if entry.is_arap_entry:
        totals = reverse_payment(entry, payment.amount)
        operations.append(
            Update(
                SheetName.LEDGER,
                entry.entry_id,
                changes=totals.as_changes(),
                expected={"total_paid": entry.total_paid},
            )
        )
    context.store.atomic_write(WriteSet(tuple(operations)))
    log.info("Deleted payment '%s' from '%s'", payment_id, entry.transaction_id)
    return totals


__all__ = [
    "RuntimeContext",
    "RecordEntryCommand",
    "PaymentCommand",
    "PaymentResult",
    "load_runtime_context",
    "ensure_schema_version",
    "persist_context",
    "refresh_context",
    "generate_transaction_id",
    "get_entry",
    "list_entries",
    "list_payments",
    "list_cheques",
    "list_inventory",
    "find_inventory_item",
    "calculate_cash_flow",
    "calculate_outstanding_balances",
    "record_entry",
    "collect_reversal_snapshot",
    "delete_entry",
    "build_payment",
    "record_payment",
    "delete_payment",
]
