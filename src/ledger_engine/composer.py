"""Transaction composer: turn one submitted entry into an atomic write-set.

The composer is pure. Callers read whatever store state it needs (the
inventory item named by an inventory rider) and pass it in; every
cross-field rule is checked before the first record is built, so a
validation failure never leaves the caller holding a partial write-set.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from . import data_manager, log
from .arap import UpdatedTotals, initial_totals
from .cheque_policy import resolve_cheque, validate_cheque
from .constants import (
    DECLINING_BALANCE_RATE,
    DEFAULT_COGS_CATEGORY,
    DEFAULT_COGS_SUB_CATEGORY,
    DEFAULT_PARTY,
    AccountingType,
    AssetStatus,
    ChequeDirection,
    DepreciationMethod,
    EntryDirection,
    MovementDirection,
    PaymentDirection,
    PaymentMethod,
    SheetName,
)
from .currency import ZERO, divide, multiply, round_currency, subtract, to_decimal, zero_floor
from .errors import InsufficientStockError, MissingReferenceError, ValidationError
from .inventory_costing import cogs, landed_total_cost, landed_unit_cost, weighted_average_cost
from .store import Insert, Operation, Update, WriteSet


@dataclass(frozen=True)
class EntryDraft:
    """User intent for a new ledger entry, already parsed into typed values."""

    entry_date: date
    description: str
    direction: EntryDirection
    amount: Decimal
    category: str
    sub_category: Optional[str] = None
    associated_party: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ChequeRider:
    """Cheque submitted together with a ledger entry.

    ``endorsed_party`` names the counterpart of an endorsed cheque: who an
    incoming cheque was passed on to, or who an outgoing one came from.
    """

    cheque_number: str
    amount: Decimal
    accounting_type: AccountingType = AccountingType.CASHED
    due_date: Optional[date] = None
    bank_name: Optional[str] = None
    endorsed_party: Optional[str] = None


@dataclass(frozen=True)
class InventoryRider:
    """Stock movement submitted together with a ledger entry.

    ``direction`` defaults to an entry for expenses and an exit for income.
    """

    item_name: str
    quantity: Decimal
    unit: Optional[str] = None
    direction: Optional[MovementDirection] = None
    shipping_cost: Decimal = Decimal("0")
    other_costs: Decimal = Decimal("0")
    thickness: Optional[Decimal] = None
    width: Optional[Decimal] = None
    length: Optional[Decimal] = None

    def resolved_direction(self, entry_direction: EntryDirection) -> MovementDirection:
        if self.direction is not None:
            return self.direction
        return MovementDirection.EXIT if entry_direction is EntryDirection.INCOME else MovementDirection.ENTRY


@dataclass(frozen=True)
class FixedAssetRider:
    """Fixed asset purchased through a ledger entry."""

    asset_name: str
    useful_life_years: Decimal
    depreciation_method: DepreciationMethod = DepreciationMethod.STRAIGHT_LINE
    salvage_value: Decimal = Decimal("0")


@dataclass(frozen=True)
class Riders:
    """Optional, independently toggleable extras of a ledger submission."""

    incoming_cheque: Optional[ChequeRider] = None
    outgoing_cheque: Optional[ChequeRider] = None
    inventory: Optional[InventoryRider] = None
    fixed_asset: Optional[FixedAssetRider] = None
    initial_payment: Optional[Decimal] = None
    track_arap: bool = False
    immediate_settlement: bool = False


class SettlementMode(str, Enum):
    """Which rule decided the initial paid total of an entry."""

    IMMEDIATE_WITH_CHEQUE = "immediate_with_cheque"
    IMMEDIATE = "immediate"
    INITIAL_PAYMENT = "initial_payment"
    CHEQUE_ONLY = "cheque_only"
    NONE = "none"


@dataclass(frozen=True)
class SettlementPlan:
    """Initial paid total and the cash payment that backs it.

    ``cash_amount`` excludes anything a cheque pays for itself; the cheque
    policy records that part.
    """

    mode: SettlementMode
    total_paid: Decimal
    cash_amount: Decimal


def _cheque_counts_as_paid(cheque: ChequeRider, direction: ChequeDirection) -> bool:
    if cheque.accounting_type is AccountingType.CASHED:
        return True
    return direction is ChequeDirection.OUTGOING and cheque.accounting_type is AccountingType.ENDORSED


def resolve_settlement(amount: Decimal, riders: Riders) -> SettlementPlan:
    """Resolve the initial paid total with a first-match decision table.

    ==========================  =============================================
    Condition                   Paid total
    ==========================  =============================================
    immediate + cheque          ``amount`` if the cheque counts as paid now,
                                else the cash portion ``amount - cheque``
    immediate, no cheque        ``amount``
    initial payment             the initial payment
    incoming cheque             its amount when cashed, else zero
    outgoing cheque             its amount when cashed or endorsed, else zero
    otherwise                   zero
    ==========================  =============================================

    An incoming cheque takes precedence over an outgoing one in every row.
    """

    amount = round_currency(amount)
    incoming, outgoing = riders.incoming_cheque, riders.outgoing_cheque

    if riders.immediate_settlement:
        if incoming is not None or outgoing is not None:
            cheque, direction = (
                (incoming, ChequeDirection.INCOMING) if incoming is not None else (outgoing, ChequeDirection.OUTGOING)
            )
            cash_portion = zero_floor(subtract(amount, cheque.amount))
            total_paid = amount if _cheque_counts_as_paid(cheque, direction) else cash_portion
            return SettlementPlan(SettlementMode.IMMEDIATE_WITH_CHEQUE, total_paid, cash_portion)
        return SettlementPlan(SettlementMode.IMMEDIATE, amount, amount)

    if riders.initial_payment is not None:
        paid = round_currency(riders.initial_payment)
        return SettlementPlan(SettlementMode.INITIAL_PAYMENT, paid, paid)

    for cheque, direction in ((incoming, ChequeDirection.INCOMING), (outgoing, ChequeDirection.OUTGOING)):
        if cheque is not None:
            paid = round_currency(cheque.amount) if _cheque_counts_as_paid(cheque, direction) else ZERO
            return SettlementPlan(SettlementMode.CHEQUE_ONLY, paid, ZERO)

    return SettlementPlan(SettlementMode.NONE, ZERO, ZERO)


def validate_submission(
    draft: EntryDraft,
    riders: Riders,
    inventory_item: Optional[data_manager.InventoryItemRow] = None,
) -> None:
    """Check every cross-field rule of a submission.

    Args:
        draft (EntryDraft): Entry being recorded.
        riders (Riders): Its optional extras.
        inventory_item (InventoryItemRow | None): Current state of the item
            named by the inventory rider, if it exists.

    Raises:
        ValidationError: On the first rule the submission breaks.
        MissingReferenceError: If an inventory exit names an unknown item.
        InsufficientStockError: If an inventory exit exceeds the stock held.
    """

    amount = to_decimal(draft.amount)
    if amount <= 0:
        log.warning("Rejected entry '%s' with amount %s", draft.description, amount)
        raise ValidationError("Entry amount must be greater than zero")

    incoming = riders.incoming_cheque
    if riders.track_arap and riders.immediate_settlement and incoming is not None:
        if to_decimal(incoming.amount) > amount:
            log.warning("Incoming cheque %s exceeds entry amount %s", incoming.amount, amount)
            raise ValidationError("Incoming cheque amount cannot exceed the entry amount")

    if riders.initial_payment is not None:
        initial = to_decimal(riders.initial_payment)
        if initial <= 0:
            log.warning("Rejected non-positive initial payment %s", initial)
            raise ValidationError("Initial payment must be greater than zero")
        if initial > amount:
            log.warning("Initial payment %s exceeds entry amount %s", initial, amount)
            raise ValidationError("Initial payment cannot exceed the entry amount")

    for cheque in (incoming, riders.outgoing_cheque):
        if cheque is not None:
            validate_cheque(
                cheque_number=cheque.cheque_number,
                amount=to_decimal(cheque.amount),
                accounting_type=cheque.accounting_type,
                counterpart=cheque.endorsed_party,
            )

    if riders.inventory is not None:
        _validate_inventory(draft, riders.inventory, inventory_item)

    if riders.fixed_asset is not None:
        _validate_fixed_asset(riders.fixed_asset, amount)


def _validate_inventory(
    draft: EntryDraft,
    rider: InventoryRider,
    item: Optional[data_manager.InventoryItemRow],
) -> None:
    if not (rider.item_name or "").strip():
        raise ValidationError("Inventory item name is required")
    quantity = to_decimal(rider.quantity)
    if quantity <= 0:
        log.warning("Rejected inventory rider for '%s' with quantity %s", rider.item_name, quantity)
        raise ValidationError("Inventory quantity must be greater than zero")
    if rider.resolved_direction(draft.direction) is not MovementDirection.EXIT:
        return
    if item is None:
        log.warning("Rejected exit for unknown inventory item '%s'", rider.item_name)
        raise MissingReferenceError(f"Inventory item not found: {rider.item_name}")
    if item.quantity - quantity < 0:
        log.warning(
            "Rejected exit of %s '%s' with only %s in stock",
            quantity,
            rider.item_name,
            item.quantity,
        )
        raise InsufficientStockError(rider.item_name, item.quantity, quantity)


def _validate_fixed_asset(rider: FixedAssetRider, purchase_amount: Decimal) -> None:
    if not (rider.asset_name or "").strip():
        raise ValidationError("Fixed asset name is required")
    if (
        rider.depreciation_method is DepreciationMethod.STRAIGHT_LINE
        and to_decimal(rider.useful_life_years) <= 0
    ):
        log.warning("Rejected fixed asset '%s' with useful life %s", rider.asset_name, rider.useful_life_years)
        raise ValidationError("Useful life must be greater than zero")
    salvage = to_decimal(rider.salvage_value)
    if salvage < 0 or salvage > purchase_amount:
        log.warning("Rejected fixed asset '%s' with salvage value %s", rider.asset_name, salvage)
        raise ValidationError("Salvage value must be between zero and the purchase amount")


def compose(
    transaction_id: str,
    draft: EntryDraft,
    riders: Riders,
    *,
    inventory_item: Optional[data_manager.InventoryItemRow] = None,
    now: Optional[datetime] = None,
    default_party: str = DEFAULT_PARTY,
    cogs_category: str = DEFAULT_COGS_CATEGORY,
) -> WriteSet:
    """Build the full write-set for a ledger submission.

    Args:
        transaction_id (str): Freshly generated ``TXN-...`` identifier.
        draft (EntryDraft): The ledger entry being recorded.
        riders (Riders): Optional cheques, payments, inventory and asset data.
        inventory_item (InventoryItemRow | None): Current state of the item
            named by ``riders.inventory``; ``None`` when it does not exist.
        now (datetime | None): Creation timestamp; defaults to UTC now.
        default_party (str): Party name used when the draft names none.
        cogs_category (str): Category stamped on auto-generated COGS entries.

    Returns:
        WriteSet: Ledger entry first, followed by its dependent records.

    Raises:
        ValidationError: If any rule rejects the submission. No write-set is
            produced in that case.
    """

    validate_submission(draft, riders, inventory_item)
    link = data_manager.TransactionRef(transaction_id)
    now = now or datetime.now(UTC)
    created_at = now.isoformat()
    party = (draft.associated_party or "").strip() or default_party
    amount = round_currency(draft.amount)

    plan = resolve_settlement(amount, riders)
    totals = initial_totals(amount, plan.total_paid) if riders.track_arap else None
    log.debug("Settlement for %s resolved to %s", transaction_id, plan)

    operations: List[Operation] = [Insert(_ledger_row(link, draft, amount, party, riders, totals, created_at))]

    for direction, cheque in (
        (ChequeDirection.INCOMING, riders.incoming_cheque),
        (ChequeDirection.OUTGOING, riders.outgoing_cheque),
    ):
        if cheque is not None:
            operations.extend(_cheque_operations(cheque, direction, draft, party, link, created_at))

    if _emits_cash_payment(plan, riders):
        operations.append(
            Insert(
                data_manager.PaymentRow(
                    payment_id=data_manager.new_record_id(),
                    party_name=party,
                    amount=plan.cash_amount,
                    direction=_payment_direction(draft.direction).value,
                    linked_transaction=link,
                    method=PaymentMethod.CASH.value,
                    payment_date=draft.entry_date,
                    notes=_cash_payment_note(plan.mode, draft.description),
                    is_endorsement=False,
                    no_cash_movement=False,
                    created_at=created_at,
                )
            )
        )

    if riders.inventory is not None:
        operations.extend(
            _inventory_operations(draft, riders.inventory, inventory_item, link, party, created_at, cogs_category)
        )

    if riders.fixed_asset is not None:
        operations.append(Insert(_fixed_asset_row(riders.fixed_asset, draft, amount, link, now)))

    write_set = WriteSet(tuple(operations))
    log.debug("Composed %d operation(s) for %s", len(write_set), transaction_id)
    return write_set


def _emits_cash_payment(plan: SettlementPlan, riders: Riders) -> bool:
    # an initial payment is only recorded against tracked AR/AP totals
    if plan.mode is SettlementMode.INITIAL_PAYMENT and not riders.track_arap:
        return False
    return plan.cash_amount > 0


def _payment_direction(direction: EntryDirection) -> PaymentDirection:
    return PaymentDirection.RECEIPT if direction is EntryDirection.INCOME else PaymentDirection.DISBURSEMENT


def _cash_payment_note(mode: SettlementMode, description: str) -> str:
    if mode is SettlementMode.INITIAL_PAYMENT:
        return f"Initial payment - {description}"
    return f"Immediate settlement - {description}"


def _ledger_row(
    link: data_manager.TransactionRef,
    draft: EntryDraft,
    amount: Decimal,
    party: str,
    riders: Riders,
    totals: Optional[UpdatedTotals],
    created_at: str,
) -> data_manager.LedgerEntryRow:
    return data_manager.LedgerEntryRow(
        entry_id=data_manager.new_record_id(),
        transaction_id=link.transaction_id,
        entry_date=draft.entry_date,
        description=draft.description,
        direction=draft.direction.value,
        amount=amount,
        category=draft.category,
        sub_category=draft.sub_category,
        associated_party=party,
        reference=draft.reference,
        notes=draft.notes,
        is_arap_entry=riders.track_arap,
        total_paid=totals.total_paid if totals else None,
        remaining_balance=totals.remaining_balance if totals else None,
        payment_status=totals.payment_status.value if totals else None,
        immediate_settlement=riders.immediate_settlement,
        auto_generated=False,
        linked_transaction=None,
        created_at=created_at,
    )


def _cheque_operations(
    cheque: ChequeRider,
    direction: ChequeDirection,
    draft: EntryDraft,
    party: str,
    link: data_manager.TransactionRef,
    created_at: str,
) -> List[Operation]:
    amount = round_currency(cheque.amount)
    cheque_id = data_manager.new_record_id()
    outcome = resolve_cheque(
        accounting_type=cheque.accounting_type,
        amount=amount,
        direction=direction,
        party=party,
        counterpart=cheque.endorsed_party,
        cheque_id=cheque_id,
        cheque_number=cheque.cheque_number,
        issue_date=draft.entry_date,
        link=link,
        created_at=created_at,
    )
    row = data_manager.ChequeRow(
        cheque_id=cheque_id,
        cheque_number=cheque.cheque_number.strip(),
        party_name=party,
        amount=amount,
        direction=direction.value,
        cheque_kind=outcome.cheque_kind.value,
        status=outcome.status.value,
        accounting_type=cheque.accounting_type.value,
        linked_transaction=link,
        issue_date=draft.entry_date,
        due_date=cheque.due_date,
        bank_name=cheque.bank_name,
        endorsed_party=cheque.endorsed_party,
        notes=draft.description,
        created_at=created_at,
    )
    return [Insert(row), *(Insert(payment) for payment in outcome.payments)]


def _inventory_operations(
    draft: EntryDraft,
    rider: InventoryRider,
    item: Optional[data_manager.InventoryItemRow],
    link: data_manager.TransactionRef,
    party: str,
    created_at: str,
    cogs_category: str,
) -> List[Operation]:
    """Item insert or update, the movement record and, on a sale, the COGS entry."""

    operations: List[Operation] = []
    direction = rider.resolved_direction(draft.direction)
    quantity = to_decimal(rider.quantity)
    unit = rider.unit or (item.unit if item else None)

    if direction is MovementDirection.ENTRY:
        unit_cost = landed_unit_cost(draft.amount, rider.shipping_cost, rider.other_costs, quantity)
        landed_total = landed_total_cost(draft.amount, rider.shipping_cost, rider.other_costs)
        if item is None:
            item = data_manager.InventoryItemRow(
                item_id=data_manager.new_record_id(),
                item_name=rider.item_name.strip(),
                category=draft.category,
                quantity=quantity,
                unit=unit,
                unit_price=unit_cost,
                thickness=rider.thickness,
                width=rider.width,
                length=rider.length,
                last_purchase_price=unit_cost,
                last_purchase_date=draft.entry_date,
                last_purchase_amount=landed_total,
                min_stock=Decimal("0"),
                location=None,
                notes=None,
            )
            operations.append(Insert(item))
            log.debug("New inventory item '%s' at landed cost %s", item.item_name, unit_cost)
        else:
            new_cost = weighted_average_cost(item.quantity, item.unit_price, quantity, unit_cost)
            operations.append(
                Update(
                    SheetName.INVENTORY,
                    item.item_id,
                    changes={
                        "quantity": item.quantity + quantity,
                        "unit_price": new_cost,
                        "last_purchase_price": unit_cost,
                        "last_purchase_date": draft.entry_date,
                        "last_purchase_amount": landed_total,
                    },
                    expected={"quantity": item.quantity},
                )
            )
            log.debug("Weighted cost of '%s' moves from %s to %s", item.item_name, item.unit_price, new_cost)
    else:
        # Existence and stock were checked by validate_submission.
        operations.append(
            Update(
                SheetName.INVENTORY,
                item.item_id,
                changes={"quantity": item.quantity - quantity},
                expected={"quantity": item.quantity},
            )
        )
        if draft.direction is EntryDirection.INCOME:
            cogs_row = _cogs_row(draft, item, quantity, link, party, created_at, cogs_category)
            if cogs_row is not None:
                operations.append(Insert(cogs_row))

    operations.append(
        Insert(
            data_manager.InventoryMovementRow(
                movement_id=data_manager.new_record_id(),
                item_id=item.item_id,
                item_name=item.item_name,
                direction=direction.value,
                quantity=quantity,
                unit=unit,
                thickness=rider.thickness,
                width=rider.width,
                length=rider.length,
                linked_transaction=link,
                notes=draft.description,
                created_at=created_at,
            )
        )
    )
    return operations


def _cogs_row(
    draft: EntryDraft,
    item: data_manager.InventoryItemRow,
    quantity: Decimal,
    link: data_manager.TransactionRef,
    party: str,
    created_at: str,
    cogs_category: str,
) -> Optional[data_manager.LedgerEntryRow]:
    total = cogs(quantity, item.unit_price)
    if total <= 0:
        log.info("Skipping COGS for '%s': item carries no cost", item.item_name)
        return None
    return data_manager.LedgerEntryRow(
        entry_id=data_manager.new_record_id(),
        transaction_id=link.cogs_id,
        entry_date=draft.entry_date,
        description=f"Cost of goods sold - {item.item_name}",
        direction=EntryDirection.EXPENSE.value,
        amount=total,
        category=cogs_category,
        sub_category=DEFAULT_COGS_SUB_CATEGORY,
        associated_party=party,
        reference=link.transaction_id,
        notes=f"{quantity} x {item.unit_price} = {total}",
        is_arap_entry=False,
        total_paid=None,
        remaining_balance=None,
        payment_status=None,
        immediate_settlement=False,
        auto_generated=True,
        linked_transaction=link,
        created_at=created_at,
    )


def generate_asset_number(year: int) -> str:
    """Return an ``FA-YYYY-NNNN`` asset number."""

    return f"FA-{year}-{random.randint(0, 9999):04d}"


def annual_depreciation(
    purchase_amount: Decimal,
    salvage_value: Decimal,
    useful_life_years: Decimal,
    method: DepreciationMethod,
) -> Decimal:
    if method is DepreciationMethod.DECLINING:
        return multiply(purchase_amount, DECLINING_BALANCE_RATE)
    return divide(subtract(purchase_amount, salvage_value), useful_life_years)


def _fixed_asset_row(
    rider: FixedAssetRider,
    draft: EntryDraft,
    amount: Decimal,
    link: data_manager.TransactionRef,
    now: datetime,
) -> data_manager.FixedAssetRow:
    salvage = round_currency(rider.salvage_value)
    life = to_decimal(rider.useful_life_years)
    return data_manager.FixedAssetRow(
        asset_id=data_manager.new_record_id(),
        asset_number=generate_asset_number(now.year),
        asset_name=rider.asset_name.strip(),
        purchase_amount=amount,
        purchase_date=draft.entry_date,
        useful_life_years=life,
        salvage_value=salvage,
        depreciation_method=rider.depreciation_method.value,
        annual_depreciation=annual_depreciation(amount, salvage, life, rider.depreciation_method),
        accumulated_depreciation=ZERO,
        book_value=amount,
        linked_transaction=link,
        status=AssetStatus.ACTIVE.value,
        notes=draft.notes,
        created_at=now.isoformat(),
    )


__all__ = [
    "EntryDraft",
    "ChequeRider",
    "InventoryRider",
    "FixedAssetRider",
    "Riders",
    "SettlementMode",
    "SettlementPlan",
    "resolve_settlement",
    "validate_submission",
    "compose",
    "generate_asset_number",
    "annual_depreciation",
]
