"""Reversal composer: undo a ledger entry together with everything it created.

The reversal is a logical inverse of :func:`ledger_engine.composer.compose`.
Dependents are found through their ``linked_transaction`` reference, the
auto-generated COGS entry through its ``COGS-`` identifier, and inventory
quantities are restored from the movement records themselves. Weighted
average cost is not rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Tuple

from . import data_manager, log
from .constants import COGS_PREFIX, MovementDirection, SheetName
from .errors import DataIntegrityFault, MissingReferenceError, ValidationError
from .store import Delete, Operation, Update, WriteSet


@dataclass(frozen=True)
class ReversalSnapshot:
    """Every stored record a reversal needs, read in one pass.

    ``items`` maps item ids to the current inventory rows referenced by
    ``movements``; an id missing from it means the item no longer exists.
    """

    entry: Optional[data_manager.LedgerEntryRow]
    payments: Tuple[data_manager.PaymentRow, ...] = ()
    cheques: Tuple[data_manager.ChequeRow, ...] = ()
    movements: Tuple[data_manager.InventoryMovementRow, ...] = ()
    fixed_assets: Tuple[data_manager.FixedAssetRow, ...] = ()
    cogs_entries: Tuple[data_manager.LedgerEntryRow, ...] = ()
    items: Mapping[str, data_manager.InventoryItemRow] = field(default_factory=dict)

    @property
    def has_dependents(self) -> bool:
        return any((self.payments, self.cheques, self.movements, self.fixed_assets, self.cogs_entries))


def revert_quantity(current: Decimal, movement: data_manager.InventoryMovementRow) -> Decimal:
    """Return the item quantity before ``movement`` was applied.

    Raises:
        DataIntegrityFault: If undoing an entry movement would leave the item
            with negative stock.
    """

    if movement.direction == MovementDirection.ENTRY.value:
        reverted = current - movement.quantity
    else:
        reverted = current + movement.quantity

    if reverted < 0:
        log.error(
            "Reverting movement '%s' would leave '%s' at %s",
            movement.movement_id,
            movement.item_name,
            reverted,
        )
        raise DataIntegrityFault(
            "Inventory reversal would make the quantity negative",
            operation="revert_inventory",
            entity_type="inventory_item",
            entity_id=movement.item_id,
            expected=movement.quantity,
            actual=current,
        )
    return reverted


def compose_reversal(transaction_id: str, snapshot: ReversalSnapshot) -> WriteSet:
    """Build the write-set that deletes an entry and all of its dependents.

    Args:
        transaction_id (str): Identifier of the ledger entry to remove.
        snapshot (ReversalSnapshot): Stored state gathered by the caller.

    Returns:
        WriteSet: Deletes for the entry, its COGS entry, payments, cheques,
            fixed assets and movements, followed by inventory quantity
            updates.

    Raises:
        ValidationError: If ``transaction_id`` names an auto-generated COGS
            entry, which only disappears together with its parent.
        MissingReferenceError: If no entry and no dependent carry the id.
        DataIntegrityFault: If dependents exist without their parent, a
            movement points at a missing item, or a quantity would go
            negative.
    """

    entry = snapshot.entry
    if transaction_id.startswith(COGS_PREFIX) or (entry is not None and entry.auto_generated):
        log.warning("Refused to delete auto-generated entry '%s' on its own", transaction_id)
        raise ValidationError(f"Auto-generated entry {transaction_id} is removed with its parent transaction")

    if entry is None:
        if snapshot.has_dependents:
            log.error("Found records linked to missing ledger entry '%s'", transaction_id)
            raise DataIntegrityFault(
                "Dependent records reference a ledger entry that does not exist",
                operation="delete_entry",
                entity_type="ledger_entry",
                entity_id=transaction_id,
            )
        log.warning("Ledger entry lookup failed for '%s'", transaction_id)
        raise MissingReferenceError(f"Unknown transaction id: {transaction_id}")

    operations: List[Operation] = [Delete(SheetName.LEDGER, entry.entry_id)]
    operations.extend(Delete(SheetName.LEDGER, cogs_entry.entry_id) for cogs_entry in snapshot.cogs_entries)
    operations.extend(Delete(SheetName.PAYMENTS, payment.payment_id) for payment in snapshot.payments)
    operations.extend(Delete(SheetName.CHEQUES, cheque.cheque_id) for cheque in snapshot.cheques)
    operations.extend(Delete(SheetName.FIXED_ASSETS, asset.asset_id) for asset in snapshot.fixed_assets)

    original: Dict[str, Decimal] = {}
    reverted: Dict[str, Decimal] = {}
    for movement in snapshot.movements:
        item = snapshot.items.get(movement.item_id)
        if item is None:
            log.error("Movement '%s' references missing item '%s'", movement.movement_id, movement.item_id)
            raise DataIntegrityFault(
                "Inventory movement references an item that does not exist",
                operation="revert_inventory",
                entity_type="inventory_item",
                entity_id=movement.item_id,
            )
        original.setdefault(item.item_id, item.quantity)
        reverted[item.item_id] = revert_quantity(reverted.get(item.item_id, item.quantity), movement)
        operations.append(Delete(SheetName.INVENTORY_MOVEMENTS, movement.movement_id))

    for item_id, quantity in reverted.items():
        operations.append(
            Update(
                SheetName.INVENTORY,
                item_id,
                changes={"quantity": quantity},
                expected={"quantity": original[item_id]},
            )
        )
        log.debug("Inventory item '%s' reverts from %s to %s", item_id, original[item_id], quantity)

    return WriteSet(tuple(operations))


__all__ = ["ReversalSnapshot", "revert_quantity", "compose_reversal"]
