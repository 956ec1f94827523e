"""Store adapter: write-sets and the workbook-backed transactional store.

A write-set is the ordered group of inserts, updates and deletes produced by
the composers for one user action. :class:`WorkbookStore` applies a write-set
to the workbook as a single unit: every operation is checked before the first
cell changes, and if applying still fails the touched sheets are restored
from a snapshot.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import SheetName
from .errors import ConcurrentModificationError, DuplicateTransactionError, StoreError


@dataclass(frozen=True)
class Insert:
    """Create ``record`` in its collection."""

    record: Any

    @property
    def sheet(self) -> SheetName:
        return data_manager.schema_for_record(self.record).sheet

    @property
    def record_id(self) -> str:
        return data_manager.record_key(self.record)


@dataclass(frozen=True)
class Update:
    """Change selected attributes of an existing record.

    ``expected`` lists attribute values the record must still hold when the
    write is applied; a mismatch means another writer got there first.
    """

    sheet: SheetName
    record_id: str
    changes: Mapping[str, Any]
    expected: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Delete:
    """Remove a record from its collection."""

    sheet: SheetName
    record_id: str


Operation = Union[Insert, Update, Delete]


@dataclass(frozen=True)
class WriteSet:
    """Ordered, all-or-nothing group of store operations."""

    operations: Tuple[Operation, ...] = ()

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    def inserted(self, sheet: SheetName) -> List[Any]:
        """Return the records this write-set creates in ``sheet``."""

        return [op.record for op in self.operations if isinstance(op, Insert) and op.sheet is sheet]

    def updates(self, sheet: SheetName) -> List[Update]:
        return [op for op in self.operations if isinstance(op, Update) and op.sheet is sheet]

    def deleted_ids(self, sheet: SheetName) -> List[str]:
        return [op.record_id for op in self.operations if isinstance(op, Delete) and op.sheet is sheet]

    def sheets(self) -> List[SheetName]:
        touched: List[SheetName] = []
        for op in self.operations:
            if op.sheet not in touched:
                touched.append(op.sheet)
        return touched


class Store(Protocol):
    """Collaborator contract the engine needs from a document store."""

    def query(self, sheet: SheetName, **field_equals: Any) -> List[Any]:
        ...

    def get(self, sheet: SheetName, record_id: str) -> Optional[Any]:
        ...

    def atomic_write(self, write_set: WriteSet) -> None:
        ...


class WorkbookStore:
    """Transactional record store backed by an ``openpyxl`` workbook.

    Reads are served from a per-sheet cache that is dropped whenever a
    write-set touches the sheet. Writes only change the in-memory workbook;
    :meth:`save` persists them through :func:`data_manager.save_workbook`.
    """

    def __init__(self, workbook: Workbook, data_file: Optional[Any] = None) -> None:
        self.workbook = workbook
        self.data_file = data_file
        self._cache: Dict[SheetName, List[Any]] = {}
        self._lock = threading.RLock()

    def _records(self, sheet: SheetName) -> List[Any]:
        with self._lock:
            cached = self._cache.get(sheet)
            if cached is None:
                cached = list(data_manager.iter_records(self.workbook, sheet))
                self._cache[sheet] = cached
                log.debug("Populated %s cache with %d records", sheet.value, len(cached))
            return cached

    def _invalidate(self, *sheets: SheetName) -> None:
        for sheet in sheets:
            self._cache.pop(sheet, None)

    def all(self, sheet: SheetName) -> List[Any]:
        return list(self._records(sheet))

    def query(self, sheet: SheetName, **field_equals: Any) -> List[Any]:
        """Return every record of ``sheet`` whose attributes equal the filters.

        Values are compared in their stored form, so a
        :class:`~ledger_engine.data_manager.TransactionRef` filter matches the
        plain identifier string and vice versa.
        """

        wanted = {name: data_manager.to_cell_value(value) for name, value in field_equals.items()}
        return [
            record
            for record in self._records(sheet)
            if all(data_manager.to_cell_value(getattr(record, name)) == value for name, value in wanted.items())
        ]

    def get(self, sheet: SheetName, record_id: str) -> Optional[Any]:
        key = data_manager.SCHEMAS[sheet].key_attribute
        for record in self._records(sheet):
            if getattr(record, key) == record_id:
                return record
        return None

    def atomic_write(self, write_set: WriteSet) -> None:
        """Apply ``write_set`` completely or not at all.

        Raises:
            ConcurrentModificationError: If an update's ``expected`` values no
                longer match the stored record.
            StoreError: If an operation targets a missing record, inserts a
                duplicate identifier, or the workbook rejects the change.
        """

        if not len(write_set):
            return

        with self._lock:
            self._check(write_set)
            touched = write_set.sheets()
            snapshot = {sheet: self._snapshot(sheet) for sheet in touched}
            try:
                for op in write_set:
                    if isinstance(op, Insert):
                        data_manager.append_record(self.workbook, op.sheet, op.record)
                    elif isinstance(op, Update):
                        data_manager.update_record(self.workbook, op.sheet, op.record_id, field_values=op.changes)
                    else:
                        data_manager.delete_record(self.workbook, op.sheet, op.record_id)
            except Exception as exc:
                log.error("Write-set failed mid-apply, restoring %d sheet(s): %s", len(touched), exc)
                for sheet, rows in snapshot.items():
                    self._restore(sheet, rows)
                raise StoreError(f"Atomic write failed: {exc}") from exc
            finally:
                self._invalidate(*touched)

        log.info("Committed write-set of %d operation(s) across %s", len(write_set), ", ".join(s.value for s in touched))

    def save(self) -> None:
        if self.data_file is None:
            raise StoreError("Store has no backing data file")
        with self._lock:
            try:
                data_manager.save_workbook(self.workbook, self.data_file)
            except OSError as exc:
                log.error("Failed to persist workbook '%s': %s", self.data_file, exc)
                raise StoreError(f"Could not save workbook: {exc}") from exc
        log.info("Persisted workbook '%s'", self.data_file)

    def _check(self, write_set: WriteSet) -> None:
        """Validate every operation against the current state before applying.

        Besides record keys, ledger transaction ids must stay unique across the
        stored entries and the entries this write-set inserts.
        """

        existing: Dict[SheetName, set] = {}
        transactions: Dict[str, str] = {}
        if SheetName.LEDGER in write_set.sheets():
            transactions = {record.entry_id: record.transaction_id for record in self._records(SheetName.LEDGER)}
        for op in write_set:
            sheet = op.sheet
            if sheet not in existing:
                key = data_manager.SCHEMAS[sheet].key_attribute
                existing[sheet] = {getattr(record, key) for record in self._records(sheet)}
            ids = existing[sheet]
            if isinstance(op, Insert):
                if op.record_id in ids:
                    raise StoreError(f"Duplicate {sheet.value} id: {op.record_id}")
                ids.add(op.record_id)
                if sheet is SheetName.LEDGER:
                    transaction_id = op.record.transaction_id
                    if transaction_id in transactions.values():
                        log.error("Rejected second ledger entry for transaction id '%s'", transaction_id)
                        raise DuplicateTransactionError(transaction_id)
                    transactions[op.record_id] = transaction_id
                continue
            if op.record_id not in ids:
                raise StoreError(f"{sheet.value} record not found: {op.record_id}")
            if isinstance(op, Delete):
                ids.discard(op.record_id)
                if sheet is SheetName.LEDGER:
                    transactions.pop(op.record_id, None)
                continue
            if op.expected:
                current = self.get(sheet, op.record_id)
                for name, value in op.expected.items():
                    actual = getattr(current, name)
                    if data_manager.to_cell_value(actual) != data_manager.to_cell_value(value):
                        log.error(
                            "Stale write on %s '%s': %s expected %s, found %s",
                            sheet.value,
                            op.record_id,
                            name,
                            value,
                            actual,
                        )
                        raise ConcurrentModificationError(
                            f"{sheet.value} '{op.record_id}' changed concurrently: "
                            f"{name} expected {value}, found {actual}"
                        )

    def _snapshot(self, sheet: SheetName) -> Sequence[tuple]:
        return list(self.workbook[sheet.value].iter_rows(min_row=2, values_only=True))

    def _restore(self, sheet: SheetName, rows: Sequence[tuple]) -> None:
        worksheet = self.workbook[sheet.value]
        if worksheet.max_row > 1:
            worksheet.delete_rows(2, worksheet.max_row - 1)
        for row in rows:
            worksheet.append(list(row))


__all__ = [
    "Insert",
    "Update",
    "Delete",
    "Operation",
    "WriteSet",
    "Store",
    "WorkbookStore",
]
