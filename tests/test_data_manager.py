"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from dataclasses import replace
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from ledger_engine import composer, constants, data_manager  # noqa: E402
from ledger_engine.composer import Riders
from ledger_engine.constants import SheetName
from ledger_engine.errors import ConcurrentModificationError, DuplicateTransactionError, StoreError, ValidationError
from ledger_engine.store import Delete, Insert, Update, WorkbookStore, WriteSet

TXN = "TXN-20240517-093015-001"
NOW = datetime(2024, 5, 17, 9, 30, 15, tzinfo=UTC)


def _settled_sale(draft_factory) -> WriteSet:
    """Entry plus immediate cash receipt, the smallest multi-sheet write-set."""

    return composer.compose(TXN, draft_factory(), Riders(track_arap=True, immediate_settlement=True), now=NOW)


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    result = data_manager.find_config_file(config_file)
    assert result == config_file


def test_find_config_file_discovers_in_cwd(tmp_path, monkeypatch):
    """Auto-discovery should locate config.ini in the working directory tree."""

    config_dir = tmp_path / "nested"
    config_dir.mkdir(parents=True)
    config_file = config_dir / "config.ini"
    config_file.write_text("[System]\nDataFile=ledger_master.xlsx")
    monkeypatch.chdir(config_dir)

    result = data_manager.find_config_file()
    assert result == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)
    assert parser.get("System", "BusinessName") == "Test Trading"
    assert parser.get("Defaults", "DefaultParty") == "Walk-in"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    parser = configparser.ConfigParser()
    bundle = config_factory(make_relative=True)
    parser.read(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)
    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.default_party == "Walk-in"
    assert settings.cogs_category == constants.DEFAULT_COGS_CATEGORY


def test_parse_settings_defaults_section_is_optional(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile = /data/ledger.xlsx\nBusinessName = Shop\nSchemaVersion = 1.0.0\n")

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.data_file == Path("/data/ledger.xlsx")
    assert settings.default_party == constants.DEFAULT_PARTY
    assert settings.cogs_category == constants.DEFAULT_COGS_CATEGORY


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)

    assert isinstance(workbook, OpenpyxlWorkbook)
    for sheet in SheetName:
        headers = [cell.value for cell in workbook[sheet.value][1]]
        assert headers == list(data_manager.SHEET_COLUMNS[sheet.value])


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "absent.xlsx")


def test_open_workbook_missing_sheet_raises(master_workbook_path):
    workbook = openpyxl.load_workbook(master_workbook_path)
    del workbook[SheetName.CHEQUES.value]
    workbook.save(master_workbook_path)

    with pytest.raises(KeyError, match="Cheques"):
        data_manager.open_workbook(master_workbook_path)


@pytest.mark.parametrize("raw", ["", "TXN-2024-1", "COGS-TXN-20240517-093015-001", "txn-20240517-093015-001"])
def test_transaction_ref_rejects_malformed_ids(raw):
    with pytest.raises(ValidationError):
        data_manager.TransactionRef(raw)


def test_transaction_ref_derives_cogs_id():
    ref = data_manager.TransactionRef(TXN)

    assert ref.cogs_id == f"COGS-{TXN}"
    assert str(ref) == TXN


def test_to_cell_value_flattens_domain_types():
    assert data_manager.to_cell_value(data_manager.TransactionRef(TXN)) == TXN
    assert data_manager.to_cell_value(constants.EntryDirection.INCOME) == "income"
    assert data_manager.to_cell_value(date(2024, 5, 17)) == "2024-05-17"
    assert data_manager.to_cell_value(Decimal("1.50")) == Decimal("1.50")


def test_store_round_trips_records(workbook_store: WorkbookStore, draft_factory):
    write_set = _settled_sale(draft_factory)
    workbook_store.atomic_write(write_set)

    (entry,) = workbook_store.all(SheetName.LEDGER)
    assert entry == write_set.inserted(SheetName.LEDGER)[0]
    (payment,) = workbook_store.query(SheetName.PAYMENTS, linked_transaction=TXN)
    assert payment.amount == Decimal("1000.00")
    assert workbook_store.query(SheetName.PAYMENTS, linked_transaction=data_manager.TransactionRef(TXN)) == [payment]
    assert workbook_store.get(SheetName.PAYMENTS, payment.payment_id) == payment


def test_store_survives_save_and_reload(workbook_store: WorkbookStore, draft_factory):
    write_set = _settled_sale(draft_factory)
    workbook_store.atomic_write(write_set)
    workbook_store.save()

    reloaded = WorkbookStore(data_manager.refresh_workbook(workbook_store.data_file), workbook_store.data_file)

    (entry,) = reloaded.all(SheetName.LEDGER)
    original = write_set.inserted(SheetName.LEDGER)[0]
    assert entry.transaction_id == TXN
    assert entry.amount == original.amount
    assert entry.entry_date == original.entry_date
    assert entry.total_paid == original.total_paid
    assert entry.payment_status == "paid"
    assert entry.is_arap_entry is True
    assert entry.linked_transaction is None


def test_store_save_without_data_file_raises():
    with pytest.raises(StoreError):
        WorkbookStore(openpyxl.Workbook()).save()


def test_atomic_write_rejects_duplicate_insert(workbook_store: WorkbookStore, draft_factory):
    entry = _settled_sale(draft_factory).inserted(SheetName.LEDGER)[0]

    with pytest.raises(StoreError, match="Duplicate"):
        workbook_store.atomic_write(WriteSet((Insert(entry), Insert(entry))))

    assert workbook_store.all(SheetName.LEDGER) == []


def test_atomic_write_rejects_reused_transaction_id(workbook_store: WorkbookStore, draft_factory):
    workbook_store.atomic_write(_settled_sale(draft_factory))
    second = _settled_sale(draft_factory)

    with pytest.raises(DuplicateTransactionError) as excinfo:
        workbook_store.atomic_write(second)

    assert excinfo.value.transaction_id == TXN
    assert len(workbook_store.all(SheetName.LEDGER)) == 1
    assert len(workbook_store.all(SheetName.PAYMENTS)) == 1


def test_atomic_write_rejects_transaction_id_twice_in_one_write_set(workbook_store: WorkbookStore, draft_factory):
    first = _settled_sale(draft_factory).inserted(SheetName.LEDGER)[0]
    second = replace(first, entry_id="another-entry")

    with pytest.raises(DuplicateTransactionError):
        workbook_store.atomic_write(WriteSet((Insert(first), Insert(second))))

    assert workbook_store.all(SheetName.LEDGER) == []


def test_atomic_write_allows_transaction_id_after_its_entry_is_deleted(workbook_store: WorkbookStore, draft_factory):
    entry = _settled_sale(draft_factory).inserted(SheetName.LEDGER)[0]
    workbook_store.atomic_write(WriteSet((Insert(entry),)))
    replacement = replace(entry, entry_id="replacement", description="Corrected order")

    workbook_store.atomic_write(WriteSet((Delete(SheetName.LEDGER, entry.entry_id), Insert(replacement))))

    (stored,) = workbook_store.query(SheetName.LEDGER, transaction_id=TXN)
    assert stored.description == "Corrected order"


def test_atomic_write_rejects_missing_target(workbook_store: WorkbookStore, draft_factory):
    entry = _settled_sale(draft_factory).inserted(SheetName.LEDGER)[0]

    with pytest.raises(StoreError, match="not found"):
        workbook_store.atomic_write(WriteSet((Insert(entry), Delete(SheetName.PAYMENTS, "missing"))))

    assert workbook_store.all(SheetName.LEDGER) == []


def test_atomic_write_detects_stale_update(workbook_store: WorkbookStore, draft_factory):
    write_set = _settled_sale(draft_factory)
    workbook_store.atomic_write(write_set)
    entry = write_set.inserted(SheetName.LEDGER)[0]

    stale = Update(
        SheetName.LEDGER,
        entry.entry_id,
        changes={"total_paid": Decimal("1200.00")},
        expected={"total_paid": Decimal("200.00")},
    )
    with pytest.raises(ConcurrentModificationError):
        workbook_store.atomic_write(WriteSet((stale,)))

    assert workbook_store.get(SheetName.LEDGER, entry.entry_id).total_paid == Decimal("1000.00")


def test_atomic_write_restores_sheets_on_failure(workbook_store: WorkbookStore, draft_factory, monkeypatch):
    write_set = _settled_sale(draft_factory)
    workbook_store.atomic_write(write_set)
    entry = write_set.inserted(SheetName.LEDGER)[0]
    payment = write_set.inserted(SheetName.PAYMENTS)[0]

    def _boom(*_args, **_kwargs):
        raise KeyError("disk went away")

    monkeypatch.setattr(data_manager, "update_record", _boom)
    broken = WriteSet(
        (
            Insert(replace(payment, payment_id="P-2")),
            Update(SheetName.LEDGER, entry.entry_id, changes={"notes": "changed"}),
        )
    )
    with pytest.raises(StoreError):
        workbook_store.atomic_write(broken)

    assert [p.payment_id for p in workbook_store.all(SheetName.PAYMENTS)] == [payment.payment_id]
    assert workbook_store.get(SheetName.LEDGER, entry.entry_id) == entry


def test_atomic_write_applies_updates_and_deletes(workbook_store: WorkbookStore, draft_factory):
    write_set = _settled_sale(draft_factory)
    workbook_store.atomic_write(write_set)
    entry = write_set.inserted(SheetName.LEDGER)[0]
    payment = write_set.inserted(SheetName.PAYMENTS)[0]

    workbook_store.atomic_write(
        WriteSet(
            (
                Delete(SheetName.PAYMENTS, payment.payment_id),
                Update(SheetName.LEDGER, entry.entry_id, changes={"notes": "Reissued invoice"}),
            )
        )
    )

    assert workbook_store.all(SheetName.PAYMENTS) == []
    assert workbook_store.get(SheetName.LEDGER, entry.entry_id).notes == "Reissued invoice"


def test_update_and_delete_record_unknown_id_raise(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)

    with pytest.raises(KeyError):
        data_manager.update_record(workbook, SheetName.LEDGER, "nope", field_values={"notes": "x"})
    with pytest.raises(KeyError):
        data_manager.delete_record(workbook, SheetName.LEDGER, "nope")


def test_save_workbook_replaces_target(tmp_path):
    destination = tmp_path / "out" / "ledger.xlsx"
    workbook = openpyxl.Workbook()
    workbook.active["A1"] = "first"

    data_manager.save_workbook(workbook, destination)

    assert openpyxl.load_workbook(destination).active["A1"].value == "first"
    assert [p.name for p in destination.parent.iterdir()] == ["ledger.xlsx"]
