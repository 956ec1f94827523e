"""Command-line entry points for the ledger engine.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business
layer. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end that wants to expose
the package capabilities.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log
from .composer import ChequeRider, EntryDraft, FixedAssetRider, InventoryRider, Riders
from .constants import (
    AccountingType,
    ChequeDirection,
    DepreciationMethod,
    EntryDirection,
    MovementDirection,
    PaymentMethod,
)
from .currency import parse_amount, to_decimal
from .errors import BusinessRuleViolation, DataIntegrityFault, StoreError, ValidationError


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledger-cli",
        description="Command-line tools for the ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as entries and payments."""
    specs = {
        "record": register_record_command(subparsers),
        "delete": register_delete_command(subparsers),
        "pay": register_pay_command(subparsers),
        "delete-payment": register_delete_payment_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "entries": register_entries_command(subparsers),
        "inventory": register_inventory_command(subparsers),
        "cash-flow": register_cash_flow_command(subparsers),
        "balances": register_balances_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_record_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``record``."""
    name = "record"
    help_text = "Record a ledger entry with optional cheque, inventory and asset riders."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--description", required=True)
        parser.add_argument("--direction", choices=[member.value for member in EntryDirection], required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--category", required=True)
        parser.add_argument("--date", dest="entry_date", default=None, help="ISO date, defaults to today.")
        parser.add_argument("--sub-category", default=None)
        parser.add_argument("--party", default=None)
        parser.add_argument("--reference", default=None)
        parser.add_argument("--notes", dest="notes", default=None)

        settlement = parser.add_argument_group("settlement")
        settlement.add_argument("--track-arap", action="store_true", help="Track receivable/payable totals.")
        settlement.add_argument("--immediate", action="store_true", help="Settle the entry immediately.")
        settlement.add_argument("--initial-payment", default=None)

        cheque = parser.add_argument_group("cheque")
        cheque.add_argument("--cheque-direction", choices=[member.value for member in ChequeDirection], default=None)
        cheque.add_argument("--cheque-number", default=None)
        cheque.add_argument("--cheque-amount", default=None)
        cheque.add_argument(
            "--cheque-type",
            choices=[member.value for member in AccountingType],
            default=AccountingType.CASHED.value,
        )
        cheque.add_argument("--cheque-due-date", default=None)
        cheque.add_argument("--cheque-bank", default=None)
        cheque.add_argument("--endorsed-party", default=None)

        inventory = parser.add_argument_group("inventory")
        inventory.add_argument("--item-name", default=None)
        inventory.add_argument("--quantity", default=None)
        inventory.add_argument("--unit", default=None)
        inventory.add_argument("--movement", choices=[member.value for member in MovementDirection], default=None)
        inventory.add_argument("--shipping-cost", default="0")
        inventory.add_argument("--other-costs", default="0")

        asset = parser.add_argument_group("fixed asset")
        asset.add_argument("--asset-name", default=None)
        asset.add_argument("--useful-life", default=None)
        asset.add_argument("--salvage-value", default="0")
        asset.add_argument(
            "--depreciation-method",
            choices=[member.value for member in DepreciationMethod],
            default=DepreciationMethod.STRAIGHT_LINE.value,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_record)


def register_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete``."""
    name = "delete"
    help_text = "Delete a ledger entry and every record it created."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete)


def register_pay_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``pay``."""
    name = "pay"
    help_text = "Add a payment to a receivable or payable entry."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--date", dest="payment_date", default=None)
        parser.add_argument("--method", choices=[member.value for member in PaymentMethod], default=PaymentMethod.CASH.value)
        parser.add_argument("--party", default=None)
        parser.add_argument("--notes", dest="notes", default=None)
        parser.add_argument(
            "--allow-overpayment",
            action="store_true",
            help="Record the payment even when it exceeds the remaining balance.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pay)


def register_delete_payment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-payment``."""
    name = "delete-payment"
    help_text = "Delete a payment and reverse it from its entry."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--payment-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_payment)


def register_entries_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``entries``."""
    name = "entries"
    help_text = "List ledger entries."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--direction", choices=[member.value for member in EntryDirection], default=None)
        parser.add_argument("--hide-auto", action="store_true", help="Hide auto-generated COGS entries.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_entries_report)


def register_inventory_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``inventory``."""
    name = "inventory"
    help_text = "Display stock levels and unit costs."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_inventory_report)


def register_cash_flow_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cash-flow``."""
    name = "cash-flow"
    help_text = "Display receipts, disbursements and net cash flow."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cash_flow_report)


def register_balances_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``balances``."""
    name = "balances"
    help_text = "Display open receivables and payables per party."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_balances_report)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def _parse_date(raw: Optional[str]) -> Optional[date]:
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {raw!r}") from exc


def _optional_amount(raw: Optional[str]) -> Optional[Decimal]:
    return parse_amount(raw) if raw is not None else None


def translate_cheque(args: argparse.Namespace) -> Dict[str, ChequeRider]:
    """Translate the cheque option group into a rider keyed by its direction."""
    if args.cheque_direction is None:
        return {}
    if args.cheque_amount is None:
        raise ValidationError("--cheque-amount is required with --cheque-direction")
    rider = ChequeRider(
        cheque_number=args.cheque_number or "",
        amount=parse_amount(args.cheque_amount),
        accounting_type=AccountingType(args.cheque_type),
        due_date=_parse_date(args.cheque_due_date),
        bank_name=args.cheque_bank,
        endorsed_party=args.endorsed_party,
    )
    key = "incoming_cheque" if args.cheque_direction == ChequeDirection.INCOMING.value else "outgoing_cheque"
    return {key: rider}


def translate_inventory(args: argparse.Namespace) -> Optional[InventoryRider]:
    if args.item_name is None:
        return None
    if args.quantity is None:
        raise ValidationError("--quantity is required with --item-name")
    return InventoryRider(
        item_name=args.item_name,
        quantity=to_decimal(args.quantity),
        unit=args.unit,
        direction=MovementDirection(args.movement) if args.movement else None,
        shipping_cost=parse_amount(args.shipping_cost),
        other_costs=parse_amount(args.other_costs),
    )


def translate_fixed_asset(args: argparse.Namespace) -> Optional[FixedAssetRider]:
    if args.asset_name is None:
        return None
    method = DepreciationMethod(args.depreciation_method)
    if args.useful_life is None and method is DepreciationMethod.STRAIGHT_LINE:
        raise ValidationError("--useful-life is required for straight-line assets")
    return FixedAssetRider(
        asset_name=args.asset_name,
        useful_life_years=to_decimal(args.useful_life or "0"),
        depreciation_method=method,
        salvage_value=parse_amount(args.salvage_value),
    )


def translate_record(args: argparse.Namespace) -> core_logic.RecordEntryCommand:
    """Translate CLI args into a record-entry command object."""
    draft = EntryDraft(
        entry_date=_parse_date(args.entry_date) or date.today(),
        description=args.description,
        direction=EntryDirection(args.direction),
        amount=parse_amount(args.amount),
        category=args.category,
        sub_category=args.sub_category,
        associated_party=args.party,
        reference=args.reference,
        notes=args.notes,
    )
    riders = Riders(
        inventory=translate_inventory(args),
        fixed_asset=translate_fixed_asset(args),
        initial_payment=_optional_amount(args.initial_payment),
        track_arap=args.track_arap,
        immediate_settlement=args.immediate,
        **translate_cheque(args),
    )
    return core_logic.RecordEntryCommand(draft=draft, riders=riders)


def translate_pay(args: argparse.Namespace) -> core_logic.PaymentCommand:
    """Translate CLI args into a payment command object."""
    return core_logic.PaymentCommand(
        transaction_id=args.transaction_id,
        amount=parse_amount(args.amount),
        payment_date=_parse_date(args.payment_date),
        method=PaymentMethod(args.method),
        party_name=args.party,
        notes=args.notes,
        allow_overpayment=args.allow_overpayment,
    )


def run_record(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the record-entry workflow via the BLL."""
    core_logic.ensure_schema_version(context)
    command = translate_record(args)
    entry = core_logic.record_entry(context, command)
    print(entry.transaction_id)
    return 0


def run_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-entry workflow via the BLL."""
    core_logic.ensure_schema_version(context)
    write_set = core_logic.delete_entry(context, args.transaction_id)
    print(f"Deleted {args.transaction_id} ({len(write_set)} records changed)")
    return 0


def run_pay(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-payment workflow via the BLL."""
    core_logic.ensure_schema_version(context)
    command = translate_pay(args)
    result = core_logic.record_payment(context, command)
    print(
        f"{result.payment.payment_id} status={result.totals.payment_status.value} "
        f"remaining={result.totals.remaining_balance}"
    )
    return 0


def run_delete_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-payment workflow via the BLL."""
    core_logic.ensure_schema_version(context)
    core_logic.delete_payment(context, args.payment_id)
    print(f"Deleted payment {args.payment_id}")
    return 0


def run_entries_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """List ledger entries."""
    direction = EntryDirection(args.direction) if args.direction else None
    entries = core_logic.list_entries(context, direction=direction, include_auto_generated=not args.hide_auto)
    for entry in entries:
        status = entry.payment_status or "-"
        print(
            f"{entry.transaction_id}\t{entry.entry_date.isoformat()}\t{entry.direction}\t"
            f"{entry.amount}\t{status}\t{entry.description}"
        )
    return 0


def run_inventory_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Display stock levels."""
    for item in core_logic.list_inventory(context):
        print(f"{item.item_name}\t{item.quantity}\t{item.unit or ''}\t{item.unit_price}")
    return 0


def run_cash_flow_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Display the cash flow summary."""
    summary = core_logic.calculate_cash_flow(context)
    for key in ("receipts", "disbursements", "net"):
        print(f"{key}\t{summary[key]}")
    return 0


def run_balances_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Display open balances per party."""
    for party, sides in sorted(core_logic.calculate_outstanding_balances(context).items()):
        print(f"{party}\treceivable={sides['receivable']}\tpayable={sides['payable']}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, DataIntegrityFault):
        log.error("%s", error)
        return 4
    if isinstance(error, StoreError):
        log.error("%s", error)
        return 5
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    core_logic.persist_context(context)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
