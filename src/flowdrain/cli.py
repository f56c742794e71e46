"""Command-line front end for the FlowDrain financial core.

Usage:
    flowdrain balance TECHNICIAN_ID
    flowdrain balances COMPANY_ID
    flowdrain close TECHNICIAN_ID --company COMPANY_ID [--yes]
    flowdrain expense {approve,reject,authorize} EXPENSE_ID
    flowdrain cash-flow COMPANY_ID
    flowdrain discount --subtotal 200 --percent 10
    flowdrain volume --shape cylindrical --diameter 100 --depth 100 --price 0.5
"""

import argparse
import asyncio
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from flowdrain.backend import BackendClient, RestRepository
from flowdrain.balance import BalanceCalculator, TechnicianBalance
from flowdrain.closing import MonthEndClosing
from flowdrain.config import configure_logging, get_logger
from flowdrain.errors import FlowDrainError
from flowdrain.expenses import ExpenseWorkflow
from flowdrain.ledger import LedgerService
from flowdrain.money import format_brl
from flowdrain.pricing import DiscountCalculator, TankShape, estimate_tank

logger = get_logger(__name__)


@asynccontextmanager
async def open_repository() -> AsyncIterator[RestRepository]:
    """Repository over a backend client configured from settings."""
    async with BackendClient() as client:
        yield RestRepository(client)


def format_balance(balance: TechnicianBalance) -> str:
    lines = [
        f"{balance.technician_name} ({balance.technician_id})",
        "=" * 50,
        f"  Commission:      {format_brl(balance.total_commission)} ({balance.os_count} service orders)",
        f"  Bonus:           {format_brl(balance.total_bonus)}",
        f"  Reimbursements:  {format_brl(balance.total_reimbursements)}",
        f"  Advances:       -{format_brl(balance.total_advances)}",
        f"  Balance to pay:  {format_brl(balance.final_balance)}",
    ]
    for job in balance.jobs:
        lines.append(
            f"    - {job.job_id}  {job.client_name}  {format_brl(job.total)}"
            f" -> {format_brl(job.commission)}"
        )
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowdrain",
        description="FlowDrain technician payroll and pricing tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s balance 8d3f...                      # What a technician is owed
  %(prog)s close 8d3f... --company 41aa...      # Month-end closing
  %(prog)s discount --subtotal 200 --amount 20  # Discount as percentage
  %(prog)s volume --shape rectangular --width 100 --length 50 --depth 40 --price 0.5
        """,
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override LOG_LEVEL",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    balance = sub.add_parser("balance", help="Show a technician's balance")
    balance.add_argument("technician_id")

    balances = sub.add_parser("balances", help="Show balances for every technician")
    balances.add_argument("company_id")

    close = sub.add_parser("close", help="Close the month for a technician")
    close.add_argument("technician_id")
    close.add_argument("--company", required=True, dest="company_id")
    close.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    expense = sub.add_parser("expense", help="Review a technician expense")
    expense.add_argument("action", choices=["approve", "reject", "authorize"])
    expense.add_argument("expense_id")

    cash_flow = sub.add_parser("cash-flow", help="Company cash-flow summary")
    cash_flow.add_argument("company_id")

    discount = sub.add_parser("discount", help="Convert a discount between % and currency")
    discount.add_argument("--subtotal", required=True)
    group = discount.add_mutually_exclusive_group(required=True)
    group.add_argument("--percent")
    group.add_argument("--amount")

    volume = sub.add_parser("volume", help="Estimate tank volume and price")
    volume.add_argument("--shape", choices=[s.value for s in TankShape], required=True)
    volume.add_argument("--width")
    volume.add_argument("--length")
    volume.add_argument("--depth")
    volume.add_argument("--diameter")
    volume.add_argument("--price", dest="price_per_liter")

    return parser


def run_discount(args: argparse.Namespace) -> int:
    calculator = DiscountCalculator(args.subtotal)
    if args.percent is not None:
        calculator.set_by_percent(args.percent)
    else:
        calculator.set_by_currency(args.amount)
    print(f"Subtotal: {format_brl(calculator.subtotal)}")
    print(f"Discount: {calculator.percent_display}% ({format_brl(calculator.currency_display)})")
    print(f"Total:    {format_brl(calculator.total)}")
    return 0


def run_volume(args: argparse.Namespace) -> int:
    estimate = estimate_tank(
        args.shape,
        width=args.width,
        length=args.length,
        depth=args.depth,
        diameter=args.diameter,
        price_per_liter=args.price_per_liter,
    )
    print(f"Volume: {estimate.liters} L")
    print(f"Total:  {format_brl(estimate.total)}")
    return 0


def _confirm(balance: TechnicianBalance) -> bool:
    answer = input(
        f"Close the month for {balance.technician_name}?\n"
        f"Amount: {format_brl(balance.final_balance)}\n"
        f"This marks {balance.os_count} service orders as paid. [y/N] "
    )
    return answer.strip().lower() in ("y", "yes")


async def run_backend_command(args: argparse.Namespace) -> int:
    async with open_repository() as repo:
        calculator = BalanceCalculator(repo)

        if args.command == "balance":
            print(format_balance(await calculator.compute_balance(args.technician_id)))

        elif args.command == "balances":
            for balance in await calculator.compute_company_balances(args.company_id):
                print(format_balance(balance))
                print()

        elif args.command == "close":
            balance = await calculator.compute_balance(args.technician_id)
            print(format_balance(balance))
            if not balance.can_close:
                print("Nothing to close: the balance is not positive.")
                return 1
            if not args.yes and not _confirm(balance):
                print("Aborted.")
                return 1
            record = await MonthEndClosing(repo, calculator).close_month(balance, args.company_id)
            print(
                f"Closed {format_brl(record.amount)}: {len(record.jobs_paid)} service orders, "
                f"{len(record.entries_processed)} ledger entries, "
                f"{len(record.expenses_authorized)} reimbursements."
            )

        elif args.command == "expense":
            workflow = ExpenseWorkflow(repo)
            expense = await getattr(workflow, args.action)(args.expense_id)
            print(f"Expense {expense.id} is now {expense.status.name}")

        elif args.command == "cash-flow":
            summary = await LedgerService(repo).cash_flow(args.company_id)
            print(summary.to_text())

    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``flowdrain`` command."""
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)

    if args.command == "discount":
        return run_discount(args)
    if args.command == "volume":
        return run_volume(args)

    try:
        return asyncio.run(run_backend_command(args))
    except FlowDrainError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("command_interrupted", command=args.command)
        return 130


if __name__ == "__main__":
    sys.exit(main())
