from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from settleup.config import Settings, get_settings
from settleup.db.repo import Database, PgLedgerStore
from settleup.logging import configure_logging, get_logger
from settleup.services.debts import outstanding_debts
from settleup.services.ledger import GroupLedgerService
from settleup.utils.money import format_cents, parse_amount


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="settleup", description="Keep the debts of a group up to date.")
    commands = parser.add_subparsers(dest="command", required=True)

    recalc = commands.add_parser("recalc", help="recalculate debts and print what is still owed")
    recalc.add_argument("group_id", type=int)

    settle = commands.add_parser("settle", help="record a repayment against one debt")
    settle.add_argument("group_id", type=int)
    settle.add_argument("debt_id", type=int)
    settle.add_argument("amount", type=parse_amount, help="amount in major units, e.g. 12.50 or 12,50")

    return parser.parse_args(argv)


async def _recalc(service: GroupLedgerService, settings: Settings, group_id: int) -> None:
    log = get_logger(__name__)
    result = await service.recalculate(group_id)
    for warning in result.warnings:
        log.warning("recalculate.warning", kind=warning.kind.value, message=warning.message)
    for debt in outstanding_debts(result.rows, tolerance_cents=settings.tolerance_cents):
        print(f"{debt.debtor_id} -> {debt.lender_id}: {format_cents(debt.outstanding_cents, settings.currency)}")


async def _settle(service: GroupLedgerService, settings: Settings, group_id: int, debt_id: int, amount: int) -> None:
    debt = await service.settle_debt(group_id, debt_id, amount)
    print(f"{debt.debtor_id} -> {debt.lender_id}: {format_cents(debt.outstanding_cents, settings.currency)} left")


async def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)
    if not settings.database_url:
        raise SystemExit("DATABASE_URL is not set")

    db = Database(settings.database_url)
    await db.connect()
    service = GroupLedgerService(PgLedgerStore(db), settings)

    log = get_logger(__name__)
    log.info("command.start", command=args.command, group_id=args.group_id)
    try:
        if args.command == "settle":
            await _settle(service, settings, args.group_id, args.debt_id, args.amount)
        else:
            await _recalc(service, settings, args.group_id)
    finally:
        await db.close()
    log.info("command.stop", command=args.command, group_id=args.group_id)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
