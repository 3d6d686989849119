"""Maintenance commands for the SQL-backed position ledger."""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date
from typing import Sequence

from .cash_flow import migrate_all_cash_flows
from .config import get_settings
from .core.logging import setup_logging
from .core.telemetry import setup_telemetry
from .db.base import Database
from .errors import LedgerError, SplitAdjustmentIncompleteError
from .splits import check_split_state, process_stock_split, resume_stock_split
from .store.base import PositionStore
from .store.sql import SqlAlchemyPositionStore
from .targets import recalculate_wallet_targets

logger = logging.getLogger(__name__)


async def _migrate_cash_flow(store: PositionStore, args: argparse.Namespace) -> int:
    results = await migrate_all_cash_flows(store, args.asset_ids)
    for result in results:
        if not result.success:
            print(f"{result.asset_id}: FAILED ({result.error})")
            continue
        print(
            f"{result.symbol}: OOP {result.calculated_oop:.2f}, cash {result.calculated_cash_balance:.2f} "
            f"({result.transactions_processed} processed, {result.transactions_skipped} skipped)"
        )
        if args.verbose:
            for line in result.debug_log:
                print(f"  {line}")
    return 0 if all(r.success for r in results) else 1


async def _recalc_targets(store: PositionStore, args: argparse.Namespace) -> int:
    result = await recalculate_wallet_targets(store, args.asset_id)
    for change in result.details:
        print(f"{change.wallet_id} @ {change.buy_price}: {change.old_tp} -> {change.new_tp}")
    print(f"{result.symbol}: {result.wallets_updated} updated, {result.wallets_failed} failed")
    return 0 if result.success else 1


async def _split(store: PositionStore, args: argparse.Namespace) -> int:
    result = await process_stock_split(
        store,
        args.asset_id,
        args.date,
        args.ratio,
        pre_split_price=args.pre_price,
        post_split_price=args.post_price,
    )
    print(
        f"Split {result.transaction_id} recorded: {result.wallets_adjusted} wallets adjusted, "
        f"{result.wallets_skipped} skipped"
    )
    return 0


async def _resume_split(store: PositionStore, args: argparse.Namespace) -> int:
    result = await resume_stock_split(store, args.asset_id, args.transaction_id)
    print(
        f"Split {result.transaction_id} resumed: {result.wallets_adjusted} wallets adjusted, "
        f"{result.wallets_skipped} already current"
    )
    return 0


async def _check_splits(store: PositionStore, args: argparse.Namespace) -> int:
    report = await check_split_state(store, args.asset_id)
    print(
        f"Asset factor {report.asset_factor}, expected {report.expected_factor}, "
        f"{report.wallets_current} wallets current, {len(report.stale_wallet_ids)} stale"
    )
    for wallet_id in report.stale_wallet_ids:
        print(f"  stale: {wallet_id}")
    return 0 if report.consistent else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ledger-admin", description="Position ledger maintenance")
    parser.add_argument("--database-url", help="Override the configured database URL")
    parser.add_argument("--create-schema", action="store_true", help="Create missing tables first")
    commands = parser.add_subparsers(dest="command", required=True)

    migrate = commands.add_parser("migrate-cash-flow", help="Rebuild OOP and cash balance from history")
    migrate.add_argument("asset_ids", nargs="+")
    migrate.add_argument("--verbose", action="store_true", help="Print the per-transaction replay log")
    migrate.set_defaults(handler=_migrate_cash_flow)

    recalc = commands.add_parser("recalc-targets", help="Recompute wallet take-profit targets")
    recalc.add_argument("asset_id")
    recalc.set_defaults(handler=_recalc_targets)

    split = commands.add_parser("split", help="Record a forward stock split and adjust wallets")
    split.add_argument("asset_id")
    split.add_argument("--date", required=True, type=date.fromisoformat)
    split.add_argument("--ratio", required=True, type=float)
    split.add_argument("--pre-price", type=float)
    split.add_argument("--post-price", type=float)
    split.set_defaults(handler=_split)

    resume = commands.add_parser("resume-split", help="Finish an interrupted stock split")
    resume.add_argument("asset_id")
    resume.add_argument("transaction_id")
    resume.set_defaults(handler=_resume_split)

    check = commands.add_parser("check-splits", help="Compare wallets with the recorded split history")
    check.add_argument("asset_id")
    check.set_defaults(handler=_check_splits)
    return parser


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    database = Database(args.database_url or settings.database_url)
    setup_telemetry(settings, database.engine)
    try:
        if args.create_schema:
            await database.create_all()
        store = SqlAlchemyPositionStore(database, wallet_fetch_limit=settings.wallet_fetch_limit)
        return await args.handler(store, args)
    except SplitAdjustmentIncompleteError as exc:
        print(f"Split {exc.result.transaction_id} is incomplete at step {exc.result.failed_step.value}")
        print(f"Run: ledger-admin resume-split {exc.result.asset_id} {exc.result.transaction_id}")
        return 2
    except LedgerError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        await database.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Ledger settings: %s", settings.dict_for_logging())
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
