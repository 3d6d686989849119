"""Out-of-pocket capital and cash balance bookkeeping per asset.

Rules:

* A Buy is funded from the cash balance first; only the shortfall is new
  out-of-pocket (OOP) capital, so OOP never decreases.
* Sell proceeds, dividends and SLP payments add to the cash balance.
* Stock splits have no cash effect.
* Both figures are clamped at zero after every step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Sequence

from .assets import load_asset
from .errors import LedgerError, persistence_guard
from .models import CashFlowState, Transaction, TransactionAction
from .precision import is_number, round_currency, round_percent
from .store.base import PositionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CashFlowEvent:
    """Single cash-flow input for incremental updates."""

    action: TransactionAction
    investment_amount: float | None = None
    sale_proceeds: float | None = None
    dividend_amount: float | None = None


def apply_cash_flow_event(state: CashFlowState, event: CashFlowEvent) -> CashFlowState:
    """Return the state after one event; the input state is left untouched."""

    oop = state.total_out_of_pocket
    balance = state.current_cash_balance

    if event.action is TransactionAction.BUY and is_number(event.investment_amount):
        oop, balance = _fund_buy(oop, balance, event.investment_amount)
    elif event.action is TransactionAction.SELL and is_number(event.sale_proceeds):
        if event.sale_proceeds >= 0:
            balance += event.sale_proceeds
        else:
            balance = max(0.0, balance - abs(event.sale_proceeds))
    elif event.action in (TransactionAction.DIVIDEND, TransactionAction.SLP) and is_number(
        event.dividend_amount
    ):
        balance += event.dividend_amount

    return CashFlowState(total_out_of_pocket=max(0.0, oop), current_cash_balance=max(0.0, balance))


def _fund_buy(oop: float, balance: float, need: float) -> tuple[float, float]:
    if balance >= need:
        return oop, balance - need
    return oop + (need - balance), 0.0


def calculate_roic(state: CashFlowState) -> float | None:
    """Return on invested capital in percent, ``None`` when nothing was invested."""

    if state.total_out_of_pocket <= 0:
        return None
    return round_percent(state.current_cash_balance / state.total_out_of_pocket * 100)


_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _as_utc(moment: datetime | None) -> datetime:
    if moment is None:
        return _EARLIEST
    # Naive timestamps are stored in UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _sort_key(txn: Transaction) -> tuple[date, datetime]:
    return txn.date or date.min, _as_utc(txn.created_at)


def sort_chronologically(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Order by trading date, then creation time for same-day events."""

    return sorted(transactions, key=_sort_key)


@dataclass
class CashFlowReplay:
    total_out_of_pocket: float
    current_cash_balance: float
    transactions_processed: int = 0
    transactions_skipped: int = 0
    debug_log: list[str] = field(default_factory=list)

    @property
    def state(self) -> CashFlowState:
        return CashFlowState(self.total_out_of_pocket, self.current_cash_balance)

    @property
    def roic(self) -> float | None:
        return calculate_roic(self.state)


def replay_cash_flow(transactions: Sequence[Transaction]) -> CashFlowReplay:
    """Derive OOP and cash balance by folding over the full history.

    Pure: the same list always produces the same totals. Rows missing their
    numeric fields are skipped and counted instead of aborting the replay.
    """

    oop = 0.0
    balance = 0.0
    processed = 0
    skipped = 0
    log: list[str] = [f"Replaying {len(transactions)} transactions"]

    for txn in sort_chronologically(transactions):
        before = (oop, balance)
        stamp = f"{txn.date} ({txn.created_at})"
        action = txn.action
        if action is TransactionAction.BUY:
            if not (is_number(txn.price) and is_number(txn.quantity)):
                skipped += 1
                log.append(f"{stamp} Buy skipped: missing price or quantity")
                continue
            need = txn.price * txn.quantity
            oop, balance = _fund_buy(oop, balance, need)
            log.append(f"{stamp} Buy ${need:.2f}: OOP {before[0]:.2f} -> {oop:.2f}, balance {before[1]:.2f} -> {balance:.2f}")
        elif action is TransactionAction.SELL:
            if not (is_number(txn.price) and is_number(txn.quantity)):
                skipped += 1
                log.append(f"{stamp} Sell skipped: missing price or quantity")
                continue
            proceeds = txn.price * txn.quantity
            balance += proceeds
            log.append(f"{stamp} Sell +${proceeds:.2f}: balance {before[1]:.2f} -> {balance:.2f}")
        elif action in (TransactionAction.DIVIDEND, TransactionAction.SLP):
            if not is_number(txn.amount):
                skipped += 1
                log.append(f"{stamp} {action.value} skipped: missing amount")
                continue
            balance += txn.amount
            log.append(f"{stamp} {action.value} +${txn.amount:.2f}: balance {before[1]:.2f} -> {balance:.2f}")
        else:
            continue
        processed += 1
        oop = max(0.0, oop)
        balance = max(0.0, balance)

    return CashFlowReplay(
        total_out_of_pocket=round_currency(oop),
        current_cash_balance=round_currency(balance),
        transactions_processed=processed,
        transactions_skipped=skipped,
        debug_log=log,
    )


async def get_cash_flow_state(store: PositionStore, asset_id: str) -> CashFlowState:
    asset = await load_asset(store, asset_id)
    return CashFlowState(
        total_out_of_pocket=asset.total_out_of_pocket or 0.0,
        current_cash_balance=asset.current_cash_balance or 0.0,
    )


async def update_cash_flow(store: PositionStore, asset_id: str, state: CashFlowState) -> None:
    async with persistence_guard(f"store cash flow totals for asset {asset_id}"):
        await store.update_asset(
            asset_id,
            {
                "total_out_of_pocket": round_currency(state.total_out_of_pocket),
                "current_cash_balance": round_currency(state.current_cash_balance),
            },
        )


async def process_transaction_cash_flow(
    store: PositionStore,
    asset_id: str,
    event: CashFlowEvent,
) -> CashFlowState:
    """Read, apply one event and write back the asset's cash-flow totals."""

    current = await get_cash_flow_state(store, asset_id)
    new_state = apply_cash_flow_event(current, event)
    await update_cash_flow(store, asset_id, new_state)
    return new_state


@dataclass
class CashFlowMigrationResult:
    asset_id: str
    symbol: str
    success: bool
    calculated_oop: float = 0.0
    calculated_cash_balance: float = 0.0
    transactions_processed: int = 0
    transactions_skipped: int = 0
    error: str | None = None
    debug_log: list[str] = field(default_factory=list)


async def migrate_stock_cash_flow(store: PositionStore, asset_id: str) -> CashFlowMigrationResult:
    """Recompute an asset's stored OOP and cash balance from its whole history.

    Stored totals are reset to zero before the transactions are fetched, so
    the result never depends on previously drifted values. Re-running is
    idempotent.
    """

    asset = await load_asset(store, asset_id)
    await update_cash_flow(store, asset_id, CashFlowState())

    async with persistence_guard(f"list transactions for asset {asset_id}"):
        transactions = await store.list_transactions(asset_id)

    replay = replay_cash_flow(transactions)
    await update_cash_flow(store, asset_id, replay.state)
    logger.info(
        "Cash flow migrated for %s: OOP %.2f, balance %.2f (%d processed, %d skipped)",
        asset.symbol,
        replay.total_out_of_pocket,
        replay.current_cash_balance,
        replay.transactions_processed,
        replay.transactions_skipped,
    )
    return CashFlowMigrationResult(
        asset_id=asset_id,
        symbol=asset.symbol,
        success=True,
        calculated_oop=replay.total_out_of_pocket,
        calculated_cash_balance=replay.current_cash_balance,
        transactions_processed=replay.transactions_processed,
        transactions_skipped=replay.transactions_skipped,
        debug_log=replay.debug_log,
    )


async def migrate_all_cash_flows(
    store: PositionStore,
    asset_ids: Iterable[str],
) -> list[CashFlowMigrationResult]:
    """Migrate assets one after another, recording failures per asset."""

    results: list[CashFlowMigrationResult] = []
    for asset_id in asset_ids:
        try:
            results.append(await migrate_stock_cash_flow(store, asset_id))
        except LedgerError as exc:
            logger.exception("Cash flow migration failed for asset %s", asset_id)
            results.append(
                CashFlowMigrationResult(asset_id=asset_id, symbol="Unknown", success=False, error=str(exc))
            )
    return results


__all__ = [
    "CashFlowEvent",
    "apply_cash_flow_event",
    "calculate_roic",
    "sort_chronologically",
    "CashFlowReplay",
    "replay_cash_flow",
    "get_cash_flow_state",
    "update_cash_flow",
    "process_transaction_cash_flow",
    "CashFlowMigrationResult",
    "migrate_stock_cash_flow",
    "migrate_all_cash_flows",
]
