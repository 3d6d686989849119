from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import make_asset
from position_ledger.cash_flow import (
    CashFlowEvent,
    apply_cash_flow_event,
    calculate_roic,
    migrate_all_cash_flows,
    migrate_stock_cash_flow,
    process_transaction_cash_flow,
    replay_cash_flow,
    sort_chronologically,
)
from position_ledger.errors import PersistenceError
from position_ledger.models import CashFlowState, Transaction, TransactionAction


def _txn(txn_id, day, action, **fields) -> Transaction:
    return Transaction(
        id=txn_id,
        asset_id="asset-1",
        date=date(2024, 1, day),
        action=action,
        created_at=datetime(2024, 1, day, 12, tzinfo=timezone.utc),
        **fields,
    )


HISTORY = [
    _txn("t4", 4, TransactionAction.BUY, price=105.0, quantity=5),
    _txn("t1", 1, TransactionAction.BUY, price=100.0, quantity=10),
    _txn("t3", 3, TransactionAction.SLP, amount=15.0),
    _txn("t2", 2, TransactionAction.DIVIDEND, amount=100.0),
]


def test_cash_balance_funds_later_buy_before_new_capital():
    replay = replay_cash_flow(HISTORY)

    assert replay.total_out_of_pocket == 1410.0
    assert replay.current_cash_balance == 0.0
    assert replay.transactions_processed == 4
    assert replay.transactions_skipped == 0
    assert replay.roic == 0.0


def test_replay_is_independent_of_input_order():
    assert replay_cash_flow(HISTORY).state == replay_cash_flow(list(reversed(HISTORY))).state


def test_sells_raise_balance_and_splits_have_no_cash_effect():
    history = [
        _txn("b", 1, TransactionAction.BUY, price=10.0, quantity=10),
        _txn("s", 2, TransactionAction.SELL, price=12.0, quantity=5),
        _txn("x", 3, TransactionAction.STOCK_SPLIT, split_ratio=2.0),
    ]

    replay = replay_cash_flow(history)

    assert replay.total_out_of_pocket == 100.0
    assert replay.current_cash_balance == 60.0
    assert replay.transactions_processed == 2
    assert replay.roic == 60.0


def test_malformed_rows_are_skipped_and_counted():
    history = [
        _txn("b", 1, TransactionAction.BUY, price=None, quantity=10),
        _txn("d", 2, TransactionAction.DIVIDEND),
        _txn("ok", 3, TransactionAction.BUY, price=10.0, quantity=1),
    ]

    replay = replay_cash_flow(history)

    assert replay.transactions_skipped == 2
    assert replay.transactions_processed == 1
    assert replay.total_out_of_pocket == 10.0
    assert any("skipped" in line for line in replay.debug_log)


def test_same_day_events_follow_creation_order():
    sell_first = Transaction(
        id="s", asset_id="asset-1", date=date(2024, 1, 2), action=TransactionAction.SELL,
        price=50.0, quantity=2, created_at=datetime(2024, 1, 2, 9, tzinfo=timezone.utc),
    )
    buy_later = Transaction(
        id="b", asset_id="asset-1", date=date(2024, 1, 2), action=TransactionAction.BUY,
        price=40.0, quantity=2, created_at=datetime(2024, 1, 2, 10, tzinfo=timezone.utc),
    )

    replay = replay_cash_flow([buy_later, sell_first])

    assert replay.total_out_of_pocket == 0.0
    assert replay.current_cash_balance == 20.0


def test_single_events():
    state = CashFlowState(total_out_of_pocket=100.0, current_cash_balance=30.0)

    after_buy = apply_cash_flow_event(state, CashFlowEvent(TransactionAction.BUY, investment_amount=50.0))
    assert after_buy == CashFlowState(120.0, 0.0)

    after_loss = apply_cash_flow_event(state, CashFlowEvent(TransactionAction.SELL, sale_proceeds=-40.0))
    assert after_loss == CashFlowState(100.0, 0.0)

    after_split = apply_cash_flow_event(state, CashFlowEvent(TransactionAction.STOCK_SPLIT))
    assert after_split == state
    assert state == CashFlowState(100.0, 30.0)


def test_roic():
    assert calculate_roic(CashFlowState(1000.0, 250.0)) == 25.0
    assert calculate_roic(CashFlowState(0.0, 250.0)) is None
    assert make_asset(total_out_of_pocket=200.0, current_cash_balance=50.0).roic == 25.0


async def test_process_transaction_updates_asset_totals(store, asset):
    store.assets[asset.id].current_cash_balance = 50.0

    state = await process_transaction_cash_flow(
        store, asset.id, CashFlowEvent(TransactionAction.BUY, investment_amount=30.0)
    )

    assert state == CashFlowState(0.0, 20.0)
    assert store.assets[asset.id].current_cash_balance == 20.0
    assert store.assets[asset.id].total_out_of_pocket == 0.0


async def test_migration_replaces_drifted_totals_and_is_idempotent(store):
    store.assets["asset-1"] = make_asset(total_out_of_pocket=9999.0, current_cash_balance=123.0)
    for txn in HISTORY:
        store.transactions[txn.id] = txn

    first = await migrate_stock_cash_flow(store, "asset-1")
    second = await migrate_stock_cash_flow(store, "asset-1")

    assert first.success
    assert first.calculated_oop == 1410.0
    assert (second.calculated_oop, second.calculated_cash_balance) == (1410.0, 0.0)
    assert store.assets["asset-1"].total_out_of_pocket == 1410.0
    assert store.assets["asset-1"].current_cash_balance == 0.0


async def test_migration_surfaces_store_failures(store, asset):
    store.fail_on("list_transactions")

    with pytest.raises(PersistenceError):
        await migrate_stock_cash_flow(store, asset.id)


async def test_batch_migration_records_per_asset_failures(store, asset):
    store.transactions["t1"] = HISTORY[1]

    results = await migrate_all_cash_flows(store, ["missing", asset.id])

    assert [r.success for r in results] == [False, True]
    assert "missing" in results[0].error
    assert results[1].calculated_oop == 1000.0


def test_creation_times_are_compared_across_timezones():
    gulf = timezone(timedelta(hours=4))
    sell_first = Transaction(
        id="s", asset_id="asset-1", date=date(2024, 1, 2), action=TransactionAction.SELL,
        price=50.0, quantity=2, created_at=datetime(2024, 1, 2, 10, tzinfo=gulf),
    )
    buy_later = Transaction(
        id="b", asset_id="asset-1", date=date(2024, 1, 2), action=TransactionAction.BUY,
        price=40.0, quantity=2, created_at=datetime(2024, 1, 2, 8, tzinfo=timezone.utc),
    )
    naive_last = Transaction(
        id="d", asset_id="asset-1", date=date(2024, 1, 2), action=TransactionAction.DIVIDEND,
        amount=5.0, created_at=datetime(2024, 1, 2, 9),
    )

    ordered = sort_chronologically([buy_later, naive_last, sell_first])

    assert [txn.id for txn in ordered] == ["s", "b", "d"]
    replay = replay_cash_flow(ordered)
    assert (replay.total_out_of_pocket, replay.current_cash_balance) == (0.0, 25.0)
