from datetime import date
from pathlib import Path

import pytest

from conftest import make_asset
from position_ledger.cash_flow import migrate_stock_cash_flow
from position_ledger.db.base import Database
from position_ledger.models import AssetParams, Transaction, TransactionAction, WalletType
from position_ledger.splits import check_split_state, process_stock_split
from position_ledger.store.base import StoreError
from position_ledger.store.sql import SqlAlchemyPositionStore
from position_ledger.wallets import adjust_wallet_contribution, record_wallet_sale


async def _database(tmp_path: Path) -> Database:
    database = Database(url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await database.create_all()
    return database


async def test_wallet_lifecycle_round_trips_through_sql(tmp_path: Path):
    database = await _database(tmp_path)
    store = SqlAlchemyPositionStore(database)
    try:
        asset = await store.create_asset(make_asset())
        params = AssetParams.from_asset(asset)

        created = await adjust_wallet_contribution(store, asset.id, 100.0, WalletType.SWING, 10, 1000, params)
        again = await adjust_wallet_contribution(store, asset.id, 100.0, WalletType.SWING, 5, 500, params)
        sold = await record_wallet_sale(store, created.id, 120.0, 3)

        assert again.id == created.id
        assert again.total_shares_qty == 15.0
        assert again.tp_value == 110.0
        assert sold.remaining_shares == 12.0
        assert sold.realized_pl == 60.0

        found = await store.find_wallet(asset.id, 100.0, WalletType.SWING, owner="user-1")
        assert found is not None and found.id == created.id
        assert await store.find_wallet(asset.id, 100.0, WalletType.HOLD) is None
    finally:
        await database.dispose()


async def test_split_and_cash_flow_against_sql(tmp_path: Path):
    database = await _database(tmp_path)
    store = SqlAlchemyPositionStore(database)
    try:
        asset = await store.create_asset(make_asset(test_price=200.0))
        params = AssetParams.from_asset(asset)
        await adjust_wallet_contribution(store, asset.id, 100.0, WalletType.HOLD, 10, 1000, params)
        await store.create_transaction(
            Transaction(asset_id=asset.id, date=date(2024, 1, 2), action=TransactionAction.BUY, price=100.0, quantity=10)
        )
        await store.create_transaction(
            Transaction(asset_id=asset.id, date=date(2024, 2, 1), action=TransactionAction.DIVIDEND, amount=40.0)
        )

        result = await process_stock_split(store, asset.id, date(2024, 3, 1), 2.0)
        assert result.completed

        (wallet,) = await store.list_wallets(asset.id)
        assert wallet.buy_price == 50.0
        assert wallet.total_shares_qty == 20.0
        assert wallet.split_factor == 2.0
        assert (await check_split_state(store, asset.id)).consistent

        splits = await store.list_transactions(asset.id, action=TransactionAction.STOCK_SPLIT)
        assert [s.split_ratio for s in splits] == [2.0]

        migration = await migrate_stock_cash_flow(store, asset.id)
        assert (migration.calculated_oop, migration.calculated_cash_balance) == (1000.0, 40.0)
        refreshed = await store.get_asset(asset.id)
        assert refreshed.current_cash_balance == 40.0
        assert refreshed.split_adjustment_factor == 2.0
    finally:
        await database.dispose()


async def test_store_rejects_unknown_records_and_fields(tmp_path: Path):
    database = await _database(tmp_path)
    store = SqlAlchemyPositionStore(database)
    try:
        await store.create_asset(make_asset())
        with pytest.raises(StoreError):
            await store.update_asset("asset-1", {"not_a_column": 1})
        with pytest.raises(StoreError):
            await store.update_wallet("missing", {"remaining_shares": 1.0})
        with pytest.raises(StoreError):
            await store.delete_wallet("missing")
        assert await store.get_asset("missing") is None
    finally:
        await database.dispose()


async def test_split_moves_a_wallet_onto_another_wallets_old_price(tmp_path: Path):
    database = await _database(tmp_path)
    store = SqlAlchemyPositionStore(database)
    try:
        asset = await store.create_asset(make_asset())
        params = AssetParams.from_asset(asset)
        await adjust_wallet_contribution(store, asset.id, 100.0, WalletType.SWING, 10, 1000, params)
        await adjust_wallet_contribution(store, asset.id, 50.0, WalletType.SWING, 4, 200, params)

        result = await process_stock_split(store, asset.id, date(2024, 3, 1), 2.0)

        assert result.completed
        assert result.wallets_adjusted == 2
        prices = sorted(w.buy_price for w in await store.list_wallets(asset.id))
        assert prices == [25.0, 50.0]
        assert (await check_split_state(store, asset.id)).consistent
    finally:
        await database.dispose()


async def test_whole_numbers_come_back_as_floats(tmp_path: Path):
    database = await _database(tmp_path)
    store = SqlAlchemyPositionStore(database)
    try:
        await store.create_asset(make_asset(split_adjustment_factor=4.0, test_price=20.0))

        asset = await store.get_asset("asset-1")

        assert isinstance(asset.split_adjustment_factor, float)
        assert isinstance(asset.test_price, float)
        assert repr(asset.split_adjustment_factor) == "4.0"
    finally:
        await database.dispose()
