import math

import pytest

from conftest import make_asset
from position_ledger.models import AssetParams, Wallet, WalletType
from position_ledger.precision import is_number, round_currency, round_price, round_shares
from position_ledger.targets import calculate_target_price, recalculate_wallet_targets, wallet_target


def test_target_price_compensates_commission():
    assert calculate_target_price(100, 10, 1) == 111.1111
    assert calculate_target_price(100, 10) == 110.0
    assert calculate_target_price(100, 10, 0) == 110.0


def test_target_price_ignores_commission_of_one_hundred_percent():
    assert calculate_target_price(100, 10, 100) == 110.0
    assert calculate_target_price(100, 10, 150) == 110.0


def test_rounding_helpers_drop_negative_zero():
    assert round_shares(1.234567) == 1.23457
    assert round_price(33.333333) == 33.3333
    assert math.copysign(1.0, round_currency(-0.001)) == 1.0


@pytest.mark.parametrize("value, expected", [(3, True), (2.5, True), (True, False), (float("nan"), False), ("1", False), (None, False)])
def test_is_number(value, expected):
    assert is_number(value) is expected


def test_wallet_target_uses_take_profit_per_wallet_type():
    params = AssetParams.from_asset(make_asset())
    assert wallet_target(1000, 10, WalletType.SWING, params) == (110.0, 10.0)
    assert wallet_target(1000, 10, WalletType.HOLD, params) == (125.0, 25.0)


def test_wallet_target_fallbacks():
    hold_without_htp = AssetParams.from_asset(make_asset(hold_take_profit_percent=None))
    assert wallet_target(1000, 10, WalletType.HOLD, hold_without_htp) == (110.0, 10.0)

    from_drop_ratio = AssetParams.from_asset(
        make_asset(swing_take_profit_percent=None, hold_take_profit_percent=None)
    )
    assert wallet_target(1000, 10, WalletType.SWING, from_drop_ratio) == (110.0, 10.0)

    nothing = AssetParams.from_asset(
        make_asset(swing_take_profit_percent=None, hold_take_profit_percent=None, price_drop_percent=None)
    )
    assert wallet_target(1000, 10, WalletType.SWING, nothing) == (None, None)


def test_wallet_target_for_empty_wallet_is_none():
    params = AssetParams.from_asset(make_asset())
    assert wallet_target(0, 0, WalletType.SWING, params) == (None, None)


async def test_recalculate_targets_updates_only_open_wallets(store):
    store.assets["asset-1"] = make_asset(commission_percent=1.0)
    store.wallets["open"] = Wallet(
        asset_id="asset-1", buy_price=50.0, wallet_type=WalletType.SWING, id="open",
        owner="user-1", total_shares_qty=10, total_investment=500, remaining_shares=10, tp_value=55.0,
    )
    store.wallets["closed"] = Wallet(
        asset_id="asset-1", buy_price=40.0, wallet_type=WalletType.SWING, id="closed",
        owner="user-1", total_shares_qty=10, total_investment=400, shares_sold=10, remaining_shares=0, tp_value=44.0,
    )

    result = await recalculate_wallet_targets(store, "asset-1")

    assert result.success
    assert result.wallets_updated == 1
    assert result.details[0].old_tp == 55.0
    assert store.wallets["open"].tp_value == 55.5556
    assert store.wallets["open"].tp_percent == 11.11
    assert store.wallets["closed"].tp_value == 44.0


async def test_recalculate_targets_counts_failed_writes(store, asset):
    for wallet_id, price in (("w1", 50.0), ("w2", 60.0)):
        store.wallets[wallet_id] = Wallet(
            asset_id=asset.id, buy_price=price, wallet_type=WalletType.HOLD, id=wallet_id,
            owner=asset.owner, total_shares_qty=1, total_investment=price, remaining_shares=1,
        )
    store.fail_on("update_wallet", after=1)

    result = await recalculate_wallet_targets(store, asset.id)

    assert not result.success
    assert result.wallets_updated == 1
    assert result.wallets_failed == 1
