"""Commission-adjusted take-profit prices and wallet target maintenance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .assets import load_asset
from .errors import PersistenceError, persistence_guard
from .models import AssetParams, WalletType
from .precision import (
    CURRENCY_EPSILON,
    PRICE_PRECISION,
    SHARE_EPSILON,
    is_number,
    round_percent,
)
from .store.base import PositionStore

logger = logging.getLogger(__name__)


def calculate_target_price(
    buy_price: float,
    target_percent: float,
    commission_percent: float | None = None,
) -> float:
    """Return the sell price that realises ``target_percent`` net of commission.

    The base target ``buy_price * (1 + target_percent / 100)`` is divided by
    ``1 - commission`` so the configured gain survives the sell-side fee. A
    commission of 100% or more cannot be compensated and the base target is
    returned instead.
    """

    base = buy_price * (1 + target_percent / 100)
    if is_number(commission_percent) and commission_percent > 0:
        rate = commission_percent / 100
        if rate >= 1:
            logger.warning(
                "Commission rate %s%% is too high for a target price, using the base target",
                commission_percent,
            )
        else:
            base = base / (1 - rate)
    return round(base, PRICE_PRECISION) + 0.0


def wallet_target(
    total_investment: float,
    total_shares: float,
    wallet_type: WalletType,
    params: AssetParams,
) -> tuple[float | None, float | None]:
    """Return ``(tp_value, tp_percent)`` for a wallet's average cost basis."""

    target_percent = params.target_percent(wallet_type)
    if target_percent is None or total_shares <= SHARE_EPSILON or total_investment <= CURRENCY_EPSILON:
        return None, None
    basis = total_investment / total_shares
    return target_from_price(basis, target_percent, params.commission_percent)


def target_from_price(
    buy_price: float,
    target_percent: float,
    commission_percent: float | None,
) -> tuple[float | None, float | None]:
    if buy_price <= 0:
        return None, None
    tp_value = calculate_target_price(buy_price, target_percent, commission_percent)
    tp_percent = round_percent((tp_value - buy_price) / buy_price * 100)
    return tp_value, tp_percent


@dataclass
class WalletTargetChange:
    wallet_id: str
    buy_price: float
    old_tp: float | None
    new_tp: float | None


@dataclass
class TargetRecalcResult:
    asset_id: str
    symbol: str
    wallets_updated: int = 0
    wallets_failed: int = 0
    details: list[WalletTargetChange] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.wallets_failed == 0


async def recalculate_wallet_targets(store: PositionStore, asset_id: str) -> TargetRecalcResult:
    """Re-derive cached targets for every open wallet of an asset.

    Used after the asset's take-profit or commission settings change. Wallets
    are updated one at a time; a failed write is logged and counted and the
    remaining wallets are still processed.
    """

    asset = await load_asset(store, asset_id)
    params = AssetParams.from_asset(asset)

    async with persistence_guard(f"list wallets for asset {asset_id}"):
        wallets = await store.list_wallets(asset_id)

    result = TargetRecalcResult(asset_id=asset_id, symbol=asset.symbol)
    open_wallets = [w for w in wallets if (w.remaining_shares or 0) > SHARE_EPSILON]
    logger.info(
        "Recalculating targets for %s: %d of %d wallets have remaining shares",
        asset.symbol,
        len(open_wallets),
        len(wallets),
    )
    for wallet in open_wallets:
        target_percent = params.target_percent(wallet.wallet_type)
        if target_percent is None:
            tp_value, tp_percent = None, None
        else:
            tp_value, tp_percent = target_from_price(
                wallet.buy_price, target_percent, params.commission_percent
            )
        try:
            async with persistence_guard(f"update targets of wallet {wallet.id}"):
                await store.update_wallet(wallet.id, {"tp_value": tp_value, "tp_percent": tp_percent})
        except PersistenceError:
            logger.exception("Target update failed for wallet %s", wallet.id)
            result.wallets_failed += 1
            continue
        result.details.append(
            WalletTargetChange(
                wallet_id=wallet.id,
                buy_price=wallet.buy_price,
                old_tp=wallet.tp_value,
                new_tp=tp_value,
            )
        )
        result.wallets_updated += 1

    logger.info(
        "Target recalculation for %s finished: %d updated, %d failed",
        asset.symbol,
        result.wallets_updated,
        result.wallets_failed,
    )
    return result


__all__ = [
    "calculate_target_price",
    "wallet_target",
    "target_from_price",
    "TargetRecalcResult",
    "WalletTargetChange",
    "recalculate_wallet_targets",
]
