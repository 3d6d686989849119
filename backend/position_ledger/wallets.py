"""Cost-basis wallet maintenance.

Every Buy is partitioned into price-bucketed wallets keyed by
``(asset, buy_price, wallet_type)`` so that later sells are matched against
the right cost basis. The adjuster here is delta based: callers pass the
signed change in shares and investment a transaction contributes, and the
matching wallet is created, updated or deleted accordingly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .config import get_settings
from .errors import (
    InvalidInputError,
    LedgerError,
    NegativeRemainingSharesError,
    NegativeSharesError,
    persistence_guard,
)
from .models import Asset, AssetParams, BuyType, Wallet, WalletType
from .precision import (
    CURRENCY_EPSILON,
    SHARE_EPSILON,
    is_number,
    round_currency,
    round_percent,
    round_shares,
)
from .store.base import PositionStore
from .targets import wallet_target

logger = logging.getLogger(__name__)


async def adjust_wallet_contribution(
    store: PositionStore,
    asset_id: str,
    buy_price: float,
    wallet_type: WalletType,
    shares_delta: float,
    investment_delta: float,
    params: AssetParams,
    existing_wallet: Wallet | None = None,
) -> Wallet | None:
    """Apply a signed share/investment change to one wallet bucket.

    Returns the wallet as written, or ``None`` when the bucket was deleted or
    nothing had to change. Validation failures raise before any write.
    """

    if abs(shares_delta) < SHARE_EPSILON and abs(investment_delta) < CURRENCY_EPSILON:
        logger.debug(
            "No significant change for %s wallet at %s, skipping", wallet_type.value, buy_price
        )
        return None
    if not is_number(buy_price) or buy_price < 0:
        raise InvalidInputError(f"Invalid buy price {buy_price!r} for wallet adjustment")
    if not is_number(shares_delta) or not is_number(investment_delta):
        raise InvalidInputError("Share and investment deltas must be finite numbers")

    logger.info(
        "Adjusting %s wallet at %s for asset %s: shares %+.5f, investment %+.2f",
        wallet_type.value,
        buy_price,
        asset_id,
        shares_delta,
        investment_delta,
    )

    wallet = existing_wallet
    if wallet is None:
        if not params.owner:
            raise InvalidInputError("Owner is required to look up wallets")
        async with persistence_guard(f"find {wallet_type.value} wallet at {buy_price}"):
            wallet = await store.find_wallet(asset_id, buy_price, wallet_type, owner=params.owner)

    if wallet is not None:
        return await _adjust_existing(store, wallet, shares_delta, investment_delta, params)

    if shares_delta > SHARE_EPSILON:
        tp_value, tp_percent = wallet_target(investment_delta, shares_delta, wallet_type, params)
        new_wallet = Wallet(
            asset_id=asset_id,
            buy_price=buy_price,
            wallet_type=wallet_type,
            owner=params.owner,
            total_shares_qty=round_shares(shares_delta),
            total_investment=round_currency(investment_delta),
            remaining_shares=round_shares(shares_delta),
            shares_sold=0.0,
            realized_pl=0.0,
            sell_txn_count=0,
            tp_value=tp_value,
            tp_percent=tp_percent,
            split_factor=params.split_adjustment_factor,
        )
        async with persistence_guard(f"create {wallet_type.value} wallet at {buy_price}"):
            created = await store.create_wallet(new_wallet)
        logger.info("Created %s wallet %s at %s", wallet_type.value, created.id, buy_price)
        return created

    logger.info(
        "No %s wallet at %s to adjust and no shares being added", wallet_type.value, buy_price
    )
    return None


async def _adjust_existing(
    store: PositionStore,
    wallet: Wallet,
    shares_delta: float,
    investment_delta: float,
    params: AssetParams,
) -> Wallet | None:
    current_total = wallet.total_shares_qty or 0.0
    current_remaining = wallet.remaining_shares or 0.0
    previously_emptied = current_remaining <= SHARE_EPSILON
    prior_investment = 0.0 if previously_emptied else (wallet.total_investment or 0.0)

    new_total = current_total + shares_delta
    new_remaining = current_remaining + shares_delta
    new_investment = prior_investment + investment_delta

    if new_remaining < -SHARE_EPSILON:
        if wallet.has_sales and shares_delta < 0:
            raise NegativeRemainingSharesError(
                f"This edit would leave {new_remaining:.5f} remaining shares in the "
                f"{wallet.wallet_type.value} wallet at {wallet.buy_price} which already has sales"
            )
        logger.warning(
            "Remaining shares for %s wallet %s would be negative (%.5f), has sales: %s",
            wallet.wallet_type.value,
            wallet.id,
            new_remaining,
            wallet.has_sales,
        )

    if new_total <= SHARE_EPSILON and new_investment <= CURRENCY_EPSILON and new_remaining <= SHARE_EPSILON:
        async with persistence_guard(f"delete emptied wallet {wallet.id}"):
            await store.delete_wallet(wallet.id)
        logger.info("Deleted emptied %s wallet %s", wallet.wallet_type.value, wallet.id)
        return None

    if new_total < -SHARE_EPSILON:
        raise NegativeSharesError(
            f"Adjustment would leave {new_total:.5f} total shares in the "
            f"{wallet.wallet_type.value} wallet at {wallet.buy_price}"
        )

    # A reused bucket's investment only pays for the shares added since it emptied.
    basis_shares = new_remaining if previously_emptied else new_total
    tp_value, tp_percent = wallet_target(new_investment, basis_shares, wallet.wallet_type, params)
    fields: dict[str, Any] = {
        "total_shares_qty": round_shares(new_total),
        "total_investment": round_currency(new_investment),
        "remaining_shares": round_shares(new_remaining),
        "tp_value": tp_value,
        "tp_percent": tp_percent,
    }
    async with persistence_guard(f"update wallet {wallet.id}"):
        updated = await store.update_wallet(wallet.id, fields)
    logger.debug("Updated wallet %s with %s", wallet.id, fields)
    return updated


@dataclass(frozen=True)
class BucketContribution:
    wallet_type: WalletType
    shares: float
    investment: float


def resolve_swing_ratio(buy_type: BuyType, swing_hold_ratio: float | None) -> float:
    """Fraction of a Buy routed to the Swing wallet."""

    if buy_type is BuyType.SWING:
        return 1.0
    if buy_type is BuyType.HOLD:
        return 0.0
    if is_number(swing_hold_ratio) and 0 <= swing_hold_ratio <= 100:
        return swing_hold_ratio / 100.0
    default_ratio = get_settings().default_swing_hold_ratio
    logger.warning(
        "Swing/Hold ratio %r missing or invalid, using default %s%% Swing", swing_hold_ratio, default_ratio
    )
    return default_ratio / 100.0


def allocate_buy(
    price: float,
    quantity: float,
    buy_type: BuyType,
    swing_hold_ratio: float | None = None,
) -> list[BucketContribution]:
    """Split one Buy into per-wallet-type share and investment contributions.

    Investment is apportioned by shares and the Hold part takes any rounding
    remainder so both parts sum to ``price * quantity``.
    """

    if not is_number(price) or price <= 0:
        raise InvalidInputError(f"Buy price must be positive, got {price!r}")
    if not is_number(quantity) or quantity <= 0:
        raise InvalidInputError(f"Buy quantity must be positive, got {quantity!r}")

    ratio = resolve_swing_ratio(buy_type, swing_hold_ratio)
    total_investment = price * quantity
    swing_shares = round_shares(quantity * ratio)
    hold_shares = round_shares(quantity - swing_shares)
    swing_investment = swing_shares / quantity * total_investment if swing_shares > 0 else 0.0
    hold_investment = total_investment - swing_investment if hold_shares > 0 else 0.0

    parts = []
    if swing_shares > SHARE_EPSILON:
        parts.append(BucketContribution(WalletType.SWING, swing_shares, swing_investment))
    if hold_shares > SHARE_EPSILON:
        parts.append(BucketContribution(WalletType.HOLD, hold_shares, hold_investment))
    return parts


@dataclass
class WalletAdjustmentReport:
    """Outcome of a multi-bucket adjustment; each bucket succeeds or fails alone."""

    applied: list[BucketContribution] = field(default_factory=list)
    failed: list[tuple[BucketContribution, LedgerError]] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


async def _apply_contributions(
    store: PositionStore,
    asset: Asset,
    price: float,
    contributions: list[BucketContribution],
    sign: float,
) -> WalletAdjustmentReport:
    params = AssetParams.from_asset(asset)
    report = WalletAdjustmentReport()
    for part in contributions:
        try:
            await adjust_wallet_contribution(
                store,
                asset.id,
                price,
                part.wallet_type,
                sign * part.shares,
                sign * part.investment,
                params,
            )
        except LedgerError as exc:
            logger.error(
                "%s wallet adjustment at %s failed for %s: %s",
                part.wallet_type.value,
                price,
                asset.symbol,
                exc,
            )
            report.failed.append((part, exc))
            continue
        report.applied.append(part)
    return report


async def apply_buy_to_wallets(
    store: PositionStore,
    asset: Asset,
    price: float,
    quantity: float,
    buy_type: BuyType,
) -> WalletAdjustmentReport:
    """Add a Buy's shares and investment to its Swing/Hold wallets."""

    contributions = allocate_buy(price, quantity, buy_type, asset.swing_hold_ratio)
    return await _apply_contributions(store, asset, price, contributions, 1.0)


async def reverse_buy_from_wallets(
    store: PositionStore,
    asset: Asset,
    price: float,
    quantity: float,
    buy_type: BuyType,
) -> WalletAdjustmentReport:
    """Remove a deleted or edited Buy's contribution from its wallets."""

    contributions = allocate_buy(price, quantity, buy_type, asset.swing_hold_ratio)
    return await _apply_contributions(store, asset, price, contributions, -1.0)


def sale_profit(
    sell_price: float,
    buy_price: float,
    quantity: float,
    commission_percent: float | None = None,
) -> float:
    """Realised P/L of a sale, net of a commission charged on the proceeds."""

    gross = (sell_price - buy_price) * quantity
    if is_number(commission_percent) and commission_percent > 0:
        gross -= sell_price * quantity * (commission_percent / 100)
    return gross


def _realized_pl_percent(realized_pl: float, buy_price: float, shares_sold: float) -> float | None:
    cost_basis = buy_price * shares_sold
    if cost_basis != 0:
        return round_percent(realized_pl / cost_basis * 100)
    if realized_pl == 0:
        return 0.0
    return None


async def _load_wallet(store: PositionStore, wallet_id: str) -> Wallet:
    async with persistence_guard(f"load wallet {wallet_id}"):
        wallet = await store.get_wallet(wallet_id)
    if wallet is None:
        raise InvalidInputError(f"Wallet {wallet_id} not found")
    return wallet


async def record_wallet_sale(
    store: PositionStore,
    wallet_id: str,
    price: float,
    quantity: float,
    commission_percent: float | None = None,
) -> Wallet:
    """Book a sale of ``quantity`` shares at ``price`` against a wallet."""

    if not is_number(price) or price <= 0:
        raise InvalidInputError(f"Sell price must be positive, got {price!r}")
    if not is_number(quantity) or quantity <= 0:
        raise InvalidInputError(f"Sell quantity must be positive, got {quantity!r}")

    wallet = await _load_wallet(store, wallet_id)
    remaining = wallet.remaining_shares or 0.0
    if quantity > remaining + SHARE_EPSILON:
        raise NegativeRemainingSharesError(
            f"Cannot sell {quantity} shares from wallet {wallet_id}; only {remaining} remain"
        )

    profit = sale_profit(price, wallet.buy_price, quantity, commission_percent)
    shares_sold = (wallet.shares_sold or 0.0) + quantity
    realized_pl = (wallet.realized_pl or 0.0) + profit
    fields = {
        "shares_sold": round_shares(shares_sold),
        "remaining_shares": round_shares(max(0.0, remaining - quantity)),
        "realized_pl": round_currency(realized_pl),
        "realized_pl_percent": _realized_pl_percent(realized_pl, wallet.buy_price, shares_sold),
        "sell_txn_count": (wallet.sell_txn_count or 0) + 1,
    }
    async with persistence_guard(f"record sale on wallet {wallet_id}"):
        updated = await store.update_wallet(wallet_id, fields)
    logger.info(
        "Recorded sale of %s @ %s on wallet %s (P/L %.2f)", quantity, price, wallet_id, profit
    )
    return updated


async def reverse_wallet_sale(
    store: PositionStore,
    wallet_id: str,
    price: float,
    quantity: float,
    commission_percent: float | None = None,
) -> Wallet:
    """Undo a previously recorded sale, e.g. when its transaction is deleted."""

    if not is_number(price) or not is_number(quantity) or quantity <= 0:
        raise InvalidInputError(
            f"Cannot reverse sale with quantity {quantity!r} and price {price!r}"
        )

    wallet = await _load_wallet(store, wallet_id)
    profit = sale_profit(price, wallet.buy_price, quantity, commission_percent)
    shares_sold = max(0.0, (wallet.shares_sold or 0.0) - quantity)
    realized_pl = (wallet.realized_pl or 0.0) - profit
    fields = {
        "shares_sold": round_shares(shares_sold),
        "remaining_shares": round_shares((wallet.remaining_shares or 0.0) + quantity),
        "realized_pl": round_currency(realized_pl),
        "realized_pl_percent": _realized_pl_percent(realized_pl, wallet.buy_price, shares_sold),
        "sell_txn_count": max(0, (wallet.sell_txn_count or 0) - 1),
    }
    async with persistence_guard(f"reverse sale on wallet {wallet_id}"):
        updated = await store.update_wallet(wallet_id, fields)
    logger.info("Reversed sale of %s @ %s on wallet %s", quantity, price, wallet_id)
    return updated


__all__ = [
    "adjust_wallet_contribution",
    "BucketContribution",
    "resolve_swing_ratio",
    "allocate_buy",
    "WalletAdjustmentReport",
    "apply_buy_to_wallets",
    "reverse_buy_from_wallets",
    "sale_profit",
    "record_wallet_sale",
    "reverse_wallet_sale",
]
