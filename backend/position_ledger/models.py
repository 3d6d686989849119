"""Domain records for assets, transactions, cost-basis wallets and cash flow."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from .precision import SHARE_EPSILON


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionAction(str, enum.Enum):
    BUY = "Buy"
    SELL = "Sell"
    DIVIDEND = "Div"
    SLP = "SLP"
    STOCK_SPLIT = "StockSplit"


class WalletType(str, enum.Enum):
    SWING = "Swing"
    HOLD = "Hold"


class BuyType(str, enum.Enum):
    """How a Buy is routed across wallet types."""

    SWING = "Swing"
    HOLD = "Hold"
    SPLIT = "Split"


@dataclass
class Asset:
    """A tracked stock, ETF or crypto position owned by one user."""

    id: str
    symbol: str
    owner: str
    price_drop_percent: float | None = None
    profit_loss_ratio: float | None = None
    swing_take_profit_percent: float | None = None
    hold_take_profit_percent: float | None = None
    swing_hold_ratio: float | None = None
    commission_percent: float | None = None
    split_adjustment_factor: float = 1.0
    test_price: float | None = None
    total_out_of_pocket: float = 0.0
    current_cash_balance: float = 0.0

    @property
    def roic(self) -> float | None:
        if self.total_out_of_pocket <= 0:
            return None
        return self.current_cash_balance / self.total_out_of_pocket * 100


@dataclass
class Transaction:
    """One event against an asset.

    Buy/Sell carry ``price`` and ``quantity``; Div/SLP carry ``amount``;
    StockSplit carries ``split_ratio`` with the reference prices around it
    and the asset's cumulative split factor before it was applied.
    ``created_at`` orders same-day events.
    """

    asset_id: str
    date: Optional[date]
    action: TransactionAction
    id: str | None = None
    owner: str | None = None
    price: float | None = None
    quantity: float | None = None
    investment: float | None = None
    amount: float | None = None
    split_ratio: float | None = None
    pre_split_price: float | None = None
    post_split_price: float | None = None
    prior_split_factor: float | None = None
    txn_type: str | None = None
    wallet_id: str | None = None
    created_at: datetime | None = None


@dataclass
class Wallet:
    """Cost-basis bucket keyed by (asset, buy price, wallet type)."""

    asset_id: str
    buy_price: float
    wallet_type: WalletType
    id: str | None = None
    owner: str | None = None
    total_shares_qty: float = 0.0
    total_investment: float = 0.0
    shares_sold: float = 0.0
    remaining_shares: float = 0.0
    realized_pl: float = 0.0
    realized_pl_percent: float | None = None
    sell_txn_count: int = 0
    tp_value: float | None = None
    tp_percent: float | None = None
    split_factor: float = 1.0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def has_sales(self) -> bool:
        return (self.shares_sold or 0.0) > SHARE_EPSILON or (self.sell_txn_count or 0) > 0


@dataclass(frozen=True)
class AssetParams:
    """Asset fields the wallet adjuster needs for ownership and target prices."""

    owner: str
    price_drop_percent: float | None = None
    profit_loss_ratio: float | None = None
    swing_take_profit_percent: float | None = None
    hold_take_profit_percent: float | None = None
    commission_percent: float | None = None
    split_adjustment_factor: float = 1.0

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetParams":
        return cls(
            owner=asset.owner,
            price_drop_percent=asset.price_drop_percent,
            profit_loss_ratio=asset.profit_loss_ratio,
            swing_take_profit_percent=asset.swing_take_profit_percent,
            hold_take_profit_percent=asset.hold_take_profit_percent,
            commission_percent=asset.commission_percent,
            split_adjustment_factor=asset.split_adjustment_factor or 1.0,
        )

    def target_percent(self, wallet_type: WalletType) -> float | None:
        """Take-profit percentage for a wallet type.

        Swing wallets use the swing take-profit, Hold wallets the hold
        take-profit (then the swing one); both fall back to
        ``price_drop_percent * profit_loss_ratio``.
        """

        candidates: list[float | None] = []
        if wallet_type is WalletType.HOLD:
            candidates.append(self.hold_take_profit_percent)
        candidates.append(self.swing_take_profit_percent)
        for value in candidates:
            if isinstance(value, (int, float)) and value > 0:
                return float(value)
        pdp, plr = self.price_drop_percent, self.profit_loss_ratio
        if isinstance(pdp, (int, float)) and isinstance(plr, (int, float)) and pdp > 0 and plr > 0:
            return float(pdp) * float(plr)
        return None


@dataclass
class CashFlowState:
    total_out_of_pocket: float = 0.0
    current_cash_balance: float = 0.0

    @property
    def roic(self) -> float | None:
        if self.total_out_of_pocket <= 0:
            return None
        return self.current_cash_balance / self.total_out_of_pocket * 100


__all__ = [
    "Asset",
    "AssetParams",
    "BuyType",
    "CashFlowState",
    "Transaction",
    "TransactionAction",
    "Wallet",
    "WalletType",
    "utcnow",
]
