"""Read-only split adjustments for displaying historical transactions.

Stored transactions keep the prices and quantities they were entered with.
When viewed from today, every split that happened after a transaction
multiplies its share count and divides its price by the split ratio.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from .models import Transaction, TransactionAction, Wallet


@dataclass(frozen=True)
class StockSplitInfo:
    date: date
    ratio: float
    pre_split_price: float | None = None


@dataclass(frozen=True)
class SplitAdjustedTransaction:
    original: Transaction
    adjusted_shares: float
    adjusted_price: float
    cumulative_split_factor: float

    @property
    def was_adjusted(self) -> bool:
        return self.cumulative_split_factor != 1.0


@dataclass(frozen=True)
class SplitAdjustedWallet:
    adjusted_buy_price: float
    adjusted_remaining_shares: float
    adjusted_total_shares: float
    cumulative_split_factor: float

    @property
    def was_adjusted(self) -> bool:
        return self.cumulative_split_factor != 1.0


@dataclass(frozen=True)
class SplitAdjustedPL:
    adjusted_pl: float
    adjusted_buy_price: float
    adjusted_shares: float
    sell_price_used: float
    was_adjusted: bool


def extract_stock_splits(transactions: Iterable[Transaction]) -> list[StockSplitInfo]:
    """Collect StockSplit events sorted by date; undated rows are ignored."""

    splits = [
        StockSplitInfo(
            date=txn.date,
            ratio=txn.split_ratio or 1.0,
            pre_split_price=txn.pre_split_price,
        )
        for txn in transactions
        if txn.action is TransactionAction.STOCK_SPLIT and txn.date is not None
    ]
    return sorted(splits, key=lambda split: split.date)


def cumulative_split_factor(splits: Iterable[StockSplitInfo], as_of: date) -> float:
    """Product of the ratios of every split dated strictly after ``as_of``."""

    factor = 1.0
    for split in splits:
        if split.date > as_of:
            factor *= split.ratio
    return factor


def split_adjusted_price(price: float, factor: float) -> float:
    return price / factor


def split_adjusted_transaction(
    txn: Transaction,
    splits: list[StockSplitInfo],
) -> SplitAdjustedTransaction:
    shares = txn.quantity or 0.0
    price = txn.price or 0.0
    if not splits or txn.date is None:
        return SplitAdjustedTransaction(txn, shares, price, 1.0)
    factor = cumulative_split_factor(splits, txn.date)
    return SplitAdjustedTransaction(
        original=txn,
        adjusted_shares=shares * factor,
        adjusted_price=split_adjusted_price(price, factor),
        cumulative_split_factor=factor,
    )


def split_adjusted_wallet(
    wallet: Wallet,
    splits: list[StockSplitInfo],
    as_of: date | None,
) -> SplitAdjustedWallet:
    """View a wallet's figures as of ``as_of`` in today's share terms."""

    buy_price = wallet.buy_price or 0.0
    remaining = wallet.remaining_shares or 0.0
    total = wallet.total_shares_qty or 0.0
    factor = cumulative_split_factor(splits, as_of) if splits and as_of else 1.0
    return SplitAdjustedWallet(
        adjusted_buy_price=split_adjusted_price(buy_price, factor),
        adjusted_remaining_shares=remaining * factor,
        adjusted_total_shares=total * factor,
        cumulative_split_factor=factor,
    )


def split_adjusted_pl(
    sell_price: float,
    buy_price: float,
    shares: float,
    sell_date: date,
    buy_date: date,
    splits: list[StockSplitInfo],
) -> SplitAdjustedPL:
    """Realised P/L for a sale whose matched buy may sit before a split.

    ``buy_price`` and ``shares`` are in the buy date's terms; both legs are
    normalised to post-split terms before the difference is taken.
    """

    if not splits:
        return SplitAdjustedPL(
            adjusted_pl=(sell_price - buy_price) * shares,
            adjusted_buy_price=buy_price,
            adjusted_shares=shares,
            sell_price_used=sell_price,
            was_adjusted=False,
        )

    buy_factor = cumulative_split_factor(splits, buy_date)
    sell_factor = cumulative_split_factor(splits, sell_date)
    adjusted_buy = buy_price / buy_factor
    adjusted_shares = shares * buy_factor
    adjusted_sell = sell_price / sell_factor
    return SplitAdjustedPL(
        adjusted_pl=(adjusted_sell - adjusted_buy) * adjusted_shares,
        adjusted_buy_price=adjusted_buy,
        adjusted_shares=adjusted_shares,
        sell_price_used=adjusted_sell,
        was_adjusted=buy_factor != 1.0 or sell_factor != 1.0,
    )


__all__ = [
    "StockSplitInfo",
    "SplitAdjustedTransaction",
    "SplitAdjustedWallet",
    "SplitAdjustedPL",
    "extract_stock_splits",
    "cumulative_split_factor",
    "split_adjusted_price",
    "split_adjusted_transaction",
    "split_adjusted_wallet",
    "split_adjusted_pl",
]
