"""Stock split processing across transaction history, wallets and the asset.

A split runs as three ordered steps:

1. record a StockSplit transaction (the permanent, never-adjusted record);
2. rescale every wallet of the asset (price down, shares up, investment kept);
3. multiply the asset's cumulative split factor and rescale its test price.

There is no transaction spanning the steps. Each wallet is stamped with the
cumulative factor its numbers reflect and the split record keeps the factor
that applied before it, so an interrupted split can be detected and resumed
without scaling anything twice.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field
from datetime import date

from .assets import load_asset
from .cash_flow import sort_chronologically
from .errors import (
    InvalidInputError,
    PersistenceError,
    SplitAdjustmentIncompleteError,
    persistence_guard,
)
from .models import Asset, Transaction, TransactionAction, Wallet
from .precision import is_number, round_price, round_shares
from .store.base import PositionStore

logger = logging.getLogger(__name__)

_FACTOR_TOLERANCE = 1e-9


def _same_factor(left: float, right: float) -> bool:
    return math.isclose(left, right, rel_tol=_FACTOR_TOLERANCE)


class SplitStep(str, enum.Enum):
    RECORD = "record"
    WALLETS = "wallets"
    ASSET = "asset"


@dataclass
class StockSplitResult:
    """What a split run achieved, and where it stopped if it did not finish."""

    asset_id: str
    split_ratio: float
    transaction_id: str | None = None
    wallets_adjusted: int = 0
    wallets_skipped: int = 0
    asset_updated: bool = False
    failed_step: SplitStep | None = None
    error: str | None = None

    @property
    def split_recorded(self) -> bool:
        return self.transaction_id is not None

    @property
    def completed(self) -> bool:
        return self.failed_step is None and self.asset_updated


async def process_stock_split(
    store: PositionStore,
    asset_id: str,
    split_date: date,
    split_ratio: float,
    pre_split_price: float | None = None,
    post_split_price: float | None = None,
) -> StockSplitResult:
    """Record a forward split and rescale the asset's wallets and factor.

    Raises ``PersistenceError`` if the split could not be recorded (nothing
    changed), or ``SplitAdjustmentIncompleteError`` carrying the partial
    result if it was recorded but a later step failed; call
    :func:`resume_stock_split` with the recorded transaction id to finish.
    """

    if not is_number(split_ratio) or split_ratio <= 1:
        raise InvalidInputError(f"Split ratio must be greater than 1, got {split_ratio!r}")
    if split_date is None:
        raise InvalidInputError("Split date is required")

    asset = await load_asset(store, asset_id)
    prior_factor = asset.split_adjustment_factor or 1.0
    logger.info("Processing %s:1 split for %s on %s", split_ratio, asset.symbol, split_date)

    record = Transaction(
        asset_id=asset_id,
        date=split_date,
        action=TransactionAction.STOCK_SPLIT,
        owner=asset.owner,
        split_ratio=split_ratio,
        pre_split_price=pre_split_price,
        post_split_price=post_split_price,
        prior_split_factor=prior_factor,
    )
    async with persistence_guard(f"record {split_ratio}:1 split for {asset.symbol}"):
        created = await store.create_transaction(record)

    result = StockSplitResult(asset_id=asset_id, split_ratio=split_ratio, transaction_id=created.id)
    await _finish_split(store, asset, split_ratio, prior_factor, result)
    logger.info(
        "Split completed for %s: %d wallets adjusted, %d skipped",
        asset.symbol,
        result.wallets_adjusted,
        result.wallets_skipped,
    )
    return result


async def _finish_split(
    store: PositionStore,
    asset: Asset,
    split_ratio: float,
    prior_factor: float,
    result: StockSplitResult,
) -> None:
    target_factor = prior_factor * split_ratio
    try:
        await _adjust_wallets(store, asset.id, split_ratio, prior_factor, target_factor, result)
    except PersistenceError as exc:
        _fail(result, SplitStep.WALLETS, exc)

    current_factor = asset.split_adjustment_factor or 1.0
    if _same_factor(current_factor, target_factor):
        result.asset_updated = True
        return
    if not _same_factor(current_factor, prior_factor):
        # A later split already moved the asset on; this one is long applied.
        logger.warning(
            "Asset %s carries split factor %s, not %s; leaving it untouched",
            asset.symbol,
            current_factor,
            prior_factor,
        )
        result.asset_updated = True
        return
    fields: dict[str, float | None] = {"split_adjustment_factor": target_factor}
    if asset.test_price:
        fields["test_price"] = asset.test_price / split_ratio
    try:
        async with persistence_guard(f"update split factor of {asset.symbol}"):
            await store.update_asset(asset.id, fields)
    except PersistenceError as exc:
        _fail(result, SplitStep.ASSET, exc)
    result.asset_updated = True
    logger.info(
        "Split factor for %s: %s -> %s", asset.symbol, asset.split_adjustment_factor, target_factor
    )


def _fail(result: StockSplitResult, step: SplitStep, exc: PersistenceError) -> None:
    result.failed_step = step
    result.error = str(exc)
    logger.error(
        "Split for asset %s recorded but %s step failed: %s", result.asset_id, step.value, exc
    )
    raise SplitAdjustmentIncompleteError(
        f"Split recorded but {step.value} adjustment is incomplete: {exc}", result
    ) from exc


async def _adjust_wallets(
    store: PositionStore,
    asset_id: str,
    split_ratio: float,
    prior_factor: float,
    target_factor: float,
    result: StockSplitResult,
) -> None:
    async with persistence_guard(f"list wallets for asset {asset_id}"):
        wallets = await store.list_wallets(asset_id)
    if not wallets:
        logger.info("No wallets to adjust for asset %s", asset_id)
        return

    # Lowest price first: a rescaled price never lands on an unprocessed bucket key.
    for wallet in sorted(wallets, key=lambda w: w.buy_price):
        stamped = wallet.split_factor or 1.0
        if _same_factor(stamped, target_factor):
            result.wallets_skipped += 1
            continue
        if not _same_factor(stamped, prior_factor):
            logger.warning(
                "Wallet %s reflects split factor %s, expected %s; leaving it untouched",
                wallet.id,
                stamped,
                prior_factor,
            )
            result.wallets_skipped += 1
            continue
        fields = split_wallet_fields(wallet, split_ratio)
        fields["split_factor"] = target_factor
        async with persistence_guard(f"split-adjust wallet {wallet.id}"):
            await store.update_wallet(wallet.id, fields)
        result.wallets_adjusted += 1
        logger.debug(
            "Adjusted wallet %s: price %s -> %s, shares %s -> %s",
            wallet.id,
            wallet.buy_price,
            fields["buy_price"],
            wallet.total_shares_qty,
            fields["total_shares_qty"],
        )


def split_wallet_fields(wallet: Wallet, split_ratio: float) -> dict[str, float | None]:
    """Rescaled wallet figures for a split; total investment is unchanged."""

    return {
        "buy_price": round_price(wallet.buy_price / split_ratio),
        "total_shares_qty": round_shares((wallet.total_shares_qty or 0.0) * split_ratio),
        "remaining_shares": round_shares((wallet.remaining_shares or 0.0) * split_ratio),
        "shares_sold": round_shares((wallet.shares_sold or 0.0) * split_ratio),
        "tp_value": round_price(wallet.tp_value / split_ratio) if wallet.tp_value else wallet.tp_value,
    }


async def get_split_history(store: PositionStore, asset_id: str) -> list[Transaction]:
    async with persistence_guard(f"list split history for asset {asset_id}"):
        splits = await store.list_transactions(asset_id, action=TransactionAction.STOCK_SPLIT)
    return sort_chronologically(splits)


def _expected_factor(splits: list[Transaction]) -> float:
    if not splits:
        return 1.0
    latest = splits[-1]
    if latest.prior_split_factor is not None:
        return latest.prior_split_factor * (latest.split_ratio or 1.0)
    return math.prod(split.split_ratio or 1.0 for split in splits)


@dataclass
class SplitStateReport:
    asset_id: str
    expected_factor: float
    asset_factor: float
    wallets_current: int = 0
    stale_wallet_ids: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.stale_wallet_ids and _same_factor(self.asset_factor, self.expected_factor)


async def check_split_state(store: PositionStore, asset_id: str) -> SplitStateReport:
    """Compare the asset and its wallets against the recorded split history."""

    asset = await load_asset(store, asset_id)
    splits = await get_split_history(store, asset_id)
    async with persistence_guard(f"list wallets for asset {asset_id}"):
        wallets = await store.list_wallets(asset_id)

    report = SplitStateReport(
        asset_id=asset_id,
        expected_factor=_expected_factor(splits),
        asset_factor=asset.split_adjustment_factor or 1.0,
    )
    for wallet in wallets:
        if _same_factor(wallet.split_factor or 1.0, report.expected_factor):
            report.wallets_current += 1
        else:
            report.stale_wallet_ids.append(wallet.id)
    if not report.consistent:
        logger.warning(
            "Split state for %s is inconsistent: asset factor %s, expected %s, %d stale wallets",
            asset.symbol,
            report.asset_factor,
            report.expected_factor,
            len(report.stale_wallet_ids),
        )
    return report


async def resume_stock_split(
    store: PositionStore,
    asset_id: str,
    transaction_id: str,
) -> StockSplitResult:
    """Finish the wallet and asset steps of an already recorded split.

    Safe to call on a completed split: wallets already stamped with the
    post-split factor and an asset already carrying it are left alone.
    """

    splits = await get_split_history(store, asset_id)
    record = next((split for split in splits if split.id == transaction_id), None)
    if record is None:
        raise InvalidInputError(f"No StockSplit transaction {transaction_id} for asset {asset_id}")
    ratio = record.split_ratio
    if not is_number(ratio) or ratio <= 1:
        raise InvalidInputError(f"Recorded split {transaction_id} has invalid ratio {ratio!r}")

    asset = await load_asset(store, asset_id)
    prior_factor = record.prior_split_factor
    if prior_factor is None:
        earlier = splits[: splits.index(record)]
        prior_factor = math.prod(split.split_ratio or 1.0 for split in earlier)

    logger.info("Resuming %s:1 split %s for %s", ratio, transaction_id, asset.symbol)
    result = StockSplitResult(asset_id=asset_id, split_ratio=ratio, transaction_id=transaction_id)
    await _finish_split(store, asset, ratio, prior_factor, result)
    return result


__all__ = [
    "SplitStep",
    "StockSplitResult",
    "process_stock_split",
    "split_wallet_fields",
    "get_split_history",
    "SplitStateReport",
    "check_split_state",
    "resume_stock_split",
]
