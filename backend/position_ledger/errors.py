"""Error taxonomy raised by the ledger engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from .store.base import StoreError

if TYPE_CHECKING:
    from .splits import StockSplitResult

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for ledger engine failures."""


class InvalidInputError(LedgerError, ValueError):
    """Malformed numeric input such as a negative or NaN price."""


class NegativeRemainingSharesError(LedgerError):
    """An edit or sale would leave a wallet with negative remaining shares."""


class NegativeSharesError(LedgerError):
    """An adjustment would drive a wallet's total shares below zero."""


class AssetNotFoundError(LedgerError):
    def __init__(self, asset_id: str):
        super().__init__(f"Asset {asset_id} not found")
        self.asset_id = asset_id


class PersistenceError(LedgerError):
    """A store read or write failed; safe for the caller to retry."""


class SplitAdjustmentIncompleteError(PersistenceError):
    """The split was recorded but wallet or asset adjustment did not finish."""

    def __init__(self, message: str, result: "StockSplitResult"):
        super().__init__(message)
        self.result = result


@asynccontextmanager
async def persistence_guard(action: str) -> AsyncIterator[None]:
    """Translate store failures raised inside the block into ``PersistenceError``."""

    try:
        yield
    except StoreError as exc:
        logger.error("Store failure while trying to %s: %s", action, exc)
        raise PersistenceError(f"Failed to {action}: {exc}") from exc


__all__ = [
    "LedgerError",
    "InvalidInputError",
    "NegativeRemainingSharesError",
    "NegativeSharesError",
    "AssetNotFoundError",
    "PersistenceError",
    "SplitAdjustmentIncompleteError",
    "persistence_guard",
]
