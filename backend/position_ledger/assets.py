"""Asset lookups shared by the engine operations."""

from __future__ import annotations

from .errors import AssetNotFoundError, persistence_guard
from .models import Asset
from .store.base import PositionStore


async def load_asset(store: PositionStore, asset_id: str) -> Asset:
    """Fetch an asset, raising ``AssetNotFoundError`` when the store has none."""

    async with persistence_guard(f"load asset {asset_id}"):
        asset = await store.get_asset(asset_id)
    if asset is None:
        raise AssetNotFoundError(asset_id)
    return asset


__all__ = ["load_asset"]
