"""Persistence collaborator contract consumed by the ledger engine."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from ..models import Asset, Transaction, TransactionAction, Wallet, WalletType


class StoreError(RuntimeError):
    """Raised by a store when a read or write could not be completed."""


class PositionStore(Protocol):
    """Asynchronous document store holding assets, transactions and wallets."""

    async def get_asset(self, asset_id: str) -> Asset | None:
        ...

    async def create_asset(self, asset: Asset) -> Asset:
        ...

    async def update_asset(self, asset_id: str, fields: Mapping[str, Any]) -> Asset:
        ...

    async def list_transactions(
        self,
        asset_id: str,
        *,
        action: TransactionAction | None = None,
    ) -> list[Transaction]:
        ...

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        ...

    async def find_wallet(
        self,
        asset_id: str,
        buy_price: float,
        wallet_type: WalletType,
        *,
        owner: str | None = None,
    ) -> Wallet | None:
        ...

    async def list_wallets(self, asset_id: str) -> list[Wallet]:
        ...

    async def get_wallet(self, wallet_id: str) -> Wallet | None:
        ...

    async def create_wallet(self, wallet: Wallet) -> Wallet:
        ...

    async def update_wallet(self, wallet_id: str, fields: Mapping[str, Any]) -> Wallet:
        ...

    async def delete_wallet(self, wallet_id: str) -> None:
        ...


__all__ = ["PositionStore", "StoreError"]
