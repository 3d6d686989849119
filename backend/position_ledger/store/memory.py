"""Dict-backed position store for tests and local experiments."""

from __future__ import annotations

import copy
import dataclasses
import uuid
from collections import Counter
from typing import Any, Mapping

from ..models import Asset, Transaction, TransactionAction, Wallet, WalletType, utcnow
from .base import StoreError


class InMemoryPositionStore:
    """Keeps records in plain dicts and hands out copies.

    ``fail_on("update_wallet", after=2)`` makes the third and later calls to
    ``update_wallet`` raise ``StoreError`` until :meth:`clear_failures`.
    """

    def __init__(self) -> None:
        self.assets: dict[str, Asset] = {}
        self.transactions: dict[str, Transaction] = {}
        self.wallets: dict[str, Wallet] = {}
        self.calls: Counter[str] = Counter()
        self._failures: dict[str, int] = {}

    def fail_on(self, operation: str, *, after: int = 0) -> None:
        self._failures[operation] = self.calls[operation] + after

    def clear_failures(self) -> None:
        self._failures.clear()

    def _enter(self, operation: str) -> None:
        threshold = self._failures.get(operation)
        if threshold is not None and self.calls[operation] >= threshold:
            raise StoreError(f"{operation} unavailable")
        self.calls[operation] += 1

    @staticmethod
    def _apply(record: Any, fields: Mapping[str, Any]) -> None:
        known = {f.name for f in dataclasses.fields(record)}
        for name, value in fields.items():
            if name not in known:
                raise StoreError(f"Unknown field {name!r} for {type(record).__name__}")
            setattr(record, name, value)

    # Assets

    async def get_asset(self, asset_id: str) -> Asset | None:
        self._enter("get_asset")
        asset = self.assets.get(asset_id)
        return copy.deepcopy(asset) if asset else None

    async def create_asset(self, asset: Asset) -> Asset:
        self._enter("create_asset")
        record = copy.deepcopy(asset)
        self.assets[record.id] = record
        return copy.deepcopy(record)

    async def update_asset(self, asset_id: str, fields: Mapping[str, Any]) -> Asset:
        self._enter("update_asset")
        record = self.assets.get(asset_id)
        if record is None:
            raise StoreError(f"Asset {asset_id} does not exist")
        self._apply(record, fields)
        return copy.deepcopy(record)

    # Transactions

    async def list_transactions(
        self,
        asset_id: str,
        *,
        action: TransactionAction | None = None,
    ) -> list[Transaction]:
        self._enter("list_transactions")
        return [
            copy.deepcopy(txn)
            for txn in self.transactions.values()
            if txn.asset_id == asset_id and (action is None or txn.action is action)
        ]

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        self._enter("create_transaction")
        record = copy.deepcopy(transaction)
        record.id = record.id or str(uuid.uuid4())
        record.created_at = record.created_at or utcnow()
        self.transactions[record.id] = record
        return copy.deepcopy(record)

    # Wallets

    async def find_wallet(
        self,
        asset_id: str,
        buy_price: float,
        wallet_type: WalletType,
        *,
        owner: str | None = None,
    ) -> Wallet | None:
        self._enter("find_wallet")
        for wallet in self.wallets.values():
            if (
                wallet.asset_id == asset_id
                and wallet.buy_price == buy_price
                and wallet.wallet_type is wallet_type
                and (owner is None or wallet.owner == owner)
            ):
                return copy.deepcopy(wallet)
        return None

    async def list_wallets(self, asset_id: str) -> list[Wallet]:
        self._enter("list_wallets")
        return [copy.deepcopy(w) for w in self.wallets.values() if w.asset_id == asset_id]

    async def get_wallet(self, wallet_id: str) -> Wallet | None:
        self._enter("get_wallet")
        wallet = self.wallets.get(wallet_id)
        return copy.deepcopy(wallet) if wallet else None

    async def create_wallet(self, wallet: Wallet) -> Wallet:
        self._enter("create_wallet")
        record = copy.deepcopy(wallet)
        record.id = record.id or str(uuid.uuid4())
        self.wallets[record.id] = record
        return copy.deepcopy(record)

    async def update_wallet(self, wallet_id: str, fields: Mapping[str, Any]) -> Wallet:
        self._enter("update_wallet")
        record = self.wallets.get(wallet_id)
        if record is None:
            raise StoreError(f"Wallet {wallet_id} does not exist")
        self._apply(record, fields)
        record.updated_at = utcnow()
        return copy.deepcopy(record)

    async def delete_wallet(self, wallet_id: str) -> None:
        self._enter("delete_wallet")
        if self.wallets.pop(wallet_id, None) is None:
            raise StoreError(f"Wallet {wallet_id} does not exist")


__all__ = ["InMemoryPositionStore"]
