"""Position store backed by async SQLAlchemy."""

from __future__ import annotations

import dataclasses
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..db.base import Database
from ..db.models import AssetRecord, TransactionRecord, WalletRecord
from ..models import Asset, Transaction, TransactionAction, Wallet, WalletType, utcnow
from .base import StoreError

logger = logging.getLogger(__name__)

_Domain = TypeVar("_Domain", Asset, Transaction, Wallet)


_INTEGER_FIELDS = frozenset({"sell_txn_count"})


def _column_value(name: str, value: Any) -> Any:
    # SQLite hands whole-number NUMERIC values back as int.
    if isinstance(value, int) and not isinstance(value, bool) and name not in _INTEGER_FIELDS:
        return float(value)
    return value


def _to_domain(record: Any, cls: type[_Domain]) -> _Domain:
    return cls(**{f.name: _column_value(f.name, getattr(record, f.name)) for f in dataclasses.fields(cls)})


def _to_record(item: Any, cls: type) -> Any:
    return cls(**dataclasses.asdict(item))


def _assign(record: Any, fields: Mapping[str, Any]) -> None:
    for name, value in fields.items():
        if name == "id" or not hasattr(type(record), name):
            raise StoreError(f"Cannot update field {name!r} on {type(record).__tablename__}")
        setattr(record, name, value)


class SqlAlchemyPositionStore:
    """``PositionStore`` over the ``asset``, ``ledger_transaction`` and ``stock_wallet`` tables.

    Every call runs in its own session and commits before returning.
    """

    def __init__(self, database: Database, *, wallet_fetch_limit: int | None = None):
        self._database = database
        self._wallet_limit = wallet_fetch_limit or get_settings().wallet_fetch_limit

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._database.session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("SQL store operation %s failed", operation)
            raise StoreError(f"{operation} failed: {exc}") from exc

    # Assets

    async def get_asset(self, asset_id: str) -> Asset | None:
        async with self._session("get_asset") as session:
            record = await session.get(AssetRecord, asset_id)
            return _to_domain(record, Asset) if record else None

    async def create_asset(self, asset: Asset) -> Asset:
        async with self._session("create_asset") as session:
            record = _to_record(asset, AssetRecord)
            session.add(record)
            await session.commit()
            return _to_domain(record, Asset)

    async def update_asset(self, asset_id: str, fields: Mapping[str, Any]) -> Asset:
        async with self._session("update_asset") as session:
            record = await session.get(AssetRecord, asset_id)
            if record is None:
                raise StoreError(f"Asset {asset_id} does not exist")
            _assign(record, fields)
            await session.commit()
            return _to_domain(record, Asset)

    # Transactions

    async def list_transactions(
        self,
        asset_id: str,
        *,
        action: TransactionAction | None = None,
    ) -> list[Transaction]:
        stmt = select(TransactionRecord).where(TransactionRecord.asset_id == asset_id)
        if action is not None:
            stmt = stmt.where(TransactionRecord.action == action)
        stmt = stmt.order_by(TransactionRecord.date, TransactionRecord.created_at)
        async with self._session("list_transactions") as session:
            rows = (await session.scalars(stmt)).all()
            return [_to_domain(row, Transaction) for row in rows]

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        values = dataclasses.replace(
            transaction,
            id=transaction.id or str(uuid.uuid4()),
            created_at=transaction.created_at or utcnow(),
        )
        async with self._session("create_transaction") as session:
            record = _to_record(values, TransactionRecord)
            session.add(record)
            await session.commit()
            return _to_domain(record, Transaction)

    # Wallets

    async def find_wallet(
        self,
        asset_id: str,
        buy_price: float,
        wallet_type: WalletType,
        *,
        owner: str | None = None,
    ) -> Wallet | None:
        stmt = select(WalletRecord).where(
            WalletRecord.asset_id == asset_id,
            WalletRecord.buy_price == buy_price,
            WalletRecord.wallet_type == wallet_type,
        )
        if owner is not None:
            stmt = stmt.where(WalletRecord.owner == owner)
        async with self._session("find_wallet") as session:
            record = (await session.scalars(stmt.limit(1))).first()
            return _to_domain(record, Wallet) if record else None

    async def list_wallets(self, asset_id: str) -> list[Wallet]:
        stmt = (
            select(WalletRecord)
            .where(WalletRecord.asset_id == asset_id)
            .order_by(WalletRecord.created_at)
            .limit(self._wallet_limit)
        )
        async with self._session("list_wallets") as session:
            rows = (await session.scalars(stmt)).all()
            if len(rows) == self._wallet_limit:
                logger.warning("Wallet listing for asset %s hit the fetch limit of %d", asset_id, self._wallet_limit)
            return [_to_domain(row, Wallet) for row in rows]

    async def get_wallet(self, wallet_id: str) -> Wallet | None:
        async with self._session("get_wallet") as session:
            record = await session.get(WalletRecord, wallet_id)
            return _to_domain(record, Wallet) if record else None

    async def create_wallet(self, wallet: Wallet) -> Wallet:
        values = dataclasses.replace(wallet, id=wallet.id or str(uuid.uuid4()))
        async with self._session("create_wallet") as session:
            record = _to_record(values, WalletRecord)
            session.add(record)
            await session.commit()
            return _to_domain(record, Wallet)

    async def update_wallet(self, wallet_id: str, fields: Mapping[str, Any]) -> Wallet:
        async with self._session("update_wallet") as session:
            record = await session.get(WalletRecord, wallet_id)
            if record is None:
                raise StoreError(f"Wallet {wallet_id} does not exist")
            _assign(record, fields)
            record.updated_at = utcnow()
            await session.commit()
            return _to_domain(record, Wallet)

    async def delete_wallet(self, wallet_id: str) -> None:
        async with self._session("delete_wallet") as session:
            result = await session.execute(delete(WalletRecord).where(WalletRecord.id == wallet_id))
            await session.commit()
            if result.rowcount == 0:
                raise StoreError(f"Wallet {wallet_id} does not exist")


__all__ = ["SqlAlchemyPositionStore"]
