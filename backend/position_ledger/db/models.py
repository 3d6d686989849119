"""ORM tables backing the SQL position store."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Enum, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..models import TransactionAction, WalletType, utcnow
from .base import Base


def _amount(**kwargs):
    return mapped_column(Numeric(18, 6, asdecimal=False), **kwargs)


class AssetRecord(Base):
    __tablename__ = "asset"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    symbol: Mapped[str] = mapped_column(String(20), index=True)
    owner: Mapped[str] = mapped_column(String(64), index=True)
    price_drop_percent: Mapped[Optional[float]] = _amount(nullable=True)
    profit_loss_ratio: Mapped[Optional[float]] = _amount(nullable=True)
    swing_take_profit_percent: Mapped[Optional[float]] = _amount(nullable=True)
    hold_take_profit_percent: Mapped[Optional[float]] = _amount(nullable=True)
    swing_hold_ratio: Mapped[Optional[float]] = _amount(nullable=True)
    commission_percent: Mapped[Optional[float]] = _amount(nullable=True)
    split_adjustment_factor: Mapped[float] = _amount(default=1.0)
    test_price: Mapped[Optional[float]] = _amount(nullable=True)
    total_out_of_pocket: Mapped[float] = _amount(default=0.0)
    current_cash_balance: Mapped[float] = _amount(default=0.0)


class TransactionRecord(Base):
    __tablename__ = "ledger_transaction"
    __table_args__ = (Index("ix_ledger_transaction_asset_date", "asset_id", "date"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    asset_id: Mapped[str] = mapped_column(String(64), index=True)
    owner: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    action: Mapped[TransactionAction] = mapped_column(
        Enum(TransactionAction, name="ledger_action", values_callable=lambda e: [m.value for m in e])
    )
    price: Mapped[Optional[float]] = _amount(nullable=True)
    quantity: Mapped[Optional[float]] = _amount(nullable=True)
    investment: Mapped[Optional[float]] = _amount(nullable=True)
    amount: Mapped[Optional[float]] = _amount(nullable=True)
    split_ratio: Mapped[Optional[float]] = _amount(nullable=True)
    pre_split_price: Mapped[Optional[float]] = _amount(nullable=True)
    post_split_price: Mapped[Optional[float]] = _amount(nullable=True)
    prior_split_factor: Mapped[Optional[float]] = _amount(nullable=True)
    txn_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    wallet_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class WalletRecord(Base):
    __tablename__ = "stock_wallet"
    __table_args__ = (
        UniqueConstraint("asset_id", "buy_price", "wallet_type", name="uq_stock_wallet_bucket"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    asset_id: Mapped[str] = mapped_column(String(64), index=True)
    owner: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    buy_price: Mapped[float] = _amount()
    wallet_type: Mapped[WalletType] = mapped_column(
        Enum(WalletType, name="wallet_type", values_callable=lambda e: [m.value for m in e])
    )
    total_shares_qty: Mapped[float] = _amount(default=0.0)
    total_investment: Mapped[float] = _amount(default=0.0)
    shares_sold: Mapped[float] = _amount(default=0.0)
    remaining_shares: Mapped[float] = _amount(default=0.0)
    realized_pl: Mapped[float] = _amount(default=0.0)
    realized_pl_percent: Mapped[Optional[float]] = _amount(nullable=True)
    sell_txn_count: Mapped[int] = mapped_column(Integer, default=0)
    tp_value: Mapped[Optional[float]] = _amount(nullable=True)
    tp_percent: Mapped[Optional[float]] = _amount(nullable=True)
    split_factor: Mapped[float] = _amount(default=1.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


__all__ = ["AssetRecord", "TransactionRecord", "WalletRecord"]
