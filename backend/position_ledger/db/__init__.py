"""SQLAlchemy schema and engine helpers for the SQL-backed store."""

from .base import Base, Database
from .models import AssetRecord, TransactionRecord, WalletRecord

__all__ = ["Base", "Database", "AssetRecord", "TransactionRecord", "WalletRecord"]
