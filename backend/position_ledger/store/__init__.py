"""Persistence collaborators for the ledger engine."""

from .base import PositionStore, StoreError
from .memory import InMemoryPositionStore
from .sql import SqlAlchemyPositionStore

__all__ = ["PositionStore", "StoreError", "InMemoryPositionStore", "SqlAlchemyPositionStore"]
