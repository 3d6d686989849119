"""Position ledger engine: cost-basis wallets, stock splits and cash flow."""

from .cash_flow import (
    CashFlowEvent,
    CashFlowMigrationResult,
    CashFlowReplay,
    apply_cash_flow_event,
    calculate_roic,
    migrate_all_cash_flows,
    migrate_stock_cash_flow,
    process_transaction_cash_flow,
    replay_cash_flow,
)
from .config import LedgerSettings, get_settings
from .errors import (
    AssetNotFoundError,
    InvalidInputError,
    LedgerError,
    NegativeRemainingSharesError,
    NegativeSharesError,
    PersistenceError,
    SplitAdjustmentIncompleteError,
)
from .models import (
    Asset,
    AssetParams,
    BuyType,
    CashFlowState,
    Transaction,
    TransactionAction,
    Wallet,
    WalletType,
)
from .splits import (
    SplitStateReport,
    StockSplitResult,
    check_split_state,
    get_split_history,
    process_stock_split,
    resume_stock_split,
)
from .store import InMemoryPositionStore, PositionStore, SqlAlchemyPositionStore, StoreError
from .targets import TargetRecalcResult, calculate_target_price, recalculate_wallet_targets
from .wallets import (
    WalletAdjustmentReport,
    adjust_wallet_contribution,
    allocate_buy,
    apply_buy_to_wallets,
    record_wallet_sale,
    reverse_buy_from_wallets,
    reverse_wallet_sale,
)

__all__ = [
    "Asset",
    "AssetNotFoundError",
    "AssetParams",
    "BuyType",
    "CashFlowEvent",
    "CashFlowMigrationResult",
    "CashFlowReplay",
    "CashFlowState",
    "InMemoryPositionStore",
    "InvalidInputError",
    "LedgerError",
    "LedgerSettings",
    "NegativeRemainingSharesError",
    "NegativeSharesError",
    "PersistenceError",
    "PositionStore",
    "SplitAdjustmentIncompleteError",
    "SplitStateReport",
    "SqlAlchemyPositionStore",
    "StockSplitResult",
    "StoreError",
    "TargetRecalcResult",
    "Transaction",
    "TransactionAction",
    "Wallet",
    "WalletAdjustmentReport",
    "WalletType",
    "adjust_wallet_contribution",
    "allocate_buy",
    "apply_buy_to_wallets",
    "apply_cash_flow_event",
    "calculate_roic",
    "calculate_target_price",
    "check_split_state",
    "get_settings",
    "get_split_history",
    "migrate_all_cash_flows",
    "migrate_stock_cash_flow",
    "process_stock_split",
    "process_transaction_cash_flow",
    "recalculate_wallet_targets",
    "replay_cash_flow",
    "resume_stock_split",
    "reverse_buy_from_wallets",
    "reverse_wallet_sale",
]
