"""
Hyperlend client for isolated lending pairs and the core pool on HyperEVM.

This package provides:
- Settings, network defaults and the explicit OrchestratorConfig
- Read/write capabilities and an RPC provider pool with failover
- RemoteStateReader for pair, registry, oracle and token state
- CorePoolReader for core pool reserves and account summaries
- TokenAuthorizer and OracleGuard pre-flight components
- Risk arithmetic and PositionMetrics
- TransactionOrchestrator for supply/borrow/repay/withdraw/add/remove collateral
- RegistryAdmin for pair registry administration
"""

from .allowance import TokenAuthorizer
from .capabilities import (
    ReadCapability,
    WriteCapability,
    create_read_capability,
    create_write_capability,
)
from .core_pool import CorePoolReader, create_core_pool_reader
from .config import (
    HYPEREVM_MAINNET,
    HYPEREVM_TESTNET,
    HyperlendSettings,
    OrchestratorConfig,
    TokenDirectory,
    load_settings,
)
from .errors import (
    ActionCancelled,
    CapabilityError,
    ConfigurationError,
    ConfirmationTimeout,
    ExceedsBorrowLimitError,
    GasEstimationFailed,
    HyperlendError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InsufficientCollateralError,
    InvalidInputError,
    OracleDataInvalidError,
    OracleStaleError,
    RemoteReadError,
    RPCProviderError,
    TransactionRejected,
    TransactionReverted,
)
from .gas import GasPolicy, GasStrategy
from .models import ActionKind, ActionResult, ApprovalResult, CoreAccountData, CoreReserveData
from .oracle_guard import OracleGuard
from .orchestrator import ActionState, TransactionOrchestrator
from .providers import ProviderManager
from .reader import RemoteStateReader
from .registry import RegistryAdmin
from .risk_engine import PositionMetrics, RiskEngine, RiskStatus
from .transactions import TransactionSender

__all__ = [
    "TokenAuthorizer",
    "ReadCapability",
    "WriteCapability",
    "create_read_capability",
    "create_write_capability",
    "CorePoolReader",
    "create_core_pool_reader",
    "HYPEREVM_MAINNET",
    "HYPEREVM_TESTNET",
    "HyperlendSettings",
    "OrchestratorConfig",
    "TokenDirectory",
    "load_settings",
    "ActionCancelled",
    "CapabilityError",
    "ConfigurationError",
    "ConfirmationTimeout",
    "ExceedsBorrowLimitError",
    "GasEstimationFailed",
    "HyperlendError",
    "InsufficientAllowanceError",
    "InsufficientBalanceError",
    "InsufficientCollateralError",
    "InvalidInputError",
    "OracleDataInvalidError",
    "OracleStaleError",
    "RemoteReadError",
    "RPCProviderError",
    "TransactionRejected",
    "TransactionReverted",
    "GasPolicy",
    "GasStrategy",
    "ActionKind",
    "ActionResult",
    "ApprovalResult",
    "CoreAccountData",
    "CoreReserveData",
    "OracleGuard",
    "ActionState",
    "TransactionOrchestrator",
    "ProviderManager",
    "RemoteStateReader",
    "RegistryAdmin",
    "PositionMetrics",
    "RiskEngine",
    "RiskStatus",
    "TransactionSender",
]
