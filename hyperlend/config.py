"""
Configuration for the Hyperlend client.

- Network defaults (chain id, public RPCs) for HyperEVM
- Environment-driven settings (HYPERLEND_* variables, optionally from .env)
- The explicit OrchestratorConfig handed to TransactionOrchestrator
- A case-normalized token directory
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from .errors import ConfigurationError
from .models import ActionKind


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    chain_id: int
    rpc_urls: List[str]


HYPEREVM_MAINNET = NetworkConfig(
    name="hyperevm-mainnet",
    chain_id=999,
    rpc_urls=["https://rpc.hyperliquid.xyz/evm"],
)

HYPEREVM_TESTNET = NetworkConfig(
    name="hyperevm-testnet",
    chain_id=998,
    rpc_urls=["https://rpc.hyperliquid-testnet.xyz/evm"],
)

NETWORKS: Dict[int, NetworkConfig] = {
    HYPEREVM_MAINNET.chain_id: HYPEREVM_MAINNET,
    HYPEREVM_TESTNET.chain_id: HYPEREVM_TESTNET,
}

# Oracle prices older than this are refreshed before a price-sensitive action
DEFAULT_STALE_THRESHOLD_SECONDS = 3600

# How long to wait for a receipt before reporting ConfirmationTimeout
DEFAULT_CONFIRMATION_TIMEOUT_SECONDS = 120


# --- Token directory --------------------------------------------------------------


class TokenDirectory:
    """
    Symbol -> token address lookup.

    Symbols are upper-cased once, at insertion, so "HYPE" and "hype" resolve to
    the same entry. Addresses are stored checksummed.
    """

    def __init__(self, tokens: Optional[Mapping[str, str]] = None) -> None:
        self._tokens: Dict[str, str] = {}
        for symbol, address in (tokens or {}).items():
            self.add(symbol, address)

    @staticmethod
    def normalize(symbol: str) -> str:
        return symbol.strip().upper()

    def add(self, symbol: str, address: str) -> None:
        if not Web3.is_address(address):
            raise ConfigurationError(f"Token {symbol!r} has invalid address {address!r}")
        self._tokens[self.normalize(symbol)] = Web3.to_checksum_address(address)

    def get(self, symbol: str) -> Optional[str]:
        return self._tokens.get(self.normalize(symbol))

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and self.normalize(symbol) in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def symbols(self) -> List[str]:
        return sorted(self._tokens)


# --- Orchestrator config ----------------------------------------------------------


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Everything a TransactionOrchestrator needs besides its capability.

    oracle_address overrides the oracle reported by the pair's exchangeRateInfo().
    gas_buffer_by_action overrides the default estimate multipliers per action.
    """

    pair_address: str
    oracle_address: Optional[str] = None
    stale_threshold_seconds: Optional[int] = DEFAULT_STALE_THRESHOLD_SECONDS
    gas_buffer_by_action: Mapping[ActionKind, float] = field(default_factory=dict)
    confirmation_timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if not Web3.is_address(self.pair_address):
            raise ConfigurationError(f"pair_address is not a valid address: {self.pair_address!r}")
        if self.oracle_address is not None and not Web3.is_address(self.oracle_address):
            raise ConfigurationError(f"oracle_address is not a valid address: {self.oracle_address!r}")
        if self.stale_threshold_seconds is not None and self.stale_threshold_seconds <= 0:
            raise ConfigurationError("stale_threshold_seconds must be positive")
        if self.confirmation_timeout_seconds <= 0:
            raise ConfigurationError("confirmation_timeout_seconds must be positive")
        for action, buffer in self.gas_buffer_by_action.items():
            if buffer < 1.0:
                raise ConfigurationError(f"gas buffer for {ActionKind(action).value} must be >= 1.0, got {buffer}")


# --- Environment settings ---------------------------------------------------------


class HyperlendSettings(BaseSettings):
    """Settings read from HYPERLEND_* environment variables (and .env)."""

    model_config = SettingsConfigDict(env_prefix="HYPERLEND_", env_file=".env", case_sensitive=False, extra="ignore")

    rpc_url: str = HYPEREVM_MAINNET.rpc_urls[0]
    fallback_rpc_urls: List[str] = []
    chain_id: int = HYPEREVM_MAINNET.chain_id
    rpc_timeout: int = 10

    registry_address: Optional[str] = None
    pair_address: Optional[str] = None
    oracle_address: Optional[str] = None
    private_key: Optional[str] = None

    core_pool_address: Optional[str] = None
    core_data_provider_address: Optional[str] = None
    core_ui_data_provider_address: Optional[str] = None
    core_addresses_provider_address: Optional[str] = None

    stale_threshold_seconds: int = DEFAULT_STALE_THRESHOLD_SECONDS
    confirmation_timeout_seconds: int = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS

    # JSON object of symbol -> address, e.g. {"WHYPE": "0x..."}
    tokens: Dict[str, str] = {}

    def validate_settings(self) -> None:
        """
        Validate required configuration.

        Raises:
            ConfigurationError: If required configuration is missing or invalid
        """
        if not self.rpc_url:
            raise ConfigurationError("HYPERLEND_RPC_URL environment variable is required")

        for name in (
            "registry_address",
            "pair_address",
            "oracle_address",
            "core_pool_address",
            "core_data_provider_address",
            "core_ui_data_provider_address",
            "core_addresses_provider_address",
        ):
            value = getattr(self, name)
            if value and not Web3.is_address(value):
                raise ConfigurationError(f"HYPERLEND_{name.upper()} must be a valid address: {value}")

        if self.private_key:
            key = self.private_key[2:] if self.private_key.startswith("0x") else self.private_key
            if len(key) != 64:
                raise ConfigurationError("HYPERLEND_PRIVATE_KEY must be a 32-byte hex string")

        if self.stale_threshold_seconds <= 0:
            raise ConfigurationError("HYPERLEND_STALE_THRESHOLD_SECONDS must be positive")

    @property
    def network(self) -> NetworkConfig:
        return NETWORKS.get(
            self.chain_id,
            NetworkConfig(name=f"chain-{self.chain_id}", chain_id=self.chain_id, rpc_urls=[]),
        )

    def all_rpc_urls(self) -> List[str]:
        """Primary RPC first, then fallbacks, then network defaults; duplicates removed."""
        seen = set()
        urls: List[str] = []
        for url in [self.rpc_url, *self.fallback_rpc_urls, *self.network.rpc_urls]:
            if url and url not in seen:
                seen.add(url)
                urls.append(url)
        return urls

    def token_directory(self) -> TokenDirectory:
        return TokenDirectory(self.tokens)

    def to_orchestrator_config(self, gas_buffer_by_action: Optional[Mapping[ActionKind, float]] = None) -> OrchestratorConfig:
        if not self.pair_address:
            raise ConfigurationError("HYPERLEND_PAIR_ADDRESS is required to build an OrchestratorConfig")
        return OrchestratorConfig(
            pair_address=self.pair_address,
            oracle_address=self.oracle_address,
            stale_threshold_seconds=self.stale_threshold_seconds,
            gas_buffer_by_action=dict(gas_buffer_by_action or {}),
            confirmation_timeout_seconds=self.confirmation_timeout_seconds,
        )


def load_settings(env_file: Optional[str] = ".env") -> HyperlendSettings:
    """Load .env into the process environment, then build and validate settings."""
    if env_file:
        load_dotenv(env_file)
    settings = HyperlendSettings()
    settings.validate_settings()
    return settings
