"""
Read vs write capabilities.

Components that only read take a ReadCapability. Components that submit
transactions require a WriteCapability and check for it once, at construction,
rather than probing "is this a signer?" on every call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .config import HyperlendSettings
from .errors import CapabilityError, ConfigurationError
from .providers import ProviderManager


@dataclass(frozen=True)
class ReadCapability:
    """A connection that can issue eth_call and other read-only requests."""

    web3: Web3

    @property
    def can_write(self) -> bool:
        return False


@dataclass(frozen=True)
class WriteCapability(ReadCapability):
    """A connection plus a local signing account."""

    account: LocalAccount = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.account is None:
            raise CapabilityError("WriteCapability requires a signing account.")

    @property
    def can_write(self) -> bool:
        return True

    @property
    def address(self) -> str:
        return self.account.address


def require_write(capability: ReadCapability, component: str) -> WriteCapability:
    if not isinstance(capability, WriteCapability):
        raise CapabilityError(f"{component} was created with a read-only capability; write operations not allowed.")
    return capability


def account_from_key(private_key: str) -> LocalAccount:
    if not private_key.startswith("0x"):
        private_key = "0x" + private_key
    return Account.from_key(private_key)


def create_provider_manager(settings: HyperlendSettings) -> ProviderManager:
    return ProviderManager(
        rpc_urls=settings.all_rpc_urls(),
        chain_id=settings.chain_id,
        timeout=settings.rpc_timeout,
    )


def create_read_capability(
    settings: HyperlendSettings, provider_manager: Optional[ProviderManager] = None
) -> ReadCapability:
    manager = provider_manager or create_provider_manager(settings)
    return ReadCapability(web3=manager.get_web3())


def create_write_capability(
    settings: HyperlendSettings,
    private_key: Optional[str] = None,
    provider_manager: Optional[ProviderManager] = None,
) -> WriteCapability:
    key = private_key or settings.private_key
    if not key:
        raise ConfigurationError("A private key is required for a write capability (HYPERLEND_PRIVATE_KEY).")
    manager = provider_manager or create_provider_manager(settings)
    return WriteCapability(web3=manager.get_web3(), account=account_from_key(key))
