"""
RemoteStateReader: read-only access to pair, registry, oracle and token contracts.

All reads are idempotent eth_calls. Any failure other than token metadata
(decimals / symbol) raises RemoteReadError: balances, rates and prices are
never silently defaulted.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

from web3 import Web3

from .abi import ERC20_ABI, ORACLE_ABI, PAIR_ABI, REGISTRY_ABI
from .capabilities import ReadCapability
from .config import TokenDirectory
from .errors import InvalidInputError, RemoteReadError
from .models import (
    ApprovalState,
    BorrowTotals,
    ExchangeRateInfo,
    OracleSnapshot,
    PairConfig,
    PairState,
    RateInfo,
    TokenInfo,
    UserPosition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TOKEN_INFO = TokenInfo(decimals=18, symbol="Unknown")


def checksum(address: str, name: str = "address") -> str:
    """Validate and checksum an address, raising InvalidInputError if malformed."""
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidInputError(f"Invalid {name}: {address!r}")
    return Web3.to_checksum_address(address)


def read_remote(contract_name: str, function: str, address: str, call: Callable[[], T]) -> T:
    """Run one eth_call, wrapping any failure in RemoteReadError."""
    try:
        return call()
    except Exception as e:
        raise RemoteReadError(contract_name, function, address, e) from e


class RemoteStateReader:
    """Typed projections of remote contract state."""

    def __init__(
        self,
        capability: ReadCapability,
        registry_address: Optional[str] = None,
        token_directory: Optional[TokenDirectory] = None,
    ) -> None:
        self.capability = capability
        self.web3 = capability.web3
        self.registry_address = checksum(registry_address, "registry address") if registry_address else None
        self.token_directory = token_directory or TokenDirectory()

    # --- Internal helpers --------------------------------------------------------

    def pair_contract(self, pair_address: str):
        return self.web3.eth.contract(address=checksum(pair_address, "pair address"), abi=PAIR_ABI)

    def token_contract(self, token_address: str):
        return self.web3.eth.contract(address=checksum(token_address, "token address"), abi=ERC20_ABI)

    def oracle_contract(self, oracle_address: str):
        return self.web3.eth.contract(address=checksum(oracle_address, "oracle address"), abi=ORACLE_ABI)

    def registry_contract(self):
        if not self.registry_address:
            raise InvalidInputError("RemoteStateReader was created without a registry address.")
        return self.web3.eth.contract(address=self.registry_address, abi=REGISTRY_ABI)

    _read = staticmethod(read_remote)

    # --- Tokens -----------------------------------------------------------------

    def get_token_info(self, token_address: str) -> TokenInfo:
        """Decimals and symbol; {18, "Unknown"} if either lookup fails."""
        try:
            token = self.token_contract(token_address)
            decimals = int(token.functions.decimals().call())
            symbol = str(token.functions.symbol().call())
        except Exception as e:
            logger.warning(f"Could not read token metadata for {token_address}, using defaults: {e}")
            return DEFAULT_TOKEN_INFO
        return TokenInfo(decimals=decimals, symbol=symbol)

    def get_token_balance(self, token_address: str, owner: str) -> int:
        token = self.token_contract(token_address)
        owner = checksum(owner, "owner address")
        return int(self._read("ERC20", "balanceOf", token.address, lambda: token.functions.balanceOf(owner).call()))

    def get_allowance(self, token_address: str, owner: str, spender: str) -> ApprovalState:
        token = self.token_contract(token_address)
        owner = checksum(owner, "owner address")
        spender = checksum(spender, "spender address")
        allowance = self._read(
            "ERC20", "allowance", token.address, lambda: token.functions.allowance(owner, spender).call()
        )
        return ApprovalState(owner=owner, spender=spender, token_address=token.address, current_allowance=int(allowance))

    def resolve_token(self, symbol_or_address: str) -> str:
        """Return a checksummed token address for a known symbol or a raw address."""
        if Web3.is_address(symbol_or_address):
            return Web3.to_checksum_address(symbol_or_address)
        address = self.token_directory.get(symbol_or_address)
        if address is None:
            raise InvalidInputError(
                f"Unknown token {symbol_or_address!r}; known symbols: {self.token_directory.symbols()}"
            )
        return address

    # --- Pair ---------------------------------------------------------------------

    def get_pair_config(self, pair_address: str) -> PairConfig:
        pair = self.pair_contract(pair_address)
        fn = pair.functions

        def read(name: str):
            return self._read("Pair", name, pair.address, lambda: getattr(fn, name)().call())

        return PairConfig(
            pair_address=pair.address,
            asset=Web3.to_checksum_address(read("asset")),
            collateral=Web3.to_checksum_address(read("collateralContract")),
            max_ltv=int(read("maxLTV")),
            clean_liquidation_fee=int(read("cleanLiquidationFee")),
            dirty_liquidation_fee=int(read("dirtyLiquidationFee")),
            protocol_liquidation_fee=int(read("protocolLiquidationFee")),
        )

    def get_borrow_totals(self, pair_address: str) -> BorrowTotals:
        pair = self.pair_contract(pair_address)
        amount, shares = self._read("Pair", "totalBorrow", pair.address, lambda: pair.functions.totalBorrow().call())
        return BorrowTotals(amount=int(amount), shares=int(shares))

    def get_pair_state(self, pair_address: str) -> PairState:
        pair = self.pair_contract(pair_address)
        fn = pair.functions
        total_assets = self._read("Pair", "totalAssets", pair.address, lambda: fn.totalAssets().call())
        total_collateral = self._read("Pair", "totalCollateral", pair.address, lambda: fn.totalCollateral().call())
        rate = self._read("Pair", "currentRateInfo", pair.address, lambda: fn.currentRateInfo().call())
        return PairState(
            total_assets=int(total_assets),
            total_borrow=self.get_borrow_totals(pair_address),
            total_collateral=int(total_collateral),
            rate_info=RateInfo(
                last_block=int(rate[0]),
                fee_to_protocol_rate=int(rate[1]),
                last_timestamp=int(rate[2]),
                rate_per_sec=int(rate[3]),
                full_utilization_rate=int(rate[4]),
            ),
        )

    def get_exchange_rate_info(self, pair_address: str) -> ExchangeRateInfo:
        pair = self.pair_contract(pair_address)
        info = self._read("Pair", "exchangeRateInfo", pair.address, lambda: pair.functions.exchangeRateInfo().call())
        return ExchangeRateInfo(
            oracle=Web3.to_checksum_address(info[0]),
            max_oracle_deviation=int(info[1]),
            last_timestamp=int(info[2]),
            low_exchange_rate=int(info[3]),
            high_exchange_rate=int(info[4]),
        )

    def get_user_position(self, pair_address: str, user: str) -> UserPosition:
        pair = self.pair_contract(pair_address)
        user = checksum(user, "user address")
        collateral = self._read(
            "Pair", "userCollateralBalance", pair.address, lambda: pair.functions.userCollateralBalance(user).call()
        )
        shares = self._read(
            "Pair", "userBorrowShares", pair.address, lambda: pair.functions.userBorrowShares(user).call()
        )
        return UserPosition(collateral_balance=int(collateral), borrow_shares=int(shares))

    def get_supply_shares(self, pair_address: str, owner: str) -> int:
        """Lender shares (the pair's own ERC-20 balance) held by owner."""
        pair = self.pair_contract(pair_address)
        owner = checksum(owner, "owner address")
        return int(self._read("Pair", "balanceOf", pair.address, lambda: pair.functions.balanceOf(owner).call()))

    # --- Oracle -------------------------------------------------------------------

    def get_oracle_last_update(self, oracle_address: str) -> int:
        oracle = self.oracle_contract(oracle_address)
        return int(self._read("Oracle", "lastUpdateTime", oracle.address, lambda: oracle.functions.lastUpdateTime().call()))

    def get_oracle_max_delay(self, oracle_address: str) -> int:
        oracle = self.oracle_contract(oracle_address)
        return int(self._read("Oracle", "maxOracleDelay", oracle.address, lambda: oracle.functions.maxOracleDelay().call()))

    def get_oracle_snapshot(self, oracle_address: str) -> OracleSnapshot:
        oracle = self.oracle_contract(oracle_address)
        is_bad_data, price_low, price_high = self._read(
            "Oracle", "getPrices", oracle.address, lambda: oracle.functions.getPrices().call()
        )
        return OracleSnapshot(
            is_bad_data=bool(is_bad_data),
            price_low=int(price_low),
            price_high=int(price_high),
            last_update_time=self.get_oracle_last_update(oracle_address),
        )

    # --- Registry -----------------------------------------------------------------

    def get_deployed_pairs_length(self) -> int:
        registry = self.registry_contract()
        return int(
            self._read("Registry", "deployedPairsLength", registry.address, lambda: registry.functions.deployedPairsLength().call())
        )

    def get_all_pair_addresses(self) -> List[str]:
        registry = self.registry_contract()
        pairs = self._read(
            "Registry", "getAllPairAddresses", registry.address, lambda: registry.functions.getAllPairAddresses().call()
        )
        return [Web3.to_checksum_address(p) for p in pairs]

    def is_deployer(self, deployer: str) -> bool:
        registry = self.registry_contract()
        deployer = checksum(deployer, "deployer address")
        return bool(self._read("Registry", "deployers", registry.address, lambda: registry.functions.deployers(deployer).call()))

    def get_pair_address_by_name(self, name: str) -> str:
        if not name:
            raise InvalidInputError("Name must be provided.")
        registry = self.registry_contract()
        address = self._read(
            "Registry", "deployedPairsByName", registry.address, lambda: registry.functions.deployedPairsByName(name).call()
        )
        return Web3.to_checksum_address(address)

    def get_registry_owner(self) -> str:
        registry = self.registry_contract()
        return Web3.to_checksum_address(self._read("Registry", "owner", registry.address, lambda: registry.functions.owner().call()))

    def get_registry_pending_owner(self) -> str:
        registry = self.registry_contract()
        return Web3.to_checksum_address(
            self._read("Registry", "pendingOwner", registry.address, lambda: registry.functions.pendingOwner().call())
        )
