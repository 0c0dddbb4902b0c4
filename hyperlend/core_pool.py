"""
CorePoolReader: read-only access to the Hyperlend core (pooled) market.

The core market is an Aave-style pool: a Pool contract with account-level
summaries, a protocol data provider with per-reserve configuration and state,
and an optional UI data provider for per-user reserve balances. Like the
isolated-pair reader, every failed call raises RemoteReadError.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from web3 import Web3

from .abi import CORE_DATA_PROVIDER_ABI, CORE_POOL_ABI, CORE_UI_DATA_PROVIDER_ABI
from .capabilities import ReadCapability
from .config import HyperlendSettings
from .errors import ConfigurationError, InvalidInputError
from .models import CoreAccountData, CoreReserveData, CoreUserReserve, CoreUserReserves, ReserveToken
from .reader import checksum, read_remote

logger = logging.getLogger(__name__)


class CorePoolReader:
    """Typed projections of core pool state."""

    def __init__(
        self,
        capability: ReadCapability,
        pool_address: str,
        data_provider_address: str,
        ui_data_provider_address: Optional[str] = None,
        addresses_provider_address: Optional[str] = None,
    ) -> None:
        self.capability = capability
        self.web3 = capability.web3
        self.pool_address = checksum(pool_address, "pool address")
        self.data_provider_address = checksum(data_provider_address, "data provider address")
        self.ui_data_provider_address = (
            checksum(ui_data_provider_address, "UI data provider address") if ui_data_provider_address else None
        )
        self.addresses_provider_address = (
            checksum(addresses_provider_address, "addresses provider address") if addresses_provider_address else None
        )

    def pool_contract(self):
        return self.web3.eth.contract(address=self.pool_address, abi=CORE_POOL_ABI)

    def data_provider_contract(self):
        return self.web3.eth.contract(address=self.data_provider_address, abi=CORE_DATA_PROVIDER_ABI)

    def ui_data_provider_contract(self):
        if not self.ui_data_provider_address or not self.addresses_provider_address:
            raise InvalidInputError(
                "CorePoolReader needs a UI data provider and an addresses provider for per-user reserve data."
            )
        return self.web3.eth.contract(address=self.ui_data_provider_address, abi=CORE_UI_DATA_PROVIDER_ABI)

    _read = staticmethod(read_remote)

    # --- Reserves -----------------------------------------------------------------

    def get_all_reserves_tokens(self) -> List[ReserveToken]:
        provider = self.data_provider_contract()
        tokens = self._read(
            "DataProvider", "getAllReservesTokens", provider.address, lambda: provider.functions.getAllReservesTokens().call()
        )
        return [ReserveToken(symbol=str(symbol), token_address=Web3.to_checksum_address(address)) for symbol, address in tokens]

    def get_all_h_tokens(self) -> List[ReserveToken]:
        """Interest-bearing receipt tokens (hTokens), one per reserve."""
        provider = self.data_provider_contract()
        tokens = self._read("DataProvider", "getAllATokens", provider.address, lambda: provider.functions.getAllATokens().call())
        return [ReserveToken(symbol=str(symbol), token_address=Web3.to_checksum_address(address)) for symbol, address in tokens]

    def get_reserves_list(self) -> List[str]:
        pool = self.pool_contract()
        reserves = self._read("Pool", "getReservesList", pool.address, lambda: pool.functions.getReservesList().call())
        return [Web3.to_checksum_address(r) for r in reserves]

    def get_reserve_data(self, asset: str) -> CoreReserveData:
        """
        Configuration, token addresses and market state of one reserve.

        The symbol comes from getAllReservesTokens(); an asset that is not
        listed there is reported as "Unknown".
        """
        asset = checksum(asset, "asset address")
        provider = self.data_provider_contract()
        fn = provider.functions

        state = self._read("DataProvider", "getReserveData", provider.address, lambda: fn.getReserveData(asset).call())
        config = self._read(
            "DataProvider", "getReserveConfigurationData", provider.address, lambda: fn.getReserveConfigurationData(asset).call()
        )
        h_token, stable_debt_token, variable_debt_token = self._read(
            "DataProvider", "getReserveTokensAddresses", provider.address, lambda: fn.getReserveTokensAddresses(asset).call()
        )

        symbol = "Unknown"
        for token in self.get_all_reserves_tokens():
            if token.token_address == asset:
                symbol = token.symbol
                break
        else:
            logger.warning(f"Reserve {asset} is not listed by getAllReservesTokens()")

        return CoreReserveData(
            symbol=symbol,
            token_address=asset,
            h_token_address=Web3.to_checksum_address(h_token),
            stable_debt_token_address=Web3.to_checksum_address(stable_debt_token),
            variable_debt_token_address=Web3.to_checksum_address(variable_debt_token),
            decimals=int(config[0]),
            ltv=int(config[1]),
            liquidation_threshold=int(config[2]),
            liquidation_bonus=int(config[3]),
            reserve_factor=int(config[4]),
            usage_as_collateral_enabled=bool(config[5]),
            borrowing_enabled=bool(config[6]),
            stable_borrow_rate_enabled=bool(config[7]),
            is_active=bool(config[8]),
            is_frozen=bool(config[9]),
            unbacked=int(state[0]),
            total_h_token=int(state[2]),
            total_stable_debt=int(state[3]),
            total_variable_debt=int(state[4]),
            liquidity_rate=int(state[5]),
            variable_borrow_rate=int(state[6]),
            stable_borrow_rate=int(state[7]),
            average_stable_borrow_rate=int(state[8]),
            liquidity_index=int(state[9]),
            variable_borrow_index=int(state[10]),
            last_update_timestamp=int(state[11]),
        )

    # --- Users --------------------------------------------------------------------

    def get_user_account_data(self, user: str) -> CoreAccountData:
        pool = self.pool_contract()
        user = checksum(user, "user address")
        data = self._read("Pool", "getUserAccountData", pool.address, lambda: pool.functions.getUserAccountData(user).call())
        return CoreAccountData(
            total_collateral_base=int(data[0]),
            total_debt_base=int(data[1]),
            available_borrows_base=int(data[2]),
            current_liquidation_threshold=int(data[3]),
            ltv=int(data[4]),
            health_factor=int(data[5]),
        )

    def get_user_reserves_data(self, user: str, include_empty: bool = False) -> CoreUserReserves:
        """Per-reserve scaled balances of user, plus their e-mode category."""
        ui = self.ui_data_provider_contract()
        user = checksum(user, "user address")
        rows, emode = self._read(
            "UiPoolDataProvider",
            "getUserReservesData",
            ui.address,
            lambda: ui.functions.getUserReservesData(self.addresses_provider_address, user).call(),
        )
        reserves = [
            CoreUserReserve(
                underlying_asset=Web3.to_checksum_address(row[0]),
                scaled_h_token_balance=int(row[1]),
                usage_as_collateral_enabled=bool(row[2]),
                stable_borrow_rate=int(row[3]),
                scaled_variable_debt=int(row[4]),
                principal_stable_debt=int(row[5]),
                stable_borrow_last_update_timestamp=int(row[6]),
            )
            for row in rows
        ]
        if not include_empty:
            reserves = [r for r in reserves if not r.is_empty]
        return CoreUserReserves(reserves=reserves, emode_category_id=int(emode))


def create_core_pool_reader(settings: HyperlendSettings, capability: ReadCapability) -> CorePoolReader:
    if not settings.core_pool_address or not settings.core_data_provider_address:
        raise ConfigurationError(
            "HYPERLEND_CORE_POOL_ADDRESS and HYPERLEND_CORE_DATA_PROVIDER_ADDRESS are required for the core pool reader"
        )
    return CorePoolReader(
        capability,
        pool_address=settings.core_pool_address,
        data_provider_address=settings.core_data_provider_address,
        ui_data_provider_address=settings.core_ui_data_provider_address,
        addresses_provider_address=settings.core_addresses_provider_address,
    )
