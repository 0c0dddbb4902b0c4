"""
Data model for Hyperlend pairs and positions.

Everything here is a read projection of remote contract state (or the result of
a mutating call) and is immutable once constructed. Amounts are raw integer
token units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class ActionKind(str, Enum):
    """Mutating actions the orchestrator knows how to sequence."""

    SUPPLY = "supply"
    BORROW = "borrow"
    REPAY = "repay"
    WITHDRAW = "withdraw"
    ADD_COLLATERAL = "add_collateral"
    REMOVE_COLLATERAL = "remove_collateral"


@dataclass(frozen=True)
class TokenInfo:
    decimals: int = 18
    symbol: str = "Unknown"


@dataclass(frozen=True)
class PairConfig:
    """Static parameters of a deployed pair (max_ltv and fees in parts per 100000)."""

    pair_address: str
    asset: str
    collateral: str
    max_ltv: int
    clean_liquidation_fee: int
    dirty_liquidation_fee: int
    protocol_liquidation_fee: int


@dataclass(frozen=True)
class BorrowTotals:
    amount: int
    shares: int


@dataclass(frozen=True)
class RateInfo:
    last_block: int
    fee_to_protocol_rate: int
    last_timestamp: int
    rate_per_sec: int
    full_utilization_rate: int


@dataclass(frozen=True)
class PairState:
    total_assets: int
    total_borrow: BorrowTotals
    total_collateral: int
    rate_info: RateInfo

    @property
    def available_liquidity(self) -> int:
        """Asset amount that can still be borrowed from the pair."""
        return max(self.total_assets - self.total_borrow.amount, 0)


@dataclass(frozen=True)
class ExchangeRateInfo:
    """Pair's cached exchange rates: collateral units per asset unit, 1e18 scale."""

    oracle: str
    max_oracle_deviation: int
    last_timestamp: int
    low_exchange_rate: int
    high_exchange_rate: int


@dataclass(frozen=True)
class UserPosition:
    collateral_balance: int  # collateral amount, not shares
    borrow_shares: int  # debt shares, not amount

    @property
    def has_debt(self) -> bool:
        return self.borrow_shares > 0


@dataclass(frozen=True)
class OracleSnapshot:
    is_bad_data: bool
    price_low: int
    price_high: int
    last_update_time: int


@dataclass(frozen=True)
class ApprovalState:
    """Allowance as read right before use. Never cache this."""

    owner: str
    spender: str
    token_address: str
    current_allowance: int


@dataclass(frozen=True)
class ApprovalResult:
    approved: bool
    amount: int
    symbol: str
    transaction_hash: Optional[str] = None


@dataclass(frozen=True)
class ActionResult:
    success: bool
    transaction_hash: str
    block_number: int
    amount: int
    symbol: str
    collateral: Optional[int] = None
    collateral_symbol: Optional[str] = None
    action: Optional[ActionKind] = None
    gas_used: Optional[int] = None


# --- Core pool ---------------------------------------------------------------------

# Core pool health factors are 1e18-scaled; uint256 max means no debt.
WAD = 10**18
NO_DEBT_HEALTH_FACTOR = 2**256 - 1


@dataclass(frozen=True)
class ReserveToken:
    symbol: str
    token_address: str


@dataclass(frozen=True)
class CoreAccountData:
    """
    Pool-wide account summary. Base amounts are in the pool's base currency
    (8 decimals on Aave-style oracles); ltv and liquidation threshold are in
    basis points.
    """

    total_collateral_base: int
    total_debt_base: int
    available_borrows_base: int
    current_liquidation_threshold: int
    ltv: int
    health_factor: int

    @property
    def has_debt(self) -> bool:
        return self.total_debt_base > 0

    @property
    def health_factor_ratio(self) -> Optional[Decimal]:
        """Health factor as a plain ratio; None when there is no debt."""
        if not self.has_debt or self.health_factor == NO_DEBT_HEALTH_FACTOR:
            return None
        return Decimal(self.health_factor) / Decimal(WAD)


@dataclass(frozen=True)
class CoreReserveData:
    """Configuration and market state of one core-pool reserve. Rates and indexes are 1e27-scaled."""

    symbol: str
    token_address: str
    h_token_address: str
    stable_debt_token_address: str
    variable_debt_token_address: str
    decimals: int
    ltv: int
    liquidation_threshold: int
    liquidation_bonus: int
    reserve_factor: int
    usage_as_collateral_enabled: bool
    borrowing_enabled: bool
    stable_borrow_rate_enabled: bool
    is_active: bool
    is_frozen: bool
    unbacked: int
    total_h_token: int
    total_stable_debt: int
    total_variable_debt: int
    liquidity_rate: int
    variable_borrow_rate: int
    stable_borrow_rate: int
    average_stable_borrow_rate: int
    liquidity_index: int
    variable_borrow_index: int
    last_update_timestamp: int

    @property
    def available_liquidity(self) -> int:
        return max(self.total_h_token - self.total_stable_debt - self.total_variable_debt, 0)


@dataclass(frozen=True)
class CoreUserReserve:
    underlying_asset: str
    scaled_h_token_balance: int
    usage_as_collateral_enabled: bool
    stable_borrow_rate: int
    scaled_variable_debt: int
    principal_stable_debt: int
    stable_borrow_last_update_timestamp: int

    @property
    def is_empty(self) -> bool:
        return self.scaled_h_token_balance == 0 and self.scaled_variable_debt == 0 and self.principal_stable_debt == 0


@dataclass(frozen=True)
class CoreUserReserves:
    reserves: List[CoreUserReserve] = field(default_factory=list)
    emode_category_id: int = 0
