"""
Gas budgeting for Hyperlend transactions.

This module provides:
- GasPolicy: per-action gas-limit estimation with buffer multipliers, the
  documented fallback ceilings used when estimation fails, and the limit for
  the single under-estimation retry
- GasStrategy: EIP-1559 fee parameters (base fee * multiplier + priority fee)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Mapping, Optional

from web3 import Web3
from web3.types import Wei

from .errors import GasEstimationFailed
from .models import ActionKind

logger = logging.getLogger(__name__)

# Fallback gas limits used when estimation fails. Borrow and repay run the
# interest accrual and oracle paths on the pair, so they get the larger ceilings.
FALLBACK_GAS_LIMITS: Dict[ActionKind, int] = {
    ActionKind.SUPPLY: 300_000,
    ActionKind.WITHDRAW: 300_000,
    ActionKind.ADD_COLLATERAL: 300_000,
    ActionKind.REMOVE_COLLATERAL: 300_000,
    ActionKind.BORROW: 1_000_000,
    ActionKind.REPAY: 600_000,
}

# Multipliers applied on top of every estimate
GAS_BUFFERS: Dict[ActionKind, float] = {
    ActionKind.SUPPLY: 1.2,
    ActionKind.WITHDRAW: 1.2,
    ActionKind.ADD_COLLATERAL: 1.2,
    ActionKind.REMOVE_COLLATERAL: 1.2,
    ActionKind.BORROW: 1.5,
    ActionKind.REPAY: 1.5,
}

# ERC-20 approve and oracle update() are not pair actions
APPROVE_FALLBACK_GAS_LIMIT = 100_000
APPROVE_GAS_BUFFER = 1.2
ORACLE_UPDATE_FALLBACK_GAS_LIMIT = 500_000
ORACLE_UPDATE_GAS_BUFFER = 1.2
DEFAULT_FALLBACK_GAS_LIMIT = 300_000
DEFAULT_GAS_BUFFER = 1.2

# Fee defaults
BASE_FEE_MULTIPLIER = 2.0
DEFAULT_PRIORITY_FEE_GWEI = 0.1
MIN_PRIORITY_FEE_GWEI = 0.01
MAX_PRIORITY_FEE_GWEI = 10.0


@dataclass(frozen=True)
class GasBudget:
    """Gas limit chosen for one transaction and how it was obtained."""

    gas_limit: int
    fallback_limit: int
    estimated: Optional[int] = None

    @property
    def used_fallback(self) -> bool:
        return self.estimated is None

    @property
    def retry_limit(self) -> Optional[int]:
        """Limit for the one under-estimation retry, or None when a retry cannot help."""
        if self.fallback_limit > self.gas_limit:
            return self.fallback_limit
        return None


@dataclass(frozen=True)
class GasPolicy:
    """Buffer multiplier and fallback ceiling for one kind of transaction."""

    label: str
    buffer: float
    fallback_limit: int

    @classmethod
    def for_action(cls, action: ActionKind, buffer_overrides: Optional[Mapping[ActionKind, float]] = None) -> "GasPolicy":
        buffer = GAS_BUFFERS[action]
        if buffer_overrides and action in buffer_overrides:
            buffer = float(buffer_overrides[action])
        return cls(label=action.value, buffer=buffer, fallback_limit=FALLBACK_GAS_LIMITS[action])

    @classmethod
    def for_approve(cls) -> "GasPolicy":
        return cls(label="approve", buffer=APPROVE_GAS_BUFFER, fallback_limit=APPROVE_FALLBACK_GAS_LIMIT)

    @classmethod
    def for_oracle_update(cls) -> "GasPolicy":
        return cls(label="oracle.update", buffer=ORACLE_UPDATE_GAS_BUFFER, fallback_limit=ORACLE_UPDATE_FALLBACK_GAS_LIMIT)

    @classmethod
    def default(cls, label: str) -> "GasPolicy":
        return cls(label=label, buffer=DEFAULT_GAS_BUFFER, fallback_limit=DEFAULT_FALLBACK_GAS_LIMIT)

    def budget(self, estimate: Callable[[], int]) -> GasBudget:
        """
        Run the estimate and pad it with the buffer.

        An estimation failure never blocks the transaction: it is logged and
        the fallback ceiling is used unpadded.
        """
        try:
            estimated = int(estimate())
        except Exception as e:
            logger.warning(str(GasEstimationFailed(self.label, self.fallback_limit, e)))
            return GasBudget(gas_limit=self.fallback_limit, fallback_limit=self.fallback_limit)

        gas_limit = math.ceil(estimated * Decimal(str(self.buffer)))
        logger.debug(f"Gas for {self.label}: estimate={estimated}, buffer={self.buffer}, limit={gas_limit}")
        return GasBudget(gas_limit=gas_limit, fallback_limit=self.fallback_limit, estimated=estimated)


# --- Fees ------------------------------------------------------------------------


@dataclass(frozen=True)
class FeeParams:
    """EIP-1559 fee fields for a transaction."""

    max_fee_per_gas: Wei
    max_priority_fee_per_gas: Wei

    def as_tx_fields(self) -> dict:
        return {
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }


class GasStrategy:
    """
    EIP-1559 fee strategy.

    maxFeePerGas = baseFee * base_fee_multiplier + priorityFee, so a
    transaction stays valid across a few blocks of base fee increases.
    """

    def __init__(
        self,
        web3: Web3,
        base_fee_multiplier: float = BASE_FEE_MULTIPLIER,
        default_priority_fee_gwei: float = DEFAULT_PRIORITY_FEE_GWEI,
    ) -> None:
        self.web3 = web3
        self.base_fee_multiplier = base_fee_multiplier
        self.default_priority_fee_gwei = default_priority_fee_gwei

    def get_base_fee(self) -> Wei:
        """Base fee of the latest block, falling back to fee history, then gas_price / 2."""
        try:
            block = self.web3.eth.get_block("latest")
            base_fee = block.get("baseFeePerGas")
            if base_fee is not None:
                return Wei(int(base_fee))
        except Exception as e:
            logger.debug(f"Could not read latest block base fee: {e}")

        try:
            fee_history = self.web3.eth.fee_history(1, "latest")
            base_fees = fee_history.get("baseFeePerGas") if fee_history else None
            if base_fees:
                return Wei(int(base_fees[-1]))
        except Exception as e:
            logger.debug(f"Fee history API not available: {e}")

        estimated_base_fee = Wei(int(self.web3.eth.gas_price) // 2)
        logger.warning(f"Could not get base fee, estimating as {estimated_base_fee} wei from gas_price")
        return estimated_base_fee

    def _default_priority_fee(self) -> Wei:
        return Wei(Web3.to_wei(self.default_priority_fee_gwei, "gwei"))

    def get_priority_fee(self) -> Wei:
        """Network's suggested tip when within bounds, otherwise the default."""
        try:
            max_priority_fee = self.web3.eth.max_priority_fee
        except Exception as e:
            logger.debug(f"Could not get maxPriorityFeePerGas, using default: {e}")
            return self._default_priority_fee()

        if max_priority_fee:
            gwei = Web3.from_wei(max_priority_fee, "gwei")
            if MIN_PRIORITY_FEE_GWEI <= gwei <= MAX_PRIORITY_FEE_GWEI:
                return Wei(int(max_priority_fee))
        return self._default_priority_fee()

    def fee_params(self) -> FeeParams:
        base_fee = self.get_base_fee()
        priority_fee = self.get_priority_fee()
        max_fee = Wei(int(base_fee * self.base_fee_multiplier) + priority_fee)
        logger.debug(f"Fee params: baseFee={base_fee} wei, priorityFee={priority_fee} wei, maxFeePerGas={max_fee} wei")
        return FeeParams(max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority_fee)
