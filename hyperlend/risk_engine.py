"""
Risk & health arithmetic for Hyperlend positions.

This module provides:
- Share <-> amount conversion for the pair's debt pool
- Borrow capacity, required collateral, liquidation price, utilization
- A solvency check that mirrors the pair contract's own order of operations
- Pre-flight checks that apply a hypothetical borrow or collateral removal
  before deciding
- RiskEngine: assembles PositionMetrics from on-chain reads

Price convention. Oracle quotes and the pair's exchange rates are collateral
units owed per asset unit at EXCHANGE_PRECISION. The "collateral price" (asset
units per collateral unit) is the inverse, so the low collateral price comes
from the high exchange rate. Both directions therefore use the conservative
quote: the high rate when sizing collateral, the low price when sizing a
borrow.

Everything here is advisory. The contract's own check is authoritative.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from .errors import ExceedsBorrowLimitError, InsufficientCollateralError
from .models import BorrowTotals
from .reader import RemoteStateReader

logger = logging.getLogger(__name__)

# --- Constants -----------------------------------------------------------------

EXCHANGE_PRECISION = 10**18
LTV_PRECISION = 100_000

# Health factor (max_ltv / ltv) thresholds
HF_WARNING_THRESHOLD = Decimal("1.2")
HF_CRITICAL_THRESHOLD = Decimal("1.1")
HF_LIQUIDATION_THRESHOLD = Decimal("1.0")


# --- Pure functions ------------------------------------------------------------


def to_borrow_amount(shares: int, totals: BorrowTotals, round_up: bool = False) -> int:
    """
    Convert debt shares to an asset amount at the pool's current rate.

    Truncates unless round_up is set. A pool with no shares has no debt.
    """
    if totals.shares == 0:
        return 0
    amount = shares * totals.amount // totals.shares
    if round_up and amount * totals.shares < shares * totals.amount:
        amount += 1
    return amount


def to_borrow_shares(amount: int, totals: BorrowTotals, round_up: bool = False) -> int:
    """Inverse of to_borrow_amount. An empty pool issues shares 1:1."""
    if totals.amount == 0:
        return amount
    shares = amount * totals.shares // totals.amount
    if round_up and shares * totals.amount < amount * totals.shares:
        shares += 1
    return shares


def collateral_price(exchange_rate: int) -> int:
    """Asset units per collateral unit for an exchange rate (collateral per asset)."""
    if exchange_rate == 0:
        return 0
    return EXCHANGE_PRECISION * EXCHANGE_PRECISION // exchange_rate


def borrow_capacity(collateral_amount: int, price_low: int, max_ltv: int) -> int:
    """Asset amount borrowable against collateral, valued at the low collateral price."""
    return collateral_amount * price_low * max_ltv // EXCHANGE_PRECISION // LTV_PRECISION


def required_collateral(borrow_amount: int, price_high: int, max_ltv: int) -> int:
    """Collateral needed to cover borrow_amount at the high exchange rate."""
    if max_ltv == 0:
        return 0
    return borrow_amount * price_high * LTV_PRECISION // max_ltv // EXCHANGE_PRECISION


def liquidation_price(borrow_shares: int, low_exchange_rate: int, collateral_amount: int) -> int:
    """Zero for a position without debt or without collateral."""
    if borrow_shares == 0 or collateral_amount == 0:
        return 0
    return borrow_shares * low_exchange_rate // collateral_amount


def utilization_ratio(debt_value: int, collateral_value: int) -> Optional[int]:
    """Debt as a whole-number percentage of collateral; None when there is no collateral."""
    if collateral_value == 0:
        return None
    return debt_value * 100 // collateral_value


def is_solvent(debt_value: int, collateral_value: int, max_ltv: int) -> bool:
    """debt_value <= collateral_value * max_ltv, both values in the same unit."""
    return debt_value * LTV_PRECISION <= collateral_value * max_ltv


def debt_value(debt_amount: int, exchange_rate: int) -> int:
    """Debt expressed in collateral units."""
    return debt_amount * exchange_rate // EXCHANGE_PRECISION


def position_ltv(debt_amount: int, collateral_amount: int, exchange_rate: int) -> Optional[int]:
    """LTV in parts per LTV_PRECISION, computed like the pair contract does. None if debt has no collateral."""
    if debt_amount == 0:
        return 0
    if collateral_amount == 0:
        return None
    return debt_value(debt_amount, exchange_rate) * LTV_PRECISION // collateral_amount


def is_position_solvent(debt_amount: int, collateral_amount: int, exchange_rate: int, max_ltv: int) -> bool:
    """Mirror of the pair's solvency check; max_ltv == 0 disables it on-chain."""
    if max_ltv == 0:
        return True
    ltv = position_ltv(debt_amount, collateral_amount, exchange_rate)
    return ltv is not None and ltv <= max_ltv


def check_borrow(
    collateral_amount: int,
    debt_amount: int,
    borrow_amount: int,
    exchange_rate_high: int,
    max_ltv: int,
    added_collateral: int = 0,
    symbol: str = "",
) -> None:
    """
    Raise ExceedsBorrowLimitError unless the position stays solvent after
    adding `added_collateral` and borrowing `borrow_amount` more.
    """
    new_collateral = collateral_amount + added_collateral
    new_debt = debt_amount + borrow_amount
    if is_position_solvent(new_debt, new_collateral, exchange_rate_high, max_ltv):
        return

    capacity = borrow_capacity(new_collateral, collateral_price(exchange_rate_high), max_ltv)
    raise ExceedsBorrowLimitError(
        requested=borrow_amount,
        capacity=max(capacity - debt_amount, 0),
        symbol=symbol,
        collateral=new_collateral,
        required=required_collateral(new_debt, exchange_rate_high, max_ltv),
    )


def check_collateral_removal(
    collateral_amount: int,
    debt_amount: int,
    remove_amount: int,
    exchange_rate_high: int,
    max_ltv: int,
    symbol: str = "",
) -> None:
    """Raise InsufficientCollateralError if removing remove_amount leaves the position insolvent."""
    if remove_amount > collateral_amount:
        raise InsufficientCollateralError(
            f"Cannot remove {remove_amount} {symbol}; position only holds {collateral_amount}",
            collateral=collateral_amount,
            required=remove_amount,
            symbol=symbol,
        )
    if debt_amount == 0:
        return

    remaining = collateral_amount - remove_amount
    if not is_position_solvent(debt_amount, remaining, exchange_rate_high, max_ltv):
        needed = required_collateral(debt_amount, exchange_rate_high, max_ltv)
        raise InsufficientCollateralError(
            f"Removing {remove_amount} {symbol} would leave {remaining} against debt {debt_amount}; "
            f"at least {needed} must remain",
            collateral=remaining,
            required=needed,
            symbol=symbol,
        )


# --- Enums & data classes ------------------------------------------------------


class RiskStatus(Enum):
    """Health status of a position."""

    HEALTHY = "healthy"  # HF >= 1.2 or no debt
    WARNING = "warning"  # 1.1 <= HF < 1.2
    CRITICAL = "critical"  # 1.0 <= HF < 1.1
    LIQUIDATABLE = "liquidatable"  # HF < 1.0


def classify_health(health_factor: Optional[Decimal]) -> RiskStatus:
    if health_factor is None:
        return RiskStatus.HEALTHY
    if health_factor < HF_LIQUIDATION_THRESHOLD:
        return RiskStatus.LIQUIDATABLE
    if health_factor < HF_CRITICAL_THRESHOLD:
        return RiskStatus.CRITICAL
    if health_factor < HF_WARNING_THRESHOLD:
        return RiskStatus.WARNING
    return RiskStatus.HEALTHY


@dataclass(frozen=True)
class PositionMetrics:
    """Derived risk metrics of one (pair, user) position."""

    collateral_amount: int
    borrow_shares: int
    debt_amount: int
    debt_value: int  # in collateral units, at the high exchange rate
    borrow_capacity: int  # asset units, at the low collateral price
    available_to_borrow: int
    liquidation_price: int
    utilization: Optional[int]  # percent; None means "no active position"
    ltv: Optional[int]  # parts per LTV_PRECISION
    max_ltv: int
    health_factor: Optional[Decimal]  # None when there is no debt
    is_solvent: bool
    status: RiskStatus


def compute_position_metrics(
    collateral_amount: int,
    borrow_shares: int,
    totals: BorrowTotals,
    low_exchange_rate: int,
    high_exchange_rate: int,
    max_ltv: int,
) -> PositionMetrics:
    debt_amount = to_borrow_amount(borrow_shares, totals)
    value = debt_value(debt_amount, high_exchange_rate)
    capacity = borrow_capacity(collateral_amount, collateral_price(high_exchange_rate), max_ltv)
    ltv = position_ltv(debt_amount, collateral_amount, high_exchange_rate)

    if debt_amount == 0 or ltv == 0:
        health_factor = None
    elif ltv is None:
        health_factor = Decimal(0)
    else:
        health_factor = Decimal(max_ltv) / Decimal(ltv)

    return PositionMetrics(
        collateral_amount=collateral_amount,
        borrow_shares=borrow_shares,
        debt_amount=debt_amount,
        debt_value=value,
        borrow_capacity=capacity,
        available_to_borrow=max(capacity - debt_amount, 0),
        liquidation_price=liquidation_price(borrow_shares, low_exchange_rate, collateral_amount),
        utilization=utilization_ratio(value, collateral_amount),
        ltv=ltv,
        max_ltv=max_ltv,
        health_factor=health_factor,
        is_solvent=is_position_solvent(debt_amount, collateral_amount, high_exchange_rate, max_ltv),
        status=classify_health(health_factor),
    )


# --- Risk engine ---------------------------------------------------------------


class RiskEngine:
    """Reads a position and its pair, then derives PositionMetrics."""

    def __init__(self, reader: RemoteStateReader) -> None:
        self.reader = reader

    def get_position_metrics(self, pair_address: str, user: str) -> PositionMetrics:
        config = self.reader.get_pair_config(pair_address)
        totals = self.reader.get_borrow_totals(pair_address)
        position = self.reader.get_user_position(pair_address, user)
        rates = self.reader.get_exchange_rate_info(pair_address)

        metrics = compute_position_metrics(
            collateral_amount=position.collateral_balance,
            borrow_shares=position.borrow_shares,
            totals=totals,
            low_exchange_rate=rates.low_exchange_rate,
            high_exchange_rate=rates.high_exchange_rate,
            max_ltv=config.max_ltv,
        )
        logger.info(
            f"Position {user} on {config.pair_address}: status={metrics.status.value}, "
            f"collateral={metrics.collateral_amount}, debt={metrics.debt_amount}, ltv={metrics.ltv}/{config.max_ltv}"
        )
        if metrics.status == RiskStatus.CRITICAL:
            logger.warning(f"[CRITICAL] Position {user} HF={metrics.health_factor:.2f}; consider repaying or adding collateral.")
        elif metrics.status == RiskStatus.LIQUIDATABLE:
            logger.error(f"[LIQUIDATABLE] Position {user} is insolvent and can be liquidated.")
        return metrics

    def get_health_status(self, pair_address: str, user: str) -> RiskStatus:
        return self.get_position_metrics(pair_address, user).status
