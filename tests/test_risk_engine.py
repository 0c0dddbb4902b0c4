from decimal import Decimal

import pytest

from fakes import E18, PAIR, USER, read_capability
from hyperlend.errors import ExceedsBorrowLimitError, InsufficientCollateralError
from hyperlend.models import BorrowTotals
from hyperlend.reader import RemoteStateReader
from hyperlend.risk_engine import (
    RiskEngine,
    RiskStatus,
    borrow_capacity,
    check_borrow,
    check_collateral_removal,
    collateral_price,
    compute_position_metrics,
    is_position_solvent,
    is_solvent,
    liquidation_price,
    position_ltv,
    required_collateral,
    to_borrow_amount,
    to_borrow_shares,
    utilization_ratio,
)

# 1 collateral = 100 asset
RATE = E18 // 100


def test_to_borrow_amount_truncates_unless_rounding_up():
    totals = BorrowTotals(amount=10, shares=3)
    assert to_borrow_amount(1, totals) == 3
    assert to_borrow_amount(1, totals, round_up=True) == 4
    assert to_borrow_amount(3, totals, round_up=True) == 10


@pytest.mark.parametrize("amount, shares", [(10, 3), (1_000_000_007 * E18, 999_999_937 * E18), (7, 7)])
def test_all_shares_convert_to_total_debt(amount, shares):
    totals = BorrowTotals(amount=amount, shares=shares)
    assert to_borrow_amount(shares, totals) == amount
    assert to_borrow_amount(shares, totals, round_up=True) == amount


def test_to_borrow_amount_with_no_shares_is_zero():
    assert to_borrow_amount(5, BorrowTotals(amount=0, shares=0)) == 0
    assert to_borrow_amount(5, BorrowTotals(amount=7, shares=0)) == 0


def test_to_borrow_shares():
    assert to_borrow_shares(5 * E18, BorrowTotals(amount=0, shares=0)) == 5 * E18
    totals = BorrowTotals(amount=10, shares=3)
    assert to_borrow_shares(5, totals) == 1
    assert to_borrow_shares(5, totals, round_up=True) == 2


def test_collateral_price_inverts_exchange_rate():
    assert collateral_price(RATE) == 100 * E18
    assert collateral_price(0) == 0


def test_borrow_capacity_at_80_percent_ltv():
    assert borrow_capacity(E18 // 10, 100 * E18, 80_000) == 8 * E18
    assert borrow_capacity(10 * E18, 100 * E18, 80_000) == 800 * E18


def test_required_collateral_uses_high_rate():
    assert required_collateral(8 * E18, RATE, 80_000) == E18 // 10
    assert required_collateral(8 * E18, 2 * RATE, 80_000) == E18 // 5
    assert required_collateral(8 * E18, RATE, 0) == 0


def test_liquidation_price_zero_without_collateral_or_debt():
    assert liquidation_price(8 * E18, RATE, 0) == 0
    assert liquidation_price(0, RATE, E18) == 0
    assert liquidation_price(8 * E18, RATE, E18 // 10) == 8 * 10**17


def test_utilization_undefined_without_collateral():
    assert utilization_ratio(100, 0) is None
    assert utilization_ratio(8 * 10**16, E18 // 10) == 80


def test_is_solvent():
    assert is_solvent(80, 100, 80_000)
    assert not is_solvent(81, 100, 80_000)


def test_position_ltv_matches_contract_arithmetic():
    assert position_ltv(8 * E18, E18 // 10, RATE) == 80_000
    assert position_ltv(0, 0, RATE) == 0
    assert position_ltv(1, 0, RATE) is None


def test_solvency_boundary():
    collateral = E18 // 10
    assert is_position_solvent(8 * E18, collateral, RATE, 80_000)
    assert not is_position_solvent(8_000_100_000_000_000_000, collateral, RATE, 80_000)


def test_solvency_edge_cases():
    assert is_position_solvent(0, 0, RATE, 80_000)
    assert not is_position_solvent(1, 0, RATE, 80_000)
    assert is_position_solvent(10**30, 1, RATE, 0)


def test_check_borrow_boundary():
    check_borrow(E18 // 10, 0, 8 * E18, RATE, 80_000)

    with pytest.raises(ExceedsBorrowLimitError) as exc_info:
        check_borrow(E18 // 10, 0, 8_000_100_000_000_000_000, RATE, 80_000, symbol="USDXL")

    error = exc_info.value
    assert isinstance(error, InsufficientCollateralError)
    assert error.capacity == 8 * E18
    assert error.requested == 8_000_100_000_000_000_000
    assert "USDXL" in str(error)


def test_check_borrow_counts_existing_debt_and_added_collateral():
    check_borrow(0, 0, 8 * E18, RATE, 80_000, added_collateral=E18 // 10)

    with pytest.raises(ExceedsBorrowLimitError) as exc_info:
        check_borrow(E18 // 10, 4 * E18, 4 * E18 + 10**14, RATE, 80_000)
    assert exc_info.value.capacity == 4 * E18


def test_check_collateral_removal():
    collateral = E18 // 10
    debt = 4 * E18

    check_collateral_removal(collateral, debt, 5 * 10**16, RATE, 80_000)

    with pytest.raises(InsufficientCollateralError) as exc_info:
        check_collateral_removal(collateral, debt, 6 * 10**16, RATE, 80_000, symbol="WHYPE")
    assert exc_info.value.required == 5 * 10**16
    assert exc_info.value.collateral == 4 * 10**16


def test_check_collateral_removal_more_than_held():
    with pytest.raises(InsufficientCollateralError):
        check_collateral_removal(E18, 0, E18 + 1, RATE, 80_000)


def test_check_collateral_removal_without_debt_allows_everything():
    check_collateral_removal(E18, 0, E18, 0, 80_000)


def _metrics(debt, collateral=E18 // 10):
    return compute_position_metrics(
        collateral_amount=collateral,
        borrow_shares=debt,
        totals=BorrowTotals(amount=max(debt, 1), shares=max(debt, 1)),
        low_exchange_rate=RATE,
        high_exchange_rate=RATE,
        max_ltv=80_000,
    )


def test_metrics_for_healthy_position():
    metrics = _metrics(4 * E18)
    assert metrics.debt_amount == 4 * E18
    assert metrics.debt_value == 4 * 10**16
    assert metrics.borrow_capacity == 8 * E18
    assert metrics.available_to_borrow == 4 * E18
    assert metrics.utilization == 40
    assert metrics.ltv == 40_000
    assert metrics.health_factor == Decimal(2)
    assert metrics.is_solvent
    assert metrics.status == RiskStatus.HEALTHY


@pytest.mark.parametrize(
    "debt, status",
    [
        (7 * E18, RiskStatus.WARNING),
        (7_500_000_000_000_000_000, RiskStatus.CRITICAL),
        (9 * E18, RiskStatus.LIQUIDATABLE),
    ],
)
def test_metrics_status_thresholds(debt, status):
    assert _metrics(debt).status == status


def test_metrics_without_debt_or_collateral():
    empty = _metrics(0)
    assert empty.health_factor is None
    assert empty.status == RiskStatus.HEALTHY

    uncollateralized = _metrics(E18, collateral=0)
    assert uncollateralized.ltv is None
    assert uncollateralized.utilization is None
    assert uncollateralized.liquidation_price == 0
    assert not uncollateralized.is_solvent
    assert uncollateralized.status == RiskStatus.LIQUIDATABLE


def test_risk_engine_reads_position(chain):
    chain.positions[USER] = (E18 // 10, 4 * E18)
    chain.set_view(PAIR, "totalBorrow", [4 * E18, 4 * E18])

    engine = RiskEngine(RemoteStateReader(read_capability(chain)))
    metrics = engine.get_position_metrics(PAIR, USER)

    assert metrics.debt_amount == 4 * E18
    assert metrics.max_ltv == 80_000
    assert engine.get_health_status(PAIR, USER) == RiskStatus.HEALTHY
