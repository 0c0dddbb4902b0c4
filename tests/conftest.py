import pytest

from fakes import ASSET, COLLATERAL, E18, USER, FakeChain


@pytest.fixture
def chain():
    """A pair lending USDXL against WHYPE at 1 WHYPE = 100 USDXL, 80% max LTV."""
    c = FakeChain()
    c.asset_allowances = c.add_token(ASSET, "USDXL", balances={USER: 100 * E18})
    c.collateral_allowances = c.add_token(COLLATERAL, "WHYPE", balances={USER: 10 * E18})
    c.positions = c.add_pair()
    c.add_oracle()
    return c
