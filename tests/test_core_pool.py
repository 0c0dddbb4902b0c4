from decimal import Decimal

import pytest

from fakes import ASSET, COLLATERAL, E18, USER, read_capability
from hyperlend.config import HyperlendSettings
from hyperlend.core_pool import CorePoolReader, create_core_pool_reader
from hyperlend.errors import ConfigurationError, InvalidInputError, RemoteReadError
from hyperlend.models import NO_DEBT_HEALTH_FACTOR

POOL = "0x" + "8" * 40
DATA_PROVIDER = "0x" + "9" * 40
UI_DATA_PROVIDER = "0x" + "12" * 20
ADDRESSES_PROVIDER = "0x" + "34" * 20
H_TOKEN = "0x" + "56" * 20
STABLE_DEBT = "0x" + "78" * 20
VARIABLE_DEBT = "0x" + "90" * 20

RAY = 10**27


@pytest.fixture
def core(chain):
    chain.set_view(DATA_PROVIDER, "getAllReservesTokens", [("USDXL", ASSET), ("WHYPE", COLLATERAL)])
    chain.set_view(DATA_PROVIDER, "getAllATokens", [("hUSDXL", H_TOKEN)])
    chain.set_view(POOL, "getReservesList", [ASSET, COLLATERAL])
    return CorePoolReader(
        read_capability(chain),
        pool_address=POOL,
        data_provider_address=DATA_PROVIDER,
        ui_data_provider_address=UI_DATA_PROVIDER,
        addresses_provider_address=ADDRESSES_PROVIDER,
    )


def _set_reserve(chain, asset=ASSET):
    chain.set_view(
        DATA_PROVIDER,
        "getReserveData",
        [0, 0, 1_000 * E18, 0, 600 * E18, RAY // 20, RAY // 10, 0, 0, RAY, RAY + RAY // 100, 1_700_000_000],
    )
    chain.set_view(
        DATA_PROVIDER,
        "getReserveConfigurationData",
        [18, 7_500, 8_000, 10_500, 1_000, True, True, False, True, False],
    )
    chain.set_view(DATA_PROVIDER, "getReserveTokensAddresses", [H_TOKEN, STABLE_DEBT, VARIABLE_DEBT])


def test_reserve_listings(core):
    assert [t.symbol for t in core.get_all_reserves_tokens()] == ["USDXL", "WHYPE"]
    assert core.get_all_reserves_tokens()[1].token_address == COLLATERAL
    assert [(t.symbol, t.token_address) for t in core.get_all_h_tokens()] == [("hUSDXL", H_TOKEN)]
    assert core.get_reserves_list() == [ASSET, COLLATERAL]


def test_reserve_data(chain, core):
    _set_reserve(chain)

    reserve = core.get_reserve_data(ASSET)

    assert reserve.symbol == "USDXL"
    assert reserve.h_token_address == H_TOKEN
    assert reserve.variable_debt_token_address == VARIABLE_DEBT
    assert (reserve.decimals, reserve.ltv, reserve.liquidation_threshold) == (18, 7_500, 8_000)
    assert reserve.borrowing_enabled and reserve.is_active and not reserve.is_frozen
    assert reserve.total_variable_debt == 600 * E18
    assert reserve.available_liquidity == 400 * E18
    assert reserve.variable_borrow_rate == RAY // 10
    assert reserve.last_update_timestamp == 1_700_000_000


def test_unlisted_reserve_symbol_is_unknown(chain, core):
    _set_reserve(chain)
    chain.set_view(DATA_PROVIDER, "getAllReservesTokens", [])

    assert core.get_reserve_data(ASSET).symbol == "Unknown"


def test_user_account_data(chain, core):
    chain.set_view(POOL, "getUserAccountData", [2_000 * 10**8, 1_000 * 10**8, 500 * 10**8, 8_000, 7_500, 3 * E18 // 2])

    data = core.get_user_account_data(USER)

    assert data.total_collateral_base == 2_000 * 10**8
    assert data.available_borrows_base == 500 * 10**8
    assert data.ltv == 7_500
    assert data.health_factor_ratio == Decimal("1.5")


def test_user_without_debt_has_no_health_ratio(chain, core):
    chain.set_view(POOL, "getUserAccountData", [2_000 * 10**8, 0, 1_500 * 10**8, 8_000, 7_500, NO_DEBT_HEALTH_FACTOR])

    data = core.get_user_account_data(USER)

    assert not data.has_debt
    assert data.health_factor_ratio is None


def test_user_reserves_skip_empty_rows(chain, core):
    rows = [
        (ASSET, 10 * E18, False, 0, 0, 0, 0),
        (COLLATERAL, 0, True, 0, 0, 0, 0),
    ]
    chain.set_view(
        UI_DATA_PROVIDER,
        "getUserReservesData",
        lambda provider, user: (rows, 1) if (provider, user) == (ADDRESSES_PROVIDER, USER) else ([], 0),
    )

    data = core.get_user_reserves_data(USER)

    assert data.emode_category_id == 1
    assert [r.underlying_asset for r in data.reserves] == [ASSET]
    assert data.reserves[0].scaled_h_token_balance == 10 * E18
    assert len(core.get_user_reserves_data(USER, include_empty=True).reserves) == 2


def test_user_reserves_need_ui_provider(chain):
    core = CorePoolReader(read_capability(chain), pool_address=POOL, data_provider_address=DATA_PROVIDER)

    with pytest.raises(InvalidInputError):
        core.get_user_reserves_data(USER)


def test_failed_read_raises_remote_read_error(chain, core):
    chain.set_view(POOL, "getUserAccountData", TimeoutError("read timed out"))

    with pytest.raises(RemoteReadError) as exc_info:
        core.get_user_account_data(USER)

    assert exc_info.value.contract == "Pool"
    assert exc_info.value.function == "getUserAccountData"


def test_create_from_settings(chain):
    with pytest.raises(ConfigurationError):
        create_core_pool_reader(HyperlendSettings(_env_file=None, core_pool_address=POOL), read_capability(chain))

    settings = HyperlendSettings(
        _env_file=None,
        core_pool_address=POOL,
        core_data_provider_address=DATA_PROVIDER,
    )
    core = create_core_pool_reader(settings, read_capability(chain))
    assert core.pool_address == POOL
    assert core.ui_data_provider_address is None
