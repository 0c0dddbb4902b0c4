import pytest

from fakes import ASSET, E18, OTHER, PAIR, USER, read_capability, write_capability
from hyperlend.allowance import TokenAuthorizer
from hyperlend.errors import CapabilityError, InsufficientAllowanceError, InvalidInputError
from hyperlend.reader import RemoteStateReader
from hyperlend.transactions import TransactionSender


@pytest.fixture
def authorizer(chain):
    capability = write_capability(chain)
    return TokenAuthorizer(RemoteStateReader(capability), TransactionSender(capability))


def test_sufficient_allowance_is_a_no_op(chain, authorizer):
    chain.asset_allowances[(USER, PAIR)] = 2 * E18

    result = authorizer.ensure_allowance(ASSET, USER, PAIR, E18)

    assert not result.approved
    assert result.transaction_hash is None
    assert result.symbol == "USDXL"
    assert chain.sent == []


def test_approves_exact_amount_once(chain, authorizer):
    first = authorizer.ensure_allowance(ASSET, USER, PAIR, 3 * E18)
    second = authorizer.ensure_allowance(ASSET, USER, PAIR, 3 * E18)

    assert first.approved
    assert first.transaction_hash.startswith("0x")
    assert first.amount == 3 * E18
    assert not second.approved
    assert chain.sent_names() == ["approve"]
    assert chain.asset_allowances[(USER, PAIR)] == 3 * E18


def test_short_allowance_without_auto_approve(chain, authorizer):
    chain.asset_allowances[(USER, PAIR)] = E18

    with pytest.raises(InsufficientAllowanceError) as exc_info:
        authorizer.ensure_allowance(ASSET, USER, PAIR, 4 * E18, auto_approve=False)

    error = exc_info.value
    assert error.allowance == E18
    assert error.required == 4 * E18
    assert error.shortfall == 3 * E18
    assert error.symbol == "USDXL"


def test_cannot_approve_for_another_owner(chain, authorizer):
    with pytest.raises(InvalidInputError):
        authorizer.ensure_allowance(ASSET, OTHER, PAIR, E18)
    assert chain.sent == []


def test_read_only_authorizer_cannot_approve(chain):
    authorizer = TokenAuthorizer(RemoteStateReader(read_capability(chain)))

    with pytest.raises(CapabilityError):
        authorizer.ensure_allowance(ASSET, USER, PAIR, E18)


def test_approve_estimation_failure_uses_fallback(chain, authorizer):
    chain.estimates["approve"] = ValueError("estimation failed")

    authorizer.ensure_allowance(ASSET, USER, PAIR, E18)

    assert chain.sent_calls("approve")[0]["gas"] == 100_000


def test_negative_amount_rejected(authorizer):
    with pytest.raises(InvalidInputError):
        authorizer.ensure_allowance(ASSET, USER, PAIR, -1)
