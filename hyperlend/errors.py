"""
Error taxonomy for the Hyperlend client.

Pre-flight errors (input, allowance, balance, oracle, collateral) are raised
before any transaction is submitted and are safe to retry after correcting the
input. Submission errors carry whatever partial state is known, the
transaction hash in particular, because the remote side effect may or may not
have happened.
"""

from __future__ import annotations

from typing import Optional


class HyperlendError(Exception):
    """Base exception for the Hyperlend integration."""


class ConfigurationError(HyperlendError):
    """Raised when settings are missing or malformed."""


class CapabilityError(HyperlendError):
    """Raised when a write is attempted through a read-only capability."""


class RPCProviderError(HyperlendError):
    """Raised when no healthy RPC endpoint is available."""


class RemoteReadError(HyperlendError):
    """A read-only contract call failed (transport, timeout or decode)."""

    def __init__(self, contract: str, function: str, address: str, cause: Optional[BaseException] = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to read {contract}.{function}() at {address}{detail}")
        self.contract = contract
        self.function = function
        self.address = address
        self.cause = cause


class ActionCancelled(HyperlendError):
    """The caller's cancellation signal was set before a step boundary."""

    def __init__(self, action: str, stage: str):
        super().__init__(f"{action} cancelled before {stage}")
        self.action = action
        self.stage = stage


# --- Pre-flight -------------------------------------------------------------------


class InvalidInputError(HyperlendError):
    """Non-positive amount, malformed address, over-repayment."""


class InsufficientAllowanceError(HyperlendError):
    def __init__(self, token: str, symbol: str, owner: str, spender: str, allowance: int, required: int):
        super().__init__(
            f"Insufficient {symbol} allowance for {spender}: have {allowance}, need {required} "
            f"(short {required - allowance}). Approve tokens manually or set auto_approve=True."
        )
        self.token = token
        self.symbol = symbol
        self.owner = owner
        self.spender = spender
        self.allowance = allowance
        self.required = required

    @property
    def shortfall(self) -> int:
        return self.required - self.allowance


class InsufficientBalanceError(HyperlendError):
    def __init__(self, symbol: str, holder: str, balance: int, required: int, what: str = "balance"):
        super().__init__(f"Insufficient {symbol} {what} for {holder}: have {balance}, need {required}")
        self.symbol = symbol
        self.holder = holder
        self.balance = balance
        self.required = required


class OracleDataInvalidError(HyperlendError):
    """Oracle flagged bad data, returned a zero price, or exceeded its deviation bound."""

    def __init__(self, oracle: str, reason: str, price_low: int = 0, price_high: int = 0):
        super().__init__(f"Oracle {oracle} data invalid: {reason} (low={price_low}, high={price_high})")
        self.oracle = oracle
        self.reason = reason
        self.price_low = price_low
        self.price_high = price_high


class OracleStaleError(HyperlendError):
    def __init__(self, oracle: str, age_seconds: int, threshold_seconds: int, refresh_attempted: bool):
        suffix = " after refresh" if refresh_attempted else ""
        super().__init__(
            f"Oracle {oracle} price is {age_seconds}s old{suffix}, threshold is {threshold_seconds}s"
        )
        self.oracle = oracle
        self.age_seconds = age_seconds
        self.threshold_seconds = threshold_seconds
        self.refresh_attempted = refresh_attempted


class InsufficientCollateralError(HyperlendError):
    """Local solvency pre-flight failed."""

    def __init__(self, message: str, collateral: int = 0, required: int = 0, symbol: str = ""):
        super().__init__(message)
        self.collateral = collateral
        self.required = required
        self.symbol = symbol


class ExceedsBorrowLimitError(InsufficientCollateralError):
    """Requested borrow is above what the collateral supports at the conservative price."""

    def __init__(self, requested: int, capacity: int, symbol: str = "", collateral: int = 0, required: int = 0):
        unit = f" {symbol}" if symbol else ""
        super().__init__(
            f"Borrow of {requested}{unit} exceeds borrow limit {capacity}{unit}",
            collateral=collateral,
            required=required,
            symbol=symbol,
        )
        self.requested = requested
        self.capacity = capacity


# --- Gas / submission -------------------------------------------------------------


class GasEstimationFailed(HyperlendError):
    """Gas estimation failed; recovered via the fallback ceiling and only logged."""

    def __init__(self, label: str, fallback_gas: int, cause: Optional[BaseException] = None):
        super().__init__(f"Gas estimation for {label} failed ({cause}); using fallback {fallback_gas}")
        self.label = label
        self.fallback_gas = fallback_gas
        self.cause = cause


class TransactionRejected(HyperlendError):
    """The provider refused the transaction before inclusion; nothing happened on chain."""

    def __init__(self, label: str, cause: Optional[BaseException] = None, gas_limit: Optional[int] = None):
        super().__init__(f"Transaction {label} rejected by provider: {cause}")
        self.label = label
        self.cause = cause
        self.gas_limit = gas_limit


class TransactionReverted(HyperlendError):
    """The contract rejected the transaction after it was mined."""

    def __init__(
        self,
        label: str,
        transaction_hash: str,
        block_number: Optional[int] = None,
        reason: Optional[str] = None,
        possible_race: bool = False,
    ):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Transaction {label} reverted; tx_hash={transaction_hash}{detail}")
        self.label = label
        self.transaction_hash = transaction_hash
        self.block_number = block_number
        self.reason = reason
        self.possible_race = possible_race


class ConfirmationTimeout(HyperlendError):
    """No receipt within the timeout. The transaction may still be confirmed later."""

    def __init__(self, label: str, transaction_hash: str, timeout_seconds: float):
        super().__init__(
            f"Transaction {label} not confirmed within {timeout_seconds}s; tx_hash={transaction_hash}. "
            f"Re-check position state before retrying."
        )
        self.label = label
        self.transaction_hash = transaction_hash
        self.timeout_seconds = timeout_seconds
