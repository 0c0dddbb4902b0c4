"""
Build, sign, send and confirm a single contract transaction.

The sender owns the submission half of every state machine in the package:

    estimate (GasPolicy) -> submit -> confirm -> receipt | classified error

Gas under-estimation is handled as an explicit second attempt with the
policy's fallback ceiling. A provider rejection that mentions gas, or a mined
receipt that consumed its whole gas limit, qualifies; a logical revert never
does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from .capabilities import ReadCapability, require_write
from .errors import ConfirmationTimeout, TransactionRejected, TransactionReverted
from .gas import GasBudget, GasPolicy, GasStrategy

logger = logging.getLogger(__name__)

# Provider error fragments that mean "the gas limit was too low", as opposed to
# nonce, funding or logic failures
GAS_SHORTFALL_MARKERS = (
    "intrinsic gas too low",
    "gas too low",
    "out of gas",
    "gas required exceeds allowance",
    "gas limit reached",
)

# Revert reasons that point at another actor consuming the allowance or moving
# the balance between our read and our transaction
RACE_REVERT_MARKERS = (
    "allowance",
    "exceeds balance",
    "insufficient balance",
    "transfer_from_failed",
)


def is_gas_shortfall(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in GAS_SHORTFALL_MARKERS)


def is_possible_race(reason: Optional[str]) -> bool:
    if not reason:
        return False
    lowered = reason.lower()
    return any(marker in lowered for marker in RACE_REVERT_MARKERS)


@dataclass(frozen=True)
class SentTransaction:
    """A confirmed, successful transaction."""

    transaction_hash: str
    block_number: int
    gas_used: int
    gas_limit: int
    attempts: int


class _GasShortfall(Exception):
    """Internal signal: the attempt failed for lack of gas and may be retried."""

    def __init__(self, cause: Any):
        super().__init__(str(cause))
        self.cause = cause


class TransactionSender:
    """
    Signs with the capability's local account and submits through its web3.

    One sender is shared by the authorizer, the oracle guard, the registry
    admin and the orchestrator so they agree on nonce and fee handling.
    """

    def __init__(
        self,
        capability: ReadCapability,
        gas_strategy: Optional[GasStrategy] = None,
        confirmation_timeout_seconds: float = 120,
        poll_latency: float = 0.5,
    ) -> None:
        self.capability = require_write(capability, "TransactionSender")
        self.web3 = self.capability.web3
        self.gas_strategy = gas_strategy or GasStrategy(self.web3)
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self.poll_latency = poll_latency

    @property
    def address(self) -> str:
        return self.capability.address

    # --- Estimation ------------------------------------------------------------

    def budget(self, func, policy: GasPolicy) -> GasBudget:
        return policy.budget(lambda: func.estimate_gas({"from": self.address}))

    # --- Submission -------------------------------------------------------------

    def _build(self, func, gas_limit: int) -> dict:
        tx_params = {
            "from": self.address,
            "nonce": self.web3.eth.get_transaction_count(self.address, "pending"),
            "chainId": self.web3.eth.chain_id,
            "gas": gas_limit,
        }
        tx_params.update(self.gas_strategy.fee_params().as_tx_fields())
        return func.build_transaction(tx_params)

    def _submit(self, func, label: str, gas_limit: int) -> str:
        tx = self._build(func, gas_limit)
        signed = self.capability.account.sign_transaction(tx)
        raw_tx = signed.raw_transaction
        try:
            tx_hash = self.web3.eth.send_raw_transaction(raw_tx)
        except Exception as e:
            if is_gas_shortfall(e):
                raise _GasShortfall(e) from e
            raise TransactionRejected(label, e, gas_limit) from e
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Submitted {label}: tx_hash={tx_hash_hex} gas_limit={gas_limit}")
        return tx_hash_hex

    def _confirm(self, label: str, tx_hash: str):
        try:
            return self.web3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.confirmation_timeout_seconds,
                poll_latency=self.poll_latency,
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(label, tx_hash, self.confirmation_timeout_seconds) from e

    def decode_revert_reason(self, func, block_number: int) -> Optional[str]:
        """Replay the call at the receipt's block to recover the revert reason."""
        try:
            func.call({"from": self.address}, block_identifier=block_number)
        except ContractLogicError as e:
            return getattr(e, "message", None) or str(e)
        except Exception as e:
            logger.debug(f"Could not decode revert reason: {e}")
        return None

    def _attempt(self, func, label: str, gas_limit: int, on_submitted: Optional[Callable[[str], None]] = None) -> SentTransaction:
        tx_hash = self._submit(func, label, gas_limit)
        if on_submitted is not None:
            on_submitted(tx_hash)
        receipt = self._confirm(label, tx_hash)
        block_number = int(receipt.blockNumber)
        gas_used = int(receipt.gasUsed)

        if receipt.status == 1:
            logger.info(f"Confirmed {label}: tx_hash={tx_hash} block={block_number} gas_used={gas_used}")
            return SentTransaction(tx_hash, block_number, gas_used, gas_limit, attempts=1)

        if gas_used >= gas_limit:
            logger.warning(f"{label} ran out of gas (used {gas_used} of {gas_limit}); tx_hash={tx_hash}")
            raise _GasShortfall(TransactionReverted(label, tx_hash, block_number, "out of gas"))

        reason = self.decode_revert_reason(func, block_number)
        raise TransactionReverted(label, tx_hash, block_number, reason, possible_race=is_possible_race(reason))

    @staticmethod
    def _final_error(label: str, shortfall: _GasShortfall, gas_limit: int) -> Exception:
        if isinstance(shortfall.cause, TransactionReverted):
            return shortfall.cause
        return TransactionRejected(label, shortfall.cause, gas_limit)

    def send(
        self,
        func,
        label: str,
        budget: GasBudget,
        on_submitted: Optional[Callable[[str], None]] = None,
        before_retry: Optional[Callable[[], None]] = None,
    ) -> SentTransaction:
        """
        Submit and confirm, retrying once with the fallback ceiling when the
        first attempt failed for lack of gas.

        on_submitted is called with the hash of each accepted submission,
        before waiting for its receipt.
        before_retry runs ahead of the second submission; an exception it
        raises abandons the retry.

        Raises:
            TransactionRejected: provider refused the transaction
            TransactionReverted: contract rejected it (never retried)
            ConfirmationTimeout: outcome unknown
        """
        try:
            return self._attempt(func, label, budget.gas_limit, on_submitted)
        except _GasShortfall as shortfall:
            retry_limit = budget.retry_limit
            if retry_limit is None:
                raise self._final_error(label, shortfall, budget.gas_limit) from None
            logger.warning(
                f"{label} failed for lack of gas at limit {budget.gas_limit}; retrying once with {retry_limit}"
            )

        if before_retry is not None:
            before_retry()

        try:
            sent = self._attempt(func, label, retry_limit, on_submitted)
        except _GasShortfall as shortfall:
            raise self._final_error(label, shortfall, retry_limit) from None
        return replace(sent, attempts=2)
