"""
TokenAuthorizer: make sure a spender may pull `amount` of an owner's tokens.

The allowance is read immediately before use and never cached; another actor
can consume it between our read and the spender's transferFrom, which the
orchestrator reports as a possible race on revert.
"""

from __future__ import annotations

import logging
from typing import Optional

from .errors import CapabilityError, InsufficientAllowanceError, InvalidInputError
from .gas import GasPolicy
from .models import ApprovalResult
from .reader import RemoteStateReader, checksum
from .transactions import TransactionSender

logger = logging.getLogger(__name__)


class TokenAuthorizer:
    def __init__(self, reader: RemoteStateReader, sender: Optional[TransactionSender] = None) -> None:
        self.reader = reader
        self.sender = sender

    def ensure_allowance(
        self,
        token: str,
        owner: str,
        spender: str,
        amount: int,
        auto_approve: bool = True,
    ) -> ApprovalResult:
        """
        Ensure allowance(owner -> spender) is at least amount.

        For safety, we approve exactly amount (not infinite).

        Raises:
            InsufficientAllowanceError: allowance is short and auto_approve is False
            InvalidInputError: approving on behalf of someone other than the signer
            CapabilityError: approving without a transaction sender
        """
        if amount < 0:
            raise InvalidInputError(f"Allowance amount must not be negative, got {amount}")

        token_info = self.reader.get_token_info(token)
        state = self.reader.get_allowance(token, owner, spender)

        if state.current_allowance >= amount:
            logger.debug(
                f"{token_info.symbol} allowance {state.current_allowance} >= {amount} for {state.spender}; no approval needed"
            )
            return ApprovalResult(approved=False, amount=amount, symbol=token_info.symbol)

        if not auto_approve:
            raise InsufficientAllowanceError(
                token=state.token_address,
                symbol=token_info.symbol,
                owner=state.owner,
                spender=state.spender,
                allowance=state.current_allowance,
                required=amount,
            )

        if self.sender is None:
            raise CapabilityError("TokenAuthorizer has no transaction sender; cannot approve.")
        if checksum(owner) != self.sender.address:
            raise InvalidInputError(f"Cannot approve on behalf of {state.owner}; signer is {self.sender.address}")

        token_contract = self.reader.token_contract(token)
        func = token_contract.functions.approve(state.spender, amount)
        budget = self.sender.budget(func, GasPolicy.for_approve())

        logger.info(f"Approving {amount} {token_info.symbol} for {state.spender} (current allowance {state.current_allowance})")
        sent = self.sender.send(func, f"approve {token_info.symbol}", budget)
        return ApprovalResult(
            approved=True,
            amount=amount,
            symbol=token_info.symbol,
            transaction_hash=sent.transaction_hash,
        )
