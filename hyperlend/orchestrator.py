"""
TransactionOrchestrator: sequences the pre-flight checks and the submission of
one pair action.

Every action runs the same state machine, skipping the steps it does not need:

    VALIDATING -> AUTHORIZING -> ORACLE_CHECKING -> ESTIMATING
               -> SUBMITTING -> CONFIRMING -> SUCCEEDED | FAILED

Authorization runs for actions that move the signer's tokens into the pair
(supply, repay, add collateral, borrow with collateral). The oracle check runs
for borrow, and for collateral removal while debt is outstanding; the local
solvency pre-flight uses the price it returns. A borrow with collateral also
runs that pre-flight against the current quotes before approving anything.
A gas retry goes back through SUBMITTING.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Protocol, Tuple

from .allowance import TokenAuthorizer
from .capabilities import ReadCapability, require_write
from .config import OrchestratorConfig
from .errors import ActionCancelled, InsufficientBalanceError, InvalidInputError
from .gas import GasPolicy
from .models import ActionKind, ActionResult, ExchangeRateInfo, OracleSnapshot, PairConfig
from .oracle_guard import OracleGuard
from .reader import RemoteStateReader, checksum
from .risk_engine import PositionMetrics, RiskEngine, check_borrow, check_collateral_removal, to_borrow_amount
from .transactions import SentTransaction, TransactionSender

logger = logging.getLogger(__name__)


class ActionState(str, Enum):
    VALIDATING = "validating"
    AUTHORIZING = "authorizing"
    ORACLE_CHECKING = "oracle_checking"
    ESTIMATING = "estimating"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CancelSignal(Protocol):
    """Anything with is_set(), e.g. threading.Event."""

    def is_set(self) -> bool: ...


TransitionCallback = Callable[[ActionKind, ActionState], None]


class _ActionRun:
    """Transition bookkeeping and cancellation checks for one action invocation."""

    def __init__(self, action: ActionKind, cancel: Optional[CancelSignal], on_transition: Optional[TransitionCallback]):
        self.action = action
        self.cancel = cancel
        self.on_transition = on_transition
        self.state: Optional[ActionState] = None

    def enter(self, state: ActionState) -> None:
        logger.debug(f"{self.action.value}: {self.state.value if self.state else 'start'} -> {state.value}")
        self.state = state
        if self.on_transition is not None:
            self.on_transition(self.action, state)

    def checkpoint(self, stage: str) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise ActionCancelled(self.action.value, stage)


def _require_positive(value: int, name: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise InvalidInputError(f"{name} must be a positive integer, got {value!r}")


class TransactionOrchestrator:
    """
    Runs supply, borrow, repay, withdraw, add_collateral and remove_collateral
    against the pair named in the config, signing with the capability's account.

    Amounts and shares are raw integer token units.
    """

    def __init__(
        self,
        capability: ReadCapability,
        config: OrchestratorConfig,
        reader: Optional[RemoteStateReader] = None,
        sender: Optional[TransactionSender] = None,
        authorizer: Optional[TokenAuthorizer] = None,
        oracle_guard: Optional[OracleGuard] = None,
        on_transition: Optional[TransitionCallback] = None,
    ) -> None:
        self.capability = require_write(capability, "TransactionOrchestrator")
        self.config = config
        self.pair_address = checksum(config.pair_address, "pair address")
        self.reader = reader or RemoteStateReader(self.capability)
        self.sender = sender or TransactionSender(
            self.capability, confirmation_timeout_seconds=config.confirmation_timeout_seconds
        )
        self.authorizer = authorizer or TokenAuthorizer(self.reader, self.sender)
        self.oracle_guard = oracle_guard or OracleGuard(self.reader, self.sender)
        self.on_transition = on_transition

    @property
    def address(self) -> str:
        return self.sender.address

    # --- Shared steps ------------------------------------------------------------

    def _run(self, action: ActionKind, cancel: Optional[CancelSignal], steps: Callable[[_ActionRun], ActionResult]) -> ActionResult:
        run = _ActionRun(action, cancel, self.on_transition)
        run.enter(ActionState.VALIDATING)
        try:
            result = steps(run)
        except Exception as e:
            logger.warning(f"{action.value} failed during {run.state.value if run.state else 'start'}: {e}")
            run.enter(ActionState.FAILED)
            raise
        run.enter(ActionState.SUCCEEDED)
        return result

    def _authorize(self, run: _ActionRun, token: str, amount: int, auto_approve: bool) -> None:
        run.checkpoint("authorization")
        run.enter(ActionState.AUTHORIZING)
        self.authorizer.ensure_allowance(token, self.address, self.pair_address, amount, auto_approve=auto_approve)

    def _oracle_params(self, rates: ExchangeRateInfo) -> Tuple[str, Optional[int]]:
        return self.config.oracle_address or rates.oracle, rates.max_oracle_deviation or None

    def _check_oracle(self, run: _ActionRun, rates: ExchangeRateInfo) -> OracleSnapshot:
        run.enter(ActionState.ORACLE_CHECKING)
        oracle, max_deviation = self._oracle_params(rates)
        return self.oracle_guard.ensure_fresh_price(oracle, self.config.stale_threshold_seconds, max_deviation)

    def _execute(self, run: _ActionRun, func, label: str) -> SentTransaction:
        run.checkpoint("estimation")
        run.enter(ActionState.ESTIMATING)
        budget = self.sender.budget(func, GasPolicy.for_action(run.action, self.config.gas_buffer_by_action))

        def submitting() -> None:
            run.checkpoint("submission")
            run.enter(ActionState.SUBMITTING)

        submitting()
        return self.sender.send(
            func,
            label,
            budget,
            on_submitted=lambda _tx_hash: run.enter(ActionState.CONFIRMING),
            before_retry=submitting,
        )

    def _require_balance(self, token: str, symbol: str, amount: int) -> None:
        balance = self.reader.get_token_balance(token, self.address)
        if balance < amount:
            raise InsufficientBalanceError(symbol, self.address, balance, amount)

    def _pair_config(self) -> PairConfig:
        return self.reader.get_pair_config(self.pair_address)

    def _pair(self):
        return self.reader.pair_contract(self.pair_address)

    @staticmethod
    def _result(action: ActionKind, sent: SentTransaction, amount: int, symbol: str, **extra) -> ActionResult:
        return ActionResult(
            success=True,
            transaction_hash=sent.transaction_hash,
            block_number=sent.block_number,
            amount=amount,
            symbol=symbol,
            action=action,
            gas_used=sent.gas_used,
            **extra,
        )

    # --- Actions -------------------------------------------------------------------

    def supply(
        self,
        amount: int,
        on_behalf: Optional[str] = None,
        auto_approve: bool = True,
        cancel: Optional[CancelSignal] = None,
    ) -> ActionResult:
        """Deposit `amount` of the pair's asset; lender shares go to on_behalf (default: signer)."""

        def steps(run: _ActionRun) -> ActionResult:
            _require_positive(amount, "amount")
            receiver = checksum(on_behalf, "receiver address") if on_behalf else self.address
            config = self._pair_config()
            asset = self.reader.get_token_info(config.asset)
            self._require_balance(config.asset, asset.symbol, amount)

            self._authorize(run, config.asset, amount, auto_approve)

            logger.info(f"Supplying {amount} {asset.symbol} to {self.pair_address} for {receiver}")
            sent = self._execute(run, self._pair().functions.deposit(amount, receiver), f"supply {asset.symbol}")
            return self._result(ActionKind.SUPPLY, sent, amount, asset.symbol)

        return self._run(ActionKind.SUPPLY, cancel, steps)

    def borrow(
        self,
        amount: int,
        collateral_amount: int = 0,
        on_behalf: Optional[str] = None,
        auto_approve: bool = True,
        cancel: Optional[CancelSignal] = None,
    ) -> ActionResult:
        """
        Borrow `amount` of the asset against the signer's position, optionally
        adding `collateral_amount` in the same transaction. Borrowed assets go
        to on_behalf (default: signer).

        Raises ExceedsBorrowLimitError when the position would be insolvent at
        the oracle's high exchange rate.
        """

        def steps(run: _ActionRun) -> ActionResult:
            _require_positive(amount, "amount")
            if not isinstance(collateral_amount, int) or isinstance(collateral_amount, bool) or collateral_amount < 0:
                raise InvalidInputError(f"collateral_amount must be a non-negative integer, got {collateral_amount!r}")
            receiver = checksum(on_behalf, "receiver address") if on_behalf else self.address

            config = self._pair_config()
            state = self.reader.get_pair_state(self.pair_address)
            position = self.reader.get_user_position(self.pair_address, self.address)
            rates = self.reader.get_exchange_rate_info(self.pair_address)
            asset = self.reader.get_token_info(config.asset)
            collateral = self.reader.get_token_info(config.collateral)

            if state.available_liquidity < amount:
                raise InsufficientBalanceError(
                    asset.symbol, self.pair_address, state.available_liquidity, amount, what="liquidity"
                )
            current_debt = to_borrow_amount(position.borrow_shares, state.total_borrow, round_up=True)

            def preflight(exchange_rate_high: int) -> None:
                check_borrow(
                    collateral_amount=position.collateral_balance,
                    debt_amount=current_debt,
                    borrow_amount=amount,
                    exchange_rate_high=exchange_rate_high,
                    max_ltv=config.max_ltv,
                    added_collateral=collateral_amount,
                    symbol=asset.symbol,
                )

            if collateral_amount > 0:
                self._require_balance(config.collateral, collateral.symbol, collateral_amount)
                preflight(self.oracle_guard.check_price(*self._oracle_params(rates)).price_high)
                self._authorize(run, config.collateral, collateral_amount, auto_approve)

            preflight(self._check_oracle(run, rates).price_high)

            logger.info(
                f"Borrowing {amount} {asset.symbol} with {collateral_amount} {collateral.symbol} "
                f"added collateral from {self.pair_address}"
            )
            func = self._pair().functions.borrowAsset(amount, collateral_amount, receiver)
            sent = self._execute(run, func, f"borrow {asset.symbol}")
            return self._result(
                ActionKind.BORROW,
                sent,
                amount,
                asset.symbol,
                collateral=collateral_amount,
                collateral_symbol=collateral.symbol,
            )

        return self._run(ActionKind.BORROW, cancel, steps)

    def repay(
        self,
        shares: int,
        on_behalf: Optional[str] = None,
        auto_approve: bool = True,
        cancel: Optional[CancelSignal] = None,
    ) -> ActionResult:
        """
        Repay `shares` debt shares of on_behalf (default: signer) with the
        signer's asset. The result's amount is in shares.
        """

        def steps(run: _ActionRun) -> ActionResult:
            _require_positive(shares, "shares")
            borrower = checksum(on_behalf, "borrower address") if on_behalf else self.address

            config = self._pair_config()
            position = self.reader.get_user_position(self.pair_address, borrower)
            if not position.has_debt:
                raise InvalidInputError(f"No debt to repay for {borrower}")
            if shares > position.borrow_shares:
                raise InvalidInputError(
                    f"Cannot repay more than the borrower's debt: {shares} shares requested, "
                    f"{position.borrow_shares} outstanding"
                )

            totals = self.reader.get_borrow_totals(self.pair_address)
            repay_amount = to_borrow_amount(shares, totals, round_up=True)
            asset = self.reader.get_token_info(config.asset)
            self._require_balance(config.asset, asset.symbol, repay_amount)

            self._authorize(run, config.asset, repay_amount, auto_approve)

            logger.info(f"Repaying {shares} shares (~{repay_amount} {asset.symbol}) for {borrower}")
            sent = self._execute(run, self._pair().functions.repayAsset(shares, borrower), f"repay {asset.symbol}")
            return self._result(ActionKind.REPAY, sent, shares, asset.symbol)

        return self._run(ActionKind.REPAY, cancel, steps)

    def withdraw(
        self,
        shares: int,
        receiver: Optional[str] = None,
        owner: Optional[str] = None,
        cancel: Optional[CancelSignal] = None,
    ) -> ActionResult:
        """Redeem `shares` lender shares of owner (default: signer) for the asset."""

        def steps(run: _ActionRun) -> ActionResult:
            _require_positive(shares, "shares")
            to = checksum(receiver, "receiver address") if receiver else self.address
            holder = checksum(owner, "owner address") if owner else self.address

            config = self._pair_config()
            asset = self.reader.get_token_info(config.asset)
            held = self.reader.get_supply_shares(self.pair_address, holder)
            if held < shares:
                raise InsufficientBalanceError(asset.symbol, holder, held, shares, what="supply shares")

            logger.info(f"Withdrawing {shares} shares of {asset.symbol} from {self.pair_address} to {to}")
            sent = self._execute(run, self._pair().functions.withdraw(shares, to, holder), f"withdraw {asset.symbol}")
            return self._result(ActionKind.WITHDRAW, sent, shares, asset.symbol)

        return self._run(ActionKind.WITHDRAW, cancel, steps)

    def add_collateral(
        self,
        amount: int,
        on_behalf: Optional[str] = None,
        auto_approve: bool = True,
        cancel: Optional[CancelSignal] = None,
    ) -> ActionResult:
        def steps(run: _ActionRun) -> ActionResult:
            _require_positive(amount, "amount")
            borrower = checksum(on_behalf, "borrower address") if on_behalf else self.address

            config = self._pair_config()
            collateral = self.reader.get_token_info(config.collateral)
            self._require_balance(config.collateral, collateral.symbol, amount)

            self._authorize(run, config.collateral, amount, auto_approve)

            logger.info(f"Adding {amount} {collateral.symbol} collateral for {borrower}")
            func = self._pair().functions.addCollateral(amount, borrower)
            sent = self._execute(run, func, f"add collateral {collateral.symbol}")
            return self._result(ActionKind.ADD_COLLATERAL, sent, amount, collateral.symbol)

        return self._run(ActionKind.ADD_COLLATERAL, cancel, steps)

    def remove_collateral(
        self,
        amount: int,
        recipient: Optional[str] = None,
        cancel: Optional[CancelSignal] = None,
    ) -> ActionResult:
        """
        Remove `amount` of the signer's collateral, sending it to recipient.

        While debt is outstanding the oracle is checked and the remaining
        position must stay solvent; otherwise InsufficientCollateralError is
        raised and nothing is submitted.
        """

        def steps(run: _ActionRun) -> ActionResult:
            _require_positive(amount, "amount")
            to = checksum(recipient, "recipient address") if recipient else self.address

            config = self._pair_config()
            position = self.reader.get_user_position(self.pair_address, self.address)
            collateral = self.reader.get_token_info(config.collateral)

            debt = 0
            exchange_rate_high = 0
            if position.has_debt:
                totals = self.reader.get_borrow_totals(self.pair_address)
                debt = to_borrow_amount(position.borrow_shares, totals, round_up=True)
            if debt > 0 and amount <= position.collateral_balance:
                rates = self.reader.get_exchange_rate_info(self.pair_address)
                exchange_rate_high = self._check_oracle(run, rates).price_high

            check_collateral_removal(
                collateral_amount=position.collateral_balance,
                debt_amount=debt,
                remove_amount=amount,
                exchange_rate_high=exchange_rate_high,
                max_ltv=config.max_ltv,
                symbol=collateral.symbol,
            )

            logger.info(f"Removing {amount} {collateral.symbol} collateral to {to}")
            func = self._pair().functions.removeCollateral(amount, to)
            sent = self._execute(run, func, f"remove collateral {collateral.symbol}")
            return self._result(ActionKind.REMOVE_COLLATERAL, sent, amount, collateral.symbol)

        return self._run(ActionKind.REMOVE_COLLATERAL, cancel, steps)

    # --- Reads -----------------------------------------------------------------------

    def position_metrics(self, user: Optional[str] = None) -> PositionMetrics:
        """Risk metrics of user's position (default: signer) on this pair."""
        return RiskEngine(self.reader).get_position_metrics(self.pair_address, user or self.address)
