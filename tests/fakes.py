"""
Minimal in-memory stand-ins for the parts of web3 the client touches.

FakeChain holds view values, gas estimates, scripted failures and the list of
submitted writes. Contracts are looked up by address; every function call is a
FakeFunctionCall that reads from or writes to the chain.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from web3 import Web3
from web3.datastructures import AttributeDict
from web3.exceptions import ContractLogicError, TimeExhausted

from hyperlend.capabilities import ReadCapability, WriteCapability
from hyperlend.config import OrchestratorConfig
from hyperlend.oracle_guard import OracleGuard
from hyperlend.orchestrator import TransactionOrchestrator
from hyperlend.reader import RemoteStateReader
from hyperlend.transactions import TransactionSender

PAIR = "0x" + "1" * 40
ASSET = "0x" + "2" * 40
COLLATERAL = "0x" + "3" * 40
ORACLE = "0x" + "4" * 40
USER = "0x" + "5" * 40
OTHER = "0x" + "6" * 40
REGISTRY = "0x" + "7" * 40

E18 = 10**18
NOW = 1_700_000_000


class FakeFunctionCall:
    def __init__(self, chain: "FakeChain", address: str, name: str, args: Tuple[Any, ...]):
        self.chain = chain
        self.address = address
        self.name = name
        self.args = args

    def call(self, tx=None, block_identifier=None):
        if self.name in self.chain.revert_reasons:
            raise ContractLogicError(self.chain.revert_reasons[self.name])
        key = (self.address, self.name)
        if key not in self.chain.views:
            raise ValueError(f"no view {self.name} at {self.address}")
        value = self.chain.views[key]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(*self.args)
        return value

    def estimate_gas(self, tx=None):
        self.chain.estimate_calls.append(self.name)
        value = self.chain.estimates.get(self.name, 100_000)
        if isinstance(value, Exception):
            raise value
        return value

    def build_transaction(self, params):
        tx = dict(params)
        tx["to"] = self.address
        tx["_call"] = self
        return tx


class _Functions:
    def __init__(self, chain: "FakeChain", address: str):
        self._chain = chain
        self._address = address

    def __getattr__(self, name):
        return lambda *args: FakeFunctionCall(self._chain, self._address, name, args)


class FakeContract:
    def __init__(self, chain: "FakeChain", address: str):
        self.address = address
        self.functions = _Functions(chain, address)


class FakeSigned:
    def __init__(self, tx):
        self.raw_transaction = tx


class FakeAccount:
    def __init__(self, address: str = USER):
        self.address = address

    def sign_transaction(self, tx):
        return FakeSigned(tx)


class FakeEth:
    def __init__(self, chain: "FakeChain"):
        self._chain = chain
        self.chain_id = 999
        self.gas_price = 2_000_000_000
        self.max_priority_fee = 100_000_000

    def contract(self, address=None, abi=None):
        return FakeContract(self._chain, address)

    def get_block(self, block_identifier):
        return AttributeDict({"number": self._chain.block_number, "baseFeePerGas": 1_000_000_000})

    def fee_history(self, block_count, newest_block):
        return {"baseFeePerGas": [1_000_000_000]}

    def get_transaction_count(self, address, block_identifier="latest"):
        return len(self._chain.sent)

    def send_raw_transaction(self, raw):
        return self._chain.submit(raw)

    def wait_for_transaction_receipt(self, tx_hash, timeout=120, poll_latency=0.1):
        if self._chain.confirmation_times_out:
            raise TimeExhausted(f"Transaction {tx_hash!r} is not in the chain after {timeout} seconds")
        if isinstance(tx_hash, (bytes, bytearray)):
            tx_hash = Web3.to_hex(tx_hash)
        return self._chain.receipts[tx_hash]


class FakeWeb3:
    def __init__(self, chain: "FakeChain"):
        self.eth = FakeEth(chain)


class FakeChain:
    def __init__(self) -> None:
        self.views: Dict[Tuple[str, str], Any] = {}
        self.estimates: Dict[str, Any] = {}
        self.effects: Dict[Tuple[str, str], Callable[[FakeFunctionCall, dict], None]] = {}
        self.rejections: Dict[str, List[Exception]] = {}
        self.outcomes: Dict[str, List[Tuple[int, Optional[int]]]] = {}
        self.revert_reasons: Dict[str, str] = {}
        self.receipts: Dict[str, AttributeDict] = {}
        self.sent: List[dict] = []
        self.estimate_calls: List[str] = []
        self.supply_shares: Dict[str, int] = {}
        self.confirmation_times_out = False
        self.block_number = 100
        self.now = NOW
        self.web3 = FakeWeb3(self)

    # --- Setup -------------------------------------------------------------------

    def set_view(self, address: str, name: str, value: Any) -> None:
        self.views[(address, name)] = value

    def add_token(self, address: str, symbol: str, balances: Optional[Dict[str, int]] = None, decimals: int = 18):
        balances = dict(balances or {})
        allowances: Dict[Tuple[str, str], int] = {}
        self.set_view(address, "decimals", decimals)
        self.set_view(address, "symbol", symbol)
        self.set_view(address, "balanceOf", lambda owner: balances.get(owner, 0))
        self.set_view(address, "allowance", lambda owner, spender: allowances.get((owner, spender), 0))

        def approve(call: FakeFunctionCall, tx: dict) -> None:
            spender, amount = call.args
            allowances[(tx["from"], spender)] = amount

        self.effects[(address, "approve")] = approve
        return allowances

    def add_pair(
        self,
        total_assets: int = 1_000 * E18,
        total_borrow: Tuple[int, int] = (0, 0),
        max_ltv: int = 80_000,
        low_exchange_rate: int = E18 // 100,
        high_exchange_rate: int = E18 // 100,
        max_oracle_deviation: int = 5_000,
    ) -> Dict[str, Tuple[int, int]]:
        """Returns the mutable {user: (collateral, borrow_shares)} position table."""
        positions: Dict[str, Tuple[int, int]] = {}
        self.set_view(PAIR, "asset", ASSET)
        self.set_view(PAIR, "collateralContract", COLLATERAL)
        self.set_view(PAIR, "maxLTV", max_ltv)
        self.set_view(PAIR, "cleanLiquidationFee", 10_000)
        self.set_view(PAIR, "dirtyLiquidationFee", 9_000)
        self.set_view(PAIR, "protocolLiquidationFee", 1_000)
        self.set_view(PAIR, "totalAssets", total_assets)
        self.set_view(PAIR, "totalBorrow", list(total_borrow))
        self.set_view(PAIR, "totalCollateral", 0)
        self.set_view(PAIR, "currentRateInfo", [90, 0, NOW - 60, 317097920, 5_000_000_000])
        self.set_view(
            PAIR,
            "exchangeRateInfo",
            [ORACLE, max_oracle_deviation, NOW - 60, low_exchange_rate, high_exchange_rate],
        )
        self.set_view(PAIR, "userCollateralBalance", lambda user: positions.get(user, (0, 0))[0])
        self.set_view(PAIR, "userBorrowShares", lambda user: positions.get(user, (0, 0))[1])
        self.set_view(PAIR, "balanceOf", lambda owner: self.supply_shares.get(owner, 0))
        return positions

    def add_oracle(
        self,
        price_low: int = E18 // 100,
        price_high: int = E18 // 100,
        age: int = 60,
        is_bad_data: bool = False,
        max_delay: int = 86_400,
        update_refreshes: bool = True,
    ) -> None:
        state = {"last_update": self.now - age}
        self.set_view(ORACLE, "getPrices", [is_bad_data, price_low, price_high])
        self.set_view(ORACLE, "lastUpdateTime", lambda: state["last_update"])
        self.set_view(ORACLE, "maxOracleDelay", max_delay)

        def update(call: FakeFunctionCall, tx: dict) -> None:
            if update_refreshes:
                state["last_update"] = self.now

        self.effects[(ORACLE, "update")] = update

    # --- Transactions --------------------------------------------------------------

    def submit(self, tx: dict) -> bytes:
        call: FakeFunctionCall = tx["_call"]
        pending = self.rejections.get(call.name)
        if pending:
            raise pending.pop(0)

        self.sent.append(tx)
        tx_hash = bytes([len(self.sent)]) * 32
        self.block_number += 1

        planned = self.outcomes.get(call.name)
        status, gas_used = planned.pop(0) if planned else (1, None)
        if gas_used is None:
            gas_used = min(tx["gas"], 50_000)
        effect = self.effects.get((call.address, call.name))
        if status == 1 and effect is not None:
            effect(call, tx)

        self.receipts[Web3.to_hex(tx_hash)] = AttributeDict(
            {"status": status, "blockNumber": self.block_number, "gasUsed": gas_used, "transactionHash": tx_hash}
        )
        return tx_hash

    def sent_names(self) -> List[str]:
        return [tx["_call"].name for tx in self.sent]

    def sent_calls(self, name: str) -> List[dict]:
        return [tx for tx in self.sent if tx["_call"].name == name]


def write_capability(chain: FakeChain, address: str = USER) -> WriteCapability:
    return WriteCapability(web3=chain.web3, account=FakeAccount(address))


def read_capability(chain: FakeChain) -> ReadCapability:
    return ReadCapability(web3=chain.web3)


def make_orchestrator(chain: FakeChain, on_transition=None, **config_overrides) -> TransactionOrchestrator:
    capability = write_capability(chain)
    config = OrchestratorConfig(pair_address=PAIR, **config_overrides)
    reader = RemoteStateReader(capability)
    sender = TransactionSender(capability, confirmation_timeout_seconds=config.confirmation_timeout_seconds)
    guard = OracleGuard(reader, sender, clock=lambda: chain.now)
    return TransactionOrchestrator(
        capability,
        config,
        reader=reader,
        sender=sender,
        oracle_guard=guard,
        on_transition=on_transition,
    )
