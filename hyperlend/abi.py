"""
Minimal ABIs for the Hyperlend isolated-pair and core-pool contracts.

Only the functions the client reads or writes are listed; the full artifacts
are not needed for web3 contract bindings.
"""

from typing import Dict, List


def _fn(name: str, inputs=(), outputs=(), mutability: str = "view") -> Dict:
    return {
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [p if isinstance(p, dict) else {"name": p[0], "type": p[1]} for p in outputs],
        "stateMutability": mutability,
        "type": "function",
    }


def _tuple(name: str, fields, array: bool = False) -> Dict:
    return {
        "name": name,
        "type": "tuple[]" if array else "tuple",
        "components": [{"name": n, "type": t} for n, t in fields],
    }


# --- ERC-20 -----------------------------------------------------------------------

ERC20_ABI: List[Dict] = [
    _fn("decimals", outputs=[("", "uint8")]),
    _fn("symbol", outputs=[("", "string")]),
    _fn("balanceOf", inputs=[("_owner", "address")], outputs=[("", "uint256")]),
    _fn(
        "allowance",
        inputs=[("_owner", "address"), ("_spender", "address")],
        outputs=[("", "uint256")],
    ),
    _fn(
        "approve",
        inputs=[("_spender", "address"), ("_amount", "uint256")],
        outputs=[("", "bool")],
        mutability="nonpayable",
    ),
    _fn(
        "transfer",
        inputs=[("_to", "address"), ("_amount", "uint256")],
        outputs=[("", "bool")],
        mutability="nonpayable",
    ),
]


# --- Lending pair -----------------------------------------------------------------

PAIR_ABI: List[Dict] = [
    _fn("asset", outputs=[("", "address")]),
    _fn("collateralContract", outputs=[("", "address")]),
    _fn("maxLTV", outputs=[("", "uint256")]),
    _fn("cleanLiquidationFee", outputs=[("", "uint256")]),
    _fn("dirtyLiquidationFee", outputs=[("", "uint256")]),
    _fn("protocolLiquidationFee", outputs=[("", "uint256")]),
    _fn("totalAssets", outputs=[("", "uint256")]),
    _fn("totalBorrow", outputs=[("amount", "uint128"), ("shares", "uint128")]),
    _fn("totalCollateral", outputs=[("", "uint256")]),
    _fn(
        "currentRateInfo",
        outputs=[
            ("lastBlock", "uint32"),
            ("feeToProtocolRate", "uint32"),
            ("lastTimestamp", "uint64"),
            ("ratePerSec", "uint64"),
            ("fullUtilizationRate", "uint64"),
        ],
    ),
    _fn(
        "exchangeRateInfo",
        outputs=[
            ("oracle", "address"),
            ("maxOracleDeviation", "uint32"),
            ("lastTimestamp", "uint184"),
            ("lowExchangeRate", "uint256"),
            ("highExchangeRate", "uint256"),
        ],
    ),
    _fn("userCollateralBalance", inputs=[("_user", "address")], outputs=[("", "uint256")]),
    _fn("userBorrowShares", inputs=[("_user", "address")], outputs=[("", "uint256")]),
    _fn("balanceOf", inputs=[("account", "address")], outputs=[("", "uint256")]),
    _fn(
        "deposit",
        inputs=[("_amount", "uint256"), ("_receiver", "address")],
        outputs=[("_sharesReceived", "uint256")],
        mutability="nonpayable",
    ),
    _fn(
        "borrowAsset",
        inputs=[
            ("_borrowAmount", "uint256"),
            ("_collateralAmount", "uint256"),
            ("_receiver", "address"),
        ],
        outputs=[("_shares", "uint256")],
        mutability="nonpayable",
    ),
    _fn(
        "repayAsset",
        inputs=[("_shares", "uint256"), ("_borrower", "address")],
        outputs=[("_amountToRepay", "uint256")],
        mutability="nonpayable",
    ),
    _fn(
        "withdraw",
        inputs=[("_amount", "uint256"), ("_receiver", "address"), ("_owner", "address")],
        outputs=[("_sharesToBurn", "uint256")],
        mutability="nonpayable",
    ),
    _fn(
        "addCollateral",
        inputs=[("_collateralAmount", "uint256"), ("_borrower", "address")],
        mutability="nonpayable",
    ),
    _fn(
        "removeCollateral",
        inputs=[("_collateralAmount", "uint256"), ("_receiver", "address")],
        mutability="nonpayable",
    ),
]


# --- Pair registry ----------------------------------------------------------------

REGISTRY_ABI: List[Dict] = [
    _fn("deployedPairsLength", outputs=[("", "uint256")]),
    _fn("getAllPairAddresses", outputs=[("", "address[]")]),
    _fn("deployers", inputs=[("", "address")], outputs=[("", "bool")]),
    _fn("deployedPairsByName", inputs=[("", "string")], outputs=[("", "address")]),
    _fn("owner", outputs=[("", "address")]),
    _fn("pendingOwner", outputs=[("", "address")]),
    _fn("addPair", inputs=[("_pairAddress", "address")], mutability="nonpayable"),
    _fn(
        "setDeployers",
        inputs=[("_deployers", "address[]"), ("_bool", "bool")],
        mutability="nonpayable",
    ),
    _fn("transferOwnership", inputs=[("newOwner", "address")], mutability="nonpayable"),
    _fn("acceptOwnership", mutability="nonpayable"),
    _fn("renounceOwnership", mutability="nonpayable"),
]


# --- Price oracle -----------------------------------------------------------------

ORACLE_ABI: List[Dict] = [
    _fn(
        "getPrices",
        outputs=[("_isBadData", "bool"), ("_priceLow", "uint256"), ("_priceHigh", "uint256")],
    ),
    _fn("lastUpdateTime", outputs=[("", "uint256")]),
    _fn("maxOracleDelay", outputs=[("", "uint256")]),
    _fn("update", mutability="nonpayable"),
]


# --- Core pool --------------------------------------------------------------------

_TOKEN_DATA = [("symbol", "string"), ("tokenAddress", "address")]

CORE_POOL_ABI: List[Dict] = [
    _fn("getReservesList", outputs=[("", "address[]")]),
    _fn(
        "getUserAccountData",
        inputs=[("user", "address")],
        outputs=[
            ("totalCollateralBase", "uint256"),
            ("totalDebtBase", "uint256"),
            ("availableBorrowsBase", "uint256"),
            ("currentLiquidationThreshold", "uint256"),
            ("ltv", "uint256"),
            ("healthFactor", "uint256"),
        ],
    ),
]

CORE_DATA_PROVIDER_ABI: List[Dict] = [
    _fn("getAllReservesTokens", outputs=[_tuple("", _TOKEN_DATA, array=True)]),
    _fn("getAllATokens", outputs=[_tuple("", _TOKEN_DATA, array=True)]),
    _fn(
        "getReserveData",
        inputs=[("asset", "address")],
        outputs=[
            ("unbacked", "uint256"),
            ("accruedToTreasuryScaled", "uint256"),
            ("totalAToken", "uint256"),
            ("totalStableDebt", "uint256"),
            ("totalVariableDebt", "uint256"),
            ("liquidityRate", "uint256"),
            ("variableBorrowRate", "uint256"),
            ("stableBorrowRate", "uint256"),
            ("averageStableBorrowRate", "uint256"),
            ("liquidityIndex", "uint256"),
            ("variableBorrowIndex", "uint256"),
            ("lastUpdateTimestamp", "uint40"),
        ],
    ),
    _fn(
        "getReserveConfigurationData",
        inputs=[("asset", "address")],
        outputs=[
            ("decimals", "uint256"),
            ("ltv", "uint256"),
            ("liquidationThreshold", "uint256"),
            ("liquidationBonus", "uint256"),
            ("reserveFactor", "uint256"),
            ("usageAsCollateralEnabled", "bool"),
            ("borrowingEnabled", "bool"),
            ("stableBorrowRateEnabled", "bool"),
            ("isActive", "bool"),
            ("isFrozen", "bool"),
        ],
    ),
    _fn(
        "getReserveTokensAddresses",
        inputs=[("asset", "address")],
        outputs=[
            ("aTokenAddress", "address"),
            ("stableDebtTokenAddress", "address"),
            ("variableDebtTokenAddress", "address"),
        ],
    ),
]

CORE_UI_DATA_PROVIDER_ABI: List[Dict] = [
    _fn(
        "getUserReservesData",
        inputs=[("provider", "address"), ("user", "address")],
        outputs=[
            _tuple(
                "",
                [
                    ("underlyingAsset", "address"),
                    ("scaledATokenBalance", "uint256"),
                    ("usageAsCollateralEnabledOnUser", "bool"),
                    ("stableBorrowRate", "uint256"),
                    ("scaledVariableDebt", "uint256"),
                    ("principalStableDebt", "uint256"),
                    ("stableBorrowLastUpdateTimestamp", "uint256"),
                ],
                array=True,
            ),
            ("", "uint8"),
        ],
    ),
]
