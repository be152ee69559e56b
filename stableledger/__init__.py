"""
stableledger - Collateral-backed synthetic asset engine

Accounting core for an over-collateralized synthetic asset pegged to a unit
of account: users lock collateral, mint against it, repay, withdraw, and
under-collateralized accounts can be liquidated for a bonus.

Usage:
    from datetime import datetime
    from stableledger import (
        CollateralEngine, StaticPriceFeed, TokenLedger, to_units,
    )

    t0 = datetime(2024, 1, 1)
    tokens = TokenLedger("main")
    weth = tokens.register_token("WETH")
    synth = tokens.register_synthetic("SYN", owner="engine")
    feed = StaticPriceFeed({"WETH": (to_units(2000, decimals=8), t0)})

    engine = CollateralEngine(
        ["WETH"], [feed],
        collateral_tokens={"WETH": weth.as_caller("engine")},
        synthetic=synth,
        initial_time=t0,
    )

    # Fund alice and let the engine pull her collateral
    tokens.issue("WETH", "alice", to_units(10))
    weth.as_caller("alice").approve("engine", to_units(10))

    engine.deposit_and_mint("alice", "WETH", to_units(10), to_units(5000))
    engine.health_factor("alice")  # 2 * PRECISION
"""

# Core types
from .core import (
    PriceFeed,
    CollateralToken,
    SyntheticToken,
    EngineView,
    PriceRound,
    AccountInformation,
    CollateralDeposited,
    CollateralRedeemed,
    EngineEvent,
    HealthFactor,
    CollateralBalances,
    EngineError,
    ZeroAmount,
    UnknownAsset,
    LengthMismatch,
    InsufficientCollateral,
    InsufficientDebt,
    HealthFactorBroken,
    HealthFactorOk,
    HealthFactorNotImproved,
    TransferFailed,
    MintFailed,
    StalePrice,
    PriceUnavailable,
    DivideByZeroPrice,
    ReentrancyBlocked,
    CompensationFailed,
    FEED_DECIMALS,
    INTERNAL_DECIMALS,
    FEED_PRECISION,
    PRECISION,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    INFINITE_HEALTH_FACTOR,
    ORACLE_TIMEOUT,
    DEFAULT_ENGINE_ADDRESS,
    to_units,
    from_units,
    mul_div,
    format_health_factor,
)

# Price feeds
from .oracle import StaticPriceFeed, TimeSeriesPriceFeed, OracleAdapter

# Registry and positions
from .registry import CollateralRegistry, CollateralAsset
from .positions import PositionLedger

# Valuation
from .valuation import (
    calculate_usd_value,
    calculate_token_amount,
    calculate_health_factor,
    calculate_liquidation_seizure,
    usd_value,
    token_amount_from_usd,
    collateral_values,
    total_collateral_value,
    account_information,
    health_factor,
)

# Engine
from .engine import CollateralEngine, EngineParameters, EngineSnapshot

# Reference tokens
from .tokens import (
    TokenLedger,
    LedgerToken,
    SyntheticLedgerToken,
    Move,
    TokenTransaction,
    ExecuteResult,
    TokenError,
    TokenNotRegistered,
    MustBeMoreThanZero,
    BurnAmountExceedsBalance,
    NotOwner,
    SYSTEM_WALLET,
)

__all__ = [
    # Protocols and types
    'PriceFeed',
    'CollateralToken',
    'SyntheticToken',
    'EngineView',
    'PriceRound',
    'AccountInformation',
    'CollateralDeposited',
    'CollateralRedeemed',
    'EngineEvent',
    'HealthFactor',
    'CollateralBalances',
    # Exceptions
    'EngineError',
    'ZeroAmount',
    'UnknownAsset',
    'LengthMismatch',
    'InsufficientCollateral',
    'InsufficientDebt',
    'HealthFactorBroken',
    'HealthFactorOk',
    'HealthFactorNotImproved',
    'TransferFailed',
    'MintFailed',
    'StalePrice',
    'PriceUnavailable',
    'DivideByZeroPrice',
    'ReentrancyBlocked',
    'CompensationFailed',
    # Constants
    'FEED_DECIMALS',
    'INTERNAL_DECIMALS',
    'FEED_PRECISION',
    'PRECISION',
    'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_THRESHOLD',
    'LIQUIDATION_PRECISION',
    'LIQUIDATION_BONUS',
    'MIN_HEALTH_FACTOR',
    'INFINITE_HEALTH_FACTOR',
    'ORACLE_TIMEOUT',
    'DEFAULT_ENGINE_ADDRESS',
    # Helpers
    'to_units',
    'from_units',
    'mul_div',
    'format_health_factor',
    # Price feeds
    'StaticPriceFeed',
    'TimeSeriesPriceFeed',
    'OracleAdapter',
    # Registry and positions
    'CollateralRegistry',
    'CollateralAsset',
    'PositionLedger',
    # Valuation
    'calculate_usd_value',
    'calculate_token_amount',
    'calculate_health_factor',
    'calculate_liquidation_seizure',
    'usd_value',
    'token_amount_from_usd',
    'collateral_values',
    'total_collateral_value',
    'account_information',
    'health_factor',
    # Engine
    'CollateralEngine',
    'EngineParameters',
    'EngineSnapshot',
    # Reference tokens
    'TokenLedger',
    'LedgerToken',
    'SyntheticLedgerToken',
    'Move',
    'TokenTransaction',
    'ExecuteResult',
    'TokenError',
    'TokenNotRegistered',
    'MustBeMoreThanZero',
    'BurnAmountExceedsBalance',
    'NotOwner',
    'SYSTEM_WALLET',
]

__version__ = '1.0.0'
