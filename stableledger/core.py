"""
Core types, constants and exceptions for the collateral engine.

This module provides the foundational pieces shared by every other module:
1. Fixed-point constants: feed precision, internal precision, liquidation terms
2. Exceptions: EngineError and the domain-specific error kinds
3. Protocols: PriceFeed, CollateralToken, SyntheticToken, EngineView
4. Immutable data structures: PriceRound, AccountInformation, events
5. Conversion helpers between human-readable Decimals and fixed-point ints

Quantities are plain ints carrying 18 fractional digits (prices carry 8).
Nothing in this module holds or mutates engine state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import (
    Dict, Tuple, Optional, Protocol, Union, runtime_checkable
)


# ============================================================================
# FIXED-POINT CONSTANTS
# ============================================================================
#
# Two scales meet in every valuation:
#   - price feeds quote with 8 fractional digits (FEED_PRECISION)
#   - the engine's unit of account carries 18 (PRECISION)
# ADDITIONAL_FEED_PRECISION lifts a feed price onto the internal scale.
#
FEED_DECIMALS = 8
INTERNAL_DECIMALS = 18

FEED_PRECISION = 10 ** FEED_DECIMALS
PRECISION = 10 ** INTERNAL_DECIMALS
ADDITIONAL_FEED_PRECISION = 10 ** (INTERNAL_DECIMALS - FEED_DECIMALS)

# Only LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION of collateral value
# counts toward debt coverage (50% => 200% over-collateralization).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Incentive paid to liquidators, in LIQUIDATION_PRECISION units (10%).
LIQUIDATION_BONUS = 10

# Health factor 1.0 on the internal scale.
MIN_HEALTH_FACTOR = PRECISION

# Health factor reported for accounts without debt.
INFINITE_HEALTH_FACTOR = float("inf")

# Price rounds older than this are refused.
ORACLE_TIMEOUT = timedelta(hours=3)

# Holder id under which the engine keeps custody of collateral.
DEFAULT_ENGINE_ADDRESS = "engine"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Health factors are ints on the PRECISION scale, or INFINITE_HEALTH_FACTOR.
HealthFactor = Union[int, float]

# Mapping from asset identifier to deposited quantity for one user.
CollateralBalances = Dict[str, int]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all collateral engine errors."""
    pass


class ZeroAmount(EngineError):
    """Raised when an operation receives a non-positive amount."""

    def __init__(self, amount: int):
        self.amount = amount
        super().__init__(f"Amount must be more than zero, got {amount}")


class UnknownAsset(EngineError):
    """Raised when an operation touches an asset that is not registered as collateral."""

    def __init__(self, asset: str):
        self.asset = asset
        super().__init__(f"Asset {asset} is not accepted as collateral")


class LengthMismatch(EngineError):
    """Raised at construction when asset and oracle sequences differ in length."""

    def __init__(self, assets: int, oracles: int):
        self.assets = assets
        self.oracles = oracles
        super().__init__(
            f"Asset and oracle lists must be the same length: {assets} != {oracles}"
        )


class InsufficientCollateral(EngineError):
    """Raised when a withdrawal or seizure would drive a position below zero."""

    def __init__(self, user: str, asset: str, requested: int, available: int):
        self.user = user
        self.asset = asset
        self.requested = requested
        self.available = available
        super().__init__(
            f"{user} {asset}: cannot remove {requested}, only {available} deposited"
        )


class InsufficientDebt(EngineError):
    """Raised when a burn or repayment exceeds the user's minted amount."""

    def __init__(self, user: str, requested: int, available: int):
        self.user = user
        self.requested = requested
        self.available = available
        super().__init__(
            f"{user}: cannot repay {requested}, only {available} minted"
        )


class HealthFactorBroken(EngineError):
    """Raised when an operation would leave an account under-collateralized."""

    def __init__(self, user: str, health_factor: HealthFactor):
        self.user = user
        self.health_factor = health_factor
        super().__init__(f"Health factor of {user} would be {health_factor}")


class HealthFactorOk(EngineError):
    """Raised when liquidating an account whose health factor is not below 1.0."""

    def __init__(self, user: str, health_factor: HealthFactor):
        self.user = user
        self.health_factor = health_factor
        super().__init__(f"{user} is not liquidatable: health factor {health_factor}")


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation leaves the target no healthier than before."""

    def __init__(self, user: str, before: HealthFactor, after: HealthFactor):
        self.user = user
        self.before = before
        self.after = after
        super().__init__(
            f"Liquidation of {user} did not improve health factor: {before} -> {after}"
        )


class TransferFailed(EngineError):
    """Raised when a collateral or synthetic transfer reports failure."""
    pass


class MintFailed(EngineError):
    """Raised when the synthetic token refuses to mint."""
    pass


class StalePrice(EngineError):
    """Raised when the latest price round is older than the oracle timeout."""

    def __init__(self, asset: str, as_of: datetime, now: datetime):
        self.asset = asset
        self.as_of = as_of
        self.now = now
        super().__init__(f"Stale price for {asset}: last update {as_of}, now {now}")


class PriceUnavailable(EngineError):
    """Raised when a feed cannot report a round for an asset at all."""

    def __init__(self, asset: str, reason: str):
        self.asset = asset
        self.reason = reason
        super().__init__(f"No price for {asset}: {reason}")


class DivideByZeroPrice(EngineError):
    """Raised when converting a value into an asset whose price is zero."""

    def __init__(self, asset: str):
        self.asset = asset
        super().__init__(f"Price of {asset} is zero")


class ReentrancyBlocked(EngineError):
    """Raised when a mutating call is made while another is in flight on the same thread."""
    pass


class CompensationFailed(EngineError):
    """Raised when rolling back a collaborator effect fails, leaving external state diverged."""
    pass


# ============================================================================
# IMMUTABLE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PriceRound:
    """
    A single price observation as reported by a feed.

    Attributes:
        price: Signed price with FEED_DECIMALS fractional digits.
        as_of: When the round was last updated.
    """
    price: int
    as_of: datetime


@dataclass(frozen=True, slots=True)
class AccountInformation:
    """Debt and collateral value of one account, both on the PRECISION scale."""
    minted: int
    collateral_value: int


@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    """Emitted when collateral enters engine custody."""
    user: str
    asset: str
    amount: int
    timestamp: datetime
    sequence_number: int


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    """
    Emitted when collateral leaves engine custody.

    redeemed_from is the position debited; redeemed_to receives the tokens.
    They differ only for liquidations.
    """
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int
    timestamp: datetime
    sequence_number: int


EngineEvent = Union[CollateralDeposited, CollateralRedeemed]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceFeed(Protocol):
    """
    External price source.

    Returns the most recent round for an asset as (price, timestamp), price
    carrying FEED_DECIMALS fractional digits.
    """

    def latest_price(self, asset: str) -> Tuple[int, datetime]:
        ...


@runtime_checkable
class CollateralToken(Protocol):
    """
    Transfer interface of a collateral asset, as seen by the engine.

    transfer() moves tokens out of the engine's own balance.
    Both calls report success with a boolean.
    """

    def transfer_from(self, source: str, dest: str, amount: int) -> bool:
        ...

    def transfer(self, dest: str, amount: int) -> bool:
        ...


@runtime_checkable
class SyntheticToken(Protocol):
    """
    Interface of the pegged synthetic asset, as seen by the engine.

    burn() destroys tokens held by the engine itself and raises on failure.
    """

    def mint(self, dest: str, amount: int) -> bool:
        ...

    def burn(self, amount: int) -> None:
        ...

    def transfer_from(self, source: str, dest: str, amount: int) -> bool:
        ...

    def transfer(self, dest: str, amount: int) -> bool:
        ...


@runtime_checkable
class EngineView(Protocol):
    """
    Read-only interface to engine state.

    Valuation functions take an EngineView so they can run against the
    published state or a tentative copy inside an operation alike.
    """

    @property
    def current_time(self) -> datetime:
        ...

    def get_collateral_balance(self, user: str, asset: str) -> int:
        ...

    def get_minted(self, user: str) -> int:
        ...

    def list_assets(self) -> Tuple[str, ...]:
        ...

    def latest_price(self, asset: str) -> PriceRound:
        ...


# ============================================================================
# CONVERSION HELPERS
# ============================================================================

def to_units(value: Union[Decimal, int, str], decimals: int = INTERNAL_DECIMALS) -> int:
    """
    Convert a human-readable quantity to a fixed-point int.

    Digits beyond `decimals` are truncated (ROUND_DOWN).

    Example:
        to_units("1.5") == 1_500_000_000_000_000_000
        to_units(2000, decimals=8) == 200_000_000_000
    """
    if isinstance(value, float):
        raise ValueError(f"Use Decimal or str for fixed-point conversion, got float {value}")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value.is_nan() or value.is_infinite():
        raise ValueError(f"Quantity must be finite, got {value}")
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = (value * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_units(units: int, decimals: int = INTERNAL_DECIMALS) -> Decimal:
    """Convert a fixed-point int back to an exact Decimal."""
    return Decimal(units).scaleb(-decimals)


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute a * b / denominator, truncating toward zero.

    The multiplication happens first so no precision is lost to an early
    division.
    """
    product = a * b
    quotient = abs(product) // abs(denominator)
    return quotient if (product >= 0) == (denominator > 0) else -quotient


def format_health_factor(health_factor: HealthFactor) -> str:
    """Render a health factor for humans, e.g. '2.5' or 'inf'."""
    if health_factor == INFINITE_HEALTH_FACTOR:
        return "inf"
    return format(from_units(int(health_factor)).normalize(), "f")


def require_amount(amount: int) -> int:
    """
    Validate an operation amount.

    Raises:
        ValueError: If amount is not an int (bools are refused)
        ZeroAmount: If amount is not strictly positive
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an int in fixed-point units, got {type(amount).__name__}")
    if amount <= 0:
        raise ZeroAmount(amount)
    return amount


def optional_time(value: Optional[datetime]) -> datetime:
    """Default logical start time, matching the ledger's epoch start."""
    return value or datetime(1970, 1, 1)
