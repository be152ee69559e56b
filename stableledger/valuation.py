"""
valuation.py - Collateral valuation and health factors

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take prices and quantities explicitly
   - No EngineView, no oracle reads
   - Example: calculate_usd_value(price, amount) -> int

2. VIEW FUNCTIONS (usd_value, health_factor, ...):
   - Read positions and prices through an EngineView
   - Prices come from the oracle adapter on every call, never cached

Key Formulas:
    usd_value     = price * ADDITIONAL_FEED_PRECISION * amount / PRECISION
    token_amount  = usd * PRECISION / (price * ADDITIONAL_FEED_PRECISION)
    health_factor = (collateral_value * threshold / LIQUIDATION_PRECISION) * PRECISION / minted

Every formula multiplies before it divides; division truncates toward zero.
"""

from __future__ import annotations
from typing import Dict, Tuple

from .core import (
    EngineView, AccountInformation, DivideByZeroPrice, HealthFactor,
    ADDITIONAL_FEED_PRECISION, PRECISION,
    LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION, LIQUIDATION_BONUS,
    INFINITE_HEALTH_FACTOR,
    mul_div,
)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_usd_value(price: int, amount: int) -> int:
    """
    Value `amount` of an asset at a feed price, on the PRECISION scale.

    Example:
        calculate_usd_value(2000_00000000, 15 * PRECISION) == 30000 * PRECISION
    """
    return mul_div(price * ADDITIONAL_FEED_PRECISION, amount, PRECISION)


def calculate_token_amount(price: int, usd_amount: int, asset: str = "") -> int:
    """
    Quantity of an asset worth `usd_amount` at a feed price.

    Inverse of calculate_usd_value up to truncation.

    Raises:
        DivideByZeroPrice: If price is zero
    """
    scaled_price = price * ADDITIONAL_FEED_PRECISION
    if scaled_price == 0:
        raise DivideByZeroPrice(asset)
    return mul_div(usd_amount, PRECISION, scaled_price)


def calculate_health_factor(
    minted: int,
    collateral_value: int,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
) -> HealthFactor:
    """
    Solvency ratio of an account on the PRECISION scale.

    Only liquidation_threshold / LIQUIDATION_PRECISION of the collateral value
    counts toward covering debt. An account without debt is infinitely
    healthy.

    Args:
        minted: Outstanding synthetic debt
        collateral_value: Total collateral value in the unit of account
        liquidation_threshold: Share of collateral value counted, in percent

    Returns:
        Health factor (PRECISION == 1.0), or INFINITE_HEALTH_FACTOR
    """
    if minted == 0:
        return INFINITE_HEALTH_FACTOR
    adjusted = mul_div(collateral_value, liquidation_threshold, LIQUIDATION_PRECISION)
    return mul_div(adjusted, PRECISION, minted)


def calculate_liquidation_seizure(
    asset_amount: int,
    liquidation_bonus: int = LIQUIDATION_BONUS,
) -> Tuple[int, int]:
    """
    Collateral a liquidator receives for covering debt worth `asset_amount`.

    Returns:
        (total_seized, bonus_collateral)
    """
    bonus_collateral = mul_div(asset_amount, liquidation_bonus, LIQUIDATION_PRECISION)
    return asset_amount + bonus_collateral, bonus_collateral


# ============================================================================
# VIEW FUNCTIONS
# ============================================================================

def usd_value(view: EngineView, asset: str, amount: int) -> int:
    """Value of `amount` of `asset` at its current oracle price."""
    return calculate_usd_value(view.latest_price(asset).price, amount)


def token_amount_from_usd(view: EngineView, asset: str, usd_amount: int) -> int:
    """Quantity of `asset` worth `usd_amount` at its current oracle price."""
    return calculate_token_amount(view.latest_price(asset).price, usd_amount, asset)


def collateral_values(view: EngineView, user: str) -> Dict[str, int]:
    """
    Per-asset collateral value for a user, in registry order.

    Every registered asset is priced, held or not, so a stale feed for any
    asset blocks the valuation.
    """
    return {
        asset: usd_value(view, asset, view.get_collateral_balance(user, asset))
        for asset in view.list_assets()
    }


def total_collateral_value(view: EngineView, user: str) -> int:
    """Sum of a user's collateral values, accumulated in registry order."""
    total = 0
    for value in collateral_values(view, user).values():
        total += value
    return total


def account_information(view: EngineView, user: str) -> AccountInformation:
    """Minted debt and collateral value of a user."""
    return AccountInformation(
        minted=view.get_minted(user),
        collateral_value=total_collateral_value(view, user),
    )


def health_factor(
    view: EngineView,
    user: str,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
) -> HealthFactor:
    """
    Current health factor of a user.

    Users without debt short-circuit to INFINITE_HEALTH_FACTOR without
    reading any price.
    """
    minted = view.get_minted(user)
    if minted == 0:
        return INFINITE_HEALTH_FACTOR
    return calculate_health_factor(
        minted, total_collateral_value(view, user), liquidation_threshold
    )
