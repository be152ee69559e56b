"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, functional and conformance tests:
- A token ledger with WETH, WBTC and the synthetic SYN registered
- A static price feed at $2000 (WETH) and $1000 (WBTC)
- An engine wired to all of the above
- Helpers that fund users and grant the engine allowances
"""

import pytest
from datetime import datetime, timedelta

from stableledger import (
    CollateralEngine, LedgerToken, StaticPriceFeed, SyntheticLedgerToken,
    TokenLedger, DEFAULT_ENGINE_ADDRESS, to_units,
)


T0 = datetime(2024, 1, 1, 12, 0, 0)
ENGINE = DEFAULT_ENGINE_ADDRESS
ETH_PRICE = 2000_00000000
BTC_PRICE = 1000_00000000
UNLIMITED = 10 ** 40


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def units(value) -> int:
    """Shorthand for 18-decimal fixed point."""
    return to_units(value)


def fund(tokens: TokenLedger, holder: str, symbol: str, amount: int) -> None:
    """Issue `amount` of `symbol` to holder and let the engine pull all of it."""
    tokens.issue(symbol, holder, amount)
    tokens.approve(symbol, holder, ENGINE, UNLIMITED)


def approve_synthetic(tokens: TokenLedger, holder: str) -> None:
    """Let the engine pull the holder's synthetic tokens for burns."""
    tokens.approve("SYN", holder, ENGINE, UNLIMITED)


def build_engine(tokens, feed, assets=("WETH", "WBTC"), **kwargs) -> CollateralEngine:
    """Engine over the given assets, all priced by one feed."""
    return CollateralEngine(
        list(assets),
        [feed] * len(assets),
        collateral_tokens={
            symbol: LedgerToken(tokens, symbol, ENGINE) for symbol in assets
        },
        synthetic=SyntheticLedgerToken(tokens, "SYN", ENGINE, ENGINE),
        initial_time=kwargs.pop("initial_time", T0),
        **kwargs,
    )


def make_world():
    """
    Fresh (tokens, feed, engine) triple outside pytest fixtures, for
    hypothesis tests that need a clean engine per example.
    """
    ledger = TokenLedger("test")
    ledger.register_token("WETH")
    ledger.register_token("WBTC")
    ledger.register_synthetic("SYN", owner=ENGINE)
    feed = StaticPriceFeed({
        "WETH": (ETH_PRICE, T0),
        "WBTC": (BTC_PRICE, T0),
    })
    return ledger, feed, build_engine(ledger, feed)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def tokens():
    """Token ledger with WETH, WBTC and SYN registered."""
    ledger = TokenLedger("test")
    ledger.register_token("WETH")
    ledger.register_token("WBTC")
    ledger.register_synthetic("SYN", owner=ENGINE)
    return ledger


@pytest.fixture
def feed():
    """Fresh quotes for both collateral assets at T0."""
    return StaticPriceFeed({
        "WETH": (ETH_PRICE, T0),
        "WBTC": (BTC_PRICE, T0),
    })


@pytest.fixture
def engine(tokens, feed):
    """Engine accepting WETH and WBTC with default parameters."""
    return build_engine(tokens, feed)


@pytest.fixture
def alice(tokens):
    """alice holds 10 WETH and 1 WBTC, all approved to the engine."""
    fund(tokens, "alice", "WETH", units(10))
    fund(tokens, "alice", "WBTC", units(1))
    approve_synthetic(tokens, "alice")
    return "alice"


@pytest.fixture
def bob(tokens):
    """bob holds 20 WETH, approved to the engine."""
    fund(tokens, "bob", "WETH", units(20))
    approve_synthetic(tokens, "bob")
    return "bob"


@pytest.fixture
def indebted(engine, alice):
    """alice has 10 WETH locked and 100 SYN minted (health factor 100)."""
    engine.deposit_and_mint(alice, "WETH", units(10), units(100))
    return alice


@pytest.fixture
def liquidatable(engine, feed, indebted, bob):
    """
    alice is under water at $18 WETH (health factor 0.9) and bob holds
    100 SYN backed by 20 WETH.
    """
    engine.deposit_and_mint(bob, "WETH", units(20), units(100))
    feed.update_price("WETH", 18_00000000, T0)
    return indebted, bob


@pytest.fixture
def later():
    """T0 plus an offset."""
    def _later(**delta) -> datetime:
        return T0 + timedelta(**delta)
    return _later
