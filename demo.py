#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Collateral Engine Step by Step

A walkthrough of borrowing a synthetic dollar against collateral. Each step
builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3: Setup        - Tokens, price feeds, the engine
  4-6: Borrowing    - Deposit, mint, health factor, refused mints
  7-8: Stress       - Price crash, liquidation
  9:   Oracles      - Stale prices fail closed
  10:  Books        - Custody and supply reconcile with positions

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import sys

from stableledger import (
    CollateralEngine, StaticPriceFeed, TokenLedger, EngineError,
    DEFAULT_ENGINE_ADDRESS, to_units, from_units, format_health_factor,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    eth_price: str = "2000"
    crash_price: str = "18"
    alice_weth: str = "10"
    bob_weth: str = "20"
    alice_mint: str = "100"
    bob_mint: str = "100"


CONFIG = DemoConfig()
ENGINE = DEFAULT_ENGINE_ADDRESS

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def show_account(engine: CollateralEngine, user: str):
    info = engine.get_account_information(user)
    print(f"  {user:<6} collateral ${from_units(info.collateral_value):>12,.2f}"
          f"   minted {from_units(info.minted):>10,.2f} SYN"
          f"   health {format_health_factor(engine.health_factor(user))}")


# ============================================================================
# SETUP
# ============================================================================

def step_01_tokens():
    step_header(1, "Tokens", "Register the collateral and the synthetic asset.")
    tokens = TokenLedger("tutorial")
    weth = tokens.register_token("WETH")
    synthetic = tokens.register_synthetic("SYN", owner=ENGINE)

    tokens.issue("WETH", "alice", to_units(CONFIG.alice_weth))
    tokens.issue("WETH", "bob", to_units(CONFIG.bob_weth))
    for user in ("alice", "bob"):
        tokens.approve("WETH", user, ENGINE, to_units(1_000_000))
        tokens.approve("SYN", user, ENGINE, to_units(1_000_000))

    print(f"Tokens:        {tokens.tokens}")
    print(f"alice WETH:    {from_units(tokens.balance_of('alice', 'WETH'))}")
    print(f"bob WETH:      {from_units(tokens.balance_of('bob', 'WETH'))}")
    print(f"SYN owner:     {synthetic.owner}  (only the engine can mint)")
    return tokens, weth, synthetic


def step_02_feed():
    step_header(2, "Price Feed", "Quote WETH with 8 decimals, as oracles do.")
    feed = StaticPriceFeed({
        "WETH": (to_units(CONFIG.eth_price, decimals=8), CONFIG.start_time),
    })
    price, as_of = feed.latest_price("WETH")
    print(f"WETH = {price} (${from_units(price, decimals=8)}) as of {as_of}")
    return feed


def step_03_engine(weth, synthetic, feed):
    step_header(3, "The Engine", "Wire tokens and feed into a CollateralEngine.")
    engine = CollateralEngine(
        ["WETH"], [feed],
        collateral_tokens={"WETH": weth.as_caller(ENGINE)},
        synthetic=synthetic,
        initial_time=CONFIG.start_time,
    )
    print(repr(engine))
    print(f"Liquidation threshold: {engine.get_liquidation_threshold()}%")
    print(f"Liquidation bonus:     {engine.get_liquidation_bonus()}%")
    print(f"Oracle timeout:        {engine.get_collateral_oracle('WETH').timeout}")
    return engine


# ============================================================================
# BORROWING
# ============================================================================

def step_04_deposit_and_mint(engine):
    step_header(4, "Borrow", "Lock collateral and mint against it in one call.")
    engine.deposit_and_mint("alice", "WETH", to_units(CONFIG.alice_weth), to_units(CONFIG.alice_mint))
    engine.deposit_and_mint("bob", "WETH", to_units(CONFIG.bob_weth), to_units(CONFIG.bob_mint))
    show_account(engine, "alice")
    show_account(engine, "bob")


def step_05_refused_mint(engine):
    step_header(5, "Refusal", "A mint that would push health below 1.0 is rejected whole.")
    try:
        engine.mint("alice", to_units(1_000_000))
    except EngineError as exc:
        print(f"REJECTED: {type(exc).__name__}: {exc}")
    show_account(engine, "alice")


def step_06_events(engine):
    step_header(6, "Events", "Every committed transition is recorded in order.")
    for event in engine.event_log:
        print(f"  #{event.sequence_number} {type(event).__name__} {event}")


# ============================================================================
# STRESS
# ============================================================================

def step_07_crash(engine, feed):
    step_header(7, "Crash", f"WETH falls to ${CONFIG.crash_price}.")
    feed.update_price("WETH", to_units(CONFIG.crash_price, decimals=8), engine.current_time)
    show_account(engine, "alice")
    show_account(engine, "bob")


def step_08_liquidation(engine):
    step_header(8, "Liquidation", "bob repays alice's debt and takes collateral plus 10%.")
    seized = engine.liquidate("bob", "alice", "WETH", to_units(CONFIG.alice_mint))
    print(f"bob received {from_units(seized)} WETH "
          f"(worth ${from_units(engine.usd_value('WETH', seized)):,.2f})")
    show_account(engine, "alice")
    show_account(engine, "bob")


# ============================================================================
# ORACLES AND BOOKS
# ============================================================================

def step_09_stale_oracle(engine, feed):
    step_header(9, "Stale Oracle", "Four hours without a new round: priced operations stop.")
    engine.advance_time(engine.current_time + timedelta(hours=4))
    try:
        engine.mint("bob", to_units(1))
    except EngineError as exc:
        print(f"REJECTED: {type(exc).__name__}: {exc}")
    feed.update_price("WETH", to_units(CONFIG.eth_price, decimals=8), engine.current_time)
    engine.mint("bob", to_units(1))
    print("Fresh round published; mint accepted.")
    show_account(engine, "bob")


def step_10_books(engine, tokens):
    step_header(10, "Books", "Custody equals positions, supply equals debt.")
    print(f"Engine WETH held:     {from_units(tokens.balance_of(ENGINE, 'WETH'))}")
    print(f"WETH deposited:       {from_units(engine.total_deposited('WETH'))}")
    print(f"SYN supply:           {from_units(tokens.total_supply('SYN'))}")
    print(f"SYN minted:           {from_units(engine.total_minted())}")
    report = tokens.verify_conservation()
    print(f"Token conservation:   {'OK' if report['valid'] else report['discrepancies']}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print("=" * 70)
    print("       COLLATERAL ENGINE - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    wait_for_enter()

    tokens, weth, synthetic = step_01_tokens()
    wait_for_enter()
    feed = step_02_feed()
    wait_for_enter()
    engine = step_03_engine(weth, synthetic, feed)
    wait_for_enter()

    step_04_deposit_and_mint(engine)
    wait_for_enter()
    step_05_refused_mint(engine)
    wait_for_enter()
    step_06_events(engine)
    wait_for_enter()

    step_07_crash(engine, feed)
    wait_for_enter()
    step_08_liquidation(engine)
    wait_for_enter()

    step_09_stale_oracle(engine, feed)
    wait_for_enter()
    step_10_books(engine, tokens)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)


if __name__ == "__main__":
    main()
