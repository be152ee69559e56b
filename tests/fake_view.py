"""
fake_view.py - Test Helper for EngineView

Provides a minimal EngineView implementation for testing valuation functions
without building an engine, tokens or oracle adapters.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Optional, Tuple

from stableledger import PriceRound, StalePrice


class FakeEngineView:
    """
    Minimal EngineView implementation for testing valuation functions.

    Example:
        view = FakeEngineView(
            collateral={'alice': {'WETH': 10 * PRECISION}},
            minted={'alice': 100 * PRECISION},
            prices={'WETH': 2000_00000000},
        )

        health_factor(view, 'alice')
        # Returns: 100 * PRECISION
    """

    def __init__(
        self,
        collateral: Optional[Dict[str, Dict[str, int]]] = None,
        minted: Optional[Dict[str, int]] = None,
        prices: Optional[Dict[str, int]] = None,
        time: Optional[datetime] = None,
        stale: Tuple[str, ...] = (),
    ):
        self._collateral = collateral or {}
        self._minted = minted or {}
        self._prices = prices or {}
        self._time = time or datetime(2024, 1, 1)
        self._stale = set(stale)
        self.price_reads = 0

    @property
    def current_time(self) -> datetime:
        return self._time

    def get_collateral_balance(self, user: str, asset: str) -> int:
        return self._collateral.get(user, {}).get(asset, 0)

    def get_minted(self, user: str) -> int:
        return self._minted.get(user, 0)

    def list_assets(self) -> Tuple[str, ...]:
        return tuple(self._prices)

    def latest_price(self, asset: str) -> PriceRound:
        self.price_reads += 1
        if asset in self._stale:
            raise StalePrice(asset, datetime(1970, 1, 1), self._time)
        return PriceRound(self._prices[asset], self._time)
