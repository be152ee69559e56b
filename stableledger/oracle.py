"""
oracle.py - Price feeds and the staleness-guarded oracle adapter

Provides the price inputs the engine values collateral with.

Classes:
- StaticPriceFeed: Settable latest round per asset
- TimeSeriesPriceFeed: Historical price paths, latest observation at or before a clock
- OracleAdapter: Wraps one asset's feed and refuses rounds older than the timeout

All prices are signed ints with FEED_DECIMALS (8) fractional digits.
Adapters never smooth, cache or reinterpret what the feed reports.
"""

from __future__ import annotations
import logging
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from .core import EngineError, PriceFeed, PriceRound, PriceUnavailable, StalePrice, ORACLE_TIMEOUT

logger = logging.getLogger(__name__)


class StaticPriceFeed:
    """
    Price feed holding one latest round per asset.

    Each update replaces the round; there is no history. Asking for an
    asset that has never been quoted raises KeyError.
    """

    def __init__(self, rounds: Optional[Dict[str, Tuple[int, datetime]]] = None):
        """
        Initialize with an optional map of asset -> (price, updated_at).

        Args:
            rounds: Initial rounds keyed by asset identifier
        """
        self.rounds: Dict[str, PriceRound] = {}
        for asset, (price, updated_at) in (rounds or {}).items():
            self.update_price(asset, price, updated_at)

    def latest_price(self, asset: str) -> Tuple[int, datetime]:
        """Return (price, updated_at) of the asset's latest round."""
        if asset not in self.rounds:
            raise KeyError(f"No price round for {asset}")
        current = self.rounds[asset]
        return current.price, current.as_of

    def update_price(self, asset: str, price: int, updated_at: datetime) -> None:
        """Publish a new round for an asset."""
        if isinstance(price, bool) or not isinstance(price, int):
            raise ValueError(f"Price must be an int with 8 decimals, got {type(price).__name__}")
        self.rounds[asset] = PriceRound(price, updated_at)

    def __repr__(self):
        return f"StaticPriceFeed({len(self.rounds)} assets)"


class TimeSeriesPriceFeed:
    """
    Price feed backed by historical price paths.

    latest_price() answers with the most recent observation at or before the
    feed's clock. Without a clock, the newest observation is returned.

    Example:
        feed = TimeSeriesPriceFeed({
            'WETH': [(t0, 2000_00000000), (t1, 1800_00000000)],
        }, clock=lambda: engine.current_time)
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.clock = clock
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}
        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset: str, timestamp: datetime, price: int) -> None:
        """Add an observation, keeping the path sorted by timestamp."""
        path = self.price_history.setdefault(asset, [])
        path.append((timestamp, price))
        path.sort(key=lambda x: x[0])

    def get_price_at(self, asset: str, timestamp: datetime) -> Optional[PriceRound]:
        """
        Return the latest observation at or before timestamp.

        Returns None if the asset has no observation that early.
        """
        path = self.price_history.get(asset)
        if not path:
            return None
        timestamps = [t for t, _ in path]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None
        observed_at, price = path[idx - 1]
        return PriceRound(price, observed_at)

    def latest_price(self, asset: str) -> Tuple[int, datetime]:
        """Return (price, observed_at) as seen from the feed's clock."""
        path = self.price_history.get(asset)
        if not path:
            raise KeyError(f"No price history for {asset}")
        if self.clock is None:
            observed_at, price = path[-1]
            return price, observed_at
        observation = self.get_price_at(asset, self.clock())
        if observation is None:
            raise KeyError(f"No price for {asset} at or before {self.clock()}")
        return observation.price, observation.as_of

    def __repr__(self):
        total = sum(len(path) for path in self.price_history.values())
        return f"TimeSeriesPriceFeed({len(self.price_history)} assets, {total} observations)"


class OracleAdapter:
    """
    Staleness guard around one asset's price feed.

    A round older than `timeout` fails closed with StalePrice: anything that
    needs this asset's value is refused until the feed publishes again.
    A round dated after `now` counts as fresh.
    """

    def __init__(self, feed: PriceFeed, asset: str, timeout: timedelta = ORACLE_TIMEOUT):
        if timeout <= timedelta(0):
            raise ValueError(f"Oracle timeout must be positive, got {timeout}")
        self.feed = feed
        self.asset = asset
        self.timeout = timeout

    def latest_price(self, now: datetime) -> PriceRound:
        """
        Read the feed's latest round and check its age.

        Args:
            now: The engine's current logical time

        Returns:
            PriceRound with the raw feed price

        Raises:
            PriceUnavailable: If the feed cannot report a round
            StalePrice: If now - as_of exceeds the timeout
        """
        try:
            price, as_of = self.feed.latest_price(self.asset)
        except EngineError:
            raise
        except Exception as exc:
            logger.warning("Feed for %s failed: %s", self.asset, exc)
            raise PriceUnavailable(self.asset, str(exc)) from exc
        if now - as_of > self.timeout:
            logger.warning("Stale price for %s: updated %s, now %s", self.asset, as_of, now)
            raise StalePrice(self.asset, as_of, now)
        return PriceRound(price, as_of)

    def __repr__(self):
        return f"OracleAdapter({self.asset}, timeout={self.timeout})"
