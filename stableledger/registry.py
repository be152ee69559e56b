"""
registry.py - Fixed set of accepted collateral assets

The registry is built once from two parallel sequences and never changes,
which keeps every valuation pass over the same assets in the same order.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .core import LengthMismatch, UnknownAsset
from .oracle import OracleAdapter


@dataclass(frozen=True, slots=True)
class CollateralAsset:
    """
    One accepted collateral type.

    Attributes:
        asset: Unique asset identifier
        oracle: Adapter pricing this asset
        index: Position in registry order
    """
    asset: str
    oracle: OracleAdapter
    index: int


class CollateralRegistry:
    """
    Immutable mapping of collateral assets to their oracle adapters.

    Example:
        registry = CollateralRegistry(
            ["WETH", "WBTC"],
            [OracleAdapter(feed, "WETH"), OracleAdapter(feed, "WBTC")],
        )
        registry.list_assets()  # ('WETH', 'WBTC')
    """

    def __init__(self, assets: Sequence[str], oracles: Sequence[OracleAdapter]):
        """
        Args:
            assets: Asset identifiers, in valuation order
            oracles: One adapter per asset, same order

        Raises:
            LengthMismatch: If the sequences differ in length
            ValueError: If an asset identifier is empty or repeated
        """
        if len(assets) != len(oracles):
            raise LengthMismatch(len(assets), len(oracles))
        entries: Dict[str, CollateralAsset] = {}
        for index, (asset, oracle) in enumerate(zip(assets, oracles)):
            if not asset or not asset.strip():
                raise ValueError("Collateral asset identifier cannot be empty")
            if asset in entries:
                raise ValueError(f"Collateral asset {asset} already registered")
            entries[asset] = CollateralAsset(asset, oracle, index)
        self._entries = entries
        self._order: Tuple[str, ...] = tuple(assets)

    def is_accepted(self, asset: str) -> bool:
        """Check whether an asset is registered as collateral."""
        return asset in self._entries

    def oracle_for(self, asset: str) -> OracleAdapter:
        """
        Return the adapter pricing an asset.

        Raises:
            UnknownAsset: If the asset is not registered
        """
        return self.get(asset).oracle

    def get(self, asset: str) -> CollateralAsset:
        """Return the registry entry for an asset, raising UnknownAsset if absent."""
        entry = self._entries.get(asset)
        if entry is None:
            raise UnknownAsset(asset)
        return entry

    def list_assets(self) -> Tuple[str, ...]:
        """Return asset identifiers in registration order."""
        return self._order

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, asset: object) -> bool:
        return asset in self._entries

    def __repr__(self):
        return f"CollateralRegistry({', '.join(self._order)})"
