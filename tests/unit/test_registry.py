"""
test_registry.py - Unit tests for CollateralRegistry
"""

import pytest
from datetime import datetime

from stableledger import (
    CollateralRegistry, OracleAdapter, StaticPriceFeed, LengthMismatch, UnknownAsset,
)


T0 = datetime(2024, 1, 1)


@pytest.fixture
def adapters():
    feed = StaticPriceFeed({"WETH": (2000_00000000, T0), "WBTC": (1000_00000000, T0)})
    return [OracleAdapter(feed, "WETH"), OracleAdapter(feed, "WBTC")]


class TestConstruction:

    def test_lists_assets_in_order(self, adapters):
        registry = CollateralRegistry(["WETH", "WBTC"], adapters)
        assert registry.list_assets() == ("WETH", "WBTC")
        assert len(registry) == 2

    def test_length_mismatch(self, adapters):
        with pytest.raises(LengthMismatch) as exc_info:
            CollateralRegistry(["WETH", "WBTC"], adapters[:1])
        assert exc_info.value.assets == 2
        assert exc_info.value.oracles == 1

    def test_duplicate_asset_rejected(self, adapters):
        with pytest.raises(ValueError):
            CollateralRegistry(["WETH", "WETH"], adapters)

    def test_empty_identifier_rejected(self, adapters):
        with pytest.raises(ValueError):
            CollateralRegistry(["", "WBTC"], adapters)

    def test_empty_registry_allowed(self):
        registry = CollateralRegistry([], [])
        assert registry.list_assets() == ()


class TestLookup:

    def test_oracle_for(self, adapters):
        registry = CollateralRegistry(["WETH", "WBTC"], adapters)
        assert registry.oracle_for("WBTC") is adapters[1]

    def test_unknown_asset(self, adapters):
        registry = CollateralRegistry(["WETH", "WBTC"], adapters)
        with pytest.raises(UnknownAsset) as exc_info:
            registry.oracle_for("DOGE")
        assert exc_info.value.asset == "DOGE"

    def test_membership(self, adapters):
        registry = CollateralRegistry(["WETH", "WBTC"], adapters)
        assert registry.is_accepted("WETH")
        assert "WBTC" in registry
        assert not registry.is_accepted("DOGE")

    def test_entry_index(self, adapters):
        registry = CollateralRegistry(["WETH", "WBTC"], adapters)
        assert registry.get("WBTC").index == 1
        assert registry.get("WETH").asset == "WETH"
