"""
test_valuation.py - Unit tests for valuation and health factors

Tests:
- Pure calculations: usd value, token amount, health factor, seizure
- View functions over a FakeEngineView: per-asset values, totals,
  zero-debt short-circuit, staleness propagation
"""

import pytest

from stableledger import (
    PRECISION, INFINITE_HEALTH_FACTOR, DivideByZeroPrice, StalePrice,
    calculate_usd_value, calculate_token_amount, calculate_health_factor,
    calculate_liquidation_seizure, usd_value, token_amount_from_usd,
    collateral_values, total_collateral_value, account_information, health_factor,
)
from tests.fake_view import FakeEngineView


ETH = 2000_00000000
BTC = 1000_00000000


class TestCalculateUsdValue:

    def test_fifteen_eth_at_2000(self):
        assert calculate_usd_value(ETH, 15 * PRECISION) == 30_000 * PRECISION

    def test_zero_amount(self):
        assert calculate_usd_value(ETH, 0) == 0

    def test_truncates(self):
        # $0.00000001 per unit, one wei is worth less than one unit of value
        assert calculate_usd_value(1, 1) == 0

    def test_negative_price_passes_through(self):
        assert calculate_usd_value(-ETH, PRECISION) == -2000 * PRECISION


class TestCalculateTokenAmount:

    def test_hundred_dollars_of_eth(self):
        assert calculate_token_amount(ETH, 100 * PRECISION) == PRECISION // 20

    def test_zero_price(self):
        with pytest.raises(DivideByZeroPrice) as exc_info:
            calculate_token_amount(0, PRECISION, "WETH")
        assert exc_info.value.asset == "WETH"

    def test_inverse_of_usd_value(self):
        amount = 7 * PRECISION + 123
        assert calculate_token_amount(ETH, calculate_usd_value(ETH, amount)) in (amount - 1, amount)


class TestCalculateHealthFactor:

    def test_no_debt_is_infinite(self):
        assert calculate_health_factor(0, 0) == INFINITE_HEALTH_FACTOR
        assert calculate_health_factor(0, 1000 * PRECISION) == INFINITE_HEALTH_FACTOR

    def test_half_of_collateral_counts(self):
        # $1000 collateral, $100 debt -> 500 / 100
        assert calculate_health_factor(100 * PRECISION, 1000 * PRECISION) == 5 * PRECISION

    def test_exactly_one(self):
        assert calculate_health_factor(500 * PRECISION, 1000 * PRECISION) == PRECISION

    def test_two_and_a_half(self):
        assert calculate_health_factor(4000 * PRECISION, 20_000 * PRECISION) == 5 * PRECISION // 2

    def test_custom_threshold(self):
        assert calculate_health_factor(100 * PRECISION, 100 * PRECISION, 80) == 8 * PRECISION // 10

    def test_no_collateral_with_debt(self):
        assert calculate_health_factor(1, 0) == 0


class TestCalculateLiquidationSeizure:

    def test_ten_percent_bonus(self):
        assert calculate_liquidation_seizure(10 * PRECISION) == (11 * PRECISION, PRECISION)

    def test_bonus_truncates(self):
        assert calculate_liquidation_seizure(15) == (16, 1)

    def test_zero_bonus(self):
        assert calculate_liquidation_seizure(10, 0) == (10, 0)


class TestViewFunctions:

    @pytest.fixture
    def view(self):
        return FakeEngineView(
            collateral={"alice": {"WETH": 10 * PRECISION, "WBTC": 2 * PRECISION}},
            minted={"alice": 1000 * PRECISION},
            prices={"WETH": ETH, "WBTC": BTC},
        )

    def test_usd_value(self, view):
        assert usd_value(view, "WETH", 15 * PRECISION) == 30_000 * PRECISION

    def test_token_amount_from_usd(self, view):
        assert token_amount_from_usd(view, "WETH", 100 * PRECISION) == PRECISION // 20

    def test_collateral_values_in_registry_order(self, view):
        values = collateral_values(view, "alice")
        assert list(values) == ["WETH", "WBTC"]
        assert values == {"WETH": 20_000 * PRECISION, "WBTC": 2000 * PRECISION}

    def test_total_collateral_value(self, view):
        assert total_collateral_value(view, "alice") == 22_000 * PRECISION

    def test_total_for_user_without_collateral(self, view):
        assert total_collateral_value(view, "nobody") == 0

    def test_account_information(self, view):
        info = account_information(view, "alice")
        assert info.minted == 1000 * PRECISION
        assert info.collateral_value == 22_000 * PRECISION

    def test_health_factor(self, view):
        assert health_factor(view, "alice") == 11 * PRECISION

    def test_zero_debt_reads_no_price(self, view):
        assert health_factor(view, "nobody") == INFINITE_HEALTH_FACTOR
        assert view.price_reads == 0

    def test_stale_unheld_asset_blocks_valuation(self):
        view = FakeEngineView(
            collateral={"alice": {"WETH": 10 * PRECISION}},
            minted={"alice": PRECISION},
            prices={"WETH": ETH, "WBTC": BTC},
            stale=("WBTC",),
        )
        with pytest.raises(StalePrice):
            health_factor(view, "alice")

    def test_stale_price_ignored_without_debt(self):
        view = FakeEngineView(
            collateral={"alice": {"WETH": 10 * PRECISION}},
            prices={"WETH": ETH},
            stale=("WETH",),
        )
        assert health_factor(view, "alice") == INFINITE_HEALTH_FACTOR
