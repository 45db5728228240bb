"""
Price Conversion Conformance Tests

INVARIANT: USD conversions truncate and never create value.

    ∀ price p > 0, amount x ≥ 0:
        amount_from(p, value_of(p, x)) ≤ x
        x - amount_from(p, value_of(p, x)) ≤ 10**8 // p + 1
        x ≤ y ⟹ value_of(p, x) ≤ value_of(p, y)
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from dsc import (
    asset_amount_from_price, calculate_health_factor, liquidation_bonus,
    usd_value_from_price,
    MIN_HEALTH_FACTOR,
)

prices = st.integers(min_value=1, max_value=10**14)
amounts = st.integers(min_value=0, max_value=10**30)


class TestConversionProperties:

    @given(prices, amounts)
    @settings(max_examples=200)
    def test_round_trip_never_gains(self, price, amount):
        back = asset_amount_from_price(price, usd_value_from_price(price, amount))
        assert back <= amount

    @given(prices, amounts)
    @settings(max_examples=200)
    def test_round_trip_loss_is_bounded(self, price, amount):
        """Loss is at most one USD wei's worth of the asset, plus one."""
        back = asset_amount_from_price(price, usd_value_from_price(price, amount))
        assert amount - back <= 10**8 // price + 1

    @given(prices, amounts, amounts)
    def test_usd_value_monotonic(self, price, a, b):
        low, high = sorted((a, b))
        assert usd_value_from_price(price, low) <= usd_value_from_price(price, high)

    @given(prices, amounts, amounts)
    def test_asset_amount_monotonic(self, price, a, b):
        low, high = sorted((a, b))
        assert asset_amount_from_price(price, low) <= asset_amount_from_price(price, high)

    @given(amounts, prices, prices)
    def test_value_monotonic_in_price(self, amount, p1, p2):
        low, high = sorted((p1, p2))
        assert usd_value_from_price(low, amount) <= usd_value_from_price(high, amount)


class TestHealthFactorProperties:

    @given(
        st.integers(min_value=1, max_value=10**30),
        st.integers(min_value=0, max_value=10**30),
    )
    def test_healthy_iff_double_collateralized(self, debt, collateral_usd):
        """Healthy exactly when the truncated half of the collateral covers the debt."""
        healthy = calculate_health_factor(debt, collateral_usd) >= MIN_HEALTH_FACTOR
        assert healthy == (collateral_usd * 50 // 100 >= debt)

    @given(st.integers(min_value=0, max_value=10**30))
    def test_bonus_is_a_truncated_tenth(self, seized):
        bonus = liquidation_bonus(seized)
        assert bonus == seized // 10
        assert 0 <= seized - 10 * bonus < 10
