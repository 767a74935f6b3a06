"""
test_pricing.py - Unit tests for phase pricing

Tests:
- effective_rate: discount raises the token rate, floored
- cost_due: rounded up so a buyer is never under-charged
- argument validation
"""

import pytest
from hypothesis import given, strategies as st

from tokensale import ceil_div, effective_rate, cost_for, cost_due, MAX_DISCOUNT_BPS


class TestEffectiveRate:

    def test_no_discount_is_base_price(self):
        assert effective_rate(5, 0) == 5

    def test_discount_raises_rate(self):
        # 5 * 1000 / 495 = 10.1 -> 10
        assert effective_rate(5, 505) == 10
        # 5 * 1000 / 750 = 6.67 -> 6
        assert effective_rate(5, 250) == 6

    def test_rate_is_floored_not_truncated_early(self):
        # 7 * 1000 / 300 = 23.33; dividing first (1000 // 300 = 3) would give 21
        assert effective_rate(7, 700) == 23

    def test_large_base_price_keeps_precision(self):
        base = 10 ** 30 + 7
        assert effective_rate(base, 1) == base * 1000 // 999

    def test_full_discount_is_unbounded(self):
        assert effective_rate(5, MAX_DISCOUNT_BPS) is None

    @pytest.mark.parametrize("discount", [-1, 1001, 2000])
    def test_out_of_range_discount_rejected(self, discount):
        with pytest.raises(ValueError):
            effective_rate(5, discount)

    def test_non_positive_base_price_rejected(self):
        with pytest.raises(ValueError):
            effective_rate(0, 100)

    def test_float_rejected(self):
        with pytest.raises(ValueError):
            effective_rate(5.0, 100)


class TestCostDue:

    def test_exact_division(self):
        assert cost_due(400, 5, 505) == 40

    def test_rounds_up(self):
        assert cost_due(401, 5, 505) == 41
        assert cost_due(1, 5, 0) == 1

    def test_zero_amount_costs_nothing(self):
        assert cost_due(0, 5, 0) == 0

    def test_full_discount_is_free(self):
        assert cost_due(1_000, 5, MAX_DISCOUNT_BPS) == 0
        assert cost_for(1_000, None) == 0

    def test_eighteen_decimal_amounts(self):
        units = 10 ** 18
        assert cost_due(400 * units, 5, 505) == 40 * units
        assert cost_due(2 * units, 5, 0) == 4 * 10 ** 17

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            cost_for(-1, 5)

    def test_ceil_div_requires_positive_denominator(self):
        with pytest.raises(ValueError):
            ceil_div(1, 0)


class TestPricingProperties:

    @given(
        amount=st.integers(min_value=0, max_value=10 ** 24),
        base_price=st.integers(min_value=1, max_value=10 ** 6),
        discount=st.integers(min_value=0, max_value=999),
    )
    def test_never_under_charges(self, amount, base_price, discount):
        """cost * rate always covers the tokens, and one unit less would not."""
        rate = effective_rate(base_price, discount)
        cost = cost_due(amount, base_price, discount)
        assert cost * rate >= amount
        if cost:
            assert (cost - 1) * rate < amount

    @given(
        parts=st.lists(st.integers(min_value=1, max_value=10 ** 6), min_size=1, max_size=20),
        base_price=st.integers(min_value=1, max_value=1000),
        discount=st.integers(min_value=0, max_value=999),
    )
    def test_split_purchases_never_cheaper(self, parts, base_price, discount):
        """Buying in pieces cannot cost less than one equivalent purchase."""
        whole = cost_due(sum(parts), base_price, discount)
        pieces = sum(cost_due(p, base_price, discount) for p in parts)
        assert pieces >= whole

    @given(
        base_price=st.integers(min_value=1, max_value=10 ** 6),
        low=st.integers(min_value=0, max_value=999),
        high=st.integers(min_value=0, max_value=999),
    )
    def test_bigger_discount_never_lowers_rate(self, base_price, low, high):
        low, high = sorted((low, high))
        assert effective_rate(base_price, high) >= effective_rate(base_price, low)
