"""
Tests for integer-cent money helpers.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from pos_shared.utils.money import (
    allocate_pro_rata,
    apply_bps,
    format_cents,
    percent_to_bps,
    round_half_up,
    round_to_whole_unit,
)


class TestRounding:

    def test_round_half_up_rounds_halves_away_from_zero(self):
        assert round_half_up(Decimal("247.5")) == 248
        assert round_half_up(Decimal("247.49")) == 247
        assert round_half_up(Decimal("0.5")) == 1

    def test_apply_bps(self):
        """2.5% of 99.00 is 2.475, which rounds to 2.48."""
        assert apply_bps(9900, 250) == 248
        assert apply_bps(24000, 250) == 600
        assert apply_bps(0, 250) == 0

    @pytest.mark.parametrize(
        "cents,expected",
        [(38986, 39000), (38950, 39000), (38949, 38900), (100, 100), (0, 0)],
    )
    def test_round_to_whole_unit(self, cents, expected):
        assert round_to_whole_unit(cents) == expected

    def test_percent_to_bps(self):
        assert percent_to_bps(2.5) == 250
        assert percent_to_bps("10") == 1000
        assert percent_to_bps(Decimal("0.01")) == 1

    def test_format_cents(self):
        assert format_cents(32050) == "320.50"
        assert format_cents(5) == "0.05"
        assert format_cents(-1401) == "-14.01"


class TestAllocateProRata:

    def test_splits_exactly_in_proportion(self):
        assert allocate_pro_rata(3390, [24000, 9900]) == [2400, 990]

    def test_leftover_cents_go_to_largest_remainders(self):
        assert allocate_pro_rata(100, [1, 1, 1]) == [34, 33, 33]
        assert allocate_pro_rata(10, [1, 2]) == [3, 7]

    def test_zero_total_or_weights(self):
        assert allocate_pro_rata(0, [5, 5]) == [0, 0]
        assert allocate_pro_rata(50, [0, 0]) == [0, 0]
        assert allocate_pro_rata(50, []) == []

    @given(
        total=st.integers(min_value=0, max_value=10_000_000),
        weights=st.lists(st.integers(min_value=1, max_value=1_000_000), min_size=1, max_size=20),
    )
    @settings(max_examples=200)
    def test_shares_always_sum_to_total(self, total, weights):
        """Property: shares sum exactly and each is within one cent of its exact share."""
        shares = allocate_pro_rata(total, weights)
        assert sum(shares) == total
        weight_sum = sum(weights)
        for share, weight in zip(shares, weights):
            exact = Decimal(total) * weight / weight_sum
            assert abs(Decimal(share) - exact) < 1
