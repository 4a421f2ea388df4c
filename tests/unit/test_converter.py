"""
test_converter.py - Unit tests for fixed-point conversion

Tests:
- convert_amount: worked examples, rounding, decimal scaling
- Overflow: u64 inputs/outputs, u128 intermediates, zero denominator
- pow10 bounds
- quote / to_ui_amount helpers
- Property: conversion never issues more than the exact rational amount
"""

import pytest
from decimal import Decimal
from fractions import Fraction
from hypothesis import given, settings
from hypothesis import strategies as st

from redeemer import (
    ConfigurationRecord, MathOverflow, U64_MAX,
    convert_amount, pow10, quote, to_ui_amount,
)


class TestConvertAmount:
    """Worked conversions."""

    def test_ten_to_one_same_decimals(self):
        """1 OLD at 9 decimals, ratio 1:10 -> 0.1 NEW."""
        assert convert_amount(1_000_000_000, 1, 10, 9, 9) == 100_000_000

    def test_scale_up_decimals(self):
        """1 base unit at 6 decimals becomes 1000 base units at 9 decimals."""
        assert convert_amount(1, 1, 1, 6, 9) == 1_000

    def test_scale_down_decimals(self):
        assert convert_amount(1_000, 1, 1, 9, 6) == 1

    def test_rounds_down(self):
        """1999 base units at 9 -> 6 decimals is 1.999, floored to 1."""
        assert convert_amount(1_999, 1, 1, 9, 6) == 1

    def test_dust_converts_to_zero(self):
        assert convert_amount(9, 1, 10, 9, 9) == 0

    def test_zero_amount(self):
        assert convert_amount(0, 1, 10, 6, 9) == 0

    def test_zero_numerator(self):
        assert convert_amount(5_000_000, 0, 10, 6, 9) == 0

    def test_ratio_above_one(self):
        """3:2 ratio issues more new units than old."""
        assert convert_amount(2_000, 3, 2, 6, 6) == 3_000

    def test_six_to_nine_with_ratio(self):
        """10 OLD (6 dp) at 1:10 -> 1 NEW (9 dp)."""
        assert convert_amount(10_000_000, 1, 10, 6, 9) == 1_000_000_000


class TestConvertAmountOverflow:
    """Width enforcement and invalid inputs."""

    def test_zero_denominator_raises(self):
        with pytest.raises(MathOverflow):
            convert_amount(1_000, 1, 0, 6, 9)

    def test_result_exceeding_u64_raises(self):
        with pytest.raises(MathOverflow):
            convert_amount(U64_MAX, 2, 1, 0, 0)

    def test_intermediate_exceeding_u128_raises(self):
        """U64_MAX * U64_MAX fits u128; scaling by 10 does not."""
        with pytest.raises(MathOverflow):
            convert_amount(U64_MAX, U64_MAX, U64_MAX, 0, 1)

    def test_max_amount_identity_ratio(self):
        assert convert_amount(U64_MAX, 1, 1, 0, 0) == U64_MAX

    def test_input_above_u64_raises(self):
        with pytest.raises(MathOverflow):
            convert_amount(U64_MAX + 1, 1, 1, 0, 0)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            convert_amount(-1, 1, 1, 0, 0)

    def test_decimals_beyond_u128_raise(self):
        with pytest.raises(MathOverflow):
            convert_amount(1, 1, 1, 0, 39)


class TestPow10:

    def test_values(self):
        assert pow10(0) == 1
        assert pow10(9) == 1_000_000_000
        assert pow10(38) == 10**38

    def test_above_38_raises(self):
        with pytest.raises(MathOverflow):
            pow10(39)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            pow10(-1)


class TestHelpers:

    def test_quote_uses_record_parameters(self):
        record = ConfigurationRecord(
            admin="gov", old_asset_id="OLD", new_asset_id="NEW",
            ratio_numerator=1, ratio_denominator=10,
            old_decimals=6, new_decimals=9,
            total_cap=10**18, migration_cap=6 * 10**17,
        )
        assert quote(record, 10_000_000) == 1_000_000_000

    def test_to_ui_amount_is_exact(self):
        assert to_ui_amount(1_500_000, 6) == Decimal("1.5")
        assert to_ui_amount(1, 9) == Decimal("0.000000001")
        assert to_ui_amount(0, 9) == 0


# =============================================================================
# PROPERTIES
# =============================================================================

class TestConversionProperties:

    @given(
        amount=st.integers(min_value=0, max_value=10**15),
        num=st.integers(min_value=0, max_value=1_000),
        den=st.integers(min_value=1, max_value=1_000),
        old_dec=st.integers(min_value=0, max_value=12),
        new_dec=st.integers(min_value=0, max_value=12),
    )
    @settings(max_examples=200)
    def test_never_issues_more_than_exact_amount(self, amount, num, den, old_dec, new_dec):
        """
        PROPERTY: result == floor(exact), so result <= exact < result + 1.
        """
        exact = Fraction(amount * num * 10**new_dec, den * 10**old_dec)
        try:
            result = convert_amount(amount, num, den, old_dec, new_dec)
        except MathOverflow:
            assert exact > U64_MAX or amount * num * 10**new_dec > 2**128 - 1
            return
        assert result <= exact < result + 1

    @given(
        a=st.integers(min_value=0, max_value=10**12),
        b=st.integers(min_value=0, max_value=10**12),
    )
    def test_monotonic_in_amount(self, a, b):
        lo, hi = sorted((a, b))
        assert convert_amount(lo, 1, 10, 6, 9) <= convert_amount(hi, 1, 10, 6, 9)
