"""Unit tests for financial calculations."""

import pytest
from hypothesis import given, assume, settings, strategies as st

from invoice_discrepancy.models.invoice_record import InvoiceLineItem
from invoice_discrepancy.pipeline.financial_calculations import (
    ERROR_INVALID_DATA_TYPE,
    ERROR_OUT_OF_RANGE,
    apply_rounding,
    calculate_discount,
    calculate_line_item_total,
    calculate_percentage_difference,
    calculate_subtotal,
    calculate_tax,
    calculate_total,
    is_within_tolerance,
    parse_currency_value,
)

cents = st.integers(min_value=0, max_value=10**8).map(lambda c: c / 100)
rates = st.floats(min_value=0, max_value=100, allow_nan=False)


class TestRounding:
    """Test apply_rounding and tolerance helpers."""

    def test_round_half_up(self):
        assert apply_rounding(2.5, 0) == 3.0
        assert apply_rounding(-2.5, 0) == -2.0

    def test_floor_and_ceil(self):
        assert apply_rounding(1.239, 2, "floor") == 1.23
        assert apply_rounding(1.231, 2, "ceil") == 1.24

    def test_unknown_method_falls_back_to_round(self):
        assert apply_rounding(2.5, 0, "banker") == 3.0

    def test_overflow(self):
        with pytest.raises(OverflowError):
            apply_rounding(1e307, 2)
        with pytest.raises(OverflowError):
            apply_rounding(float("inf"), 2)

    def test_is_within_tolerance(self):
        assert is_within_tolerance(10.0, 10.005)
        assert not is_within_tolerance(10.0, 10.02)
        assert is_within_tolerance(10.0, 10.5, tolerance=1.0)


class TestPercentageDifference:
    """Test zero handling of calculate_percentage_difference."""

    def test_both_zero(self):
        assert calculate_percentage_difference(0, 0) == 0

    def test_original_zero(self):
        assert calculate_percentage_difference(0, 5) == 100
        assert calculate_percentage_difference(0, -3) == 100

    def test_relative_difference(self):
        assert calculate_percentage_difference(200, 150) == 25.0


class TestCalculateTax:
    """Test tax calculation."""

    def test_standard_rate(self):
        result = calculate_tax(100, 10)

        assert result.is_valid
        assert result.tax_amount == 10.0
        assert result.method == "standard"
        assert result.breakdown["tax_decimal"] == 0.1

    def test_rate_out_of_range(self):
        result = calculate_tax(100, 150)

        assert not result.is_valid
        assert result.tax_amount == 0.0
        assert result.error == "Tax rate must be between 0 and 100"
        assert result.breakdown["error_type"] == ERROR_OUT_OF_RANGE

    def test_negative_amount(self):
        result = calculate_tax(-1, 10)

        assert not result.is_valid
        assert "non-negative" in result.error

    def test_non_numeric_amount(self):
        result = calculate_tax("100", 10)

        assert not result.is_valid
        assert result.breakdown["error_type"] == ERROR_INVALID_DATA_TYPE

    def test_infinite_amount(self):
        result = calculate_tax(float("inf"), 10)

        assert not result.is_valid
        assert result.tax_amount == 0.0
        assert result.breakdown["error_type"] == ERROR_OUT_OF_RANGE

    @given(amount=st.floats(min_value=0, max_value=1e6, allow_nan=False), rate=rates)
    @settings(max_examples=200)
    def test_tax_matches_rounded_product(self, amount, rate):
        result = calculate_tax(amount, rate)

        assert result.is_valid
        assert result.tax_amount == apply_rounding(amount * (rate / 100), 2, "round")


class TestCalculateDiscount:
    """Test discount calculation."""

    def test_percentage_discount(self):
        result = calculate_discount(200, 10)

        assert result.is_valid
        assert result.discount_amount == 20.0
        assert result.final_amount == 180.0
        assert result.discount_rate == 10.0

    def test_fixed_discount(self):
        result = calculate_discount(200, 50, "fixed")

        assert result.is_valid
        assert result.discount_amount == 50.0
        assert result.discount_rate == 25.0

    def test_percentage_over_100(self):
        result = calculate_discount(100, 150)

        assert not result.is_valid
        assert result.error == "Percentage discount cannot exceed 100%"
        assert result.final_amount == 100

    def test_fixed_over_amount(self):
        result = calculate_discount(100, 150, "fixed")

        assert not result.is_valid
        assert result.error == "Fixed discount cannot exceed original amount"

    def test_unknown_type(self):
        result = calculate_discount(100, 10, "coupon")

        assert not result.is_valid
        assert "Invalid discount type" in result.error


class TestCalculateTotal:
    """Test total calculation."""

    def test_total(self):
        result = calculate_total(100, 25, 10)

        assert result.is_valid
        assert result.value == 115.0
        assert result.inputs == {"base_amount": 100, "tax_amount": 25, "discount_amount": 10}

    def test_negative_total(self):
        result = calculate_total(10, 0, 20)

        assert not result.is_valid
        assert result.value == 0.0
        assert result.formula == "Error in calculation"
        assert result.warnings == ["Total amount cannot be negative"]

    def test_total_too_large_to_round(self):
        result = calculate_total(1e307, 0, 0)

        assert not result.is_valid
        assert result.value == 0.0
        assert result.error_type == ERROR_OUT_OF_RANGE

    @given(base=cents, tax=cents, rate=rates)
    @settings(max_examples=200)
    def test_total_with_calculated_discount(self, base, tax, rate):
        discount = calculate_discount(base, rate).discount_amount
        assume(base + tax - discount >= 0)

        result = calculate_total(base, tax, discount)

        assert result.is_valid
        assert result.value == apply_rounding(base + tax - discount, 2, "round")


class TestLineItems:
    """Test line item and subtotal calculation."""

    def test_line_item_total(self):
        result = calculate_line_item_total(3, 19.99)

        assert result.is_valid
        assert result.value == 59.97

    def test_line_item_missing_quantity(self):
        result = calculate_line_item_total(None, 19.99)

        assert not result.is_valid
        assert result.error_type == ERROR_INVALID_DATA_TYPE

    def test_subtotal_skips_invalid_items(self):
        items = [
            {"line_total": 10.0},
            {"id": "L2", "line_total": "n/a"},
            InvoiceLineItem(line_item_id="L3", line_total=5.5),
        ]

        result = calculate_subtotal(items)

        assert result.is_valid
        assert result.value == 15.5
        assert result.warnings == ["Invalid line total for item L2"]
        assert result.inputs["line_item_count"] == 3

    def test_line_item_overflow(self):
        result = calculate_line_item_total(1e200, 1e200)

        assert not result.is_valid
        assert result.value == 0.0
        assert result.error_type == ERROR_OUT_OF_RANGE

    def test_subtotal_overflow(self):
        result = calculate_subtotal([{"line_total": 1e308}, {"line_total": 1e308}])

        assert not result.is_valid
        assert result.error_type == ERROR_OUT_OF_RANGE

    def test_subtotal_skips_infinite_line_total(self):
        result = calculate_subtotal([{"id": "L1", "line_total": float("inf")}, {"line_total": 2.0}])

        assert result.is_valid
        assert result.value == 2.0
        assert result.warnings == ["Invalid line total for item L1"]

    def test_subtotal_requires_list(self):
        result = calculate_subtotal("not a list")

        assert not result.is_valid
        assert result.warnings == ["Line items must be a list"]


class TestParseCurrencyValue:
    """Test currency parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("$1,250.00", 1250.0),
        ("1 250", 1250.0),
        ("€ 99.50", 99.5),
        (12, 12.0),
        (12.5, 12.5),
    ])
    def test_parses(self, raw, expected):
        assert parse_currency_value(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", None, True, float("nan"), float("inf"), "-inf", 10 ** 400, [1]])
    def test_rejects(self, raw):
        assert parse_currency_value(raw) is None
