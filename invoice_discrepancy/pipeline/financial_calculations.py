"""Financial calculations for recomputing invoice fields.

All functions are pure. Domain-rule violations (negative amounts, rates out
of range, values too large to round) and badly typed arguments are reported through an invalid result
object, never raised to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional


ROUNDING_METHODS = ("round", "floor", "ceil")

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"

ERROR_FORMULA = "formula_error"
ERROR_INVALID_DATA_TYPE = "invalid_data_type"
ERROR_OUT_OF_RANGE = "out_of_range"

_CURRENCY_SYMBOLS = re.compile(r"[$€£¥₹]")
_SEPARATORS = re.compile(r"[,\s]")


@dataclass(frozen=True)
class CalculationResult:
    """Generic calculation result.

    Attributes:
        value: Calculated value (0.0 when invalid)
        is_valid: Whether the calculation succeeded
        formula: Formula used, or "Error in calculation"
        inputs: Input values used
        warnings: Warnings, or the error message when invalid
    """
    value: float
    is_valid: bool
    formula: str
    inputs: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    error_type: Optional[str] = None


@dataclass(frozen=True)
class TaxCalculationResult:
    """Tax calculation result with a breakdown of how it was computed."""
    tax_amount: float
    tax_rate: Any
    taxable_amount: Any
    is_valid: bool
    method: str
    breakdown: Dict[str, Any] = field(default_factory=dict)

    @property
    def error(self) -> Optional[str]:
        return self.breakdown.get("error")


@dataclass(frozen=True)
class DiscountCalculationResult:
    """Discount calculation result."""
    discount_amount: float
    discount_rate: float
    original_amount: Any
    final_amount: Any
    discount_type: str
    is_valid: bool
    error: Optional[str] = None
    error_type: Optional[str] = None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _require_non_negative(value: Any, label: str) -> None:
    if not _is_number(value):
        if isinstance(value, float) and math.isinf(value):
            raise ValueError(f"{label} must be a finite number")
        raise TypeError(f"{label} must be a non-negative number")
    if value < 0:
        raise ValueError(f"{label} must be a non-negative number")


def _error_type(error: Exception) -> str:
    return ERROR_INVALID_DATA_TYPE if isinstance(error, TypeError) else ERROR_OUT_OF_RANGE


def apply_rounding(value: float, precision: int = 2, method: str = "round") -> float:
    """Round value to precision decimals.

    Scales by 10**precision, applies the rounding method and rescales.
    "round" rounds halves up (towards +inf); unknown methods fall back to it.

    Args:
        value: Value to round
        precision: Number of decimals
        method: "round", "floor" or "ceil"

    Returns:
        Rounded value

    Raises:
        OverflowError: If the scaled value is not finite
    """
    multiplier = 10 ** precision
    scaled = value * multiplier
    if math.isinf(scaled):
        raise OverflowError(f"Cannot round {value} to {precision} decimals")

    if method == "floor":
        return math.floor(scaled) / multiplier
    if method == "ceil":
        return math.ceil(scaled) / multiplier
    return math.floor(scaled + 0.5) / multiplier


def is_within_tolerance(value1: float, value2: float, tolerance: float = 0.01) -> bool:
    """True if |value1 - value2| <= tolerance."""
    return abs(value1 - value2) <= tolerance


def calculate_percentage_difference(original_value: float, compared_value: float) -> float:
    """Percentage difference of compared_value relative to original_value.

    Zero handling is asymmetric: 0 when both are zero, 100 when only the
    original is zero.
    """
    if original_value == 0 and compared_value == 0:
        return 0.0
    if original_value == 0:
        return 100.0
    return abs((compared_value - original_value) / original_value) * 100


def calculate_tax(
    taxable_amount: float,
    tax_rate: float,
    precision: int = 2,
    rounding_method: str = "round",
) -> TaxCalculationResult:
    """Calculate tax amount from a taxable amount and a rate in percent.

    Args:
        taxable_amount: Amount subject to tax (>= 0)
        tax_rate: Tax rate as percentage, 0-100 (e.g. 25 for 25%)
        precision: Decimal precision
        rounding_method: "round", "floor" or "ceil"

    Returns:
        TaxCalculationResult (is_valid=False with breakdown["error"] on bad input)
    """
    try:
        _require_non_negative(taxable_amount, "Taxable amount")
        if not _is_number(tax_rate):
            raise TypeError("Tax rate must be between 0 and 100")
        if tax_rate < 0 or tax_rate > 100:
            raise ValueError("Tax rate must be between 0 and 100")

        tax_decimal = tax_rate / 100
        tax_amount = apply_rounding(taxable_amount * tax_decimal, precision, rounding_method)

        return TaxCalculationResult(
            tax_amount=tax_amount,
            tax_rate=tax_rate,
            taxable_amount=taxable_amount,
            is_valid=True,
            method="standard",
            breakdown={
                "tax_decimal": tax_decimal,
                "calculation_formula": f"{taxable_amount} × {tax_decimal} = {tax_amount}",
                "rounding_applied": rounding_method,
                "precision": precision,
            },
        )
    except (TypeError, ValueError, OverflowError) as e:
        return TaxCalculationResult(
            tax_amount=0.0,
            tax_rate=tax_rate,
            taxable_amount=taxable_amount,
            is_valid=False,
            method="error",
            breakdown={"error": str(e), "error_type": _error_type(e)},
        )


def calculate_discount(
    original_amount: float,
    discount_value: float,
    discount_type: str = DISCOUNT_PERCENTAGE,
    precision: int = 2,
    rounding_method: str = "round",
) -> DiscountCalculationResult:
    """Calculate a discount from a percentage or a fixed value.

    Args:
        original_amount: Amount before discount (>= 0)
        discount_value: Percentage (0-100) or fixed amount (<= original_amount)
        discount_type: "percentage" or "fixed"
        precision: Decimal precision
        rounding_method: "round", "floor" or "ceil"

    Returns:
        DiscountCalculationResult with discount amount, effective rate
        (percent, 2 decimals) and final amount
    """
    try:
        _require_non_negative(original_amount, "Original amount")
        _require_non_negative(discount_value, "Discount value")

        if discount_type == DISCOUNT_PERCENTAGE:
            if discount_value > 100:
                raise ValueError("Percentage discount cannot exceed 100%")
            discount_rate = discount_value
            discount_amount = original_amount * discount_value / 100
        elif discount_type == DISCOUNT_FIXED:
            if discount_value > original_amount:
                raise ValueError("Fixed discount cannot exceed original amount")
            discount_amount = discount_value
            discount_rate = discount_value / original_amount * 100 if original_amount else 0.0
        else:
            raise ValueError('Invalid discount type. Must be "percentage" or "fixed"')

        discount_amount = apply_rounding(discount_amount, precision, rounding_method)
        final_amount = apply_rounding(original_amount - discount_amount, precision, rounding_method)

        return DiscountCalculationResult(
            discount_amount=discount_amount,
            discount_rate=apply_rounding(discount_rate, 2, rounding_method),
            original_amount=original_amount,
            final_amount=final_amount,
            discount_type=discount_type,
            is_valid=True,
        )
    except (TypeError, ValueError, OverflowError) as e:
        return DiscountCalculationResult(
            discount_amount=0.0,
            discount_rate=0.0,
            original_amount=original_amount,
            final_amount=original_amount,
            discount_type=discount_type,
            is_valid=False,
            error=str(e),
            error_type=_error_type(e),
        )


def calculate_total(
    base_amount: float,
    tax_amount: float = 0,
    discount_amount: float = 0,
    precision: int = 2,
    rounding_method: str = "round",
) -> CalculationResult:
    """Calculate total = base + tax - discount.

    Returns:
        CalculationResult (invalid if any input or the result is negative)
    """
    inputs = {
        "base_amount": base_amount,
        "tax_amount": tax_amount,
        "discount_amount": discount_amount,
    }
    try:
        _require_non_negative(base_amount, "Base amount")
        _require_non_negative(tax_amount, "Tax amount")
        _require_non_negative(discount_amount, "Discount amount")

        total_amount = base_amount + tax_amount - discount_amount
        if total_amount < 0:
            raise ValueError("Total amount cannot be negative")

        total_amount = apply_rounding(total_amount, precision, rounding_method)

        return CalculationResult(
            value=total_amount,
            is_valid=True,
            formula=f"{base_amount} + {tax_amount} - {discount_amount} = {total_amount}",
            inputs=inputs,
        )
    except (TypeError, ValueError, OverflowError) as e:
        return CalculationResult(
            value=0.0,
            is_valid=False,
            formula="Error in calculation",
            inputs=inputs,
            warnings=[str(e)],
            error_type=_error_type(e),
        )


def calculate_line_item_total(
    quantity: float,
    unit_price: float,
    precision: int = 2,
    rounding_method: str = "round",
) -> CalculationResult:
    """Calculate line total = quantity × unit_price."""
    inputs = {"quantity": quantity, "unit_price": unit_price}
    try:
        _require_non_negative(quantity, "Quantity")
        _require_non_negative(unit_price, "Unit price")

        line_total = apply_rounding(quantity * unit_price, precision, rounding_method)

        return CalculationResult(
            value=line_total,
            is_valid=True,
            formula=f"{quantity} × {unit_price} = {line_total}",
            inputs=inputs,
        )
    except (TypeError, ValueError, OverflowError) as e:
        return CalculationResult(
            value=0.0,
            is_valid=False,
            formula="Error in calculation",
            inputs=inputs,
            warnings=[str(e)],
            error_type=_error_type(e),
        )


def _item_attr(item: Any, *names: str) -> Any:
    for name in names:
        if isinstance(item, Mapping):
            if name in item:
                return item[name]
        elif hasattr(item, name):
            return getattr(item, name)
    return None


def calculate_subtotal(
    line_items: Iterable[Any],
    precision: int = 2,
    rounding_method: str = "round",
) -> CalculationResult:
    """Sum the precomputed line totals of line_items.

    Items without a numeric line total are skipped and reported in
    warnings; the sum proceeds over the remaining items.

    Args:
        line_items: InvoiceLineItem objects or mappings with "line_total"
        precision: Decimal precision
        rounding_method: "round", "floor" or "ceil"
    """
    if isinstance(line_items, (str, bytes, Mapping)) or not hasattr(line_items, "__iter__"):
        return CalculationResult(
            value=0.0,
            is_valid=False,
            formula="Error in calculation",
            inputs={"line_item_count": 0},
            warnings=["Line items must be a list"],
            error_type=ERROR_INVALID_DATA_TYPE,
        )

    items = list(line_items)
    inputs = {
        "line_item_count": len(items),
        "line_items": [
            {
                "id": _item_attr(item, "line_item_id", "id"),
                "line_total": _item_attr(item, "line_total", "lineTotal"),
            }
            for item in items
        ],
    }
    subtotal = 0.0
    warnings = []

    try:
        for item in items:
            line_total = _item_attr(item, "line_total", "lineTotal")
            if not _is_number(line_total):
                item_id = _item_attr(item, "line_item_id", "id") or "unknown"
                warnings.append(f"Invalid line total for item {item_id}")
                continue
            subtotal += line_total
        subtotal = apply_rounding(subtotal, precision, rounding_method)
    except OverflowError as e:
        return CalculationResult(
            value=0.0,
            is_valid=False,
            formula="Error in calculation",
            inputs=inputs,
            warnings=warnings + [str(e)],
            error_type=ERROR_OUT_OF_RANGE,
        )

    return CalculationResult(
        value=subtotal,
        is_valid=True,
        formula=f"Sum of {len(items)} line items = {subtotal}",
        inputs=inputs,
        warnings=warnings,
    )


def parse_currency_value(value: Any) -> Optional[float]:
    """Parse a currency value ("$1,250.00", "1 250", 12.5) into a float.

    Returns:
        Parsed float, or None when the value is not a finite number
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = _SEPARATORS.sub("", _CURRENCY_SYMBOLS.sub("", value)).strip()
    elif not isinstance(value, (int, float)):
        return None

    try:
        parsed = float(value)
    except (ValueError, OverflowError):
        return None
    return parsed if math.isfinite(parsed) else None
