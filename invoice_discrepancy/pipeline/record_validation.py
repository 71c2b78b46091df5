"""Per-record field checks: declared values against recomputed values."""

from __future__ import annotations

from datetime import datetime
import logging
import math
from typing import List, Optional

from ..config.validation_config import ValidationConfig, DEFAULT_VALIDATION_CONFIG
from ..models.invoice_record import InvoiceRecord
from ..models.validation_result import (
    FIELD_DISCOUNT_AMOUNT,
    FIELD_SUBTOTAL,
    FIELD_TAX_AMOUNT,
    FIELD_TOTAL_AMOUNT,
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_NONE,
    ValidationResult,
    line_item_field,
)
from .financial_calculations import (
    DISCOUNT_FIXED,
    DISCOUNT_PERCENTAGE,
    calculate_discount,
    calculate_line_item_total,
    calculate_percentage_difference,
    calculate_subtotal,
    calculate_tax,
    calculate_total,
)
from .severity import SeverityThresholds, classify_severity

logger = logging.getLogger(__name__)

# Decimals kept on a discrepancy; strips float noise such as 0.010000000000001563
_DISCREPANCY_DECIMALS = 10


class RecordValidator:
    """Runs the checks enabled in config.rules against one record.

    Every check that runs yields exactly one ValidationResult, also when
    the field is within tolerance (severity "none").
    """

    def __init__(self, config: ValidationConfig = DEFAULT_VALIDATION_CONFIG, validated_by: str = "system"):
        self.config = config
        self.validated_by = validated_by
        self.thresholds = SeverityThresholds.from_config(config.thresholds)
        self._calc_options = {
            "precision": config.calculation.precision,
            "rounding_method": config.calculation.rounding_method,
        }

    def validate(
        self,
        record: InvoiceRecord,
        batch_id: Optional[str] = None,
        validated_at: Optional[datetime] = None,
    ) -> List[ValidationResult]:
        """Validate one record.

        Args:
            record: Record with all required fields present
            batch_id: Batch the results belong to
            validated_at: Timestamp for the results (default: now)

        Returns:
            One ValidationResult per checked field
        """
        validated_at = validated_at or datetime.now()
        rules = self.config.rules
        results: List[ValidationResult] = []

        def add(result: Optional[ValidationResult]) -> None:
            if result is not None:
                results.append(result)

        context = (record, batch_id, validated_at)

        if rules.validate_tax_calculation:
            add(self.check_tax(*context))
        if rules.validate_total_calculation:
            add(self.check_total(*context))
        if rules.validate_discount_calculation:
            add(self.check_discount(*context))
        if rules.validate_line_item_totals and record.line_items:
            results.extend(self.check_line_items(*context))

        flagged = sum(1 for r in results if r.is_flagged)
        logger.debug(
            f"Record {record.record_id}: {len(results)} field(s) checked, {flagged} flagged"
        )
        return results

    def check_tax(self, record: InvoiceRecord, batch_id=None, validated_at=None) -> Optional[ValidationResult]:
        """Tax amount against amount × tax rate. Skipped when the record has no tax rate."""
        if not record.tax_rate:
            return None

        calculation = calculate_tax(record.amount, record.tax_rate, **self._calc_options)
        return self._compare(
            record, FIELD_TAX_AMOUNT, "Tax",
            original=record.tax_amount,
            calculated=calculation.tax_amount if calculation.is_valid else None,
            calculation_error=calculation.error,
            tolerance=self.config.tolerance("tax_calculation"),
            failure_severity=SEVERITY_CRITICAL,
            batch_id=batch_id, validated_at=validated_at,
        )

    def check_total(self, record: InvoiceRecord, batch_id=None, validated_at=None) -> ValidationResult:
        """Total amount against amount + tax - discount."""
        calculation = calculate_total(
            record.amount, record.tax_amount, record.discount_amount, **self._calc_options
        )
        return self._compare(
            record, FIELD_TOTAL_AMOUNT, "Total",
            original=record.total_amount,
            calculated=calculation.value if calculation.is_valid else None,
            calculation_error="; ".join(calculation.warnings),
            tolerance=self.config.tolerance("total_calculation"),
            failure_severity=SEVERITY_CRITICAL,
            batch_id=batch_id, validated_at=validated_at,
        )

    def check_discount(self, record: InvoiceRecord, batch_id=None, validated_at=None) -> Optional[ValidationResult]:
        """Discount amount against the declared (or derived) discount rate.

        Runs when the record declares a discount amount or a discount rate.
        Without a declared rate the rate is derived from the amounts, which
        catches rounding errors in the declared discount.
        """
        if record.discount_rate is None and not record.discount_amount:
            return None

        if record.discount_rate is not None:
            calculation = calculate_discount(
                record.amount, record.discount_rate, DISCOUNT_PERCENTAGE, **self._calc_options
            )
        elif record.amount:
            derived_rate = record.discount_amount / record.amount * 100
            calculation = calculate_discount(
                record.amount, derived_rate, DISCOUNT_PERCENTAGE, **self._calc_options
            )
        else:
            calculation = calculate_discount(
                record.amount, record.discount_amount, DISCOUNT_FIXED, **self._calc_options
            )

        return self._compare(
            record, FIELD_DISCOUNT_AMOUNT, "Discount",
            original=record.discount_amount,
            calculated=calculation.discount_amount if calculation.is_valid else None,
            calculation_error=calculation.error,
            tolerance=self.config.tolerance("discount_calculation"),
            failure_severity=SEVERITY_CRITICAL,
            batch_id=batch_id, validated_at=validated_at,
        )

    def check_line_items(self, record: InvoiceRecord, batch_id=None, validated_at=None) -> List[ValidationResult]:
        """Each line total against quantity × unit price, then the declared subtotal."""
        results = []
        tolerance = self.config.tolerance("total_calculation")

        for index, item in enumerate(record.line_items):
            calculation = calculate_line_item_total(item.quantity, item.unit_price, **self._calc_options)
            results.append(self._compare(
                record, line_item_field(index), f"Line item {index + 1}",
                original=item.line_total,
                calculated=calculation.value if calculation.is_valid else None,
                calculation_error="; ".join(calculation.warnings),
                tolerance=tolerance,
                failure_severity=SEVERITY_HIGH,
                batch_id=batch_id, validated_at=validated_at,
            ))

        if record.subtotal is not None:
            calculation = calculate_subtotal(record.line_items, **self._calc_options)
            for warning in calculation.warnings:
                logger.warning(f"Record {record.record_id}: {warning}")
            results.append(self._compare(
                record, FIELD_SUBTOTAL, "Subtotal",
                original=record.subtotal,
                calculated=calculation.value if calculation.is_valid else None,
                calculation_error="; ".join(calculation.warnings),
                tolerance=tolerance,
                failure_severity=SEVERITY_CRITICAL,
                batch_id=batch_id, validated_at=validated_at,
            ))

        return results

    def _compare(
        self,
        record: InvoiceRecord,
        field: str,
        label: str,
        original: Optional[float],
        calculated: Optional[float],
        calculation_error: Optional[str],
        tolerance: float,
        failure_severity: str,
        batch_id: Optional[str],
        validated_at: datetime,
    ) -> ValidationResult:
        common = {
            "record_id": record.record_id,
            "field": field,
            "validated_at": validated_at,
            "validated_by": self.validated_by,
            "batch_id": batch_id,
        }

        message = None
        if calculated is None:
            message = f"{label} calculation failed"
            if calculation_error:
                message += f": {calculation_error}"
        elif original is None:
            message = f"{label} has no declared value to compare with {calculated:.2f}"
        elif not (math.isfinite(original) and math.isfinite(calculated) and math.isfinite(original - calculated)):
            message = f"{label} cannot be compared: declared {original}, calculated {calculated}"

        if message is not None:
            return ValidationResult(
                original_value=original,
                calculated_value=calculated,
                discrepancy=None,
                severity=failure_severity,
                message=message,
                within_tolerance=False,
                **common,
            )

        discrepancy = round(original - calculated, _DISCREPANCY_DECIMALS)
        percentage = calculate_percentage_difference(original, calculated)

        if abs(discrepancy) <= tolerance:
            return ValidationResult(
                original_value=original,
                calculated_value=calculated,
                discrepancy=discrepancy,
                discrepancy_percentage=percentage,
                severity=SEVERITY_NONE,
                message=f"{label} matches calculated value {calculated:.2f}",
                within_tolerance=True,
                **common,
            )

        severity = classify_severity(discrepancy, original, field, self.thresholds)
        return ValidationResult(
            original_value=original,
            calculated_value=calculated,
            discrepancy=discrepancy,
            discrepancy_percentage=percentage,
            severity=severity,
            message=f"{label} calculation discrepancy: expected {calculated:.2f}, found {original:.2f}",
            within_tolerance=False,
            **common,
        )
