"""ValidationResult data model representing one checked field of one record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


SEVERITY_NONE = "none"
SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"
SEVERITY_CRITICAL = "critical"

SEVERITY_LEVELS = (
    SEVERITY_NONE,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    SEVERITY_HIGH,
    SEVERITY_CRITICAL,
)

# Rank used for comparisons and display ordering (higher = more severe)
SEVERITY_ORDER = {
    SEVERITY_NONE: 0,
    SEVERITY_LOW: 1,
    SEVERITY_MEDIUM: 2,
    SEVERITY_HIGH: 3,
    SEVERITY_CRITICAL: 4,
}

FIELD_TAX_AMOUNT = "tax_amount"
FIELD_TOTAL_AMOUNT = "total_amount"
FIELD_DISCOUNT_AMOUNT = "discount_amount"
FIELD_SUBTOTAL = "subtotal"
FIELD_LINE_ITEM_TOTAL = "line_item_total"


def line_item_field(index: int) -> str:
    """Field name for the line item at zero-based index."""
    return f"{FIELD_LINE_ITEM_TOTAL}_{index}"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of comparing one declared field with its recomputed value.

    Attributes:
        record_id: ID of the invoice record
        field: Field that was checked (e.g. "tax_amount", "line_item_total_0")
        original_value: Declared value from the record
        calculated_value: Recomputed value (None if the recomputation failed)
        discrepancy: original_value - calculated_value (signed, None on failure)
        discrepancy_percentage: Percentage difference (see
            calculate_percentage_difference)
        severity: One of SEVERITY_LEVELS ("none" when within tolerance)
        message: Human-readable description
        within_tolerance: True if the difference is within the field tolerance
        validated_at: When the check ran
        validated_by: User or system that ran the check
        batch_id: Batch that produced the result (None for single-record runs)
        result_id: Id of this result, "{record_id}_{field}" unless given
    """

    record_id: str
    field: str
    original_value: Optional[float]
    calculated_value: Optional[float]
    discrepancy: Optional[float]
    discrepancy_percentage: float = 0.0
    severity: str = SEVERITY_NONE
    message: str = ""
    within_tolerance: bool = True
    validated_at: datetime = field(default_factory=datetime.now)
    validated_by: str = "system"
    batch_id: Optional[str] = None
    result_id: str = ""

    def __post_init__(self):
        """Validate ValidationResult fields."""
        if not self.result_id:
            object.__setattr__(self, "result_id", f"{self.record_id}_{self.field}")

        if self.severity not in SEVERITY_ORDER:
            raise ValueError(
                f"severity must be one of {', '.join(SEVERITY_LEVELS)}, got '{self.severity}'"
            )

        if self.within_tolerance and self.severity != SEVERITY_NONE:
            raise ValueError(
                f"result within tolerance must have severity 'none', got '{self.severity}'"
            )

        if not self.within_tolerance and self.severity == SEVERITY_NONE:
            raise ValueError("flagged result must have a severity above 'none'")

    @property
    def is_flagged(self) -> bool:
        """True when the field differs beyond tolerance or could not be recomputed."""
        return not self.within_tolerance

    @property
    def calculation_failed(self) -> bool:
        return self.calculated_value is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "result_id": self.result_id,
            "record_id": self.record_id,
            "field": self.field,
            "original_value": self.original_value,
            "calculated_value": self.calculated_value,
            "discrepancy": self.discrepancy,
            "discrepancy_percentage": round(self.discrepancy_percentage, 2),
            "severity": self.severity,
            "message": self.message,
            "within_tolerance": self.within_tolerance,
            "validated_at": self.validated_at.isoformat(),
            "validated_by": self.validated_by,
            "batch_id": self.batch_id,
        }
