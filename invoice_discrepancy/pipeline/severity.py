"""Severity classification for discrepancies.

A tier is reached when EITHER the percentage condition OR the field's
absolute-amount condition holds. Tiers are checked from critical downward
and the first match wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..models.validation_result import (
    FIELD_DISCOUNT_AMOUNT,
    FIELD_SUBTOTAL,
    FIELD_TAX_AMOUNT,
    FIELD_TOTAL_AMOUNT,
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
)


GENERIC_FIELD = "amount"


@dataclass(frozen=True)
class FieldThresholds:
    """Absolute discrepancy amounts for one field."""
    critical: float
    high: float
    medium: float


DEFAULT_FIELD_THRESHOLDS: Dict[str, FieldThresholds] = {
    FIELD_TOTAL_AMOUNT: FieldThresholds(critical=1000, high=500, medium=100),
    FIELD_TAX_AMOUNT: FieldThresholds(critical=200, high=100, medium=25),
    FIELD_SUBTOTAL: FieldThresholds(critical=800, high=400, medium=80),
    FIELD_DISCOUNT_AMOUNT: FieldThresholds(critical=300, high=150, medium=50),
    GENERIC_FIELD: FieldThresholds(critical=1000, high=500, medium=100),
}


@dataclass(frozen=True)
class SeverityThresholds:
    """Percentage tiers (in percent) plus per-field absolute thresholds."""
    critical_percentage: float = 10.0
    high_percentage: float = 5.0
    medium_percentage: float = 2.0
    field_thresholds: Mapping[str, FieldThresholds] = field(
        default_factory=lambda: dict(DEFAULT_FIELD_THRESHOLDS)
    )

    def __post_init__(self):
        if not self.critical_percentage >= self.high_percentage >= self.medium_percentage >= 0:
            raise ValueError(
                "percentage thresholds must satisfy critical >= high >= medium >= 0, got "
                f"{self.critical_percentage}/{self.high_percentage}/{self.medium_percentage}"
            )
        if GENERIC_FIELD not in self.field_thresholds:
            raise ValueError(f"field_thresholds must contain the generic '{GENERIC_FIELD}' entry")

    @classmethod
    def from_config(cls, thresholds) -> "SeverityThresholds":
        """Build from ValidationConfig.thresholds (percentage tiers only)."""
        return cls(
            critical_percentage=thresholds.critical,
            high_percentage=thresholds.high,
            medium_percentage=thresholds.medium,
        )

    def for_field(self, field_name: str) -> FieldThresholds:
        """Absolute thresholds for field_name, generic ones if unknown."""
        return self.field_thresholds.get(field_name) or self.field_thresholds[GENERIC_FIELD]


DEFAULT_SEVERITY_THRESHOLDS = SeverityThresholds()


def percentage_of(discrepancy: float, original_value: Optional[float]) -> float:
    """|discrepancy| / |original_value| * 100, 0 when original_value is 0 or missing."""
    if not original_value:
        return 0.0
    return abs(discrepancy) / abs(original_value) * 100


def classify_severity(
    discrepancy: float,
    original_value: Optional[float],
    field: str = GENERIC_FIELD,
    thresholds: SeverityThresholds = DEFAULT_SEVERITY_THRESHOLDS,
) -> str:
    """Map a discrepancy to low, medium, high or critical.

    Args:
        discrepancy: Signed discrepancy (only its magnitude matters)
        original_value: Declared value the discrepancy is relative to
        field: Field name used to pick absolute thresholds
        thresholds: Percentage and absolute thresholds

    Returns:
        Severity string
    """
    absolute = abs(discrepancy)
    percentage = percentage_of(discrepancy, original_value)
    amounts = thresholds.for_field(field)

    if percentage >= thresholds.critical_percentage or absolute >= amounts.critical:
        return SEVERITY_CRITICAL
    if percentage >= thresholds.high_percentage or absolute >= amounts.high:
        return SEVERITY_HIGH
    if percentage >= thresholds.medium_percentage or absolute >= amounts.medium:
        return SEVERITY_MEDIUM
    return SEVERITY_LOW
