"""Alert generation, prioritisation and notification gating."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
import logging
from typing import Any, Iterable, List, Sequence, Union
import uuid

from ..models.alert import Alert
from ..models.validation_result import (
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    SEVERITY_ORDER,
    ValidationResult,
)
from ..pipeline.severity import DEFAULT_SEVERITY_THRESHOLDS, SeverityThresholds, classify_severity, percentage_of

logger = logging.getLogger(__name__)

ALERT_TYPE_CALCULATION = "calculation"
ALERT_TYPE_VALIDATION = "validation"
ALERT_TYPE_THRESHOLD = "threshold"

PRIORITY_WEIGHTS = {
    SEVERITY_CRITICAL: 1000,
    SEVERITY_HIGH: 100,
    SEVERITY_MEDIUM: 10,
    SEVERITY_LOW: 1,
}

# Discrepancy part of the priority is capped at this value
MAX_DISCREPANCY_WEIGHT = 100

ALERT_MESSAGES = {
    SEVERITY_CRITICAL: {
        ALERT_TYPE_CALCULATION: "Critical calculation discrepancy detected. Immediate review required.",
        ALERT_TYPE_VALIDATION: "Critical validation failure. Data integrity compromised.",
        ALERT_TYPE_THRESHOLD: "Discrepancy exceeds critical threshold. Urgent attention needed.",
    },
    SEVERITY_HIGH: {
        ALERT_TYPE_CALCULATION: "Significant calculation discrepancy found. Review recommended.",
        ALERT_TYPE_VALIDATION: "High-priority validation issue detected.",
        ALERT_TYPE_THRESHOLD: "Discrepancy exceeds high-priority threshold.",
    },
    SEVERITY_MEDIUM: {
        ALERT_TYPE_CALCULATION: "Moderate calculation discrepancy identified.",
        ALERT_TYPE_VALIDATION: "Validation discrepancy requires attention.",
        ALERT_TYPE_THRESHOLD: "Discrepancy exceeds medium-priority threshold.",
    },
    SEVERITY_LOW: {
        ALERT_TYPE_CALCULATION: "Minor calculation variance detected.",
        ALERT_TYPE_VALIDATION: "Low-priority validation issue found.",
        ALERT_TYPE_THRESHOLD: "Small discrepancy identified for review.",
    },
}


@dataclass(frozen=True)
class NotificationConfig:
    """When an alert is worth a notification."""
    min_severity: str = SEVERITY_HIGH
    min_discrepancy: float = 100.0
    enable_notifications: bool = True

    def __post_init__(self):
        if self.min_severity not in PRIORITY_WEIGHTS:
            raise ValueError(
                f"min_severity must be low, medium, high or critical, got '{self.min_severity}'"
            )


DEFAULT_NOTIFICATION_CONFIG = NotificationConfig()


def format_amount(value: Any) -> str:
    """Two-decimal amount for messages, "n/a" when missing."""
    if value is None:
        return "n/a"
    return f"{value:.2f}"


class AlertGenerator:
    """Turns flagged validation results into prioritised alerts.

    Severity is re-derived from the discrepancy with this generator's
    thresholds, independent of the severity stored on the result.
    """

    def __init__(self, thresholds: SeverityThresholds = DEFAULT_SEVERITY_THRESHOLDS):
        self.thresholds = thresholds

    def update_thresholds(self, **changes: Any) -> SeverityThresholds:
        """Replace individual threshold values, e.g. critical_percentage=15."""
        self.thresholds = replace(self.thresholds, **changes)
        logger.info(f"Alert thresholds updated: {changes}")
        return self.thresholds

    def generate_alert(self, result: ValidationResult, alert_type: str = ALERT_TYPE_CALCULATION):
        """Create an alert for a result with a non-zero discrepancy.

        Args:
            result: Validation result
            alert_type: "calculation", "validation" or "threshold"; unknown
                types use the calculation template

        Returns:
            Alert, or None when the result has no discrepancy (zero, or a
            failed recomputation)
        """
        if result.discrepancy is None or abs(result.discrepancy) == 0:
            return None

        severity = classify_severity(result.discrepancy, result.original_value, result.field, self.thresholds)
        templates = ALERT_MESSAGES[severity]
        template = templates.get(alert_type, templates[ALERT_TYPE_CALCULATION])
        percentage = percentage_of(result.discrepancy, result.original_value)

        return Alert(
            alert_id=f"alert_{result.record_id}_{result.field}_{uuid.uuid4().hex[:8]}",
            record_id=result.record_id,
            field=result.field,
            severity=severity,
            message=self.build_message(result, template, percentage),
            discrepancy=result.discrepancy,
            original_value=result.original_value,
            calculated_value=result.calculated_value,
            percentage_discrepancy=percentage,
            priority=self.calculate_priority(severity, result.discrepancy),
            created_at=datetime.now(),
            metadata={
                "alert_type": alert_type,
                "result_id": result.result_id,
                "batch_id": result.batch_id,
            },
        )

    @staticmethod
    def build_message(result: ValidationResult, template: str, percentage: float) -> str:
        return (
            f'{template} Field "{result.field}" shows a discrepancy of '
            f"{format_amount(result.discrepancy)} ({percentage:.2f}%). "
            f"Original: {format_amount(result.original_value)}, "
            f"Calculated: {format_amount(result.calculated_value)}."
        )

    @staticmethod
    def calculate_priority(severity: str, discrepancy: float) -> float:
        """Severity weight plus |discrepancy| / 100, the latter capped at 100."""
        base = PRIORITY_WEIGHTS.get(severity, 1)
        return base + min(abs(discrepancy) / 100, MAX_DISCREPANCY_WEIGHT)

    def generate_alerts_from_results(
        self,
        results: Iterable[ValidationResult],
        alert_type: str = ALERT_TYPE_CALCULATION,
    ) -> List[Alert]:
        """Alerts for every result with a non-zero discrepancy, prioritised."""
        alerts = []
        for result in results:
            alert = self.generate_alert(result, alert_type)
            if alert is not None:
                alerts.append(alert)
        logger.debug(f"Generated {len(alerts)} alert(s)")
        return self.prioritize_alerts(alerts)

    @staticmethod
    def prioritize_alerts(alerts: Iterable[Alert]) -> List[Alert]:
        """Sort alerts for attention: severity, then priority, then newest first.

        The sort is stable. Severity rank leads so that a low alert never
        precedes a medium, high or critical one, whatever its discrepancy.
        """
        return sorted(
            alerts,
            key=lambda a: (SEVERITY_ORDER[a.severity], a.priority, a.created_at),
            reverse=True,
        )

    @staticmethod
    def filter_alerts_by_severity(alerts: Iterable[Alert], severities: Union[str, Sequence[str]]) -> List[Alert]:
        if isinstance(severities, str):
            severities = [severities]
        return [a for a in alerts if a.severity in severities]

    def get_high_priority_alerts(self, alerts: Iterable[Alert]) -> List[Alert]:
        """Critical and high severity alerts."""
        return self.filter_alerts_by_severity(alerts, [SEVERITY_CRITICAL, SEVERITY_HIGH])

    @staticmethod
    def should_notify(alert: Alert, config: NotificationConfig = DEFAULT_NOTIFICATION_CONFIG) -> bool:
        """True if notifications are on and the alert meets both minimums."""
        if not config.enable_notifications:
            return False
        if SEVERITY_ORDER[alert.severity] < SEVERITY_ORDER[config.min_severity]:
            return False
        return abs(alert.discrepancy) >= config.min_discrepancy
