"""Alert data model for a user-facing discrepancy notice."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .validation_result import SEVERITY_ORDER, SEVERITY_NONE


@dataclass
class Alert:
    """An alert raised for a non-zero discrepancy.

    Owned by AlertStore. Acknowledgment and dismissal are the only
    mutations and both are one-way.

    Attributes:
        alert_id: Unique alert id
        record_id: Record the discrepancy belongs to
        field: Checked field
        severity: low, medium, high or critical
        message: Human-readable message built from a template
        discrepancy: Signed discrepancy of the underlying result
        original_value: Declared value
        calculated_value: Recomputed value
        percentage_discrepancy: |discrepancy| / |original_value| * 100
        priority: Sort key, see AlertGenerator.calculate_priority
        acknowledged: Acknowledged by a user
        dismissed: Dismissed by a user
        created_at: When the alert was created
        acknowledged_at: First acknowledgment time
        dismissed_at: First dismissal time
        metadata: alert_type, result_id, batch_id
    """

    alert_id: str
    record_id: str
    field: str
    severity: str
    message: str
    discrepancy: float
    original_value: Optional[float] = None
    calculated_value: Optional[float] = None
    percentage_discrepancy: float = 0.0
    priority: float = 0.0
    acknowledged: bool = False
    dismissed: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    acknowledged_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate Alert fields."""
        if self.severity not in SEVERITY_ORDER or self.severity == SEVERITY_NONE:
            raise ValueError(
                f"alert severity must be low, medium, high or critical, got '{self.severity}'"
            )

    @property
    def is_pending(self) -> bool:
        """Neither acknowledged nor dismissed."""
        return not self.acknowledged and not self.dismissed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "alert_id": self.alert_id,
            "record_id": self.record_id,
            "field": self.field,
            "severity": self.severity,
            "message": self.message,
            "discrepancy": self.discrepancy,
            "original_value": self.original_value,
            "calculated_value": self.calculated_value,
            "percentage_discrepancy": round(self.percentage_discrepancy, 2),
            "priority": round(self.priority, 4),
            "acknowledged": self.acknowledged,
            "dismissed": self.dismissed,
            "created_at": self.created_at.isoformat(),
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "dismissed_at": self.dismissed_at.isoformat() if self.dismissed_at else None,
            "metadata": dict(self.metadata),
        }
