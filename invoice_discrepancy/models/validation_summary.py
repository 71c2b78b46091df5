"""Validation summary model for a batch run."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ValidationSummary:
    """Aggregate view over the current result set.

    Derived by batch_summary.build_summary(); never edited by callers.
    Discrepancy amounts are absolute values over flagged results only.
    """
    batch_id: str = ""
    total_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    total_discrepancies: int = 0

    # Severity tiers (none_count = checked fields within tolerance)
    critical_count: int = 0
    high_severity_count: int = 0
    medium_severity_count: int = 0
    low_severity_count: int = 0
    none_count: int = 0

    # Financial impact
    total_discrepancy_amount: float = 0.0
    average_discrepancy_amount: float = 0.0
    max_discrepancy_amount: float = 0.0

    # Batch metadata
    validation_start_time: datetime = field(default_factory=datetime.now)
    validation_end_time: Optional[datetime] = None
    processing_time_ms: float = 0.0
    error_count: int = 0

    @property
    def result_count(self) -> int:
        """Number of results the severity counts cover."""
        return (
            self.critical_count
            + self.high_severity_count
            + self.medium_severity_count
            + self.low_severity_count
            + self.none_count
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["validation_start_time"] = self.validation_start_time.isoformat()
        data["validation_end_time"] = (
            self.validation_end_time.isoformat() if self.validation_end_time else None
        )
        return data

    def statistics(self, total_validations: Optional[int] = None) -> Dict[str, Any]:
        """Statistics view: severity/record breakdown, financial impact, throughput."""
        if self.processing_time_ms > 0:
            records_per_second = round(self.total_records / self.processing_time_ms * 1000)
        else:
            records_per_second = 0

        return {
            "total_validations": self.result_count if total_validations is None else total_validations,
            "severity_breakdown": {
                "critical": self.critical_count,
                "high": self.high_severity_count,
                "medium": self.medium_severity_count,
                "low": self.low_severity_count,
                "none": self.none_count,
            },
            "record_breakdown": {
                "valid": self.valid_records,
                "invalid": self.invalid_records,
                "total": self.total_records,
            },
            "financial_impact": {
                "total_discrepancy_amount": self.total_discrepancy_amount,
                "average_discrepancy_amount": self.average_discrepancy_amount,
                "max_discrepancy_amount": self.max_discrepancy_amount,
            },
            "performance": {
                "processing_time_ms": self.processing_time_ms,
                "records_per_second": records_per_second,
            },
            "error_count": self.error_count,
        }
