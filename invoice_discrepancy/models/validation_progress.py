"""ValidationProgress model for an in-flight batch."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

BATCH_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)


def progress_percentage(processed: int, total: int) -> int:
    """Percentage of processed records, rounded half up (100 for an empty batch)."""
    if total <= 0 or processed >= total:
        return 100
    return (200 * processed + total) // (2 * total)


@dataclass(frozen=True)
class ValidationProgress:
    """Snapshot of a running batch, passed to progress listeners.

    Attributes:
        batch_id: Batch identifier
        total_records: Number of records in the batch
        processed_records: Records processed so far
        valid_records: Valid records found so far
        invalid_records: Invalid records found so far
        current_operation: Free-text description of the current stage
        progress_percentage: processed_records / total_records * 100, rounded
        status: pending, processing, completed or failed
        started_at: When the batch started
    """

    batch_id: str
    total_records: int
    processed_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    current_operation: str = ""
    progress_percentage: int = 0
    status: str = STATUS_PENDING
    started_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.status not in BATCH_STATUSES:
            raise ValueError(f"status must be one of {BATCH_STATUSES}, got '{self.status}'")

        if not 0 <= self.progress_percentage <= 100:
            raise ValueError(
                f"progress_percentage must be between 0 and 100, got {self.progress_percentage}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "total_records": self.total_records,
            "processed_records": self.processed_records,
            "valid_records": self.valid_records,
            "invalid_records": self.invalid_records,
            "current_operation": self.current_operation,
            "progress_percentage": self.progress_percentage,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
        }
