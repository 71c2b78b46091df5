"""Per-record processing error collected during a batch."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


ERROR_MISSING_REQUIRED_FIELD = "missing_required_field"
ERROR_INVALID_DATA_TYPE = "invalid_data_type"
ERROR_PROCESSING = "processing_error"


@dataclass(frozen=True)
class RecordError:
    """A record that could not be validated; the batch carried on without it."""
    record_id: Optional[str]
    message: str
    error_type: str = ERROR_PROCESSING
    index: Optional[int] = None  # Position in the submitted batch
    occurred_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "message": self.message,
            "error_type": self.error_type,
            "index": self.index,
            "occurred_at": self.occurred_at.isoformat(),
        }
