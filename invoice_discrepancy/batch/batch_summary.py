"""Batch summary derived from a validation result set."""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from ..models.record_error import RecordError
from ..models.validation_result import (
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    SEVERITY_NONE,
    ValidationResult,
)
from ..models.validation_summary import ValidationSummary


def error_record_key(error: RecordError) -> str:
    """Key under which a failed record is counted.

    Records that failed before an id could be read are keyed by their
    position in the batch.
    """
    if error.record_id:
        return error.record_id
    return f"#{error.index}"


def build_summary(
    results: Sequence[ValidationResult],
    record_ids: Iterable[str],
    errors: Sequence[RecordError] = (),
    batch_id: str = "",
    started_at: Optional[datetime] = None,
    finished_at: Optional[datetime] = None,
) -> ValidationSummary:
    """Create a ValidationSummary from the current result set.

    Args:
        results: All results in the set (clean and flagged)
        record_ids: Keys of every record the set covers, including records
            that failed coercion (see error_record_key)
        errors: Per-record errors; their records count as invalid
        batch_id: Batch identifier
        started_at: Batch start time (default: finished_at)
        finished_at: Batch end time (default: now)

    Returns:
        ValidationSummary where valid_records + invalid_records == total_records
        and the severity counts sum to len(results)
    """
    finished_at = finished_at or datetime.now()
    started_at = started_at or finished_at

    keys = list(dict.fromkeys(record_ids))
    counts = {level: 0 for level in (SEVERITY_NONE, SEVERITY_LOW, SEVERITY_MEDIUM, SEVERITY_HIGH, SEVERITY_CRITICAL)}
    invalid = {error_record_key(error) for error in errors}
    amounts: List[float] = []

    for result in results:
        counts[result.severity] += 1
        if result.is_flagged:
            invalid.add(result.record_id)
            if result.discrepancy is not None:
                amounts.append(abs(result.discrepancy))

    # Only keys that belong to the set count towards the record totals
    invalid_records = sum(1 for key in keys if key in invalid)
    total_amount = sum(amounts)

    return ValidationSummary(
        batch_id=batch_id,
        total_records=len(keys),
        valid_records=len(keys) - invalid_records,
        invalid_records=invalid_records,
        total_discrepancies=len(results) - counts[SEVERITY_NONE],
        critical_count=counts[SEVERITY_CRITICAL],
        high_severity_count=counts[SEVERITY_HIGH],
        medium_severity_count=counts[SEVERITY_MEDIUM],
        low_severity_count=counts[SEVERITY_LOW],
        none_count=counts[SEVERITY_NONE],
        total_discrepancy_amount=total_amount,
        average_discrepancy_amount=total_amount / len(amounts) if amounts else 0.0,
        max_discrepancy_amount=max(amounts) if amounts else 0.0,
        validation_start_time=started_at,
        validation_end_time=finished_at,
        processing_time_ms=(finished_at - started_at).total_seconds() * 1000,
        error_count=len(errors),
    )
