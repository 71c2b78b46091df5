"""Validation orchestrator: batch runs, single-record runs and result queries."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import uuid

from ..config.settings import get_validated_by
from ..config.validation_config import DEFAULT_VALIDATION_CONFIG, ValidationConfig, merge_config
from ..errors import (
    BatchCancelledError,
    BatchValidationError,
    DiscrepancyEngineError,
    OrchestratorBusyError,
    RecordNotFoundError,
    RecordValidationError,
)
from ..models.record_error import ERROR_PROCESSING, RecordError
from ..models.record_payload import coerce_record, record_id_of
from ..models.validation_progress import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    ValidationProgress,
    progress_percentage,
)
from ..models.validation_result import SEVERITY_ORDER, ValidationResult
from ..models.validation_summary import ValidationSummary
from ..pipeline.record_validation import RecordValidator
from .batch_summary import build_summary, error_record_key

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ValidationProgress], None]

SORT_FIELDS = ("validated_at", "severity", "discrepancy", "record_id", "field")


@dataclass(frozen=True)
class BatchOutcome:
    """Result of a completed batch."""
    summary: ValidationSummary
    batch_id: str
    validated_at: datetime
    results: Tuple[ValidationResult, ...] = ()
    errors: Tuple[RecordError, ...] = ()


@dataclass(frozen=True)
class RecordValidation:
    """Result of validating a single record."""
    record_id: str
    results: Tuple[ValidationResult, ...]
    validated_at: datetime


@dataclass(frozen=True)
class RevalidationOutcome:
    """Result of revalidating a subset of records."""
    record_ids: Tuple[str, ...]
    revalidated_at: datetime
    results: Tuple[ValidationResult, ...] = ()
    errors: Tuple[RecordError, ...] = ()


def generate_batch_id() -> str:
    """Create a unique batch id, e.g. batch_20240115093000_1a2b3c4d."""
    return f"batch_{datetime.now():%Y%m%d%H%M%S}_{uuid.uuid4().hex[:8]}"


def _materialize(records: Any, batch_id: Optional[str] = None) -> List[Any]:
    if isinstance(records, (str, bytes, Mapping)):
        raise BatchValidationError(
            f"Records must be a collection of records, got {type(records).__name__}",
            batch_id=batch_id,
        )
    try:
        return list(records)
    except TypeError as e:
        raise BatchValidationError(
            f"Records must be a collection of records, got {type(records).__name__}",
            batch_id=batch_id,
        ) from e


class ValidationOrchestrator:
    """Runs validation batches and owns the current result set.

    One batch at a time: a second validate_batch() while one is processing
    raises OrchestratorBusyError. Results and summary are committed only
    when a batch completes; a cancelled or failed batch leaves the previous
    set in place.

    The batch runs on the calling thread. Use BatchValidationWorker to run
    it in the background.
    """

    def __init__(
        self,
        config: Optional[Union[ValidationConfig, Mapping[str, Any]]] = None,
        validated_by: Optional[str] = None,
    ):
        self._config = merge_config(DEFAULT_VALIDATION_CONFIG, config)
        self.validated_by = validated_by or get_validated_by()

        self._lock = threading.Lock()
        self._cancel_requested = threading.Event()
        self._listeners: List[ProgressListener] = []

        self._status = STATUS_PENDING
        self._progress: Optional[ValidationProgress] = None
        self._batch_id: Optional[str] = None
        self._results: List[ValidationResult] = []
        self._record_keys: List[str] = []
        self._errors: List[RecordError] = []
        self._summary: Optional[ValidationSummary] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_validating(self) -> bool:
        return self._status == STATUS_PROCESSING

    @property
    def progress(self) -> Optional[ValidationProgress]:
        """Latest progress snapshot; None when no batch is running."""
        return self._progress

    @property
    def batch_id(self) -> Optional[str]:
        """Batch that produced the current result set."""
        return self._batch_id

    @property
    def results(self) -> List[ValidationResult]:
        return list(self._results)

    @property
    def record_ids(self) -> List[str]:
        """Keys of the records covered by the current result set."""
        return list(self._record_keys)

    @property
    def summary(self) -> Optional[ValidationSummary]:
        return self._summary

    @property
    def errors(self) -> List[RecordError]:
        return list(self._errors)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> ValidationConfig:
        return self._config

    def update_config(self, partial: Union[ValidationConfig, Mapping[str, Any]]) -> ValidationConfig:
        """Merge a partial config over the current one.

        Args:
            partial: e.g. {"rules": {"strict_mode": True}}

        Returns:
            The new configuration

        Raises:
            ConfigError: On unknown keys or invalid values (config unchanged)
        """
        self._config = merge_config(self._config, partial)
        logger.info(f"Validation config updated: {dict(partial) if isinstance(partial, Mapping) else 'replaced'}")
        return self._config

    def reset_config(self) -> ValidationConfig:
        self._config = DEFAULT_VALIDATION_CONFIG
        logger.info("Validation config reset to defaults")
        return self._config

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_progress(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a progress listener.

        Listeners run on the thread executing the batch, in registration
        order. An exception raised by a listener is logged and ignored.

        Returns:
            Function that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, progress: ValidationProgress, callback: Optional[ProgressListener] = None) -> None:
        self._progress = progress
        listeners = ([callback] if callback else []) + list(self._listeners)
        for listener in listeners:
            try:
                listener(progress)
            except Exception as e:
                logger.warning(f"Progress listener {listener!r} raised: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Batch validation
    # ------------------------------------------------------------------

    def validate_batch(
        self,
        records: Iterable[Any],
        config: Optional[Union[ValidationConfig, Mapping[str, Any]]] = None,
        progress_callback: Optional[ProgressListener] = None,
    ) -> BatchOutcome:
        """Validate a batch of records and replace the current result set.

        Args:
            records: InvoiceRecord instances or record mappings
            config: Partial config merged into the current config before the
                run; it stays in effect afterwards
            progress_callback: Called with each progress snapshot, before
                the registered listeners

        Returns:
            BatchOutcome with summary, results and per-record errors

        Raises:
            OrchestratorBusyError: If a batch is already processing
            BatchCancelledError: If cancel() was called during the batch
            BatchValidationError: If the records cannot be iterated
            ConfigError: If config is invalid
        """
        with self._lock:
            if self._status == STATUS_PROCESSING:
                raise OrchestratorBusyError("A validation batch is already processing")
            self._status = STATUS_PROCESSING
            self._cancel_requested.clear()

        batch_id = generate_batch_id()
        started_at = datetime.now()

        try:
            if config is not None:
                self.update_config(config)
            return self._run_batch(records, batch_id, started_at, progress_callback)
        except DiscrepancyEngineError as e:
            self._fail_batch(batch_id, started_at, str(e), progress_callback)
            raise
        except Exception as e:
            self._fail_batch(batch_id, started_at, str(e), progress_callback)
            raise BatchValidationError(f"Batch validation failed: {e}", batch_id=batch_id) from e

    def _run_batch(
        self,
        records: Iterable[Any],
        batch_id: str,
        started_at: datetime,
        callback: Optional[ProgressListener],
    ) -> BatchOutcome:
        items = _materialize(records, batch_id)
        total = len(items)
        config = self._config
        validator = RecordValidator(config, self.validated_by)
        chunk_size = config.calculation.progress_chunk_size
        step = 1 if total <= chunk_size else chunk_size

        logger.info(f"Starting batch {batch_id}: {total} record(s)")
        self._emit(ValidationProgress(
            batch_id=batch_id,
            total_records=total,
            current_operation=f"Starting validation of {total} records",
            status=STATUS_PROCESSING,
            started_at=started_at,
        ), callback)

        results: List[ValidationResult] = []
        errors: List[RecordError] = []
        keys: List[str] = []
        invalid = set()

        for index, raw in enumerate(items):
            self._check_cancelled(batch_id, index, total)

            key, record_results, error = self._validate_one(validator, raw, index, batch_id)
            keys.append(key)
            results.extend(record_results)
            if error is not None:
                errors.append(error)
                invalid.add(key)
            elif any(r.is_flagged for r in record_results):
                invalid.add(key)

            processed = index + 1
            if processed < total and processed % step == 0:
                seen = len(set(keys))
                self._emit(ValidationProgress(
                    batch_id=batch_id,
                    total_records=total,
                    processed_records=processed,
                    valid_records=seen - len(invalid),
                    invalid_records=len(invalid),
                    current_operation=f"Validated record {key}",
                    progress_percentage=progress_percentage(processed, total),
                    status=STATUS_PROCESSING,
                    started_at=started_at,
                ), callback)

        self._check_cancelled(batch_id, total, total)
        finished_at = datetime.now()
        summary = build_summary(results, keys, errors, batch_id, started_at, finished_at)

        with self._lock:
            self._results = results
            self._record_keys = list(dict.fromkeys(keys))
            self._errors = errors
            self._summary = summary
            self._batch_id = batch_id

        self._emit(ValidationProgress(
            batch_id=batch_id,
            total_records=total,
            processed_records=total,
            valid_records=summary.valid_records,
            invalid_records=summary.invalid_records,
            current_operation="Validation completed",
            progress_percentage=100,
            status=STATUS_COMPLETED,
            started_at=started_at,
        ), callback)

        with self._lock:
            self._status = STATUS_COMPLETED
            self._progress = None

        logger.info(
            f"Batch {batch_id} completed: {summary.valid_records}/{summary.total_records} valid, "
            f"{summary.total_discrepancies} discrepancies, {len(errors)} error(s) "
            f"in {summary.processing_time_ms:.0f} ms"
        )
        return BatchOutcome(
            summary=summary,
            batch_id=batch_id,
            validated_at=finished_at,
            results=tuple(results),
            errors=tuple(errors),
        )

    def _check_cancelled(self, batch_id: str, processed: int, total: int) -> None:
        if self._cancel_requested.is_set():
            raise BatchCancelledError(
                f"Batch {batch_id} cancelled after {processed} of {total} record(s)",
                batch_id=batch_id,
            )

    def _fail_batch(
        self,
        batch_id: str,
        started_at: datetime,
        reason: str,
        callback: Optional[ProgressListener],
    ) -> None:
        logger.error(f"Batch {batch_id} failed: {reason}")
        last = self._progress
        if last is not None and last.batch_id == batch_id:
            failed = replace(last, status=STATUS_FAILED, current_operation=reason)
        else:
            failed = ValidationProgress(
                batch_id=batch_id,
                total_records=0,
                current_operation=reason,
                status=STATUS_FAILED,
                started_at=started_at,
            )
        self._emit(failed, callback)

        with self._lock:
            self._status = STATUS_FAILED
            self._progress = None
            self._cancel_requested.clear()

    def cancel(self) -> bool:
        """Request cancellation of the running batch.

        Checked between records and once more before the results are
        committed; the batch then ends failed and nothing is committed.

        Returns:
            True if a batch was running
        """
        with self._lock:
            if self._status != STATUS_PROCESSING:
                return False
            self._cancel_requested.set()
        logger.info("Batch cancellation requested")
        return True

    def _validate_one(
        self,
        validator: RecordValidator,
        raw: Any,
        index: int,
        batch_id: Optional[str],
    ) -> Tuple[str, List[ValidationResult], Optional[RecordError]]:
        """Validate one raw record; failures become a RecordError."""
        try:
            record = coerce_record(raw)
        except RecordValidationError as e:
            logger.warning(f"Record at index {index} skipped: {e}")
            error = RecordError(record_id=e.record_id, message=str(e), error_type=e.error_type, index=index)
            return error_record_key(error), [], error

        try:
            return record.record_id, validator.validate(record, batch_id=batch_id), None
        except Exception as e:
            logger.exception(f"Unexpected error validating record {record.record_id}")
            error = RecordError(
                record_id=record.record_id,
                message=f"Processing error: {e}",
                error_type=ERROR_PROCESSING,
                index=index,
            )
            return record.record_id, [], error

    # ------------------------------------------------------------------
    # Single record and revalidation
    # ------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        if self._status == STATUS_PROCESSING:
            raise OrchestratorBusyError("A validation batch is processing")

    def _commit_records(
        self,
        keys: Sequence[str],
        new_results: Sequence[ValidationResult],
        new_errors: Sequence[RecordError],
        started_at: datetime,
    ) -> ValidationSummary:
        """Replace the results of keys and recompute the summary over the full set."""
        replaced = set(keys)
        with self._lock:
            record_keys = list(dict.fromkeys(list(self._record_keys) + list(keys)))

            by_record: Dict[str, List[ValidationResult]] = defaultdict(list)
            for result in self._results:
                if result.record_id not in replaced:
                    by_record[result.record_id].append(result)
            for result in new_results:
                by_record[result.record_id].append(result)

            errors = [e for e in self._errors if error_record_key(e) not in replaced]
            errors.extend(new_errors)

            self._results = [r for key in record_keys for r in by_record.get(key, [])]
            self._record_keys = record_keys
            self._errors = errors
            self._summary = build_summary(
                self._results, record_keys, errors, self._batch_id or "", started_at, datetime.now()
            )
            return self._summary

    def validate_record(self, record: Any) -> RecordValidation:
        """Validate one record and replace its stored results.

        Raises:
            RecordValidationError: If the record cannot be coerced
            OrchestratorBusyError: If a batch is processing
        """
        self._ensure_idle()
        started_at = datetime.now()
        invoice = coerce_record(record)
        results = RecordValidator(self._config, self.validated_by).validate(invoice, validated_at=started_at)

        self._commit_records([invoice.record_id], results, [], started_at)
        logger.debug(f"Validated record {invoice.record_id}: {len(results)} result(s)")
        return RecordValidation(record_id=invoice.record_id, results=tuple(results), validated_at=started_at)

    def revalidate_records(
        self,
        record_ids: Iterable[Any],
        records: Iterable[Any],
        config: Optional[Union[ValidationConfig, Mapping[str, Any]]] = None,
    ) -> RevalidationOutcome:
        """Revalidate a subset of records.

        Results of exactly the selected ids are replaced; other results are
        left untouched and the summary is recomputed over the full set.

        Args:
            record_ids: Ids to revalidate
            records: Records to pick the ids from
            config: Partial config merged into the current config before the
                run; it stays in effect afterwards

        Raises:
            RecordNotFoundError: If none of record_ids is present in records
            OrchestratorBusyError: If a batch is processing
        """
        self._ensure_idle()
        if config is not None:
            self.update_config(config)

        wanted = {str(record_id) for record_id in record_ids}
        selected = [
            (index, raw)
            for index, raw in enumerate(_materialize(records))
            if record_id_of(raw) in wanted
        ]
        if not selected:
            raise RecordNotFoundError(f"None of the record ids {sorted(wanted)} found in records")

        revalidated_at = datetime.now()
        validator = RecordValidator(self._config, self.validated_by)
        keys: List[str] = []
        results: List[ValidationResult] = []
        errors: List[RecordError] = []

        for index, raw in selected:
            key, record_results, error = self._validate_one(validator, raw, index, self._batch_id)
            keys.append(key)
            results.extend(record_results)
            if error is not None:
                errors.append(error)

        keys = list(dict.fromkeys(keys))
        summary = self._commit_records(keys, results, errors, revalidated_at)
        logger.info(
            f"Revalidated {len(keys)} record(s): {summary.invalid_records}/{summary.total_records} invalid"
        )
        return RevalidationOutcome(
            record_ids=tuple(keys),
            revalidated_at=revalidated_at,
            results=tuple(results),
            errors=tuple(errors),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_results_by_record(self, record_id: str) -> List[ValidationResult]:
        return [r for r in self._results if r.record_id == record_id]

    def get_results_by_severity(self, severity: str) -> List[ValidationResult]:
        if severity not in SEVERITY_ORDER:
            raise ValueError(f"Unknown severity: {severity}")
        return [r for r in self._results if r.severity == severity]

    def filter_results(
        self,
        severity: Optional[Union[str, Iterable[str]]] = None,
        field: Optional[str] = None,
        record_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        sort_by: str = "validated_at",
        descending: bool = True,
    ) -> List[ValidationResult]:
        """Filter and sort the current results.

        Args:
            severity: Severity or severities to keep
            field: Exact field name, or a prefix ending in "_" (e.g. "line_item_total_")
            record_id: Record to keep
            since: Keep results validated at or after this time
            until: Keep results validated at or before this time
            sort_by: One of SORT_FIELDS
            descending: Sort order

        Returns:
            Matching results
        """
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"sort_by must be one of {SORT_FIELDS}, got '{sort_by}'")

        severities = None
        if severity is not None:
            severities = {severity} if isinstance(severity, str) else set(severity)

        def keep(result: ValidationResult) -> bool:
            if severities is not None and result.severity not in severities:
                return False
            if field is not None:
                if field.endswith("_"):
                    if not result.field.startswith(field):
                        return False
                elif result.field != field:
                    return False
            if record_id is not None and result.record_id != record_id:
                return False
            if since is not None and result.validated_at < since:
                return False
            if until is not None and result.validated_at > until:
                return False
            return True

        sort_keys = {
            "validated_at": lambda r: r.validated_at,
            "severity": lambda r: SEVERITY_ORDER[r.severity],
            "discrepancy": lambda r: abs(r.discrepancy) if r.discrepancy is not None else 0.0,
            "record_id": lambda r: r.record_id,
            "field": lambda r: r.field,
        }
        return sorted(filter(keep, self._results), key=sort_keys[sort_by], reverse=descending)

    def get_statistics(self) -> Dict[str, Any]:
        """Statistics over the current result set (see ValidationSummary.statistics)."""
        summary = self._summary or ValidationSummary()
        stats = summary.statistics(len(self._results))
        errors_by_type: Dict[str, int] = defaultdict(int)
        for error in self._errors:
            errors_by_type[error.error_type] += 1
        stats["errors_by_type"] = dict(errors_by_type)
        return stats

    def clear_results(self) -> None:
        """Drop the current result set."""
        self._ensure_idle()
        with self._lock:
            self._results = []
            self._record_keys = []
            self._errors = []
            self._summary = None
            self._batch_id = None
            self._status = STATUS_PENDING
        logger.info("Validation results cleared")

    def reset_progress(self) -> None:
        self._progress = None
