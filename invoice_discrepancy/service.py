"""Caller-facing validation service.

Wires the orchestrator, the alert generator and the alert store together.
Construct one instance per session; nothing here is module-level state.
Alert store access is serialized so background batches can update alerts
while the caller acknowledges them.
"""

from concurrent.futures import Future
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .alerts.generator import DEFAULT_NOTIFICATION_CONFIG, AlertGenerator, NotificationConfig
from .alerts.store import AlertStore
from .batch.runner import BatchOutcome, RecordValidation, RevalidationOutcome, ValidationOrchestrator
from .batch.worker import BatchValidationWorker
from .config.profile_loader import ValidationProfile, load_profile
from .config.validation_config import DEFAULT_VALIDATION_CONFIG, ValidationConfig, merge_config
from .models.alert import Alert
from .models.record_error import RecordError
from .models.record_payload import record_id_of
from .models.validation_progress import ValidationProgress
from .models.validation_result import ValidationResult
from .models.validation_summary import ValidationSummary

logger = logging.getLogger(__name__)

NotificationListener = Callable[[List[Alert]], None]
ConfigOverride = Optional[Union[ValidationConfig, Mapping[str, Any]]]


class ValidationService:
    """Validation commands, queries and the alert lifecycle for one session.

    Args:
        config: Partial config merged over the profile (or the defaults)
        notification_config: When alerts trigger notification listeners
        profile: Profile name or ValidationProfile to start from
        validated_by: Name stamped into results (default: DISCREPANCY_VALIDATED_BY)
    """

    def __init__(
        self,
        config: ConfigOverride = None,
        notification_config: Optional[NotificationConfig] = None,
        profile: Optional[Union[str, ValidationProfile]] = None,
        validated_by: Optional[str] = None,
    ):
        base = DEFAULT_VALIDATION_CONFIG
        self.profile_name = "default"
        if profile is not None:
            if isinstance(profile, str):
                profile = load_profile(profile)
            base = profile.config
            self.profile_name = profile.name

        self.orchestrator = ValidationOrchestrator(merge_config(base, config), validated_by)
        self.generator = AlertGenerator()
        self.store = AlertStore()
        self._alerts_lock = threading.Lock()
        self.notification_config = notification_config or DEFAULT_NOTIFICATION_CONFIG
        self._notification_listeners: List[NotificationListener] = []
        self._worker: Optional[BatchValidationWorker] = None

    # ------------------------------------------------------------------
    # Validation commands
    # ------------------------------------------------------------------

    def validate_batch(
        self,
        records: Iterable[Any],
        config: ConfigOverride = None,
        progress_callback: Optional[Callable[[ValidationProgress], None]] = None,
    ) -> BatchOutcome:
        """Validate a batch on the calling thread and replace all alerts."""
        outcome = self.orchestrator.validate_batch(records, config=config, progress_callback=progress_callback)
        self._apply_batch_alerts(outcome)
        return outcome

    def submit_batch(self, records: Iterable[Any], config: ConfigOverride = None) -> "Future[BatchOutcome]":
        """Validate a batch on the background worker.

        Alerts are replaced before the returned future resolves. A config
        override stays in effect after the run, as with validate_batch().

        Raises:
            OrchestratorBusyError: If a batch is already in flight
        """
        inner = self._get_worker().submit(records, config)
        outer: "Future[BatchOutcome]" = Future()
        outer.set_running_or_notify_cancel()

        def finish(done: Future) -> None:
            error = done.exception()
            if error is not None:
                outer.set_exception(error)
                return
            outcome = done.result()
            try:
                self._apply_batch_alerts(outcome)
            except Exception as e:
                logger.error(f"Failed to update alerts for batch {outcome.batch_id}: {e}")
                outer.set_exception(e)
                return
            outer.set_result(outcome)

        inner.add_done_callback(finish)
        return outer

    def cancel(self) -> bool:
        """Request cancellation of the running or submitted batch."""
        if self._worker is not None:
            return self._worker.cancel()
        return self.orchestrator.cancel()

    def validate_record(self, record: Any) -> RecordValidation:
        """Validate one record; its alerts are regenerated."""
        validation = self.orchestrator.validate_record(record)
        self._replace_record_alerts([validation.record_id], validation.results)
        return validation

    def revalidate_records(
        self,
        record_ids: Iterable[Any],
        records: Iterable[Any],
        config: ConfigOverride = None,
    ) -> RevalidationOutcome:
        """Revalidate a subset of records; alerts of those records are regenerated."""
        outcome = self.orchestrator.revalidate_records(record_ids, records, config=config)
        self._replace_record_alerts(outcome.record_ids, outcome.results)
        return outcome

    def validate_new_records(self, records: Iterable[Any], config: ConfigOverride = None) -> Optional[RevalidationOutcome]:
        """Validate only records that are not in the current result set.

        Returns:
            RevalidationOutcome, or None if every record was already validated
        """
        records = list(records)
        known = set(self.orchestrator.record_ids)
        new_ids = []
        for raw in records:
            record_id = record_id_of(raw)
            if record_id is not None and record_id not in known:
                new_ids.append(record_id)

        if not new_ids:
            logger.info("All records have already been validated")
            return None
        return self.revalidate_records(new_ids, records, config=config)

    def _apply_batch_alerts(self, outcome: BatchOutcome) -> None:
        alerts = self.generator.generate_alerts_from_results(outcome.results)
        with self._alerts_lock:
            self.store.replace_alerts(alerts)
        logger.info(f"Batch {outcome.batch_id}: {len(alerts)} alert(s)")
        self.trigger_notifications(alerts)

    def _replace_record_alerts(self, record_ids: Sequence[str], results: Iterable[ValidationResult]) -> None:
        alerts = self.generator.generate_alerts_from_results(results)
        with self._alerts_lock:
            self.store.remove_for_records(record_ids)
            self.store.add_alerts(alerts)
        self.trigger_notifications(alerts)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def update_config(self, partial: Union[ValidationConfig, Mapping[str, Any]]) -> ValidationConfig:
        return self.orchestrator.update_config(partial)

    def get_config(self) -> ValidationConfig:
        return self.orchestrator.get_config()

    def reset_config(self) -> ValidationConfig:
        self.profile_name = "default"
        return self.orchestrator.reset_config()

    def load_profile(self, name: str) -> ValidationProfile:
        """Load a named profile and make its config current.

        Raises:
            ConfigError: If the profile is missing or invalid
        """
        profile = load_profile(name)
        self.orchestrator.update_config(profile.config)
        self.profile_name = profile.name
        return profile

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def acknowledge_alert(self, alert_id: str) -> Alert:
        with self._alerts_lock:
            return self.store.acknowledge(alert_id)

    def dismiss_alert(self, alert_id: str) -> Alert:
        with self._alerts_lock:
            return self.store.dismiss(alert_id)

    def acknowledge_all_alerts(self, pending_only: bool = True) -> int:
        with self._alerts_lock:
            return self.store.acknowledge_all(pending_only=pending_only)

    def get_unacknowledged_alerts(self) -> List[Alert]:
        with self._alerts_lock:
            return self.store.display_order(self.store.unacknowledged())

    def get_alerts_for_display(
        self,
        severities: Optional[Union[str, Sequence[str]]] = None,
        include_dismissed: bool = False,
    ) -> List[Alert]:
        """Alerts sorted critical first, newest first within a severity."""
        with self._alerts_lock:
            alerts = self.store.alerts if severities is None else self.store.by_severity(severities)
            if not include_dismissed:
                alerts = [a for a in alerts if not a.dismissed]
            return self.store.display_order(alerts)

    def get_alert_statistics(self) -> Dict[str, Any]:
        with self._alerts_lock:
            return self.store.statistics()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_progress(self, listener: Callable[[ValidationProgress], None]) -> Callable[[], None]:
        return self.orchestrator.on_progress(listener)

    def on_notification(self, listener: NotificationListener) -> Callable[[], None]:
        """Register a listener called with the alerts that pass should_notify().

        Returns:
            Function that unregisters the listener
        """
        self._notification_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._notification_listeners:
                self._notification_listeners.remove(listener)

        return unsubscribe

    def trigger_notifications(self, alerts: Iterable[Alert]) -> List[Alert]:
        """Send notification-worthy alerts to the listeners.

        Returns:
            The alerts that were notified
        """
        to_notify = [a for a in alerts if self.generator.should_notify(a, self.notification_config)]
        if not to_notify:
            return to_notify

        for listener in list(self._notification_listeners):
            try:
                listener(to_notify)
            except Exception as e:
                logger.warning(f"Notification listener {listener!r} raised: {e}", exc_info=True)
        return to_notify

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def results(self) -> List[ValidationResult]:
        return self.orchestrator.results

    @property
    def summary(self) -> Optional[ValidationSummary]:
        return self.orchestrator.summary

    @property
    def errors(self) -> List[RecordError]:
        return self.orchestrator.errors

    @property
    def progress(self) -> Optional[ValidationProgress]:
        return self.orchestrator.progress

    @property
    def status(self) -> str:
        return self.orchestrator.status

    @property
    def is_validating(self) -> bool:
        return self.orchestrator.is_validating

    def get_results_by_record(self, record_id: str) -> List[ValidationResult]:
        return self.orchestrator.get_results_by_record(record_id)

    def get_results_by_severity(self, severity: str) -> List[ValidationResult]:
        return self.orchestrator.get_results_by_severity(severity)

    def filter_results(self, **criteria: Any) -> List[ValidationResult]:
        """See ValidationOrchestrator.filter_results."""
        return self.orchestrator.filter_results(**criteria)

    def get_statistics(self) -> Dict[str, Any]:
        return self.orchestrator.get_statistics()

    def clear_results(self) -> None:
        """Drop results, summary and alerts."""
        self.orchestrator.clear_results()
        with self._alerts_lock:
            self.store.clear()

    def get_workflow_recommendations(self, total_records: Optional[int] = None) -> Dict[str, Any]:
        """Suggest what the user should do next.

        Args:
            total_records: Records available to the caller (default: the
                records in the current result set)

        Returns:
            Dict with "recommendations" (type, message, action), "statistics"
            and "next_suggested_action" ("complete" when nothing is left)
        """
        summary = self.summary
        validated = summary.total_records if summary else 0
        total = validated if total_records is None else total_records
        stats = {
            "total_records": total,
            "validated_records": validated,
            "unvalidated_records": max(total - validated, 0),
            "total_discrepancies": summary.total_discrepancies if summary else 0,
            "unacknowledged_alerts_count": len(self.get_unacknowledged_alerts()),
        }

        recommendations = []
        if stats["total_records"] == 0:
            recommendations.append({
                "type": "info",
                "message": "No records available. Please upload and process files first.",
                "action": "upload_files",
            })
        elif stats["validated_records"] == 0:
            recommendations.append({
                "type": "action",
                "message": f"{stats['total_records']} records are ready for validation.",
                "action": "validate_all",
            })
        elif stats["unvalidated_records"] > 0:
            recommendations.append({
                "type": "action",
                "message": f"{stats['unvalidated_records']} new records need validation.",
                "action": "validate_new",
            })

        if stats["unacknowledged_alerts_count"] > 0:
            recommendations.append({
                "type": "warning",
                "message": f"{stats['unacknowledged_alerts_count']} validation alerts need attention.",
                "action": "review_alerts",
            })

        if stats["total_discrepancies"] > 0:
            recommendations.append({
                "type": "info",
                "message": (
                    f"{stats['total_discrepancies']} discrepancies found across "
                    f"{stats['validated_records']} records."
                ),
                "action": "review_discrepancies",
            })

        return {
            "recommendations": recommendations,
            "statistics": stats,
            "next_suggested_action": recommendations[0]["action"] if recommendations else "complete",
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _get_worker(self) -> BatchValidationWorker:
        if self._worker is None:
            self._worker = BatchValidationWorker(self.orchestrator)
        return self._worker

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the background worker, if one was started."""
        if self._worker is not None:
            self._worker.shutdown(timeout=timeout)
            self._worker = None
