"""In-memory alert store with the acknowledge/dismiss lifecycle.

Not thread-safe: the owner (normally ValidationService) serializes access.
"""

from datetime import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..errors import AlertNotFoundError
from ..models.alert import Alert
from ..models.validation_result import SEVERITY_CRITICAL, SEVERITY_HIGH, SEVERITY_LOW, SEVERITY_MEDIUM, SEVERITY_ORDER

logger = logging.getLogger(__name__)

ALERT_SEVERITIES = (SEVERITY_CRITICAL, SEVERITY_HIGH, SEVERITY_MEDIUM, SEVERITY_LOW)


class AlertStore:
    """Holds the alerts of the current session, keyed by alert id."""

    def __init__(self, alerts: Optional[Iterable[Alert]] = None):
        self._alerts: Dict[str, Alert] = {}
        if alerts:
            self.add_alerts(alerts)

    def __len__(self) -> int:
        return len(self._alerts)

    def __contains__(self, alert_id: object) -> bool:
        return alert_id in self._alerts

    @property
    def alerts(self) -> List[Alert]:
        """All alerts in insertion order, including dismissed ones."""
        return list(self._alerts.values())

    def add_alerts(self, alerts: Iterable[Alert]) -> int:
        """Add alerts; an alert with a known id replaces the stored one.

        Returns:
            Number of alerts added
        """
        count = 0
        for alert in alerts:
            self._alerts[alert.alert_id] = alert
            count += 1
        return count

    def replace_alerts(self, alerts: Iterable[Alert]) -> None:
        """Drop all alerts and store the given ones."""
        self._alerts = {}
        self.add_alerts(alerts)

    def remove_for_records(self, record_ids: Iterable[str]) -> int:
        """Remove every alert belonging to record_ids.

        Returns:
            Number of alerts removed
        """
        ids = set(record_ids)
        before = len(self._alerts)
        self._alerts = {k: a for k, a in self._alerts.items() if a.record_id not in ids}
        return before - len(self._alerts)

    def clear(self) -> None:
        self._alerts = {}

    def get(self, alert_id: str) -> Alert:
        """Alert by id.

        Raises:
            AlertNotFoundError: If the id is unknown
        """
        try:
            return self._alerts[alert_id]
        except KeyError:
            raise AlertNotFoundError(f"Alert not found: {alert_id}") from None

    def acknowledge(self, alert_id: str) -> Alert:
        """Mark an alert acknowledged; repeated calls keep the first timestamp."""
        alert = self.get(alert_id)
        if not alert.acknowledged:
            alert.acknowledged = True
            alert.acknowledged_at = datetime.now()
            logger.debug(f"Alert {alert_id} acknowledged")
        return alert

    def dismiss(self, alert_id: str) -> Alert:
        """Mark an alert dismissed; it stays in the store but leaves the pending views."""
        alert = self.get(alert_id)
        if not alert.dismissed:
            alert.dismissed = True
            alert.dismissed_at = datetime.now()
            logger.debug(f"Alert {alert_id} dismissed")
        return alert

    def acknowledge_all(self, pending_only: bool = True) -> int:
        """Acknowledge alerts in bulk with a shared timestamp.

        Args:
            pending_only: Skip dismissed alerts

        Returns:
            Number of alerts newly acknowledged
        """
        now = datetime.now()
        count = 0
        for alert in self._alerts.values():
            if alert.acknowledged or (pending_only and alert.dismissed):
                continue
            alert.acknowledged = True
            alert.acknowledged_at = now
            count += 1
        if count:
            logger.info(f"Acknowledged {count} alert(s)")
        return count

    def unacknowledged(self) -> List[Alert]:
        """Alerts that are neither acknowledged nor dismissed."""
        return [a for a in self._alerts.values() if a.is_pending]

    def by_severity(self, severities: Union[str, Sequence[str]]) -> List[Alert]:
        if isinstance(severities, str):
            severities = [severities]
        return [a for a in self._alerts.values() if a.severity in severities]

    def high_priority(self) -> List[Alert]:
        """Critical and high severity alerts."""
        return self.by_severity([SEVERITY_CRITICAL, SEVERITY_HIGH])

    def display_order(self, alerts: Optional[Iterable[Alert]] = None) -> List[Alert]:
        """Sort for display: critical first, newest first within a severity."""
        if alerts is None:
            alerts = self._alerts.values()
        return sorted(alerts, key=lambda a: (SEVERITY_ORDER[a.severity], a.created_at), reverse=True)

    def statistics(self) -> Dict[str, Any]:
        """Counts by status and severity, discrepancy totals and the age range."""
        alerts = list(self._alerts.values())
        stats: Dict[str, Any] = {
            "total": len(alerts),
            "acknowledged": sum(1 for a in alerts if a.acknowledged),
            "dismissed": sum(1 for a in alerts if a.dismissed),
            "unacknowledged": sum(1 for a in alerts if a.is_pending),
            "by_severity": {severity: 0 for severity in ALERT_SEVERITIES},
            "total_discrepancy_amount": 0.0,
            "average_discrepancy_amount": 0.0,
            "max_discrepancy_amount": 0.0,
            "oldest_alert": None,
            "newest_alert": None,
        }
        if not alerts:
            return stats

        amounts = [abs(a.discrepancy) for a in alerts]
        for alert in alerts:
            stats["by_severity"][alert.severity] += 1

        stats["total_discrepancy_amount"] = sum(amounts)
        stats["average_discrepancy_amount"] = sum(amounts) / len(amounts)
        stats["max_discrepancy_amount"] = max(amounts)
        stats["oldest_alert"] = min(alerts, key=lambda a: a.created_at)
        stats["newest_alert"] = max(alerts, key=lambda a: a.created_at)
        return stats
