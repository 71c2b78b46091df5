"""Unit tests for the alert store."""

from datetime import datetime, timedelta

import pytest

from invoice_discrepancy.alerts.store import AlertStore
from invoice_discrepancy.errors import AlertNotFoundError
from invoice_discrepancy.models.alert import Alert

BASE = datetime(2024, 1, 15, 9, 0)


def alert(alert_id, severity="high", discrepancy=10.0, record_id="INV-1", minutes=0):
    return Alert(
        alert_id=alert_id,
        record_id=record_id,
        field="total_amount",
        severity=severity,
        message=f"{severity} alert",
        discrepancy=discrepancy,
        created_at=BASE + timedelta(minutes=minutes),
    )


@pytest.fixture
def store():
    return AlertStore([
        alert("alert-1", "low", 1.0, "INV-1", minutes=0),
        alert("alert-2", "critical", -40.0, "INV-2", minutes=1),
        alert("alert-3", "high", 20.0, "INV-2", minutes=2),
        alert("alert-4", "critical", 5.0, "INV-3", minutes=3),
    ])


class TestLifecycle:
    """Test acknowledge and dismiss."""

    def test_acknowledge_is_idempotent(self, store):
        first = store.acknowledge("alert-1")
        acknowledged_at = first.acknowledged_at

        second = store.acknowledge("alert-1")

        assert second.acknowledged is True
        assert second.acknowledged_at == acknowledged_at
        assert "alert-1" not in {a.alert_id for a in store.unacknowledged()}

    def test_dismiss_keeps_alert(self, store):
        dismissed = store.dismiss("alert-2")
        dismissed_at = dismissed.dismissed_at

        store.dismiss("alert-2")

        assert "alert-2" in store
        assert store.get("alert-2").dismissed_at == dismissed_at
        assert len(store.unacknowledged()) == 3

    def test_unknown_alert(self, store):
        with pytest.raises(AlertNotFoundError):
            store.acknowledge("missing")
        with pytest.raises(KeyError):
            store.dismiss("missing")

    def test_acknowledge_all(self, store):
        store.acknowledge("alert-1")
        store.dismiss("alert-2")

        count = store.acknowledge_all()

        assert count == 2
        assert store.get("alert-2").acknowledged is False
        assert store.get("alert-3").acknowledged_at == store.get("alert-4").acknowledged_at
        assert store.unacknowledged() == []

    def test_acknowledge_all_including_dismissed(self, store):
        store.dismiss("alert-2")

        assert store.acknowledge_all(pending_only=False) == 4
        assert store.acknowledge_all(pending_only=False) == 0


class TestContents:
    """Test adding, replacing and removing alerts."""

    def test_add_and_replace_by_id(self, store):
        added = store.add_alerts([alert("alert-1", "medium"), alert("alert-5")])

        assert added == 2
        assert len(store) == 5
        assert store.get("alert-1").severity == "medium"

    def test_replace_alerts(self, store):
        store.replace_alerts([alert("alert-9")])

        assert [a.alert_id for a in store.alerts] == ["alert-9"]

    def test_remove_for_records(self, store):
        removed = store.remove_for_records(["INV-2", "INV-7"])

        assert removed == 2
        assert [a.alert_id for a in store.alerts] == ["alert-1", "alert-4"]

    def test_clear(self, store):
        store.clear()

        assert len(store) == 0


class TestViews:
    """Test views and statistics."""

    def test_display_order(self, store):
        ordered = store.display_order()

        assert [a.alert_id for a in ordered] == ["alert-4", "alert-2", "alert-3", "alert-1"]

    def test_by_severity(self, store):
        assert [a.alert_id for a in store.by_severity("critical")] == ["alert-2", "alert-4"]
        assert [a.alert_id for a in store.high_priority()] == ["alert-2", "alert-3", "alert-4"]

    def test_statistics(self, store):
        store.acknowledge("alert-1")
        store.dismiss("alert-3")

        stats = store.statistics()

        assert stats["total"] == 4
        assert stats["acknowledged"] == 1
        assert stats["dismissed"] == 1
        assert stats["unacknowledged"] == 2
        assert stats["by_severity"] == {"critical": 2, "high": 1, "medium": 0, "low": 1}
        assert stats["total_discrepancy_amount"] == 66.0
        assert stats["average_discrepancy_amount"] == 16.5
        assert stats["max_discrepancy_amount"] == 40.0
        assert stats["oldest_alert"].alert_id == "alert-1"
        assert stats["newest_alert"].alert_id == "alert-4"

    def test_empty_statistics(self):
        stats = AlertStore().statistics()

        assert stats["total"] == 0
        assert stats["oldest_alert"] is None
        assert stats["average_discrepancy_amount"] == 0.0
