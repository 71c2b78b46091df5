"""Unit tests for the validation orchestrator."""

import re

import pytest

from invoice_discrepancy.batch.runner import ValidationOrchestrator, generate_batch_id
from invoice_discrepancy.errors import (
    BatchCancelledError,
    BatchValidationError,
    ConfigError,
    OrchestratorBusyError,
    RecordNotFoundError,
)
from invoice_discrepancy.models.record_error import ERROR_INVALID_DATA_TYPE, ERROR_MISSING_REQUIRED_FIELD
from tests.conftest import build_record


@pytest.fixture
def orchestrator():
    return ValidationOrchestrator()


def batch_of(count, bad_every=None):
    """Records INV-0..INV-{count-1}; every bad_every-th one has a wrong total."""
    records = []
    for i in range(count):
        if bad_every and i % bad_every == 0:
            records.append(build_record(f"INV-{i}", total_amount=150.0))
        else:
            records.append(build_record(f"INV-{i}"))
    return records


def comparable(results):
    return [
        (r.record_id, r.field, r.original_value, r.calculated_value, r.discrepancy,
         r.severity, r.message, r.within_tolerance)
        for r in results
    ]


class TestValidateBatch:
    """Test batch runs."""

    def test_clean_batch(self, orchestrator):
        outcome = orchestrator.validate_batch(batch_of(5))

        assert outcome.summary.total_records == 5
        assert outcome.summary.valid_records == 5
        assert outcome.summary.total_discrepancies == 0
        assert orchestrator.status == "completed"
        assert orchestrator.progress is None
        assert orchestrator.batch_id == outcome.batch_id
        assert len(orchestrator.results) == 10
        assert {r.batch_id for r in orchestrator.results} == {outcome.batch_id}

    def test_hundred_records_with_bad_totals(self, orchestrator):
        records = batch_of(100)
        for i in range(0, 100, 7)[:15]:
            records[i] = build_record(f"INV-{i}", total_amount=150.0)

        summary = orchestrator.validate_batch(records).summary

        assert summary.total_records == 100
        assert summary.invalid_records == 15
        assert summary.valid_records == 85
        assert summary.critical_count >= 1
        assert summary.result_count == len(orchestrator.results)

    def test_per_record_errors(self, orchestrator):
        records = [
            build_record("INV-1"),
            {"record_id": "INV-2", "amount": 100},
            "not a record",
        ]

        outcome = orchestrator.validate_batch(records)

        assert outcome.summary.total_records == 3
        assert outcome.summary.invalid_records == 2
        assert outcome.summary.error_count == 2
        assert [e.error_type for e in outcome.errors] == [ERROR_MISSING_REQUIRED_FIELD, ERROR_INVALID_DATA_TYPE]
        assert orchestrator.record_ids == ["INV-1", "INV-2", "#2"]
        assert orchestrator.status == "completed"

    def test_empty_batch(self, orchestrator):
        outcome = orchestrator.validate_batch([])

        assert outcome.summary.total_records == 0
        assert orchestrator.status == "completed"

    @pytest.mark.parametrize("records", [None, 42, "records", {"record_id": "INV-1"}])
    def test_unreadable_records(self, orchestrator, records):
        with pytest.raises(BatchValidationError):
            orchestrator.validate_batch(records)

        assert orchestrator.status == "failed"
        assert orchestrator.progress is None
        assert orchestrator.results == []

    def test_config_override_persists(self, orchestrator, make_record):
        records = [make_record(tax_amount=10.01, total_amount=110.01)]

        outcome = orchestrator.validate_batch(records, config={"rules": {"strict_mode": True}})

        assert orchestrator.get_config().rules.strict_mode is True
        assert outcome.summary.invalid_records == 1
        assert orchestrator.validate_batch(records).summary.invalid_records == 1

    def test_invalid_config_fails_batch(self, orchestrator):
        with pytest.raises(ConfigError):
            orchestrator.validate_batch(batch_of(2), config={"rules": {"bogus": True}})

        assert orchestrator.status == "failed"

    def test_batch_id_format(self):
        assert re.match(r"^batch_\d{14}_[0-9a-f]{8}$", generate_batch_id())


class TestProgress:
    """Test progress events."""

    def test_progress_is_monotonic(self, orchestrator):
        events = []

        orchestrator.validate_batch(batch_of(5), progress_callback=events.append)

        percentages = [e.progress_percentage for e in events]
        assert percentages == [0, 20, 40, 60, 80, 100]
        assert percentages == sorted(percentages)
        assert events[0].status == "processing"
        assert events[-1].status == "completed"
        assert events[-1].processed_records == 5

    def test_chunked_progress(self, orchestrator):
        events = []

        orchestrator.validate_batch(
            batch_of(25),
            config={"calculation": {"progress_chunk_size": 10}},
            progress_callback=events.append,
        )

        assert [e.processed_records for e in events] == [0, 10, 20, 25]

    def test_running_counts(self, orchestrator):
        events = []

        orchestrator.validate_batch(batch_of(4, bad_every=2), progress_callback=events.append)

        middle = events[2]
        assert middle.processed_records == 2
        assert middle.invalid_records == 1
        assert middle.valid_records == 1
        assert events[-1].invalid_records == 2

    def test_callback_runs_before_listeners(self, orchestrator):
        calls = []
        orchestrator.on_progress(lambda p: calls.append(("listener", p.processed_records)))

        orchestrator.validate_batch(batch_of(1), progress_callback=lambda p: calls.append(("callback", p.processed_records)))

        assert calls == [("callback", 0), ("listener", 0), ("callback", 1), ("listener", 1)]

    def test_failing_listener_is_ignored(self, orchestrator):
        seen = []

        def broken(progress):
            raise RuntimeError("listener broke")

        orchestrator.on_progress(broken)
        orchestrator.on_progress(seen.append)

        outcome = orchestrator.validate_batch(batch_of(3))

        assert outcome.summary.total_records == 3
        assert len(seen) == 4

    def test_unsubscribe(self, orchestrator):
        seen = []
        unsubscribe = orchestrator.on_progress(seen.append)
        unsubscribe()
        unsubscribe()

        orchestrator.validate_batch(batch_of(2))

        assert seen == []


class TestConcurrencyGuards:
    """Test busy and cancellation handling."""

    def test_reentry_while_processing(self, orchestrator):
        captured = []

        def reenter(progress):
            if progress.status != "processing" or captured:
                return
            for call in (
                lambda: orchestrator.validate_batch(batch_of(1)),
                lambda: orchestrator.validate_record(build_record("INV-X")),
                lambda: orchestrator.revalidate_records(["INV-0"], batch_of(1)),
            ):
                try:
                    call()
                except OrchestratorBusyError as e:
                    captured.append(e)

        outcome = orchestrator.validate_batch(batch_of(3), progress_callback=reenter)

        assert len(captured) == 3
        assert outcome.summary.total_records == 3
        assert orchestrator.status == "completed"

    def test_cancel_midway_keeps_previous_results(self, orchestrator):
        previous = orchestrator.validate_batch(batch_of(3))
        previous_results = orchestrator.results

        def cancel_at_half(progress):
            if progress.status == "processing" and progress.progress_percentage >= 50:
                orchestrator.cancel()

        with pytest.raises(BatchCancelledError):
            orchestrator.validate_batch(batch_of(100), progress_callback=cancel_at_half)

        assert orchestrator.status == "failed"
        assert orchestrator.is_validating is False
        assert orchestrator.batch_id == previous.batch_id
        assert orchestrator.results == previous_results
        assert orchestrator.summary == previous.summary

    def test_cancel_reports_failed_progress(self, orchestrator):
        events = []

        def cancel_first(progress):
            events.append(progress)
            if progress.processed_records == 1:
                orchestrator.cancel()

        with pytest.raises(BatchCancelledError):
            orchestrator.validate_batch(batch_of(3), progress_callback=cancel_first)

        assert events[-1].status == "failed"
        assert events[-1].processed_records == 1

    def test_cancel_when_idle(self, orchestrator):
        assert orchestrator.cancel() is False

    def test_next_batch_after_cancel(self, orchestrator):
        unsubscribe = orchestrator.on_progress(
            lambda p: p.processed_records == 1 and orchestrator.cancel()
        )

        with pytest.raises(BatchCancelledError):
            orchestrator.validate_batch(batch_of(3))

        unsubscribe()
        outcome = orchestrator.validate_batch(batch_of(1))

        assert outcome.summary.total_records == 1


class TestRecordRuns:
    """Test single-record validation and revalidation."""

    def test_validate_record_replaces_results(self, orchestrator):
        orchestrator.validate_batch(batch_of(3))

        validation = orchestrator.validate_record(build_record("INV-1", tax_amount=12.0, total_amount=112.0))

        assert validation.record_id == "INV-1"
        assert any(r.is_flagged for r in orchestrator.get_results_by_record("INV-1"))
        assert len(orchestrator.get_results_by_record("INV-1")) == 2
        assert orchestrator.summary.total_records == 3
        assert orchestrator.summary.invalid_records == 1
        assert orchestrator.record_ids == ["INV-0", "INV-1", "INV-2"]

    def test_validate_new_record_extends_set(self, orchestrator):
        orchestrator.validate_batch(batch_of(2))

        orchestrator.validate_record(build_record("INV-9"))

        assert orchestrator.record_ids == ["INV-0", "INV-1", "INV-9"]
        assert orchestrator.summary.total_records == 3

    def test_revalidate_is_idempotent(self, orchestrator):
        records = batch_of(4, bad_every=2)
        orchestrator.validate_batch(records)

        orchestrator.revalidate_records(["INV-2"], records)
        first = comparable(orchestrator.results)
        first_summary = orchestrator.summary
        orchestrator.revalidate_records(["INV-2"], records)

        assert comparable(orchestrator.results) == first
        summary = orchestrator.summary
        assert summary.total_records == first_summary.total_records
        assert summary.invalid_records == first_summary.invalid_records
        assert summary.total_discrepancies == first_summary.total_discrepancies
        assert summary.total_discrepancy_amount == first_summary.total_discrepancy_amount

    def test_revalidate_leaves_other_records(self, orchestrator):
        records = batch_of(3)
        outcome = orchestrator.validate_batch(records)
        untouched = orchestrator.get_results_by_record("INV-0")

        records[1] = build_record("INV-1", total_amount=150.0)
        revalidation = orchestrator.revalidate_records(["INV-1"], records)

        assert revalidation.record_ids == ("INV-1",)
        assert all(a is b for a, b in zip(orchestrator.get_results_by_record("INV-0"), untouched))
        assert orchestrator.summary.invalid_records == 1
        assert {r.batch_id for r in revalidation.results} == {outcome.batch_id}

    def test_revalidate_with_config(self, orchestrator, make_record):
        records = [make_record(tax_amount=10.01, total_amount=110.01)]
        orchestrator.validate_batch(records)
        assert orchestrator.summary.invalid_records == 0

        orchestrator.revalidate_records(["INV-1"], records, config={"rules": {"strict_mode": True}})

        assert orchestrator.summary.invalid_records == 1
        assert orchestrator.get_config().rules.strict_mode is True

    def test_revalidate_unknown_ids(self, orchestrator):
        records = batch_of(2)
        orchestrator.validate_batch(records)

        with pytest.raises(RecordNotFoundError):
            orchestrator.revalidate_records(["missing"], records)

    def test_revalidate_clears_old_error(self, orchestrator):
        records = [build_record("INV-1"), {"record_id": "INV-2", "amount": 100}]
        orchestrator.validate_batch(records)
        assert orchestrator.summary.error_count == 1

        records[1] = build_record("INV-2")
        orchestrator.revalidate_records(["INV-2"], records)

        assert orchestrator.errors == []
        assert orchestrator.summary.invalid_records == 0


class TestQueries:
    """Test result queries and configuration."""

    @pytest.fixture
    def loaded(self, orchestrator):
        records = batch_of(4, bad_every=2)
        records.append({
            "record_id": "INV-L",
            "amount": 23.0,
            "total_amount": 23.0,
            "line_items": [
                {"quantity": 2, "unit_price": 5.0, "line_total": 10.0},
                {"quantity": 3, "unit_price": 4.0, "line_total": 13.0},
            ],
        })
        records.append({"record_id": "INV-E", "amount": 1})
        orchestrator.validate_batch(records)
        return orchestrator

    def test_by_severity(self, loaded):
        assert {r.record_id for r in loaded.get_results_by_severity("critical")} == {"INV-0", "INV-2"}
        with pytest.raises(ValueError):
            loaded.get_results_by_severity("urgent")

    def test_filter_by_field_prefix(self, loaded):
        items = loaded.filter_results(field="line_item_total_", sort_by="field", descending=False)

        assert [r.field for r in items] == ["line_item_total_0", "line_item_total_1"]

    def test_filter_combined(self, loaded):
        flagged = loaded.filter_results(severity=["critical", "medium"], sort_by="discrepancy")

        assert [r.discrepancy for r in flagged] == [40.0, 40.0, 1.0]
        assert loaded.filter_results(record_id="INV-1", field="tax_amount")[0].severity == "none"

    def test_filter_rejects_sort_field(self, loaded):
        with pytest.raises(ValueError):
            loaded.filter_results(sort_by="priority")

    def test_statistics(self, loaded):
        stats = loaded.get_statistics()

        assert stats["total_validations"] == len(loaded.results)
        assert stats["record_breakdown"]["total"] == 6
        assert stats["record_breakdown"]["invalid"] == 4
        assert stats["errors_by_type"] == {ERROR_MISSING_REQUIRED_FIELD: 1}

    def test_clear_results(self, loaded):
        loaded.clear_results()

        assert loaded.results == []
        assert loaded.summary is None
        assert loaded.status == "pending"
        assert loaded.get_statistics()["total_validations"] == 0

    def test_invalid_update_leaves_config(self, orchestrator):
        before = orchestrator.get_config()

        with pytest.raises(ConfigError):
            orchestrator.update_config({"thresholds": {"low": 50}})

        assert orchestrator.get_config() is before

    def test_reset_config(self):
        orchestrator = ValidationOrchestrator(config={"rules": {"strict_mode": True}})
        assert orchestrator.get_config().rules.strict_mode is True

        orchestrator.reset_config()

        assert orchestrator.get_config().rules.strict_mode is False
