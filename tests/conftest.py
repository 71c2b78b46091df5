"""Shared fixtures for invoice discrepancy tests."""

import threading

import pytest

from invoice_discrepancy.batch.worker import BatchValidationWorker


def build_record(
    record_id="INV-1",
    amount=100.0,
    tax_rate=10.0,
    tax_amount=10.0,
    discount_amount=0.0,
    total_amount=None,
    **extra
):
    """Record mapping whose total is consistent unless total_amount is given."""
    if total_amount is None:
        total_amount = amount + tax_amount - discount_amount
    record = {
        "record_id": record_id,
        "invoice_number": f"No-{record_id}",
        "customer_name": "Acme AB",
        "amount": amount,
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "discount_amount": discount_amount,
        "total_amount": total_amount,
    }
    record.update(extra)
    return record


@pytest.fixture
def make_record():
    """Factory for record mappings (see build_record)."""
    return build_record


@pytest.fixture
def stall_worker(monkeypatch):
    """Hold new worker threads before their first request until the event is set."""
    release = threading.Event()
    worker_loop = BatchValidationWorker._worker_loop

    def stalled_loop(self):
        release.wait(timeout=5)
        worker_loop(self)

    monkeypatch.setattr(BatchValidationWorker, "_worker_loop", stalled_loop)
    yield release
    release.set()


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    """Keep user environment settings out of the tests."""
    for name in (
        "DISCREPANCY_PROFILE",
        "DISCREPANCY_PROFILES_DIR",
        "DISCREPANCY_LOG_LEVEL",
        "DISCREPANCY_VALIDATED_BY",
    ):
        monkeypatch.delenv(name, raising=False)
