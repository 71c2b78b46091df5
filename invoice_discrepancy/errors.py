"""Exception types raised by the discrepancy engine."""

from typing import Optional


class DiscrepancyEngineError(Exception):
    """Base class for all engine errors."""


class ConfigError(DiscrepancyEngineError, ValueError):
    """Invalid configuration value, unknown key, or unreadable profile."""


class RecordValidationError(DiscrepancyEngineError, ValueError):
    """A single record could not be turned into an InvoiceRecord.

    Caught by the orchestrator and stored as a per-record error; it never
    aborts a batch.
    """

    def __init__(self, message: str, record_id: Optional[str] = None,
                 error_type: str = "processing_error"):
        super().__init__(message)
        self.record_id = record_id
        self.error_type = error_type


class BatchValidationError(DiscrepancyEngineError):
    """Batch-fatal failure (the record list could not be read)."""

    def __init__(self, message: str, batch_id: Optional[str] = None):
        super().__init__(message)
        self.batch_id = batch_id


class BatchCancelledError(BatchValidationError):
    """Batch stopped by a cancellation request; nothing was committed."""


class OrchestratorBusyError(DiscrepancyEngineError):
    """A batch is already processing."""


class RecordNotFoundError(DiscrepancyEngineError, LookupError):
    """None of the requested record ids are present in the given records."""


class AlertNotFoundError(DiscrepancyEngineError, KeyError):
    """Alert id is not known to the store."""
