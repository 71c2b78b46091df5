"""Background worker that runs validation batches off the caller's thread."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
import logging
from queue import Empty, Queue
import threading
from typing import Any, Iterable, Mapping, Optional, Union

from ..config.validation_config import ValidationConfig
from ..errors import OrchestratorBusyError
from ..models.validation_progress import STATUS_PROCESSING, ValidationProgress
from .runner import BatchOutcome, ValidationOrchestrator

logger = logging.getLogger(__name__)

# Worker states
STATE_IDLE = "idle"
STATE_RUNNING = "running"
STATE_SUCCESS = "success"
STATE_ERROR = "error"

# Event kinds
EVENT_PROGRESS = "progress"
EVENT_COMPLETED = "completed"
EVENT_FAILED = "failed"


@dataclass(frozen=True)
class WorkerEvent:
    """Message sent from the worker thread to the caller.

    payload is a ValidationProgress for "progress", the BatchOutcome for
    "completed" and the exception for "failed".
    """
    kind: str
    batch_id: Optional[str]
    payload: Any = None


@dataclass
class _BatchRequest:
    records: Any
    config: Optional[Union[ValidationConfig, Mapping[str, Any]]]
    future: Future


class BatchValidationWorker:
    """Runs ValidationOrchestrator.validate_batch on a single daemon thread.

    Requests arrive on a queue; only one request may be in flight. Progress
    and results come back on `events` and through the Future that submit()
    returns. Done-callbacks of that Future run on the worker thread.
    """

    def __init__(self, orchestrator: ValidationOrchestrator, name: str = "BatchValidationWorker"):
        self.orchestrator = orchestrator
        self.events: "Queue[WorkerEvent]" = Queue()
        self._requests: "Queue[_BatchRequest]" = Queue()
        self._lock = threading.Lock()
        self._shutdown_flag = threading.Event()
        self._busy = False
        self._state = STATE_IDLE
        self._pending: Optional[_BatchRequest] = None
        self._cancel_pending = False
        self._thread = threading.Thread(target=self._worker_loop, name=name, daemon=True)
        self._thread.start()
        logger.debug(f"{name} started")

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._busy

    def submit(
        self,
        records: Iterable[Any],
        config: Optional[Union[ValidationConfig, Mapping[str, Any]]] = None,
    ) -> "Future[BatchOutcome]":
        """Queue a batch for validation.

        Returns:
            Future resolving to the BatchOutcome, or failing with the batch error

        Raises:
            OrchestratorBusyError: If a batch is queued or running
            RuntimeError: If the worker has been shut down
        """
        future: "Future[BatchOutcome]" = Future()
        with self._lock:
            if self._shutdown_flag.is_set():
                raise RuntimeError("Worker has been shut down")
            if self._busy or self.orchestrator.is_validating:
                raise OrchestratorBusyError("A validation batch is already in progress")
            self._busy = True
            self._state = STATE_RUNNING
            self._cancel_pending = False
            self._pending = _BatchRequest(records=records, config=config, future=future)
            self._requests.put(self._pending)
        return future

    def cancel(self) -> bool:
        """Cancel the queued or running batch.

        A batch that has not reached the orchestrator yet is cancelled as
        soon as it starts, so it still ends failed with nothing committed.

        Returns:
            True if a batch was queued or running
        """
        with self._lock:
            queued = self._pending is not None
            if queued:
                self._cancel_pending = True
        return self.orchestrator.cancel() or queued

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the worker thread after the current batch.

        A batch still waiting in the queue fails with RuntimeError.
        """
        logger.debug("Shutting down batch worker")
        with self._lock:
            self._shutdown_flag.set()
            leftover = []
            while True:
                try:
                    leftover.append(self._requests.get_nowait())
                except Empty:
                    break
                self._requests.task_done()

        for request in leftover:
            self._finish(request, STATE_ERROR)
            if request.future.set_running_or_notify_cancel():
                request.future.set_exception(RuntimeError("Worker has been shut down"))

        self._thread.join(timeout=timeout)

    def _finish(self, request: _BatchRequest, state: str) -> None:
        with self._lock:
            if self._pending is request:
                self._pending = None
                self._cancel_pending = False
                self._busy = False
                self._state = state

    def _publish_progress(self, progress: ValidationProgress) -> None:
        if self._cancel_pending and progress.status == STATUS_PROCESSING:
            self.orchestrator.cancel()
        self.events.put(WorkerEvent(EVENT_PROGRESS, progress.batch_id, progress))

    def _worker_loop(self) -> None:
        while not self._shutdown_flag.is_set():
            try:
                request = self._requests.get(timeout=0.1)
            except Empty:
                continue

            try:
                self._run(request)
            finally:
                self._requests.task_done()

    def _run(self, request: _BatchRequest) -> None:
        if not request.future.set_running_or_notify_cancel():
            self._finish(request, STATE_IDLE)
            return

        try:
            outcome = self.orchestrator.validate_batch(
                request.records,
                config=request.config,
                progress_callback=self._publish_progress,
            )
        except Exception as e:
            logger.error(f"Background batch failed: {e}")
            self._finish(request, STATE_ERROR)
            self.events.put(WorkerEvent(EVENT_FAILED, getattr(e, "batch_id", None), e))
            request.future.set_exception(e)
            return

        self._finish(request, STATE_SUCCESS)
        self.events.put(WorkerEvent(EVENT_COMPLETED, outcome.batch_id, outcome))
        request.future.set_result(outcome)
