"""
Progress reporting for running jobs.

The pipeline writes every progress change to the record store and then
notifies a ProgressSink (push channel, event bus, log). Sinks are
fire-and-forget: JobProcessor hands events to a BackgroundProgressSink, so a
slow or failing sink is logged and never holds up or fails the job.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

from .job_manager import JobManager
from .models import Job, JobStatus

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """A single progress notification."""

    job_id: str
    status: str
    progress: float
    message: Optional[str] = None
    error_message: Optional[str] = None


class ProgressSink(ABC):
    """Receiver of progress events."""

    @abstractmethod
    def report(self, owner_id: str, event: ProgressEvent) -> None:
        """Deliver one event to the job's owner."""


class LoggingProgressSink(ProgressSink):
    """Writes progress events to the log."""

    def report(self, owner_id: str, event: ProgressEvent) -> None:
        logger.info(
            f"[{owner_id}] job {event.job_id}: {event.status} {event.progress:.0%}"
            + (f" - {event.message}" if event.message else "")
        )


class BackgroundProgressSink(ProgressSink):
    """
    Delivers events to another sink on a single background thread.

    report() only queues the event; the wrapped sink sees events in the
    order they were reported.
    """

    def __init__(self, sink: ProgressSink):
        self.sink = sink
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="progress-sink")

    def report(self, owner_id: str, event: ProgressEvent) -> None:
        try:
            self._executor.submit(self._deliver, owner_id, event)
        except RuntimeError:
            logger.debug(f"Progress sink closed; dropping {event.status} event for job {event.job_id}")

    def _deliver(self, owner_id: str, event: ProgressEvent) -> None:
        try:
            self.sink.report(owner_id, event)
        except Exception as e:
            logger.warning(f"Progress sink failed for job {event.job_id}: {e}")

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait until every event reported so far has been delivered."""
        self._executor.submit(lambda: None).result(timeout)

    def close(self) -> None:
        """Deliver pending events and stop the delivery thread."""
        self._executor.shutdown(wait=True)


class ProgressReporter:
    """
    Records one job's progress in the store and forwards it to a sink.

    Progress within a status never decreases; the store clamps it and the
    event carries the stored value.
    """

    def __init__(self, job_store: JobManager, sink: ProgressSink, job: Job):
        self.job_store = job_store
        self.sink = sink
        self.job_id = job.id
        self.owner_id = job.owner_id
        self.status = job.status

    def update(self, status: JobStatus, progress: Optional[float] = None, message: Optional[str] = None) -> Job:
        """
        Record progress, moving to `status` if needed.

        Raises:
            InvalidTransition: If the status change is not allowed
        """
        job = self.job_store.update_status(self.job_id, status, progress, message=message)
        self.status = job.status
        self._emit(ProgressEvent(self.job_id, job.status.value, job.progress, message))
        return job

    def fail(self, error_message: str) -> Job:
        job = self.job_store.update_status(self.job_id, JobStatus.ERROR, 0.0, error_message=error_message)
        self.status = job.status
        self._emit(ProgressEvent(self.job_id, job.status.value, job.progress, error_message=error_message))
        return job

    def stage_callback(self, status: JobStatus, start: float, end: float) -> Callable[[float, str], None]:
        """Callback mapping a stage's own [0, 1] progress into [start, end] of the job."""

        def _callback(fraction: float, message: str = "") -> None:
            fraction = max(0.0, min(1.0, fraction))
            self.update(status, start + (end - start) * fraction, message or None)

        return _callback

    def _emit(self, event: ProgressEvent) -> None:
        try:
            self.sink.report(self.owner_id, event)
        except Exception as e:
            logger.warning(f"Progress sink failed for job {self.job_id}: {e}")
