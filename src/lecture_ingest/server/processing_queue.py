"""
Queue-based job processing using ThreadPoolExecutor.

This module manages a queue of ingestion jobs and processes them
asynchronously. Each running job owns a CancellationToken so it can be
stopped cooperatively from the API.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from queue import Empty, PriorityQueue
from typing import Any, Dict, Optional

from ..cancellation import CancellationToken
from ..errors import InvalidTransition
from .job_manager import JobManager
from .models import JobStatus
from .processor import JobProcessor

logger = logging.getLogger(__name__)


class ProcessingQueue:
    """Manages a queue of ingestion jobs using ThreadPoolExecutor."""

    def __init__(
        self,
        job_manager: JobManager,
        processor: JobProcessor,
        max_workers: int = 2,
        queue_check_interval: float = 1.0,
    ):
        """
        Initialize the processing queue.

        Args:
            job_manager: JobManager instance for state management
            processor: JobProcessor that runs each job
            max_workers: Maximum number of concurrent processing threads
            queue_check_interval: How often to check for new jobs (seconds)
        """
        self.job_manager = job_manager
        self.processor = processor
        self.max_workers = max_workers
        self.queue_check_interval = queue_check_interval

        # Threading components
        self.job_queue: PriorityQueue = PriorityQueue()
        self.executor = ThreadPoolExecutor(max_workers=max_workers)
        self.running_jobs: Dict[str, Future] = {}
        self.cancel_tokens: Dict[str, CancellationToken] = {}
        self.is_running = False
        self.queue_thread: Optional[threading.Thread] = None
        self._sequence = 0

        # Lock for thread safety
        self._lock = threading.Lock()

    def start(self):
        """Start the processing queue."""
        if self.is_running:
            logger.warning("Processing queue is already running")
            return

        self.is_running = True
        self.queue_thread = threading.Thread(target=self._queue_worker, daemon=True)
        self.queue_thread.start()
        logger.info(f"Processing queue started with {self.max_workers} workers")

    def stop(self):
        """Stop the processing queue, canceling running jobs."""
        if not self.is_running:
            return

        logger.info("Stopping processing queue...")
        self.is_running = False

        if self.queue_thread:
            self.queue_thread.join(timeout=5.0)

        with self._lock:
            for job_id, token in self.cancel_tokens.items():
                logger.info(f"Cancelling job {job_id}")
                token.cancel()

        self.executor.shutdown(wait=True)
        self.processor.close()
        logger.info("Processing queue stopped")

    def enqueue_job(self, job_id: str, priority: int = 0) -> bool:
        """
        Add a job to the processing queue.

        Args:
            job_id: Job identifier
            priority: Job priority (lower numbers = higher priority)

        Returns:
            True if job was enqueued, False if the queue is stopped or the job is already running
        """
        if not self.is_running:
            logger.error("Cannot enqueue job: processing queue is not running")
            return False

        with self._lock:
            if job_id in self.running_jobs:
                logger.warning(f"Job {job_id} is already running")
                return False
            self._sequence += 1
            # Sequence keeps FIFO order among equal priorities
            self.job_queue.put((priority, self._sequence, job_id))

        logger.info(f"Job {job_id} enqueued with priority {priority}")
        return True

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a pending or processing job.

        Pending jobs are moved to canceled directly in the store; the worker
        skips them when they come up. Processing jobs get their token
        canceled and stop at the next checkpoint.

        Args:
            job_id: Job identifier

        Returns:
            True if cancellation was accepted, False if the job is past the cancelable stages
        """
        job = self.job_manager.get_job(job_id)
        if job is None:
            return False

        if job.status == JobStatus.PENDING:
            try:
                self.job_manager.update_status(job_id, JobStatus.CANCELED, message="Canceled before processing")
                logger.info(f"Job {job_id} canceled while pending")
                return True
            except InvalidTransition:
                # A worker started it in the meantime
                job = self.job_manager.get_job(job_id)

        if job.status == JobStatus.PROCESSING:
            with self._lock:
                token = self.cancel_tokens.get(job_id)
            if token is not None and token.cancel():
                logger.info(f"Cancellation requested for job {job_id}")
                return True

        logger.warning(f"Could not cancel job {job_id} (status: {job.status.value})")
        return False

    def get_queue_status(self) -> Dict[str, Any]:
        """Get status information about the processing queue."""
        with self._lock:
            running_jobs = list(self.running_jobs.keys())

        return {
            "is_running": self.is_running,
            "queue_size": self.job_queue.qsize(),
            "running_jobs": running_jobs,
            "max_workers": self.max_workers,
        }

    def _queue_worker(self):
        """Main queue worker thread that hands jobs to the executor."""
        logger.info("Queue worker thread started")

        while self.is_running:
            try:
                try:
                    _, _, job_id = self.job_queue.get(timeout=self.queue_check_interval)
                except Empty:
                    continue

                token = CancellationToken()
                with self._lock:
                    self.cancel_tokens[job_id] = token
                    future = self.executor.submit(self.processor.process, job_id, token)
                    self.running_jobs[job_id] = future

                logger.info(f"Starting processing for job {job_id}")
                future.add_done_callback(lambda f, jid=job_id: self._job_completed(jid, f))

            except Exception as e:
                logger.error(f"Error in queue worker: {e}")
                time.sleep(1.0)

        logger.info("Queue worker thread stopped")

    def _job_completed(self, job_id: str, future: Future):
        """Callback called when a job finishes."""
        with self._lock:
            self.running_jobs.pop(job_id, None)
            self.cancel_tokens.pop(job_id, None)

        if future.cancelled():
            logger.info(f"Job {job_id} was cancelled before it started")
        elif future.exception():
            logger.error(f"Job {job_id} failed with error: {future.exception()}")
        else:
            job = future.result()
            logger.info(f"Job {job_id} finished with status {job.status.value if job else 'unknown'}")
