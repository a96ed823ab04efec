"""
Filesystem-based record store for ingestion jobs.

Each job gets a dedicated directory:
- metadata.json: the job record without its text fields
- raw.txt / structured.md: raw and structured text, written at their stages
- segments.json: timed transcript segments (audio jobs only)

Status changes go through update_status(), which enforces the job state
machine under a lock so concurrent writers (worker thread, cancel request)
cannot both win.
"""

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import InvalidTransition
from .models import Job, JobStatus, can_transition

logger = logging.getLogger(__name__)


class JobManager:
    """Manages job records using filesystem-based state."""

    FILES = {
        "metadata": "metadata.json",
        "raw_text": "raw.txt",
        "structured_text": "structured.md",
        "segments": "segments.json",
    }

    def __init__(self, jobs_dir: str = "server_jobs"):
        """
        Initialize the job manager.

        Args:
            jobs_dir: Directory to store all job directories
        """
        self.jobs_dir = Path(jobs_dir)
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def get_job_dir(self, job_id: str) -> Path:
        """Get the directory path for a job."""
        return self.jobs_dir / job_id

    def create_job(self, job: Job) -> Job:
        """
        Persist a new job record.

        Args:
            job: Job in the pending state

        Returns:
            The stored job
        """
        with self._lock:
            job_dir = self.get_job_dir(job.id)
            job_dir.mkdir(parents=True, exist_ok=True)
            self._save_metadata(job)
        logger.info(f"Created job {job.id} ({job.source_kind.value}, {job.filename})")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Load a job including its text fields, or None if it does not exist."""
        with self._lock:
            metadata = self._load_json_file(job_id, self.FILES["metadata"])
            if not metadata:
                return None
            job = Job.from_dict(metadata)
            job.raw_text = self._load_text_file(job_id, self.FILES["raw_text"])
            job.structured_text = self._load_text_file(job_id, self.FILES["structured_text"])
            return job

    def get_segments(self, job_id: str) -> List[Dict[str, Any]]:
        return self._load_json_file(job_id, self.FILES["segments"]) or []

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        progress: Optional[float] = None,
        error_message: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Job:
        """
        Move a job to a status and/or record progress.

        Within the same status progress never decreases; entering a new status
        sets progress to the given starting fraction.

        Args:
            job_id: Job identifier
            status: Target status (may equal the current one)
            progress: Progress fraction in [0, 1]
            error_message: Human-readable failure, stored only for the error status
            message: Progress message shown to clients

        Returns:
            The updated job

        Raises:
            ValueError: If the job does not exist
            InvalidTransition: If the state machine does not allow the change
        """
        with self._lock:
            job = self._require(job_id)

            if status == job.status:
                if status.is_terminal:
                    return job
                if progress is not None:
                    job.progress = max(job.progress, _clamp(progress))
            else:
                if not can_transition(job.status, status):
                    raise InvalidTransition(f"Job {job_id}: cannot move from {job.status.value} to {status.value}")
                logger.info(f"Job {job_id}: {job.status.value} -> {status.value}")
                job.status = status
                if progress is not None:
                    job.progress = _clamp(progress)

            if status == JobStatus.ERROR and error_message:
                job.error_message = error_message
            if message is not None:
                job.progress_message = message

            self._save_metadata(job)
            return job

    def update_raw_text(
        self,
        job_id: str,
        text: str,
        duration: Optional[float] = None,
        transcription_model: Optional[str] = None,
        used_ocr: Optional[bool] = None,
        quality: Optional[Dict[str, Any]] = None,
        segments: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """Store raw text and the metadata of the stage that produced it."""
        with self._lock:
            job = self._require(job_id)
            self._save_text_file(job_id, self.FILES["raw_text"], text)
            if segments is not None:
                self._save_json_file(job_id, self.FILES["segments"], segments)
            if duration is not None:
                job.duration = duration
            if transcription_model is not None:
                job.transcription_model = transcription_model
            if used_ocr is not None:
                job.used_ocr = used_ocr
            if quality is not None:
                job.quality = quality
            self._save_metadata(job)

    def update_structured_text(self, job_id: str, text: str, detected_language: Optional[str] = None) -> None:
        """Store the structured Markdown and the detected language."""
        with self._lock:
            job = self._require(job_id)
            self._save_text_file(job_id, self.FILES["structured_text"], text)
            job.detected_language = detected_language
            self._save_metadata(job)

    def list_jobs(self, status_filter: Optional[str] = None, limit: Optional[int] = 100) -> List[Dict[str, Any]]:
        """
        List jobs, newest first.

        Args:
            status_filter: Only include jobs with this status value
            limit: Maximum number of jobs to return (None for all)

        Returns:
            List of job dictionaries without text fields
        """
        jobs = []
        for job_dir in self.jobs_dir.iterdir():
            if not job_dir.is_dir():
                continue
            metadata = self._load_json_file(job_dir.name, self.FILES["metadata"])
            if not metadata:
                continue
            if status_filter and metadata.get("status") != status_filter:
                continue
            jobs.append(metadata)

        jobs.sort(key=lambda x: x.get("created_at", ""), reverse=True)
        return jobs if limit is None else jobs[:limit]

    def _require(self, job_id: str) -> Job:
        metadata = self._load_json_file(job_id, self.FILES["metadata"])
        if not metadata:
            raise ValueError(f"Job {job_id} does not exist")
        return Job.from_dict(metadata)

    def _save_metadata(self, job: Job) -> None:
        job.updated_at = datetime.now().isoformat()
        self._save_json_file(job.id, self.FILES["metadata"], job.to_dict(include_text=False))

    def _save_json_file(self, job_id: str, filename: str, data: Any) -> None:
        self._write_atomic(job_id, filename, json.dumps(data, ensure_ascii=False, indent=2))

    def _save_text_file(self, job_id: str, filename: str, text: str) -> None:
        self._write_atomic(job_id, filename, text)

    def _write_atomic(self, job_id: str, filename: str, content: str) -> None:
        job_dir = self.get_job_dir(job_id)
        if not job_dir.exists():
            raise ValueError(f"Job {job_id} does not exist")

        file_path = job_dir / filename
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, file_path)

    def _load_json_file(self, job_id: str, filename: str) -> Optional[Any]:
        file_path = self.get_job_dir(job_id) / filename
        if not file_path.exists():
            return None

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not read {file_path}: {e}")
            return None

    def _load_text_file(self, job_id: str, filename: str) -> Optional[str]:
        file_path = self.get_job_dir(job_id) / filename
        if not file_path.exists():
            return None

        with open(file_path, "r", encoding="utf-8") as f:
            return f.read()


def _clamp(progress: float) -> float:
    return max(0.0, min(1.0, float(progress)))
