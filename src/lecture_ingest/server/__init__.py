"""
Ingestion server package.

This package provides a Flask API server with Python Queue-based asynchronous
processing of uploaded lectures: transcription or extraction, then LLM
structuring.
"""

from .app import create_app
from .job_manager import JobManager
from .models import Job, JobStatus
from .processing_queue import ProcessingQueue
from .processor import JobProcessor, build_processor
from .progress import BackgroundProgressSink, LoggingProgressSink, ProgressEvent, ProgressReporter, ProgressSink
from .stores import LocalObjectStore, ObjectStore

__all__ = [
    "BackgroundProgressSink",
    "create_app",
    "build_processor",
    "Job",
    "JobManager",
    "JobProcessor",
    "JobStatus",
    "LocalObjectStore",
    "LoggingProgressSink",
    "ObjectStore",
    "ProcessingQueue",
    "ProgressEvent",
    "ProgressReporter",
    "ProgressSink",
]
