"""
Data models for the ingestion server: the job record and its state machine.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..models import SourceKind


class JobStatus(Enum):
    """Overall job status."""

    PENDING = "pending"
    PROCESSING = "processing"
    STRUCTURING = "structuring"
    COMPLETED = "completed"
    CANCELED = "canceled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELED, JobStatus.ERROR})

# One-directional: no state is ever revisited
ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELED}),
    JobStatus.PROCESSING: frozenset({JobStatus.STRUCTURING, JobStatus.CANCELED, JobStatus.ERROR}),
    JobStatus.STRUCTURING: frozenset({JobStatus.COMPLETED, JobStatus.ERROR}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELED: frozenset(),
    JobStatus.ERROR: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _now() -> str:
    return datetime.now().isoformat()


@dataclass
class Job:
    """One processing request for one uploaded artifact."""

    id: str
    source_kind: SourceKind
    title: str
    filename: str
    source_key: str
    owner_id: str = "anonymous"
    mime_type: Optional[str] = None
    language: Optional[str] = None
    file_size: int = 0
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    progress_message: str = ""
    raw_text: Optional[str] = None
    structured_text: Optional[str] = None
    error_message: Optional[str] = None
    detected_language: Optional[str] = None
    duration: Optional[float] = None
    transcription_model: Optional[str] = None
    used_ocr: Optional[bool] = None
    quality: Optional[Dict[str, Any]] = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self, include_text: bool = True) -> Dict[str, Any]:
        """Serialize for JSON storage and API responses."""
        data = asdict(self)
        data["source_kind"] = self.source_kind.value
        data["status"] = self.status.value
        if not include_text:
            data.pop("raw_text")
            data.pop("structured_text")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        values = dict(data)
        values["source_kind"] = SourceKind(values["source_kind"])
        values["status"] = JobStatus(values["status"])
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in values.items() if k in known})
