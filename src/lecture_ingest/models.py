"""
Data models shared by the audio and document paths.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceKind(Enum):
    """Kind of uploaded artifact; decides which pipeline path runs."""

    AUDIO = "audio"
    VIDEO = "video"
    PDF = "pdf"
    PPTX = "pptx"
    DOCX = "docx"

    @property
    def is_media(self) -> bool:
        return self in (SourceKind.AUDIO, SourceKind.VIDEO)


class RecommendedAction(Enum):
    """What the quality assessment suggests doing with extracted text."""

    PROCESS = "process"
    OCR = "ocr"
    MANUAL_REVIEW = "manual_review"


@dataclass(frozen=True)
class AudioChunk:
    """A bounded-duration slice of normalized audio."""

    index: int
    start_time: float
    end_time: float
    file_path: str

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class TranscriptSegment:
    """A single segment of transcribed audio with timing."""

    start: float
    end: float
    text: str

    def shifted(self, offset: float) -> "TranscriptSegment":
        return TranscriptSegment(start=self.start + offset, end=self.end + offset, text=self.text)


@dataclass
class TranscriptionResult:
    """Result of transcribing one chunk, or a whole recording once merged."""

    text: str
    duration: float
    provider: str
    model: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    language: Optional[str] = None

    @property
    def model_label(self) -> str:
        """Provider-qualified model name, e.g. "openai/gpt-4o-mini-transcribe"."""
        return f"{self.provider}/{self.model}" if self.provider else self.model


@dataclass(frozen=True)
class DocumentQuality:
    """Quality scores for extracted text, all in [0, 1]."""

    text_confidence: float
    structure_score: float
    completeness: float
    recommended_action: RecommendedAction

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["recommended_action"] = self.recommended_action.value
        return data


@dataclass
class ExtractedDocument:
    """Output of the document path."""

    text: str
    source_kind: SourceKind
    quality: DocumentQuality
    used_ocr: bool
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_images(self) -> bool:
        return bool(self.metadata.get("has_images"))

    @property
    def has_tables(self) -> bool:
        return bool(self.metadata.get("has_tables"))
