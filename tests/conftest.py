"""Shared fixtures and fakes for the ingestion test suite.

External services (ffmpeg, speech-to-text, chat models, tesseract) are
replaced with small in-process fakes; document parsers run for real on
files built inside the tests.
"""

from __future__ import annotations

import io
import logging
import sys
import threading
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import pytest

from lecture_ingest.audio import AudioNormalizer, AudioTranscriber, MediaInfo
from lecture_ingest.config import PipelineSettings
from lecture_ingest.documents import DocumentExtractor, DocumentPipeline, OCREngine
from lecture_ingest.models import TranscriptionResult, TranscriptSegment
from lecture_ingest.retry import RetryPolicy
from lecture_ingest.server.job_manager import JobManager
from lecture_ingest.server.processor import JobProcessor
from lecture_ingest.server.progress import ProgressEvent, ProgressSink
from lecture_ingest.server.stores import LocalObjectStore
from lecture_ingest.structurer import TextStructurer
from lecture_ingest.workspace import Workspace

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)


# ---------------------------------------------------------------------------
# Media fakes
# ---------------------------------------------------------------------------


class FakeProber:
    """MediaProber stand-in: reports a fixed duration and stream layout."""

    def __init__(self, duration: float, has_audio: bool = True, has_video: bool = False):
        self.duration = duration
        self.has_audio = has_audio
        self.has_video = has_video
        self.probed: List[Path] = []

    def probe(self, path):
        self.probed.append(Path(path))
        return MediaInfo(
            duration=self.duration,
            format="mp3",
            bitrate=64000,
            has_audio=self.has_audio,
            has_video=self.has_video,
        )


class FakeTranscoder:
    """
    FFmpegTranscoder stand-in: writes placeholder files and records calls.

    `on_call` receives the operation name after each call is recorded.
    """

    def __init__(self, on_call: Optional[Callable[[str], None]] = None):
        self.calls: List[tuple] = []
        self.on_call = on_call

    def _record(self, call: tuple) -> None:
        self.calls.append(call)
        if self.on_call:
            self.on_call(call[0])

    def convert(self, input_path, output_path, cancel_token=None):
        self._record(("convert", Path(input_path).name, None, None))
        Path(output_path).write_bytes(b"converted")
        return Path(output_path)

    def extract_audio(self, video_path, output_path, cancel_token=None):
        self._record(("extract_audio", Path(video_path).name, None, None))
        Path(output_path).write_bytes(b"extracted")
        return Path(output_path)

    def segment(self, input_path, output_path, start, duration, cancel_token=None):
        self._record(("segment", Path(input_path).name, start, duration))
        Path(output_path).write_bytes(f"chunk {start:.0f}".encode())
        return Path(output_path)


# ---------------------------------------------------------------------------
# Provider fakes
# ---------------------------------------------------------------------------


class FakeTranscriptionProvider:
    """
    Provider stand-in returning one result per chunk file.

    `texts` maps chunk file names to transcript text; `on_call` runs before
    each result is returned (used to inject delays, errors or cancellation).
    """

    name = "fake"
    model = "fake-whisper"

    def __init__(
        self,
        texts: Optional[Dict[str, str]] = None,
        default_text: str = "Bu derste sinir hücrelerini ve sinapsları inceliyoruz.",
        segment_length: float = 10.0,
        on_call: Optional[Callable[[str], None]] = None,
    ):
        self.texts = texts or {}
        self.default_text = default_text
        self.segment_length = segment_length
        self.on_call = on_call
        self.calls: List[dict] = []
        self._lock = threading.Lock()

    def transcribe(self, audio_bytes, filename, language=None, prompt=None, cancel_token=None):
        with self._lock:
            self.calls.append({"filename": filename, "language": language, "prompt": prompt})
        if self.on_call:
            self.on_call(filename)
        if cancel_token is not None:
            cancel_token.raise_if_canceled()
        text = self.texts.get(filename, self.default_text)
        return TranscriptionResult(
            text=text,
            duration=self.segment_length,
            provider=self.name,
            model=self.model,
            segments=[TranscriptSegment(start=0.0, end=self.segment_length, text=text)] if text else [],
            language="tr",
        )


def fake_transcription_client(create: Callable) -> SimpleNamespace:
    """OpenAI client stand-in exposing audio.transcriptions.create."""
    return SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))


def chat_completion(content: Optional[str]) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeChatClient:
    """OpenAI client stand-in exposing chat.completions.create."""

    def __init__(self, responses: Optional[List] = None, default: str = "# Notes\n\n## Section\n\n- point"):
        self.responses = list(responses or [])
        self.default = default
        self.requests: List[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return chat_completion(response)
        return chat_completion(self.default)


class RecordingProgressSink(ProgressSink):
    def __init__(self):
        self.events: List[ProgressEvent] = []

    def report(self, owner_id: str, event: ProgressEvent) -> None:
        self.events.append(event)


# ---------------------------------------------------------------------------
# Document helpers
# ---------------------------------------------------------------------------


def blank_pdf_bytes(pages: int = 2) -> bytes:
    """PDF with blank pages (no text layer)."""
    from pypdf import PdfWriter

    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def docx_bytes(paragraphs: List[str], table: Optional[List[List[str]]] = None) -> bytes:
    from docx import Document

    document = Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    if table:
        t = document.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                t.cell(r, c).text = value
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def pptx_bytes(slides: List[dict]) -> bytes:
    """Build a presentation; each slide dict has 'title', 'body' and optional 'notes'."""
    from pptx import Presentation

    presentation = Presentation()
    layout = presentation.slide_layouts[1]
    for slide_def in slides:
        slide = presentation.slides.add_slide(layout)
        slide.shapes.title.text = slide_def.get("title", "")
        slide.placeholders[1].text = slide_def.get("body", "")
        if slide_def.get("notes"):
            slide.notes_slide.notes_text_frame.text = slide_def["notes"]
    buffer = io.BytesIO()
    presentation.save(buffer)
    return buffer.getvalue()


class FakeOCR:
    """Rasterizer/recognizer pair for OCREngine."""

    def __init__(self, page_texts: Optional[Dict[int, str]] = None, fail_on: Optional[int] = None):
        self.page_texts = page_texts or {}
        self.fail_on = fail_on
        self.rasterized: List[int] = []

    def rasterize(self, data, page_number, dpi, output_dir):
        if self.fail_on == page_number:
            raise RuntimeError(f"page {page_number} is unreadable")
        self.rasterized.append(page_number)
        return SimpleNamespace(page=page_number)

    def recognize(self, image) -> str:
        return self.page_texts.get(image.page, f"Recognized text of page {image.page} about cell biology.")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def no_sleep_policy() -> RetryPolicy:
    return RetryPolicy(max_retries=2, base_delay=0.0, sleep=lambda _: None)


@pytest.fixture
def settings(tmp_path: Path) -> PipelineSettings:
    return PipelineSettings(
        jobs_dir=str(tmp_path / "jobs"),
        storage_dir=str(tmp_path / "storage"),
        max_workers=1,
        transcription_concurrency=2,
    )


@pytest.fixture
def job_store(tmp_path: Path) -> JobManager:
    return JobManager(str(tmp_path / "jobs"))


@pytest.fixture
def object_store(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore(str(tmp_path / "storage"))


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def sink() -> RecordingProgressSink:
    return RecordingProgressSink()


@pytest.fixture
def make_processor(job_store, object_store, workspace_root, sink, no_sleep_policy):
    """Factory for a JobProcessor wired to fakes; keyword arguments replace parts."""

    def _make(
        duration: float = 120.0,
        provider=None,
        chat_client=None,
        ocr: Optional[FakeOCR] = None,
        concurrency: int = 2,
        has_audio: bool = True,
        transcoder: Optional[FakeTranscoder] = None,
        progress_sink: Optional[ProgressSink] = None,
    ) -> JobProcessor:
        fake_ocr = ocr or FakeOCR()
        return JobProcessor(
            job_store=job_store,
            object_store=object_store,
            normalizer=AudioNormalizer(
                FakeProber(duration, has_audio=has_audio), transcoder or FakeTranscoder(), chunk_seconds=300
            ),
            transcriber=AudioTranscriber(provider or FakeTranscriptionProvider(), concurrency=concurrency),
            document_pipeline=DocumentPipeline(
                DocumentExtractor(),
                OCREngine(rasterize_page=fake_ocr.rasterize, recognize=fake_ocr.recognize),
                sleep=lambda _: None,
            ),
            structurer=TextStructurer(chat_client or FakeChatClient(), retry_policy=no_sleep_policy),
            sink=progress_sink or sink,
            workspace_factory=lambda: Workspace.create(base_dir=str(workspace_root)),
        )

    return _make
