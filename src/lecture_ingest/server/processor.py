"""
Job orchestration: runs one job through the whole pipeline.

Progress plan (fractions of the job):
- 0.02 loading the upload, 0.05 upload loaded
- audio: 0.15 normalized, 0.15-0.85 across transcribed chunks
- documents: extraction and OCR mapped into 0.05-0.85
- 0.87 raw text saved
- structuring: 0.90 started, 0.95 structured, 1.0 completed

JobProcessor.process() never raises: every outcome ends in a terminal job
status (completed, canceled or error).
"""

import logging
import time
from dataclasses import asdict
from typing import Callable, Optional

from ..audio import AudioNormalizer, AudioTranscriber, FFmpegTranscoder, MediaProber, create_provider
from ..cancellation import CancellationToken
from ..config import PipelineSettings
from ..documents import DocumentExtractor, DocumentPipeline, OCREngine
from ..errors import EmptyExtraction, InvalidInput, InvalidTransition, JobCanceled, PipelineError
from ..structurer import TextStructurer
from ..workspace import Workspace
from .job_manager import JobManager
from .models import Job, JobStatus
from .progress import BackgroundProgressSink, LoggingProgressSink, ProgressReporter, ProgressSink
from .stores import ObjectStore

logger = logging.getLogger(__name__)

TRANSCRIBE_START = 0.15
TRANSCRIBE_END = 0.85
RAW_TEXT_SAVED = 0.87
STRUCTURING_START = 0.90
STRUCTURING_DONE = 0.95


class JobProcessor:
    """Runs jobs through the audio or document path and the structuring stage."""

    def __init__(
        self,
        job_store: JobManager,
        object_store: ObjectStore,
        normalizer: AudioNormalizer,
        transcriber: AudioTranscriber,
        document_pipeline: DocumentPipeline,
        structurer: TextStructurer,
        sink: Optional[ProgressSink] = None,
        workspace_factory: Callable[[], Workspace] = Workspace.create,
    ):
        self.job_store = job_store
        self.object_store = object_store
        self.normalizer = normalizer
        self.transcriber = transcriber
        self.document_pipeline = document_pipeline
        self.structurer = structurer
        self.sink = BackgroundProgressSink(sink or LoggingProgressSink())
        self.workspace_factory = workspace_factory

    def close(self) -> None:
        """Deliver outstanding progress events and stop the sink thread."""
        self.sink.close()

    def process(self, job_id: str, cancel_token: Optional[CancellationToken] = None) -> Optional[Job]:
        """
        Process a single job to a terminal state.

        Args:
            job_id: Job identifier
            cancel_token: External cancellation signal for this run

        Returns:
            The job as stored after the run, or None if it does not exist
        """
        job = self.job_store.get_job(job_id)
        if job is None:
            logger.error(f"Job {job_id} not found")
            return None

        token = cancel_token or CancellationToken()
        reporter = ProgressReporter(self.job_store, self.sink, job)
        start_time = time.time()

        try:
            reporter.update(JobStatus.PROCESSING, 0.02, "Loading upload...")
        except InvalidTransition:
            # Canceled (or already handled) before a worker picked it up
            logger.info(f"Job {job_id} is {job.status.value}; skipping")
            return job

        try:
            with self.workspace_factory() as workspace:
                self._run(job, reporter, token, workspace)
            logger.info(f"Job {job_id} completed in {time.time() - start_time:.2f} seconds")
        except JobCanceled:
            logger.info(f"Job {job_id} canceled")
            self._mark_canceled(reporter)
        except PipelineError as e:
            logger.error(f"Processing failed for job {job_id}: {e}")
            self._mark_failed(reporter, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error processing job {job_id}")
            self._mark_failed(reporter, f"Unexpected error: {e}")

        return self.job_store.get_job(job_id)

    def _run(self, job: Job, reporter: ProgressReporter, token: CancellationToken, workspace: Workspace) -> None:
        token.raise_if_canceled()
        try:
            data = self.object_store.get(job.source_key)
        except KeyError as e:
            raise InvalidInput(f"Uploaded file not found: {job.source_key}") from e
        reporter.update(JobStatus.PROCESSING, 0.05, "Upload loaded")

        if job.source_kind.is_media:
            raw_text = self._run_audio(job, data, reporter, token, workspace)
        else:
            raw_text = self._run_document(job, data, reporter, token, workspace)

        # Past this point the job can no longer be canceled
        if not token.seal():
            raise JobCanceled("Job was canceled")

        reporter.update(JobStatus.STRUCTURING, STRUCTURING_START, "Structuring with LLM...")
        result = self.structurer.structure(raw_text, job.title, language_hint=job.language)
        reporter.update(JobStatus.STRUCTURING, STRUCTURING_DONE, "Saving structured text...")

        self.job_store.update_structured_text(job.id, result.structured_text, result.detected_language)
        reporter.update(JobStatus.COMPLETED, 1.0, "Completed")

    def _run_audio(self, job, data, reporter, token, workspace) -> str:
        normalized = self.normalizer.normalize(data, job.filename, workspace=workspace, cancel_token=token)
        total_chunks = len(normalized.chunks)
        logger.info(f"Audio processed: {normalized.total_duration:.0f}s, {total_chunks} chunk(s)")
        reporter.update(JobStatus.PROCESSING, TRANSCRIBE_START, f"Audio prepared ({total_chunks} chunk(s))")

        def on_chunk(done: int, total: int) -> None:
            progress = TRANSCRIBE_START + (TRANSCRIBE_END - TRANSCRIBE_START) * done / total
            reporter.update(JobStatus.PROCESSING, progress, f"Transcribed chunk {done}/{total}")

        token.raise_if_canceled()
        result = self.transcriber.transcribe_chunks(
            normalized.chunks,
            language=job.language,
            on_progress=on_chunk,
            cancel_token=token,
        )
        token.raise_if_canceled()

        if not result.text.strip():
            raise EmptyExtraction("No speech could be transcribed from this recording.")

        logger.info(f"Transcription complete for {job.id}, length: {len(result.text)} chars, model: {result.model_label}")
        reporter.update(JobStatus.PROCESSING, RAW_TEXT_SAVED, "Saving transcript...")
        self.job_store.update_raw_text(
            job.id,
            result.text,
            duration=normalized.total_duration or result.duration,
            transcription_model=result.model_label,
            segments=[asdict(segment) for segment in result.segments],
        )
        return result.text

    def _run_document(self, job, data, reporter, token, workspace) -> str:
        on_progress = reporter.stage_callback(JobStatus.PROCESSING, 0.05, TRANSCRIBE_END)
        document = self.document_pipeline.process(
            data,
            job.source_kind,
            job.mime_type,
            on_progress=on_progress,
            cancel_token=token,
            workspace=workspace,
        )
        token.raise_if_canceled()

        logger.info(
            f"Extraction complete for {job.id}, length: {len(document.text)} chars, "
            f"OCR: {document.used_ocr}, action: {document.quality.recommended_action.value}"
        )
        reporter.update(JobStatus.PROCESSING, RAW_TEXT_SAVED, "Saving extracted text...")
        quality = document.quality.to_dict()
        quality["metadata"] = document.metadata
        self.job_store.update_raw_text(job.id, document.text, used_ocr=document.used_ocr, quality=quality)
        return document.text

    def _mark_canceled(self, reporter: ProgressReporter) -> None:
        try:
            reporter.update(JobStatus.CANCELED, None, "Canceled")
        except InvalidTransition as e:
            logger.warning(f"Could not mark job {reporter.job_id} canceled: {e}")

    def _mark_failed(self, reporter: ProgressReporter, message: str) -> None:
        try:
            reporter.fail(message)
        except InvalidTransition as e:
            logger.warning(f"Could not mark job {reporter.job_id} failed: {e}")


def build_processor(
    settings: PipelineSettings,
    job_store: JobManager,
    object_store: ObjectStore,
    sink: Optional[ProgressSink] = None,
) -> JobProcessor:
    """
    Construct the pipeline components once, with their API clients.

    Args:
        settings: Pipeline settings
        job_store: Record store
        object_store: Upload storage
        sink: Progress sink (default: log)

    Returns:
        JobProcessor sharing these components across all jobs
    """
    normalizer = AudioNormalizer(
        prober=MediaProber(settings.ffprobe_path, timeout=settings.transcode_timeout),
        transcoder=FFmpegTranscoder(
            ffmpeg_path=settings.ffmpeg_path,
            bitrate=settings.audio_bitrate,
            sample_rate=settings.audio_sample_rate,
            timeout=settings.transcode_timeout,
        ),
        chunk_seconds=settings.chunk_duration_seconds,
    )
    transcriber = AudioTranscriber(create_provider(settings), concurrency=settings.transcription_concurrency)
    document_pipeline = DocumentPipeline(
        extractor=DocumentExtractor(),
        ocr=OCREngine(
            max_pages=settings.ocr_max_pages,
            languages=settings.ocr_languages,
            dpi=settings.ocr_dpi,
            page_timeout=settings.ocr_page_timeout,
        ),
        max_bytes=settings.max_document_bytes,
    )
    return JobProcessor(
        job_store=job_store,
        object_store=object_store,
        normalizer=normalizer,
        transcriber=transcriber,
        document_pipeline=document_pipeline,
        structurer=TextStructurer.from_settings(settings),
        sink=sink,
    )
