"""
Document path of the ingestion pipeline.

extract -> assess -> (accept | OCR fallback) -> ExtractedDocument

The primary extractor gets one bounded retry. Any failure after that
(except an explicitly unsupported format) is treated as "no text" and handed
to the OCR fallback, which only fails the job when nothing usable exists.
"""

import logging
import time
from typing import Callable, Optional

from ..cancellation import CancellationToken
from ..config import MB
from ..errors import DocumentTooLarge, EmptyExtraction, JobCanceled, PipelineError, UnsupportedFormat
from ..formats import canonical_mime_type
from ..models import ExtractedDocument, RecommendedAction, SourceKind
from ..workspace import Workspace
from .extractor import DocumentExtractor
from .ocr import OCREngine
from .quality import DEFAULT_THRESHOLDS, QualityThresholds, assess_quality

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

EXTRACTION_ATTEMPTS = 2

# Fractions of the document path reported through on_progress
PROGRESS_INITIALIZING = 0.1
PROGRESS_EXTRACTING = 0.2
PROGRESS_OCR_START = 0.4
PROGRESS_OCR_END = 0.85
PROGRESS_FINALIZING = 0.9


class DocumentPipeline:
    """Orchestrates DocumentExtractor, quality assessment and OCR fallback."""

    def __init__(
        self,
        extractor: DocumentExtractor,
        ocr: OCREngine,
        max_bytes: int = 100 * MB,
        retry_pause: float = 1.0,
        thresholds: QualityThresholds = DEFAULT_THRESHOLDS,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.extractor = extractor
        self.ocr = ocr
        self.max_bytes = max_bytes
        self.retry_pause = retry_pause
        self.thresholds = thresholds
        self._sleep = sleep or time.sleep

    def process(
        self,
        data: bytes,
        source_kind: SourceKind,
        mime_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        workspace: Optional[Workspace] = None,
    ) -> ExtractedDocument:
        """
        Extract text from a document, falling back to OCR when needed.

        Args:
            data: Document content
            source_kind: PDF, PPTX or DOCX
            mime_type: Content type (default: derived from the kind)
            on_progress: Receives progress in [0, 1] for this stage
            cancel_token: Checked between steps
            workspace: Job workspace (used by OCR)

        Returns:
            ExtractedDocument with non-empty text

        Raises:
            DocumentTooLarge: If the document exceeds the size ceiling
            UnsupportedFormat: For legacy formats
            EmptyExtraction: If neither extraction nor OCR produced text
            PipelineError: OCR failure when the primary extractor produced nothing
        """
        if len(data) > self.max_bytes:
            raise DocumentTooLarge(
                f"Document is too large to process ({round(len(data) / MB)}MB). "
                f"Maximum size is {round(self.max_bytes / MB)}MB."
            )

        report = on_progress or (lambda fraction, message: None)
        # OCR routes on the kind's own type, whatever the client sent
        ocr_mime_type = canonical_mime_type(source_kind, mime_type)
        mime_type = mime_type or ocr_mime_type

        report(PROGRESS_INITIALIZING, "Initializing document processing...")
        _check(cancel_token)
        report(PROGRESS_EXTRACTING, "Attempting standard text extraction...")
        raw_text, metadata = self._extract_with_retry(data, source_kind, mime_type, cancel_token)

        quality = assess_quality(raw_text, self.thresholds)
        used_ocr = False

        needs_ocr = not raw_text or quality.recommended_action in (
            RecommendedAction.OCR,
            RecommendedAction.MANUAL_REVIEW,
        )
        if needs_ocr:
            _check(cancel_token)
            report(PROGRESS_OCR_START, "Low quality or no text found. Starting OCR...")
            try:
                ocr_text = self._run_ocr(data, ocr_mime_type, report, workspace, cancel_token)
            except JobCanceled:
                raise
            except PipelineError as e:
                logger.error(f"OCR fallback failed: {e}")
                if not raw_text:
                    raise
            else:
                ocr_quality = assess_quality(ocr_text, self.thresholds)
                if len(ocr_text) > len(raw_text) or ocr_quality.text_confidence > quality.text_confidence:
                    logger.info(f"Using OCR text ({len(ocr_text)} chars) over primary extraction ({len(raw_text)} chars)")
                    raw_text = ocr_text
                    quality = ocr_quality
                    used_ocr = True

        report(PROGRESS_FINALIZING, "Finalizing extraction...")
        if not raw_text.strip():
            raise EmptyExtraction("No text could be extracted from this document.")

        metadata.update(
            {
                "has_images": used_ocr,
                "has_tables": "|" in raw_text or "\t" in raw_text,
            }
        )
        return ExtractedDocument(
            text=raw_text,
            source_kind=source_kind,
            quality=quality,
            used_ocr=used_ocr,
            metadata=metadata,
        )

    def _extract_with_retry(self, data, source_kind, mime_type, cancel_token):
        for attempt in range(1, EXTRACTION_ATTEMPTS + 1):
            _check(cancel_token)
            try:
                return self.extractor.extract_with_metadata(data, source_kind, mime_type)
            except UnsupportedFormat:
                raise
            except EmptyExtraction as e:
                # Blank text layer: retrying will not help, OCR might
                logger.warning(f"Standard extraction found no text ({e}), will attempt OCR if appropriate")
                return "", {}
            except Exception as e:
                if attempt < EXTRACTION_ATTEMPTS:
                    logger.warning(f"Extraction attempt {attempt} failed ({e}), retrying in {self.retry_pause:.0f}s...")
                    self._sleep(self.retry_pause)
                    continue
                logger.warning(f"Standard extraction failed ({e}), will attempt OCR if appropriate")
        return "", {}

    def _run_ocr(self, data, mime_type, report, workspace, cancel_token) -> str:
        if not self.ocr.supports(mime_type):
            raise EmptyExtraction(f"OCR is not available for {mime_type}")

        span = PROGRESS_OCR_END - PROGRESS_OCR_START

        def _ocr_progress(fraction: float, message: str) -> None:
            report(PROGRESS_OCR_START + span * max(0.0, min(1.0, fraction)), message)

        return self.ocr.extract(
            data,
            mime_type,
            on_progress=_ocr_progress,
            workspace=workspace,
            cancel_token=cancel_token,
        )


def _check(cancel_token: Optional[CancellationToken]) -> None:
    if cancel_token is not None:
        cancel_token.raise_if_canceled()
