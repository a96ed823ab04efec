"""
Primary text extraction for PDF, PPTX and DOCX documents.

PDFs are read through their text layer with pypdf, presentations with
python-pptx (one labeled section per slide, speaker notes included) and Word
documents with python-docx.
"""

import io
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from docx import Document as DocxDocument
from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from ..errors import EmptyExtraction, InvalidInput, UnsupportedFormat
from ..formats import DOCX_MIME, LEGACY_PPT_MESSAGE, LEGACY_PPT_MIME, PDF_MIME, PPTX_MIME
from ..models import SourceKind

logger = logging.getLogger(__name__)

PDF_EMPTY_MESSAGE = (
    "No text could be extracted from this PDF. It may be a scanned document or contain only images."
)
PPTX_EMPTY_MESSAGE = "No text could be extracted from this PowerPoint presentation."
DOCX_EMPTY_MESSAGE = "No text could be extracted from this Word document."


class DocumentExtractor:
    """Dispatch document bytes to a format-specific parser."""

    def extract(self, data: bytes, source_kind: SourceKind, mime_type: Optional[str] = None) -> str:
        """
        Extract raw text from a document.

        Args:
            data: Document content
            source_kind: PDF, PPTX or DOCX
            mime_type: Content type, used when it is more specific than the kind

        Returns:
            Non-empty extracted text

        Raises:
            EmptyExtraction: If the document has no extractable text
            UnsupportedFormat: For legacy .ppt files
            InvalidInput: If the document cannot be parsed
        """
        text, _ = self.extract_with_metadata(data, source_kind, mime_type)
        return text

    def extract_with_metadata(
        self, data: bytes, source_kind: SourceKind, mime_type: Optional[str] = None
    ) -> Tuple[str, Dict[str, Any]]:
        """Same as extract(), also returning page/slide counts."""
        if mime_type == LEGACY_PPT_MIME:
            raise UnsupportedFormat(LEGACY_PPT_MESSAGE)

        if source_kind is SourceKind.PDF or mime_type == PDF_MIME:
            return self._extract_pdf(data)
        if source_kind is SourceKind.PPTX or mime_type == PPTX_MIME:
            return self._extract_pptx(data)
        if source_kind is SourceKind.DOCX or mime_type == DOCX_MIME:
            return self._extract_docx(data)

        raise InvalidInput(f"Unsupported document type: {source_kind.value}")

    def _extract_pdf(self, data: bytes) -> Tuple[str, Dict[str, Any]]:
        try:
            reader = PdfReader(io.BytesIO(data))
            page_texts = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError, KeyError) as e:
            raise InvalidInput(f"Could not read PDF: {e}") from e

        text = "\n\n".join(t.strip() for t in page_texts if t.strip()).strip()
        if not text:
            raise EmptyExtraction(PDF_EMPTY_MESSAGE)
        return text, {"page_count": len(page_texts)}

    def _extract_pptx(self, data: bytes) -> Tuple[str, Dict[str, Any]]:
        try:
            presentation = Presentation(io.BytesIO(data))
        except Exception as e:
            raise InvalidInput(f"Could not read PowerPoint presentation: {e}") from e

        slide_texts = []
        slide_count = 0
        for number, slide in enumerate(presentation.slides, start=1):
            slide_count += 1
            content = []

            main_text = "\n".join(_shape_texts(slide.shapes)).strip()
            if main_text:
                content.append(main_text)

            if slide.has_notes_slide:
                notes = (slide.notes_slide.notes_text_frame.text or "").strip()
                if notes:
                    content.append(f"\n[Speaker Notes]\n{notes}")

            if content:
                slide_texts.append(f"--- Slide {number} ---\n" + "\n".join(content))

        text = "\n\n".join(slide_texts)
        if not text.strip():
            raise EmptyExtraction(PPTX_EMPTY_MESSAGE)
        return text, {"slide_count": slide_count}

    def _extract_docx(self, data: bytes) -> Tuple[str, Dict[str, Any]]:
        try:
            document = DocxDocument(io.BytesIO(data))
        except Exception as e:
            raise InvalidInput(f"Could not read Word document: {e}") from e

        parts = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            parts.extend(_table_rows(table))

        text = "\n".join(parts).strip()
        if not text:
            raise EmptyExtraction(DOCX_EMPTY_MESSAGE)
        return text, {"paragraph_count": len(document.paragraphs)}


def _shape_texts(shapes: Iterable) -> List[str]:
    """Text of every shape on a slide, descending into groups."""
    texts = []
    for shape in shapes:
        if shape.shape_type == MSO_SHAPE_TYPE.GROUP:
            texts.extend(_shape_texts(shape.shapes))
        elif getattr(shape, "has_table", False) and shape.has_table:
            texts.extend(_table_rows(shape.table))
        elif getattr(shape, "has_text_frame", False) and shape.has_text_frame:
            text = shape.text_frame.text.strip()
            if text:
                texts.append(text)
    return texts


def _table_rows(table) -> List[str]:
    rows = []
    for row in table.rows:
        cells = [cell.text.strip().replace("\n", " ") for cell in row.cells]
        if any(cells):
            rows.append("| " + " | ".join(cells) + " |")
    return rows
