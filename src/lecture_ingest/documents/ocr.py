"""
OCR fallback for scanned PDFs and images.

PDF pages are rasterized one at a time with pdf2image (poppler) and read
with pytesseract. Processing stops after a fixed number of pages; when pages
are skipped the result says so explicitly.
"""

import io
import logging
from pathlib import Path
from typing import Callable, List, Optional

import pytesseract
from pdf2image import convert_from_bytes
from PIL import Image
from pypdf import PdfReader

from ..cancellation import CancellationToken
from ..errors import EmptyExtraction
from ..formats import PDF_MIME
from ..workspace import Workspace

logger = logging.getLogger(__name__)

# (fraction in [0, 1], message)
ProgressCallback = Callable[[float, str], None]
RasterizeFn = Callable[[bytes, int, int, Optional[Path]], Optional[Image.Image]]
RecognizeFn = Callable[[Image.Image], str]


def page_marker(page_number: int) -> str:
    return f"--- Page {page_number} ---"


def truncation_marker(processed: int, total: int) -> str:
    return f"[OCR stopped after {processed} of {total} pages]"


def rasterize_pdf_page(
    data: bytes,
    page_number: int,
    dpi: int,
    output_dir: Optional[Path],
    timeout: Optional[float] = None,
) -> Optional[Image.Image]:
    """Render a single PDF page (1-based) to an image; None past the last page."""
    images = convert_from_bytes(
        data,
        dpi=dpi,
        first_page=page_number,
        last_page=page_number,
        fmt="png",
        output_folder=str(output_dir) if output_dir else None,
        timeout=timeout,
    )
    return images[0] if images else None


class OCREngine:
    """Page-bounded OCR over PDFs and single images."""

    def __init__(
        self,
        max_pages: int = 10,
        languages: str = "eng+tur",
        dpi: int = 300,
        page_timeout: float = 120.0,
        rasterize_page: Optional[RasterizeFn] = None,
        recognize: Optional[RecognizeFn] = None,
    ):
        """
        Args:
            max_pages: Upper bound on PDF pages processed
            languages: Tesseract language string
            dpi: Rasterization resolution
            page_timeout: Rasterization and Tesseract timeout per page in seconds
            rasterize_page: Page renderer (default: pdf2image)
            recognize: Image-to-text function (default: pytesseract)
        """
        self.max_pages = max_pages
        self.languages = languages
        self.dpi = dpi
        self.page_timeout = page_timeout
        self.rasterize_page = rasterize_page or self._rasterize
        self.recognize = recognize or self._tesseract

    @staticmethod
    def supports(mime_type: Optional[str]) -> bool:
        return mime_type == PDF_MIME or bool(mime_type and mime_type.startswith("image/"))

    def _rasterize(self, data: bytes, page_number: int, dpi: int, output_dir: Optional[Path]) -> Optional[Image.Image]:
        return rasterize_pdf_page(data, page_number, dpi, output_dir, timeout=self.page_timeout)

    def _tesseract(self, image: Image.Image) -> str:
        return pytesseract.image_to_string(image, lang=self.languages, timeout=self.page_timeout)

    def extract(
        self,
        data: bytes,
        mime_type: str,
        on_progress: Optional[ProgressCallback] = None,
        workspace: Optional[Workspace] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Run OCR over a PDF or an image.

        Args:
            data: File content
            mime_type: application/pdf or an image/* type
            on_progress: Receives monotonic progress in [0, 1]
            workspace: Job workspace for rasterized pages
            cancel_token: Checked before every page

        Returns:
            Recognized text (PDF pages separated by page markers)

        Raises:
            EmptyExtraction: If not even the first page could be read
            JobCanceled: If the token is canceled
        """
        report = on_progress or (lambda fraction, message: None)

        if mime_type != PDF_MIME:
            if cancel_token is not None:
                cancel_token.raise_if_canceled()
            report(0.0, "Running OCR on image...")
            try:
                text = self.recognize(Image.open(io.BytesIO(data)))
            except Exception as e:
                raise EmptyExtraction(f"OCR failed: {e}") from e
            report(1.0, "OCR complete")
            return text.strip()

        return self._extract_pdf(data, report, workspace, cancel_token)

    def _extract_pdf(
        self,
        data: bytes,
        report: ProgressCallback,
        workspace: Optional[Workspace],
        cancel_token: Optional[CancellationToken],
    ) -> str:
        page_count = self._count_pages(data)
        pages_to_process = min(page_count, self.max_pages) if page_count else self.max_pages
        output_dir = workspace.subdir("ocr") if workspace else None

        parts: List[str] = []
        processed = 0
        for number in range(1, pages_to_process + 1):
            if cancel_token is not None:
                cancel_token.raise_if_canceled()

            report((number - 1) / pages_to_process, f"Converting page {number}...")
            try:
                image = self.rasterize_page(data, number, self.dpi, output_dir)
                if image is None:
                    break
                page_text = self.recognize(image)
            except Exception as e:
                if processed == 0:
                    raise EmptyExtraction(f"OCR failed on page {number}: {e}") from e
                # Treated as the end of the readable document
                logger.warning(f"Stopped PDF OCR at page {number}: {e}")
                break

            parts.append(f"{page_marker(number)}\n{page_text.strip()}")
            processed += 1
            report(number / pages_to_process, f"OCR page {number} complete")

        if page_count and page_count > processed and processed == self.max_pages:
            logger.warning(f"OCR capped at {self.max_pages} of {page_count} pages")
            parts.append(truncation_marker(processed, page_count))

        return "\n\n".join(parts).strip()

    @staticmethod
    def _count_pages(data: bytes) -> Optional[int]:
        try:
            return len(PdfReader(io.BytesIO(data)).pages)
        except Exception as e:
            logger.debug(f"Could not count PDF pages ({e}); probing page by page")
            return None
