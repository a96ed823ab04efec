"""
Document path of the ingestion pipeline.

Main components:
- DocumentExtractor: text-layer extraction for PDF, PPTX and DOCX
- OCREngine: page-bounded OCR fallback (pdf2image + pytesseract)
- assess_quality: heuristic quality scores that gate the OCR fallback
- DocumentPipeline: extraction, assessment and fallback in one call
"""

from .extractor import DocumentExtractor
from .ocr import OCREngine
from .pipeline import DocumentPipeline
from .quality import QualityThresholds, assess_quality

__all__ = [
    "DocumentExtractor",
    "DocumentPipeline",
    "OCREngine",
    "QualityThresholds",
    "assess_quality",
]
