"""
Lecture ingestion pipeline.

Turns uploaded lecture recordings (audio, video) and documents (PDF, PPTX,
DOCX) into structured Markdown study notes:

- audio: normalization, chunking and speech-to-text
- documents: text extraction, OCR fallback and quality assessment
- structurer: LLM-based Markdown structuring
- server: job store, processing queue and the Flask API
"""

__version__ = "0.1.0"
