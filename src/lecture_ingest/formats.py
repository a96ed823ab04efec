"""
Accepted upload formats and source-kind detection.

Uploads are matched against per-kind MIME allow-lists (with the file
extension as a tie-breaker for generic content types such as
application/octet-stream). Anything outside the allow-lists is rejected
before a job is created.
"""

import os
from typing import Optional

from .errors import InvalidInput, UnsupportedFormat
from .models import SourceKind

PDF_MIME = "application/pdf"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
LEGACY_PPT_MIME = "application/vnd.ms-powerpoint"

AUDIO_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/mp4",
    "audio/m4a",
    "audio/x-m4a",
    "audio/wav",
    "audio/wave",
    "audio/x-wav",
    "audio/ogg",
    "audio/flac",
    "audio/webm",
    "audio/aac",
}

VIDEO_MIME_TYPES = {
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "video/x-matroska",
    "video/webm",
    "video/ogg",
    "video/3gpp",
    "video/3gpp2",
    "video/x-m4v",
    "video/x-ms-wmv",
    "video/x-flv",
}

DOCUMENT_MIME_TYPES = {
    PDF_MIME: SourceKind.PDF,
    PPTX_MIME: SourceKind.PPTX,
    DOCX_MIME: SourceKind.DOCX,
}

# Video containers that need their audio track extracted
VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm", ".ogv", ".3gp", ".3g2", ".m4v", ".wmv", ".flv"}

AUDIO_EXTENSIONS = {".mp3", ".m4a", ".wav", ".flac", ".aac", ".ogg", ".oga", ".opus", ".wma"}

DOCUMENT_EXTENSIONS = {".pdf": SourceKind.PDF, ".pptx": SourceKind.PPTX, ".docx": SourceKind.DOCX}

GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

LEGACY_PPT_MESSAGE = "Legacy .ppt files are not supported. Please convert to PPTX or PDF and try again."

_AUDIO_MIME_BY_EXTENSION = {
    ".mp3": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
}


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def is_video_file(filename: str) -> bool:
    """Check if a file is a video container based on its extension."""
    return file_extension(filename) in VIDEO_EXTENSIONS


def guess_audio_mime_type(filename: str) -> str:
    return _AUDIO_MIME_BY_EXTENSION.get(file_extension(filename), "audio/mpeg")


def resolve_source_kind(filename: str, mime_type: Optional[str] = None) -> SourceKind:
    """
    Decide which pipeline path an upload takes.

    Args:
        filename: Original upload filename
        mime_type: Content type reported by the client

    Returns:
        The SourceKind for the upload

    Raises:
        UnsupportedFormat: For legacy binary PowerPoint files
        InvalidInput: For anything outside the allow-lists
    """
    mime = (mime_type or "").split(";")[0].strip().lower()
    ext = file_extension(filename)

    if mime == LEGACY_PPT_MIME or ext == ".ppt":
        raise UnsupportedFormat(LEGACY_PPT_MESSAGE)

    if mime in DOCUMENT_MIME_TYPES:
        return DOCUMENT_MIME_TYPES[mime]

    if mime in VIDEO_MIME_TYPES or (mime.startswith("video/") and ext in VIDEO_EXTENSIONS):
        # Voice memos are often saved as video/mp4 with an audio-only extension
        return SourceKind.AUDIO if ext in AUDIO_EXTENSIONS else SourceKind.VIDEO

    if mime in AUDIO_MIME_TYPES or mime.startswith("audio/"):
        return SourceKind.VIDEO if ext in VIDEO_EXTENSIONS else SourceKind.AUDIO

    if mime in GENERIC_MIME_TYPES:
        if ext in DOCUMENT_EXTENSIONS:
            return DOCUMENT_EXTENSIONS[ext]
        if ext in VIDEO_EXTENSIONS:
            return SourceKind.VIDEO
        if ext in AUDIO_EXTENSIONS:
            return SourceKind.AUDIO

    raise InvalidInput(
        f"Invalid file type: {mime or 'unknown'} ({filename or 'unnamed'}). "
        "Allowed: audio, video, PDF, PPTX and DOCX files."
    )


def default_mime_type(kind: SourceKind) -> str:
    """Content type to assume when a stored upload has none."""
    if kind is SourceKind.PDF:
        return PDF_MIME
    if kind is SourceKind.PPTX:
        return PPTX_MIME
    if kind is SourceKind.DOCX:
        return DOCX_MIME
    return "audio/mpeg"


def canonical_mime_type(kind: SourceKind, mime_type: Optional[str] = None, filename: str = "") -> str:
    """
    Content type to store and route on for an accepted upload.

    Documents always map to their kind's own content type, so an upload
    accepted by extension (e.g. a PDF sent as application/octet-stream)
    still reaches the PDF-only OCR fallback. Media keeps the client's type
    unless it is generic.
    """
    if kind.is_media:
        mime = (mime_type or "").split(";")[0].strip().lower()
        if mime in GENERIC_MIME_TYPES:
            return guess_audio_mime_type(filename)
        return mime
    return default_mime_type(kind)
