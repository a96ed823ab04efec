"""Tests for upload format detection."""

import pytest

from lecture_ingest.errors import InvalidInput, UnsupportedFormat
from lecture_ingest.formats import (
    DOCX_MIME,
    PDF_MIME,
    PPTX_MIME,
    canonical_mime_type,
    default_mime_type,
    guess_audio_mime_type,
    is_video_file,
    resolve_source_kind,
)
from lecture_ingest.models import SourceKind


@pytest.mark.parametrize(
    "filename, mime, expected",
    [
        ("talk.mp3", "audio/mpeg", SourceKind.AUDIO),
        ("memo.m4a", "audio/x-m4a", SourceKind.AUDIO),
        ("lecture.mp4", "video/mp4", SourceKind.VIDEO),
        ("memo.m4a", "video/mp4", SourceKind.AUDIO),
        ("lecture.mov", "application/octet-stream", SourceKind.VIDEO),
        ("slides.pdf", PDF_MIME, SourceKind.PDF),
        ("deck.pptx", PPTX_MIME, SourceKind.PPTX),
        ("notes.docx", DOCX_MIME, SourceKind.DOCX),
        ("notes.docx", "", SourceKind.DOCX),
        ("song.mp3", "audio/mpeg; charset=binary", SourceKind.AUDIO),
    ],
)
def test_resolve_source_kind(filename, mime, expected):
    assert resolve_source_kind(filename, mime) is expected


def test_legacy_powerpoint_is_unsupported():
    with pytest.raises(UnsupportedFormat, match="convert to PPTX or PDF"):
        resolve_source_kind("old.ppt", "application/vnd.ms-powerpoint")
    with pytest.raises(UnsupportedFormat):
        resolve_source_kind("old.ppt", "application/octet-stream")


@pytest.mark.parametrize("filename, mime", [("script.exe", "application/x-msdownload"), ("photo.png", "image/png")])
def test_unknown_types_are_rejected(filename, mime):
    with pytest.raises(InvalidInput, match="Invalid file type"):
        resolve_source_kind(filename, mime)


def test_video_detection_and_mime_guessing():
    assert is_video_file("Lecture.MKV")
    assert not is_video_file("lecture.mp3")
    assert guess_audio_mime_type("chunk_000.mp3") == "audio/mpeg"
    assert guess_audio_mime_type("clip.wav") == "audio/wav"
    assert guess_audio_mime_type("unknown.xyz") == "audio/mpeg"


def test_default_mime_type():
    assert default_mime_type(SourceKind.PDF) == PDF_MIME
    assert default_mime_type(SourceKind.DOCX) == DOCX_MIME
    assert default_mime_type(SourceKind.AUDIO) == "audio/mpeg"


def test_generic_upload_types_are_stored_canonically():
    kind = resolve_source_kind("scan.pdf", "application/octet-stream")

    assert kind is SourceKind.PDF
    assert canonical_mime_type(kind, "application/octet-stream", "scan.pdf") == PDF_MIME
    assert canonical_mime_type(SourceKind.DOCX, "", "notes.docx") == DOCX_MIME
    assert canonical_mime_type(SourceKind.AUDIO, "application/octet-stream", "clip.wav") == "audio/wav"
    assert canonical_mime_type(SourceKind.AUDIO, "audio/x-m4a", "memo.m4a") == "audio/x-m4a"
