"""Tests for the page-bounded OCR engine."""

import io

import pytest
from PIL import Image

from conftest import FakeOCR, blank_pdf_bytes
from lecture_ingest.cancellation import CancellationToken
from lecture_ingest.documents import OCREngine
from lecture_ingest.documents.ocr import page_marker, truncation_marker
from lecture_ingest.errors import EmptyExtraction, JobCanceled
from lecture_ingest.formats import PDF_MIME
from lecture_ingest.workspace import Workspace


def engine_for(fake, **kwargs):
    return OCREngine(rasterize_page=fake.rasterize, recognize=fake.recognize, **kwargs)


def test_pages_are_marked_and_progress_is_monotonic():
    fake = FakeOCR({1: "Introduction to genetics", 2: "Mendel's laws"})
    progress = []

    text = engine_for(fake).extract(
        blank_pdf_bytes(2), PDF_MIME, on_progress=lambda fraction, message: progress.append(fraction)
    )

    assert text == "--- Page 1 ---\nIntroduction to genetics\n\n--- Page 2 ---\nMendel's laws"
    assert progress == sorted(progress)
    assert progress[0] == 0.0
    assert progress[-1] == 1.0


def test_page_cap_adds_truncation_marker():
    fake = FakeOCR()

    text = engine_for(fake, max_pages=10).extract(blank_pdf_bytes(12), PDF_MIME)

    assert fake.rasterized == list(range(1, 11))
    assert page_marker(10) in text
    assert page_marker(11) not in text
    assert text.endswith(truncation_marker(10, 12))
    assert truncation_marker(10, 12) == "[OCR stopped after 10 of 12 pages]"


def test_failure_after_first_page_keeps_earlier_pages():
    fake = FakeOCR({1: "Only readable page"}, fail_on=2)

    text = engine_for(fake).extract(blank_pdf_bytes(3), PDF_MIME)

    assert text == "--- Page 1 ---\nOnly readable page"


def test_failure_on_first_page():
    with pytest.raises(EmptyExtraction, match="page 1"):
        engine_for(FakeOCR(fail_on=1)).extract(blank_pdf_bytes(2), PDF_MIME)


def test_cancellation_before_page():
    token = CancellationToken()
    token.cancel()
    fake = FakeOCR()

    with pytest.raises(JobCanceled):
        engine_for(fake).extract(blank_pdf_bytes(2), PDF_MIME, cancel_token=token)
    assert fake.rasterized == []


def test_rasterized_pages_go_to_workspace(workspace_root):
    seen_dirs = []
    fake = FakeOCR()

    def rasterize(data, page_number, dpi, output_dir):
        seen_dirs.append(output_dir)
        return fake.rasterize(data, page_number, dpi, output_dir)

    engine = OCREngine(rasterize_page=rasterize, recognize=fake.recognize, dpi=150)
    with Workspace.create(base_dir=str(workspace_root)) as ws:
        engine.extract(blank_pdf_bytes(1), PDF_MIME, workspace=ws)
        assert seen_dirs == [ws.root / "ocr"]
        assert (ws.root / "ocr").is_dir()


def test_single_image():
    buffer = io.BytesIO()
    Image.new("RGB", (20, 10), "white").save(buffer, format="PNG")
    seen = []

    def recognize(image):
        seen.append(image.size)
        return "  Whiteboard notes  "

    text = OCREngine(recognize=recognize).extract(buffer.getvalue(), "image/png")

    assert text == "Whiteboard notes"
    assert seen == [(20, 10)]


def test_supported_types():
    assert OCREngine.supports(PDF_MIME)
    assert OCREngine.supports("image/jpeg")
    assert not OCREngine.supports("application/vnd.openxmlformats-officedocument.wordprocessingml.document")
    assert not OCREngine.supports(None)


def test_rasterization_carries_page_timeout(monkeypatch):
    calls = []

    def convert_from_bytes(data, **kwargs):
        calls.append(kwargs)
        return [Image.new("RGB", (10, 10), "white")]

    monkeypatch.setattr("lecture_ingest.documents.ocr.convert_from_bytes", convert_from_bytes)
    engine = OCREngine(page_timeout=45.0, recognize=lambda image: "Board photo")

    text = engine.extract(blank_pdf_bytes(1), PDF_MIME)

    assert text == "--- Page 1 ---\nBoard photo"
    assert [(c["first_page"], c["last_page"], c["timeout"]) for c in calls] == [(1, 1, 45.0)]
