"""Tests for the Flask API."""

import io

import pytest

from conftest import docx_bytes
from lecture_ingest.config import PipelineSettings
from lecture_ingest.formats import DOCX_MIME, PDF_MIME
from lecture_ingest.models import SourceKind
from lecture_ingest.server.app import create_app
from lecture_ingest.server.models import Job, JobStatus


class StubQueue:
    def __init__(self, job_store, running=True, cancel_result=True):
        self.job_store = job_store
        self.running = running
        self.cancel_result = cancel_result
        self.enqueued = []
        self.canceled = []

    def enqueue_job(self, job_id, priority=0):
        if not self.running:
            return False
        self.enqueued.append(job_id)
        return True

    def cancel_job(self, job_id):
        self.canceled.append(job_id)
        return self.cancel_result

    def get_queue_status(self):
        return {"is_running": self.running, "queue_size": len(self.enqueued), "running_jobs": [], "max_workers": 1}


@pytest.fixture
def queue(job_store):
    return StubQueue(job_store)


@pytest.fixture
def client(queue, job_store, object_store):
    settings = PipelineSettings(max_document_bytes=64 * 1024, max_upload_bytes=1024 * 1024)
    app = create_app(queue, job_store, object_store, settings)
    app.config["TESTING"] = True
    return app.test_client()


def upload(client, data, filename, content_type, **form):
    form["file"] = (io.BytesIO(data), filename, content_type)
    return client.post("/upload", data=form, content_type="multipart/form-data")


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"


def test_upload_audio(client, queue, job_store, object_store):
    response = upload(client, b"ID3 audio", "Week 3 Lecture.mp3", "audio/mpeg", title="Genetics", language="TR")

    assert response.status_code == 201
    body = response.get_json()
    assert body["status"] == "pending"
    assert body["source_kind"] == "audio"
    assert queue.enqueued == [body["job_id"]]

    job = job_store.get_job(body["job_id"])
    assert job.title == "Genetics"
    assert job.language == "tr"
    assert job.filename == "Week_3_Lecture.mp3"
    assert job.file_size == len(b"ID3 audio")
    assert object_store.get(job.source_key) == b"ID3 audio"


def test_upload_default_title(client, job_store):
    body = upload(client, docx_bytes(["Notes"]), "cell_biology.docx", DOCX_MIME).get_json()
    assert job_store.get_job(body["job_id"]).title == "cell biology"


def test_upload_requires_file(client):
    response = client.post("/upload", data={}, content_type="multipart/form-data")
    assert response.status_code == 400
    assert response.get_json()["error"] == "No file provided"


def test_upload_empty_file(client):
    response = upload(client, b"", "empty.mp3", "audio/mpeg")
    assert response.status_code == 400


def test_upload_unsupported_type(client, queue):
    response = upload(client, b"MZ", "tool.exe", "application/x-msdownload")
    assert response.status_code == 400
    assert "Invalid file type" in response.get_json()["error"]
    assert queue.enqueued == []


def test_upload_legacy_powerpoint(client):
    response = upload(client, b"\xd0\xcf\x11\xe0", "old.ppt", "application/vnd.ms-powerpoint")
    assert response.status_code == 400
    assert "PPTX or PDF" in response.get_json()["error"]


def test_upload_document_too_large(client, queue):
    response = upload(client, b"%PDF" + b"0" * (64 * 1024), "big.pdf", "application/pdf")
    assert response.status_code == 413
    assert queue.enqueued == []


def test_upload_over_request_limit(client):
    response = upload(client, b"0" * (2 * 1024 * 1024), "huge.mp3", "audio/mpeg")
    assert response.status_code == 413


def test_upload_when_queue_is_stopped(client, queue, job_store):
    queue.running = False
    response = upload(client, b"audio", "lecture.mp3", "audio/mpeg")
    assert response.status_code == 503
    assert job_store.list_jobs(status_filter="canceled")


def make_job(job_store, job_id="job-1"):
    return job_store.create_job(
        Job(id=job_id, source_kind=SourceKind.AUDIO, title="T", filename="t.mp3", source_key=f"uploads/{job_id}/t.mp3")
    )


def test_status_and_result(client, job_store):
    make_job(job_store)

    status = client.get("/status/job-1").get_json()
    assert status["status"] == "pending"
    assert "raw_text" not in status
    assert client.get("/result/job-1").status_code == 409

    job_store.update_status("job-1", JobStatus.PROCESSING, 0.5)
    job_store.update_raw_text("job-1", "raw", segments=[{"start": 0.0, "end": 1.0, "text": "raw"}])
    job_store.update_status("job-1", JobStatus.STRUCTURING, 0.9)
    job_store.update_structured_text("job-1", "# Structured", detected_language="English")
    job_store.update_status("job-1", JobStatus.COMPLETED, 1.0)

    result = client.get("/result/job-1").get_json()
    assert result["raw_text"] == "raw"
    assert result["structured_text"] == "# Structured"
    assert result["detected_language"] == "English"
    assert result["segments"][0]["text"] == "raw"


def test_unknown_job_routes(client):
    assert client.get("/status/missing").status_code == 404
    assert client.get("/result/missing").status_code == 404
    assert client.post("/jobs/missing/cancel").status_code == 404


def test_cancel(client, queue, job_store):
    make_job(job_store)

    assert client.post("/jobs/job-1/cancel").status_code == 200
    assert queue.canceled == ["job-1"]

    queue.cancel_result = False
    response = client.post("/jobs/job-1/cancel")
    assert response.status_code == 409


def test_list_jobs(client, job_store):
    make_job(job_store, "a")
    make_job(job_store, "b")

    body = client.get("/jobs?limit=1").get_json()
    assert body["total"] == 2
    assert len(body["jobs"]) == 1


def test_queue_status(client):
    assert client.get("/queue/status").get_json()["is_running"] is True


def test_pdf_sent_as_octet_stream_is_stored_as_pdf(client, job_store, object_store):
    body = upload(client, b"%PDF-1.4 scan", "scan.pdf", "application/octet-stream").get_json()

    job = job_store.get_job(body["job_id"])
    assert body["source_kind"] == "pdf"
    assert job.mime_type == PDF_MIME
    assert object_store.content_type(job.source_key) == PDF_MIME
