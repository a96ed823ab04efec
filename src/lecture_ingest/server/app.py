"""
Flask API server for lecture ingestion.

This server provides endpoints for:
- Uploading audio, video, PDF, PPTX and DOCX files for processing
- Checking processing status and canceling jobs
- Retrieving raw and structured text of completed jobs

Jobs run in the background on a ThreadPoolExecutor-backed ProcessingQueue.
"""

import atexit
import logging
import uuid
from datetime import datetime
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from ..config import MB, ConfigManager, PipelineSettings
from ..errors import DocumentTooLarge, InvalidInput, PayloadTooLarge
from ..formats import canonical_mime_type, file_extension, resolve_source_kind
from .job_manager import JobManager
from .models import Job, JobStatus
from .processing_queue import ProcessingQueue
from .processor import build_processor
from .stores import LocalObjectStore, ObjectStore

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


def configure_logging(level_name: Optional[str] = None) -> None:
    """Configure root logging; werkzeug follows the same level."""
    level_name = (level_name or ConfigManager.get("LOG_LEVEL")).upper()
    level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(level)
    logging.getLogger("werkzeug").setLevel(level)


def _default_title(filename: str) -> str:
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    return stem.replace("_", " ").strip() or "Untitled Lecture"


def create_app(
    queue: ProcessingQueue,
    job_store: JobManager,
    object_store: ObjectStore,
    settings: Optional[PipelineSettings] = None,
) -> Flask:
    """
    Build the Flask application.

    Args:
        queue: Started processing queue
        job_store: Record store for jobs
        object_store: Storage for uploaded files
        settings: Pipeline settings (size ceilings)

    Returns:
        Configured Flask app
    """
    settings = settings or PipelineSettings()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    CORS(app)

    @app.errorhandler(InvalidInput)
    def handle_invalid_input(error):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(PayloadTooLarge)
    def handle_payload_too_large(error):
        return jsonify({"error": str(error)}), 413

    @app.errorhandler(RequestEntityTooLarge)
    def handle_request_too_large(error):
        limit = round(settings.max_upload_bytes / MB)
        return jsonify({"error": f"File too large. Maximum upload size is {limit}MB."}), 413

    @app.route("/health", methods=["GET"])
    def health_check():
        """Health check endpoint."""
        queue_status = queue.get_queue_status()
        return jsonify(
            {
                "status": "healthy",
                "timestamp": datetime.now().isoformat(),
                "queue_running": queue_status["is_running"],
                "queue_size": queue_status["queue_size"],
                "running_jobs": len(queue_status["running_jobs"]),
            }
        )

    @app.route("/upload", methods=["POST"])
    def upload():
        """
        Upload a file for processing.

        Expected form data:
        - file: Audio, video, PDF, PPTX or DOCX file
        - title: Optional lecture title (default: derived from the filename)
        - owner_id: Optional owner identifier for progress notifications
        - language: Optional ISO-639-1 language hint (e.g. "tr")

        Returns:
        - job_id: Unique identifier for tracking the processing job
        - status: Initial status (pending)
        """
        if "file" not in request.files:
            return jsonify({"error": "No file provided"}), 400

        file = request.files["file"]
        if file.filename == "":
            return jsonify({"error": "No file selected"}), 400

        filename = secure_filename(file.filename)
        if not filename or not file_extension(filename):
            return jsonify({"error": "Invalid filename"}), 400

        source_kind = resolve_source_kind(filename, file.mimetype)
        mime_type = canonical_mime_type(source_kind, file.mimetype, filename)

        data = file.read()
        if not data:
            return jsonify({"error": "Empty file not allowed"}), 400
        if not source_kind.is_media and len(data) > settings.max_document_bytes:
            raise DocumentTooLarge(
                f"Document is too large to process ({round(len(data) / MB)}MB). "
                f"Maximum size is {round(settings.max_document_bytes / MB)}MB."
            )

        title = (request.form.get("title") or "").strip()[:MAX_TITLE_LENGTH] or _default_title(filename)
        language = (request.form.get("language") or "").strip().lower() or None

        job_id = str(uuid.uuid4())
        source_key = f"uploads/{job_id}/{filename}"
        object_store.put(source_key, data, mime_type)

        job = job_store.create_job(
            Job(
                id=job_id,
                source_kind=source_kind,
                title=title,
                filename=filename,
                source_key=source_key,
                owner_id=(request.form.get("owner_id") or "anonymous").strip(),
                mime_type=mime_type,
                language=language,
                file_size=len(data),
            )
        )

        if not queue.enqueue_job(job.id):
            job_store.update_status(job.id, JobStatus.CANCELED, message="Processing queue unavailable")
            return jsonify({"error": "Processing queue is not running"}), 503

        return jsonify(
            {
                "job_id": job.id,
                "status": job.status.value,
                "source_kind": source_kind.value,
                "message": "File uploaded successfully and queued for processing",
            }
        ), 201

    @app.route("/status/<job_id>", methods=["GET"])
    def get_job_status(job_id: str):
        """Get the status, progress and error (if any) of a job."""
        job = job_store.get_job(job_id)
        if job is None:
            return jsonify({"error": "Job not found"}), 404
        return jsonify(job.to_dict(include_text=False))

    @app.route("/jobs", methods=["GET"])
    def list_jobs():
        """
        List jobs, newest first.

        Query parameters:
        - status: Filter by status
        - limit: Limit number of results (default: 100)
        - offset: Offset for pagination (default: 0)
        """
        status_filter = request.args.get("status")
        limit = request.args.get("limit", 100, type=int)
        offset = request.args.get("offset", 0, type=int)

        jobs = job_store.list_jobs(status_filter=status_filter, limit=None)
        return jsonify({"jobs": jobs[offset : offset + limit], "total": len(jobs), "limit": limit, "offset": offset})

    @app.route("/result/<job_id>", methods=["GET"])
    def get_job_result(job_id: str):
        """Get raw text, structured Markdown and metadata of a completed job."""
        job = job_store.get_job(job_id)
        if job is None:
            return jsonify({"error": "Job not found"}), 404

        if job.status != JobStatus.COMPLETED:
            return jsonify({"error": "Job not completed yet", "status": job.status.value}), 409

        return jsonify(
            {
                "job_id": job.id,
                "title": job.title,
                "raw_text": job.raw_text,
                "structured_text": job.structured_text,
                "segments": job_store.get_segments(job.id),
                "detected_language": job.detected_language,
                "metadata": job.to_dict(include_text=False),
            }
        )

    @app.route("/jobs/<job_id>/cancel", methods=["POST"])
    def cancel_job(job_id: str):
        """Cancel a pending or processing job."""
        job = job_store.get_job(job_id)
        if job is None:
            return jsonify({"error": "Job not found"}), 404

        if not queue.cancel_job(job_id):
            current = job_store.get_job(job_id)
            return jsonify({"error": "Job can no longer be canceled", "status": current.status.value}), 409

        return jsonify({"job_id": job_id, "message": "Cancellation requested"})

    @app.route("/queue/status", methods=["GET"])
    def get_queue_status():
        """Get detailed queue status information."""
        return jsonify(queue.get_queue_status())

    return app


def main():
    """Run the API server with settings from the environment."""
    configure_logging()
    settings = PipelineSettings.from_env()
    for key, value in settings.describe().items():
        logger.debug(f"{key} = {value}")

    job_store = JobManager(settings.jobs_dir)
    object_store = LocalObjectStore(settings.storage_dir)
    processor = build_processor(settings, job_store, object_store)
    queue = ProcessingQueue(job_store, processor, max_workers=settings.max_workers)
    queue.start()
    atexit.register(queue.stop)

    app = create_app(queue, job_store, object_store, settings)
    app.run(
        debug=ConfigManager.get_bool("API_DEBUG"),
        host=ConfigManager.get("API_HOST"),
        port=ConfigManager.get_int("API_PORT"),
        use_reloader=False,
    )


if __name__ == "__main__":
    main()
