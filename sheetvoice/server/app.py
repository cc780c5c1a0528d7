"""
Flask API server for spreadsheet-to-speech conversion.

This server provides endpoints for:
- Uploading spreadsheets for conversion and polling job progress
- Listing voices and testing a voice on sample text
- Browsing, inspecting and deleting library entries
- Downloading and streaming (byte-range) audio artifacts

The server uses ThreadPoolExecutor-backed background jobs (see ProcessingQueue).
"""

import atexit
import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from flask import Blueprint, Flask, current_app, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge
from werkzeug.utils import secure_filename

from ..config import ConfigManager
from ..errors import InvalidAudioReference, NotFoundError, PersistenceError, SheetVoiceError
from ..speech.extractor import SUPPORTED_EXTENSIONS, RecordExtractor
from ..speech.providers import FallbackSynthesisProvider, create_provider
from ..speech.utils import audio_filename, content_type_for, format_file_size
from .job_manager import JobTracker
from .library import ArchiveStore
from .processing_queue import ProcessingQueue
from .processor import BatchProcessor

logger = logging.getLogger(__name__)

EXTENSION_KEY = "sheetvoice"

api = Blueprint("api", __name__, url_prefix="/api")


def allowed_file(filename: str) -> bool:
    """Check if the uploaded file has an allowed extension."""
    return Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS


def _services() -> Dict[str, Any]:
    return current_app.extensions[EXTENSION_KEY]


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


@api.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    services = _services()
    queue_status = services["queue"].get_queue_status()
    return jsonify(
        {
            "status": "OK",
            "timestamp": datetime.now().isoformat(),
            "primary_configured": services["provider"].is_primary_available,
            "running_jobs": len(queue_status["running_jobs"]),
            "tracked_jobs": queue_status["tracked_jobs"],
        }
    )


@api.route("/status", methods=["GET"])
def speech_status():
    """Report whether the primary speech service is configured."""
    services = _services()
    config = services["config"]
    primary_available = services["provider"].is_primary_available
    return jsonify(
        {
            "success": True,
            "primary_available": primary_available,
            "mode": "primary" if primary_available else "fallback",
            "model": config["TTS_MODEL"],
            "model_source": config.source("TTS_MODEL"),
        }
    )


@api.route("/upload", methods=["POST"])
def upload_spreadsheet():
    """
    Upload a spreadsheet for conversion.

    Expected form data:
    - spreadsheet: CSV or XLSX file with ID and Text columns
    - voice: Optional voice identifier

    Returns:
    - job_id: Identifier for polling progress
    """
    if "spreadsheet" not in request.files:
        return _error("No file uploaded", 400)

    file = request.files["spreadsheet"]
    if not file.filename:
        return _error("No file selected", 400)

    if not allowed_file(file.filename):
        return _error("Invalid file type. Please upload CSV or XLSX files only.", 400)

    original_filename = secure_filename(file.filename)
    if not original_filename or not allowed_file(original_filename):
        return _error("Invalid filename", 400)

    services = _services()
    voice = request.form.get("voice") or services["config"]["DEFAULT_VOICE"]

    extension = Path(original_filename).suffix.lower()
    stored_name = f"spreadsheet-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}{extension}"
    stored_path = services["archive"].spreadsheets_dir / stored_name
    file.save(str(stored_path))
    logger.info(f"Stored upload {original_filename} as {stored_name} ({format_file_size(stored_path.stat().st_size)})")

    job_id = services["queue"].submit(str(stored_path), original_filename, voice)

    return jsonify(
        {
            "success": True,
            "job_id": job_id,
            "message": "File upload successful, processing started",
            "file_name": original_filename,
        }
    ), 201


@api.route("/upload/progress/<job_id>", methods=["GET"])
def get_job_progress(job_id: str):
    """
    Get the current state of a conversion job.

    Returns status, total, completed, current record, timestamps and
    either error or library_ref once the job has finished.
    """
    job = _services()["tracker"].get(job_id)
    return jsonify({"success": True, **job.to_dict()})


@api.route("/jobs", methods=["GET"])
def list_jobs():
    """List live jobs, newest first."""
    jobs = _services()["tracker"].list_jobs()
    return jsonify({"success": True, "jobs": [job.to_dict() for job in jobs], "total": len(jobs)})


@api.route("/voices", methods=["GET"])
def list_voices():
    """Available voices and whether audio will be placeholder only."""
    return jsonify({"success": True, **_services()["provider"].list_voices()})


@api.route("/voices/test", methods=["POST"])
def test_voice():
    """Synthesize a sample text with the selected voice."""
    services = _services()
    payload = request.get_json(silent=True) or {}
    text = str(payload.get("text", "Hello, this is a test of the selected voice."))
    voice = str(payload.get("voice") or services["config"]["DEFAULT_VOICE"])

    if not text.strip():
        return _error("Text is required for voice testing", 400)

    provider = services["provider"]
    result = provider.synthesize(text, voice)
    audio_ref = audio_filename(f"test_{int(time.time() * 1000)}", result.file_extension)
    services["archive"].audio_path(audio_ref).write_bytes(result.audio_bytes)

    return jsonify(
        {
            "success": True,
            "audio_ref": audio_ref,
            "audio_url": f"/api/library/play/{audio_ref}",
            "method": result.method.value,
            "note": result.note,
            "fallback": not provider.is_primary_available,
        }
    )


@api.route("/library", methods=["GET"])
def list_library():
    """List all library entries with aggregate statistics."""
    archive = _services()["archive"]
    entries = archive.list_entries()
    return jsonify(
        {
            "success": True,
            "libraries": [entry.to_dict() for entry in entries],
            "stats": archive.stats(),
        }
    )


@api.route("/library/stats/summary", methods=["GET"])
def library_stats():
    """Aggregate statistics across the library."""
    return jsonify({"success": True, "stats": _services()["archive"].stats()})


@api.route("/library/<entry_id>", methods=["GET"])
def get_library_entry(entry_id: str):
    """Get one library entry."""
    entry = _services()["archive"].get(entry_id)
    return jsonify({"success": True, "entry": entry.to_dict()})


@api.route("/library/<entry_id>", methods=["DELETE"])
def delete_library_entry(entry_id: str):
    """Delete a library entry and its audio files."""
    _services()["archive"].delete(entry_id)
    return jsonify({"success": True, "message": "Library entry deleted successfully"})


def _audio_response(audio_ref: str, as_attachment: bool):
    path = _services()["archive"].audio_path(audio_ref)
    if not path.is_file():
        return _error("Audio file not found", 404)

    return send_file(
        path,
        mimetype=content_type_for(audio_ref),
        as_attachment=as_attachment,
        download_name=audio_ref,
        conditional=True,
    )


@api.route("/library/audio/<audio_ref>", methods=["GET"])
def download_audio(audio_ref: str):
    """Download an audio file."""
    return _audio_response(audio_ref, as_attachment=True)


@api.route("/library/play/<audio_ref>", methods=["GET"])
def play_audio(audio_ref: str):
    """Stream an audio file for playback; honours Range requests."""
    return _audio_response(audio_ref, as_attachment=False)


@api.errorhandler(NotFoundError)
def handle_not_found(error: NotFoundError):
    return _error(str(error), 404)


@api.errorhandler(InvalidAudioReference)
def handle_invalid_reference(error: InvalidAudioReference):
    return _error("Invalid filename", 400)


@api.errorhandler(PersistenceError)
def handle_persistence_error(error: PersistenceError):
    logger.error(f"Library error: {error}")
    return _error("Failed to access the library", 500)


@api.errorhandler(SheetVoiceError)
def handle_domain_error(error: SheetVoiceError):
    return _error(str(error), 400)


def handle_too_large(error: RequestEntityTooLarge):
    limit = format_file_size(current_app.config["MAX_CONTENT_LENGTH"])
    return _error(f"File too large. Maximum size is {limit}.", 413)


def handle_unexpected_error(error: Exception):
    if isinstance(error, HTTPException):
        return _error(error.description or error.name, error.code or 500)

    logger.exception(f"Unhandled error: {error}")
    return _error("Internal server error", 500)


def create_app(
    config_overrides: Optional[Mapping[str, Any]] = None,
    provider: Optional[FallbackSynthesisProvider] = None,
    job_tracker: Optional[JobTracker] = None,
    start_queue: bool = True,
) -> Flask:
    """
    Build the Flask application and its processing components.

    Args:
        config_overrides: Values that win over environment and defaults
        provider: Synthesis provider (default: built from configuration)
        job_tracker: Job tracker (default: one using JOB_RETENTION_SECONDS)
        start_queue: Start the background expiry sweep

    Returns:
        Configured Flask app; components live in app.extensions["sheetvoice"]
    """
    config = ConfigManager(config_overrides)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.as_int("MAX_FILE_SIZE")
    CORS(app, origins=[config["FRONTEND_URL"]], supports_credentials=True)

    provider = provider or create_provider(config)
    archive = ArchiveStore(config["STORAGE_DIR"])
    tracker = job_tracker or JobTracker(retention_seconds=config.as_float("JOB_RETENTION_SECONDS"))
    processor = BatchProcessor(provider, archive.audio_dir)
    queue = ProcessingQueue(
        tracker,
        archive,
        processor,
        extractor=RecordExtractor(),
        max_workers=config.as_int("MAX_WORKERS"),
        sweep_interval=config.as_float("SWEEP_INTERVAL_SECONDS"),
    )
    if start_queue:
        queue.start()

    app.extensions[EXTENSION_KEY] = {
        "config": config,
        "provider": provider,
        "archive": archive,
        "tracker": tracker,
        "queue": queue,
    }
    app.register_blueprint(api)
    app.register_error_handler(RequestEntityTooLarge, handle_too_large)
    app.register_error_handler(Exception, handle_unexpected_error)
    return app


def main():
    """Run the development server."""
    config = ConfigManager()
    log_level = getattr(logging, str(config["LOG_LEVEL"]).upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("werkzeug").setLevel(log_level)

    app = create_app()
    queue = app.extensions[EXTENSION_KEY]["queue"]
    atexit.register(queue.stop)

    for key in ("TTS_MODEL", "DEFAULT_VOICE", "STORAGE_DIR", "MAX_WORKERS"):
        value, source = ConfigManager.get_display_value(key)
        logger.info(f"{key}={value} ({source})")
    if ConfigManager.is_using_default("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY is not set; all audio will be placeholder silence")
    logger.info(f"Primary speech service configured: {app.extensions[EXTENSION_KEY]['provider'].is_primary_available}")
    app.run(host="0.0.0.0", port=5001)


if __name__ == "__main__":
    main()
