"""Flask API exposing the application lifecycle to the app's UI layer."""

import logging
import threading
from typing import Dict, List, Optional

from flask import Flask, request, jsonify
from flask_cors import CORS
from pydantic import BaseModel, Field, ValidationError

from config.settings import FLASK_PORT, FLASK_DEBUG, LOG_LEVEL
from gigflow.errors import (
    ApplicationNotFound,
    ClockSkewError,
    GigflowError,
    InvalidTransition,
    OtpError,
    RemoteFailure,
)
from gigflow.records import FeedMode, Job, SwipeDirection
from gigflow.services.application_service import ApplicationService
from gigflow.services.swipe_session import SwipeSessionTracker, new_session, settled_job_ids
from gigflow.services.work_session import WorkSessionController

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create Flask app
app = Flask(__name__)
CORS(app)

application_service = ApplicationService()
work_sessions = WorkSessionController(application_service)

# One swipe feed per worker, created on first use and replaced on mode switch.
feed_sessions: Dict[str, SwipeSessionTracker] = {}
_feed_lock = threading.Lock()


class WorkerRequest(BaseModel):
    worker_id: str = Field(min_length=1, description="Worker performing the action")
    employer_id: Optional[str] = Field(default=None, description="Employer, when the job is not catalogued")


class CodeRequest(BaseModel):
    code: str = Field(description="One-time passcode relayed out of band")


class SwipeRequest(BaseModel):
    job_id: str = Field(min_length=1)
    direction: SwipeDirection


class FeedRequest(BaseModel):
    jobs: Optional[List[Job]] = Field(default=None, description="Upstream job list; defaults to the catalogue")


class ModeRequest(BaseModel):
    mode: FeedMode


_ERROR_CODES = (
    (ApplicationNotFound, 404),
    (OtpError, 400),
    (InvalidTransition, 409),
    (ClockSkewError, 409),
    (RemoteFailure, 503),
)


def _failure(message: str, status_code: int, error_type: str):
    return jsonify({
        "status": "failed",
        "error": message,
        "error_type": error_type,
    }), status_code


@app.errorhandler(GigflowError)
def handle_gigflow_error(error: GigflowError):
    status_code = next((code for kind, code in _ERROR_CODES if isinstance(error, kind)), 500)
    if status_code >= 500 or isinstance(error, ClockSkewError):
        logger.error("Request failed: %s", error)
    return _failure(str(error), status_code, type(error).__name__)


@app.errorhandler(ValidationError)
def handle_validation_error(error: ValidationError):
    return _failure(str(error), 422, "ValidationError")


@app.errorhandler(ValueError)
def handle_value_error(error: ValueError):
    return _failure(str(error), 400, "ValueError")


def _body(model):
    return model.model_validate(request.get_json(silent=True) or {})


def _get_tracker(worker_id: str) -> SwipeSessionTracker:
    with _feed_lock:
        tracker = feed_sessions.get(worker_id)
        if tracker is None:
            tracker = new_session(application_service, worker_id)
            feed_sessions[worker_id] = tracker
        return tracker


@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "gigflow"
    }), 200


# Jobs

@app.route('/jobs', methods=['POST'])
def upsert_job():
    job = _body(Job)
    application_service.repository.upsert_job(job)
    return jsonify({"status": "success", "job": job.model_dump(mode="json")}), 200


@app.route('/jobs', methods=['GET'])
def list_jobs():
    jobs = application_service.repository.list_active_jobs()
    return jsonify({"status": "success", "jobs": [job.model_dump(mode="json") for job in jobs]}), 200


@app.route('/jobs/<job_id>/apply', methods=['POST'])
def apply_to_job(job_id: str):
    body = _body(WorkerRequest)
    record = application_service.apply_to_job(job_id, body.worker_id, employer_id=body.employer_id)
    return jsonify({"status": "success", "application": record.to_dict()}), 200


@app.route('/jobs/<job_id>/not-interested', methods=['POST'])
def mark_not_interested(job_id: str):
    body = _body(WorkerRequest)
    record = application_service.mark_not_interested(job_id, body.worker_id, employer_id=body.employer_id)
    return jsonify({"status": "success", "application": record.to_dict()}), 200


# Applications

@app.route('/applications/<application_id>', methods=['GET'])
def get_application(application_id: str):
    record = application_service.get(application_id)
    return jsonify({"status": "success", "application": record.to_dict()}), 200


@app.route('/applications/<application_id>/history', methods=['GET'])
def get_application_history(application_id: str):
    changes = application_service.history(application_id)
    return jsonify({"status": "success", "history": [change.to_dict() for change in changes]}), 200


@app.route('/applications/<application_id>/<action>', methods=['POST'])
def progress_application(application_id: str, action: str):
    """Employer select/reject and worker accept/decline."""
    handlers = {
        "select": application_service.select,
        "reject": application_service.reject,
        "accept": application_service.accept,
        "decline": application_service.decline,
    }
    handler = handlers.get(action)
    if handler is None:
        return _failure(f"Unknown action '{action}'", 404, "NotFound")
    record = handler(application_id)
    return jsonify({"status": "success", "application": record.to_dict()}), 200


@app.route('/applications/<application_id>/start-otp', methods=['POST'])
def request_start_otp(application_id: str):
    challenge = work_sessions.request_start_otp(application_id)
    return jsonify({"status": "success", "challenge": challenge.to_dict()}), 200


@app.route('/applications/<application_id>/start-otp', methods=['GET'])
def get_start_otp(application_id: str):
    """Redisplay the live start code to the employer."""
    challenge = work_sessions.current_start_otp(application_id)
    if challenge is None:
        return _failure(f"No live start code for application {application_id}", 404, "NotFound")
    return jsonify({"status": "success", "challenge": challenge.to_dict()}), 200


@app.route('/applications/<application_id>/start', methods=['POST'])
def submit_start_otp(application_id: str):
    body = _body(CodeRequest)
    record = work_sessions.submit_start_otp(application_id, body.code)
    return jsonify({"status": "success", "application": record.to_dict()}), 200


@app.route('/applications/<application_id>/completion', methods=['POST'])
def initiate_completion(application_id: str):
    record = work_sessions.initiate_completion(application_id)
    return jsonify({"status": "success", "application": record.to_dict()}), 200


@app.route('/applications/<application_id>/completion/confirm', methods=['POST'])
def confirm_completion(application_id: str):
    body = _body(CodeRequest)
    record = work_sessions.confirm_completion(application_id, body.code)
    summary = work_sessions.completion_summary(record)
    return jsonify({
        "status": "success",
        "application": record.to_dict(),
        "completion": summary.to_dict(),
    }), 200


# Workers

@app.route('/workers/<worker_id>/applications', methods=['GET'])
def list_active_applications(worker_id: str):
    records = application_service.active_applications(worker_id)
    return jsonify({"status": "success", "applications": [record.to_dict() for record in records]}), 200


@app.route('/workers/<worker_id>/reconsideration-pool', methods=['GET'])
def reconsideration_pool(worker_id: str):
    return jsonify({"status": "success", "job_ids": application_service.reconsideration_pool(worker_id)}), 200


@app.route('/workers/<worker_id>/feed', methods=['POST'])
def next_batch(worker_id: str):
    """Return the worker's deduplicated feed for the given (or catalogued) jobs."""
    body = _body(FeedRequest)
    tracker = _get_tracker(worker_id)
    jobs = body.jobs
    if jobs is None:
        jobs = _default_pool(worker_id, tracker.mode)
    batch = tracker.next_batch(jobs)
    return jsonify({
        "status": "success",
        "mode": tracker.mode.value,
        "jobs": [job.model_dump(mode="json") for job in batch],
    }), 200


@app.route('/workers/<worker_id>/feed/swipe', methods=['POST'])
def swipe(worker_id: str):
    body = _body(SwipeRequest)
    outcome = _get_tracker(worker_id).on_swipe(body.job_id, body.direction)
    return jsonify({"status": "success", "outcome": outcome.to_dict()}), 200


@app.route('/workers/<worker_id>/feed/mode', methods=['POST'])
def switch_feed_mode(worker_id: str):
    body = _body(ModeRequest)
    tracker = _get_tracker(worker_id)
    tracker.reset_for_mode(body.mode)
    tracker.reconcile(settled_job_ids(application_service, worker_id, body.mode))
    return jsonify({"status": "success", "state": tracker.state().to_dict()}), 200


@app.route('/workers/<worker_id>/feed/state', methods=['GET'])
def feed_state(worker_id: str):
    return jsonify({"status": "success", "state": _get_tracker(worker_id).state().to_dict()}), 200


def _default_pool(worker_id: str, mode: FeedMode) -> List[Job]:
    if mode is FeedMode.RECONSIDERING_REJECTED:
        pool = application_service.reconsideration_pool(worker_id)
        jobs = (application_service.repository.get_job(job_id) for job_id in pool)
        return [job for job in jobs if job is not None]
    return application_service.repository.list_active_jobs()


def run_server():
    """Create the schema if needed and run the Flask server."""
    application_service.repository.create_schema()
    logger.info(f"Starting gigflow API on port {FLASK_PORT}")
    app.run(
        host='0.0.0.0',
        port=FLASK_PORT,
        debug=FLASK_DEBUG
    )


if __name__ == '__main__':
    run_server()
