"""Flask HTTP entry points for submissions, scrape debugging and results."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request, send_from_directory
from flask.typing import ResponseReturnValue
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from .config import LEADERBOARD_MAX_SUBMISSIONS, MAX_PROOF_BYTES
from .errors import SubmissionError
from .leaderboard import build_leaderboard
from .models import ProofUpload, SessionCredentials, SubmissionForm
from .proof_store import LocalProofStore
from .services import (
    ActivityScraper,
    SubmissionService,
    SubmissionServiceConfig,
)
from .workbook_store import WorkbookSubmissionStore

LOGGER = logging.getLogger(__name__)

TOKEN_HEADER = "X-Strava-Remember-Token"
ID_HEADER = "X-Strava-Remember-Id"
TOKEN_PARAM = "strava_remember_token"
ID_PARAM = "strava_remember_id"


def _error_response(
    code: str, message: str, status: int, details: Optional[Dict[str, Any]] = None
) -> Tuple[Any, int]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return jsonify({"success": False, "error": error}), status


def header_credentials() -> Optional[SessionCredentials]:
    return SessionCredentials.from_pair(
        request.headers.get(TOKEN_HEADER), request.headers.get(ID_HEADER)
    )


def _read_submission_form() -> SubmissionForm:
    form = request.form
    proof: Optional[ProofUpload] = None
    upload = request.files.get("proof")
    if upload is not None and upload.filename:
        proof = ProofUpload(
            filename=upload.filename,
            content=upload.read(),
            content_type=upload.mimetype or "application/octet-stream",
        )
    return SubmissionForm(
        name=form.get("name", ""),
        email=form.get("email", ""),
        phone=form.get("phone", ""),
        activity_url=form.get("stravaActivity", ""),
        proof=proof,
        client_distance=form.get("distance"),
        client_duration=form.get("duration"),
        form_credentials=SessionCredentials.from_pair(
            form.get(TOKEN_PARAM), form.get(ID_PARAM)
        ),
        header_credentials=header_credentials(),
        cookie_header=request.headers.get("Cookie"),
    )


def create_app(
    *,
    store: WorkbookSubmissionStore | None = None,
    proof_store: LocalProofStore | None = None,
    scraper: ActivityScraper | None = None,
    service: SubmissionService | None = None,
    leaderboard_max: int = LEADERBOARD_MAX_SUBMISSIONS,
) -> Flask:
    """Build the Flask app around injectable collaborators."""

    store = store or WorkbookSubmissionStore()
    proof_store = proof_store or LocalProofStore()
    scraper = scraper or ActivityScraper()
    service = service or SubmissionService(
        SubmissionServiceConfig(scraper=scraper, store=store, proof_store=proof_store)
    )

    app = Flask(__name__)
    # Leave headroom above the proof limit so oversize proofs get the JSON error.
    app.config["MAX_CONTENT_LENGTH"] = MAX_PROOF_BYTES * 2

    @app.errorhandler(SubmissionError)
    def _submission_error(exc: SubmissionError) -> ResponseReturnValue:
        return jsonify({"success": False, "error": exc.to_dict()}), exc.status

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(_exc: RequestEntityTooLarge) -> ResponseReturnValue:
        return _error_response("proof_too_large", "Upload is too large", 413)

    @app.errorhandler(Exception)
    def _unexpected(exc: Exception) -> ResponseReturnValue:
        if isinstance(exc, HTTPException):
            return exc
        LOGGER.error("Unhandled error on %s", request.path, exc_info=exc)
        return _error_response("internal_error", "Internal server error", 500)

    @app.post("/api/run/submit")
    def submit_run() -> ResponseReturnValue:
        outcome = service.submit(_read_submission_form())
        return jsonify(outcome.to_dict()), outcome.status

    @app.get("/api/run/submit")
    def list_submissions() -> ResponseReturnValue:
        rows = store.list_rows()
        return jsonify({"success": True, "count": len(rows), "data": rows})

    @app.get("/api/data/strava/scrape")
    def scrape_activity() -> ResponseReturnValue:
        url = (request.args.get("url") or "").strip()
        if not url:
            return _error_response("missing_url", "Query parameter 'url' is required", 400)
        credentials = header_credentials() or SessionCredentials.from_pair(
            request.args.get(TOKEN_PARAM), request.args.get(ID_PARAM)
        )
        report = scraper.scrape(url, credentials)
        return jsonify({"success": True, **report.to_dict()})

    @app.get("/api/data/leaderboard")
    def leaderboard() -> ResponseReturnValue:
        board = build_leaderboard(store.list_rows(), leaderboard_max)
        return jsonify({"success": True, "data": board})

    @app.get("/proofs/<path:filename>")
    def proof_file(filename: str) -> ResponseReturnValue:
        return send_from_directory(proof_store.directory.resolve(), filename)

    return app


__all__ = ["create_app", "header_credentials"]
