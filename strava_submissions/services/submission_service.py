"""Run submission orchestration.

Flow for one submission: required fields, email and proof checks, link
resolution, fetch and extract with the cookies the submitter forwarded (plus one
retry over the remaining channels), format validation of the scraped values, ledger
reconciliation, proof upload and finally the ledger append. Distance and
duration always come from the scraped page; values typed by the submitter
are never stored.

Every expected failure ends as a :class:`SubmissionOutcome` carrying a
:class:`~strava_submissions.errors.SubmissionError`; nothing is appended
unless the proof was stored first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import re
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..config import LEDGER_FAIL_OPEN, MAX_PROOF_BYTES, SUBMISSION_QUOTA_PER_EMAIL
from ..errors import (
    ExtractionIncompleteError,
    FetchError,
    SubmissionError,
    ValidationError,
)
from ..models import (
    LedgerEntry,
    NormalizedSubmission,
    ProofUpload,
    ResolvedActivity,
    SessionCredentials,
    SubmissionForm,
)
from ..proof_store import LocalProofStore, proof_filename
from ..reconcile import Decision, SubmissionReconciler
from ..scrape.resolver import is_canonical_activity_url
from ..workbook_store import WorkbookSubmissionStore
from .scrape_service import ActivityScraper, ScrapeReport

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DURATION_RE = re.compile(r"^[0-9]{2}:[0-9]{2}:[0-9]{2}$")


class SubmissionStore(Protocol):
    def is_registered(self, email: str) -> bool: ...

    def list_accepted_entries(self) -> List[LedgerEntry]: ...

    def append_entry(self, submission: NormalizedSubmission) -> None: ...


def _new_submission_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(slots=True)
class SubmissionServiceConfig:
    scraper: ActivityScraper | None = None
    store: SubmissionStore | None = None
    proof_store: LocalProofStore | None = None
    quota: int = SUBMISSION_QUOTA_PER_EMAIL
    max_proof_bytes: int = MAX_PROOF_BYTES
    fail_open: bool = LEDGER_FAIL_OPEN
    clock: Callable[[], datetime] = datetime.now
    id_factory: Callable[[], str] = _new_submission_id
    logger: logging.Logger | None = None


@dataclass
class SubmissionOutcome:
    accepted: bool
    status: int
    submission: Optional[NormalizedSubmission] = None
    error: Optional[SubmissionError] = None
    decision: Optional[Decision] = None
    issues: List[str] = field(default_factory=list)

    @property
    def code(self) -> str:
        if self.error is not None:
            return self.error.code
        return "accepted"

    def to_dict(self) -> Dict[str, Any]:
        if self.accepted and self.submission is not None:
            sub = self.submission
            return {
                "success": True,
                "message": "Submission received and pending verification",
                "submission_id": sub.submission_id,
                "distance": sub.distance_km,
                "duration": sub.duration,
                "data": sub.summary(),
            }
        payload: Dict[str, Any] = {"success": False}
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        if self.issues:
            payload["issues"] = list(self.issues)
        return payload


def select_primary_credentials(form: SubmissionForm) -> Optional[SessionCredentials]:
    """Cookies the submitter sent with the form, else the remember headers.

    None means the fetcher falls back to its configured pair.
    """

    return form.form_credentials or form.header_credentials


def select_retry_credentials(form: SubmissionForm) -> Optional[SessionCredentials]:
    """Next forwarded pair after the primary one: headers, then the Cookie header.

    When no other channel carries a different pair the primary credentials are
    reused, so the retry is a plain re-fetch.
    """

    primary = select_primary_credentials(form)
    for candidate in (
        form.header_credentials,
        SessionCredentials.from_cookie_header(form.cookie_header),
    ):
        if candidate is not None and candidate != primary:
            return candidate
    return primary


def missing_required_fields(form: SubmissionForm) -> List[str]:
    missing = [
        key
        for key, value in (
            ("name", form.name),
            ("email", form.email),
            ("phone", form.phone),
            ("stravaActivity", form.activity_url),
        )
        if not (value or "").strip()
    ]
    if form.proof is None or not form.proof.content:
        missing.append("proof")
    return missing


class SubmissionService:
    def __init__(self, config: SubmissionServiceConfig | None = None):
        self.config = config or SubmissionServiceConfig()
        self.scraper = self.config.scraper or ActivityScraper()
        self.store = self.config.store or WorkbookSubmissionStore()
        self.proof_store = self.config.proof_store or LocalProofStore()
        self.reconciler = SubmissionReconciler(
            self.store,
            self.store,
            quota=self.config.quota,
            fail_open=self.config.fail_open,
            logger=self.config.logger,
        )
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def submit(self, form: SubmissionForm) -> SubmissionOutcome:
        try:
            submission = self._process(form)
        except SubmissionError as exc:
            self._log.warning(
                "Submission rejected code=%s status=%s: %s",
                exc.code,
                exc.status,
                exc.message,
            )
            return SubmissionOutcome(
                accepted=False,
                status=exc.status,
                error=exc,
                decision=_decision_for(exc),
                issues=list(exc.details.get("issues", [])),
            )
        return SubmissionOutcome(
            accepted=True,
            status=200,
            submission=submission,
            decision=Decision.ACCEPTED,
        )

    # --- steps --------------------------------------------------------
    def _validate_identity(self, form: SubmissionForm) -> ProofUpload:
        missing = missing_required_fields(form)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                code="missing_fields",
                details={"missing": missing},
            )
        if not EMAIL_RE.match(form.email.strip()):
            raise ValidationError("Invalid email address", code="invalid_email")
        proof = form.proof
        if proof is None:
            raise ValidationError("Missing required fields: proof", code="missing_fields")
        if proof.size > self.config.max_proof_bytes:
            raise ValidationError(
                f"Proof image exceeds {self.config.max_proof_bytes // (1024 * 1024)}MB",
                code="proof_too_large",
                status=413,
                details={"size": proof.size},
            )
        return proof

    def _scrape_with_retry(
        self, resolved: ResolvedActivity, form: SubmissionForm
    ) -> ScrapeReport:
        first_credentials = select_primary_credentials(form)
        alternate = select_retry_credentials(form)
        primary: ScrapeReport | None = None
        try:
            primary = self.scraper.scrape_resolved(resolved, first_credentials)
        except FetchError as exc:
            # Re-sending the same cookies cannot fix a failed request.
            if alternate is None or alternate == first_credentials:
                raise
            self._log.info(
                "Primary fetch of %s failed (%s); retrying with forwarded cookies",
                resolved.url,
                exc.code,
            )
        if primary is not None and primary.complete:
            return primary

        if primary is not None:
            self._log.info(
                "Distance or duration missing for %s; retrying fetch once", resolved.url
            )
        try:
            retried = self.scraper.scrape_resolved(resolved, alternate)
        except FetchError as exc:
            if primary is None:
                raise
            self._log.warning("Retry fetch of %s failed: %s", resolved.url, exc.message)
            return primary
        if retried.complete or primary is None:
            return retried
        return primary

    def _build_submission(
        self, form: SubmissionForm, resolved: ResolvedActivity, report: ScrapeReport
    ) -> NormalizedSubmission:
        if not report.complete:
            raise ExtractionIncompleteError(
                "Could not read distance and moving time from the Strava activity",
                details={
                    "extracted": report.fields.to_dict(),
                    "diagnostics": report.diagnostics.to_dict(),
                    "issues": list(report.issues),
                },
            )
        if not is_canonical_activity_url(resolved.url):
            raise ValidationError(
                "Invalid Strava activity URL", code="invalid_activity_url"
            )
        duration = report.duration or ""
        if not DURATION_RE.match(duration):
            raise ValidationError(
                "Invalid duration format (HH:MM:SS)",
                code="invalid_duration",
                details={"duration": duration},
            )
        distance = report.distance_km or 0.0
        if distance <= 0:
            raise ValidationError(
                "Distance must be greater than zero",
                code="invalid_distance",
                details={"distance": distance},
            )
        if form.client_distance or form.client_duration:
            self._log.debug(
                "Ignoring client values distance=%s duration=%s",
                form.client_distance,
                form.client_duration,
            )
        fields = report.fields
        return NormalizedSubmission(
            submission_id=self.config.id_factory(),
            name=form.name.strip(),
            email=form.email.strip().lower(),
            phone=form.phone.strip(),
            activity_url=resolved.url,
            distance_km=distance,
            duration=duration,
            submitted_at=self.config.clock(),
            activity_name=fields.activity_name,
            location=fields.location,
            activity_date=fields.date,
            description=fields.description,
            pace=fields.pace,
            authenticated=fields.authenticated,
            auth_valid=fields.auth_valid,
        )

    def _process(self, form: SubmissionForm) -> NormalizedSubmission:
        proof = self._validate_identity(form)
        resolved = self.scraper.resolve(form.activity_url)
        report = self._scrape_with_retry(resolved, form)
        submission = self._build_submission(form, resolved, report)

        result = self.reconciler.reconcile(submission.email, submission.activity_url)
        if not result.accepted:
            raise result.to_error()

        filename = proof_filename(
            submission.email, submission.submission_id, proof.filename, proof.content_type
        )
        submission.proof_url = self.proof_store.store(
            proof.content, filename, proof.content_type
        )
        self.store.append_entry(submission)
        self._log.info(
            "Accepted submission %s activity=%s distance=%.3f duration=%s",
            submission.submission_id,
            resolved.activity_id,
            submission.distance_km,
            submission.duration,
        )
        return submission


def _decision_for(exc: SubmissionError) -> Optional[Decision]:
    try:
        return Decision(exc.code)
    except ValueError:
        return None


__all__ = [
    "SubmissionOutcome",
    "SubmissionService",
    "SubmissionServiceConfig",
    "missing_required_fields",
    "select_primary_credentials",
    "select_retry_credentials",
]
