"""Central error types used across the application.

Every error carries a machine-checkable ``code`` and the HTTP ``status`` the
web layer answers with, so callers never need to inspect messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SubmissionError(RuntimeError):
    """Base error for anything that stops a submission or scrape."""

    code = "submission_error"
    status = 400

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ResolutionError(SubmissionError):
    """Raised when an activity link cannot be reduced to an activity id."""

    code = "invalid_activity_url"
    status = 400


class FetchError(SubmissionError):
    """Raised when the activity page could not be fetched."""

    code = "fetch_failed"
    status = 502

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.upstream_status = upstream_status
        if upstream_status is not None:
            self.details.setdefault("upstream_status", upstream_status)


class AuthRequiredError(FetchError):
    """Raised on HTTP 403: the page needs a login or the cookies expired."""

    code = "credentials_expired"
    status = 403


class ExtractionIncompleteError(SubmissionError):
    """Raised when distance or moving time is missing after every fallback."""

    code = "extraction_incomplete"
    status = 422


class ValidationError(SubmissionError):
    """Raised when submitted or scraped values have the wrong shape."""

    code = "invalid_submission"
    status = 400


class ReconciliationRejected(SubmissionError):
    """Raised when eligibility or duplicate checks refuse the submission."""

    code = "rejected"
    status = 409


class PersistenceError(SubmissionError):
    """Raised when the proof asset or ledger row could not be written."""

    code = "persistence_failed"
    status = 500


class LedgerUnavailableError(PersistenceError):
    """Raised when the spreadsheet store cannot be read."""

    code = "ledger_unavailable"
    status = 503


class WorkbookFormatError(LedgerUnavailableError):
    """Raised when a workbook sheet is missing required columns."""

    code = "workbook_format"


__all__ = [
    "SubmissionError",
    "ResolutionError",
    "FetchError",
    "AuthRequiredError",
    "ExtractionIncompleteError",
    "ValidationError",
    "ReconciliationRejected",
    "PersistenceError",
    "LedgerUnavailableError",
    "WorkbookFormatError",
]
