"""Eligibility and duplicate checks against the submissions ledger.

The reconciler only reads: appending the accepted entry is left to the
submission service once the proof asset is stored. Checks are read-then-act,
so two concurrent submissions of the same activity can both pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import List, Protocol, Sequence

from .config import LEDGER_FAIL_OPEN, SUBMISSION_QUOTA_PER_EMAIL
from .errors import LedgerUnavailableError, ReconciliationRejected
from .models import LedgerEntry


class RegistrationLookup(Protocol):
    def is_registered(self, email: str) -> bool: ...


class SubmissionLedger(Protocol):
    def list_accepted_entries(self) -> List[LedgerEntry]: ...


class Decision(str, Enum):
    ACCEPTED = "accepted"
    REJECTED_NOT_REGISTERED = "not_registered"
    REJECTED_DUPLICATE_ACTIVITY = "duplicate_activity"
    REJECTED_QUOTA_EXCEEDED = "quota_exceeded"
    INDETERMINATE = "ledger_unavailable"


# HTTP status answered for each rejection.
_REJECTION_STATUS = {
    Decision.REJECTED_NOT_REGISTERED: 403,
    Decision.REJECTED_DUPLICATE_ACTIVITY: 409,
    Decision.REJECTED_QUOTA_EXCEEDED: 429,
    Decision.INDETERMINATE: 503,
}


@dataclass(slots=True)
class ReconciliationResult:
    decision: Decision
    message: str
    prior_count: int = 0

    @property
    def accepted(self) -> bool:
        return self.decision is Decision.ACCEPTED

    def to_error(self) -> ReconciliationRejected:
        """Rejection error for a refused result (not valid for ACCEPTED)."""

        if self.accepted:
            raise ValueError("accepted reconciliation has no rejection error")
        return ReconciliationRejected(
            self.message,
            code=self.decision.value,
            status=_REJECTION_STATUS[self.decision],
            details={"prior_submissions": self.prior_count},
        )


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def normalize_activity_ref(ref: str | None) -> str:
    return (ref or "").strip()


def count_for_email(entries: Sequence[LedgerEntry], email: str) -> int:
    target = normalize_email(email)
    return sum(1 for entry in entries if normalize_email(entry.email) == target)


def find_duplicate(entries: Sequence[LedgerEntry], activity_ref: str) -> LedgerEntry | None:
    target = normalize_activity_ref(activity_ref)
    if not target:
        return None
    for entry in entries:
        if normalize_activity_ref(entry.activity_ref) == target:
            return entry
    return None


class SubmissionReconciler:
    """Decide whether a submission may be recorded.

    A failed registration lookup always counts as not registered. A failed
    ledger scan yields ``INDETERMINATE`` unless ``fail_open`` is set, in
    which case the duplicate and quota checks are skipped.
    """

    def __init__(
        self,
        registry: RegistrationLookup,
        ledger: SubmissionLedger,
        *,
        quota: int = SUBMISSION_QUOTA_PER_EMAIL,
        fail_open: bool = LEDGER_FAIL_OPEN,
        logger: logging.Logger | None = None,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._quota = quota
        self._fail_open = fail_open
        self._log = logger or logging.getLogger(self.__class__.__name__)

    def reconcile(self, email: str, activity_ref: str) -> ReconciliationResult:
        email_key = normalize_email(email)

        try:
            registered = self._registry.is_registered(email_key)
        except LedgerUnavailableError as exc:
            self._log.warning("Registration lookup failed; treating as not registered: %s", exc)
            registered = False
        if not registered:
            self._log.info("Rejecting submission from unregistered email=%s", email_key)
            return ReconciliationResult(
                Decision.REJECTED_NOT_REGISTERED,
                "Email is not registered. Please register before submitting.",
            )

        try:
            entries = self._ledger.list_accepted_entries()
        except LedgerUnavailableError as exc:
            if self._fail_open:
                self._log.warning("Ledger scan failed; continuing (fail open): %s", exc)
                return ReconciliationResult(Decision.ACCEPTED, "Submission accepted")
            self._log.warning("Ledger scan failed; rejecting as indeterminate: %s", exc)
            return ReconciliationResult(
                Decision.INDETERMINATE,
                "Submission records are temporarily unavailable. Please try again later.",
            )

        prior = count_for_email(entries, email_key)
        duplicate = find_duplicate(entries, activity_ref)
        if duplicate is not None:
            self._log.info(
                "Rejecting duplicate activity %s (email=%s)", activity_ref, email_key
            )
            return ReconciliationResult(
                Decision.REJECTED_DUPLICATE_ACTIVITY,
                "This Strava activity has already been submitted.",
                prior_count=prior,
            )

        if prior >= self._quota:
            self._log.info("Quota reached for email=%s (%d prior)", email_key, prior)
            return ReconciliationResult(
                Decision.REJECTED_QUOTA_EXCEEDED,
                f"Maximum {self._quota} submissions per participant.",
                prior_count=prior,
            )

        return ReconciliationResult(
            Decision.ACCEPTED, "Submission accepted", prior_count=prior
        )


__all__ = [
    "Decision",
    "ReconciliationResult",
    "RegistrationLookup",
    "SubmissionLedger",
    "SubmissionReconciler",
    "count_for_email",
    "find_duplicate",
]
