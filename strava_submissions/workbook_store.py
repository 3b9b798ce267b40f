"""Workbook-backed registrations lookup and submissions ledger.

One ``.xlsx`` file holds two sheets: registered participants (read only) and
accepted run submissions (append only). All access goes through a process
wide lock so concurrent request threads never interleave a read-modify-write
of the file.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from os import PathLike
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from openpyxl import load_workbook

from .config import REGISTRATIONS_SHEET, SUBMISSIONS_SHEET, SUBMISSIONS_WORKBOOK
from .errors import LedgerUnavailableError, PersistenceError, WorkbookFormatError
from .models import LedgerEntry, NormalizedSubmission

LOGGER = logging.getLogger(__name__)

REGISTRATION_EMAIL_COLUMN = "Email"
DATE_SUBMIT_COLUMN = "Date Submit"
NAME_COLUMN = "Full Name"
EMAIL_COLUMN = "Email"
ACTIVITY_COLUMN = "Strava Activity"
DISTANCE_COLUMN = "Distance (km)"
DURATION_COLUMN = "Duration (HH:MM:SS)"
VERIFIED_COLUMN = "Verified"
SUBMISSION_COLUMNS = [
    DATE_SUBMIT_COLUMN,
    NAME_COLUMN,
    EMAIL_COLUMN,
    "Phone",
    ACTIVITY_COLUMN,
    DISTANCE_COLUMN,
    DURATION_COLUMN,
    "Proof",
    "Activity Name",
    "Location",
    "Activity Date",
    "Pace",
    "Authenticated",
    "Auth Valid",
    VERIFIED_COLUMN,
]
_REQUIRED_LEDGER_COLS = {EMAIL_COLUMN, ACTIVITY_COLUMN}
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
PENDING_MARKER = "Pending"

_WORKBOOK_LOCK = threading.RLock()

PathInput = str | Path | PathLike[str]


def _is_blank(value: object) -> bool:
    return value is None or pd.isna(value) or str(value).strip() == ""


def _clean_text(value: object) -> str:
    if _is_blank(value):
        return ""
    return str(value).strip()


def _parse_float(value: object) -> Optional[float]:
    if _is_blank(value):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _parse_timestamp(value: object) -> Optional[datetime]:
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(str(value).strip(), TIMESTAMP_FORMAT)
    except ValueError:
        return None


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def submission_row(submission: NormalizedSubmission) -> Dict[str, Any]:
    """Map a submission to the ledger sheet's column layout."""

    return {
        DATE_SUBMIT_COLUMN: submission.submitted_at.strftime(TIMESTAMP_FORMAT),
        NAME_COLUMN: submission.name,
        EMAIL_COLUMN: submission.email,
        "Phone": submission.phone,
        ACTIVITY_COLUMN: submission.activity_url,
        DISTANCE_COLUMN: submission.distance_km,
        DURATION_COLUMN: submission.duration,
        "Proof": submission.proof_url,
        "Activity Name": submission.activity_name or "",
        "Location": submission.location or "",
        "Activity Date": submission.activity_date or "",
        "Pace": submission.pace or "",
        "Authenticated": _yes_no(submission.authenticated),
        "Auth Valid": _yes_no(submission.auth_valid),
        VERIFIED_COLUMN: PENDING_MARKER,
    }


class WorkbookSubmissionStore:
    """Registrations lookup plus append-only submissions ledger."""

    def __init__(
        self,
        path: PathInput = SUBMISSIONS_WORKBOOK,
        *,
        registrations_sheet: str = REGISTRATIONS_SHEET,
        submissions_sheet: str = SUBMISSIONS_SHEET,
    ) -> None:
        self.path = Path(path)
        self.registrations_sheet = registrations_sheet
        self.submissions_sheet = submissions_sheet

    # --- reads --------------------------------------------------------
    def _sheet_names(self) -> Optional[List[str]]:
        if not self.path.is_file():
            return None
        try:
            workbook = load_workbook(self.path, read_only=True)
        except Exception as exc:
            raise LedgerUnavailableError(
                f"Workbook could not be opened: {self.path}",
                details={"reason": str(exc)},
            ) from exc
        try:
            return list(workbook.sheetnames)
        finally:
            workbook.close()

    def _read_sheet(self, sheet: str) -> pd.DataFrame:
        try:
            return pd.read_excel(self.path, sheet_name=sheet, dtype=object)
        except Exception as exc:
            raise LedgerUnavailableError(
                f"Sheet '{sheet}' could not be read from {self.path}",
                details={"reason": str(exc)},
            ) from exc

    def is_registered(self, email: str) -> bool:
        target = (email or "").strip().lower()
        if not target:
            return False
        with _WORKBOOK_LOCK:
            sheets = self._sheet_names()
            if sheets is None:
                raise LedgerUnavailableError(f"Workbook not found: {self.path}")
            if self.registrations_sheet not in sheets:
                raise LedgerUnavailableError(
                    f"Workbook has no '{self.registrations_sheet}' sheet"
                )
            df = self._read_sheet(self.registrations_sheet)
        if REGISTRATION_EMAIL_COLUMN not in df.columns:
            raise WorkbookFormatError(
                f"Missing column '{REGISTRATION_EMAIL_COLUMN}' in "
                f"'{self.registrations_sheet}' sheet"
            )
        emails = {
            _clean_text(value).lower() for value in df[REGISTRATION_EMAIL_COLUMN]
        }
        return target in emails

    def _read_submissions(self) -> Optional[pd.DataFrame]:
        with _WORKBOOK_LOCK:
            sheets = self._sheet_names()
            if sheets is None or self.submissions_sheet not in sheets:
                return None
            return self._read_sheet(self.submissions_sheet)

    def list_accepted_entries(self) -> List[LedgerEntry]:
        df = self._read_submissions()
        if df is None:
            return []
        missing = _REQUIRED_LEDGER_COLS - set(df.columns)
        if missing:
            raise WorkbookFormatError(
                f"Missing columns in '{self.submissions_sheet}' sheet: "
                f"{', '.join(sorted(missing))}"
            )
        entries: List[LedgerEntry] = []
        for _, row in df.iterrows():
            email = _clean_text(row.get(EMAIL_COLUMN)).lower()
            activity = _clean_text(row.get(ACTIVITY_COLUMN))
            if not email and not activity:
                continue
            entries.append(
                LedgerEntry(
                    email=email,
                    activity_ref=activity,
                    distance_km=_parse_float(row.get(DISTANCE_COLUMN)),
                    duration=_clean_text(row.get(DURATION_COLUMN)) or None,
                    timestamp=_parse_timestamp(row.get(DATE_SUBMIT_COLUMN)),
                )
            )
        return entries

    def list_rows(self) -> List[Dict[str, Any]]:
        """All stored submission rows as plain dicts (blank cells as "")."""

        df = self._read_submissions()
        if df is None:
            return []
        rows: List[Dict[str, Any]] = []
        for record in df.to_dict(orient="records"):
            rows.append(
                {
                    str(key): ("" if _is_blank(value) else value)
                    for key, value in record.items()
                }
            )
        return rows

    # --- writes -------------------------------------------------------
    def append_entry(self, submission: NormalizedSubmission) -> None:
        row = submission_row(submission)
        with _WORKBOOK_LOCK:
            try:
                sheets = self._sheet_names()
                if sheets is not None and self.submissions_sheet in sheets:
                    existing = self._read_sheet(self.submissions_sheet)
                    for column in SUBMISSION_COLUMNS:
                        if column not in existing.columns:
                            existing[column] = ""
                    df = pd.concat(
                        [existing, pd.DataFrame([row], dtype=object)],
                        ignore_index=True,
                    )
                else:
                    df = pd.DataFrame([row], columns=SUBMISSION_COLUMNS, dtype=object)

                if sheets is None:
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                    with pd.ExcelWriter(self.path, engine="openpyxl", mode="w") as writer:
                        df.to_excel(writer, sheet_name=self.submissions_sheet, index=False)
                else:
                    with pd.ExcelWriter(
                        self.path, engine="openpyxl", mode="a", if_sheet_exists="replace"
                    ) as writer:
                        df.to_excel(writer, sheet_name=self.submissions_sheet, index=False)
            except LedgerUnavailableError as exc:
                LOGGER.error("Ledger append failed for %s: %s", submission.submission_id, exc)
                raise PersistenceError(
                    "Failed to record submission",
                    code="ledger_append_failed",
                    details=exc.details,
                ) from exc
            except Exception as exc:
                LOGGER.error("Ledger append failed for %s: %s", submission.submission_id, exc)
                raise PersistenceError(
                    "Failed to record submission",
                    code="ledger_append_failed",
                    details={"reason": str(exc)},
                ) from exc
        LOGGER.info(
            "Recorded submission %s for %s (%.3f km)",
            submission.submission_id,
            submission.email,
            submission.distance_km,
        )


__all__ = [
    "SUBMISSION_COLUMNS",
    "WorkbookSubmissionStore",
    "submission_row",
]
