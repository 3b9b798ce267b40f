"""Central configuration for the Strava run submission service.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Secrets are read from environment variables (optionally
via a local `.env`). Collaborators take these values as constructor defaults,
so tests can pass their own.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env from the current directory or any parent folder.
load_dotenv()


# ---------------------------------------------------------------------------
# Strava web settings
# ---------------------------------------------------------------------------
# Public web host serving activity pages (not the REST API).
STRAVA_WEB_BASE_URL = os.getenv("STRAVA_WEB_BASE_URL", "https://www.strava.com")

# Path segment appended to an activity id to reach the page with full stats.
ACTIVITY_DETAIL_SUFFIX = "overview"

# Host used by the mobile app share sheet for short links.
SHORT_LINK_HOST = "strava.app.link"

# Process-wide fallback session cookies. Only set these in trusted server
# environments; forwarding cookies exposes the account they belong to.
STRAVA_REMEMBER_TOKEN = os.getenv("STRAVA_REMEMBER_TOKEN", "")
STRAVA_REMEMBER_ID = os.getenv("STRAVA_REMEMBER_ID", "")


# ---------------------------------------------------------------------------
# HTTP settings
# ---------------------------------------------------------------------------
# Request timeout in seconds.
REQUEST_TIMEOUT = _env_int("REQUEST_TIMEOUT", 15)

# HTTP session pool sizes for concurrent requests.
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 10

BROWSER_USER_AGENT = os.getenv(
    "BROWSER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

# Pause after following a short-link redirect before using the result.
SHORT_LINK_SETTLE_SECONDS = _env_float("SHORT_LINK_SETTLE_SECONDS", 1.0)

# Pause after a successful page fetch before parsing. Activity pages render
# parts of the stats asynchronously.
RENDER_WAIT_SECONDS = _env_float("RENDER_WAIT_SECONDS", 3.0)


# ---------------------------------------------------------------------------
# Submission rules
# ---------------------------------------------------------------------------
# Accepted submissions allowed per email address.
SUBMISSION_QUOTA_PER_EMAIL = _env_int("SUBMISSION_QUOTA_PER_EMAIL", 4)

# Largest proof image accepted (bytes).
MAX_PROOF_BYTES = _env_int("MAX_PROOF_BYTES", 10 * 1024 * 1024)

# When True, a failing duplicate/quota scan lets the submission through
# instead of rejecting it as indeterminate.
LEDGER_FAIL_OPEN = _env_bool("LEDGER_FAIL_OPEN", False)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
# Workbook holding the registrations and submissions sheets. Paths can be
# absolute or relative.
SUBMISSIONS_WORKBOOK = os.getenv("SUBMISSIONS_WORKBOOK", "run_submissions.xlsx")
REGISTRATIONS_SHEET = os.getenv("REGISTRATIONS_SHEET", "Registrations")
SUBMISSIONS_SHEET = os.getenv("SUBMISSIONS_SHEET", "Run Submissions")

# Directory where proof images are written and the URL prefix they are
# served from.
PROOF_STORAGE_DIR = os.getenv("PROOF_STORAGE_DIR", "proofs")
PROOF_PUBLIC_BASE_URL = os.getenv("PROOF_PUBLIC_BASE_URL", "/proofs")


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
# Verified submissions counted per runner.
LEADERBOARD_MAX_SUBMISSIONS = _env_int("LEADERBOARD_MAX_SUBMISSIONS", 4)


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------
SERVER_HOST = os.getenv("SERVER_HOST", "127.0.0.1")
SERVER_PORT = _env_int("SERVER_PORT", 8000)
