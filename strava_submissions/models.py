from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .utils import mask_tail


@dataclass(frozen=True)
class SessionCredentials:
    """Strava web session cookie pair (``strava_remember_token`` / ``_id``)."""

    remember_token: str
    remember_id: str

    @classmethod
    def from_pair(
        cls, token: Optional[str], remember_id: Optional[str]
    ) -> Optional["SessionCredentials"]:
        """Return credentials only when both halves are present."""

        token = (token or "").strip()
        remember_id = (remember_id or "").strip()
        if not token or not remember_id:
            return None
        return cls(remember_token=token, remember_id=remember_id)

    @classmethod
    def from_cookie_header(
        cls, header: Optional[str]
    ) -> Optional["SessionCredentials"]:
        """Pick the remember cookies out of a raw ``Cookie`` header."""

        if not header:
            return None
        values: Dict[str, str] = {}
        for part in header.split(";"):
            name, sep, value = part.strip().partition("=")
            if sep:
                values[name.strip()] = value.strip()
        return cls.from_pair(
            values.get("strava_remember_token"), values.get("strava_remember_id")
        )

    def cookie_header(self) -> str:
        return (
            f"strava_remember_token={self.remember_token}; "
            f"strava_remember_id={self.remember_id}"
        )

    def __repr__(self) -> str:
        return (
            f"SessionCredentials(remember_token='{mask_tail(self.remember_token)}', "
            f"remember_id='{self.remember_id}')"
        )


@dataclass(frozen=True)
class ResolvedActivity:
    activity_id: str
    url: str
    source: str
    short_link: bool = False

    def __str__(self) -> str:
        return self.url


@dataclass
class ExtractedFields:
    activity_name: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    distance: Optional[str] = None
    moving_time: Optional[str] = None
    pace: Optional[str] = None
    # True when session cookies were sent with the fetch
    authenticated: bool = False
    # Cookies were sent and the page looked like the logged-in variant
    auth_valid: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Diagnostics:
    details_found: bool = False
    stats_found: bool = False
    body_length: int = 0
    structured_data_found: bool = False
    details_text: str = ""
    stats_text: str = ""
    # Stat items whose label matched no known keyword, keyed stat0, stat1, ...
    unmatched_stats: Dict[str, str] = field(default_factory=dict)
    structured_data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "details_found": self.details_found,
            "stats_found": self.stats_found,
            "body_length": self.body_length,
            "structured_data_found": self.structured_data_found,
            "unmatched_stats": dict(self.unmatched_stats),
        }


@dataclass
class ProofUpload:
    filename: str
    content: bytes
    content_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class SubmissionForm:
    name: str = ""
    email: str = ""
    phone: str = ""
    activity_url: str = ""
    proof: Optional[ProofUpload] = None
    # Client-side values are accepted for display only and never stored.
    client_distance: Optional[str] = None
    client_duration: Optional[str] = None
    form_credentials: Optional[SessionCredentials] = None
    header_credentials: Optional[SessionCredentials] = None
    cookie_header: Optional[str] = None


@dataclass
class NormalizedSubmission:
    submission_id: str
    name: str
    email: str
    phone: str
    activity_url: str
    distance_km: float
    duration: str
    submitted_at: datetime
    activity_name: Optional[str] = None
    location: Optional[str] = None
    activity_date: Optional[str] = None
    description: Optional[str] = None
    pace: Optional[str] = None
    authenticated: bool = False
    auth_valid: bool = False
    proof_url: str = ""
    verification_status: str = "pending"

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "activity_url": self.activity_url,
            "submission_date": self.submitted_at.isoformat(),
            "activity_name": self.activity_name,
            "pace": self.pace,
            "verification_status": self.verification_status,
        }


@dataclass(frozen=True)
class LedgerEntry:
    email: str
    activity_ref: str
    distance_km: Optional[float] = None
    duration: Optional[str] = None
    timestamp: Optional[datetime] = None
