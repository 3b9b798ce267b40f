"""Pure conversions from scraped distance and duration text.

Neither function raises: anything unparseable maps to ``None`` and the caller
decides what that means.
"""

from __future__ import annotations

import re
from typing import Optional

KM_PER_MILE = 1.60934

DISTANCE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(km|mi(?:les?)?)\b", re.IGNORECASE)
CLOCK_RE = re.compile(r"^(?:(\d{1,3}):)?(\d{1,2}):(\d{2})$")
VERBOSE_DURATION_RE = re.compile(
    r"^(?:(?P<h>\d+)\s*(?:h|hr|hrs|hour|hours)(?![a-z]))?\s*"
    r"(?:(?P<m>\d+)\s*(?:m|min|mins|minute|minutes)(?![a-z]))?\s*"
    r"(?:(?P<s>\d+)\s*(?:s|sec|secs|second|seconds)(?![a-z]))?$",
    re.IGNORECASE,
)


def normalize_distance(raw: object) -> Optional[float]:
    """Kilometres rounded to 3 decimals, or None when no distance is present."""

    if raw is None:
        return None
    match = DISTANCE_RE.search(str(raw))
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    if match.group(2).lower().startswith("mi"):
        value *= KM_PER_MILE
    return round(value, 3)


def format_hms(total_seconds: int) -> str:
    hours, remainder = divmod(max(0, int(total_seconds)), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def normalize_duration(raw: object) -> Optional[str]:
    """Return ``HH:MM:SS`` for clock or ``1h 2m 3s`` style text.

    ``H:M:S`` fields are zero padded as given, ``MM:SS`` becomes
    ``00:MM:SS`` and verbose unit text is summed.
    """
    if raw is None:
        return None
    text = " ".join(str(raw).split())
    if not text:
        return None

    clock = CLOCK_RE.match(text)
    if clock:
        hours, minutes, seconds = clock.groups()
        if hours is None:
            return f"00:{int(minutes):02d}:{int(seconds):02d}"
        return f"{int(hours):02d}:{int(minutes):02d}:{int(seconds):02d}"

    verbose = VERBOSE_DURATION_RE.match(text)
    if verbose and any(verbose.group(unit) for unit in ("h", "m", "s")):
        hours = int(verbose.group("h") or 0)
        minutes = int(verbose.group("m") or 0)
        seconds = int(verbose.group("s") or 0)
        return format_hms(hours * 3600 + minutes * 60 + seconds)
    return None


def duration_to_seconds(value: str | None) -> Optional[int]:
    """Seconds for an ``HH:MM:SS`` value (after normalisation), else None."""

    normalized = normalize_duration(value)
    if normalized is None:
        return None
    hours, minutes, seconds = (int(part) for part in normalized.split(":"))
    return hours * 3600 + minutes * 60 + seconds


__all__ = [
    "KM_PER_MILE",
    "duration_to_seconds",
    "format_hms",
    "normalize_distance",
    "normalize_duration",
]
