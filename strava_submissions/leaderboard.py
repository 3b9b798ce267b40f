"""Leaderboard aggregation over stored submission rows.

Pure function of the rows so it can be tested without a workbook.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .config import LEADERBOARD_MAX_SUBMISSIONS
from .normalize import duration_to_seconds, format_hms
from .workbook_store import (
    DISTANCE_COLUMN,
    DURATION_COLUMN,
    EMAIL_COLUMN,
    NAME_COLUMN,
    VERIFIED_COLUMN,
)

VERIFIED_MARKERS = {"yes", "y", "true", "1", "verified", "x", "✓", "✔"}

LeaderboardRow = Dict[str, Any]


def is_verified(value: object) -> bool:
    if value is True:
        return True
    return str(value or "").strip().lower() in VERIFIED_MARKERS


def _distance(value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def build_leaderboard(
    rows: Iterable[Mapping[str, Any]],
    max_submissions: int = LEADERBOARD_MAX_SUBMISSIONS,
) -> List[LeaderboardRow]:
    """Rank runners by verified distance.

    Only verified rows count, at most ``max_submissions`` per (name, email)
    in sheet order. Ties on distance go to the shorter total duration.
    """
    grouped: "OrderedDict[Tuple[str, str], List[Mapping[str, Any]]]" = OrderedDict()
    for row in rows:
        if not is_verified(row.get(VERIFIED_COLUMN)):
            continue
        name = str(row.get(NAME_COLUMN) or "").strip()
        email = str(row.get(EMAIL_COLUMN) or "").strip().lower()
        if not name and not email:
            continue
        grouped.setdefault((name, email), []).append(row)

    board: List[LeaderboardRow] = []
    for (name, _email), runner_rows in grouped.items():
        counted = runner_rows[: max(0, max_submissions)]
        total_km = sum(_distance(r.get(DISTANCE_COLUMN)) for r in counted)
        total_seconds = sum(
            duration_to_seconds(str(r.get(DURATION_COLUMN) or "")) or 0 for r in counted
        )
        board.append(
            {
                "name": name,
                "submissions": len(counted),
                "total_distance": round(total_km, 2),
                "total_duration": format_hms(total_seconds),
                "_seconds": total_seconds,
            }
        )

    board.sort(key=lambda r: (-r["total_distance"], r["_seconds"]))
    for rank, entry in enumerate(board, start=1):
        entry.pop("_seconds")
        entry["rank"] = rank
    return board


__all__ = ["VERIFIED_MARKERS", "build_leaderboard", "is_verified"]
