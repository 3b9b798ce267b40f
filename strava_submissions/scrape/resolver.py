"""Reduce user supplied activity links to the canonical overview page URL.

Two input shapes are accepted:

- direct links ``https://www.strava.com/activities/<id>`` (optionally already
  ending in ``/overview``, with or without ``www`` or a query string);
- mobile share short links ``https://strava.app.link/<token>``, which are
  followed to their destination and mined for the numeric activity id.

Either way the result is ``<base>/activities/<id>/overview``. Resolving a
canonical URL returns it unchanged.
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import urlparse

import requests

from ..config import (
    ACTIVITY_DETAIL_SUFFIX,
    REQUEST_TIMEOUT,
    SHORT_LINK_HOST,
    SHORT_LINK_SETTLE_SECONDS,
    STRAVA_WEB_BASE_URL,
)
from ..errors import ResolutionError
from ..models import ResolvedActivity
from .pacing import Delay, real_delay
from .session import get_default_session

LOGGER = logging.getLogger(__name__)

DIRECT_ACTIVITY_RE = re.compile(
    r"^https?://(?:www\.)?strava\.com/activities/(?P<id>\d+)"
    rf"(?:/{ACTIVITY_DETAIL_SUFFIX})?/?(?:[?#].*)?$",
    re.IGNORECASE,
)
SHORT_LINK_RE = re.compile(
    rf"^https?://{re.escape(SHORT_LINK_HOST)}/(?P<token>[A-Za-z0-9]+)/?(?:[?#].*)?$",
    re.IGNORECASE,
)
ACTIVITY_ID_IN_PATH_RE = re.compile(r"/activities/(\d+)")
CANONICAL_ACTIVITY_RE = re.compile(
    rf"^{re.escape(STRAVA_WEB_BASE_URL)}/activities/\d+/{ACTIVITY_DETAIL_SUFFIX}$"
)


def canonical_activity_url(activity_id: str | int) -> str:
    return f"{STRAVA_WEB_BASE_URL}/activities/{activity_id}/{ACTIVITY_DETAIL_SUFFIX}"


def is_canonical_activity_url(value: str | None) -> bool:
    return bool(value) and bool(CANONICAL_ACTIVITY_RE.match(value or ""))


class ActivityUrlResolver:
    """Resolve direct and short activity links.

    ``delay`` is called with ``settle_seconds`` after a short link redirect
    has been followed; pass :func:`~.pacing.no_delay` in tests.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        delay: Delay = real_delay,
        settle_seconds: float = SHORT_LINK_SETTLE_SECONDS,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._session = session or get_default_session()
        self._delay = delay
        self._settle_seconds = settle_seconds
        self._timeout = timeout

    def resolve(self, raw: str | None) -> ResolvedActivity:
        candidate = (raw or "").strip()
        if not candidate:
            raise ResolutionError("Strava activity link is required")

        direct = DIRECT_ACTIVITY_RE.match(candidate)
        if direct:
            activity_id = direct.group("id")
            return ResolvedActivity(
                activity_id=activity_id,
                url=canonical_activity_url(activity_id),
                source=candidate,
            )

        if SHORT_LINK_RE.match(candidate):
            activity_id = self._follow_short_link(candidate)
            return ResolvedActivity(
                activity_id=activity_id,
                url=canonical_activity_url(activity_id),
                source=candidate,
                short_link=True,
            )

        raise ResolutionError(
            "Invalid Strava activity link; use https://www.strava.com/activities/<id> "
            f"or a https://{SHORT_LINK_HOST}/ share link",
            details={"url": candidate},
        )

    def _follow_short_link(self, url: str) -> str:
        LOGGER.info("Resolving short link %s", url)
        try:
            response = self._session.get(
                url, allow_redirects=True, timeout=self._timeout
            )
        except requests.exceptions.RequestException as exc:
            LOGGER.warning("Short link request failed url=%s: %s", url, exc)
            raise ResolutionError(
                "Failed to resolve Strava short link", details={"url": url}
            ) from exc
        self._delay(self._settle_seconds)

        resolved_url = str(getattr(response, "url", "") or "")
        match = ACTIVITY_ID_IN_PATH_RE.search(urlparse(resolved_url).path)
        if not match:
            LOGGER.warning(
                "Short link %s resolved to %s without an activity id",
                url,
                resolved_url or "<empty>",
            )
            raise ResolutionError(
                "Strava short link did not lead to an activity",
                details={"url": url, "resolved_url": resolved_url},
            )
        LOGGER.info("Short link %s -> activity %s", url, match.group(1))
        return match.group(1)


_DEFAULT_RESOLVER: ActivityUrlResolver | None = None


def get_default_resolver() -> ActivityUrlResolver:
    global _DEFAULT_RESOLVER
    if _DEFAULT_RESOLVER is None:
        _DEFAULT_RESOLVER = ActivityUrlResolver()
    return _DEFAULT_RESOLVER


def resolve_activity_url(raw: str | None) -> ResolvedActivity:
    """Module-level convenience wrapper delegating to the default resolver."""

    return get_default_resolver().resolve(raw)


__all__ = [
    "ActivityUrlResolver",
    "canonical_activity_url",
    "is_canonical_activity_url",
    "resolve_activity_url",
    "get_default_resolver",
]
