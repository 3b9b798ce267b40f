"""Fetch activity pages with browser-like headers and optional session cookies."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from ..config import (
    REQUEST_TIMEOUT,
    RENDER_WAIT_SECONDS,
    STRAVA_REMEMBER_ID,
    STRAVA_REMEMBER_TOKEN,
    STRAVA_WEB_BASE_URL,
)
from ..errors import AuthRequiredError, FetchError
from ..models import SessionCredentials
from ..utils import mask_tail
from .pacing import Delay, real_delay
from .session import BROWSER_HEADERS, get_default_session

LOGGER = logging.getLogger(__name__)


@dataclass
class FetchedPage:
    url: str
    html: str
    status_code: int
    credentials: Optional[SessionCredentials] = None
    # True when the caller supplied the cookies (not the configured fallback)
    explicit_credentials: bool = False

    @property
    def authenticated(self) -> bool:
        return self.credentials is not None

    @property
    def body_length(self) -> int:
        return len(self.html.encode("utf-8"))


def default_fallback_credentials() -> Optional[SessionCredentials]:
    """Credentials configured for the whole process, if any."""

    return SessionCredentials.from_pair(STRAVA_REMEMBER_TOKEN, STRAVA_REMEMBER_ID)


def _error_snippet(resp: requests.Response) -> Optional[str]:
    """Best-effort plain-text excerpt of an error body."""

    text = getattr(resp, "text", "")
    if not isinstance(text, str):
        return None
    trimmed = " ".join(text.split())
    if not trimmed:
        return None
    return (trimmed[:197] + "...") if len(trimmed) > 200 else trimmed


def classify_page_response(resp: requests.Response, url: str) -> Optional[FetchError]:
    """Return the error for a non-success response, or None when it is usable."""

    status = resp.status_code
    if 200 <= status < 300:
        return None
    snippet = _error_snippet(resp)
    details: Dict[str, object] = {"url": url}
    if snippet:
        details["body"] = snippet
    if status == 403:
        LOGGER.warning("Activity page %s answered 403 (login required)", url)
        return AuthRequiredError(
            "Strava requires a login for this activity or the session cookies "
            "expired; refresh strava_remember_token and strava_remember_id",
            upstream_status=status,
            details=details,
        )
    LOGGER.warning("Activity page %s fetch failed status=%s", url, status)
    return FetchError(
        f"Failed to fetch Strava activity (status {status})",
        upstream_status=status,
        details=details,
    )


class MarkupFetcher:
    """Download activity markup.

    ``fallback_credentials`` apply when a call does not pass its own; explicit
    per-call credentials always win. ``delay`` is called with
    ``render_wait_seconds`` after every successful fetch.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        fallback_credentials: Optional[SessionCredentials] = None,
        delay: Delay = real_delay,
        render_wait_seconds: float = RENDER_WAIT_SECONDS,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._session = session or get_default_session()
        self._fallback_credentials = fallback_credentials
        self._delay = delay
        self._render_wait_seconds = render_wait_seconds
        self._timeout = timeout

    def build_headers(self, credentials: Optional[SessionCredentials]) -> Dict[str, str]:
        headers = dict(BROWSER_HEADERS)
        if credentials is not None:
            headers["Cookie"] = credentials.cookie_header()
            headers["Referer"] = f"{STRAVA_WEB_BASE_URL}/"
        return headers

    def fetch(
        self, url: str, credentials: Optional[SessionCredentials] = None
    ) -> FetchedPage:
        chosen = credentials or self._fallback_credentials
        explicit = credentials is not None
        if chosen is not None:
            LOGGER.info(
                "Fetching %s with %s session cookies remember_token=%s",
                url,
                "request" if explicit else "configured",
                mask_tail(chosen.remember_token),
            )
        else:
            LOGGER.info("Fetching %s without session cookies", url)

        try:
            resp = self._session.get(
                url, headers=self.build_headers(chosen), timeout=self._timeout
            )
        except requests.exceptions.RequestException as exc:
            LOGGER.warning("Transport error fetching %s: %s", url, exc)
            raise FetchError(
                "Network error while fetching Strava activity",
                details={"url": url, "reason": str(exc)},
            ) from exc

        error = classify_page_response(resp, url)
        if error is not None:
            raise error

        html = resp.text or ""
        LOGGER.debug("Fetched %s status=%s bytes=%d", url, resp.status_code, len(html))
        self._delay(self._render_wait_seconds)
        return FetchedPage(
            url=url,
            html=html,
            status_code=resp.status_code,
            credentials=chosen,
            explicit_credentials=explicit,
        )


_DEFAULT_FETCHER: MarkupFetcher | None = None


def get_default_fetcher() -> MarkupFetcher:
    global _DEFAULT_FETCHER
    if _DEFAULT_FETCHER is None:
        _DEFAULT_FETCHER = MarkupFetcher(
            fallback_credentials=default_fallback_credentials()
        )
    return _DEFAULT_FETCHER


__all__ = [
    "FetchedPage",
    "MarkupFetcher",
    "classify_page_response",
    "default_fallback_credentials",
    "get_default_fetcher",
]
