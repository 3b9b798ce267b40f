"""HTTP session factory for Strava web page requests."""

from __future__ import annotations

from http.cookiejar import DefaultCookiePolicy

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import BROWSER_USER_AGENT, HTTP_POOL_CONNECTIONS, HTTP_POOL_MAXSIZE

__all__ = ["BROWSER_HEADERS", "create_default_session", "get_default_session"]

# Headers a desktop browser would send; bare clients get challenge pages.
BROWSER_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
}


def _build_retry() -> Retry:
    # The submission flow owns its single re-fetch; the transport never retries.
    return Retry(total=0, raise_on_status=False)


def create_default_session() -> Session:
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_build_retry(),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(BROWSER_HEADERS)
    # Shared across request threads: Set-Cookie from one submitter's fetch
    # must never ride along on another's. Cookies go out only via headers.
    session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
    return session


_DEFAULT_SESSION = create_default_session()


def get_default_session() -> Session:
    """Return the shared default session."""

    return _DEFAULT_SESSION
