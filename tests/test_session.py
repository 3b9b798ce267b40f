"""Shared HTTP session: no stored cookies and no transport-level retries."""

from __future__ import annotations

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from strava_submissions.errors import FetchError
from strava_submissions.models import SessionCredentials
from strava_submissions.scrape.fetcher import MarkupFetcher
from strava_submissions.scrape.pacing import no_delay
from strava_submissions.scrape.session import create_default_session


class _ActivityHandler(BaseHTTPRequestHandler):
    hits: list = []

    def do_GET(self):  # noqa: N802
        self.hits.append({"path": self.path, "cookie": self.headers.get("Cookie")})
        if self.path.startswith("/broken"):
            self.send_response(500)
            self.end_headers()
            self.wfile.write(b"upstream down")
            return
        self.send_response(200)
        self.send_header("Set-Cookie", "_strava4_session=first-user-session; Path=/")
        self.send_header("Content-Type", "text/html")
        self.end_headers()
        self.wfile.write(b"<html><body>activity</body></html>")

    def log_message(self, format, *args):  # noqa: A002
        pass


@pytest.fixture
def local_strava():
    _ActivityHandler.hits = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), _ActivityHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}", _ActivityHandler.hits
    finally:
        server.shutdown()
        server.server_close()


def test_adapter_does_not_retry():
    session = create_default_session()

    retries = session.get_adapter("https://www.strava.com/").max_retries

    assert retries.total == 0
    assert not retries.status_forcelist


def test_set_cookie_does_not_leak_into_later_fetches(local_strava):
    base, hits = local_strava
    fetcher = MarkupFetcher(create_default_session(), delay=no_delay, timeout=5)

    fetcher.fetch(f"{base}/activities/1/overview", SessionCredentials("user-a-tok", "1"))
    page = fetcher.fetch(f"{base}/activities/2/overview")

    assert "user-a-tok" in hits[0]["cookie"]
    assert hits[1]["cookie"] is None
    assert page.authenticated is False


def test_server_error_is_requested_once(local_strava):
    base, hits = local_strava
    fetcher = MarkupFetcher(create_default_session(), delay=no_delay, timeout=5)

    with pytest.raises(FetchError) as exc:
        fetcher.fetch(f"{base}/broken/activities/3/overview")

    assert exc.value.upstream_status == 500
    assert len(hits) == 1
