"""Global pytest fixtures & helpers.

Adds project root to path and provides fake HTTP plumbing, activity page
markup builders and workbook factories shared across test files.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Iterable

import pandas as pd
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from strava_submissions.models import ProofUpload, SubmissionForm
from strava_submissions.scrape.fetcher import MarkupFetcher
from strava_submissions.scrape.pacing import no_delay
from strava_submissions.scrape.resolver import ActivityUrlResolver
from strava_submissions.services import ActivityScraper, ScrapeServiceConfig
from strava_submissions.workbook_store import WorkbookSubmissionStore


# --- Fake HTTP -------------------------------------------------------
class FakeResp:
    def __init__(self, status_code=200, text="", url=None):
        self.status_code = status_code
        self.text = text
        self.url = url


class FakeSession:
    """Replays queued responses (or raises queued exceptions) per GET."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)
        return self

    def get(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"unexpected GET {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if item.url is None:
            item.url = url
        return item


# --- Markup builders -------------------------------------------------
def activity_page(
    stats: Iterable[tuple[str, str]] = (("Distance", "5.00 km"), ("Time", "00:25:00")),
    *,
    title: str | None = "Morning Run",
    location: str | None = "Jakarta, Indonesia",
    date: str | None = "7:02 AM on Sunday, March 3, 2024",
    description: str | None = "Easy charity miles",
    head: str = "",
    body_extra: str = "",
    details: bool = True,
) -> str:
    items = "".join(
        f"<li><strong>{value}</strong><div class='label'>{label}</div></li>"
        for label, value in stats
    )
    details_html = ""
    if details:
        parts = []
        if date is not None:
            parts.append(f"<time>{date}</time>")
        if location is not None:
            parts.append(f"<span class='location'>{location}</span>")
        if title is not None:
            parts.append(f"<h1 class='text-title1 activity-name'>{title}</h1>")
        if description is not None:
            parts.append(
                "<div class='activity-description-js'>"
                f"<div class='content'><p>{description}</p></div></div>"
            )
        details_html = f"<div class='details'>{''.join(parts)}</div>"
    stats_html = f"<ul class='inline-stats section'>{items}</ul>" if items else ""
    return (
        f"<html><head>{head}</head><body>"
        f"{details_html}{stats_html}{body_extra}</body></html>"
    )


OG_ONLY_PAGE = (
    "<html><head>"
    "<meta property='og:title' content='Sunset 10K' />"
    "<meta property='og:description' content='Ran along the river' />"
    "</head><body><div id='app'></div></body></html>"
)


# --- Workbook helpers ------------------------------------------------
def write_registrations(path: Path, emails: Iterable[str]) -> None:
    df = pd.DataFrame(
        [{"Full Name": e.split("@")[0].title(), "Email": e} for e in emails],
        columns=["Full Name", "Email"],
    )
    mode = "a" if path.exists() else "w"
    kwargs = {"if_sheet_exists": "replace"} if mode == "a" else {}
    with pd.ExcelWriter(path, engine="openpyxl", mode=mode, **kwargs) as writer:
        df.to_excel(writer, sheet_name="Registrations", index=False)


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def page_html() -> Callable[..., str]:
    return activity_page


@pytest.fixture
def scraper_factory():
    def _make(session, *, fallback_credentials=None):
        resolver = ActivityUrlResolver(session, delay=no_delay)
        fetcher = MarkupFetcher(
            session, fallback_credentials=fallback_credentials, delay=no_delay
        )
        return ActivityScraper(ScrapeServiceConfig(resolver=resolver, fetcher=fetcher))

    return _make


@pytest.fixture
def workbook(tmp_path) -> Path:
    path = tmp_path / "submissions.xlsx"
    write_registrations(path, ["runner@example.com", "other@example.com"])
    return path


@pytest.fixture
def store(workbook) -> WorkbookSubmissionStore:
    return WorkbookSubmissionStore(workbook)


@pytest.fixture
def make_form():
    def _make(**overrides):
        values = dict(
            name="Rina Runner",
            email="Runner@Example.com",
            phone="08123456789",
            activity_url="https://www.strava.com/activities/999",
            proof=ProofUpload(filename="proof.png", content=b"\x89PNG data", content_type="image/png"),
            client_distance="42",
            client_duration="00:01:00",
        )
        values.update(overrides)
        return SubmissionForm(**values)

    return _make


@pytest.fixture
def og_only_page() -> str:
    return OG_ONLY_PAGE


@pytest.fixture
def fake_resp():
    return FakeResp
