"""End-to-end submission flow with faked HTTP and a temporary workbook."""

from __future__ import annotations

from datetime import datetime

import pytest

from strava_submissions.errors import LedgerUnavailableError, PersistenceError
from strava_submissions.models import LedgerEntry, ProofUpload, SessionCredentials
from strava_submissions.proof_store import LocalProofStore
from strava_submissions.reconcile import Decision
from strava_submissions.services import SubmissionService, SubmissionServiceConfig
from strava_submissions.services.submission_service import (
    select_primary_credentials,
    select_retry_credentials,
)

LABEL_VALUE_STATS = "<ul class='inline-stats section'><li>Distance: 5.00 km</li><li>Time: 00:25:00</li></ul>"


@pytest.fixture
def proofs(tmp_path):
    return LocalProofStore(tmp_path / "proofs", "/proofs")


@pytest.fixture
def make_service(scraper_factory, store, proofs):
    def _make(session, **overrides):
        config = SubmissionServiceConfig(
            scraper=scraper_factory(session),
            store=overrides.pop("store", store),
            proof_store=overrides.pop("proof_store", proofs),
            clock=lambda: datetime(2024, 3, 3, 9, 0, 0),
            id_factory=lambda: "sub001",
            **overrides,
        )
        return SubmissionService(config)

    return _make


def _stats_page(page_html):
    return page_html(stats=(), body_extra=LABEL_VALUE_STATS)


def test_short_link_submission_is_accepted(
    fake_session, fake_resp, page_html, make_service, make_form, store, proofs
):
    fake_session.queue(
        fake_resp(200, url="https://www.strava.com/activities/999/"),
        fake_resp(200, text=_stats_page(page_html)),
    )
    service = make_service(fake_session)

    outcome = service.submit(make_form(activity_url="https://strava.app.link/abc123"))

    assert outcome.accepted, outcome.to_dict()
    assert outcome.decision is Decision.ACCEPTED
    sub = outcome.submission
    assert sub.activity_url == "https://www.strava.com/activities/999/overview"
    assert sub.distance_km == 5.0
    assert sub.duration == "00:25:00"
    assert sub.email == "runner@example.com"
    assert sub.proof_url == "/proofs/proof-runner_at_example_com-sub001.png"
    assert (proofs.directory / "proof-runner_at_example_com-sub001.png").exists()

    entries = store.list_accepted_entries()
    assert len(entries) == 1
    assert entries[0].activity_ref == sub.activity_url
    assert entries[0].distance_km == pytest.approx(5.0)

    body = outcome.to_dict()
    assert body["success"] is True
    assert body["distance"] == 5.0
    assert body["duration"] == "00:25:00"


def test_client_values_are_overwritten(fake_session, fake_resp, page_html, make_service, make_form):
    fake_session.queue(fake_resp(200, text=_stats_page(page_html)))

    outcome = make_service(fake_session).submit(
        make_form(client_distance="99", client_duration="00:01:00")
    )

    assert outcome.submission.distance_km == 5.0
    assert outcome.submission.duration == "00:25:00"


def test_unregistered_submitter_is_rejected_without_append(
    fake_session, fake_resp, page_html, make_service, make_form, store, proofs
):
    fake_session.queue(fake_resp(200, text=_stats_page(page_html)))

    outcome = make_service(fake_session).submit(make_form(email="stranger@example.com"))

    assert not outcome.accepted
    assert outcome.decision is Decision.REJECTED_NOT_REGISTERED
    assert outcome.code == "not_registered"
    assert outcome.status == 403
    assert store.list_accepted_entries() == []
    assert not proofs.directory.exists()


def test_forbidden_fetch_flags_expired_credentials(
    fake_session, fake_resp, make_service, make_form, store
):
    fake_session.queue(fake_resp(403, text="Log in to Strava"))

    outcome = make_service(fake_session).submit(make_form())

    assert outcome.code == "credentials_expired"
    assert outcome.status == 403
    assert outcome.to_dict()["error"]["details"]["upstream_status"] == 403
    assert store.list_accepted_entries() == []


def test_missing_fields_reported_before_any_request(fake_session, make_service, make_form):
    outcome = make_service(fake_session).submit(make_form(phone=" ", proof=None))

    assert outcome.code == "missing_fields"
    assert outcome.error.details["missing"] == ["phone", "proof"]
    assert fake_session.calls == []


def test_invalid_email_checked_before_resolution(fake_session, make_service, make_form):
    outcome = make_service(fake_session).submit(
        make_form(email="not-an-email", activity_url="garbage")
    )

    assert outcome.code == "invalid_email"
    assert outcome.status == 400


def test_invalid_link_rejected(fake_session, make_service, make_form):
    outcome = make_service(fake_session).submit(make_form(activity_url="https://example.com/1"))

    assert outcome.code == "invalid_activity_url"
    assert fake_session.calls == []


def test_oversized_proof_rejected(fake_session, make_service, make_form):
    form = make_form(proof=ProofUpload(filename="big.jpg", content=b"x" * 10))

    outcome = make_service(fake_session, max_proof_bytes=5).submit(form)

    assert outcome.code == "proof_too_large"
    assert fake_session.calls == []


def test_first_fetch_uses_form_credentials_over_fallback(
    fake_session, fake_resp, page_html, scraper_factory, store, proofs, make_form
):
    fake_session.queue(fake_resp(200, text=_stats_page(page_html)))
    service = SubmissionService(
        SubmissionServiceConfig(
            scraper=scraper_factory(
                fake_session, fallback_credentials=SessionCredentials("fallback-tok", "1")
            ),
            store=store,
            proof_store=proofs,
            id_factory=lambda: "sub001",
        )
    )

    outcome = service.submit(make_form(form_credentials=SessionCredentials("form-tok", "2")))

    assert outcome.accepted
    cookie = fake_session.calls[0]["headers"]["Cookie"]
    assert "form-tok" in cookie
    assert "fallback-tok" not in cookie


def test_first_fetch_uses_header_credentials_without_form_pair(
    fake_session, fake_resp, page_html, make_service, make_form
):
    fake_session.queue(fake_resp(200, text=_stats_page(page_html)))
    form = make_form(header_credentials=SessionCredentials("header-token", "22"))

    outcome = make_service(fake_session).submit(form)

    assert outcome.accepted
    assert len(fake_session.calls) == 1
    assert "header-token" in fake_session.calls[0]["headers"]["Cookie"]


def test_retry_uses_header_credentials_when_form_pair_is_incomplete(
    fake_session, fake_resp, page_html, og_only_page, make_service, make_form
):
    fake_session.queue(
        fake_resp(200, text=og_only_page),
        fake_resp(200, text=_stats_page(page_html)),
    )
    form = make_form(
        form_credentials=SessionCredentials("form-token", "11"),
        header_credentials=SessionCredentials("header-token", "22"),
    )

    outcome = make_service(fake_session).submit(form)

    assert outcome.accepted
    assert len(fake_session.calls) == 2
    assert "form-token" in fake_session.calls[0]["headers"]["Cookie"]
    assert "header-token" in fake_session.calls[1]["headers"]["Cookie"]


def test_retry_happens_once_then_reports_incomplete_extraction(
    fake_session, fake_resp, og_only_page, make_service, make_form, store
):
    fake_session.queue(fake_resp(200, text=og_only_page), fake_resp(200, text=og_only_page))
    form = make_form(cookie_header="strava_remember_token=cookie-tok; strava_remember_id=5")

    outcome = make_service(fake_session).submit(form)

    assert outcome.code == "extraction_incomplete"
    assert outcome.status == 422
    assert len(fake_session.calls) == 2
    assert "cookie-tok" in fake_session.calls[1]["headers"]["Cookie"]
    details = outcome.error.details
    assert details["extracted"]["activity_name"] == "Sunset 10K"
    assert details["diagnostics"]["details_found"] is False
    assert any("stats element not found" in issue for issue in outcome.issues)
    assert store.list_accepted_entries() == []


def test_forbidden_form_pair_recovers_with_header_credentials(
    fake_session, fake_resp, page_html, make_service, make_form
):
    fake_session.queue(
        fake_resp(403, text="login"),
        fake_resp(200, text=_stats_page(page_html)),
    )
    form = make_form(
        form_credentials=SessionCredentials("form-token", "11"),
        header_credentials=SessionCredentials("header-token", "22"),
    )

    outcome = make_service(fake_session).submit(form)

    assert outcome.accepted
    assert "header-token" in fake_session.calls[1]["headers"]["Cookie"]


def test_forbidden_with_single_forwarded_pair_is_not_resent(
    fake_session, fake_resp, make_service, make_form
):
    fake_session.queue(fake_resp(403, text="login"))
    form = make_form(header_credentials=SessionCredentials("header-token", "22"))

    outcome = make_service(fake_session).submit(form)

    assert outcome.code == "credentials_expired"
    assert len(fake_session.calls) == 1


def test_failed_retry_keeps_primary_diagnostics(
    fake_session, fake_resp, og_only_page, make_service, make_form
):
    fake_session.queue(fake_resp(200, text=og_only_page), fake_resp(500, text="oops"))

    outcome = make_service(fake_session).submit(make_form())

    assert outcome.code == "extraction_incomplete"


def test_invalid_duration_rejected(fake_session, fake_resp, page_html, make_service, make_form):
    html = page_html(stats=(("Distance", "5.00 km"), ("Time", "123:00:00")))
    fake_session.queue(fake_resp(200, text=html))

    outcome = make_service(fake_session).submit(make_form())

    assert outcome.code == "invalid_duration"


def test_zero_distance_rejected(fake_session, fake_resp, page_html, make_service, make_form):
    html = page_html(stats=(("Distance", "0.00 km"), ("Time", "00:25:00")))
    fake_session.queue(fake_resp(200, text=html))

    outcome = make_service(fake_session).submit(make_form())

    assert outcome.code == "invalid_distance"


def test_duplicate_activity_rejected(fake_session, fake_resp, page_html, make_service, make_form):
    page = _stats_page(page_html)
    fake_session.queue(fake_resp(200, text=page), fake_resp(200, text=page))
    service = make_service(fake_session)

    first = service.submit(make_form())
    second = service.submit(make_form(email="other@example.com"))

    assert first.accepted
    assert second.code == "duplicate_activity"
    assert second.status == 409


class MemoryStore:
    def __init__(self, entries=(), scan_error=None):
        self.entries = list(entries)
        self.appended = []
        self.scan_error = scan_error

    def is_registered(self, email):
        return True

    def list_accepted_entries(self):
        if self.scan_error:
            raise self.scan_error
        return list(self.entries)

    def append_entry(self, submission):
        self.appended.append(submission)


def test_quota_exceeded(fake_session, fake_resp, page_html, make_service, make_form):
    memory = MemoryStore(
        [
            LedgerEntry("runner@example.com", f"https://www.strava.com/activities/{n}/overview")
            for n in range(1, 5)
        ]
    )
    fake_session.queue(fake_resp(200, text=_stats_page(page_html)))

    outcome = make_service(fake_session, store=memory).submit(make_form())

    assert outcome.code == "quota_exceeded"
    assert outcome.status == 429
    assert memory.appended == []


def test_ledger_unavailable_fails_closed(fake_session, fake_resp, page_html, make_service, make_form):
    memory = MemoryStore(scan_error=LedgerUnavailableError("sheet offline"))
    fake_session.queue(fake_resp(200, text=_stats_page(page_html)))

    outcome = make_service(fake_session, store=memory, fail_open=False).submit(make_form())

    assert outcome.decision is Decision.INDETERMINATE
    assert outcome.status == 503
    assert memory.appended == []


def test_proof_failure_aborts_before_append(fake_session, fake_resp, page_html, make_service, make_form):
    class BrokenProofs:
        def store(self, content, filename, content_type=None):
            raise PersistenceError("upload failed", code="proof_upload_failed", status=503)

    memory = MemoryStore()
    fake_session.queue(fake_resp(200, text=_stats_page(page_html)))

    outcome = make_service(fake_session, store=memory, proof_store=BrokenProofs()).submit(
        make_form()
    )

    assert outcome.code == "proof_upload_failed"
    assert memory.appended == []


def test_credential_channel_precedence(make_form):
    form_creds = SessionCredentials("f", "1")
    header_creds = SessionCredentials("h", "2")
    cookie = "strava_remember_token=c; strava_remember_id=3"

    both = make_form(form_credentials=form_creds, header_credentials=header_creds)
    assert select_primary_credentials(both) == form_creds
    assert select_retry_credentials(both) == header_creds

    headers_only = make_form(header_credentials=header_creds, cookie_header=cookie)
    assert select_primary_credentials(headers_only) == header_creds
    assert select_retry_credentials(headers_only) == SessionCredentials("c", "3")

    assert select_retry_credentials(make_form(header_credentials=header_creds)) == header_creds
    cookie_only = make_form(cookie_header=cookie)
    assert select_primary_credentials(cookie_only) is None
    assert select_retry_credentials(cookie_only) == SessionCredentials("c", "3")
    assert select_primary_credentials(make_form()) is None
    assert select_retry_credentials(make_form()) is None
