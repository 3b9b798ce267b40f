"""Resolve, fetch and extract one activity page.

Shared by the scrape-debug endpoint and the submission flow. Nothing here
touches the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import Any, Dict, List, Optional

from ..models import Diagnostics, ExtractedFields, ResolvedActivity, SessionCredentials
from ..normalize import normalize_distance, normalize_duration
from ..scrape import (
    ActivityUrlResolver,
    FetchedPage,
    MarkupFetcher,
    describe_issues,
    extract,
    get_default_fetcher,
    get_default_resolver,
)

STRUCTURED_DATA_SAMPLE_CHARS = 1000


@dataclass
class ScrapeReport:
    resolved: ResolvedActivity
    page: FetchedPage
    fields: ExtractedFields
    diagnostics: Diagnostics
    issues: List[str] = field(default_factory=list)

    @property
    def distance_km(self) -> Optional[float]:
        return normalize_distance(self.fields.distance)

    @property
    def duration(self) -> Optional[str]:
        return normalize_duration(self.fields.moving_time)

    @property
    def complete(self) -> bool:
        return self.distance_km is not None and self.duration is not None

    def structured_data_sample(self) -> Optional[str]:
        data = self.diagnostics.structured_data
        if data is None:
            return None
        return json.dumps(data, ensure_ascii=False, default=str)[
            :STRUCTURED_DATA_SAMPLE_CHARS
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.resolved.url,
            "activity_id": self.resolved.activity_id,
            "raw": {
                "details_text": self.diagnostics.details_text,
                "stats_text": self.diagnostics.stats_text,
            },
            "extracted": self.fields.to_dict(),
            "normalized": {"distance_km": self.distance_km, "duration": self.duration},
            "diagnostics": self.diagnostics.to_dict(),
            "structured_data_sample": self.structured_data_sample(),
            "issues": list(self.issues),
        }


@dataclass(slots=True)
class ScrapeServiceConfig:
    resolver: ActivityUrlResolver | None = None
    fetcher: MarkupFetcher | None = None
    logger: logging.Logger | None = None


class ActivityScraper:
    def __init__(self, config: ScrapeServiceConfig | None = None):
        self.config = config or ScrapeServiceConfig()
        self.resolver = self.config.resolver or get_default_resolver()
        self.fetcher = self.config.fetcher or get_default_fetcher()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def resolve(self, raw: str | None) -> ResolvedActivity:
        return self.resolver.resolve(raw)

    def scrape_resolved(
        self,
        resolved: ResolvedActivity,
        credentials: SessionCredentials | None = None,
    ) -> ScrapeReport:
        page = self.fetcher.fetch(resolved.url, credentials)
        fields, diagnostics = extract(page.html, authenticated=page.authenticated)
        issues = describe_issues(
            fields, diagnostics, explicit_credentials=page.explicit_credentials
        )
        self._log.info(
            "Scraped activity %s distance=%s moving_time=%s auth_valid=%s",
            resolved.activity_id,
            fields.distance,
            fields.moving_time,
            fields.auth_valid,
        )
        for issue in issues:
            self._log.debug("Activity %s: %s", resolved.activity_id, issue)
        return ScrapeReport(
            resolved=resolved,
            page=page,
            fields=fields,
            diagnostics=diagnostics,
            issues=issues,
        )

    def scrape(
        self, raw: str | None, credentials: SessionCredentials | None = None
    ) -> ScrapeReport:
        """Resolve ``raw`` and scrape the resulting page."""

        return self.scrape_resolved(self.resolve(raw), credentials)


__all__ = ["ActivityScraper", "ScrapeReport", "ScrapeServiceConfig"]
