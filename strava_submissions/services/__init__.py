"""Service layer package.

Exports the scrape and submission flows consumed by the web layer.
"""

from .scrape_service import ActivityScraper, ScrapeReport, ScrapeServiceConfig
from .submission_service import (
    SubmissionOutcome,
    SubmissionService,
    SubmissionServiceConfig,
)

__all__ = [
    "ActivityScraper",
    "ScrapeReport",
    "ScrapeServiceConfig",
    "SubmissionOutcome",
    "SubmissionService",
    "SubmissionServiceConfig",
]
