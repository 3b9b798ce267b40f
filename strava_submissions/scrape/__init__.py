"""Strava web page scraping components (resolver, fetcher, extractor)."""

from .extractor import describe_issues, extract  # noqa: F401
from .fetcher import (  # noqa: F401
    FetchedPage,
    MarkupFetcher,
    default_fallback_credentials,
    get_default_fetcher,
)
from .pacing import no_delay, real_delay  # noqa: F401
from .resolver import (  # noqa: F401
    ActivityUrlResolver,
    canonical_activity_url,
    get_default_resolver,
    resolve_activity_url,
)
from .session import create_default_session, get_default_session  # noqa: F401
