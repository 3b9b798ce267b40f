"""Recover activity fields from Strava activity page markup.

Every output field has an ordered tuple of strategies; the first strategy
returning a non-empty string wins. Strategies are plain functions of a
:class:`ParsedPage`, never raise, and run in this order of preference:

1. structured selectors inside the details container and the stats list;
2. targeted regexes over the concatenated stats list text;
3. broader patterns over each stat item, then the whole page text
   (apostrophe pace notation, ``1h 20m`` / ``25m 10s`` durations);
4. Open Graph / Twitter / description meta tags;
5. the first JSON-LD block that parses.

Nothing here raises on odd markup: missing pieces come back as ``None`` and
the :class:`~strava_submissions.models.Diagnostics` explain what was absent.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup, Comment, Tag

from ..models import Diagnostics, ExtractedFields
from ..utils import collapse_whitespace

LOGGER = logging.getLogger(__name__)

DETAILS_SELECTOR = "div.details"
TITLE_SELECTOR = "h1.activity-name, h1.text-title1.activity-name, h1.text-title1"
DESCRIPTION_SELECTORS = (".activity-description-js .content", ".activity-description")
LOCATION_SELECTOR = "span.location"
STATS_SELECTOR = "ul.inline-stats.section"

_UNIT_SUFFIX = r"(/\s?(?:km|mi)|per\s+(?:km|mi))"
DISTANCE_RE = re.compile(
    r"(?<![\d.,])(\d+(?:\.\d+)?)\s*(km|mi(?:les?)?)\b", re.IGNORECASE
)
HMS_RE = re.compile(r"(?<![\d:])(\d{1,2}:\d{2}:\d{2})(?![\d:])")
CLOCK_RE = re.compile(
    rf"(?<![\d:])(\d{{1,2}}:\d{{2}})(?![\d:])(?:\s*{_UNIT_SUFFIX})?", re.IGNORECASE
)
APOSTROPHE_PACE_RE = re.compile(
    rf"(?<!\d)(\d{{1,2}})['’]\s?(\d{{2}})(?:\"|”|'')?(?:\s*{_UNIT_SUFFIX})?",
    re.IGNORECASE,
)
HOURS_MINUTES_RE = re.compile(
    r"(?<![\w.])(\d+)\s*h\s*(\d+)\s*m(?:\s*(\d+)\s*s)?(?![a-z])", re.IGNORECASE
)
MINUTES_SECONDS_RE = re.compile(
    r"(?<![\w.])(\d+)\s*m\s*(\d+)\s*s(?![a-z])", re.IGNORECASE
)
_HAS_LETTER_RE = re.compile(r"[A-Za-z]")

# Label keywords in priority order. An item matching none is kept as statN.
STAT_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("distance", ("distance",)),
    ("moving_time", ("moving", "time", "duration")),
    ("pace", ("pace",)),
)


@dataclass
class StatItem:
    index: int
    label: str
    value: str
    text: str
    kind: Optional[str]


@dataclass
class ParsedPage:
    """Markup parsed once, with the containers every strategy looks at."""

    soup: BeautifulSoup
    details: Optional[Tag]
    stats_lists: List[Tag]
    stat_items: List[StatItem]
    details_text: str
    stats_text: str
    page_text: str
    structured_data: Any = None
    labelled: Dict[str, str] = field(default_factory=dict)
    unmatched: Dict[str, str] = field(default_factory=dict)


Strategy = Callable[[ParsedPage], Optional[str]]


# --- Parsing helpers --------------------------------------------------
def _text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return collapse_whitespace(node.get_text(" "))


def _visible_text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    parts = [
        str(piece)
        for piece in node.find_all(string=True)
        if not isinstance(piece, Comment)
        and piece.parent is not None
        and piece.parent.name not in ("script", "style", "noscript", "template")
    ]
    return collapse_whitespace(" ".join(parts))


def classify_stat_label(label: str) -> Optional[str]:
    lowered = label.lower()
    for kind, keywords in STAT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return kind
    return None


def _split_stat_item(li: Tag) -> Tuple[str, str]:
    """Return (label, value) for a stats list item."""

    label_el = li.select_one(".label")
    value_el = li.find("strong")
    full = _text(li)
    if label_el is not None:
        label = _text(label_el)
        if value_el is not None:
            return label, _text(value_el)
        return label, collapse_whitespace(full.replace(label, "", 1))
    head, sep, tail = full.partition(":")
    if sep and _HAS_LETTER_RE.search(head):
        return collapse_whitespace(head), collapse_whitespace(tail)
    if value_el is not None:
        value = _text(value_el)
        return collapse_whitespace(full.replace(value, "", 1)), value
    return "", full


def _first_structured_data(soup: BeautifulSoup) -> Any:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string if script.string is not None else script.get_text()
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            LOGGER.debug("Skipping JSON-LD block that failed to parse")
            continue
    return None


def parse_page(html: str | None) -> ParsedPage:
    soup = BeautifulSoup(html or "", "html.parser")
    details = soup.select_one(DETAILS_SELECTOR)
    stats_lists = soup.select(STATS_SELECTOR)

    items: List[StatItem] = []
    labelled: Dict[str, str] = {}
    unmatched: Dict[str, str] = {}
    index = 0
    for stats in stats_lists:
        for li in stats.find_all("li"):
            label, value = _split_stat_item(li)
            kind = classify_stat_label(label)
            items.append(
                StatItem(index=index, label=label, value=value, text=_text(li), kind=kind)
            )
            if kind is None:
                if value:
                    unmatched[f"stat{index}"] = value
            elif value and kind not in labelled:
                labelled[kind] = value
            index += 1

    return ParsedPage(
        soup=soup,
        details=details,
        stats_lists=stats_lists,
        stat_items=items,
        details_text=_text(details),
        stats_text=collapse_whitespace(" ".join(_text(s) for s in stats_lists)),
        page_text=_visible_text(soup.body or soup),
        structured_data=_first_structured_data(soup),
        labelled=labelled,
        unmatched=unmatched,
    )


# --- Pattern helpers --------------------------------------------------
def _unit_suffix(raw: Optional[str]) -> str:
    if not raw:
        return "/km"
    return "/mi" if "mi" in raw.lower() else "/km"


def match_distance(text: str) -> Optional[str]:
    found = DISTANCE_RE.search(text or "")
    if not found:
        return None
    unit = "mi" if found.group(2).lower().startswith("mi") else "km"
    return f"{found.group(1)} {unit}"


def match_clock_duration(text: str) -> Optional[str]:
    """HH:MM:SS, otherwise the first MM:SS that is not a pace."""

    found = HMS_RE.search(text or "")
    if found:
        return found.group(1)
    for clock in CLOCK_RE.finditer(text or ""):
        if not clock.group(2):
            return clock.group(1)
    return None


def match_pace(text: str) -> Optional[str]:
    """MM:SS pace, preferring one with a per-unit suffix.

    Without any suffixed value the last bare MM:SS is used; in the stats
    list moving time comes before pace.
    """

    bare: Optional[str] = None
    for clock in CLOCK_RE.finditer(text or ""):
        if clock.group(2):
            return f"{clock.group(1)} {_unit_suffix(clock.group(2))}"
        bare = clock.group(1)
    return bare


def match_pace_broad(text: str, *, require_unit: bool = False) -> Optional[str]:
    """Colon or apostrophe notation pace, normalised to ``M:SS /km``."""

    for clock in CLOCK_RE.finditer(text or ""):
        if require_unit and not clock.group(2):
            continue
        return f"{clock.group(1)} {_unit_suffix(clock.group(2))}"
    quoted = APOSTROPHE_PACE_RE.search(text or "")
    if quoted:
        return f"{quoted.group(1)}:{quoted.group(2)} {_unit_suffix(quoted.group(3))}"
    return None


def match_duration_broad(text: str) -> Optional[str]:
    found = HMS_RE.search(text or "")
    if found:
        return found.group(1)
    verbose = HOURS_MINUTES_RE.search(text or "")
    if verbose:
        hours, minutes, seconds = verbose.groups()
        return f"{hours}h {minutes}m" + (f" {seconds}s" if seconds else "")
    verbose = MINUTES_SECONDS_RE.search(text or "")
    if verbose:
        return f"{verbose.group(1)}m {verbose.group(2)}s"
    return None


def _first_in(texts: Iterable[str], matcher: Callable[[str], Optional[str]]) -> Optional[str]:
    for text in texts:
        value = matcher(text)
        if value:
            return value
    return None


def _meta_content(soup: BeautifulSoup, *keys: str) -> Optional[str]:
    for key in keys:
        tag = soup.find("meta", attrs={"property": key}) or soup.find(
            "meta", attrs={"name": key}
        )
        if tag is not None:
            content = collapse_whitespace(tag.get("content"))
            if content:
                return content
    return None


def _coerce_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return collapse_whitespace(value) or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, list):
        for item in value:
            text = _coerce_text(item)
            if text:
                return text
        return None
    if isinstance(value, dict):
        if value.get("name"):
            return _coerce_text(value["name"])
        if value.get("address"):
            return _coerce_text(value["address"])
        parts = [
            _coerce_text(value.get(key))
            for key in (
                "streetAddress",
                "addressLocality",
                "addressRegion",
                "addressCountry",
            )
        ]
        joined = ", ".join(p for p in parts if p)
        return joined or None
    return None


def _structured_value(page: ParsedPage, *keys: str) -> Optional[str]:
    data = page.structured_data
    if isinstance(data, list):
        data = next((item for item in data if isinstance(item, dict)), None)
    if not isinstance(data, dict):
        return None
    for key in keys:
        text = _coerce_text(data.get(key))
        if text:
            return text
    return None


# --- Strategies -------------------------------------------------------
def title_from_details(page: ParsedPage) -> Optional[str]:
    if page.details is None:
        return None
    return _text(page.details.select_one(TITLE_SELECTOR)) or None


def description_from_details(page: ParsedPage) -> Optional[str]:
    if page.details is None:
        return None
    for selector in DESCRIPTION_SELECTORS:
        text = _text(page.details.select_one(selector))
        if text:
            return text
    return None


def location_from_details(page: ParsedPage) -> Optional[str]:
    if page.details is None:
        return None
    return _text(page.details.select_one(LOCATION_SELECTOR)) or None


def date_from_details(page: ParsedPage) -> Optional[str]:
    if page.details is None:
        return None
    time_el = page.details.find("time")
    if time_el is None:
        return None
    return _text(time_el) or collapse_whitespace(time_el.get("datetime")) or None


def labelled_stat(kind: str) -> Strategy:
    def _strategy(page: ParsedPage) -> Optional[str]:
        return page.labelled.get(kind) or None

    _strategy.__name__ = f"labelled_{kind}"
    return _strategy


def distance_from_stats_text(page: ParsedPage) -> Optional[str]:
    return match_distance(page.stats_text)


def moving_time_from_stats_text(page: ParsedPage) -> Optional[str]:
    return match_clock_duration(page.stats_text)


def pace_from_stats_text(page: ParsedPage) -> Optional[str]:
    return match_pace(page.stats_text)


def _item_texts(page: ParsedPage, kind: str) -> List[str]:
    # Items clearly labelled as another stat would only yield false positives.
    return [item.text for item in page.stat_items if item.kind in (None, kind)]


def duration_from_stat_items(page: ParsedPage) -> Optional[str]:
    return _first_in(_item_texts(page, "moving_time"), match_duration_broad)


def duration_from_page_text(page: ParsedPage) -> Optional[str]:
    return match_duration_broad(f"{page.details_text} {page.page_text}")


def pace_from_stat_items(page: ParsedPage) -> Optional[str]:
    return _first_in(_item_texts(page, "pace"), match_pace_broad)


def pace_from_page_text(page: ParsedPage) -> Optional[str]:
    # Whole-page text is full of clock times; colon paces need a unit here.
    return match_pace_broad(
        f"{page.details_text} {page.page_text}", require_unit=True
    )


def title_from_meta(page: ParsedPage) -> Optional[str]:
    return _meta_content(page.soup, "og:title", "twitter:title")


def description_from_meta(page: ParsedPage) -> Optional[str]:
    return _meta_content(
        page.soup, "og:description", "twitter:description", "description"
    )


def name_from_structured_data(page: ParsedPage) -> Optional[str]:
    return _structured_value(page, "name")


def description_from_structured_data(page: ParsedPage) -> Optional[str]:
    return _structured_value(page, "description")


def location_from_structured_data(page: ParsedPage) -> Optional[str]:
    return _structured_value(page, "location", "address")


def start_date_from_structured_data(page: ParsedPage) -> Optional[str]:
    return _structured_value(page, "startDate")


FIELD_STRATEGIES: Dict[str, Tuple[Strategy, ...]] = {
    "activity_name": (title_from_details, title_from_meta, name_from_structured_data),
    "location": (location_from_details, location_from_structured_data),
    "date": (date_from_details, start_date_from_structured_data),
    "description": (
        description_from_details,
        description_from_meta,
        description_from_structured_data,
    ),
    "distance": (labelled_stat("distance"), distance_from_stats_text),
    "moving_time": (
        labelled_stat("moving_time"),
        moving_time_from_stats_text,
        duration_from_stat_items,
        duration_from_page_text,
    ),
    "pace": (
        labelled_stat("pace"),
        pace_from_stats_text,
        pace_from_stat_items,
        pace_from_page_text,
    ),
}


def first_match(page: ParsedPage, strategies: Iterable[Strategy]) -> Optional[str]:
    for strategy in strategies:
        value = strategy(page)
        if value:
            return value
    return None


def extract(
    html: str | None, *, authenticated: bool = False
) -> Tuple[ExtractedFields, Diagnostics]:
    """Run every field cascade over ``html``.

    Args:
        html: Raw page markup (may be empty).
        authenticated: Whether session cookies were sent with the fetch.

    Returns:
        ``(fields, diagnostics)``; ``fields.auth_valid`` is True only when
        cookies were sent and either both page containers or a JSON-LD block
        were found.
    """
    page = parse_page(html)
    values = {
        name: first_match(page, strategies)
        for name, strategies in FIELD_STRATEGIES.items()
    }
    diagnostics = Diagnostics(
        details_found=page.details is not None,
        stats_found=bool(page.stats_lists),
        body_length=len((html or "").encode("utf-8")),
        structured_data_found=page.structured_data is not None,
        details_text=page.details_text,
        stats_text=page.stats_text,
        unmatched_stats=dict(page.unmatched),
        structured_data=page.structured_data,
    )
    auth_valid = authenticated and (
        (diagnostics.details_found and diagnostics.stats_found)
        or diagnostics.structured_data_found
    )
    fields = ExtractedFields(
        authenticated=authenticated, auth_valid=auth_valid, **values
    )
    LOGGER.debug(
        "Extracted distance=%s moving_time=%s pace=%s details=%s stats=%s",
        fields.distance,
        fields.moving_time,
        fields.pace,
        diagnostics.details_found,
        diagnostics.stats_found,
    )
    return fields, diagnostics


def describe_issues(
    fields: ExtractedFields,
    diagnostics: Diagnostics,
    *,
    explicit_credentials: bool = False,
) -> List[str]:
    """Human guidance explaining why fields may be missing."""

    issues: List[str] = []
    if not diagnostics.details_found:
        issues.append(
            "details element not found - page may require login or be client-side rendered"
        )
    if not diagnostics.stats_found:
        issues.append("stats element not found - page may be rendered by JS")
    if explicit_credentials and not fields.auth_valid:
        issues.append(
            "provided Strava cookies appear invalid or expired; refresh "
            "strava_remember_token and strava_remember_id"
        )
    return issues


__all__ = [
    "FIELD_STRATEGIES",
    "ParsedPage",
    "classify_stat_label",
    "describe_issues",
    "extract",
    "first_match",
    "match_clock_duration",
    "match_distance",
    "match_duration_broad",
    "match_pace",
    "match_pace_broad",
    "parse_page",
]
