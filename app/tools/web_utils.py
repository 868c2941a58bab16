from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

YEAR_PATTERN = re.compile(r"\b(20\d{2})\b")
BARE_YEAR_PATTERN = re.compile(r"^\s*(\d{4})\s*$")
SNIPPET_DATE_PATTERN = re.compile(
    r"(\d{1,2}\s+(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{4})"
    r"|(\d{4}-\d{2}-\d{2})"
    r"|(\d{2}/\d{2}/\d{4})",
    re.IGNORECASE,
)
TIME_AGO_PATTERN = re.compile(r"(\d+\s+(?:minute|hour|day|week|month)s?\s+ago)", re.IGNORECASE)
RELATIVE_PATTERN = re.compile(
    r"^\s*(\d+)\s+(minute|hour|day|week|month|year)s?\s+ago\s*$", re.IGNORECASE
)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d %Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
)

_RELATIVE_UNITS = {
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def extract_domain(url: str) -> str:
    """Hostname of a URL without a leading ``www.``; the input itself if unparseable."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return url
    if not hostname:
        return url
    return hostname[4:] if hostname.startswith("www.") else hostname


def years_ago(now: datetime, years: int) -> datetime:
    try:
        return now.replace(year=now.year - years)
    except ValueError:  # Feb 29
        return now.replace(year=now.year - years, day=28)


def parse_published_date(value: str | None, *, now: datetime | None = None) -> datetime | None:
    """Best-effort parse of the date strings search engines attach to results."""
    if not value or not isinstance(value, str):
        return None
    now = now or datetime.now(timezone.utc)
    text = re.sub(r"([A-Za-z])\.", r"\1", " ".join(value.split())).replace("Sept ", "Sep ")

    relative = RELATIVE_PATTERN.match(text)
    if relative:
        return now - int(relative.group(1)) * _RELATIVE_UNITS[relative.group(2).lower()]

    bare_year = BARE_YEAR_PATTERN.match(text)
    if bare_year:
        return datetime(int(bare_year.group(1)), 1, 1, tzinfo=timezone.utc)

    if text.endswith("Z"):
        text = text[:-1]
    try:
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def mentioned_years(text: str | None) -> list[int]:
    if not text:
        return []
    return [int(y) for y in YEAR_PATTERN.findall(text)]


def extract_date_from_snippet(snippet: str, *, now: datetime | None = None) -> tuple[str, str]:
    """Return ``(date, time_ago)`` found in a result snippet, empty strings when absent."""
    now = now or datetime.now(timezone.utc)
    date = ""
    time_ago = ""
    if not snippet:
        return date, time_ago

    date_match = SNIPPET_DATE_PATTERN.search(snippet)
    if date_match:
        date = date_match.group(0)

    ago_match = TIME_AGO_PATTERN.search(snippet)
    if ago_match:
        time_ago = ago_match.group(1)

    years = mentioned_years(snippet)
    if years and not date:
        most_recent = max(years)
        if now.year - most_recent <= 2:
            date = str(most_recent)

    return date, time_ago
