from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

import httpx

from app.config import settings
from app.models.errors import CredentialError, classify_gateway_error
from app.services import logger as log_service
from app.tools import web_utils


@dataclass
class SearchResult:
    """Normalized organic result from Serper."""
    title: str
    link: str
    snippet: str
    position: int
    source: str = ""
    published_date: str = ""
    published_time: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _normalize(item: dict[str, Any], index: int, *, now: datetime) -> SearchResult:
    snippet = item.get("snippet", "") or ""
    link = item.get("link", "") or ""
    snippet_date, time_ago = web_utils.extract_date_from_snippet(snippet, now=now)
    return SearchResult(
        title=item.get("title", "") or "",
        link=link,
        snippet=snippet,
        position=index + 1,
        source=web_utils.extract_domain(link) if link else "",
        published_date=item.get("date") or snippet_date or "",
        published_time=time_ago,
    )


def is_recent_enough(
    result: SearchResult,
    *,
    now: datetime | None = None,
    max_age_years: int | None = None,
) -> bool:
    """Drop results whose inferred age exceeds the limit; undated results are kept."""
    now = now or datetime.now(timezone.utc)
    max_age = settings.search_max_age_years if max_age_years is None else max_age_years
    if not result.published_date:
        return True

    published = web_utils.parse_published_date(result.published_date, now=now)
    if published is not None:
        return published >= web_utils.years_ago(now, max_age)

    years = web_utils.mentioned_years(result.snippet)
    if years:
        return now.year - max(years) <= max_age
    return True


async def search(
    query: str,
    *,
    api_key: str,
    num_results: int | None = None,
    now: datetime | None = None,
) -> list[SearchResult]:
    """Run one Serper web search and return recent, normalized results."""
    if not api_key or not api_key.strip():
        raise CredentialError(
            "Serper API key is required to perform web searches. Please provide a valid API key."
        )

    payload = {
        "q": query,
        "num": num_results or settings.search_results_per_query,
        "gl": settings.search_country,
        "hl": settings.search_language,
        "autocorrect": True,
        "type": "search",
        "tbs": settings.search_time_filter,
    }

    try:
        async with httpx.AsyncClient(timeout=settings.search_timeout_seconds) as client:
            response = await client.post(
                settings.serper_search_url,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "X-API-KEY": api_key,
                },
            )
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        detail = e.response.text[:300]
        error = classify_gateway_error(e, provider="Serper")
        log_service.log_event(
            event_type="search_error",
            message=f"Serper API error: {e.response.status_code} - {detail}",
            query=query,
            kind=error.kind,
        )
        raise error from e

    organic = data.get("organic", []) or []
    if not organic:
        log_service.logger.warning(f"No search results found for query: {query}")
        return []

    now = now or datetime.now(timezone.utc)
    results = [
        _normalize(item, index, now=now)
        for index, item in enumerate(organic)
        if web_utils.is_valid_url(item.get("link") or "")
    ]
    return [r for r in results if is_recent_enough(r, now=now)]


def results_to_dicts(results: list[SearchResult]) -> list[dict[str, Any]]:
    return [r.to_dict() for r in results]
