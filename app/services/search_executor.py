from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

from app.services import logger as log_service
from app.tools import web_utils
from app.tools.serper_search import SearchResult


class SearchFn(Protocol):
    def __call__(self, query: str, *, api_key: str) -> Awaitable[list[SearchResult]]: ...


async def run_concurrent_searches(
    queries: list[str],
    *,
    search_fn: SearchFn,
    api_key: str,
    on_complete: Callable[[], Awaitable[Any]] | None = None,
    max_parallel: int = 10,
    timeout: float | None = None,
    session_id: int | None = None,
) -> list[list[SearchResult]]:
    """Run one search per query concurrently and wait for all of them to settle.

    A failing or timed-out query contributes an empty list; it never cancels
    its siblings. ``on_complete`` is awaited once per settled query, in
    completion order.
    """
    semaphore = asyncio.Semaphore(max(max_parallel, 1))

    async def run_one(query: str) -> list[SearchResult]:
        started = time.monotonic()
        results: list[SearchResult] = []
        try:
            async with semaphore:
                call = search_fn(query, api_key=api_key)
                results = list(await (asyncio.wait_for(call, timeout) if timeout else call))
            log_service.log_event(
                event_type="search_completed",
                message=f"Search returned {len(results)} results",
                session_id=session_id,
                query=query,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        except asyncio.TimeoutError:
            log_service.logger.warning(f"Search timed out for query {query!r} (session {session_id})")
        except Exception as e:
            log_service.logger.warning(f"Error searching for query {query!r} (session {session_id}): {e}")

        if on_complete is not None:
            await on_complete()
        return results

    return list(await asyncio.gather(*(run_one(query) for query in queries)))


def flatten(result_lists: list[list[SearchResult]]) -> list[SearchResult]:
    return [result for results in result_lists for result in results]


def _recency_key(result: SearchResult, now: datetime) -> float:
    parsed = web_utils.parse_published_date(result.published_date, now=now)
    if parsed is None:
        return float("-inf")
    return parsed.timestamp()


def sort_by_recency(
    results: list[SearchResult], *, now: datetime | None = None
) -> list[SearchResult]:
    """Dated results first, most recent first; undated results keep their order at the end.

    Two stable passes: date descending, then a partition on date presence.
    """
    now = now or datetime.now(timezone.utc)
    by_date = sorted(results, key=lambda r: _recency_key(r, now), reverse=True)
    dated = [r for r in by_date if r.published_date]
    undated = [r for r in by_date if not r.published_date]
    return dated + undated


def collect_sources(results: list[SearchResult]) -> tuple[str, ...]:
    """Distinct non-empty source names, first occurrence wins."""
    return tuple(dict.fromkeys(r.source for r in results if r.source))


def results_for_prompt(results: list[SearchResult]) -> list[dict[str, Any]]:
    return [
        {
            "source": r.source or "Unknown source",
            "url": r.link or "",
            "snippet": r.snippet or "",
            "publishedDate": r.published_date or "",
            "publishedTime": r.published_time or "",
        }
        for r in results
    ]
