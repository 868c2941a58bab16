"""Read-only projection of a session for progress displays.

Everything here is derived from one snapshot; no gateway calls, no writes.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.config import settings
from app.models.session import ResearchSession, SessionStatus
from app.tools import web_utils

STEP_TITLES = {
    1: "Analyzing your supply chain requirements",
    2: "Conducting relevant research",
    3: "Analyzing insights from unique websites",
    4: "Compiling risk assessment",
    5: "Finalizing your risk assessment",
}

NO_DATA_NOTICE = (
    "Analysis complete, but no significant risk factors were identified. This may indicate "
    "either low risk or insufficient public data for your specific business context."
)


def current_step(session: ResearchSession) -> int:
    if session.compilation_progress >= 100:
        return 5
    if session.analysis_progress >= 100:
        return 4
    if session.research_progress >= 100 and session.analysis_progress > 0:
        return 3
    if session.research_progress >= 20:
        return 2
    return 1


def has_displayable_report(session: ResearchSession) -> bool:
    return session.results is not None and session.results.is_displayable


def is_stalled(
    session: ResearchSession,
    *,
    now: datetime | None = None,
    stall_after_seconds: float | None = None,
) -> bool:
    """A processing session whose record has not changed for too long."""
    if session.status != SessionStatus.PROCESSING:
        return False
    now = now or datetime.now(timezone.utc)
    limit = settings.stall_after_seconds if stall_after_seconds is None else stall_after_seconds
    return (now - session.updated_at).total_seconds() > limit


def is_potentially_outdated(value: str | None, *, now: datetime | None = None, max_age_years: int = 2) -> bool:
    if not value:
        return False
    now = now or datetime.now(timezone.utc)

    bare_year = web_utils.BARE_YEAR_PATTERN.match(value)
    if bare_year:
        return now.year - int(bare_year.group(1)) > max_age_years

    parsed = web_utils.parse_published_date(value, now=now)
    if parsed is not None:
        return parsed < web_utils.years_ago(now, max_age_years)

    years = web_utils.mentioned_years(value)
    if years:
        return now.year - years[0] > max_age_years
    return False


def source_details(session: ResearchSession, *, now: datetime | None = None) -> list[dict[str, Any]]:
    first_result: dict[str, dict[str, Any]] = {}
    for result in session.search_results:
        source = result.get("source")
        if source and source not in first_result:
            first_result[source] = result

    details = []
    for name in session.sources:
        match = first_result.get(name, {})
        published_date = match.get("published_date") or None
        details.append(
            {
                "name": name,
                "url": match.get("link") or None,
                "publishedDate": published_date,
                "publishedTime": match.get("published_time") or None,
                "potentiallyOutdated": is_potentially_outdated(published_date, now=now),
            }
        )
    return details


def build_status_view(session: ResearchSession, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    step = current_step(session)
    displayable = has_displayable_report(session)
    notice = None
    if session.status == SessionStatus.COMPLETED and not displayable:
        notice = NO_DATA_NOTICE
    return {
        "sessionId": session.id,
        "status": session.status.value,
        "phase": session.phase.value,
        "currentStep": step,
        "stepTitle": STEP_TITLES[step],
        "isTerminal": session.is_terminal,
        "stalled": is_stalled(session, now=now),
        "hasDisplayableReport": displayable,
        "notice": notice,
        "errorMessage": session.error_message,
        "sources": source_details(session, now=now),
    }
