from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from app.models.events import EventType
from app.models.report import Report
from app.models.session import ResearchSession, SessionStatus
from app.services import status_view, streaming
from app.services.session_store import InMemorySessionStore

NOW = datetime(2025, 6, 15, tzinfo=timezone.utc)


def _session(**changes) -> ResearchSession:
    base = ResearchSession(id=1, status=SessionStatus.PROCESSING, created_at=NOW, updated_at=NOW)
    return dataclasses.replace(base, **changes)


@pytest.mark.parametrize(
    "progress, step",
    [
        ((0, 0, 0), 1),
        ((20, 0, 0), 2),
        ((100, 0, 0), 2),
        ((100, 30, 0), 3),
        ((100, 100, 40), 4),
        ((100, 100, 100), 5),
    ],
)
def test_current_step_follows_progress_thresholds(progress, step):
    research, analysis, compilation = progress
    session = _session(
        research_progress=research, analysis_progress=analysis, compilation_progress=compilation
    )
    assert status_view.current_step(session) == step


def test_completed_session_with_empty_top_risks_is_no_data():
    report = Report.model_validate(
        {"overallRiskScore": 20, "topRisks": [], "keyInsights": [{"title": "t", "description": "d"}]}
    )
    session = _session(status=SessionStatus.COMPLETED, results=report, compilation_progress=100)

    view = status_view.build_status_view(session, now=NOW)

    assert view["hasDisplayableReport"] is False
    assert view["notice"] == status_view.NO_DATA_NOTICE
    assert view["isTerminal"] is True


def test_completed_session_with_findings_has_no_notice():
    report = Report.model_validate(
        {
            "overallRiskScore": 55,
            "topRisks": [{"factor": "f", "score": 6}],
            "keyInsights": [{"title": "t", "description": "d"}],
        }
    )
    session = _session(status=SessionStatus.COMPLETED, results=report)

    view = status_view.build_status_view(session, now=NOW)

    assert view["hasDisplayableReport"] is True
    assert view["notice"] is None


def test_error_session_is_not_a_no_data_notice():
    session = _session(status=SessionStatus.ERROR, error_message="Invalid key")
    view = status_view.build_status_view(session, now=NOW)
    assert view["notice"] is None
    assert view["errorMessage"] == "Invalid key"


def test_stalled_only_when_processing_without_recent_writes():
    stale = _session(updated_at=NOW - timedelta(seconds=120))
    fresh = _session(updated_at=NOW - timedelta(seconds=5))
    done = _session(status=SessionStatus.COMPLETED, updated_at=NOW - timedelta(hours=1))

    assert status_view.is_stalled(stale, now=NOW, stall_after_seconds=90)
    assert not status_view.is_stalled(fresh, now=NOW, stall_after_seconds=90)
    assert not status_view.is_stalled(done, now=NOW, stall_after_seconds=90)


@pytest.mark.parametrize(
    "value, outdated",
    [
        ("2022", True),
        ("2023", False),
        ("2022-01-10", True),
        ("Jul 1, 2023", False),
        ("sometime in 2020", True),
        ("recently", False),
        (None, False),
    ],
)
def test_is_potentially_outdated(value, outdated):
    assert status_view.is_potentially_outdated(value, now=NOW) is outdated


def test_source_details_attach_first_result_per_source():
    session = _session(
        sources=("reuters.com", "old.example.com"),
        search_results=(
            {"source": "reuters.com", "link": "https://reuters.com/1", "published_date": "2025-05-01", "published_time": "3 weeks ago"},
            {"source": "reuters.com", "link": "https://reuters.com/2", "published_date": "", "published_time": ""},
            {"source": "old.example.com", "link": "https://old.example.com/x", "published_date": "2019", "published_time": ""},
        ),
    )

    details = status_view.source_details(session, now=NOW)

    assert details == [
        {
            "name": "reuters.com",
            "url": "https://reuters.com/1",
            "publishedDate": "2025-05-01",
            "publishedTime": "3 weeks ago",
            "potentiallyOutdated": False,
        },
        {
            "name": "old.example.com",
            "url": "https://old.example.com/x",
            "publishedDate": "2019",
            "publishedTime": None,
            "potentiallyOutdated": True,
        },
    ]


@pytest.mark.asyncio
async def test_watch_session_emits_changes_until_terminal():
    store = InMemorySessionStore()
    session = await store.create()
    await store.update(session.id, status=SessionStatus.PROCESSING, research_progress=20)

    events = []
    async for event in streaming.watch_session(store, session.id, interval=0.001):
        events.append(event)
        if len(events) == 1:
            await store.update(session.id, status=SessionStatus.ERROR, error_message="boom")

    assert [e.event for e in events] == [EventType.STATUS, EventType.STATUS]
    assert events[0].data["session"]["researchProgress"] == 20
    assert events[-1].data["session"]["status"] == "error"
    assert events[-1].data["view"]["isTerminal"] is True


@pytest.mark.asyncio
async def test_watch_session_reports_missing_session():
    store = InMemorySessionStore()

    events = [event async for event in streaming.watch_session(store, 42, interval=0.001)]

    assert len(events) == 1
    assert events[0].event == EventType.ERROR
    assert events[0].to_message() == {"event": "error", "data": '{"message": "Research session not found"}'}
