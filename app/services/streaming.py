from __future__ import annotations

import asyncio
from datetime import datetime
from typing import AsyncGenerator

from app.models.events import EventType, SSEEvent
from app.models.session import ResearchSession
from app.services.session_store import SessionStore
from app.services.status_view import build_status_view

SESSION_NOT_FOUND_MESSAGE = "Research session not found"


def status(session: ResearchSession, *, now: datetime | None = None) -> SSEEvent:
    """Snapshot plus the derived view, so a client needs no second request."""
    return SSEEvent(
        event=EventType.STATUS,
        data={"session": session.to_payload(), "view": build_status_view(session, now=now)},
    )


def error(message: str) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"message": message})


async def watch_session(
    store: SessionStore, session_id: int, *, interval: float = 1.0
) -> AsyncGenerator[SSEEvent, None]:
    """Poll the store and yield a status event whenever the record changes.

    Ends after a terminal snapshot, or with an error event if the session is
    absent. Read-only.
    """
    last_seen: ResearchSession | None = None
    while True:
        session = await store.get(session_id)
        if session is None:
            yield error(SESSION_NOT_FOUND_MESSAGE)
            return
        # Records are replaced wholesale, so a new object means a new snapshot.
        if session is not last_seen:
            last_seen = session
            yield status(session)
        if session.is_terminal:
            return
        await asyncio.sleep(interval)
