from __future__ import annotations

import asyncio
import dataclasses
import itertools
from typing import Any, Protocol

from app.models.errors import SessionNotFound, SessionStateError
from app.models.session import PROGRESS_FIELDS, ResearchSession, utcnow


class SessionStore(Protocol):
    async def create(self) -> ResearchSession: ...
    async def get(self, session_id: int) -> ResearchSession | None: ...
    async def update(self, session_id: int, **changes: Any) -> ResearchSession: ...
    async def advance_progress(
        self, session_id: int, field: str, amount: int, *, cap: int = 100
    ) -> ResearchSession: ...


def _clamp(value: int, *, floor: int = 0, cap: int = 100) -> int:
    return max(floor, min(int(value), cap))


class InMemorySessionStore:
    """Process-local session map guarded by a single lock.

    Records are frozen; every write builds a new record and swaps it in, so a
    reader never observes a half-applied update. Progress counters only move
    forward and terminal sessions reject further writes.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._sessions: dict[int, ResearchSession] = {}
        self._lock = asyncio.Lock()

    async def create(self) -> ResearchSession:
        async with self._lock:
            session = ResearchSession(id=next(self._ids))
            self._sessions[session.id] = session
            return session

    async def get(self, session_id: int) -> ResearchSession | None:
        return self._sessions.get(session_id)

    async def update(self, session_id: int, **changes: Any) -> ResearchSession:
        async with self._lock:
            current = self._require_writable(session_id)
            for name in PROGRESS_FIELDS:
                if name in changes:
                    changes[name] = max(getattr(current, name), _clamp(changes[name]))
            updated = dataclasses.replace(current, updated_at=utcnow(), **changes)
            self._sessions[session_id] = updated
            return updated

    async def advance_progress(
        self, session_id: int, field: str, amount: int, *, cap: int = 100
    ) -> ResearchSession:
        if field not in PROGRESS_FIELDS:
            raise ValueError(f"Unknown progress field: {field}")
        async with self._lock:
            current = self._require_writable(session_id)
            value = _clamp(getattr(current, field) + amount, cap=min(cap, 100))
            updated = dataclasses.replace(
                current,
                updated_at=utcnow(),
                **{field: max(getattr(current, field), value)},
            )
            self._sessions[session_id] = updated
            return updated

    def __len__(self) -> int:
        return len(self._sessions)

    def _require_writable(self, session_id: int) -> ResearchSession:
        current = self._sessions.get(session_id)
        if current is None:
            raise SessionNotFound(session_id)
        if current.is_terminal:
            raise SessionStateError(
                f"Research session {session_id} is already {current.status.value}"
            )
        return current


_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    global _store
    if _store is None:
        _store = InMemorySessionStore()
    return _store
