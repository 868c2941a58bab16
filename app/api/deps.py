from __future__ import annotations

from app.agents.orchestrator import ResearchOrchestrator
from app.services.session_store import SessionStore, get_session_store

_orchestrator: ResearchOrchestrator | None = None


def get_store() -> SessionStore:
    return get_session_store()


def get_orchestrator() -> ResearchOrchestrator:
    """Process-wide orchestrator bound to the shared session store."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ResearchOrchestrator(get_session_store())
    return _orchestrator
