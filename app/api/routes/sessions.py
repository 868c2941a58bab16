from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from app.agents.orchestrator import ResearchOrchestrator
from app.api.deps import get_orchestrator, get_store
from app.config import settings
from app.models.errors import SessionNotFound, SessionStateError
from app.models.schemas import (
    CancelResponse,
    SessionCreatedResponse,
    StartResearchRequest,
    StatusViewResponse,
)
from app.models.session import ResearchSession, SessionStatus
from app.services import logger as log_service
from app.services import streaming
from app.services.session_store import SessionStore
from app.services.status_view import build_status_view

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


async def _get_session_or_404(store: SessionStore, session_id: int) -> ResearchSession:
    session = await store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=SessionNotFound(session_id).user_message)
    return session


@router.post("", response_model=SessionCreatedResponse)
async def create_session(store: SessionStore = Depends(get_store)):
    """Allocate a new research session."""
    session = await store.create()
    log_service.log_event(event_type="session_created", message="Session created", session_id=session.id)
    return SessionCreatedResponse(session_id=session.id)


@router.post("/{session_id}/research", status_code=202)
async def start_research(
    session_id: int,
    request: StartResearchRequest,
    store: SessionStore = Depends(get_store),
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    """Start the pipeline in the background; poll or stream for progress."""
    try:
        await orchestrator.start(session_id, request.to_profile())
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.user_message)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=e.user_message)

    session = await _get_session_or_404(store, session_id)
    return session.to_payload()


@router.get("/{session_id}")
async def get_session(session_id: int, store: SessionStore = Depends(get_store)):
    session = await _get_session_or_404(store, session_id)
    return session.to_payload()


@router.get("/{session_id}/view", response_model=StatusViewResponse)
async def get_session_view(session_id: int, store: SessionStore = Depends(get_store)):
    session = await _get_session_or_404(store, session_id)
    return build_status_view(session)


@router.get("/{session_id}/report")
async def get_report(session_id: int, store: SessionStore = Depends(get_store)):
    session = await _get_session_or_404(store, session_id)
    if session.status != SessionStatus.COMPLETED or session.results is None:
        raise HTTPException(
            status_code=409,
            detail=f"Research session {session_id} is {session.status.value}; no report available",
        )
    return session.results.to_payload()


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_research(
    session_id: int,
    store: SessionStore = Depends(get_store),
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
):
    await _get_session_or_404(store, session_id)
    cancelled = await orchestrator.cancel(session_id)
    log_service.log_event(
        event_type="research_cancel_requested",
        message="Cancellation requested",
        session_id=session_id,
        cancelled=cancelled,
    )
    return CancelResponse(cancelled=cancelled)


@router.get("/{session_id}/stream")
async def stream_session(session_id: int, store: SessionStore = Depends(get_store)):
    """SSE endpoint that emits the session snapshot whenever it changes."""
    await _get_session_or_404(store, session_id)

    async def event_generator():
        async for event in streaming.watch_session(
            store, session_id, interval=settings.status_poll_interval_seconds
        ):
            yield event.to_message()

    return EventSourceResponse(event_generator())
