from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from app.models.report import Report

PROGRESS_FIELDS = ("research_progress", "analysis_progress", "compilation_progress")


class SessionStatus(StrEnum):
    CREATED = "created"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ResearchPhase(StrEnum):
    CREATED = "created"
    DERIVING_REQUIREMENTS = "deriving_requirements"
    SEARCHING = "searching"
    ANALYZING = "analyzing"
    SYNTHESIZING = "synthesizing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ERROR})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class BusinessProfile:
    company_name: str
    industry: str
    region: str
    supply_chain_concern: str = ""
    generation_api_key: str = field(default="", repr=False)
    search_api_key: str = field(default="", repr=False)

    def prompt_context(self) -> dict[str, str]:
        """Business details that may be shown to the model (never the keys)."""
        context = {
            "companyName": self.company_name,
            "industry": self.industry,
            "region": self.region,
        }
        if self.supply_chain_concern:
            context["supplyChainConcern"] = self.supply_chain_concern
        return context


@dataclass(frozen=True, slots=True)
class ResearchSession:
    """Immutable snapshot of one research run; the store swaps whole records."""

    id: int
    status: SessionStatus = SessionStatus.CREATED
    phase: ResearchPhase = ResearchPhase.CREATED
    requirements: str | None = None
    research_queries: tuple[str, ...] = ()
    research_progress: int = 0
    analysis_progress: int = 0
    compilation_progress: int = 0
    sources: tuple[str, ...] = ()
    search_results: tuple[dict[str, Any], ...] = ()
    results: Report | None = None
    error_message: str | None = None
    error_kind: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "phase": self.phase.value,
            "requirements": self.requirements,
            "researchQueries": list(self.research_queries),
            "researchProgress": self.research_progress,
            "analysisProgress": self.analysis_progress,
            "compilationProgress": self.compilation_progress,
            "sources": list(self.sources),
            "results": self.results.to_payload() if self.results is not None else None,
            "errorMessage": self.error_message,
            "errorKind": self.error_kind,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
