from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from loguru import logger
from pydantic import ValidationError

from app.config import settings
from app.llm_client import PROVIDER_NAME, GenerationClient, GenerationGateway, extract_json_object
from app.models.errors import (
    NO_RESULTS_MESSAGE,
    GenerationParseError,
    NoResultsError,
    ResearchCancelled,
    ResearchError,
    SessionNotFound,
    SessionStateError,
    as_research_error,
)
from app.models.report import RISK_LEVELS, Report, risk_level_for_score
from app.models.session import BusinessProfile, ResearchPhase, ResearchSession, SessionStatus
from app.services import logger as log_service
from app.services import search_executor
from app.services.prompt_store import render_prompt
from app.services.risk_categories import (
    CATEGORY_TABLE_VERSION,
    SUPPLY_CHAIN_RISK_CATEGORIES,
    RiskCategory,
    describe_categories,
    post_process_risks,
)
from app.services.search_executor import SearchFn
from app.services.session_store import SessionStore
from app.tools import serper_search

CANCELLED_MESSAGE = "Research was cancelled."


class ResearchOrchestrator:
    """Drives one session at a time through the research pipeline.

    Flow:
      1. Derive requirements and search queries from the business profile
      2. Fan out one search per query, all-settle join
      3. Analysis bookkeeping beat
      4. Synthesize and post-process the risk report

    The session store is the only output channel: every phase writes its
    results and progress there, and failures become an ``error`` record.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        generation_client_factory: Callable[[str], GenerationGateway] = GenerationClient,
        search_fn: SearchFn = serper_search.search,
        categories: Sequence[RiskCategory] = SUPPLY_CHAIN_RISK_CATEGORIES,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.generation_client_factory = generation_client_factory
        self.search_fn = search_fn
        self.categories = categories
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.search_max_parallel_requests = max(int(settings.search_max_parallel_requests), 1)
        self.search_timeout_seconds = float(settings.search_timeout_seconds)
        self._tasks: dict[int, asyncio.Task] = {}

    async def start(self, session_id: int, profile: BusinessProfile) -> asyncio.Task:
        """Mark the session processing and run the pipeline as a detached task."""
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        if session.status != SessionStatus.CREATED:
            raise SessionStateError(
                f"Research session {session_id} has already been started ({session.status.value})"
            )

        await self.store.update(
            session_id,
            status=SessionStatus.PROCESSING,
            phase=ResearchPhase.DERIVING_REQUIREMENTS,
        )
        task = asyncio.create_task(self.run(session_id, profile), name=f"research-{session_id}")
        self._tasks[session_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(session_id, None))
        log_service.log_event(
            event_type="research_started",
            message=f"Research started for {profile.company_name}",
            session_id=session_id,
            industry=profile.industry,
            region=profile.region,
        )
        return task

    def is_running(self, session_id: int) -> bool:
        return session_id in self._tasks

    async def cancel(self, session_id: int) -> bool:
        """Cancel the running task and wait until the session is terminal."""
        task = self._tasks.get(session_id)
        if task is None or task.done():
            return False
        if not task.cancel():
            return False
        await asyncio.wait({task})

        # A task cancelled before its first step never enters run().
        session = await self.store.get(session_id)
        if session is not None and not session.is_terminal:
            await self._fail(session_id, ResearchCancelled(CANCELLED_MESSAGE), step="cancelled")
        return True

    async def run(self, session_id: int, profile: BusinessProfile) -> ResearchSession:
        """Execute phases 1-4 and return the final snapshot.

        Pipeline failures are recorded on the session, never raised.
        """
        started = time.monotonic()
        try:
            await self._ensure_processing(session_id)
            queries = await self._derive_requirements(session_id, profile)
            results = await self._research(session_id, profile, queries)
            await self._analyze(session_id, results)
            await self._synthesize(session_id, profile, results)
        except asyncio.CancelledError:
            await self._fail(session_id, ResearchCancelled(CANCELLED_MESSAGE), step="cancelled")
            raise
        except ResearchError as e:
            await self._fail(session_id, e)
        except Exception as e:
            logger.exception(f"Unexpected error in research session {session_id}")
            await self._fail(session_id, as_research_error(e))
        else:
            log_service.log_event(
                event_type="research_complete",
                message="Research session completed",
                session_id=session_id,
                runtime_ms=int((time.monotonic() - started) * 1000),
            )

        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def _ensure_processing(self, session_id: int) -> None:
        # run() may be called directly, without start().
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        if session.status == SessionStatus.CREATED:
            await self.store.update(
                session_id,
                status=SessionStatus.PROCESSING,
                phase=ResearchPhase.DERIVING_REQUIREMENTS,
            )
        elif session.status != SessionStatus.PROCESSING:
            raise SessionStateError(
                f"Research session {session_id} is already {session.status.value}"
            )

    # Phase 1

    async def _derive_requirements(
        self, session_id: int, profile: BusinessProfile
    ) -> list[str]:
        log_service.log_research_step(session_id, "requirements", "running")
        client = self.generation_client_factory(profile.generation_api_key)
        prompt = render_prompt("research.requirements", **self._prompt_values(profile))
        raw = await client.generate(prompt, caller="requirements")
        parsed = extract_json_object(raw)

        requirements = parsed.get("requirements")
        queries = parsed.get("searchQueries")
        if not isinstance(requirements, str) or not requirements.strip():
            raise GenerationParseError(
                f"{PROVIDER_NAME} response is missing the research requirements. "
                "Please try again with more specific business details."
            )
        if not isinstance(queries, list):
            raise GenerationParseError(
                f"{PROVIDER_NAME} response is missing the search queries. "
                "Please try again with more specific business details."
            )
        queries = [q.strip() for q in queries if isinstance(q, str) and q.strip()]
        if not queries:
            raise GenerationParseError(
                f"{PROVIDER_NAME} returned no usable search queries. "
                "Please try again with more specific business details."
            )

        await self.store.update(
            session_id,
            requirements=requirements,
            research_queries=tuple(queries),
            research_progress=20,
            phase=ResearchPhase.SEARCHING,
        )
        log_service.log_research_step(
            session_id, "requirements", "completed", {"query_count": len(queries)}
        )
        return queries

    # Phase 2

    async def _research(
        self, session_id: int, profile: BusinessProfile, queries: list[str]
    ) -> list[serper_search.SearchResult]:
        log_service.log_research_step(session_id, "search", "running", {"queries": queries})
        step = 80 // len(queries)

        async def on_complete() -> None:
            await self.store.advance_progress(session_id, "research_progress", step)

        result_lists = await search_executor.run_concurrent_searches(
            queries,
            search_fn=self.search_fn,
            api_key=profile.search_api_key,
            on_complete=on_complete,
            max_parallel=self.search_max_parallel_requests,
            timeout=self.search_timeout_seconds,
            session_id=session_id,
        )
        results = search_executor.flatten(result_lists)
        if not results:
            raise NoResultsError(NO_RESULTS_MESSAGE)

        results = search_executor.sort_by_recency(results, now=self.clock())
        sources = search_executor.collect_sources(results)
        await self.store.update(
            session_id,
            research_progress=100,
            sources=sources,
            search_results=tuple(serper_search.results_to_dicts(results)),
            analysis_progress=30,
            phase=ResearchPhase.ANALYZING,
        )
        log_service.log_research_step(
            session_id,
            "search",
            "completed",
            {
                "result_count": len(results),
                "source_count": len(sources),
                "failed_or_empty_queries": sum(1 for r in result_lists if not r),
            },
        )
        return results

    # Phase 3

    async def _analyze(self, session_id: int, results: list[serper_search.SearchResult]) -> None:
        await self.store.update(
            session_id,
            analysis_progress=100,
            compilation_progress=40,
            phase=ResearchPhase.SYNTHESIZING,
        )
        dated = sum(1 for r in results if r.published_date)
        log_service.log_research_step(
            session_id, "analysis", "completed", {"results": len(results), "dated_results": dated}
        )

    # Phase 4

    async def _synthesize(
        self,
        session_id: int,
        profile: BusinessProfile,
        results: list[serper_search.SearchResult],
    ) -> None:
        log_service.log_research_step(session_id, "synthesis", "running")
        client = self.generation_client_factory(profile.generation_api_key)
        prompt = render_prompt(
            "research.report",
            search_results_json=json.dumps(
                search_executor.results_for_prompt(results), indent=2, ensure_ascii=False
            ),
            **self._prompt_values(profile),
        )
        raw = await client.generate(prompt, caller="report")
        parsed = extract_json_object(raw)
        try:
            report = Report.model_validate(parsed)
        except ValidationError as e:
            raise GenerationParseError(
                f"{PROVIDER_NAME} returned a risk report in an unexpected format. "
                "Please try again with more specific business details."
            ) from e
        await self.store.update(session_id, compilation_progress=90)

        report = self._finalize_report(report, profile)
        await self.store.update(
            session_id,
            results=report,
            compilation_progress=100,
            status=SessionStatus.COMPLETED,
            phase=ResearchPhase.COMPLETED,
        )
        log_service.log_research_step(
            session_id,
            "synthesis",
            "completed",
            {
                "overall_risk_score": report.overall_risk_score,
                "top_risks": len(report.top_risks),
                "key_insights": len(report.key_insights),
                "category_table": CATEGORY_TABLE_VERSION,
            },
        )

    def _finalize_report(self, report: Report, profile: BusinessProfile) -> Report:
        top_risks = post_process_risks(
            report.top_risks,
            industry=profile.industry,
            region=profile.region,
            categories=self.categories,
            min_categories=settings.min_risk_categories,
            max_risks=settings.max_top_risks,
        )
        risk_level = report.risk_level
        if risk_level not in RISK_LEVELS:
            risk_level = risk_level_for_score(report.overall_risk_score)
        return report.model_copy(update={"top_risks": top_risks, "risk_level": risk_level})

    def _prompt_values(self, profile: BusinessProfile) -> dict[str, Any]:
        now = self.clock()
        return {
            "current_month": now.strftime("%B"),
            "current_year": now.year,
            "categories": describe_categories(self.categories),
            "business_json": json.dumps(profile.prompt_context(), indent=2, ensure_ascii=False),
            "industry": profile.industry,
            "region": profile.region,
        }

    async def _fail(self, session_id: int, error: ResearchError, *, step: str = "pipeline") -> None:
        log_service.log_research_step(
            session_id, step, "error", {"kind": error.kind, "message": error.user_message}
        )
        try:
            await self.store.update(
                session_id,
                status=SessionStatus.ERROR,
                phase=ResearchPhase.ERROR,
                error_message=error.user_message,
                error_kind=error.kind,
            )
        except (SessionNotFound, SessionStateError) as e:
            logger.warning(f"Could not record failure for session {session_id}: {e}")
