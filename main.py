"""Arcscan - Supply chain risk research

Simple CLI for running one research session in-process.
"""

import argparse
import asyncio
import json
import sys

from app.agents.orchestrator import ResearchOrchestrator
from app.config import settings
from app.models.session import BusinessProfile, SessionStatus
from app.services.session_store import InMemorySessionStore
from app.services.status_view import build_status_view


async def run_research(profile: BusinessProfile, *, as_json: bool = False) -> int:
    """Run research for the given profile, printing progress as it changes."""
    print(f"Researching supply chain risk for: {profile.company_name}")
    print(f"Industry: {profile.industry} | Region: {profile.region}")
    print("-" * 50)

    store = InMemorySessionStore()
    orchestrator = ResearchOrchestrator(store)
    session = await store.create()
    task = await orchestrator.start(session.id, profile)

    last_step = 0
    while True:
        snapshot = await store.get(session.id)
        view = build_status_view(snapshot)
        if view["currentStep"] != last_step:
            last_step = view["currentStep"]
            print(f"\n[~] Step {last_step}/5: {view['stepTitle']}")
        print(
            f"  research {snapshot.research_progress:3d}% | "
            f"analysis {snapshot.analysis_progress:3d}% | "
            f"compilation {snapshot.compilation_progress:3d}%",
            end="\r",
            flush=True,
        )
        if snapshot.is_terminal:
            break
        await asyncio.sleep(settings.status_poll_interval_seconds)

    await task
    print()

    if snapshot.status == SessionStatus.ERROR:
        print(f"\n[!] Error: {snapshot.error_message}")
        return 1

    if as_json:
        print(json.dumps(snapshot.results.to_payload(), indent=2))
        return 0

    if view["notice"]:
        print(f"\n[*] {view['notice']}")
        return 0

    report = snapshot.results
    print(f"\n[*] Research Complete! Sources: {len(snapshot.sources)}")
    print(f"\n{'=' * 50}")
    print(f"OVERALL RISK: {report.overall_risk_score}/100 ({report.risk_level})")
    print(f"{'=' * 50}")
    print("\nTop risks:")
    for i, risk in enumerate(report.top_risks, 1):
        print(f"  {i}. [{risk.score:g}/10] {risk.factor}")
        print(f"     {risk.category} | {risk.source}")
    print("\nKey insights:")
    for insight in report.key_insights:
        print(f"  - {insight.title}: {insight.description}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Arcscan supply chain risk research")
    parser.add_argument("--company", "-c", required=True, help="Company name")
    parser.add_argument("--industry", "-i", required=True, help="Industry")
    parser.add_argument("--region", "-r", required=True, help="Operating region")
    parser.add_argument("--concern", default="", help="Specific supply chain concern (optional)")
    parser.add_argument("--generation-key", help="Gemini API key (default: GENERATION_API_KEY)")
    parser.add_argument("--search-key", help="Serper API key (default: SERPER_API_KEY)")
    parser.add_argument("--json", action="store_true", help="Print the final report as JSON")

    args = parser.parse_args()

    profile = BusinessProfile(
        company_name=args.company,
        industry=args.industry,
        region=args.region,
        supply_chain_concern=args.concern,
        generation_api_key=args.generation_key or settings.generation_api_key,
        search_api_key=args.search_key or settings.serper_api_key,
    )
    sys.exit(asyncio.run(run_research(profile, as_json=args.json)))


if __name__ == "__main__":
    main()
