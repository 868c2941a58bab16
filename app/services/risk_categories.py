"""Supply chain risk taxonomy and report post-processing.

The category table is data: callers (and tests) may pass a smaller table to any
function here. Keyword matching is a case-insensitive substring count; the first
category in table order wins ties.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from app.models.report import RiskFactor

CATEGORY_TABLE_VERSION = "2025.1"
OTHER_CATEGORY = "Other Supply Chain Risk"
BACKFILL_SOURCE = "Industry Analysis"
BACKFILL_SCORE = 5


@dataclass(frozen=True, slots=True)
class RiskCategory:
    name: str
    keywords: tuple[str, ...]
    focus: str = ""


SUPPLY_CHAIN_RISK_CATEGORIES: tuple[RiskCategory, ...] = (
    RiskCategory(
        "Supply Chain Disruptions & Geopolitical Issues",
        (
            "geopolitical",
            "conflict",
            "war",
            "trade war",
            "sanctions",
            "political instability",
            "trade restrictions",
            "border delays",
            "diplomatic tensions",
        ),
        "conflicts, political instability and trade restrictions affecting trade routes",
    ),
    RiskCategory(
        "Shipping & Logistics Bottlenecks",
        (
            "port congestion",
            "shipping delays",
            "container shortage",
            "freight costs",
            "logistics bottleneck",
            "transportation delays",
            "last mile",
            "fuel prices",
            "vessel capacity",
        ),
        "port congestion, container shortages and freight costs",
    ),
    RiskCategory(
        "Inflation & Rising Costs",
        (
            "inflation",
            "cost increase",
            "price surge",
            "raw material costs",
            "labor costs",
            "transportation costs",
            "currency fluctuation",
            "exchange rate",
            "price volatility",
        ),
        "raw material, labor and transportation costs, currency fluctuations",
    ),
    RiskCategory(
        "Lack of Supply Chain Visibility",
        (
            "visibility",
            "transparency",
            "tracking",
            "monitoring",
            "real-time data",
            "predictive analytics",
            "blind spots",
            "information sharing",
            "data silos",
        ),
        "outdated tracking systems, missing real-time data",
    ),
    RiskCategory(
        "Labor Shortages & Workforce Challenges",
        (
            "labor shortage",
            "workforce",
            "talent gap",
            "skills shortage",
            "automation",
            "worker retention",
            "staffing",
            "employee turnover",
            "labor market",
        ),
        "skilled labor shortages in warehousing, trucking and logistics",
    ),
    RiskCategory(
        "Cybersecurity Risks & Data Breaches",
        (
            "cybersecurity",
            "data breach",
            "ransomware",
            "phishing",
            "cyber attack",
            "information security",
            "digital vulnerability",
            "hacking",
            "data protection",
        ),
        "ransomware and phishing attacks, vulnerable logistics software and IoT devices",
    ),
    RiskCategory(
        "Sustainability & ESG Compliance",
        (
            "sustainability",
            "ESG",
            "carbon footprint",
            "emissions",
            "environmental regulations",
            "green logistics",
            "sustainable sourcing",
            "climate impact",
            "ethical sourcing",
        ),
        "carbon footprint and stricter environmental regulations",
    ),
    RiskCategory(
        "Over-reliance on Single Suppliers & Lack of Resilience",
        (
            "single supplier",
            "supplier concentration",
            "china dependence",
            "reshoring",
            "nearshoring",
            "supplier diversification",
            "backup suppliers",
            "resilience",
            "dependency",
        ),
        "dependence on single countries or suppliers, diversification and reshoring",
    ),
    RiskCategory(
        "Demand Forecasting Challenges",
        (
            "demand forecasting",
            "inventory planning",
            "stockouts",
            "overstocking",
            "demand volatility",
            "consumer behavior",
            "market prediction",
            "sales forecasting",
            "inventory optimization",
        ),
        "unpredictable consumer behavior and underused AI-driven planning",
    ),
    RiskCategory(
        "Regulatory & Compliance Challenges",
        (
            "regulatory",
            "compliance",
            "trade laws",
            "tariffs",
            "import regulations",
            "export controls",
            "customs",
            "safety standards",
            "quality standards",
        ),
        "changing trade laws, tax regulations and compliance requirements",
    ),
)


def describe_categories(categories: Sequence[RiskCategory] = SUPPLY_CHAIN_RISK_CATEGORIES) -> str:
    """Numbered category list for prompts."""
    lines = []
    for index, category in enumerate(categories, 1):
        suffix = f" ({category.focus})" if category.focus else ""
        lines.append(f"{index}. {category.name}{suffix}")
    return "\n".join(lines)


def infer_category(
    text: str,
    categories: Sequence[RiskCategory] = SUPPLY_CHAIN_RISK_CATEGORIES,
) -> str:
    lowered = (text or "").lower()
    best_category: str | None = None
    highest = 0
    for category in categories:
        matches = sum(1 for keyword in category.keywords if keyword.lower() in lowered)
        if matches > highest:
            highest = matches
            best_category = category.name
    return best_category or OTHER_CATEGORY


def assign_missing_categories(
    risks: list[RiskFactor],
    categories: Sequence[RiskCategory] = SUPPLY_CHAIN_RISK_CATEGORIES,
) -> list[RiskFactor]:
    return [
        risk if risk.category else risk.model_copy(update={"category": infer_category(risk.factor, categories)})
        for risk in risks
    ]


def backfill_categories(
    risks: list[RiskFactor],
    *,
    industry: str,
    region: str,
    categories: Sequence[RiskCategory] = SUPPLY_CHAIN_RISK_CATEGORIES,
    min_categories: int = 5,
    max_risks: int = 10,
) -> list[RiskFactor]:
    """Append placeholder risks for unrepresented categories.

    Only runs when fewer than ``min_categories`` distinct categories are present
    and fewer than ``max_risks`` risks exist; stops at whichever limit is hit
    first. An empty list stays empty so a report without findings still reads
    as "no data".
    """
    present = {risk.category for risk in risks}
    if not risks or len(present) >= min_categories or len(risks) >= max_risks:
        return list(risks)

    filled = list(risks)
    for category in categories:
        if len(present) >= min_categories or len(filled) >= max_risks:
            break
        if category.name in present:
            continue
        filled.append(
            RiskFactor(
                factor=f"{category.name} affecting {industry} in {region}",
                score=BACKFILL_SCORE,
                source=BACKFILL_SOURCE,
                source_url="",
                category=category.name,
            )
        )
        present.add(category.name)
    return filled


def sort_by_score(risks: list[RiskFactor]) -> list[RiskFactor]:
    # sorted() is stable with reverse=True, so equal scores keep their order.
    return sorted(risks, key=lambda risk: risk.score or 0, reverse=True)


def post_process_risks(
    risks: list[RiskFactor],
    *,
    industry: str,
    region: str,
    categories: Sequence[RiskCategory] = SUPPLY_CHAIN_RISK_CATEGORIES,
    min_categories: int = 5,
    max_risks: int = 10,
) -> list[RiskFactor]:
    """Categorize, diversify and rank the report's top risks."""
    categorized = assign_missing_categories(risks, categories)
    diversified = backfill_categories(
        categorized,
        industry=industry,
        region=region,
        categories=categories,
        min_categories=min_categories,
        max_risks=max_risks,
    )
    return sort_by_score(diversified)
