from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

RISK_LEVELS = ("Low", "Medium", "High", "Critical")


def risk_level_for_score(score: float) -> str:
    """Map an overall 1-100 score to its risk level (40/60/80 thresholds)."""
    if score < 40:
        return "Low"
    if score < 60:
        return "Medium"
    if score < 80:
        return "High"
    return "Critical"


def _coerce_number(value: Any) -> Any:
    # Models often answer "12%", "+3" or "N/A" where a number was requested.
    if isinstance(value, str):
        cleaned = value.strip().rstrip("%").replace(",", "")
        try:
            return float(cleaned)
        except ValueError:
            return None
    return value


class ReportModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class RiskFactor(ReportModel):
    factor: str = ""
    score: float = 0
    source: str = ""
    source_url: Optional[str] = Field(default="", alias="sourceUrl")
    published_date: Optional[str] = Field(default=None, alias="publishedDate")
    category: Optional[str] = None

    @field_validator("score", mode="before")
    @classmethod
    def coerce_score(cls, value: Any) -> Any:
        value = _coerce_number(value)
        return 0 if value is None else value


class KeyInsight(ReportModel):
    title: str = ""
    description: str = ""
    source: str = ""
    source_url: Optional[str] = Field(default="", alias="sourceUrl")
    published_date: Optional[str] = Field(default=None, alias="publishedDate")
    category: Optional[str] = None


class RiskCategoryScore(ReportModel):
    name: str
    business_score: float = Field(default=0, alias="businessScore")
    industry_average: float = Field(default=0, alias="industryAverage")

    @field_validator("business_score", "industry_average", mode="before")
    @classmethod
    def coerce_scores(cls, value: Any) -> Any:
        value = _coerce_number(value)
        return 0 if value is None else value


class CitedMetric(ReportModel):
    insight: str = ""
    source: str = ""
    source_url: Optional[str] = Field(default="", alias="sourceUrl")


class DisruptionMetric(CitedMetric):
    count: Optional[float] = None
    change_from_last_year: Optional[float] = Field(default=None, alias="changeFromLastYear")

    @field_validator("count", "change_from_last_year", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Any:
        return _coerce_number(value)


class CostIncreaseMetric(CitedMetric):
    percentage: Optional[float] = None
    period: str = "YOY"

    @field_validator("percentage", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Any:
        return _coerce_number(value)


class SupplierRiskMetric(CitedMetric):
    percentage: Optional[float] = None
    level: Optional[str] = None

    @field_validator("percentage", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Any:
        return _coerce_number(value)


class Report(ReportModel):
    """Risk assessment produced by the synthesis phase."""

    overall_risk_score: int = Field(default=0, alias="overallRiskScore")
    risk_level: Optional[str] = Field(default=None, alias="riskLevel")
    top_risks: list[RiskFactor] = Field(default_factory=list, alias="topRisks")
    key_insights: list[KeyInsight] = Field(default_factory=list, alias="keyInsights")
    risk_categories: list[RiskCategoryScore] = Field(default_factory=list, alias="riskCategories")
    supply_chain_disruptions: Optional[DisruptionMetric] = Field(default=None, alias="supplyChainDisruptions")
    cost_increase: Optional[CostIncreaseMetric] = Field(default=None, alias="costIncrease")
    supplier_risk: Optional[SupplierRiskMetric] = Field(default=None, alias="supplierRisk")

    @field_validator("overall_risk_score", mode="before")
    @classmethod
    def round_score(cls, value: Any) -> Any:
        value = _coerce_number(value)
        if value is None:
            return 0
        if isinstance(value, float):
            return int(round(value))
        return value

    @field_validator("top_risks", "key_insights", "risk_categories", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def is_displayable(self) -> bool:
        return bool(self.top_risks) and bool(self.key_insights)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
