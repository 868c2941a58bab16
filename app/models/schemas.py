from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from app.models.session import BusinessProfile


# --- Requests ---


class StartResearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_name: str = Field(alias="companyName", min_length=1)
    industry: str = Field(min_length=1)
    region: str = Field(min_length=1)
    supply_chain_concern: str = Field(default="", alias="supplyChainConcern")
    generation_api_key: str = Field(alias="generationApiKey", min_length=1, repr=False)
    search_api_key: str = Field(alias="searchApiKey", min_length=1, repr=False)

    def to_profile(self) -> BusinessProfile:
        return BusinessProfile(
            company_name=self.company_name.strip(),
            industry=self.industry.strip(),
            region=self.region.strip(),
            supply_chain_concern=(self.supply_chain_concern or "").strip(),
            generation_api_key=self.generation_api_key.strip(),
            search_api_key=self.search_api_key.strip(),
        )


# --- Responses ---


class SessionCreatedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: int = Field(alias="sessionId")


class CancelResponse(BaseModel):
    cancelled: bool


class SourceView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    url: str | None = None
    published_date: str | None = Field(default=None, alias="publishedDate")
    published_time: str | None = Field(default=None, alias="publishedTime")
    potentially_outdated: bool = Field(default=False, alias="potentiallyOutdated")


class StatusViewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: int = Field(alias="sessionId")
    status: str
    phase: str
    current_step: int = Field(alias="currentStep")
    step_title: str = Field(alias="stepTitle")
    is_terminal: bool = Field(alias="isTerminal")
    stalled: bool
    has_displayable_report: bool = Field(alias="hasDisplayableReport")
    notice: str | None = None
    error_message: str | None = Field(default=None, alias="errorMessage")
    sources: list[SourceView] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    service: str
