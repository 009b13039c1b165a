"""Pydantic schemas for experts, scenarios, analyses and their results."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Any model name is accepted; claude-* names route to Anthropic, the rest to OpenAI
DEFAULT_LLM_MODEL = "gpt-4o-mini"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model: snake_case in Python and storage, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExpertiseLevel(str, Enum):
    SPECIALIST = "specialist"
    EXPERT = "expert"
    SENIOR = "senior"


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


TERMINAL_STATUSES = frozenset(
    {AnalysisStatus.COMPLETED, AnalysisStatus.FAILED, AnalysisStatus.STOPPED}
)
ACTIVE_STATUSES = frozenset({AnalysisStatus.PENDING, AnalysisStatus.RUNNING})


# =============================================================================
# Experts
# =============================================================================


class ExpertPrediction(CamelModel):
    """Predicted profile for an expert, generated or synthesized from the name."""

    role: str = ""
    specialization: str = ""
    expertise_level: ExpertiseLevel = ExpertiseLevel.EXPERT
    sub_specializations: list[str] = Field(default_factory=list)
    information_sources: list[str] = Field(default_factory=list)
    research_focus: str = ""

    def has_content(self) -> bool:
        """True if any descriptive field carries something usable."""
        return bool(
            self.role.strip()
            or self.specialization.strip()
            or self.sub_specializations
            or self.information_sources
            or self.research_focus.strip()
        )

    def is_complete(self) -> bool:
        """True if every field is populated."""
        return bool(
            self.role.strip()
            and self.specialization.strip()
            and self.sub_specializations
            and self.information_sources
            and self.research_focus.strip()
        )


class ExpertCreate(CamelModel):
    """Request body for creating an expert."""

    name: str = Field(..., min_length=1, description="Display name, used as the persona")
    role: str = Field(..., min_length=1, description="Role description")
    specialization: str = Field(default="", description="Primary specialization")
    sub_specializations: list[str] = Field(default_factory=list)
    information_sources: list[str] = Field(default_factory=list)
    expertise_level: ExpertiseLevel = ExpertiseLevel.EXPERT
    research_focus: str = ""


class Expert(ExpertCreate):
    id: str
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Scenarios
# =============================================================================


class ScenarioCreate(CamelModel):
    """Request body for creating a scenario."""

    theme: str = Field(..., min_length=1, description="Future theme to analyze")
    current_strategy: str = Field(..., min_length=1, description="Current business strategy")
    target_years: list[int] = Field(..., min_length=1, description="Years to forecast")
    character_count: int = Field(default=1000, ge=500, le=2500)
    model: str = Field(default=DEFAULT_LLM_MODEL, min_length=1)

    @field_validator("target_years")
    @classmethod
    def _normalize_years(cls, years: list[int]) -> list[int]:
        normalized = sorted(set(years))
        if any(year < 1900 or year > 2300 for year in normalized):
            raise ValueError("target years must be between 1900 and 2300")
        return normalized


class Scenario(ScenarioCreate):
    id: str
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Analysis results
# =============================================================================


class ExpertAnalysis(CamelModel):
    expert: str
    content: str
    recommendations: list[str] = Field(default_factory=list)


class PhaseResult(CamelModel):
    phase: int = Field(..., ge=1, le=5)
    title: str
    content: str
    analyses: list[ExpertAnalysis] | None = None
    recommendations: list[str] | None = None


class YearResult(CamelModel):
    year: int
    phases: list[PhaseResult] = Field(default_factory=list)


class AnalysisResults(CamelModel):
    years: list[YearResult] = Field(default_factory=list)
    # Fan-out tasks that failed and were left out of the years above
    failures: list[dict] = Field(default_factory=list)
    # Set instead of years when the whole run failed
    error: str | None = None


class PartialExpertAnalysis(CamelModel):
    expert: str
    year: int
    content: str
    recommendations: list[str] = Field(default_factory=list)
    completed_at: str


class PartialYearScenario(CamelModel):
    year: int
    content: str
    completed_at: str


class PartialPhaseResult(CamelModel):
    phase: int
    title: str
    content: str
    completed_at: str


class PartialResults(CamelModel):
    expert_analyses: list[PartialExpertAnalysis] = Field(default_factory=list)
    year_scenarios: list[PartialYearScenario] = Field(default_factory=list)
    phase_results: list[PartialPhaseResult] = Field(default_factory=list)


class Analysis(CamelModel):
    id: str
    scenario_id: str
    status: AnalysisStatus = AnalysisStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    current_phase: int = Field(default=1, ge=1, le=5)
    results: AnalysisResults | None = None
    partial_results: PartialResults = Field(default_factory=PartialResults)
    markdown_report: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# =============================================================================
# API request/response bodies
# =============================================================================


class StartAnalysisRequest(CamelModel):
    scenario_id: str | None = None


class StartAnalysisResponse(CamelModel):
    analysis_id: str
    status: str = "started"


class StopAnalysisResponse(CamelModel):
    analysis_id: str
    status: AnalysisStatus


class PredictExpertRequest(CamelModel):
    name: str = Field(..., max_length=200)


class PredictionErrorCode(str, Enum):
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    AUTH_FAILED = "AUTH_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    NO_CONTENT = "NO_CONTENT"
    SERVICE_ERROR = "SERVICE_ERROR"


class PredictionErrorBody(BaseModel):
    message: str
    code: PredictionErrorCode
