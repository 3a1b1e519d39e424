"""Shared type definitions for agents."""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from interview_session.metrics import QuestionMetrics
from interview_session.models import GuidanceAction, QuestionSummary, TurnEntry
from interview_session.scope import Priority

CoverageLevel = Literal["mentioned", "partially_covered", "fully_covered"]
HypothesisSource = Literal["recommendation", "action_item", "strategic_insight"]


class AdvisorGuidance(BaseModel):
    action: GuidanceAction = GuidanceAction.NONE
    message: str = ""
    confidence: float = 0.0
    reasoning: str = ""

    @field_validator("action", mode="before")
    @classmethod
    def _closed_action(cls, value: Any) -> GuidanceAction:
        return GuidanceAction.parse(value)

    @field_validator("message", "reasoning", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _bounded(cls, value: Any) -> float:
        if value is None or value == "":
            return 0.0
        return min(1.0, max(0.0, float(value)))


class TopicOverlapResult(BaseModel):
    has_overlap: bool = False
    overlapping_topics: List[str] = Field(default_factory=list)
    coverage_level: CoverageLevel = "mentioned"
    source_question_index: Optional[int] = None

    @field_validator("overlapping_topics", mode="before")
    @classmethod
    def _clean_topics(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(topic).strip() for topic in value if str(topic).strip()][:3]

    @model_validator(mode="after")
    def _require_topics(self) -> "TopicOverlapResult":  # Overlap without a named topic is no overlap
        if self.has_overlap and not self.overlapping_topics:
            self.has_overlap = False
        return self


class CompactTheme(BaseModel):
    model_config = ConfigDict(frozen=True)

    theme: str
    prevalence: float
    cue: str


class FlagCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    flag: str
    count: int


class QuestionQualityInsight(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_index: int
    response_count: int
    avg_quality_score: float
    response_richness: Optional[str] = None
    avg_word_count: float
    top_flags: List[FlagCount] = Field(default_factory=list)
    perspective_range: Optional[str] = None


class CrossSessionContext(BaseModel):
    """Collection-level themes and quality alerts, computed once per session."""

    model_config = ConfigDict(frozen=True)

    enabled: bool
    reason: Optional[str] = None
    prior_session_count: Optional[int] = None
    snapshot_generated_at: Optional[int] = None
    themes_by_question: Dict[int, List[CompactTheme]] = Field(default_factory=dict)
    emergent_themes: List[CompactTheme] = Field(default_factory=list)
    quality_insights_by_question: Dict[int, QuestionQualityInsight] = Field(default_factory=dict)


class AnalyticsHypothesis(BaseModel):
    model_config = ConfigDict(frozen=True)

    hypothesis: str
    source: HypothesisSource
    priority: Priority
    related_question_indices: List[int] = Field(default_factory=list)
    related_themes: List[str] = Field(default_factory=list)


class HypothesesContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool
    reason: Optional[str] = None
    analytics_generated_at: Optional[int] = None
    total_project_sessions: Optional[int] = None
    hypotheses: List[AnalyticsHypothesis] = Field(default_factory=list)


class PriorSessionSummaries(BaseModel):
    session_id: str
    summaries: List[QuestionSummary]


class AdditionalQuestionContext(BaseModel):
    enabled: bool
    reason: Optional[str] = None
    prior_session_summaries: List[PriorSessionSummaries] = Field(default_factory=list)


class CrossSessionSlice(BaseModel):  # Per-question view of CrossSessionContext
    prior_session_count: int
    snapshot_generated_at: Optional[int] = None
    question_themes: List[CompactTheme] = Field(default_factory=list)
    emergent_themes: List[CompactTheme] = Field(default_factory=list)
    current_question_quality: Optional[QuestionQualityInsight] = None
    upcoming_quality_alerts: List[QuestionQualityInsight] = Field(default_factory=list)


class HypothesisView(BaseModel):
    hypothesis: str
    source: HypothesisSource
    priority: Priority
    is_current_question_relevant: bool


class HypothesesSlice(BaseModel):
    total_project_sessions: int
    analytics_generated_at: Optional[int] = None
    hypotheses: List[HypothesisView] = Field(default_factory=list)


class QuestionBrief(BaseModel):
    text: str
    guidance: str = ""


class AdvisorInput(BaseModel):
    """Everything the advisor sees for one evaluated turn."""

    transcript: List[TurnEntry]
    previous_summaries: List[QuestionSummary] = Field(default_factory=list)
    current_question_index: int
    current_question: QuestionBrief
    all_questions: List[QuestionBrief] = Field(default_factory=list)
    metrics: QuestionMetrics
    template_objective: str = ""
    template_tone: str = "professional"
    cross_session: Optional[CrossSessionSlice] = None
    hypotheses: Optional[HypothesesSlice] = None
