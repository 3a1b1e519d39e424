"""Project, template and collection snapshots read once per session."""
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import Question, QuestionSummary

Priority = Literal["high", "medium", "low"]


class _Snapshot(BaseModel):
    # Analytics payloads arrive with camelCase keys from the analytics service.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ThemeStat(_Snapshot):
    theme: str
    description: str = ""
    prevalence: float = 0.0
    related_questions: List[int] = Field(default_factory=list)
    is_emergent: bool = False


class QuestionPerformance(_Snapshot):
    question_index: int
    avg_word_count: float = 0.0
    avg_quality_score: float = 0.0
    response_count: int = 0
    quality_flag_counts: Dict[str, int] = Field(default_factory=dict)
    perspective_range: Optional[Literal["narrow", "moderate", "diverse"]] = None
    response_richness: Optional[Literal["brief", "moderate", "detailed"]] = None


class CollectionAnalytics(_Snapshot):
    themes: List[ThemeStat] = Field(default_factory=list)
    question_performance: List[QuestionPerformance] = Field(default_factory=list)
    generated_at: Optional[int] = None


class Recommendation(_Snapshot):
    type: str
    title: str
    description: str = ""
    related_questions: List[int] = Field(default_factory=list)
    related_themes: List[str] = Field(default_factory=list)
    priority: Priority = "medium"


class ActionItem(_Snapshot):
    title: str
    description: str = ""
    priority: Priority = "medium"
    related_themes: List[str] = Field(default_factory=list)


class ContextualRecommendations(_Snapshot):
    action_items: List[ActionItem] = Field(default_factory=list)


class StrategicInsight(_Snapshot):
    insight: str
    significance: str = ""


class ProjectMetrics(_Snapshot):
    total_sessions: int = 0


class ProjectAnalytics(_Snapshot):
    project_metrics: ProjectMetrics = Field(default_factory=ProjectMetrics)
    recommendations: List[Recommendation] = Field(default_factory=list)
    contextual_recommendations: Optional[ContextualRecommendations] = None
    strategic_insights: List[StrategicInsight] = Field(default_factory=list)
    generated_at: Optional[int] = None


class Project(_Snapshot):
    id: str
    workspace_id: Optional[str] = None
    objective: str = ""
    audience_context: Optional[str] = None
    strategic_context: Optional[str] = None
    cross_interview_context: bool = False
    cross_interview_threshold: int = 5
    analytics_guided_hypotheses: bool = False
    analytics_hypotheses_min_sessions: int = 5
    analytics_data: Optional[ProjectAnalytics] = None


class Template(_Snapshot):
    id: str
    objective: str = ""
    tone: str = "professional"
    default_recommended_follow_ups: Optional[int] = None
    questions: List[Question] = Field(default_factory=list)


class Collection(_Snapshot):
    id: str
    max_additional_questions: int = 0
    analyzed_session_count: int = 0
    analytics_data: Optional[CollectionAnalytics] = None
    last_analyzed_at: Optional[int] = None


class PriorSession(_Snapshot):  # Another session in the same collection
    id: str
    status: str
    question_summaries: Optional[List[QuestionSummary]] = None


__all__ = [
    "ActionItem",
    "Collection",
    "CollectionAnalytics",
    "ContextualRecommendations",
    "Priority",
    "PriorSession",
    "Project",
    "ProjectAnalytics",
    "ProjectMetrics",
    "QuestionPerformance",
    "Recommendation",
    "StrategicInsight",
    "Template",
    "ThemeStat",
]
