"""Optional context feeds derived from earlier sessions and project analytics."""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from interview_session.scope import Collection, PriorSession, Project, QuestionPerformance, ThemeStat
from observability.logger import log_event
from services.text_utils import truncate

from .types import (
    AdditionalQuestionContext,
    AnalyticsHypothesis,
    CompactTheme,
    CrossSessionContext,
    FlagCount,
    HypothesesContext,
    PriorSessionSummaries,
    QuestionQualityInsight,
)

DEFAULT_THRESHOLD = 5

MAX_THEMES_PER_QUESTION = 3
MAX_EMERGENT_THEMES = 2
MAX_CUE_LENGTH = 120
QUALITY_ALERT_THRESHOLD = 65
MIN_RESPONSE_COUNT_FOR_ALERT = 2
MIN_FLAG_COUNT_FOR_ALERT = 2
MAX_TOP_FLAGS_PER_QUESTION = 2

MAX_ANALYTICS_HYPOTHESES = 8
MAX_HYPOTHESIS_LENGTH = 150
MAX_RELATED_THEMES_PER_HYPOTHESIS = 3
HYPOTHESIS_RECOMMENDATION_TYPES = frozenset({"explore_deeper", "coverage_gap", "needs_probing"})
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

MAX_PRIOR_SESSIONS_FOR_AQ = 10


def _compact(theme: ThemeStat) -> CompactTheme:
    return CompactTheme(
        theme=theme.theme,
        prevalence=theme.prevalence,
        cue=truncate(theme.description, MAX_CUE_LENGTH),
    )


def _group_themes(themes: Sequence[ThemeStat]) -> Dict[int, List[CompactTheme]]:
    grouped: Dict[int, List[CompactTheme]] = {}
    for theme in themes:
        if theme.is_emergent:
            continue
        for question_index in theme.related_questions:
            bucket = grouped.setdefault(question_index, [])
            if len(bucket) < MAX_THEMES_PER_QUESTION:
                bucket.append(_compact(theme))
    return grouped


def _emergent(themes: Sequence[ThemeStat]) -> List[CompactTheme]:
    ranked = sorted((t for t in themes if t.is_emergent), key=lambda t: t.prevalence, reverse=True)
    return [_compact(theme) for theme in ranked[:MAX_EMERGENT_THEMES]]


def _quality_alert(perf: QuestionPerformance) -> Optional[QuestionQualityInsight]:
    if perf.question_index < 0 or perf.response_count < MIN_RESPONSE_COUNT_FOR_ALERT:
        return None

    low_quality = 0 < perf.avg_quality_score < QUALITY_ALERT_THRESHOLD
    brief = perf.response_richness == "brief"
    narrow = perf.perspective_range == "narrow"
    flags = sorted(
        (
            FlagCount(flag=flag, count=count)
            for flag, count in perf.quality_flag_counts.items()
            if count >= MIN_FLAG_COUNT_FOR_ALERT
        ),
        key=lambda item: (-item.count, item.flag),
    )[:MAX_TOP_FLAGS_PER_QUESTION]

    if not (low_quality or brief or narrow or flags):
        return None
    return QuestionQualityInsight(
        question_index=perf.question_index,
        response_count=perf.response_count,
        avg_quality_score=perf.avg_quality_score,
        response_richness=perf.response_richness,
        avg_word_count=perf.avg_word_count,
        top_flags=flags,
        perspective_range=perf.perspective_range,
    )


def build_cross_session_context(project: Optional[Project], collection: Optional[Collection]) -> CrossSessionContext:
    """Themes and quality alerts from already-analyzed sessions in the collection."""

    if project is None or not project.cross_interview_context:
        return CrossSessionContext(enabled=False, reason="feature_disabled_on_project")

    threshold = project.cross_interview_threshold
    analyzed = collection.analyzed_session_count if collection else 0
    if analyzed < threshold:
        return CrossSessionContext(
            enabled=False,
            reason=f"threshold_unmet ({analyzed}/{threshold} sessions analyzed)",
        )

    analytics = collection.analytics_data if collection else None
    if analytics is None or not (analytics.themes or analytics.question_performance):
        return CrossSessionContext(enabled=False, reason="no_actionable_cross_interview_context")

    themes_by_question = _group_themes(analytics.themes)
    emergent = _emergent(analytics.themes)
    insights: Dict[int, QuestionQualityInsight] = {}
    for perf in analytics.question_performance:
        alert = _quality_alert(perf)
        if alert is not None:
            insights[perf.question_index] = alert

    if not (themes_by_question or emergent or insights):
        return CrossSessionContext(enabled=False, reason="no_actionable_cross_interview_context")

    return CrossSessionContext(
        enabled=True,
        prior_session_count=analyzed,
        snapshot_generated_at=analytics.generated_at or collection.last_analyzed_at,
        themes_by_question=themes_by_question,
        emergent_themes=emergent,
        quality_insights_by_question=insights,
    )


def _hypothesis_text(title: str, description: str) -> str:
    return truncate(f"{title}: {description}", MAX_HYPOTHESIS_LENGTH)


def build_hypotheses_context(project: Optional[Project]) -> HypothesesContext:
    """Project analytics recast as hypotheses for the advisor to test."""

    if project is None or not project.analytics_guided_hypotheses:
        return HypothesesContext(enabled=False, reason="feature_disabled_on_project")
    analytics = project.analytics_data
    if analytics is None:
        return HypothesesContext(enabled=False, reason="no_project_analytics")

    total = analytics.project_metrics.total_sessions
    threshold = project.analytics_hypotheses_min_sessions
    if total < threshold:
        return HypothesesContext(enabled=False, reason=f"threshold_unmet ({total}/{threshold} sessions)")

    hypotheses: List[AnalyticsHypothesis] = []

    for rec in analytics.recommendations:
        if len(hypotheses) >= MAX_ANALYTICS_HYPOTHESES:
            break
        if rec.type not in HYPOTHESIS_RECOMMENDATION_TYPES:
            continue
        if not rec.related_questions and not rec.related_themes:
            continue
        hypotheses.append(
            AnalyticsHypothesis(
                hypothesis=_hypothesis_text(rec.title, rec.description),
                source="recommendation",
                priority=rec.priority,
                related_question_indices=list(rec.related_questions),
                related_themes=rec.related_themes[:MAX_RELATED_THEMES_PER_HYPOTHESIS],
            )
        )

    action_items = analytics.contextual_recommendations.action_items if analytics.contextual_recommendations else []
    for item in action_items:
        if len(hypotheses) >= MAX_ANALYTICS_HYPOTHESES:
            break
        hypotheses.append(
            AnalyticsHypothesis(
                hypothesis=_hypothesis_text(item.title, item.description),
                source="action_item",
                priority=item.priority,
                related_themes=item.related_themes[:MAX_RELATED_THEMES_PER_HYPOTHESIS],
            )
        )

    for insight in analytics.strategic_insights:
        if len(hypotheses) >= MAX_ANALYTICS_HYPOTHESES:
            break
        hypotheses.append(
            AnalyticsHypothesis(
                hypothesis=_hypothesis_text(insight.insight, insight.significance),
                source="strategic_insight",
                priority="medium",
            )
        )

    if not hypotheses:
        return HypothesesContext(enabled=False, reason="no_mappable_hypotheses")

    # sorted() is stable, so source order survives within a priority band.
    hypotheses = sorted(hypotheses, key=lambda h: PRIORITY_ORDER[h.priority])
    return HypothesesContext(
        enabled=True,
        analytics_generated_at=analytics.generated_at,
        total_project_sessions=total,
        hypotheses=hypotheses,
    )


def build_additional_question_context(
    project: Optional[Project],
    sessions: Sequence[PriorSession],
    current_session_id: str,
) -> AdditionalQuestionContext:
    """Summaries from completed sibling sessions, used when generating extra questions."""

    if project is None:
        return AdditionalQuestionContext(enabled=False, reason="project_not_found")
    if not project.cross_interview_context:
        return AdditionalQuestionContext(enabled=False, reason="feature_disabled_on_project")

    threshold = project.cross_interview_threshold
    eligible = [
        session
        for session in sessions
        if session.id != current_session_id
        and session.status == "completed"
        and session.question_summaries
    ]
    if len(eligible) < threshold:
        return AdditionalQuestionContext(
            enabled=False,
            reason=f"threshold_unmet ({len(eligible)}/{threshold} completed sessions with summaries)",
        )

    capped = eligible[:MAX_PRIOR_SESSIONS_FOR_AQ]
    log_event("enrichment.additional_context", current_session_id, prior_sessions=len(capped))
    return AdditionalQuestionContext(
        enabled=True,
        prior_session_summaries=[
            PriorSessionSummaries(session_id=session.id, summaries=list(session.question_summaries or []))
            for session in capped
        ],
    )


__all__ = [
    "MAX_PRIOR_SESSIONS_FOR_AQ",
    "build_additional_question_context",
    "build_cross_session_context",
    "build_hypotheses_context",
]
