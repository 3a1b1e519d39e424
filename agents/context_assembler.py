"""Builds the advisor's per-turn input packet."""
from __future__ import annotations

from typing import Optional, Sequence, Tuple

from interview_session.metrics import QuestionMetrics
from interview_session.models import Question, QuestionSummary, TurnEntry

from .types import (
    AdvisorInput,
    CrossSessionContext,
    CrossSessionSlice,
    HypothesesContext,
    HypothesesSlice,
    HypothesisView,
    QuestionBrief,
)

UPCOMING_ALERT_SPAN = 2


def slice_cross_session(context: Optional[CrossSessionContext], question_index: int) -> Optional[CrossSessionSlice]:
    """Themes and alerts relevant to ``question_index``; None when nothing applies."""

    if context is None or not context.enabled:
        return None

    themes = list(context.themes_by_question.get(question_index, []))
    current_quality = context.quality_insights_by_question.get(question_index)
    upcoming = [
        alert
        for index, alert in sorted(context.quality_insights_by_question.items())
        if question_index < index <= question_index + UPCOMING_ALERT_SPAN
    ]
    if not (themes or context.emergent_themes or current_quality or upcoming):
        return None

    return CrossSessionSlice(
        prior_session_count=context.prior_session_count or 0,
        snapshot_generated_at=context.snapshot_generated_at,
        question_themes=themes,
        emergent_themes=list(context.emergent_themes),
        current_question_quality=current_quality,
        upcoming_quality_alerts=upcoming,
    )


def slice_hypotheses(context: Optional[HypothesesContext], question_index: int) -> Optional[HypothesesSlice]:
    if context is None or not context.enabled or not context.hypotheses:
        return None
    return HypothesesSlice(
        total_project_sessions=context.total_project_sessions or 0,
        analytics_generated_at=context.analytics_generated_at,
        hypotheses=[
            HypothesisView(
                hypothesis=item.hypothesis,
                source=item.source,
                priority=item.priority,
                is_current_question_relevant=(
                    not item.related_question_indices or question_index in item.related_question_indices
                ),
            )
            for item in context.hypotheses
        ],
    )


def select_enrichment(
    cross_session: Optional[CrossSessionContext],
    hypotheses: Optional[HypothesesContext],
    question_index: int,
) -> Tuple[Optional[CrossSessionSlice], Optional[HypothesesSlice]]:
    return slice_cross_session(cross_session, question_index), slice_hypotheses(hypotheses, question_index)


def assemble_advisor_input(
    *,
    questions: Sequence[Question],
    question_index: int,
    transcript: Sequence[TurnEntry],
    previous_summaries: Sequence[QuestionSummary],
    metrics: QuestionMetrics,
    template_objective: str = "",
    template_tone: str = "professional",
    cross_session: Optional[CrossSessionContext] = None,
    hypotheses: Optional[HypothesesContext] = None,
) -> AdvisorInput:
    """Pack the working transcript, summaries, metrics and enrichment slices."""

    if not 0 <= question_index < len(questions):
        raise IndexError(f"question_index {question_index} outside 0..{len(questions) - 1}")

    briefs = [QuestionBrief(text=q.text, guidance=q.guidance) for q in questions]
    cross_slice, hypotheses_slice = select_enrichment(cross_session, hypotheses, question_index)
    return AdvisorInput(
        transcript=list(transcript),
        previous_summaries=list(previous_summaries),
        current_question_index=question_index,
        current_question=briefs[question_index],
        all_questions=briefs,
        metrics=metrics,
        template_objective=template_objective,
        template_tone=template_tone,
        cross_session=cross_slice,
        hypotheses=hypotheses_slice,
    )


__all__ = [
    "assemble_advisor_input",
    "select_enrichment",
    "slice_cross_session",
    "slice_hypotheses",
]
