import pytest

from agents.context_assembler import assemble_advisor_input, select_enrichment, slice_cross_session, slice_hypotheses
from agents.types import (
    AnalyticsHypothesis,
    CompactTheme,
    CrossSessionContext,
    HypothesesContext,
    QuestionQualityInsight,
)
from interview_session.metrics import QuestionMetrics
from interview_session.models import Question, TurnEntry


def _alert(index):
    return QuestionQualityInsight(question_index=index, response_count=3, avg_quality_score=40, avg_word_count=12)


CROSS = CrossSessionContext(
    enabled=True,
    prior_session_count=6,
    themes_by_question={1: [CompactTheme(theme="Budget", prevalence=0.4, cue="cost pressure")]},
    quality_insights_by_question={1: _alert(1), 2: _alert(2), 3: _alert(3), 4: _alert(4)},
)

HYPOTHESES = HypothesesContext(
    enabled=True,
    total_project_sessions=8,
    hypotheses=[
        AnalyticsHypothesis(hypothesis="Global", source="strategic_insight", priority="medium"),
        AnalyticsHypothesis(
            hypothesis="Targeted", source="recommendation", priority="high", related_question_indices=[2]
        ),
    ],
)


def test_cross_session_slice_picks_current_and_upcoming():
    view = slice_cross_session(CROSS, 1)
    assert [theme.theme for theme in view.question_themes] == ["Budget"]
    assert view.current_question_quality.question_index == 1
    assert [alert.question_index for alert in view.upcoming_quality_alerts] == [2, 3]
    assert view.prior_session_count == 6


def test_cross_session_slice_none_when_nothing_relevant():
    assert slice_cross_session(CROSS, 9) is None
    assert slice_cross_session(CrossSessionContext(enabled=False, reason="off"), 1) is None
    assert slice_cross_session(None, 1) is None


def test_hypotheses_relevance_flags():
    view = slice_hypotheses(HYPOTHESES, 1)
    assert [(h.hypothesis, h.is_current_question_relevant) for h in view.hypotheses] == [
        ("Global", True),
        ("Targeted", False),
    ]
    assert slice_hypotheses(HYPOTHESES, 2).hypotheses[1].is_current_question_relevant is True
    assert slice_hypotheses(HypothesesContext(enabled=True), 0) is None


def test_select_enrichment_returns_both_slices():
    cross, hyp = select_enrichment(CROSS, None, 0)
    assert cross is not None
    assert [alert.question_index for alert in cross.upcoming_quality_alerts] == [1, 2]
    assert hyp is None


def test_assemble_advisor_input():
    questions = [Question(text="First?", guidance="warm up"), Question(text="Second?")]
    transcript = [TurnEntry(speaker="interviewer", text="First?", timestamp=1, question_index=0)]
    packet = assemble_advisor_input(
        questions=questions,
        question_index=1,
        transcript=transcript,
        previous_summaries=[],
        metrics=QuestionMetrics(question_index=1),
        template_objective="Learn about onboarding",
        cross_session=CROSS,
        hypotheses=HYPOTHESES,
    )
    assert packet.current_question.text == "Second?"
    assert packet.all_questions[0].guidance == "warm up"
    assert packet.cross_session.current_question_quality.question_index == 1
    assert packet.hypotheses.total_project_sessions == 8
    assert packet.template_tone == "professional"

    with pytest.raises(IndexError):
        assemble_advisor_input(
            questions=questions,
            question_index=2,
            transcript=[],
            previous_summaries=[],
            metrics=QuestionMetrics(question_index=2),
        )
