from agents.enrichment import (
    MAX_ANALYTICS_HYPOTHESES,
    MAX_PRIOR_SESSIONS_FOR_AQ,
    build_additional_question_context,
    build_cross_session_context,
    build_hypotheses_context,
)
from interview_session.models import QuestionSummary
from interview_session.scope import Collection, PriorSession, Project


def _project(**overrides):
    data = {"id": "p1", "crossInterviewContext": True, "crossInterviewThreshold": 3}
    data.update(overrides)
    return Project.model_validate(data)


def _collection(analyzed=5, analytics=None):
    return Collection.model_validate(
        {
            "id": "c1",
            "analyzedSessionCount": analyzed,
            "lastAnalyzedAt": 1234,
            "analyticsData": analytics,
        }
    )


ANALYTICS = {
    "themes": [
        {"theme": "Onboarding", "description": "Slow ramp-up " * 20, "prevalence": 0.7, "relatedQuestions": [0, 1]},
        {"theme": "Tooling", "prevalence": 0.5, "relatedQuestions": [0]},
        {"theme": "Budget", "prevalence": 0.4, "relatedQuestions": [0]},
        {"theme": "Hiring", "prevalence": 0.3, "relatedQuestions": [0]},
        {"theme": "Remote", "prevalence": 0.2, "isEmergent": True},
        {"theme": "Burnout", "prevalence": 0.6, "isEmergent": True},
        {"theme": "Meetings", "prevalence": 0.1, "isEmergent": True},
    ],
    "questionPerformance": [
        {"questionIndex": 0, "responseCount": 4, "avgQualityScore": 80},
        {
            "questionIndex": 1,
            "responseCount": 4,
            "avgQualityScore": 50,
            "qualityFlagCounts": {"vague": 3, "off_topic": 3, "short": 5, "rare": 1},
        },
        {"questionIndex": 2, "responseCount": 1, "responseRichness": "brief"},
        {"questionIndex": 3, "responseCount": 2, "perspectiveRange": "narrow"},
    ],
    "generatedAt": 999,
}


def test_cross_session_disabled_reasons():
    assert build_cross_session_context(None, None).reason == "feature_disabled_on_project"
    off = _project(crossInterviewContext=False)
    assert build_cross_session_context(off, _collection()).reason == "feature_disabled_on_project"

    unmet = build_cross_session_context(_project(), _collection(analyzed=2, analytics=ANALYTICS))
    assert unmet.enabled is False
    assert unmet.reason == "threshold_unmet (2/3 sessions analyzed)"

    empty = build_cross_session_context(_project(), _collection(analytics={"themes": []}))
    assert empty.reason == "no_actionable_cross_interview_context"


def test_cross_session_themes_are_capped_and_truncated():
    ctx = build_cross_session_context(_project(), _collection(analytics=ANALYTICS))
    assert ctx.enabled is True
    assert ctx.prior_session_count == 5
    assert ctx.snapshot_generated_at == 999

    question_zero = [theme.theme for theme in ctx.themes_by_question[0]]
    assert question_zero == ["Onboarding", "Tooling", "Budget"]
    assert len(ctx.themes_by_question[0][0].cue) == 120
    assert [theme.theme for theme in ctx.emergent_themes] == ["Burnout", "Remote"]


def test_quality_alerts():
    ctx = build_cross_session_context(_project(), _collection(analytics=ANALYTICS))
    alerts = ctx.quality_insights_by_question

    assert 0 not in alerts
    assert 2 not in alerts
    assert alerts[3].perspective_range == "narrow"
    flags = [(flag.flag, flag.count) for flag in alerts[1].top_flags]
    assert flags == [("short", 5), ("off_topic", 3)]


def _analytics_project(total=6, **analytics):
    payload = {"projectMetrics": {"totalSessions": total}}
    payload.update(analytics)
    return _project(
        analyticsGuidedHypotheses=True,
        analyticsHypothesesMinSessions=5,
        analyticsData=payload,
    )


def test_hypotheses_disabled_reasons():
    assert build_hypotheses_context(_project()).reason == "feature_disabled_on_project"
    assert build_hypotheses_context(_project(analyticsGuidedHypotheses=True)).reason == "no_project_analytics"
    assert build_hypotheses_context(_analytics_project(total=2)).reason == "threshold_unmet (2/5 sessions)"
    unmappable = _analytics_project(recommendations=[{"type": "celebrate", "title": "Nice", "relatedQuestions": [1]}])
    assert build_hypotheses_context(unmappable).reason == "no_mappable_hypotheses"


def test_hypotheses_sorted_by_priority_and_truncated():
    project = _analytics_project(
        recommendations=[
            {"type": "coverage_gap", "title": "Gap", "description": "x" * 300, "priority": "low", "relatedQuestions": [2]},
            {"type": "explore_deeper", "title": "Deeper", "priority": "high", "relatedThemes": ["a", "b", "c", "d"]},
            {"type": "needs_probing", "title": "Orphan", "priority": "high"},
        ],
        contextualRecommendations={"actionItems": [{"title": "Act", "priority": "high"}]},
        strategicInsights=[{"insight": "Trend", "significance": "matters"}],
    )
    ctx = build_hypotheses_context(project)

    assert ctx.enabled is True
    assert ctx.total_project_sessions == 6
    assert [h.source for h in ctx.hypotheses] == [
        "recommendation",
        "action_item",
        "strategic_insight",
        "recommendation",
    ]
    assert ctx.hypotheses[0].related_themes == ["a", "b", "c"]
    assert ctx.hypotheses[2].hypothesis == "Trend: matters"
    assert ctx.hypotheses[2].priority == "medium"
    assert len(ctx.hypotheses[3].hypothesis) == 150


def test_hypotheses_capped():
    project = _analytics_project(
        strategicInsights=[{"insight": f"Insight {i}"} for i in range(20)],
    )
    assert len(build_hypotheses_context(project).hypotheses) == MAX_ANALYTICS_HYPOTHESES


def _summary():
    return QuestionSummary(
        question_index=0,
        question_text="Q",
        respondent_summary="Said things",
        key_insights=["thing"],
        completeness_assessment="ok",
    )


def test_additional_question_context():
    project = _project(crossInterviewThreshold=2)
    assert build_additional_question_context(None, [], "s0").reason == "project_not_found"
    assert (
        build_additional_question_context(_project(crossInterviewContext=False), [], "s0").reason
        == "feature_disabled_on_project"
    )

    sessions = [
        PriorSession(id="s0", status="completed", question_summaries=[_summary()]),
        PriorSession(id="s1", status="completed", question_summaries=[_summary()]),
        PriorSession(id="s2", status="in_progress", question_summaries=[_summary()]),
        PriorSession(id="s3", status="completed", question_summaries=[]),
    ]
    unmet = build_additional_question_context(project, sessions, "s0")
    assert unmet.reason == "threshold_unmet (1/2 completed sessions with summaries)"

    many = [PriorSession(id=f"p{i}", status="completed", question_summaries=[_summary()]) for i in range(15)]
    ctx = build_additional_question_context(project, many, "s0")
    assert ctx.enabled is True
    assert len(ctx.prior_session_summaries) == MAX_PRIOR_SESSIONS_FOR_AQ
    assert ctx.prior_session_summaries[0].session_id == "p0"
