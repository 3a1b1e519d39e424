import asyncio

from agents.topic_overlap import build_overlap_instruction, detect_topic_overlap, has_overlap_material
from agents.types import TopicOverlapResult
from config.orchestrator import OrchestratorConfig
from config.registry import TOPIC_OVERLAP_KEY, bind_model
from interview_session.models import EMPTY_SUMMARY_TEXT, QuestionSummary, TurnEntry

RECENT = [TurnEntry(speaker="respondent", text="We use Jira and a lot of spreadsheets.", timestamp=1, question_index=0)]


def _summary(text="Uses Jira heavily", insights=("jira",)):
    return QuestionSummary(
        question_index=0,
        question_text="What tools do you use?",
        respondent_summary=text,
        key_insights=list(insights),
        completeness_assessment="ok",
    )


def test_no_material_skips_call():
    def should_not_run(**_):
        raise AssertionError("overlap model called without material")

    bind_model(TOPIC_OVERLAP_KEY, should_not_run)
    empty = _summary(text=EMPTY_SUMMARY_TEXT, insights=())
    assert has_overlap_material([empty], []) is False
    result = asyncio.run(detect_topic_overlap("Which tools?", [empty], [], config=OrchestratorConfig()))
    assert result is None


def test_overlap_detected():
    seen = {}

    def fake(**kwargs):
        seen.update(kwargs["inputs"])
        return {"has_overlap": True, "overlapping_topics": ["Jira", "spreadsheets"], "coverage_level": "fully_covered"}

    bind_model(TOPIC_OVERLAP_KEY, fake)
    result = asyncio.run(detect_topic_overlap("Which tools?", [_summary()], RECENT, config=OrchestratorConfig()))
    assert result.has_overlap is True
    assert result.coverage_level == "fully_covered"
    assert seen["next_question"] == "Which tools?"
    assert len(seen["previous_summaries"]) == 1


def test_timeout_returns_none():
    async def slow(**_):
        await asyncio.sleep(1)
        return {"has_overlap": True, "overlapping_topics": ["Jira"]}

    bind_model(TOPIC_OVERLAP_KEY, slow)
    cfg = OrchestratorConfig(overlap_timeout_s=0.05)
    assert asyncio.run(detect_topic_overlap("Which tools?", [], RECENT, config=cfg)) is None


def test_failure_returns_none():
    bind_model(TOPIC_OVERLAP_KEY, lambda **_: {"coverage_level": "everything"})
    assert asyncio.run(detect_topic_overlap("Which tools?", [], RECENT, config=OrchestratorConfig())) is None


def test_provider_error_returns_none():
    def unreachable(**_):
        raise ConnectionError("provider down")

    bind_model(TOPIC_OVERLAP_KEY, unreachable)
    result = asyncio.run(detect_topic_overlap("Which tools?", [_summary()], RECENT, config=OrchestratorConfig()))
    assert result is None


def test_overlap_without_topics_is_no_overlap():
    assert TopicOverlapResult(has_overlap=True, overlapping_topics=[" "]).has_overlap is False


def test_instruction_per_coverage_level():
    def result(level):
        return TopicOverlapResult(has_overlap=True, overlapping_topics=["Jira", "spreadsheets", "email"], coverage_level=level)

    full = build_overlap_instruction(result("fully_covered"), "Which tools?")
    assert "already covered Jira and spreadsheets thoroughly" in full
    assert "email" not in full
    assert full.endswith('"Which tools?"')

    partial = build_overlap_instruction(result("partially_covered"), "Which tools?")
    assert partial.startswith("The respondent touched on Jira and spreadsheets earlier.")

    mentioned = build_overlap_instruction(result("mentioned"), "Which tools?")
    assert mentioned.startswith("The respondent mentioned Jira and spreadsheets earlier.")

    assert build_overlap_instruction(TopicOverlapResult(), "Which tools?") is None
    assert build_overlap_instruction(None, "Which tools?") is None
