import asyncio

from agents.additional_questions import generate_additional_questions
from agents.types import AdditionalQuestionContext, PriorSessionSummaries
from config.orchestrator import OrchestratorConfig
from config.registry import ADDITIONAL_QUESTIONS_KEY, bind_model
from interview_session.models import Question
from interview_session.scope import Project, Template

TEMPLATE = Template(id="t1", objective="Onboarding", questions=[Question(text="How long is onboarding?")])
PROJECT = Project(id="p1", objective="Improve onboarding", audience_context="Engineering managers")


def _generate(max_questions=2, cross_session=None, config=None):
    return asyncio.run(
        generate_additional_questions(
            transcript=[],
            questions=TEMPLATE.questions,
            summaries=[],
            project=PROJECT,
            template=TEMPLATE,
            max_questions=max_questions,
            cross_session=cross_session,
            config=config or OrchestratorConfig(),
        )
    )


def test_generated_questions_are_capped():
    seen = {}

    def fake(**kwargs):
        seen.update(kwargs["inputs"])
        return {
            "questions": [
                {"question_text": "Who mentors new hires?", "rationale": "gap"},
                {"question_text": "What tools are set up on day one?"},
                {"question_text": "A third one?"},
            ]
        }

    bind_model(ADDITIONAL_QUESTIONS_KEY, fake)
    context = AdditionalQuestionContext(
        enabled=True,
        prior_session_summaries=[PriorSessionSummaries(session_id="s9", summaries=[])],
    )
    questions = _generate(cross_session=context)
    assert [q.question_text for q in questions] == ["Who mentors new hires?", "What tools are set up on day one?"]
    assert questions[0].as_question().text == "Who mentors new hires?"
    assert seen["project_objective"] == "Improve onboarding"
    assert seen["other_sessions"][0]["session_id"] == "s9"


def test_no_budget_or_failure_returns_empty():
    def should_not_run(**_):
        raise AssertionError("model called with no budget")

    bind_model(ADDITIONAL_QUESTIONS_KEY, should_not_run)
    assert _generate(max_questions=0) == []

    bind_model(ADDITIONAL_QUESTIONS_KEY, lambda **_: {"questions": [{"question_text": "  "}]})
    assert _generate() == []


def test_hung_generation_times_out_to_empty():
    async def hung(**_):
        await asyncio.sleep(5)
        return {"questions": [{"question_text": "Too late?"}]}

    bind_model(ADDITIONAL_QUESTIONS_KEY, hung)
    assert _generate(config=OrchestratorConfig(additional_questions_timeout_s=0.05)) == []
