from config.orchestrator import FlowConfig
from flow_manager.question_flow import (
    ConditionalLogic,
    FlowState,
    effective_turn_cap,
    evaluate_conditional_logic,
    evaluate_question_flow,
    next_question_index,
)
from interview_session.models import Question


def _state(**overrides):
    base = dict(
        current_question_index=0,
        total_questions=3,
        follow_up_count=0,
        max_turns_per_question=6,
    )
    base.update(overrides)
    return FlowState(**base)


def test_continue_until_turn_cap():
    assert evaluate_question_flow(_state(follow_up_count=5)) == "continue"
    assert evaluate_question_flow(_state(follow_up_count=6)) == "next_question"


def test_advisor_suggestion_advances_early():
    assert evaluate_question_flow(_state(advisor_suggested_advance=True)) == "next_question"


def test_last_question_completes_or_starts_additional_phase():
    last = dict(current_question_index=2, follow_up_count=6)
    assert evaluate_question_flow(_state(**last)) == "complete"
    assert evaluate_question_flow(_state(**last, additional_enabled=True, total_additional=0)) == "complete"
    assert (
        evaluate_question_flow(_state(**last, additional_enabled=True, total_additional=2))
        == "start_additional_phase"
    )


def test_additional_phase_progression():
    state = _state(in_additional_phase=True, max_turns_per_question=3, total_additional=2)
    assert evaluate_question_flow(state.model_copy(update={"follow_up_count": 1})) == "continue"
    assert evaluate_question_flow(state.model_copy(update={"follow_up_count": 3})) == "next_question"
    assert (
        evaluate_question_flow(state.model_copy(update={"follow_up_count": 3, "current_additional_index": 1}))
        == "complete"
    )


def test_show_when_matches_any_option():
    question = Question(text="Why?", conditional_logic={"dependsOn": 0, "showWhen": "yes|yeah"})
    assert evaluate_conditional_logic(question, {0: "Yeah, absolutely"}) is True
    assert evaluate_conditional_logic(question, {0: "No."}) is False
    assert evaluate_conditional_logic(question, {}) is False


def test_show_when_accepts_list():
    logic = ConditionalLogic.parse({"depends_on": 1, "show_when": ["daily", "weekly"]})
    assert logic.show_when == "daily|weekly"


def test_conditions():
    def ask(condition, answer):
        question = Question(text="Q", conditional_logic={"dependsOn": 0, "condition": condition})
        return evaluate_conditional_logic(question, {0: answer})

    assert ask("answered", "something") is True
    assert ask("answered", "   ") is False
    assert ask("not_answered", "") is True
    assert ask("contains: budget", "Our budget is tight") is True
    assert ask("contains: budget", "No idea") is False
    assert ask("equals: no", " No ") is True


def test_malformed_logic_fails_open():
    assert evaluate_conditional_logic(Question(text="Q", conditional_logic="{not json"), {}) is True
    assert evaluate_conditional_logic(Question(text="Q", conditional_logic=42), {}) is True
    assert evaluate_conditional_logic(Question(text="Q", conditional_logic={"dependsOn": "zero"}), {}) is True


def test_next_question_index_skips_hidden_questions():
    questions = [
        Question(text="Do you use dashboards?"),
        Question(text="Which ones?", conditional_logic={"dependsOn": 0, "showWhen": "yes"}),
        Question(text="Anything else?"),
    ]
    assert next_question_index(-1, questions, {}) == 0
    assert next_question_index(0, questions, {0: "yes, daily"}) == 1
    assert next_question_index(0, questions, {0: "never"}) == 2
    assert next_question_index(2, questions, {}) is None


def test_effective_turn_cap():
    flow = FlowConfig()
    assert effective_turn_cap(Question(text="Q"), flow) == 6
    assert effective_turn_cap(Question(text="Q"), flow, template_default=4) == 4
    assert effective_turn_cap(Question(text="Q", recommended_follow_ups=2), flow, template_default=4) == 2
    assert effective_turn_cap(Question(text="Q", recommended_follow_ups=40), flow) == 12
