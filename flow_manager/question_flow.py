from __future__ import annotations  # Question progression and conditional skip rules

import json
from typing import Any, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from config.orchestrator import FlowConfig
from interview_session.models import Question
from observability.logger import log_event

FlowAction = Literal["continue", "next_question", "start_additional_phase", "complete"]


class FlowState(BaseModel):  # Inputs to one flow decision, rebuilt every turn
    current_question_index: int = Field(ge=0)
    total_questions: int = Field(ge=0)
    follow_up_count: int = Field(default=0, ge=0)
    max_turns_per_question: int = Field(ge=0)
    advisor_suggested_advance: bool = False
    in_additional_phase: bool = False
    current_additional_index: int = Field(default=0, ge=0)
    total_additional: int = Field(default=0, ge=0)
    additional_enabled: bool = False


class ConditionalLogic(BaseModel):  # Dependency of one question on an earlier answer
    depends_on: Optional[int] = None
    show_when: Optional[str] = None
    condition: Optional[str] = None

    @field_validator("show_when", mode="before")
    @classmethod
    def _join_options(cls, value: Any) -> Any:  # Accept a list of options as well as "a|b"
        if isinstance(value, (list, tuple)):
            return "|".join(str(item) for item in value)
        return value

    @classmethod
    def parse(cls, raw: Any) -> Optional["ConditionalLogic"]:
        if raw is None or raw == "" or raw == {}:
            return None
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            raw = json.loads(raw)
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported conditional logic: {type(raw).__name__}")
        data = dict(raw)
        # Accept the camelCase keys produced by template editors.
        for camel, snake in (("dependsOn", "depends_on"), ("showWhen", "show_when")):
            if camel in data and snake not in data:
                data[snake] = data.pop(camel)
        return cls.model_validate(data)


def _advance_due(state: FlowState) -> bool:
    return state.advisor_suggested_advance or state.follow_up_count >= state.max_turns_per_question


def evaluate_question_flow(state: FlowState) -> FlowAction:
    """Decide what follows the latest respondent turn."""

    if state.in_additional_phase:
        if not _advance_due(state):
            return "continue"
        if state.current_additional_index + 1 >= state.total_additional:
            return "complete"
        return "next_question"

    if not _advance_due(state):
        return "continue"
    if state.current_question_index + 1 >= state.total_questions:
        if state.additional_enabled and state.total_additional > 0:
            return "start_additional_phase"
        return "complete"
    return "next_question"


def effective_turn_cap(
    question: Question,
    flow: FlowConfig,
    *,
    template_default: Optional[int] = None,
) -> int:
    """Follow-up budget for ``question`` bounded by the global hard cap."""

    recommended = question.recommended_follow_ups
    if recommended is None:
        recommended = template_default
    if recommended is None:
        recommended = flow.max_turns_per_question
    return min(recommended, flow.hard_cap_turns_per_question)


def _matches(logic: ConditionalLogic, answer: str) -> bool:
    normalized = answer.strip().lower()
    if logic.show_when:
        options = [option.strip() for option in logic.show_when.strip().lower().split("|")]
        return any(option in normalized for option in options if option)
    if logic.condition:
        condition = logic.condition.strip().lower()
        if condition == "answered":
            return len(normalized) > 0
        if condition in ("not_answered", "unanswered"):
            return len(normalized) == 0
        if condition.startswith("contains:"):
            return condition[len("contains:"):].strip() in normalized
        if condition.startswith("equals:"):
            return normalized == condition[len("equals:"):].strip()
    return len(normalized) > 0


def evaluate_conditional_logic(question: Question, previous_answers: Mapping[int, str]) -> bool:
    """True when ``question`` should be asked given earlier answers."""

    try:
        logic = ConditionalLogic.parse(question.conditional_logic)
        if logic is None or logic.depends_on is None:
            return True
        answer = previous_answers.get(logic.depends_on)
        if answer is None:
            return False
        return _matches(logic, answer)
    except (ValidationError, ValueError, TypeError, AttributeError) as exc:
        log_event("flow.conditional_logic_invalid", None, reason=str(exc))
        return True


def next_question_index(
    current_index: int,
    questions: Sequence[Question],
    previous_answers: Mapping[int, str],
) -> Optional[int]:
    for index in range(current_index + 1, len(questions)):
        if evaluate_conditional_logic(questions[index], previous_answers):
            return index
    return None


__all__ = [
    "ConditionalLogic",
    "FlowAction",
    "FlowState",
    "effective_turn_cap",
    "evaluate_conditional_logic",
    "evaluate_question_flow",
    "next_question_index",
]
