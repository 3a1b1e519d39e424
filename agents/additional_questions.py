"""Generates the bounded round of additional questions asked after the template."""
from __future__ import annotations

import asyncio
import logging
from textwrap import dedent
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from config.orchestrator import OrchestratorConfig
from config.registry import ADDITIONAL_QUESTIONS_KEY, ainvoke
from interview_session.models import Question, QuestionSummary, TurnEntry
from interview_session.scope import Project, Template
from llm_gateway import UsageAttribution
from observability.logger import log_event

from .types import AdditionalQuestionContext

AQ_PROMPT = dedent(
    """
    You design follow-on questions for a research interview that has covered its planned questions.
    Look for gaps between the project objective and what the respondent has said. Do not repeat
    topics that were already explored in depth. When summaries from other sessions are provided,
    prefer gaps that this respondent is well placed to fill.

    Respond with JSON: {"questions": [{"question_text": str, "rationale": str}]}.
    Return at most the requested number of questions, or an empty list when nothing is worth asking.
    """
).strip()


class AdditionalQuestion(BaseModel):
    question_text: str
    rationale: str = ""

    @field_validator("question_text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question_text must not be blank")
        return value

    def as_question(self) -> Question:
        return Question(text=self.question_text)


class AdditionalQuestionSet(BaseModel):
    questions: List[AdditionalQuestion] = Field(default_factory=list)


async def generate_additional_questions(
    *,
    transcript: Sequence[TurnEntry],
    questions: Sequence[Question],
    summaries: Sequence[QuestionSummary],
    project: Optional[Project],
    template: Template,
    max_questions: int,
    cross_session: Optional[AdditionalQuestionContext] = None,
    config: OrchestratorConfig,
    attribution: Optional[UsageAttribution] = None,
    session_id: Optional[str] = None,
) -> List[AdditionalQuestion]:
    """Up to ``max_questions`` extra questions; empty on failure."""

    if max_questions <= 0:
        return []

    inputs: dict[str, Any] = {
        "project_objective": project.objective if project else "",
        "audience_context": project.audience_context if project else None,
        "strategic_context": project.strategic_context if project else None,
        "tone": template.tone,
        "max_questions": max_questions,
        "template_questions": [{"text": q.text, "guidance": q.guidance} for q in questions],
        "question_summaries": [summary.model_dump(mode="json") for summary in summaries],
        "transcript": [entry.model_dump(mode="json") for entry in transcript],
    }
    if cross_session is not None and cross_session.enabled:
        inputs["other_sessions"] = [item.model_dump(mode="json") for item in cross_session.prior_session_summaries]

    try:
        raw = await asyncio.wait_for(
            ainvoke(
                ADDITIONAL_QUESTIONS_KEY,
                system_prompt=AQ_PROMPT,
                inputs=inputs,
                attribution=attribution,
                options=config.options_for("additional_questions").model_dump(exclude_none=True),
                timeout_s=config.additional_questions_timeout_s,
            ),
            timeout=config.additional_questions_timeout_s,
        )
        generated = AdditionalQuestionSet.model_validate(raw or {})
    except Exception as exc:  # noqa: BLE001
        log_event("additional_questions.failed", session_id, level=logging.WARNING, reason=str(exc))
        return []

    selected = generated.questions[:max_questions]
    log_event("additional_questions.generated", session_id, decision=f"{len(selected)} question(s)")
    return selected


__all__ = [
    "AQ_PROMPT",
    "AdditionalQuestion",
    "AdditionalQuestionSet",
    "generate_additional_questions",
]
