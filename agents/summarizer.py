"""Per-question summaries written when a question closes."""
from __future__ import annotations

import asyncio
import logging
from textwrap import dedent
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from config.orchestrator import OrchestratorConfig
from config.registry import SUMMARY_KEY, ainvoke
from interview_session.metrics import QuestionMetrics
from interview_session.models import EMPTY_SUMMARY_TEXT, Question, QuestionSummary, TurnEntry
from llm_gateway import UsageAttribution
from observability.logger import log_event
from services.text_utils import word_count

MIN_WORDS_FOR_SUMMARY = 10
EMPTY_ASSESSMENT_TEXT = "Insufficient response for assessment."

SUMMARY_PROMPT = dedent(
    """
    You are an interview analysis assistant. Summarize the respondent's answer to one question.

    Respond with JSON:
    {"respondent_summary": "2-3 sentences on what the respondent said",
     "key_insights": ["3-5 main themes, insights or memorable quotes"],
     "completeness_assessment": "short note on depth, e.g. 'Comprehensive with specific examples'",
     "relevant_to_future_questions": ["topics that may connect to later questions"]}

    Focus on what the respondent said, not on what the interviewer asked. Keep it under 200 words.
    """
).strip()


class SummaryDraft(BaseModel):
    respondent_summary: str = "No summary available."
    key_insights: List[str] = Field(default_factory=list)
    completeness_assessment: str = "Assessment unavailable."
    relevant_to_future_questions: List[str] = Field(default_factory=list)

    @field_validator("key_insights", "relevant_to_future_questions", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if str(item).strip()]

    @field_validator("respondent_summary", "completeness_assessment", mode="before")
    @classmethod
    def _blank_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.model_fields[info.field_name].default
        return value


def create_empty_summary(question_index: int, question_text: str, metrics: QuestionMetrics) -> QuestionSummary:
    return QuestionSummary(
        question_index=question_index,
        question_text=question_text,
        respondent_summary=EMPTY_SUMMARY_TEXT,
        key_insights=[],
        completeness_assessment=EMPTY_ASSESSMENT_TEXT,
        relevant_to_future_questions=[],
        word_count=0,
        turn_count=metrics.turn_count,
        active_time_ms=metrics.active_time_ms,
    )


async def summarize_question(
    question_index: int,
    question: Question,
    transcript: Sequence[TurnEntry],
    metrics: QuestionMetrics,
    *,
    template_objective: str = "",
    config: OrchestratorConfig,
    attribution: Optional[UsageAttribution] = None,
    session_id: Optional[str] = None,
) -> QuestionSummary:
    """Summary of one question; falls back to the empty summary on any failure."""

    entries = [entry for entry in transcript if entry.question_index == question_index]
    respondent_text = " ".join(entry.text for entry in entries if entry.speaker == "respondent")
    words = word_count(respondent_text)
    if not entries or words < MIN_WORDS_FOR_SUMMARY:
        return create_empty_summary(question_index, question.text, metrics)

    inputs = {
        "template_objective": template_objective,
        "question_number": question_index + 1,
        "question": question.text,
        "guidance": question.guidance or "No specific guidance provided.",
        "transcript": [f"[{entry.speaker.upper()}]: {entry.text}" for entry in entries],
        "metrics": {
            "word_count": words,
            "turn_count": metrics.turn_count,
            "active_seconds": round(metrics.active_time_ms / 1000),
        },
    }
    try:
        raw = await asyncio.wait_for(
            ainvoke(
                SUMMARY_KEY,
                system_prompt=SUMMARY_PROMPT,
                inputs=inputs,
                attribution=attribution,
                options=config.options_for("question_summary").model_dump(exclude_none=True),
                timeout_s=config.summary_timeout_s,
            ),
            timeout=config.summary_timeout_s,
        )
        if not raw:
            return create_empty_summary(question_index, question.text, metrics)
        draft = SummaryDraft.model_validate(raw)
    except asyncio.TimeoutError:
        log_event("summary.timeout", session_id, level=logging.WARNING, question_index=question_index)
        return create_empty_summary(question_index, question.text, metrics)
    except Exception as exc:  # noqa: BLE001
        log_event("summary.failed", session_id, level=logging.WARNING, question_index=question_index, reason=str(exc))
        return create_empty_summary(question_index, question.text, metrics)

    return QuestionSummary(
        question_index=question_index,
        question_text=question.text,
        respondent_summary=draft.respondent_summary,
        key_insights=draft.key_insights,
        completeness_assessment=draft.completeness_assessment,
        relevant_to_future_questions=draft.relevant_to_future_questions,
        word_count=words,
        turn_count=metrics.turn_count,
        active_time_ms=metrics.active_time_ms,
    )


__all__ = [
    "EMPTY_ASSESSMENT_TEXT",
    "SummaryDraft",
    "create_empty_summary",
    "summarize_question",
]
