"""Interviewer turn generation."""
from __future__ import annotations

import asyncio
import logging
from textwrap import dedent
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ValidationError, model_validator

from config.orchestrator import OrchestratorConfig
from config.registry import INTERVIEWER_KEY, ainvoke
from interview_session.models import Question, TurnEntry
from interview_session.transcript import sanitize_interviewer_text
from llm_gateway import LlmGatewayError, UsageAttribution
from observability.logger import log_event

INTERVIEWER_PROMPT = dedent(
    """
    You are a warm, professional research interviewer holding a text conversation.
    Ask one thing at a time, listen closely, and keep each turn short.
    Never mention buttons, audio or any user interface.

    When you open a question, ask it in your own words without changing its meaning.
    When following up, build on what the respondent just said and stay within the question's guidance.
    If an advisor note is present, apply it naturally in this turn without mentioning the advisor.
    If an overlap instruction is present, follow it for this turn.
    If a repeat warning is present, you have been asking near-identical things; take a new angle or wrap up.

    Respond with JSON: {"text": str}.
    """
).strip()


class InterviewerTurn(BaseModel):  # Model payload for one interviewer utterance
    text: str

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:  # Accept a bare string or a message/content dict
        if isinstance(value, str):
            return {"text": value}
        if isinstance(value, dict) and "text" not in value:
            for key in ("message", "content", "utterance"):
                if isinstance(value.get(key), str):
                    return {"text": value[key]}
        return value


async def generate_interviewer_turn(
    *,
    question: Question,
    question_index: int,
    total_questions: int,
    transcript: Sequence[TurnEntry],
    follow_up_count: int,
    recommended_follow_ups: Optional[int],
    opening: bool,
    guidance: Optional[str] = None,
    overlap_instruction: Optional[str] = None,
    repeat_warning: Optional[str] = None,
    respondent_name: Optional[str] = None,
    template_tone: str = "professional",
    config: OrchestratorConfig,
    attribution: Optional[UsageAttribution] = None,
    session_id: Optional[str] = None,
) -> str:
    """Next interviewer utterance; the verbatim question text when the call fails."""

    inputs = {
        "tone": template_tone,
        "respondent_name": respondent_name,
        "question_number": question_index + 1,
        "total_questions": total_questions,
        "question": question.text,
        "question_guidance": question.guidance,
        "opening": opening,
        "follow_up_count": follow_up_count,
        "recommended_follow_ups": recommended_follow_ups,
        "advisor_note": guidance,
        "overlap_instruction": overlap_instruction,
        "repeat_warning": repeat_warning,
        "transcript": [entry.model_dump(mode="json") for entry in transcript],
    }
    try:
        raw = await asyncio.wait_for(
            ainvoke(
                INTERVIEWER_KEY,
                system_prompt=INTERVIEWER_PROMPT,
                inputs=inputs,
                attribution=attribution,
                options=config.options_for("interviewer").model_dump(exclude_none=True),
                timeout_s=config.interviewer_timeout_s,
            ),
            timeout=config.interviewer_timeout_s,
        )
        turn = InterviewerTurn.model_validate(raw)
    except asyncio.TimeoutError:
        log_event("interviewer.timeout", session_id, level=logging.WARNING, question_index=question_index)
        return question.text
    except (LlmGatewayError, ValidationError, KeyError, TypeError, ValueError) as exc:
        log_event(
            "interviewer.failed",
            session_id,
            level=logging.WARNING,
            question_index=question_index,
            reason=str(exc),
        )
        return question.text
    text = sanitize_interviewer_text(turn.text)
    return text or question.text


__all__ = ["INTERVIEWER_PROMPT", "InterviewerTurn", "generate_interviewer_turn"]
