"""Detects when an upcoming question was already covered earlier in the session."""
from __future__ import annotations

import asyncio
import logging
from textwrap import dedent
from typing import Optional, Sequence

from config.orchestrator import OrchestratorConfig
from config.registry import TOPIC_OVERLAP_KEY, ainvoke
from interview_session.models import QuestionSummary, TurnEntry
from llm_gateway import UsageAttribution
from observability.logger import log_event

from .types import TopicOverlapResult

OVERLAP_PROMPT = dedent(
    """
    You compare an upcoming interview question with what the respondent has already said.
    Using the earlier question summaries and the recent transcript, decide whether the
    respondent has already talked about the topics the next question asks about.

    Respond with JSON:
    {"has_overlap": bool, "overlapping_topics": [str, up to 3],
     "coverage_level": "mentioned" | "partially_covered" | "fully_covered",
     "source_question_index": int | null}
    Report overlap only for concrete topics, not for general themes of the interview.
    """
).strip()

INSTRUCTION_TEMPLATES = {
    "fully_covered": (
        "The respondent already covered {topics} thoroughly earlier. Briefly acknowledge this "
        '(e.g., "You\'ve actually touched on this earlier, thank you for that") and then ask this question: "{question}"'
    ),
    "partially_covered": (
        "The respondent touched on {topics} earlier. Briefly acknowledge this connection "
        '(e.g., "This builds on what you mentioned earlier") and then ask this question: "{question}"'
    ),
    "mentioned": 'The respondent mentioned {topics} earlier. Briefly acknowledge this, then ask this question: "{question}"',
}


def has_overlap_material(summaries: Sequence[QuestionSummary], recent: Sequence[TurnEntry]) -> bool:
    return any(summary.has_content for summary in summaries) or bool(recent)


async def detect_topic_overlap(
    next_question: str,
    summaries: Sequence[QuestionSummary],
    recent: Sequence[TurnEntry],
    *,
    config: OrchestratorConfig,
    attribution: Optional[UsageAttribution] = None,
    session_id: Optional[str] = None,
) -> Optional[TopicOverlapResult]:
    """Overlap verdict for ``next_question``; None on no material, timeout or failure."""

    if not has_overlap_material(summaries, recent):
        return None

    inputs = {
        "next_question": next_question,
        "previous_summaries": [summary.model_dump(mode="json") for summary in summaries if summary.has_content],
        "recent_transcript": [entry.model_dump(mode="json") for entry in recent],
    }
    try:
        raw = await asyncio.wait_for(
            ainvoke(
                TOPIC_OVERLAP_KEY,
                system_prompt=OVERLAP_PROMPT,
                inputs=inputs,
                attribution=attribution,
                options=config.options_for("topic_overlap").model_dump(exclude_none=True),
                timeout_s=config.overlap_timeout_s,
            ),
            timeout=config.overlap_timeout_s,
        )
        result = TopicOverlapResult.model_validate(raw or {})
    except asyncio.TimeoutError:
        log_event("topic_overlap.timeout", session_id, level=logging.WARNING, ms=int(config.overlap_timeout_s * 1000))
        return None
    except Exception as exc:  # noqa: BLE001
        log_event("topic_overlap.failed", session_id, level=logging.WARNING, reason=str(exc))
        return None

    log_event(
        "topic_overlap.result",
        session_id,
        decision=result.coverage_level if result.has_overlap else "no_overlap",
    )
    return result


def build_overlap_instruction(result: Optional[TopicOverlapResult], question_text: str) -> Optional[str]:
    """Interviewer instruction naming up to two overlapping topics."""

    if result is None or not result.has_overlap:
        return None
    topics = " and ".join(result.overlapping_topics[:2])
    template = INSTRUCTION_TEMPLATES.get(result.coverage_level, INSTRUCTION_TEMPLATES["mentioned"])
    return template.format(topics=topics, question=question_text)


__all__ = [
    "OVERLAP_PROMPT",
    "build_overlap_instruction",
    "detect_topic_overlap",
    "has_overlap_material",
]
