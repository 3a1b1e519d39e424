"""Advisor call, injection gate and the turn-time race around it."""
from __future__ import annotations

import asyncio
import logging
from functools import partial
from textwrap import dedent
from typing import Callable, Dict, NamedTuple, Optional

from config.orchestrator import AdvisorConfig, OrchestratorConfig
from config.registry import ADVISOR_KEY, ainvoke
from interview_session.models import GuidanceAction, GuidanceEvent, now_ms
from llm_gateway import UsageAttribution
from observability.logger import log_event
from services.text_utils import word_count

from .types import AdvisorGuidance, AdvisorInput

MAX_MESSAGE_SUMMARY = 500

ADVISOR_PROMPT = dedent(
    """
    You are a silent advisor watching a live research interview. You never speak to the respondent.
    Read the transcript, the current question and its guidance, the per-question metrics and any
    earlier question summaries, then recommend at most one tactic for the interviewer's next turn.

    Allowed actions:
    - acknowledge_prior: the respondent referenced something said earlier that deserves a nod.
    - probe_followup: the answer is thin or raises an unexplored thread worth one more question.
    - suggest_next_question: the question is covered well enough to move on.
    - confirm_understanding: the answer is ambiguous and should be paraphrased back.
    - suggest_environment_check: the answer suggests audio or connection trouble.
    - time_reminder: the question has run long relative to its follow-up budget.
    - none: the interviewer is doing fine without help.

    When cross-session themes or analytics hypotheses are present, use them to spot gaps worth
    probing, never to lead the respondent.

    Respond with JSON: {"action": str, "message": str, "confidence": float 0-1, "reasoning": str}.
    Keep "message" to one or two sentences the interviewer can act on.
    """
).strip()

LateHook = Callable[[AdvisorGuidance], None]

# Strong references to advisor calls that missed their deadline, keyed to the owning session.
_DETACHED: Dict["asyncio.Task[Optional[AdvisorGuidance]]", Optional[str]] = {}


async def analyze(
    packet: AdvisorInput,
    *,
    config: OrchestratorConfig,
    attribution: Optional[UsageAttribution] = None,
    session_id: Optional[str] = None,
) -> Optional[AdvisorGuidance]:
    """One scored-guidance request; None when the call or its output fails."""

    try:
        raw = await asyncio.wait_for(
            ainvoke(
                ADVISOR_KEY,
                system_prompt=ADVISOR_PROMPT,
                inputs=packet.model_dump(mode="json"),
                attribution=attribution,
                options=config.options_for("advisor").model_dump(exclude_none=True),
                timeout_s=config.advisor.timeout_s,
            ),
            timeout=config.advisor.timeout_s,
        )
        return AdvisorGuidance.model_validate(raw or {})
    except asyncio.TimeoutError:
        log_event(
            "advisor.timeout",
            session_id,
            level=logging.WARNING,
            question_index=packet.current_question_index,
            ms=int(config.advisor.timeout_s * 1000),
        )
        return None
    except Exception as exc:  # noqa: BLE001
        log_event(
            "advisor.failed",
            session_id,
            level=logging.WARNING,
            question_index=packet.current_question_index,
            reason=str(exc),
        )
        return None


def natural_turn_seconds(text: str, advisor: AdvisorConfig) -> float:
    """Time a respondent turn takes to speak, never shorter than the configured floor."""

    spoken = word_count(text) / advisor.words_per_minute * 60.0
    return max(advisor.min_turn_delay_s, spoken)


def is_injectable(guidance: Optional[AdvisorGuidance], gate: float) -> bool:
    if guidance is None:
        return False
    if guidance.action in (GuidanceAction.NONE, GuidanceAction.UNKNOWN):
        return False
    return guidance.confidence > gate


def create_guidance_event(
    guidance: AdvisorGuidance,
    *,
    index: int,
    question_index: int,
    transcript_length: int,
    injected: bool,
    timestamp: Optional[int] = None,
    late: bool = False,
) -> GuidanceEvent:
    """Log entry for one advisor evaluation, triggered by the latest persisted turn."""

    return GuidanceEvent(
        index=index,
        action=guidance.action,
        message_summary=guidance.message[:MAX_MESSAGE_SUMMARY],
        confidence=guidance.confidence,
        injected=injected,
        timestamp=now_ms() if timestamp is None else timestamp,
        question_index=question_index,
        trigger_turn_index=max(0, transcript_length - 1),
        late=late,
    )


class RaceOutcome(NamedTuple):
    guidance: Optional[AdvisorGuidance]
    timed_out: bool
    deadline_s: float
    natural_s: float


def _discard_late(
    task: "asyncio.Task[Optional[AdvisorGuidance]]",
    *,
    session_id: Optional[str],
    question_index: int,
    on_late: Optional[LateHook],
) -> None:
    _DETACHED.pop(task, None)
    if task.cancelled():
        return
    if task.exception() is not None:
        log_event(
            "advisor.late_failure",
            session_id,
            level=logging.WARNING,
            question_index=question_index,
            reason=repr(task.exception()),
        )
        return
    guidance = task.result()
    if guidance is None:
        return
    log_event(
        "advisor.late_result_discarded",
        session_id,
        question_index=question_index,
        action=guidance.action.value,
        confidence=guidance.confidence,
    )
    if on_late is not None:
        on_late(guidance)


def pending_late_calls() -> int:  # Advisor calls still running past their deadline
    return len(_DETACHED)


async def settle_late_calls(session_id: Optional[str], timeout: float) -> int:
    """Wait up to ``timeout`` for this session's late calls; returns how many are still running."""

    owned = [task for task, owner in _DETACHED.items() if owner == session_id]
    if not owned:
        return 0
    _, pending = await asyncio.wait(owned, timeout=timeout)
    return len(pending)


async def race_advisor(
    packet: AdvisorInput,
    respondent_text: str,
    *,
    config: OrchestratorConfig,
    attribution: Optional[UsageAttribution] = None,
    session_id: Optional[str] = None,
    on_late: Optional[LateHook] = None,
    pace: bool = True,
) -> RaceOutcome:
    """Race the advisor against ``min(natural turn duration, ceiling)``.

    A call that misses the deadline keeps running detached. Its result is
    logged, handed to ``on_late`` for bookkeeping and never injected. With
    ``pace`` set, the rest of the natural turn duration is waited out before
    returning.
    """

    loop = asyncio.get_running_loop()
    started = loop.time()
    natural = natural_turn_seconds(respondent_text, config.advisor)
    deadline = min(natural, config.advisor.timeout_s)

    task = asyncio.create_task(
        analyze(packet, config=config, attribution=attribution, session_id=session_id)
    )
    done, _ = await asyncio.wait({task}, timeout=deadline)

    if task in done:
        guidance = task.result()
        timed_out = False
    else:
        guidance = None
        timed_out = True
        _DETACHED[task] = session_id
        task.add_done_callback(
            partial(
                _discard_late,
                session_id=session_id,
                question_index=packet.current_question_index,
                on_late=on_late,
            )
        )
        log_event(
            "advisor.deadline_missed",
            session_id,
            question_index=packet.current_question_index,
            ms=int(deadline * 1000),
        )

    remaining = natural - (loop.time() - started)
    if pace and remaining > 0:
        await asyncio.sleep(remaining)
    return RaceOutcome(guidance=guidance, timed_out=timed_out, deadline_s=deadline, natural_s=natural)


__all__ = [
    "ADVISOR_PROMPT",
    "RaceOutcome",
    "analyze",
    "create_guidance_event",
    "is_injectable",
    "natural_turn_seconds",
    "pending_late_calls",
    "race_advisor",
    "settle_late_calls",
]
