"""Rebuild in-memory session state from what was persisted."""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from config.orchestrator import OrchestratorConfig
from flow_manager.question_flow import FlowState, effective_turn_cap, next_question_index
from services.text_utils import word_count
from storage.guidance import load_guidance_log
from storage.transcript import load_question_summaries, load_transcript

from .metrics import QuestionMetrics
from .models import GuidanceAction, GuidanceEvent, Question, QuestionSummary, TurnEntry
from .transcript import TranscriptStore


class ResumedSession(BaseModel):
    """Everything needed to continue a session where it stopped."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    flow: FlowState
    metrics: Optional[QuestionMetrics] = None
    transcript: TranscriptStore
    summaries: List[QuestionSummary] = Field(default_factory=list)
    previous_answers: Dict[int, str] = Field(default_factory=dict)
    next_guidance_index: int = 0
    completed: bool = False


def _previous_answers(entries: Sequence[TurnEntry]) -> Dict[int, str]:
    answers: Dict[int, str] = {}
    for entry in entries:
        if entry.speaker == "respondent":
            answers[entry.question_index] = entry.text
    return answers


def _metrics_for(question_index: int, entries: Sequence[TurnEntry], recommended: Optional[int]) -> QuestionMetrics:
    own = [entry for entry in entries if entry.question_index == question_index]
    answers = [entry for entry in own if entry.speaker == "respondent"]
    started = own[0].timestamp if own else None
    return QuestionMetrics(
        question_index=question_index,
        word_count=sum(word_count(entry.text) for entry in answers),
        turn_count=len(answers),
        follow_up_count=len(answers),
        started_at=started,
        active_time_ms=(own[-1].timestamp - started) if own else 0,
        recommended_follow_ups=recommended,
    )


def _pending_advance(
    last_event: Optional[GuidanceEvent],
    question_index: int,
    entries: Sequence[TurnEntry],
) -> bool:
    """An injected move-on suggestion issued after the latest answer and not yet acted on."""

    if last_event is None or not last_event.injected:
        return False
    if last_event.action is not GuidanceAction.SUGGEST_NEXT_QUESTION or last_event.question_index != question_index:
        return False
    answers = [entry.timestamp for entry in entries if entry.speaker == "respondent" and entry.question_index == question_index]
    return bool(answers) and last_event.timestamp >= answers[-1]


def reconstruct(
    *,
    questions: Sequence[Question],
    entries: Sequence[TurnEntry],
    summaries: Sequence[QuestionSummary],
    last_event: Optional[GuidanceEvent],
    config: OrchestratorConfig,
    total_additional: int = 0,
    template_default: Optional[int] = None,
) -> ResumedSession:
    """Derive flow state, open metrics and the working window from persisted records only."""

    ordered = sorted(entries, key=lambda entry: entry.timestamp)
    store = TranscriptStore(window=config.transcript_window, entries=ordered)
    store.mark_flushed()
    answers = _previous_answers(ordered)
    summarized = {summary.question_index for summary in summaries}
    next_event = last_event.index + 1 if last_event is not None else 0

    total = len(questions)
    current = ordered[-1].question_index if ordered else 0
    completed = False
    if current in summarized:
        if current < total:
            following = next_question_index(current, questions, answers)
            if following is not None:
                current = following
            elif config.flow.additional_enabled and total_additional > 0:
                current = total
            else:
                completed = True
        elif current + 1 - total < total_additional:
            current += 1
        else:
            completed = True

    in_additional = current >= total
    if in_additional:
        cap = min(config.flow.max_additional_turns_per_question, config.flow.hard_cap_turns_per_question)
        recommended = None
    else:
        question = questions[current]
        cap = effective_turn_cap(question, config.flow, template_default=template_default)
        recommended = question.recommended_follow_ups

    metrics = None
    if not completed and any(entry.question_index == current for entry in ordered):
        metrics = _metrics_for(current, ordered, recommended)

    flow = FlowState(
        current_question_index=current,
        total_questions=len(questions),
        follow_up_count=metrics.follow_up_count if metrics else 0,
        max_turns_per_question=cap,
        advisor_suggested_advance=_pending_advance(last_event, current, ordered),
        in_additional_phase=in_additional,
        current_additional_index=current - total if in_additional else 0,
        total_additional=total_additional,
        additional_enabled=config.flow.additional_enabled,
    )
    return ResumedSession(
        flow=flow,
        metrics=metrics,
        transcript=store,
        summaries=list(summaries),
        previous_answers=answers,
        next_guidance_index=next_event,
        completed=completed,
    )


def load_resumed_session(
    session_id: str,
    questions: Sequence[Question],
    config: OrchestratorConfig,
    *,
    total_additional: int = 0,
    template_default: Optional[int] = None,
) -> ResumedSession:
    log = load_guidance_log(session_id)
    return reconstruct(
        questions=questions,
        entries=load_transcript(session_id),
        summaries=load_question_summaries(session_id),
        last_event=log[-1] if log else None,
        config=config,
        total_additional=total_additional,
        template_default=template_default,
    )


__all__ = ["ResumedSession", "load_resumed_session", "reconstruct"]
