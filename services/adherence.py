"""Post-hoc scoring of whether the interviewer followed injected guidance."""
from __future__ import annotations

import logging
from typing import Dict, List, NamedTuple, Optional, Sequence

from pydantic import BaseModel, Field

from interview_session.models import (
    AdherenceResult,
    GuidanceAction,
    GuidanceEvent,
    KNOWN_ACTIONS,
    TurnEntry,
    now_ms,
)
from observability.logger import log_event

from .text_utils import (
    INTERVIEW_META_STOPWORDS,
    contains_phrase,
    get_keywords,
    overlap_coefficient,
    truncate,
)

SNIPPET_MAX_LENGTH = 200
MAX_TURNS_LOOKAHEAD = 4
TOPICAL_RELEVANCE_THRESHOLD = 0.3
MIN_KEYWORDS_FOR_TOPICAL_CHECK = 2
MAX_OFFSET_FOR_FOLLOWED = 2

NO_RESPONSE_REASON = "No interviewer response found after guidance"
NOT_INJECTED_REASON = "Guidance was not injected (low confidence or action=none)"

PROBE_PHRASES = (
    "tell me more", "elaborate", "can you explain", "what do you mean",
    "could you", "why", "how", "what", "describe", "example",
    "specific", "deeper", "further", "expand",
)
TRANSITION_PHRASES = (
    "move on", "next question", "let's turn to", "shifting to",
    "another topic", "let me ask you about", "moving forward",
    "transition", "let's talk about", "i'd like to ask",
)
ACKNOWLEDGMENT_PHRASES = (
    "you mentioned", "you said", "you brought up", "you talked about",
    "that's a great point", "thank you for sharing", "i appreciate",
    "that's interesting", "i hear you", "absolutely", "exactly",
    "right", "i understand", "makes sense", "good point",
)
CONFIRMATION_PHRASES = (
    "so you're saying", "if i understand correctly", "let me make sure",
    "you mean", "in other words", "so what you're", "to clarify",
    "just to confirm", "do i have that right", "is that correct",
    "am i understanding", "so to summarize",
)
ENVIRONMENT_PHRASES = (
    "audio", "hear", "connection", "microphone", "sound",
    "can you hear me", "having trouble", "environment",
    "background noise", "signal", "is everything",
)
TIME_PHRASES = (
    "time", "remaining", "wrap up", "wrapping up", "last few",
    "final question", "before we finish", "running short",
    "almost done", "last question", "one more",
    "a few more minutes", "coming to the end",
)


class Verdict(NamedTuple):
    result: AdherenceResult
    reason: str


def interviewer_turns_after(
    transcript: Sequence[TurnEntry],
    after_timestamp: int,
    max_turns: int = MAX_TURNS_LOOKAHEAD,
) -> List[TurnEntry]:
    turns: List[TurnEntry] = []
    for entry in transcript:
        if entry.timestamp <= after_timestamp or entry.speaker != "interviewer":
            continue
        turns.append(entry)
        if len(turns) >= max_turns:
            break
    return turns


def _score_probe_followup(event: GuidanceEvent, turns: List[TurnEntry]) -> Verdict:
    if not turns:
        return Verdict("not_applicable", NO_RESPONSE_REASON)
    text = turns[0].text
    has_question = "?" in text
    has_probe = contains_phrase(text, PROBE_PHRASES)
    if not has_question and not has_probe:
        return Verdict("not_followed", "Interviewer response did not include follow-up probing")
    if not (has_question and has_probe):
        detail = (
            "asked a question, but without clear probing language"
            if has_question
            else "used probing language but did not ask a direct question"
        )
        return Verdict("partially_followed", f"Interviewer {detail}")

    guidance_keywords = get_keywords(event.message_summary, INTERVIEW_META_STOPWORDS)
    if len(guidance_keywords) < MIN_KEYWORDS_FOR_TOPICAL_CHECK:
        return Verdict(
            "followed",
            "Interviewer asked a probing follow-up (topical check skipped, too few guidance keywords)",
        )
    overlap = overlap_coefficient(guidance_keywords, get_keywords(text))
    percent = round(overlap * 100)
    if overlap >= TOPICAL_RELEVANCE_THRESHOLD:
        return Verdict("followed", f"Interviewer asked a topically relevant follow-up (overlap: {percent}%)")
    return Verdict("partially_followed", f"Interviewer probed but on a different topic (overlap: {percent}%)")


def _score_suggest_next(event: GuidanceEvent, transcript: Sequence[TurnEntry]) -> Verdict:
    later = [entry for entry in transcript if entry.timestamp > event.timestamp]
    offset = next(
        (pos for pos, entry in enumerate(later) if entry.question_index > event.question_index),
        None,
    )
    if offset is not None:
        if offset <= MAX_OFFSET_FOR_FOLLOWED:
            return Verdict("followed", f"Question advanced within {offset + 1} turn(s) of guidance")
        return Verdict("partially_followed", f"Question eventually advanced but took {offset + 1} turns")

    interviewer_later = [entry for entry in later if entry.speaker == "interviewer"][:3]
    if any(contains_phrase(entry.text, TRANSITION_PHRASES) for entry in interviewer_later):
        return Verdict("partially_followed", "Interviewer used transition language but the question did not advance")
    return Verdict("not_followed", "Question did not advance and no transition language detected")


def _score_acknowledge_prior(
    event: GuidanceEvent,
    turns: List[TurnEntry],
    transcript: Sequence[TurnEntry],
) -> Verdict:
    if not turns:
        return Verdict("not_applicable", NO_RESPONSE_REASON)
    spoke_before = any(
        entry.speaker == "respondent" and entry.timestamp < event.timestamp for entry in transcript
    )
    if not spoke_before:
        return Verdict("not_applicable", "No respondent speech found before guidance to acknowledge")
    if contains_phrase(turns[0].text, ACKNOWLEDGMENT_PHRASES):
        return Verdict("followed", "Interviewer acknowledged the respondent's prior statement")
    return Verdict("not_followed", "No acknowledgment language detected in interviewer response")


def _score_confirm_understanding(turns: List[TurnEntry]) -> Verdict:
    if not turns:
        return Verdict("not_applicable", NO_RESPONSE_REASON)
    text = turns[0].text
    if contains_phrase(text, CONFIRMATION_PHRASES):
        return Verdict("followed", "Interviewer sought to confirm understanding of the answer")
    if "?" in text:
        return Verdict("partially_followed", "Interviewer asked a question but without explicit confirmation language")
    return Verdict("not_followed", "No understanding confirmation detected in interviewer response")


def _score_keywords(turns: List[TurnEntry], window: int, phrases: Sequence[str], followed: str, missed: str) -> Verdict:
    if not turns:
        return Verdict("not_applicable", NO_RESPONSE_REASON)
    combined = " ".join(entry.text for entry in turns[:window])
    if contains_phrase(combined, phrases):
        return Verdict("followed", followed)
    return Verdict("not_followed", missed)


def score_event(event: GuidanceEvent, transcript: Sequence[TurnEntry]) -> GuidanceEvent:
    """Return a copy of ``event`` carrying its adherence label."""

    if not event.injected:
        return event.model_copy(update={"adherence": "not_applicable", "adherence_reason": NOT_INJECTED_REASON})
    if event.action is GuidanceAction.NONE:
        return event.model_copy(update={"adherence": "not_applicable", "adherence_reason": "No-op guidance action"})

    turns = interviewer_turns_after(transcript, event.timestamp)
    snippet = truncate(turns[0].text, SNIPPET_MAX_LENGTH) if turns else None
    action = event.action
    if action is GuidanceAction.PROBE_FOLLOWUP:
        verdict = _score_probe_followup(event, turns)
    elif action is GuidanceAction.SUGGEST_NEXT_QUESTION:
        verdict = _score_suggest_next(event, transcript)
    elif action is GuidanceAction.ACKNOWLEDGE_PRIOR:
        verdict = _score_acknowledge_prior(event, turns, transcript)
    elif action is GuidanceAction.CONFIRM_UNDERSTANDING:
        verdict = _score_confirm_understanding(turns)
    elif action is GuidanceAction.SUGGEST_ENVIRONMENT_CHECK:
        verdict = _score_keywords(
            turns,
            2,
            ENVIRONMENT_PHRASES,
            "Interviewer checked the audio/environment as suggested",
            "No environment check language detected in interviewer response",
        )
    elif action is GuidanceAction.TIME_REMINDER:
        verdict = _score_keywords(
            turns,
            3,
            TIME_PHRASES,
            "Interviewer referenced time constraints as suggested",
            "No time-related language detected in interviewer response",
        )
    else:
        verdict = Verdict("unscored", f"Unknown action: {action.value}")

    return event.model_copy(
        update={"adherence": verdict.result, "adherence_reason": verdict.reason, "response_snippet": snippet}
    )


def score_guidance_adherence(
    guidance_log: Sequence[GuidanceEvent],
    transcript: Sequence[TurnEntry],
    *,
    session_id: Optional[str] = None,
) -> List[GuidanceEvent]:
    ordered = sorted(transcript, key=lambda entry: entry.timestamp)
    scored: List[GuidanceEvent] = []
    for event in guidance_log:
        try:
            scored.append(score_event(event, ordered))
        except (AttributeError, TypeError, ValueError) as exc:
            log_event("adherence.event_failed", session_id, level=logging.WARNING, reason=str(exc), index=event.index)
            scored.append(
                event.model_copy(update={"adherence": "unscored", "adherence_reason": f"Scoring failed: {exc}"})
            )
    return scored


class ActionAdherence(BaseModel):
    total: int = 0
    injected: int = 0
    followed: int = 0
    adherence_rate: float = 0.0


class AdherenceSummary(BaseModel):
    total_guidance_events: int = 0
    injected_count: int = 0
    scored_count: int = 0
    followed_count: int = 0
    partially_followed_count: int = 0
    not_followed_count: int = 0
    not_applicable_count: int = 0
    unscored_count: int = 0
    overall_adherence_rate: float = 0.0
    by_action: Dict[str, ActionAdherence] = Field(default_factory=dict)
    computed_at: int = Field(default_factory=now_ms)


def is_scorable(result: Optional[AdherenceResult]) -> bool:
    return result in ("followed", "partially_followed", "not_followed")


def weighted_rate(followed: int, partial: int, scored: int) -> float:
    return (followed + 0.5 * partial) / scored if scored > 0 else 0.0


def compute_adherence_summary(scored_log: Sequence[GuidanceEvent]) -> AdherenceSummary:
    """Per-session counts; events with no label count as unscored."""

    counts: Dict[str, int] = {
        "followed": 0,
        "partially_followed": 0,
        "not_followed": 0,
        "not_applicable": 0,
        "unscored": 0,
    }
    for event in scored_log:
        counts[event.adherence or "unscored"] += 1
    scored_count = counts["followed"] + counts["partially_followed"] + counts["not_followed"]

    by_action: Dict[str, ActionAdherence] = {}
    for action in KNOWN_ACTIONS + [GuidanceAction.UNKNOWN]:
        entries = [event for event in scored_log if event.action is action]
        if action is GuidanceAction.UNKNOWN and not entries:
            continue
        scorable = [event for event in entries if is_scorable(event.adherence)]
        followed = sum(1 for event in entries if event.adherence in ("followed", "partially_followed"))
        by_action[action.value] = ActionAdherence(
            total=len(entries),
            injected=sum(1 for event in entries if event.injected),
            followed=followed,
            adherence_rate=followed / len(scorable) if scorable else 0.0,
        )

    return AdherenceSummary(
        total_guidance_events=len(scored_log),
        injected_count=sum(1 for event in scored_log if event.injected),
        scored_count=scored_count,
        followed_count=counts["followed"],
        partially_followed_count=counts["partially_followed"],
        not_followed_count=counts["not_followed"],
        not_applicable_count=counts["not_applicable"],
        unscored_count=counts["unscored"],
        overall_adherence_rate=weighted_rate(counts["followed"], counts["partially_followed"], scored_count),
        by_action=by_action,
    )


__all__ = [
    "ActionAdherence",
    "AdherenceSummary",
    "compute_adherence_summary",
    "interviewer_turns_after",
    "is_scorable",
    "score_event",
    "score_guidance_adherence",
    "weighted_rate",
]
