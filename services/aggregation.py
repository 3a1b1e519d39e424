"""Cross-session aggregation of advisor guidance and interviewer adherence."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from interview_session.models import GuidanceAction, GuidanceEvent, KNOWN_ACTIONS, TurnEntry
from observability.logger import log_event

from .adherence import is_scorable, score_event, weighted_rate

MALFORMED_REASON = "Malformed guidance entry"
REPORTED_ACTIONS = [action.value for action in KNOWN_ACTIONS] + [GuidanceAction.UNKNOWN.value]


class SessionRecord(BaseModel):  # Raw session payload as read from storage
    id: str
    collection_id: str = ""
    status: str = "completed"
    guidance_log: Optional[List[Any]] = None
    transcript: Optional[List[Any]] = None


class AggregationScope(BaseModel):
    level: Literal["collection", "template", "project"]
    id: str


def _to_epoch_ms(value: Any) -> Any:
    if value is None or isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        value = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return int(value.timestamp() * 1000)
    return value


class AggregationWindow(BaseModel):
    """Inclusive ``[from, to]`` bounds in epoch milliseconds."""

    model_config = ConfigDict(populate_by_name=True)

    from_ms: Optional[int] = Field(default=None, alias="from")
    to_ms: Optional[int] = Field(default=None, alias="to")

    @field_validator("from_ms", "to_ms", mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        return _to_epoch_ms(value)

    def contains(self, timestamp: int) -> bool:
        if self.from_ms is not None and timestamp < self.from_ms:
            return False
        if self.to_ms is not None and timestamp > self.to_ms:
            return False
        return True


class Coverage(BaseModel):
    sessions_visited: int = 0
    sessions_with_guidance: int = 0
    sessions_with_scored_guidance: int = 0
    sessions_with_unscored_guidance: int = 0
    guidance_events_total: int = 0
    guidance_events_in_window: int = 0
    guidance_events_scored: int = 0
    guidance_events_unscored: int = 0


class AdvisorMetrics(BaseModel):
    total_events: int = 0
    injected_count: int = 0
    injection_rate: float = 0.0
    confidence_avg: float = 0.0
    confidence_min: float = 0.0
    confidence_max: float = 0.0
    action_distribution: Dict[str, int] = Field(default_factory=dict)


class ActionBreakdown(BaseModel):
    total: int = 0
    injected: int = 0
    followed: int = 0
    partially_followed: int = 0
    not_followed: int = 0
    adherence_rate: float = 0.0


class InterviewerAdherence(BaseModel):
    followed_count: int = 0
    partially_followed_count: int = 0
    not_followed_count: int = 0
    not_applicable_count: int = 0
    unscored_count: int = 0
    weighted_adherence_rate: float = 0.0
    by_action: Dict[str, ActionBreakdown] = Field(default_factory=dict)


class SessionDiagnostic(BaseModel):
    session_id: str
    collection_id: str
    status: str
    scored_events: int
    total_events: int
    adherence_rate: float
    not_followed_count: int
    injected_count: int
    first_guidance_at: Optional[int] = None
    last_guidance_at: Optional[int] = None


class TopSessions(BaseModel):
    lowest_adherence: List[SessionDiagnostic] = Field(default_factory=list)
    highest_adherence: List[SessionDiagnostic] = Field(default_factory=list)


class GuidanceAggregation(BaseModel):
    scope: AggregationScope
    window: AggregationWindow
    coverage: Coverage
    advisor: AdvisorMetrics
    adherence: InterviewerAdherence
    top_sessions: TopSessions


def _placeholder(raw: Any, position: int) -> GuidanceEvent:
    timestamp = raw.get("timestamp") if isinstance(raw, dict) else None
    return GuidanceEvent(
        index=position,
        action=GuidanceAction.UNKNOWN,
        confidence=0.0,
        injected=False,
        timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else 0,
        question_index=0,
        adherence="unscored",
        adherence_reason=MALFORMED_REASON,
    )


def parse_guidance_log(raw: Optional[Sequence[Any]], session_id: str) -> Optional[List[GuidanceEvent]]:
    """Validate a stored log; malformed entries become unscored placeholders."""

    if not raw:
        return None
    events: List[GuidanceEvent] = []
    for position, item in enumerate(raw):
        if isinstance(item, GuidanceEvent):
            events.append(item)
            continue
        try:
            events.append(GuidanceEvent.model_validate(item))
        except ValidationError as exc:
            log_event(
                "aggregation.malformed_event",
                session_id,
                level=logging.WARNING,
                index=position,
                reason=str(exc.errors()[0].get("msg", "invalid")),
            )
            events.append(_placeholder(item, position))
    return events


def parse_transcript(raw: Optional[Sequence[Any]], session_id: str) -> Optional[List[TurnEntry]]:
    if not raw:
        return None
    entries: List[TurnEntry] = []
    for item in raw:
        if isinstance(item, TurnEntry):
            entries.append(item)
            continue
        try:
            entries.append(TurnEntry.model_validate(item))
        except ValidationError:
            log_event("aggregation.malformed_turn", session_id, level=logging.WARNING)
    entries.sort(key=lambda entry: entry.timestamp)
    return entries or None


def ensure_scored(
    log: List[GuidanceEvent],
    transcript: Optional[List[TurnEntry]],
    session_id: str,
) -> Tuple[List[GuidanceEvent], bool]:
    """Label events that have no adherence yet.

    Returns the log and whether any event ended up unscored, including
    malformed placeholders and events that need a missing transcript.
    """

    had_unscored = False
    scored: List[GuidanceEvent] = []
    for event in log:
        if event.adherence is not None:
            scored.append(event)
            continue
        needs_transcript = event.injected and event.action is not GuidanceAction.NONE
        if needs_transcript and transcript is None:
            had_unscored = True
            scored.append(event)
            continue
        try:
            scored.append(score_event(event, transcript or []))
        except (AttributeError, TypeError, ValueError) as exc:
            log_event("aggregation.score_failed", session_id, level=logging.WARNING, reason=str(exc))
            had_unscored = True
            scored.append(event.model_copy(update={"adherence": "unscored", "adherence_reason": str(exc)}))
    had_unscored = had_unscored or any(event.adherence == "unscored" for event in scored)
    return scored, had_unscored


def _diagnostic(session: SessionRecord, entries: Sequence[GuidanceEvent]) -> SessionDiagnostic:
    followed = sum(1 for event in entries if event.adherence == "followed")
    partial = sum(1 for event in entries if event.adherence == "partially_followed")
    not_followed = sum(1 for event in entries if event.adherence == "not_followed")
    scored = followed + partial + not_followed
    timestamps = [event.timestamp for event in entries if event.timestamp]
    return SessionDiagnostic(
        session_id=session.id,
        collection_id=session.collection_id,
        status=session.status,
        scored_events=scored,
        total_events=len(entries),
        adherence_rate=weighted_rate(followed, partial, scored),
        not_followed_count=not_followed,
        injected_count=sum(1 for event in entries if event.injected),
        first_guidance_at=min(timestamps) if timestamps else None,
        last_guidance_at=max(timestamps) if timestamps else None,
    )


def aggregate_guidance(
    sessions: Sequence[SessionRecord],
    scope: AggregationScope,
    window: Optional[AggregationWindow] = None,
    top_n: int = 5,
) -> GuidanceAggregation:
    window = window or AggregationWindow()
    coverage = Coverage(sessions_visited=len(sessions))
    distribution = {action: 0 for action in REPORTED_ACTIONS}
    by_action = {action: ActionBreakdown() for action in REPORTED_ACTIONS}
    confidences: List[float] = []
    injected_total = 0
    labels = {"followed": 0, "partially_followed": 0, "not_followed": 0, "not_applicable": 0, "unscored": 0}
    diagnostics: List[SessionDiagnostic] = []

    for session in sessions:
        log = parse_guidance_log(session.guidance_log, session.id)
        if not log:
            continue
        coverage.sessions_with_guidance += 1
        coverage.guidance_events_total += len(log)

        transcript = parse_transcript(session.transcript, session.id)
        scored, had_unscored = ensure_scored(log, transcript, session.id)
        if had_unscored:
            coverage.sessions_with_unscored_guidance += 1
        else:
            coverage.sessions_with_scored_guidance += 1

        in_window = [event for event in scored if window.contains(event.timestamp)]
        coverage.guidance_events_in_window += len(in_window)

        for event in in_window:
            action = event.action.value
            bucket = by_action[action]
            distribution[action] += 1
            bucket.total += 1
            if event.adherence_reason != MALFORMED_REASON:
                confidences.append(event.confidence)
            if event.injected:
                injected_total += 1
                bucket.injected += 1

            label = event.adherence or "unscored"
            labels[label] += 1
            if is_scorable(label):
                coverage.guidance_events_scored += 1
                setattr(bucket, label, getattr(bucket, label) + 1)
            elif label == "unscored":
                coverage.guidance_events_unscored += 1

        diagnostics.append(_diagnostic(session, in_window))

    for bucket in by_action.values():
        scorable = bucket.followed + bucket.partially_followed + bucket.not_followed
        bucket.adherence_rate = weighted_rate(bucket.followed, bucket.partially_followed, scorable)

    scorable_total = labels["followed"] + labels["partially_followed"] + labels["not_followed"]
    total_in_window = coverage.guidance_events_in_window

    ranked = sorted((row for row in diagnostics if row.scored_events > 0), key=lambda row: row.adherence_rate)
    limit = max(0, top_n)
    top = TopSessions(
        lowest_adherence=ranked[:limit],
        highest_adherence=list(reversed(ranked[-limit:])) if limit else [],
    )

    return GuidanceAggregation(
        scope=scope,
        window=window,
        coverage=coverage,
        advisor=AdvisorMetrics(
            total_events=total_in_window,
            injected_count=injected_total,
            injection_rate=injected_total / total_in_window if total_in_window else 0.0,
            confidence_avg=sum(confidences) / len(confidences) if confidences else 0.0,
            confidence_min=min(confidences) if confidences else 0.0,
            confidence_max=max(confidences) if confidences else 0.0,
            action_distribution=distribution,
        ),
        adherence=InterviewerAdherence(
            followed_count=labels["followed"],
            partially_followed_count=labels["partially_followed"],
            not_followed_count=labels["not_followed"],
            not_applicable_count=labels["not_applicable"],
            unscored_count=labels["unscored"],
            weighted_adherence_rate=weighted_rate(labels["followed"], labels["partially_followed"], scorable_total),
            by_action=by_action,
        ),
        top_sessions=top,
    )


__all__ = [
    "AggregationScope",
    "AggregationWindow",
    "GuidanceAggregation",
    "SessionDiagnostic",
    "SessionRecord",
    "aggregate_guidance",
    "ensure_scored",
    "parse_guidance_log",
    "parse_transcript",
]
