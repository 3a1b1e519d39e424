"""Persistence helpers for the guidance log and adherence summaries."""
from __future__ import annotations

from typing import List, Optional, Sequence

from interview_session.models import GuidanceEvent
from services.adherence import AdherenceSummary

from .sqlite import get_conn


def upsert_guidance_events(session_id: str, events: Sequence[GuidanceEvent]) -> int:
    """Write events keyed by their log index; rescored events replace earlier rows."""

    rows = [
        (
            session_id,
            event.index,
            event.action.value,
            event.confidence,
            int(event.injected),
            event.timestamp,
            event.question_index,
            event.trigger_turn_index,
            event.message_summary,
            event.adherence,
            event.adherence_reason,
            event.response_snippet,
            int(event.late),
        )
        for event in events
    ]
    if not rows:
        return 0
    with get_conn() as conn:
        conn.executemany(
            """INSERT INTO guidance_events
               (session_id, event_index, action, confidence, injected, timestamp, question_index,
                trigger_turn_index, message_summary, adherence, adherence_reason, response_snippet, late)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT (session_id, event_index) DO UPDATE SET
                 adherence = excluded.adherence,
                 adherence_reason = excluded.adherence_reason,
                 response_snippet = excluded.response_snippet""",
            rows,
        )
    return len(rows)


def load_guidance_log(session_id: str) -> List[GuidanceEvent]:
    with get_conn() as conn:
        rows = conn.execute(
            """SELECT event_index, action, confidence, injected, timestamp, question_index,
                      trigger_turn_index, message_summary, adherence, adherence_reason,
                      response_snippet, late
               FROM guidance_events WHERE session_id = ? ORDER BY event_index""",
            (session_id,),
        ).fetchall()
    return [
        GuidanceEvent(
            index=row["event_index"],
            action=row["action"],
            confidence=row["confidence"],
            injected=bool(row["injected"]),
            timestamp=row["timestamp"],
            question_index=row["question_index"],
            trigger_turn_index=row["trigger_turn_index"],
            message_summary=row["message_summary"],
            adherence=row["adherence"],
            adherence_reason=row["adherence_reason"],
            response_snippet=row["response_snippet"],
            late=bool(row["late"]),
        )
        for row in rows
    ]


def upsert_adherence_summary(session_id: str, summary: AdherenceSummary) -> None:
    with get_conn() as conn:
        conn.execute(
            """INSERT INTO adherence_summaries (session_id, computed_at, overall_adherence_rate, payload)
               VALUES (?, ?, ?, ?)
               ON CONFLICT (session_id) DO UPDATE SET
                 computed_at = excluded.computed_at,
                 overall_adherence_rate = excluded.overall_adherence_rate,
                 payload = excluded.payload""",
            (session_id, summary.computed_at, summary.overall_adherence_rate, summary.model_dump_json()),
        )


def load_adherence_summary(session_id: str) -> Optional[AdherenceSummary]:
    with get_conn() as conn:
        row = conn.execute(
            "SELECT payload FROM adherence_summaries WHERE session_id = ?", (session_id,)
        ).fetchone()
    return AdherenceSummary.model_validate_json(row["payload"]) if row else None


__all__ = [
    "load_adherence_summary",
    "load_guidance_log",
    "upsert_adherence_summary",
    "upsert_guidance_events",
]
