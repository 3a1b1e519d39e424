"""Persistence helpers for transcript turns and question summaries."""
from __future__ import annotations

import datetime as dt
from typing import List, Sequence

from interview_session.models import QuestionSummary, TurnEntry

from .sqlite import get_conn


def insert_turns(session_id: str, entries: Sequence[TurnEntry], *, start_seq: int) -> int:
    """Append ``entries`` numbered from ``start_seq``; returns the number written."""

    rows = [
        (session_id, start_seq + offset, entry.speaker, entry.text, entry.timestamp, entry.question_index)
        for offset, entry in enumerate(entries)
    ]
    if not rows:
        return 0
    with get_conn() as conn:
        conn.executemany(
            """INSERT INTO transcript_entries
               (session_id, seq, speaker, text, timestamp, question_index)
               VALUES (?, ?, ?, ?, ?, ?)""",
            rows,
        )
    return len(rows)


def load_transcript(session_id: str) -> List[TurnEntry]:
    with get_conn() as conn:
        rows = conn.execute(
            """SELECT speaker, text, timestamp, question_index
               FROM transcript_entries WHERE session_id = ? ORDER BY seq""",
            (session_id,),
        ).fetchall()
    return [TurnEntry(**dict(row)) for row in rows]


def upsert_question_summary(session_id: str, summary: QuestionSummary) -> None:
    """Store the summary for one question, replacing any earlier one."""

    timestamp = dt.datetime.now(dt.timezone.utc).isoformat()
    with get_conn() as conn:
        conn.execute(
            """INSERT INTO question_summaries (session_id, question_index, payload, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT (session_id, question_index)
               DO UPDATE SET payload = excluded.payload, created_at = excluded.created_at""",
            (session_id, summary.question_index, summary.model_dump_json(), timestamp),
        )


def load_question_summaries(session_id: str) -> List[QuestionSummary]:
    with get_conn() as conn:
        rows = conn.execute(
            "SELECT payload FROM question_summaries WHERE session_id = ? ORDER BY question_index",
            (session_id,),
        ).fetchall()
    return [QuestionSummary.model_validate_json(row["payload"]) for row in rows]


__all__ = [
    "insert_turns",
    "load_question_summaries",
    "load_transcript",
    "upsert_question_summary",
]
