"""Persistence helpers for session rows."""
from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel

from services.aggregation import SessionRecord

from .guidance import load_guidance_log
from .sqlite import get_conn
from .transcript import load_transcript

SessionStatus = Literal["in_progress", "paused", "completed", "abandoned"]


class SessionPayload(BaseModel):
    collection_id: str
    template_id: Optional[str] = None
    project_id: Optional[str] = None
    persona_name: Optional[str] = None
    status: SessionStatus = "in_progress"
    is_simulated: bool = False
    id: Optional[str] = None


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def create_session(**data: Any) -> str:
    """Insert a session row and return its id."""

    payload = SessionPayload(**data)
    session_id = payload.id or str(uuid.uuid4())
    timestamp = _now()
    with get_conn() as conn:
        conn.execute(
            """INSERT INTO sessions
               (id, collection_id, template_id, project_id, persona_name, status,
                is_simulated, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                session_id,
                payload.collection_id,
                payload.template_id,
                payload.project_id,
                payload.persona_name,
                payload.status,
                int(payload.is_simulated),
                timestamp,
                timestamp,
            ),
        )
    return session_id


def update_session(
    session_id: str,
    *,
    status: Optional[SessionStatus] = None,
    current_question_index: Optional[int] = None,
    total_duration_ms: Optional[int] = None,
) -> None:
    if status is not None and status not in get_args(SessionStatus):
        raise ValueError(f"Unknown session status: {status}")
    with get_conn() as conn:
        conn.execute(
            """UPDATE sessions
               SET status = COALESCE(?, status),
                   current_question_index = COALESCE(?, current_question_index),
                   total_duration_ms = COALESCE(?, total_duration_ms),
                   updated_at = ?
               WHERE id = ?""",
            (status, current_question_index, total_duration_ms, _now(), session_id),
        )


def get_session(session_id: str) -> Optional[Dict[str, Any]]:
    with get_conn() as conn:
        row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
    return dict(row) if row else None


# Aggregation scope level to the sessions column it filters on.
_SCOPE_COLUMNS = {"collection": "collection_id", "template": "template_id", "project": "project_id"}


def _load_scoped_sessions(level: str, scope_id: str) -> List[SessionRecord]:  # Sessions with guidance logs and transcripts, for aggregation
    column = _SCOPE_COLUMNS[level]
    with get_conn() as conn:
        rows = conn.execute(
            f"SELECT id, collection_id, status FROM sessions WHERE {column} = ? ORDER BY created_at",
            (scope_id,),
        ).fetchall()
    records: List[SessionRecord] = []
    for row in rows:
        log = load_guidance_log(row["id"])
        transcript = load_transcript(row["id"])
        records.append(
            SessionRecord(
                id=row["id"],
                collection_id=row["collection_id"],
                status=row["status"],
                guidance_log=[event.model_dump() for event in log] or None,
                transcript=[entry.model_dump() for entry in transcript] or None,
            )
        )
    return records


def load_collection_sessions(collection_id: str) -> List[SessionRecord]:
    return _load_scoped_sessions("collection", collection_id)


def load_template_sessions(template_id: str) -> List[SessionRecord]:
    return _load_scoped_sessions("template", template_id)


def load_project_sessions(project_id: str) -> List[SessionRecord]:
    return _load_scoped_sessions("project", project_id)


__all__ = [
    "SessionPayload",
    "SessionStatus",
    "create_session",
    "get_session",
    "load_collection_sessions",
    "load_project_sessions",
    "load_template_sessions",
    "update_session",
]
