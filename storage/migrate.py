"""SQLite schema migrations."""
from __future__ import annotations

import os
import sqlite3
from typing import Iterable, Optional

from config.settings import settings

SCHEMA: Iterable[str] = [
    """
CREATE TABLE IF NOT EXISTS sessions (
  id TEXT PRIMARY KEY,
  collection_id TEXT NOT NULL,
  template_id TEXT,
  project_id TEXT,
  persona_name TEXT,
  status TEXT NOT NULL,
  current_question_index INTEGER NOT NULL DEFAULT 0,
  is_simulated INTEGER NOT NULL DEFAULT 0,
  total_duration_ms INTEGER,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
""",
    """
CREATE TABLE IF NOT EXISTS transcript_entries (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT NOT NULL,
  seq INTEGER NOT NULL,
  speaker TEXT NOT NULL,
  text TEXT NOT NULL,
  timestamp INTEGER NOT NULL,
  question_index INTEGER NOT NULL,
  UNIQUE (session_id, seq)
);
""",
    """
CREATE TABLE IF NOT EXISTS question_summaries (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT NOT NULL,
  question_index INTEGER NOT NULL,
  payload TEXT NOT NULL,
  created_at TEXT NOT NULL,
  UNIQUE (session_id, question_index)
);
""",
    """
CREATE TABLE IF NOT EXISTS guidance_events (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT NOT NULL,
  event_index INTEGER NOT NULL,
  action TEXT NOT NULL,
  confidence REAL NOT NULL,
  injected INTEGER NOT NULL,
  timestamp INTEGER NOT NULL,
  question_index INTEGER NOT NULL,
  trigger_turn_index INTEGER NOT NULL,
  message_summary TEXT NOT NULL,
  adherence TEXT,
  adherence_reason TEXT,
  response_snippet TEXT,
  late INTEGER NOT NULL DEFAULT 0,
  UNIQUE (session_id, event_index)
);
""",
    """
CREATE TABLE IF NOT EXISTS adherence_summaries (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  session_id TEXT NOT NULL UNIQUE,
  computed_at INTEGER NOT NULL,
  overall_adherence_rate REAL NOT NULL,
  payload TEXT NOT NULL
);
""",
    "CREATE INDEX IF NOT EXISTS idx_sessions_collection ON sessions (collection_id);",
    "CREATE INDEX IF NOT EXISTS idx_guidance_session ON guidance_events (session_id);",
]


def migrate(db_path: Optional[str] = None) -> None:
    """Apply schema migrations to the SQLite database."""

    path = db_path or settings.DB_PATH
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        for stmt in SCHEMA:
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()


if __name__ == "__main__":
    migrate()
