"""Append-only transcript with a bounded working window."""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from services.text_utils import get_keywords, jaccard_similarity

from .models import Speaker, TurnEntry, now_ms

DEFAULT_WINDOW = 50
REPEAT_LOOKBACK = 4
REPEAT_SIMILARITY = 0.6

T = TypeVar("T")

_DASHES = re.compile(r"\s*[—–]\s*")
_SPACES = re.compile(r"\s{2,}")


def retain_last(entries: Sequence[T], limit: int) -> List[T]:
    """Keep the most recent ``limit`` entries, dropping the oldest first."""

    if limit <= 0:
        return []
    if len(entries) <= limit:
        return list(entries)
    return list(entries[-limit:])


def sanitize_interviewer_text(text: str) -> str:
    """Replace spoken-unfriendly dashes and collapse runs of whitespace."""

    return _SPACES.sub(" ", _DASHES.sub("; ", text)).strip()


class TranscriptStore:
    """Turn log owned by a single session.

    ``persisted`` is never truncated. ``working`` mirrors it through
    :func:`retain_last` and is what prompts are built from.
    """

    def __init__(self, window: int = DEFAULT_WINDOW, entries: Optional[Iterable[TurnEntry]] = None) -> None:
        self._window = window
        self._persisted: List[TurnEntry] = []
        self._working: List[TurnEntry] = []
        self._flushed = 0
        for entry in entries or ():
            self.append(entry)

    @property
    def window(self) -> int:
        return self._window

    @property
    def persisted(self) -> Tuple[TurnEntry, ...]:
        return tuple(self._persisted)

    @property
    def working(self) -> Tuple[TurnEntry, ...]:
        return tuple(self._working)

    def __len__(self) -> int:
        return len(self._persisted)

    def append(self, entry: TurnEntry) -> TurnEntry:
        self._persisted.append(entry)
        self._working.append(entry)
        if len(self._working) > self._window:
            self._working = retain_last(self._working, self._window)
        return entry

    def add(self, speaker: Speaker, text: str, question_index: int, timestamp: Optional[int] = None) -> TurnEntry:
        ts = timestamp
        if ts is None:
            ts = now_ms()
            if self._persisted and ts <= self._persisted[-1].timestamp:
                ts = self._persisted[-1].timestamp + 1
        return self.append(TurnEntry(speaker=speaker, text=text, timestamp=ts, question_index=question_index))

    def for_question(self, question_index: int) -> List[TurnEntry]:
        return [entry for entry in self._persisted if entry.question_index == question_index]

    def last_answer(self, question_index: int) -> Optional[str]:
        for entry in reversed(self._persisted):
            if entry.question_index == question_index and entry.speaker == "respondent":
                return entry.text
        return None

    def pending(self) -> List[TurnEntry]:  # Entries appended since the last flush
        return list(self._persisted[self._flushed:])

    def mark_flushed(self) -> None:
        self._flushed = len(self._persisted)


def detect_question_repeat(store: TranscriptStore, question_index: int) -> bool:
    """Whether the interviewer has asked near-identical things for this question."""

    recent = [
        entry
        for entry in store.working
        if entry.speaker == "interviewer" and entry.question_index == question_index
    ][-REPEAT_LOOKBACK:]
    if len(recent) < 2:
        return False
    keywords = [get_keywords(entry.text) for entry in recent]
    for i in range(len(keywords) - 1):
        for j in range(i + 1, len(keywords)):
            if jaccard_similarity(keywords[i], keywords[j]) > REPEAT_SIMILARITY:
                return True
    return False


__all__ = [
    "DEFAULT_WINDOW",
    "TranscriptStore",
    "detect_question_repeat",
    "retain_last",
    "sanitize_interviewer_text",
]
