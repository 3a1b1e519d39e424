"""Per-question counters maintained while a question is open."""
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field

from services.text_utils import word_count

from .models import now_ms


class QuestionMetrics(BaseModel):  # Counters for one question
    question_index: int = Field(ge=0)
    word_count: int = Field(default=0, ge=0)
    active_time_ms: int = Field(default=0, ge=0)
    turn_count: int = Field(default=0, ge=0)
    follow_up_count: int = Field(default=0, ge=0)
    started_at: Optional[int] = None
    recommended_follow_ups: Optional[int] = None


class QuestionMetricsTracker:
    """Owns the open question's metrics and the closed snapshots of earlier ones."""

    def __init__(self) -> None:
        self._current: Optional[QuestionMetrics] = None
        self._completed: Dict[int, QuestionMetrics] = {}

    @property
    def current(self) -> Optional[QuestionMetrics]:
        return self._current

    @property
    def completed(self) -> Dict[int, QuestionMetrics]:
        return {index: metrics.model_copy() for index, metrics in self._completed.items()}

    def start(
        self,
        question_index: int,
        *,
        recommended_follow_ups: Optional[int] = None,
        now: Optional[int] = None,
    ) -> QuestionMetrics:
        if self._current is not None:
            self.end(now=now)
        self._current = QuestionMetrics(
            question_index=question_index,
            started_at=now_ms() if now is None else now,
            recommended_follow_ups=recommended_follow_ups,
        )
        return self.snapshot()

    def resume(self, metrics: QuestionMetrics) -> None:  # Reopen a question rebuilt from persisted turns
        self._current = metrics.model_copy()

    def record_response(self, text: str, *, now: Optional[int] = None) -> QuestionMetrics:
        metrics = self._require_open()
        metrics.word_count += word_count(text)
        metrics.turn_count += 1
        metrics.follow_up_count += 1
        self._touch(metrics, now)
        return self.snapshot(now=now)

    def snapshot(self, *, now: Optional[int] = None) -> QuestionMetrics:
        """Copy of the open metrics with active time measured up to ``now``."""

        metrics = self._require_open()
        copy = metrics.model_copy()
        self._touch(copy, now)
        return copy

    def end(self, *, now: Optional[int] = None) -> QuestionMetrics:
        metrics = self._require_open()
        self._touch(metrics, now)
        self._completed[metrics.question_index] = metrics
        self._current = None
        return metrics.model_copy()

    def _require_open(self) -> QuestionMetrics:
        if self._current is None:
            raise RuntimeError("No question is open")
        return self._current

    @staticmethod
    def _touch(metrics: QuestionMetrics, now: Optional[int]) -> None:
        if metrics.started_at is None:
            return
        current = now_ms() if now is None else now
        metrics.active_time_ms = max(0, current - metrics.started_at)


__all__ = ["QuestionMetrics", "QuestionMetricsTracker"]
