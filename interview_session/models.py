"""Session entities shared by the orchestration core."""
from __future__ import annotations

import time
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Speaker = Literal["interviewer", "respondent"]
AdherenceResult = Literal[
    "followed",
    "partially_followed",
    "not_followed",
    "not_applicable",
    "unscored",
]


def now_ms() -> int:
    return int(time.time() * 1000)


EMPTY_SUMMARY_TEXT = "Minimal or no response provided."


class GuidanceAction(str, Enum):
    ACKNOWLEDGE_PRIOR = "acknowledge_prior"
    PROBE_FOLLOWUP = "probe_followup"
    SUGGEST_NEXT_QUESTION = "suggest_next_question"
    CONFIRM_UNDERSTANDING = "confirm_understanding"
    SUGGEST_ENVIRONMENT_CHECK = "suggest_environment_check"
    TIME_REMINDER = "time_reminder"
    NONE = "none"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "GuidanceAction":
        """Map any raw action onto the closed set; unrecognised values become UNKNOWN."""

        if isinstance(value, cls):
            return value
        if value is None:
            return cls.NONE
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


# Actions the advisor may legitimately emit, in reporting order.
KNOWN_ACTIONS: List[GuidanceAction] = [
    GuidanceAction.PROBE_FOLLOWUP,
    GuidanceAction.SUGGEST_NEXT_QUESTION,
    GuidanceAction.ACKNOWLEDGE_PRIOR,
    GuidanceAction.CONFIRM_UNDERSTANDING,
    GuidanceAction.SUGGEST_ENVIRONMENT_CHECK,
    GuidanceAction.TIME_REMINDER,
    GuidanceAction.NONE,
]


class TurnEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str
    timestamp: int
    question_index: int = Field(ge=0)


class Question(BaseModel):
    text: str
    guidance: str = ""
    recommended_follow_ups: Optional[int] = Field(default=None, ge=0)
    # Kept raw; flow evaluation parses it leniently and fails open.
    conditional_logic: Optional[Any] = None


class QuestionSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_index: int = Field(ge=0)
    question_text: str
    respondent_summary: str
    key_insights: List[str] = Field(default_factory=list)
    completeness_assessment: str
    relevant_to_future_questions: List[str] = Field(default_factory=list)
    word_count: int = Field(default=0, ge=0)
    turn_count: int = Field(default=0, ge=0)
    active_time_ms: int = Field(default=0, ge=0)
    timestamp: int = Field(default_factory=now_ms)

    @property
    def has_content(self) -> bool:
        return bool(self.key_insights) and self.respondent_summary != EMPTY_SUMMARY_TEXT


class GuidanceEvent(BaseModel):
    """One advisor evaluation; adherence fields are filled in by the scorer."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    action: GuidanceAction
    message_summary: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    injected: bool
    timestamp: int
    question_index: int = Field(ge=0)
    trigger_turn_index: int = Field(default=0, ge=0)
    adherence: Optional[AdherenceResult] = None
    adherence_reason: Optional[str] = None
    response_snippet: Optional[str] = None
    late: bool = False

    @field_validator("action", mode="before")
    @classmethod
    def _closed_action(cls, value: Any) -> GuidanceAction:
        return GuidanceAction.parse(value)


__all__ = [
    "AdherenceResult",
    "EMPTY_SUMMARY_TEXT",
    "GuidanceAction",
    "GuidanceEvent",
    "KNOWN_ACTIONS",
    "Question",
    "QuestionSummary",
    "Speaker",
    "TurnEntry",
    "now_ms",
]
