"""Inputs and results of simulated interview sessions."""
from __future__ import annotations

import asyncio
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from candidate_agent.respondent import Persona
from interview_session.models import GuidanceEvent, QuestionSummary, TurnEntry
from interview_session.scope import Collection, PriorSession, Project, Template
from services.adherence import AdherenceSummary

StopReason = Literal["session_timeout", "cancelled"]


class CancelToken:
    """Cooperative cancellation shared by every session of a run.

    Checked before each new model call; calls already in flight finish and
    their results are dropped.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class SimulationOptions(BaseModel):
    enable_advisor: bool = True
    enable_summaries: bool = True
    pace: bool = True  # Sleep out natural turn durations between calls


class SimulationContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    project: Project
    template: Template
    collection: Collection
    persona: Persona
    prior_sessions: List[PriorSession] = Field(default_factory=list)
    options: SimulationOptions = Field(default_factory=SimulationOptions)


class SessionResult(BaseModel):
    session_id: str
    persona_name: str
    status: Literal["completed", "abandoned"]
    stop_reason: Optional[StopReason] = None
    transcript: List[TurnEntry] = Field(default_factory=list)
    summaries: List[QuestionSummary] = Field(default_factory=list)
    guidance_log: List[GuidanceEvent] = Field(default_factory=list)
    adherence: Optional[AdherenceSummary] = None
    duration_ms: int = 0


class SessionFailure(BaseModel):
    persona_name: str
    error: str


class BatchResult(BaseModel):
    run_id: str
    status: Literal["completed", "failed", "cancelled"]
    completed: int = 0
    failed: int = 0
    sessions: List[SessionResult] = Field(default_factory=list)
    failures: List[SessionFailure] = Field(default_factory=list)


__all__ = [
    "BatchResult",
    "CancelToken",
    "SessionFailure",
    "SessionResult",
    "SimulationContext",
    "SimulationOptions",
    "StopReason",
]
