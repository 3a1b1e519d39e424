"""Versioned orchestration configuration passed explicitly to the core."""
from __future__ import annotations

import threading
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .settings import Settings, settings as default_settings

UseCase = Literal[
    "advisor",
    "topic_overlap",
    "question_summary",
    "interviewer",
    "respondent",
    "additional_questions",
]


class UseCaseOptions(BaseModel):  # Model knobs for a single use case
    model_config = ConfigDict(frozen=True)

    model: Optional[str] = None
    reasoning_effort: Optional[Literal["minimal", "low", "medium", "high"]] = None
    verbosity: Optional[Literal["low", "medium", "high"]] = None
    max_tokens: Optional[int] = Field(default=None, ge=1)


class AdvisorConfig(BaseModel):  # Gate threshold and race timing
    model_config = ConfigDict(frozen=True)

    confidence_gate: float = Field(default=0.6, ge=0.0, le=1.0)
    timeout_s: float = Field(default=10.0, gt=0.0)
    words_per_minute: int = Field(default=150, ge=1)
    min_turn_delay_s: float = Field(default=0.2, ge=0.0)


class FlowConfig(BaseModel):  # Question flow caps
    model_config = ConfigDict(frozen=True)

    max_turns_per_question: int = Field(default=6, ge=1)
    max_additional_turns_per_question: int = Field(default=3, ge=1)
    hard_cap_turns_per_question: int = Field(default=12, ge=1)
    additional_enabled: bool = False
    max_additional_questions: int = Field(default=1, ge=0)


class SimulationLimits(BaseModel):  # Circuit breakers for simulated sessions
    model_config = ConfigDict(frozen=True)

    per_question_timeout_s: float = Field(default=5 * 60, gt=0.0)
    per_session_timeout_s: float = Field(default=30 * 60, gt=0.0)
    parallel_limit: int = Field(default=3, ge=1)
    max_personas_per_run: int = Field(default=10, ge=1)


class OrchestratorConfig(BaseModel):
    """Immutable configuration snapshot.

    Every component receives this value as an argument. ``version`` increases
    each time :class:`ConfigHolder` publishes a replacement.
    """

    model_config = ConfigDict(frozen=True)

    version: int = Field(default=1, ge=1)
    transcript_window: int = Field(default=50, ge=1)
    overlap_timeout_s: float = Field(default=10.0, gt=0.0)
    summary_timeout_s: float = Field(default=45.0, gt=0.0)
    interviewer_timeout_s: float = Field(default=30.0, gt=0.0)
    respondent_timeout_s: float = Field(default=30.0, gt=0.0)
    additional_questions_timeout_s: float = Field(default=30.0, gt=0.0)
    advisor: AdvisorConfig = Field(default_factory=AdvisorConfig)
    flow: FlowConfig = Field(default_factory=FlowConfig)
    limits: SimulationLimits = Field(default_factory=SimulationLimits)
    use_cases: Dict[str, UseCaseOptions] = Field(default_factory=dict)

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "OrchestratorConfig":
        src = source or default_settings
        return cls(
            transcript_window=src.TRANSCRIPT_WINDOW,
            overlap_timeout_s=src.TOPIC_OVERLAP_TIMEOUT_S,
            summary_timeout_s=src.SUMMARY_TIMEOUT_S,
            interviewer_timeout_s=src.INTERVIEWER_TIMEOUT_S,
            respondent_timeout_s=src.RESPONDENT_TIMEOUT_S,
            additional_questions_timeout_s=src.ADDITIONAL_QUESTIONS_TIMEOUT_S,
            advisor=AdvisorConfig(
                confidence_gate=src.ADVISOR_CONFIDENCE_GATE,
                timeout_s=src.ADVISOR_TIMEOUT_S,
                words_per_minute=src.WORDS_PER_MINUTE,
            ),
        )

    def options_for(self, use_case: UseCase) -> UseCaseOptions:
        return self.use_cases.get(use_case) or UseCaseOptions()


class ConfigHolder:
    """Thread-safe holder for the process-wide current configuration."""

    def __init__(self, initial: OrchestratorConfig | None = None) -> None:
        self._lock = threading.Lock()
        self._current = initial or OrchestratorConfig()

    def get(self) -> OrchestratorConfig:
        return self._current

    def update(self, **changes: Any) -> OrchestratorConfig:
        """Publish a copy with ``changes`` applied and the version bumped."""

        with self._lock:
            merged = self._current.model_dump()
            for key, value in changes.items():
                if isinstance(value, BaseModel):
                    value = value.model_dump()
                if isinstance(value, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **value}
                else:
                    merged[key] = value
            merged["version"] = self._current.version + 1
            self._current = OrchestratorConfig.model_validate(merged)
            return self._current

    def set_use_case(self, use_case: UseCase, options: UseCaseOptions) -> OrchestratorConfig:
        return self.update(use_cases={use_case: options})


__all__ = [
    "AdvisorConfig",
    "ConfigHolder",
    "FlowConfig",
    "OrchestratorConfig",
    "SimulationLimits",
    "UseCase",
    "UseCaseOptions",
]
