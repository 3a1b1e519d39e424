"""Process settings loaded from the environment."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    DB_PATH: str = Field(default="data/interview.db")
    ROUTES_PATH: str = Field(default="app_config.json")

    TRANSCRIPT_WINDOW: int = 50
    ADVISOR_CONFIDENCE_GATE: float = 0.6
    ADVISOR_TIMEOUT_S: float = 10.0
    TOPIC_OVERLAP_TIMEOUT_S: float = 10.0
    SUMMARY_TIMEOUT_S: float = 45.0
    INTERVIEWER_TIMEOUT_S: float = 30.0
    RESPONDENT_TIMEOUT_S: float = 30.0
    ADDITIONAL_QUESTIONS_TIMEOUT_S: float = 30.0
    WORDS_PER_MINUTE: int = 150

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True)


settings = Settings()
