import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage.migrate import migrate
from config.settings import settings
from config.registry import (
    ADDITIONAL_QUESTIONS_KEY,
    ADVISOR_KEY,
    INTERVIEWER_KEY,
    RESPONDENT_KEY,
    SUMMARY_KEY,
    TOPIC_OVERLAP_KEY,
    bind_model,
    unbind_model,
)

MODEL_KEYS = (
    ADVISOR_KEY,
    TOPIC_OVERLAP_KEY,
    SUMMARY_KEY,
    INTERVIEWER_KEY,
    RESPONDENT_KEY,
    ADDITIONAL_QUESTIONS_KEY,
)


@pytest.fixture(autouse=True)
def tmp_db(monkeypatch):
    td = tempfile.TemporaryDirectory()
    db_path = os.path.join(td.name, "test.db")
    monkeypatch.setattr(settings, "DB_PATH", db_path, raising=False)
    migrate(db_path)
    try:
        yield db_path
    finally:
        td.cleanup()


@pytest.fixture(autouse=True)
def clean_registry():
    yield
    for key in MODEL_KEYS:
        unbind_model(key)


@pytest.fixture
def fake_models():
    bind_model(
        INTERVIEWER_KEY,
        lambda **kwargs: {"text": f"Tell me more about {kwargs['inputs']['question']}?"},
    )
    bind_model(
        RESPONDENT_KEY,
        lambda **_: {"answer": "We mostly track onboarding time and it has been slow for new hires lately."},
    )
    bind_model(
        ADVISOR_KEY,
        lambda **_: {"action": "probe_followup", "message": "Ask about onboarding delays", "confidence": 0.8},
    )
    bind_model(
        SUMMARY_KEY,
        lambda **_: {
            "respondent_summary": "Onboarding is slow.",
            "key_insights": ["onboarding time is tracked"],
            "completeness_assessment": "Brief but covered key points",
            "relevant_to_future_questions": ["hiring"],
        },
    )
    bind_model(TOPIC_OVERLAP_KEY, lambda **_: {"has_overlap": False})
    bind_model(ADDITIONAL_QUESTIONS_KEY, lambda **_: {"questions": []})
    return True
