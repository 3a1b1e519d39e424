import asyncio
import json

import pytest

from config.orchestrator import (
    AdvisorConfig,
    ConfigHolder,
    OrchestratorConfig,
    UseCaseOptions,
)
from config.registry import ADVISOR_KEY, ainvoke, bind_model, get_model, unbind_model
from config.routes import AppConfig, load_config, resolve_registry
from config.settings import Settings
from pydantic import BaseModel, ValidationError


def test_settings_defaults():
    settings = Settings(_env_file=None)
    assert settings.DB_PATH.endswith(".db")
    assert settings.ADVISOR_CONFIDENCE_GATE == 0.6
    assert settings.TRANSCRIPT_WINDOW == 50


def test_config_from_settings_carries_tunables():
    cfg = OrchestratorConfig.from_settings(
        Settings(_env_file=None, ADVISOR_TIMEOUT_S=4.0, RESPONDENT_TIMEOUT_S=12.0)
    )
    assert cfg.advisor.timeout_s == 4.0
    assert cfg.respondent_timeout_s == 12.0
    assert cfg.interviewer_timeout_s == 30.0
    assert cfg.additional_questions_timeout_s == 30.0
    assert cfg.advisor.words_per_minute == 150
    assert cfg.flow.hard_cap_turns_per_question == 12
    assert cfg.limits.parallel_limit == 3


def test_config_is_frozen():
    cfg = OrchestratorConfig()
    with pytest.raises(ValidationError):
        cfg.transcript_window = 10


def test_holder_update_bumps_version_and_merges_nested():
    holder = ConfigHolder()
    original = holder.get()
    updated = holder.update(advisor={"confidence_gate": 0.75})

    assert updated.version == original.version + 1
    assert updated.advisor.confidence_gate == 0.75
    assert updated.advisor.timeout_s == original.advisor.timeout_s
    assert original.advisor.confidence_gate == 0.6
    assert holder.get() is updated


def test_holder_accepts_model_values():
    holder = ConfigHolder()
    holder.update(advisor=AdvisorConfig(timeout_s=2.5))
    cfg = holder.set_use_case("advisor", UseCaseOptions(model="gpt-small", max_tokens=300))
    assert cfg.version == 3
    assert cfg.advisor.timeout_s == 2.5
    assert cfg.options_for("advisor").model == "gpt-small"
    assert cfg.options_for("respondent").model is None


def test_registry_bind_and_retrieve():
    marker = object()
    bind_model(ADVISOR_KEY, lambda **_: marker)
    model = get_model(ADVISOR_KEY)
    assert model() is marker

    unbind_model(ADVISOR_KEY)
    with pytest.raises(KeyError):
        get_model(ADVISOR_KEY)


def test_ainvoke_handles_sync_and_async_callables():
    async def async_model(**kwargs):
        return {"echo": kwargs["value"]}

    bind_model(ADVISOR_KEY, lambda **kwargs: {"echo": kwargs["value"] * 2})
    assert asyncio.run(ainvoke(ADVISOR_KEY, value=2)) == {"echo": 4}

    bind_model(ADVISOR_KEY, async_model)
    assert asyncio.run(ainvoke(ADVISOR_KEY, value=2)) == {"echo": 2}


class _Schema(BaseModel):
    value: int


def test_load_config_and_resolve_registry(tmp_path):
    path = tmp_path / "app_config.json"
    path.write_text(
        json.dumps(
            {
                "llm_routes": {
                    "fast": {
                        "name": "fast",
                        "base_url": "http://localhost:8080",
                        "endpoint": "/v1/chat/completions",
                        "model": "small",
                        "timeout_s": 5,
                    }
                },
                "registry": {ADVISOR_KEY: "fast"},
            }
        ),
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert isinstance(cfg, AppConfig)
    resolved = resolve_registry(cfg, {ADVISOR_KEY: _Schema})
    route, schema = resolved[ADVISOR_KEY]
    assert route.model == "small"
    assert schema is _Schema

    with pytest.raises(KeyError):
        resolve_registry(cfg, {"models.missing": _Schema})
