"""Configuration package for the interview orchestrator."""
from .orchestrator import (
    AdvisorConfig,
    ConfigHolder,
    FlowConfig,
    OrchestratorConfig,
    SimulationLimits,
    UseCaseOptions,
)
from .registry import (
    ADDITIONAL_QUESTIONS_KEY,
    ADVISOR_KEY,
    INTERVIEWER_KEY,
    RESPONDENT_KEY,
    SUMMARY_KEY,
    TOPIC_OVERLAP_KEY,
    ainvoke,
    bind_model,
    get_model,
)
from .routes import AppConfig, LlmRoute, load_config, resolve_registry
from .settings import Settings, settings

__all__ = [
    "AdvisorConfig",
    "ConfigHolder",
    "FlowConfig",
    "OrchestratorConfig",
    "SimulationLimits",
    "UseCaseOptions",
    "ADDITIONAL_QUESTIONS_KEY",
    "ADVISOR_KEY",
    "INTERVIEWER_KEY",
    "RESPONDENT_KEY",
    "SUMMARY_KEY",
    "TOPIC_OVERLAP_KEY",
    "ainvoke",
    "bind_model",
    "get_model",
    "AppConfig",
    "LlmRoute",
    "load_config",
    "resolve_registry",
    "Settings",
    "settings",
]
