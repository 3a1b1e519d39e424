from __future__ import annotations  # Simulated respondent public API

from .respondent import (
    FALLBACK_REPLY,
    Persona,
    RespondentReply,
    build_persona_prompt,
    conversation_messages,
    generate_reply,
)

__all__ = [
    "FALLBACK_REPLY",
    "Persona",
    "RespondentReply",
    "build_persona_prompt",
    "conversation_messages",
    "generate_reply",
]
