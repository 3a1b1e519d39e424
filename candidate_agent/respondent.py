from __future__ import annotations  # Simulated respondent used by the simulation engine

import asyncio
import json
import logging
from textwrap import dedent
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, model_validator

from config.orchestrator import OrchestratorConfig
from config.registry import RESPONDENT_KEY, ainvoke
from interview_session.models import TurnEntry
from llm_gateway import LlmGatewayError, UsageAttribution
from observability.logger import log_event

Attitude = Literal["cooperative", "reluctant", "neutral", "evasive", "enthusiastic"]
Verbosity = Literal["low", "medium", "high"]
DomainKnowledge = Literal["none", "basic", "intermediate", "expert"]

FALLBACK_REPLY = "Sorry, could you repeat the question?"

VERBOSITY_STYLE: Dict[str, str] = {
    "low": "Keep responses to 1-2 sentences. Be brief and direct.",
    "medium": "Give responses of 3-5 sentences. Provide some detail but stay focused.",
    "high": "Give detailed responses of 5+ sentences. Elaborate on points and share examples.",
}

VERBOSITY_MAX_TOKENS: Dict[str, int] = {"low": 200, "medium": 500, "high": 800}

ATTITUDE_STYLE: Dict[str, str] = {
    "cooperative": "You share openly and engage fully, trying to give helpful, thoughtful answers.",
    "reluctant": dedent(
        """
        You are somewhat guarded. You sometimes give short or deflecting answers, especially on sensitive
        topics, and may need encouragement to elaborate.
        """
    ).strip(),
    "neutral": "You answer straightforwardly without strong enthusiasm or resistance, sticking to facts.",
    "evasive": dedent(
        """
        You avoid direct answers. You may change the subject, stay vague or redirect, and you are
        uncomfortable with probing questions.
        """
    ).strip(),
    "enthusiastic": "You are eager to share, volunteer extra information and examples, and enjoy the conversation.",
}

DOMAIN_STYLE: Dict[str, str] = {
    "none": "You have no particular knowledge of the subject and answer from common sense and personal experience.",
    "basic": "You know common terminology but lack depth.",
    "intermediate": "You have solid working knowledge and can discuss specifics and informed opinions.",
    "expert": "You have deep expertise, use precise terminology and can discuss nuances and edge cases.",
}

BEHAVIOUR_RULES = dedent(
    """
    Rules:
    1. Match the verbosity level strictly.
    2. If reluctant or evasive, give short or deflecting answers sometimes.
    3. Stay consistent with your background and your earlier answers.
    4. Never break character or mention being an AI.
    5. Include natural hesitations or filler words occasionally.
    6. If you don't know something, say so rather than inventing detail.
    """
).strip()


class Persona(BaseModel):  # Simulated respondent profile
    name: str
    age_range: Optional[str] = None
    occupation: Optional[str] = None
    location: Optional[str] = None
    attitude: Attitude = "cooperative"
    verbosity: Verbosity = "medium"
    domain_knowledge: DomainKnowledge = "basic"
    traits: List[str] = Field(default_factory=list)
    communication_style: Optional[str] = None
    background_story: Optional[str] = None
    topics_to_avoid: List[str] = Field(default_factory=list)
    biases: List[str] = Field(default_factory=list)


class RespondentReply(BaseModel):  # Model payload for one respondent turn
    answer: str

    @model_validator(mode="before")
    @classmethod
    def _coerce_loose(cls, value: Any) -> Any:  # Accept a bare string or a content/message dict
        if isinstance(value, str):
            return {"answer": value}
        if isinstance(value, dict) and "answer" not in value:
            text = _first_string(value, ["content", "message", "text", "reply"])
            if text:
                return {"answer": text}
        return value

    @classmethod
    def from_raw_content(cls, content: str) -> "RespondentReply":  # Build reply from non-JSON model output
        text = content.strip()
        if not text:
            return cls(answer="")
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return cls(answer=text)
        if isinstance(parsed, str):
            return cls(answer=parsed)
        if isinstance(parsed, dict):
            return cls(answer=_first_string(parsed, ["answer", "content", "message", "text"]) or text)
        return cls(answer=text)


def build_persona_prompt(persona: Persona) -> str:
    lines = [
        "You are role-playing a research interview respondent. Stay in character for the whole conversation.",
        "",
        f"PERSONA: {persona.name}",
    ]
    for label, value in (("AGE", persona.age_range), ("OCCUPATION", persona.occupation), ("LOCATION", persona.location)):
        if value:
            lines.append(f"{label}: {value}")
    lines += [
        "",
        f"ATTITUDE: {persona.attitude}",
        ATTITUDE_STYLE[persona.attitude],
        "",
        f"VERBOSITY: {persona.verbosity}",
        VERBOSITY_STYLE[persona.verbosity],
        "",
        f"DOMAIN KNOWLEDGE: {persona.domain_knowledge}",
        DOMAIN_STYLE[persona.domain_knowledge],
    ]
    if persona.traits:
        lines += ["", f"PERSONALITY TRAITS: {', '.join(persona.traits)}"]
    if persona.communication_style:
        lines.append(f"COMMUNICATION STYLE: {persona.communication_style}")
    if persona.background_story:
        lines += ["", f"BACKGROUND: {persona.background_story}"]
    if persona.topics_to_avoid:
        lines += [
            "",
            f"TOPICS TO AVOID: {', '.join(persona.topics_to_avoid)}",
            "When asked about these topics, deflect or give minimal answers.",
        ]
    if persona.biases:
        lines += ["", f"BIASES/PREFERENCES: {', '.join(persona.biases)}"]
    lines += ["", BEHAVIOUR_RULES]
    return "\n".join(lines)


def conversation_messages(transcript: Sequence[TurnEntry]) -> List[Dict[str, str]]:  # Interviewer turns as user, own turns as assistant
    return [
        {"role": "user" if entry.speaker == "interviewer" else "assistant", "content": entry.text}
        for entry in transcript
    ]


async def generate_reply(
    persona: Persona,
    transcript: Sequence[TurnEntry],
    *,
    config: OrchestratorConfig,
    attribution: Optional[UsageAttribution] = None,
    session_id: Optional[str] = None,
) -> str:
    """Next respondent utterance for ``persona``; a stock clarification request on failure."""

    options = config.options_for("respondent").model_dump(exclude_none=True)
    options.setdefault("max_tokens", VERBOSITY_MAX_TOKENS[persona.verbosity])
    try:
        raw = await asyncio.wait_for(
            ainvoke(
                RESPONDENT_KEY,
                system_prompt=build_persona_prompt(persona),
                inputs={"conversation": conversation_messages(transcript)},
                attribution=attribution,
                options=options,
                timeout_s=config.respondent_timeout_s,
            ),
            timeout=config.respondent_timeout_s,
        )
        reply = RespondentReply.from_raw_content(raw) if isinstance(raw, str) else RespondentReply.model_validate(raw)
    except asyncio.TimeoutError:
        log_event("respondent.timeout", session_id, level=logging.WARNING, ms=int(config.respondent_timeout_s * 1000))
        return FALLBACK_REPLY
    except (LlmGatewayError, ValidationError, KeyError, TypeError, ValueError) as exc:
        log_event("respondent.failed", session_id, level=logging.WARNING, reason=str(exc))
        return FALLBACK_REPLY
    return reply.answer.strip() or FALLBACK_REPLY


def _first_string(data: Mapping[str, Any], keys: Sequence[str]) -> str:  # Fetch first non-empty string from mapping
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


__all__ = [
    "FALLBACK_REPLY",
    "Persona",
    "RespondentReply",
    "build_persona_prompt",
    "conversation_messages",
    "generate_reply",
]
