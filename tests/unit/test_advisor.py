import asyncio

import pytest

from agents.advisor import (
    analyze,
    create_guidance_event,
    is_injectable,
    natural_turn_seconds,
    pending_late_calls,
    race_advisor,
)
from agents.context_assembler import assemble_advisor_input
from agents.types import AdvisorGuidance
from config.orchestrator import AdvisorConfig, OrchestratorConfig
from config.registry import ADVISOR_KEY, bind_model
from interview_session.metrics import QuestionMetrics
from interview_session.models import GuidanceAction, Question, TurnEntry

FAST = OrchestratorConfig(advisor=AdvisorConfig(timeout_s=0.3))
ROOMY = OrchestratorConfig(advisor=AdvisorConfig(timeout_s=1.5))


def _packet():
    return assemble_advisor_input(
        questions=[Question(text="How do new hires ramp up?")],
        question_index=0,
        transcript=[TurnEntry(speaker="respondent", text="ok", timestamp=1, question_index=0)],
        previous_summaries=[],
        metrics=QuestionMetrics(question_index=0),
    )


def test_gate_is_strictly_greater_than_threshold():
    at_gate = AdvisorGuidance(action="probe_followup", message="dig", confidence=0.6)
    above = AdvisorGuidance(action="probe_followup", message="dig", confidence=0.61)
    assert is_injectable(at_gate, 0.6) is False
    assert is_injectable(above, 0.6) is True


def test_gate_rejects_noop_unknown_and_missing():
    assert is_injectable(AdvisorGuidance(action="none", confidence=0.99), 0.6) is False
    assert is_injectable(AdvisorGuidance(action="dance", confidence=0.99), 0.6) is False
    assert is_injectable(None, 0.6) is False


def test_guidance_parsing_is_lenient():
    guidance = AdvisorGuidance.model_validate({"action": " Probe_Followup ", "confidence": 3, "message": None})
    assert guidance.action is GuidanceAction.PROBE_FOLLOWUP
    assert guidance.confidence == 1.0
    assert guidance.message == ""


def test_natural_turn_seconds():
    cfg = AdvisorConfig()
    assert natural_turn_seconds("ok", cfg) == pytest.approx(0.4)
    assert natural_turn_seconds("", cfg) == 0.2
    assert natural_turn_seconds(" ".join(["word"] * 150), cfg) == pytest.approx(60.0)


def test_create_guidance_event_truncates_and_points_at_trigger():
    guidance = AdvisorGuidance(action="probe_followup", message="x" * 800, confidence=0.7)
    event = create_guidance_event(guidance, index=3, question_index=1, transcript_length=5, injected=True, timestamp=42)
    assert len(event.message_summary) == 500
    assert event.trigger_turn_index == 4
    assert event.timestamp == 42
    assert event.late is False

    first = create_guidance_event(guidance, index=0, question_index=0, transcript_length=0, injected=False)
    assert first.trigger_turn_index == 0


def test_analyze_returns_none_on_failure():
    def broken(**_):
        raise ValueError("bad payload")

    bind_model(ADVISOR_KEY, broken)
    assert asyncio.run(analyze(_packet(), config=FAST)) is None

    bind_model(ADVISOR_KEY, lambda **_: {"action": "probe_followup", "confidence": "not a number"})
    assert asyncio.run(analyze(_packet(), config=FAST)) is None


def test_analyze_absorbs_provider_errors():
    def unreachable(**_):
        raise ConnectionError("provider down")

    bind_model(ADVISOR_KEY, unreachable)
    assert asyncio.run(analyze(_packet(), config=FAST)) is None


def test_analyze_passes_packet_and_options():
    seen = {}

    def fake(**kwargs):
        seen.update(kwargs)
        return {"action": "suggest_next_question", "message": "Move on", "confidence": 0.9}

    bind_model(ADVISOR_KEY, fake)
    guidance = asyncio.run(analyze(_packet(), config=FAST))
    assert guidance.action is GuidanceAction.SUGGEST_NEXT_QUESTION
    assert seen["inputs"]["current_question"]["text"] == "How do new hires ramp up?"
    assert seen["timeout_s"] == 0.3


def test_race_returns_guidance_in_time():
    bind_model(ADVISOR_KEY, lambda **_: {"action": "probe_followup", "message": "dig", "confidence": 0.8})
    outcome = asyncio.run(race_advisor(_packet(), "ok", config=FAST, pace=False))
    assert outcome.timed_out is False
    assert outcome.guidance.confidence == 0.8
    assert outcome.deadline_s == 0.3
    assert outcome.natural_s == pytest.approx(0.4)


def test_race_paces_to_natural_duration():
    cfg = OrchestratorConfig(advisor=AdvisorConfig(words_per_minute=600))
    bind_model(ADVISOR_KEY, lambda **_: {"action": "none", "confidence": 0.1})

    async def run():
        loop = asyncio.get_running_loop()
        started = loop.time()
        outcome = await race_advisor(_packet(), "one two three", config=cfg, pace=True)
        return outcome, loop.time() - started

    outcome, elapsed = asyncio.run(run())
    assert outcome.natural_s == pytest.approx(0.3)
    assert elapsed >= 0.25


def test_late_result_is_detached_and_discarded():
    async def slow_advisor(**_):
        await asyncio.sleep(0.8)
        return {"action": "probe_followup", "message": "too late", "confidence": 0.95}

    bind_model(ADVISOR_KEY, slow_advisor)

    async def run():
        arrived = asyncio.Event()
        late = []

        def on_late(guidance):
            late.append(guidance)
            arrived.set()

        # natural duration of "ok" is 0.4s, so the 0.8s call misses the deadline but beats the ceiling
        outcome = await race_advisor(_packet(), "ok", config=ROOMY, on_late=on_late, pace=False)
        assert pending_late_calls() == 1
        await asyncio.wait_for(arrived.wait(), timeout=3)
        return outcome, late

    outcome, late = asyncio.run(run())
    assert outcome.timed_out is True
    assert outcome.guidance is None
    assert [g.message for g in late] == ["too late"]
    assert pending_late_calls() == 0


def test_hung_advisor_call_is_bounded_by_ceiling():
    async def hung_advisor(**_):
        await asyncio.Event().wait()

    bind_model(ADVISOR_KEY, hung_advisor)
    cfg = OrchestratorConfig(advisor=AdvisorConfig(timeout_s=0.05))

    async def run():
        late = []
        outcome = await race_advisor(_packet(), "ok", config=cfg, on_late=late.append, pace=False)
        await asyncio.sleep(0.5)
        return outcome, late

    outcome, late = asyncio.run(run())
    assert outcome.guidance is None
    assert late == []
    assert pending_late_calls() == 0
