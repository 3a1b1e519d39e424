"""Runs complete interview sessions against a simulated respondent."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel

from agents.additional_questions import AdditionalQuestionSet, generate_additional_questions
from agents.advisor import (
    create_guidance_event,
    is_injectable,
    natural_turn_seconds,
    race_advisor,
    settle_late_calls,
)
from agents.context_assembler import assemble_advisor_input
from agents.enrichment import (
    build_additional_question_context,
    build_cross_session_context,
    build_hypotheses_context,
)
from agents.interviewer import InterviewerTurn, generate_interviewer_turn
from agents.summarizer import SummaryDraft, create_empty_summary, summarize_question
from agents.topic_overlap import build_overlap_instruction, detect_topic_overlap
from agents.types import AdvisorGuidance, CrossSessionContext, HypothesesContext, TopicOverlapResult
from candidate_agent.respondent import Persona, RespondentReply, generate_reply
from config.orchestrator import OrchestratorConfig
from config.registry import (
    ADDITIONAL_QUESTIONS_KEY,
    ADVISOR_KEY,
    INTERVIEWER_KEY,
    RESPONDENT_KEY,
    SUMMARY_KEY,
    TOPIC_OVERLAP_KEY,
)
from config.routes import load_config
from config.settings import settings
from flow_manager.question_flow import (
    FlowState,
    effective_turn_cap,
    evaluate_question_flow,
    next_question_index,
)
from interview_session.metrics import QuestionMetricsTracker
from interview_session.models import GuidanceAction, GuidanceEvent, Question, QuestionSummary, now_ms
from interview_session.transcript import TranscriptStore, detect_question_repeat
from llm_gateway import UsageAttribution, bind_routes
from observability.logger import log_event
from observability.tracing import span
from services.adherence import compute_adherence_summary, score_guidance_adherence
from storage.guidance import upsert_adherence_summary, upsert_guidance_events
from storage.sessions import create_session, update_session
from storage.transcript import insert_turns, upsert_question_summary

from .models import (
    BatchResult,
    CancelToken,
    SessionFailure,
    SessionResult,
    SimulationContext,
    StopReason,
)

OVERLAP_RECENT_TURNS = 10
REPEAT_WARNING = (
    "Your recent questions on this topic were nearly identical. "
    "Ask about a different aspect or let the respondent add anything final."
)

# Response schema validated for each model key when routes come from a config file.
MODEL_SCHEMAS: Dict[str, Type[BaseModel]] = {
    ADVISOR_KEY: AdvisorGuidance,
    TOPIC_OVERLAP_KEY: TopicOverlapResult,
    SUMMARY_KEY: SummaryDraft,
    INTERVIEWER_KEY: InterviewerTurn,
    RESPONDENT_KEY: RespondentReply,
    ADDITIONAL_QUESTIONS_KEY: AdditionalQuestionSet,
}


class _SessionRunner:
    """State owned by one simulated session."""

    def __init__(
        self,
        ctx: SimulationContext,
        config: OrchestratorConfig,
        session_id: str,
        cancel: Optional[CancelToken],
    ) -> None:
        self.ctx = ctx
        self.config = config
        self.session_id = session_id
        self.cancel = cancel
        self.store = TranscriptStore(window=config.transcript_window)
        self.tracker = QuestionMetricsTracker()
        self.summaries: List[QuestionSummary] = []
        self.guidance_log: List[GuidanceEvent] = []
        self.previous_answers: Dict[int, str] = {}
        self.stop_reason: Optional[StopReason] = None
        self.attribution = UsageAttribution(
            workspace_id=ctx.project.workspace_id,
            project_id=ctx.project.id,
            template_id=ctx.template.id,
            collection_id=ctx.collection.id,
            session_id=session_id,
        )
        self.cross_session: Optional[CrossSessionContext] = None
        self.hypotheses: Optional[HypothesesContext] = None
        self._loop = asyncio.get_running_loop()
        self._session_started = self._loop.time()
        self._last_stamp = 0

    # timing

    def _stamp(self) -> int:  # Strictly increasing epoch ms shared by turns and guidance events
        self._last_stamp = max(now_ms(), self._last_stamp + 1)
        return self._last_stamp

    def _session_expired(self) -> bool:
        return self._loop.time() - self._session_started > self.config.limits.per_session_timeout_s

    def _should_stop(self) -> bool:
        if self.cancel is not None and self.cancel.cancelled:
            self.stop_reason = "cancelled"
            return True
        if self._session_expired():
            self.stop_reason = "session_timeout"
            return True
        return False

    async def _pause(self, seconds: float) -> None:
        if self.ctx.options.pace and seconds > 0:
            await asyncio.sleep(seconds)

    # guidance log

    def _log_guidance(self, guidance: AdvisorGuidance, question_index: int, *, injected: bool, late: bool = False) -> None:
        event = create_guidance_event(
            guidance,
            index=len(self.guidance_log),
            question_index=question_index,
            transcript_length=len(self.store),
            injected=injected,
            timestamp=self._stamp(),
            late=late,
        )
        self.guidance_log.append(event)
        log_event(
            "advisor.guidance",
            self.session_id,
            question_index=question_index,
            action=event.action.value,
            confidence=round(event.confidence, 2),
            injected=injected,
        )

    def _late_recorder(self, question_index: int) -> Callable[[AdvisorGuidance], None]:
        def _record(guidance: AdvisorGuidance) -> None:
            self._log_guidance(guidance, question_index, injected=False, late=True)

        return _record

    # persistence

    def flush(self, summary: Optional[QuestionSummary] = None, question_index: Optional[int] = None) -> None:
        pending = self.store.pending()
        insert_turns(self.session_id, pending, start_seq=len(self.store) - len(pending))
        self.store.mark_flushed()
        if summary is not None:
            upsert_question_summary(self.session_id, summary)
        upsert_guidance_events(self.session_id, self.guidance_log)
        if question_index is not None:
            update_session(self.session_id, current_question_index=question_index)

    # questions

    async def _ask(
        self,
        question_index: int,
        questions: Sequence[Question],
        cap: int,
        *,
        additional: Optional[Tuple[int, int]] = None,
        opening_text: Optional[str] = None,
        overlap_instruction: Optional[str] = None,
    ) -> None:
        question = questions[question_index]
        persona: Persona = self.ctx.persona
        recommended = None if additional else question.recommended_follow_ups
        self.tracker.start(question_index, recommended_follow_ups=recommended, now=now_ms())

        if opening_text is None:
            opening_text = await generate_interviewer_turn(
                question=question,
                question_index=question_index,
                total_questions=len(self.ctx.template.questions),
                transcript=self.store.working,
                follow_up_count=0,
                recommended_follow_ups=recommended,
                opening=True,
                overlap_instruction=overlap_instruction,
                respondent_name=persona.name,
                template_tone=self.ctx.template.tone,
                config=self.config,
                attribution=self.attribution,
                session_id=self.session_id,
            )
        self.store.add("interviewer", opening_text, question_index, timestamp=self._stamp())
        await self._pause(self.config.advisor.min_turn_delay_s)

        question_started = self._loop.time()
        suggested_advance = False
        for _ in range(cap):
            if self._loop.time() - question_started > self.config.limits.per_question_timeout_s:
                log_event("simulation.question_timeout", self.session_id, question_index=question_index)
                break
            if self._should_stop():
                break

            reply = await generate_reply(
                persona,
                self.store.working,
                config=self.config,
                attribution=self.attribution,
                session_id=self.session_id,
            )
            self.store.add("respondent", reply, question_index, timestamp=self._stamp())
            metrics = self.tracker.record_response(reply)
            self.previous_answers[question_index] = reply

            guidance_text: Optional[str] = None
            if self.ctx.options.enable_advisor:
                packet = assemble_advisor_input(
                    questions=questions,
                    question_index=question_index,
                    transcript=self.store.working,
                    previous_summaries=self.summaries,
                    metrics=metrics,
                    template_objective=self.ctx.template.objective,
                    template_tone=self.ctx.template.tone,
                    cross_session=self.cross_session,
                    hypotheses=self.hypotheses,
                )
                outcome = await race_advisor(
                    packet,
                    reply,
                    config=self.config,
                    attribution=self.attribution,
                    session_id=self.session_id,
                    on_late=self._late_recorder(question_index),
                    pace=self.ctx.options.pace,
                )
                if outcome.guidance is not None:
                    injected = is_injectable(outcome.guidance, self.config.advisor.confidence_gate)
                    self._log_guidance(outcome.guidance, question_index, injected=injected)
                    if injected:
                        guidance_text = outcome.guidance.message
                        if outcome.guidance.action is GuidanceAction.SUGGEST_NEXT_QUESTION:
                            suggested_advance = True
            else:
                await self._pause(natural_turn_seconds(reply, self.config.advisor))

            state = FlowState(
                current_question_index=question_index,
                total_questions=len(self.ctx.template.questions),
                follow_up_count=metrics.follow_up_count,
                max_turns_per_question=cap,
                advisor_suggested_advance=suggested_advance,
                in_additional_phase=additional is not None,
                current_additional_index=additional[0] if additional else 0,
                total_additional=additional[1] if additional else self.ctx.collection.max_additional_questions,
                additional_enabled=self.config.flow.additional_enabled,
            )
            decision = evaluate_question_flow(state)
            log_event("flow.decision", self.session_id, question_index=question_index, decision=decision)
            if decision != "continue" or self._should_stop():
                break

            repeating = detect_question_repeat(self.store, question_index)
            if repeating:
                log_event("interviewer.repeat_detected", self.session_id, question_index=question_index)
            follow_up = await generate_interviewer_turn(
                question=question,
                question_index=question_index,
                total_questions=len(self.ctx.template.questions),
                transcript=self.store.working,
                follow_up_count=metrics.follow_up_count,
                recommended_follow_ups=recommended,
                opening=False,
                guidance=guidance_text,
                repeat_warning=REPEAT_WARNING if repeating else None,
                respondent_name=persona.name,
                template_tone=self.ctx.template.tone,
                config=self.config,
                attribution=self.attribution,
                session_id=self.session_id,
            )
            self.store.add("interviewer", follow_up, question_index, timestamp=self._stamp())
            await self._pause(self.config.advisor.min_turn_delay_s)

    async def _close(self, question_index: int, question: Question) -> None:
        metrics = self.tracker.end(now=now_ms())
        if self.ctx.options.enable_summaries and self.stop_reason != "cancelled":
            summary = await summarize_question(
                question_index,
                question,
                self.store.persisted,
                metrics,
                template_objective=self.ctx.template.objective,
                config=self.config,
                attribution=self.attribution,
                session_id=self.session_id,
            )
        else:
            summary = create_empty_summary(question_index, question.text, metrics)
        self.summaries.append(summary)
        self.flush(summary, question_index)

    async def _overlap_instruction(self, question: Question) -> Optional[str]:
        recent = self.store.working[-OVERLAP_RECENT_TURNS:]
        result = await detect_topic_overlap(
            question.text,
            self.summaries,
            recent,
            config=self.config,
            attribution=self.attribution,
            session_id=self.session_id,
        )
        return build_overlap_instruction(result, question.text)

    async def run_primary(self) -> None:
        questions = self.ctx.template.questions
        index = next_question_index(-1, questions, self.previous_answers)
        while index is not None:
            if self._should_stop():
                log_event("simulation.stopped", self.session_id, question_index=index, reason=self.stop_reason)
                return
            question = questions[index]
            overlap = await self._overlap_instruction(question) if self.summaries else None
            cap = effective_turn_cap(
                question,
                self.config.flow,
                template_default=self.ctx.template.default_recommended_follow_ups,
            )
            with span("simulation.question", self.session_id):
                await self._ask(index, questions, cap, overlap_instruction=overlap)
            await self._close(index, question)
            index = next_question_index(index, questions, self.previous_answers)

    async def run_additional(self) -> None:
        planned = self.ctx.collection.max_additional_questions
        if not self.config.flow.additional_enabled or planned <= 0 or self.stop_reason:
            return
        context = build_additional_question_context(self.ctx.project, self.ctx.prior_sessions, self.session_id)
        generated = await generate_additional_questions(
            transcript=self.store.persisted,
            questions=self.ctx.template.questions,
            summaries=self.summaries,
            project=self.ctx.project,
            template=self.ctx.template,
            max_questions=min(planned, self.config.flow.max_additional_questions),
            cross_session=context,
            config=self.config,
            attribution=self.attribution,
            session_id=self.session_id,
        )
        if not generated:
            return

        questions = list(self.ctx.template.questions) + [item.as_question() for item in generated]
        cap = min(self.config.flow.max_additional_turns_per_question, self.config.flow.hard_cap_turns_per_question)
        base = len(self.ctx.template.questions)
        for offset, item in enumerate(generated):
            if self._should_stop():
                return
            index = base + offset
            with span("simulation.additional_question", self.session_id):
                await self._ask(
                    index,
                    questions,
                    cap,
                    additional=(offset, len(generated)),
                    opening_text=item.question_text,
                )
            await self._close(index, questions[index])

    async def finish(self) -> SessionResult:
        still_running = await settle_late_calls(self.session_id, self.config.advisor.timeout_s)
        if still_running:
            log_event("advisor.late_calls_dropped", self.session_id, level=logging.WARNING, decision=str(still_running))
        scored = score_guidance_adherence(self.guidance_log, self.store.persisted, session_id=self.session_id)
        summary = compute_adherence_summary(scored)
        self.guidance_log = scored
        self.flush()
        upsert_adherence_summary(self.session_id, summary)

        status = "abandoned" if self.stop_reason == "cancelled" else "completed"
        duration_ms = int((self._loop.time() - self._session_started) * 1000)
        update_session(self.session_id, status=status, total_duration_ms=duration_ms)
        log_event(
            "simulation.session_finished",
            self.session_id,
            decision=status,
            adherence=round(summary.overall_adherence_rate, 2),
            ms=duration_ms,
            reason=self.stop_reason,
        )
        return SessionResult(
            session_id=self.session_id,
            persona_name=self.ctx.persona.name,
            status=status,
            stop_reason=self.stop_reason,
            transcript=list(self.store.persisted),
            summaries=self.summaries,
            guidance_log=scored,
            adherence=summary,
            duration_ms=duration_ms,
        )


async def run_session(
    ctx: SimulationContext,
    *,
    config: OrchestratorConfig,
    cancel: Optional[CancelToken] = None,
) -> SessionResult:
    """Run one simulated session end to end.

    Any failure marks the session abandoned, flushes what was produced and
    re-raises so the batch can count it.
    """

    session_id = create_session(
        collection_id=ctx.collection.id,
        template_id=ctx.template.id,
        project_id=ctx.project.id,
        persona_name=ctx.persona.name,
        is_simulated=True,
    )
    runner = _SessionRunner(ctx, config, session_id, cancel)
    runner.cross_session = build_cross_session_context(ctx.project, ctx.collection)
    runner.hypotheses = build_hypotheses_context(ctx.project)
    log_event(
        "simulation.session_started",
        session_id,
        decision=f"config v{config.version}",
        reason=runner.cross_session.reason or runner.hypotheses.reason,
    )

    try:
        await runner.run_primary()
        await runner.run_additional()
        return await runner.finish()
    except Exception as exc:
        log_event("simulation.session_failed", session_id, level=logging.ERROR, reason=repr(exc))
        runner.flush()
        update_session(session_id, status="abandoned")
        raise


async def run_simulation_batch(
    base: SimulationContext,
    personas: Sequence[Persona],
    *,
    config: OrchestratorConfig,
    cancel: Optional[CancelToken] = None,
) -> BatchResult:
    """Run one session per persona, ``parallel_limit`` at a time."""

    limits = config.limits
    selected = list(personas)[: limits.max_personas_per_run]
    result = BatchResult(run_id=base.run_id, status="completed")

    for start in range(0, len(selected), limits.parallel_limit):
        if cancel is not None and cancel.cancelled:
            result.status = "cancelled"
            break
        batch = selected[start : start + limits.parallel_limit]
        outcomes = await asyncio.gather(
            *(run_session(base.model_copy(update={"persona": persona}), config=config, cancel=cancel) for persona in batch),
            return_exceptions=True,
        )
        for persona, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                result.failed += 1
                result.failures.append(SessionFailure(persona_name=persona.name, error=repr(outcome)))
            else:
                result.completed += 1
                result.sessions.append(outcome)
        log_event(
            "simulation.batch_progress",
            None,
            decision=f"{result.completed} completed, {result.failed} failed",
        )

    if result.status != "cancelled" and selected and result.failed == len(selected):
        result.status = "failed"
    return result


async def run_simulation_batch_with_config(
    base: SimulationContext,
    personas: Sequence[Persona],
    *,
    config: OrchestratorConfig,
    config_path: Optional[Path] = None,
    cancel: Optional[CancelToken] = None,
) -> BatchResult:  # Convenience helper binding model routes from a config file
    bind_routes(load_config(config_path or Path(settings.ROUTES_PATH)), MODEL_SCHEMAS)
    return await run_simulation_batch(base, personas, config=config, cancel=cancel)


__all__ = ["MODEL_SCHEMAS", "run_session", "run_simulation_batch", "run_simulation_batch_with_config"]
