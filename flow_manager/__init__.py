from __future__ import annotations  # Question flow public API

from .question_flow import (
    ConditionalLogic,
    FlowAction,
    FlowState,
    effective_turn_cap,
    evaluate_conditional_logic,
    evaluate_question_flow,
    next_question_index,
)

__all__ = [
    "ConditionalLogic",
    "FlowAction",
    "FlowState",
    "effective_turn_cap",
    "evaluate_conditional_logic",
    "evaluate_question_flow",
    "next_question_index",
]
