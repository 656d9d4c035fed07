"""Agent loop state machine and per-turn records."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Tuple


LOOP_STATE_AWAITING_MODEL = "awaiting_model"
LOOP_STATE_AWAITING_TOOL_RESULTS = "awaiting_tool_results"
LOOP_STATE_FINAL = "final"
LOOP_STATE_BUDGET_EXCEEDED = "budget_exceeded"

LOOP_STATES: FrozenSet[str] = frozenset(
    [
        LOOP_STATE_AWAITING_MODEL,
        LOOP_STATE_AWAITING_TOOL_RESULTS,
        LOOP_STATE_FINAL,
        LOOP_STATE_BUDGET_EXCEEDED,
    ]
)

_ALLOWED_TRANSITIONS: FrozenSet[Tuple[str, str]] = frozenset(
    [
        (LOOP_STATE_AWAITING_MODEL, LOOP_STATE_FINAL),
        (LOOP_STATE_AWAITING_MODEL, LOOP_STATE_AWAITING_TOOL_RESULTS),
        (LOOP_STATE_AWAITING_TOOL_RESULTS, LOOP_STATE_AWAITING_MODEL),
        (LOOP_STATE_AWAITING_TOOL_RESULTS, LOOP_STATE_BUDGET_EXCEEDED),
    ]
)

TURN_KIND_FINAL = "final"
TURN_KIND_TOOL_USE = "tool_use"


class LoopTransitionError(ValueError):
    pass


def validate_transition(from_state: str, to_state: str) -> None:
    """Raise LoopTransitionError if the transition is not allowed."""
    if from_state not in LOOP_STATES:
        raise LoopTransitionError(f"Unknown source state: '{from_state}'")
    if to_state not in LOOP_STATES:
        raise LoopTransitionError(f"Unknown target state: '{to_state}'")
    if (from_state, to_state) not in _ALLOWED_TRANSITIONS:
        raise LoopTransitionError(f"Transition '{from_state}' -> '{to_state}' is not allowed.")


@dataclass(frozen=True)
class ToolInvocationRequest:
    call_id: str
    name: str
    input: Dict[str, Any]


@dataclass
class AgentTurn:
    index: int
    kind: str
    text: str
    content: List[Dict[str, Any]]
    invocations: List[ToolInvocationRequest] = field(default_factory=list)
    results: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class LoopOutcome:
    status: str
    text: str
    turns: List[AgentTurn]
    model_calls: int
    tool_calls: int
    usage: Dict[str, int] = field(default_factory=dict)
    budget_hit: str = ""
