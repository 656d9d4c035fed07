"""Bounded tool-calling loop for the primary model.

One ``AgentLoop`` drives one task: it sends the conversation and tool catalog
to the model, dispatches the tool calls the model asks for, folds the
correlated results back into the conversation and repeats until the model
answers without tools or a budget runs out. The loop owns its counters and
conversation; the dispatcher only returns results.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from friday_agent.domain.contracts import ModelCapability
from friday_agent.domain.loop import (
    LOOP_STATE_AWAITING_MODEL,
    LOOP_STATE_AWAITING_TOOL_RESULTS,
    LOOP_STATE_BUDGET_EXCEEDED,
    LOOP_STATE_FINAL,
    TURN_KIND_FINAL,
    TURN_KIND_TOOL_USE,
    AgentTurn,
    LoopOutcome,
    ToolInvocationRequest,
    validate_transition,
)
from friday_agent.events.event_bus import ACTIVITY_THINKING, ActivityBus
from friday_agent.observability.structured_log import log_json
from friday_agent.tools.base import ToolRequest
from friday_agent.tools.dispatcher import ToolDispatcher, tool_result_block

logger = logging.getLogger(__name__)

BUDGET_TOOL_CALLS = "tool_calls"
BUDGET_TURNS = "turns"


def tool_calls_notice(limit: int) -> str:
    return f"\n\n[Agent stopped: reached maximum tool calls ({limit}). Use --maxToolCalls to increase.]"


def turns_notice(limit: int) -> str:
    return f"\n\n[Agent stopped: reached maximum turns ({limit}). Use --maxTurns to increase.]"


def response_text(content: Sequence[Dict[str, Any]]) -> str:
    return "\n".join(
        str(block.get("text") or "")
        for block in content
        if isinstance(block, dict) and block.get("type") == "text"
    )


def tool_invocations(content: Sequence[Dict[str, Any]]) -> List[ToolInvocationRequest]:
    invocations: List[ToolInvocationRequest] = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "tool_use":
            continue
        raw_input = block.get("input")
        invocations.append(
            ToolInvocationRequest(
                call_id=str(block.get("id") or ""),
                name=str(block.get("name") or ""),
                input=dict(raw_input) if isinstance(raw_input, dict) else {},
            )
        )
    return invocations


class AgentLoop:
    def __init__(
        self,
        model: ModelCapability,
        dispatcher: ToolDispatcher,
        max_tool_calls: int,
        max_turns: int,
        bus: Optional[ActivityBus] = None,
        run_id: str = "",
    ) -> None:
        if max_tool_calls <= 0 or max_turns <= 0:
            raise ValueError("max_tool_calls and max_turns must be positive")
        self._model = model
        self._dispatcher = dispatcher
        self._max_tool_calls = max_tool_calls
        self._max_turns = max_turns
        self._bus = bus or ActivityBus()
        self._run_id = run_id
        self._state = LOOP_STATE_AWAITING_MODEL
        self._model_calls = 0
        self._tool_calls = 0
        self._usage: Dict[str, int] = {"input_tokens": 0, "output_tokens": 0}
        self._turns: List[AgentTurn] = []
        self._messages: List[Dict[str, Any]] = []

    @property
    def state(self) -> str:
        return self._state

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return list(self._messages)

    async def run(
        self,
        system_prompt: str,
        tool_catalog: Sequence[Dict[str, Any]],
        initial_prompt: str,
    ) -> LoopOutcome:
        if self._model_calls:
            raise RuntimeError("AgentLoop.run can only be called once per instance")
        self._messages.append({"role": "user", "content": initial_prompt})
        tools = list(tool_catalog)
        while True:
            self._bus.publish(ACTIVITY_THINKING, "thinking", turn=self._model_calls + 1)
            response = await self._model.generate_with_tools(
                self._messages,
                tools,
                system=system_prompt,
                correlation_id=self._run_id,
            )
            self._model_calls += 1
            self._add_usage(response.get("usage") or {})
            content = [block for block in response.get("content") or [] if isinstance(block, dict)]
            text = response_text(content)
            invocations = tool_invocations(content)
            stop_reason = str(response.get("stop_reason") or "")
            log_json(
                logger,
                "agent.loop.turn",
                run_id=self._run_id,
                turn=self._model_calls,
                stop_reason=stop_reason,
                tool_uses=len(invocations),
            )

            if stop_reason != "tool_use" or not invocations:
                self._transition(LOOP_STATE_FINAL)
                self._turns.append(
                    AgentTurn(index=self._model_calls, kind=TURN_KIND_FINAL, text=text, content=content)
                )
                return self._outcome(LOOP_STATE_FINAL, text)

            self._transition(LOOP_STATE_AWAITING_TOOL_RESULTS)
            turn = AgentTurn(
                index=self._model_calls,
                kind=TURN_KIND_TOOL_USE,
                text=text,
                content=content,
                invocations=invocations,
            )
            self._turns.append(turn)
            for invocation in invocations:
                if self._tool_calls + 1 > self._max_tool_calls:
                    return self._stop(BUDGET_TOOL_CALLS, text + tool_calls_notice(self._max_tool_calls))
                self._tool_calls += 1
                result = await self._dispatcher.dispatch(
                    ToolRequest(name=invocation.name, args=invocation.input, call_id=invocation.call_id)
                )
                turn.results.append(tool_result_block(invocation.call_id, result))

            self._messages.append({"role": "assistant", "content": content})
            self._messages.append({"role": "user", "content": list(turn.results)})

            if self._model_calls + 1 > self._max_turns:
                return self._stop(BUDGET_TURNS, text + turns_notice(self._max_turns))
            self._transition(LOOP_STATE_AWAITING_MODEL)

    def _stop(self, budget: str, text: str) -> LoopOutcome:
        self._transition(LOOP_STATE_BUDGET_EXCEEDED)
        log_json(
            logger,
            "agent.loop.budget_exceeded",
            level=logging.WARNING,
            run_id=self._run_id,
            budget=budget,
            model_calls=self._model_calls,
            tool_calls=self._tool_calls,
        )
        return self._outcome(LOOP_STATE_BUDGET_EXCEEDED, text, budget_hit=budget)

    def _transition(self, to_state: str) -> None:
        validate_transition(self._state, to_state)
        self._state = to_state

    def _add_usage(self, usage: Dict[str, Any]) -> None:
        for key in ("input_tokens", "output_tokens"):
            try:
                self._usage[key] += int(usage.get(key) or 0)
            except (TypeError, ValueError):
                continue

    def _outcome(self, status: str, text: str, budget_hit: str = "") -> LoopOutcome:
        return LoopOutcome(
            status=status,
            text=text,
            turns=list(self._turns),
            model_calls=self._model_calls,
            tool_calls=self._tool_calls,
            usage=dict(self._usage),
            budget_hit=budget_hit,
        )
