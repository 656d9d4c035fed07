from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Callable, Mapping, Optional

from friday_agent.agent.loop import AgentLoop
from friday_agent.agent.preflight import gather
from friday_agent.agent.prompts import SYSTEM_PROMPT, build_task_prompt
from friday_agent.config import CredentialStore, check_invocation
from friday_agent.domain.contracts import AdvisorCapability, ApprovalGate, ModelCapability
from friday_agent.domain.tasks import OrchestratorResult, TaskInvocation
from friday_agent.events.event_bus import (
    ACTIVITY_CONTEXT_GATHERING,
    ACTIVITY_PHASE_CHANGE,
    PHASE_COMPLETED,
    PHASE_PLANNING,
    ActivityBus,
)
from friday_agent.observability.structured_log import log_json
from friday_agent.providers import build_advisors, build_primary_provider
from friday_agent.tools.base import ToolContext, build_tool_catalog
from friday_agent.tools.dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

Preflight = Callable[[str, Path], str]


class Orchestrator:
    """Wires preflight, catalog, dispatcher and agent loop for one task at a time.

    ``model`` and ``advisors`` are built from the credential store unless
    supplied, which is how tests substitute scripted capabilities.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        approval_gate: Optional[ApprovalGate] = None,
        bus: Optional[ActivityBus] = None,
        model: Optional[ModelCapability] = None,
        advisors: Optional[Mapping[str, AdvisorCapability]] = None,
        preflight: Preflight = gather,
    ) -> None:
        self._credentials = credentials
        self._gate = approval_gate
        self.bus = bus or ActivityBus()
        self._model = model
        self._advisors = advisors
        self._preflight = preflight

    async def run(self, invocation: TaskInvocation) -> OrchestratorResult:
        check_invocation(invocation, self._credentials)
        if self._model is not None:
            return await self._run(invocation, self._model)
        provider = build_primary_provider(self._credentials)
        try:
            return await self._run(invocation, provider)
        finally:
            await provider.aclose()

    async def _run(self, invocation: TaskInvocation, model: ModelCapability) -> OrchestratorResult:
        run_id = uuid.uuid4().hex[:12]
        advisors = self._select_advisors(invocation)
        log_json(
            logger,
            "orchestrator.run.start",
            run_id=run_id,
            write_mode=invocation.write_mode.value,
            advisors=list(invocation.advisors),
            max_tool_calls=invocation.max_tool_calls,
            max_turns=invocation.max_turns,
        )

        self.bus.publish(ACTIVITY_CONTEXT_GATHERING, "gathering repository context")
        context = await asyncio.to_thread(self._preflight, invocation.task, invocation.cwd)

        tool_context = ToolContext(
            cwd=invocation.cwd,
            workspace_root=invocation.workspace,
            write_mode=invocation.write_mode,
            run_id=run_id,
        )
        dispatcher = ToolDispatcher(
            tool_context,
            advisors=advisors,
            approval_gate=self._gate,
            bus=self.bus,
        )
        catalog = build_tool_catalog(invocation.write_mode, tuple(advisors.keys()))
        prompt = build_task_prompt(invocation.task, context, invocation.advisors, invocation.write_mode)
        loop = AgentLoop(
            model,
            dispatcher,
            max_tool_calls=invocation.max_tool_calls,
            max_turns=invocation.max_turns,
            bus=self.bus,
            run_id=run_id,
        )

        self.bus.publish(ACTIVITY_PHASE_CHANGE, PHASE_PLANNING, phase=PHASE_PLANNING)
        outcome = await loop.run(SYSTEM_PROMPT, catalog, prompt)
        self.bus.publish(ACTIVITY_PHASE_CHANGE, PHASE_COMPLETED, phase=PHASE_COMPLETED)

        result = OrchestratorResult(
            task=invocation.task,
            context=context,
            response_text=outcome.text,
            model=await model.version(),
            status=outcome.status,
            advisor_responses=list(dispatcher.advisor_responses),
            tool_calls=list(dispatcher.tool_calls),
            usage=dict(outcome.usage),
            turns=outcome.model_calls,
            tool_call_count=outcome.tool_calls,
        )
        log_json(
            logger,
            "orchestrator.run.done",
            run_id=run_id,
            status=result.status,
            turns=result.turns,
            tool_calls=result.tool_call_count,
            input_tokens=result.usage.get("input_tokens", 0),
            output_tokens=result.usage.get("output_tokens", 0),
        )
        return result

    def _select_advisors(self, invocation: TaskInvocation) -> Mapping[str, AdvisorCapability]:
        if self._advisors is None:
            return build_advisors(invocation.advisors, self._credentials)
        return {name: self._advisors[name] for name in invocation.advisors if name in self._advisors}
