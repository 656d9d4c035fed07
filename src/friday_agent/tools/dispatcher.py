"""Tool dispatch for one task invocation.

The dispatcher is the catch boundary between the agent loop and every
side-effecting tool: whatever a handler raises comes back to the model as an
error ``ToolResult``. It also owns the per-task audit ledger, the advisor
transcript and the approval abort latch.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from friday_agent.domain.approvals import ApprovalChoice, PendingWrite
from friday_agent.domain.contracts import AdvisorCapability, ApprovalGate
from friday_agent.domain.tasks import AdvisorResponse, ToolCallRecord, WriteMode
from friday_agent.events.event_bus import (
    ACTIVITY_ADVISOR_END,
    ACTIVITY_ADVISOR_START,
    ACTIVITY_PHASE_CHANGE,
    ACTIVITY_TOOL_END,
    ACTIVITY_TOOL_START,
    PHASE_WRITING,
    ActivityBus,
)
from friday_agent.observability.structured_log import log_json
from friday_agent.tools.base import (
    ToolContext,
    ToolKind,
    ToolRegistry,
    ToolRequest,
    ToolResult,
    advisor_from_tool_name,
)
from friday_agent.tools.files import ApplyPatchTool, ReadFileTool, WriteFileTool, commit_write
from friday_agent.tools.git import GitDiffTool
from friday_agent.tools.patching import PatchError
from friday_agent.tools.search import RepoSearchTool
from friday_agent.tools.shell import RunCommandTool
from friday_agent.util import clip, redact_with_audit
from friday_agent.workspace import SandboxViolation

logger = logging.getLogger(__name__)

MAX_RESULT_CHARS = 20_000
LEDGER_OUTPUT_CHARS = 1000

TOOL_ACTIVITY: Dict[str, str] = {
    "repo_search": "searching the repository",
    "read_file": "reading a file",
    "git_diff": "checking git changes",
    "run_command": "running a command",
    "write_file": "writing a file",
    "apply_patch": "applying a patch",
    "ask_openai": "consulting OpenAI",
    "ask_gemini": "consulting Gemini",
}

_WRITES_DISABLED = {
    ToolKind.WRITE_FILE: "File writes are disabled.",
    ToolKind.APPLY_PATCH: "Patch application is disabled.",
}


def describe_tool(name: str) -> str:
    return TOOL_ACTIVITY.get(name) or name.replace("_", " ")


def build_default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(RepoSearchTool())
    registry.register(ReadFileTool())
    registry.register(GitDiffTool())
    registry.register(RunCommandTool())
    return registry


class ToolDispatcher:
    def __init__(
        self,
        context: ToolContext,
        advisors: Optional[Mapping[str, AdvisorCapability]] = None,
        approval_gate: Optional[ApprovalGate] = None,
        bus: Optional[ActivityBus] = None,
        registry: Optional[ToolRegistry] = None,
    ) -> None:
        self._context = context
        self._advisors: Dict[str, AdvisorCapability] = dict(advisors or {})
        self._gate = approval_gate
        self._bus = bus or ActivityBus()
        self._registry = registry or build_default_registry()
        self._write_tools = {
            ToolKind.WRITE_FILE: WriteFileTool(),
            ToolKind.APPLY_PATCH: ApplyPatchTool(),
        }
        self._write_lock = asyncio.Lock()
        self._aborted = False
        self.tool_calls: List[ToolCallRecord] = []
        self.advisor_responses: List[AdvisorResponse] = []

    @property
    def context(self) -> ToolContext:
        return self._context

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def enabled_advisors(self) -> Sequence[str]:
        return tuple(self._advisors.keys())

    async def dispatch(self, request: ToolRequest, context: Optional[ToolContext] = None) -> ToolResult:
        """Run one tool call and record it. Never raises past this boundary."""
        ctx = context or self._context
        started = time.monotonic()
        timestamp = datetime.now(timezone.utc)
        self._bus.publish(ACTIVITY_TOOL_START, describe_tool(request.name), tool=request.name)
        try:
            result = await self._route(request, ctx)
        except Exception as exc:
            logger.exception("tool %s failed", request.name)
            result = ToolResult(ok=False, output=f"{type(exc).__name__}: {exc}")
        result = ToolResult(
            ok=result.ok,
            output=clip(result.output, MAX_RESULT_CHARS, "\n[output truncated]"),
            aborted=result.aborted,
        )
        # The model sees file bytes as they are; only the ledger copy is masked.
        audit = redact_with_audit(result.output[:LEDGER_OUTPUT_CHARS])
        self.tool_calls.append(
            ToolCallRecord(
                tool=request.name,
                input=dict(request.args or {}),
                output=audit.text,
                ok=result.ok,
                timestamp=timestamp,
            )
        )
        log_json(
            logger,
            "tool.dispatch",
            tool=request.name,
            call_id=request.call_id,
            run_id=ctx.run_id,
            ok=result.ok,
            aborted=result.aborted,
            redactions=audit.replacements,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        self._bus.publish(ACTIVITY_TOOL_END, describe_tool(request.name), tool=request.name, ok=result.ok)
        return result

    async def _route(self, request: ToolRequest, ctx: ToolContext) -> ToolResult:
        kind = ToolKind.from_tool_name(request.name)
        if kind is None:
            return ToolResult(ok=False, output=f"Unknown tool: {request.name}")
        if kind is ToolKind.ASK_ADVISOR:
            return await self._ask_advisor(request)
        if kind.is_write:
            return await self._write(kind, request, ctx)
        if kind in (ToolKind.REPO_SEARCH, ToolKind.READ_FILE, ToolKind.GIT_DIFF, ToolKind.RUN_COMMAND):
            tool = self._registry.get(kind.value)
            if tool is None:
                return ToolResult(ok=False, output=f"Unknown tool: {request.name}")
            return await asyncio.to_thread(tool.run, request, ctx)
        raise AssertionError(f"unhandled tool kind: {kind}")

    async def _ask_advisor(self, request: ToolRequest) -> ToolResult:
        name = advisor_from_tool_name(request.name)
        advisor = self._advisors.get(name)
        if advisor is None:
            return ToolResult(
                ok=False,
                output=f"Advisor not enabled: {name}. Use --advisors {name} to enable it.",
            )
        prompt = str(request.args.get("prompt") or "").strip()
        if not prompt:
            return ToolResult(ok=False, output="Error: 'prompt' arg is required.")
        self._bus.publish(ACTIVITY_ADVISOR_START, f"consulting {name}", advisor=name, question=prompt)
        response = await advisor.ask(prompt, correlation_id=request.call_id)
        self.advisor_responses.append(response)
        self._bus.publish(ACTIVITY_ADVISOR_END, f"{name} responded", advisor=name, ok=response.ok)
        if not response.ok:
            return ToolResult(ok=False, output=response.error)
        return ToolResult(ok=True, output=response.response)

    async def _write(self, kind: ToolKind, request: ToolRequest, ctx: ToolContext) -> ToolResult:
        if not ctx.write_mode.allows_writes:
            return ToolResult(
                ok=False,
                output=f"{_WRITES_DISABLED[kind]} Use --apply or --approve with --workspace to enable.",
            )
        async with self._write_lock:
            if self._aborted:
                return ToolResult(
                    ok=False,
                    output="Write pipeline aborted by user earlier in this task. No further writes will be made.",
                    aborted=True,
                )
            tool = self._write_tools[kind]
            try:
                pending = await asyncio.to_thread(tool.prepare, request, ctx)
            except SandboxViolation as exc:
                return ToolResult(ok=False, output=str(exc))
            except PatchError as exc:
                return ToolResult(ok=False, output=f"Failed to apply patch: {exc}")
            except ValueError as exc:
                return ToolResult(ok=False, output=f"Error: {exc}")
            self._bus.publish(ACTIVITY_PHASE_CHANGE, PHASE_WRITING, phase=PHASE_WRITING, path=pending.path)
            if ctx.write_mode is WriteMode.APPROVE:
                choice = await asyncio.to_thread(self._ask_gate, pending)
                log_json(
                    logger,
                    "approval.decision",
                    path=pending.path,
                    action=pending.action,
                    choice=choice.value,
                    run_id=ctx.run_id,
                )
                if choice is ApprovalChoice.NO:
                    return ToolResult(ok=False, output=f"Write rejected by user: {pending.path}")
                if choice is ApprovalChoice.SKIP:
                    return ToolResult(ok=False, output=f"Write skipped by user: {pending.path}")
                if choice is ApprovalChoice.ABORT:
                    self._aborted = True
                    return ToolResult(
                        ok=False,
                        output=f"Write aborted by user: {pending.path}. No further writes will be made in this task.",
                        aborted=True,
                    )
            result = await asyncio.to_thread(commit_write, pending)
            log_json(
                logger,
                "tool.write.committed",
                path=pending.path,
                action=pending.action,
                chars=len(pending.new_content),
                run_id=ctx.run_id,
            )
            return result

    def _ask_gate(self, pending: PendingWrite) -> ApprovalChoice:
        if self._gate is None:
            # Approve mode without a gate can never say yes.
            return ApprovalChoice.NO
        self._gate.render(pending)
        choice = self._gate.decide(pending)
        self._gate.report(pending.path, choice)
        return choice


def tool_result_block(call_id: str, result: ToolResult) -> Dict[str, Any]:
    """Anthropic ``tool_result`` content block correlated with ``call_id``."""
    content = result.output
    if not result.ok and not content.startswith("Error"):
        content = f"Error: {content}"
    return {
        "type": "tool_result",
        "tool_use_id": call_id,
        "content": content,
        "is_error": not result.ok,
    }
