"""Short-lived multi-turn REPL.

The session lives only as long as the process: history, mode changes and any
API key typed at the prompt are kept in memory and never written to disk.
Each task line runs a fresh orchestrator invocation whose prompt carries a
window of the recent conversation.
"""
from __future__ import annotations

import asyncio
import getpass
import logging
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from friday_agent.agent.orchestrator import Orchestrator
from friday_agent.agent.prompts import PLAN_ONLY_INSTRUCTION
from friday_agent.approval import RichApprovalGate
from friday_agent.config import ANTHROPIC, ConfigurationError, CredentialStore, build_task_invocation, env_key_for
from friday_agent.domain.tasks import DEFAULT_MAX_TOOL_CALLS, DEFAULT_MAX_TURNS, WriteMode
from friday_agent.observability.structured_log import log_json
from friday_agent.presentation.console import ConsoleRenderer
from friday_agent.providers.errors import ModelInvocationError
from friday_agent.tools.git import NO_CHANGES_MESSAGE, git_diff
from friday_agent.tools.shell import ALLOWED_COMMANDS, run_command
from friday_agent.util import clip
from friday_agent.workspace import resolve_workspace, validate_workspace_dir

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10
HISTORY_MESSAGE_CHARS = 500
TRUNCATED_MARKER = "... (truncated)"
PROMPT = "friday › "
PLAN_CONFIRMATION = "Proceed to implementation? (y/N): "
WORKSPACE_REQUIRED = "Workspace is required. Run !workspace <path> first."

InputFunc = Callable[[str], str]


@dataclass(frozen=True)
class SessionMessage:
    role: str
    content: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class SessionState:
    cwd: Path
    invocation_cwd: Path
    workspace: Optional[Path] = None
    write_mode: WriteMode = WriteMode.DRY_RUN
    advisors: Tuple[str, ...] = ()
    max_tool_calls: int = DEFAULT_MAX_TOOL_CALLS
    max_turns: int = DEFAULT_MAX_TURNS
    verbose: bool = False
    plan_only: bool = False
    messages: List[SessionMessage] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)


def parse_builtin(line: str) -> Optional[Tuple[str, str]]:
    """Split ``!name args`` into a lowercase name and the raw argument text."""
    if not line.startswith("!"):
        return None
    body = line[1:].strip()
    name, _, args = body.partition(" ")
    return name.lower(), args


def build_history_context(messages: List[SessionMessage]) -> str:
    if not messages:
        return ""
    parts = ["## Conversation History (this session only)"]
    for message in messages[-HISTORY_WINDOW:]:
        role = "User" if message.role == "user" else "Assistant"
        content = clip(message.content, HISTORY_MESSAGE_CHARS, TRUNCATED_MARKER)
        parts.append(f"\n### {role}:\n{content}")
    return "\n".join(parts)


def compose_task(history: str, task: str, plan_only: bool = False) -> str:
    prompt = f"{history}\n\n## Current Task\n{task}" if history else task
    if plan_only:
        prompt = f"{prompt}\n\n{PLAN_ONLY_INSTRUCTION}"
    return prompt


class InteractiveSession:
    def __init__(
        self,
        state: SessionState,
        credentials: CredentialStore,
        renderer: Optional[ConsoleRenderer] = None,
        orchestrator: Optional[Orchestrator] = None,
        input_func: InputFunc = input,
    ) -> None:
        self.state = state
        self._credentials = credentials
        self._renderer = renderer or ConsoleRenderer()
        self._input = input_func
        if orchestrator is None:
            orchestrator = Orchestrator(
                credentials,
                approval_gate=RichApprovalGate(console=self._renderer.console),
            )
        self._orchestrator = orchestrator
        self._orchestrator.bus.subscribe(self._renderer.on_activity)
        # name -> (handler, aliases)
        self._builtins: Dict[str, Tuple[Callable[[str], bool], Tuple[str, ...]]] = {
            "exit": (self._cmd_exit, ("quit", "q")),
            "help": (self._cmd_help, ("h", "?")),
            "diff": (self._cmd_diff, ("d",)),
            "status": (self._cmd_status, ("s",)),
            "run": (self._cmd_run, ("r",)),
            "clear": (self._cmd_clear, ("c",)),
            "workspace": (self._cmd_workspace, ()),
            "mode": (self._cmd_mode, ()),
            "dry": (self._cmd_dry, ()),
            "approve": (self._cmd_approve, ()),
            "apply": (self._cmd_apply, ()),
            "plan": (self._cmd_plan, ()),
        }

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> int:
        state = self.state
        self._renderer.banner(state.workspace, state.write_mode.value, state.advisors)
        while True:
            try:
                line = self._input(PROMPT)
            except KeyboardInterrupt:
                self._renderer.console.print()
                self._renderer.info("Interrupted. Goodbye!")
                return 0
            except EOFError:
                self._renderer.console.print()
                self._renderer.info("Goodbye!")
                return 0
            try:
                if not self.handle_line(line):
                    return 0
            except KeyboardInterrupt:
                self._renderer.console.print()
                self._renderer.info("Interrupted. Goodbye!")
                return 0

    def handle_line(self, line: str) -> bool:
        """Process one input line; returns False when the session should end."""
        text = (line or "").strip()
        if not text:
            return True
        builtin = parse_builtin(text)
        if builtin is None:
            self.process_task(text)
            return True
        name, args = builtin
        handler = self._find_builtin(name)
        if handler is None:
            self._renderer.warning(f"Unknown command: !{name}")
            self._renderer.info("Type !help for available commands")
            return True
        return handler(args)

    def _find_builtin(self, name: str) -> Optional[Callable[[str], bool]]:
        for builtin_name, (handler, aliases) in self._builtins.items():
            if name == builtin_name or name in aliases:
                return handler
        return None

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def process_task(self, task: str) -> None:
        state = self.state
        plan_only = state.plan_only
        prompt = compose_task(build_history_context(state.messages), task, plan_only)
        state.messages.append(SessionMessage(role="user", content=task))
        write_mode = WriteMode.DRY_RUN if plan_only else state.write_mode

        self._renderer.console.print()
        try:
            invocation = build_task_invocation(
                task=prompt,
                cwd=state.cwd,
                workspace=state.workspace,
                write_mode=write_mode,
                advisors=state.advisors,
                max_tool_calls=state.max_tool_calls,
                max_turns=state.max_turns,
                verbose=state.verbose,
            )
            result = asyncio.run(self._orchestrator.run(invocation))
        except (ConfigurationError, ModelInvocationError) as exc:
            log_json(logger, "interactive.task_failed", level=logging.WARNING, error=type(exc).__name__)
            self._renderer.error(str(exc))
            return

        self._renderer.response(result.response_text)
        if state.verbose:
            self._renderer.result(result, verbose=True)
        state.messages.append(SessionMessage(role="assistant", content=result.response_text))

        if plan_only:
            state.plan_only = False
            self._confirm_plan()

    def _confirm_plan(self) -> None:
        try:
            answer = self._input(PLAN_CONFIRMATION)
        except EOFError:
            answer = ""
        if answer.strip().lower() not in {"y", "yes"}:
            self._renderer.info("• Staying in dry-run mode. Use !plan to request another plan.")
            return
        if self.state.workspace is None:
            self._renderer.error("Cannot proceed: workspace is required. Run !workspace <path> first.")
            return
        if self.state.write_mode is WriteMode.DRY_RUN:
            self._set_mode(WriteMode.APPROVE)
        self._renderer.info("• You can now ask Claude to implement the plan.")

    # ------------------------------------------------------------------
    # Builtins
    # ------------------------------------------------------------------

    def _cmd_exit(self, args: str) -> bool:
        self._renderer.info("Goodbye!")
        return False

    def _cmd_help(self, args: str) -> bool:
        self._renderer.help(ALLOWED_COMMANDS)
        self._renderer.info("Type any task to send to Claude. Prefix with ! for built-in commands.")
        return True

    def _cmd_diff(self, args: str) -> bool:
        result = git_diff(self.state.cwd)
        if not result.ok:
            self._renderer.warning(result.diff)
        elif result.has_changes:
            self._renderer.diff(result.diff)
        elif result.diff == NO_CHANGES_MESSAGE:
            self._renderer.info("No uncommitted changes.")
        else:
            self._renderer.warning(result.diff)
        return True

    def _cmd_status(self, args: str) -> bool:
        state = self.state
        self._renderer.status(
            workspace=state.workspace,
            cwd=state.cwd,
            mode=state.write_mode.value,
            advisors=state.advisors,
            message_count=len(state.messages),
            duration_seconds=round(time.monotonic() - state.started_at),
        )
        return True

    def _cmd_run(self, args: str) -> bool:
        cmd = args.strip()
        if not cmd:
            self._renderer.warning("Usage: !run <command>")
            self._renderer.info("Allowed: " + ", ".join(ALLOWED_COMMANDS))
            return True
        self._renderer.info(f"⚙ Running: {cmd}")
        outcome = run_command(cmd, self.state.cwd)
        self._renderer.command_result(cmd, outcome)
        return True

    def _cmd_clear(self, args: str) -> bool:
        self.state.messages.clear()
        self._renderer.info("Conversation history cleared.")
        return True

    def _cmd_workspace(self, args: str) -> bool:
        raw = args.strip()
        if not raw:
            self._renderer.warning("Usage: !workspace <path>")
            self._renderer.info("  Sets the directory where file writes are allowed.")
            self._renderer.info("  Path resolves relative to where friday was launched.")
            return True
        resolved = resolve_workspace(raw, self.state.invocation_cwd)
        ok, error = validate_workspace_dir(resolved)
        if not ok:
            self._renderer.error(error)
            return True
        self.state.workspace = resolved
        self._renderer.workspace_changed(resolved)
        return True

    def _cmd_mode(self, args: str) -> bool:
        raw = args.strip().lower()
        if not raw:
            self._renderer.warning("Usage: !mode <dry-run|approve|apply>")
            self._renderer.info("  dry-run  - Read-only, no file writes")
            self._renderer.info("  approve  - Confirm each file write")
            self._renderer.info("  apply    - Write files immediately")
            return True
        try:
            mode = WriteMode(raw)
        except ValueError:
            self._renderer.error(f"Invalid mode: {raw}. Use dry-run, approve, or apply.")
            return True
        return self._request_mode(mode)

    def _cmd_dry(self, args: str) -> bool:
        return self._request_mode(WriteMode.DRY_RUN)

    def _cmd_approve(self, args: str) -> bool:
        return self._request_mode(WriteMode.APPROVE)

    def _cmd_apply(self, args: str) -> bool:
        return self._request_mode(WriteMode.APPLY)

    def _cmd_plan(self, args: str) -> bool:
        self.state.plan_only = not self.state.plan_only
        if self.state.plan_only:
            self._renderer.info(
                "Plan mode enabled for next task. Claude will describe the changes without writing files."
            )
        else:
            self._renderer.info("Plan mode disabled.")
        return True

    def _request_mode(self, mode: WriteMode) -> bool:
        if mode.allows_writes and self.state.workspace is None:
            self._renderer.error(WORKSPACE_REQUIRED)
            return True
        self._set_mode(mode)
        return True

    def _set_mode(self, mode: WriteMode) -> None:
        self.state.write_mode = mode
        self._renderer.mode_changed(mode.value)


def ensure_primary_key(
    credentials: CredentialStore,
    renderer: ConsoleRenderer,
    interactive: Optional[bool] = None,
    prompt_func: Callable[[str], str] = getpass.getpass,
) -> None:
    """Ask for a missing Anthropic key on a terminal; fail fast anywhere else.

    The key is kept as a session override and never written to disk.
    """
    if credentials.has(ANTHROPIC):
        return
    if interactive is None:
        interactive = sys.stdin.isatty()
    if not interactive:
        credentials.require(ANTHROPIC)
        return
    env_key = env_key_for(ANTHROPIC)
    renderer.warning(f"{env_key} is not set. Claude is the primary agent and needs it.")
    renderer.info("The key is kept in memory for this session only.")
    try:
        value = prompt_func(f"Enter {env_key}: ")
    except EOFError:
        value = ""
    credentials.set_session(ANTHROPIC, value)
    credentials.require(ANTHROPIC)
