"""Rich rendering for the CLI and the interactive session.

``ConsoleRenderer.on_activity`` is an ``ActivityBus`` subscriber: the agent
core publishes discrete events and this sink prints them. Nothing in the core
reads state back from here.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from friday_agent.domain.tasks import OrchestratorResult, TaskInvocation, WriteMode
from friday_agent.events.event_bus import (
    ACTIVITY_ADVISOR_END,
    ACTIVITY_ADVISOR_START,
    ACTIVITY_CONTEXT_GATHERING,
    ACTIVITY_PHASE_CHANGE,
    ACTIVITY_THINKING,
    ACTIVITY_TOOL_START,
    PHASE_WRITING,
    ActivityEvent,
)
from friday_agent.tools.search import SearchMatch

ADVISOR_PREVIEW_CHARS = 500
QUESTION_PREVIEW_CHARS = 80

_MODE_STYLES: Dict[str, str] = {
    WriteMode.APPLY.value: "green",
    WriteMode.APPROVE.value: "yellow",
    WriteMode.DRY_RUN.value: "cyan",
}

HELP_ROWS = (
    ("Commands", (
        ("!exit, !quit, !q", "Exit the session"),
        ("!help, !h, !?", "Show this help"),
        ("!diff, !d", "Show current git diff"),
        ("!status, !s", "Show session status"),
        ("!run <cmd>, !r", "Run an allowed command"),
        ("!clear, !c", "Clear conversation history"),
    )),
    ("Session control", (
        ("!workspace <path>", "Set/change workspace directory"),
        ("!mode <mode>", "Set write mode: dry-run, approve, apply"),
        ("!dry", "Shortcut for !mode dry-run"),
        ("!approve", "Shortcut for !mode approve"),
        ("!apply", "Shortcut for !mode apply"),
        ("!plan", "Request plan only for next task"),
    )),
)


def shorten_path(path: Any) -> str:
    value = str(path)
    home = os.path.expanduser("~")
    if home and home != "~" and (value == home or value.startswith(home + os.sep)):
        return "~" + value[len(home):]
    return value


def mode_text(mode: str) -> Text:
    return Text(mode, style=_MODE_STYLES.get(mode, "white"))


class ConsoleRenderer:
    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Activity sink
    # ------------------------------------------------------------------

    def on_activity(self, event: ActivityEvent) -> None:
        details = event.details
        if event.event_type == ACTIVITY_CONTEXT_GATHERING:
            self.console.print(Text("   … Gathering context...", style="dim"))
        elif event.event_type == ACTIVITY_THINKING:
            self.console.print(Text(f"   … {event.message or 'thinking'}", style="dim"))
        elif event.event_type == ACTIVITY_TOOL_START:
            self.console.print(Text(f"   ⚙ Claude is {event.message}...", style="dim"))
        elif event.event_type == ACTIVITY_ADVISOR_START:
            name = str(details.get("advisor") or "").capitalize()
            self.console.print(Text(f"   • Asking {name} for a second opinion...", style="magenta"))
            question = str(details.get("question") or "")
            if question:
                if len(question) > QUESTION_PREVIEW_CHARS:
                    question = question[: QUESTION_PREVIEW_CHARS - 3] + "..."
                self.console.print(Text(f'     "{question}"', style="dim"))
        elif event.event_type == ACTIVITY_ADVISOR_END:
            name = str(details.get("advisor") or "").capitalize()
            if details.get("ok", True):
                self.console.print(Text(f"   ✓ {name} responded", style="magenta"))
            else:
                self.console.print(Text(f"   ✗ {name} failed to respond", style="yellow"))
        elif event.event_type == ACTIVITY_PHASE_CHANGE and details.get("phase") == PHASE_WRITING:
            self.console.print(Text(f"   ✍ preparing write: {details.get('path', '')}", style="dim"))

    # ------------------------------------------------------------------
    # One-shot ask
    # ------------------------------------------------------------------

    def ask_header(self, invocation: TaskInvocation) -> None:
        self.console.print(
            Panel(Text("Friday - Claude as primary agent", justify="center"), border_style="cyan")
        )
        self.console.print(Text.assemble(("Task: ", "bold"), invocation.task))
        advisors = ", ".join(invocation.advisors) if invocation.advisors else "none (Claude works independently)"
        self.console.print(Text.assemble(("Advisors: ", "bold"), advisors))
        self.console.print(Text.assemble(("Write mode: ", "bold"), mode_text(invocation.write_mode.value)))
        if invocation.workspace is not None:
            self.console.print(Text.assemble(("Workspace: ", "bold"), shorten_path(invocation.workspace)))
        self.console.print()
        self.console.print(Text("▶ Claude is analyzing your task...", style="blue"))
        self.console.print()

    def result(self, result: OrchestratorResult, verbose: bool = False) -> None:
        if verbose and result.tool_calls:
            self.console.print(Rule(style="dim"))
            self.console.print(Text("Tool calls:", style="bold dim"))
            for call in result.tool_calls:
                marker = "•" if call.ok else "✗"
                self.console.print(Text(f"  {marker} {call.tool} {_compact_input(call.input)}", style="dim"))
            self.console.print()

        if result.advisor_responses:
            self.console.print(Rule("ADVISOR CONSULTATIONS", style="magenta"))
            for advisor in result.advisor_responses:
                if advisor.error:
                    self.console.print(Text(f"[{advisor.model}] Error: {advisor.error}", style="yellow"))
                else:
                    self.console.print(Text(f"[{advisor.model}]", style="dim"))
                    self.console.print(Text(advisor.response[:ADVISOR_PREVIEW_CHARS]))
                    if len(advisor.response) > ADVISOR_PREVIEW_CHARS:
                        self.console.print(Text("... (truncated)", style="dim"))
                self.console.print()

        self.response(result.response_text)

        self.console.print(Rule(style="dim"))
        self.console.print(Text("Summary:", style="dim"))
        self.console.print(Text(f"  • Model: {result.model}", style="dim"))
        self.console.print(Text(f"  • Status: {result.status}", style="dim"))
        self.console.print(Text(f"  • Turns: {result.turns}", style="dim"))
        self.console.print(Text(f"  • Tool calls: {len(result.tool_calls)}", style="dim"))
        self.console.print(Text(f"  • Advisors consulted: {len(result.advisor_responses)}", style="dim"))
        if result.usage:
            self.console.print(
                Text(
                    f"  • Tokens: {result.usage.get('input_tokens', 0)} in / "
                    f"{result.usage.get('output_tokens', 0)} out",
                    style="dim",
                )
            )
        self.console.print()

    def response(self, text: str) -> None:
        self.console.print(Rule("CLAUDE'S RESPONSE", style="green"))
        self.console.print(text, markup=False, highlight=False)
        self.console.print(Rule(style="green"))

    # ------------------------------------------------------------------
    # Interactive session
    # ------------------------------------------------------------------

    def banner(self, workspace: Optional[Path], mode: str, advisors: Sequence[str]) -> None:
        body = Text(justify="left")
        body.append("★  F R I D A Y  ★\n\n", style="bold magenta")
        body.append("Workspace  ", style="bold")
        body.append(shorten_path(workspace) if workspace else "(read-only)", style="" if workspace else "dim")
        body.append("\nMode       ", style="bold")
        body.append_text(mode_text(mode))
        body.append("\nAdvisors   ", style="bold")
        body.append(", ".join(advisors) if advisors else "none", style="" if advisors else "dim")
        body.append("\n\nType a task, or !help for commands.", style="dim")
        self.console.print(Panel(body, border_style="magenta", expand=False))

    def status(
        self,
        workspace: Optional[Path],
        cwd: Path,
        mode: str,
        advisors: Sequence[str],
        message_count: int,
        duration_seconds: int,
    ) -> None:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()
        table.add_row("Workspace", shorten_path(workspace) if workspace else "(read-only)")
        table.add_row("CWD", shorten_path(cwd))
        table.add_row("Mode", mode_text(mode))
        table.add_row("Advisors", ", ".join(advisors) if advisors else "none")
        table.add_row("Messages", str(message_count))
        minutes, seconds = divmod(max(0, int(duration_seconds)), 60)
        table.add_row("Duration", f"{minutes}m {seconds}s")
        self.console.print()
        self.console.print(Text("Session status:", style="magenta"))
        self.console.print(table)
        self.console.print()

    def help(self, allowed_commands: Sequence[str]) -> None:
        for title, rows in HELP_ROWS:
            self.console.print()
            self.console.print(Text(f"{title}:", style="magenta"))
            table = Table.grid(padding=(0, 3))
            table.add_column()
            table.add_column(style="dim")
            for command, description in rows:
                table.add_row(f"  {command}", description)
            self.console.print(table)
        self.console.print()
        self.console.print(Text("Allowed commands for !run:", style="magenta"))
        self.console.print(Text("  " + ", ".join(allowed_commands), style="dim"))
        self.console.print()

    def mode_changed(self, mode: str) -> None:
        self.console.print(Text.assemble("✓ Mode changed to: ", mode_text(mode)))

    def workspace_changed(self, path: Path) -> None:
        self.console.print(Text(f"✓ Workspace set to: {shorten_path(path)}", style="green"))

    def info(self, message: str) -> None:
        self.console.print(Text(message, style="dim"))

    def warning(self, message: str) -> None:
        self.console.print(Text(message, style="yellow"))

    def error(self, message: str) -> None:
        self.console.print(Text(f"✗ Error: {message}", style="red"))

    # ------------------------------------------------------------------
    # Direct tool commands
    # ------------------------------------------------------------------

    def search_results(self, query: str, matches: List[SearchMatch]) -> None:
        self.console.print(Text(f'Searching for: "{query}"', style="cyan"))
        self.console.print()
        if not matches:
            self.console.print(Text("No matches found.", style="yellow"))
            return
        self.console.print(Text(f"Found {len(matches)} matches:", style="green"))
        self.console.print()
        for match in matches:
            self.console.print(Text(f"{match.file}:{match.line}", style="bold"))
            self.console.print(Text(f"  {match.preview}", style="dim"))

    def command_result(self, cmd: str, outcome: Dict[str, Any]) -> None:
        exit_code = int(outcome.get("exitCode", 1))
        if exit_code == 0:
            self.console.print(Text("✓ Command succeeded", style="green"))
        else:
            self.console.print(Text(f"✗ Command failed (exit code: {exit_code})", style="red"))
        if outcome.get("stdout"):
            self.console.print(outcome["stdout"], markup=False, highlight=False, end="")
        if outcome.get("stderr"):
            self.console.print(Text(outcome["stderr"], style="yellow"))

    def diff(self, text: str) -> None:
        self.console.print(text, markup=False, highlight=False)


def _compact_input(args: Dict[str, Any], limit: int = 80) -> str:
    parts = []
    for key, value in args.items():
        rendered = str(value).replace("\n", " ")
        if len(rendered) > 40:
            rendered = rendered[:37] + "..."
        parts.append(f"{key}={rendered}")
    joined = " ".join(parts)
    return joined[:limit]
