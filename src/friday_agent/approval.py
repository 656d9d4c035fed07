"""Human approval of pending file writes.

``RichApprovalGate`` renders a pending write (plain-language summary plus a
coloured unified diff) and asks the user to apply, skip or reject it. On a
terminal the choice is made with a keyboard chooser; anywhere else a single
line is read from stdin and anything unrecognised counts as a rejection.
"""
from __future__ import annotations

import difflib
import os
import re
import select
import sys
import time
from typing import Iterable, List, Optional, Sequence, TextIO, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from friday_agent.domain.approvals import WRITE_KIND_PATCH, ApprovalChoice, PendingWrite
from friday_agent.tools.patching import diff_line_counts

APPROVAL_OPTIONS: Tuple[Tuple[str, ApprovalChoice], ...] = (
    ("Apply", ApprovalChoice.YES),
    ("Skip", ApprovalChoice.SKIP),
    ("Reject", ApprovalChoice.NO),
)
CHOOSER_HINT = "(↑↓ navigate · Enter select · Esc abort)"
FALLBACK_PROMPT = "[y]es/[s]kip/[n]o/[a]bort: "

_CSS_SUFFIXES = (".css", ".scss")
_SCRIPT_SUFFIXES = (".ts", ".tsx", ".js", ".jsx")
_JS_FUNCTION_RE = re.compile(r"(?:function\s+\w+|const\s+\w+\s*=\s*(?:async\s*)?\(|=>\s*\{)")
_PY_FUNCTION_RE = re.compile(r"^\s*(?:async\s+)?def\s+\w+", re.MULTILINE)
_CLASS_RE = re.compile(r"class\s+\w+")
_CSS_CLASS_RE = re.compile(r"\.[a-zA-Z][\w-]*")
_MAX_HINTS = 3


# ---------------------------------------------------------------------------
# Plain-language summaries
# ---------------------------------------------------------------------------

def summarize_write(path: str, existing: str, new: str, is_new_file: bool) -> List[str]:
    if is_new_file:
        return _summarize_create(path, new)
    old_lines = existing.split("\n")
    new_lines = new.split("\n")
    old_set = {line.strip() for line in old_lines}
    new_set = {line.strip() for line in new_lines}
    added = sum(1 for line in new_lines if line.strip() and line.strip() not in old_set)
    removed = sum(1 for line in old_lines if line.strip() and line.strip() not in new_set)
    summary = [f"Modify {path}: +{added} / -{removed} lines"]
    hints = _change_hints(path.lower(), existing, new)
    if hints:
        summary.append("  • " + ", ".join(hints[:_MAX_HINTS]))
    return summary


def summarize_patch(path: str, unified_diff: str) -> List[str]:
    added, removed = diff_line_counts(unified_diff)
    return [f"Patch {path}: +{added} / -{removed} lines"]


def summarize_pending(pending: PendingWrite) -> List[str]:
    if pending.kind == WRITE_KIND_PATCH:
        return summarize_patch(pending.path, pending.unified_diff)
    return summarize_write(pending.path, pending.existing_content, pending.new_content, pending.is_new_file)


def _summarize_create(path: str, content: str) -> List[str]:
    lower = path.lower()
    summary = [f"Create new file {path} ({len(content.splitlines())} lines)"]
    if lower.endswith(_CSS_SUFFIXES):
        css_classes = len(_CSS_CLASS_RE.findall(content))
        if css_classes:
            summary.append(f"  • {css_classes} CSS classes defined")
    elif lower.endswith(_SCRIPT_SUFFIXES) or lower.endswith(".py"):
        pattern = _PY_FUNCTION_RE if lower.endswith(".py") else _JS_FUNCTION_RE
        functions = len(pattern.findall(content))
        classes = len(_CLASS_RE.findall(content))
        if functions:
            summary.append(f"  • {functions} functions")
        if classes:
            summary.append(f"  • {classes} classes")
    elif lower.endswith(".html"):
        summary.append("  • HTML document")
    return summary


def _change_hints(lower_path: str, existing: str, new: str) -> List[str]:
    hints: List[str] = []
    if lower_path.endswith(_CSS_SUFFIXES):
        if "gradient" in existing and "gradient" not in new:
            hints.append("remove gradients")
        if "animation" in existing and "animation" not in new:
            hints.append("remove animations")
        if "display: flex" not in existing and "display: flex" in new:
            hints.append("add flexbox layout")
        if "display: grid" not in existing and "display: grid" in new:
            hints.append("add grid layout")
    if lower_path.endswith(_SCRIPT_SUFFIXES) or lower_path.endswith(".py"):
        if len(_CLASS_RE.findall(existing)) > len(_CLASS_RE.findall(new)):
            hints.append("simplify class structure")
        if "async" not in existing and "async" in new:
            hints.append("add async handling")
        if not _has_api_call(existing) and _has_api_call(new):
            hints.append("add API calls")
        if "localStorage" in existing and "localStorage" not in new:
            hints.append("remove localStorage")
    return hints


def _has_api_call(content: str) -> bool:
    return any(marker in content for marker in ("fetch(", "httpx.", "requests."))


def proposed_diff(pending: PendingWrite) -> str:
    """Unified diff shown to the user; a patch is shown as the model wrote it."""
    if pending.kind == WRITE_KIND_PATCH:
        return pending.unified_diff
    lines = difflib.unified_diff(
        pending.existing_content.splitlines(keepends=True),
        pending.new_content.splitlines(keepends=True),
        fromfile=f"{pending.path}\t{'(new file)' if pending.is_new_file else 'original'}",
        tofile=f"{pending.path}\tproposed",
    )
    return "".join(line if line.endswith("\n") else line + "\n" for line in lines)


def colorize_diff(diff: str) -> Text:
    text = Text()
    for line in diff.splitlines():
        if line.startswith("+++") or line.startswith("---"):
            style = "dim"
        elif line.startswith("+"):
            style = "green"
        elif line.startswith("-"):
            style = "red"
        elif line.startswith("@@"):
            style = "magenta"
        else:
            style = ""
        text.append(line + "\n", style=style)
    return text


def parse_fallback_answer(answer: Optional[str]) -> ApprovalChoice:
    """Map a typed answer to a choice. Only an explicit yes ever applies."""
    normalized = (answer or "").strip().lower()
    if normalized in {"y", "yes"}:
        return ApprovalChoice.YES
    if normalized in {"s", "skip"}:
        return ApprovalChoice.SKIP
    if normalized in {"a", "abort"}:
        return ApprovalChoice.ABORT
    return ApprovalChoice.NO


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

class RichApprovalGate:
    def __init__(
        self,
        console: Optional[Console] = None,
        stdin: Optional[TextIO] = None,
        interactive: Optional[bool] = None,
    ) -> None:
        self._console = console or Console()
        self._stdin = stdin
        self._interactive = interactive

    @property
    def stdin(self) -> TextIO:
        return self._stdin if self._stdin is not None else sys.stdin

    def render(self, pending: PendingWrite) -> None:
        action_style = "bold green" if pending.action == "CREATE" else "bold yellow"
        header = Text()
        header.append(pending.action, style=action_style)
        header.append(" ")
        header.append(pending.path, style="bold cyan")
        self._console.print()
        self._console.print(Rule(style="dim"))
        self._console.print(header)
        self._console.print(Rule(style="dim"))
        self._console.print()
        self._console.print(Text("Summary:", style="bold magenta"))
        for line in summarize_pending(pending):
            self._console.print(Text(f"  {line}"))
        self._console.print()
        self._console.print(colorize_diff(proposed_diff(pending)))
        self._console.print(Rule(style="dim"))

    def decide(self, pending: PendingWrite) -> ApprovalChoice:
        message = f"Apply this change to {pending.path}?"
        if self._is_interactive():
            return self._choose(message)
        self._console.print(f"{message} {FALLBACK_PROMPT}", end="", markup=False, highlight=False)
        line = self.stdin.readline()
        if not line:
            self._console.print()
        return parse_fallback_answer(line)

    def report(self, path: str, choice: ApprovalChoice) -> None:
        if choice is ApprovalChoice.YES:
            self._console.print(Text(f"✓ Applied: {path}", style="green"))
        elif choice is ApprovalChoice.NO:
            self._console.print(Text(f"✗ Rejected: {path}", style="red"))
        elif choice is ApprovalChoice.SKIP:
            self._console.print(Text(f"↷ Skipped: {path}", style="yellow"))
        else:
            self._console.print(Text("■ Aborted", style="bold red"))

    def _is_interactive(self) -> bool:
        if self._interactive is not None:
            return self._interactive
        return self.stdin.isatty() and sys.stdout.isatty()

    def _choose(self, message: str) -> ApprovalChoice:
        # POSIX only.
        import termios
        import tty

        out = self._console.file
        selected = 0

        def _panel() -> Panel:
            text = Text()
            text.append(message, style="bold white")
            text.append("\n\n")
            for index, (label, _) in enumerate(APPROVAL_OPTIONS):
                if index == selected:
                    text.append(f"  ❯ {label}\n", style="bold cyan")
                else:
                    text.append(f"    {label}\n", style="dim")
            text.append("\n" + CHOOSER_HINT, style="dim")
            return Panel(text, title="[bold]APPROVAL REQUIRED[/bold]", border_style="yellow", expand=False)

        def _redraw() -> None:
            out.write("\x1b[u\x1b[J")
            out.flush()
            self._console.print(_panel())

        out.write("\x1b[s")
        out.flush()
        self._console.print(_panel())

        # Keys are read from the raw fd so select() and the reads share one buffer.
        fd = self.stdin.fileno()
        old = termios.tcgetattr(fd)
        try:
            tty.setraw(fd)
            while True:
                key = _read_key(fd)
                if key == "":
                    return ApprovalChoice.NO
                if key in ("\r", "\n"):
                    return APPROVAL_OPTIONS[selected][1]
                if key == "\x03":
                    raise KeyboardInterrupt
                move = 0
                if key in ("k", "K"):
                    move = -1
                elif key in ("j", "J"):
                    move = 1
                elif key == "\x1b":
                    seq = _read_escape_sequence(fd)
                    if not seq:
                        return ApprovalChoice.ABORT
                    move = {"A": -1, "B": 1}.get(seq[-1], 0)
                target = selected + move
                if move and 0 <= target < len(APPROVAL_OPTIONS):
                    selected = target
                    _redraw()
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old)
            out.write("\r\n")
            out.flush()


def _read_key(fd: int) -> str:
    return os.read(fd, 1).decode("utf-8", errors="replace")


def _read_escape_sequence(fd: int, timeout_s: float = 0.05) -> str:
    """Bytes following an ESC within ``timeout_s``; empty for a bare Esc press."""
    buf = ""
    deadline = time.monotonic() + timeout_s
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not select.select([fd], [], [], remaining)[0]:
            break
        key = _read_key(fd)
        if not key:
            break
        buf += key
        if buf[-1] in ("A", "B", "C", "D", "~"):
            break
    return buf


class ScriptedApprovalGate:
    """Gate that answers from a fixed queue; an exhausted queue answers ``no``."""

    def __init__(self, choices: Iterable[ApprovalChoice] = ()) -> None:
        self._choices: List[ApprovalChoice] = list(choices)
        self.rendered: List[PendingWrite] = []
        self.reports: List[Tuple[str, ApprovalChoice]] = []

    def render(self, pending: PendingWrite) -> None:
        self.rendered.append(pending)

    def decide(self, pending: PendingWrite) -> ApprovalChoice:
        if not self._choices:
            return ApprovalChoice.NO
        return self._choices.pop(0)

    def report(self, path: str, choice: ApprovalChoice) -> None:
        self.reports.append((path, choice))

    @property
    def remaining(self) -> Sequence[ApprovalChoice]:
        return tuple(self._choices)
