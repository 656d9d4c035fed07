from __future__ import annotations

import json
import re
import shlex
import subprocess
from pathlib import Path
from typing import Any, Dict

from friday_agent.tools.base import ToolContext, ToolRequest, ToolResult

# Exact commands the model may run.
ALLOWED_COMMANDS = (
    "yarn test",
    "yarn lint",
    "yarn typecheck",
    "yarn build",
    "npm test",
    "npm run lint",
    "npm run typecheck",
    "npm run build",
    "git diff",
    "git status",
    "git log",
    "ls",
    "cat",
    "head",
    "tail",
)

# Prefixes that may be followed by arguments.
ALLOWED_PREFIXES = (
    "yarn test",
    "yarn lint",
    "yarn typecheck",
    "yarn build",
    "npm test",
    "npm run",
    "git diff",
    "git status",
    "git log",
    "ls",
    "cat",
    "head",
    "tail",
)

DEFAULT_TIMEOUT_SEC = 60

_SHELL_OPERATOR_RE = re.compile(r"(;|&&|\|\||\||`|\$\(|>|<|\n)")

# git options that write to a file or hand output to an external program.
# git accepts any unambiguous prefix of a long option, so prefixes count too.
_GIT_UNSAFE_LONG_OPTIONS = (
    ("--output", "--ou"),
    ("--output-directory", "--ou"),
    ("--ext-diff", "--ext"),
    ("--textconv", "--textc"),
)


def is_command_allowed(cmd: str) -> bool:
    normalized = " ".join((cmd or "").strip().lower().split())
    if not normalized:
        return False
    if _SHELL_OPERATOR_RE.search(cmd):
        return False
    if normalized.startswith("git ") and _has_unsafe_git_option(cmd):
        return False
    if normalized in ALLOWED_COMMANDS:
        return True
    return any(normalized.startswith(prefix + " ") for prefix in ALLOWED_PREFIXES)


def _has_unsafe_git_option(cmd: str) -> bool:
    try:
        tokens = shlex.split(cmd)
    except ValueError:
        return True
    for token in tokens[2:]:
        if token == "--":
            break
        if token.startswith("--"):
            name = token.split("=", 1)[0]
            for option, shortest in _GIT_UNSAFE_LONG_OPTIONS:
                if option.startswith(name) and name.startswith(shortest):
                    return True
        elif token.startswith("-o"):
            return True
    return False


def not_allowed_message(cmd: str) -> str:
    return f"Command not allowed: {cmd}\n\nAllowed commands: {', '.join(ALLOWED_COMMANDS)}"


def run_command(cmd: str, cwd: Path, timeout: int = DEFAULT_TIMEOUT_SEC) -> Dict[str, Any]:
    """Run an allow-listed command without a shell.

    Returns ``{"stdout", "stderr", "exitCode"}``; rejected commands and spawn
    failures are reported with exit code 1 instead of raising.
    """
    if not is_command_allowed(cmd):
        return {"stdout": "", "stderr": not_allowed_message(cmd), "exitCode": 1}
    try:
        argv = shlex.split(cmd)
    except ValueError as exc:
        return {"stdout": "", "stderr": f"Could not parse command: {exc}", "exitCode": 1}
    try:
        result = subprocess.run(
            argv,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout,
            shell=False,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        return {
            "stdout": _as_text(exc.stdout),
            "stderr": f"Command timed out after {timeout}s",
            "exitCode": 124,
        }
    except OSError as exc:
        return {"stdout": "", "stderr": str(exc), "exitCode": 127}
    return {"stdout": result.stdout or "", "stderr": result.stderr or "", "exitCode": result.returncode}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class RunCommandTool:
    name = "run_command"

    def __init__(self, timeout: int = DEFAULT_TIMEOUT_SEC) -> None:
        self._timeout = timeout

    def run(self, request: ToolRequest, context: ToolContext) -> ToolResult:
        cmd = str(request.args.get("cmd") or "").strip()
        if not cmd:
            return ToolResult(ok=False, output="Error: 'cmd' arg is required.")
        if not is_command_allowed(cmd):
            return ToolResult(ok=False, output=not_allowed_message(cmd))
        outcome = run_command(cmd, context.cwd, timeout=self._timeout)
        # A failing test run is still a successful tool call; the exit code is in the payload.
        return ToolResult(ok=True, output=json.dumps(outcome, indent=2))
