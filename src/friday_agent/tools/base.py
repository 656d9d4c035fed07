from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from friday_agent.domain.tasks import WriteMode


ADVISOR_TOOL_PREFIX = "ask_"


class ToolKind(str, Enum):
    REPO_SEARCH = "repo_search"
    READ_FILE = "read_file"
    GIT_DIFF = "git_diff"
    RUN_COMMAND = "run_command"
    WRITE_FILE = "write_file"
    APPLY_PATCH = "apply_patch"
    ASK_ADVISOR = "ask_advisor"

    @property
    def is_write(self) -> bool:
        return self in {ToolKind.WRITE_FILE, ToolKind.APPLY_PATCH}

    @classmethod
    def from_tool_name(cls, name: str) -> Optional["ToolKind"]:
        cleaned = str(name or "").strip()
        if cleaned.startswith(ADVISOR_TOOL_PREFIX) and len(cleaned) > len(ADVISOR_TOOL_PREFIX):
            return cls.ASK_ADVISOR
        try:
            return cls(cleaned)
        except ValueError:
            return None


def advisor_tool_name(advisor: str) -> str:
    return f"{ADVISOR_TOOL_PREFIX}{advisor}"


def advisor_from_tool_name(name: str) -> str:
    return str(name or "")[len(ADVISOR_TOOL_PREFIX):]


@dataclass(frozen=True)
class ToolRequest:
    name: str
    args: Dict[str, Any]
    call_id: str = ""


@dataclass(frozen=True)
class ToolContext:
    cwd: Path
    workspace_root: Optional[Path] = None
    write_mode: WriteMode = WriteMode.DRY_RUN
    run_id: str = ""


@dataclass(frozen=True)
class ToolResult:
    ok: bool
    output: str
    aborted: bool = False


class Tool(Protocol):
    name: str

    def run(self, request: ToolRequest, context: ToolContext) -> ToolResult:
        ...


# ---------------------------------------------------------------------------
# Tool catalog offered to the primary model
# ---------------------------------------------------------------------------
# Anthropic-style definitions, passed via the ``tools`` parameter of the
# Messages API. Write tools are only offered in approve/apply mode and advisor
# tools only for enabled advisors; see ``build_tool_catalog``.
TOOL_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "repo_search": {
        "name": "repo_search",
        "description": (
            "Search for text patterns in repository files. "
            "Returns matching files, line numbers, and previews."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query to find in files"},
            },
            "required": ["query"],
        },
    },
    "read_file": {
        "name": "read_file",
        "description": "Read the contents of a file in the repository.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file (relative to repository root)"},
            },
            "required": ["path"],
        },
    },
    "git_diff": {
        "name": "git_diff",
        "description": "Get the current git diff showing staged and unstaged changes.",
        "input_schema": {"type": "object", "properties": {}, "required": []},
    },
    "run_command": {
        "name": "run_command",
        "description": (
            "Run an allowed command (yarn test, yarn lint, git status, etc.). "
            "Only safe commands are permitted."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "cmd": {"type": "string", "description": "The command to run (must be in allowlist)"},
            },
            "required": ["cmd"],
        },
    },
    "write_file": {
        "name": "write_file",
        "description": (
            "Write content to a file inside the workspace. "
            "Only available when --apply or --approve is set."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file (relative to the workspace root)"},
                "content": {"type": "string", "description": "Full content to write to the file"},
            },
            "required": ["path", "content"],
        },
    },
    "apply_patch": {
        "name": "apply_patch",
        "description": (
            "Apply a unified diff patch to a file inside the workspace. "
            "Only available when --apply or --approve is set."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file (relative to the workspace root)"},
                "unifiedDiff": {"type": "string", "description": "The unified diff to apply"},
            },
            "required": ["path", "unifiedDiff"],
        },
    },
}

READ_TOOL_NAMES = ("repo_search", "read_file", "git_diff", "run_command")
WRITE_TOOL_NAMES = ("write_file", "apply_patch")

_ADVISOR_DESCRIPTIONS: Dict[str, str] = {
    "openai": (
        "Ask OpenAI GPT for a second opinion or alternative perspective. Use this when you want "
        "another viewpoint on architecture decisions, complex trade-offs, or to validate your reasoning."
    ),
    "gemini": (
        "Ask Google Gemini for a second opinion or alternative perspective. "
        "Use this when you want another viewpoint."
    ),
}

_ADVISOR_LABELS: Dict[str, str] = {"openai": "OpenAI", "gemini": "Gemini"}


def advisor_tool_schema(advisor: str) -> Dict[str, Any]:
    label = _ADVISOR_LABELS.get(advisor, advisor)
    return {
        "name": advisor_tool_name(advisor),
        "description": _ADVISOR_DESCRIPTIONS.get(
            advisor, f"Ask the {label} advisor model for a second opinion."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "prompt": {"type": "string", "description": f"The question or context to ask {label} about"},
            },
            "required": ["prompt"],
        },
    }


def build_tool_catalog(write_mode: WriteMode, advisors: Sequence[str] = ()) -> List[Dict[str, Any]]:
    """Return the mode-dependent tool catalog for one invocation."""
    catalog = [dict(TOOL_SCHEMAS[name]) for name in READ_TOOL_NAMES]
    if write_mode.allows_writes:
        catalog.extend(dict(TOOL_SCHEMAS[name]) for name in WRITE_TOOL_NAMES)
    for advisor in advisors:
        catalog.append(advisor_tool_schema(advisor))
    return catalog


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return sorted(self._tools.keys())
