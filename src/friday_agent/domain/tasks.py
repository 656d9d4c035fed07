"""Per-invocation data model: options record, audit ledger and final result."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


AVAILABLE_ADVISORS: Tuple[str, ...] = ("openai", "gemini")
DEFAULT_MAX_TOOL_CALLS = 20
DEFAULT_MAX_TURNS = 10

RUN_STATUS_FINAL = "final"
RUN_STATUS_BUDGET_EXCEEDED = "budget_exceeded"


class WriteMode(str, Enum):
    DRY_RUN = "dry-run"
    APPROVE = "approve"
    APPLY = "apply"

    @property
    def allows_writes(self) -> bool:
        return self is not WriteMode.DRY_RUN

    @classmethod
    def from_flags(cls, apply: bool = False, approve: bool = False) -> "WriteMode":
        if apply:
            return cls.APPLY
        if approve:
            return cls.APPROVE
        return cls.DRY_RUN


class TaskInvocation(BaseModel):
    """Validated, immutable options for one orchestrator run."""

    model_config = ConfigDict(frozen=True)

    task: str = Field(min_length=1)
    cwd: Path
    workspace: Optional[Path] = None
    write_mode: WriteMode = WriteMode.DRY_RUN
    advisors: Tuple[str, ...] = ()
    max_tool_calls: int = Field(default=DEFAULT_MAX_TOOL_CALLS, gt=0)
    max_turns: int = Field(default=DEFAULT_MAX_TURNS, gt=0)
    verbose: bool = False

    @field_validator("advisors", mode="before")
    @classmethod
    def _normalize_advisors(cls, value: Any) -> Tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        names: List[str] = []
        for raw in value:
            name = str(raw or "").strip().lower()
            if not name:
                continue
            if name not in AVAILABLE_ADVISORS:
                raise ValueError(
                    f"Unknown advisor: {name}. Available advisors: {', '.join(AVAILABLE_ADVISORS)}"
                )
            if name not in names:
                names.append(name)
        return tuple(names)

    @field_validator("workspace", mode="before")
    @classmethod
    def _blank_workspace_is_none(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @model_validator(mode="after")
    def _write_modes_need_workspace(self) -> "TaskInvocation":
        if self.write_mode.allows_writes and self.workspace is None:
            raise ValueError(
                f"--workspace is required when using --{self.write_mode.value}. "
                "Writes are only allowed inside an explicit workspace directory."
            )
        return self

    def for_task(self, task: str, write_mode: Optional[WriteMode] = None) -> "TaskInvocation":
        update: Dict[str, Any] = {"task": task}
        if write_mode is not None:
            update["write_mode"] = write_mode
        return TaskInvocation.model_validate({**self.model_dump(), **update})


@dataclass(frozen=True)
class ToolCallRecord:
    tool: str
    input: Dict[str, Any]
    output: str
    ok: bool
    timestamp: datetime


@dataclass(frozen=True)
class AdvisorResponse:
    model: str
    response: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


@dataclass
class OrchestratorResult:
    task: str
    context: str
    response_text: str
    model: str
    status: str
    advisor_responses: List[AdvisorResponse] = field(default_factory=list)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    usage: Dict[str, int] = field(default_factory=dict)
    turns: int = 0
    tool_call_count: int = 0

    @property
    def budget_exceeded(self) -> bool:
        return self.status == RUN_STATUS_BUDGET_EXCEEDED
