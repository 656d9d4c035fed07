from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from friday_agent.tools.base import ToolContext, ToolRequest, ToolResult


NO_CHANGES_MESSAGE = "No changes detected in the repository."
NOT_A_REPO_MESSAGE = "Not a git repository. Initialize with: git init"


@dataclass(frozen=True)
class GitDiffResult:
    diff: str
    ok: bool = True
    has_changes: bool = False


def _run_git(argv: List[str], cwd: str, timeout: int = 15) -> Tuple[int, str, str]:
    try:
        result = subprocess.run(
            argv,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            shell=False,
            check=False,
        )
        return result.returncode, result.stdout or "", (result.stderr or "").strip()
    except (OSError, subprocess.SubprocessError) as exc:
        return -1, "", str(exc)


def git_diff(cwd: Path) -> GitDiffResult:
    """Staged and unstaged changes of the repository containing ``cwd``."""
    sections: List[str] = []
    for argv, title in (
        (["git", "diff", "--cached"], "=== Staged Changes ===\n"),
        (["git", "diff"], "=== Unstaged Changes ===\n"),
    ):
        rc, out, err = _run_git(argv, str(cwd))
        if rc != 0:
            if "not a git repository" in err.lower():
                return GitDiffResult(diff=NOT_A_REPO_MESSAGE)
            return GitDiffResult(diff=f"Failed to get git diff: {err or f'exit code {rc}'}", ok=False)
        if out:
            sections.append(title + out + "\n")
    if not sections:
        return GitDiffResult(diff=NO_CHANGES_MESSAGE)
    return GitDiffResult(diff="".join(sections), has_changes=True)


class GitDiffTool:
    name = "git_diff"

    def run(self, request: ToolRequest, context: ToolContext) -> ToolResult:
        result = git_diff(context.cwd)
        return ToolResult(ok=result.ok, output=result.diff)
