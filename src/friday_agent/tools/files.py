from __future__ import annotations

import os
import tempfile
from pathlib import Path

from friday_agent.domain.approvals import WRITE_KIND_FILE, WRITE_KIND_PATCH, PendingWrite
from friday_agent.tools.base import ToolContext, ToolRequest, ToolResult
from friday_agent.tools.patching import apply_unified_diff
from friday_agent.workspace import SandboxViolation, resolve


MAX_READ_BYTES = 200_000
MAX_WRITE_BYTES = 1_000_000


def missing_file_message(path: str) -> str:
    return (
        f"File does not exist yet: {path}\n\n"
        "This file can be created with the write_file tool "
        "(available when --apply or --approve is set)."
    )


class ReadFileTool:
    name = "read_file"

    def run(self, request: ToolRequest, context: ToolContext) -> ToolResult:
        raw_path = str(request.args.get("path") or "").strip()
        if not raw_path:
            return ToolResult(ok=False, output="Error: missing required arg 'path'.")
        try:
            target = resolve(raw_path, context.cwd)
        except SandboxViolation:
            return ToolResult(ok=False, output="Access denied: path must be within working directory")
        if not target.exists():
            return ToolResult(ok=True, output=missing_file_message(raw_path))
        if not target.is_file():
            return ToolResult(ok=False, output=f"Not a file: {raw_path}")
        data = target.read_bytes()[:MAX_READ_BYTES]
        return ToolResult(ok=True, output=data.decode("utf-8", errors="replace"))


def _require_workspace(context: ToolContext) -> Path:
    if context.workspace_root is None:
        raise ValueError("No workspace configured. Use --workspace <path> to enable writes.")
    return Path(context.workspace_root)


def _read_existing(target: Path) -> str:
    if not target.exists():
        return ""
    if not target.is_file():
        raise ValueError(f"Target exists and is not a file: {target}")
    # Bytes, so CRLF files keep their line endings through the diff and patch path.
    return target.read_bytes().decode("utf-8")


class WriteFileTool:
    name = "write_file"

    def prepare(self, request: ToolRequest, context: ToolContext) -> PendingWrite:
        """Resolve the target inside the workspace and capture the before/after content.

        Raises ``SandboxViolation`` for targets outside the workspace and
        ``ValueError`` for malformed arguments. Nothing touches disk here.
        """
        raw_path = str(request.args.get("path") or "").strip()
        if not raw_path:
            raise ValueError("missing required arg 'path'.")
        content = request.args.get("content")
        if not isinstance(content, str):
            raise ValueError("missing required arg 'content'.")
        if len(content.encode("utf-8")) > MAX_WRITE_BYTES:
            raise ValueError("content exceeds max bytes.")
        target = resolve(raw_path, _require_workspace(context))
        is_new_file = not target.exists()
        return PendingWrite(
            path=raw_path,
            target=target,
            new_content=content,
            existing_content="" if is_new_file else _read_existing(target),
            is_new_file=is_new_file,
            kind=WRITE_KIND_FILE,
        )


class ApplyPatchTool:
    name = "apply_patch"

    def prepare(self, request: ToolRequest, context: ToolContext) -> PendingWrite:
        """Resolve the target and apply the diff in memory.

        Raises ``PatchError`` when the diff does not match the current file.
        """
        raw_path = str(request.args.get("path") or "").strip()
        if not raw_path:
            raise ValueError("missing required arg 'path'.")
        diff_text = str(request.args.get("unifiedDiff") or "")
        if not diff_text.strip():
            raise ValueError("missing required arg 'unifiedDiff'.")
        target = resolve(raw_path, _require_workspace(context))
        is_new_file = not target.exists()
        existing = "" if is_new_file else _read_existing(target)
        return PendingWrite(
            path=raw_path,
            target=target,
            new_content=apply_unified_diff(existing, diff_text),
            existing_content=existing,
            is_new_file=is_new_file,
            kind=WRITE_KIND_PATCH,
            unified_diff=diff_text,
        )


def commit_write(pending: PendingWrite) -> ToolResult:
    """Atomically replace the target with the pending content.

    The content goes to a temp file in the same directory first, so an
    interrupt never leaves a half-written target behind.
    """
    target = pending.target
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(pending.new_content)
        if target.exists():
            os.chmod(tmp_name, target.stat().st_mode & 0o7777)
        else:
            # mkstemp creates 0600; give new files the usual umask-derived mode.
            umask = os.umask(0)
            os.umask(umask)
            os.chmod(tmp_name, 0o666 & ~umask)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    verb = "applied patch to" if pending.kind == WRITE_KIND_PATCH else "wrote"
    return ToolResult(
        ok=True,
        output=f"Successfully {verb} {pending.path} ({len(pending.new_content)} chars)",
    )
