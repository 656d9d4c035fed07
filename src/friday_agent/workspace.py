"""Workspace sandboxing for file mutations.

The workspace is the explicit directory where writes are allowed. It is
separate from ``cwd``, which only scopes reading and searching.

``resolve`` is pure path arithmetic: it never touches the filesystem, so
symlinks are not followed and the result is safe to unit test exhaustively.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Tuple, Union

PathLike = Union[str, Path]


class SandboxViolation(ValueError):
    """Raised when a target path resolves outside the workspace root."""

    def __init__(self, workspace_root: PathLike, resolved_path: PathLike, relative_path: str = "") -> None:
        self.workspace_root = str(workspace_root)
        self.resolved_path = str(resolved_path)
        self.relative_path = relative_path
        super().__init__(
            "Attempted write outside workspace.\n"
            f"  Workspace: {self.workspace_root}\n"
            f"  Target: {self.resolved_path}\n"
            f"  Relative: {relative_path or '(none)'}"
        )


def resolve(target_path: PathLike, workspace_root: PathLike) -> Path:
    """Resolve ``target_path`` against ``workspace_root`` and assert containment."""
    root = os.path.normpath(os.path.abspath(str(workspace_root)))
    raw = str(target_path)
    if os.path.isabs(raw):
        resolved = os.path.normpath(raw)
    else:
        resolved = os.path.normpath(os.path.join(root, raw))
    assert_within_workspace(resolved, root)
    return Path(resolved)


def assert_within_workspace(resolved_path: PathLike, workspace_root: PathLike) -> None:
    root = str(workspace_root)
    target = str(resolved_path)
    try:
        relative = os.path.relpath(target, root)
    except ValueError:
        # Different drives on Windows.
        raise SandboxViolation(root, target) from None
    parts = Path(relative).parts
    if os.path.isabs(relative) or (parts and parts[0] == os.pardir):
        raise SandboxViolation(root, target, relative)


def is_within_workspace(target_path: PathLike, workspace_root: PathLike) -> bool:
    try:
        resolve(target_path, workspace_root)
    except SandboxViolation:
        return False
    return True


def resolve_workspace(workspace_path: PathLike, base_path: PathLike) -> Path:
    """Resolve a user-supplied workspace path relative to where the CLI was launched."""
    raw = os.path.expanduser(str(workspace_path).strip())
    if os.path.isabs(raw):
        return Path(os.path.normpath(raw))
    return Path(os.path.normpath(os.path.join(os.path.abspath(str(base_path)), raw)))


def validate_workspace_dir(path: PathLike) -> Tuple[bool, str]:
    candidate = Path(path)
    if not candidate.exists():
        return False, f"Directory does not exist: {candidate}"
    if not candidate.is_dir():
        return False, f"Path is not a directory: {candidate}"
    if not os.access(candidate, os.W_OK):
        return False, f"Directory is not writable: {candidate}"
    return True, ""
