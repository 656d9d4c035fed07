"""Strict unified diff application.

Hunks are located by exact context match. The ``@@`` line numbers are only a
starting hint: the matcher searches outward from the hinted line, so patches
still apply when earlier edits shifted the file, but a hunk whose context or
removed lines no longer match the file is rejected with ``PatchError``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

_HUNK_HEADER_RE = re.compile(r"^@@\s+-(\d+)(?:,(\d+))?\s+\+(\d+)(?:,(\d+))?\s*@@")
_NO_NEWLINE_MARKER = "\\ No newline at end of file"
_PREAMBLE_PREFIXES = (
    "diff --git ",
    "index ",
    "new file mode ",
    "deleted file mode ",
    "similarity index ",
    "rename from ",
    "rename to ",
    "Index: ",
    "===",
)


class PatchError(ValueError):
    """Raised when a unified diff cannot be parsed or does not match the file."""


@dataclass
class DiffHunk:
    old_start: int = 0
    old_count: int = 0
    new_start: int = 0
    new_count: int = 0
    # (prefix, content) where prefix is one of " ", "+", "-"
    lines: List[Tuple[str, str]] = field(default_factory=list)
    no_newline_at_end: bool = False

    @property
    def old_lines(self) -> List[str]:
        return [content for prefix, content in self.lines if prefix in (" ", "-")]

    @property
    def new_lines(self) -> List[str]:
        return [content for prefix, content in self.lines if prefix in (" ", "+")]


@dataclass
class ParsedPatch:
    old_path: str = ""
    new_path: str = ""
    hunks: List[DiffHunk] = field(default_factory=list)

    @property
    def creates_file(self) -> bool:
        return self.old_path == "/dev/null"


def parse_unified_diff(text: str) -> ParsedPatch:
    patch = ParsedPatch()
    current: Optional[DiffHunk] = None
    lines = (text or "").replace("\r\n", "\n").split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    for raw in lines:
        if current is None or not _hunk_body_open(current):
            if raw.startswith("--- "):
                if patch.hunks:
                    raise PatchError("multi-file diffs are not supported; send one file per patch")
                patch.old_path = _strip_path(raw[4:])
                continue
            if raw.startswith("+++ "):
                patch.new_path = _strip_path(raw[4:])
                continue
        if raw.startswith("@@"):
            match = _HUNK_HEADER_RE.match(raw)
            if not match:
                raise PatchError(f"malformed hunk header: {raw}")
            current = DiffHunk(
                old_start=int(match.group(1)),
                old_count=int(match.group(2)) if match.group(2) is not None else 1,
                new_start=int(match.group(3)),
                new_count=int(match.group(4)) if match.group(4) is not None else 1,
            )
            patch.hunks.append(current)
            continue
        if current is None:
            if raw.startswith(_PREAMBLE_PREFIXES) or not raw.strip():
                continue
            raise PatchError(f"unexpected line before first hunk: {raw[:80]}")
        if raw == _NO_NEWLINE_MARKER:
            if current.lines and current.lines[-1][0] != "-":
                current.no_newline_at_end = True
            continue
        if not _hunk_body_open(current) and not raw.strip():
            continue
        prefix = raw[:1]
        if prefix in (" ", "+", "-"):
            current.lines.append((prefix, raw[1:]))
        elif raw == "":
            # Some editors strip the single space of blank context lines.
            current.lines.append((" ", ""))
        else:
            raise PatchError(f"unexpected line in hunk: {raw[:80]}")
    if not patch.hunks:
        raise PatchError("no hunks found in diff")
    for index, hunk in enumerate(patch.hunks, start=1):
        _check_counts(index, hunk)
    return patch


def apply_unified_diff(original: str, diff_text: str) -> str:
    """Return ``original`` with every hunk of ``diff_text`` applied."""
    patch = parse_unified_diff(diff_text)
    return apply_hunks(original, patch.hunks)


def apply_hunks(original: str, hunks: List[DiffHunk]) -> str:
    file_lines, trailing_newline, newline = _split_lines(original)
    if not file_lines:
        trailing_newline = True
    floor = 0
    delta = 0
    for index, hunk in enumerate(hunks, start=1):
        old_lines = hunk.old_lines
        if hunk.old_count == 0:
            hint = hunk.old_start + delta
        else:
            hint = hunk.old_start - 1 + delta
        position = _locate(file_lines, old_lines, hint, floor)
        if position is None:
            raise PatchError(
                f"hunk {index} (@@ -{hunk.old_start},{hunk.old_count} @@) "
                "does not match current file content"
            )
        new_lines = hunk.new_lines
        file_lines[position:position + len(old_lines)] = new_lines
        floor = position + len(new_lines)
        delta += len(new_lines) - len(old_lines)
        if hunk.no_newline_at_end and floor == len(file_lines):
            trailing_newline = False
        elif floor == len(file_lines) and any(p == "+" for p, _ in hunk.lines[-1:]):
            trailing_newline = True
    if not file_lines:
        return ""
    return newline.join(file_lines) + (newline if trailing_newline else "")


def diff_line_counts(diff_text: str) -> Tuple[int, int]:
    """Count added and removed body lines of a unified diff, ignoring headers."""
    added = 0
    removed = 0
    for line in (diff_text or "").splitlines():
        if line.startswith("+++") or line.startswith("---"):
            continue
        if line.startswith("+"):
            added += 1
        elif line.startswith("-"):
            removed += 1
    return added, removed


def _locate(file_lines: List[str], old_lines: List[str], hint: int, floor: int) -> Optional[int]:
    upper = len(file_lines) - len(old_lines)
    if upper < floor:
        return None
    hint = max(floor, min(hint, upper))
    if not old_lines:
        return hint
    span = max(hint - floor, upper - hint)
    for offset in range(span + 1):
        for candidate in (hint - offset, hint + offset):
            if candidate < floor or candidate > upper:
                continue
            if file_lines[candidate:candidate + len(old_lines)] == old_lines:
                return candidate
    return None


def _split_lines(text: str) -> Tuple[List[str], bool, str]:
    """Split into bare lines, reporting the trailing newline and the file's newline style."""
    newline = "\r\n" if "\r\n" in (text or "") else "\n"
    value = (text or "").replace("\r\n", "\n")
    if not value:
        return [], False, newline
    trailing = value.endswith("\n")
    lines = value.split("\n")
    if trailing:
        lines.pop()
    return lines, trailing, newline


def _hunk_body_open(hunk: DiffHunk) -> bool:
    removed = sum(1 for prefix, _ in hunk.lines if prefix in (" ", "-"))
    added = sum(1 for prefix, _ in hunk.lines if prefix in (" ", "+"))
    return removed < hunk.old_count or added < hunk.new_count


def _check_counts(index: int, hunk: DiffHunk) -> None:
    old_seen = len(hunk.old_lines)
    new_seen = len(hunk.new_lines)
    if old_seen != hunk.old_count or new_seen != hunk.new_count:
        raise PatchError(
            f"hunk {index} line counts do not match its header "
            f"(expected -{hunk.old_count}/+{hunk.new_count}, found -{old_seen}/+{new_seen})"
        )


def _strip_path(raw: str) -> str:
    value = raw.split("\t", 1)[0].strip()
    if value.startswith(("a/", "b/")):
        return value[2:]
    return value
