from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, List

from friday_agent.tools.base import ToolContext, ToolRequest, ToolResult


_TEXT_EXTENSIONS = {
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".json",
    ".md",
    ".yaml",
    ".yml",
    ".txt",
    ".py",
}
_SKIP_DIRS = {".git", "node_modules", "dist", "coverage", ".venv", "venv", "__pycache__"}

DEFAULT_MAX_RESULTS = 50
MAX_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class SearchMatch:
    file: str
    line: int
    preview: str


def repo_search(query: str, cwd: Path, max_results: int = DEFAULT_MAX_RESULTS) -> List[SearchMatch]:
    """Case-insensitive substring search over the text files below ``cwd``."""
    needle = (query or "").lower()
    if not needle.strip():
        return []
    root = Path(cwd)
    matches: List[SearchMatch] = []
    for file_path in _iter_candidate_files(root):
        if len(matches) >= max_results:
            break
        try:
            content = file_path.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            continue
        rel = file_path.relative_to(root).as_posix()
        for number, line in enumerate(content.split("\n"), start=1):
            if needle in line.lower():
                matches.append(SearchMatch(file=rel, line=number, preview=line.strip()[:MAX_PREVIEW_CHARS]))
                if len(matches) >= max_results:
                    break
    return matches


def _iter_candidate_files(root: Path) -> Iterable[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.suffix.lower() in _TEXT_EXTENSIONS:
                yield path


def format_matches(matches: List[SearchMatch]) -> str:
    return json.dumps({"matches": [asdict(m) for m in matches]}, indent=2)


class RepoSearchTool:
    name = "repo_search"

    def run(self, request: ToolRequest, context: ToolContext) -> ToolResult:
        query = str(request.args.get("query") or "")
        if not query.strip():
            return ToolResult(ok=False, output="Error: 'query' arg is required.")
        return ToolResult(ok=True, output=format_matches(repo_search(query, context.cwd)))
