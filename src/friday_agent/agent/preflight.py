"""One-shot repository context gathered before the agent loop starts."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from friday_agent.observability.structured_log import log_json
from friday_agent.tools.git import git_diff
from friday_agent.tools.search import repo_search
from friday_agent.util import clip, first_words

logger = logging.getLogger(__name__)

MAX_DIFF_CHARS = 3000
KEYWORD_COUNT = 3
MAX_SEARCH_RESULTS = 5


def gather(task: str, cwd: Path) -> str:
    """Build the context pack: current git changes plus a keyword search.

    Both steps are best effort; a failing step is logged and left out.
    """
    parts: List[str] = []
    try:
        diff = git_diff(cwd)
        if diff.has_changes:
            parts.append("Current git changes:")
            parts.append(clip(diff.diff, MAX_DIFF_CHARS))
    except Exception as exc:
        log_json(logger, "preflight.step_failed", level=logging.WARNING, step="git_diff", error=str(exc))

    try:
        keywords = first_words(task, KEYWORD_COUNT)
        matches = repo_search(keywords, cwd, max_results=MAX_SEARCH_RESULTS) if keywords else []
        if matches:
            parts.append("\nPotentially relevant files:")
            for match in matches:
                parts.append(f"  {match.file}:{match.line} - {match.preview}")
    except Exception as exc:
        log_json(logger, "preflight.step_failed", level=logging.WARNING, step="repo_search", error=str(exc))

    return "\n".join(parts)
