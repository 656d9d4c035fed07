from __future__ import annotations

import os


class ModelInvocationError(RuntimeError):
    """The primary model call failed; fatal for the current run."""


def env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return max(1, int(raw))
    except ValueError:
        return default
