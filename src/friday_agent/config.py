from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from friday_agent.domain.tasks import TaskInvocation
from friday_agent.workspace import validate_workspace_dir

logger = logging.getLogger(__name__)

ANTHROPIC = "anthropic"
OPENAI = "openai"
GEMINI = "gemini"

# Provider name -> env keys, in lookup order.
CREDENTIAL_ENV_KEYS: Dict[str, Tuple[str, ...]] = {
    ANTHROPIC: ("ANTHROPIC_API_KEY",),
    OPENAI: ("OPENAI_API_KEY",),
    GEMINI: ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}

CREDENTIAL_LABELS: Dict[str, str] = {
    ANTHROPIC: "Anthropic (Claude)",
    OPENAI: "OpenAI",
    GEMINI: "Google Gemini",
}

ENV_FILE_NAME = ".env"


class ConfigurationError(Exception):
    """Invalid or missing configuration detected before the agent loop starts."""


def default_env_path() -> Path:
    return Path.cwd() / ENV_FILE_NAME


def load_env_file(path: Path) -> Dict[str, str]:
    data: Dict[str, str] = {}
    if not path.exists():
        return data
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line.startswith("export "):
                line = line[len("export "):].strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            k, v = line.split("=", 1)
            v = v.strip()
            if len(v) >= 2 and v[0] == v[-1] and v[0] in {'"', "'"}:
                v = v[1:-1]
            data[k.strip()] = v
    except OSError as exc:
        logger.warning("Failed to read %s: %s", path, exc)
    return data


def get_env_value(
    key: str,
    env_file: Mapping[str, str],
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    source = os.environ if environ is None else environ
    return source.get(key) or env_file.get(key)


def apply_env_defaults(env_file: Dict[str, str], target_env: Optional[MutableMapping[str, str]] = None) -> int:
    """Populate missing process env vars from .env-style mapping.

    Existing environment values are never overwritten.
    Returns the number of keys applied.
    """
    target = target_env if target_env is not None else os.environ
    applied = 0
    for raw_key, raw_value in (env_file or {}).items():
        key = str(raw_key or "").strip()
        if not key:
            continue
        if key in target and str(target.get(key) or "").strip():
            continue
        target[key] = str(raw_value or "")
        applied += 1
    return applied


class CredentialStore:
    """API key lookup with precedence: session override > environment > .env file.

    Session overrides live in memory only and are never written to disk.
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Mapping[str, str]] = None,
        session: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._environ: Mapping[str, str] = os.environ if environ is None else environ
        self._env_file: Dict[str, str] = dict(env_file or {})
        self._session: Dict[str, str] = {}
        for name, value in (session or {}).items():
            self.set_session(name, value)

    @classmethod
    def from_env_file(cls, path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> "CredentialStore":
        return cls(environ=environ, env_file=load_env_file(path or default_env_path()))

    def get(self, name: str) -> str:
        provider = _normalize_provider(name)
        override = self._session.get(provider)
        if override:
            return override
        for key in CREDENTIAL_ENV_KEYS[provider]:
            value = (get_env_value(key, self._env_file, environ=self._environ) or "").strip()
            if value:
                return value
        return ""

    def has(self, name: str) -> bool:
        return bool(self.get(name))

    def set_session(self, name: str, value: str) -> None:
        provider = _normalize_provider(name)
        cleaned = str(value or "").strip()
        if cleaned:
            self._session[provider] = cleaned
        else:
            self._session.pop(provider, None)

    def missing(self, names: Sequence[str]) -> List[str]:
        return [name for name in names if not self.has(name)]

    def require(self, name: str) -> str:
        value = self.get(name)
        if value:
            return value
        provider = _normalize_provider(name)
        env_key = env_key_for(provider)
        raise ConfigurationError(
            f"{env_key} is required.\n"
            f"Please set it: export {env_key}=your-key-here\n"
            f"or add {env_key}=your-key-here to a {ENV_FILE_NAME} file in the working directory."
        )


def env_key_for(name: str) -> str:
    return CREDENTIAL_ENV_KEYS[_normalize_provider(name)][0]


def _normalize_provider(name: str) -> str:
    provider = str(name or "").strip().lower()
    if provider not in CREDENTIAL_ENV_KEYS:
        raise KeyError(f"Unknown credential: {name}")
    return provider


def build_task_invocation(**raw: Any) -> TaskInvocation:
    """Validate raw CLI/REPL options into a TaskInvocation."""
    try:
        return TaskInvocation(**raw)
    except ValidationError as exc:
        messages = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc") or ()) or "options"
            message = str(err.get("msg") or "invalid value")
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            messages.append(message if location == "options" else f"{location}: {message}")
        raise ConfigurationError("Invalid options:\n  " + "\n  ".join(messages)) from None


def check_invocation(invocation: TaskInvocation, credentials: CredentialStore) -> None:
    """Fail fast on anything that would make the first model call or write attempt fail."""
    credentials.require(ANTHROPIC)
    if not invocation.cwd.is_dir():
        raise ConfigurationError(f"Working directory does not exist: {invocation.cwd}")
    if invocation.workspace is not None:
        ok, error = validate_workspace_dir(invocation.workspace)
        if not ok:
            raise ConfigurationError(f"Invalid --workspace. {error}")
