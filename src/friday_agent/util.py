import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Tuple

REDACTED = "REDACTED"
EXTRA_PATTERNS_ENV = "REDACTION_EXTRA_PATTERNS"

# Order matters: the Anthropic prefix must be handled before the generic "sk-" rule.
_SECRET_SHAPES: Tuple[Tuple[str, str], ...] = (
    (r"sk-ant-[\w-]{10,}", "sk-ant-REDACTED"),
    (r"sk-(?!ant-)[\w-]{10,}", "sk-REDACTED"),
    (r"AIza[\w-]{30,}", "AIza-REDACTED"),
    (r"gh[pousr]_[A-Za-z0-9]{20,}", "gh-REDACTED"),
    (r"github_pat_\w{20,}", "github_pat_REDACTED"),
    (r"AKIA[0-9A-Z]{16}", "AKIA_REDACTED"),
    (r"(?i)\bBearer\s+[\w\-.~+/]+=*\b", "Bearer REDACTED"),
    (r"(?i)\b(\w*(?:api[_-]?key|token|secret|password))\b\s*[:=]\s*([^\s,;]+)", r"\1=REDACTED"),
)

Rule = Tuple[re.Pattern, str]


@dataclass(frozen=True)
class RedactionResult:
    text: str
    redacted: bool
    replacements: int


def redact(text: str) -> str:
    """Mask API keys and credential assignments before text reaches a log or the ledger."""
    return redact_with_audit(text).text


def redact_with_audit(text: str) -> RedactionResult:
    value = text or ""
    hits = 0
    for rule, replacement in _compiled_patterns():
        value, count = rule.subn(replacement, value)
        hits += count
    return RedactionResult(text=value, redacted=bool(hits), replacements=hits)


@lru_cache(maxsize=1)
def _compiled_patterns() -> List[Rule]:
    rules: List[Rule] = [(re.compile(shape), mask) for shape, mask in _SECRET_SHAPES]
    # Extra user patterns are ";;"-separated; invalid ones are ignored.
    for raw in (os.environ.get(EXTRA_PATTERNS_ENV) or "").split(";;"):
        raw = raw.strip()
        if not raw:
            continue
        try:
            rules.append((re.compile(raw), REDACTED))
        except re.error:
            pass
    return rules


def clip(text: str, limit: int, marker: str = "") -> str:
    """Cut ``text`` to ``limit`` chars, appending ``marker`` when something was dropped."""
    value = text or ""
    if limit <= 0 or len(value) <= limit:
        return value
    return value[:limit] + marker


def first_words(text: str, count: int) -> str:
    return " ".join((text or "").split()[: max(0, count)])
