from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


WRITE_KIND_FILE = "write"
WRITE_KIND_PATCH = "patch"


class ApprovalChoice(str, Enum):
    YES = "yes"
    NO = "no"
    SKIP = "skip"
    ABORT = "abort"


@dataclass(frozen=True)
class PendingWrite:
    """A file mutation that has been sandbox-resolved but not yet committed."""

    path: str
    target: Path
    new_content: str
    existing_content: str
    is_new_file: bool
    kind: str = WRITE_KIND_FILE
    unified_diff: str = ""

    @property
    def action(self) -> str:
        if self.kind == WRITE_KIND_PATCH:
            return "PATCH"
        return "CREATE" if self.is_new_file else "MODIFY"
