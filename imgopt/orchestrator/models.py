"""Orchestrator data models."""
from dataclasses import dataclass, field
from typing import List


@dataclass
class BatchResult:
    """Outcome of one submit_batch() call."""
    ids: List[str]
    dropped: List[str] = field(default_factory=list)  # filenames cut by BatchPolicy.TRUNCATE
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # removed before their result landed

    @property
    def total(self) -> int:
        return len(self.ids)

    @property
    def all_success(self) -> bool:
        return not self.failed and not self.dropped and len(self.completed) == len(self.ids)
