"""Task and TaskResult data models shared by planning and execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: object, default: Complexity | None = None) -> Complexity:
        """Coerce loosely-typed input (``"High"``, ``None``…) into a Complexity."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return default or cls.MEDIUM


@dataclass(frozen=True)
class Task:
    """One unit of decomposed work.

    Empty ``id``, ``branch`` and ``suggested_model`` mean "not provided";
    enrichment fills them in before scheduling.
    """

    id: str
    description: str
    estimated_complexity: Complexity = Complexity.MEDIUM
    suggested_model: str = ""
    branch: str = ""
    dependencies: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not isinstance(self.dependencies, frozenset):
            object.__setattr__(self, "dependencies", frozenset(self.dependencies))


@dataclass(frozen=True)
class TaskResult:
    """Outcome of one execution attempt; ``error`` is set iff not ``success``."""

    task: Task
    success: bool
    error: str | None = None
    changed_files: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("successful TaskResult cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("failed TaskResult requires an error message")
        if not isinstance(self.changed_files, frozenset):
            object.__setattr__(self, "changed_files", frozenset(self.changed_files))

    @classmethod
    def ok(cls, task: Task, changed_files: frozenset[str] | set[str] = frozenset()) -> TaskResult:
        return cls(task=task, success=True, error=None, changed_files=frozenset(changed_files))

    @classmethod
    def failed(cls, task: Task, error: str) -> TaskResult:
        return cls(task=task, success=False, error=error or "Unknown error")
