"""Error taxonomy shared across planning, isolation and execution."""

from __future__ import annotations


class ThunderError(Exception):
    """Base class for user-facing thunder errors."""


class PlanningError(ThunderError):
    """The plan could not be turned into a runnable set of tasks."""


class CircularDependencyError(PlanningError):
    """Dependency ids that can never be satisfied inside the task set.

    Covers both true cycles and ids that reference tasks outside the set.
    """

    def __init__(self, blocked: dict[str, list[str]]) -> None:
        self.blocked = blocked
        details = "; ".join(
            f"{tid} waits on {', '.join(deps) or '?'}" for tid, deps in blocked.items()
        )
        super().__init__(f"Circular dependency detected in task list: {details}")


class InfrastructureError(ThunderError):
    """A git or working-copy operation failed."""

    def __init__(self, message: str, *, stderr: str = "") -> None:
        self.stderr = stderr.strip()
        if self.stderr:
            message = f"{message}: {self.stderr.splitlines()[0]}"
        super().__init__(message)


class AgentExecutionError(ThunderError):
    """Issuing or supervising an agent work request failed."""
