"""Dependency planner: order tasks into levels that can run together."""

from __future__ import annotations

from thunder.errors import CircularDependencyError
from thunder.tasks.model import Task


def resolve_dependencies(tasks: list[Task]) -> list[list[Task]]:
    """Group *tasks* into dependency levels.

    Each level holds every not-yet-scheduled task whose dependencies were
    all scheduled in earlier levels.  Dependency ids that name a task
    outside *tasks* can never be satisfied and are reported the same way
    as a cycle.

    Raises :class:`CircularDependencyError` when no progress is possible.
    """
    levels: list[list[Task]] = []
    scheduled: set[str] = set()
    remaining = list(tasks)

    while remaining:
        level = [t for t in remaining if t.dependencies <= scheduled]
        if not level:
            raise CircularDependencyError(_explain_block(remaining, scheduled))

        scheduled.update(t.id for t in level)
        remaining = [t for t in remaining if t.id not in scheduled]
        levels.append(level)

    return levels


def _explain_block(remaining: list[Task], scheduled: set[str]) -> dict[str, list[str]]:
    """Map each blocked task id to its unresolved dependency ids."""
    return {
        t.id: sorted(dep for dep in t.dependencies if dep not in scheduled)
        for t in remaining
    }
