"""Completion detection: infer that an opaque agent has acted on a directory.

The agent never signals "done"; all we can see are filesystem changes in
its worktree.  A :class:`CompletionStrategy` turns those changes into a
:class:`ChangeSet` within a timeout ceiling.  Changes are found by polling
snapshots of ``(mtime_ns, size)`` per file, the same activity check the
runner applies to agent log files.
"""

from __future__ import annotations

import asyncio
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

Snapshot = dict[str, tuple[int, int]]

IGNORED_NAMES = frozenset({".git"})


@dataclass(frozen=True)
class ChangeSet:
    paths: frozenset[str] = field(default_factory=frozenset)
    timed_out: bool = False


def take_snapshot(directory: Path) -> Snapshot:
    """Map absolute file path -> ``(mtime_ns, size)`` for *directory*'s tree."""
    snap: Snapshot = {}
    for root, dirs, files in os.walk(directory):
        dirs[:] = [d for d in dirs if d not in IGNORED_NAMES]
        for name in files:
            if name in IGNORED_NAMES:
                continue
            path = os.path.join(root, name)
            try:
                st = os.stat(path)
            except OSError:
                continue
            snap[os.path.abspath(path)] = (st.st_mtime_ns, st.st_size)
    return snap


def diff_snapshots(before: Snapshot, after: Snapshot) -> set[str]:
    """Paths created, modified or deleted between two snapshots."""
    changed = {p for p, sig in after.items() if before.get(p) != sig}
    changed.update(p for p in before if p not in after)
    return changed


class CompletionStrategy(ABC):
    """Pluggable "is the agent done?" policy."""

    name: str = "base"

    def __init__(self, poll_interval: float = 0.5) -> None:
        self.poll_interval = poll_interval

    @abstractmethod
    async def observe(
        self,
        directory: Path,
        timeout: float,
        *,
        baseline: Snapshot | None = None,
    ) -> ChangeSet:
        """Watch *directory* until the strategy is satisfied or *timeout* elapses.

        *baseline* is the snapshot to compare against; when omitted the
        directory is snapshotted on entry.
        """
        ...

    async def _tick(self, deadline: float) -> bool:
        """Sleep one poll interval; ``False`` once *deadline* has passed."""
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        await asyncio.sleep(min(self.poll_interval, remaining))
        return True


class FirstEventStrategy(CompletionStrategy):
    """Finish on the first observed change, capturing only that one path.

    Later changes the agent makes are not reported.
    """

    name = "first-event"

    async def observe(
        self,
        directory: Path,
        timeout: float,
        *,
        baseline: Snapshot | None = None,
    ) -> ChangeSet:
        before = baseline if baseline is not None else take_snapshot(directory)
        deadline = time.monotonic() + timeout

        while await self._tick(deadline):
            changed = diff_snapshots(before, take_snapshot(directory))
            if changed:
                return ChangeSet(paths=frozenset({min(changed)}))

        return ChangeSet(timed_out=True)


class QuietPeriodStrategy(CompletionStrategy):
    """Collect changes until the directory has been quiet for *quiet_period*."""

    name = "quiet-period"

    def __init__(self, poll_interval: float = 0.5, quiet_period: float = 5.0) -> None:
        super().__init__(poll_interval)
        self.quiet_period = quiet_period

    async def observe(
        self,
        directory: Path,
        timeout: float,
        *,
        baseline: Snapshot | None = None,
    ) -> ChangeSet:
        before = baseline if baseline is not None else take_snapshot(directory)
        previous = before
        deadline = time.monotonic() + timeout
        changed: set[str] = set()
        last_change: float | None = None

        while await self._tick(deadline):
            current = take_snapshot(directory)
            if diff_snapshots(previous, current):
                last_change = time.monotonic()
            previous = current
            changed = diff_snapshots(before, current)
            if last_change is not None and time.monotonic() - last_change >= self.quiet_period:
                return ChangeSet(paths=frozenset(changed))

        return ChangeSet(paths=frozenset(changed), timed_out=True)


def get_strategy(
    name: str,
    *,
    poll_interval: float = 0.5,
    quiet_period: float = 5.0,
) -> CompletionStrategy:
    match name:
        case "first-event":
            return FirstEventStrategy(poll_interval)
        case "quiet-period":
            return QuietPeriodStrategy(poll_interval, quiet_period)
        case _:
            raise ValueError(f"Unknown completion strategy: {name}")
