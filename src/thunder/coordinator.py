"""Execution coordinator: plan → approval → levels → batches → review → merge."""

from __future__ import annotations

import asyncio
import shlex
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TypeVar

from thunder.approval import ApprovalUI
from thunder.config import Config
from thunder.errors import CircularDependencyError, InfrastructureError, PlanningError
from thunder.isolation import WorktreeManager
from thunder.log import Logger
from thunder.scheduler import resolve_dependencies
from thunder.supervisor import JobSupervisor
from thunder.tasks.decompose import Decomposer, split_plan_into_tasks
from thunder.tasks.model import Task, TaskResult

T = TypeVar("T")


class RunState(str, Enum):
    PLAN_ENTERED = "plan-entered"
    DECOMPOSED = "decomposed"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    REVIEWED = "reviewed"
    DONE = "done"
    CANCELLED_AT_APPROVAL = "cancelled-at-approval"
    CANCELLED_AT_PLANNING = "cancelled-at-planning"


@dataclass
class RunReport:
    """What happened during one plan run."""

    state: RunState = RunState.PLAN_ENTERED
    history: list[RunState] = field(default_factory=lambda: [RunState.PLAN_ENTERED])
    tasks: list[Task] = field(default_factory=list)
    levels: list[list[str]] = field(default_factory=list)
    results: list[TaskResult] = field(default_factory=list)
    merged: list[str] = field(default_factory=list)
    rejected: dict[str, Path] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    merge_failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state == RunState.DONE and not self.failed and not self.merge_failed


def batched(items: list[T], size: int) -> list[list[T]]:
    """Split *items* into consecutive chunks of at most *size* (minimum 1)."""
    size = max(1, size)
    return [items[i : i + size] for i in range(0, len(items), size)]


class ExecutionCoordinator:
    """Top-level control loop for one plan run."""

    def __init__(
        self,
        cfg: Config,
        *,
        decomposer: Decomposer,
        isolation: WorktreeManager,
        supervisor: JobSupervisor,
        approval: ApprovalUI,
        logger: Logger,
    ) -> None:
        self.cfg = cfg
        self.decomposer = decomposer
        self.isolation = isolation
        self.supervisor = supervisor
        self.approval = approval
        self.logger = logger

    # ── planning ─────────────────────────────────────────────────

    def prepare(self, plan: str) -> list[Task]:
        """Decompose *plan* into enriched tasks.

        Raises :class:`PlanningError` for a blank plan or when no task
        could be identified.
        """
        if not plan.strip():
            raise PlanningError("Plan entry cancelled: the plan is empty.")
        tasks = split_plan_into_tasks(
            plan,
            self.decomposer,
            self.logger,
            models=self.cfg.complexity_models,
            default_model=self.cfg.default_model,
        )
        if not tasks:
            raise PlanningError("Could not identify actionable tasks in the plan.")
        return tasks

    # ── run ──────────────────────────────────────────────────────

    async def run(self, plan: str) -> RunReport:
        report = RunReport()

        try:
            report.tasks = self.prepare(plan)
        except PlanningError as e:
            self.logger.warn(str(e))
            self._advance(report, RunState.CANCELLED_AT_PLANNING)
            return report
        self._advance(report, RunState.DECOMPOSED)

        approved_ids = await self.approval.approve_tasks(report.tasks)
        if not approved_ids:
            self.logger.warn("No tasks approved for execution.")
            self._advance(report, RunState.CANCELLED_AT_APPROVAL)
            return report
        selected = set(approved_ids)
        approved = [t for t in report.tasks if t.id in selected]
        if not approved:
            self.logger.warn(f"Approved ids match no task: {', '.join(approved_ids)}")
            self._advance(report, RunState.CANCELLED_AT_APPROVAL)
            return report
        self._advance(report, RunState.APPROVED)

        try:
            levels = resolve_dependencies(approved)
        except CircularDependencyError as e:
            self.logger.error(str(e))
            self._advance(report, RunState.CANCELLED_AT_PLANNING)
            return report
        report.levels = [[t.id for t in level] for level in levels]

        for index, level in enumerate(levels, start=1):
            self._advance(report, RunState.SCHEDULED)
            self.logger.info(
                f"Level {index}/{len(levels)}: {', '.join(t.id for t in level)}"
            )
            self._advance(report, RunState.EXECUTING)
            results = await self.execute_level(level)
            report.results.extend(results)
            await self.handle_results(results, report)
            self._advance(report, RunState.REVIEWED)

        self._advance(report, RunState.DONE)
        return report

    def _advance(self, report: RunReport, state: RunState) -> None:
        self.logger.debug(f"Run state: {report.state.value} -> {state.value}")
        report.state = state
        report.history.append(state)

    # ── execution ────────────────────────────────────────────────

    async def execute_level(self, tasks: list[Task]) -> list[TaskResult]:
        """Run *tasks* in batches of ``max_parallel_tasks``; results keep task order."""
        results: list[TaskResult] = []
        for batch in batched(tasks, self.cfg.max_parallel_tasks):
            self.logger.debug(f"Starting batch: {', '.join(t.id for t in batch)}")
            results.extend(await asyncio.gather(*(self._run_task(t) for t in batch)))
        return results

    async def _run_task(self, task: Task) -> TaskResult:
        try:
            path = self.isolation.create_worktree(task)
            self._open_for_agent(path)
        except Exception as e:
            message = str(e) or type(e).__name__
            self.logger.error(f"Task {task.id} failed: {message}")
            return TaskResult.failed(task, message)
        return await self.supervisor.execute_task(task, path)

    def _open_for_agent(self, path: Path) -> None:
        if not self.cfg.open_command:
            self.logger.debug(f"Worktree ready at {path}")
            return
        cmd = [part.replace("{path}", str(path)) for part in shlex.split(self.cfg.open_command)]
        if not any(str(path) in part for part in cmd):
            cmd.append(str(path))
        subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)

    # ── review / merge ───────────────────────────────────────────

    async def handle_results(self, results: list[TaskResult], report: RunReport) -> None:
        """Review and merge results one at a time, in result order."""
        for result in results:
            task = result.task
            if not result.success:
                error = result.error or "Unknown error"
                self.logger.error(f"Task {task.id} reported an error: {error}")
                report.failed[task.id] = error
                continue

            approved = self.cfg.auto_merge or await self.approval.review_result(result)
            if not approved:
                path = self.isolation.worktree_path(task)
                self.logger.warn(
                    f"Task {task.id} requires manual follow-up (worktree kept at {path})."
                )
                report.rejected[task.id] = path
                continue

            try:
                self.isolation.merge_worktree(task)
            except (InfrastructureError, OSError) as e:
                self.logger.error(f"Failed to merge worktree for {task.branch}: {e}")
                report.merge_failed[task.id] = str(e)
            else:
                report.merged.append(task.id)
