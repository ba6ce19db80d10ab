"""Job supervisor: hand a task to the agent and wait for evidence of work."""

from __future__ import annotations

from pathlib import Path

from thunder.completion import CompletionStrategy, FirstEventStrategy, take_snapshot
from thunder.engines.base import EngineBase
from thunder.errors import AgentExecutionError
from thunder.io_utils import slugify
from thunder.log import Logger
from thunder.tasks.model import Task, TaskResult

DEFAULT_TIMEOUT = 30.0

EXPECTED_STEPS = (
    "Analyze the current codebase",
    "Implement the required changes",
    "Add appropriate tests",
    "Ensure code quality and consistency",
    "Document any significant changes",
)


def build_task_prompt(task: Task) -> str:
    steps = "\n".join(f"{i}. {step}" for i, step in enumerate(EXPECTED_STEPS, start=1))
    return f"""Please complete the following task:

Task: {task.description}
Complexity: {task.estimated_complexity.value}
Branch: {task.branch}

Instructions:
{steps}

When complete, please provide a summary of:
- Files modified
- Key changes made
- Any potential issues or considerations"""


class JobSupervisor:
    """Drive one task's agent run to a :class:`TaskResult`."""

    def __init__(
        self,
        engine: EngineBase,
        logger: Logger,
        *,
        strategy: CompletionStrategy | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        log_dir: Path | None = None,
    ) -> None:
        self.engine = engine
        self.logger = logger
        self.strategy = strategy or FirstEventStrategy()
        self.timeout = timeout
        self.log_dir = log_dir

    async def execute_task(self, task: Task, worktree_path: Path) -> TaskResult:
        """Never raises: every failure becomes a failed result."""
        try:
            return await self._supervise(task, worktree_path)
        except Exception as e:
            message = str(e) or type(e).__name__
            self.logger.error(f"Agent execution failed for {task.id}: {message}")
            return TaskResult.failed(task, message)

    async def _supervise(self, task: Task, worktree_path: Path) -> TaskResult:
        if not worktree_path.is_dir():
            raise AgentExecutionError(f"Worktree {worktree_path} does not exist")
        err = self.engine.check_available()
        if err:
            raise AgentExecutionError(err)

        baseline = take_snapshot(worktree_path)
        stdout_file, stderr_file = self._log_files(task)

        proc = await self.engine.launch(
            build_task_prompt(task),
            cwd=worktree_path,
            model=task.suggested_model,
            stdout_file=stdout_file,
            stderr_file=stderr_file,
        )
        self.logger.info(f"Monitoring {self.engine.name} activity for {task.id} in {worktree_path}.")
        self.logger.debug(f"{task.id}: agent pid {proc.pid}, strategy {self.strategy.name}")

        changes = await self.strategy.observe(worktree_path, self.timeout, baseline=baseline)
        if changes.timed_out and not changes.paths:
            self.logger.debug(f"{task.id}: no file activity within {self.timeout:g}s")
        return TaskResult.ok(task, changes.paths)

    def _log_files(self, task: Task) -> tuple[Path | None, Path | None]:
        if self.log_dir is None:
            return None, None
        self.log_dir.mkdir(parents=True, exist_ok=True)
        stem = slugify(task.id) or "task"
        return self.log_dir / f"{stem}.out", self.log_dir / f"{stem}.log"
