"""Approval collaborators: which tasks to run, and whether to merge a result."""

from __future__ import annotations

import sys
from typing import Protocol

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from thunder.log import Logger
from thunder.tasks.model import Task, TaskResult

_COMPLEXITY_STYLE = {"low": "green", "medium": "yellow", "high": "red"}


class ApprovalUI(Protocol):
    async def approve_tasks(self, tasks: list[Task]) -> list[str] | None:
        """Return approved task ids, or ``None`` when the user cancels."""
        ...

    async def review_result(self, result: TaskResult) -> bool:
        """Return ``True`` to merge *result*'s branch."""
        ...


class AutoApproval:
    """Approve every task and every result (``--yes``)."""

    async def approve_tasks(self, tasks: list[Task]) -> list[str] | None:
        return [t.id for t in tasks]

    async def review_result(self, result: TaskResult) -> bool:
        return True


def parse_selection(raw: str, tasks: list[Task]) -> list[str] | None:
    """Interpret a selection string: ``all``, ``none``/``q``, or ``id1, id2``.

    Unknown ids raise ``click.BadParameter``.
    """
    value = raw.strip()
    if value.lower() in ("", "all", "a", "y", "yes"):
        return [t.id for t in tasks]
    if value.lower() in ("none", "n", "no", "q", "quit", "cancel"):
        return None

    known = {t.id for t in tasks}
    picked = [item.strip() for item in value.split(",") if item.strip()]
    unknown = [item for item in picked if item not in known]
    if unknown:
        raise click.BadParameter(f"Unknown task id(s): {', '.join(unknown)}")
    return [t.id for t in tasks if t.id in picked]


class ConsoleApproval:
    """Terminal approval: rich tables plus click prompts."""

    def __init__(self, logger: Logger, console: Console | None = None) -> None:
        self.logger = logger
        self.console = console or logger.console

    async def approve_tasks(self, tasks: list[Task]) -> list[str] | None:
        if not tasks:
            self.logger.warn("No tasks available for approval.")
            return None

        self.console.print(self._task_table(tasks))
        if not sys.stdin.isatty():
            self.logger.warn("Not a TTY; cannot ask for approval. Use --yes to approve all tasks.")
            return None

        while True:
            raw = click.prompt(
                "Approve tasks [all / comma-separated ids / none]",
                default="all",
                show_default=False,
            )
            try:
                return parse_selection(raw, tasks)
            except click.BadParameter as e:
                self.console.print(f"[red]{e.message}[/red]")

    async def review_result(self, result: TaskResult) -> bool:
        task = result.task
        status = "[green]Success[/green]" if result.success else "[red]Failed[/red]"
        self.console.print("")
        self.console.print(f"[bold]Task Review:[/bold] {escape(task.description)} ({escape(task.id)})")
        self.console.print(f"Status: {status}   Branch: [cyan]{task.branch}[/cyan]")
        self.console.print("[bold]Changed files[/bold]")
        if result.changed_files:
            for path in sorted(result.changed_files):
                self.console.print(f"  - {escape(path)}")
        else:
            self.console.print("  [dim](no file activity observed)[/dim]")

        if not sys.stdin.isatty():
            self.logger.warn(f"Not a TTY; leaving {task.id} for manual review.")
            return False
        return click.confirm("Approve & merge?", default=False)

    @staticmethod
    def _task_table(tasks: list[Task]) -> Table:
        table = Table(title="Task Breakdown Approval")
        table.add_column("ID", style="bold")
        table.add_column("Description")
        table.add_column("Complexity")
        table.add_column("Model")
        table.add_column("Branch", style="cyan")
        table.add_column("Depends on")
        for t in tasks:
            level = t.estimated_complexity.value
            table.add_row(
                escape(t.id),
                escape(t.description),
                f"[{_COMPLEXITY_STYLE[level]}]{level}[/]",
                t.suggested_model,
                t.branch,
                ", ".join(sorted(t.dependencies)) or "-",
            )
        return table
