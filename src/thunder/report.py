"""End-of-run summary."""

from __future__ import annotations

from rich.markup import escape
from rich.table import Table

from thunder.coordinator import RunReport, RunState
from thunder.log import Logger


def show_summary(report: RunReport, logger: Logger) -> None:
    """Print the final run summary."""
    console = logger.console
    console.print("")
    console.print("[bold]============================================[/bold]")

    if report.state != RunState.DONE:
        console.print(f"[yellow]Run stopped:[/yellow] {report.state.value}")
        console.print("[bold]============================================[/bold]")
        return

    total = len(report.results)
    console.print(
        f"[green]Plan complete![/green] Executed {total} task(s) "
        f"in {len(report.levels)} level(s)."
    )
    console.print("[bold]============================================[/bold]")

    if not total:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Task")
    table.add_column("Outcome")
    table.add_column("Detail")

    for result in report.results:
        tid = result.task.id
        if tid in report.merged:
            table.add_row(tid, "[green]merged[/green]", escape(result.task.branch))
        elif tid in report.rejected:
            table.add_row(
                tid, "[yellow]manual follow-up[/yellow]", escape(str(report.rejected[tid]))
            )
        elif tid in report.merge_failed:
            table.add_row(tid, "[red]merge failed[/red]", escape(report.merge_failed[tid]))
        elif tid in report.failed:
            table.add_row(tid, "[red]failed[/red]", escape(report.failed[tid]))

    console.print(table)
