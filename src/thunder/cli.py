"""Thunder CLI.

Installed as the ``thunder`` console_script.
"""

from __future__ import annotations

import asyncio
import json
import sys
import tempfile
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from thunder import __version__
from thunder.config import COMPLETION_STRATEGIES, Config
from thunder.io_utils import read_text, write_text
from thunder.log import Logger

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def _resolve_engine(engine_flags: tuple[str, ...], default: str = "claude") -> str:
    selected = list(dict.fromkeys(engine_flags))
    if len(selected) > 1:
        raise click.UsageError("Conflicting engine flags selected. Use only one of --claude/--codex.")
    return selected[0] if selected else default


def _read_plan(plan: tuple[str, ...], plan_file: str) -> str:
    if plan_file and plan:
        raise click.UsageError("Pass the plan either as text or with --plan-file, not both.")
    if plan_file:
        return read_text(plan_file)
    if plan:
        return " ".join(plan)
    if sys.stdin.isatty():
        return click.prompt(
            "Enter your development plan",
            default="",
            show_default=False,
        )
    return click.get_text_stream("stdin").read()


def engine_options(f):
    f = click.option("--engine", "engine_name", envvar="THUNDER_ENGINE", default="",
                     hidden=True)(f)
    f = click.option("--codex", "engine_flags", flag_value="codex", multiple=True,
                     help="Use Codex CLI")(f)
    f = click.option("--claude", "engine_flags", flag_value="claude", multiple=True,
                     help="Use Claude Code (default)")(f)
    return f


def plan_options(f):
    f = click.option("--plan-file", "-f", default=None, type=click.Path(exists=True, dir_okay=False),
                     help="Read the plan from a file")(f)
    f = click.argument("plan", nargs=-1)(f)
    return f


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, prog_name="thunder")
def main() -> None:
    """Thunder: split a development plan into tasks and run AI agents on them.

    Each task runs in its own git worktree on a dedicated branch; accepted
    results are merged back into the trunk branch.

    \b
    EXAMPLES:
      thunder run "Add authentication. Improve error handling."
      thunder run --codex --max-parallel 2 -f plan.md
      thunder run --auto-merge --yes "Optimize database queries"
      thunder split "Add auth. Add tests for auth."
    """


# ── run ──────────────────────────────────────────────────────────


@main.command()
@plan_options
@engine_options
@click.option("--max-parallel", "max_parallel", type=click.IntRange(min=1), default=3,
              envvar="THUNDER_MAX_PARALLEL_TASKS", show_default=True, help="Max concurrent tasks per batch")
@click.option("--auto-merge", is_flag=True, envvar="THUNDER_AUTO_MERGE",
              help="Merge successful results without review")
@click.option("--worktree-dir", default="", envvar="THUNDER_WORKTREE_DIR",
              help="Directory for task worktrees (default: ../worktrees)")
@click.option("--trunk", "trunk_branch", default="", help="Branch to merge into (default: current)")
@click.option("--completion", type=click.Choice(COMPLETION_STRATEGIES), default="first-event",
              show_default=True, help="How to decide an agent has finished")
@click.option("--timeout", "completion_timeout", type=float, default=30.0, show_default=True,
              help="Seconds to wait for agent file activity")
@click.option("--quiet-period", type=float, default=5.0, show_default=True,
              help="Quiet seconds that end a quiet-period watch")
@click.option("--open-command", default="", envvar="THUNDER_OPEN_COMMAND",
              help="Command used to open a worktree, e.g. 'code --new-window {path}'")
@click.option("-y", "--yes", is_flag=True, help="Approve all tasks and results without prompting")
@click.option("--no-notify", is_flag=True, help="Disable desktop notifications")
@click.option("--log-file", default="", help="Append a timestamped log to this file")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
def run(
    plan: tuple[str, ...],
    plan_file: str,
    engine_flags: tuple[str, ...],
    engine_name: str,
    max_parallel: int,
    auto_merge: bool,
    worktree_dir: str,
    trunk_branch: str,
    completion: str,
    completion_timeout: float,
    quiet_period: float,
    open_command: str,
    yes: bool,
    no_notify: bool,
    log_file: str,
    verbose: bool,
) -> None:
    """Execute a development plan."""
    cfg = Config(
        ai_engine=_resolve_engine(engine_flags, engine_name or "claude"),
        max_parallel_tasks=max_parallel,
        auto_merge=auto_merge,
        worktree_directory=worktree_dir,
        trunk_branch=trunk_branch,
        completion_strategy=completion,
        completion_timeout=completion_timeout,
        quiet_period=quiet_period,
        open_command=open_command,
        notify=not no_notify,
        verbose=verbose,
        log_file=log_file,
    )
    text = _read_plan(plan, plan_file)
    _run_pipeline(cfg, text, approve_all=yes)


def _run_pipeline(cfg: Config, plan: str, *, approve_all: bool = False) -> None:
    """Full pipeline: plan → tasks → approval → levels → execute → review → merge."""
    from thunder.approval import AutoApproval, ConsoleApproval
    from thunder.completion import get_strategy
    from thunder.config import resolve_repo_root
    from thunder.coordinator import ExecutionCoordinator, RunState
    from thunder.engines.registry import get_engine
    from thunder.errors import InfrastructureError
    from thunder.git_ops import ensure_clean_git_state
    from thunder.isolation import WorktreeManager
    from thunder.notify import notify_done
    from thunder.report import show_summary
    from thunder.supervisor import JobSupervisor
    from thunder.tasks.decompose import EngineDecomposer

    logger = Logger(
        verbose=cfg.verbose,
        notifications=cfg.notify,
        log_file=Path(cfg.log_file) if cfg.log_file else None,
    )
    with logger:
        engine = get_engine(cfg.ai_engine)
        err = engine.check_available()
        if err:
            logger.error(err)
            sys.exit(1)

        repo_root = resolve_repo_root()
        try:
            ensure_clean_git_state(logger, cwd=repo_root)
            isolation = WorktreeManager(
                repo_root,
                cfg.resolve_worktree_root(repo_root),
                logger,
                trunk_branch=cfg.trunk_branch,
            )
        except InfrastructureError:
            sys.exit(1)

        log_dir = Path(tempfile.mkdtemp(prefix="thunder-"))
        logger.debug(f"Agent logs: {log_dir}")

        coordinator = ExecutionCoordinator(
            cfg,
            decomposer=EngineDecomposer(
                engine, logger, cwd=repo_root, timeout=cfg.decompose_timeout
            ),
            isolation=isolation,
            supervisor=JobSupervisor(
                engine,
                logger,
                strategy=get_strategy(
                    cfg.completion_strategy,
                    poll_interval=cfg.poll_interval,
                    quiet_period=cfg.quiet_period,
                ),
                timeout=cfg.completion_timeout,
                log_dir=log_dir,
            ),
            approval=AutoApproval() if approve_all else ConsoleApproval(logger),
            logger=logger,
        )

        logger.info(
            f"Trunk: {isolation.trunk_branch} | worktrees: {isolation.worktree_root} | "
            f"parallel: {cfg.max_parallel_tasks} | engine: {engine.name}"
        )

        try:
            report = asyncio.run(coordinator.run(plan))
        except KeyboardInterrupt:
            logger.warn("Interrupted! Running agents are left in their worktrees.")
            raise click.Abort() from None

        show_summary(report, logger)

        if report.state == RunState.CANCELLED_AT_PLANNING:
            sys.exit(1)
        if report.state == RunState.DONE:
            if cfg.notify:
                notify_done()
            if not report.ok:
                sys.exit(1)


# ── split ────────────────────────────────────────────────────────


@main.command()
@plan_options
@engine_options
@click.option("--json", "as_json", is_flag=True, help="Print tasks as JSON")
@click.option("--output", "-o", "output", default="", type=click.Path(dir_okay=False),
              help="Also write the tasks as JSON to this file")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
def split(
    plan: tuple[str, ...],
    plan_file: str,
    engine_flags: tuple[str, ...],
    engine_name: str,
    as_json: bool,
    output: str,
    verbose: bool,
) -> None:
    """Split a plan into tasks and show their dependency levels (no execution)."""
    from thunder.config import resolve_repo_root
    from thunder.engines.registry import get_engine
    from thunder.errors import PlanningError
    from thunder.scheduler import resolve_dependencies
    from thunder.tasks.decompose import EngineDecomposer, split_plan_into_tasks

    cfg = Config(ai_engine=_resolve_engine(engine_flags, engine_name or "claude"), verbose=verbose)
    text = _read_plan(plan, plan_file)
    # JSON goes to stdout; keep log lines off it.
    logger = Logger(
        verbose=verbose,
        console=Console(highlight=False, stderr=True) if as_json else None,
    )

    with logger:
        if not text.strip():
            logger.warn("Plan entry cancelled: the plan is empty.")
            sys.exit(1)
        decomposer = EngineDecomposer(
            get_engine(cfg.ai_engine), logger, cwd=resolve_repo_root(), timeout=cfg.decompose_timeout
        )
        tasks = split_plan_into_tasks(
            text,
            decomposer,
            logger,
            models=cfg.complexity_models,
            default_model=cfg.default_model,
        )
        try:
            levels = resolve_dependencies(tasks)
        except PlanningError as e:
            logger.error(str(e))
            sys.exit(1)

        payload = [
            {
                "id": t.id,
                "description": t.description,
                "estimatedComplexity": t.estimated_complexity.value,
                "suggestedModel": t.suggested_model,
                "branch": t.branch,
                "dependencies": sorted(t.dependencies),
                "level": n,
            }
            for n, level in enumerate(levels, start=1)
            for t in level
        ]
        if output:
            write_text(output, json.dumps(payload, indent=2) + "\n")
            logger.success(f"Wrote {len(payload)} task(s) to {output}")
        if as_json:
            click.echo(json.dumps(payload, indent=2))
            return

        for n, level in enumerate(levels, start=1):
            logger.console.print(f"[bold]Level {n}[/bold]")
            for t in level:
                deps = f" (after {', '.join(sorted(t.dependencies))})" if t.dependencies else ""
                logger.console.print(
                    f"  - {escape(t.id)}: {escape(t.description)} "
                    f"[dim]({t.estimated_complexity.value}, {escape(t.suggested_model)}, "
                    f"{escape(t.branch)}){escape(deps)}[/dim]"
                )
