"""Run-scoped logging and notification sink with colored output via Rich.

A single :class:`Logger` is created per run and handed to every component
at construction time.  ``error`` messages also raise an interruptive
desktop notification; ``warn`` messages are console-only.
"""

from __future__ import annotations

from datetime import datetime, timezone
from io import TextIOWrapper
from pathlib import Path
from typing import Literal

from rich.console import Console
from rich.markup import escape

from thunder import notify
from thunder.io_utils import open_text

LogLevel = Literal["info", "warn", "error"]


class Logger:
    """Console (and optional file) sink for user-facing messages."""

    def __init__(
        self,
        *,
        verbose: bool = False,
        notifications: bool = False,
        log_file: Path | None = None,
        console: Console | None = None,
        err_console: Console | None = None,
    ) -> None:
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(highlight=False, stderr=True)
        self.verbose = verbose
        self.notifications = notifications
        self.log_file = log_file
        self._fh: TextIOWrapper | None = None

    # ── lifecycle ────────────────────────────────────────────────

    def open(self) -> Logger:
        if self.log_file and self._fh is None:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open_text(self.log_file, "a")
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> Logger:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── sinks ────────────────────────────────────────────────────

    def log(self, message: str, level: LogLevel = "info") -> None:
        match level:
            case "error":
                self.error(message)
            case "warn":
                self.warn(message)
            case _:
                self.info(message)

    def info(self, msg: str) -> None:
        self._record("INFO", msg)
        self.console.print(f"[blue]\\[INFO][/blue] {escape(msg)}")

    def success(self, msg: str) -> None:
        self._record("INFO", msg)
        self.console.print(f"[green]\\[OK][/green] {escape(msg)}")

    def warn(self, msg: str) -> None:
        self._record("WARN", msg)
        self.console.print(f"[yellow]\\[WARN][/yellow] {escape(msg)}")

    def error(self, msg: str) -> None:
        self._record("ERROR", msg)
        self.err_console.print(f"[red]\\[ERROR][/red] {escape(msg)}")
        if self.notifications:
            notify.notify_error(msg)

    def debug(self, msg: str) -> None:
        self._record("DEBUG", msg)
        if self.verbose:
            self.console.print(f"[dim]\\[DEBUG] {escape(msg)}[/dim]")

    def _record(self, level: str, msg: str) -> None:
        if self._fh is None:
            return
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        self._fh.write(f"[{ts}] {level}: {msg}\n")
        self._fh.flush()
