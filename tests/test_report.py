"""Tests for the end-of-run summary."""

from __future__ import annotations

from pathlib import Path

from thunder.coordinator import RunReport, RunState
from thunder.report import show_summary
from thunder.tasks.model import TaskResult


class TestShowSummary:
    def test_outcomes_listed(self, logger, make_task) -> None:
        a, b, c, d = (make_task(i) for i in "abcd")
        report = RunReport(
            state=RunState.DONE,
            levels=[["a", "b", "c", "d"]],
            results=[TaskResult.ok(a), TaskResult.ok(b), TaskResult.failed(c, "boom"), TaskResult.ok(d)],
            merged=["a"],
            rejected={"b": Path("/wt/feature/b")},
            failed={"c": "boom"},
            merge_failed={"d": "Merge conflict"},
        )

        show_summary(report, logger)

        out = logger.console.export_text()
        assert "Executed 4 task(s) in 1 level(s)" in out
        assert "merged" in out
        assert "/wt/feature/b" in out
        assert "boom" in out
        assert "Merge conflict" in out

    def test_cancelled_run(self, logger) -> None:
        show_summary(RunReport(state=RunState.CANCELLED_AT_APPROVAL), logger)
        assert "Run stopped: cancelled-at-approval" in logger.console.export_text()
