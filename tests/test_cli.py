"""CLI tests: every command and the main flags, with a fake agent engine."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from thunder import __version__
from thunder.cli import _resolve_engine, main


@pytest.fixture
def cli_runner():
    """Click CliRunner for invoking the CLI in-process."""
    return CliRunner(env={"COLUMNS": "200"})


def _patch_engine(engine):
    return patch("thunder.engines.registry.get_engine", return_value=engine)


# ── Main entry and help ────────────────────────────────────────────────


class TestCliHelpAndVersion:
    def test_help_long(self, cli_runner):
        r = cli_runner.invoke(main, ["--help"])
        assert r.exit_code == 0
        assert "run" in r.output
        assert "split" in r.output

    def test_help_short(self, cli_runner):
        r = cli_runner.invoke(main, ["-h"])
        assert r.exit_code == 0

    def test_version(self, cli_runner):
        r = cli_runner.invoke(main, ["--version"])
        assert r.exit_code == 0
        assert __version__ in r.output

    def test_run_help_lists_flags(self, cli_runner):
        r = cli_runner.invoke(main, ["run", "--help"])
        assert r.exit_code == 0
        for flag in ("--max-parallel", "--auto-merge", "--worktree-dir", "--completion", "--yes"):
            assert flag in r.output


class TestResolveEngine:
    def test_default(self):
        assert _resolve_engine(()) == "claude"

    def test_single_flag(self):
        assert _resolve_engine(("codex",)) == "codex"

    def test_repeated_flag(self):
        assert _resolve_engine(("codex", "codex")) == "codex"

    def test_conflict(self):
        with pytest.raises(click.UsageError):
            _resolve_engine(("claude", "codex"))


# ── split ──────────────────────────────────────────────────────────────


class TestSplit:
    def test_fallback_levels(self, cli_runner, fake_engine):
        with _patch_engine(fake_engine(available=False)):
            r = cli_runner.invoke(main, ["split", "Add auth. Improve error handling."])
        assert r.exit_code == 0, r.output
        assert "Level 1" in r.output
        assert "task-1: Add auth" in r.output
        assert "task-2: Improve error handling" in r.output

    def test_json_output(self, cli_runner, fake_engine):
        response = json.dumps(
            [
                {"id": "a", "description": "Model", "estimatedComplexity": "high"},
                {"id": "b", "description": "API", "dependencies": ["a"]},
            ]
        )
        with _patch_engine(fake_engine(response=response)):
            r = cli_runner.invoke(main, ["split", "--json", "plan"])
        assert r.exit_code == 0, r.output
        payload = json.loads(r.output[r.output.index("[\n") :])
        assert [(t["id"], t["level"]) for t in payload] == [("a", 1), ("b", 2)]
        assert payload[0]["suggestedModel"] == "extended"
        assert payload[1]["branch"] == "feature/b"

    def test_output_file(self, cli_runner, fake_engine, tmp_path: Path):
        out = tmp_path / "tasks.json"
        with _patch_engine(fake_engine(available=False)):
            r = cli_runner.invoke(main, ["split", "-o", str(out), "Write docs. Add tests."])
        assert r.exit_code == 0, r.output
        assert "Level 1" in r.output
        assert f"Wrote 2 task(s) to {out}" in r.output
        payload = json.loads(out.read_text(encoding="utf-8"))
        assert [t["id"] for t in payload] == ["task-1", "task-2"]
        assert payload[1]["description"] == "Add tests"

    def test_cycle_exits_nonzero(self, cli_runner, fake_engine):
        response = json.dumps(
            [
                {"id": "x", "description": "X", "dependencies": ["y"]},
                {"id": "y", "description": "Y", "dependencies": ["x"]},
            ]
        )
        with _patch_engine(fake_engine(response=response)):
            r = cli_runner.invoke(main, ["split", "plan"])
        assert r.exit_code == 1
        assert "Circular dependency" in r.output

    def test_plan_file(self, cli_runner, fake_engine, tmp_path: Path):
        plan = tmp_path / "plan.md"
        plan.write_text("Write docs\nAdd tests\n", encoding="utf-8")
        with _patch_engine(fake_engine(available=False)):
            r = cli_runner.invoke(main, ["split", "-f", str(plan)])
        assert r.exit_code == 0, r.output
        assert "task-2: Add tests" in r.output

    def test_plan_text_and_file_conflict(self, cli_runner, tmp_path: Path):
        plan = tmp_path / "plan.md"
        plan.write_text("x", encoding="utf-8")
        r = cli_runner.invoke(main, ["split", "-f", str(plan), "more"])
        assert r.exit_code == 2

    def test_conflicting_engine_flags(self, cli_runner):
        r = cli_runner.invoke(main, ["split", "--claude", "--codex", "plan"])
        assert r.exit_code == 2
        assert "Conflicting engine flags" in r.output


# ── run ────────────────────────────────────────────────────────────────


class TestRun:
    def test_full_run_merges(self, cli_runner, fake_engine, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)
        engine = fake_engine({"out-{name}.txt": "done\n"})
        with _patch_engine(engine):
            r = cli_runner.invoke(
                main,
                ["run", "--yes", "--auto-merge", "--no-notify", "--timeout", "3",
                 "Add auth. Improve error handling."],
            )
        assert r.exit_code == 0, r.output
        assert "Plan complete!" in r.output
        assert (git_repo / "out-task-1.txt").is_file()
        assert (git_repo / "out-task-2.txt").is_file()
        assert len(engine.launched) == 2

    def test_worktree_dir_from_env(self, cli_runner, fake_engine, git_repo: Path, tmp_path, monkeypatch):
        monkeypatch.chdir(git_repo)
        trees = tmp_path / "elsewhere"
        monkeypatch.setenv("THUNDER_WORKTREE_DIR", str(trees))
        engine = fake_engine({"f.txt": "x"})
        with _patch_engine(engine):
            r = cli_runner.invoke(main, ["run", "--yes", "--no-notify", "--timeout", "3", "One thing"])
        assert r.exit_code == 0, r.output
        assert Path(engine.launched[0][1]).is_relative_to(trees.resolve())

    def test_empty_plan_exits_nonzero(self, cli_runner, fake_engine, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)
        with _patch_engine(fake_engine()):
            r = cli_runner.invoke(main, ["run", "--yes", "--no-notify"], input="")
        assert r.exit_code == 1
        assert "the plan is empty" in r.output

    def test_unavailable_engine(self, cli_runner, fake_engine, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)
        with _patch_engine(fake_engine(available=False)):
            r = cli_runner.invoke(main, ["run", "--yes", "--no-notify", "plan"])
        assert r.exit_code == 1
        assert "fake-agent not found" in r.output

    def test_outside_git_repo(self, cli_runner, fake_engine, tmp_path: Path, monkeypatch):
        plain = tmp_path / "plain"
        plain.mkdir()
        monkeypatch.chdir(plain)
        with _patch_engine(fake_engine()):
            r = cli_runner.invoke(main, ["run", "--yes", "--no-notify", "plan"])
        assert r.exit_code == 1
        assert "Unable to determine current branch" in r.output

    def test_failed_task_exits_nonzero(self, cli_runner, fake_engine, git_repo: Path, monkeypatch):
        monkeypatch.chdir(git_repo)
        with _patch_engine(fake_engine(fail_with=RuntimeError("agent crashed"))):
            r = cli_runner.invoke(main, ["run", "--yes", "--no-notify", "One thing"])
        assert r.exit_code == 1
        assert "agent crashed" in r.output

    def test_max_parallel_from_env(self, cli_runner, monkeypatch):
        captured = {}

        def fake_pipeline(cfg, plan, *, approve_all=False):
            captured["cfg"] = cfg

        monkeypatch.setenv("THUNDER_MAX_PARALLEL_TASKS", "5")
        with patch("thunder.cli._run_pipeline", side_effect=fake_pipeline):
            r = cli_runner.invoke(main, ["run", "--codex", "--completion", "quiet-period", "plan"])
        assert r.exit_code == 0, r.output
        cfg = captured["cfg"]
        assert cfg.max_parallel_tasks == 5
        assert cfg.ai_engine == "codex"
        assert cfg.completion_strategy == "quiet-period"
