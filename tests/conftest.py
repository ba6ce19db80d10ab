"""Shared fixtures for thunder tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- The git repo lives in tmp_path/"repo"; worktrees go to its sibling tmp_path/"worktrees".
"""

from __future__ import annotations

import asyncio
import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest
from rich.console import Console

from thunder.engines.base import EngineBase, EngineResult
from thunder.io_utils import write_text
from thunder.log import Logger
from thunder.tasks.model import Complexity, Task


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register opt-in switch for tests that launch a real agent CLI."""
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run end-to-end tests marked with 'e2e'.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip e2e tests unless explicitly enabled."""
    if config.getoption("--run-e2e"):
        return

    skip_e2e = pytest.mark.skip(
        reason="E2E tests are skipped by default. Use --run-e2e to include them.",
    )
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


def init_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init"], cwd=path, capture_output=True, check=True)
    subprocess.run(["git", "config", "user.name", "Test"], cwd=path, capture_output=True)
    subprocess.run(["git", "config", "user.email", "test@test"], cwd=path, capture_output=True)
    write_text(path / "README.md", "# Test")
    subprocess.run(["git", "add", "README.md"], cwd=path, capture_output=True)
    subprocess.run(["git", "commit", "-m", "Initial"], cwd=path, capture_output=True)
    return path


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repo for testing."""
    return init_repo(tmp_path / "repo")


@pytest.fixture
def worktree_root(tmp_path: Path) -> Path:
    return tmp_path / "worktrees"


def _make_task(
    id: str,
    description: str = "",
    complexity: Complexity = Complexity.MEDIUM,
    dependencies: list[str] | None = None,
    model: str = "standard",
    branch: str = "",
) -> Task:
    return Task(
        id=id,
        description=description or f"Task {id}",
        estimated_complexity=complexity,
        suggested_model=model,
        branch=branch or f"feature/{id}",
        dependencies=frozenset(dependencies or []),
    )


@pytest.fixture
def make_task():
    """Factory fixture that creates enriched Task instances."""
    return _make_task


@pytest.fixture
def logger() -> Logger:
    """Logger writing to in-memory consoles; read them with ``export_text()``."""
    return Logger(
        console=Console(record=True, width=200, soft_wrap=True, force_terminal=False),
        err_console=Console(record=True, width=200, soft_wrap=True, force_terminal=False),
    )


class FakeEngine(EngineBase):
    """Engine double: ``launch`` writes files into the worktree instead of running a CLI.

    *writes* maps a relative path to its content (``{name}`` expands to the
    worktree directory name); *fail_with* makes
    ``launch`` raise.  Every launch is recorded in ``launched``.
    """

    name = "fake"

    def __init__(
        self,
        writes: dict[str, str] | None = None,
        *,
        fail_with: Exception | None = None,
        available: bool = True,
        response: str = "",
    ) -> None:
        self.writes = writes or {}
        self.fail_with = fail_with
        self.available = available
        self.response = response
        self.launched: list[tuple[str, Path, str]] = []

    def build_cmd(self, prompt: str, *, model: str = "") -> list[str]:
        return ["fake-agent", prompt]

    def parse_output(self, raw: str) -> EngineResult:
        return EngineResult(text=raw)

    def check_available(self) -> str | None:
        return None if self.available else "fake-agent not found in PATH"

    def run_sync(self, prompt, *, cwd=None, timeout=None, model=""):
        return EngineResult(text=self.response)

    async def launch(self, prompt, *, cwd, model="", stdout_file=None, stderr_file=None):
        self.launched.append((prompt, cwd, model))
        if self.fail_with is not None:
            raise self.fail_with
        await asyncio.sleep(0)
        for rel, content in self.writes.items():
            target = Path(cwd) / rel.replace("{name}", Path(cwd).name)
            target.parent.mkdir(parents=True, exist_ok=True)
            write_text(target, content)
        return SimpleNamespace(pid=4242)


@pytest.fixture
def fake_engine():
    """Factory fixture for :class:`FakeEngine`."""
    return FakeEngine
