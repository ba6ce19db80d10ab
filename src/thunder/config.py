"""Configuration defaults, env vars, and runtime options for thunder."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_WORKTREE_DIRECTORY = "../worktrees"

# Model tiers per complexity; engines translate tiers into concrete model ids.
DEFAULT_COMPLEXITY_MODELS: dict[str, str] = {
    "low": "fast",
    "medium": "standard",
    "high": "extended",
}

COMPLETION_STRATEGIES = ("first-event", "quiet-period")


@dataclass
class Config:
    """Runtime configuration for one plan run."""

    # Execution
    max_parallel_tasks: int = 3
    auto_merge: bool = False

    # Git
    worktree_directory: str = ""
    trunk_branch: str = ""

    # AI engine
    ai_engine: str = "claude"
    default_model: str = "standard"
    complexity_models: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_COMPLEXITY_MODELS)
    )
    decompose_timeout: int = 300

    # Completion detection
    completion_strategy: str = "first-event"
    completion_timeout: float = 30.0
    quiet_period: float = 5.0
    poll_interval: float = 0.5

    # Misc
    open_command: str = ""
    notify: bool = True
    verbose: bool = False
    log_file: str = ""

    def __post_init__(self) -> None:
        self.max_parallel_tasks = max(1, int(self.max_parallel_tasks))
        if not self.worktree_directory:
            self.worktree_directory = (
                os.environ.get("THUNDER_WORKTREE_DIR") or DEFAULT_WORKTREE_DIRECTORY
            )
        if self.completion_strategy not in COMPLETION_STRATEGIES:
            raise ValueError(
                f"Unknown completion strategy: {self.completion_strategy} "
                f"(expected one of {', '.join(COMPLETION_STRATEGIES)})"
            )

    def resolve_worktree_root(self, repo_root: Path) -> Path:
        """Absolute directory under which task working copies are created."""
        candidate = Path(self.worktree_directory).expanduser()
        if candidate.is_absolute():
            return candidate
        return (repo_root / candidate).resolve()


def resolve_repo_root(cwd: Path | None = None) -> Path:
    """Return the git repository root, falling back to cwd."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
            cwd=cwd,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return cwd or Path.cwd()
