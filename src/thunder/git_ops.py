"""Git operations: worktrees, branches, merges."""

from __future__ import annotations

import subprocess
from pathlib import Path

from thunder.errors import InfrastructureError
from thunder.log import Logger

Completed = subprocess.CompletedProcess[str]


def _git(*args: str, cwd: Path | None = None) -> Completed:
    """Run a git command, capturing output."""
    try:
        return subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            cwd=cwd,
        )
    except FileNotFoundError as e:
        raise InfrastructureError("git executable not found") from e


def current_branch(cwd: Path | None = None) -> str:
    r = _git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
    if r.returncode != 0:
        raise InfrastructureError("Unable to determine current branch", stderr=r.stderr)
    return r.stdout.strip()


def branch_exists(name: str, cwd: Path | None = None) -> bool:
    r = _git("show-ref", "--verify", "--quiet", f"refs/heads/{name}", cwd=cwd)
    return r.returncode == 0


def checkout(branch: str, cwd: Path | None = None) -> Completed:
    return _git("checkout", branch, cwd=cwd)


def merge_no_edit(branch: str, cwd: Path | None = None) -> Completed:
    return _git("merge", "--no-edit", branch, cwd=cwd)


def merge_abort(cwd: Path | None = None) -> None:
    _git("merge", "--abort", cwd=cwd)


def conflicted_files(cwd: Path | None = None) -> list[str]:
    r = _git("diff", "--name-only", "--diff-filter=U", cwd=cwd)
    if r.returncode != 0:
        return []
    return [f.strip() for f in r.stdout.splitlines() if f.strip()]


def has_dirty_worktree(cwd: Path | None = None) -> bool:
    r = _git("status", "--porcelain", cwd=cwd)
    return bool(r.stdout.strip())


def add_and_commit(message: str, cwd: Path | None = None) -> bool:
    _git("add", "-A", cwd=cwd)
    r = _git("commit", "-m", message, cwd=cwd)
    return r.returncode == 0


def delete_branch(name: str, cwd: Path | None = None) -> Completed:
    """``git branch -d``: refuses unmerged branches."""
    return _git("branch", "-d", name, cwd=cwd)


def detach_head(cwd: Path | None = None) -> bool:
    """Leave the branch checked out in *cwd* so it can be deleted elsewhere."""
    r = _git("checkout", "--detach", cwd=cwd)
    return r.returncode == 0


# ── Worktree management ─────────────────────────────────────────────

def worktree_prune(cwd: Path | None = None) -> None:
    _git("worktree", "prune", cwd=cwd)


def worktree_add_new_branch(
    worktree_dir: Path, branch: str, base: str = "", cwd: Path | None = None
) -> Completed:
    """``git worktree add <dir> -b <branch> [<base>]``; fails if *branch* exists."""
    args = ["worktree", "add", str(worktree_dir), "-b", branch]
    if base:
        args.append(base)
    return _git(*args, cwd=cwd)


def worktree_remove(worktree_dir: Path, cwd: Path | None = None) -> bool:
    r = _git("worktree", "remove", "--force", str(worktree_dir), cwd=cwd)
    return r.returncode == 0


# ── Clean git state ──────────────────────────────────────────────────

def ensure_clean_git_state(logger: Logger, cwd: Path | None = None) -> None:
    """Abort any interrupted merge/rebase/cherry-pick."""
    git_dir_r = _git("rev-parse", "--git-dir", cwd=cwd)
    if git_dir_r.returncode != 0:
        return
    git_dir = Path(git_dir_r.stdout.strip())
    if not git_dir.is_absolute():
        git_dir = (cwd or Path.cwd()) / git_dir

    if (git_dir / "MERGE_HEAD").exists():
        logger.warn("Detected interrupted git merge. Aborting…")
        merge_abort(cwd=cwd)
    if (git_dir / "REBASE_HEAD").exists():
        logger.warn("Detected interrupted git rebase. Aborting…")
        _git("rebase", "--abort", cwd=cwd)
    if (git_dir / "CHERRY_PICK_HEAD").exists():
        logger.warn("Detected interrupted git cherry-pick. Aborting…")
        _git("cherry-pick", "--abort", cwd=cwd)
