"""Isolation manager: one git worktree per task, merged back on acceptance.

This is the only component that mutates version-control state.  The
coordinator calls :meth:`WorktreeManager.merge_worktree` strictly one task
at a time, which serializes every change to the main checkout.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path

from thunder import git_ops
from thunder.engine_errors import looks_like_merge_conflict
from thunder.errors import InfrastructureError
from thunder.log import Logger
from thunder.tasks.model import Task

_WHITESPACE = re.compile(r"\s+")


class WorktreeManager:
    """Creates, merges and removes per-task worktrees of *repo_root*."""

    def __init__(
        self,
        repo_root: Path,
        worktree_root: Path,
        logger: Logger,
        *,
        trunk_branch: str = "",
    ) -> None:
        self.repo_root = repo_root
        self.worktree_root = worktree_root
        self.logger = logger
        self._worktrees: dict[str, Path] = {}  # branch -> worktree dir
        self.trunk_branch = trunk_branch or self.get_current_branch()

    # ── queries ──────────────────────────────────────────────────

    def get_current_branch(self) -> str:
        try:
            return git_ops.current_branch(cwd=self.repo_root)
        except InfrastructureError as e:
            self.logger.error(f"Unable to determine current branch: {e}")
            raise

    def worktree_path(self, task: Task) -> Path:
        return (self.worktree_root / _WHITESPACE.sub("-", task.branch)).resolve()

    def registered(self) -> dict[str, Path]:
        """Worktrees created by this manager and not merged yet."""
        return dict(self._worktrees)

    # ── create ───────────────────────────────────────────────────

    def create_worktree(self, task: Task) -> Path:
        """Create a worktree for *task* on a new branch off the trunk.

        Calling this twice for the same branch raises
        :class:`InfrastructureError` ("branch already exists").
        """
        path = self.worktree_path(task)
        try:
            self.worktree_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"Failed to create worktree directory {self.worktree_root}: {e}")
            raise InfrastructureError(f"Cannot create {self.worktree_root}: {e}") from e

        if git_ops.branch_exists(task.branch, cwd=self.repo_root):
            err = InfrastructureError(
                f"Failed to create worktree for {task.branch}: branch already exists"
            )
            self.logger.error(str(err))
            raise err

        r = git_ops.worktree_add_new_branch(
            path, task.branch, base=self.trunk_branch, cwd=self.repo_root
        )
        if r.returncode != 0:
            err = InfrastructureError(f"Failed to create worktree for {task.branch}", stderr=r.stderr)
            self.logger.error(str(err))
            raise err

        self._worktrees[task.branch] = path
        self.logger.info(f"Created worktree for {task.description} at {path}.")
        return path

    # ── merge ────────────────────────────────────────────────────

    def merge_worktree(self, task: Task) -> None:
        """Merge *task*'s branch into the trunk and remove its worktree.

        Git failures (conflicts, branch deletion) raise
        :class:`InfrastructureError`.  Failing to delete the directory
        afterwards is only a warning.
        """
        path = self._worktrees.get(task.branch) or self.worktree_path(task)
        try:
            self._commit_pending(task, path)
            self._checkout_trunk()
            self._merge(task)
            self._detach(path)
            r = git_ops.delete_branch(task.branch, cwd=self.repo_root)
            if r.returncode != 0:
                raise InfrastructureError(f"Failed to delete branch {task.branch}", stderr=r.stderr)
        except InfrastructureError as e:
            self.logger.error(f"Failed to merge worktree {task.branch}: {e}")
            raise

        self._worktrees.pop(task.branch, None)
        self._safe_remove_directory(path)
        self.logger.success(f"Merged and cleaned up worktree for {task.branch}.")

    def _commit_pending(self, task: Task, path: Path) -> None:
        if not path.is_dir() or not git_ops.has_dirty_worktree(cwd=path):
            return
        self.logger.debug(f"Committing uncommitted changes in {path}")
        if not git_ops.add_and_commit(f"{task.id}: {task.description}", cwd=path):
            raise InfrastructureError(f"Failed to commit pending changes in {path}")

    def _checkout_trunk(self) -> None:
        r = git_ops.checkout(self.trunk_branch, cwd=self.repo_root)
        if r.returncode != 0:
            raise InfrastructureError(f"Failed to checkout {self.trunk_branch}", stderr=r.stderr)

    def _merge(self, task: Task) -> None:
        r = git_ops.merge_no_edit(task.branch, cwd=self.repo_root)
        if r.returncode == 0:
            return
        output = f"{r.stdout}\n{r.stderr}"
        if looks_like_merge_conflict(output):
            files = git_ops.conflicted_files(cwd=self.repo_root)
            git_ops.merge_abort(cwd=self.repo_root)
            raise InfrastructureError(
                f"Merge conflict merging {task.branch} into {self.trunk_branch}"
                + (f" ({', '.join(files)})" if files else "")
            )
        git_ops.merge_abort(cwd=self.repo_root)
        raise InfrastructureError(f"Failed to merge {task.branch}", stderr=r.stderr or r.stdout)

    def _detach(self, path: Path) -> None:
        """Unregister the worktree so its branch can be deleted.

        When the directory cannot be removed it stays behind (a warning)
        with a detached HEAD, which releases the branch.
        """
        if git_ops.worktree_remove(path, cwd=self.repo_root):
            return
        self.logger.warn(f"git worktree remove failed for {path}; pruning instead")
        self._safe_remove_directory(path)
        if path.exists():
            if not git_ops.detach_head(cwd=path):
                raise InfrastructureError(f"Failed to release branch checked out in {path}")
            self.logger.warn(f"Left worktree directory {path} in place with a detached HEAD")
        git_ops.worktree_prune(cwd=self.repo_root)

    def _safe_remove_directory(self, path: Path) -> None:
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            self.logger.warn(f"Failed to remove worktree directory {path}: {e}")
