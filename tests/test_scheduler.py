"""Tests for thunder.scheduler.resolve_dependencies."""

from __future__ import annotations

import pytest

from thunder.errors import CircularDependencyError, PlanningError
from thunder.scheduler import resolve_dependencies


def _ids(levels):
    return [[t.id for t in level] for level in levels]


# ── TestLevels ───────────────────────────────────────────────────────


class TestLevels:
    def test_empty_input(self) -> None:
        assert resolve_dependencies([]) == []

    def test_independent_tasks_share_one_level(self, make_task) -> None:
        tasks = [make_task("a"), make_task("b"), make_task("c")]
        assert _ids(resolve_dependencies(tasks)) == [["a", "b", "c"]]

    def test_chain_and_fan_in(self, make_task) -> None:
        tasks = [
            make_task("A"),
            make_task("B"),
            make_task("C", dependencies=["A", "B"]),
        ]
        assert _ids(resolve_dependencies(tasks)) == [["A", "B"], ["C"]]

    def test_linear_chain(self, make_task) -> None:
        tasks = [
            make_task("c", dependencies=["b"]),
            make_task("b", dependencies=["a"]),
            make_task("a"),
        ]
        assert _ids(resolve_dependencies(tasks)) == [["a"], ["b"], ["c"]]

    def test_level_keeps_input_order(self, make_task) -> None:
        tasks = [
            make_task("z"),
            make_task("y", dependencies=["z"]),
            make_task("x"),
            make_task("w", dependencies=["x"]),
        ]
        assert _ids(resolve_dependencies(tasks)) == [["z", "x"], ["y", "w"]]

    def test_levels_are_a_partition(self, make_task) -> None:
        tasks = [
            make_task("1"),
            make_task("2", dependencies=["1"]),
            make_task("3", dependencies=["1"]),
            make_task("4", dependencies=["2", "3"]),
            make_task("5"),
        ]
        levels = resolve_dependencies(tasks)
        flat = [t.id for level in levels for t in level]
        assert sorted(flat) == sorted(t.id for t in tasks)
        assert len(flat) == len(set(flat))

    def test_dependencies_land_in_earlier_levels(self, make_task) -> None:
        tasks = [
            make_task("1"),
            make_task("2", dependencies=["1"]),
            make_task("3", dependencies=["2", "1"]),
            make_task("4", dependencies=["3"]),
        ]
        levels = resolve_dependencies(tasks)
        level_of = {t.id: n for n, level in enumerate(levels) for t in level}
        for t in tasks:
            for dep in t.dependencies:
                assert level_of[dep] < level_of[t.id]

    def test_each_level_is_maximal(self, make_task) -> None:
        tasks = [make_task("a"), make_task("b", dependencies=["a"]), make_task("c")]
        levels = resolve_dependencies(tasks)
        # c has no deps so it must not be pushed to a later level
        assert _ids(levels)[0] == ["a", "c"]


# ── TestBlocked ──────────────────────────────────────────────────────


class TestBlocked:
    def test_cycle_raises(self, make_task) -> None:
        tasks = [make_task("X", dependencies=["Y"]), make_task("Y", dependencies=["X"])]
        with pytest.raises(CircularDependencyError, match="Circular dependency"):
            resolve_dependencies(tasks)

    def test_self_dependency_raises(self, make_task) -> None:
        with pytest.raises(CircularDependencyError):
            resolve_dependencies([make_task("a", dependencies=["a"])])

    def test_unknown_dependency_raises(self, make_task) -> None:
        tasks = [make_task("a"), make_task("b", dependencies=["ghost"])]
        with pytest.raises(CircularDependencyError) as exc_info:
            resolve_dependencies(tasks)
        assert exc_info.value.blocked == {"b": ["ghost"]}

    def test_blocked_lists_only_unresolved(self, make_task) -> None:
        tasks = [
            make_task("a"),
            make_task("b", dependencies=["a", "c"]),
            make_task("c", dependencies=["b"]),
        ]
        with pytest.raises(CircularDependencyError) as exc_info:
            resolve_dependencies(tasks)
        assert exc_info.value.blocked == {"b": ["c"], "c": ["b"]}

    def test_is_a_planning_error(self, make_task) -> None:
        with pytest.raises(PlanningError):
            resolve_dependencies([make_task("a", dependencies=["b"]), make_task("b", dependencies=["a"])])
