"""Engine registry: look up an adapter by name."""

from __future__ import annotations

from thunder.engines.base import EngineBase
from thunder.engines.claude import ClaudeEngine
from thunder.engines.codex import CodexEngine


def get_engine(name: str) -> EngineBase:
    """Return an engine adapter for *name*."""
    match name:
        case "claude":
            return ClaudeEngine()
        case "codex":
            return CodexEngine()
        case _:
            raise ValueError(f"Unknown engine: {name}")


ENGINE_NAMES = ("claude", "codex")
