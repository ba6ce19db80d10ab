"""Plan decomposition: ask an AI engine for tasks, parse, fall back, enrich.

The decomposition service is a black box.  Whatever it returns is first
classified into a :data:`DecompositionResponse` variant and then parsed
with explicit rules per variant.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Protocol

from thunder.config import DEFAULT_COMPLEXITY_MODELS
from thunder.engines.base import EngineBase
from thunder.log import Logger
from thunder.tasks.model import Complexity, Task

HIGH_COMPLEXITY_THRESHOLD = 100

_SEGMENT_SPLIT = re.compile(r"[.!?;\n]")
_WHITESPACE = re.compile(r"\s+")


# ── Response variants ────────────────────────────────────────────


@dataclass(frozen=True)
class StructuredList:
    """Already-structured task-like records (dicts or :class:`Task`)."""

    items: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class RawText:
    """Free text that may embed a JSON array of task records."""

    text: str


@dataclass(frozen=True)
class Unrecognized:
    """Nothing usable came back."""

    reason: str = ""


DecompositionResponse = StructuredList | RawText | Unrecognized


class Decomposer(Protocol):
    def decompose(self, prompt: str) -> DecompositionResponse: ...


# ── Prompt ───────────────────────────────────────────────────────


def build_decomposition_prompt(plan: str) -> str:
    return f"""Analyze this development plan and split it into independent, parallelizable tasks:
"{plan}"

For each task, provide:
1. Clear description
2. Complexity estimate (low/medium/high)
3. Suggested model tier based on complexity (fast/standard/extended)
4. Any dependencies on other tasks (by id)

Return ONLY a JSON array whose elements have this structure:
{{
    "id": "task-1",
    "description": "Task description",
    "estimatedComplexity": "medium",
    "suggestedModel": "standard",
    "branch": "feature/task-1",
    "dependencies": []
}}

Do NOT implement anything and do NOT modify any files."""


# ── Parsing ──────────────────────────────────────────────────────


def parse_response(response: DecompositionResponse, logger: Logger | None = None) -> list[Task]:
    """Turn a decomposition response into (not yet enriched) tasks."""
    match response:
        case StructuredList(items=items):
            tasks: list[Task] = []
            for item in items:
                if isinstance(item, Task):
                    tasks.append(item)
                elif isinstance(item, Mapping):
                    task = _record_to_task(item)
                    if task is not None:
                        tasks.append(task)
            return tasks
        case RawText(text=text):
            records = extract_json_array(text, logger)
            if records is None:
                return []
            return parse_response(StructuredList(records), logger)
        case Unrecognized():
            return []
    return []


def extract_json_array(text: str, logger: Logger | None = None) -> list[Any] | None:
    """Parse the span from the first ``[`` to the last ``]`` of *text*."""
    trimmed = text.strip()
    start = trimmed.find("[")
    end = trimmed.rfind("]")
    if start == -1 or end == -1 or end < start:
        return None
    try:
        parsed = json.loads(trimmed[start : end + 1])
    except json.JSONDecodeError as e:
        if logger:
            logger.warn(f"Failed to parse decomposition response: {e}")
        return None
    if not isinstance(parsed, list):
        return None
    return parsed


def _get(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


def _record_to_task(record: Mapping[str, Any]) -> Task | None:
    description = record.get("description")
    if not isinstance(description, str):
        return None

    raw_deps = record.get("dependencies")
    deps = [str(d) for d in raw_deps] if isinstance(raw_deps, list) else []

    raw_id = record.get("id")
    model = _get(record, "suggestedModel", "suggested_model")
    branch = record.get("branch")

    return Task(
        id=str(raw_id) if raw_id is not None else "",
        description=description,
        estimated_complexity=Complexity.parse(
            _get(record, "estimatedComplexity", "estimated_complexity")
        ),
        suggested_model=model if isinstance(model, str) else "",
        branch=branch if isinstance(branch, str) else "",
        dependencies=frozenset(deps),
    )


# ── Heuristic fallback ───────────────────────────────────────────


def fallback_tasks(plan: str) -> list[Task]:
    """One task per sentence-like segment of *plan*."""
    segments = [s.strip() for s in _SEGMENT_SPLIT.split(plan)]
    segments = [s for s in segments if s]

    if not segments:
        return [Task(id="task-1", description=plan.strip())]

    return [
        Task(
            id=f"task-{i}",
            description=segment,
            estimated_complexity=(
                Complexity.HIGH if len(segment) > HIGH_COMPLEXITY_THRESHOLD else Complexity.MEDIUM
            ),
        )
        for i, segment in enumerate(segments, start=1)
    ]


# ── Enrichment ───────────────────────────────────────────────────


def _normalize(value: str) -> str:
    return _WHITESPACE.sub("-", value.strip())


def enrich_task(
    task: Task,
    index: int,
    *,
    models: Mapping[str, str] = DEFAULT_COMPLEXITY_MODELS,
    default_model: str = "standard",
) -> Task:
    """Fill in id, branch and model defaults.  *index* is 1-based."""
    task_id = _normalize(task.id) or f"task-{index}"
    branch = _normalize(task.branch or f"feature/{task_id}")
    model = task.suggested_model or models.get(task.estimated_complexity.value) or default_model
    return replace(task, id=task_id, branch=branch, suggested_model=model)


def enrich_tasks(
    tasks: list[Task],
    *,
    models: Mapping[str, str] = DEFAULT_COMPLEXITY_MODELS,
    default_model: str = "standard",
    logger: Logger | None = None,
) -> list[Task]:
    enriched: list[Task] = []
    seen: set[str] = set()
    for index, task in enumerate(tasks, start=1):
        task = enrich_task(task, index, models=models, default_model=default_model)
        if task.id in seen:
            unique = _unique_id(task.id, seen)
            if logger:
                logger.warn(f"Duplicate task id {task.id}; renamed to {unique}")
            branch = task.branch if task.branch != f"feature/{task.id}" else f"feature/{unique}"
            task = replace(task, id=unique, branch=branch)
        seen.add(task.id)
        enriched.append(task)
    return enriched


def _unique_id(task_id: str, seen: set[str]) -> str:
    n = 2
    while f"{task_id}-{n}" in seen:
        n += 1
    return f"{task_id}-{n}"


# ── Entry point ──────────────────────────────────────────────────


def split_plan_into_tasks(
    plan: str,
    decomposer: Decomposer,
    logger: Logger,
    *,
    models: Mapping[str, str] = DEFAULT_COMPLEXITY_MODELS,
    default_model: str = "standard",
) -> list[Task]:
    """Decompose *plan* into enriched tasks; ``[]`` for a blank plan."""
    if not plan.strip():
        return []

    try:
        response = decomposer.decompose(build_decomposition_prompt(plan))
    except Exception as e:
        logger.warn(f"Unable to contact decomposition service: {e}")
        response = Unrecognized(str(e))

    tasks = parse_response(response, logger)
    if tasks:
        logger.info(f"Generated {len(tasks)} task(s) from decomposition response.")
    else:
        logger.warn("Falling back to heuristic task split.")
        tasks = fallback_tasks(plan)

    return enrich_tasks(tasks, models=models, default_model=default_model, logger=logger)


class EngineDecomposer:
    """Decomposition service backed by an AI engine CLI."""

    def __init__(
        self,
        engine: EngineBase,
        logger: Logger,
        *,
        cwd: Path | None = None,
        timeout: int | None = 300,
    ) -> None:
        self.engine = engine
        self.logger = logger
        self.cwd = cwd
        self.timeout = timeout

    def decompose(self, prompt: str) -> DecompositionResponse:
        err = self.engine.check_available()
        if err:
            self.logger.warn(f"Decomposition engine unavailable: {err}")
            return Unrecognized(err)

        self.logger.info(f"Splitting plan into tasks with {self.engine.name}…")
        result = self.engine.run_sync(prompt, cwd=self.cwd, timeout=self.timeout)
        self.logger.debug(
            f"Decomposition took {result.duration_ms}ms "
            f"({result.input_tokens} input / {result.output_tokens} output tokens)"
        )
        text = (result.text or "").strip()
        if result.error and "[" not in text:
            self.logger.warn(f"Decomposition engine failed: {result.error}")
            return Unrecognized(result.error)
        if not text:
            return Unrecognized("empty response")
        return RawText(text)
