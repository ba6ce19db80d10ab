"""UTF-8 text I/O helpers for plan files, agent logs and the run log."""

from __future__ import annotations

import re
from io import TextIOWrapper
from pathlib import Path
from typing import Any

PathLike = Path | str


def read_text(path: PathLike, errors: str = "strict") -> str:
    return Path(path).read_text(encoding="utf-8", errors=errors)


def write_text(path: PathLike, text: str) -> None:
    Path(path).write_text(text, encoding="utf-8")


def open_text(path: PathLike, mode: str = "r", **kwargs: Any) -> TextIOWrapper:
    """Open *path* for text I/O (UTF-8, undecodable bytes replaced)."""
    kwargs.setdefault("errors", "replace")
    return open(path, mode, encoding="utf-8", **kwargs)


def slugify(text: str, max_len: int = 50) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_len]
