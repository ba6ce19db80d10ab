"""Text classifiers for agent CLI output and git failures."""

from __future__ import annotations

# Checked in order; the first matching label wins.
ENGINE_ERROR_LABELS: dict[str, tuple[str, ...]] = {
    "Blocked by policy": (
        "blocked by policy",
        "read-only sandbox",
        "approval_policy",
    ),
    "Rate limit exceeded": (
        "rate limit",
        "rate_limit",
        "usage limit",
        "you've hit your limit",
        "quota",
        "429",
        "too many requests",
    ),
}

MERGE_CONFLICT_PATTERNS: tuple[str, ...] = (
    "automatic merge failed",
    "conflict (content)",
    "conflict in ",
    "merge conflict",
)


def classify_engine_error(text: str) -> str:
    """Canonical label for a known engine failure, or ``""``."""
    lower = (text or "").lower()
    for label, patterns in ENGINE_ERROR_LABELS.items():
        if any(p in lower for p in patterns):
            return label
    return ""


def looks_like_merge_conflict(text: str) -> bool:
    lower = (text or "").lower()
    return any(p in lower for p in MERGE_CONFLICT_PATTERNS)
