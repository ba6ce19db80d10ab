"""Thunder: plan-driven parallel AI task execution over git worktrees."""

__version__ = "0.3.0"
