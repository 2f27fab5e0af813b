"""Project scanning, plan state and plain-text view components for task-driven workflows."""

__version__ = "0.1.0"

__all__ = [
    "chat",
    "git",
    "language",
    "logstream",
    "progressbar",
    "scanner",
    "state",
    "structure",
    "tasklist",
]