"""Exceptions raised by the record store, index and engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class DitError(Exception):
    """Base exception for dit operations."""
    pass


class InvalidTaskKey(DitError, ValueError):
    """Raised when a task key does not match the identifier grammar."""
    pass


class TaskNotFound(DitError):
    """Raised when a task has no backing record."""

    def __init__(self, task_id: str):
        super().__init__(f"Task does not exist: {task_id}")
        self.task_id = task_id


class TaskAlreadyExists(DitError):
    """Raised when creating a task whose record already exists."""

    def __init__(self, task_id: str):
        super().__init__(f"Task already exists: {task_id}")
        self.task_id = task_id


class InvalidState(DitError):
    """Raised when a clock operation does not fit the task's log tail."""
    pass


class IndexInconsistent(DitError):
    """Raised when more than one task is active in the index."""

    def __init__(self, active: list[str]):
        super().__init__(
            f"Index has {len(active)} active tasks ({', '.join(active)}); rebuild the index"
        )
        self.active = active


class StorageError(DitError):
    """Raised when reading, writing or traversing storage fails."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class CorruptError(DitError):
    """Raised when stored content does not match the record or index shape."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class HookError(DitError):
    """Raised when a configured hook fails and hooks are checked."""
    pass
