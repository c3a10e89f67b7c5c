"""File locking and atomic writes for the storage root."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, TextIO

import portalocker

from .errors import StorageError

logger = logging.getLogger(__name__)


@contextmanager
def file_lock(path: Path, timeout: float = 10.0) -> Generator[None, None, None]:
    """Hold an exclusive advisory lock tied to a file.

    The lock lives in a '.lock' file next to the target, so the target
    itself can be replaced atomically while the lock is held.

    Args:
        path: File to lock
        timeout: Seconds to wait for the lock

    Raises:
        StorageError: If the lock cannot be acquired in time
    """
    lock_path = path.with_name(path.name + ".lock")
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_path.touch(exist_ok=True)
    except OSError as e:
        raise StorageError(f"Could not create lock file: {lock_path}", lock_path) from e

    logger.debug("Acquiring lock: %s", lock_path)
    try:
        with portalocker.Lock(lock_path, timeout=timeout):
            yield
    except portalocker.LockException as e:
        raise StorageError(
            f"Could not lock {lock_path} within {timeout}s; is another dit running?",
            lock_path,
        ) from e


@contextmanager
def atomic_write(path: Path, encoding: str = "utf-8") -> Generator[TextIO, None, None]:
    """Write a text file atomically.

    Content goes to a '.tmp' sibling which is renamed over the target
    once the block completes. Missing parent directories are created.

    Raises:
        StorageError: If the file cannot be written
    """
    tmp_path = path.with_name(path.name + ".tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding=encoding) as f:
            yield f
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise StorageError(f"Could not write to file: {path}", path) from e
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise

