"""Derived index of the latest log entry and effort per task.

The record files remain the source of truth; the index is a cache that
answers status and "previous task" queries without loading every record.

Index location: <root>/.index
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

import tomli_w

try:
    import tomllib  # Python 3.11+
except ImportError:  # pragma: no cover
    import tomli as tomllib  # Python <3.11

from .errors import CorruptError, IndexInconsistent, StorageError
from .locking import atomic_write
from .models import IndexEntry, Task

logger = logging.getLogger(__name__)

INDEX_FILE_NAME = ".index"


class TaskIndex:
    """In-memory mapping of task id to IndexEntry, persisted as one TOML file."""

    def __init__(self, root: Path, file_name: str = INDEX_FILE_NAME):
        """Initialize an empty index.

        Args:
            root: Storage root directory
            file_name: Name of the index file under the root
        """
        self.root = root
        self.file_name = file_name
        self.path = root / file_name
        self._entries: dict[str, IndexEntry] = {}

    @classmethod
    def load(cls, root: Path, file_name: str = INDEX_FILE_NAME) -> TaskIndex:
        """Read the persisted index; a missing file yields an empty index.

        Raises:
            StorageError: If the file exists but cannot be read
            CorruptError: If the file content has the wrong shape
        """
        index = cls(root, file_name)
        path = index.path
        logger.debug("Loading index: %s", path)

        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.debug("No index file, starting empty")
            return index
        except OSError as e:
            raise StorageError(f"Could not read index: {path}", path) from e
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
            raise CorruptError(f"Could not parse index: {path}: {e}", path) from e

        for task_id, value in data.items():
            try:
                index._entries[task_id] = IndexEntry.from_dict(value)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise CorruptError(
                    f"Invalid index entry for {task_id} in {path}: {e}", path
                ) from e

        return index

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._entries

    def __iter__(self) -> Iterator[tuple[str, IndexEntry]]:
        return iter(self._entries.items())

    def get(self, task_id: str) -> Optional[IndexEntry]:
        return self._entries.get(task_id)

    def active_tasks(self) -> list[str]:
        """Ids of all tasks whose last entry is open, sorted."""
        return sorted(tid for tid, entry in self._entries.items() if entry.is_open)

    def active_task(self) -> Optional[str]:
        """Id of the task currently being worked on, if any."""
        active = self.active_tasks()
        return active[0] if active else None

    def check_consistency(self) -> None:
        """Verify at most one task is active.

        Raises:
            IndexInconsistent: If more than one entry is open
        """
        active = self.active_tasks()
        if len(active) > 1:
            raise IndexInconsistent(active)

    def update(self, task: Task) -> None:
        """Upsert the entry for a task, or drop it when the log is empty.

        Effort is recomputed from the whole log every time.
        """
        if task.log:
            self._entries[task.id] = IndexEntry.from_task(task)
        else:
            self._entries.pop(task.id, None)

    def ordered(self) -> list[tuple[str, IndexEntry]]:
        """Entries by last log entry start, most recent first; ties by id."""
        by_id = sorted(self._entries.items(), key=lambda kv: kv[0])
        return sorted(by_id, key=lambda kv: kv[1].last_log_entry.start, reverse=True)

    def previous_task(self, i: int) -> Optional[tuple[str, IndexEntry]]:
        """The i-th most recently touched task (0 = most recent)."""
        if i < 0:
            return None
        ordered = self.ordered()
        return ordered[i] if i < len(ordered) else None

    def dumps(self) -> str:
        """Serialize the index; tables are written in sorted id order."""
        data = {tid: self._entries[tid].to_dict() for tid in sorted(self._entries)}
        return tomli_w.dumps(data)

    def save(self) -> None:
        """Persist the whole index.

        Raises:
            StorageError: If the file cannot be written
        """
        logger.debug("Saving index: %s (%d tasks)", self.path, len(self._entries))
        with atomic_write(self.path) as f:
            f.write(self.dumps())
