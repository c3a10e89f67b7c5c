"""Task record store, clock state machine and queries.

`Repository` is the capability interface consumed by the engine;
`FileRepository` keeps one TOML file per task under a storage root and a
derived `TaskIndex` next to them.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

import tomli_w

try:
    import tomllib  # Python 3.11+
except ImportError:  # pragma: no cover
    import tomli as tomllib  # Python <3.11

from .errors import (
    CorruptError,
    InvalidState,
    InvalidTaskKey,
    StorageError,
    TaskNotFound,
)
from .index import INDEX_FILE_NAME, TaskIndex
from .locking import atomic_write
from .models import (
    ListItem,
    LogEntry,
    StatusItem,
    Task,
    format_timestamp,
    validate_task_key,
)

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".toml"


class Repository(ABC):
    """Operations every storage backend provides."""

    @abstractmethod
    def resolve_key(self, key: str) -> str:
        """Normalize a user-supplied key to a canonical task id."""

    @abstractmethod
    def exists(self, task_id: str) -> bool:
        """True if a record exists for the id."""

    @abstractmethod
    def load(self, task_id: str) -> Task:
        """Read a task; its log is sorted by start."""

    @abstractmethod
    def save(self, task: Task) -> None:
        """Persist a task and update the index accordingly."""

    @abstractmethod
    def list_ids(self) -> list[str]:
        """Ids of every stored task."""

    @abstractmethod
    def reload_index(self) -> None:
        """Re-read the index from storage, dropping cached state."""

    @abstractmethod
    def clock_in(self, task_id: str, at: datetime) -> Task:
        """Open a new log entry on a task."""

    @abstractmethod
    def clock_out(self, task_id: str, at: datetime) -> Task:
        """Close the open log entry of a task."""

    @abstractmethod
    def un_clock_in(self, task_id: str) -> Task:
        """Drop the open log entry of a task."""

    @abstractmethod
    def un_clock_out(self, task_id: str) -> Task:
        """Reopen the closed last log entry of a task."""

    @abstractmethod
    def is_clocked_in(self) -> Optional[str]:
        """Id of the active task, if any."""

    @abstractmethod
    def previous_task(self, i: int) -> Optional[tuple[str, LogEntry]]:
        """The i-th most recently touched task and its last entry."""

    @abstractmethod
    def get_status(self, limit: int = 0, at: Optional[datetime] = None) -> list[StatusItem]:
        """Most recently touched tasks, newest first."""

    @abstractmethod
    def get_listing(
        self,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> list[ListItem]:
        """Log entries starting within [after, before], newest first."""

    @abstractmethod
    def rebuild_index(self) -> dict:
        """Recompute the index from every stored record."""


class FileRepository(Repository):
    """Repository storing each task as '<root>/<id>.toml'."""

    def __init__(
        self,
        root: Path,
        index_file: str = INDEX_FILE_NAME,
        verify: bool = True,
        load_index: bool = True,
    ):
        """Open the storage root and load its index.

        Args:
            root: Storage root directory (must already exist)
            index_file: Name of the index file under the root
            verify: Check the single-active invariant of the loaded index
            load_index: Read the persisted index; when False start empty,
                as rebuild does, without touching a possibly corrupt file

        Raises:
            IndexInconsistent: If verify is set and several tasks are active
            CorruptError: If the index file cannot be parsed
        """
        self.root = root
        self.index_file = index_file
        self.verify = verify
        if load_index:
            self.reload_index()
        else:
            self.index = TaskIndex(root, index_file)

    def reload_index(self) -> None:
        """Replace the in-memory index with the persisted one.

        The current index is kept if the persisted one fails to load or
        fails the consistency check.
        """
        index = TaskIndex.load(self.root, self.index_file)
        if self.verify:
            index.check_consistency()
        self.index = index

    def _path(self, task_id: str) -> Path:
        parts = task_id.strip("/").split("/")
        return self.root.joinpath(*parts[:-1], parts[-1] + RECORD_SUFFIX)

    # ========== Record Store ==========

    def resolve_key(self, key: str) -> str:
        validate_task_key(key)
        return key[1:] if key.startswith("/") else key

    def exists(self, task_id: str) -> bool:
        return self._path(task_id).is_file()

    def load(self, task_id: str) -> Task:
        """Read and parse a task record.

        Raises:
            TaskNotFound: If there is no record for the id
            StorageError: If the record cannot be read
            CorruptError: If the record content has the wrong shape
        """
        path = self._path(task_id)
        logger.debug("Loading task: %s", task_id)

        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise TaskNotFound(task_id) from e
        except UnicodeDecodeError as e:
            raise CorruptError(f"Could not decode task {task_id}: {path}", path) from e
        except OSError as e:
            raise StorageError(f"Could not load task {task_id}: {path}", path) from e

        try:
            data = tomllib.loads(text)
            task = self._task_from_dict(task_id, data)
        except tomllib.TOMLDecodeError as e:
            raise CorruptError(f"Could not parse task {task_id}: {path}: {e}", path) from e
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CorruptError(f"Invalid record for task {task_id}: {path}: {e}", path) from e

        return task

    @staticmethod
    def _task_from_dict(task_id: str, data: dict) -> Task:
        title = data["title"]
        if not isinstance(title, str):
            raise TypeError(f"title must be a string, not {type(title).__name__}")

        task = Task(
            id=task_id,
            title=title,
            log=[LogEntry.from_dict(item) for item in data.get("log", [])],
        )
        # Explicit --at timestamps may have been appended out of order.
        task.sort_log()

        if any(e.is_open for e in task.log[:-1]):
            raise ValueError("only the last log entry may be open")
        return task

    def save(self, task: Task) -> None:
        """Write the record, then update and persist the index.

        Raises:
            StorageError: If the record or the index cannot be written
        """
        path = self._path(task.id)
        logger.debug("Saving task: %s", task.id)

        with atomic_write(path) as f:
            f.write(tomli_w.dumps(task.to_dict()))

        self.index.update(task)
        self.index.save()

    def list_ids(self) -> list[str]:
        """Walk the root for record files.

        Dot-files, hidden directories and the index file are ignored;
        other files whose derived id does not match the identifier grammar
        are skipped.

        Raises:
            StorageError: If a directory cannot be traversed
        """

        def on_error(e: OSError) -> None:
            raise StorageError(f"Could not traverse directory: {e.filename}", Path(e.filename or self.root)) from e

        ids = []
        for dirpath, dirnames, filenames in os.walk(self.root, onerror=on_error):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in filenames:
                if name.startswith(".") or not name.endswith(RECORD_SUFFIX):
                    continue
                path = Path(dirpath) / name
                if path == self.index.path:
                    continue
                rel = path.relative_to(self.root)
                task_id = rel.as_posix()[: -len(RECORD_SUFFIX)]
                try:
                    validate_task_key(task_id)
                except InvalidTaskKey:
                    logger.warning("Skipping file with invalid task key: %s", rel)
                    continue
                ids.append(task_id)

        return sorted(ids)

    # ========== Clock State Machine ==========

    def clock_in(self, task_id: str, at: datetime) -> Task:
        """Start a new open entry at `at`.

        Raises:
            TaskNotFound: If the task does not exist
            InvalidState: If any task is active, or `at` precedes the last entry
        """
        task = self.load(task_id)

        active = self.index.active_task()
        if active is not None:
            raise InvalidState(f"Already working on a task: {active}")

        last = task.last_entry
        if last is not None:
            if last.is_open:
                raise InvalidState(f"Already working on a task: {task_id}")
            if at < last.start:
                raise InvalidState(
                    f"Cannot clock in to {task_id} at {format_timestamp(at)}: "
                    f"before its last entry at {format_timestamp(last.start)}"
                )

        task.log.append(LogEntry(start=at))
        self.save(task)
        return task

    def clock_out(self, task_id: str, at: datetime) -> Task:
        """Close the open last entry at `at`.

        Raises:
            InvalidState: If the log is empty, the last entry is closed,
                or `at` precedes the entry start
        """
        task = self.load(task_id)
        last = task.last_entry
        if last is None:
            raise InvalidState(f"Task has no log entries: {task_id}")
        if last.is_closed:
            raise InvalidState(f"Not working on task: {task_id}")
        if at < last.start:
            raise InvalidState(
                f"Cannot clock out of {task_id} at {format_timestamp(at)}: "
                f"before its start at {format_timestamp(last.start)}"
            )

        last.end = at
        self.save(task)
        return task

    def un_clock_in(self, task_id: str) -> Task:
        """Remove the open last entry entirely.

        Raises:
            InvalidState: If the log is empty or the last entry is closed
        """
        task = self.load(task_id)
        last = task.last_entry
        if last is None or last.is_closed:
            raise InvalidState(f"Not working on task: {task_id}")

        task.log.pop()
        self.save(task)
        return task

    def un_clock_out(self, task_id: str) -> Task:
        """Reopen the closed last entry.

        Raises:
            InvalidState: If the log is empty, the last entry is open, or
                another task is active
        """
        task = self.load(task_id)
        last = task.last_entry
        if last is None:
            raise InvalidState(f"Task has no log entries: {task_id}")
        if last.is_open:
            raise InvalidState(f"Already working on: {task_id}")

        active = self.index.active_task()
        if active is not None and active != task_id:
            raise InvalidState(f"Already working on a task: {active}")

        last.end = None
        self.save(task)
        return task

    def is_clocked_in(self) -> Optional[str]:
        return self.index.active_task()

    def previous_task(self, i: int) -> Optional[tuple[str, LogEntry]]:
        found = self.index.previous_task(i)
        if found is None:
            return None
        task_id, entry = found
        return task_id, entry.last_log_entry.copy()

    # ========== Queries ==========

    def get_status(self, limit: int = 0, at: Optional[datetime] = None) -> list[StatusItem]:
        """Status rows from the index only.

        Args:
            limit: Maximum number of rows (0 = unlimited)
            at: Reference time for open entries (default now)
        """
        ordered = self.index.ordered()
        if limit > 0:
            ordered = ordered[:limit]

        return [
            StatusItem(
                id=task_id,
                title=entry.title,
                log_entry=entry.last_log_entry.copy(),
                total_effort=entry.total_effort(at),
            )
            for task_id, entry in ordered
        ]

    def get_listing(
        self,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> list[ListItem]:
        """Rows for every log entry with after <= start <= before.

        The index prunes tasks whose latest entry predates `after`; the
        remaining records are loaded in full.
        """
        rows = []
        for task_id, entry in self.index.ordered():
            if after is not None and entry.last_log_entry.start < after:
                continue

            task = self.load(task_id)
            for log_entry in task.log:
                if after is not None and log_entry.start < after:
                    continue
                if before is not None and log_entry.start > before:
                    continue
                rows.append(ListItem(id=task.id, title=task.title, log_entry=log_entry))

        rows.sort(key=lambda r: r.id)
        rows.sort(key=lambda r: r.start, reverse=True)
        return rows

    # ========== Rebuild ==========

    def rebuild_index(self) -> dict:
        """Replace the index with one derived from every record.

        Returns:
            Dictionary with rebuild statistics

        Raises:
            StorageError, CorruptError: If a record cannot be read
            IndexInconsistent: If the records leave more than one task active
                (the rebuilt index is still saved)
        """
        logger.debug("Rebuilding index under %s", self.root)
        index = TaskIndex(self.root, self.index_file)

        task_ids = self.list_ids()
        for task_id in task_ids:
            index.update(self.load(task_id))

        # The current index stays in place until every record has loaded.
        index.save()
        self.index = index
        logger.debug("Indexed %d of %d tasks", len(self.index), len(task_ids))

        self.index.check_consistency()

        return {
            "tasks_found": len(task_ids),
            "tasks_indexed": len(self.index),
            "active_task": self.index.active_task(),
        }
