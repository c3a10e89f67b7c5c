"""Core engine - composed clock operations over a task repository."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator, Optional

from .config import DitConfig
from .errors import HookError, InvalidState, TaskAlreadyExists, TaskNotFound
from .locking import file_lock
from .models import DayGroup, ListItem, StatusItem, Task, group_by_day, now
from .repository import FileRepository, Repository

logger = logging.getLogger(__name__)


class DitEngine:
    """Engine running dit commands against one storage root.

    Every mutating command holds the storage lock for its whole duration.
    The private helpers assume the lock is already held.
    """

    def __init__(self, config: DitConfig, repository: Optional[Repository] = None):
        self.config = config
        self._ensure_directories()
        self._repo: Optional[Repository] = repository

    @property
    def repo(self) -> Repository:
        """Lazily open the repository; verifies the index on first use."""
        if self._repo is None:
            self._repo = FileRepository(self.config.root, self.config.index_file)
        return self._repo

    def _ensure_directories(self) -> None:
        self.config.root.mkdir(parents=True, exist_ok=True)

    def _refresh(self) -> None:
        """Pick up index changes made by other processes."""
        if self._repo is None:
            self._repo = FileRepository(self.config.root, self.config.index_file)
        else:
            self._repo.reload_index()

    @contextmanager
    def _locked(self, refresh: bool = True) -> Generator[None, None, None]:
        """Hold the storage lock; the index is re-read once it is held."""
        with file_lock(self.config.get_index_path(), timeout=self.config.lock_timeout):
            if refresh:
                self._refresh()
            yield

    def _run_hook(self, name: str, *args: Any) -> Any:
        """Call a configured hook.

        Failures are logged and ignored unless check_hooks is set.
        """
        hook = self.config.get_hook(name)
        if hook is None:
            return None

        logger.debug("Running hook: %s", name)
        try:
            return hook(*args)
        except Exception as e:
            if self.config.check_hooks:
                raise HookError(f"Hook {name} failed: {e}") from e
            logger.warning("Hook %s failed: %s", name, e)
            return None

    # ========== Task Creation ==========

    def new_task(self, key: str, title: Optional[str] = None, fetch: bool = False) -> Task:
        """Create a task with an empty log.

        Args:
            key: Task key, e.g. 'foo/bar'
            title: Task title
            fetch: Ask the fetch_title hook for the title when none is given

        Raises:
            InvalidTaskKey: If the key is malformed
            TaskAlreadyExists: If the task exists
            ValueError: If no title is available
        """
        task_id = self.repo.resolve_key(key)
        with self._locked():
            return self._new(task_id, title, fetch)

    def _new(self, task_id: str, title: Optional[str], fetch: bool) -> Task:
        if self.repo.exists(task_id):
            raise TaskAlreadyExists(task_id)

        if title is None and fetch:
            if self.config.get_hook("fetch_title") is None:
                raise ValueError("No fetch_title hook configured")
            title = self._run_hook("fetch_title", task_id)

        if title is None:
            raise ValueError(f"No title given for task: {task_id}")

        task = Task(id=task_id, title=title)
        self.repo.save(task)
        logger.info("Created: %s", task_id)

        self._run_hook("post_new", task)
        return task

    # ========== Clock Operations ==========

    def work_on(
        self,
        key: str,
        at: Optional[datetime] = None,
        new: bool = False,
        title: Optional[str] = None,
        fetch: bool = False,
    ) -> Task:
        """Start clocking on a task, optionally creating it first.

        Raises:
            TaskNotFound: If the task does not exist
            InvalidState: If a task is already active
        """
        task_id = self.repo.resolve_key(key)
        at = at or now()

        with self._locked():
            if new:
                self._new(task_id, title, fetch)
            return self._work_on(task_id, at)

    def _work_on(self, task_id: str, at: datetime) -> Task:
        if not self.repo.exists(task_id):
            raise TaskNotFound(task_id)

        active = self.repo.is_clocked_in()
        if active is not None:
            raise InvalidState(f"Already working on a task: {active}")

        task = self.repo.clock_in(task_id, at)
        logger.info("Working on: %s", task_id)

        self._run_hook("post_clock_in", task_id, at)
        return task

    def halt(self, at: Optional[datetime] = None) -> Task:
        """Stop clocking on the active task.

        Raises:
            InvalidState: If no task is active
        """
        at = at or now()
        with self._locked():
            return self._halt(at)

    def _halt(self, at: datetime) -> Task:
        active = self.repo.is_clocked_in()
        if active is None:
            raise InvalidState("Not working on any task")

        task = self.repo.clock_out(active, at)
        logger.info("Halted: %s", active)

        self._run_hook("post_clock_out", active, at)
        return task

    def append(self) -> Task:
        """Undo the last halt: reopen the most recently touched task.

        Raises:
            InvalidState: If there is no previous task or it is still active
        """
        with self._locked():
            previous = self.repo.previous_task(0)
            if previous is None:
                raise InvalidState("No previous task to append to; rebuild index?")

            task_id, entry = previous
            if entry.is_open:
                raise InvalidState(f"Already working on: {task_id}")

            task = self.repo.un_clock_out(task_id)
            logger.info("Appending to: %s", task_id)

            self._run_hook("post_un_clock_out", task_id)
            return task

    def cancel(self) -> Task:
        """Undo the last clock-in: drop the open entry of the active task.

        Raises:
            InvalidState: If no task is active
        """
        with self._locked():
            active = self.repo.is_clocked_in()
            if active is None:
                raise InvalidState("Not working on any task")

            task = self.repo.un_clock_in(active)
            logger.info("Canceled: %s", active)

            self._run_hook("post_un_clock_in", active)
            return task

    def work_on_previous(self, index: int, at: Optional[datetime] = None) -> Task:
        """Clock in to the index-th most recently touched task (0 = latest).

        Raises:
            InvalidState: If there is no such task or it is already active
        """
        at = at or now()
        with self._locked():
            return self._work_on_previous(index, at)

    def _work_on_previous(self, index: int, at: datetime) -> Task:
        previous = self.repo.previous_task(index)
        if previous is None:
            raise InvalidState(f"No previous task {index} to work on; rebuild index?")

        task_id, entry = previous
        if entry.is_open:
            raise InvalidState(f"Already working on a task: {task_id}")

        return self._work_on(task_id, at)

    def resume(self, at: Optional[datetime] = None) -> Task:
        """Clock in again to the most recently touched task."""
        return self.work_on_previous(0, at)

    def switch_to(
        self,
        key: str,
        at: Optional[datetime] = None,
        new: bool = False,
        title: Optional[str] = None,
        fetch: bool = False,
    ) -> Task:
        """Halt the active task and start on another at the same instant.

        The target is checked (or created) before anything is halted.

        Raises:
            TaskNotFound: If the target does not exist
            InvalidState: If no task is active
        """
        task_id = self.repo.resolve_key(key)
        at = at or now()

        with self._locked():
            if new:
                self._new(task_id, title, fetch)
            elif not self.repo.exists(task_id):
                raise TaskNotFound(task_id)

            self._halt(at)
            return self._work_on(task_id, at)

    def switch_back(self, at: Optional[datetime] = None) -> Task:
        """Halt the active task and resume the one worked on before it.

        Raises:
            InvalidState: If no task is active or there is no earlier task
        """
        at = at or now()

        with self._locked():
            if self.repo.previous_task(1) is None:
                raise InvalidState("No previous task 1 to work on; rebuild index?")

            self._halt(at)
            return self._work_on_previous(1, at)

    # ========== Queries ==========

    def status(
        self,
        limit: Optional[int] = None,
        rebuild: bool = False,
        at: Optional[datetime] = None,
    ) -> list[StatusItem]:
        """Most recently touched tasks with their total effort.

        Args:
            limit: Maximum rows (0 = unlimited, None = configured default)
            rebuild: Rebuild the index first
            at: Reference time for the active task's effort
        """
        if rebuild:
            self.rebuild_index()
        self._refresh()
        if limit is None:
            limit = self.config.status_limit
        return self.repo.get_status(limit, at)

    def active(self, at: Optional[datetime] = None) -> Optional[StatusItem]:
        """Status row of the active task, if any."""
        self._refresh()
        task_id = self.repo.is_clocked_in()
        if task_id is None:
            return None
        for item in self.repo.get_status(0, at):
            if item.id == task_id:
                return item
        return None

    def listing(
        self,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> list[ListItem]:
        """Log entries starting within [after, before], newest first."""
        self._refresh()
        return self.repo.get_listing(after, before)

    def daily(
        self,
        after: Optional[datetime] = None,
        before: Optional[datetime] = None,
    ) -> list[DayGroup]:
        """Listing grouped by calendar day of each entry's start."""
        return group_by_day(self.listing(after, before))

    # ========== Index Rebuild ==========

    def rebuild_index(self) -> dict:
        """Rebuild the index from the task records.

        This is the recovery path for a stale, inconsistent or corrupt
        index, so the current index file is never read.

        Returns:
            Dictionary with rebuild statistics
        """
        with self._locked(refresh=False):
            if self._repo is None:
                self._repo = FileRepository(
                    self.config.root, self.config.index_file, load_index=False
                )
            stats = self._repo.rebuild_index()

        logger.info("Rebuilt index: %d tasks", stats["tasks_indexed"])
        return stats
