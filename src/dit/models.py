"""Data models for tasks, log entries, index entries and query results."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from .errors import InvalidTaskKey

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %z"

# One segment per name: letter first, then letters, digits, '_' or '-'.
TASK_KEY_RE = re.compile(r"/?[A-Za-z][0-9A-Za-z_-]*(?:/[A-Za-z][0-9A-Za-z_-]*)*")

TIMESTAMP_RE = re.compile(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} [+-]\d{4}")

DURATION_RE = re.compile(
    r"((?P<d>[+-]?\d+)d)?((?P<h>[+-]?\d+)h)?((?P<min>[+-]?\d+)min)?((?P<s>[+-]?\d+)s)?"
)


def now() -> datetime:
    """Get current local time with a fixed UTC offset, truncated to seconds."""
    return datetime.now().astimezone().replace(microsecond=0)


def validate_task_key(key: str) -> str:
    """Check a task key against the identifier grammar.

    Raises:
        InvalidTaskKey: If the key is not a valid identifier
    """
    if not isinstance(key, str) or TASK_KEY_RE.fullmatch(key) is None:
        raise InvalidTaskKey(f"Invalid task key: {key!r}")
    return key


def format_timestamp(dt: datetime) -> str:
    """Format timestamp as 'YYYY-MM-DD HH:MM:SS +HHMM'."""
    if dt.tzinfo is None:
        raise ValueError(f"Timestamp has no UTC offset: {dt}")
    return dt.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(s: str) -> datetime:
    """Parse a timestamp in the exact storage format.

    Raises:
        ValueError: If the text is not in 'YYYY-MM-DD HH:MM:SS +HHMM' form
    """
    if not isinstance(s, str) or TIMESTAMP_RE.fullmatch(s) is None:
        raise ValueError(f"Invalid timestamp: {s!r}")
    return datetime.strptime(s, TIMESTAMP_FORMAT)


def format_duration(d: timedelta) -> str:
    """Format a duration as e.g. '1d2h30min5s', '0s' when zero."""
    total = int(d.total_seconds())
    if total == 0:
        return "0s"

    sign = "-" if total < 0 else ""
    r = abs(total)
    pieces = [
        (r // 86400, "d"),
        (r % 86400 // 3600, "h"),
        (r % 3600 // 60, "min"),
        (r % 60, "s"),
    ]
    return "".join(f"{sign}{value}{suffix}" for value, suffix in pieces if value)


def parse_duration(s: str) -> timedelta:
    """Parse a duration expression such as '1h30min'.

    Raises:
        ValueError: If the text does not match the duration grammar
    """
    m = DURATION_RE.fullmatch(s) if isinstance(s, str) else None
    if not s or m is None:
        raise ValueError(f"Invalid duration: {s!r}")

    def i(name: str) -> int:
        return int(m.group(name) or 0)

    return timedelta(days=i("d"), hours=i("h"), minutes=i("min"), seconds=i("s"))


@dataclass
class LogEntry:
    """One contiguous interval of work. An entry without end is open."""
    start: datetime
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.end is not None and self.end < self.start:
            raise ValueError(
                f"Log entry ends before it starts: {format_timestamp(self.start)} > "
                f"{format_timestamp(self.end)}"
            )

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def is_closed(self) -> bool:
        return self.end is not None

    def effort(self, at: Optional[datetime] = None) -> timedelta:
        """Duration of the entry; open entries are measured against `at` (default now)."""
        if self.end is not None:
            return self.end - self.start
        return (at or now()) - self.start

    def copy(self) -> LogEntry:
        return LogEntry(start=self.start, end=self.end)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization. Open entries omit 'end'."""
        result = {"start": format_timestamp(self.start)}
        if self.end is not None:
            result["end"] = format_timestamp(self.end)
        return result

    @classmethod
    def from_dict(cls, data: dict) -> LogEntry:
        end = data.get("end")
        return cls(
            start=parse_timestamp(data["start"]),
            end=parse_timestamp(end) if end is not None else None,
        )


@dataclass
class Task:
    """A unit of trackable work: title plus ordered log."""
    id: str
    title: str = ""
    log: list[LogEntry] = field(default_factory=list)

    @property
    def last_entry(self) -> Optional[LogEntry]:
        return self.log[-1] if self.log else None

    @property
    def is_active(self) -> bool:
        """True when the last log entry is open."""
        last = self.last_entry
        return last is not None and last.is_open

    def sort_log(self) -> None:
        """Order the log by start; stable, so equal starts keep append order."""
        self.log.sort(key=lambda e: e.start)

    def closed_effort(self) -> timedelta:
        """Sum of durations of all closed entries."""
        return sum((e.effort() for e in self.log if e.is_closed), timedelta(0))

    def effort(self, at: Optional[datetime] = None) -> timedelta:
        """Total effort, including open entries measured against `at`."""
        return sum((e.effort(at) for e in self.log), timedelta(0))

    def to_dict(self) -> dict:
        """Mutable record content: title and log."""
        return {
            "title": self.title,
            "log": [e.to_dict() for e in self.log],
        }


@dataclass
class IndexEntry:
    """Cached latest state of a task.

    `closed_effort` holds the effort of closed entries; an open
    `last_log_entry` adds its live duration at query time.
    """
    title: str
    last_log_entry: LogEntry
    closed_effort: timedelta = timedelta(0)

    @classmethod
    def from_task(cls, task: Task) -> IndexEntry:
        if not task.log:
            raise ValueError(f"Task has no log entries: {task.id}")
        return cls(
            title=task.title,
            last_log_entry=task.log[-1].copy(),
            closed_effort=task.closed_effort(),
        )

    @property
    def is_open(self) -> bool:
        return self.last_log_entry.is_open

    def total_effort(self, at: Optional[datetime] = None) -> timedelta:
        if self.last_log_entry.is_open:
            return self.closed_effort + self.last_log_entry.effort(at)
        return self.closed_effort

    def to_dict(self) -> dict:
        result = {"title": self.title}
        result.update(self.last_log_entry.to_dict())
        result["total_effort"] = format_duration(self.closed_effort)
        return result

    @classmethod
    def from_dict(cls, data: dict) -> IndexEntry:
        return cls(
            title=data["title"],
            last_log_entry=LogEntry.from_dict(data),
            closed_effort=parse_duration(data["total_effort"]),
        )


@dataclass
class StatusItem:
    """Row of the status report."""
    id: str
    title: str
    log_entry: LogEntry
    total_effort: timedelta

    @property
    def start(self) -> datetime:
        return self.log_entry.start

    @property
    def end(self) -> Optional[datetime]:
        return self.log_entry.end

    def effort(self, at: Optional[datetime] = None) -> timedelta:
        return self.log_entry.effort(at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": format_timestamp(self.start),
            "end": format_timestamp(self.end) if self.end else None,
            "effort": format_duration(self.effort()),
            "total_effort": format_duration(self.total_effort),
        }


@dataclass
class ListItem:
    """Row of the chronological listing: one log entry of one task."""
    id: str
    title: str
    log_entry: LogEntry

    @property
    def start(self) -> datetime:
        return self.log_entry.start

    @property
    def end(self) -> Optional[datetime]:
        return self.log_entry.end

    def effort(self, at: Optional[datetime] = None) -> timedelta:
        return self.log_entry.effort(at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": format_timestamp(self.start),
            "end": format_timestamp(self.end) if self.end else None,
            "effort": format_duration(self.effort()),
        }


@dataclass
class DayGroup:
    """Listing rows sharing the calendar date of their start."""
    day: date
    items: list[ListItem] = field(default_factory=list)

    def total_effort(self, at: Optional[datetime] = None) -> timedelta:
        return total_effort(self.items, at)

    def to_dict(self) -> dict:
        return {
            "day": self.day.isoformat(),
            "total_effort": format_duration(self.total_effort()),
            "items": [item.to_dict() for item in self.items],
        }


def total_effort(items: Iterable[ListItem], at: Optional[datetime] = None) -> timedelta:
    """Sum the efforts of listing rows."""
    return sum((item.effort(at) for item in items), timedelta(0))


def group_by_day(items: list[ListItem]) -> list[DayGroup]:
    """Group consecutive rows by the local date of their start.

    The input order is preserved both across and within groups.
    """
    groups: list[DayGroup] = []
    for item in items:
        day = item.start.date()
        if not groups or groups[-1].day != day:
            groups.append(DayGroup(day=day))
        groups[-1].items.append(item)
    return groups
