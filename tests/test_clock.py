"""Tests for the clock state machine primitives."""

import pytest

from dit.errors import InvalidState, TaskNotFound
from dit.models import LogEntry, Task


@pytest.fixture
def tasks(repo):
    """Repository with two idle tasks, foo and bar."""
    repo.save(Task(id="foo", title="Foo"))
    repo.save(Task(id="bar", title="Bar"))
    return repo


class TestClockIn:
    """Tests for clock_in."""

    def test_appends_open_entry(self, tasks, ts):
        task = tasks.clock_in("foo", ts("2020-01-01 10:00"))

        assert task.log == [LogEntry(ts("2020-01-01 10:00"))]
        assert tasks.load("foo").is_active
        assert tasks.is_clocked_in() == "foo"

    def test_missing_task(self, tasks, ts):
        with pytest.raises(TaskNotFound):
            tasks.clock_in("nope", ts("2020-01-01 10:00"))

    def test_missing_task_reported_while_other_active(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        with pytest.raises(TaskNotFound):
            tasks.clock_in("nope", ts("2020-01-01 10:30"))

    def test_other_task_active(self, tasks, ts):
        """Only one task may be active at a time."""
        tasks.clock_in("foo", ts("2020-01-01 10:00"))

        with pytest.raises(InvalidState, match="Already working on a task: foo"):
            tasks.clock_in("bar", ts("2020-01-01 10:30"))
        assert tasks.load("bar").log == []

    def test_same_task_active(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        with pytest.raises(InvalidState):
            tasks.clock_in("foo", ts("2020-01-01 10:30"))

    def test_closed_task_can_clock_in_again(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        tasks.clock_out("foo", ts("2020-01-01 11:00"))
        task = tasks.clock_in("foo", ts("2020-01-01 12:00"))

        assert len(task.log) == 2
        assert task.log[-1].is_open

    def test_before_last_entry_rejected(self, tasks, ts):
        """The new open entry must stay the latest entry."""
        tasks.clock_in("foo", ts("2020-01-02 10:00"))
        tasks.clock_out("foo", ts("2020-01-02 11:00"))

        with pytest.raises(InvalidState, match="before its last entry"):
            tasks.clock_in("foo", ts("2020-01-01 10:00"))
        assert len(tasks.load("foo").log) == 1

    def test_after_earlier_entry_in_past(self, tasks, ts):
        """An explicit timestamp overlapping the previous entry's end is allowed."""
        tasks.clock_in("foo", ts("2020-01-02 10:00"))
        tasks.clock_out("foo", ts("2020-01-02 11:00"))
        tasks.clock_in("foo", ts("2020-01-02 10:30"))

        log = tasks.load("foo").log
        assert [e.start for e in log] == [ts("2020-01-02 10:00"), ts("2020-01-02 10:30")]
        assert log[-1].is_open


class TestClockOut:
    """Tests for clock_out."""

    def test_closes_last_entry(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        task = tasks.clock_out("foo", ts("2020-01-01 11:30"))

        assert task.log == [LogEntry(ts("2020-01-01 10:00"), ts("2020-01-01 11:30"))]
        assert tasks.is_clocked_in() is None

    def test_empty_log(self, tasks, ts):
        with pytest.raises(InvalidState):
            tasks.clock_out("foo", ts("2020-01-01 10:00"))

    def test_already_closed(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        tasks.clock_out("foo", ts("2020-01-01 11:00"))

        with pytest.raises(InvalidState):
            tasks.clock_out("foo", ts("2020-01-01 12:00"))
        assert tasks.load("foo").log[-1].end == ts("2020-01-01 11:00")

    def test_before_start_rejected(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        with pytest.raises(InvalidState):
            tasks.clock_out("foo", ts("2020-01-01 09:00"))
        assert tasks.is_clocked_in() == "foo"

    def test_zero_length_entry(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        task = tasks.clock_out("foo", ts("2020-01-01 10:00"))
        assert task.log[-1].end == task.log[-1].start


class TestUnClockIn:
    """Tests for un_clock_in."""

    def test_removes_open_entry(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        tasks.clock_out("foo", ts("2020-01-01 11:00"))
        before = tasks.load("foo").log

        tasks.clock_in("foo", ts("2020-01-01 12:00"))
        tasks.un_clock_in("foo")

        assert tasks.load("foo").log == before
        assert tasks.is_clocked_in() is None

    def test_only_entry_removes_index_entry(self, tasks, ts):
        """A task whose log becomes empty drops out of the index."""
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        tasks.un_clock_in("foo")

        assert tasks.load("foo").log == []
        assert "foo" not in tasks.index

    def test_closed_entry_rejected(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        tasks.clock_out("foo", ts("2020-01-01 11:00"))
        with pytest.raises(InvalidState):
            tasks.un_clock_in("foo")

    def test_empty_log_rejected(self, tasks):
        with pytest.raises(InvalidState):
            tasks.un_clock_in("foo")


class TestUnClockOut:
    """Tests for un_clock_out."""

    def test_reopens_last_entry(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        before = tasks.load("foo").log

        tasks.clock_out("foo", ts("2020-01-01 11:00"))
        tasks.un_clock_out("foo")

        assert tasks.load("foo").log == before
        assert tasks.is_clocked_in() == "foo"

    def test_open_entry_rejected(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        with pytest.raises(InvalidState):
            tasks.un_clock_out("foo")

    def test_empty_log_rejected(self, tasks):
        with pytest.raises(InvalidState):
            tasks.un_clock_out("foo")

    def test_other_task_active_rejected(self, tasks, ts):
        """Reopening must not create a second active task."""
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        tasks.clock_out("foo", ts("2020-01-01 11:00"))
        tasks.clock_in("bar", ts("2020-01-01 11:00"))

        with pytest.raises(InvalidState, match="bar"):
            tasks.un_clock_out("foo")
        assert tasks.index.active_tasks() == ["bar"]


class TestPreviousTask:
    """Tests for most-recent-first task navigation."""

    def test_order(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        tasks.clock_out("foo", ts("2020-01-01 11:00"))
        tasks.clock_in("bar", ts("2020-01-01 11:00"))

        assert tasks.previous_task(0)[0] == "bar"
        assert tasks.previous_task(1)[0] == "foo"
        assert tasks.previous_task(2) is None

    def test_returns_copy_of_last_entry(self, tasks, ts):
        tasks.clock_in("foo", ts("2020-01-01 10:00"))
        task_id, entry = tasks.previous_task(0)
        entry.end = ts("2020-01-01 11:00")

        assert tasks.index.get("foo").is_open

    def test_ties_broken_by_id(self, repo, ts):
        for task_id in ["zeta", "alpha", "mid"]:
            repo.save(Task(id=task_id, title=task_id, log=[
                LogEntry(ts("2020-01-01 10:00"), ts("2020-01-01 11:00")),
            ]))

        assert [repo.previous_task(i)[0] for i in range(3)] == ["alpha", "mid", "zeta"]

    def test_negative_index(self, tasks):
        assert tasks.previous_task(-1) is None
