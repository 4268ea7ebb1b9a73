import pytest

from models import ParsePayload, Task, TaskKind, TaskPriority
from task_queue import PendingTaskQueue


def _task(priority=TaskPriority.NORMAL, created_at=0.0, text="hi"):
    return Task(kind=TaskKind.PARSE, payload=ParsePayload(text=text), priority=priority, created_at=created_at)


class TestOrdering:
    def test_critical_before_low_regardless_of_submission(self):
        queue = PendingTaskQueue()
        low = _task(TaskPriority.LOW)
        critical = _task(TaskPriority.CRITICAL)

        queue.push(low)
        queue.push(critical)

        assert queue.pop_many(2) == [critical, low]

    def test_fifo_within_priority(self):
        queue = PendingTaskQueue()
        earlier = _task()
        later = _task()
        queue.push(later)
        queue.push(earlier)

        assert [t.id for t in queue.inspect()] == [earlier.id, later.id]

    def test_tie_break_ignores_wall_clock(self):
        """A clock stepping backwards must not reorder equal-priority tasks."""
        queue = PendingTaskQueue()
        first = _task(created_at=1000.0)
        second = _task(created_at=5.0)
        third = _task(created_at=5.0)
        for task in (third, second, first):
            queue.push(task)

        assert queue.pop_many(3) == [first, second, third]

    def test_sequence_increases_with_creation(self):
        tasks = [_task() for _ in range(3)]

        assert tasks[0].sequence < tasks[1].sequence < tasks[2].sequence

    def test_full_order(self):
        queue = PendingTaskQueue()
        normal = _task(TaskPriority.NORMAL)
        high_first = _task(TaskPriority.HIGH)
        low = _task(TaskPriority.LOW)
        critical = _task(TaskPriority.CRITICAL)
        high_second = _task(TaskPriority.HIGH)
        for task in (high_second, low, critical, normal, high_first):
            queue.push(task)

        assert queue.pop_many(10) == [critical, high_first, high_second, normal, low]
        assert len(queue) == 0


class TestOperations:
    def test_pop_many_takes_at_most_count(self):
        queue = PendingTaskQueue()
        for _ in range(5):
            queue.push(_task())

        assert len(queue.pop_many(3)) == 3
        assert len(queue) == 2
        assert queue.pop_many(0) == []

    def test_get_and_remove(self):
        queue = PendingTaskQueue()
        task = _task()
        queue.push(task)

        assert queue.get(task.id) is task
        assert queue.remove(task.id) is task
        assert queue.remove(task.id) is None
        assert not queue

    def test_duplicate_id_rejected(self):
        queue = PendingTaskQueue()
        task = _task()
        queue.push(task)

        with pytest.raises(ValueError):
            queue.push(task)

    def test_clear(self):
        queue = PendingTaskQueue()
        queue.push(_task())
        queue.push(_task())

        queue.clear()

        assert len(queue) == 0
        assert queue.inspect() == []
