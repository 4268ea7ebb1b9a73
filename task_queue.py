"""
Pending task queue for the orchestrator.

Tasks are kept ordered by priority (critical first) and, within a priority,
by submission sequence (oldest first). The sequence number comes from a
process-wide counter, so the order is total and unaffected by clock changes.
"""
from __future__ import annotations

from typing import List, Optional

from models.task_models import Task


class PendingTaskQueue:
    """Priority queue of pending tasks with id lookup and removal."""

    def __init__(self):
        self._queue: List[Task] = []

    def push(self, task: Task) -> None:
        """Add a task and re-sort the queue."""
        if any(existing.id == task.id for existing in self._queue):
            raise ValueError(f"Task {task.id} is already queued")
        self._queue.append(task)
        self._sort()

    def pop_many(self, count: int) -> List[Task]:
        """Remove and return up to `count` highest-priority tasks."""
        if count <= 0:
            return []
        taken, self._queue = self._queue[:count], self._queue[count:]
        return taken

    def get(self, task_id: str) -> Optional[Task]:
        for task in self._queue:
            if task.id == task_id:
                return task
        return None

    def remove(self, task_id: str) -> Optional[Task]:
        for index, task in enumerate(self._queue):
            if task.id == task_id:
                return self._queue.pop(index)
        return None

    def clear(self) -> None:
        self._queue.clear()

    def inspect(self) -> List[Task]:
        """Snapshot of queued tasks in dispatch order (returns copy)."""
        return list(self._queue)

    def _sort(self) -> None:
        self._queue.sort(key=lambda task: task.sort_key)

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)
