from __future__ import annotations

from typing import Dict, List, Optional

from models.task_models import TaskResult, TaskStatus


class TaskHistory:
    """Keeps a rolling list of terminal TaskResult records (oldest evicted first)."""

    def __init__(self, max_items: int = 100):
        self.max_items = max_items
        self._entries: List[TaskResult] = []

    def add(self, result: TaskResult) -> None:
        self._entries.append(result)
        if len(self._entries) > self.max_items:
            self._entries = self._entries[-self.max_items:]

    def find(self, task_id: str) -> Optional[TaskResult]:
        """Most recent result recorded for a task id."""
        for entry in reversed(self._entries):
            if entry.task_id == task_id:
                return entry
        return None

    def entries(self, limit: Optional[int] = None) -> List[TaskResult]:
        return list(self._entries if limit is None else self._entries[-limit:])

    def count_by_status(self) -> Dict[TaskStatus, int]:
        counts = {status: 0 for status in TaskStatus if status.is_terminal}
        for entry in self._entries:
            counts[entry.status] = counts.get(entry.status, 0) + 1
        return counts

    def average_processing_time(self, status: TaskStatus = TaskStatus.COMPLETED) -> float:
        times = [e.processing_time for e in self._entries if e.status == status]
        return sum(times) / len(times) if times else 0.0

    def resize(self, max_items: int) -> None:
        self.max_items = max_items
        if len(self._entries) > max_items:
            self._entries = self._entries[-max_items:]

    def replace(self, entries: List[TaskResult]) -> None:
        self._entries = list(entries)[-self.max_items:]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
