"""
Task lifecycle events for the command assistant.

Design principles:
- Non-blocking: a failing listener never breaks the orchestrator
- Simple: subscribe to one event type or to all of them
- Flexible: UI and logging consumers attach through callbacks
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class TaskEventType(str, Enum):
    """All task lifecycle events the orchestrator announces"""
    TASK_ADDED = "task_added"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_CANCELLED = "task_cancelled"
    TASK_RETRY_SCHEDULED = "task_retry_scheduled"


@dataclass
class TaskEvent:
    """Structured event data"""
    event_type: TaskEventType
    task_id: str
    message: str
    timestamp: float = field(default_factory=time.time)
    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, SUCCESS
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "event_type": self.event_type.value,
            "task_id": self.task_id,
            "message": self.message,
            "timestamp": self.timestamp,
            "timestamp_iso": datetime.fromtimestamp(self.timestamp).isoformat(),
            "level": self.level,
            "details": self.details,
        }


EventCallback = Callable[[TaskEvent], None]


class EventLogger:
    """
    Publish/subscribe hub for task events.

    In debug mode: also prints a one-line summary of every event.
    """

    def __init__(self, debug_mode: bool = False, max_history: int = 1000):
        self.debug_mode = debug_mode
        self._listeners: Dict[Optional[TaskEventType], List[EventCallback]] = {}
        self._event_history: List[TaskEvent] = []
        self._max_history = max_history

    def subscribe(self, callback: EventCallback, event_type: Optional[TaskEventType] = None) -> None:
        """Register a callback for one event type, or for all events when event_type is None"""
        listeners = self._listeners.setdefault(event_type, [])
        if callback not in listeners:
            listeners.append(callback)

    def unsubscribe(self, callback: EventCallback, event_type: Optional[TaskEventType] = None) -> bool:
        listeners = self._listeners.get(event_type, [])
        if callback in listeners:
            listeners.remove(callback)
            return True
        return False

    def history(self, event_type: Optional[TaskEventType] = None) -> List[TaskEvent]:
        if event_type is None:
            return list(self._event_history)
        return [e for e in self._event_history if e.event_type == event_type]

    def _safe_emit(self, event: TaskEvent) -> None:
        """Record and dispatch an event; listener errors are logged, never raised"""
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history.pop(0)

        if self.debug_mode:
            self._print_event(event)

        callbacks = list(self._listeners.get(event.event_type, [])) + list(self._listeners.get(None, []))
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.error("Error in event listener for %s", event.event_type.value, exc_info=True)

    def _print_event(self, event: TaskEvent) -> None:
        level_emoji = {
            "DEBUG": "🔍",
            "INFO": "ℹ️",
            "WARNING": "⚠️",
            "ERROR": "❌",
            "SUCCESS": "✅",
        }
        emoji = level_emoji.get(event.level, "•")
        print(f"{emoji} [{event.task_id}] {event.message}")

    def emit(self, event_type: TaskEventType, task_id: str, message: str, level: str = "INFO", **details) -> None:
        self._safe_emit(
            TaskEvent(event_type=event_type, task_id=task_id, message=message, level=level, details=details)
        )

    # Convenience methods
    def task_added(self, task_id: str, kind: str, priority: str, **details):
        self.emit(TaskEventType.TASK_ADDED, task_id, f"Queued {kind} task ({priority})",
                  kind=kind, priority=priority, **details)

    def task_started(self, task_id: str, kind: str, attempt: int, **details):
        msg = f"Started {kind} task"
        if attempt:
            msg += f" (retry {attempt})"
        self.emit(TaskEventType.TASK_STARTED, task_id, msg, kind=kind, attempt=attempt, **details)

    def task_completed(self, task_id: str, processing_time: float, **details):
        self.emit(TaskEventType.TASK_COMPLETED, task_id, f"Task completed in {processing_time:.3f}s",
                  "SUCCESS", processing_time=processing_time, **details)

    def task_failed(self, task_id: str, error: str, will_retry: bool, **details):
        msg = f"Task failed: {error}"
        if will_retry:
            msg += " (will retry)"
        self.emit(TaskEventType.TASK_FAILED, task_id, msg, "ERROR", error=error, will_retry=will_retry, **details)

    def task_cancelled(self, task_id: str, previous_status: str, **details):
        self.emit(TaskEventType.TASK_CANCELLED, task_id, f"Task cancelled while {previous_status}",
                  "WARNING", previous_status=previous_status, **details)

    def task_retry_scheduled(self, task_id: str, attempt: int, delay: float, **details):
        self.emit(TaskEventType.TASK_RETRY_SCHEDULED, task_id, f"Retry {attempt} in {delay:.2f}s",
                  "WARNING", attempt=attempt, delay=delay, **details)
