"""
Structured error handling for the command assistant.

Provides custom exception types and the structured error attached to failed tasks.
"""
from __future__ import annotations

import time
import traceback
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class TaskError:
    """
    Structured error attached to a failed task.

    Captures the code, message and the original failure payload.
    """

    code: str
    message: str
    timestamp: float = field(default_factory=time.time)
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, error: BaseException) -> TaskError:
        """Build a task error from any exception raised by delegated work."""
        code = getattr(error, "code", None) if isinstance(error, AssistantError) else None
        details: Dict[str, Any] = {
            "error_type": type(error).__name__,
            "repr": repr(error),
            "traceback": "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
        }
        if isinstance(error, AssistantError) and error.details:
            details["payload"] = error.details
        return cls(
            code=code or "TASK_ERROR",
            message=str(error) or "Unknown task error",
            details=details,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TaskError:
        return cls(
            code=data.get("code", "TASK_ERROR"),
            message=data.get("message", ""),
            timestamp=data.get("timestamp", time.time()),
            details=data.get("details") or {},
        )


class AssistantError(Exception):
    """
    Base exception for all assistant errors.

    All custom exceptions should inherit from this.
    """

    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    code: str = "ASSISTANT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ParserError(AssistantError):
    """The parser collaborator failed to turn text into commands."""
    severity = ErrorSeverity.HIGH
    code = "PARSE_ERROR"


class CommandExecutionError(AssistantError):
    """The executor collaborator failed while running commands."""
    severity = ErrorSeverity.HIGH
    code = "EXECUTION_ERROR"


class TaskTimeoutError(AssistantError):
    """Delegated work did not finish within the task timeout."""
    severity = ErrorSeverity.MEDIUM
    code = "TASK_TIMEOUT"


class UnknownTaskKindError(AssistantError):
    """A task carried a kind the orchestrator cannot dispatch."""
    severity = ErrorSeverity.HIGH
    code = "UNKNOWN_TASK_KIND"


class PersistenceError(AssistantError):
    """Snapshot could not be written to or read from the key-value store."""
    severity = ErrorSeverity.LOW
    code = "PERSISTENCE_ERROR"


class TaskBookkeepingError(AssistantError):
    """Orchestrator state is inconsistent (e.g. a terminal task is missing from history)."""
    severity = ErrorSeverity.CRITICAL
    code = "TASK_BOOKKEEPING"


class OrchestratorNotRunningError(AssistantError):
    """An operation needed the dispatch loop but it was not started."""
    severity = ErrorSeverity.HIGH
    code = "ORCHESTRATOR_NOT_RUNNING"

