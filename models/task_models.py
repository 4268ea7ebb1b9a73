"""
Task records for the orchestrator.

Each task kind carries its own payload type; Task.payload is one of
ParsePayload, ValidatePayload, ExecutePayload or PipelinePayload.
"""
from __future__ import annotations

import itertools
import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from error_handling import TaskError
from models.command_models import CommandCandidate, CommandContext


class TaskKind(str, Enum):
    PARSE = "parse"
    VALIDATE = "validate"
    EXECUTE = "execute"
    PIPELINE = "pipeline"


class TaskPriority(str, Enum):
    """Scheduling priority; higher weight is dispatched first."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return _PRIORITY_WEIGHTS[self]


_PRIORITY_WEIGHTS = {
    TaskPriority.LOW: 1,
    TaskPriority.NORMAL: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.CRITICAL: 4,
}


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


def _dump_context(context: Optional[CommandContext]) -> Optional[Dict[str, Any]]:
    return context.model_dump() if context is not None else None


def _load_context(data: Optional[Dict[str, Any]]) -> Optional[CommandContext]:
    return CommandContext.model_validate(data) if data is not None else None


@dataclass
class ParsePayload:
    """Turn free text into candidate commands."""
    text: str
    context: Optional[CommandContext] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "context": _dump_context(self.context)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ParsePayload:
        return cls(text=data["text"], context=_load_context(data.get("context")))


@dataclass
class ValidatePayload:
    """Screen a batch of candidate commands."""
    commands: List[CommandCandidate]
    context: Optional[CommandContext] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commands": [c.model_dump(mode="json") for c in self.commands],
            "context": _dump_context(self.context),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ValidatePayload:
        return cls(
            commands=[CommandCandidate.model_validate(c) for c in data.get("commands", [])],
            context=_load_context(data.get("context")),
        )


@dataclass
class ExecutePayload:
    """Run already-sanitized commands through the executor collaborator."""
    commands: List[CommandCandidate]
    context_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commands": [c.model_dump(mode="json") for c in self.commands],
            "context_id": self.context_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ExecutePayload:
        return cls(
            commands=[CommandCandidate.model_validate(c) for c in data.get("commands", [])],
            context_id=data.get("context_id"),
        )


@dataclass
class PipelinePayload:
    """Parse, validate and execute one user utterance."""
    text: str
    context: Optional[CommandContext] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "context": _dump_context(self.context)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PipelinePayload:
        return cls(text=data["text"], context=_load_context(data.get("context")))


TaskPayload = Union[ParsePayload, ValidatePayload, ExecutePayload, PipelinePayload]

PAYLOAD_TYPES = {
    TaskKind.PARSE: ParsePayload,
    TaskKind.VALIDATE: ValidatePayload,
    TaskKind.EXECUTE: ExecutePayload,
    TaskKind.PIPELINE: PipelinePayload,
}


# Submission order for the FIFO tie-break; monotonic, unlike created_at
_submission_counter = itertools.count()


def next_sequence() -> int:
    return next(_submission_counter)


def generate_task_id() -> str:
    """task_<epoch ms>_<9 random base36 chars>"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"task_{int(time.time() * 1000)}_{suffix}"


@dataclass
class Task:
    """Unit of schedulable work."""
    kind: TaskKind
    payload: TaskPayload
    priority: TaskPriority = TaskPriority.NORMAL
    timeout: float = 60.0
    id: str = field(default_factory=generate_task_id)
    created_at: float = field(default_factory=time.time)
    retries: int = 0
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[Any] = None
    error: Optional[TaskError] = None
    sequence: int = field(default_factory=next_sequence, compare=False)

    def __post_init__(self):
        expected = PAYLOAD_TYPES[self.kind]
        if not isinstance(self.payload, expected):
            raise TypeError(
                f"{self.kind.value} task needs a {expected.__name__}, got {type(self.payload).__name__}"
            )

    @property
    def sort_key(self):
        """Higher priority first, then earliest submitted first."""
        return (-self.priority.weight, self.sequence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "payload": self.payload.to_dict(),
            "priority": self.priority.value,
            "timeout": self.timeout,
            "created_at": self.created_at,
            "retries": self.retries,
            "status": self.status.value,
            "result": _jsonable(self.result),
            "error": self.error.to_dict() if self.error else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Task:
        kind = TaskKind(data["kind"])
        return cls(
            id=data["id"],
            kind=kind,
            payload=PAYLOAD_TYPES[kind].from_dict(data["payload"]),
            priority=TaskPriority(data.get("priority", TaskPriority.NORMAL.value)),
            timeout=data.get("timeout", 60.0),
            created_at=data.get("created_at", time.time()),
            retries=data.get("retries", 0),
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            result=data.get("result"),
            error=TaskError.from_dict(data["error"]) if data.get("error") else None,
        )


@dataclass
class TaskResult:
    """Terminal snapshot of a task, appended to history."""
    task_id: str
    status: TaskStatus
    result: Optional[Any] = None
    error: Optional[TaskError] = None
    processing_time: float = 0.0
    finished_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "result": _jsonable(self.result),
            "error": self.error.to_dict() if self.error else None,
            "processing_time": self.processing_time,
            "finished_at": self.finished_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TaskResult:
        return cls(
            task_id=data["task_id"],
            status=TaskStatus(data["status"]),
            result=data.get("result"),
            error=TaskError.from_dict(data["error"]) if data.get("error") else None,
            processing_time=data.get("processing_time", 0.0),
            finished_at=data.get("finished_at", time.time()),
        )


@dataclass
class TaskStatistics:
    queue_length: int
    active_tasks: int
    completed_tasks: int
    failed_tasks: int
    cancelled_tasks: int
    average_processing_time: float
    total_processed: int


def _jsonable(value: Any) -> Any:
    """Best-effort conversion of task results (pydantic models, enums, containers) to plain data."""
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


__all__ = [
    "TaskKind",
    "TaskPriority",
    "TaskStatus",
    "ParsePayload",
    "ValidatePayload",
    "ExecutePayload",
    "PipelinePayload",
    "TaskPayload",
    "PAYLOAD_TYPES",
    "Task",
    "TaskResult",
    "TaskStatistics",
    "generate_task_id",
    "next_sequence",
]
