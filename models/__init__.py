"""
Data models for the command assistant.
"""
from .command_models import (
    CommandIntent,
    ComplexityTier,
    SecurityLevel,
    RiskLevel,
    CommandParameters,
    CommandCandidate,
    ElementInfo,
    CommandContext,
    ParsingResult,
    ValidationResult,
    CommandExecutionResult,
    ExecutionReport,
    PipelineStatus,
    PipelineOutcome,
)
from .task_models import (
    TaskKind,
    TaskPriority,
    TaskStatus,
    ParsePayload,
    ValidatePayload,
    ExecutePayload,
    PipelinePayload,
    Task,
    TaskResult,
    TaskStatistics,
)

__all__ = [
    "CommandIntent",
    "ComplexityTier",
    "SecurityLevel",
    "RiskLevel",
    "CommandParameters",
    "CommandCandidate",
    "ElementInfo",
    "CommandContext",
    "ParsingResult",
    "ValidationResult",
    "CommandExecutionResult",
    "ExecutionReport",
    "PipelineStatus",
    "PipelineOutcome",
    "TaskKind",
    "TaskPriority",
    "TaskStatus",
    "ParsePayload",
    "ValidatePayload",
    "ExecutePayload",
    "PipelinePayload",
    "Task",
    "TaskResult",
    "TaskStatistics",
]
