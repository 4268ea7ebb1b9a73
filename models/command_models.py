"""Command models shared by the parser, validator and executor collaborators."""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CommandIntent(str, Enum):
    """Closed set of automation intents a candidate command can carry."""
    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SCROLL = "scroll"
    SUBMIT = "submit"
    EXTRACT = "extract"
    WAIT = "wait"
    SEARCH = "search"
    LOGIN = "login"
    LOGOUT = "logout"
    SELECT = "select"
    HOVER = "hover"
    DRAG = "drag"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    SCREENSHOT = "screenshot"
    UNKNOWN = "unknown"


class ComplexityTier(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class SecurityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(str, Enum):
    """Coarse classification of how cautiously a command sequence should run."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    def escalate(self, steps: int = 1) -> RiskLevel:
        """Return the level `steps` tiers higher, capped at HIGH."""
        return _RISK_ORDER[min(self.rank + max(steps, 0), len(_RISK_ORDER) - 1)]


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH]


class CommandParameters(BaseModel):
    """Parameter bag of a candidate command. Unknown keys are kept."""

    url: Optional[str] = None
    new_tab: Optional[bool] = None
    selector: Optional[str] = None
    value: Optional[str] = None
    text: Optional[str] = None
    field_name: Optional[str] = None
    direction: Optional[str] = Field(default=None, description="up, down, left or right")
    amount: Optional[Any] = Field(default=None, description="Pixels or one of page/to_top/to_bottom")
    duration: Optional[float] = Field(default=None, description="Wait duration in milliseconds")
    condition: Optional[str] = None
    timeout: Optional[float] = None
    extract_type: Optional[str] = None
    output_format: Optional[str] = None
    query: Optional[str] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    full_page: Optional[bool] = None
    options: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "allow"


class CommandCandidate(BaseModel):
    """Structured automation step produced by the parser, not yet validated."""

    id: str = Field(default_factory=lambda: f"cmd_{uuid.uuid4().hex[:12]}")
    intent: CommandIntent = Field(description="Automation intent")
    parameters: CommandParameters = Field(default_factory=CommandParameters)
    confidence: float = Field(default=1.0, description="Parser confidence in [0, 1]")
    complexity: ComplexityTier = ComplexityTier.SIMPLE
    security_level: SecurityLevel = SecurityLevel.LOW
    original_text: str = Field(default="", description="Phrase the command was derived from")


class ElementInfo(BaseModel):
    """Element currently known to exist on the page."""

    selector: str
    text: str = ""
    type: str = ""
    visible: bool = True
    clickable: bool = False
    fillable: bool = False


class CommandContext(BaseModel):
    """What is known about the page a command will run against."""

    current_url: Optional[str] = None
    page_title: Optional[str] = None
    available_elements: Optional[List[ElementInfo]] = None
    previous_commands: List[str] = Field(default_factory=list)


class ParsingResult(BaseModel):
    """Output of the parser collaborator for one utterance."""

    commands: List[CommandCandidate] = Field(default_factory=list)
    requires_clarification: bool = False
    clarification_question: Optional[str] = None
    confidence: float = 0.0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Outcome of validating one command or a batch of commands."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    security_issues: List[str] = Field(default_factory=list)
    sanitized_command: Optional[CommandCandidate] = None
    sanitized_commands: Optional[List[CommandCandidate]] = None
    risk_level: RiskLevel = RiskLevel.LOW
    requires_confirmation: bool = False


class CommandExecutionResult(BaseModel):
    """Execution result for a single command."""

    command_id: str
    intent: str
    ok: bool
    message: str = ""
    time_ms: float = 0.0
    data: Optional[Any] = None


class ExecutionReport(BaseModel):
    """What the executor reports back for a batch of sanitized commands."""

    executed_count: int = 0
    per_command_results: List[CommandExecutionResult] = Field(default_factory=list)


class PipelineStatus(str, Enum):
    COMPLETED = "completed"
    NEEDS_CLARIFICATION = "needs_clarification"
    VALIDATION_FAILED = "validation_failed"


class PipelineOutcome(BaseModel):
    """Result of a full parse, validate and execute run for one utterance."""

    status: PipelineStatus
    parsing_result: ParsingResult
    validation_result: Optional[ValidationResult] = None
    execution_result: Optional[ExecutionReport] = None
    executed_commands: int = 0


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
]
