"""
Browser command assistant core - validation and orchestration of browser automation commands.

Free-text requests are turned into candidate commands by a parser collaborator,
screened by the CommandValidator (structure, security rules, risk scoring) and
handed to an executor collaborator by the TaskOrchestrator, which schedules the
work with priorities, bounded concurrency and retries.

Main Classes:
    TaskOrchestrator: Priority queue and dispatch loop for assistant tasks
    CommandValidator: Multi-stage validation and risk scoring of commands
    AssistantConfig: Configuration for both

Example:
    >>> from task_orchestrator import TaskOrchestrator
    >>> from assistant_config import AssistantConfig
    >>>
    >>> async with TaskOrchestrator(parser, executor, config=AssistantConfig()) as orchestrator:
    ...     result = await orchestrator.process_command("open example.com and log in")
"""

# Orchestration
from task_orchestrator import TaskOrchestrator

# Validation
from command_validator import CommandValidator
from security_rules import SecurityRule, RuleOutcome, RuleSeverity

# Configuration
from assistant_config import (
    AssistantConfig,
    OrchestratorConfig,
    ValidatorConfig,
)

# Collaborators
from collaborators import CommandParser, CommandExecutor, KeyValueStore
from browser_executor import PlaywrightCommandExecutor
from persistence import InMemoryStore, JsonFileStore

# Errors
from error_handling import (
    AssistantError,
    ParserError,
    CommandExecutionError,
    TaskTimeoutError,
    PersistenceError,
    TaskBookkeepingError,
    OrchestratorNotRunningError,
)

__version__ = "0.1.0"

__all__ = [
    "TaskOrchestrator",
    "CommandValidator",
    "SecurityRule",
    "RuleOutcome",
    "RuleSeverity",
    "AssistantConfig",
    "OrchestratorConfig",
    "ValidatorConfig",
    "CommandParser",
    "CommandExecutor",
    "KeyValueStore",
    "PlaywrightCommandExecutor",
    "InMemoryStore",
    "JsonFileStore",
    "AssistantError",
    "ParserError",
    "CommandExecutionError",
    "TaskTimeoutError",
    "PersistenceError",
    "TaskBookkeepingError",
    "OrchestratorNotRunningError",
]
