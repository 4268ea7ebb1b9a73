"""
Configuration models for the browser command assistant.

Structured, type-safe configuration using Pydantic models. The orchestrator and
the validator each take their own config group; AssistantConfig bundles both.

Example:
    >>> from assistant_config import AssistantConfig, OrchestratorConfig
    >>> config = AssistantConfig(
    ...     orchestrator=OrchestratorConfig(max_concurrent_tasks=5),
    ... )
    >>> orchestrator = TaskOrchestrator(parser, config=config)
"""
from __future__ import annotations

import os
from typing import Optional, Set

from dotenv import load_dotenv
from pydantic import BaseModel, Field


DEFAULT_ALLOWED_SCHEMES = {"https", "http", "file", "data"}
DEFAULT_BLOCKED_DOMAINS = {"malware.com", "phishing.com"}


class OrchestratorConfig(BaseModel):
    """Scheduling, retry and persistence behavior of the task orchestrator."""

    max_concurrent_tasks: int = Field(
        default=3,
        ge=1,
        description="Maximum number of tasks running at the same time"
    )
    task_timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Default per-task timeout in seconds"
    )
    enable_retry: bool = Field(
        default=True,
        description="Re-enqueue failed tasks until max_retries is reached"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum number of retries for a failed task"
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Base retry delay in seconds (multiplied by the attempt number)"
    )
    enable_persistence: bool = Field(
        default=True,
        description="Snapshot queue/active/history state to the key-value store"
    )
    tick_interval: float = Field(
        default=0.1,
        gt=0.0,
        description="Dispatch loop interval in seconds"
    )
    max_history: int = Field(
        default=100,
        ge=1,
        description="Number of terminal task results kept in history"
    )
    storage_key: str = Field(
        default="task_orchestrator_data",
        description="Key used for the persisted snapshot"
    )

    class Config:
        arbitrary_types_allowed = True


class ValidatorConfig(BaseModel):
    """Thresholds and allow/block lists used by the command validator."""

    max_command_complexity: int = Field(
        default=10,
        ge=1,
        description="Complexity score above which a command is rejected"
    )
    allowed_schemes: Set[str] = Field(
        default_factory=lambda: set(DEFAULT_ALLOWED_SCHEMES),
        description="URL schemes a command may target"
    )
    blocked_domains: Set[str] = Field(
        default_factory=lambda: set(DEFAULT_BLOCKED_DOMAINS),
        description="Domains (and their subdomains) commands may never target"
    )
    max_selector_length: int = Field(
        default=500,
        ge=1,
        description="Longest accepted CSS selector"
    )
    max_sequence_length: int = Field(
        default=10,
        ge=1,
        description="Batch size above which a sequence warning is raised"
    )
    low_confidence_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Confidence below which a warning is raised"
    )
    confirmation_confidence_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Confidence below which user confirmation is required"
    )
    max_wait_duration: float = Field(
        default=60000,
        ge=0,
        description="Wait duration (ms) above which a warning is raised"
    )

    class Config:
        arbitrary_types_allowed = True


class AssistantConfig(BaseModel):
    """
    Main configuration object for the command assistant core.

    Example:
        >>> config = AssistantConfig(
        ...     orchestrator=OrchestratorConfig(enable_persistence=False),
        ...     validator=ValidatorConfig(max_command_complexity=12),
        ... )
    """

    orchestrator: OrchestratorConfig = Field(
        default_factory=OrchestratorConfig,
        description="Task orchestrator configuration"
    )
    validator: ValidatorConfig = Field(
        default_factory=ValidatorConfig,
        description="Command validator configuration"
    )
    debug_mode: bool = Field(
        default=False,
        description="Echo task lifecycle events to the console"
    )

    class Config:
        arbitrary_types_allowed = True

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> AssistantConfig:
        """
        Build a configuration from ASSISTANT_* environment variables.

        Unset variables keep their defaults. A .env file is loaded first when present.
        """
        load_dotenv(env_file)

        orchestrator = {}
        for name in OrchestratorConfig.model_fields:
            raw = os.getenv(f"ASSISTANT_{name.upper()}")
            if raw is not None:
                orchestrator[name] = raw

        validator = {}
        raw_complexity = os.getenv("ASSISTANT_MAX_COMMAND_COMPLEXITY")
        if raw_complexity is not None:
            validator["max_command_complexity"] = raw_complexity
        raw_blocked = os.getenv("ASSISTANT_BLOCKED_DOMAINS")
        if raw_blocked is not None:
            validator["blocked_domains"] = {d.strip().lower() for d in raw_blocked.split(",") if d.strip()}

        return cls(
            orchestrator=OrchestratorConfig(**orchestrator),
            validator=ValidatorConfig(**validator),
            debug_mode=os.getenv("ASSISTANT_DEBUG", "").lower() in {"1", "true", "yes"},
        )

    @classmethod
    def testing(cls) -> AssistantConfig:
        """
        Configuration for fast, in-memory test runs.

        Returns:
            AssistantConfig with persistence off and short tick/retry intervals
        """
        return cls(
            orchestrator=OrchestratorConfig(
                enable_persistence=False,
                tick_interval=0.01,
                retry_delay=0.01,
            )
        )
