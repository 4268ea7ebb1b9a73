"""
Interfaces of the collaborators the orchestrator depends on.

Parser and executor methods may be plain functions or coroutines; the
orchestrator awaits whatever they return when it is awaitable.
"""
from __future__ import annotations

from typing import Any, Awaitable, Dict, List, Optional, Protocol, Union, runtime_checkable

from models.command_models import CommandCandidate, CommandContext, ExecutionReport, ParsingResult


@runtime_checkable
class CommandParser(Protocol):
    """Turns free text into candidate commands (NLU lives behind this)."""

    def parse(
        self, text: str, context: Optional[CommandContext]
    ) -> Union[ParsingResult, Awaitable[ParsingResult]]:
        ...


@runtime_checkable
class CommandExecutor(Protocol):
    """Runs sanitized commands against a page. Failures are raised."""

    def execute(
        self, commands: List[CommandCandidate], timeout: Optional[float] = None
    ) -> Union[ExecutionReport, Awaitable[ExecutionReport]]:
        ...


@runtime_checkable
class KeyValueStore(Protocol):
    """Storage used to snapshot orchestrator state."""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, key: str, value: Dict[str, Any]) -> None:
        ...
