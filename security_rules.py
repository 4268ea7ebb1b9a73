"""
Security rules evaluated by the command validator.

A rule is a named predicate over (command, context). Commands reach rules as
plain mappings (the same view the validator works on), so rules must tolerate
missing or oddly-typed fields.

Example:
    >>> def no_downloads_from_ftp(command, context):
    ...     url = command_param(command, "url") or ""
    ...     if url.startswith("ftp://"):
    ...         return RuleOutcome.fail("FTP downloads are not allowed")
    ...     return RuleOutcome.ok()
    >>> validator.add_security_rule(SecurityRule("no_ftp", "Block FTP", no_downloads_from_ftp))
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional

from models.command_models import CommandContext
from utils.sanitizer import JAVASCRIPT_SCHEME_RE, find_sensitive_data


class RuleSeverity(str, Enum):
    """ERROR blocks execution; WARNING does not."""
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class RuleOutcome:
    passed: bool
    severity: RuleSeverity = RuleSeverity.ERROR
    message: str = ""

    @classmethod
    def ok(cls) -> RuleOutcome:
        return cls(passed=True)

    @classmethod
    def fail(cls, message: str, severity: RuleSeverity = RuleSeverity.ERROR) -> RuleOutcome:
        return cls(passed=False, severity=severity, message=message)

    @classmethod
    def warn(cls, message: str) -> RuleOutcome:
        return cls(passed=False, severity=RuleSeverity.WARNING, message=message)


RuleCheck = Callable[[Mapping[str, Any], Optional[CommandContext]], RuleOutcome]


@dataclass(frozen=True)
class SecurityRule:
    name: str
    description: str
    check: RuleCheck

    def evaluate(self, command: Mapping[str, Any], context: Optional[CommandContext]) -> RuleOutcome:
        return self.check(command, context)


def command_param(command: Mapping[str, Any], key: str) -> Any:
    """Read a parameter from a command mapping, tolerating a missing or malformed bag."""
    parameters = command.get("parameters")
    if not isinstance(parameters, Mapping):
        return None
    return parameters.get(key)


def _text_params(command: Mapping[str, Any]) -> List[str]:
    values = [command_param(command, key) for key in ("url", "selector", "value", "text")]
    return [v for v in values if isinstance(v, str)]


def _check_file_urls(command, context):
    url = command_param(command, "url")
    if isinstance(url, str) and url.strip().lower().startswith("file:"):
        return RuleOutcome.fail("File URLs are not allowed for security reasons")
    return RuleOutcome.ok()


def _check_javascript_urls(command, context):
    if any(JAVASCRIPT_SCHEME_RE.search(text) for text in _text_params(command)):
        return RuleOutcome.fail("JavaScript URLs are not allowed")
    return RuleOutcome.ok()


def _check_sensitive_values(command, context):
    value = command_param(command, "value")
    if isinstance(value, str) and find_sensitive_data(value):
        return RuleOutcome.warn("Command handles potentially sensitive data")
    return RuleOutcome.ok()


def default_security_rules() -> List[SecurityRule]:
    """Fresh list of the built-in rules."""
    return [
        SecurityRule(
            name="no_file_urls",
            description="Block navigation to file:// URLs",
            check=_check_file_urls,
        ),
        SecurityRule(
            name="no_javascript_urls",
            description="Block javascript: URLs in any command field",
            check=_check_javascript_urls,
        ),
        SecurityRule(
            name="sensitive_data",
            description="Warn when a value looks like sensitive data",
            check=_check_sensitive_values,
        ),
    ]
