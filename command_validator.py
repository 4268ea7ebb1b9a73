"""
Command validation and risk scoring.

Every candidate command goes through the same stages, and all of them run:
structure, parameters, security rules, intent-specific security, context and
complexity. Findings accumulate into a ValidationResult. The validator never
raises for malformed input; problems always come back as error strings so the
caller can show them to the user.

Example:
    >>> validator = CommandValidator()
    >>> result = validator.validate(
    ...     {"intent": "navigate", "parameters": {"url": "https://example.com"},
    ...      "confidence": 0.9, "original_text": "go to example.com"}
    ... )
    >>> result.is_valid, result.risk_level
    (True, <RiskLevel.LOW: 'low'>)
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple
from urllib.parse import urlsplit, urlunsplit

from pydantic import ValidationError

from assistant_config import ValidatorConfig
from models.command_models import (
    CommandCandidate,
    CommandContext,
    CommandIntent,
    CommandParameters,
    RiskLevel,
    SecurityLevel,
    ValidationResult,
)
from security_rules import RuleSeverity, SecurityRule, default_security_rules
from utils.sanitizer import (
    JAVASCRIPT_SCHEME_RE,
    SCRIPT_TAG_RE,
    find_selector_injections,
    find_sensitive_data,
    sanitize_text,
)

logger = logging.getLogger(__name__)

INTENT_VALUES = {intent.value for intent in CommandIntent}

# Base risk per intent
INTENT_RISK_WEIGHTS: Dict[str, int] = {
    "navigate": 1,
    "click": 1,
    "fill": 2,
    "scroll": 0,
    "submit": 2,
    "extract": 1,
    "wait": 0,
    "search": 1,
    "login": 3,
    "logout": 1,
    "select": 1,
    "hover": 0,
    "drag": 1,
    "upload": 3,
    "download": 2,
    "screenshot": 0,
    "unknown": 2,
}
COMPLEXITY_RISK_WEIGHTS = {"simple": 0, "moderate": 1, "complex": 2}
SECURITY_LEVEL_RISK_WEIGHTS = {"low": 0, "medium": 1, "high": 2}
COMPLEXITY_SCORE_WEIGHTS = {"simple": 0, "moderate": 2, "complex": 3}

CONFIRMATION_INTENTS = {"login", "upload", "download"}
SCROLL_DIRECTIONS = {"up", "down", "left", "right"}
LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
EXECUTABLE_EXTENSIONS = (".exe", ".msi", ".bat", ".cmd", ".sh", ".dmg", ".apk", ".scr")

HIGH_RISK_THRESHOLD = 5
MEDIUM_RISK_THRESHOLD = 3
BATCH_SIZE_ESCALATION_STEP = 5
BATCH_ISSUE_ESCALATION_STEP = 3


@dataclass
class _Findings:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    security_issues: List[str] = field(default_factory=list)

    def extend(self, other: _Findings) -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.security_issues.extend(other.security_issues)


def _distinct(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _normalize_url(url: str) -> Optional[str]:
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, parts.fragment))


class CommandValidator:
    """
    Screens candidate commands before execution.

    Security rules and blocked domains are owned by the instance and changed only
    through the add/remove methods; validation never mutates them.
    """

    def __init__(
        self,
        config: Optional[ValidatorConfig] = None,
        rules: Optional[Iterable[SecurityRule]] = None,
    ):
        self.config = config or ValidatorConfig()
        self._rules: List[SecurityRule] = list(rules) if rules is not None else default_security_rules()
        self._blocked_domains: Set[str] = {d.lower() for d in self.config.blocked_domains}
        self._allowed_schemes: Set[str] = {s.lower().rstrip(":") for s in self.config.allowed_schemes}

    # ------------------------------------------------------------------
    # Rule and domain management
    # ------------------------------------------------------------------

    @property
    def security_rules(self) -> List[SecurityRule]:
        return list(self._rules)

    def add_security_rule(self, rule: SecurityRule) -> None:
        """Register a rule; a rule with the same name is replaced in place."""
        for index, existing in enumerate(self._rules):
            if existing.name == rule.name:
                self._rules[index] = rule
                return
        self._rules.append(rule)

    def remove_security_rule(self, name: str) -> bool:
        for index, existing in enumerate(self._rules):
            if existing.name == name:
                del self._rules[index]
                return True
        return False

    @property
    def blocked_domains(self) -> Set[str]:
        return set(self._blocked_domains)

    def add_blocked_domain(self, domain: str) -> None:
        self._blocked_domains.add(domain.strip().lower())

    def remove_blocked_domain(self, domain: str) -> bool:
        domain = domain.strip().lower()
        if domain in self._blocked_domains:
            self._blocked_domains.discard(domain)
            return True
        return False

    def is_domain_blocked(self, host: str) -> bool:
        host = host.lower().rstrip(".")
        return any(host == d or host.endswith("." + d) for d in self._blocked_domains)

    # ------------------------------------------------------------------
    # Public validation API
    # ------------------------------------------------------------------

    def validate(self, command: Any, context: Any = None) -> ValidationResult:
        """
        Validate a single candidate command.

        Args:
            command: CommandCandidate or a mapping with the same fields
            context: CommandContext, a mapping, or None

        Returns:
            ValidationResult with errors, warnings, security issues, risk level,
            confirmation flag and a sanitized copy of the command
        """
        view, findings = self._command_view(command)
        if view is None:
            return ValidationResult(
                is_valid=False,
                errors=findings.errors,
                risk_level=RiskLevel.HIGH,
                requires_confirmation=True,
            )

        ctx, context_findings = self._coerce_context(context)
        findings.extend(context_findings)
        findings.extend(self._check_structure(view))
        findings.extend(self._check_parameters(view))
        findings.extend(self._check_security_rules(view, ctx))
        findings.extend(self._check_intent_security(view))
        findings.extend(self._check_context(view, ctx))
        findings.extend(self._check_complexity(view))

        security_issues = _distinct(findings.security_issues)
        return ValidationResult(
            is_valid=not findings.errors and not security_issues,
            errors=findings.errors,
            warnings=findings.warnings,
            security_issues=security_issues,
            sanitized_command=self.sanitize_command(view),
            risk_level=self.calculate_risk_level(view, security_issues),
            requires_confirmation=self.requires_confirmation(view, security_issues),
        )

    def validate_batch(self, commands: Any, context: Any = None) -> ValidationResult:
        """
        Validate a sequence of commands and the sequence itself.

        Per-command errors and warnings are prefixed with the 1-based command number.
        """
        if isinstance(commands, (str, bytes, Mapping)) or not isinstance(commands, Iterable):
            return ValidationResult(
                is_valid=False,
                errors=["Commands must be provided as a list"],
                risk_level=RiskLevel.HIGH,
                requires_confirmation=True,
            )
        commands = list(commands)

        findings = _Findings()
        sanitized: List[CommandCandidate] = []
        risk = RiskLevel.LOW
        confirmation = False

        if not commands:
            findings.warnings.append("No commands to validate")

        for number, command in enumerate(commands, start=1):
            result = self.validate(command, context)
            findings.errors.extend(f"Command {number}: {e}" for e in result.errors)
            findings.warnings.extend(f"Command {number}: {w}" for w in result.warnings)
            findings.security_issues.extend(result.security_issues)
            if result.sanitized_command is not None:
                sanitized.append(result.sanitized_command)
            if result.risk_level.rank > risk.rank:
                risk = result.risk_level
            confirmation = confirmation or result.requires_confirmation

        views = [self._command_view(command)[0] for command in commands]
        findings.extend(self._check_sequence([v for v in views if v is not None]))

        security_issues = _distinct(findings.security_issues)
        return ValidationResult(
            is_valid=not findings.errors and not security_issues,
            errors=findings.errors,
            warnings=findings.warnings,
            security_issues=security_issues,
            sanitized_commands=sanitized,
            risk_level=self.calculate_sequence_risk_level(risk, len(commands), security_issues),
            requires_confirmation=confirmation or bool(security_issues),
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def complexity_score(self, view: Mapping[str, Any]) -> int:
        params = view["parameters"]
        score = 0
        if params.get("url"):
            score += 1
        if params.get("selector"):
            score += 2
        if params.get("value") not in (None, ""):
            score += 1
        options = params.get("options")
        if isinstance(options, Mapping):
            score += len(options)
        score += COMPLEXITY_SCORE_WEIGHTS.get(view.get("complexity"), 0)
        return score

    def calculate_risk_level(self, view: Mapping[str, Any], security_issues: List[str]) -> RiskLevel:
        score = INTENT_RISK_WEIGHTS.get(view.get("intent"), INTENT_RISK_WEIGHTS["unknown"])
        score += 2 * len(security_issues)
        score += COMPLEXITY_RISK_WEIGHTS.get(view.get("complexity"), 0)
        score += SECURITY_LEVEL_RISK_WEIGHTS.get(view.get("security_level"), 0)
        if score >= HIGH_RISK_THRESHOLD:
            return RiskLevel.HIGH
        if score >= MEDIUM_RISK_THRESHOLD:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def calculate_sequence_risk_level(
        self, highest: RiskLevel, command_count: int, security_issues: List[str]
    ) -> RiskLevel:
        steps = max(command_count - 1, 0) // BATCH_SIZE_ESCALATION_STEP
        steps += len(security_issues) // BATCH_ISSUE_ESCALATION_STEP
        return highest.escalate(steps)

    def requires_confirmation(self, view: Mapping[str, Any], security_issues: List[str]) -> bool:
        confidence = view.get("confidence")
        return (
            view.get("security_level") == SecurityLevel.HIGH.value
            or bool(security_issues)
            or view.get("intent") in CONFIRMATION_INTENTS
            or not _is_number(confidence)
            or confidence < self.config.confirmation_confidence_threshold
        )

    # ------------------------------------------------------------------
    # Sanitization
    # ------------------------------------------------------------------

    def sanitize_command(self, command: Any) -> Optional[CommandCandidate]:
        """Copy of the command with selector, value and text stripped of script content."""
        if isinstance(command, CommandCandidate):
            view, _ = self._command_view(command)
        else:
            view = command
        data = dict(view)
        params = dict(data.get("parameters") or {})
        for key in ("selector", "value", "text"):
            if isinstance(params.get(key), str):
                params[key] = sanitize_text(params[key])
        data["parameters"] = params

        for _ in range(3):
            try:
                return CommandCandidate.model_validate(data)
            except ValidationError as exc:
                data = self._drop_invalid_fields(data, exc)
        logger.warning("Could not build sanitized copy of command %r", view.get("id"))
        return None

    @staticmethod
    def _drop_invalid_fields(data: Dict[str, Any], exc: ValidationError) -> Dict[str, Any]:
        data = dict(data)
        params = dict(data.get("parameters") or {})
        for error in exc.errors():
            loc = error.get("loc") or ()
            if not loc:
                continue
            if loc[0] == "parameters" and len(loc) > 1:
                params.pop(loc[1], None)
            elif loc[0] == "parameters":
                params = {}
            elif loc[0] == "intent":
                data["intent"] = CommandIntent.UNKNOWN.value
            else:
                data.pop(loc[0], None)
        data["parameters"] = params
        return data

    # ------------------------------------------------------------------
    # Input coercion
    # ------------------------------------------------------------------

    def _command_view(self, command: Any) -> Tuple[Optional[Dict[str, Any]], _Findings]:
        """Plain-dict view of a command; enums become their values."""
        findings = _Findings()
        if isinstance(command, CommandCandidate):
            return command.model_dump(mode="json"), findings
        if not isinstance(command, Mapping):
            findings.errors.append(
                f"Command must be a CommandCandidate or a mapping, got {type(command).__name__}"
            )
            return None, findings

        view = dict(command)
        for key, label in (("intent", "Command intent"), ("complexity", "Complexity"),
                           ("security_level", "Security level")):
            value = _enum_value(view.get(key))
            if value is not None and not isinstance(value, str):
                findings.errors.append(f"{label} must be a string")
                value = None
            view[key] = value

        params = view.get("parameters")
        if params is None:
            view["parameters"] = {}
        elif isinstance(params, CommandParameters):
            view["parameters"] = params.model_dump(mode="json")
        elif isinstance(params, Mapping):
            view["parameters"] = dict(params)
        else:
            findings.errors.append("Command parameters must be a mapping")
            view["parameters"] = {}
        return view, findings

    def _coerce_context(self, context: Any) -> Tuple[Optional[CommandContext], _Findings]:
        findings = _Findings()
        if context is None or isinstance(context, CommandContext):
            return context, findings
        try:
            return CommandContext.model_validate(context), findings
        except ValidationError:
            findings.warnings.append("Command context could not be read; context checks skipped")
            return None, findings

    # ------------------------------------------------------------------
    # Validation stages
    # ------------------------------------------------------------------

    def _check_structure(self, view: Mapping[str, Any]) -> _Findings:
        findings = _Findings()

        intent = view.get("intent")
        if not intent:
            findings.errors.append("Command intent is required")
        elif intent not in INTENT_VALUES:
            findings.errors.append(f"Unknown command intent: {intent}")

        original_text = view.get("original_text")
        if not isinstance(original_text, str) or not original_text.strip():
            findings.errors.append("Original text is required")

        confidence = view.get("confidence")
        if not _is_number(confidence) or confidence < 0 or confidence > 1:
            findings.errors.append("Confidence must be a number between 0 and 1")
        elif confidence < self.config.low_confidence_threshold:
            findings.warnings.append("Low confidence command may not execute correctly")

        complexity = view.get("complexity")
        if complexity is not None and complexity not in COMPLEXITY_RISK_WEIGHTS:
            findings.warnings.append(f"Unknown complexity tier '{complexity}', treated as simple")

        security_level = view.get("security_level")
        if security_level is not None and security_level not in SECURITY_LEVEL_RISK_WEIGHTS:
            findings.warnings.append(f"Unknown security level '{security_level}', treated as low")

        return findings

    def _check_parameters(self, view: Mapping[str, Any]) -> _Findings:
        findings = _Findings()
        params = view["parameters"]
        intent = view.get("intent")

        url = params.get("url")
        selector = params.get("selector")
        value = params.get("value")

        if intent == "navigate" and not url:
            findings.errors.append("URL is required for navigation commands")
        elif intent == "fill":
            if not selector:
                findings.errors.append("Selector is required for fill commands")
            if value in (None, ""):
                findings.errors.append("Value is required for fill commands")
        elif intent == "click" and not selector and not (params.get("text") or value):
            findings.warnings.append("Click command should have either a selector or target text")
        elif intent in ("hover", "select", "drag") and not selector:
            findings.errors.append(f"Selector is required for {intent} commands")
        elif intent == "search" and not (params.get("query") or value):
            findings.errors.append("Search query is required for search commands")
        elif intent == "upload" and not params.get("file_path"):
            findings.errors.append("File path is required for upload commands")
        elif intent == "extract" and not selector:
            findings.warnings.append("Extract command has no selector; the whole page will be used")
        elif intent == "scroll":
            direction = params.get("direction")
            if direction is not None and (not isinstance(direction, str) or direction not in SCROLL_DIRECTIONS):
                findings.errors.append("Scroll direction must be one of up, down, left, right")

        if url is not None:
            if isinstance(url, str):
                findings.extend(self._check_url(url))
            else:
                findings.errors.append("URL must be a string")

        if selector is not None:
            if isinstance(selector, str):
                findings.extend(self._check_selector(selector))
            else:
                findings.errors.append("Selector must be a string")

        for key, label in (("duration", "Duration"), ("timeout", "Timeout")):
            raw = params.get(key)
            if raw is None:
                continue
            if not _is_number(raw) or raw < 0:
                findings.errors.append(f"{label} must be a non-negative number")
            elif key == "duration" and raw > self.config.max_wait_duration:
                findings.warnings.append("Duration exceeds 1 minute, consider breaking into smaller steps")

        if isinstance(value, str) and find_sensitive_data(value):
            findings.warnings.append("Value may contain sensitive information")

        return findings

    def _check_url(self, url: str) -> _Findings:
        findings = _Findings()
        stripped = url.strip()
        if not stripped:
            findings.errors.append("URL cannot be empty")
            return findings

        if JAVASCRIPT_SCHEME_RE.search(stripped):
            findings.errors.append("URL contains an embedded javascript: scheme")
        if SCRIPT_TAG_RE.search(stripped):
            findings.errors.append("URL contains inline script content")

        try:
            parsed = urlsplit(stripped)
            scheme = parsed.scheme.lower()
            host = (parsed.hostname or "").lower()
        except ValueError:
            findings.errors.append("Invalid URL format")
            return findings

        if not scheme or (scheme in ("http", "https") and not host):
            findings.errors.append("Invalid URL format")
            return findings

        if scheme not in self._allowed_schemes:
            findings.errors.append(f"URL scheme {scheme}: is not allowed")
        if scheme == "data":
            findings.errors.append("Data URLs are not allowed for navigation")

        if host and self.is_domain_blocked(host):
            findings.errors.append(f"Domain {host} is blocked")

        if scheme == "http":
            findings.warnings.append("HTTP URLs are less secure than HTTPS")
        if host in LOCAL_HOSTS or host.endswith(".localhost"):
            findings.warnings.append("Localhost URLs may not be accessible")

        return findings

    def _check_selector(self, selector: str) -> _Findings:
        findings = _Findings()
        if not selector.strip():
            findings.errors.append("Selector cannot be empty")
            return findings

        if len(selector) > self.config.max_selector_length:
            findings.errors.append(
                f"Selector is longer than {self.config.max_selector_length} characters"
            )

        for pattern in find_selector_injections(selector):
            findings.errors.append(f"Selector contains potentially dangerous pattern: {pattern}")

        return findings

    def _check_security_rules(self, view: Mapping[str, Any], context: Optional[CommandContext]) -> _Findings:
        findings = _Findings()
        for rule in list(self._rules):
            try:
                outcome = rule.evaluate(view, context)
            except Exception as exc:
                logger.warning("Security rule %s raised: %s", rule.name, exc)
                message = f"Security rule '{rule.name}' could not be evaluated"
                findings.errors.append(message)
                findings.security_issues.append(message)
                continue

            if outcome.passed:
                continue
            message = outcome.message or rule.description
            if outcome.severity == RuleSeverity.ERROR:
                findings.errors.append(message)
                findings.security_issues.append(message)
            else:
                findings.warnings.append(message)
        return findings

    def _check_intent_security(self, view: Mapping[str, Any]) -> _Findings:
        findings = _Findings()
        params = view["parameters"]
        intent = view.get("intent")
        url = params.get("url") if isinstance(params.get("url"), str) else ""
        value = params.get("value") if isinstance(params.get("value"), str) else ""
        selector = params.get("selector") if isinstance(params.get("selector"), str) else ""

        if intent == "navigate" and any(word in url.lower() for word in ("admin", "dashboard")):
            findings.security_issues.append("Navigation to administrative pages requires extra caution")
        elif intent == "fill" and any(word in value.lower() for word in ("password", "secret")):
            findings.security_issues.append("Filling passwords or secrets requires extra caution")
        elif intent == "submit" and any(word in (selector + url).lower() for word in ("payment", "checkout")):
            findings.security_issues.append("Submitting payment forms requires extra caution")
        elif intent == "download" and url.lower().split("?")[0].endswith(EXECUTABLE_EXTENSIONS):
            findings.security_issues.append("Downloading executable files requires extra caution")

        return findings

    def _check_context(self, view: Mapping[str, Any], context: Optional[CommandContext]) -> _Findings:
        findings = _Findings()
        if context is None:
            return findings
        params = view["parameters"]

        url = params.get("url")
        if view.get("intent") == "navigate" and context.current_url and isinstance(url, str):
            current = _normalize_url(context.current_url)
            if current is not None and current == _normalize_url(url):
                findings.warnings.append("Navigating to the same URL")

        selector = params.get("selector")
        if context.available_elements is not None and isinstance(selector, str) and selector:
            known = {element.selector for element in context.available_elements}
            if selector not in known:
                findings.warnings.append("Specified selector not found in available elements")

        return findings

    def _check_complexity(self, view: Mapping[str, Any]) -> _Findings:
        findings = _Findings()
        score = self.complexity_score(view)
        ceiling = self.config.max_command_complexity
        if score > ceiling:
            findings.errors.append(
                f"Command is too complex to execute reliably (score {score} > {ceiling})"
            )
        elif score > ceiling * 0.7:
            findings.warnings.append("Command complexity is close to the limit")
        return findings

    def _check_sequence(self, views: List[Mapping[str, Any]]) -> _Findings:
        findings = _Findings()
        for index in range(len(views) - 1):
            current, following = views[index], views[index + 1]
            if current.get("intent") == "navigate" and following.get("intent") != "navigate":
                findings.warnings.append(
                    f"Command {index + 2} runs right after navigation and may break if the page changes"
                )
            if (
                current.get("intent") == following.get("intent")
                and current.get("parameters") == following.get("parameters")
            ):
                findings.warnings.append(f"Commands {index + 1} and {index + 2} are duplicates")

        if len(views) > self.config.max_sequence_length:
            findings.warnings.append(
                f"Command sequence has {len(views)} steps; long sequences are more likely to fail"
            )
        return findings
