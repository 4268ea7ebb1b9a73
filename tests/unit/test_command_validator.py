"""
Unit tests for CommandValidator: structure, URL and selector checks, security
rules, risk scoring, confirmation gating and batch/sequence checks.
"""
import pytest

from assistant_config import ValidatorConfig
from command_validator import CommandValidator
from models import CommandContext, ComplexityTier, ElementInfo, RiskLevel, SecurityLevel
from security_rules import RuleOutcome, SecurityRule
from tests.conftest import make_command


class TestStructure:
    """Malformed input becomes errors, never exceptions"""

    def test_valid_navigation(self, validator):
        result = validator.validate(make_command("navigate", url="https://example.com"))

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.risk_level == RiskLevel.LOW
        assert not result.requires_confirmation

    def test_navigate_without_url_is_invalid(self, validator):
        result = validator.validate(make_command("navigate"))

        assert not result.is_valid
        assert "URL is required for navigation commands" in result.errors

    def test_non_mapping_command(self, validator):
        result = validator.validate("click the button")

        assert not result.is_valid
        assert result.errors
        assert result.risk_level == RiskLevel.HIGH
        assert result.requires_confirmation

    def test_unknown_intent_from_mapping(self, validator):
        result = validator.validate(
            {"intent": "teleport", "parameters": {}, "confidence": 0.9, "original_text": "beam me up"}
        )

        assert not result.is_valid
        assert "Unknown command intent: teleport" in result.errors
        assert result.sanitized_command is not None
        assert result.sanitized_command.intent.value == "unknown"

    def test_bad_confidence_and_missing_text(self, validator):
        result = validator.validate({"intent": "scroll", "confidence": "very"})

        assert "Confidence must be a number between 0 and 1" in result.errors
        assert "Original text is required" in result.errors
        assert result.requires_confirmation

    def test_parameters_must_be_mapping(self, validator):
        result = validator.validate(
            {"intent": "scroll", "parameters": ["down"], "confidence": 0.9, "original_text": "scroll"}
        )

        assert "Command parameters must be a mapping" in result.errors

    def test_non_string_intent(self, validator):
        result = validator.validate(
            {"intent": ["navigate"], "parameters": {}, "confidence": 0.9, "original_text": "go"}
        )

        assert not result.is_valid
        assert "Command intent must be a string" in result.errors
        assert "Command intent is required" in result.errors
        assert result.sanitized_command.intent.value == "unknown"
        assert result.requires_confirmation

    def test_non_string_tiers(self, validator):
        result = validator.validate(
            {
                "intent": "scroll",
                "parameters": {"direction": "down"},
                "confidence": 0.9,
                "original_text": "scroll down",
                "complexity": {"tier": 1},
                "security_level": ["high"],
            }
        )

        assert not result.is_valid
        assert "Complexity must be a string" in result.errors
        assert "Security level must be a string" in result.errors

    def test_non_string_scroll_direction(self, validator):
        result = validator.validate(
            {"intent": "scroll", "parameters": {"direction": ["down"]}, "confidence": 0.9, "original_text": "scroll"}
        )

        assert not result.is_valid
        assert "Scroll direction must be one of up, down, left, right" in result.errors

    def test_batch_with_unhashable_fields(self, validator):
        commands = [
            make_command("navigate", url="https://example.com"),
            {"intent": {"name": "click"}, "parameters": {}, "confidence": 0.9, "original_text": "click"},
        ]

        result = validator.validate_batch(commands)

        assert not result.is_valid
        assert "Command 2: Command intent must be a string" in result.errors

    def test_low_confidence_warning(self, validator):
        result = validator.validate(make_command("scroll", confidence=0.2, direction="down"))

        assert "Low confidence command may not execute correctly" in result.warnings


class TestParameters:
    def test_fill_requires_selector_and_value(self, validator):
        result = validator.validate(make_command("fill"))

        assert "Selector is required for fill commands" in result.errors
        assert "Value is required for fill commands" in result.errors

    def test_click_without_target_only_warns(self, validator):
        result = validator.validate(make_command("click"))

        assert result.is_valid
        assert "Click command should have either a selector or target text" in result.warnings

    def test_invalid_scroll_direction(self, validator):
        result = validator.validate(make_command("scroll", direction="sideways"))

        assert "Scroll direction must be one of up, down, left, right" in result.errors

    def test_negative_duration(self, validator):
        result = validator.validate(make_command("wait", duration=-5))

        assert "Duration must be a non-negative number" in result.errors

    def test_long_duration_warns(self, validator):
        result = validator.validate(make_command("wait", duration=120000))

        assert result.is_valid
        assert "Duration exceeds 1 minute, consider breaking into smaller steps" in result.warnings

    def test_sensitive_value_warns(self, validator):
        result = validator.validate(make_command("fill", selector="#token", value="my api token"))

        assert "Value may contain sensitive information" in result.warnings

    def test_selector_too_long(self, validator):
        result = validator.validate(make_command("click", selector="#" + "a" * 600))

        assert "Selector is longer than 500 characters" in result.errors

    def test_selector_injection(self, validator):
        result = validator.validate(make_command("click", selector="img[onerror=alert(1)]"))

        assert not result.is_valid
        assert "Selector contains potentially dangerous pattern: onerror" in result.errors


class TestUrls:
    @pytest.mark.parametrize("url", ["javascript:alert(1)", "file:///etc/hosts"])
    def test_dangerous_schemes_are_security_issues(self, validator, url):
        result = validator.validate(make_command("navigate", url=url))

        assert not result.is_valid
        assert result.errors
        assert result.security_issues
        assert result.requires_confirmation

    def test_data_url_rejected(self, validator):
        result = validator.validate(make_command("navigate", url="data:text/html,hello"))

        assert "Data URLs are not allowed for navigation" in result.errors

    def test_disallowed_scheme(self, validator):
        result = validator.validate(make_command("navigate", url="ftp://example.com/file"))

        assert "URL scheme ftp: is not allowed" in result.errors

    def test_invalid_url_format(self, validator):
        result = validator.validate(make_command("navigate", url="not a url"))

        assert "Invalid URL format" in result.errors

    def test_blocked_domain_matches_subdomains(self, validator):
        result = validator.validate(make_command("navigate", url="https://login.malware.com/x"))

        assert "Domain login.malware.com is blocked" in result.errors

    def test_http_and_localhost_warnings(self, validator):
        result = validator.validate(make_command("navigate", url="http://localhost:8000"))

        assert result.is_valid
        assert "HTTP URLs are less secure than HTTPS" in result.warnings
        assert "Localhost URLs may not be accessible" in result.warnings


class TestRiskAndConfirmation:
    def test_low_confidence_requires_confirmation(self, validator):
        result = validator.validate(make_command("navigate", confidence=0.4, url="https://example.com"))

        assert result.is_valid
        assert result.requires_confirmation

    def test_admin_navigation_is_security_issue(self, validator):
        result = validator.validate(make_command("navigate", url="https://example.com/admin"))

        assert not result.is_valid
        assert "Navigation to administrative pages requires extra caution" in result.security_issues
        assert result.risk_level == RiskLevel.MEDIUM

    def test_high_risk_login(self, validator):
        command = make_command("login")
        command.security_level = SecurityLevel.HIGH

        result = validator.validate(command)

        assert result.risk_level == RiskLevel.HIGH
        assert result.requires_confirmation

    def test_too_complex(self, validator):
        command = make_command(
            "fill",
            selector="#field",
            value="x",
            options={"a": 1, "b": 2, "c": 3, "d": 4, "e": 5, "f": 6},
        )
        command.complexity = ComplexityTier.COMPLEX

        result = validator.validate(command)

        assert any("too complex to execute reliably" in e for e in result.errors)

    def test_validation_is_idempotent(self, validator):
        command = make_command("fill", selector="#email", value="javascript:alert(1)")
        context = CommandContext(current_url="https://example.com")

        first = validator.validate(command, context)
        second = validator.validate(command, context)

        assert first.risk_level == second.risk_level
        assert first.errors == second.errors
        assert first.warnings == second.warnings

    def test_javascript_value_is_sanitized(self, validator):
        result = validator.validate(make_command("fill", selector="#email", value="javascript:alert(1)"))

        assert not result.is_valid
        assert "JavaScript URLs are not allowed" in result.security_issues
        assert result.sanitized_command.parameters.value == "alert(1)"
        assert result.sanitized_command.parameters.selector == "#email"


class TestContext:
    def test_same_url_warning(self, validator):
        context = CommandContext(current_url="https://example.com")

        result = validator.validate(make_command("navigate", url="https://example.com/"), context)

        assert "Navigating to the same URL" in result.warnings

    def test_unknown_selector_warning(self, validator):
        context = {"available_elements": [{"selector": "#submit"}]}

        result = validator.validate(make_command("click", selector="#other"), context)

        assert result.is_valid
        assert "Specified selector not found in available elements" in result.warnings

    def test_known_selector(self, validator):
        context = CommandContext(available_elements=[ElementInfo(selector="#submit")])

        result = validator.validate(make_command("click", selector="#submit"), context)

        assert result.warnings == []


class TestRuleManagement:
    def test_custom_rule(self):
        def no_ftp(command, context):
            url = (command.get("parameters") or {}).get("url") or ""
            if url.startswith("ftp://"):
                return RuleOutcome.fail("FTP is not allowed")
            return RuleOutcome.ok()

        validator = CommandValidator(ValidatorConfig(allowed_schemes={"https", "ftp"}))
        validator.add_security_rule(SecurityRule("no_ftp", "Block FTP", no_ftp))

        result = validator.validate(make_command("navigate", url="ftp://example.com"))
        assert "FTP is not allowed" in result.security_issues

        assert validator.remove_security_rule("no_ftp")
        assert not validator.remove_security_rule("no_ftp")
        assert validator.validate(make_command("navigate", url="ftp://example.com")).is_valid

    def test_failing_rule_becomes_error(self, validator):
        def boom(command, context):
            raise RuntimeError("rule bug")

        validator.add_security_rule(SecurityRule("boom", "Always raises", boom))

        result = validator.validate(make_command("scroll", direction="down"))

        assert "Security rule 'boom' could not be evaluated" in result.errors
        assert not result.is_valid

    def test_blocked_domain_management(self, validator):
        validator.add_blocked_domain("Example.org")

        assert validator.is_domain_blocked("www.example.org")
        assert not validator.is_domain_blocked("notexample.org")
        assert validator.remove_blocked_domain("example.org")
        assert not validator.remove_blocked_domain("example.org")

    def test_rule_list_is_a_copy(self, validator):
        validator.security_rules.clear()

        assert len(validator.security_rules) == 3


class TestBatch:
    def test_twelve_clicks_warn_without_failing(self, validator):
        commands = [make_command("click", selector=f"#button-{i}") for i in range(12)]

        result = validator.validate_batch(commands)

        assert result.is_valid
        assert "Command sequence has 12 steps; long sequences are more likely to fail" in result.warnings
        assert len(result.sanitized_commands) == 12
        assert result.risk_level == RiskLevel.HIGH

    def test_errors_are_numbered(self, validator):
        commands = [make_command("navigate", url="https://example.com"), make_command("navigate")]

        result = validator.validate_batch(commands)

        assert not result.is_valid
        assert "Command 2: URL is required for navigation commands" in result.errors

    def test_navigation_followed_by_action(self, validator):
        commands = [
            make_command("navigate", url="https://example.com"),
            make_command("click", selector="#login"),
        ]

        result = validator.validate_batch(commands)

        assert "Command 2 runs right after navigation and may break if the page changes" in result.warnings

    def test_duplicate_consecutive_commands(self, validator):
        commands = [make_command("click", selector="#next"), make_command("click", selector="#next")]

        result = validator.validate_batch(commands)

        assert "Commands 1 and 2 are duplicates" in result.warnings

    def test_not_a_list(self, validator):
        result = validator.validate_batch("click everything")

        assert not result.is_valid
        assert result.errors == ["Commands must be provided as a list"]

    def test_sequence_risk_escalation(self, validator):
        assert validator.calculate_sequence_risk_level(RiskLevel.LOW, 1, []) == RiskLevel.LOW
        assert validator.calculate_sequence_risk_level(RiskLevel.LOW, 6, []) == RiskLevel.MEDIUM
        assert validator.calculate_sequence_risk_level(RiskLevel.LOW, 1, ["a", "b", "c"]) == RiskLevel.MEDIUM
        assert validator.calculate_sequence_risk_level(RiskLevel.MEDIUM, 20, ["a", "b", "c"]) == RiskLevel.HIGH
