"""
String sanitization helpers for selectors and values.

Sanitization never rejects input; it strips known-dangerous substrings.
Detection helpers are used by the validator to report the same patterns.
"""
import re
from typing import Dict, List, Optional, Pattern

SCRIPT_BLOCK_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script\s*>", re.IGNORECASE)
SCRIPT_TAG_RE = re.compile(r"</?script\b[^>]*>?", re.IGNORECASE)
JAVASCRIPT_SCHEME_RE = re.compile(r"javascript\s*:", re.IGNORECASE)
EVENT_HANDLER_RE = re.compile(
    r"""\bon[a-z]+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]*)""",
    re.IGNORECASE,
)

# Patterns that mark a selector as an injection attempt
SELECTOR_INJECTION_PATTERNS: Dict[str, Pattern] = {
    "<script": re.compile(r"<script", re.IGNORECASE),
    "javascript:": JAVASCRIPT_SCHEME_RE,
    "data:": re.compile(r"\bdata\s*:", re.IGNORECASE),
    "onerror": re.compile(r"onerror", re.IGNORECASE),
    "onload": re.compile(r"onload", re.IGNORECASE),
    "event handler": re.compile(r"\bon[a-z]+\s*=", re.IGNORECASE),
}

SENSITIVE_DATA_PATTERNS: Dict[str, Pattern] = {
    "password": re.compile(r"password", re.IGNORECASE),
    "secret": re.compile(r"secret", re.IGNORECASE),
    "token": re.compile(r"token", re.IGNORECASE),
    "key": re.compile(r"key", re.IGNORECASE),
    "card": re.compile(r"credit.*card|\bcard\b", re.IGNORECASE),
    "ssn": re.compile(r"\bssn\b|social.*security", re.IGNORECASE),
}


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Strip script tags, javascript: schemes and inline event-handler attributes."""
    if not isinstance(value, str):
        return value
    cleaned = SCRIPT_BLOCK_RE.sub("", value)
    cleaned = SCRIPT_TAG_RE.sub("", cleaned)
    cleaned = EVENT_HANDLER_RE.sub("", cleaned)
    # Repeat until stable so "javajavascript:script:" cannot reassemble
    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = JAVASCRIPT_SCHEME_RE.sub("", cleaned)
    return cleaned.strip()


def find_selector_injections(selector: str) -> List[str]:
    """Return the names of injection patterns present in a selector."""
    return [name for name, pattern in SELECTOR_INJECTION_PATTERNS.items() if pattern.search(selector)]


def find_sensitive_data(value: str) -> List[str]:
    """Return the sensitive-data keywords that match a free-text value."""
    return [name for name, pattern in SENSITIVE_DATA_PATTERNS.items() if pattern.search(value)]
