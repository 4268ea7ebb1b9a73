from utils.sanitizer import (
    find_selector_injections,
    find_sensitive_data,
    sanitize_text,
)


class TestSanitizeText:
    def test_strips_script_blocks(self):
        assert sanitize_text("<script>alert(1)</script>#login") == "#login"

    def test_strips_javascript_scheme(self):
        assert sanitize_text("javascript:alert(1)") == "alert(1)"

    def test_nested_scheme_cannot_reassemble(self):
        assert sanitize_text("javajavascript:script:alert(1)") == "alert(1)"

    def test_strips_event_handlers(self):
        cleaned = sanitize_text('<img src=x onerror="alert(1)">')

        assert "onerror" not in cleaned
        assert "alert" not in cleaned

    def test_plain_text_untouched(self):
        assert sanitize_text("  john@example.com ") == "john@example.com"

    def test_non_string_passthrough(self):
        assert sanitize_text(None) is None


def test_selector_injections():
    found = find_selector_injections("img[onerror=alert(1)]")

    assert "onerror" in found
    assert find_selector_injections("button.primary") == []


def test_sensitive_data():
    assert find_sensitive_data("my password is hunter2") == ["password"]
    assert find_sensitive_data("hello world") == []
