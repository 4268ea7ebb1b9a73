"""
Shared pytest fixtures for all tests.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from assistant_config import AssistantConfig
from command_validator import CommandValidator
from models import CommandCandidate, CommandParameters, ParsingResult


def make_command(intent="navigate", original_text="do something", confidence=0.9, **params):
    """Build a CommandCandidate with the given parameters"""
    return CommandCandidate(
        intent=intent,
        parameters=CommandParameters(**params),
        confidence=confidence,
        original_text=original_text,
    )


@pytest.fixture
def command_factory():
    return make_command


@pytest.fixture
def validator():
    return CommandValidator()


@pytest.fixture
def test_config():
    """Fast in-memory orchestrator configuration"""
    return AssistantConfig.testing()


@pytest.fixture
def mock_parser():
    """Parser returning a single valid navigation command"""
    parser = MagicMock()
    parser.parse.return_value = ParsingResult(
        commands=[make_command("navigate", "open example.com", url="https://example.com")],
        confidence=0.9,
    )
    return parser


@pytest.fixture
def mock_page():
    """Mock Playwright async Page object"""
    page = AsyncMock()
    page.url = "https://example.com"
    page.title.return_value = "Example Page"
    page.screenshot.return_value = b"fake_screenshot"
    page.inner_text.return_value = "Hello world"
    page.content.return_value = "<html><body>Hello</body></html>"
    return page
