import pytest
from pydantic import ValidationError

from assistant_config import AssistantConfig, OrchestratorConfig, ValidatorConfig


def test_defaults():
    config = AssistantConfig()

    assert config.orchestrator.max_concurrent_tasks == 3
    assert config.orchestrator.task_timeout == 60.0
    assert config.orchestrator.enable_retry
    assert config.orchestrator.max_retries == 3
    assert config.orchestrator.retry_delay == 1.0
    assert config.orchestrator.enable_persistence
    assert config.validator.max_command_complexity == 10
    assert config.validator.allowed_schemes == {"https", "http", "file", "data"}
    assert "malware.com" in config.validator.blocked_domains


def test_validation_bounds():
    with pytest.raises(ValidationError):
        OrchestratorConfig(max_concurrent_tasks=0)
    with pytest.raises(ValidationError):
        ValidatorConfig(confirmation_confidence_threshold=1.5)


def test_configs_do_not_share_sets():
    first = ValidatorConfig()
    first.blocked_domains.add("example.org")

    assert "example.org" not in ValidatorConfig().blocked_domains


def test_testing_config():
    config = AssistantConfig.testing()

    assert not config.orchestrator.enable_persistence
    assert config.orchestrator.tick_interval < 0.1


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ASSISTANT_MAX_CONCURRENT_TASKS", "5")
    monkeypatch.setenv("ASSISTANT_ENABLE_RETRY", "false")
    monkeypatch.setenv("ASSISTANT_BLOCKED_DOMAINS", "Evil.com, bad.net")
    monkeypatch.setenv("ASSISTANT_DEBUG", "true")

    config = AssistantConfig.from_env(str(tmp_path / "missing.env"))

    assert config.orchestrator.max_concurrent_tasks == 5
    assert config.orchestrator.enable_retry is False
    assert config.validator.blocked_domains == {"evil.com", "bad.net"}
    assert config.debug_mode


def test_from_env_reads_dotenv_file(monkeypatch, tmp_path):
    monkeypatch.delenv("ASSISTANT_MAX_RETRIES", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("ASSISTANT_MAX_RETRIES=7\n")

    config = AssistantConfig.from_env(str(env_file))

    assert config.orchestrator.max_retries == 7
    monkeypatch.delenv("ASSISTANT_MAX_RETRIES", raising=False)
