"""Tests for configuration loading."""

import json

import pytest

from ..config import ConfigManager, require_ai, require_dealcloud
from ..error_handling import ConfigurationError
from ..models import AIConfig, DealCloudConfig

ENV_VARS = [
    "DEALCLOUD_SITE", "DEALCLOUD_CLIENT_ID", "DEALCLOUD_CLIENT_SECRET",
    "AI_PROVIDER", "AI_API_KEY", "AI_MODEL", "ANTHROPIC_API_KEY", "OPENAI_API_KEY",
    "CONTACTCORE_DRY_RUN", "CONTACTCORE_STRICT_EMPLOYERS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = ConfigManager(load_env_file=False).load()

    assert config.dealcloud.site is None
    assert config.dealcloud.token_scope == "data"
    assert config.ai.provider == "claude"
    assert config.processing.page_size == 1000
    assert config.processing.search_debounce == 0.3


def test_file_merged_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"dealcloud": {"site": "acme.dealcloud.com"}, "processing": {"dry_run": True}}))

    config = ConfigManager(config_path=str(path), load_env_file=False).load()

    assert config.dealcloud.site == "acme.dealcloud.com"
    assert config.dealcloud.timeout == 30.0
    assert config.processing.dry_run is True


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"dealcloud": {"site": "file.dealcloud.com"}}))
    monkeypatch.setenv("DEALCLOUD_SITE", "https://env.dealcloud.com")
    monkeypatch.setenv("DEALCLOUD_CLIENT_ID", "42")
    monkeypatch.setenv("CONTACTCORE_STRICT_EMPLOYERS", "yes")

    config = ConfigManager(config_path=str(path), load_env_file=False).load()

    assert config.dealcloud.site == "env.dealcloud.com"
    assert config.dealcloud.client_id == "42"
    assert config.processing.strict_employer_check is True


def test_api_key_follows_provider(monkeypatch):
    monkeypatch.setenv("AI_PROVIDER", "OpenAI")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "anthropic-key")
    monkeypatch.setenv("OPENAI_API_KEY", "openai-key")

    config = ConfigManager(load_env_file=False).load()

    assert config.ai.provider == "openai"
    assert config.ai.api_key == "openai-key"


def test_missing_file():
    with pytest.raises(ConfigurationError, match="Config file not found"):
        ConfigManager(config_path="/nonexistent/config.json", load_env_file=False).load()


def test_invalid_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    with pytest.raises(ConfigurationError, match="not valid JSON"):
        ConfigManager(config_path=str(path), load_env_file=False).load()


def test_require_dealcloud_names_missing_values():
    with pytest.raises(ConfigurationError) as exc_info:
        require_dealcloud(DealCloudConfig(site="acme.dealcloud.com"))

    assert "DEALCLOUD_CLIENT_ID" in str(exc_info.value)
    assert "DEALCLOUD_CLIENT_SECRET" in str(exc_info.value)
    assert "DEALCLOUD_SITE" not in str(exc_info.value)


def test_require_ai():
    with pytest.raises(ConfigurationError):
        require_ai(AIConfig())
    assert require_ai(AIConfig(api_key="k")).api_key == "k"


def test_save_template(tmp_path):
    path = tmp_path / "template.json"

    ConfigManager(load_env_file=False).save_template(str(path))

    template = json.loads(path.read_text())
    assert template["dealcloud"]["site"] == "mycompany.dealcloud.com"
    assert template["processing"]["page_size"] == 1000
