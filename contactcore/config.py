"""Configuration management for contact intake."""

import copy
import os
import json
from pathlib import Path
from typing import Optional, Dict, Any

from dotenv import load_dotenv

from . import constants
from .models import Config, DealCloudConfig, AIConfig
from .error_handling import ConfigurationError
from .logging_config import get_logger

logger = get_logger(__name__)

_TRUE_VALUES = ("true", "1", "yes")


class ConfigManager:
    """Manages configuration loading and validation.

    Values are layered: built-in defaults, then an optional JSON file, then
    environment variables (a ``.env`` file in the working directory is read
    first). Missing credentials are not an error at load time; they are
    reported by :meth:`require_dealcloud` and :meth:`require_ai` when a
    component first needs them.
    """

    DEFAULT_CONFIG = {
        "dealcloud": {
            "token_scope": constants.DEFAULT_TOKEN_SCOPE,
            "timeout": constants.DEFAULT_HTTP_TIMEOUT,
        },
        "ai": {
            "provider": "claude",
            "max_tokens": constants.DEFAULT_MAX_TOKENS,
            "temperature": constants.DEFAULT_TEMPERATURE,
        },
        "processing": {
            "page_size": constants.DEFAULT_PAGE_SIZE,
            "search_limit": constants.SEARCH_PAGE_SIZE,
            "search_debounce": constants.SEARCH_DEBOUNCE_SECONDS,
            "token_expiry_margin": constants.TOKEN_EXPIRY_MARGIN,
            "strict_employer_check": False,
            "dry_run": False,
        },
    }

    def __init__(self, config_path: Optional[str] = None, load_env_file: bool = True):
        """Initialize config manager.

        Args:
            config_path: Path to a JSON config file. If None, uses defaults + env vars
            load_env_file: Whether to read a ``.env`` file before applying overrides
        """
        self.config_path = Path(config_path) if config_path else None
        self.load_env_file = load_env_file
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from file and environment."""
        if self._config:
            return self._config

        if self.load_env_file:
            load_dotenv(override=False)

        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path:
            if not self.config_path.exists():
                raise ConfigurationError(
                    f"Config file not found: {self.config_path}",
                    config_key="config_path",
                )
            with open(self.config_path, "r", encoding="utf-8") as f:
                try:
                    file_config = json.load(f)
                except json.JSONDecodeError as e:
                    raise ConfigurationError(
                        f"Config file is not valid JSON: {e}",
                        config_key="config_path",
                    ) from e
            config_dict = self._deep_merge(config_dict, file_config)

        config_dict = self._apply_env_overrides(config_dict)

        self._config = Config(**config_dict)
        return self._config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        dealcloud = config.setdefault("dealcloud", {})
        for key, env_key in (
            ("site", "DEALCLOUD_SITE"),
            ("client_id", "DEALCLOUD_CLIENT_ID"),
            ("client_secret", "DEALCLOUD_CLIENT_SECRET"),
        ):
            value = os.getenv(env_key)
            if value:
                dealcloud[key] = value

        ai = config.setdefault("ai", {})
        provider = os.getenv("AI_PROVIDER")
        if provider:
            ai["provider"] = provider.lower()

        if not ai.get("api_key"):
            # Prefer the key matching the configured provider
            if ai.get("provider", "claude") == "openai":
                candidates = ("OPENAI_API_KEY", "AI_API_KEY", "ANTHROPIC_API_KEY")
            else:
                candidates = ("ANTHROPIC_API_KEY", "AI_API_KEY", "OPENAI_API_KEY")
            for env_key in candidates:
                value = os.getenv(env_key)
                if value:
                    ai["api_key"] = value
                    break

        model = os.getenv("AI_MODEL")
        if model:
            ai["model"] = model

        processing = config.setdefault("processing", {})
        if os.getenv("CONTACTCORE_DRY_RUN", "").lower() in _TRUE_VALUES:
            processing["dry_run"] = True

        if os.getenv("CONTACTCORE_STRICT_EMPLOYERS", "").lower() in _TRUE_VALUES:
            processing["strict_employer_check"] = True

        return config

    def save_template(self, path: str):
        """Save a configuration template file."""
        template = self._deep_merge(
            self.DEFAULT_CONFIG,
            {
                "dealcloud": {
                    "site": "mycompany.dealcloud.com",
                    "client_id": "YOUR_CLIENT_ID",
                    "client_secret": "YOUR_CLIENT_SECRET",
                },
                "ai": {
                    "api_key": "YOUR_AI_API_KEY",
                    "model": constants.DEFAULT_CLAUDE_MODEL,
                },
            },
        )

        with open(path, "w", encoding="utf-8") as f:
            json.dump(template, f, indent=2)

        logger.info("Configuration template saved", extra={"path": str(path)})

    def require_dealcloud(self) -> DealCloudConfig:
        """Return the DealCloud credential, failing if any part is missing."""
        return require_dealcloud(self.config.dealcloud)

    def require_ai(self) -> AIConfig:
        """Return the AI configuration, failing if no API key is set."""
        return require_ai(self.config.ai)

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            self._config = self.load()
        return self._config


def require_dealcloud(config: DealCloudConfig) -> DealCloudConfig:
    """Check that site, client id and client secret are all present."""
    missing = [
        env_key
        for key, env_key in (
            ("site", "DEALCLOUD_SITE"),
            ("client_id", "DEALCLOUD_CLIENT_ID"),
            ("client_secret", "DEALCLOUD_CLIENT_SECRET"),
        )
        if not getattr(config, key)
    ]
    if missing:
        raise ConfigurationError(
            "DealCloud credentials are not properly configured. "
            f"Missing: {', '.join(missing)}",
            config_key=missing[0],
        )
    return config


def require_ai(config: AIConfig) -> AIConfig:
    """Check that the AI provider has an API key."""
    if not config.api_key:
        raise ConfigurationError("AI API key not configured", config_key="ai.api_key")
    return config
