"""
Secure Configuration Management

Validated configuration objects for the pipeline collaborators and the health monitor.
The analytics core never reads the environment itself: callers build these objects
directly, or use get_config() at an entry point to load them from environment
variables (a .env file is honoured through python-dotenv).

Usage:
    from finsight.core.secure_config import get_config

    config = get_config()
    monitoring = config.get_monitoring_config()
    insight = config.get_insight_config()   # None when no API key is configured

Validation:
    - Fail-fast on invalid values (ConfigurationError)
    - Placeholder detection for API keys (e.g., "your_api_key")
    - HTTPS enforcement for service and webhook URLs
    - Positive bounds for monitoring interval and history length

Raises:
    ConfigurationError: If configuration is missing or invalid
"""

import math
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEFAULT_INSIGHT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_INSIGHT_MODEL = "gpt-4o-mini"
DEFAULT_MONITORING_INTERVAL_MS = 30 * 60 * 1000
DEFAULT_MAX_HISTORY = 30

_PLACEHOLDERS = ("your_api_key", "your_key", "example", "placeholder", "xxx", "replace_me")


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""


@dataclass
class InsightServiceConfig:
    """
    Validated language-model service configuration.
    """

    api_key: str
    base_url: str = DEFAULT_INSIGHT_BASE_URL
    model: str = DEFAULT_INSIGHT_MODEL
    timeout: float = 30.0
    max_tokens: int = 800
    temperature: float = 0.3

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate insight service configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.api_key:
            raise ConfigurationError("INSIGHT_API_KEY is required")

        if len(self.api_key) < 20:
            raise ConfigurationError(
                f"INSIGHT_API_KEY appears invalid (too short: {len(self.api_key)} chars, expected >=20)"
            )

        if any(placeholder in self.api_key.lower() for placeholder in _PLACEHOLDERS):
            raise ConfigurationError("INSIGHT_API_KEY contains a placeholder value - please set a real key")

        if not self.base_url.startswith("https://"):
            raise ConfigurationError(f"INSIGHT_BASE_URL must use HTTPS: {self.base_url}")

        if not self.model:
            raise ConfigurationError("INSIGHT_MODEL must not be empty")

        if self.timeout <= 0:
            raise ConfigurationError(f"Insight timeout must be positive, got {self.timeout}")

        if self.max_tokens <= 0:
            raise ConfigurationError(f"Insight max_tokens must be positive, got {self.max_tokens}")

        if not 0.0 <= self.temperature <= 2.0:
            raise ConfigurationError(f"Insight temperature must be within [0, 2], got {self.temperature}")


@dataclass
class MonitoringConfig:
    """
    Validated health-monitor configuration.

    ``thresholds`` overrides alert thresholds keyed ``"<metric>.<level>"``
    (for example ``{"overall_health.warning": 45}``); key names are checked by the
    alert engine that consumes them.
    """

    interval_ms: int = DEFAULT_MONITORING_INTERVAL_MS
    max_history: int = DEFAULT_MAX_HISTORY
    thresholds: dict[str, float] = field(default_factory=dict)
    slack_webhook_url: str | None = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate monitoring configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.interval_ms <= 0:
            raise ConfigurationError(f"Monitoring interval must be positive, got {self.interval_ms}ms")

        if self.max_history < 2:
            raise ConfigurationError(
                f"Monitoring history must retain at least 2 snapshots for trend analysis, got {self.max_history}"
            )

        for key, value in self.thresholds.items():
            if "." not in key:
                raise ConfigurationError(f"Threshold key must look like '<metric>.<level>': {key}")
            if isinstance(value, bool) or not isinstance(value, int | float) or not math.isfinite(value):
                raise ConfigurationError(f"Threshold {key} must be a finite number, got {value!r}")

        if self.slack_webhook_url and not self.slack_webhook_url.startswith("https://"):
            raise ConfigurationError(f"SLACK_WEBHOOK_URL must use HTTPS: {self.slack_webhook_url}")


class SecureConfig:
    """
    Loads and validates configuration from environment variables.

    Only entry points use this class; library code receives config objects.
    """

    def __init__(self):
        """Initialize configuration (loads .env file)."""
        load_dotenv()

    def get_optional_env(self, name: str) -> str | None:
        """Return an environment variable, treating empty strings as unset."""
        value = os.getenv(name)
        return value or None

    def get_insight_config(self) -> InsightServiceConfig | None:
        """
        Get validated language-model configuration.

        Returns:
            InsightServiceConfig, or None when INSIGHT_API_KEY is unset
            (insights then use deterministic fallbacks)

        Raises:
            ConfigurationError: If a key is set but the configuration is invalid
        """
        api_key = self.get_optional_env("INSIGHT_API_KEY")
        if api_key is None:
            return None

        return InsightServiceConfig(
            api_key=api_key,
            base_url=os.getenv("INSIGHT_BASE_URL", DEFAULT_INSIGHT_BASE_URL),
            model=os.getenv("INSIGHT_MODEL", DEFAULT_INSIGHT_MODEL),
            timeout=self._get_number("INSIGHT_TIMEOUT", 30.0),
        )

    def get_monitoring_config(self) -> MonitoringConfig:
        """
        Get validated monitoring configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        return MonitoringConfig(
            interval_ms=int(self._get_number("MONITORING_INTERVAL_MS", DEFAULT_MONITORING_INTERVAL_MS)),
            max_history=int(self._get_number("MONITORING_MAX_HISTORY", DEFAULT_MAX_HISTORY)),
            slack_webhook_url=self.get_optional_env("SLACK_WEBHOOK_URL"),
        )

    def _get_number(self, name: str, default: float) -> float:
        raw = self.get_optional_env(name)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError as e:
            raise ConfigurationError(f"{name} must be numeric, got {raw!r}") from e


_config_instance: SecureConfig | None = None


def get_config() -> SecureConfig:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        SecureConfig: The configuration manager
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = SecureConfig()
    return _config_instance
