"""
Tests for finsight/core/secure_config.py

Environment variables are set through monkeypatch; load_dotenv is patched out
so a developer's local .env cannot leak into the results.
"""

from unittest.mock import patch

import pytest

from finsight.core import secure_config
from finsight.core.secure_config import (
    DEFAULT_MAX_HISTORY,
    ConfigurationError,
    InsightServiceConfig,
    MonitoringConfig,
    SecureConfig,
    get_config,
)

VALID_KEY = "sk-live-0123456789abcdefghij"

ENV_VARS = [
    "INSIGHT_API_KEY",
    "INSIGHT_BASE_URL",
    "INSIGHT_MODEL",
    "INSIGHT_TIMEOUT",
    "MONITORING_INTERVAL_MS",
    "MONITORING_MAX_HISTORY",
    "SLACK_WEBHOOK_URL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("finsight.core.secure_config.load_dotenv"):
        yield monkeypatch


class TestInsightServiceConfig:
    def test_valid(self):
        config = InsightServiceConfig(api_key=VALID_KEY)
        assert config.base_url.startswith("https://")
        assert config.temperature == 0.3

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"api_key": ""}, "required"),
            ({"api_key": "short"}, "too short"),
            ({"api_key": "your_api_key_goes_here_123"}, "placeholder"),
            ({"api_key": VALID_KEY, "base_url": "http://insecure.test"}, "HTTPS"),
            ({"api_key": VALID_KEY, "model": ""}, "must not be empty"),
            ({"api_key": VALID_KEY, "timeout": 0}, "timeout"),
            ({"api_key": VALID_KEY, "max_tokens": -1}, "max_tokens"),
            ({"api_key": VALID_KEY, "temperature": 2.5}, "temperature"),
        ],
    )
    def test_invalid(self, kwargs, message):
        with pytest.raises(ConfigurationError, match=message):
            InsightServiceConfig(**kwargs)


class TestMonitoringConfig:
    def test_defaults(self):
        config = MonitoringConfig()
        assert config.interval_ms == 30 * 60 * 1000
        assert config.max_history == DEFAULT_MAX_HISTORY
        assert config.thresholds == {}

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"interval_ms": 0}, "interval"),
            ({"max_history": 1}, "at least 2"),
            ({"thresholds": {"overall": 10}}, "<metric>.<level>"),
            ({"thresholds": {"overall_health.warning": float("nan")}}, "finite"),
            ({"thresholds": {"overall_health.warning": True}}, "finite"),
            ({"slack_webhook_url": "http://hooks.slack.test/x"}, "HTTPS"),
        ],
    )
    def test_invalid(self, kwargs, message):
        with pytest.raises(ConfigurationError, match=message):
            MonitoringConfig(**kwargs)


class TestSecureConfig:
    def test_no_api_key_means_no_insight_config(self, clean_env):
        assert SecureConfig().get_insight_config() is None

    def test_insight_config_from_env(self, clean_env):
        clean_env.setenv("INSIGHT_API_KEY", VALID_KEY)
        clean_env.setenv("INSIGHT_MODEL", "local-model")
        clean_env.setenv("INSIGHT_TIMEOUT", "12.5")
        config = SecureConfig().get_insight_config()

        assert config.api_key == VALID_KEY
        assert config.model == "local-model"
        assert config.timeout == 12.5

    def test_invalid_key_fails_fast(self, clean_env):
        clean_env.setenv("INSIGHT_API_KEY", "placeholder")
        with pytest.raises(ConfigurationError):
            SecureConfig().get_insight_config()

    def test_monitoring_config_from_env(self, clean_env):
        clean_env.setenv("MONITORING_INTERVAL_MS", "60000")
        clean_env.setenv("MONITORING_MAX_HISTORY", "5")
        clean_env.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.test/services/T/B/X")
        config = SecureConfig().get_monitoring_config()

        assert config.interval_ms == 60000
        assert config.max_history == 5
        assert config.slack_webhook_url.endswith("/X")

    def test_non_numeric_value_rejected(self, clean_env):
        clean_env.setenv("MONITORING_INTERVAL_MS", "soon")
        with pytest.raises(ConfigurationError, match="must be numeric"):
            SecureConfig().get_monitoring_config()

    def test_empty_string_treated_as_unset(self, clean_env):
        clean_env.setenv("SLACK_WEBHOOK_URL", "")
        assert SecureConfig().get_monitoring_config().slack_webhook_url is None


def test_get_config_is_singleton(clean_env):
    clean_env.setattr(secure_config, "_config_instance", None)
    assert get_config() is get_config()
