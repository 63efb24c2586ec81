"""
Core Infrastructure - Logging, Configuration, Observability

Usage:
    from finsight.core import get_logger, MonitoringConfig

    logger = get_logger(__name__)
    config = MonitoringConfig(interval_ms=60_000, max_history=50)
"""

from .logging_config import JSONFormatter, get_logger, log_with_context, setup_logging
from .observability import send_slack_notification, track_performance
from .secure_config import (
    ConfigurationError,
    InsightServiceConfig,
    MonitoringConfig,
    SecureConfig,
    get_config,
)

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "log_with_context",
    "JSONFormatter",
    # Observability
    "track_performance",
    "send_slack_notification",
    # Configuration
    "get_config",
    "ConfigurationError",
    "SecureConfig",
    "InsightServiceConfig",
    "MonitoringConfig",
]
