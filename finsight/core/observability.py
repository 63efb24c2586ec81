"""
Observability Module - Performance Tracking and Slack Notifications

Provides:
- track_performance(): context manager that times a block and warns when slow
- send_slack_notification(): webhook post used by the Slack alert observer

Usage:
    from finsight.core.observability import track_performance

    with track_performance("stage:detect_anomalies", alert_threshold_ms=2000) as ctx:
        ctx["transactions"] = len(transactions)
        run_detection()
"""

import time
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import requests

from finsight.core.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SLACK_TIMEOUT = 10  # seconds

SEVERITY_COLORS = {
    "low": "#36a64f",  # Green
    "medium": "#ff9900",  # Orange
    "high": "#ff0000",  # Red
    "critical": "#8b0000",  # Dark red
}


@contextmanager
def track_performance(operation_name: str, alert_threshold_ms: float = 5000.0) -> Generator[dict[str, Any], None, None]:
    """
    Context manager to track operation performance.

    Args:
        operation_name: Name of the operation being tracked
        alert_threshold_ms: Log a warning if the block takes longer than this

    Yields:
        Dictionary the caller can fill with context; ``duration_ms`` is added on exit

    Example:
        with track_performance("pipeline:financial_intelligence") as ctx:
            ctx["stage_count"] = 6
            await pipeline.invoke(initial)
    """
    context: dict[str, Any] = {}
    start_time = time.perf_counter()

    try:
        yield context
    finally:
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        log_context = {key: value for key, value in context.items() if key != "duration_ms"}
        context["duration_ms"] = duration_ms

        logger.debug(
            f"Performance: {operation_name}",
            extra={
                "operation": operation_name,
                "duration_ms": duration_ms,
                "threshold_ms": alert_threshold_ms,
                **log_context,
            },
        )

        if duration_ms > alert_threshold_ms:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                extra={
                    "operation": operation_name,
                    "duration_ms": duration_ms,
                    "threshold_ms": alert_threshold_ms,
                    "exceeded_by_ms": round(duration_ms - alert_threshold_ms, 2),
                    **log_context,
                },
            )


def send_slack_notification(
    webhook_url: str,
    message: str,
    severity: str = "low",
    context: dict[str, Any] | None = None,
    timeout: float = DEFAULT_SLACK_TIMEOUT,
) -> bool:
    """
    Send notification to a Slack incoming webhook.

    Args:
        webhook_url: Slack webhook URL (https only)
        message: Notification text
        severity: Alert severity (low, medium, high, critical)
        context: Extra fields rendered as attachment fields
        timeout: Request timeout in seconds

    Returns:
        True if Slack accepted the message, False otherwise
    """
    fields = [{"title": "Timestamp", "value": datetime.now(UTC).isoformat(), "short": True}]
    for key, value in (context or {}).items():
        fields.append({"title": key, "value": str(value), "short": True})

    payload = {
        "text": f"*{severity.upper()}*: {message}",
        "attachments": [{"color": SEVERITY_COLORS.get(severity, "#808080"), "fields": fields}],
    }

    try:
        response = requests.post(webhook_url, json=payload, timeout=timeout)
    except requests.RequestException as e:
        logger.error("Error sending Slack notification", extra={"error": str(e), "severity": severity})
        return False

    if response.status_code == 200:
        logger.info("Slack notification sent", extra={"severity": severity})
        return True

    logger.error(
        "Failed to send Slack notification",
        extra={"status_code": response.status_code, "response": response.text[:200]},
    )
    return False
