#!/usr/bin/env python3
"""
Continuous Financial Health Monitor

Runs the health monitoring workflow on a fixed interval, keeps a bounded
history of health snapshots for trend analysis, and pushes each run's alerts
to the registered observers.

- History: ring buffer of ``MonitoringConfig.max_history`` snapshots (oldest evicted first)
- Overlap guard: a run that starts while another is active is skipped
- Observers: registered once at construction; Slack is added when a webhook is configured

Usage:
    python -m finsight.monitor --input data/input.json --once
    python -m finsight.monitor --user-id user-1 --db data/finsight.db

Environment Variables:
    MONITORING_INTERVAL_MS: Interval between runs (default 30 minutes)
    MONITORING_MAX_HISTORY: Snapshots retained for trend analysis (default 30)
    SLACK_WEBHOOK_URL: Slack webhook for alerts (optional)
    INSIGHT_API_KEY: Language-model key for narrative insights (optional)
"""

import argparse
import asyncio
import contextlib
import json
import sys
from collections import deque
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from finsight.collaborators.insight_client import HttpInsightClient
from finsight.collaborators.persistence import AccountRepository, SQLiteAccountRepository
from finsight.core import (
    ConfigurationError,
    MonitoringConfig,
    get_config,
    get_logger,
    send_slack_notification,
    setup_logging,
    track_performance,
)
from finsight.domain.analysis import HealthSnapshot
from finsight.insights import InsightService
from finsight.ml.alert_engine import AlertEngine
from finsight.utils.error_handling import log_and_continue
from finsight.workflows.financial_intelligence import FinancialIntelligenceWorkflow
from finsight.workflows.health_monitoring import HealthMonitoringWorkflow
from finsight.workflows.predictive_analytics import PredictiveAnalyticsWorkflow

logger = get_logger(__name__)

SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2, "critical": 3}


@runtime_checkable
class AlertObserver(Protocol):
    """Receives every alert dict produced by a monitoring run."""

    def notify(self, alert: dict[str, Any]) -> None: ...


class SlackAlertObserver:
    """
    Posts alerts at or above ``min_severity`` to a Slack incoming webhook.

    Args:
        webhook_url: Slack webhook URL (https only)
        min_severity: Lowest severity forwarded (low, medium, high, critical)
    """

    def __init__(self, webhook_url: str, min_severity: str = "high"):
        if min_severity not in SEVERITY_RANK:
            raise ConfigurationError(f"Unknown alert severity: {min_severity}")
        self.webhook_url = webhook_url
        self.min_severity = min_severity

    def notify(self, alert: dict[str, Any]) -> None:
        if SEVERITY_RANK.get(alert.get("severity", "low"), 0) < SEVERITY_RANK[self.min_severity]:
            return
        send_slack_notification(
            self.webhook_url,
            f"{alert['title']}: {alert['message']}",
            severity=alert["severity"],
            context={"type": alert["type"], "alert_id": alert["id"]},
        )


class HealthMonitor:
    """
    Owns the monitoring loop, the snapshot history and the alert observers.

    Args:
        config: Interval, history capacity, threshold overrides, Slack webhook
        workflow: Health monitoring workflow (built from ``config`` when None)
        observers: Alert observers notified after each run
        repository: Account source for inputs that carry only a ``user_id``
    """

    def __init__(
        self,
        config: MonitoringConfig | None = None,
        workflow: HealthMonitoringWorkflow | None = None,
        observers: Iterable[AlertObserver] = (),
        repository: AccountRepository | None = None,
    ):
        self.config = config or MonitoringConfig()
        self.workflow = workflow or HealthMonitoringWorkflow(
            alert_engine=AlertEngine(self.config.thresholds), repository=repository
        )

        observers = list(observers)
        if self.config.slack_webhook_url:
            observers.append(SlackAlertObserver(self.config.slack_webhook_url))
        self.observers: tuple[AlertObserver, ...] = tuple(observers)

        self.history: deque[HealthSnapshot] = deque(maxlen=self.config.max_history)
        self.is_running = False
        self._task: asyncio.Task | None = None

    @property
    def monitoring_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval_minutes(self) -> float:
        return self.config.interval_ms / 60_000

    async def run_once(self, input_data: Mapping[str, Any]) -> dict[str, Any] | None:
        """
        Run the workflow once, archive the snapshot and notify observers.

        Returns:
            Final workflow state, or None when another run is still active
        """
        if self.is_running:
            logger.warning("Monitoring run skipped: previous run still active")
            return None

        self.is_running = True
        try:
            with track_performance("monitor:run_once", alert_threshold_ms=30_000) as perf:
                state = await self.workflow.run(input_data, history=[s.to_dict() for s in self.history])
                perf["alerts"] = len(state.get("alerts", []))

            snapshot = state.get("current_snapshot")
            if snapshot:
                self.history.append(HealthSnapshot.from_dict(snapshot))

            self._notify(state.get("alerts", []))
            logger.info(
                "Monitoring run complete",
                extra={
                    "alerts": perf["alerts"],
                    "errors": len(state.get("errors", [])),
                    "history_points": len(self.history),
                    "duration_ms": perf["duration_ms"],
                },
            )
            return state
        finally:
            self.is_running = False

    def _notify(self, alerts: list[dict[str, Any]]) -> None:
        for observer in self.observers:
            for alert in alerts:
                try:
                    observer.notify(alert)
                except Exception as e:
                    log_and_continue(
                        logger, e, {"observer": type(observer).__name__, "alert_id": alert.get("id")}, "Alert delivery"
                    )

    async def start(self, input_data: Mapping[str, Any]) -> dict[str, Any]:
        """Run once immediately, then keep running every ``interval_ms``."""
        if self.monitoring_active:
            logger.warning("Monitoring already active")
            return {"success": False, "message": "Monitoring already active"}

        message = f"Continuous monitoring started with {self.interval_minutes:g} minute intervals"
        logger.info(message)

        await self.run_once(input_data)
        self._task = asyncio.create_task(self._loop(input_data))
        return {"success": True, "message": message, "monitoring_active": True}

    async def stop(self) -> dict[str, Any]:
        if not self.monitoring_active:
            return {"success": False, "message": "Monitoring not active"}

        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

        logger.info("Continuous monitoring stopped")
        return {"success": True, "message": "Continuous monitoring stopped", "monitoring_active": False}

    async def _loop(self, input_data: Mapping[str, Any]) -> None:
        while True:
            await asyncio.sleep(self.config.interval_ms / 1000)
            try:
                await self.run_once(input_data)
                logger.info("Continuous monitoring cycle completed")
            except Exception as e:
                log_and_continue(logger, e, {"history_points": len(self.history)}, "Monitoring cycle")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run continuous financial health monitoring")
    parser.add_argument("--input", type=Path, help="JSON file with transactions (and optionally accounts)")
    parser.add_argument("--user-id", help="Load accounts for this user from the account database")
    parser.add_argument("--db", type=Path, default=Path("data/finsight.db"), help="SQLite account database")
    parser.add_argument("--once", action="store_true", help="Run a single monitoring pass and exit")
    parser.add_argument("--predictive", action="store_true", help="Integrate the predictive analytics workflow")
    return parser.parse_args()


def load_input(args: argparse.Namespace) -> dict[str, Any]:
    input_data: dict[str, Any] = {"transactions": []}
    if args.input:
        with open(args.input, encoding="utf-8") as f:
            input_data = json.load(f)
    if args.user_id:
        input_data["user_id"] = args.user_id
    return input_data


async def main() -> int:
    """
    Returns:
        Exit code (0 = run completed, 1 = critical alerts raised)
    """
    setup_logging(level="INFO", json_output=False)
    args = parse_arguments()

    config = get_config()
    monitoring = config.get_monitoring_config()
    insight_config = config.get_insight_config()

    predictive = None
    client = HttpInsightClient(insight_config) if insight_config else None
    if args.predictive:
        intelligence = FinancialIntelligenceWorkflow(insight_service=InsightService(client))
        predictive = PredictiveAnalyticsWorkflow(intelligence=intelligence)

    workflow = HealthMonitoringWorkflow(
        alert_engine=AlertEngine(monitoring.thresholds),
        repository=SQLiteAccountRepository(args.db),
        predictive=predictive,
    )
    monitor = HealthMonitor(monitoring, workflow=workflow)
    input_data = load_input(args)

    try:
        if args.once:
            state = await monitor.run_once(input_data)
            critical = sum(1 for alert in (state or {}).get("alerts", []) if alert["severity"] == "critical")
            return 1 if critical else 0

        await monitor.start(input_data)
        try:
            await asyncio.Event().wait()
        finally:
            await monitor.stop()
        return 0
    finally:
        if client is not None:
            await client.aclose()


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)
    except ConfigurationError as e:
        logger.error("Invalid configuration", extra={"error": str(e)})
        sys.exit(2)


if __name__ == "__main__":
    cli()
