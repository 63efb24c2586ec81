"""
Financial Health Monitoring Workflow

Eight sequential stages producing a 100-point health score, trend and risk
analysis, alerts, recommendations and a dashboard:

    1. gather_real_time_data          transactions, 30-day window, accounts
    2. calculate_health_scores        100-point score and the ratios behind it
    3. analyze_health_trends          trend over the supplied history + current snapshot
    4. assess_risks_and_warnings      component risk bands and trend early warnings
    5. generate_automated_alerts      threshold rules via AlertEngine
    6. create_proactive_recommendations
    7. integrate_predictive_analytics predictive workflow, or a simple forecast
    8. generate_health_dashboard      dashboard sections in ``final_output``

The workflow keeps no history of its own: callers pass earlier snapshots in the
``history`` channel (see ``finsight.monitor.HealthMonitor``).

Usage::

    from finsight.workflows.health_monitoring import HealthMonitoringWorkflow

    workflow = HealthMonitoringWorkflow(repository=SQLiteAccountRepository())
    state = await workflow.run({"transactions": records, "user_id": "user-1"}, history=[])
    print(state["final_output"]["key_metrics"])
"""

import sqlite3
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from finsight.collaborators.persistence import AccountRepository, account_statistics
from finsight.core import get_logger
from finsight.domain.analysis import HealthSnapshot
from finsight.domain.transactions import Account, TransactionValidationError
from finsight.ml.alert_engine import AlertEngine
from finsight.ml.health_scorer import HundredPointHealthScorer, recent_transactions
from finsight.ml.health_trends import analyze_health_trends
from finsight.pipeline import Channel, MergePolicy, Pipeline, PipelineSchema, Stage, dependency_error
from finsight.utils.datetime_utils import epoch_millis
from finsight.utils.error_handling import log_and_return_default
from finsight.workflows.common import (
    METADATA_CHANNEL,
    PHASES_CHANNEL,
    coerce_accounts,
    coerce_transactions,
    metadata_channel,
    phases_channel,
    require_records,
)
from finsight.workflows.health_dashboard import build_dashboard

if TYPE_CHECKING:
    from finsight.workflows.predictive_analytics import PredictiveAnalyticsWorkflow

logger = get_logger(__name__)

WORKFLOW_NAME = "health_monitoring"
WORKFLOW_VERSION = "3.7.3"

SIMPLE_FORECAST_CONFIDENCE = 60

HEALTH_MONITORING_SCHEMA = PipelineSchema(
    [
        Channel("input_data", MergePolicy.REPLACE),
        Channel("history", MergePolicy.REPLACE, list),
        Channel("real_time_data", MergePolicy.REPLACE),
        Channel("health_metrics", MergePolicy.REPLACE),
        Channel("financial_ratios", MergePolicy.REPLACE),
        Channel("current_snapshot", MergePolicy.REPLACE),
        Channel("trend_analysis", MergePolicy.REPLACE),
        Channel("risk_assessment", MergePolicy.SHALLOW_MERGE),
        Channel("alerts", MergePolicy.APPEND),
        Channel("recommendations", MergePolicy.APPEND),
        Channel("predictive_insights", MergePolicy.REPLACE),
        Channel("monitoring_status", MergePolicy.SHALLOW_MERGE),
        Channel("final_output", MergePolicy.REPLACE),
        metadata_channel(WORKFLOW_NAME, WORKFLOW_VERSION),
        phases_channel(),
    ]
)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _history(state: Mapping[str, Any]) -> list[HealthSnapshot]:
    return [HealthSnapshot.from_dict(item) for item in state.get("history") or []]


def simple_health_forecast(overall: float) -> dict[str, Any]:
    """Forecast from the current score alone, used when no predictive workflow is wired in."""
    if overall > 70:
        forecast = "stable"
    elif overall > 40:
        forecast = "at_risk"
    else:
        forecast = "declining"

    return {
        "health_forecast": forecast,
        "confidence": SIMPLE_FORECAST_CONFIDENCE,
        "ml_insights": {"simple_forecast": True, "message": "Basic forecast based on current health score"},
        "risk_predictions": {
            "short_term_risk": "high" if overall < 50 else "moderate",
            "long_term_risk": "high" if overall < 40 else "moderate",
        },
        "integration_success": False,
        "integration_time": _now_iso(),
    }


class HealthMonitoringWorkflow:
    """
    Args:
        alert_engine: Threshold rules (defaults to the standard thresholds)
        health_scorer: 100-point scorer
        repository: Account source used when the input carries a ``user_id`` but no accounts
        predictive: Predictive analytics workflow for stage 7 (simple forecast when None)
    """

    def __init__(
        self,
        alert_engine: AlertEngine | None = None,
        health_scorer: HundredPointHealthScorer | None = None,
        repository: AccountRepository | None = None,
        predictive: "PredictiveAnalyticsWorkflow | None" = None,
    ):
        self.alert_engine = alert_engine or AlertEngine()
        self.scorer = health_scorer or HundredPointHealthScorer()
        self.repository = repository
        self.predictive = predictive
        self.pipeline = Pipeline(
            WORKFLOW_NAME,
            HEALTH_MONITORING_SCHEMA,
            [
                Stage("gather_real_time_data", self.gather_real_time_data, {"real_time_data", "monitoring_status"}),
                Stage(
                    "calculate_health_scores",
                    self.calculate_health_scores,
                    {"health_metrics", "financial_ratios", "current_snapshot", "monitoring_status"},
                ),
                Stage("analyze_health_trends", self.analyze_health_trends, {"trend_analysis", "monitoring_status"}),
                Stage("assess_risks_and_warnings", self.assess_risks_and_warnings, {"risk_assessment"}),
                Stage("generate_automated_alerts", self.generate_automated_alerts, {"alerts", "monitoring_status"}),
                Stage("create_proactive_recommendations", self.create_proactive_recommendations, {"recommendations"}),
                Stage("integrate_predictive_analytics", self.integrate_predictive_analytics, {"predictive_insights"}),
                Stage("generate_health_dashboard", self.generate_health_dashboard, {"final_output"}),
            ],
            phase_channel=PHASES_CHANNEL,
        )

    async def run(self, input_data: Mapping[str, Any], history: Sequence[Mapping[str, Any]] = ()) -> dict[str, Any]:
        """
        Args:
            input_data: ``{"transactions": [...], "accounts": [...]?, "user_id": ...?}``
            history: Earlier snapshot dicts, oldest first
        """
        return await self.pipeline.invoke({"input_data": dict(input_data), "history": list(history)})

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def gather_real_time_data(self, state: Mapping[str, Any]) -> dict[str, Any]:
        input_data = state.get("input_data")
        if not isinstance(input_data, Mapping):
            raise TransactionValidationError("Invalid input data provided: expected a mapping")

        records = require_records(input_data.get("transactions", []))
        transactions, rejected = coerce_transactions(records)
        recent = recent_transactions(transactions)
        accounts = self._load_accounts(input_data)
        balances = account_statistics(accounts)["totals"]

        logger.info(
            "Real-time data gathered",
            extra={"transactions": len(transactions), "recent": len(recent), "accounts": len(accounts)},
        )
        return {
            "real_time_data": {
                "user_id": input_data.get("user_id"),
                "transactions": transactions,
                "recent_transactions": recent,
                "accounts": accounts,
                "real_time_balance": sum(t.amount for t in transactions),
                "account_balances": balances,
                "data_quality": {
                    "transaction_count": len(transactions),
                    "rejected_count": len(rejected),
                    "account_count": len(accounts),
                },
            },
            "monitoring_status": {"data_gathered": True, "last_update": _now_iso()},
        }

    def _load_accounts(self, input_data: Mapping[str, Any]) -> list[Account]:
        if input_data.get("accounts") is not None:
            return coerce_accounts(input_data["accounts"])

        user_id = input_data.get("user_id")
        if user_id is None or self.repository is None:
            return []

        try:
            return self.repository.get_accounts_by_user(user_id)
        except sqlite3.Error as e:
            return log_and_return_default(logger, e, {"user_id": user_id}, [], "Account lookup")

    def calculate_health_scores(self, state: Mapping[str, Any]) -> dict[str, Any]:
        data = state.get("real_time_data")
        errors = []
        if data is None:
            errors.append(dependency_error("calculate_health_scores", "No real-time data available"))
            data = {}

        recent = data.get("recent_transactions", [])
        accounts = data.get("accounts", [])
        ratios = self.scorer.ratios(recent, accounts)
        health = self.scorer.score(recent, accounts, ratios=ratios)

        return {
            "health_metrics": health,
            "financial_ratios": ratios,
            "current_snapshot": HealthSnapshot.from_score(health),
            "monitoring_status": {"health_calculated": True, "overall_health": health.overall},
            "errors": errors,
        }

    def analyze_health_trends(self, state: Mapping[str, Any]) -> dict[str, Any]:
        current = state.get("current_snapshot")
        if current is None:
            return {"errors": [dependency_error("analyze_health_trends", "No health score to trend")]}

        history = _history(state) + [current]
        trends = analyze_health_trends(history)
        return {
            "trend_analysis": trends,
            "monitoring_status": {"trends_analyzed": True, "history_points": len(history)},
        }

    def assess_risks_and_warnings(self, state: Mapping[str, Any]) -> dict[str, Any]:
        health = state.get("health_metrics")
        if health is None:
            return {"errors": [dependency_error("assess_risks_and_warnings", "No health score available")]}
        return {"risk_assessment": self.alert_engine.assess_risks(health, state.get("trend_analysis"))}

    def generate_automated_alerts(self, state: Mapping[str, Any]) -> dict[str, Any]:
        health = state.get("health_metrics")
        if health is None:
            return {"errors": [dependency_error("generate_automated_alerts", "No health score available")]}

        history = _history(state)
        previous = max(history, key=lambda snapshot: snapshot.timestamp) if history else None
        alerts = self.alert_engine.evaluate(
            health,
            state.get("financial_ratios"),
            state.get("risk_assessment"),
            state.get("trend_analysis"),
            previous=previous,
        )
        changes = self.alert_engine.change_insights(state["current_snapshot"], previous)
        return {"alerts": alerts, "monitoring_status": {"alerts_generated": len(alerts), "health_changes": changes}}

    def create_proactive_recommendations(self, state: Mapping[str, Any]) -> dict[str, Any]:
        health = state.get("health_metrics")
        if health is None:
            return {"errors": [dependency_error("create_proactive_recommendations", "No health score available")]}
        return {"recommendations": self.alert_engine.build_recommendations(health, state.get("trend_analysis"))}

    async def integrate_predictive_analytics(self, state: Mapping[str, Any]) -> dict[str, Any]:
        health = state.get("health_metrics")
        overall = health.overall if health is not None else 0.0
        data = state.get("real_time_data") or {}

        if self.predictive is None or not data:
            return {"predictive_insights": simple_health_forecast(overall)}

        result = await self.predictive.run(
            data["transactions"],
            accounts=data["accounts"],
            user_context={"focus": "health_monitoring", "health_score": overall},
        )
        integrated = result.get("integrated_predictions")
        if not integrated:
            logger.warning(
                "Predictive analytics produced no predictions, using simple forecast",
                extra={"errors": len(result.get("errors", []))},
            )
            return {"predictive_insights": simple_health_forecast(overall)}

        return {
            "predictive_insights": {
                "health_forecast": integrated["health_forecast"]["direction"],
                "confidence": integrated["overall_confidence"],
                "ml_insights": result.get("ml_predictions") or {},
                "risk_predictions": integrated["risk_assessment"],
                "integration_success": True,
                "integration_time": _now_iso(),
            }
        }

    def generate_health_dashboard(self, state: Mapping[str, Any]) -> dict[str, Any]:
        metadata = state.get(METADATA_CHANNEL) or {}
        execution_time = epoch_millis() - int(metadata.get("start_time", epoch_millis()))
        health = state.get("health_metrics")
        if health is None:
            return {
                "final_output": {
                    "success": False,
                    "error": "No health metrics available",
                    "execution_time": execution_time,
                    "timestamp": _now_iso(),
                },
                "errors": [dependency_error("generate_health_dashboard", "No health metrics available")],
            }

        history = [snapshot.to_dict() for snapshot in _history(state)]
        if state.get("current_snapshot") is not None:
            history.append(state["current_snapshot"].to_dict())

        dashboard = build_dashboard(
            health.to_dict(),
            state.get("trend_analysis"),
            state.get("risk_assessment"),
            [alert.to_dict() for alert in state.get("alerts") or []],
            [recommendation.to_dict() for recommendation in state.get("recommendations") or []],
            state.get("monitoring_status"),
            history,
        )
        dashboard["predictions"] = state.get("predictive_insights") or {}
        return {
            "final_output": {
                **dashboard,
                "execution_time": execution_time,
                "success": True,
                "timestamp": _now_iso(),
            }
        }


def create_health_monitoring_pipeline(
    alert_engine: AlertEngine | None = None, repository: AccountRepository | None = None
) -> Pipeline:
    return HealthMonitoringWorkflow(alert_engine=alert_engine, repository=repository).pipeline
