"""
Predictive Analytics Workflow

Four sequential stages; the second fans out the existing analytics concurrently:

    1. integrate_data_streams          parse transactions/accounts, data quality
    2. orchestrate_existing_analytics  forecasting, intelligence, health, anomaly (parallel)
    3. generate_ml_predictions         forecasts, anomaly/behavior/risk/opportunity predictions
    4. integrate_predictions           health forecast, confidence, insights, risk assessment

A failing sub-analysis never stops the others: its error record lands in
``errors`` and the later stages work with what succeeded.

Usage::

    from finsight.workflows.predictive_analytics import PredictiveAnalyticsWorkflow

    workflow = PredictiveAnalyticsWorkflow()
    state = await workflow.run(records, accounts=accounts)
    print(state["integrated_predictions"]["overall_confidence"])
"""

from collections.abc import Mapping, Sequence
from typing import Any

from finsight.core import get_logger
from finsight.domain.transactions import Account, Transaction
from finsight.ml.health_scorer import FinancialRatios, HundredPointHealthScorer, recent_transactions
from finsight.ml.isolation_detector import IsolationDetector
from finsight.ml.patterns import daily_expense_series
from finsight.ml.trend_forecaster import TrendForecaster
from finsight.pipeline import (
    Channel,
    MergePolicy,
    Pipeline,
    PipelineSchema,
    Stage,
    SubAnalysis,
    dependency_error,
    run_all,
)
from finsight.utils.statistics import clamp, mean, safe_divide
from finsight.workflows.common import (
    METADATA_CHANNEL,
    PHASES_CHANNEL,
    coerce_accounts,
    coerce_transactions,
    metadata_channel,
    phases_channel,
    require_records,
)
from finsight.workflows.financial_intelligence import FinancialIntelligenceWorkflow

logger = get_logger(__name__)

WORKFLOW_NAME = "predictive_analytics"
WORKFLOW_VERSION = "3.7.2"

MIN_FORECAST_POINTS = 10  # series must be longer than this
FORECAST_HORIZON = 12
BEHAVIOR_HORIZON_MONTHS = 6
EMERGENCY_FUND_TARGET_MONTHS = 6
OPPORTUNITY_CONFIDENCE = 0.75

PREDICTIVE_ANALYTICS_SCHEMA = PipelineSchema(
    [
        Channel("input_data_streams", MergePolicy.SHALLOW_MERGE),
        Channel("analytics_results", MergePolicy.SHALLOW_MERGE),
        Channel("ml_predictions", MergePolicy.REPLACE),
        Channel("integrated_predictions", MergePolicy.REPLACE),
        metadata_channel(WORKFLOW_NAME, WORKFLOW_VERSION),
        phases_channel(),
    ]
)


# ---------------------------------------------------------------------------
# Prediction helpers
# ---------------------------------------------------------------------------


def risk_category(score: float) -> str:
    if score < 0.3:
        return "low"
    if score < 0.7:
        return "moderate"
    return "high"


def risk_predictions(ratios: Mapping[str, Any]) -> dict[str, Any]:
    """
    Risk scores in [0, 1] from the 100-point ratios.

    liquidity: shortfall against six months of emergency fund (0.5 without expenses)
    credit: debt ratio
    cash_flow: how far the savings rate sits below 50%
    spending: coefficient of variation of daily spending
    """
    months = ratios.get("emergency_fund_months")
    scores = {
        "liquidity": 0.5 if months is None else 1 - min(1.0, months / EMERGENCY_FUND_TARGET_MONTHS),
        "credit": min(1.0, ratios.get("debt_ratio", 0.0)),
        "cash_flow": clamp(0.5 - ratios.get("savings_rate", 0.0), 0.0, 1.0),
        "spending": min(1.0, ratios.get("spending_variance", 0.0)),
    }
    return {
        name: {"score": score, "category": risk_category(score), "horizon_months": FORECAST_HORIZON}
        for name, score in scores.items()
    }


def opportunity_predictions(ratios: Mapping[str, Any], top_categories: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    opportunities: dict[str, Any] = {
        "investment_opportunities": [],
        "savings_optimizations": [],
        "debt_reductions": [],
        "risk_mitigations": [],
        "confidence": OPPORTUNITY_CONFIDENCE,
    }

    if ratios.get("net_cash_flow", 0.0) > 0 and ratios.get("investment_ratio", 0.0) < 0.1:
        opportunities["investment_opportunities"].append(
            {"description": "Invest part of the monthly surplus", "amount": ratios["net_cash_flow"]}
        )
    if top_categories:
        top = top_categories[0]
        opportunities["savings_optimizations"].append(
            {
                "description": f"Reduce {top['category']} spending by 10%",
                "category": top["category"],
                "potential_savings": top["total"] * 0.1,
            }
        )
    if ratios.get("debt_ratio", 0.0) > 0.3:
        opportunities["debt_reductions"].append(
            {"description": "Prioritize paying down debt", "debt_ratio": ratios["debt_ratio"]}
        )
    months = ratios.get("emergency_fund_months")
    if months is not None and months < 3:
        opportunities["risk_mitigations"].append(
            {"description": "Grow the emergency fund to three months of expenses", "current_months": months}
        )
    return opportunities


def behavior_predictions(intelligence: Mapping[str, Any]) -> dict[str, Any]:
    metrics = intelligence.get("metrics") or {}
    top_categories = intelligence.get("top_categories") or []
    daily = metrics.get("avg_daily_spending", 0.0)
    return {
        "horizon_months": BEHAVIOR_HORIZON_MONTHS,
        "projected_monthly_spending": daily * 30,
        "dominant_category": top_categories[0]["category"] if top_categories else None,
        "health_grade": intelligence.get("health_grade"),
        "anomaly_pressure": intelligence.get("anomaly_count", 0),
    }


def health_direction(score: float) -> str:
    if score > 70:
        return "stable"
    if score > 40:
        return "at_risk"
    return "declining"


class PredictiveAnalyticsWorkflow:
    """
    Args:
        intelligence: Financial intelligence workflow run as a sub-analysis
        health_scorer: 100-point scorer
        isolation_detector: Multivariate anomaly detector
        forecaster: Daily spending forecaster
    """

    def __init__(
        self,
        intelligence: FinancialIntelligenceWorkflow | None = None,
        health_scorer: HundredPointHealthScorer | None = None,
        isolation_detector: IsolationDetector | None = None,
        forecaster: TrendForecaster | None = None,
    ):
        self.intelligence = intelligence or FinancialIntelligenceWorkflow()
        self.scorer = health_scorer or HundredPointHealthScorer()
        self.isolation = isolation_detector or IsolationDetector()
        self.forecaster = forecaster or TrendForecaster()
        self.pipeline = Pipeline(
            WORKFLOW_NAME,
            PREDICTIVE_ANALYTICS_SCHEMA,
            [
                Stage("integrate_data_streams", self.integrate_data_streams, {"input_data_streams", METADATA_CHANNEL}),
                Stage("orchestrate_existing_analytics", self.orchestrate_existing_analytics, {"analytics_results"}),
                Stage("generate_ml_predictions", self.generate_ml_predictions, {"ml_predictions"}),
                Stage(
                    "integrate_predictions",
                    self.integrate_predictions,
                    {"integrated_predictions", METADATA_CHANNEL},
                ),
            ],
            phase_channel=PHASES_CHANNEL,
        )

    async def run(
        self,
        transactions: Any,
        accounts: Any = None,
        user_context: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        streams = {"transactions": transactions, "accounts": accounts, "user_context": dict(user_context or {})}
        return await self.pipeline.invoke({"input_data_streams": streams})

    # ------------------------------------------------------------------
    # Sub-analyses
    # ------------------------------------------------------------------

    def forecast_spending(self, transactions: Sequence[Transaction]) -> dict[str, Any]:
        values, dates = daily_expense_series(transactions)
        if len(values) <= MIN_FORECAST_POINTS:
            return {"status": "insufficient_data", "data_points": len(values)}
        forecast = self.forecaster.forecast(values, dates, horizon=FORECAST_HORIZON, step="day")
        return {"status": "ok", "data_points": len(values), **forecast.to_dict()}

    async def run_intelligence(self, transactions: Sequence[Transaction]) -> dict[str, Any]:
        state = await self.intelligence.run(list(transactions))
        health = state.get("health_score") or {}
        patterns = state.get("spending_patterns") or {}
        return {
            "metrics": (state.get("transaction_data") or {}).get("metrics") or {},
            "top_categories": (patterns.get("categorical") or {}).get("top_categories") or [],
            "health_score": health.get("overall"),
            "health_grade": health.get("grade"),
            "anomaly_count": (state.get("anomalies") or {}).get("total_anomalies", 0),
            "insights": state.get("insights") or {},
            "errors": state.get("errors", []),
        }

    def score_health(self, transactions: Sequence[Transaction], accounts: Sequence[Account]) -> dict[str, Any]:
        recent = recent_transactions(transactions)
        ratios = FinancialRatios.compute(recent, accounts)
        return {"score": self.scorer.score(recent, accounts, ratios=ratios).to_dict(), "ratios": ratios.to_dict()}

    def detect_multivariate(self, transactions: Sequence[Transaction]) -> dict[str, Any]:
        return self.isolation.detect(transactions).to_dict()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def integrate_data_streams(self, state: Mapping[str, Any]) -> dict[str, Any]:
        streams = state.get("input_data_streams") or {}
        records = require_records(streams.get("transactions"))
        transactions, rejected = coerce_transactions(records)
        accounts = coerce_accounts(streams.get("accounts"))

        return {
            "input_data_streams": {
                "transactions": transactions,
                "accounts": accounts,
                "user_context": dict(streams.get("user_context") or {}),
                "data_quality": {
                    "transaction_count": len(transactions),
                    "rejected_count": len(rejected),
                    "account_count": len(accounts),
                    "completeness": safe_divide(len(transactions), len(records)),
                },
                "integrated": True,
            },
            METADATA_CHANNEL: {"current_phase": "integrate_data_streams"},
        }

    async def orchestrate_existing_analytics(self, state: Mapping[str, Any]) -> dict[str, Any]:
        streams = state.get("input_data_streams") or {}
        if not streams.get("integrated"):
            return {"errors": [dependency_error("orchestrate_existing_analytics", "Data streams not integrated")]}

        transactions = streams["transactions"]
        accounts = streams["accounts"]
        result = await run_all(
            [
                SubAnalysis("forecasting", self.forecast_spending, args=(transactions,)),
                SubAnalysis("intelligence", self.run_intelligence, args=(transactions,)),
                SubAnalysis("health", self.score_health, args=(transactions, accounts)),
                SubAnalysis("anomaly", self.detect_multivariate, args=(transactions,)),
            ],
            stage_name="orchestrate_existing_analytics",
        )
        return {
            "analytics_results": {**result.as_state(), "duration_ms": result.duration_ms},
            "errors": result.error_records(),
        }

    def generate_ml_predictions(self, state: Mapping[str, Any]) -> dict[str, Any]:
        results = state.get("analytics_results") or {}
        if not results:
            return {"errors": [dependency_error("generate_ml_predictions", "No analytics results available")]}

        forecasting = results.get("forecastingResults")
        intelligence = results.get("intelligenceResults")
        health = results.get("healthResults")
        anomaly = results.get("anomalyResults")

        predictions: dict[str, Any] = {}
        if forecasting and forecasting.get("status") == "ok":
            predictions["time_series_forecasts"] = forecasting
        if anomaly is not None:
            predictions["anomaly_predictions"] = {
                "expected_anomaly_rate": anomaly["detection_metrics"]["coverage"],
                "total_anomalies": anomaly["total_anomalies"],
                "high_severity_count": anomaly["high_severity_count"],
                "watch_list": anomaly["anomalies"][:5],
            }
        if intelligence is not None:
            predictions["behavior_predictions"] = behavior_predictions(intelligence)
        if health is not None:
            predictions["risk_predictions"] = risk_predictions(health["ratios"])

        predictions["opportunity_predictions"] = opportunity_predictions(
            (health or {}).get("ratios") or {}, (intelligence or {}).get("top_categories") or []
        )

        models_executed = len(predictions)
        predictions["model_performance"] = {
            "forecast_mape": (forecasting or {}).get("diagnostics", {}).get("mape"),
            "forecast_rmse": (forecasting or {}).get("diagnostics", {}).get("rmse"),
            "anomaly_coverage": anomaly["detection_metrics"]["coverage"] if anomaly else None,
            "analytics_coverage": safe_divide(
                results.get("successful_workflows", 0), results.get("total_workflows", 0)
            ),
        }
        predictions["models_executed"] = models_executed

        logger.info("ML predictions generated", extra={"models_executed": models_executed})
        return {"ml_predictions": predictions}

    def integrate_predictions(self, state: Mapping[str, Any]) -> dict[str, Any]:
        predictions = state.get("ml_predictions")
        if predictions is None:
            return {"errors": [dependency_error("integrate_predictions", "No ML predictions available")]}

        results = state.get("analytics_results") or {}
        health = results.get("healthResults") or {}
        score = (health.get("score") or {}).get("overall")
        forecasts = (predictions.get("time_series_forecasts") or {}).get("forecasts") or []
        slope = (predictions.get("time_series_forecasts") or {}).get("model", {}).get("trend", {}).get("slope", 0.0)
        risks = predictions.get("risk_predictions") or {}
        opportunities = predictions["opportunity_predictions"]

        confidence_parts = {
            "forecast": mean([point["confidence"] for point in forecasts]) if forecasts else None,
            "analytics_coverage": predictions["model_performance"]["analytics_coverage"],
            "opportunities": opportunities["confidence"],
        }
        known = [value for value in confidence_parts.values() if value is not None]
        overall_confidence = round(100 * mean(known))

        high_risks = [name for name, risk in risks.items() if risk["category"] == "high"]
        actionable = [f"High {name.replace('_', ' ')} risk predicted over the next year" for name in high_risks]
        actionable.extend(
            item["description"]
            for key in ("savings_optimizations", "debt_reductions", "risk_mitigations", "investment_opportunities")
            for item in opportunities[key]
        )

        integrated = {
            "health_forecast": {
                "current_score": score,
                "direction": health_direction(score) if score is not None else "unknown",
            },
            "comprehensive_forecast": {
                "spending_trend": "increasing" if slope > 0 else "decreasing" if slope < 0 else "flat",
                "projected_spending": sum(point["forecast"] for point in forecasts),
                "horizon_days": len(forecasts),
                "projected_monthly_spending": (predictions.get("behavior_predictions") or {}).get(
                    "projected_monthly_spending"
                ),
            },
            "confidence_metrics": {**confidence_parts, "overall_confidence": overall_confidence},
            "actionable_insights": actionable,
            "strategic_recommendations": [
                {"title": insight, "priority": "high" if index < len(high_risks) else "medium"}
                for index, insight in enumerate(actionable)
            ],
            "risk_assessment": {
                "risk_scores": {name: risk["score"] for name, risk in risks.items()},
                "high_risk_areas": high_risks,
                "overall_risk": max((risk["score"] for risk in risks.values()), default=0.0),
            },
            "overall_confidence": overall_confidence,
        }

        logger.info(
            "Predictions integrated",
            extra={"overall_confidence": overall_confidence, "insights": len(actionable)},
        )
        return {
            "integrated_predictions": integrated,
            METADATA_CHANNEL: {"current_phase": "integrate_predictions"},
        }


def create_predictive_analytics_pipeline() -> Pipeline:
    return PredictiveAnalyticsWorkflow().pipeline
