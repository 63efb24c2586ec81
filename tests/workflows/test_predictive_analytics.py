"""
Tests for finsight/workflows/predictive_analytics.py

Covers the prediction helpers and the four-stage run, including a failing
sub-analysis that must not stop the others.
"""

import json
from unittest.mock import MagicMock

import numpy as np
import pytest

from finsight.ml.isolation_detector import IsolationDetector
from finsight.workflows.predictive_analytics import (
    PredictiveAnalyticsWorkflow,
    behavior_predictions,
    health_direction,
    opportunity_predictions,
    risk_category,
    risk_predictions,
)

REFERENCE_RATIOS = {
    "net_cash_flow": 969.01,
    "savings_rate": 969.01 / 6200,
    "debt_ratio": 0.06,
    "emergency_fund_months": 10000 / 5230.99,
    "spending_variance": 1.89,
    "investment_ratio": 0.6,
}


@pytest.fixture
def workflow():
    return PredictiveAnalyticsWorkflow(isolation_detector=IsolationDetector(rng=np.random.default_rng(7)))


class TestPredictionHelpers:
    @pytest.mark.parametrize("score, category", [(0.0, "low"), (0.29, "low"), (0.3, "moderate"), (0.69, "moderate"), (0.7, "high")])
    def test_risk_category(self, score, category):
        assert risk_category(score) == category

    def test_risk_predictions(self):
        risks = risk_predictions(REFERENCE_RATIOS)

        assert risks["spending"] == {"score": 1.0, "category": "high", "horizon_months": 12}
        assert risks["credit"]["category"] == "low"
        assert risks["liquidity"]["score"] == pytest.approx(1 - (10000 / 5230.99) / 6)
        assert risks["cash_flow"]["category"] == "moderate"

    def test_liquidity_without_expenses(self):
        assert risk_predictions({"emergency_fund_months": None})["liquidity"]["score"] == 0.5

    def test_opportunity_predictions(self):
        opportunities = opportunity_predictions(REFERENCE_RATIOS, [{"category": "Travel", "total": 2500.0}])

        assert opportunities["savings_optimizations"][0]["potential_savings"] == pytest.approx(250.0)
        assert opportunities["risk_mitigations"][0]["current_months"] == pytest.approx(10000 / 5230.99)
        assert opportunities["investment_opportunities"] == []
        assert opportunities["debt_reductions"] == []

    def test_surplus_without_investments(self):
        opportunities = opportunity_predictions({"net_cash_flow": 500.0, "investment_ratio": 0.0, "debt_ratio": 0.5}, [])

        assert opportunities["investment_opportunities"][0]["amount"] == 500.0
        assert opportunities["debt_reductions"][0]["debt_ratio"] == 0.5
        assert opportunities["savings_optimizations"] == []

    def test_behavior_predictions(self):
        behavior = behavior_predictions(
            {"metrics": {"avg_daily_spending": 10.0}, "top_categories": [{"category": "Dining"}], "anomaly_count": 2}
        )
        assert behavior["projected_monthly_spending"] == 300.0
        assert behavior["dominant_category"] == "Dining"
        assert behavior["anomaly_pressure"] == 2
        assert behavior_predictions({})["dominant_category"] is None

    @pytest.mark.parametrize("score, direction", [(70.75, "stable"), (70.0, "at_risk"), (41.0, "at_risk"), (40.0, "declining")])
    def test_health_direction(self, score, direction):
        assert health_direction(score) == direction


class TestPredictiveRun:
    @pytest.mark.asyncio
    async def test_reference_run(self, workflow, sample_records, sample_accounts):
        state = await workflow.run(sample_records, accounts=sample_accounts, user_context={"focus": "test"})

        assert state["errors"] == []
        assert [phase["phase"] for phase in state["phases"]] == [
            "integrate_data_streams",
            "orchestrate_existing_analytics",
            "generate_ml_predictions",
            "integrate_predictions",
        ]
        results = state["analytics_results"]
        assert results["successful_workflows"] == 4
        assert results["total_workflows"] == 4
        assert results["forecastingResults"]["status"] == "ok"
        assert results["forecastingResults"]["data_points"] == 13
        assert state["input_data_streams"]["user_context"] == {"focus": "test"}

    @pytest.mark.asyncio
    async def test_integrated_predictions(self, workflow, sample_records, sample_accounts):
        state = await workflow.run(sample_records, accounts=sample_accounts)
        integrated = state["integrated_predictions"]

        assert integrated["health_forecast"]["direction"] == "stable"
        assert integrated["risk_assessment"]["high_risk_areas"] == ["spending"]
        assert integrated["actionable_insights"][0] == "High spending risk predicted over the next year"
        assert "Reduce Travel spending by 10%" in integrated["actionable_insights"]
        assert "Grow the emergency fund to three months of expenses" in integrated["actionable_insights"]
        assert integrated["strategic_recommendations"][0]["priority"] == "high"
        assert integrated["comprehensive_forecast"]["horizon_days"] == 12
        assert isinstance(integrated["overall_confidence"], int)
        assert 0 <= integrated["overall_confidence"] <= 100

    @pytest.mark.asyncio
    async def test_ml_predictions(self, workflow, sample_records, sample_accounts):
        state = await workflow.run(sample_records, accounts=sample_accounts)
        predictions = state["ml_predictions"]

        assert predictions["models_executed"] == 5
        assert predictions["behavior_predictions"]["dominant_category"] == "Travel"
        assert predictions["model_performance"]["analytics_coverage"] == 1.0
        assert len(predictions["time_series_forecasts"]["forecasts"]) == 12

    @pytest.mark.asyncio
    async def test_state_is_json_serializable(self, workflow, sample_records, sample_accounts):
        json.dumps(await workflow.run(sample_records, accounts=sample_accounts))

    @pytest.mark.asyncio
    async def test_failing_forecaster_isolated(self, sample_records, sample_accounts):
        forecaster = MagicMock()
        forecaster.forecast.side_effect = RuntimeError("model diverged")
        workflow = PredictiveAnalyticsWorkflow(forecaster=forecaster)

        state = await workflow.run(sample_records, accounts=sample_accounts)

        assert len(state["errors"]) == 1
        error = state["errors"][0]
        assert error["stageName"] == "orchestrate_existing_analytics"
        assert error["task"] == "forecasting"
        assert error["message"] == "model diverged"
        assert state["analytics_results"]["successful_workflows"] == 3
        assert "time_series_forecasts" not in state["ml_predictions"]
        assert state["ml_predictions"]["model_performance"]["analytics_coverage"] == 0.75
        assert state["integrated_predictions"]["confidence_metrics"]["forecast"] is None

    @pytest.mark.asyncio
    async def test_short_history_skips_forecast(self, workflow, sample_records):
        state = await workflow.run(sample_records[:5])

        assert state["analytics_results"]["forecastingResults"]["status"] == "insufficient_data"
        assert state["integrated_predictions"]["comprehensive_forecast"]["spending_trend"] == "flat"

    @pytest.mark.asyncio
    async def test_invalid_input(self, workflow):
        state = await workflow.run("not-a-list")

        stages = [error["stageName"] for error in state["errors"]]
        assert stages[0] == "integrate_data_streams"
        assert "orchestrate_existing_analytics" in stages
        assert "generate_ml_predictions" in stages
