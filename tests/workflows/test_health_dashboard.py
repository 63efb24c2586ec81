"""
Tests for finsight/workflows/health_dashboard.py
"""

import pytest

from finsight.workflows.health_dashboard import (
    action_items,
    alert_summary,
    build_dashboard,
    chart_data,
    health_status_message,
    improvement_areas,
    recommendation_summary,
    risk_summary,
    trend_summary,
    visual_indicators,
)


def _alert(severity, title="Alert"):
    return {"type": "x", "severity": severity, "title": title, "message": f"{severity} message"}


def _recommendation(priority, timeframe="3-6 months", title="Rec"):
    return {"title": title, "priority": priority, "timeframe": timeframe, "description": "d", "action_items": ["a"]}


class TestStatusAndComponents:
    @pytest.mark.parametrize(
        "score, prefix",
        [(85, "Excellent"), (84.9, "Good"), (70, "Good"), (55, "Fair"), (40, "Below average"), (39.9, "Poor")],
    )
    def test_health_status_message(self, score, prefix):
        assert health_status_message(score).startswith(prefix)

    def test_visual_indicators(self):
        indicators = visual_indicators({"a": 70, "b": 50, "c": 49.9})
        assert indicators["a"]["color"] == "green"
        assert indicators["b"]["status"] == "fair"
        assert indicators["c"] == {"score": 49.9, "color": "red", "status": "poor"}

    def test_improvement_areas_weakest_first(self):
        scores = {"cash_flow_health": 65, "debt_health": 30, "savings_health": 55, "spending_health": 45, "liquidity_health": 90}
        areas = improvement_areas(scores)

        assert [area["component"] for area in areas] == ["debt", "spending", "savings"]
        assert [area["priority"] for area in areas] == ["high", "medium", "medium"]

    def test_no_improvement_areas(self):
        assert improvement_areas({"debt_health": 70}) == []


class TestSummaries:
    def test_trend_summary(self):
        trends = {"trend_analysis": {"direction": "improving", "strength": 40, "consistency": 80}}
        assert trend_summary(trends) == "Health trend is improving with 40% strength and 80% consistency."
        assert trend_summary({"trend_status": "insufficient_data"}) == "Insufficient data for trend analysis"
        assert trend_summary(None) == "Insufficient data for trend analysis"

    def test_chart_data_sorted_and_capped(self):
        history = [{"timestamp": (40 - i) * 86_400_000, "overall": float(i)} for i in range(40)]
        points = chart_data(history)

        assert len(points) == 30
        assert points[-1]["timestamp"] == 40 * 86_400_000
        assert points[-1]["score"] == 0.0
        assert points[0]["date"] == "1970-01-12"

    @pytest.mark.parametrize(
        "risk, prefix",
        [
            ({"critical_risks": [1], "moderate_risks": [1]}, "1 critical"),
            ({"moderate_risks": [1, 2]}, "2 moderate"),
            ({"low_risks": [1]}, "1 minor"),
            ({}, "No significant"),
        ],
    )
    def test_risk_summary(self, risk, prefix):
        assert risk_summary(risk).startswith(prefix)

    def test_alert_summary(self):
        assert alert_summary([_alert("critical"), _alert("high")]) == "1 critical alert(s) require immediate attention."
        assert alert_summary([_alert("high"), _alert("high")]) == "2 warning(s) need review."
        assert alert_summary([_alert("medium")]) == "No active alerts."

    def test_recommendation_summary(self):
        recommendations = [_recommendation("high", "1-3 months"), _recommendation("critical"), _recommendation("low", "1 month")]
        assert recommendation_summary(recommendations) == "3 recommendations available (2 high priority, 2 quick wins)."


class TestActionItems:
    def test_ordering(self):
        items = action_items(
            [_alert("high"), _alert("critical", "Cash Flow")],
            [_recommendation("medium"), _recommendation("high", title="Cut spending")],
            {"critical_risks": [{"type": "debt_health", "message": "m"}]},
        )

        assert [item["source"] for item in items] == ["critical_alert", "recommendation", "critical_risk"]
        assert items[0]["title"] == "Address: Cash Flow"
        assert items[1]["action_items"] == ["a"]
        assert items[2]["title"] == "Mitigate: debt health"

    def test_capped_at_ten(self):
        items = action_items([_alert("critical")] * 8, [_recommendation("high")] * 8, {})
        assert len(items) == 10
        assert items[-1]["source"] == "recommendation"


class TestBuildDashboard:
    def test_sections(self, health_factory):
        health = health_factory(72.0, {"debt_health": 30.0, "savings_health": 90.0}).to_dict()
        dashboard = build_dashboard(
            health,
            None,
            {"critical_risks": [], "overall_risk_level": "moderate"},
            [_alert("critical")],
            [_recommendation("high")],
            {"alerts_generated": 1},
            [{"timestamp": 1_700_000_000_000, "overall": 72.0}],
        )

        assert dashboard["overview"]["overall_health_score"] == 72.0
        assert dashboard["overview"]["health_status"].startswith("Good")
        assert dashboard["component_health"]["scores"] == {"debt_health": 30.0, "savings_health": 90.0}
        assert dashboard["trends"]["trend_summary"] == "Insufficient data for trend analysis"
        assert dashboard["alerts"]["critical_count"] == 1
        assert dashboard["monitoring"] == {"alerts_generated": 1, "health_history_points": 1}
        assert dashboard["key_metrics"] == {
            "health_score": 72.0,
            "health_grade": "B",
            "trend_direction": "stable",
            "risk_level": "moderate",
            "alert_count": 1,
            "recommendation_count": 1,
        }
