"""
Tests for finsight/insights/synthesis.py
"""

import pytest

from finsight.insights import synthesis

HEALTH = {"overall": 3.8, "grade": "B", "components": {"cash_flow_health": {"score": 4.2}}}
WEAK_HEALTH = {"overall": 2.0, "components": {"cash_flow_health": {"score": 1.5}}}
ANOMALIES = {"total_anomalies": 3, "high_risk_anomalies": 1}
PATTERNS = {
    "temporal": {"seasonal_trends": {"Winter": {"total": 10.0}}},
    "categorical": {"top_categories": [{"category": "Travel", "total": 2500.0}], "category_trends": {"Travel": {}}},
    "insights": {"key_insights": ["a", "b", "c", "d"]},
    "confidence": 0.7,
}


class TestExecutiveSummary:
    def test_good_health(self):
        summary = synthesis.executive_summary(15, 14, HEALTH, ANOMALIES)
        assert summary["health_grade"] == "B"
        assert summary["anomalies_found"] == 3
        assert summary["summary"] == "Your financial health is good with stable patterns"

    def test_missing_inputs(self):
        summary = synthesis.executive_summary(0, 1, None, None)
        assert summary["health_score"] == 0.0
        assert summary["anomalies_found"] == 0
        assert summary["summary"] == "There are areas for financial improvement"


class TestFindingsAndRisk:
    def test_key_findings(self):
        findings = synthesis.key_findings(PATTERNS, ANOMALIES, HEALTH)
        assert findings == ["a", "b", "c", "3 spending anomalies detected", "Financial health score: 3.8/5.0"]

    def test_key_findings_empty(self):
        assert synthesis.key_findings(None, None, None) == []

    @pytest.mark.parametrize(
        "anomalies, health, level",
        [
            ({"total_anomalies": 6}, HEALTH, "High"),
            ({"total_anomalies": 0}, WEAK_HEALTH, "High"),
            (ANOMALIES, HEALTH, "Medium"),
            ({"total_anomalies": 1}, HEALTH, "Low"),
        ],
    )
    def test_risk_level(self, anomalies, health, level):
        assert synthesis.risk_assessment(anomalies, health)["level"] == level

    def test_trend_analysis(self):
        assert synthesis.trend_analysis(PATTERNS) == {
            "spending_trend": "Analyzed",
            "seasonal_patterns": "Detected",
            "category_trends": "Analyzed",
        }
        assert synthesis.trend_analysis(None)["spending_trend"] == "Not available"


class TestRecommendations:
    def test_opportunities(self):
        assert synthesis.opportunities(PATTERNS, HEALTH) == [
            "Good cash flow - consider investment opportunities",
            "Optimize Travel spending for savings",
        ]

    def test_immediate(self):
        assert synthesis.immediate_recommendations(ANOMALIES, WEAK_HEALTH) == [
            "Review high-risk anomalies immediately",
            "Address negative cash flow urgently",
        ]
        assert synthesis.immediate_recommendations(None, None) == []

    def test_overall_confidence(self):
        assert synthesis.overall_confidence({"confidence": 0.8}, None, {"confidence": 0.6}) == pytest.approx(0.7)
        assert synthesis.overall_confidence(None, {}) == synthesis.DEFAULT_CONFIDENCE
