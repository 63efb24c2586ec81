"""
Insight synthesis for the financial intelligence report.

Combines the spending-pattern, anomaly and 5-point health results into an
executive summary, key findings, a coarse risk level and time-boxed
recommendations. Every helper accepts missing inputs (None) and degrades to
neutral output.
"""

from collections.abc import Mapping
from typing import Any

from finsight.ml.health_scorer import five_point_grade

DEFAULT_CONFIDENCE = 0.7

SHORT_TERM_RECOMMENDATIONS = [
    "Set up spending category budgets",
    "Monitor spending patterns weekly",
    "Review and categorize transactions regularly",
]

LONG_TERM_RECOMMENDATIONS = [
    "Build emergency fund",
    "Optimize spending across all categories",
    "Create long-term financial goals",
]


def _health_overall(health: Mapping[str, Any] | None) -> float:
    return float((health or {}).get("overall") or 0.0)


def _component_score(health: Mapping[str, Any] | None, name: str) -> float | None:
    component = ((health or {}).get("components") or {}).get(name)
    return component.get("score") if component else None


def _anomaly_total(anomalies: Mapping[str, Any] | None) -> int:
    return int((anomalies or {}).get("total_anomalies") or 0)


def executive_summary(
    transaction_count: int,
    day_span: int,
    health: Mapping[str, Any] | None,
    anomalies: Mapping[str, Any] | None,
) -> dict[str, Any]:
    score = _health_overall(health)
    return {
        "total_transactions": transaction_count,
        "health_score": score,
        "health_grade": five_point_grade(score),
        "anomalies_found": _anomaly_total(anomalies),
        "time_span": day_span,
        "summary": (
            "Your financial health is good with stable patterns"
            if score >= 3.5
            else "There are areas for financial improvement"
        ),
    }


def key_findings(
    patterns: Mapping[str, Any] | None,
    anomalies: Mapping[str, Any] | None,
    health: Mapping[str, Any] | None,
) -> list[str]:
    findings: list[str] = []
    insights = (patterns or {}).get("insights") or {}
    findings.extend(insights.get("key_insights", [])[:3])

    total = _anomaly_total(anomalies)
    if total > 0:
        findings.append(f"{total} spending anomalies detected")

    score = _health_overall(health)
    if score:
        findings.append(f"Financial health score: {score:.1f}/5.0")
    return findings


def trend_analysis(patterns: Mapping[str, Any] | None) -> dict[str, str]:
    patterns = patterns or {}
    temporal = patterns.get("temporal")
    categorical = patterns.get("categorical") or {}
    return {
        "spending_trend": "Analyzed" if temporal else "Not available",
        "seasonal_patterns": "Detected" if temporal and temporal.get("seasonal_trends") else "Not detected",
        "category_trends": "Analyzed" if categorical.get("category_trends") else "Not available",
    }


def risk_assessment(anomalies: Mapping[str, Any] | None, health: Mapping[str, Any] | None) -> dict[str, Any]:
    count = _anomaly_total(anomalies)
    score = _health_overall(health)

    if count > 5 or score < 2.5:
        level = "High"
    elif count > 2 or score < 3.5:
        level = "Medium"
    else:
        level = "Low"

    return {"level": level, "factors": [f"{count} anomalies detected", f"Health score: {score:.1f}/5.0"]}


def opportunities(patterns: Mapping[str, Any] | None, health: Mapping[str, Any] | None) -> list[str]:
    found = []
    cash_flow = _component_score(health, "cash_flow_health")
    if cash_flow is not None and cash_flow >= 4:
        found.append("Good cash flow - consider investment opportunities")

    categories = ((patterns or {}).get("categorical") or {}).get("top_categories") or []
    if categories:
        found.append(f"Optimize {categories[0]['category']} spending for savings")
    return found


def immediate_recommendations(anomalies: Mapping[str, Any] | None, health: Mapping[str, Any] | None) -> list[str]:
    recommendations = []
    if ((anomalies or {}).get("high_risk_anomalies") or 0) > 0:
        recommendations.append("Review high-risk anomalies immediately")

    cash_flow = _component_score(health, "cash_flow_health")
    if cash_flow is not None and cash_flow < 2:
        recommendations.append("Address negative cash flow urgently")
    return recommendations


def overall_confidence(*sections: Mapping[str, Any] | None) -> float:
    """Mean of the ``confidence`` values found in the given sections."""
    confidences = [section["confidence"] for section in sections if section and section.get("confidence")]
    return sum(confidences) / len(confidences) if confidences else DEFAULT_CONFIDENCE
