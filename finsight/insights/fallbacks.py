"""
Deterministic insight fallbacks.

Used when no language-model client is configured or the client fails. Each
fallback returns the same keys as the model-backed insight it replaces, with a
lower fixed confidence and ``raw_analysis`` set to None.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from finsight.domain.analysis import AnomalyRecord, HealthScore
from finsight.domain.transactions import MetricBundle

SPENDING_FALLBACK_CONFIDENCE = 0.7
ANOMALY_FALLBACK_CONFIDENCE = 0.6
HEALTH_FALLBACK_CONFIDENCE = 0.7
PERSONALIZED_FALLBACK_CONFIDENCE = 0.6

HIGH_RISK_THRESHOLD = 0.7
GOOD_COMPONENT = 3.5
WEAK_COMPONENT = 2.5


def busiest_day(patterns: Mapping[str, Any]) -> tuple[str, dict[str, float]] | None:
    """Day-of-week bucket with the largest total, or None without data."""
    daily = (patterns.get("temporal") or {}).get("daily_patterns") or {}
    if not daily:
        return None
    return max(daily.items(), key=lambda item: item[1]["total"])


def top_category(patterns: Mapping[str, Any]) -> dict[str, Any] | None:
    categories = (patterns.get("categorical") or {}).get("top_categories") or []
    return categories[0] if categories else None


def fallback_spending_insights(metrics: MetricBundle, patterns: Mapping[str, Any]) -> dict[str, Any]:
    category = top_category(patterns)
    day = busiest_day(patterns)

    return {
        "raw_analysis": None,
        "key_insights": [
            (
                f"Your largest expense category is {category['category']} at ${category['total']:.2f}"
                if category
                else "Your largest expense category is Unknown at $0"
            ),
            (
                f"You spend most on {day[0]} with an average of ${day[1]['avg']:.2f}"
                if day
                else "You spend most on weekdays with an average of $0"
            ),
            f"Your daily spending average is ${metrics.avg_daily_spending:.2f}",
            "You have positive cash flow" if metrics.net_income > 0 else "You have negative cash flow",
            f"You make {metrics.transaction_count} transactions over {metrics.day_span} days",
        ],
        "behavior_analysis": "Basic pattern analysis completed",
        "concerns": ["Negative cash flow"] if metrics.net_income < 0 else [],
        "confidence": SPENDING_FALLBACK_CONFIDENCE,
        "source": "fallback",
    }


def fallback_anomaly_insights(prioritized: Sequence[AnomalyRecord]) -> dict[str, Any]:
    high_risk = sum(1 for anomaly in prioritized if anomaly.risk_score > HIGH_RISK_THRESHOLD)
    kinds = list(dict.fromkeys(anomaly.kind for anomaly in prioritized))[:3]

    return {
        "raw_analysis": None,
        "risk_assessment": f"{high_risk} high-risk anomalies detected" if high_risk else "Low risk anomalies detected",
        "recommended_actions": [
            "Review unusual transactions for accuracy",
            "Monitor spending patterns for changes",
            "Consider setting spending alerts",
        ],
        "potential_causes": [f"Unusual {kind} patterns detected" for kind in kinds],
        "confidence": ANOMALY_FALLBACK_CONFIDENCE,
        "source": "fallback",
    }


def fallback_health_insights(health: HealthScore) -> dict[str, Any]:
    strengths = []
    improvements = []
    for name, component in health.components.items():
        label = name.replace("_", " ")
        if component.score >= GOOD_COMPONENT:
            strengths.append(f"Good {label}")
        elif component.score < WEAK_COMPONENT:
            improvements.append(f"Improve {label}")

    return {
        "raw_analysis": None,
        "strengths": strengths[:3],
        "improvements": improvements[:3],
        "personalized_advice": (
            "You have good financial habits, keep it up!"
            if health.overall >= GOOD_COMPONENT
            else "Focus on the lowest scoring areas for improvement"
        ),
        "confidence": HEALTH_FALLBACK_CONFIDENCE,
        "source": "fallback",
    }


def fallback_personalized_recommendations() -> dict[str, Any]:
    return {
        "raw_analysis": None,
        "personalized_tips": ["Review your spending regularly", "Set clear financial goals"],
        "goals": ["Maintain consistent spending patterns", "Monitor financial health monthly"],
        "confidence": PERSONALIZED_FALLBACK_CONFIDENCE,
        "source": "fallback",
    }
