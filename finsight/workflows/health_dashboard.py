"""
Health dashboard assembly for the health monitoring workflow.

Pure functions over the serialized stage outputs (health score dict, trend
report, risk assessment, alert and recommendation dicts, history snapshots).
"""

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

CHART_POINTS = 30
MAX_ACTION_ITEMS = 10
MAX_IMPROVEMENT_AREAS = 3
RECENT_ALERTS = 5

HEALTH_STATUS_MESSAGES = [
    (85, "Excellent financial health! Keep up the great work."),
    (70, "Good financial health with room for improvement."),
    (55, "Fair financial health. Focus on key areas for improvement."),
    (40, "Below average financial health. Action needed."),
]
POOR_HEALTH_MESSAGE = "Poor financial health. Immediate attention required."

HIGH_PRIORITIES = ("high", "critical")


def health_status_message(score: float) -> str:
    for floor, message in HEALTH_STATUS_MESSAGES:
        if score >= floor:
            return message
    return POOR_HEALTH_MESSAGE


def visual_indicators(component_scores: Mapping[str, float]) -> dict[str, dict[str, Any]]:
    indicators = {}
    for component, score in component_scores.items():
        if score >= 70:
            color, status = "green", "good"
        elif score >= 50:
            color, status = "yellow", "fair"
        else:
            color, status = "red", "poor"
        indicators[component] = {"score": score, "color": color, "status": status}
    return indicators


def improvement_areas(component_scores: Mapping[str, float]) -> list[dict[str, Any]]:
    """Three weakest components scoring below 70."""
    weak = sorted((item for item in component_scores.items() if item[1] < 70), key=lambda item: item[1])
    areas = []
    for component, score in weak[:MAX_IMPROVEMENT_AREAS]:
        areas.append(
            {
                "component": component.replace("_health", "").replace("_", " "),
                "score": score,
                "priority": "high" if score < 40 else "medium" if score < 60 else "low",
            }
        )
    return areas


def trend_summary(trends: Mapping[str, Any] | None) -> str:
    analysis = (trends or {}).get("trend_analysis")
    if not analysis:
        return "Insufficient data for trend analysis"
    return (
        f"Health trend is {analysis['direction']} with {analysis['strength']}% strength "
        f"and {analysis['consistency']}% consistency."
    )


def chart_data(history: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    points = sorted(history, key=lambda snapshot: snapshot.get("timestamp", 0))[-CHART_POINTS:]
    return [
        {
            "timestamp": point.get("timestamp", 0),
            "score": point.get("overall", 0.0),
            "date": datetime.fromtimestamp(point.get("timestamp", 0) / 1000, UTC).date().isoformat(),
        }
        for point in points
    ]


def risk_summary(risk: Mapping[str, Any]) -> str:
    critical = len(risk.get("critical_risks") or [])
    moderate = len(risk.get("moderate_risks") or [])
    low = len(risk.get("low_risks") or [])
    if critical:
        return f"{critical} critical risk(s) identified. Immediate action required."
    if moderate:
        return f"{moderate} moderate risk(s) detected. Monitor and address."
    if low:
        return f"{low} minor risk(s) present. Low priority for improvement."
    return "No significant risks detected."


def _count_severity(alerts: Sequence[Mapping[str, Any]], severity: str) -> int:
    return sum(1 for alert in alerts if alert.get("severity") == severity)


def alert_summary(alerts: Sequence[Mapping[str, Any]]) -> str:
    critical = _count_severity(alerts, "critical")
    warnings = _count_severity(alerts, "high")
    if critical:
        return f"{critical} critical alert(s) require immediate attention."
    if warnings:
        return f"{warnings} warning(s) need review."
    return "No active alerts."


def _high_priority(recommendations: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    return [r for r in recommendations if r.get("priority") in HIGH_PRIORITIES]


def _quick_wins(recommendations: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    # timeframes like "1-3 months" start within a month
    return [r for r in recommendations if "1" in (r.get("timeframe") or "")]


def recommendation_summary(recommendations: Sequence[Mapping[str, Any]]) -> str:
    return (
        f"{len(recommendations)} recommendations available "
        f"({len(_high_priority(recommendations))} high priority, {len(_quick_wins(recommendations))} quick wins)."
    )


def action_items(
    alerts: Sequence[Mapping[str, Any]],
    recommendations: Sequence[Mapping[str, Any]],
    risk: Mapping[str, Any],
) -> list[dict[str, Any]]:
    """Critical alerts, then high-priority recommendations, then critical risks; at most ten."""
    items: list[dict[str, Any]] = []
    for alert in alerts:
        if alert.get("severity") == "critical":
            items.append(
                {
                    "type": "alert_action",
                    "priority": "immediate",
                    "title": f"Address: {alert['title']}",
                    "description": alert.get("message", ""),
                    "source": "critical_alert",
                }
            )
    for recommendation in _high_priority(recommendations):
        items.append(
            {
                "type": "recommendation_action",
                "priority": recommendation["priority"],
                "title": recommendation["title"],
                "description": recommendation.get("description", ""),
                "action_items": list(recommendation.get("action_items", [])),
                "source": "recommendation",
            }
        )
    for critical_risk in risk.get("critical_risks") or []:
        items.append(
            {
                "type": "risk_action",
                "priority": "high",
                "title": f"Mitigate: {critical_risk['type'].replace('_', ' ')}",
                "description": critical_risk.get("message", ""),
                "source": "critical_risk",
            }
        )
    return items[:MAX_ACTION_ITEMS]


def build_dashboard(
    health: Mapping[str, Any],
    trends: Mapping[str, Any] | None,
    risk: Mapping[str, Any] | None,
    alerts: Sequence[Mapping[str, Any]],
    recommendations: Sequence[Mapping[str, Any]],
    monitoring_status: Mapping[str, Any] | None,
    history: Sequence[Mapping[str, Any]],
) -> dict[str, Any]:
    """
    Assemble the dashboard sections.

    Args:
        health: ``HealthScore.to_dict()`` of the 100-point score
        trends: Output of ``analyze_health_trends``
        risk: Output of ``AlertEngine.assess_risks``
        alerts: Alert dicts of this run
        recommendations: Recommendation dicts of this run
        monitoring_status: Accumulated monitoring status
        history: Snapshot dicts, current run included
    """
    trends = trends or {}
    risk = risk or {}
    overall = health.get("overall", 0.0)
    scores = {name: component["score"] for name, component in (health.get("components") or {}).items()}

    return {
        "overview": {
            "overall_health_score": overall,
            "overall_health_grade": health.get("grade", "Unknown"),
            "health_status": health_status_message(overall),
            "last_updated": datetime.now(UTC).isoformat(),
        },
        "component_health": {
            "scores": scores,
            "visual_indicators": visual_indicators(scores),
            "improvement_areas": improvement_areas(scores),
        },
        "trends": {
            **trends,
            "trend_summary": trend_summary(trends),
            "chart_data": chart_data(history),
        },
        "risks": {**risk, "risk_summary": risk_summary(risk)},
        "alerts": {
            "all_alerts": list(alerts),
            "critical_count": _count_severity(alerts, "critical"),
            "warning_count": _count_severity(alerts, "high"),
            "recent_alerts": list(alerts[-RECENT_ALERTS:]),
            "alert_summary": alert_summary(alerts),
        },
        "recommendations": {
            "all_recommendations": list(recommendations),
            "high_priority": _high_priority(recommendations),
            "quick_wins": _quick_wins(recommendations),
            "recommendation_summary": recommendation_summary(recommendations),
        },
        "monitoring": {**(monitoring_status or {}), "health_history_points": len(history)},
        "action_items": action_items(alerts, recommendations, risk),
        "key_metrics": {
            "health_score": overall,
            "health_grade": health.get("grade", "Unknown"),
            "trend_direction": (trends.get("trend_analysis") or {}).get("direction", "stable"),
            "risk_level": risk.get("overall_risk_level", "low"),
            "alert_count": len(alerts),
            "recommendation_count": len(recommendations),
        },
    }
