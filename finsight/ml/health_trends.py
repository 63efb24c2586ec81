"""
Health Trend Analysis

Summarizes the monitor's history of 100-point health snapshots: slope, direction,
strength, consistency and acceleration of the overall score, per-component
trends, and a one-step-ahead forecast with a heuristic confidence.

Usage::

    from finsight.ml.health_trends import analyze_health_trends

    trends = analyze_health_trends(history, component_names=score.components.keys())
    print(trends["trend_analysis"]["direction"])
"""

from collections.abc import Iterable, Sequence
from typing import Any

from finsight.core import get_logger
from finsight.domain.analysis import HealthSnapshot
from finsight.ml.trend_forecaster import fit_trend
from finsight.utils.statistics import clamp, mean, population_std

logger = get_logger(__name__)

DEFAULT_TREND_WINDOW = 30
MIN_TREND_POINTS = 2

INSUFFICIENT_DATA = "insufficient_data"


def slope(values: Sequence[float]) -> float:
    """Least-squares slope over index vs value; 0.0 below 2 points."""
    if len(values) < 2:
        return 0.0
    return fit_trend(values).slope


def change_rate(values: Sequence[float]) -> float:
    """(last - first) / |first|; 0.0 when first is 0 or below 2 points."""
    if len(values) < 2 or values[0] == 0:
        return 0.0
    return (values[-1] - values[0]) / abs(values[0])


def volatility(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 below 2 points."""
    if len(values) < 2:
        return 0.0
    return population_std(values)


def direction(values: Sequence[float]) -> str:
    trend = slope(values)
    if trend > 1:
        return "strongly_improving"
    if trend > 0.5:
        return "improving"
    if trend > -0.5:
        return "stable"
    if trend > -1:
        return "declining"
    return "strongly_declining"


def strength(values: Sequence[float]) -> float:
    """Slope magnitude scaled to 0-100."""
    return min(100.0, abs(slope(values)) * 20)


def consistency(values: Sequence[float]) -> int:
    """
    Share (0-100) of consecutive changes that go the dominant way.

    Unchanged steps count in the denominator only. Neutral 50 below 3 points.
    """
    if len(values) < 3:
        return 50
    changes = [values[i] - values[i - 1] for i in range(1, len(values))]
    positive = sum(1 for change in changes if change > 0)
    negative = sum(1 for change in changes if change < 0)
    return round(max(positive, negative) / len(changes) * 100)


def acceleration(values: Sequence[float]) -> float:
    """Slope of the second half minus slope of the first half."""
    if len(values) < 3:
        return 0.0
    middle = len(values) // 2
    return slope(values[middle:]) - slope(values[:middle])


def forecast_next(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    if len(values) < 2:
        return float(values[0])
    return values[-1] + slope(values)


def forecast_confidence(values: Sequence[float]) -> float:
    """Heuristic confidence (0-100) in ``forecast_next``; 30 below 3 points."""
    if len(values) < 3:
        return 30.0
    data_points = min(len(values) / 10, 5)
    confidence = consistency(values) * 0.4 + (100 - volatility(values)) * 0.4 + data_points * 4
    return clamp(confidence, 0.0, 100.0)


def analyze_health_trends(
    history: Iterable[HealthSnapshot],
    component_names: Iterable[str] | None = None,
    window: int = DEFAULT_TREND_WINDOW,
) -> dict[str, Any]:
    """
    Analyze the most recent ``window`` snapshots (oldest first).

    Args:
        history: Health snapshots, in any order
        component_names: Components to report (default: those of the latest snapshot)
        window: Number of most recent snapshots used

    Returns:
        Trend report, or ``{"trend_status": "insufficient_data", ...}`` with fewer
        than 2 snapshots
    """
    points = sorted(history, key=lambda snapshot: snapshot.timestamp)[-window:]

    if len(points) < MIN_TREND_POINTS:
        return {
            "trend_status": INSUFFICIENT_DATA,
            "message": "Need more historical data for trend analysis",
            "data_points": len(points),
        }

    overall = [snapshot.overall for snapshot in points]
    names = list(component_names) if component_names is not None else list(points[-1].components)

    component_trends: dict[str, dict[str, float]] = {}
    for name in names:
        values = [snapshot.components[name] for snapshot in points if name in snapshot.components]
        component_trends[name] = {
            "trend": slope(values),
            "change_rate": change_rate(values),
            "volatility": volatility(values),
        }

    trends = {
        "overall_trend": slope(overall),
        "component_trends": component_trends,
        "trend_analysis": {
            "direction": direction(overall),
            "strength": strength(overall),
            "consistency": consistency(overall),
            "acceleration": acceleration(overall),
        },
        "forecast": {
            "next_30_days": forecast_next(overall),
            "confidence": forecast_confidence(overall),
        },
        "historical_range": {
            "min": min(overall),
            "max": max(overall),
            "average": mean(overall),
        },
        "data_points": len(points),
    }

    logger.info(
        "Health trends analyzed",
        extra={"data_points": len(points), "direction": trends["trend_analysis"]["direction"]},
    )
    return trends
