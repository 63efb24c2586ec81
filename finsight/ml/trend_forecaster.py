"""
Time Series Forecaster - Trend, Seasonality and Autoregressive Correction

Simple forecasting model for spending and balance series:
- OLS trend fit (scikit-learn LinearRegression) over index vs value
- Seasonality scan over candidate periods 2..min(12, n // 2)
- Lag-1 autoregressive correction from first differences
- Widening confidence intervals from annualized return volatility

Heuristic, not a validated statistical model.

Usage::

    from finsight.ml.trend_forecaster import TrendForecaster

    forecaster = TrendForecaster()
    result = forecaster.forecast(values, dates=dates, horizon=12, step="day")
    for point in result.points:
        print(point.date, point.forecast, point.lower_bound, point.upper_bound)
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from finsight.core import get_logger

logger = get_logger(__name__)

SEASONALITY_THRESHOLD = 0.3
MAX_SEASONAL_PERIOD = 12
MA_COEFF = 0.3
AR_DAMPING = 0.1
TRADING_DAYS = 252
Z_95 = 1.96
FALLBACK_CONFIDENCE = 0.3

_STEP_OFFSETS = {"day": "days", "week": "weeks", "month": "months"}


@dataclass
class TrendFit:
    """Least-squares line over index vs value."""

    slope: float
    intercept: float
    correlation: float
    r_squared: float

    def fitted(self, n: int) -> np.ndarray:
        return self.intercept + self.slope * np.arange(n, dtype=float)

    def to_dict(self) -> dict[str, float]:
        return {
            "slope": self.slope,
            "intercept": self.intercept,
            "correlation": self.correlation,
            "r_squared": self.r_squared,
        }


@dataclass
class SeasonalityResult:
    """Best seasonal period found by the scan."""

    period: int
    strength: float
    is_significant: bool
    factors: list[float]
    candidates: dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "strength": self.strength,
            "is_significant": self.is_significant,
            "factors": list(self.factors),
            "candidates": {str(period): strength for period, strength in self.candidates.items()},
        }


@dataclass
class AutoregressiveModel:
    """Short-memory correction: ``ar_coeff * last_diff * step * 0.1``."""

    ar_coeff: float
    ma_coeff: float
    last_diff: float

    def correction(self, step: int) -> float:
        return self.ar_coeff * self.last_diff * step * AR_DAMPING

    def to_dict(self) -> dict[str, float]:
        return {"ar_coeff": self.ar_coeff, "ma_coeff": self.ma_coeff, "last_diff": self.last_diff}


@dataclass
class ForecastPoint:
    """Single horizon step."""

    step: int
    date: str | None
    forecast: float
    lower_bound: float
    upper_bound: float
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "date": self.date,
            "forecast": self.forecast,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "confidence": self.confidence,
        }


@dataclass
class TimeSeriesForecast:
    """Complete forecast with model components and in-sample diagnostics."""

    points: list[ForecastPoint]
    trend: TrendFit
    seasonality: SeasonalityResult
    autoregressive: AutoregressiveModel
    diagnostics: dict[str, float]
    is_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "forecasts": [point.to_dict() for point in self.points],
            "model": {
                "trend": self.trend.to_dict(),
                "seasonality": self.seasonality.to_dict(),
                "autoregressive": self.autoregressive.to_dict(),
            },
            "diagnostics": dict(self.diagnostics),
            "is_fallback": self.is_fallback,
        }


# ---------------------------------------------------------------------------
# Model components
# ---------------------------------------------------------------------------


def fit_trend(values: Sequence[float]) -> TrendFit:
    """
    Fit an OLS line over index vs value.

    Fewer than 2 points: slope 0, intercept equal to the only value (or 0).
    A constant series reports correlation and R squared of 0.
    """
    n = len(values)
    if n < 2:
        return TrendFit(slope=0.0, intercept=float(values[0]) if n else 0.0, correlation=0.0, r_squared=0.0)

    y = np.asarray(values, dtype=float)
    X = np.arange(n, dtype=float).reshape(-1, 1)
    model = LinearRegression()
    model.fit(X, y)

    if np.std(y) == 0:
        correlation = 0.0
        r_squared = 0.0
    else:
        correlation = float(np.corrcoef(X[:, 0], y)[0, 1])
        r_squared = float(model.score(X, y))

    return TrendFit(
        slope=float(model.coef_[0]),
        intercept=float(model.intercept_),
        correlation=correlation,
        r_squared=r_squared,
    )


def seasonal_strength(detrended: np.ndarray, period: int) -> float:
    """Variance of per-phase means over variance of the series, clipped to [0, 1]."""
    total_variance = float(np.var(detrended))
    if np.isclose(total_variance, 0.0):
        return 0.0
    phases = np.arange(len(detrended)) % period
    phase_means = np.array([detrended[phases == phase].mean() for phase in range(period)])
    return float(np.clip(np.var(phase_means) / total_variance, 0.0, 1.0))


def seasonal_factors(values: np.ndarray, period: int) -> list[float]:
    """Per-phase mean of the raw series divided by the overall mean (1.0 when the mean is 0)."""
    overall = float(values.mean()) if len(values) else 0.0
    if overall == 0:
        return [1.0] * period
    phases = np.arange(len(values)) % period
    return [float(values[phases == phase].mean() / overall) for phase in range(period)]


def detect_seasonality(
    values: Sequence[float],
    max_period: int = MAX_SEASONAL_PERIOD,
    threshold: float = SEASONALITY_THRESHOLD,
) -> SeasonalityResult:
    """
    Scan candidate periods and keep the one with maximal seasonal strength.

    Series too short for any candidate period (fewer than 4 points) report
    no seasonality with a single unit factor.
    """
    y = np.asarray(values, dtype=float)
    upper = min(max_period, len(y) // 2)
    if upper < 2:
        return SeasonalityResult(period=1, strength=0.0, is_significant=False, factors=[1.0])

    detrended = y - fit_trend(values).fitted(len(y))
    candidates = {period: seasonal_strength(detrended, period) for period in range(2, upper + 1)}

    # First period wins ties
    best_period = max(candidates, key=lambda period: (candidates[period], -period))
    strength = candidates[best_period]

    return SeasonalityResult(
        period=best_period,
        strength=strength,
        is_significant=strength > threshold,
        factors=seasonal_factors(y, best_period),
        candidates=candidates,
    )


def autocorrelation(values: Sequence[float], lag: int = 1) -> float:
    """Sample autocorrelation at ``lag``; 0.0 when undefined."""
    x = np.asarray(values, dtype=float)
    if len(x) <= lag:
        return 0.0
    centered = x - x.mean()
    denominator = float(np.sum(centered**2))
    if denominator == 0:
        return 0.0
    return float(np.sum(centered[lag:] * centered[:-lag]) / denominator)


def fit_autoregressive(values: Sequence[float]) -> AutoregressiveModel:
    """ARIMA(1,1,1)-style correction fitted on first differences."""
    differences = np.diff(np.asarray(values, dtype=float))
    last_diff = float(differences[-1]) if len(differences) else 0.0
    return AutoregressiveModel(ar_coeff=autocorrelation(differences, 1), ma_coeff=MA_COEFF, last_diff=last_diff)


def volatility(values: Sequence[float]) -> float:
    """
    Annualized volatility: population std of period-over-period returns times sqrt(252).

    Returns with a zero previous value are skipped.
    """
    returns = [
        (values[i] - values[i - 1]) / values[i - 1] for i in range(1, len(values)) if values[i - 1] != 0
    ]
    if not returns:
        return 0.0
    return float(np.std(returns) * math.sqrt(TRADING_DAYS))


def mape(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """Mean absolute percentage error; zero actuals contribute nothing but still count in n."""
    if not actual:
        return 0.0
    total = sum(abs((a - p) / a) for a, p in zip(actual, predicted, strict=True) if a != 0)
    return total / len(actual) * 100


def rmse(actual: Sequence[float], predicted: Sequence[float]) -> float:
    if not actual:
        return 0.0
    return math.sqrt(sum((a - p) ** 2 for a, p in zip(actual, predicted, strict=True)) / len(actual))


def forecast_confidence(step: int) -> float:
    """Point confidence, non-increasing in the step and never below 0.3."""
    return max(FALLBACK_CONFIDENCE, 0.9 - 0.05 * step)


def _future_date(last_date: Any, step: int, unit: str) -> str | None:
    if last_date is None:
        return None
    offset = pd.DateOffset(**{_STEP_OFFSETS[unit]: step})
    return (pd.Timestamp(last_date) + offset).isoformat()


# ---------------------------------------------------------------------------
# TrendForecaster
# ---------------------------------------------------------------------------


class TrendForecaster:
    """Combine trend, seasonality and autoregressive correction into a forecast."""

    def __init__(
        self,
        seasonality_threshold: float = SEASONALITY_THRESHOLD,
        max_period: int = MAX_SEASONAL_PERIOD,
    ) -> None:
        self.seasonality_threshold = seasonality_threshold
        self.max_period = max_period

    def forecast(
        self,
        values: Sequence[float],
        dates: Sequence[datetime | str] | None = None,
        horizon: int = 12,
        step: str = "month",
    ) -> TimeSeriesForecast:
        """
        Forecast ``horizon`` steps past the end of ``values``.

        Args:
            values: Ordered series values
            dates: Optional dates aligned with ``values`` (the last one anchors future dates)
            horizon: Number of steps to forecast
            step: Date increment per step: "day", "week" or "month"

        Returns:
            TimeSeriesForecast (``is_fallback`` set for series shorter than 2 points)

        Raises:
            ValueError: If step is unknown or horizon is negative
        """
        if step not in _STEP_OFFSETS:
            raise ValueError(f"Unknown forecast step: {step} (expected one of {sorted(_STEP_OFFSETS)})")
        if horizon < 0:
            raise ValueError(f"Horizon must be non-negative, got {horizon}")

        values = [float(value) for value in values]
        last_date = dates[-1] if dates else None

        if len(values) < 2:
            return self._fallback(values, last_date, horizon, step)

        trend = fit_trend(values)
        seasonality = detect_seasonality(values, self.max_period, self.seasonality_threshold)
        ar_model = fit_autoregressive(values)
        vol = volatility(values)
        last_value = values[-1]

        points: list[ForecastPoint] = []
        for i in range(1, horizon + 1):
            forecast = last_value + trend.slope * i
            if seasonality.is_significant:
                forecast *= seasonality.factors[(i - 1) % seasonality.period]
            forecast += ar_model.correction(i)

            half_width = vol * math.sqrt(i) * Z_95
            points.append(
                ForecastPoint(
                    step=i,
                    date=_future_date(last_date, i, step),
                    forecast=forecast,
                    lower_bound=forecast - half_width,
                    upper_bound=forecast + half_width,
                    confidence=forecast_confidence(i),
                )
            )

        fitted = trend.fitted(len(values)).tolist()
        diagnostics = {"mape": mape(values, fitted), "rmse": rmse(values, fitted), "volatility": vol}

        logger.info(
            "Forecast generated",
            extra={
                "points": len(values),
                "horizon": horizon,
                "slope": trend.slope,
                "seasonal_period": seasonality.period if seasonality.is_significant else None,
                "volatility": vol,
            },
        )

        return TimeSeriesForecast(
            points=points,
            trend=trend,
            seasonality=seasonality,
            autoregressive=ar_model,
            diagnostics=diagnostics,
        )

    def forecast_records(
        self, records: Sequence[dict[str, Any]], horizon: int = 12, step: str = "month"
    ) -> TimeSeriesForecast:
        """Forecast from ``[{"date": ..., "value": ...}, ...]`` records."""
        values = [float(record["value"]) for record in records]
        dates = [record.get("date") for record in records]
        return self.forecast(values, dates=dates if all(dates) else None, horizon=horizon, step=step)

    def _fallback(
        self, values: list[float], last_date: Any, horizon: int, step: str
    ) -> TimeSeriesForecast:
        """Flat forecast at the last value, zero-width interval, fixed low confidence."""
        last_value = values[-1] if values else 0.0
        logger.warning("Insufficient data for forecasting, using flat fallback", extra={"points": len(values)})

        points = [
            ForecastPoint(
                step=i,
                date=_future_date(last_date, i, step),
                forecast=last_value,
                lower_bound=last_value,
                upper_bound=last_value,
                confidence=FALLBACK_CONFIDENCE,
            )
            for i in range(1, horizon + 1)
        ]

        return TimeSeriesForecast(
            points=points,
            trend=fit_trend(values),
            seasonality=SeasonalityResult(period=1, strength=0.0, is_significant=False, factors=[1.0]),
            autoregressive=AutoregressiveModel(ar_coeff=0.0, ma_coeff=MA_COEFF, last_diff=0.0),
            diagnostics={"mape": 0.0, "rmse": 0.0, "volatility": 0.0},
            is_fallback=True,
        )
