"""
Tests for finsight/ml/trend_forecaster.py

Verifies trend fitting, seasonality detection, the autoregressive correction,
confidence decay and the short-series fallback.
"""

import pytest

from finsight.ml.trend_forecaster import (
    FALLBACK_CONFIDENCE,
    TrendForecaster,
    autocorrelation,
    detect_seasonality,
    fit_autoregressive,
    fit_trend,
    forecast_confidence,
    mape,
    rmse,
    volatility,
)


class TestFitTrend:
    def test_linear_series(self):
        fit = fit_trend([1.0, 3.0, 5.0, 7.0])
        assert fit.slope == pytest.approx(2.0)
        assert fit.intercept == pytest.approx(1.0)
        assert fit.r_squared == pytest.approx(1.0)
        assert fit.correlation == pytest.approx(1.0)

    def test_constant_series(self):
        fit = fit_trend([4.0, 4.0, 4.0])
        assert fit.slope == pytest.approx(0.0)
        assert fit.r_squared == 0.0
        assert fit.correlation == 0.0

    def test_short_series(self):
        assert fit_trend([]).intercept == 0.0
        single = fit_trend([9.0])
        assert single.slope == 0.0
        assert single.intercept == 9.0


class TestSeasonality:
    def test_period_detected(self):
        values = [10.0, 20.0, 30.0] * 6
        result = detect_seasonality(values)
        assert result.period % 3 == 0
        assert result.is_significant
        assert len(result.factors) == result.period
        assert result.factors[2] > result.factors[0]

    def test_too_short(self):
        result = detect_seasonality([1.0, 2.0, 3.0])
        assert result.period == 1
        assert not result.is_significant
        assert result.factors == [1.0]

    def test_flat_series_not_significant(self):
        assert not detect_seasonality([5.0] * 12).is_significant


class TestAutoregressive:
    def test_autocorrelation_alternating(self):
        assert autocorrelation([1.0, -1.0, 1.0, -1.0, 1.0, -1.0]) < 0

    def test_autocorrelation_undefined(self):
        assert autocorrelation([3.0]) == 0.0
        assert autocorrelation([2.0, 2.0, 2.0]) == 0.0

    def test_last_difference(self):
        model = fit_autoregressive([1.0, 2.0, 4.0, 7.0])
        assert model.last_diff == 3.0
        assert model.correction(2) == pytest.approx(model.ar_coeff * 3.0 * 2 * 0.1)


class TestDiagnostics:
    def test_mape_skips_zero_actuals(self):
        assert mape([0.0, 10.0], [5.0, 12.0]) == pytest.approx(10.0)

    def test_rmse(self):
        assert rmse([1.0, 3.0], [2.0, 2.0]) == pytest.approx(1.0)

    def test_volatility_of_constant_returns(self):
        assert volatility([100.0, 110.0, 121.0]) == pytest.approx(0.0, abs=1e-9)

    def test_volatility_skips_zero_previous(self):
        assert volatility([0.0, 5.0]) == 0.0


class TestForecastConfidence:
    def test_non_increasing_with_floor(self):
        confidences = [forecast_confidence(step) for step in range(1, 30)]
        assert confidences == sorted(confidences, reverse=True)
        assert min(confidences) == FALLBACK_CONFIDENCE
        assert forecast_confidence(1) == pytest.approx(0.85)


class TestTrendForecaster:
    def test_linear_forecast(self):
        result = TrendForecaster().forecast([10.0, 20.0, 30.0, 40.0], horizon=3, step="day")

        assert not result.is_fallback
        assert [point.step for point in result.points] == [1, 2, 3]
        assert result.trend.slope == pytest.approx(10.0)
        assert all(point.lower_bound <= point.forecast <= point.upper_bound for point in result.points)

    def test_dates_advance_by_step(self):
        result = TrendForecaster().forecast([1.0, 2.0, 3.0], dates=["2026-01-01", "2026-01-02", "2026-01-03"], horizon=2, step="day")
        assert [point.date[:10] for point in result.points] == ["2026-01-04", "2026-01-05"]

    def test_monthly_dates(self):
        result = TrendForecaster().forecast([1.0, 2.0], dates=["2026-01-31", "2026-02-28"], horizon=1, step="month")
        assert result.points[0].date.startswith("2026-03-28")

    def test_interval_widens(self):
        result = TrendForecaster().forecast([100.0, 120.0, 90.0, 130.0, 95.0], horizon=4, step="week")
        widths = [point.upper_bound - point.lower_bound for point in result.points]
        assert widths == sorted(widths)

    @pytest.mark.parametrize("values", [[], [42.0]])
    def test_fallback(self, values):
        result = TrendForecaster().forecast(values, horizon=3, step="day")

        assert result.is_fallback
        expected = values[-1] if values else 0.0
        assert all(point.forecast == expected for point in result.points)
        assert all(point.confidence == FALLBACK_CONFIDENCE for point in result.points)
        assert all(point.lower_bound == point.upper_bound for point in result.points)

    def test_unknown_step_rejected(self):
        with pytest.raises(ValueError, match="Unknown forecast step"):
            TrendForecaster().forecast([1.0, 2.0], step="year")

    def test_negative_horizon_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            TrendForecaster().forecast([1.0, 2.0], horizon=-1)

    def test_records_interface(self):
        records = [{"date": "2026-01-01", "value": 5}, {"date": "2026-01-02", "value": 6}]
        result = TrendForecaster().forecast_records(records, horizon=1, step="day")
        assert result.points[0].date.startswith("2026-01-03")

    def test_to_dict_shape(self):
        data = TrendForecaster().forecast([1.0, 2.0, 3.0, 5.0], horizon=2, step="day").to_dict()
        assert set(data) == {"forecasts", "model", "diagnostics", "is_fallback"}
        assert set(data["model"]) == {"trend", "seasonality", "autoregressive"}
        assert set(data["diagnostics"]) == {"mape", "rmse", "volatility"}
