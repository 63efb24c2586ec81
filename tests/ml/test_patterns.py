"""
Tests for finsight/ml/patterns.py

Uses the fifteen-transaction January reference set from conftest.
"""

import pytest

from finsight.ml.patterns import (
    SEASONS,
    amount_patterns,
    analyze_patterns,
    category_trends,
    daily_expense_series,
    merchant_patterns,
    seasonal_trends,
    spending_frequency,
    temporal_patterns,
    top_spending_categories,
    transactions_frame,
)


class TestFrame:
    def test_columns(self, sample_transactions):
        frame = transactions_frame(sample_transactions)
        assert len(frame) == 15
        assert frame.loc[0, "merchant"] == "Payroll"
        assert frame.loc[0, "date"] == "2026-01-01"

    def test_empty(self):
        assert transactions_frame([]).empty


class TestTemporal:
    def test_day_of_week_buckets(self, sample_transactions):
        daily = temporal_patterns(sample_transactions)["daily_patterns"]
        # 2026-01-01, 08 and 15 are Thursdays
        assert daily["Thursday"]["count"] == 3
        assert daily["Thursday"]["total"] == pytest.approx(5000 + 120 + 1200)

    def test_every_season_present(self, sample_transactions):
        seasons = seasonal_trends(transactions_frame(sample_transactions))
        assert list(seasons) == SEASONS
        assert seasons["Winter"]["count"] == 15
        assert seasons["Summer"] == {"total": 0.0, "count": 0, "avg": 0.0}

    def test_empty(self):
        result = temporal_patterns([])
        assert result["daily_patterns"] == {}
        assert result["seasonal_trends"]["Spring"]["count"] == 0


class TestCategorical:
    def test_top_categories(self, sample_transactions):
        top = top_spending_categories(sample_transactions, limit=3)
        assert [item["category"] for item in top] == ["Travel", "Housing", "Groceries"]
        assert top[2]["total"] == pytest.approx(350)

    def test_income_not_ranked(self, sample_transactions):
        assert all(item["category"] != "Income" for item in top_spending_categories(sample_transactions))

    def test_category_trends(self, sample_transactions):
        trends = category_trends(sample_transactions)

        assert trends["Groceries"]["early"] == pytest.approx(350)
        assert trends["Groceries"]["late"] == 0.0
        assert trends["Groceries"]["direction"] == "decreasing"
        assert trends["Income"]["change_percent"] == pytest.approx(-76.0)
        assert trends["Health"]["change_percent"] == 0.0
        assert trends["Health"]["direction"] == "increasing"


class TestBehavioral:
    def test_frequency(self, sample_transactions):
        result = spending_frequency(sample_transactions)
        assert result["time_span"] == 14
        assert result["frequency"]["daily"] == pytest.approx(15 / 14)
        assert result["frequency"]["monthly"] == 15
        assert result["median_amount"] == 120

    def test_amount_distribution(self, sample_transactions):
        result = amount_patterns(sample_transactions)
        assert result["min"] == 6
        assert result["max"] == 5000
        assert result["percentiles"] == {"p25": 35, "p75": 1200, "p90": 2500, "p95": 5000}

    def test_amount_distribution_empty(self):
        assert amount_patterns([])["std_dev"] == 0.0

    def test_merchants(self, sample_transactions):
        result = merchant_patterns(sample_transactions, limit=2)
        assert result["unique_merchants"] == 15
        assert result["top_by_amount"][0] == ["Payroll", 5000.0]
        assert len(result["top_by_frequency"]) == 2


class TestSeries:
    def test_daily_expense_series(self, sample_transactions):
        values, dates = daily_expense_series(sample_transactions)
        assert len(values) == len(dates) == 13
        assert dates[0] == "2026-01-02"
        assert values[0] == 1800

    def test_report_sections(self, sample_transactions):
        assert set(analyze_patterns(sample_transactions)) == {"temporal", "categorical", "behavioral"}
