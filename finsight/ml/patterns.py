"""
Spending Pattern Analysis

pandas aggregations over preprocessed transactions: temporal buckets (day of
week, week of year, month, season), category rankings and trends, behavioral
statistics (frequency, amount distribution, merchants).

All aggregates use absolute amounts unless stated otherwise.

Usage::

    from finsight.ml.patterns import analyze_patterns, transactions_frame

    patterns = analyze_patterns(transactions)
    print(patterns["categorical"]["top_categories"][:3])
"""

import math
from collections.abc import Sequence
from typing import Any

import pandas as pd

from finsight.domain.transactions import Transaction
from finsight.utils.datetime_utils import day_span, season
from finsight.utils.statistics import population_std

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
SEASONS = ["Spring", "Summer", "Fall", "Winter"]

DEFAULT_TOP_CATEGORIES = 10
DEFAULT_TOP_MERCHANTS = 10

_COLUMNS = [
    "id",
    "timestamp",
    "date",
    "amount",
    "abs_amount",
    "category",
    "type",
    "merchant",
    "day_of_week",
    "month_of_year",
    "week_of_year",
    "hour",
]


def transactions_frame(transactions: Sequence[Transaction]) -> pd.DataFrame:
    """One row per transaction with its derived calendar fields."""
    rows = [
        {
            "id": t.id,
            "timestamp": t.timestamp,
            "date": t.timestamp.date().isoformat(),
            "amount": t.amount,
            "abs_amount": t.abs_amount,
            "category": t.category,
            "type": t.type,
            "merchant": t.merchant_name,
            "day_of_week": t.day_of_week,
            "month_of_year": t.month_of_year,
            "week_of_year": t.week_of_year,
            "hour": t.hour,
        }
        for t in transactions
    ]
    return pd.DataFrame(rows, columns=_COLUMNS)


def transaction_span(transactions: Sequence[Transaction]) -> int:
    """Day span of a timestamp-sorted transaction list (at least 1)."""
    if not transactions:
        return 1
    return day_span(transactions[0].timestamp, transactions[-1].timestamp, len(transactions))


def _bucket_stats(frame: pd.DataFrame, key: pd.Series, order: Sequence[Any] | None = None) -> dict[str, dict]:
    grouped = frame.groupby(key, sort=True)["abs_amount"].agg(["sum", "count"])
    if order is not None:
        grouped = grouped.reindex([label for label in order if label in grouped.index])
    return {
        str(label): {"total": float(row["sum"]), "count": int(row["count"]), "avg": float(row["sum"] / row["count"])}
        for label, row in grouped.iterrows()
    }


# ---------------------------------------------------------------------------
# Temporal
# ---------------------------------------------------------------------------


def daily_patterns(frame: pd.DataFrame) -> dict[str, dict]:
    """Totals per day-of-week name."""
    if frame.empty:
        return {}
    return _bucket_stats(frame, frame["day_of_week"].map(lambda day: DAY_NAMES[day]), DAY_NAMES)


def weekly_patterns(frame: pd.DataFrame) -> dict[str, dict]:
    if frame.empty:
        return {}
    return _bucket_stats(frame, frame["week_of_year"])


def monthly_patterns(frame: pd.DataFrame) -> dict[str, dict]:
    if frame.empty:
        return {}
    return _bucket_stats(frame, frame["month_of_year"].map(lambda month: MONTH_NAMES[month]), MONTH_NAMES)


def seasonal_trends(frame: pd.DataFrame) -> dict[str, dict]:
    """Totals per season; every season is present (zeros when unseen)."""
    result = {name: {"total": 0.0, "count": 0, "avg": 0.0} for name in SEASONS}
    if frame.empty:
        return result
    result.update(_bucket_stats(frame, frame["month_of_year"].map(season), SEASONS))
    return result


def temporal_patterns(transactions: Sequence[Transaction]) -> dict[str, Any]:
    frame = transactions_frame(transactions)
    return {
        "daily_patterns": daily_patterns(frame),
        "weekly_patterns": weekly_patterns(frame),
        "monthly_patterns": monthly_patterns(frame),
        "seasonal_trends": seasonal_trends(frame),
    }


# ---------------------------------------------------------------------------
# Categorical
# ---------------------------------------------------------------------------


def top_spending_categories(
    transactions: Sequence[Transaction], limit: int = DEFAULT_TOP_CATEGORIES
) -> list[dict[str, Any]]:
    """
    Expense categories ranked by absolute total, largest first.

    Returns:
        ``[{"category": name, "total": amount}, ...]`` with at most ``limit`` entries
    """
    totals: dict[str, float] = {}
    for t in transactions:
        if t.is_expense:
            totals[t.category] = totals.get(t.category, 0.0) + t.abs_amount
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [{"category": category, "total": total} for category, total in ranked]


def category_trends(transactions: Sequence[Transaction]) -> dict[str, dict[str, Any]]:
    """
    Early-half vs late-half totals per category.

    The split is at half the day span; a transaction whose whole-day offset from
    the first transaction is below it counts as early.
    """
    if not transactions:
        return {}

    midpoint = transaction_span(transactions) / 2
    first = transactions[0].timestamp
    trends: dict[str, dict[str, Any]] = {}

    for t in transactions:
        days_from_start = math.floor((t.timestamp - first).total_seconds() / 86400)
        period = "early" if days_from_start < midpoint else "late"
        bucket = trends.setdefault(t.category, {"early": 0.0, "late": 0.0})
        bucket[period] += t.abs_amount

    for bucket in trends.values():
        change = bucket["late"] - bucket["early"]
        bucket["change"] = change
        bucket["change_percent"] = change / bucket["early"] * 100 if bucket["early"] > 0 else 0.0
        bucket["direction"] = "increasing" if change > 0 else "decreasing"

    return trends


def category_seasonality(transactions: Sequence[Transaction]) -> dict[str, dict[str, float]]:
    frame = transactions_frame(transactions)
    if frame.empty:
        return {}
    frame["season"] = frame["month_of_year"].map(season)
    table = frame.pivot_table(index="category", columns="season", values="abs_amount", aggfunc="sum", fill_value=0.0)
    table = table.reindex(columns=SEASONS, fill_value=0.0)
    return {
        str(category): {name: float(row[name]) for name in SEASONS} for category, row in table.iterrows()
    }


def categorical_patterns(transactions: Sequence[Transaction]) -> dict[str, Any]:
    return {
        "top_categories": top_spending_categories(transactions),
        "category_trends": category_trends(transactions),
        "category_seasonality": category_seasonality(transactions),
    }


# ---------------------------------------------------------------------------
# Behavioral
# ---------------------------------------------------------------------------


def spending_frequency(transactions: Sequence[Transaction]) -> dict[str, Any]:
    count = len(transactions)
    span = transaction_span(transactions)
    amounts = sorted(t.abs_amount for t in transactions)
    return {
        "frequency": {
            "daily": count / span,
            "weekly": count / max(1, span / 7),
            "monthly": count / max(1, span / 30),
        },
        "avg_amount": sum(amounts) / count if count else 0.0,
        "median_amount": amounts[count // 2] if count else 0.0,
        "total_transactions": count,
        "time_span": span,
    }


def amount_patterns(transactions: Sequence[Transaction]) -> dict[str, Any]:
    """Distribution of absolute amounts; percentiles use the lower-index rule."""
    amounts = sorted(t.abs_amount for t in transactions)
    count = len(amounts)
    if not count:
        return {
            "min": 0.0,
            "max": 0.0,
            "avg": 0.0,
            "median": 0.0,
            "std_dev": 0.0,
            "percentiles": {"p25": 0.0, "p75": 0.0, "p90": 0.0, "p95": 0.0},
        }

    def pick(q: float) -> float:
        return amounts[min(count - 1, math.floor(count * q))]

    return {
        "min": amounts[0],
        "max": amounts[-1],
        "avg": sum(amounts) / count,
        "median": amounts[count // 2],
        "std_dev": population_std(amounts),
        "percentiles": {"p25": pick(0.25), "p75": pick(0.75), "p90": pick(0.90), "p95": pick(0.95)},
    }


def merchant_patterns(transactions: Sequence[Transaction], limit: int = DEFAULT_TOP_MERCHANTS) -> dict[str, Any]:
    frame = transactions_frame(transactions)
    if frame.empty:
        return {"top_by_frequency": [], "top_by_amount": [], "unique_merchants": 0}

    by_merchant = frame.groupby("merchant", sort=False)["abs_amount"].agg(["count", "sum"])
    by_frequency = by_merchant["count"].sort_values(ascending=False, kind="stable").head(limit)
    by_amount = by_merchant["sum"].sort_values(ascending=False, kind="stable").head(limit)
    return {
        "top_by_frequency": [[str(name), int(value)] for name, value in by_frequency.items()],
        "top_by_amount": [[str(name), float(value)] for name, value in by_amount.items()],
        "unique_merchants": int(len(by_merchant)),
    }


def behavioral_patterns(transactions: Sequence[Transaction]) -> dict[str, Any]:
    return {
        "spending_frequency": spending_frequency(transactions),
        "amount_patterns": amount_patterns(transactions),
        "merchant_patterns": merchant_patterns(transactions),
    }


# ---------------------------------------------------------------------------
# Preprocessing summaries
# ---------------------------------------------------------------------------


def time_analysis(transactions: Sequence[Transaction]) -> dict[str, dict[str, float]]:
    """Absolute totals by day of week, month index and week of year."""
    frame = transactions_frame(transactions)
    if frame.empty:
        return {"by_day": {}, "by_month": {}, "by_week": {}}
    return {
        key: {str(label): float(total) for label, total in frame.groupby(column)["abs_amount"].sum().items()}
        for key, column in (("by_day", "day_of_week"), ("by_month", "month_of_year"), ("by_week", "week_of_year"))
    }


def category_distribution(transactions: Sequence[Transaction]) -> dict[str, dict[str, float]]:
    frame = transactions_frame(transactions)
    if frame.empty:
        return {}
    grouped = frame.groupby("category", sort=False)["abs_amount"].agg(["count", "sum"])
    return {
        str(category): {"count": int(row["count"]), "total": float(row["sum"])} for category, row in grouped.iterrows()
    }


def daily_expense_series(transactions: Sequence[Transaction]) -> tuple[list[float], list[str]]:
    """
    Absolute expense totals per calendar day, oldest first.

    Only days with at least one expense appear.
    """
    frame = transactions_frame([t for t in transactions if t.is_expense])
    if frame.empty:
        return [], []
    series = frame.groupby("date", sort=True)["abs_amount"].sum()
    return [float(value) for value in series.tolist()], [str(day) for day in series.index]


def analyze_patterns(transactions: Sequence[Transaction]) -> dict[str, Any]:
    """Temporal, categorical and behavioral patterns in one report."""
    return {
        "temporal": temporal_patterns(transactions),
        "categorical": categorical_patterns(transactions),
        "behavioral": behavioral_patterns(transactions),
    }
