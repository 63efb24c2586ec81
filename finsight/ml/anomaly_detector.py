"""
Transaction Anomaly Detector

Standard-deviation detectors over a transaction set, one per anomaly kind:

- amount:    absolute expense amounts above mean + 2 std (high above mean + 3 std)
- frequency: transactions per calendar day, same thresholds
- category:  last-7-day category spend vs the expected weekly spend
- temporal:  transactions between midnight and 5 AM
- merchant:  merchants seen exactly once

Flagged anomalies are prioritized by ``risk * kind weight * severity multiplier``.

Usage::

    from finsight.ml.anomaly_detector import AnomalyDetector

    detector = AnomalyDetector()
    report = detector.detect(transactions)
    for anomaly in report.prioritized[:5]:
        print(anomaly.kind, anomaly.severity, anomaly.description)
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from finsight.core import get_logger
from finsight.domain.analysis import AnomalyRecord
from finsight.domain.transactions import Transaction
from finsight.ml.patterns import top_spending_categories, transaction_span
from finsight.utils.statistics import mean, population_std

logger = get_logger(__name__)

WARNING_SIGMAS = 2.0
HIGH_SIGMAS = 3.0

CATEGORY_DEVIATION_THRESHOLD = 0.5
CATEGORY_HIGH_DEVIATION = 1.0
RECENT_WINDOW_DAYS = 7

UNUSUAL_HOURS = frozenset(range(0, 6))
TEMPORAL_RISK = 0.6
MERCHANT_RISK = 0.3
HIGH_RISK_THRESHOLD = 0.7

KIND_WEIGHTS = {
    "amount": 1.0,
    "frequency": 0.8,
    "category": 0.7,
    "temporal": 0.5,
    "merchant": 0.3,
}
DEFAULT_KIND_WEIGHT = 0.5

SEVERITY_MULTIPLIERS = {"high": 1.5, "medium": 1.0, "low": 0.5}
DEFAULT_SEVERITY_MULTIPLIER = 1.0

DETECTOR_KINDS = ("amount", "frequency", "category", "temporal", "merchant")


@dataclass
class AnomalyReport:
    """Anomalies grouped by kind, plus risk summary and the prioritized list."""

    by_kind: dict[str, list[AnomalyRecord]]
    risk_scores: dict[str, Any]
    prioritized: list[AnomalyRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.prioritized)

    @property
    def high_risk_count(self) -> int:
        return sum(1 for anomaly in self.prioritized if anomaly.risk_score > HIGH_RISK_THRESHOLD)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            f"{kind}_anomalies": [anomaly.to_dict() for anomaly in anomalies] for kind, anomalies in self.by_kind.items()
        }
        result.update(
            {
                "risk_scores": self.risk_scores,
                "prioritized_anomalies": [anomaly.to_dict() for anomaly in self.prioritized],
                "total_anomalies": self.total,
                "high_risk_anomalies": self.high_risk_count,
            }
        )
        return result


def _sigma_flags(values: Sequence[float]) -> tuple[float, float, float] | None:
    """(mean, warning threshold, high threshold), or None when nothing can be flagged."""
    if not values:
        return None
    avg = mean(values)
    std = population_std(values)
    if std == 0:
        return None
    return avg, avg + WARNING_SIGMAS * std, avg + HIGH_SIGMAS * std


def calculate_priority(anomaly: AnomalyRecord) -> float:
    weight = KIND_WEIGHTS.get(anomaly.kind, DEFAULT_KIND_WEIGHT)
    multiplier = SEVERITY_MULTIPLIERS.get(anomaly.severity, DEFAULT_SEVERITY_MULTIPLIER)
    return anomaly.risk_score * weight * multiplier


def calculate_risk_scores(by_kind: dict[str, list[AnomalyRecord]]) -> dict[str, Any]:
    """
    Per-kind count, total and average risk, plus the overall average risk.
    """
    by_type: dict[str, dict[str, float]] = {}
    total_count = 0
    total_risk = 0.0
    for kind, anomalies in by_kind.items():
        kind_risk = sum(anomaly.risk_score for anomaly in anomalies)
        by_type[kind] = {
            "count": len(anomalies),
            "total_risk": kind_risk,
            "avg_risk": kind_risk / len(anomalies) if anomalies else 0.0,
        }
        total_count += len(anomalies)
        total_risk += kind_risk

    return {"overall": total_risk / total_count if total_count else 0.0, "by_type": by_type}


def prioritize_anomalies(by_kind: dict[str, list[AnomalyRecord]]) -> list[AnomalyRecord]:
    """Assign priorities and return every anomaly sorted by priority, highest first."""
    flattened: list[AnomalyRecord] = []
    for anomalies in by_kind.values():
        for anomaly in anomalies:
            anomaly.priority = calculate_priority(anomaly)
            flattened.append(anomaly)
    return sorted(flattened, key=lambda anomaly: anomaly.priority, reverse=True)


class AnomalyDetector:
    """
    Runs the five univariate detectors.

    Args:
        expenses_only: Restrict the amount detector to expenses (incomes are
            usually few and large, and would mask unusual spending)
    """

    def __init__(self, expenses_only: bool = True):
        self.expenses_only = expenses_only

    def detect(self, transactions: Sequence[Transaction]) -> AnomalyReport:
        """
        Run every detector and prioritize the results.

        Args:
            transactions: Preprocessed transactions sorted by timestamp

        Returns:
            AnomalyReport (empty for an empty transaction list)
        """
        by_kind = {
            "amount": self.detect_amount(transactions),
            "frequency": self.detect_frequency(transactions),
            "category": self.detect_category(transactions),
            "temporal": self.detect_temporal(transactions),
            "merchant": self.detect_merchant(transactions),
        }
        report = AnomalyReport(
            by_kind=by_kind,
            risk_scores=calculate_risk_scores(by_kind),
            prioritized=prioritize_anomalies(by_kind),
        )

        logger.info(
            "Anomaly detection complete",
            extra={
                "transactions": len(transactions),
                "anomalies": report.total,
                "high_risk": report.high_risk_count,
                "by_kind": {kind: len(items) for kind, items in by_kind.items()},
            },
        )
        return report

    def detect_amount(self, transactions: Sequence[Transaction]) -> list[AnomalyRecord]:
        candidates = [t for t in transactions if t.is_expense] if self.expenses_only else list(transactions)
        flags = _sigma_flags([t.abs_amount for t in candidates])
        if flags is None:
            return []

        avg, warning, high = flags
        std = (warning - avg) / WARNING_SIGMAS
        anomalies = []
        for t in candidates:
            if t.abs_amount <= warning:
                continue
            above_pct = (t.abs_amount - avg) / avg * 100 if avg else 0.0
            anomalies.append(
                AnomalyRecord(
                    subject_ref=t.id,
                    kind="amount",
                    severity="high" if t.abs_amount > high else "medium",
                    risk_score=min(1.0, (t.abs_amount - avg) / (HIGH_SIGMAS * std)),
                    description=f"Unusually large transaction: ${t.abs_amount:.2f} ({above_pct:.1f}% above average)",
                    details={"amount": t.amount, "timestamp": t.timestamp.isoformat(), "category": t.category},
                )
            )
        return anomalies

    def detect_frequency(self, transactions: Sequence[Transaction]) -> list[AnomalyRecord]:
        daily_counts: dict[str, int] = {}
        for t in transactions:
            day = t.timestamp.date().isoformat()
            daily_counts[day] = daily_counts.get(day, 0) + 1

        flags = _sigma_flags(list(daily_counts.values()))
        if flags is None:
            return []

        avg, warning, high = flags
        std = (warning - avg) / WARNING_SIGMAS
        return [
            AnomalyRecord(
                subject_ref=day,
                kind="frequency",
                severity="high" if count > high else "medium",
                risk_score=min(1.0, (count - avg) / (HIGH_SIGMAS * std)),
                description=f"Unusually high transaction frequency: {count} transactions on {day}",
                details={"date": day, "count": count},
            )
            for day, count in daily_counts.items()
            if count > warning
        ]

    def detect_category(self, transactions: Sequence[Transaction]) -> list[AnomalyRecord]:
        """
        Compare last-7-day spend per top category with its expected weekly spend.

        Expected = category total / day span * 7; the recent window ends at the
        latest transaction. Categories with zero expected spend are skipped.
        """
        if not transactions:
            return []

        span = transaction_span(transactions)
        window_start = max(t.timestamp for t in transactions) - timedelta(days=RECENT_WINDOW_DAYS)

        actual: dict[str, float] = {}
        for t in transactions:
            if t.timestamp >= window_start:
                actual[t.category] = actual.get(t.category, 0.0) + t.abs_amount

        anomalies = []
        for entry in top_spending_categories(transactions):
            category = entry["category"]
            expected = entry["total"] / span * RECENT_WINDOW_DAYS
            if expected == 0:
                continue
            recent = actual.get(category, 0.0)
            deviation = abs(recent - expected) / expected
            if deviation <= CATEGORY_DEVIATION_THRESHOLD:
                continue
            anomalies.append(
                AnomalyRecord(
                    subject_ref=category,
                    kind="category",
                    severity="high" if deviation > CATEGORY_HIGH_DEVIATION else "medium",
                    risk_score=min(1.0, deviation),
                    description=f"Unusual spending in {category}: ${recent:.2f} vs expected ${expected:.2f}",
                    details={"category": category, "actual": recent, "expected": expected, "deviation": deviation},
                )
            )
        return anomalies

    def detect_temporal(self, transactions: Sequence[Transaction]) -> list[AnomalyRecord]:
        return [
            AnomalyRecord(
                subject_ref=t.id,
                kind="temporal",
                severity="medium",
                risk_score=TEMPORAL_RISK,
                description=f"Transaction at unusual hour: {t.hour}:00",
                details={"hour": t.hour, "timestamp": t.timestamp.isoformat()},
            )
            for t in transactions
            if t.hour in UNUSUAL_HOURS
        ]

    def detect_merchant(self, transactions: Sequence[Transaction]) -> list[AnomalyRecord]:
        first_seen: dict[str, Transaction] = {}
        counts: dict[str, int] = {}
        for t in transactions:
            merchant = t.merchant_name
            counts[merchant] = counts.get(merchant, 0) + 1
            first_seen.setdefault(merchant, t)

        return [
            AnomalyRecord(
                subject_ref=first_seen[merchant].id,
                kind="merchant",
                severity="low",
                risk_score=MERCHANT_RISK,
                description=f"New or rarely used merchant: {merchant}",
                details={"merchant": merchant},
            )
            for merchant, count in counts.items()
            if count == 1
        ]
