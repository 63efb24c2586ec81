"""
Tests for finsight/ml/anomaly_detector.py

Verifies the standard-deviation detectors, prioritization and the report shape.
"""

from datetime import UTC, datetime, timedelta

import pytest

from finsight.domain.analysis import AnomalyRecord
from finsight.domain.transactions import Transaction
from finsight.ml.anomaly_detector import (
    AnomalyDetector,
    calculate_priority,
    calculate_risk_scores,
    prioritize_anomalies,
)
from finsight.utils.statistics import mean, population_std

BASE = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _expense(index: int, amount: float, day: int | None = None, hour: int = 12, description: str = "Shop item"):
    moment = BASE + timedelta(days=index if day is None else day)
    return Transaction(
        id=f"t{index}",
        timestamp=moment.replace(hour=hour),
        amount=-amount,
        category="General",
        description=description,
    )


@pytest.fixture
def detector():
    return AnomalyDetector()


class TestAmountDetector:
    """Amounts above mean + 2 std are flagged."""

    def test_reference_large_expense_flagged(self, detector, sample_transactions):
        """The 2500 expense is prioritized with at least medium severity; 1800 is not flagged."""
        report = detector.detect(sample_transactions)

        amount_refs = {a.subject_ref: a for a in report.by_kind["amount"]}
        assert set(amount_refs) == {"tx-06"}
        assert amount_refs["tx-06"].severity in ("medium", "high")
        assert any(a.subject_ref == "tx-06" and a.kind == "amount" for a in report.prioritized)

    def test_flagged_amounts_exceed_threshold(self, detector, sample_transactions):
        """Every amount anomaly sits above mean + 2 std of the expense amounts."""
        expenses = [t.abs_amount for t in sample_transactions if t.is_expense]
        threshold = mean(expenses) + 2 * population_std(expenses)

        for anomaly in detector.detect_amount(sample_transactions):
            assert abs(anomaly.details["amount"]) > threshold

    def test_high_severity_above_three_sigma(self, detector):
        transactions = [_expense(i, 10.0) for i in range(19)] + [_expense(19, 200.0)]
        anomalies = detector.detect_amount(transactions)

        assert len(anomalies) == 1
        assert anomalies[0].severity == "high"
        assert anomalies[0].risk_score == 1.0

    def test_identical_amounts_never_flagged(self, detector):
        assert detector.detect_amount([_expense(i, 25.0) for i in range(10)]) == []

    def test_incomes_ignored_by_default(self, detector):
        transactions = [_expense(i, 10.0) for i in range(10)]
        transactions.append(Transaction(id="pay", timestamp=BASE, amount=9000.0, description="Payroll"))
        assert detector.detect_amount(transactions) == []

    def test_incomes_included_when_configured(self):
        transactions = [_expense(i, 10.0) for i in range(10)]
        transactions.append(Transaction(id="pay", timestamp=BASE, amount=9000.0, description="Payroll"))
        anomalies = AnomalyDetector(expenses_only=False).detect_amount(transactions)
        assert [a.subject_ref for a in anomalies] == ["pay"]


class TestOtherDetectors:
    def test_frequency_spike(self, detector):
        transactions = [_expense(i, 10.0, day=i) for i in range(19)]
        transactions += [_expense(100 + i, 10.0, day=19) for i in range(10)]
        anomalies = detector.detect_frequency(transactions)

        assert len(anomalies) == 1
        assert anomalies[0].details["count"] == 10
        assert anomalies[0].severity == "high"

    def test_unusual_hours(self, detector):
        transactions = [_expense(0, 10.0, hour=3), _expense(1, 10.0, hour=9)]
        anomalies = detector.detect_temporal(transactions)

        assert [a.subject_ref for a in anomalies] == ["t0"]
        assert anomalies[0].risk_score == pytest.approx(0.6)
        assert anomalies[0].severity == "medium"

    def test_single_use_merchants(self, detector):
        transactions = [
            _expense(0, 10.0, description="Acme one"),
            _expense(1, 10.0, description="Acme two"),
            _expense(2, 10.0, description="Rare shop"),
        ]
        anomalies = detector.detect_merchant(transactions)

        assert [a.details["merchant"] for a in anomalies] == ["Rare"]
        assert anomalies[0].severity == "low"

    def test_category_spike_in_last_week(self, detector):
        """Spending concentrated in the last 7 days deviates from the expected weekly spend."""
        transactions = [_expense(i, 10.0, day=i * 3) for i in range(10)]
        transactions.append(_expense(99, 500.0, day=27))
        anomalies = detector.detect_category(transactions)

        assert len(anomalies) == 1
        assert anomalies[0].subject_ref == "General"
        assert anomalies[0].details["actual"] > anomalies[0].details["expected"]

    def test_empty_input(self, detector):
        report = detector.detect([])
        assert report.total == 0
        assert report.risk_scores["overall"] == 0.0
        assert report.to_dict()["total_anomalies"] == 0


class TestPrioritization:
    def test_priority_formula(self):
        anomaly = AnomalyRecord(subject_ref="x", kind="frequency", severity="high", risk_score=0.5, description="")
        assert calculate_priority(anomaly) == pytest.approx(0.5 * 0.8 * 1.5)

    def test_sorted_by_priority(self):
        by_kind = {
            "merchant": [AnomalyRecord("m", "merchant", "low", 0.3, "")],
            "amount": [AnomalyRecord("a", "amount", "high", 0.9, "")],
            "temporal": [AnomalyRecord("t", "temporal", "medium", 0.6, "")],
        }
        prioritized = prioritize_anomalies(by_kind)
        assert [a.subject_ref for a in prioritized] == ["a", "t", "m"]
        assert prioritized[0].priority == pytest.approx(0.9 * 1.0 * 1.5)

    def test_risk_scores(self):
        by_kind = {"amount": [AnomalyRecord("a", "amount", "high", 0.8, ""), AnomalyRecord("b", "amount", "medium", 0.4, "")], "merchant": []}
        scores = calculate_risk_scores(by_kind)

        assert scores["overall"] == pytest.approx(0.6)
        assert scores["by_type"]["amount"]["count"] == 2
        assert scores["by_type"]["merchant"]["avg_risk"] == 0.0

    def test_report_dict_keys(self, detector, sample_transactions):
        data = detector.detect(sample_transactions).to_dict()
        for kind in ("amount", "frequency", "category", "temporal", "merchant"):
            assert f"{kind}_anomalies" in data
        assert data["total_anomalies"] == len(data["prioritized_anomalies"])
        assert data["high_risk_anomalies"] == sum(1 for a in data["prioritized_anomalies"] if a["risk_score"] > 0.7)
