"""
Tests for finsight/ml/isolation_detector.py

Verifies feature extraction, reproducibility with a seeded generator, and the
degenerate-input behavior.
"""

from datetime import UTC, datetime, timedelta

import numpy as np
import pytest

from finsight.domain.transactions import Transaction
from finsight.ml.isolation_detector import ANOMALY_THRESHOLD, IsolationDetector, explain, feature_matrix

BASE = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _transactions(amounts):
    return [
        Transaction(id=f"t{i}", timestamp=BASE + timedelta(days=i), amount=-amount, description="Shop")
        for i, amount in enumerate(amounts)
    ]


class TestFeatureMatrix:
    def test_columns(self):
        transactions = _transactions([10.0, 20.0])
        transactions.append(Transaction(id="same-day", timestamp=BASE, amount=-5.0, description="Shop"))
        matrix = feature_matrix(transactions)

        assert matrix.shape == (3, 4)
        assert matrix[0].tolist() == [10.0, 2.0, 1.0, 2.0]  # Monday in March, two on that day
        assert matrix[1][1] == 1.0

    def test_empty(self):
        assert feature_matrix([]).shape == (0, 4)


class TestIsolationDetector:
    def test_seeded_runs_are_reproducible(self, sample_transactions):
        first = IsolationDetector(rng=7).detect(sample_transactions).to_dict()
        second = IsolationDetector(rng=7).detect(sample_transactions).to_dict()
        assert first == second

    def test_generator_accepted(self, sample_transactions):
        detector = IsolationDetector(rng=np.random.default_rng(3))
        report = detector.detect(sample_transactions)
        assert report.record_count == len(sample_transactions)

    @pytest.mark.parametrize("count", [0, 1])
    def test_too_few_records(self, count):
        report = IsolationDetector(rng=1).detect(_transactions([50.0] * count))
        assert report.total_anomalies == 0
        assert report.coverage == 0.0

    def test_scores_and_ordering(self, sample_transactions):
        report = IsolationDetector(rng=11).detect(sample_transactions)
        scores = [anomaly.risk_score for anomaly in report.anomalies]

        assert scores == sorted(scores, reverse=True)
        assert all(score > ANOMALY_THRESHOLD for score in scores)
        assert all(anomaly.kind == "multivariate" for anomaly in report.anomalies)
        for anomaly in report.anomalies:
            assert anomaly.severity == ("high" if anomaly.risk_score > 0.8 else "medium")

    def test_report_dict(self, sample_transactions):
        data = IsolationDetector(rng=5).detect(sample_transactions).to_dict()
        assert data["detection_metrics"]["threshold"] == ANOMALY_THRESHOLD
        assert data["detection_metrics"]["coverage"] == pytest.approx(data["total_anomalies"] / 15)
        assert data["high_severity_count"] <= data["total_anomalies"]

    def test_path_length_two_records(self):
        """Two distinct records always separate after a bounded number of splits."""
        detector = IsolationDetector(rng=0)
        matrix = np.array([[1.0, 1.0, 1.0, 1.0], [5.0, 1.0, 1.0, 1.0]])
        assert 1 <= detector.path_length(matrix[0], matrix) <= 20


class TestExplain:
    def test_names_largest_deviation(self):
        matrix = np.array([[1.0, 10.0], [1.0, 10.0], [1.0, 40.0]])
        assert explain(matrix[2], matrix).startswith("Feature 1 deviates")
