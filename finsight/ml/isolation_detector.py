"""
Multivariate Isolation Detector

Isolation-forest-style heuristic over per-transaction feature vectors
(absolute amount, same-day transaction count, day of week, month). Each record
is isolated repeatedly by random axis-aligned splits; records that isolate in
few splits score high.

    score = 2 ** (-average path length)      flag > 0.6, high > 0.8

The random source is injectable so results can be reproduced; by default it
is unseeded.

Usage::

    from finsight.ml.isolation_detector import IsolationDetector

    detector = IsolationDetector(rng=42)
    report = detector.detect(transactions)
    print(report.total_anomalies, report.coverage)
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from finsight.core import get_logger
from finsight.domain.analysis import AnomalyRecord
from finsight.domain.transactions import Transaction

logger = get_logger(__name__)

FEATURES = ("amount", "frequency", "day_of_week", "month_of_year")

ANOMALY_THRESHOLD = 0.6
HIGH_SEVERITY_THRESHOLD = 0.8
MAX_ITERATIONS = 100
MAX_PATH_LENGTH = 20
MATCH_TOLERANCE = 0.001
MIN_RECORDS = 2


@dataclass
class IsolationReport:
    anomalies: list[AnomalyRecord] = field(default_factory=list)
    record_count: int = 0

    @property
    def total_anomalies(self) -> int:
        return len(self.anomalies)

    @property
    def high_severity_count(self) -> int:
        return sum(1 for anomaly in self.anomalies if anomaly.severity == "high")

    @property
    def coverage(self) -> float:
        return self.total_anomalies / self.record_count if self.record_count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "anomalies": [anomaly.to_dict() for anomaly in self.anomalies],
            "total_anomalies": self.total_anomalies,
            "high_severity_count": self.high_severity_count,
            "detection_metrics": {"threshold": ANOMALY_THRESHOLD, "coverage": self.coverage},
        }


def feature_matrix(transactions: Sequence[Transaction]) -> np.ndarray:
    """One row per transaction: abs amount, same-day count, day of week, month."""
    daily_counts: dict[Any, int] = {}
    for t in transactions:
        day = t.timestamp.date()
        daily_counts[day] = daily_counts.get(day, 0) + 1

    rows = [
        [t.abs_amount, daily_counts[t.timestamp.date()], t.day_of_week, t.month_of_year] for t in transactions
    ]
    return np.asarray(rows, dtype=float).reshape(len(rows), len(FEATURES))


def explain(vector: np.ndarray, matrix: np.ndarray) -> str:
    """Name the feature with the largest z-deviation (features with zero spread are ignored)."""
    means = matrix.mean(axis=0)
    stds = matrix.std(axis=0)
    deviations = np.where(stds > 0, np.abs(vector - means) / np.where(stds > 0, stds, 1.0), 0.0)
    index = int(np.argmax(deviations))
    return f"Feature {index} deviates significantly ({deviations[index]:.2f} standard deviations)"


class IsolationDetector:
    """
    Args:
        rng: ``numpy.random.Generator``, an integer seed, or None for an unseeded generator
    """

    def __init__(self, rng: np.random.Generator | int | None = None):
        self.rng = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)

    def path_length(self, target: np.ndarray, matrix: np.ndarray) -> int:
        """Number of random splits needed to isolate ``target`` (capped)."""
        current = matrix
        length = 0
        while len(current) > 1 and length < MAX_PATH_LENGTH:
            feature = int(self.rng.integers(len(target)))
            column = current[:, feature]
            low, high = float(column.min()), float(column.max())
            threshold = self.rng.random() * (high - low) + low

            left = current[column < threshold]
            contains_target = len(left) > 0 and bool(np.any(np.all(np.abs(left - target) < MATCH_TOLERANCE, axis=1)))
            current = left if contains_target else current[column >= threshold]
            length += 1
        return length

    def isolation_score(self, target: np.ndarray, matrix: np.ndarray) -> float:
        """Average path length over ``min(100, n)`` isolation runs."""
        iterations = min(MAX_ITERATIONS, len(matrix))
        total = sum(self.path_length(target, matrix) for _ in range(iterations))
        return total / iterations

    def detect(self, transactions: Sequence[Transaction]) -> IsolationReport:
        """
        Score every transaction and return the flagged ones, highest score first.

        A single record cannot be isolated from anything and is never flagged.
        """
        if len(transactions) < MIN_RECORDS:
            return IsolationReport(record_count=len(transactions))

        matrix = feature_matrix(transactions)
        anomalies: list[AnomalyRecord] = []

        for t, vector in zip(transactions, matrix, strict=True):
            score = 2 ** (-self.isolation_score(vector, matrix))
            if score <= ANOMALY_THRESHOLD:
                continue
            anomalies.append(
                AnomalyRecord(
                    subject_ref=t.id,
                    kind="multivariate",
                    severity="high" if score > HIGH_SEVERITY_THRESHOLD else "medium",
                    risk_score=score,
                    description=explain(vector, matrix),
                    details={"anomaly_score": score, "features": dict(zip(FEATURES, vector.tolist(), strict=True))},
                )
            )

        anomalies.sort(key=lambda anomaly: anomaly.risk_score, reverse=True)
        report = IsolationReport(anomalies=anomalies, record_count=len(transactions))

        logger.info(
            "Isolation detection complete",
            extra={"records": len(transactions), "anomalies": report.total_anomalies},
        )
        return report
