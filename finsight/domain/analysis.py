"""
Analysis result models

Provides the records produced by the analysis stages:
    - AnomalyRecord: one flagged transaction, day or category
    - ComponentScore / HealthScore: composite health scoring output
    - Alert: wire-format alert delivered to observers
    - Recommendation: proactive action plan entry
    - HealthSnapshot: one element of the monitor's history buffer
"""

import uuid
from dataclasses import dataclass, field
from typing import Any

from finsight.utils.datetime_utils import epoch_millis

ANOMALY_KINDS = ("amount", "frequency", "category", "temporal", "merchant", "multivariate")
SEVERITIES = ("low", "medium", "high")
ALERT_SEVERITIES = ("low", "medium", "high", "critical")


def new_id(prefix: str) -> str:
    """Unique id of the form ``<prefix>_<8 hex chars>``."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


@dataclass
class AnomalyRecord:
    """
    A single flagged anomaly.

    ``subject_ref`` points at what was flagged: a transaction id, a calendar day
    (ISO date) or a category name. ``priority`` is filled in by prioritization.
    """

    subject_ref: str
    kind: str
    severity: str
    risk_score: float
    description: str
    priority: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in ANOMALY_KINDS:
            raise ValueError(f"Unknown anomaly kind: {self.kind}")
        if self.severity not in SEVERITIES:
            raise ValueError(f"Unknown anomaly severity: {self.severity}")
        self.risk_score = max(0.0, min(1.0, float(self.risk_score)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_ref": self.subject_ref,
            "kind": self.kind,
            "severity": self.severity,
            "risk_score": self.risk_score,
            "description": self.description,
            "priority": self.priority,
            "details": self.details,
        }


@dataclass
class ComponentScore:
    """One component of a composite health score."""

    score: float
    assessment: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "assessment": self.assessment, "details": self.details}


@dataclass
class HealthScore:
    """
    Composite health score.

    Invariant: ``overall`` is the weighted sum of component scores (before
    rounding) with weights summing to 1.0.
    """

    scheme: str  # "five_point" | "hundred_point"
    overall: float
    grade: str
    components: dict[str, ComponentScore]
    weights: dict[str, float]
    percentile: int | None = None
    recommendations: list[dict[str, Any]] = field(default_factory=list)

    def component_scores(self) -> dict[str, float]:
        return {name: component.score for name, component in self.components.items()}

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "scheme": self.scheme,
            "overall": self.overall,
            "grade": self.grade,
            "components": {name: component.to_dict() for name, component in self.components.items()},
            "weights": dict(self.weights),
        }
        if self.percentile is not None:
            result["percentile"] = self.percentile
        if self.recommendations:
            result["recommendations"] = list(self.recommendations)
        return result


@dataclass
class Alert:
    """
    Severity-tagged alert. Serialized with camelCase keys (wire format).
    """

    type: str
    severity: str  # "low" | "medium" | "high" | "critical"
    title: str
    message: str
    action_required: bool
    data: dict[str, Any] | None = None
    id: str = ""
    timestamp: int = 0

    def __post_init__(self) -> None:
        if self.severity not in ALERT_SEVERITIES:
            raise ValueError(f"Unknown alert severity: {self.severity}")
        if not self.id:
            self.id = new_id(self.type)
        if not self.timestamp:
            self.timestamp = epoch_millis()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp,
            "actionRequired": self.action_required,
        }
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass
class Recommendation:
    """A proactive recommendation with concrete action items."""

    category: str
    priority: str
    title: str
    description: str
    action_items: list[str]
    estimated_impact: str
    timeframe: str
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id(self.category)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "action_items": list(self.action_items),
            "estimated_impact": self.estimated_impact,
            "timeframe": self.timeframe,
        }


@dataclass
class HealthSnapshot:
    """Point-in-time health score kept in the monitor history."""

    timestamp: int
    overall: float
    grade: str
    components: dict[str, float]

    @classmethod
    def from_score(cls, score: HealthScore, timestamp: int | None = None) -> "HealthSnapshot":
        return cls(
            timestamp=timestamp or epoch_millis(),
            overall=score.overall,
            grade=score.grade,
            components=score.component_scores(),
        )

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "HealthSnapshot":
        return cls(
            timestamp=int(raw.get("timestamp", 0)),
            overall=float(raw.get("overall", 0.0)),
            grade=str(raw.get("grade", "")),
            components={name: float(value) for name, value in raw.get("components", {}).items()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "overall": self.overall,
            "grade": self.grade,
            "components": dict(self.components),
        }
