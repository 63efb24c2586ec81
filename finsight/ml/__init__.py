"""
Statistical analysis for transaction and health data.

Modules:
- TrendForecaster: OLS trend + seasonality scan + AR correction forecasts
- AnomalyDetector: standard-deviation detectors (amount, frequency, category, temporal, merchant)
- IsolationDetector: multivariate isolation heuristic with an injectable random source
- FivePointHealthScorer / HundredPointHealthScorer: composite health scores
- analyze_health_trends: direction, strength and forecast over the health history
- AlertEngine: threshold rules, risk assessment and proactive recommendations
"""

from .alert_engine import AlertEngine
from .anomaly_detector import AnomalyDetector, AnomalyReport
from .health_scorer import FinancialRatios, FivePointHealthScorer, HundredPointHealthScorer
from .health_trends import analyze_health_trends
from .isolation_detector import IsolationDetector, IsolationReport
from .patterns import analyze_patterns
from .trend_forecaster import TimeSeriesForecast, TrendForecaster

__all__ = [
    "TrendForecaster",
    "TimeSeriesForecast",
    "AnomalyDetector",
    "AnomalyReport",
    "IsolationDetector",
    "IsolationReport",
    "FinancialRatios",
    "FivePointHealthScorer",
    "HundredPointHealthScorer",
    "analyze_health_trends",
    "analyze_patterns",
    "AlertEngine",
]
