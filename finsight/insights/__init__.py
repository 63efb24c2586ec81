"""
Insight generation - model-backed with deterministic fallbacks.

Usage:
    from finsight.insights import InsightService

    service = InsightService(client=None)
    insights = await service.health_insights(health)
"""

from .service import InsightService

__all__ = ["InsightService"]
