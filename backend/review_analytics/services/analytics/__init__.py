"""Review analytics aggregation engine."""

from review_analytics.services.analytics.service import AnalyticsService

__all__ = ["AnalyticsService"]
