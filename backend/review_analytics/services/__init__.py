# Services module

from review_analytics.services.analytics import AnalyticsService

__all__ = ["AnalyticsService"]
