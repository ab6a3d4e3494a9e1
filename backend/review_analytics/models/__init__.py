"""SQLAlchemy models."""

from review_analytics.models.review import (
    AITag,
    GoogleLocation,
    GoogleReview,
    ReviewAIInsight,
    ReviewAITag,
    ReviewTag,
)

__all__ = [
    "AITag",
    "GoogleLocation",
    "GoogleReview",
    "ReviewAIInsight",
    "ReviewAITag",
    "ReviewTag",
]
