"""Review datastore models.

The analytics engine reads these tables and never writes to them; rows
are produced by the Google sync jobs and the AI tagging pipeline.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from review_analytics.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class GoogleLocation(Base):
    """Google Business Profile location registered by a tenant."""

    __tablename__ = "google_locations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location_resource_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )


class GoogleReview(Base):
    """A synced Google review.

    Three timestamps may be present; analytics places a review in time by
    the first non-null of create_time, update_time and created_at.
    """

    __tablename__ = "google_reviews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    review_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    author_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Reply tracking (several sources, any of them means "replied")
    reply_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    replied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    owner_reply: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_reply_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    create_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    update_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )


class ReviewAIInsight(Base):
    """Per-review AI classification output (1:1 with google_reviews)."""

    __tablename__ = "review_ai_insights"

    review_pk: Mapped[str] = mapped_column(
        String(36), ForeignKey("google_reviews.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sentiment: Mapped[Optional[str]] = mapped_column(String(16), nullable=True, index=True)
    sentiment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class AITag(Base):
    """Tag catalog populated by the AI tagging pipeline."""

    __tablename__ = "ai_tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tag: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class ReviewAITag(Base):
    """Link between a review and an AI tag."""

    __tablename__ = "review_ai_tags"

    review_pk: Mapped[str] = mapped_column(
        String(36), ForeignKey("google_reviews.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ai_tags.id", ondelete="RESTRICT"), primary_key=True, index=True
    )
    polarity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class ReviewTag(Base):
    """Tag set manually by an operator (used when no AI tags exist)."""

    __tablename__ = "review_tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    review_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    location_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tag: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )
