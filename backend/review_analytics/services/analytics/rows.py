"""Row types shared by the analytics components."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class TagSource(str, Enum):
    """Where tag links come from."""

    AI = "ai"
    MANUAL = "manual"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes coming back from the store are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ReviewRow:
    """Read-only view of a review, detached from the ORM session."""

    id: str
    rating: Optional[float] = None
    comment: Optional[str] = None
    reply_text: Optional[str] = None
    replied_at: Optional[datetime] = None
    owner_reply: Optional[str] = None
    owner_reply_time: Optional[datetime] = None
    status: Optional[str] = None
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    location_id: Optional[str] = None
    author_name: Optional[str] = None

    @classmethod
    def from_model(cls, review) -> "ReviewRow":
        return cls(
            id=review.id,
            rating=review.rating,
            comment=review.comment,
            reply_text=review.reply_text,
            replied_at=as_utc(review.replied_at),
            owner_reply=review.owner_reply,
            owner_reply_time=as_utc(review.owner_reply_time),
            status=review.status,
            create_time=as_utc(review.create_time),
            update_time=as_utc(review.update_time),
            created_at=as_utc(review.created_at),
            location_id=review.location_id,
            author_name=review.author_name,
        )

    @property
    def effective_time(self) -> Optional[datetime]:
        """First present of create_time, update_time, created_at."""
        for value in (self.create_time, self.update_time, self.created_at):
            if value is not None:
                return as_utc(value)
        return None

    @property
    def reply_time(self) -> Optional[datetime]:
        for value in (self.replied_at, self.owner_reply_time):
            if value is not None:
                return as_utc(value)
        return None

    @property
    def is_replyable(self) -> bool:
        return isinstance(self.comment, str) and bool(self.comment.strip())

    @property
    def is_replied(self) -> bool:
        return bool(
            self.reply_text
            or self.replied_at
            or self.owner_reply
            or self.owner_reply_time
            or self.status == "replied"
        )

    @property
    def is_negative(self) -> bool:
        return self.rating is not None and self.rating <= 2


@dataclass(frozen=True)
class TagLink:
    """A review tagged with a label, from either tag source."""

    review_id: str
    label: str
    source: TagSource
    tag_id: Optional[str] = None
