"""Tag drilldown: the reviews behind one driver, newest first."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from review_analytics.services.analytics.date_range import isoformat_utc
from review_analytics.services.analytics.drivers import normalize_tag_label
from review_analytics.services.analytics.rows import ReviewRow, TagLink, TagSource

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


@dataclass
class TagFilter:
    """Which tag to drill into.

    Manual tags match on the normalized label, AI tags on tag ids.
    """

    source: TagSource
    label: Optional[str] = None
    tag_ids: Set[str] = field(default_factory=set)

    @property
    def key(self) -> str:
        return normalize_tag_label(self.label)

    @property
    def is_empty(self) -> bool:
        if self.source == TagSource.AI:
            return not self.tag_ids
        return not self.key

    def matches(self, link: TagLink) -> bool:
        if self.source == TagSource.AI:
            return link.tag_id is not None and str(link.tag_id) in self.tag_ids
        return normalize_tag_label(link.label) == self.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "key": self.key or None,
            "source": self.source.value,
            "tag_ids": sorted(self.tag_ids),
        }


def parse_tag_ids(value: Optional[str]) -> Set[str]:
    """Split a comma separated id list, dropping blanks."""
    if not value:
        return set()
    return {part.strip() for part in value.split(",") if part.strip()}


def clamp_page(offset: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    offset = max(0, offset or 0)
    if limit is None:
        limit = DEFAULT_LIMIT
    return offset, min(MAX_LIMIT, max(1, limit))


def matching_review_ids(links: Iterable[TagLink], tag_filter: TagFilter) -> Set[str]:
    return {link.review_id for link in links if tag_filter.matches(link)}


def _sort_key(row: ReviewRow):
    # newest first, undated rows last, then id for a stable order
    moment = row.effective_time
    return (moment is None, -(moment.timestamp()) if moment else 0.0, row.id)


def _item(row: ReviewRow) -> Dict[str, Any]:
    moment: Optional[datetime] = row.effective_time
    return {
        "id": row.id,
        "rating": row.rating,
        "comment": row.comment,
        "create_time": isoformat_utc(moment) if moment else None,
        "location_id": row.location_id,
        "author_name": row.author_name,
        "replied": row.is_replied,
    }


def build_drilldown_page(
    rows: List[ReviewRow],
    review_ids: Set[str],
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """One page of matching rows with pagination metadata."""
    offset, limit = clamp_page(offset, limit)
    matching = sorted((row for row in rows if row.id in review_ids), key=_sort_key)
    page = matching[offset:offset + limit]
    return {
        "items": [_item(row) for row in page],
        "pagination": {
            "offset": offset,
            "limit": limit,
            "total": len(matching),
            "has_more": offset + limit < len(matching),
        },
    }
