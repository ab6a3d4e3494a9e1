"""Review datastore reads.

Reviews are read page by page (offset/limit) until a short page or the
row cap. Every query failure surfaces as FetchError; nothing is retried.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from review_analytics.core.config import settings
from review_analytics.core.errors import FetchError, report_bad_data
from review_analytics.models.review import (
    AITag,
    GoogleReview,
    ReviewAIInsight,
    ReviewAITag,
    ReviewTag,
)
from review_analytics.services.analytics.date_range import DateRange
from review_analytics.services.analytics.rows import ReviewRow, TagLink, TagSource

logger = logging.getLogger(__name__)

# Keeps IN (...) lists well under driver parameter limits
ID_CHUNK_SIZE = 500


@dataclass
class FetchResult:
    """Rows for one range. ``truncated`` means the row cap was hit."""

    rows: List[ReviewRow] = field(default_factory=list)
    truncated: bool = False
    pages: int = 0


def effective_time_column():
    """SQL expression for the review's effective time."""
    return func.coalesce(GoogleReview.create_time, GoogleReview.update_time, GoogleReview.created_at)


def _chunks(values: Sequence[str], size: int = ID_CHUNK_SIZE) -> Iterator[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def fetch_reviews(
    db: Session,
    tenant_id: str,
    location_ids: Sequence[str],
    date_range: DateRange,
    log: logging.Logger = logger,
    page_size: Optional[int] = None,
    max_rows: Optional[int] = None,
) -> FetchResult:
    """Fetch every review of the tenant whose effective time is in range.

    Args:
        db: Database session
        tenant_id: Owner of the reviews
        location_ids: Location scope (equality filter for a single id)
        date_range: Inclusive UTC bounds
        log: Logger receiving fetch diagnostics
        page_size: Rows per page (defaults to settings)
        max_rows: Hard row cap (defaults to settings)

    Returns:
        FetchResult with rows in stable id order

    Raises:
        FetchError: a page query failed
    """
    page_size = page_size or settings.reviews_page_size
    max_rows = max_rows or settings.reviews_max_rows
    result = FetchResult()
    if not location_ids:
        return result

    effective_time = effective_time_column()
    query = select(GoogleReview).where(GoogleReview.user_id == tenant_id)
    if len(location_ids) == 1:
        query = query.where(GoogleReview.location_id == location_ids[0])
    else:
        query = query.where(GoogleReview.location_id.in_(list(location_ids)))
    query = query.where(effective_time.between(date_range.start, date_range.end))
    query = query.order_by(GoogleReview.id)

    offset = 0
    while offset < max_rows:
        limit = min(page_size, max_rows - offset)
        try:
            page = db.execute(query.offset(offset).limit(limit)).scalars().all()
        except SQLAlchemyError as e:
            log.error(
                f"Review page query failed (tenant={tenant_id}, offset={offset}): {e}"
            )
            raise FetchError(tenant_id=tenant_id, offset=offset) from e

        result.pages += 1
        result.rows.extend(ReviewRow.from_model(review) for review in page)
        offset += len(page)
        if len(page) < limit:
            break

    if len(result.rows) >= max_rows:
        result.truncated = True
        report_bad_data(
            log,
            "max rows reached, results are incomplete",
            tenant_id=tenant_id,
            max_rows=max_rows,
        )

    log.debug(
        f"Fetched {len(result.rows)} reviews in {result.pages} page(s) "
        f"for tenant {tenant_id} ({len(location_ids)} location(s))"
    )
    return result


def fetch_sentiments(
    db: Session,
    review_ids: Iterable[str],
    log: logging.Logger = logger,
) -> Dict[str, Optional[str]]:
    """Map review id to its AI sentiment label (may be None)."""
    ids = list(dict.fromkeys(review_ids))
    sentiments: Dict[str, Optional[str]] = {}
    try:
        for chunk in _chunks(ids):
            rows = db.execute(
                select(ReviewAIInsight.review_pk, ReviewAIInsight.sentiment)
                .where(ReviewAIInsight.review_pk.in_(chunk))
            ).all()
            sentiments.update({review_pk: sentiment for review_pk, sentiment in rows})
    except SQLAlchemyError as e:
        log.error(f"Sentiment query failed: {e}")
        raise FetchError("Failed to load sentiments") from e
    return sentiments


def has_ai_tag_links(
    db: Session,
    review_ids: Iterable[str],
    log: logging.Logger = logger,
) -> bool:
    """True when at least one of the reviews carries an AI tag."""
    ids = list(dict.fromkeys(review_ids))
    try:
        for chunk in _chunks(ids):
            found = db.execute(
                select(ReviewAITag.review_pk).where(ReviewAITag.review_pk.in_(chunk)).limit(1)
            ).first()
            if found is not None:
                return True
    except SQLAlchemyError as e:
        log.error(f"AI tag presence query failed: {e}")
        raise FetchError("Failed to load tags") from e
    return False


def fetch_tag_links(
    db: Session,
    tenant_id: str,
    review_ids: Iterable[str],
    source: TagSource,
    log: logging.Logger = logger,
) -> List[TagLink]:
    """Load tag links for the given reviews from one tag source."""
    ids = list(dict.fromkeys(review_ids))
    links: List[TagLink] = []
    try:
        for chunk in _chunks(ids):
            if source == TagSource.AI:
                rows = db.execute(
                    select(ReviewAITag.review_pk, AITag.tag, AITag.id)
                    .join(AITag, AITag.id == ReviewAITag.tag_id)
                    .where(ReviewAITag.review_pk.in_(chunk))
                    .order_by(ReviewAITag.review_pk, AITag.id)
                ).all()
                links.extend(
                    TagLink(review_id=review_pk, label=tag, source=source, tag_id=tag_id)
                    for review_pk, tag, tag_id in rows
                )
            else:
                rows = db.execute(
                    select(ReviewTag.review_id, ReviewTag.tag)
                    .where(ReviewTag.user_id == tenant_id)
                    .where(ReviewTag.review_id.in_(chunk))
                    .order_by(ReviewTag.created_at, ReviewTag.id)
                ).all()
                links.extend(
                    TagLink(review_id=review_id, label=tag, source=source)
                    for review_id, tag in rows
                )
    except SQLAlchemyError as e:
        log.error(f"Tag link query failed (source={source.value}): {e}")
        raise FetchError("Failed to load tags", source=source.value) from e
    return links


def find_ai_tag_ids(
    db: Session,
    normalized_label: str,
    normalize,
    log: logging.Logger = logger,
) -> List[str]:
    """Ids of every AI tag whose normalized label equals ``normalized_label``."""
    try:
        rows = db.execute(select(AITag.id, AITag.tag)).all()
    except SQLAlchemyError as e:
        log.error(f"AI tag catalog query failed: {e}")
        raise FetchError("Failed to load tags") from e
    return sorted(tag_id for tag_id, tag in rows if normalize(tag) == normalized_label)
