"""Bucketing and metrics for review rows.

Buckets are keyed by UTC day or by UTC Monday-start week. The emitted
series is dense: every calendar unit between the range bounds appears,
whether or not it holds reviews.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from review_analytics.core.errors import report_bad_data
from review_analytics.services.analytics.date_range import ResolvedRange
from review_analytics.services.analytics.rows import ReviewRow

logger = logging.getLogger(__name__)

DAY = "day"
WEEK = "week"
GRANULARITIES = (DAY, WEEK)

# Ranges up to this many days are bucketed by day
AUTO_DAY_LIMIT = 90


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    if not denominator:
        return None
    return numerator / denominator


def resolve_granularity(requested: Optional[str], range_days: int) -> str:
    """Explicit day/week wins; anything else (including "auto") is auto."""
    if requested in GRANULARITIES:
        return requested
    return DAY if range_days <= AUTO_DAY_LIMIT else WEEK


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.isoweekday() - 1)


def bucket_floor(moment: datetime, granularity: str) -> date:
    day = moment.date()
    return week_start(day) if granularity == WEEK else day


def bucket_key(moment: datetime, granularity: str) -> str:
    return bucket_floor(moment, granularity).isoformat()


@dataclass
class Bucket:
    """Running counters for one calendar unit (or a whole period)."""

    count: int = 0
    rating_sum: float = 0.0
    rating_count: int = 0
    negative_count: int = 0
    replyable_count: int = 0
    replied_count: int = 0

    def add(self, row: ReviewRow) -> None:
        self.count += 1
        if row.rating is not None:
            self.rating_sum += row.rating
            self.rating_count += 1
        if row.is_negative:
            self.negative_count += 1
        if row.is_replyable:
            self.replyable_count += 1
            if row.is_replied:
                self.replied_count += 1

    @property
    def avg_rating(self) -> Optional[float]:
        if not self.rating_count:
            return None
        return round(self.rating_sum / self.rating_count, 1)

    @property
    def neg_share(self) -> Optional[float]:
        return safe_ratio(self.negative_count, self.count)

    @property
    def reply_rate(self) -> Optional[float]:
        return safe_ratio(self.replied_count, self.replyable_count)

    def to_metrics(self) -> Dict[str, Any]:
        return {
            "review_count": self.count,
            "avg_rating": self.avg_rating,
            "neg_share": self.neg_share,
            "reply_rate": self.reply_rate,
        }


def accumulate(rows: Iterable[ReviewRow], granularity: str) -> Dict[str, Bucket]:
    """Group rows into buckets by effective time. Undated rows are skipped."""
    buckets: Dict[str, Bucket] = {}
    for row in rows:
        moment = row.effective_time
        if moment is None:
            continue
        buckets.setdefault(bucket_key(moment, granularity), Bucket()).add(row)
    return buckets


def build_timeseries(
    rows: List[ReviewRow],
    resolved: ResolvedRange,
    granularity: str,
) -> List[Dict[str, Any]]:
    """Dense series of points from the start bucket to the end bucket.

    For all_time the walk starts at the bucket of the epoch sentinel.
    """
    buckets = accumulate(rows, granularity)
    start = bucket_floor(resolved.range.start, granularity)
    end = bucket_floor(resolved.range.end, granularity)

    step = timedelta(days=7 if granularity == WEEK else 1)
    points = []
    cursor = start
    while cursor <= end:
        key = cursor.isoformat()
        bucket = buckets.get(key) or Bucket()
        points.append({"date": key, **bucket.to_metrics()})
        cursor += step
    return points


def period_metrics(rows: Iterable[ReviewRow]) -> Dict[str, Any]:
    """Whole-period metrics with the same semantics as a series point."""
    bucket = Bucket()
    for row in rows:
        bucket.add(row)
    return bucket.to_metrics()


def _pct(value: Optional[float]) -> Optional[int]:
    if value is None:
        return None
    return int(round(value * 100))


def compute_overview_kpis(
    rows: List[ReviewRow],
    log: logging.Logger = logger,
) -> Dict[str, Any]:
    """Whole-range KPIs and rating histogram.

    Returns a dict with ``kpis``, ``ratings`` and ``reasons`` (informational
    reasons raised while computing).
    """
    histogram = {str(star): 0 for star in range(1, 6)}
    total = len(rows)
    rating_sum = 0.0
    rated = 0
    negative = 0
    replyable = 0
    replied = 0
    reasons: List[str] = []

    for row in rows:
        if row.rating is not None:
            rating_sum += row.rating
            rated += 1
            if not math.isnan(row.rating):
                star = int(math.floor(row.rating + 0.5))
                if 1 <= star <= 5:
                    histogram[str(star)] += 1
        if row.is_negative:
            negative += 1
        if row.is_replyable:
            replyable += 1
            if row.is_replied:
                replied += 1

    avg_rating = round(rating_sum / rated, 1) if rated else None
    response_rate_pct = _pct(safe_ratio(replied, replyable))
    if response_rate_pct is not None and not 0 <= response_rate_pct <= 100:
        report_bad_data(
            log,
            "response rate out of range, reported as null",
            response_rate_pct=response_rate_pct,
        )
        response_rate_pct = None
        reasons.append("invalid_response_rate")

    kpis = {
        "reviews_total": total,
        "reviews_with_text": replyable,
        "replyable_count": replyable,
        "replied_count": replied,
        "avg_rating": avg_rating,
        "negative_share_pct": _pct(safe_ratio(negative, rated)),
        "response_rate_pct": response_rate_pct,
    }
    return {"kpis": kpis, "ratings": histogram, "reasons": reasons}
