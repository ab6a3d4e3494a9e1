"""Tag driver aggregation (strengths and irritants)."""

import logging
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from sqlalchemy.orm import Session

from review_analytics.services.analytics.fetcher import has_ai_tag_links
from review_analytics.services.analytics.rows import ReviewRow, TagLink, TagSource

logger = logging.getLogger(__name__)

DRIVERS_TOP_N = 5
TOPICS_TOP_N = 8

IRRITANT = "irritant"
STRENGTH = "strength"

SENTIMENTS = ("positive", "negative", "neutral")


def normalize_tag_label(value: Optional[str]) -> str:
    """Trim, lowercase and strip diacritics ("Accueil " and "accueil" match)."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


@dataclass
class TagStat:
    """Aggregated mentions of one normalized tag."""

    key: str
    label: str
    count: int = 0
    positive: int = 0
    negative: int = 0
    neutral: int = 0
    unknown: int = 0
    tag_ids: Set[str] = field(default_factory=set)
    review_ids: Set[str] = field(default_factory=set)

    @property
    def classification(self) -> Optional[str]:
        if self.negative >= 2 and self.negative > self.positive:
            return IRRITANT
        if self.positive + self.neutral > 0:
            return STRENGTH
        return None

    @property
    def net_sentiment(self) -> int:
        return self.positive - self.negative


def aggregate_tags(
    links: Iterable[TagLink],
    sentiments: Mapping[str, Optional[str]],
) -> Dict[str, TagStat]:
    """Fold tag links into per-tag stats, in first-seen order.

    A review counts once per normalized tag, whatever the number of raw
    labels mapping to it. Tag ids are still collected from every link.
    """
    stats: Dict[str, TagStat] = {}
    for link in links:
        key = normalize_tag_label(link.label)
        if not key:
            continue
        stat = stats.get(key)
        if stat is None:
            stat = stats[key] = TagStat(key=key, label=link.label.strip())
        if link.tag_id is not None:
            stat.tag_ids.add(str(link.tag_id))
        if link.review_id in stat.review_ids:
            continue
        stat.review_ids.add(link.review_id)
        stat.count += 1

        sentiment = (sentiments.get(link.review_id) or "").lower()
        if sentiment == "positive":
            stat.positive += 1
        elif sentiment == "negative":
            stat.negative += 1
        elif sentiment == "neutral":
            stat.neutral += 1
        else:
            stat.unknown += 1
    return stats


def select_tag_source(
    db: Session,
    review_ids: Iterable[str],
    log: logging.Logger = logger,
) -> TagSource:
    """AI tags when the period has any, manual tags otherwise."""
    source = TagSource.AI if has_ai_tag_links(db, review_ids, log=log) else TagSource.MANUAL
    log.debug(f"Tag source resolved to {source.value}")
    return source


def _ranked(stats: Iterable[TagStat], classification: str, limit: int) -> List[TagStat]:
    matching = [stat for stat in stats if stat.classification == classification]
    matching.sort(key=lambda stat: (-stat.count, stat.key))
    return matching[:limit]


def _driver_item(
    stat: TagStat,
    source: TagSource,
    tagged_count: int,
    previous: Mapping[str, TagStat],
) -> Dict[str, Any]:
    previous_stat = previous.get(stat.key)
    previous_count = previous_stat.count if previous_stat else 0
    delta = None
    delta_pct = None
    if previous_count > 0:
        delta = stat.count - previous_count
        delta_pct = round(delta / previous_count, 2)

    return {
        "label": stat.label,
        "key": stat.key,
        "source": source.value,
        "tag_ids": sorted(stat.tag_ids),
        "count": stat.count,
        "positive": stat.positive,
        "negative": stat.negative,
        "neutral": stat.neutral,
        "unknown": stat.unknown,
        "net_sentiment": stat.net_sentiment,
        "share_pct": round(stat.count / tagged_count * 100, 1) if tagged_count else None,
        "previous_count": previous_count,
        "delta": delta,
        "delta_pct": delta_pct,
    }


def build_drivers(
    rows: List[ReviewRow],
    current: Mapping[str, TagStat],
    previous: Mapping[str, TagStat],
    source: TagSource,
    top_n: int = DRIVERS_TOP_N,
) -> Dict[str, Any]:
    """Ranked strengths/irritants with deltas against the previous period."""
    tagged_count = sum(stat.count for stat in current.values())
    tagged_reviews: Set[str] = set()
    for stat in current.values():
        tagged_reviews.update(stat.review_ids)

    return {
        "source": source.value,
        "totals": {
            "reviews": len(rows),
            "tagged_reviews": len(tagged_reviews),
            "tagged_count": tagged_count,
            "tags": len(current),
        },
        "positives": [
            _driver_item(stat, source, tagged_count, previous)
            for stat in _ranked(current.values(), STRENGTH, top_n)
        ],
        "irritants": [
            _driver_item(stat, source, tagged_count, previous)
            for stat in _ranked(current.values(), IRRITANT, top_n)
        ],
    }


def build_topics(stats: Mapping[str, TagStat], top_n: int = TOPICS_TOP_N) -> Dict[str, List[Dict[str, Any]]]:
    """Overview topics: ``{label, count}`` per class."""
    return {
        "strengths": [
            {"label": stat.label, "count": stat.count}
            for stat in _ranked(stats.values(), STRENGTH, top_n)
        ],
        "irritants": [
            {"label": stat.label, "count": stat.count}
            for stat in _ranked(stats.values(), IRRITANT, top_n)
        ],
    }


def summarize_sentiment(
    review_ids: Iterable[str],
    sentiments: Mapping[str, Optional[str]],
) -> Optional[Dict[str, Any]]:
    """Sentiment split over reviews with an AI insight row, or None if none."""
    counts = {name: 0 for name in SENTIMENTS}
    samples = 0
    for review_id in review_ids:
        if review_id not in sentiments:
            continue
        samples += 1
        label = (sentiments[review_id] or "").lower()
        if label in counts:
            counts[label] += 1
    if not samples:
        return None
    return {
        "positive": counts["positive"],
        "neutral": counts["neutral"],
        "negative": counts["negative"],
        "positive_pct": int(round(counts["positive"] / samples * 100)),
    }
