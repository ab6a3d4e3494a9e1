"""Tests for tag normalization, classification and driver ranking."""

from conftest import make_row
from review_analytics.services.analytics.drivers import (
    aggregate_tags,
    build_drivers,
    build_topics,
    normalize_tag_label,
    summarize_sentiment,
)
from review_analytics.services.analytics.rows import TagLink, TagSource


def links(*pairs, source=TagSource.AI):
    return [TagLink(review_id=rid, label=label, source=source, tag_id=f"t-{label}") for rid, label in pairs]


def sentiments_for(prefix: str, positive=0, negative=0, neutral=0):
    """Review ids and their sentiment for a synthetic tag."""
    result = {}
    n = 0
    for label, count in (("positive", positive), ("negative", negative), ("neutral", neutral)):
        for _ in range(count):
            result[f"{prefix}-{n}"] = label
            n += 1
    return result


class TestNormalization:
    def test_trim_lower_and_strip_accents(self):
        assert normalize_tag_label("  Accueil Chaleureux ") == "accueil chaleureux"
        assert normalize_tag_label("Qualité") == "qualite"
        assert normalize_tag_label("Crème BRÛLÉE") == "creme brulee"

    def test_empty_labels(self):
        assert normalize_tag_label("   ") == ""
        assert normalize_tag_label(None) == ""


class TestAggregation:
    """Per-tag counts and classification."""

    def test_variants_merge_and_keep_first_label(self):
        stats = aggregate_tags(
            links(("r1", " Qualité "), ("r2", "qualite"), ("r3", "QUALITÉ")),
            {"r1": "positive", "r2": "positive", "r3": "negative"},
        )
        assert list(stats) == ["qualite"]
        stat = stats["qualite"]
        assert stat.label == "Qualité"
        assert stat.count == 3
        assert (stat.positive, stat.negative) == (2, 1)
        assert len(stat.tag_ids) == 3

    def test_review_counts_once_per_tag(self):
        stats = aggregate_tags(links(("r1", "Service"), ("r1", "service ")), {"r1": "negative"})
        assert stats["service"].count == 1
        assert stats["service"].negative == 1

    def test_empty_labels_ignored(self):
        stats = aggregate_tags(links(("r1", "  "), ("r2", "Prix")), {})
        assert list(stats) == ["prix"]
        assert stats["prix"].unknown == 1

    def test_classification(self):
        irritant = sentiments_for("i", positive=1, negative=3)
        strength = sentiments_for("s", positive=2)
        neither = sentiments_for("n", negative=1)
        all_links = (
            links(*[(rid, "attente") for rid in irritant])
            + links(*[(rid, "terrasse") for rid in strength])
            + links(*[(rid, "bruit") for rid in neither])
        )
        stats = aggregate_tags(all_links, {**irritant, **strength, **neither})

        assert stats["attente"].classification == "irritant"
        assert stats["terrasse"].classification == "strength"
        assert stats["bruit"].classification is None

        rows = [make_row(id=rid) for rid in {**irritant, **strength, **neither}]
        drivers = build_drivers(rows, stats, {}, TagSource.AI)
        assert [d["key"] for d in drivers["irritants"]] == ["attente"]
        assert [d["key"] for d in drivers["positives"]] == ["terrasse"]
        # the neither-class tag still counts in the totals
        assert drivers["totals"]["tagged_count"] == 7
        assert drivers["totals"]["tags"] == 3
        assert drivers["totals"]["tagged_reviews"] == 7

    def test_two_negatives_not_above_positives_is_strength(self):
        stats = aggregate_tags(
            links(("a", "menu"), ("b", "menu"), ("c", "menu"), ("d", "menu")),
            {"a": "negative", "b": "negative", "c": "positive", "d": "positive"},
        )
        assert stats["menu"].classification == "strength"


class TestDrivers:
    """Ranking, share and deltas."""

    def test_share_and_delta_against_previous(self):
        current = aggregate_tags(
            links(("r1", "Cuisine"), ("r2", "Cuisine"), ("r3", "Cuisine"), ("r4", "Prix")),
            {"r1": "positive", "r2": "positive", "r3": "neutral", "r4": "positive"},
        )
        previous = aggregate_tags(links(("p1", "cuisine"), ("p2", "cuisine")), {})
        drivers = build_drivers([make_row(id=f"r{i}") for i in range(1, 5)], current, previous, TagSource.AI)

        cuisine, prix = drivers["positives"]
        assert cuisine["label"] == "Cuisine"
        assert cuisine["share_pct"] == 75.0
        assert cuisine["net_sentiment"] == 2
        assert cuisine["previous_count"] == 2
        assert cuisine["delta"] == 1
        assert cuisine["delta_pct"] == 0.5
        assert cuisine["source"] == "ai"

        # no baseline, no delta
        assert prix["previous_count"] == 0
        assert prix["delta"] is None
        assert prix["delta_pct"] is None

    def test_top_five_sorted_by_count_then_label(self):
        pairs = []
        sentiments = {}
        for label, count in [("a", 1), ("b", 3), ("c", 2), ("d", 2), ("e", 1), ("f", 4)]:
            for j in range(count):
                rid = f"{label}{j}"
                pairs.append((rid, label))
                sentiments[rid] = "positive"
        stats = aggregate_tags(links(*pairs), sentiments)
        drivers = build_drivers([], stats, {}, TagSource.MANUAL)
        assert [d["key"] for d in drivers["positives"]] == ["f", "b", "c", "d", "a"]

    def test_no_tags(self):
        drivers = build_drivers([make_row()], {}, {}, TagSource.MANUAL)
        assert drivers["totals"] == {"reviews": 1, "tagged_reviews": 0, "tagged_count": 0, "tags": 0}
        assert drivers["positives"] == []
        assert drivers["irritants"] == []


def test_topics_capped_at_eight():
    pairs = [(f"r{i}", f"tag{i}") for i in range(10)]
    stats = aggregate_tags(links(*pairs), {rid: "positive" for rid, _ in pairs})
    topics = build_topics(stats)
    assert len(topics["strengths"]) == 8
    assert topics["strengths"][0] == {"label": "tag0", "count": 1}
    assert topics["irritants"] == []


def test_sentiment_summary():
    sentiments = {"a": "positive", "b": "positive", "c": "negative", "d": None}
    summary = summarize_sentiment(["a", "b", "c", "d", "e"], sentiments)
    assert summary == {"positive": 2, "neutral": 0, "negative": 1, "positive_pct": 50}
    assert summarize_sentiment(["e"], sentiments) is None
