"""Analytics service.

Every operation follows the same path: resolve the date range, resolve the
tenant's locations, fetch the rows, then hand them to the pure metric
components. Zero locations is never an error: each operation returns its
empty shape flagged with ``no_locations``.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from review_analytics.core.config import Settings, settings as default_settings
from review_analytics.core.errors import NotFoundError
from review_analytics.schemas.analytics import AnalyticsQuery
from review_analytics.services.analytics.compare import compare_periods
from review_analytics.services.analytics.date_range import (
    DateRange,
    ResolvedRange,
    previous_period,
    resolve_date_range,
)
from review_analytics.services.analytics.drilldown import (
    TagFilter,
    build_drilldown_page,
    clamp_page,
    matching_review_ids,
    parse_tag_ids,
)
from review_analytics.services.analytics.drivers import (
    aggregate_tags,
    build_drivers,
    build_topics,
    normalize_tag_label,
    select_tag_source,
    summarize_sentiment,
)
from review_analytics.services.analytics.fetcher import (
    FetchResult,
    fetch_reviews,
    fetch_sentiments,
    fetch_tag_links,
    find_ai_tag_ids,
)
from review_analytics.services.analytics.insights import (
    AIClient,
    InsightGenerator,
    OpenAIResponsesClient,
    build_rule_insights,
)
from review_analytics.services.analytics.locations import LocationScope, resolve_location_ids
from review_analytics.services.analytics.metrics import (
    build_timeseries,
    compute_overview_kpis,
    resolve_granularity,
)
from review_analytics.services.analytics.quality import compute_quality
from review_analytics.services.analytics.rows import ReviewRow, TagSource

logger = logging.getLogger(__name__)

EMPTY = "empty"
PARTIAL = "partial"
OK = "ok"

# Reasons that downgrade an "ok" status to "partial"
PARTIAL_REASONS = ("no_sentiment_data", "no_ai_topics", "max_rows_reached")

# Points of the series handed to the AI provider
AI_CONTEXT_POINTS = 12


def fetch_reasons(current: FetchResult, *others: FetchResult) -> List[str]:
    """Reasons every view reports about its fetches."""
    reasons: List[str] = []
    if not current.rows:
        reasons.append("no_reviews_in_range")
    if current.truncated or any(other.truncated for other in others):
        reasons.append("max_rows_reached")
    return reasons


def data_status_for(reasons: List[str]) -> str:
    if "no_locations" in reasons or "no_reviews_in_range" in reasons:
        return EMPTY
    if any(reason in PARTIAL_REASONS for reason in reasons):
        return PARTIAL
    return OK


class AnalyticsService:
    """Review analytics for one tenant."""

    def __init__(
        self,
        db: Session,
        tenant_id: str,
        settings: Optional[Settings] = None,
        log: Optional[logging.Logger] = None,
        ai_client: Optional[AIClient] = None,
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.settings = settings or default_settings
        self.log = log or logger
        self.now = now
        if not self.settings.ai_enabled:
            ai_client = None
        elif ai_client is None:
            ai_client = OpenAIResponsesClient.from_settings(self.settings)
        self.ai_client = ai_client

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def run(self, query: AnalyticsQuery) -> Dict[str, Any]:
        handlers: Dict[str, Callable[[AnalyticsQuery], Dict[str, Any]]] = {
            "overview": self.overview,
            "timeseries": self.timeseries,
            "drivers": self.drivers,
            "quality": self.quality,
            "drilldown": self.drilldown,
            "compare": self.compare,
            "insights": self.insights,
        }
        return handlers.get(query.view, self.overview)(query)

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _resolve_range(self, query: AnalyticsQuery) -> ResolvedRange:
        return resolve_date_range(
            query.preset,
            query.date_from,
            query.date_to,
            query.tz or self.settings.analytics_default_timezone,
            now=self.now,
            default_preset=self.settings.analytics_default_preset,
        )

    def _resolve_scope(self, query: AnalyticsQuery) -> LocationScope:
        scope = resolve_location_ids(self.db, self.tenant_id, query.location_id, log=self.log)
        if scope.missing:
            raise NotFoundError(location_id=query.location_id)
        return scope

    def _fetch(self, scope: LocationScope, date_range: DateRange) -> FetchResult:
        return fetch_reviews(
            self.db,
            self.tenant_id,
            scope.location_ids,
            date_range,
            log=self.log,
            page_size=self.settings.reviews_page_size,
            max_rows=self.settings.reviews_max_rows,
        )

    def _prepare(self, query: AnalyticsQuery):
        resolved = self._resolve_range(query)
        scope = self._resolve_scope(query)
        return resolved, scope

    @staticmethod
    def _scope_info(resolved: ResolvedRange, query: AnalyticsQuery, scope: LocationScope) -> Dict[str, Any]:
        return {
            "preset": resolved.preset,
            "from": resolved.reported_from,
            "to": resolved.reported_to,
            "tz": resolved.timezone,
            "location_id": query.location_id,
            "location_ids_count": len(scope.location_ids),
        }

    @staticmethod
    def _period_info(resolved: ResolvedRange) -> Dict[str, Any]:
        return {
            "preset": resolved.preset,
            "from": resolved.reported_from,
            "to": resolved.reported_to,
            "tz": resolved.timezone,
        }

    def _log_summary(self, view: str, resolved: ResolvedRange, scope: LocationScope, status: str) -> None:
        self.log.info(
            f"[analytics/{view}] tenant={self.tenant_id} preset={resolved.preset} "
            f"locations={len(scope.location_ids)} status={status}"
        )

    def _tag_stats(self, rows: List[ReviewRow], source: TagSource):
        review_ids = [row.id for row in rows]
        sentiments = fetch_sentiments(self.db, review_ids, log=self.log)
        links = fetch_tag_links(self.db, self.tenant_id, review_ids, source, log=self.log)
        return aggregate_tags(links, sentiments), sentiments

    def _drivers_for(self, current: FetchResult, previous: FetchResult) -> Dict[str, Any]:
        source = select_tag_source(self.db, [row.id for row in current.rows], log=self.log)
        current_stats, _ = self._tag_stats(current.rows, source)
        previous_stats, _ = self._tag_stats(previous.rows, source)
        return build_drivers(current.rows, current_stats, previous_stats, source)

    def _empty_overview(self, scope_info: Dict[str, Any], reasons: List[str]) -> Dict[str, Any]:
        empty = compute_overview_kpis([], log=self.log)
        return {
            "scope": scope_info,
            "data_status": EMPTY,
            "reasons": reasons,
            "kpis": empty["kpis"],
            "ratings": empty["ratings"],
            "sentiment": None,
            "topics": {"strengths": [], "irritants": []},
        }

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def overview(self, query: AnalyticsQuery) -> Dict[str, Any]:
        """Whole-range KPIs, rating histogram, sentiment split and topics."""
        resolved, scope = self._prepare(query)
        scope_info = self._scope_info(resolved, query, scope)

        if not scope.location_ids:
            self._log_summary("overview", resolved, scope, EMPTY)
            return self._empty_overview(scope_info, ["no_locations"])

        fetched = self._fetch(scope, resolved.range)
        rows = fetched.rows
        if not rows:
            self._log_summary("overview", resolved, scope, EMPTY)
            return self._empty_overview(scope_info, ["no_reviews_in_range"])

        computed = compute_overview_kpis(rows, log=self.log)
        source = select_tag_source(self.db, [row.id for row in rows], log=self.log)
        stats, sentiments = self._tag_stats(rows, source)
        sentiment = summarize_sentiment([row.id for row in rows], sentiments)
        topics = build_topics(stats)

        reasons: List[str] = []
        if sentiment is None:
            reasons.append("no_sentiment_data")
        if not topics["strengths"] and not topics["irritants"]:
            reasons.append("no_ai_topics")
        reasons.extend(fetch_reasons(fetched))
        if computed["kpis"]["replyable_count"] == 0:
            reasons.append("no_replyable_reviews")
        reasons.extend(computed["reasons"])

        status = data_status_for(reasons)
        self._log_summary("overview", resolved, scope, status)
        return {
            "scope": scope_info,
            "data_status": status,
            "reasons": reasons,
            "kpis": computed["kpis"],
            "ratings": computed["ratings"],
            "sentiment": sentiment,
            "topics": topics,
        }

    def timeseries(self, query: AnalyticsQuery) -> Dict[str, Any]:
        """Dense day/week series of count, rating, negative share and reply rate."""
        resolved, scope = self._prepare(query)
        granularity = resolve_granularity(query.granularity, resolved.range.days)
        result = {
            "scope": self._scope_info(resolved, query, scope),
            "granularity": granularity,
        }

        if not scope.location_ids:
            self._log_summary("timeseries", resolved, scope, EMPTY)
            return {**result, "data_status": EMPTY, "reasons": ["no_locations"], "points": []}

        fetched = self._fetch(scope, resolved.range)
        reasons = fetch_reasons(fetched)
        status = data_status_for(reasons)
        self._log_summary("timeseries", resolved, scope, status)
        return {
            **result,
            "data_status": status,
            "reasons": reasons,
            "points": build_timeseries(fetched.rows, resolved, granularity),
        }

    def drivers(self, query: AnalyticsQuery) -> Dict[str, Any]:
        """Strengths and irritants with deltas against the previous period."""
        resolved, scope = self._prepare(query)
        period = self._period_info(resolved)

        if not scope.location_ids:
            self._log_summary("drivers", resolved, scope, EMPTY)
            return {
                "period": period,
                "data_status": EMPTY,
                "reasons": ["no_locations"],
                "source": None,
                "totals": {"reviews": 0, "tagged_reviews": 0, "tagged_count": 0, "tags": 0},
                "positives": [],
                "irritants": [],
            }

        current = self._fetch(scope, resolved.range)
        previous = self._fetch(scope, previous_period(resolved.range))
        drivers = self._drivers_for(current, previous)

        reasons = fetch_reasons(current, previous)
        status = data_status_for(reasons)
        self._log_summary("drivers", resolved, scope, status)
        return {"period": period, "data_status": status, "reasons": reasons, **drivers}

    def quality(self, query: AnalyticsQuery) -> Dict[str, Any]:
        """Reply rate, reply delay and 24h SLA."""
        resolved, scope = self._prepare(query)
        period = self._period_info(resolved)

        if not scope.location_ids:
            self._log_summary("quality", resolved, scope, EMPTY)
            return {
                "period": period,
                "data_status": EMPTY,
                "reasons": ["no_locations"],
                **compute_quality([], log=self.log),
            }

        fetched = self._fetch(scope, resolved.range)
        reasons = fetch_reasons(fetched)
        status = data_status_for(reasons)
        self._log_summary("quality", resolved, scope, status)
        return {
            "period": period,
            "data_status": status,
            "reasons": reasons,
            **compute_quality(fetched.rows, log=self.log),
        }

    def drilldown(self, query: AnalyticsQuery) -> Dict[str, Any]:
        """Newest-first page of the reviews carrying one tag."""
        resolved, scope = self._prepare(query)
        period = self._period_info(resolved)
        tag_ids = parse_tag_ids(query.tag_ids)

        if query.source:
            source = TagSource(query.source)
        elif tag_ids:
            source = TagSource.AI
        else:
            source = None

        if not scope.location_ids:
            self._log_summary("drilldown", resolved, scope, EMPTY)
            offset, limit = clamp_page(query.offset, query.limit)
            tag_filter = TagFilter(source=source or TagSource.MANUAL, label=query.tag, tag_ids=tag_ids)
            return {
                "tag": tag_filter.to_dict(),
                "period": period,
                "data_status": EMPTY,
                "reasons": ["no_locations"],
                "items": [],
                "pagination": {"offset": offset, "limit": limit, "total": 0, "has_more": False},
            }

        fetched = self._fetch(scope, resolved.range)
        review_ids = [row.id for row in fetched.rows]
        if source is None:
            source = select_tag_source(self.db, review_ids, log=self.log)
        if source == TagSource.AI and not tag_ids and query.tag:
            tag_ids = set(find_ai_tag_ids(
                self.db, normalize_tag_label(query.tag), normalize_tag_label, log=self.log
            ))

        tag_filter = TagFilter(source=source, label=query.tag, tag_ids=tag_ids)
        matching = set()
        if not tag_filter.is_empty:
            links = fetch_tag_links(self.db, self.tenant_id, review_ids, source, log=self.log)
            matching = matching_review_ids(links, tag_filter)

        page = build_drilldown_page(fetched.rows, matching, query.offset, query.limit)
        reasons = fetch_reasons(fetched)
        status = data_status_for(reasons)
        self._log_summary("drilldown", resolved, scope, status)
        return {
            "tag": tag_filter.to_dict(),
            "period": period,
            "data_status": status,
            "reasons": reasons,
            **page,
        }

    def compare(self, query: AnalyticsQuery) -> Dict[str, Any]:
        """Current window against the window of equal length right before it."""
        resolved, scope = self._prepare(query)
        previous_range = previous_period(resolved.range)

        if not scope.location_ids:
            self._log_summary("compare", resolved, scope, EMPTY)
            result = compare_periods([], [], resolved.range, previous_range, resolved.preset)
            return {**result, "data_status": EMPTY, "reasons": ["no_locations"]}

        current = self._fetch(scope, resolved.range)
        previous = self._fetch(scope, previous_range)
        result = compare_periods(current.rows, previous.rows, resolved.range, previous_range, resolved.preset)

        reasons = fetch_reasons(current, previous)
        status = data_status_for(reasons)
        self._log_summary("compare", resolved, scope, status)
        return {**result, "data_status": status, "reasons": reasons}

    def insights(self, query: AnalyticsQuery) -> Dict[str, Any]:
        """Rule-based insights, rewritten by the AI provider when available."""
        resolved, scope = self._prepare(query)

        if not scope.location_ids:
            self._log_summary("insights", resolved, scope, EMPTY)
            return {
                "mode": "basic",
                "used_ai": False,
                "insights": [],
                "data_status": EMPTY,
                "reasons": ["no_locations"],
            }

        previous_range = previous_period(resolved.range)
        current = self._fetch(scope, resolved.range)
        previous = self._fetch(scope, previous_range)

        comparison = compare_periods(
            current.rows, previous.rows, resolved.range, previous_range, resolved.preset
        )
        granularity = resolve_granularity(query.granularity, resolved.range.days)
        points = build_timeseries(current.rows, resolved, granularity)
        drivers = self._drivers_for(current, previous)

        rule_insights = build_rule_insights(comparison, points, drivers["positives"])
        context = {
            "period": self._period_info(resolved),
            "comparison": comparison,
            "granularity": granularity,
            "recent_points": points[-AI_CONTEXT_POINTS:],
            "strengths": [{"label": item["label"], "count": item["count"]} for item in drivers["positives"]],
            "irritants": [{"label": item["label"], "count": item["count"]} for item in drivers["irritants"]],
        }
        generator = InsightGenerator(
            self.ai_client,
            log=self.log,
            timeout=self.settings.ai_insights_timeout_seconds,
        )
        outcome = generator.generate(context, rule_insights, requested_mode=query.mode)

        reasons = fetch_reasons(current, previous)
        status = data_status_for(reasons)
        self._log_summary("insights", resolved, scope, f"{status}/{outcome.state.value}")
        return {**outcome.to_dict(), "data_status": status, "reasons": reasons}
