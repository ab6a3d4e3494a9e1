"""Service tests: status and reasons reported by every view."""

import pytest

from conftest import TENANT_ID
from review_analytics.core.config import settings
from review_analytics.schemas.analytics import AnalyticsQuery
from review_analytics.services.analytics.service import AnalyticsService

VIEWS = ["overview", "timeseries", "drivers", "quality", "drilldown", "compare", "insights"]


@pytest.fixture
def capped_service(db_session):
    """Service that stops reading after two rows."""
    capped = settings.model_copy(update={"reviews_page_size": 1, "reviews_max_rows": 2})
    return AnalyticsService(db_session, TENANT_ID, settings=capped)


class TestRowCap:
    @pytest.mark.parametrize("view", VIEWS)
    def test_capped_current_period_is_partial(self, capped_service, location, add_review, view):
        for days_ago in (1, 2, 3):
            add_review(days_ago=days_ago, rating=4, comment="fine")

        result = capped_service.run(AnalyticsQuery(view=view, preset="last_30_days", tag="Accueil"))
        assert result["data_status"] == "partial"
        assert "max_rows_reached" in result["reasons"]

    @pytest.mark.parametrize("view", ["drivers", "compare", "insights"])
    def test_capped_previous_period_is_partial(self, capped_service, location, add_review, view):
        add_review(days_ago=5, rating=5)
        for days_ago in (35, 36, 37):
            add_review(days_ago=days_ago, rating=2)

        result = capped_service.run(AnalyticsQuery(view=view, preset="last_30_days"))
        assert result["reasons"] == ["max_rows_reached"]
        assert result["data_status"] == "partial"

    def test_uncapped_views_are_ok(self, db_session, location, add_review):
        add_review(days_ago=1, rating=4)
        service = AnalyticsService(db_session, TENANT_ID)
        for view in ("drivers", "quality", "drilldown", "compare", "insights"):
            result = service.run(AnalyticsQuery(view=view, preset="last_30_days"))
            assert result["data_status"] == "ok", view
            assert result["reasons"] == [], view


class TestNoReviewsInRange:
    @pytest.mark.parametrize("view", VIEWS)
    def test_every_view_reports_empty_period(self, db_session, location, add_review, view):
        add_review(days_ago=60, rating=3)
        service = AnalyticsService(db_session, TENANT_ID)

        result = service.run(AnalyticsQuery(view=view, preset="last_7_days"))
        assert result["data_status"] == "empty"
        assert "no_reviews_in_range" in result["reasons"]
