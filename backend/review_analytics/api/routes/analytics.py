"""Review analytics API route.

A single GET endpoint dispatches on ``view`` (alias ``op``) to one of the
seven analytics operations.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request

from review_analytics.core.auth import CurrentTenant
from review_analytics.core.config import settings
from review_analytics.core.rate_limit import limiter
from review_analytics.db.session import DbSession
from review_analytics.schemas.analytics import AnalyticsQuery
from review_analytics.services.analytics.service import AnalyticsService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
@limiter.limit(settings.analytics_rate_limit)
def get_analytics(
    request: Request,
    db: DbSession,
    tenant_id: CurrentTenant,
    view: Optional[str] = Query(None, description="overview, timeseries, drivers, quality, drilldown, compare or insights"),
    op: Optional[str] = Query(None, description="Alias of view"),
    preset: Optional[str] = Query(None),
    period: Optional[str] = Query(None, description="Alias of preset"),
    location_id: Optional[str] = Query(None),
    location: Optional[str] = Query(None, description="Alias of location_id"),
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    tz: Optional[str] = Query(None, description="IANA timezone"),
    granularity: Optional[str] = Query(None, description="day, week or auto"),
    mode: Optional[str] = Query(None, description="auto, ai or basic"),
    tag: Optional[str] = Query(None),
    source: Optional[str] = Query(None, description="manual or ai"),
    tag_ids: Optional[str] = Query(None, description="Comma separated AI tag ids"),
    offset: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
):
    """Review analytics for the authenticated tenant."""
    query = AnalyticsQuery(
        view=view or op,
        preset=preset or period,
        location_id=location_id or location,
        date_from=date_from,
        date_to=date_to,
        tz=tz,
        granularity=granularity,
        mode=mode,
        tag=tag,
        source=source,
        tag_ids=tag_ids,
        offset=offset,
        limit=limit,
    )
    service = AnalyticsService(db, tenant_id, log=logger)
    return service.run(query)
