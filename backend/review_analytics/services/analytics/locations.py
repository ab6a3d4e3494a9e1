"""Location scope resolution."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from review_analytics.core.errors import FetchError
from review_analytics.models.review import GoogleLocation, GoogleReview

logger = logging.getLogger(__name__)


@dataclass
class LocationScope:
    """Location ids to aggregate over.

    ``missing`` is only set when an explicit id was requested and does not
    belong to the tenant; an empty scope is not "missing".
    """

    location_ids: List[str] = field(default_factory=list)
    missing: bool = False


def resolve_location_ids(
    db: Session,
    tenant_id: str,
    location_id: Optional[str],
    log: logging.Logger = logger,
) -> LocationScope:
    """Resolve the effective location set for a request.

    An explicit id must be registered to the tenant. Without one, every
    registered location is used; tenants with reviews but no location
    metadata fall back to the distinct location ids on their reviews.
    """
    try:
        if location_id:
            found = db.execute(
                select(GoogleLocation.location_resource_name)
                .where(GoogleLocation.user_id == tenant_id)
                .where(GoogleLocation.location_resource_name == location_id)
                .limit(1)
            ).first()
            if found is None:
                return LocationScope(missing=True)
            return LocationScope(location_ids=[location_id])

        registered = db.execute(
            select(GoogleLocation.location_resource_name)
            .where(GoogleLocation.user_id == tenant_id)
            .order_by(GoogleLocation.location_resource_name)
        ).scalars().all()
        location_ids = list(dict.fromkeys(name for name in registered if name))

        if not location_ids:
            seen = db.execute(
                select(GoogleReview.location_id)
                .where(GoogleReview.user_id == tenant_id)
                .where(GoogleReview.location_id.is_not(None))
                .distinct()
                .order_by(GoogleReview.location_id)
            ).scalars().all()
            location_ids = [value for value in seen if value]
            if location_ids:
                log.info(
                    f"Tenant {tenant_id} has no registered locations, "
                    f"using {len(location_ids)} location(s) seen on reviews"
                )
    except SQLAlchemyError as e:
        log.error(f"Location lookup failed for tenant {tenant_id}: {e}")
        raise FetchError("Failed to load locations", tenant_id=tenant_id) from e

    return LocationScope(location_ids=location_ids)
