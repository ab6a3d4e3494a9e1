"""Pytest configuration and fixtures."""

import os

# Configure the app before it is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-review-analytics-0123456789")
os.environ.pop("OPENAI_API_KEY", None)

import itertools
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from review_analytics.core.security import create_access_token
from review_analytics.db.base import Base
from review_analytics.db.session import get_db
from review_analytics.main import app
# Import all models to ensure they're registered with Base.metadata
from review_analytics.models import (
    AITag,
    GoogleLocation,
    GoogleReview,
    ReviewAIInsight,
    ReviewAITag,
    ReviewTag,
)
from review_analytics.services.analytics.rows import ReviewRow

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

TENANT_ID = "tenant-1"
OTHER_TENANT_ID = "tenant-2"
LOCATION = "accounts/1/locations/100"


_row_ids = itertools.count(1)


def make_row(**kwargs) -> ReviewRow:
    """Build a ReviewRow with a unique id."""
    kwargs.setdefault("id", f"r{next(_row_ids)}")
    return ReviewRow(**kwargs)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable the rate limiter during tests to avoid flaky failures
    from review_analytics.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def auth_token() -> str:
    """Token for the test tenant."""
    return create_access_token(data={"sub": TENANT_ID})


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    """Get authentication headers."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def location(db_session: Session) -> GoogleLocation:
    """A location registered to the test tenant."""
    loc = GoogleLocation(user_id=TENANT_ID, location_resource_name=LOCATION, title="Main Street")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture
def add_review(db_session: Session, now: datetime):
    """Factory inserting a review ``days_ago`` days before now."""
    def _add(days_ago: float = 1, tenant_id: str = TENANT_ID, location_id: str = LOCATION, **fields):
        fields.setdefault("create_time", now - timedelta(days=days_ago))
        review = GoogleReview(user_id=tenant_id, location_id=location_id, **fields)
        db_session.add(review)
        db_session.commit()
        return review

    return _add


@pytest.fixture
def add_ai_tag(db_session: Session):
    """Factory linking a review to an AI tag (created on first use)."""
    def _add(review: GoogleReview, label: str, sentiment: str = None):
        tag = db_session.query(AITag).filter(AITag.tag == label).first()
        if tag is None:
            tag = AITag(tag=label)
            db_session.add(tag)
            db_session.flush()
        db_session.add(ReviewAITag(review_pk=review.id, tag_id=tag.id))
        if sentiment is not None and db_session.get(ReviewAIInsight, review.id) is None:
            db_session.add(ReviewAIInsight(review_pk=review.id, user_id=review.user_id, sentiment=sentiment))
        db_session.commit()
        return tag

    return _add


@pytest.fixture
def add_manual_tag(db_session: Session):
    """Factory adding an operator tag to a review."""
    def _add(review: GoogleReview, label: str):
        tag = ReviewTag(user_id=review.user_id, review_id=review.id, location_id=review.location_id, tag=label)
        db_session.add(tag)
        db_session.commit()
        return tag

    return _add


@pytest.fixture
def set_sentiment(db_session: Session):
    def _set(review: GoogleReview, sentiment: str):
        db_session.add(ReviewAIInsight(review_pk=review.id, user_id=review.user_id, sentiment=sentiment))
        db_session.commit()

    return _set
