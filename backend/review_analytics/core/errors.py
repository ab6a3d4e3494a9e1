"""Analytics error taxonomy.

Only AuthError, NotFoundError, InvalidQueryError and FetchError ever reach
the HTTP boundary. AIProtocolError is caught inside the insight generator
and BadDataWarning is only ever logged.
"""

import logging
from typing import Any


class AnalyticsError(Exception):
    """Base class for analytics engine errors."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.public_message)
        self.context = context


class AuthError(AnalyticsError):
    """Missing or invalid bearer token."""

    status_code = 401
    public_message = "Unauthorized"


class NotFoundError(AnalyticsError):
    """An explicitly requested resource does not belong to the tenant."""

    status_code = 404
    public_message = "Location not found"


class InvalidQueryError(AnalyticsError):
    """Malformed preset, timezone or custom range."""

    status_code = 400
    public_message = "Invalid query"


class FetchError(AnalyticsError):
    """A datastore read failed. Never retried."""

    status_code = 500
    public_message = "Failed to load reviews"


class AIProtocolError(AnalyticsError):
    """The AI provider call failed, timed out or returned unusable output."""


class BadDataWarning(UserWarning):
    """Non-fatal data quality problem (capped fetch, negative delay, bad rate)."""


def report_bad_data(log: logging.Logger, message: str, **context: Any) -> None:
    """Log a BadDataWarning with structured context."""
    log.warning(
        f"{BadDataWarning.__name__}: {message}",
        extra={"category": BadDataWarning.__name__, "context": context},
    )
