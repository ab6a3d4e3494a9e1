"""Date range resolution for analytics presets.

Presets are evaluated in the caller's timezone (midnight boundaries are
local) and converted to UTC. Bounds are inclusive on both sides, matching
the ``lower <= x <= upper`` filter used by the review fetcher.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from review_analytics.core.errors import InvalidQueryError

# Lower bound used internally for "all_time"; never reported to callers
ALL_TIME_START = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Gap between a period and the one before it (bounds are inclusive)
BOUNDARY_GAP = timedelta(microseconds=1)

PRESETS = (
    "this_week",
    "this_month",
    "this_quarter",
    "last_quarter",
    "this_year",
    "last_year",
    "last_7_days",
    "last_30_days",
    "last_90_days",
    "all_time",
    "custom",
)

_ROLLING_DAYS = {"last_7_days": 7, "last_30_days": 30, "last_90_days": 90}


@dataclass(frozen=True)
class DateRange:
    """Inclusive UTC interval."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def days(self) -> int:
        """Whole days covered, counting both ends (minimum 1)."""
        seconds = self.duration.total_seconds()
        return max(1, math.ceil(seconds / 86400) + 1)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True)
class ResolvedRange:
    """A preset resolved to concrete bounds, plus what to report back."""

    preset: str
    timezone: str
    range: DateRange

    @property
    def is_all_time(self) -> bool:
        return self.preset == "all_time"

    @property
    def reported_from(self) -> Optional[str]:
        return None if self.is_all_time else isoformat_utc(self.range.start)

    @property
    def reported_to(self) -> str:
        return isoformat_utc(self.range.end)


def isoformat_utc(moment: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidQueryError(f"Unknown timezone: {tz_name}")


def _local_midnight(day: date, zone: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(timezone.utc)


def _quarter_start(year: int, month: int) -> date:
    return date(year, ((month - 1) // 3) * 3 + 1, 1)


def _parse_bound(value: str, zone: ZoneInfo, end_of_day: bool) -> datetime:
    """Parse an explicit from/to value.

    Naive values are read in ``zone``; a date-only upper bound covers the
    whole local day.
    """
    raw = value.strip()
    try:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            moment = datetime.combine(day, time.max if end_of_day else time.min, tzinfo=zone)
        else:
            if raw.endswith("Z"):
                raw = raw[:-1] + "+00:00"
            moment = datetime.fromisoformat(raw)
            if moment.tzinfo is None:
                moment = moment.replace(tzinfo=zone)
    except ValueError:
        raise InvalidQueryError(f"Invalid date: {value}")
    return moment.astimezone(timezone.utc)


def resolve_date_range(
    preset: Optional[str],
    from_value: Optional[str],
    to_value: Optional[str],
    tz_name: str,
    now: Optional[datetime] = None,
    default_preset: str = "this_month",
) -> ResolvedRange:
    """Resolve a preset (or explicit bounds) to a concrete UTC range.

    Args:
        preset: Preset name; falls back to ``default_preset`` when empty.
        from_value: Explicit lower bound (custom preset only).
        to_value: Explicit upper bound (custom preset only).
        tz_name: IANA timezone used for local midnight boundaries.
        now: Reference instant, defaults to the current time.
        default_preset: Preset used when none is given.

    Raises:
        InvalidQueryError: unknown preset/timezone or bad custom bounds.
    """
    preset = (preset or default_preset).strip().lower()
    if preset not in PRESETS:
        raise InvalidQueryError(f"Unknown preset: {preset}")

    zone = get_zone(tz_name)
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)

    if preset == "all_time":
        return ResolvedRange(preset, tz_name, DateRange(ALL_TIME_START, now))

    if preset == "custom":
        if not from_value or not to_value:
            raise InvalidQueryError("Missing from/to for custom range.")
        start = _parse_bound(from_value, zone, end_of_day=False)
        end = _parse_bound(to_value, zone, end_of_day=True)
        if start > end:
            raise InvalidQueryError("Range start is after range end.")
        return ResolvedRange(preset, tz_name, DateRange(start, end))

    if preset in _ROLLING_DAYS:
        start = now - timedelta(days=_ROLLING_DAYS[preset])
        return ResolvedRange(preset, tz_name, DateRange(start, now))

    today = now.astimezone(zone).date()
    end = now

    if preset == "this_week":
        start_day = today - timedelta(days=today.isoweekday() - 1)
    elif preset == "this_month":
        start_day = today.replace(day=1)
    elif preset == "this_quarter":
        start_day = _quarter_start(today.year, today.month)
    elif preset == "last_quarter":
        current = _quarter_start(today.year, today.month)
        start_day = _quarter_start(*(
            (current.year, current.month - 3) if current.month > 3 else (current.year - 1, 10)
        ))
        end = _local_midnight(current, zone)
    elif preset == "this_year":
        start_day = date(today.year, 1, 1)
    else:  # last_year
        start_day = date(today.year - 1, 1, 1)
        end = _local_midnight(date(today.year, 1, 1), zone)

    return ResolvedRange(preset, tz_name, DateRange(_local_midnight(start_day, zone), end))


def previous_period(current: DateRange) -> DateRange:
    """Window of identical length immediately preceding ``current``.

    Not calendar aware: a 31-day month shifts back by exactly 31 days. Bounds
    are inclusive, so the window stops one microsecond before ``current``
    starts and a review on the boundary lands in ``current`` only.
    """
    shift = current.duration
    return DateRange(current.start - shift, current.start - BOUNDARY_GAP)
