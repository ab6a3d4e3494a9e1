"""Period-over-period comparison of the core metrics."""

from typing import Any, Dict, List, Optional

from review_analytics.services.analytics.date_range import DateRange, isoformat_utc
from review_analytics.services.analytics.metrics import period_metrics
from review_analytics.services.analytics.rows import ReviewRow

# Digits kept on a delta, per metric
DELTA_DIGITS = {
    "review_count": None,
    "avg_rating": 2,
    "neg_share": 4,
    "reply_rate": 4,
}


def compare_metric(
    a: Optional[float],
    b: Optional[float],
    digits: Optional[int],
    with_pct: bool = True,
) -> Dict[str, Any]:
    """``{a, b, delta, delta_pct}`` with null wherever a division is undefined."""
    delta = None
    delta_pct = None
    if a is not None and b is not None:
        delta = a - b
        if digits is not None:
            delta = round(delta, digits)
        if with_pct and b != 0:
            delta_pct = round((a - b) / b, 4)
    return {"a": a, "b": b, "delta": delta, "delta_pct": delta_pct}


def period_window(date_range: DateRange, label: str) -> Dict[str, str]:
    return {
        "start": isoformat_utc(date_range.start),
        "end": isoformat_utc(date_range.end),
        "label": label,
    }


def compare_periods(
    current_rows: List[ReviewRow],
    previous_rows: List[ReviewRow],
    current: DateRange,
    previous: DateRange,
    preset: str,
) -> Dict[str, Any]:
    """Compare the current window (A) with the one right before it (B)."""
    metrics_a = period_metrics(current_rows)
    metrics_b = period_metrics(previous_rows)

    metrics = {
        key: compare_metric(
            metrics_a[key],
            metrics_b[key],
            digits,
            # avg_rating.delta_pct is always null
            with_pct=key != "avg_rating",
        )
        for key, digits in DELTA_DIGITS.items()
    }
    return {
        "periodA": period_window(current, "current"),
        "periodB": period_window(previous, f"previous_{preset}"),
        "metrics": metrics,
    }
