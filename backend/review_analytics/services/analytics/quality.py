"""Reply quality and 24h SLA."""

import logging
from typing import Any, Dict, List

from review_analytics.core.errors import report_bad_data
from review_analytics.services.analytics.metrics import safe_ratio
from review_analytics.services.analytics.rows import ReviewRow

logger = logging.getLogger(__name__)

SLA_HOURS = 24


def compute_quality(rows: List[ReviewRow], log: logging.Logger = logger) -> Dict[str, Any]:
    """Reply rate, average reply delay and share of replies within 24h.

    Delays are measured from the effective time to the reply time. A reply
    recorded before its review is bad data: it is logged and left out of the
    delay samples (and of ``replied_with_time_count``), never fatal.
    """
    replyable = [row for row in rows if row.is_replyable]
    replied = [row for row in replyable if row.is_replied]

    delays: List[float] = []
    discarded = 0
    for row in replied:
        posted_at = row.effective_time
        answered_at = row.reply_time
        if posted_at is None or answered_at is None:
            continue
        hours = (answered_at - posted_at).total_seconds() / 3600
        if hours < 0:
            discarded += 1
            report_bad_data(
                log,
                "reply recorded before review, delay discarded",
                review_id=row.id,
                delay_hours=round(hours, 2),
            )
            continue
        delays.append(hours)

    avg_delay = round(sum(delays) / len(delays), 1) if delays else None
    within_sla = safe_ratio(sum(1 for hours in delays if hours <= SLA_HOURS), len(delays))

    return {
        "reply_rate": safe_ratio(len(replied), len(replyable)),
        "avg_reply_delay_hours": avg_delay,
        "sla_24h": round(within_sla, 2) if within_sla is not None else None,
        "replyable_count": len(replyable),
        "replied_count": len(replied),
        "replied_with_time_count": len(delays),
        "discarded_delay_count": discarded,
    }
