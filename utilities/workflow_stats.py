"""
Read-only workflow statistics over a snapshot of entities.
"""

from datetime import datetime
from typing import Iterable, Optional

from models import ApplicationStatus, ApprovedBy, EntityProfile


def status_counts(entities: Iterable[EntityProfile]) -> dict[str, int]:
    """
    Count entities per lifecycle status.

    Every status is present (zero-filled) plus `automated_approvals`, the
    number of Approved entities approved by the automated agent.
    """
    counts = {status.value: 0 for status in ApplicationStatus}
    counts["automated_approvals"] = 0
    for entity in entities:
        counts[entity.status.value] += 1
        if entity.status == ApplicationStatus.APPROVED and entity.approved_by == ApprovedBy.AUTOMATED_AGENT:
            counts["automated_approvals"] += 1
    return counts


def due_for_periodic_review(
    entities: Iterable[EntityProfile],
    now: Optional[datetime] = None,
) -> list[EntityProfile]:
    """Approved entities whose scheduled review date has passed, oldest first."""
    now = now or datetime.now()
    due = [
        e for e in entities
        if e.status == ApplicationStatus.APPROVED
        and e.next_review_date is not None
        and e.next_review_date <= now
    ]
    return sorted(due, key=lambda e: e.next_review_date)
