"""
Feature gating rules derived from a subscription record.

Pure functions with no I/O. Times are milliseconds since the epoch, matching
``subscriptionEndDate``; ``datetime`` values are accepted and converted.
"""
import time
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from app.schemas.subscription import SubscriptionRecord, SubscriptionStatus, SubscriptionTier

Timestamp = Union[int, float, datetime]

DAY_MS = 24 * 60 * 60 * 1000
FREE_JOURNAL_EDIT_DAYS = 14


class ResourceKind(str, Enum):
    GOALS = "goals"
    TRACKERS = "trackers"


FREE_LIMITS = {
    ResourceKind.GOALS: 3,
    ResourceKind.TRACKERS: 2,
}


def _millis(value: Optional[Timestamp]) -> int:
    if value is None:
        return int(time.time() * 1000)
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    return int(value)


def is_premium(record: SubscriptionRecord, now: Optional[Timestamp] = None) -> bool:
    """
    Premium while active, or while canceled but still inside the paid period.

    A missing end date never means expired: lifetime purchases carry none.
    """
    if record.tier != SubscriptionTier.PREMIUM:
        return False
    if record.status == SubscriptionStatus.ACTIVE:
        return True
    if record.status == SubscriptionStatus.CANCELED:
        return record.end_date is None or record.end_date > _millis(now)
    return False


def free_limit(kind: Union[ResourceKind, str]) -> int:
    return FREE_LIMITS[ResourceKind(kind)]


def can_create(
    kind: Union[ResourceKind, str],
    current_count: int,
    record: SubscriptionRecord,
    now: Optional[Timestamp] = None,
) -> bool:
    if is_premium(record, now):
        return True
    return current_count < free_limit(kind)


def remaining(
    kind: Union[ResourceKind, str],
    current_count: int,
    record: SubscriptionRecord,
    now: Optional[Timestamp] = None,
) -> Optional[int]:
    """How many more can be created; None means unbounded."""
    if is_premium(record, now):
        return None
    return max(0, free_limit(kind) - current_count)


def can_edit_past_entry(
    entry_date: Timestamp,
    record: SubscriptionRecord,
    now: Optional[Timestamp] = None,
) -> bool:
    if is_premium(record, now):
        return True
    days_old = (_millis(now) - _millis(entry_date)) // DAY_MS
    return days_old <= FREE_JOURNAL_EDIT_DAYS
