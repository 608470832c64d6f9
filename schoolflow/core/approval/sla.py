"""Deadline tracking for approval requests.

A request's deadline is fixed at submission from the SLA hours of the
workflow that produced its chain. Its SLA status is derived whenever it is
read rather than stored, so it never goes stale:

    overdue   the deadline has passed
    at_risk   the deadline falls within the next 24 hours
    on_time   otherwise

Closed requests (approved, rejected, cancelled) are no longer tracked.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from .states import ApprovalState, TERMINAL_STATES

DEFAULT_SLA_HOURS = 72
AT_RISK_WINDOW = timedelta(hours=24)


class SlaStatus(str, Enum):
    ON_TIME = "on_time"
    AT_RISK = "at_risk"
    OVERDUE = "overdue"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC; SQLite returns them without an offset."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def compute_deadline(submitted_at: datetime, sla_hours: int) -> datetime:
    return as_utc(submitted_at) + timedelta(hours=sla_hours)


def sla_status(state: str, deadline: Optional[datetime], now: datetime) -> Optional[SlaStatus]:
    """SLA status of a request at ``now``; None once it is closed or has no deadline."""
    if ApprovalState(state) in TERMINAL_STATES or deadline is None:
        return None
    deadline = as_utc(deadline)
    if deadline < now:
        return SlaStatus.OVERDUE
    if deadline < now + AT_RISK_WINDOW:
        return SlaStatus.AT_RISK
    return SlaStatus.ON_TIME
