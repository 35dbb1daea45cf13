"""Date-driven loan classification.

Pure functions of the loan's two timestamps and the current time. Loan
status is never stored; the ledger holds only ``due_at`` and
``returned_at`` and everything else is computed from them here.
"""

from datetime import datetime, timedelta
from typing import Optional

from ..db.types import as_utc
from .schemas import LoanStatus

LOAN_PERIOD = timedelta(days=14)
DUE_SOON_WINDOW = timedelta(days=3)
ONE_DAY = timedelta(days=1)


def _ceil_days(delta: timedelta) -> int:
    """Whole days in ``delta``, rounding any partial day up."""
    return -((-delta) // ONE_DAY)


def due_date_for(checked_out_at: datetime) -> datetime:
    """Due timestamp for a loan checked out at ``checked_out_at``."""
    return as_utc(checked_out_at) + LOAN_PERIOD


def is_active(returned_at: Optional[datetime]) -> bool:
    return returned_at is None


def is_returned(returned_at: Optional[datetime]) -> bool:
    return returned_at is not None


def is_overdue(due_at: datetime, returned_at: Optional[datetime], now: datetime) -> bool:
    """Open and strictly past due."""
    return is_active(returned_at) and as_utc(due_at) < as_utc(now)


def is_due_soon(due_at: datetime, returned_at: Optional[datetime], now: datetime) -> bool:
    """Open and due within the next ``DUE_SOON_WINDOW`` (inclusive)."""
    if not is_active(returned_at):
        return False
    now = as_utc(now)
    return now <= as_utc(due_at) <= now + DUE_SOON_WINDOW


def days_overdue(due_at: datetime, returned_at: Optional[datetime], now: datetime) -> int:
    """Days past due, partial days rounded up; 0 unless overdue."""
    if not is_overdue(due_at, returned_at, now):
        return 0
    return _ceil_days(as_utc(now) - as_utc(due_at))


def days_until_due(due_at: datetime, returned_at: Optional[datetime], now: datetime) -> int:
    """Days left before the due timestamp, partial days rounded up; 0 once overdue or returned."""
    if is_returned(returned_at) or is_overdue(due_at, returned_at, now):
        return 0
    return max(0, _ceil_days(as_utc(due_at) - as_utc(now)))


def classify(due_at: datetime, returned_at: Optional[datetime], now: datetime) -> LoanStatus:
    """Single status label: returned, overdue or active."""
    if is_returned(returned_at):
        return LoanStatus.RETURNED
    if is_overdue(due_at, returned_at, now):
        return LoanStatus.OVERDUE
    return LoanStatus.ACTIVE
