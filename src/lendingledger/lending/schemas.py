"""Pydantic schemas for loans."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class LoanStatus(str, Enum):
    """Derived status of a loan."""

    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"


class LoanResponse(BaseModel):
    """Schema for loan responses."""

    id: str
    borrower_id: str
    item_id: str
    checked_out_at: datetime
    due_at: datetime
    returned_at: Optional[datetime]
    status: LoanStatus
    days_overdue: int
    days_until_due: int

    # Related data (populated by manager)
    item_title: Optional[str] = None

    model_config = {"from_attributes": True}


class LoanSummary(BaseModel):
    """Open loan joined with its item, for borrower dashboards."""

    id: str
    item_id: str
    title: str
    author: str
    checked_out_at: datetime
    due_at: datetime
    days_until_due: int
    is_overdue: bool
    days_overdue: int
