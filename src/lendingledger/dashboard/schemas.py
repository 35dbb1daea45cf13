"""Pydantic schemas for operator and borrower dashboards."""

from datetime import datetime

from pydantic import BaseModel

from ..lending.schemas import LoanSummary
from ..pagination import PageInfo


class CatalogSummary(BaseModel):
    """Catalog-wide counts."""

    total_items: int
    open_loans: int
    due_today: int
    as_of: datetime


class BorrowerOverdue(BaseModel):
    """One row of the overdue ranking."""

    borrower_id: str
    overdue_count: int


class OperatorDashboard(BaseModel):
    """Operator view: catalog counts plus the ranked overdue borrowers."""

    summary: CatalogSummary
    borrowers_with_overdue: list[BorrowerOverdue]
    pagination: PageInfo


class BorrowerSummary(BaseModel):
    """Unpaginated totals for one borrower."""

    total_open: int
    total_overdue: int
    total_due_soon: int


class BorrowerDashboard(BaseModel):
    """Borrower view: open loans (paginated) and every overdue loan."""

    borrower_id: str
    open_loans: list[LoanSummary]
    overdue_loans: list[LoanSummary]
    summary: BorrowerSummary
    pagination: PageInfo
