"""Read-only aggregations over the loan ledger.

Every figure is computed live from the ``items`` and ``loans`` tables; there
are no counters to keep in sync. Each public call runs in one read
transaction and never takes the write lock used by checkout.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..catalog.models import Item
from ..db.sqlite import Database, get_db
from ..db.types import as_utc, utcnow
from ..lending import rules
from ..lending.models import Loan
from ..lending.schemas import LoanSummary
from ..pagination import PageInfo, check_page, offset_for
from .schemas import (
    BorrowerDashboard,
    BorrowerOverdue,
    BorrowerSummary,
    CatalogSummary,
    OperatorDashboard,
)


OPERATOR_PAGE_SIZE = 10
BORROWER_PAGE_SIZE = 20


def _reference_time(now: Optional[datetime]) -> datetime:
    """Aware reference time; naive values are taken as UTC."""
    if now is None:
        return utcnow()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """UTC start (inclusive) and end (exclusive) of the calendar day containing ``now``.

    The day is taken in ``now``'s own timezone.
    """
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return as_utc(start), as_utc(start + timedelta(days=1))


def _summarize(loan: Loan, title: str, author: str, now: datetime) -> LoanSummary:
    return LoanSummary(
        id=loan.id,
        item_id=loan.item_id,
        title=title,
        author=author,
        checked_out_at=loan.checked_out_at,
        due_at=loan.due_at,
        days_until_due=rules.days_until_due(loan.due_at, loan.returned_at, now),
        is_overdue=rules.is_overdue(loan.due_at, loan.returned_at, now),
        days_overdue=rules.days_overdue(loan.due_at, loan.returned_at, now),
    )


class DashboardManager:
    """Produces operator and borrower summaries from the ledger."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Operator views
    # -------------------------------------------------------------------------

    def catalog_summary(self, now: Optional[datetime] = None) -> CatalogSummary:
        """Total items, open loans, and open loans due during today's calendar day."""
        now = _reference_time(now)
        with self.db.get_session() as session:
            return self._catalog_summary(session, now)

    def borrowers_with_overdue(
        self,
        page: int = 1,
        per_page: int = OPERATOR_PAGE_SIZE,
        now: Optional[datetime] = None,
    ) -> tuple[list[BorrowerOverdue], int]:
        """Borrowers holding overdue loans, most overdue loans first.

        Ties are broken by borrower ID so page boundaries are stable.

        Returns:
            Tuple of (ranking rows on this page, number of borrowers with overdue loans)
        """
        page, per_page = check_page(page, per_page)
        now = _reference_time(now)
        with self.db.get_session() as session:
            return self._borrowers_with_overdue(session, page, per_page, now)

    def operator_dashboard(
        self,
        page: int = 1,
        per_page: int = OPERATOR_PAGE_SIZE,
        now: Optional[datetime] = None,
    ) -> OperatorDashboard:
        """Catalog summary and overdue ranking read in a single transaction."""
        page, per_page = check_page(page, per_page)
        now = _reference_time(now)
        with self.db.get_session() as session:
            summary = self._catalog_summary(session, now)
            ranking, total = self._borrowers_with_overdue(session, page, per_page, now)

        return OperatorDashboard(
            summary=summary,
            borrowers_with_overdue=ranking,
            pagination=PageInfo.build(page, per_page, total),
        )

    # -------------------------------------------------------------------------
    # Borrower views
    # -------------------------------------------------------------------------

    def borrower_loans(
        self,
        borrower_id: str,
        page: int = 1,
        per_page: int = BORROWER_PAGE_SIZE,
        now: Optional[datetime] = None,
    ) -> tuple[list[LoanSummary], int]:
        """Open loans of a borrower with item title and author, soonest due first."""
        page, per_page = check_page(page, per_page)
        now = _reference_time(now)
        with self.db.get_session() as session:
            return self._borrower_loans(session, borrower_id, page, per_page, now)

    def borrower_overdue(
        self,
        borrower_id: str,
        now: Optional[datetime] = None,
    ) -> tuple[list[LoanSummary], int]:
        """Every overdue loan of a borrower, unpaginated, with its count."""
        now = _reference_time(now)
        with self.db.get_session() as session:
            return self._borrower_overdue(session, borrower_id, now)

    def due_soon(
        self,
        borrower_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[LoanSummary]:
        """Open loans due within the due-soon window, soonest first."""
        now = _reference_time(now)
        with self.db.get_session() as session:
            return self._due_soon(session, borrower_id, now)

    def borrower_dashboard(
        self,
        borrower_id: str,
        page: int = 1,
        per_page: int = BORROWER_PAGE_SIZE,
        now: Optional[datetime] = None,
    ) -> BorrowerDashboard:
        """Paginated open loans plus the full overdue subset for one borrower.

        ``summary.total_overdue`` is the unpaginated overdue count, whatever
        the page size of the open-loan list.
        """
        page, per_page = check_page(page, per_page)
        now = _reference_time(now)
        with self.db.get_session() as session:
            open_loans, total_open = self._borrower_loans(session, borrower_id, page, per_page, now)
            overdue, total_overdue = self._borrower_overdue(session, borrower_id, now)
            due_soon = self._due_soon(session, borrower_id, now)

        return BorrowerDashboard(
            borrower_id=borrower_id,
            open_loans=open_loans,
            overdue_loans=overdue,
            summary=BorrowerSummary(
                total_open=total_open,
                total_overdue=total_overdue,
                total_due_soon=len(due_soon),
            ),
            pagination=PageInfo.build(page, per_page, total_open),
        )

    # -------------------------------------------------------------------------
    # Session-scoped queries
    # -------------------------------------------------------------------------

    def _catalog_summary(self, session: Session, now: datetime) -> CatalogSummary:
        start, end = day_bounds(now)

        total_items = session.execute(select(func.count(Item.id))).scalar() or 0

        open_loans = session.execute(
            select(func.count(Loan.id)).where(Loan.returned_at.is_(None))
        ).scalar() or 0

        due_today = session.execute(
            select(func.count(Loan.id)).where(
                Loan.returned_at.is_(None),
                Loan.due_at >= start,
                Loan.due_at < end,
            )
        ).scalar() or 0

        return CatalogSummary(
            total_items=total_items,
            open_loans=open_loans,
            due_today=due_today,
            as_of=now,
        )

    def _borrowers_with_overdue(
        self, session: Session, page: int, per_page: int, now: datetime
    ) -> tuple[list[BorrowerOverdue], int]:
        overdue_count = func.count(Loan.id).label("overdue_count")
        stmt = (
            select(Loan.borrower_id, overdue_count)
            .where(Loan.returned_at.is_(None), Loan.due_at < as_utc(now))
            .group_by(Loan.borrower_id)
        )

        total = session.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0

        rows = session.execute(
            stmt.order_by(overdue_count.desc(), Loan.borrower_id.asc())
            .offset(offset_for(page, per_page))
            .limit(per_page)
        ).all()

        return [
            BorrowerOverdue(borrower_id=borrower_id, overdue_count=count)
            for borrower_id, count in rows
        ], total

    def _borrower_loans(
        self, session: Session, borrower_id: str, page: int, per_page: int, now: datetime
    ) -> tuple[list[LoanSummary], int]:
        base = (
            select(Loan, Item.title, Item.author)
            .join(Item, Item.id == Loan.item_id)
            .where(Loan.borrower_id == borrower_id, Loan.returned_at.is_(None))
        )

        total = session.execute(
            select(func.count(Loan.id)).where(
                Loan.borrower_id == borrower_id, Loan.returned_at.is_(None)
            )
        ).scalar() or 0

        rows = session.execute(
            base.order_by(Loan.due_at.asc(), Loan.id.asc())
            .offset(offset_for(page, per_page))
            .limit(per_page)
        ).all()

        return [_summarize(loan, title, author, now) for loan, title, author in rows], total

    def _borrower_overdue(
        self, session: Session, borrower_id: str, now: datetime
    ) -> tuple[list[LoanSummary], int]:
        rows = session.execute(
            select(Loan, Item.title, Item.author)
            .join(Item, Item.id == Loan.item_id)
            .where(
                Loan.borrower_id == borrower_id,
                Loan.returned_at.is_(None),
                Loan.due_at < as_utc(now),
            )
            .order_by(Loan.due_at.asc(), Loan.id.asc())
        ).all()

        overdue = [_summarize(loan, title, author, now) for loan, title, author in rows]
        return overdue, len(overdue)

    def _due_soon(
        self, session: Session, borrower_id: Optional[str], now: datetime
    ) -> list[LoanSummary]:
        start = as_utc(now)
        stmt = (
            select(Loan, Item.title, Item.author)
            .join(Item, Item.id == Loan.item_id)
            .where(
                Loan.returned_at.is_(None),
                Loan.due_at >= start,
                Loan.due_at <= start + rules.DUE_SOON_WINDOW,
            )
        )
        if borrower_id:
            stmt = stmt.where(Loan.borrower_id == borrower_id)

        rows = session.execute(stmt.order_by(Loan.due_at.asc(), Loan.id.asc())).all()
        return [_summarize(loan, title, author, now) for loan, title, author in rows]
