"""Lending manager: checkout and return protocols plus loan queries."""

import logging
import time
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from ..catalog.models import Item
from ..config import get_config
from ..db.sqlite import Database, get_db
from ..db.types import as_utc, utcnow
from ..errors import ConflictError, NotFound, ValidationError
from ..pagination import check_page, offset_for
from . import rules
from .models import Loan
from .queries import count_open_loans, lock_item, open_loan_exists
from .schemas import LoanResponse, LoanStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOT_AVAILABLE = "item not available"
DUPLICATE_LOAN = "duplicate active loan for this borrower/item pair"
ALREADY_RETURNED = "already returned"


def _is_transient(error: DBAPIError) -> bool:
    """Lock-wait timeouts, busy databases and dropped connections."""
    return isinstance(error, OperationalError) or bool(error.connection_invalidated)


def to_response(loan: Loan, now: datetime, item_title: Optional[str] = None) -> LoanResponse:
    """Render a loan with its status fields computed as of ``now``."""
    return LoanResponse(
        id=loan.id,
        borrower_id=loan.borrower_id,
        item_id=loan.item_id,
        checked_out_at=loan.checked_out_at,
        due_at=loan.due_at,
        returned_at=loan.returned_at,
        status=rules.classify(loan.due_at, loan.returned_at, now),
        days_overdue=rules.days_overdue(loan.due_at, loan.returned_at, now),
        days_until_due=rules.days_until_due(loan.due_at, loan.returned_at, now),
        item_title=item_title,
    )


class LendingManager:
    """Manages the loan lifecycle: checkout, return and loan history."""

    def __init__(
        self,
        db: Optional[Database] = None,
        transient_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        """Initialize lending manager.

        Args:
            db: Database instance
            transient_retries: Extra checkout attempts after a transient
                storage failure (default from config, normally 1)
            retry_delay: Seconds to wait before retrying
        """
        config = get_config()
        self.db = db or get_db()
        self.transient_retries = (
            config.transient_retries if transient_retries is None else transient_retries
        )
        self.retry_delay = config.retry_delay if retry_delay is None else retry_delay

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    def checkout(self, item_id: str, borrower_id: str, now: Optional[datetime] = None) -> Loan:
        """Lend one copy of an item to a borrower.

        The item row is locked for the whole transaction, so the open-loan
        count read here cannot change before the new loan commits. Of several
        concurrent checkouts for the last copy exactly one succeeds; the rest
        get ``ConflictError``.

        Args:
            item_id: Item to borrow
            borrower_id: Caller identity of the borrower
            now: Checkout time (default: current UTC time)

        Returns:
            The new open loan

        Raises:
            ValidationError: if ``borrower_id`` is blank
            NotFound: if the item does not exist
            ConflictError: if no copy is available or the borrower already
                holds an open loan on this item
        """
        if not borrower_id or not str(borrower_id).strip():
            raise ValidationError("borrower_id is required")
        checked_out_at = as_utc(now) if now else utcnow()

        loan = self._with_retry(lambda: self._checkout_once(item_id, borrower_id, checked_out_at))
        logger.info(
            "Checked out item %s to borrower %s as loan %s (due %s)",
            item_id,
            borrower_id,
            loan.id,
            loan.due_at.isoformat(),
        )
        return loan

    def _checkout_once(self, item_id: str, borrower_id: str, checked_out_at: datetime) -> Loan:
        """One attempt at the checkout transaction."""
        try:
            with self.db.write_session() as session:
                item = lock_item(session, item_id)
                if item is None:
                    raise NotFound("Item", item_id)

                # Read under the lock, never from an earlier snapshot
                on_loan = count_open_loans(session, item_id)
                if item.total_copies - on_loan <= 0:
                    logger.debug("Checkout refused, item %s has no free copies", item_id)
                    raise ConflictError(NOT_AVAILABLE)

                if open_loan_exists(session, item_id, borrower_id):
                    logger.debug("Checkout refused, %s already holds item %s", borrower_id, item_id)
                    raise ConflictError(DUPLICATE_LOAN)

                loan = Loan(
                    borrower_id=borrower_id,
                    item_id=item_id,
                    checked_out_at=checked_out_at,
                    due_at=rules.due_date_for(checked_out_at),
                    returned_at=None,
                )
                session.add(loan)
                session.flush()
                session.expunge(loan)
        except IntegrityError as e:
            # The open-loan unique index caught a race the lock did not
            logger.debug("Open-loan constraint fired for %s on item %s", borrower_id, item_id)
            raise ConflictError(DUPLICATE_LOAN) from e
        return loan

    def _with_retry(self, operation: Callable[[], T]) -> T:
        """Run a whole transaction, repeating it after transient storage failures.

        Business errors (``ConflictError`` and friends) are never retried.
        """
        max_attempts = self.transient_retries + 1

        for attempt in range(max_attempts):
            try:
                return operation()
            except DBAPIError as e:
                if not _is_transient(e) or attempt == max_attempts - 1:
                    raise
                logger.warning(
                    "Transient storage failure (%s), retrying checkout in %.2fs",
                    e.orig,
                    self.retry_delay,
                )
                time.sleep(self.retry_delay)

        raise AssertionError("unreachable")

    # -------------------------------------------------------------------------
    # Return
    # -------------------------------------------------------------------------

    def mark_returned(self, loan_id: str, at: Optional[datetime] = None) -> Loan:
        """Close an open loan.

        No item lock is taken: a return only frees capacity. The update is
        conditional on ``returned_at`` still being null, so of two concurrent
        returns only the first one applies.

        Args:
            loan_id: Loan ID
            at: Return time (default: current UTC time)

        Returns:
            The returned loan

        Raises:
            NotFound: if the loan does not exist
            ConflictError: if the loan was already returned
            ValidationError: if ``at`` precedes the checkout time
        """
        returned_at = as_utc(at) if at else utcnow()

        with self.db.write_session() as session:
            loan = session.get(Loan, loan_id)
            if loan is None:
                raise NotFound("Loan", loan_id)
            if loan.returned_at is not None:
                raise ConflictError(ALREADY_RETURNED)
            if returned_at < loan.checked_out_at:
                raise ValidationError("return time cannot precede checkout time")

            result = session.execute(
                update(Loan)
                .where(Loan.id == loan_id, Loan.returned_at.is_(None))
                .values(returned_at=returned_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError(ALREADY_RETURNED)

            session.refresh(loan)
            session.expunge(loan)

        logger.info("Returned loan %s (item %s, borrower %s)", loan.id, loan.item_id, loan.borrower_id)
        return loan

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_loan(self, loan_id: str) -> Loan:
        """Get a loan by ID.

        Raises:
            NotFound: if no such loan exists
        """
        with self.db.get_session() as session:
            loan = session.get(Loan, loan_id)
            if loan is None:
                raise NotFound("Loan", loan_id)
            session.expunge(loan)
            return loan

    def describe_loan(self, loan_id: str, now: Optional[datetime] = None) -> LoanResponse:
        """Loan fields plus derived status, with the item title."""
        now = as_utc(now) if now else utcnow()
        with self.db.get_session() as session:
            row = session.execute(
                select(Loan, Item.title).join(Item, Item.id == Loan.item_id).where(Loan.id == loan_id)
            ).one_or_none()
            if row is None:
                raise NotFound("Loan", loan_id)
            loan, title = row
            return to_response(loan, now, title)

    def list_loans(
        self,
        status: Optional[LoanStatus] = None,
        borrower_id: Optional[str] = None,
        item_id: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
        now: Optional[datetime] = None,
    ) -> tuple[list[LoanResponse], int]:
        """List loans with optional filters.

        Args:
            status: ``ACTIVE`` for every open loan (overdue included),
                ``OVERDUE`` for open loans past due, ``RETURNED`` for closed ones
            borrower_id: Filter by borrower
            item_id: Filter by item
            page: 1-based page number
            per_page: Page size
            now: Reference time for overdue filtering and status fields

        Returns:
            Tuple of (loans on this page, total matching loans)
        """
        page, per_page = check_page(page, per_page)
        now = as_utc(now) if now else utcnow()

        stmt = select(Loan, Item.title).join(Item, Item.id == Loan.item_id)

        if status == LoanStatus.ACTIVE:
            stmt = stmt.where(Loan.returned_at.is_(None))
        elif status == LoanStatus.OVERDUE:
            stmt = stmt.where(Loan.returned_at.is_(None), Loan.due_at < now)
        elif status == LoanStatus.RETURNED:
            stmt = stmt.where(Loan.returned_at.is_not(None))
        if borrower_id:
            stmt = stmt.where(Loan.borrower_id == borrower_id)
        if item_id:
            stmt = stmt.where(Loan.item_id == item_id)

        with self.db.get_session() as session:
            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar() or 0

            rows = session.execute(
                stmt.order_by(Loan.checked_out_at, Loan.id)
                .offset(offset_for(page, per_page))
                .limit(per_page)
            ).all()

            return [to_response(loan, now, title) for loan, title in rows], total

    def forget_borrower(self, borrower_id: str) -> int:
        """Delete every loan of a borrower removed by the identity service.

        Returns:
            Number of loan records deleted
        """
        with self.db.write_session() as session:
            result = session.execute(
                delete(Loan)
                .where(Loan.borrower_id == borrower_id)
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount or 0

        logger.info("Removed %d loans of borrower %s", removed, borrower_id)
        return removed
