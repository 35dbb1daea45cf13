"""Session-scoped ledger queries shared by the catalog and lending protocols.

Each helper runs inside the caller's transaction so the protocols can read
the open-loan count after the item lock is held rather than from an
earlier snapshot.
"""

from typing import Optional

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from ..catalog.models import Item
from .models import Loan


def lock_item(session: Session, item_id: str) -> Optional[Item]:
    """Load an item with an exclusive row lock.

    Renders ``SELECT ... FOR UPDATE`` on server databases. SQLite ignores the
    clause; there the enclosing ``BEGIN IMMEDIATE`` write session already
    holds the database write lock.
    """
    stmt = select(Item).where(Item.id == item_id).with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def count_open_loans(session: Session, item_id: str) -> int:
    """Number of loans on the item with no return timestamp."""
    stmt = select(func.count(Loan.id)).where(
        Loan.item_id == item_id,
        Loan.returned_at.is_(None),
    )
    return session.execute(stmt).scalar() or 0


def open_loan_exists(session: Session, item_id: str, borrower_id: str) -> bool:
    """Whether the borrower already holds an open loan on the item."""
    stmt = select(
        exists().where(
            Loan.item_id == item_id,
            Loan.borrower_id == borrower_id,
            Loan.returned_at.is_(None),
        )
    )
    return bool(session.execute(stmt).scalar())


def open_loan_counts():
    """Subquery of ``(item_id, open_count)`` for every item with open loans."""
    return (
        select(Loan.item_id.label("item_id"), func.count(Loan.id).label("open_count"))
        .where(Loan.returned_at.is_(None))
        .group_by(Loan.item_id)
        .subquery("open_loan_counts")
    )
