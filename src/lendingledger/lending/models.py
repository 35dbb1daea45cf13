"""SQLAlchemy model for loans.

Tables:
- loans: one copy of an item held by one borrower over a time window

At most one open loan (``returned_at IS NULL``) may exist per
(borrower, item) pair; the partial unique index below enforces it in the
store itself.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..catalog.models import Item
from ..db.models import Base, generate_uuid
from ..db.types import UTCDateTime, utcnow
from . import rules
from .schemas import LoanStatus

OPEN_LOAN_PREDICATE = "returned_at IS NULL"


class Loan(Base):
    """Loan model - tracks one borrower holding one copy of an item."""

    __tablename__ = "loans"
    __table_args__ = (
        Index(
            "uq_loans_open_borrower_item",
            "borrower_id",
            "item_id",
            unique=True,
            sqlite_where=text(OPEN_LOAN_PREDICATE),
            postgresql_where=text(OPEN_LOAN_PREDICATE),
        ),
        Index("ix_loans_item_open", "item_id", "returned_at"),
        Index("ix_loans_due_at", "due_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Caller identity, owned by the identity service
    borrower_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    item_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Dates
    checked_out_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    due_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    returned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    item: Mapped["Item"] = relationship("Item", back_populates="loans")

    def __repr__(self) -> str:
        return (
            f"<Loan(id={self.id}, item_id={self.item_id}, "
            f"borrower_id={self.borrower_id}, returned_at={self.returned_at})>"
        )

    @property
    def is_active(self) -> bool:
        """Check if loan is still open."""
        return rules.is_active(self.returned_at)

    @property
    def is_returned(self) -> bool:
        return rules.is_returned(self.returned_at)

    @property
    def is_overdue(self) -> bool:
        """Check if loan is open and past due."""
        return rules.is_overdue(self.due_at, self.returned_at, utcnow())

    @property
    def is_due_soon(self) -> bool:
        return rules.is_due_soon(self.due_at, self.returned_at, utcnow())

    @property
    def days_overdue(self) -> int:
        """Days overdue (0 if not overdue)."""
        return rules.days_overdue(self.due_at, self.returned_at, utcnow())

    @property
    def days_until_due(self) -> int:
        return rules.days_until_due(self.due_at, self.returned_at, utcnow())

    @property
    def status(self) -> LoanStatus:
        return rules.classify(self.due_at, self.returned_at, utcnow())

    def status_at(self, now: datetime) -> LoanStatus:
        """Status as of ``now``."""
        return rules.classify(self.due_at, self.returned_at, now)
