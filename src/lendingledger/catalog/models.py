"""SQLAlchemy model for catalog items.

Tables:
- items: lendable catalog entries with a total copy count
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, generate_uuid
from ..db.types import UTCDateTime, utcnow

if TYPE_CHECKING:
    from ..lending.models import Loan


class Item(Base):
    """Item model - a catalog entry with a finite number of copies.

    Availability is never stored here; it is derived from the open loans
    at read time (see ``CatalogManager.available_copies``).
    """

    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("total_copies > 0", name="ck_items_total_copies_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Core fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    external_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    loans: Mapped[list["Loan"]] = relationship(
        "Loan",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Item(id={self.id}, title='{self.title}', copies={self.total_copies})>"
