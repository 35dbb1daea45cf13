"""Catalog manager for item records and availability."""

import logging
from typing import Any, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..db.sqlite import Database, get_db
from ..errors import ConflictError, NotFound, parse_input
from ..lending.queries import count_open_loans, lock_item, open_loan_counts, open_loan_exists
from ..pagination import check_page, offset_for
from .models import Item
from .schemas import ItemCreate, ItemFilter, ItemResponse, ItemUpdate

logger = logging.getLogger(__name__)


def _to_response(item: Item, open_count: int, on_loan: Optional[bool] = None) -> ItemResponse:
    available = item.total_copies - open_count
    return ItemResponse(
        id=item.id,
        title=item.title,
        author=item.author,
        category=item.category,
        external_code=item.external_code,
        total_copies=item.total_copies,
        available_copies=available,
        is_available=available > 0,
        created_at=item.created_at,
        updated_at=item.updated_at,
        on_loan_to_borrower=on_loan,
    )


class CatalogManager:
    """Manages catalog items and their derived availability."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize catalog manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Item Management
    # -------------------------------------------------------------------------

    def create_item(self, data: Union[ItemCreate, dict[str, Any]]) -> Item:
        """Create a new item.

        Args:
            data: Item creation data

        Returns:
            Created item

        Raises:
            ValidationError: if a field is missing or ``total_copies`` <= 0
            ConflictError: if the external code is already catalogued
        """
        data = parse_input(ItemCreate, data)

        try:
            with self.db.write_session() as session:
                existing = session.execute(
                    select(Item.id).where(Item.external_code == data.external_code)
                ).scalar_one_or_none()
                if existing:
                    raise ConflictError(f"external code already exists: {data.external_code}")

                item = Item(**data.model_dump())
                session.add(item)
                session.flush()
                session.expunge(item)
        except IntegrityError as e:
            raise ConflictError(f"external code already exists: {data.external_code}") from e

        logger.info("Created item %s (%s) with %d copies", item.id, item.external_code, item.total_copies)
        return item

    def get_item(self, item_id: str) -> Item:
        """Get an item by ID.

        Raises:
            NotFound: if no such item exists
        """
        with self.db.get_session() as session:
            item = session.get(Item, item_id)
            if item is None:
                raise NotFound("Item", item_id)
            session.expunge(item)
            return item

    def get_item_by_code(self, external_code: str) -> Item:
        """Get an item by its external catalog code."""
        with self.db.get_session() as session:
            item = session.execute(
                select(Item).where(Item.external_code == external_code)
            ).scalar_one_or_none()
            if item is None:
                raise NotFound("Item", external_code)
            session.expunge(item)
            return item

    def update_item(self, item_id: str, data: Union[ItemUpdate, dict[str, Any]]) -> Item:
        """Update catalog fields of an item.

        Runs under the same write lock as checkout, so ``total_copies`` can
        never drop below the number of copies currently on loan.

        Args:
            item_id: Item ID
            data: Fields to change; unset fields are left alone

        Returns:
            Updated item

        Raises:
            NotFound: if no such item exists
            ValidationError: if a value is malformed
            ConflictError: if the new copy count is below the open-loan count,
                or the new external code is taken
        """
        patch = parse_input(ItemUpdate, data)
        changes = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}

        try:
            with self.db.write_session() as session:
                item = lock_item(session, item_id)
                if item is None:
                    raise NotFound("Item", item_id)

                if "total_copies" in changes:
                    on_loan = count_open_loans(session, item_id)
                    if changes["total_copies"] < on_loan:
                        raise ConflictError(
                            f"cannot reduce copies to {changes['total_copies']}: "
                            f"{on_loan} currently on loan"
                        )

                code = changes.get("external_code")
                if code and code != item.external_code:
                    taken = session.execute(
                        select(Item.id).where(Item.external_code == code, Item.id != item_id)
                    ).scalar_one_or_none()
                    if taken:
                        raise ConflictError(f"external code already exists: {code}")

                for field, value in changes.items():
                    setattr(item, field, value)

                session.flush()
                session.refresh(item)
                session.expunge(item)
        except IntegrityError as e:
            raise ConflictError(f"could not update item {item_id}: {e.orig}") from e

        logger.info("Updated item %s: %s", item_id, ", ".join(sorted(changes)) or "no changes")
        return item

    def delete_item(self, item_id: str) -> None:
        """Delete an item and its loan history.

        The open-loan check runs after the item lock is taken, so a checkout
        cannot slip in between the check and the delete.

        Raises:
            NotFound: if no such item exists
            ConflictError: if any copy is still on loan
        """
        with self.db.write_session() as session:
            item = lock_item(session, item_id)
            if item is None:
                raise NotFound("Item", item_id)

            if count_open_loans(session, item_id) > 0:
                raise ConflictError("cannot delete: active loans exist")

            session.delete(item)

        logger.info("Deleted item %s", item_id)

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def available_copies(self, item_id: str) -> int:
        """Copies not currently on loan: total minus open loans."""
        with self.db.get_session() as session:
            item = session.get(Item, item_id)
            if item is None:
                raise NotFound("Item", item_id)
            return item.total_copies - count_open_loans(session, item_id)

    def is_available(self, item_id: str) -> bool:
        return self.available_copies(item_id) > 0

    def has_open_loan(self, item_id: str, borrower_id: str) -> bool:
        """Whether the borrower currently holds a copy of the item."""
        with self.db.get_session() as session:
            if session.get(Item, item_id) is None:
                raise NotFound("Item", item_id)
            return open_loan_exists(session, item_id, borrower_id)

    def describe_item(self, item_id: str, borrower_id: Optional[str] = None) -> ItemResponse:
        """Item fields plus live availability, read in one transaction.

        Args:
            item_id: Item ID
            borrower_id: If given, also report whether this borrower holds a copy

        Returns:
            ItemResponse
        """
        with self.db.get_session() as session:
            item = session.get(Item, item_id)
            if item is None:
                raise NotFound("Item", item_id)
            open_count = count_open_loans(session, item_id)
            on_loan = open_loan_exists(session, item_id, borrower_id) if borrower_id else None
            return _to_response(item, open_count, on_loan)

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def list_items(
        self,
        filters: Optional[ItemFilter] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[ItemResponse], int]:
        """List items with live availability.

        Args:
            filters: Optional title / author / category / availability filters
            page: 1-based page number
            per_page: Page size

        Returns:
            Tuple of (items on this page, total matching items)
        """
        filters = filters or ItemFilter()
        page, per_page = check_page(page, per_page)

        counts = open_loan_counts()
        open_count = func.coalesce(counts.c.open_count, 0)
        stmt = select(Item, open_count.label("open_count")).outerjoin(
            counts, counts.c.item_id == Item.id
        )

        if filters.title:
            stmt = stmt.where(Item.title.icontains(filters.title, autoescape=True))
        if filters.author:
            stmt = stmt.where(Item.author.icontains(filters.author, autoescape=True))
        if filters.category:
            stmt = stmt.where(Item.category == filters.category)
        if filters.available_only:
            stmt = stmt.where(Item.total_copies > open_count)

        with self.db.get_session() as session:
            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar() or 0

            rows = session.execute(
                stmt.order_by(Item.title, Item.id)
                .offset(offset_for(page, per_page))
                .limit(per_page)
            ).all()

            return [_to_response(item, count) for item, count in rows], total
