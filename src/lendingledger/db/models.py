"""SQLAlchemy declarative base for the ledger store.

Tables:
- items: catalog entries with a finite copy count (catalog/models.py)
- loans: one copy of an item held by one borrower (lending/models.py)
"""

from uuid import uuid4

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())
