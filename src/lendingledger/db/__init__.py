"""Database module for the ledger store."""

from .models import Base, generate_uuid
from .sqlite import Database, get_db, reset_db
from .types import UTCDateTime, utcnow

__all__ = [
    "Base",
    "generate_uuid",
    "Database",
    "get_db",
    "reset_db",
    "UTCDateTime",
    "utcnow",
]
