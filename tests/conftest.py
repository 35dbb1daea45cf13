"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the lending ledger, including
in-memory and file-backed databases, managers, and sample catalog data.
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from lendingledger.catalog import CatalogManager, Item, ItemCreate
from lendingledger.config import reset_config
from lendingledger.dashboard import DashboardManager
from lendingledger.db.sqlite import Database, reset_db
from lendingledger.lending import LendingManager

# Fixed reference time for date-driven assertions
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for date-driven assertions."""
    return NOW


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep tests independent of the developer's environment."""
    for var in (
        "LENDING_DB_PATH",
        "LENDING_DATABASE_URL",
        "LENDING_LOCK_TIMEOUT",
        "LENDING_TRANSIENT_RETRIES",
        "LENDING_RETRY_DELAY",
        "LENDING_MAX_PAGE_SIZE",
        "LENDING_LOG_LEVEL",
        "LENDING_CALLER",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_db()
    reset_config()
    yield
    reset_db()
    reset_config()


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "ledger.db"


@pytest.fixture(scope="function")
def db() -> Generator[Database, None, None]:
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture(scope="function")
def file_db(temp_db_path: Path) -> Generator[Database, None, None]:
    """File-backed database; needed when several threads hit the ledger."""
    database = Database(str(temp_db_path), lock_timeout=30)
    database.create_tables()
    yield database
    database.dispose()


# ============================================================================
# Manager Fixtures
# ============================================================================


@pytest.fixture
def catalog(db: Database) -> CatalogManager:
    return CatalogManager(db)


@pytest.fixture
def lending(db: Database) -> LendingManager:
    return LendingManager(db, retry_delay=0)


@pytest.fixture
def dashboards(db: Database) -> DashboardManager:
    return DashboardManager(db)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_item_data() -> ItemCreate:
    """Create sample item data for testing."""
    return ItemCreate(
        title="The Left Hand of Darkness",
        author="Ursula K. Le Guin",
        category="fiction",
        external_code="ISBN-9780441478125",
        total_copies=2,
    )


@pytest.fixture
def make_item(catalog: CatalogManager) -> Callable[..., Item]:
    """Factory creating items with unique codes."""
    counter = {"n": 0}

    def _make(copies: int = 1, title: Optional[str] = None, **fields) -> Item:
        counter["n"] += 1
        n = counter["n"]
        data = {
            "title": title or f"Item {n}",
            "author": fields.pop("author", f"Author {n}"),
            "category": fields.pop("category", "fiction"),
            "external_code": fields.pop("external_code", f"CODE-{n:04d}"),
            "total_copies": copies,
        }
        return catalog.create_item(data)

    return _make


@pytest.fixture
def cli_env(temp_db_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the global config at a throwaway database file."""
    monkeypatch.setenv("LENDING_DB_PATH", str(temp_db_path))
    reset_db()
    reset_config()
    return temp_db_path

