"""Configuration management for lendingledger.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


DEFAULT_DB_PATH = Path.home() / ".lendingledger" / "ledger.db"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path
    database_url: Optional[str]
    lock_timeout: float  # seconds

    # Checkout retries on transient storage failures
    transient_retries: int
    retry_delay: float  # seconds

    # Aggregation
    max_page_size: int

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get("LENDING_DB_PATH", str(DEFAULT_DB_PATH))
        db_path = Path(db_path_str) if db_path_str == ":memory:" else Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            database_url=os.environ.get("LENDING_DATABASE_URL") or None,
            lock_timeout=float(os.environ.get("LENDING_LOCK_TIMEOUT", "30")),
            transient_retries=int(os.environ.get("LENDING_TRANSIENT_RETRIES", "1")),
            retry_delay=float(os.environ.get("LENDING_RETRY_DELAY", "0.05")),
            max_page_size=int(os.environ.get("LENDING_MAX_PAGE_SIZE", "100")),
            log_level=os.environ.get("LENDING_LOG_LEVEL", "WARNING").upper(),
        )

    @property
    def url(self) -> str:
        """SQLAlchemy URL for the ledger store."""
        if self.database_url:
            return self.database_url
        if str(self.db_path) == ":memory:":
            return "sqlite:///:memory:"
        return f"sqlite:///{self.db_path}"

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.database_url and str(self.db_path) != ":memory:":
            # Check database directory is writable
            if not self.db_path.parent.exists():
                try:
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                except PermissionError:
                    errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.lock_timeout <= 0:
            errors.append("LENDING_LOCK_TIMEOUT must be positive")
        if self.transient_retries < 0:
            errors.append("LENDING_TRANSIENT_RETRIES cannot be negative")
        if self.retry_delay < 0:
            errors.append("LENDING_RETRY_DELAY cannot be negative")
        if self.max_page_size < 1:
            errors.append("LENDING_MAX_PAGE_SIZE must be at least 1")
        if self.log_level not in LOG_LEVELS:
            errors.append(f"Unknown LENDING_LOG_LEVEL: {self.log_level}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
