"""Main entry point for ``python -m lendingledger``."""

from .cli import app


if __name__ == "__main__":
    app()
