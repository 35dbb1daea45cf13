"""Lending ledger: item catalog, loan lifecycle and availability engine."""

__version__ = "0.1.0"
