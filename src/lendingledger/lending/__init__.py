"""Loan ledger module.

Provides functionality for:
- Concurrency-safe checkout (one copy, one borrower, capacity enforced)
- Returns, guarded against double application
- Derived loan status: active, overdue, due soon, returned
- Loan history listings
"""

from .manager import LendingManager
from .models import Loan
from .rules import DUE_SOON_WINDOW, LOAN_PERIOD
from .schemas import LoanResponse, LoanStatus, LoanSummary

__all__ = [
    "LendingManager",
    "Loan",
    "LoanResponse",
    "LoanStatus",
    "LoanSummary",
    "LOAN_PERIOD",
    "DUE_SOON_WINDOW",
]
