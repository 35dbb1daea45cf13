"""Dashboard aggregations for operators and borrowers."""

from .manager import DashboardManager
from .schemas import (
    BorrowerDashboard,
    BorrowerOverdue,
    BorrowerSummary,
    CatalogSummary,
    OperatorDashboard,
)

__all__ = [
    "DashboardManager",
    "BorrowerDashboard",
    "BorrowerOverdue",
    "BorrowerSummary",
    "CatalogSummary",
    "OperatorDashboard",
]
