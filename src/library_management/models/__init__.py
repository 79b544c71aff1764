"""
Library Management MCP Server models.

Pydantic v2 models returned by repositories and serialised into MCP tool
results and resource payloads.
"""

from .circulation import (
    ActiveLoan,
    OverdueLoan,
    PatronFines,
    Reservation,
    ReturnResult,
    Transaction,
    calculate_fine,
    days_overdue,
    days_until_due,
)
from .item import ConditionStatus, Item, ItemStatus, ItemWithStatus
from .patron import (
    FacultyProfile,
    Patron,
    PatronType,
    StaffAccount,
    StaffRole,
    StudentProfile,
    UserSummary,
)
from .settings import LibrarySettings

__all__ = [
    "ActiveLoan",
    "ConditionStatus",
    "FacultyProfile",
    "Item",
    "ItemStatus",
    "ItemWithStatus",
    "LibrarySettings",
    "OverdueLoan",
    "Patron",
    "PatronFines",
    "PatronType",
    "Reservation",
    "ReturnResult",
    "StaffAccount",
    "StaffRole",
    "StudentProfile",
    "Transaction",
    "UserSummary",
    "calculate_fine",
    "days_overdue",
    "days_until_due",
]
