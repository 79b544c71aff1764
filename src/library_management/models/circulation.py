"""
Circulation models for the Library Management MCP Server.

- Transaction: a loan as stored
- ActiveLoan / OverdueLoan: loans annotated with figures computed at read time
- ReturnResult: outcome of closing a loan, including the fine charged
- Reservation: a hold, optionally annotated with its queue position

Fines are never stored while a loan is open; they are derived from the due
date and the current ``fine_per_day`` whenever a loan is read or returned.
"""

import math
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

ONE_DAY = timedelta(days=1)


def days_overdue(due_date: datetime, now: datetime | None = None) -> int:
    """Whole days elapsed since ``due_date`` (floored, never negative)."""
    now = now or datetime.now()
    if now <= due_date:
        return 0
    return (now - due_date) // ONE_DAY


def calculate_fine(due_date: datetime, fine_per_day: float, now: datetime | None = None) -> float:
    """Fine owed for a loan due at ``due_date`` if it were returned at ``now``."""
    return round(days_overdue(due_date, now) * fine_per_day, 2)


def days_until_due(due_date: datetime, now: datetime | None = None) -> int:
    """Days left before the due date (ceiling); negative once overdue."""
    now = now or datetime.now()
    return math.ceil((due_date - now) / ONE_DAY)


class Transaction(BaseModel):
    """A loan record."""

    id: int = Field(..., description="Transaction identifier")
    item_id: int = Field(..., description="Borrowed item")
    patron_id: int = Field(..., description="Borrowing patron")
    borrowed_at: datetime = Field(..., description="When the loan was issued")
    due_date: datetime = Field(..., description="When the copy must be back")
    is_returned: bool = Field(False, description="True once the loan is closed")
    returned_at: datetime | None = Field(None, description="When the copy came back")
    fine_paid: float | None = Field(
        None, description="Fine recorded at return or collection", ge=0.0
    )

    model_config = ConfigDict(from_attributes=True)


class ActiveLoan(Transaction):
    """An open loan with its current overdue status."""

    item_title: str | None = None
    patron_name: str | None = None
    is_overdue: bool = False
    calculated_fine: float = Field(0.0, ge=0.0)
    days_until_due: int = 0


class OverdueLoan(Transaction):
    """An open loan past its due date."""

    item_title: str | None = None
    item_author: str | None = None
    patron_name: str | None = None
    patron_email: str | None = None
    days_overdue: int = Field(..., ge=0, description="Whole days late (0 when due earlier today)")
    calculated_fine: float = Field(..., ge=0.0)


class ReturnResult(BaseModel):
    """Outcome of a return."""

    transaction: Transaction
    days_overdue: int = Field(..., ge=0)
    fine: float = Field(..., ge=0.0, description="days_overdue x fine_per_day at return time")
    fine_per_day: float = Field(..., ge=0.0)


class Reservation(BaseModel):
    """A hold on an item."""

    id: int
    item_id: int
    patron_id: int
    reserved_at: datetime
    item_title: str | None = None
    patron_name: str | None = None
    queue_position: int | None = Field(None, ge=1, description="1 = next in line")

    model_config = ConfigDict(from_attributes=True)


class PatronFines(BaseModel):
    """Fines attributable to a patron."""

    patron_id: int
    recorded_fines: float = Field(..., ge=0.0, description="Fines recorded on returned loans")
    pending_fines: float = Field(..., ge=0.0, description="Fines accruing on open overdue loans")
    total_fines: float = Field(..., ge=0.0)
    overdue_loans: int = Field(..., ge=0)
