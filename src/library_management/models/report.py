"""Report projections returned by the reports resources."""

from datetime import datetime

from pydantic import BaseModel, Field


class DashboardStats(BaseModel):
    """Headline counts for the administration dashboard."""

    total_items: int
    visible_items: int
    total_patrons: int
    total_admins: int
    total_librarians: int
    total_users: int = Field(..., description="Admins + librarians + patrons")
    total_transactions: int
    active_transactions: int
    overdue_transactions: int
    total_reservations: int
    available_copies: int = Field(..., description="Sum over visible items")
    total_fines: float = Field(..., description="Sum of recorded fines")


class PopularItem(BaseModel):
    item_id: int
    title: str
    author: str
    subject: str | None = None
    item_type: str
    loan_count: int
    reservation_count: int
    popularity_score: float = Field(..., description="loans + 0.5 x reservations")


class PatronActivity(BaseModel):
    patron_id: int
    name: str
    email: str
    patron_type: str
    current_loans: int
    total_borrowings: int
    reservations: int


class MonthlyCirculation(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    borrowed: int
    returned: int


class SubjectDistribution(BaseModel):
    subject: str
    item_count: int
    total_copies: int
    available_copies: int
    circulation_rate: float = Field(..., description="Percentage of copies on loan")


class FineRecord(BaseModel):
    transaction_id: int
    patron_name: str
    item_title: str
    due_date: datetime
    fine_collected: float = Field(..., description="Fine recorded on the loan")
    fine_pending: float = Field(..., description="Fine accruing on an open overdue loan")
    status: str = Field(..., description="Returned or Active")


class FineCollection(BaseModel):
    collected: float
    pending: float
    total: float
    records: list[FineRecord]


class ActivityEntry(BaseModel):
    reference: str = Field(..., description="transaction-<id> or reservation-<id>")
    action: str = Field(..., description="borrowed, returned or reserved")
    timestamp: datetime
    patron_name: str
    item_title: str
    status: str = Field(..., description="active, completed or pending")


class CatalogStatistics(BaseModel):
    total_items: int
    visible_items: int
    hidden_items: int
    total_copies: int
    available_copies: int
    borrowed_copies: int
    unique_authors: int
    items_by_type: dict[str, int]
