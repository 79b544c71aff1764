"""Library circulation policy model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LibrarySettings(BaseModel):
    """The single settings record every circulation operation reads."""

    borrowing_limit: int = Field(..., description="Maximum open loans per patron")
    loan_period_days: int = Field(..., description="Days between borrow and due date")
    fine_per_day: float = Field(..., description="Fine charged per whole overdue day")
    updated_by_admin_id: int | None = Field(None, description="Administrator of the last change")
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
