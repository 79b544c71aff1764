"""
Catalogue item models.

``Item`` is the serialisable view of an ``items`` row returned by
resources and tools. ``ItemStatus`` is derived, never stored.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ItemStatus(str, Enum):
    """Display status derived from visibility, open loans and reservations."""

    AVAILABLE = "Available"
    ISSUED = "Issued"
    RESERVED = "Reserved"
    WITHDRAWN = "Withdrawn"


class ConditionStatus(str, Enum):
    """Physical condition reported by staff through update_item_status."""

    AVAILABLE = "available"
    LOST = "lost"
    DAMAGED = "damaged"
    UNDER_REPAIR = "under_repair"
    WITHDRAWN = "withdrawn"


class Item(BaseModel):
    """A catalogue entry with its copy counts."""

    id: int = Field(..., description="Item identifier")
    title: str = Field(..., description="Title", min_length=1, max_length=500)
    author: str = Field(..., description="Author or creator", min_length=1, max_length=300)
    isbn: str | None = Field(None, description="ISBN, if the item has one")
    subject: str | None = Field(None, description="Subject heading")
    keywords: str | None = Field(None, description="Free-text keywords")
    item_type: str = Field("Book", description="Book, Journal, DVD...")
    price: float = Field(0.0, description="Replacement price", ge=0.0)
    image_url: str | None = Field(None, description="Cover image URL")
    total_copies: int = Field(..., description="Copies owned", ge=0)
    available_copies: int = Field(..., description="Copies on the shelf", ge=0)
    is_visible: bool = Field(True, description="False once withdrawn/hidden")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def is_available(self) -> bool:
        return self.is_visible and self.available_copies > 0

    @property
    def borrowed_copies(self) -> int:
        return self.total_copies - self.available_copies


class ItemWithStatus(Item):
    """Item plus its derived circulation status."""

    status: ItemStatus = Field(..., description="Derived circulation status")
    active_loans: int = Field(0, description="Open loans for this item", ge=0)
    reservation_count: int = Field(0, description="Reservations queued for this item", ge=0)
