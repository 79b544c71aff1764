"""
Item repository for the Library Management MCP Server.

Catalogue maintenance and search:
- create / update / delete (soft-hide when the item has loan history)
- copy-count reconciliation when the number of owned copies changes
- visibility toggling and condition status changes
- search across title, author, ISBN, subject and keywords
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func, or_, select

from ..models.item import ConditionStatus, Item, ItemStatus, ItemWithStatus
from .errors import ConflictError, ValidationError
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import Item as ItemDB
from .schema import Reservation as ReservationDB
from .schema import Transaction as TransactionDB
from .session import safe_query

logger = logging.getLogger(__name__)

SEARCH_TYPES = ("all", "title", "author", "isbn", "subject", "keywords")


class ItemCreateSchema(BaseModel):
    """Schema for adding an item to the catalogue."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=300)
    isbn: str | None = Field(None, max_length=20)
    subject: str | None = Field(None, max_length=200)
    keywords: str | None = None
    item_type: str = Field("Book", min_length=1, max_length=50)
    price: float = Field(0.0, ge=0.0)
    image_url: str | None = Field(None, max_length=500)
    total_copies: int = Field(1, ge=0)

    @field_validator("title", "author")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ItemUpdateSchema(BaseModel):
    """Partial update; fields left as None are unchanged."""

    title: str | None = Field(None, min_length=1, max_length=500)
    author: str | None = Field(None, min_length=1, max_length=300)
    isbn: str | None = Field(None, max_length=20)
    subject: str | None = Field(None, max_length=200)
    keywords: str | None = None
    item_type: str | None = Field(None, min_length=1, max_length=50)
    price: float | None = Field(None, ge=0.0)
    image_url: str | None = Field(None, max_length=500)
    total_copies: int | None = Field(None, ge=0)


class ItemSearchParams(BaseModel):
    """Search parameters for the catalogue."""

    query: str | None = None
    search_type: str = Field("all", description="all, title, author, isbn, subject or keywords")
    subject: str | None = None
    item_type: str | None = None
    availability: str | None = Field(None, description="available or unavailable")

    @field_validator("search_type")
    @classmethod
    def validate_search_type(cls, v: str) -> str:
        if v not in SEARCH_TYPES:
            raise ValueError(f"search_type must be one of {', '.join(SEARCH_TYPES)}")
        return v

    @field_validator("availability")
    @classmethod
    def validate_availability(cls, v: str | None) -> str | None:
        if v is not None and v not in ("available", "unavailable"):
            raise ValueError("availability must be 'available' or 'unavailable'")
        return v


def reconcile_available(total: int, available: int, new_total: int) -> int:
    """Available copies after the owned total changes, keeping borrowed copies out."""
    borrowed = total - available
    return max(0, new_total - borrowed)


class ItemRepository(BaseRepository[ItemDB, Item]):
    """Repository for catalogue items."""

    @property
    def model_class(self):
        return ItemDB

    @property
    def response_schema(self):
        return Item

    def create(self, data: ItemCreateSchema) -> Item:
        """Add an item; every copy starts on the shelf."""
        item = ItemDB(
            **data.model_dump(),
            available_copies=data.total_copies,
            is_visible=True,
        )
        self.session.add(item)
        self._commit("create item")
        logger.info("Item %s created: %s", item.id, item.title)
        return self._to_response_model(item)

    def update(self, item_id: int, data: ItemUpdateSchema) -> Item:
        """
        Apply a partial update.

        A changed ``total_copies`` goes through the same reconciliation as
        update_copies so borrowed copies are never counted as available.
        """
        item = self._get_db_object(item_id)
        changes = data.model_dump(exclude_none=True)
        new_total = changes.pop("total_copies", None)

        if new_total is not None and new_total != item.total_copies:
            self._apply_copies(item, new_total)
        for field, value in changes.items():
            setattr(item, field, value)

        self._commit("update item")
        logger.info("Item %s updated: %s", item_id, sorted(data.model_dump(exclude_none=True)))
        return self._to_response_model(item)

    def update_copies(self, item_id: int, new_total: int) -> Item:
        """
        Change the number of owned copies.

        ``available = max(0, new_total - borrowed)`` where borrowed is the
        number of copies currently out.
        """
        if new_total < 0:
            raise ValidationError("Total copies cannot be negative")
        item = self._get_db_object(item_id)
        self._apply_copies(item, new_total)
        self._commit("update item copies")
        return self._to_response_model(item)

    def _apply_copies(self, item: ItemDB, new_total: int) -> None:
        # Re-read the counts so loans committed by other sessions are included
        self.session.refresh(item)
        new_available = reconcile_available(item.total_copies, item.available_copies, new_total)
        logger.info(
            "Item %s copies %d -> %d (available %d -> %d)",
            item.id,
            item.total_copies,
            new_total,
            item.available_copies,
            new_available,
        )
        item.total_copies = new_total
        item.available_copies = new_available

    def toggle_visibility(self, item_id: int) -> Item:
        item = self._get_db_object(item_id)
        item.is_visible = not item.is_visible
        self._commit("toggle item visibility")
        logger.info("Item %s visibility set to %s", item_id, item.is_visible)
        return self._to_response_model(item)

    def update_status(self, item_id: int, status: str | ConditionStatus) -> Item:
        """
        Record a condition change.

        ``withdrawn`` hides the item; any other status makes it visible.
        ``lost`` and ``damaged`` take every copy off the shelf.
        """
        try:
            status = ConditionStatus(status)
        except ValueError as e:
            allowed = ", ".join(s.value for s in ConditionStatus)
            raise ValidationError(f"Invalid status '{status}', expected one of: {allowed}") from e

        item = self._get_db_object(item_id)
        item.is_visible = status != ConditionStatus.WITHDRAWN
        if status in (ConditionStatus.LOST, ConditionStatus.DAMAGED):
            item.available_copies = 0
        self._commit("update item status")
        logger.info("Item %s status set to %s", item_id, status.value)
        return self._to_response_model(item)

    def delete(self, item_id: int) -> bool:
        """
        Remove an item.

        Returns:
            True if the row was deleted, False if it was hidden instead
            because loan history references it

        Raises:
            NotFoundError: Unknown item
            ConflictError: The item has open loans or reservations
        """
        item = self._get_db_object(item_id)
        if self._count(TransactionDB, TransactionDB.item_id == item_id, open_only=True):
            raise ConflictError(f"Item {item_id} has active loans and cannot be deleted")
        if self._count(ReservationDB, ReservationDB.item_id == item_id):
            raise ConflictError(f"Item {item_id} has reservations and cannot be deleted")

        if self._count(TransactionDB, TransactionDB.item_id == item_id):
            item.is_visible = False
            self._commit("hide item")
            logger.info("Item %s has loan history, hidden instead of deleted", item_id)
            return False

        self.session.delete(item)
        self._commit("delete item")
        logger.info("Item %s deleted", item_id)
        return True

    def get_with_status(self, item_id: int) -> ItemWithStatus:
        item = self._get_db_object(item_id)
        active_loans = self._count(TransactionDB, TransactionDB.item_id == item_id, open_only=True)
        reservations = self._count(ReservationDB, ReservationDB.item_id == item_id)

        if not item.is_visible:
            status = ItemStatus.WITHDRAWN
        elif active_loans:
            status = ItemStatus.ISSUED
        elif reservations:
            status = ItemStatus.RESERVED
        else:
            status = ItemStatus.AVAILABLE

        return ItemWithStatus.model_validate(
            {
                **self._to_response_model(item).model_dump(exclude={"is_available"}),
                "status": status,
                "active_loans": active_loans,
                "reservation_count": reservations,
            }
        )

    def search(
        self, params: ItemSearchParams, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[Item]:
        """Search visible items, ordered by title."""
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        conditions: list[Any] = [ItemDB.is_visible.is_(True)]
        if params.query:
            pattern = f"%{params.query.strip()}%"
            columns = {
                "title": [ItemDB.title],
                "author": [ItemDB.author],
                "isbn": [ItemDB.isbn],
                "subject": [ItemDB.subject],
                "keywords": [ItemDB.keywords],
            }
            if params.search_type == "all":
                targets = [column for group in columns.values() for column in group]
            else:
                targets = columns[params.search_type]
            conditions.append(or_(*(column.ilike(pattern) for column in targets)))
        if params.subject:
            conditions.append(ItemDB.subject == params.subject)
        if params.item_type:
            conditions.append(ItemDB.item_type == params.item_type)
        if params.availability == "available":
            conditions.append(ItemDB.available_copies > 0)
        elif params.availability == "unavailable":
            conditions.append(ItemDB.available_copies == 0)

        total = safe_query(
            self.session,
            lambda s: s.execute(select(func.count(ItemDB.id)).where(*conditions)).scalar(),
            "Failed to count search results",
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(ItemDB)
                .where(*conditions)
                .order_by(ItemDB.title, ItemDB.id)
                .offset(pagination.offset)
                .limit(pagination.page_size)
            )
            .scalars()
            .all(),
            "Failed to search items",
        )
        return PaginatedResponse.build(
            [self._to_response_model(row) for row in rows], total or 0, pagination
        )

    def unique_subjects(self) -> list[str]:
        return self._distinct(ItemDB.subject)

    def unique_item_types(self) -> list[str]:
        return self._distinct(ItemDB.item_type)

    def _distinct(self, column) -> list[str]:
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(column)
                .where(ItemDB.is_visible.is_(True), column.is_not(None), column != "")
                .distinct()
                .order_by(column)
            )
            .scalars()
            .all(),
            "Failed to list distinct values",
        )
        return list(rows)

    def _count(self, model, condition, open_only: bool = False) -> int:
        query = select(func.count(model.id)).where(condition)
        if open_only:
            query = query.where(model.is_returned.is_(False))
        return safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count rows"
        ) or 0
