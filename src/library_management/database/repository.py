"""
Repository pattern implementation for the Library Management MCP Server.

Repositories keep SQL out of the MCP handlers: tools and resources call a
repository method and get Pydantic models (or a library error) back.

The base repository provides common read operations; specialised
repositories add the domain operations (circulation, catalogue, accounts,
settings, reports).
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import asc, desc, func, select
from sqlalchemy.orm import Session

from .errors import (
    AlreadyReturnedError,
    CapacityError,
    ConflictError,
    DuplicateError,
    LibraryError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from .schema import Base
from .session import safe_commit, safe_query

ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)

__all__ = [
    "AlreadyReturnedError",
    "BaseRepository",
    "CapacityError",
    "ConflictError",
    "DuplicateError",
    "LibraryError",
    "LimitExceededError",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "ValidationError",
]


class PaginationParams(BaseModel):
    """Standard pagination parameters for MCP list operations."""

    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        """Calculate offset for SQL queries."""
        return (self.page - 1) * self.page_size

    def validate_params(self) -> None:
        """Validate pagination parameters."""
        if self.page < 1:
            raise ValidationError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > 100:
            raise ValidationError("Page size must be between 1 and 100")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """Standard paginated response for MCP list operations."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: list[ResponseSchemaType], total: int, pagination: PaginationParams
    ) -> "PaginatedResponse[ResponseSchemaType]":
        total_pages = (total + pagination.page_size - 1) // pagination.page_size
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=total_pages,
            has_next=pagination.page < total_pages,
            has_previous=pagination.page > 1,
        )


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """
    Abstract base repository providing common read operations.

    All queries go through safe_query and commits through safe_commit so
    store failures surface as LibraryError.
    """

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        """Convert database model to Pydantic response model."""
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def _get_db_object(self, id: int) -> ModelType:
        """Load the row or raise NotFoundError."""
        db_obj = safe_query(
            self.session,
            lambda s: s.get(self.model_class, id),
            f"Failed to get {self.model_class.__name__} by ID",
        )
        if db_obj is None:
            raise NotFoundError(f"{self.model_class.__name__} {id} not found")
        return db_obj

    def get_by_id(self, id: int) -> ResponseSchemaType | None:
        """
        Get entity by ID.

        Returns:
            Pydantic model or None if not found

        Raises:
            LibraryError: On database errors
        """
        db_obj = safe_query(
            self.session,
            lambda s: s.get(self.model_class, id),
            f"Failed to get {self.model_class.__name__} by ID",
        )
        if db_obj is None:
            return None
        return self._to_response_model(db_obj)

    def get_all(
        self,
        pagination: PaginationParams | None = None,
        order_by: str | None = None,
        order_desc: bool = False,
    ) -> list[ResponseSchemaType] | PaginatedResponse[ResponseSchemaType]:
        """
        Get all entities with optional pagination and sorting.

        Args:
            pagination: Pagination parameters
            order_by: Field name to order by
            order_desc: Whether to order descending

        Returns:
            List of entities or paginated response
        """
        query = select(self.model_class)

        if order_by and hasattr(self.model_class, order_by):
            order_field = getattr(self.model_class, order_by)
            query = query.order_by(desc(order_field) if order_desc else asc(order_field))

        if pagination:
            pagination.validate_params()

            count_query = select(func.count()).select_from(self.model_class)
            total = (
                safe_query(
                    self.session,
                    lambda s: s.execute(count_query).scalar(),
                    "Failed to get total count",
                )
                or 0
            )

            query = query.offset(pagination.offset).limit(pagination.page_size)
            results = safe_query(
                self.session,
                lambda s: s.execute(query).scalars().all(),
                "Failed to get paginated results",
            )
            return PaginatedResponse.build(
                [self._to_response_model(item) for item in results], total, pagination
            )

        results = safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            f"Failed to list {self.model_class.__name__}",
        )
        return [self._to_response_model(item) for item in results]

    def exists(self, id: int) -> bool:
        """Check if an entity exists."""
        query = select(func.count()).select_from(self.model_class).where(
            self.model_class.id == id
        )
        count = safe_query(
            self.session,
            lambda s: s.execute(query).scalar(),
            f"Failed to check {self.model_class.__name__} existence",
        )
        return bool(count)

    def _commit(self, operation: str) -> None:
        safe_commit(self.session, operation)
