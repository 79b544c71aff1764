"""
Database package for the Library Management MCP Server.

- schema.py: SQLAlchemy tables
- session.py: engine, sessions and safe query/commit helpers
- errors.py: the library error taxonomy
- *_repository.py: data access used by tools and resources
"""

from .circulation_repository import CirculationRepository
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
from .item_repository import (
    ItemCreateSchema,
    ItemRepository,
    ItemSearchParams,
    ItemUpdateSchema,
    reconcile_available,
)
from .patron_repository import PatronCreateSchema, PatronRepository, PatronUpdateSchema
from .report_repository import ReportRepository
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import (
    Admin,
    Base,
    FacultyProfile,
    Item,
    Librarian,
    LibrarySettings,
    Patron,
    Reservation,
    StudentProfile,
    Transaction,
)
from .session import (
    DatabaseManager,
    get_db_manager,
    get_session,
    safe_commit,
    safe_query,
    session_scope,
    set_db_manager,
)
from .settings_repository import SettingsRepository
from .staff_repository import StaffCreateSchema, StaffRepository

__all__ = [
    "Admin",
    "AlreadyReturnedError",
    "Base",
    "BaseRepository",
    "CapacityError",
    "CirculationRepository",
    "ConflictError",
    "DatabaseManager",
    "DuplicateError",
    "FacultyProfile",
    "Item",
    "ItemCreateSchema",
    "ItemRepository",
    "ItemSearchParams",
    "ItemUpdateSchema",
    "Librarian",
    "LibraryError",
    "LibrarySettings",
    "LimitExceededError",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "Patron",
    "PatronCreateSchema",
    "PatronRepository",
    "PatronUpdateSchema",
    "ReportRepository",
    "Reservation",
    "SettingsRepository",
    "StaffCreateSchema",
    "StaffRepository",
    "StudentProfile",
    "Transaction",
    "ValidationError",
    "get_db_manager",
    "get_session",
    "reconcile_available",
    "safe_commit",
    "safe_query",
    "session_scope",
    "set_db_manager",
]
