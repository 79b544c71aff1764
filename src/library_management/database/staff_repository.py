"""
Staff repository: administrator and librarian accounts.

Staff accounts are plain records here; authentication is handled outside
this server.
"""

import logging

from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import select

from ..models.patron import StaffAccount, StaffRole, UserSummary
from ..security import hash_password
from .errors import ConflictError, DuplicateError
from .schema import Admin as AdminDB
from .schema import Librarian as LibrarianDB
from .schema import Patron as PatronDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)

_ROLE_TABLES = {
    StaffRole.ADMIN: AdminDB,
    StaffRole.LIBRARIAN: LibrarianDB,
}


class StaffCreateSchema(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, repr=False)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class StaffRepository:
    """Create and list staff accounts; list every user across roles."""

    def __init__(self, session):
        self.session = session

    def create(self, role: StaffRole | str, data: StaffCreateSchema) -> StaffAccount:
        """
        Create an admin or librarian.

        Raises:
            DuplicateError: The e-mail already exists for this role
        """
        role = StaffRole(role)
        model = _ROLE_TABLES[role]

        existing = safe_query(
            self.session,
            lambda s: s.execute(select(model.id).where(model.email == data.email)).first(),
            f"Failed to check {role.value} email",
        )
        if existing is not None:
            raise DuplicateError(f"A {role.value} with email {data.email} already exists")

        account = model(
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
        )
        self.session.add(account)
        try:
            safe_commit(self.session, f"create {role.value}")
        except ConflictError as e:
            raise DuplicateError(f"A {role.value} with email {data.email} already exists") from e

        logger.info("%s account %s created", role.value.capitalize(), account.id)
        return self._to_account(account, role)

    def list_staff(self, role: StaffRole | str) -> list[StaffAccount]:
        role = StaffRole(role)
        model = _ROLE_TABLES[role]
        rows = safe_query(
            self.session,
            lambda s: s.execute(select(model).order_by(model.id)).scalars().all(),
            f"Failed to list {role.value} accounts",
        )
        return [self._to_account(row, role) for row in rows]

    def list_users(self) -> list[UserSummary]:
        """Admins, librarians and patrons in one listing, newest first."""
        users: list[UserSummary] = []
        for role in _ROLE_TABLES:
            for row in self.list_staff(role):
                users.append(
                    UserSummary(
                        id=row.id,
                        email=row.email,
                        name=f"{row.first_name} {row.last_name}",
                        role=role.value,
                        created_at=row.created_at,
                    )
                )

        patrons = safe_query(
            self.session,
            lambda s: s.execute(select(PatronDB).order_by(PatronDB.id)).scalars().all(),
            "Failed to list patrons",
        )
        users.extend(
            UserSummary(
                id=p.id,
                email=p.email,
                name=p.full_name,
                role="patron",
                created_at=p.created_at,
            )
            for p in patrons
        )
        users.sort(key=lambda u: u.created_at.timestamp() if u.created_at else 0.0, reverse=True)
        return users

    @staticmethod
    def _to_account(row, role: StaffRole) -> StaffAccount:
        return StaffAccount(
            id=row.id,
            email=row.email,
            first_name=row.first_name,
            last_name=row.last_name,
            role=role,
            created_at=row.created_at,
        )
