"""
Patron repository for the Library Management MCP Server.

Registration (with optional student or faculty profile), profile updates,
search and deletion. Patrons referenced by loan history are deactivated
rather than deleted so history keeps its foreign keys.
"""

import logging

from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import delete, func, or_, select

from ..models.patron import Patron, PatronType
from ..security import hash_password
from .errors import ConflictError, DuplicateError, LibraryError
from .repository import BaseRepository
from .schema import FacultyProfile as FacultyProfileDB
from .schema import Patron as PatronDB
from .schema import Reservation as ReservationDB
from .schema import StudentProfile as StudentProfileDB
from .schema import Transaction as TransactionDB
from .session import safe_query

logger = logging.getLogger(__name__)


class PatronCreateSchema(BaseModel):
    """Schema for registering a patron."""

    email: EmailStr
    password: str = Field(..., min_length=6, repr=False)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    patron_type: PatronType = PatronType.GENERAL
    department: str | None = Field(None, max_length=200)
    semester: int | None = Field(None, ge=1, le=12)
    roll_no: str | None = Field(None, max_length=50)
    enrollment_number: str | None = Field(None, max_length=50)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class PatronUpdateSchema(BaseModel):
    """Partial update; fields left as None are unchanged."""

    email: EmailStr | None = None
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    password: str | None = Field(None, min_length=6, repr=False)
    department: str | None = Field(None, max_length=200)
    semester: int | None = Field(None, ge=1, le=12)
    roll_no: str | None = Field(None, max_length=50)
    enrollment_number: str | None = Field(None, max_length=50)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return v.strip().lower() if v else v


class PatronRepository(BaseRepository[PatronDB, Patron]):
    """Repository for patron accounts."""

    @property
    def model_class(self):
        return PatronDB

    @property
    def response_schema(self):
        return Patron

    def register(self, data: PatronCreateSchema) -> Patron:
        """
        Create a patron and the profile matching its type.

        Raises:
            DuplicateError: The e-mail address is already registered
        """
        if self.get_by_email(data.email) is not None:
            raise DuplicateError(f"Email {data.email} is already registered")

        patron = PatronDB(
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            is_student=data.patron_type == PatronType.STUDENT,
            is_faculty=data.patron_type == PatronType.FACULTY,
            is_active=True,
        )
        if data.patron_type == PatronType.STUDENT:
            patron.student_profile = StudentProfileDB(
                department=data.department,
                semester=data.semester,
                roll_no=data.roll_no,
                enrollment_number=data.enrollment_number,
            )
        elif data.patron_type == PatronType.FACULTY:
            patron.faculty_profile = FacultyProfileDB(department=data.department)

        self.session.add(patron)
        try:
            self._commit("register patron")
        except ConflictError as e:
            raise DuplicateError(f"Email {data.email} is already registered") from e

        logger.info("Patron %s registered (%s)", patron.id, data.patron_type.value)
        return self._to_response_model(patron)

    def get_by_email(self, email: str) -> Patron | None:
        patron = safe_query(
            self.session,
            lambda s: s.execute(
                select(PatronDB).where(func.lower(PatronDB.email) == email.strip().lower())
            ).scalar_one_or_none(),
            "Failed to get patron by email",
        )
        return self._to_response_model(patron) if patron else None

    def update(self, patron_id: int, data: PatronUpdateSchema) -> Patron:
        """
        Update basic fields and the existing profile's fields.

        Raises:
            NotFoundError: Unknown patron
            DuplicateError: The new e-mail belongs to another patron
        """
        patron = self._get_db_object(patron_id)
        changes = data.model_dump(exclude_none=True)

        if "email" in changes and changes["email"] != patron.email:
            other = self.get_by_email(changes["email"])
            if other is not None and other.id != patron_id:
                raise DuplicateError(f"Email {changes['email']} is already registered")

        for field in ("email", "first_name", "last_name"):
            if field in changes:
                setattr(patron, field, changes[field])
        if "password" in changes:
            patron.password_hash = hash_password(changes["password"])

        if patron.student_profile is not None:
            for field in ("department", "semester", "roll_no", "enrollment_number"):
                if field in changes:
                    setattr(patron.student_profile, field, changes[field])
        elif patron.faculty_profile is not None and "department" in changes:
            patron.faculty_profile.department = changes["department"]

        try:
            self._commit("update patron")
        except ConflictError as e:
            raise DuplicateError(f"Email {changes.get('email')} is already registered") from e

        logger.info("Patron %s updated", patron_id)
        return self._to_response_model(patron)

    def search(self, query: str, limit: int = 10) -> list[Patron]:
        """Match names and e-mail case-insensitively; a numeric query also matches the id."""
        query = query.strip()
        pattern = f"%{query}%"
        conditions = [
            PatronDB.first_name.ilike(pattern),
            PatronDB.last_name.ilike(pattern),
            PatronDB.email.ilike(pattern),
        ]
        if query.isdigit():
            conditions.append(PatronDB.id == int(query))

        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(PatronDB)
                .where(or_(*conditions))
                .order_by(PatronDB.last_name, PatronDB.first_name, PatronDB.id)
                .limit(limit)
            )
            .scalars()
            .all(),
            "Failed to search patrons",
        )
        return [self._to_response_model(row) for row in rows]

    def delete(self, patron_id: int) -> bool:
        """
        Remove a patron.

        Reservations are dropped. A patron with loan history is deactivated
        instead of deleted.

        Returns:
            True if the row was deleted, False if the account was deactivated

        Raises:
            NotFoundError: Unknown patron
            ConflictError: The patron has open loans
        """
        patron = self._get_db_object(patron_id)
        open_loans, history = safe_query(
            self.session,
            lambda s: (
                s.execute(
                    select(func.count(TransactionDB.id)).where(
                        TransactionDB.patron_id == patron_id, TransactionDB.is_returned.is_(False)
                    )
                ).scalar(),
                s.execute(
                    select(func.count(TransactionDB.id)).where(
                        TransactionDB.patron_id == patron_id
                    )
                ).scalar(),
            ),
            "Failed to count patron loans",
        )
        if open_loans:
            raise ConflictError(
                f"Patron {patron_id} has {open_loans} active loans and cannot be deleted"
            )

        try:
            self.session.execute(
                delete(ReservationDB)
                .where(ReservationDB.patron_id == patron_id)
                .execution_options(synchronize_session=False)
            )
            if history:
                patron.is_active = False
                self._commit("deactivate patron")
                logger.info("Patron %s has loan history, deactivated", patron_id)
                return False

            self.session.delete(patron)
            self._commit("delete patron")
        except LibraryError:
            self.session.rollback()
            raise

        logger.info("Patron %s deleted", patron_id)
        return True
