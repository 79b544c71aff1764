"""
Patron and staff account models.

Password hashes never leave the database layer; none of these models carry
them.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class PatronType(str, Enum):
    STUDENT = "student"
    FACULTY = "faculty"
    GENERAL = "general"


class StaffRole(str, Enum):
    ADMIN = "admin"
    LIBRARIAN = "librarian"


class StudentProfile(BaseModel):
    department: str | None = None
    semester: int | None = Field(None, ge=1, le=12)
    roll_no: str | None = None
    enrollment_number: str | None = None

    model_config = ConfigDict(from_attributes=True)


class FacultyProfile(BaseModel):
    department: str | None = None

    model_config = ConfigDict(from_attributes=True)


class Patron(BaseModel):
    """A registered borrower."""

    id: int = Field(..., description="Patron identifier")
    email: str = Field(..., description="Unique e-mail address")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    is_student: bool = False
    is_faculty: bool = False
    is_active: bool = Field(True, description="False once the account has been deleted")
    student_profile: StudentProfile | None = None
    faculty_profile: FacultyProfile | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @computed_field
    @property
    def patron_type(self) -> PatronType:
        if self.is_student:
            return PatronType.STUDENT
        if self.is_faculty:
            return PatronType.FACULTY
        return PatronType.GENERAL


class StaffAccount(BaseModel):
    """An administrator or librarian."""

    id: int
    email: str
    first_name: str
    last_name: str
    role: StaffRole
    created_at: datetime | None = None


class UserSummary(BaseModel):
    """One row of the combined user listing (staff and patrons)."""

    id: int
    email: str
    name: str
    role: str
    created_at: datetime | None = None
