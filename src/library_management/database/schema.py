"""
SQLAlchemy database schema for the Library Management MCP Server.

Tables:
- items: catalogue entries with a physical copy count
- patrons (+ student/faculty profiles): borrowers
- admins, librarians: staff accounts
- transactions: one row per loan, open until returned
- reservations: at most one hold per (item, patron)
- library_settings: the single row of circulation policy

The copy-count invariant ``0 <= available_copies <= total_copies`` is
enforced by check constraints as well as by the conditional updates in
the circulation repository.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# Circulation policy applied until an administrator changes it
DEFAULT_BORROWING_LIMIT = 5
DEFAULT_LOAN_PERIOD_DAYS = 14
DEFAULT_FINE_PER_DAY = 1.0

SETTINGS_ROW_ID = 1


class Item(Base):
    """
    A catalogue entry (book, journal, media...).

    Hidden items (``is_visible`` false) are retained for loan history but
    cannot be borrowed and are excluded from searches and most reports.
    """

    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False)
    author = Column(String(300), nullable=False)
    isbn = Column(String(20), nullable=True)
    subject = Column(String(200), nullable=True)
    keywords = Column(Text, nullable=True)
    item_type = Column(String(50), nullable=False, default="Book")
    price = Column(Float, nullable=False, default=0.0)
    image_url = Column(String(500), nullable=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    is_visible = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    transactions = relationship("Transaction", back_populates="item")
    reservations = relationship("Reservation", back_populates="item")

    __table_args__ = (
        Index("idx_item_title", "title"),
        Index("idx_item_author", "author"),
        Index("idx_item_subject", "subject"),
        Index("idx_item_type", "item_type"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceeds_total"
        ),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
    )

    def __repr__(self):
        return f"<Item(id={self.id}, title='{self.title}')>"


class Patron(Base):
    """A borrower. ``is_active`` false marks a deleted account kept for history."""

    __tablename__ = "patrons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    is_student = Column(Boolean, nullable=False, default=False)
    is_faculty = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    student_profile = relationship(
        "StudentProfile", back_populates="patron", uselist=False, cascade="all, delete-orphan"
    )
    faculty_profile = relationship(
        "FacultyProfile", back_populates="patron", uselist=False, cascade="all, delete-orphan"
    )
    transactions = relationship("Transaction", back_populates="patron")
    reservations = relationship("Reservation", back_populates="patron")

    __table_args__ = (Index("idx_patron_name", "last_name", "first_name"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Patron(id={self.id}, email='{self.email}')>"


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    patron_id = Column(Integer, ForeignKey("patrons.id", ondelete="CASCADE"), primary_key=True)
    department = Column(String(200), nullable=True)
    semester = Column(Integer, nullable=True)
    roll_no = Column(String(50), nullable=True)
    enrollment_number = Column(String(50), nullable=True)

    patron = relationship("Patron", back_populates="student_profile")


class FacultyProfile(Base):
    __tablename__ = "faculty_profiles"

    patron_id = Column(Integer, ForeignKey("patrons.id", ondelete="CASCADE"), primary_key=True)
    department = Column(String(200), nullable=True)

    patron = relationship("Patron", back_populates="faculty_profile")


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Librarian(Base):
    __tablename__ = "librarians"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Transaction(Base):
    """
    A loan of one copy of an item to one patron.

    Open while ``is_returned`` is false. ``fine_paid`` is NULL until a
    return computes a positive fine or a fine is collected.
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    patron_id = Column(Integer, ForeignKey("patrons.id"), nullable=False)
    borrowed_at = Column(DateTime, nullable=False, default=datetime.now)
    due_date = Column(DateTime, nullable=False)
    is_returned = Column(Boolean, nullable=False, default=False)
    returned_at = Column(DateTime, nullable=True)
    fine_paid = Column(Float, nullable=True)

    item = relationship("Item", back_populates="transactions")
    patron = relationship("Patron", back_populates="transactions")

    __table_args__ = (
        Index("idx_transaction_patron_open", "patron_id", "is_returned"),
        Index("idx_transaction_item", "item_id"),
        Index("idx_transaction_due", "due_date"),
        CheckConstraint("fine_paid IS NULL OR fine_paid >= 0", name="check_fine_non_negative"),
    )

    def __repr__(self):
        return (
            f"<Transaction(id={self.id}, item_id={self.item_id}, "
            f"patron_id={self.patron_id}, returned={self.is_returned})>"
        )


class Reservation(Base):
    """A patron's hold on an item with no copies available."""

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    patron_id = Column(Integer, ForeignKey("patrons.id"), nullable=False)
    reserved_at = Column(DateTime, nullable=False, default=datetime.now)

    item = relationship("Item", back_populates="reservations")
    patron = relationship("Patron", back_populates="reservations")

    __table_args__ = (
        UniqueConstraint("item_id", "patron_id", name="uq_reservation_item_patron"),
        Index("idx_reservation_queue", "item_id", "reserved_at"),
    )


class LibrarySettings(Base):
    """Circulation policy. Exactly one row, id 1."""

    __tablename__ = "library_settings"

    id = Column(Integer, primary_key=True, default=SETTINGS_ROW_ID)
    borrowing_limit = Column(Integer, nullable=False, default=DEFAULT_BORROWING_LIMIT)
    loan_period_days = Column(Integer, nullable=False, default=DEFAULT_LOAN_PERIOD_DAYS)
    fine_per_day = Column(Float, nullable=False, default=DEFAULT_FINE_PER_DAY)
    updated_by_admin_id = Column(Integer, ForeignKey("admins.id"), nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    updated_by = relationship("Admin")
