"""Test configuration and fixtures for the Library Management MCP Server.

Every test gets its own SQLite file under ``tmp_path`` installed as the global
database manager, so repositories, tools and resources all see the same
isolated store. A file (not ``:memory:``) is used so that separate sessions
hold separate connections and transactions.
"""

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from pathlib import Path

import logfire
import pytest
from faker import Faker
from sqlalchemy.orm import Session

from library_management.config import ServerConfig, reset_config
from library_management.database.schema import Item as ItemDB
from library_management.database.schema import LibrarySettings as LibrarySettingsDB
from library_management.database.schema import Patron as PatronDB
from library_management.database.schema import Reservation as ReservationDB
from library_management.database.schema import Transaction as TransactionDB
from library_management.database.session import DatabaseManager, set_db_manager

# Spans are created but never exported or printed during tests
logfire.configure(send_to_logfire=False, console=False)

# Patron rows created by the factories skip the real key derivation
TEST_PASSWORD_HASH = "pbkdf2_sha256$1$testsalt$00"


# === Environment Fixtures ===


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path) -> Generator[None, None, None]:
    """Remove LIBRARY_* variables and point backups at a temporary directory."""
    original_env = os.environ.copy()
    for key in list(os.environ):
        if key.startswith("LIBRARY_") or key == "DATABASE_URL":
            del os.environ[key]
    os.environ["LIBRARY_BACKUP_DIR"] = str(tmp_path / "backups")
    reset_config()

    yield

    os.environ.clear()
    os.environ.update(original_env)
    reset_config()


# === Database Fixtures ===


@pytest.fixture
def test_database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'test_library.db'}"


@pytest.fixture
def db_manager(test_database_url: str) -> Generator[DatabaseManager, None, None]:
    """A fresh schema installed as the global database manager."""
    os.environ["LIBRARY_DATABASE_URL"] = test_database_url
    reset_config()

    manager = DatabaseManager(test_database_url, echo=False)
    manager.init_database()
    set_db_manager(manager)

    yield manager

    set_db_manager(None)
    manager.close()


@pytest.fixture
def session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def test_config(test_database_url: str, tmp_path: Path) -> ServerConfig:
    return ServerConfig(
        server_name="test-library",
        server_version="0.0.1-test",
        database_url=test_database_url,
        backup_dir=tmp_path / "backups",
        debug=True,
        log_level="DEBUG",
        enable_tracing=False,
    )


# === Data Factories ===


@pytest.fixture
def fake() -> Faker:
    faker = Faker()
    faker.seed_instance(1234)
    return faker


@pytest.fixture
def make_item(session: Session, fake: Faker) -> Callable[..., ItemDB]:
    """Insert an item; ``available_copies`` defaults to ``total_copies``."""

    def factory(**overrides) -> ItemDB:
        total = overrides.pop("total_copies", 1)
        values = {
            "title": fake.sentence(nb_words=4).rstrip("."),
            "author": fake.name(),
            "isbn": fake.isbn13(separator=""),
            "subject": "Computer Science",
            "item_type": "Book",
            "price": 25.0,
            "total_copies": total,
            "available_copies": overrides.pop("available_copies", total),
            "is_visible": True,
        }
        values.update(overrides)
        item = ItemDB(**values)
        session.add(item)
        session.commit()
        return item

    return factory


@pytest.fixture
def make_patron(session: Session, fake: Faker) -> Callable[..., PatronDB]:
    def factory(**overrides) -> PatronDB:
        values = {
            "email": fake.unique.email(),
            "password_hash": TEST_PASSWORD_HASH,
            "first_name": fake.first_name(),
            "last_name": fake.last_name(),
            "is_active": True,
        }
        values.update(overrides)
        patron = PatronDB(**values)
        session.add(patron)
        session.commit()
        return patron

    return factory


@pytest.fixture
def make_loan(session: Session) -> Callable[..., TransactionDB]:
    """Insert a loan directly, taking a copy off the shelf like a real borrow."""

    def factory(
        item: ItemDB,
        patron: PatronDB,
        *,
        borrowed_days_ago: int = 1,
        due_in_days: int = 13,
        returned: bool = False,
        fine_paid: float | None = None,
    ) -> TransactionDB:
        now = datetime.now()
        loan = TransactionDB(
            item_id=item.id,
            patron_id=patron.id,
            borrowed_at=now - timedelta(days=borrowed_days_ago),
            due_date=now + timedelta(days=due_in_days),
            is_returned=returned,
            returned_at=now if returned else None,
            fine_paid=fine_paid,
        )
        if not returned:
            item.available_copies -= 1
        session.add(loan)
        session.commit()
        return loan

    return factory


@pytest.fixture
def make_reservation(session: Session) -> Callable[..., ReservationDB]:
    def factory(item: ItemDB, patron: PatronDB, *, minutes_ago: int = 0) -> ReservationDB:
        reservation = ReservationDB(
            item_id=item.id,
            patron_id=patron.id,
            reserved_at=datetime.now() - timedelta(minutes=minutes_ago),
        )
        session.add(reservation)
        session.commit()
        return reservation

    return factory


@pytest.fixture
def library_settings(session: Session) -> Callable[..., LibrarySettingsDB]:
    """Write the settings row with the given values."""

    def factory(**values) -> LibrarySettingsDB:
        settings = session.get(LibrarySettingsDB, 1)
        if settings is None:
            settings = LibrarySettingsDB(id=1)
            session.add(settings)
        for key, value in values.items():
            setattr(settings, key, value)
        session.commit()
        return settings

    return factory
