"""
Backup and restore through the database's own dump tools.

This is an administrative operation outside the request path: it shells out
to ``mysqldump``/``mysql``, ``pg_dump``/``psql`` or ``sqlite3`` against the
configured connection string and keeps timestamped ``.sql`` files in the
backup directory. Passwords are handed over in the tool's environment
variable, never on the command line.
"""

import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field
from sqlalchemy.engine import URL, make_url

from .config import get_config
from .database.errors import LibraryError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "library_backup_"
BACKUP_SUFFIX = ".sql"

HEADER_MARKERS = (
    "mysqldump",
    "MySQL dump",
    "-- Host:",
    "PostgreSQL database dump",
    "BEGIN TRANSACTION",
)
CONTENT_MARKERS = ("CREATE TABLE", "INSERT INTO")


class BackupInfo(BaseModel):
    filename: str
    size_kb: int = Field(..., ge=0)
    created_at: datetime


class BackupValidation(BaseModel):
    filename: str
    is_valid: bool
    has_dump_header: bool
    has_sql_content: bool
    size_bytes: int = Field(..., ge=0)


def backup_filename(now: datetime | None = None) -> str:
    """``library_backup_<YYYY-MM-DDTHH-MM-SS>.sql``"""
    now = now or datetime.now()
    return f"{BACKUP_PREFIX}{now.strftime('%Y-%m-%dT%H-%M-%S')}{BACKUP_SUFFIX}"


def check_filename(filename: str) -> str:
    """Reject anything but a bare ``*.sql`` file name."""
    if (
        not filename
        or not filename.endswith(BACKUP_SUFFIX)
        or ".." in filename
        or "/" in filename
        or "\\" in filename
    ):
        raise ValidationError(f"Invalid backup filename: {filename!r}")
    return filename


class BackupManager:
    """Create, list, validate, restore and delete SQL dumps."""

    def __init__(
        self,
        database_url: str | None = None,
        backup_dir: Path | None = None,
        timeout: int | None = None,
    ):
        config = get_config()
        self.url: URL = make_url(database_url or config.database_url)
        self.backup_dir = Path(backup_dir or config.backup_dir)
        self.timeout = timeout or config.backup_timeout_seconds

    @property
    def backend(self) -> str:
        return self.url.get_backend_name()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.url.password:
            if self.backend == "mysql":
                env["MYSQL_PWD"] = self.url.password
            elif self.backend == "postgresql":
                env["PGPASSWORD"] = self.url.password
        return env

    def dump_command(self) -> list[str]:
        url = self.url
        if self.backend == "mysql":
            return [
                "mysqldump",
                "-h", url.host or "localhost",
                "-P", str(url.port or 3306),
                "-u", url.username or "root",
                "--routines",
                "--triggers",
                "--single-transaction",
                url.database or "",
            ]  # fmt: skip
        if self.backend == "postgresql":
            return [
                "pg_dump",
                "-h", url.host or "localhost",
                "-p", str(url.port or 5432),
                "-U", url.username or "postgres",
                "--no-owner",
                url.database or "",
            ]  # fmt: skip
        if self.backend == "sqlite":
            return ["sqlite3", self._sqlite_path(), ".dump"]
        raise LibraryError(f"Backups are not supported for '{self.backend}' databases")

    def restore_command(self) -> list[str]:
        url = self.url
        if self.backend == "mysql":
            return [
                "mysql",
                "-h", url.host or "localhost",
                "-P", str(url.port or 3306),
                "-u", url.username or "root",
                url.database or "",
            ]  # fmt: skip
        if self.backend == "postgresql":
            return [
                "psql",
                "-h", url.host or "localhost",
                "-p", str(url.port or 5432),
                "-U", url.username or "postgres",
                "-v", "ON_ERROR_STOP=1",
                "-d", url.database or "",
            ]  # fmt: skip
        if self.backend == "sqlite":
            return ["sqlite3", self._sqlite_path()]
        raise LibraryError(f"Restore is not supported for '{self.backend}' databases")

    def _sqlite_path(self) -> str:
        if not self.url.database or self.url.database == ":memory:":
            raise LibraryError("In-memory SQLite databases cannot be backed up")
        return self.url.database

    def _run(self, command: list[str], *, stdin=None, stdout=None) -> None:
        logger.info("Running %s", command[0])
        try:
            result = subprocess.run(
                command,
                stdin=stdin,
                stdout=stdout if stdout is not None else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                env=self._env(),
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise LibraryError(f"{command[0]} is not installed or not on PATH") from e
        except subprocess.TimeoutExpired as e:
            raise LibraryError(f"{command[0]} timed out after {self.timeout}s") from e

        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
            raise LibraryError(f"{command[0]} failed: {stderr or f'exit code {result.returncode}'}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _path(self, filename: str) -> Path:
        return self.backup_dir / check_filename(filename)

    def create_backup(self) -> BackupInfo:
        """Dump the database into a new timestamped file."""
        command = self.dump_command()
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        path = self.backup_dir / backup_filename()

        try:
            with path.open("wb") as fh:
                self._run(command, stdout=fh)
        except LibraryError:
            path.unlink(missing_ok=True)
            raise

        logger.info("Backup written to %s", path)
        return self._info(path)

    def list_backups(self) -> list[BackupInfo]:
        """Backups in the backup directory, newest first."""
        if not self.backup_dir.is_dir():
            return []
        backups = [
            self._info(path)
            for path in self.backup_dir.iterdir()
            if path.is_file() and path.name.endswith(BACKUP_SUFFIX)
        ]
        return sorted(backups, key=lambda b: b.created_at, reverse=True)

    def delete_backup(self, filename: str) -> None:
        path = self._path(filename)
        if not path.is_file():
            raise NotFoundError(f"Backup {filename} not found")
        path.unlink()
        logger.info("Backup %s deleted", filename)

    def restore_backup(self, filename: str) -> None:
        """Feed a dump back into the database. Existing data may be overwritten."""
        path = self._path(filename)
        if not path.is_file():
            raise NotFoundError(f"Backup {filename} not found")
        command = self.restore_command()
        with path.open("rb") as fh:
            self._run(command, stdin=fh)
        logger.warning("Database restored from %s", filename)

    def validate_backup(self, filename: str) -> BackupValidation:
        """Check a dump for a dump-tool header and some SQL statements."""
        path = self._path(filename)
        if not path.is_file():
            raise NotFoundError(f"Backup {filename} not found")

        content = path.read_text(encoding="utf-8", errors="replace")
        header = content.splitlines()[:10]
        has_header = any(marker in line for line in header for marker in HEADER_MARKERS)
        has_sql = any(marker in content for marker in CONTENT_MARKERS)
        return BackupValidation(
            filename=filename,
            is_valid=has_header and has_sql,
            has_dump_header=has_header,
            has_sql_content=has_sql,
            size_bytes=path.stat().st_size,
        )

    @staticmethod
    def _info(path: Path) -> BackupInfo:
        stat = path.stat()
        return BackupInfo(
            filename=path.name,
            size_kb=round(stat.st_size / 1024),
            created_at=datetime.fromtimestamp(stat.st_mtime),
        )
