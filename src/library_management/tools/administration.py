"""
Administration tools: library settings and database backups.

Backups run the external dump tools in a worker thread so a long dump does
not stall the server's event loop.
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, Field

from ..backup import BackupManager
from ..database.errors import LibraryError
from ..database.session import get_session
from ..database.settings_repository import SettingsRepository
from ..observability import trace_tool
from .responses import (
    error_response,
    library_error_response,
    parse_arguments,
    success_response,
    unexpected_error_response,
)

logger = logging.getLogger(__name__)


class UpdateSettingsInput(BaseModel):
    """Values are coerced to numbers; omitted values are left unchanged."""

    borrowing_limit: int | float | str | None = Field(
        None, description="Maximum open loans per patron", examples=[5]
    )
    loan_period_days: int | float | str | None = Field(
        None, description="Loan length in days", examples=[14]
    )
    fine_per_day: int | float | str | None = Field(
        None, description="Fine per whole overdue day", examples=[1.0]
    )
    admin_id: int | None = Field(None, description="Administrator making the change", ge=1)


class BackupFileInput(BaseModel):
    filename: str = Field(
        ...,
        description="Backup file name as listed by library://backups/list",
        examples=["library_backup_2024-03-01T09-30-00.sql"],
    )


class EmptyInput(BaseModel):
    pass


@trace_tool("update_library_settings")
async def update_library_settings_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Upsert the circulation policy."""
    params, error = parse_arguments(UpdateSettingsInput, arguments, "settings")
    if error:
        return error

    values = params.model_dump(exclude={"admin_id"}, exclude_none=True)
    if not values:
        return error_response("No settings values supplied", "ValidationError")

    try:
        with get_session() as session:
            settings = SettingsRepository(session).update_settings(values, params.admin_id)
    except LibraryError as e:
        return library_error_response("Settings update", e)
    except Exception as e:
        return unexpected_error_response("update_library_settings", e)

    return success_response(
        f"Library settings updated: limit {settings.borrowing_limit}, "
        f"loan period {settings.loan_period_days} days, fine {settings.fine_per_day:.2f}/day",
        {"settings": settings.model_dump(mode="json")},
    )


@trace_tool("create_backup")
async def create_backup_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    _, error = parse_arguments(EmptyInput, arguments, "backup")
    if error:
        return error

    try:
        backup = await asyncio.to_thread(BackupManager().create_backup)
    except LibraryError as e:
        return library_error_response("Backup", e)
    except Exception as e:
        return unexpected_error_response("create_backup", e)

    return success_response(
        f"Backup {backup.filename} created ({backup.size_kb} KB)",
        {"backup": backup.model_dump(mode="json")},
    )


@trace_tool("restore_backup")
async def restore_backup_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Validate a dump, then feed it back into the database."""
    params, error = parse_arguments(BackupFileInput, arguments, "restore")
    if error:
        return error

    manager = BackupManager()
    try:
        validation = manager.validate_backup(params.filename)
        if not validation.is_valid:
            return error_response(
                f"{params.filename} does not look like a database dump", "ValidationError"
            )
        await asyncio.to_thread(manager.restore_backup, params.filename)
    except LibraryError as e:
        return library_error_response("Restore", e)
    except Exception as e:
        return unexpected_error_response("restore_backup", e)

    return success_response(
        f"Database restored from {params.filename}", {"filename": params.filename}
    )


@trace_tool("delete_backup")
async def delete_backup_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(BackupFileInput, arguments, "backup deletion")
    if error:
        return error

    try:
        BackupManager().delete_backup(params.filename)
    except LibraryError as e:
        return library_error_response("Backup deletion", e)
    except Exception as e:
        return unexpected_error_response("delete_backup", e)

    return success_response(f"Backup {params.filename} deleted", {"filename": params.filename})


administration_tools: list[dict[str, Any]] = [
    {
        "name": "update_library_settings",
        "description": "Change the borrowing limit, loan period or fine per day",
        "inputSchema": UpdateSettingsInput.model_json_schema(),
        "handler": update_library_settings_handler,
    },
    {
        "name": "create_backup",
        "description": "Dump the database to a timestamped SQL file",
        "inputSchema": EmptyInput.model_json_schema(),
        "handler": create_backup_handler,
    },
    {
        "name": "restore_backup",
        "description": "Restore the database from a backup file",
        "inputSchema": BackupFileInput.model_json_schema(),
        "handler": restore_backup_handler,
    },
    {
        "name": "delete_backup",
        "description": "Delete a backup file",
        "inputSchema": BackupFileInput.model_json_schema(),
        "handler": delete_backup_handler,
    },
]
