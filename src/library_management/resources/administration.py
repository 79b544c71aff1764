"""Administration Resources - policy, backups and server health

Resources:
- library://settings - Current circulation policy (created with defaults on first read)
- library://backups/list - Backup files, newest first, with current table sizes
- library://system/status - Server identity, database connectivity and row counts
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..backup import BackupManager
from ..config import get_config
from ..database.report_repository import ReportRepository
from ..database.session import get_db_manager, session_scope
from ..database.settings_repository import SettingsRepository
from ..observability import trace_resource

logger = logging.getLogger(__name__)


@trace_resource("settings")
async def settings_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            return SettingsRepository(session).get_settings().model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in settings resource")
        raise ResourceError(f"Failed to retrieve library settings: {e!s}") from e


@trace_resource("backups.list")
async def list_backups_handler() -> dict[str, Any]:
    try:
        manager = BackupManager()
        backups = manager.list_backups()
        with session_scope() as session:
            counts = ReportRepository(session).table_counts()
        return {
            "backend": manager.backend,
            "backup_dir": str(manager.backup_dir),
            "backups": [backup.model_dump(mode="json") for backup in backups],
            "table_counts": counts,
        }
    except Exception as e:
        logger.exception("Error in backups/list resource")
        raise ResourceError(f"Failed to list backups: {e!s}") from e


@trace_resource("system.status")
async def system_status_handler() -> dict[str, Any]:
    config = get_config()
    connected = get_db_manager().verify_connection()
    status: dict[str, Any] = {
        **config.server_info,
        "database_backend": BackupManager().backend,
        "database_connected": connected,
    }
    if not connected:
        return status

    try:
        with session_scope() as session:
            status["table_counts"] = ReportRepository(session).table_counts()
    except Exception as e:
        logger.exception("Error in system/status resource")
        raise ResourceError(f"Failed to read table counts: {e!s}") from e
    return status


administration_resources: list[dict[str, Any]] = [
    {
        "uri": "library://settings",
        "name": "Library Settings",
        "description": "Borrowing limit, loan period and fine per day",
        "mime_type": "application/json",
        "handler": settings_handler,
    },
    {
        "uri": "library://backups/list",
        "name": "Database Backups",
        "description": "Backup files with sizes and timestamps, plus current table sizes",
        "mime_type": "application/json",
        "handler": list_backups_handler,
    },
    {
        "uri": "library://system/status",
        "name": "System Status",
        "description": "Server version, database connectivity and row counts",
        "mime_type": "application/json",
        "handler": system_status_handler,
    },
]
