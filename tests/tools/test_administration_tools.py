"""Tests for the settings and backup tools."""

from unittest.mock import Mock, patch

from library_management.tools.administration import (
    create_backup_handler,
    delete_backup_handler,
    restore_backup_handler,
    update_library_settings_handler,
)

DUMP = b"PRAGMA foreign_keys=OFF;\nBEGIN TRANSACTION;\nCREATE TABLE items (id INTEGER);\nCOMMIT;\n"


async def test_update_settings(db_manager):
    result = await update_library_settings_handler(
        {"borrowing_limit": "3", "fine_per_day": 0.25}
    )

    assert result["success"] is True
    settings = result["data"]["settings"]
    assert settings["borrowing_limit"] == 3
    assert settings["loan_period_days"] == 14
    assert settings["fine_per_day"] == 0.25


async def test_update_settings_non_numeric(db_manager):
    result = await update_library_settings_handler({"loan_period_days": "fortnight"})
    assert result["success"] is False
    assert result["error_type"] == "ValidationError"


async def test_update_settings_rejects_negative_fine(db_manager):
    result = await update_library_settings_handler({"fine_per_day": -1})

    assert result["success"] is False
    assert result["error_type"] == "ValidationError"
    assert "fine_per_day" in result["error"]


async def test_update_settings_rejects_zero_limit(db_manager):
    result = await update_library_settings_handler({"borrowing_limit": 0, "fine_per_day": 2})

    assert result["success"] is False
    assert result["error_type"] == "ValidationError"


async def test_update_settings_rejects_overflowing_value(db_manager):
    result = await update_library_settings_handler({"loan_period_days": "1e400"})
    assert result["error_type"] == "ValidationError"


async def test_update_settings_requires_a_value(db_manager):
    result = await update_library_settings_handler({})
    assert result["success"] is False


async def test_backup_round_trip(db_manager, tmp_path):
    def fake_run(command, stdout=None, **kwargs):
        if stdout is not None and command[-1] == ".dump":
            stdout.write(DUMP)
        return Mock(returncode=0, stderr=b"")

    with patch("library_management.backup.subprocess.run", side_effect=fake_run) as run:
        created = await create_backup_handler({})
        filename = created["data"]["backup"]["filename"]
        restored = await restore_backup_handler({"filename": filename})

    assert created["success"] is True
    assert (tmp_path / "backups" / filename).exists()
    assert restored["success"] is True
    assert run.call_args_list[-1].args[0][0] == "sqlite3"

    deleted = await delete_backup_handler({"filename": filename})
    assert deleted["success"] is True
    assert not (tmp_path / "backups" / filename).exists()


async def test_restore_rejects_non_dump(db_manager, tmp_path):
    backup_dir = tmp_path / "backups"
    backup_dir.mkdir()
    (backup_dir / "notes.sql").write_text("hello\n")

    result = await restore_backup_handler({"filename": "notes.sql"})

    assert result["success"] is False
    assert result["error_type"] == "ValidationError"


async def test_path_traversal_rejected(db_manager):
    result = await delete_backup_handler({"filename": "../library.db"})
    assert result["success"] is False
    assert result["error_type"] == "ValidationError"


async def test_failed_dump(db_manager):
    with patch(
        "library_management.backup.subprocess.run",
        return_value=Mock(returncode=1, stderr=b"database is locked"),
    ):
        result = await create_backup_handler({})

    assert result["success"] is False
    assert "database is locked" in result["error"]
