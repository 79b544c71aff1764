"""Tests for report and administration resources."""

from unittest.mock import patch

import pytest
from fastmcp.exceptions import ResourceError

from library_management.resources.administration import (
    list_backups_handler,
    settings_handler,
    system_status_handler,
)
from library_management.resources.reports import (
    catalog_statistics_handler,
    dashboard_handler,
    fine_collection_handler,
    monthly_circulation_handler,
    overdue_report_handler,
    patron_activity_handler,
    popular_items_handler,
    recent_activity_handler,
    subject_distribution_handler,
)


@pytest.fixture
def circulation(make_item, make_patron, make_loan, make_reservation):
    patron = make_patron()
    popular = make_item(title="Popular", subject="Fiction", total_copies=3)
    make_loan(popular, patron, returned=True, fine_paid=2.0)
    make_loan(popular, patron, due_in_days=-1)
    make_reservation(make_item(title="Waitlisted", subject="Poetry", available_copies=0), patron)
    return patron


async def test_dashboard(circulation):
    result = await dashboard_handler()
    assert result["total_transactions"] == 2
    assert result["overdue_transactions"] == 1
    assert result["total_fines"] == 2.0


async def test_popular_items_limit(circulation):
    result = await popular_items_handler("1")
    assert result["limit"] == 1
    assert [item["title"] for item in result["items"]] == ["Popular"]


@pytest.mark.parametrize("limit", ["0", "-3", "1000", "many"])
async def test_popular_items_rejects_bad_limit(db_manager, limit):
    with pytest.raises(ResourceError):
        await popular_items_handler(limit)


async def test_remaining_reports(circulation):
    activity = await patron_activity_handler()
    overdue = await overdue_report_handler()
    monthly = await monthly_circulation_handler("6")
    subjects = await subject_distribution_handler()
    fines = await fine_collection_handler()
    recent = await recent_activity_handler()
    catalog = await catalog_statistics_handler()

    assert activity["items"][0]["total_borrowings"] == 2
    assert len(overdue["loans"]) == 1
    assert sum(row["borrowed"] for row in monthly["items"]) == 2
    assert {row["subject"] for row in subjects["items"]} == {"Fiction", "Poetry"}
    assert fines["collected"] == 2.0
    assert fines["pending"] == 1.0
    assert len(recent["items"]) == 3
    assert catalog["total_items"] == 2


async def test_settings_defaults(db_manager):
    result = await settings_handler()
    assert result["borrowing_limit"] == 5
    assert result["loan_period_days"] == 14
    assert result["fine_per_day"] == 1.0


async def test_backups_list(db_manager, tmp_path, make_item):
    make_item()
    backup_dir = tmp_path / "backups"
    backup_dir.mkdir()
    (backup_dir / "library_backup_2024-01-01T00-00-00.sql").write_text("-- dump\n")

    result = await list_backups_handler()

    assert result["backend"] == "sqlite"
    assert [b["filename"] for b in result["backups"]] == ["library_backup_2024-01-01T00-00-00.sql"]
    assert result["table_counts"]["items"] == 1


async def test_system_status(db_manager):
    result = await system_status_handler()
    assert result["database_connected"] is True
    assert result["name"] == "library-management"
    assert result["table_counts"]["total_records"] == 0


async def test_system_status_when_database_down(db_manager):
    with patch.object(db_manager, "verify_connection", return_value=False):
        result = await system_status_handler()
    assert result["database_connected"] is False
    assert "table_counts" not in result
