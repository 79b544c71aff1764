"""Tests for server assembly."""

import pytest

from library_management.server import create_server, prepare_database
from library_management.tools import all_tools

EXPECTED_TOOLS = {
    "borrow_item",
    "return_item",
    "renew_loan",
    "reserve_item",
    "cancel_reservation",
    "collect_fine",
    "update_library_settings",
    "create_backup",
    "restore_backup",
}


async def test_registers_every_tool(test_config):
    mcp = create_server(test_config)

    tools = await mcp.get_tools()

    assert EXPECTED_TOOLS <= set(tools)
    assert len(tools) == len(all_tools)


async def test_registers_static_and_templated_resources(test_config):
    mcp = create_server(test_config)

    resources = {str(uri) for uri in await mcp.get_resources()}
    templates = set(await mcp.get_resource_templates())

    assert "library://settings" in resources
    assert "library://reports/dashboard" in resources
    assert "library://patrons/{patron_id}/fines" in templates
    assert "library://reports/popular/{limit}" in templates


def test_prepare_database_creates_schema(db_manager):
    prepare_database()
    assert db_manager.verify_connection()


def test_prepare_database_fails_when_unreachable(db_manager, monkeypatch):
    monkeypatch.setattr(db_manager, "verify_connection", lambda: False)
    with pytest.raises(RuntimeError, match="could not be established"):
        prepare_database()
