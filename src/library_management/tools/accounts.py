"""
Account tools: patron registration, updates and deletion, and staff accounts.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..database.errors import LibraryError
from ..database.patron_repository import PatronCreateSchema, PatronRepository, PatronUpdateSchema
from ..database.session import get_session
from ..database.staff_repository import StaffCreateSchema, StaffRepository
from ..models.patron import StaffRole
from ..observability import trace_tool
from .responses import (
    library_error_response,
    parse_arguments,
    success_response,
    unexpected_error_response,
)

logger = logging.getLogger(__name__)


class PatronIdInput(BaseModel):
    patron_id: int = Field(..., description="Patron account", ge=1)


class UpdatePatronInput(PatronUpdateSchema):
    patron_id: int = Field(..., description="Patron account", ge=1)


class CreateStaffInput(StaffCreateSchema):
    role: StaffRole = Field(..., description="admin or librarian")


@trace_tool("register_patron")
async def register_patron_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Register a patron; students and faculty get a profile."""
    params, error = parse_arguments(PatronCreateSchema, arguments, "registration")
    if error:
        return error

    try:
        with get_session() as session:
            patron = PatronRepository(session).register(params)
    except LibraryError as e:
        return library_error_response("Registration", e)
    except Exception as e:
        return unexpected_error_response("register_patron", e)

    return success_response(
        f"Patron {patron.id} ({patron.full_name}) registered as {patron.patron_type.value}",
        {"patron": patron.model_dump(mode="json")},
    )


@trace_tool("update_patron")
async def update_patron_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(UpdatePatronInput, arguments, "patron update")
    if error:
        return error

    try:
        with get_session() as session:
            patron = PatronRepository(session).update(
                params.patron_id, PatronUpdateSchema(**params.model_dump(exclude={"patron_id"}))
            )
    except LibraryError as e:
        return library_error_response("Patron update", e)
    except Exception as e:
        return unexpected_error_response("update_patron", e)

    return success_response(
        f"Patron {patron.id} updated", {"patron": patron.model_dump(mode="json")}
    )


@trace_tool("delete_patron")
async def delete_patron_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Delete a patron with no open loans (deactivated if loan history exists)."""
    params, error = parse_arguments(PatronIdInput, arguments, "patron deletion")
    if error:
        return error

    try:
        with get_session() as session:
            deleted = PatronRepository(session).delete(params.patron_id)
    except LibraryError as e:
        return library_error_response("Patron deletion", e)
    except Exception as e:
        return unexpected_error_response("delete_patron", e)

    message = (
        f"Patron {params.patron_id} deleted"
        if deleted
        else f"Patron {params.patron_id} has loan history and was deactivated"
    )
    return success_response(message, {"patron_id": params.patron_id, "deleted": deleted})


@trace_tool("create_staff_account")
async def create_staff_account_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(CreateStaffInput, arguments, "staff account")
    if error:
        return error

    try:
        with get_session() as session:
            account = StaffRepository(session).create(
                params.role, StaffCreateSchema(**params.model_dump(exclude={"role"}))
            )
    except LibraryError as e:
        return library_error_response("Staff account", e)
    except Exception as e:
        return unexpected_error_response("create_staff_account", e)

    return success_response(
        f"{account.role.value.capitalize()} account {account.id} created for {account.email}",
        {"account": account.model_dump(mode="json")},
    )


account_tools: list[dict[str, Any]] = [
    {
        "name": "register_patron",
        "description": "Register a new patron (student, faculty or general)",
        "inputSchema": PatronCreateSchema.model_json_schema(),
        "handler": register_patron_handler,
    },
    {
        "name": "update_patron",
        "description": "Update a patron's details and profile",
        "inputSchema": UpdatePatronInput.model_json_schema(),
        "handler": update_patron_handler,
    },
    {
        "name": "delete_patron",
        "description": "Delete a patron (deactivated instead when loan history exists)",
        "inputSchema": PatronIdInput.model_json_schema(),
        "handler": delete_patron_handler,
    },
    {
        "name": "create_staff_account",
        "description": "Create an administrator or librarian account",
        "inputSchema": CreateStaffInput.model_json_schema(),
        "handler": create_staff_account_handler,
    },
]
