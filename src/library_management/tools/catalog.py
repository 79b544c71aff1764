"""
Catalogue maintenance tools.

add_item, update_item, update_item_copies, toggle_item_visibility,
update_item_status and delete_item. Copy-count changes always keep
``0 <= available_copies <= total_copies``.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..database.errors import LibraryError
from ..database.item_repository import ItemCreateSchema, ItemRepository, ItemUpdateSchema
from ..database.session import get_session
from ..models.item import ConditionStatus
from ..observability import trace_tool
from .responses import (
    library_error_response,
    parse_arguments,
    success_response,
    unexpected_error_response,
)

logger = logging.getLogger(__name__)


class ItemIdInput(BaseModel):
    item_id: int = Field(..., description="Catalogue item", ge=1)


class UpdateItemInput(ItemUpdateSchema):
    item_id: int = Field(..., description="Catalogue item", ge=1)


class UpdateItemCopiesInput(BaseModel):
    item_id: int = Field(..., description="Catalogue item", ge=1)
    total_copies: int = Field(..., description="New number of owned copies", ge=0)


class UpdateItemStatusInput(BaseModel):
    item_id: int = Field(..., description="Catalogue item", ge=1)
    status: ConditionStatus = Field(
        ...,
        description="available, lost, damaged, under_repair or withdrawn",
        examples=["damaged"],
    )


@trace_tool("add_item")
async def add_item_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(ItemCreateSchema, arguments, "add item")
    if error:
        return error

    try:
        with get_session() as session:
            item = ItemRepository(session).create(params)
    except LibraryError as e:
        return library_error_response("Add item", e)
    except Exception as e:
        return unexpected_error_response("add_item", e)

    return success_response(
        f"Item {item.id} '{item.title}' added with {item.total_copies} copies",
        {"item": item.model_dump(mode="json")},
    )


@trace_tool("update_item")
async def update_item_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(UpdateItemInput, arguments, "update item")
    if error:
        return error

    try:
        with get_session() as session:
            item = ItemRepository(session).update(
                params.item_id, ItemUpdateSchema(**params.model_dump(exclude={"item_id"}))
            )
    except LibraryError as e:
        return library_error_response("Update item", e)
    except Exception as e:
        return unexpected_error_response("update_item", e)

    return success_response(f"Item {item.id} updated", {"item": item.model_dump(mode="json")})


@trace_tool("update_item_copies")
async def update_item_copies_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Change owned copies; available = max(0, new_total - borrowed)."""
    params, error = parse_arguments(UpdateItemCopiesInput, arguments, "update copies")
    if error:
        return error

    try:
        with get_session() as session:
            item = ItemRepository(session).update_copies(params.item_id, params.total_copies)
    except LibraryError as e:
        return library_error_response("Update copies", e)
    except Exception as e:
        return unexpected_error_response("update_item_copies", e)

    return success_response(
        f"Item {item.id} now has {item.total_copies} copies "
        f"({item.available_copies} available)",
        {"item": item.model_dump(mode="json")},
    )


@trace_tool("toggle_item_visibility")
async def toggle_item_visibility_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(ItemIdInput, arguments, "toggle visibility")
    if error:
        return error

    try:
        with get_session() as session:
            item = ItemRepository(session).toggle_visibility(params.item_id)
    except LibraryError as e:
        return library_error_response("Toggle visibility", e)
    except Exception as e:
        return unexpected_error_response("toggle_item_visibility", e)

    state = "visible" if item.is_visible else "hidden"
    return success_response(f"Item {item.id} is now {state}", {"item": item.model_dump(mode="json")})


@trace_tool("update_item_status")
async def update_item_status_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(UpdateItemStatusInput, arguments, "update status")
    if error:
        return error

    try:
        with get_session() as session:
            item = ItemRepository(session).update_status(params.item_id, params.status)
    except LibraryError as e:
        return library_error_response("Update status", e)
    except Exception as e:
        return unexpected_error_response("update_item_status", e)

    return success_response(
        f"Item {item.id} marked {params.status.value}", {"item": item.model_dump(mode="json")}
    )


@trace_tool("delete_item")
async def delete_item_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Delete an item, or hide it when loan history references it."""
    params, error = parse_arguments(ItemIdInput, arguments, "delete item")
    if error:
        return error

    try:
        with get_session() as session:
            deleted = ItemRepository(session).delete(params.item_id)
    except LibraryError as e:
        return library_error_response("Delete item", e)
    except Exception as e:
        return unexpected_error_response("delete_item", e)

    message = (
        f"Item {params.item_id} deleted"
        if deleted
        else f"Item {params.item_id} has loan history and was hidden instead"
    )
    return success_response(message, {"item_id": params.item_id, "deleted": deleted})


catalog_tools: list[dict[str, Any]] = [
    {
        "name": "add_item",
        "description": "Add an item to the catalogue",
        "inputSchema": ItemCreateSchema.model_json_schema(),
        "handler": add_item_handler,
    },
    {
        "name": "update_item",
        "description": "Update catalogue fields of an item",
        "inputSchema": UpdateItemInput.model_json_schema(),
        "handler": update_item_handler,
    },
    {
        "name": "update_item_copies",
        "description": "Change the number of owned copies of an item",
        "inputSchema": UpdateItemCopiesInput.model_json_schema(),
        "handler": update_item_copies_handler,
    },
    {
        "name": "toggle_item_visibility",
        "description": "Hide or show an item in the catalogue",
        "inputSchema": ItemIdInput.model_json_schema(),
        "handler": toggle_item_visibility_handler,
    },
    {
        "name": "update_item_status",
        "description": "Record a condition change (lost, damaged, withdrawn...)",
        "inputSchema": UpdateItemStatusInput.model_json_schema(),
        "handler": update_item_status_handler,
    },
    {
        "name": "delete_item",
        "description": "Delete an item (hidden instead when it has loan history)",
        "inputSchema": ItemIdInput.model_json_schema(),
        "handler": delete_item_handler,
    },
]
