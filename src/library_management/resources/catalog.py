"""Catalogue Resources - browsing visible items

Resources:
- library://items/list - First page of the visible catalogue, ordered by title
- library://items/search/{query} - Visible items matching a search term
- library://items/{item_id} - One item with its derived status
- library://items/{item_id}/reservations - Reservation queue for an item
- library://items/subjects - Distinct subjects, for filter lists
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.circulation_repository import CirculationRepository
from ..database.errors import NotFoundError
from ..database.item_repository import ItemRepository, ItemSearchParams
from ..database.repository import PaginationParams
from ..database.session import session_scope
from ..observability import trace_resource
from .params import parse_positive_int

logger = logging.getLogger(__name__)

PAGE_SIZE = 20


@trace_resource("items.list")
async def list_items_handler() -> dict[str, Any]:
    """Returns the first page of the visible catalogue."""
    try:
        with session_scope() as session:
            result = ItemRepository(session).search(
                ItemSearchParams(), PaginationParams(page=1, page_size=PAGE_SIZE)
            )
            return result.model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in items/list resource")
        raise ResourceError(f"Failed to retrieve item list: {e!s}") from e


@trace_resource("items.search")
async def search_items_handler(query: str) -> dict[str, Any]:
    """Searches title, author, ISBN, subject and keywords."""
    try:
        logger.debug("MCP Resource Request - items/search/%s", query)
        with session_scope() as session:
            result = ItemRepository(session).search(
                ItemSearchParams(query=query), PaginationParams(page=1, page_size=PAGE_SIZE)
            )
            payload = result.model_dump(mode="json")
            payload["query"] = query
            return payload
    except Exception as e:
        logger.exception("Error in items/search resource")
        raise ResourceError(f"Failed to search items: {e!s}") from e


@trace_resource("items.detail")
async def get_item_handler(item_id: str) -> dict[str, Any]:
    """Returns one item with status Withdrawn, Issued, Reserved or Available."""
    item_number = parse_positive_int(item_id, "item_id")
    try:
        with session_scope() as session:
            return ItemRepository(session).get_with_status(item_number).model_dump(mode="json")
    except NotFoundError as e:
        raise ResourceError(str(e)) from e
    except Exception as e:
        logger.exception("Error in items/{item_id} resource")
        raise ResourceError(f"Failed to retrieve item details: {e!s}") from e


@trace_resource("items.reservations")
async def item_reservations_handler(item_id: str) -> dict[str, Any]:
    item_number = parse_positive_int(item_id, "item_id")
    try:
        with session_scope() as session:
            queue = CirculationRepository(session).get_reservation_queue(item_number)
            return {
                "item_id": item_number,
                "items": [reservation.model_dump(mode="json") for reservation in queue],
            }
    except NotFoundError as e:
        raise ResourceError(str(e)) from e
    except Exception as e:
        logger.exception("Error in items/{item_id}/reservations resource")
        raise ResourceError(f"Failed to retrieve reservation queue: {e!s}") from e


@trace_resource("items.subjects")
async def list_subjects_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            repo = ItemRepository(session)
            return {"subjects": repo.unique_subjects(), "item_types": repo.unique_item_types()}
    except Exception as e:
        logger.exception("Error in items/subjects resource")
        raise ResourceError(f"Failed to retrieve subjects: {e!s}") from e


catalog_resources: list[dict[str, Any]] = [
    {
        "uri": "library://items/list",
        "name": "Item Catalogue",
        "description": "First page of visible catalogue items, ordered by title",
        "mime_type": "application/json",
        "handler": list_items_handler,
    },
    {
        "uri": "library://items/subjects",
        "name": "Catalogue Subjects",
        "description": "Distinct subjects and item types present in the catalogue",
        "mime_type": "application/json",
        "handler": list_subjects_handler,
    },
    {
        "uri": "library://items/search/{query}",
        "name": "Item Search",
        "description": "Visible items whose title, author, ISBN, subject or keywords match",
        "mime_type": "application/json",
        "handler": search_items_handler,
    },
    {
        "uri": "library://items/{item_id}",
        "name": "Item Details",
        "description": "One catalogue item with copies, active loans and derived status",
        "mime_type": "application/json",
        "handler": get_item_handler,
    },
    {
        "uri": "library://items/{item_id}/reservations",
        "name": "Item Reservation Queue",
        "description": "Reservations for an item in queue order",
        "mime_type": "application/json",
        "handler": item_reservations_handler,
    },
]
