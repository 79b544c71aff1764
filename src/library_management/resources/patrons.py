"""Patron Resources - accounts, loans, fines and holds

Resources:
- library://patrons/users - All accounts (admins, librarians, patrons), newest first
- library://patrons/search/{query} - Patrons matching a name, e-mail or id
- library://patrons/{patron_id} - Patron profile
- library://patrons/{patron_id}/loans - Open loans and borrowing history
- library://patrons/{patron_id}/fines - Recorded and accruing fines
- library://patrons/{patron_id}/reservations - The patron's reservations
"""

import logging
from datetime import datetime
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.circulation_repository import CirculationRepository
from ..database.errors import NotFoundError
from ..database.patron_repository import PatronRepository
from ..database.repository import PaginationParams
from ..database.session import session_scope
from ..database.staff_repository import StaffRepository
from ..observability import trace_resource
from .params import parse_positive_int

logger = logging.getLogger(__name__)

HISTORY_PAGE_SIZE = 50


@trace_resource("patrons.users")
async def list_users_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            users = StaffRepository(session).list_users()
            return {
                "total": len(users),
                "items": [user.model_dump(mode="json") for user in users],
            }
    except Exception as e:
        logger.exception("Error in patrons/users resource")
        raise ResourceError(f"Failed to retrieve users: {e!s}") from e


@trace_resource("patrons.search")
async def search_patrons_handler(query: str) -> dict[str, Any]:
    try:
        with session_scope() as session:
            patrons = PatronRepository(session).search(query)
            return {
                "query": query,
                "items": [patron.model_dump(mode="json") for patron in patrons],
            }
    except Exception as e:
        logger.exception("Error in patrons/search resource")
        raise ResourceError(f"Failed to search patrons: {e!s}") from e


@trace_resource("patrons.detail")
async def get_patron_handler(patron_id: str) -> dict[str, Any]:
    patron_number = parse_positive_int(patron_id, "patron_id")
    try:
        with session_scope() as session:
            patron = PatronRepository(session).get_by_id(patron_number)
            if patron is None:
                raise ResourceError(f"Patron {patron_number} not found")
            return patron.model_dump(mode="json")
    except ResourceError:
        raise
    except Exception as e:
        logger.exception("Error in patrons/{patron_id} resource")
        raise ResourceError(f"Failed to retrieve patron: {e!s}") from e


@trace_resource("patrons.loans")
async def patron_loans_handler(patron_id: str) -> dict[str, Any]:
    """Open loans plus the most recent page of history."""
    patron_number = parse_positive_int(patron_id, "patron_id")
    try:
        with session_scope() as session:
            repo = CirculationRepository(session)
            current = repo.get_current_loans(patron_number)
            history = repo.get_patron_history(
                patron_number, PaginationParams(page=1, page_size=HISTORY_PAGE_SIZE)
            )
            return {
                "patron_id": patron_number,
                "current_loans": [loan.model_dump(mode="json") for loan in current],
                "history": history.model_dump(mode="json"),
            }
    except NotFoundError as e:
        raise ResourceError(str(e)) from e
    except Exception as e:
        logger.exception("Error in patrons/{patron_id}/loans resource")
        raise ResourceError(f"Failed to retrieve patron loans: {e!s}") from e


@trace_resource("patrons.fines")
async def patron_fines_handler(patron_id: str) -> dict[str, Any]:
    patron_number = parse_positive_int(patron_id, "patron_id")
    try:
        with session_scope() as session:
            fines = CirculationRepository(session).get_patron_fines(patron_number, datetime.now())
            return fines.model_dump(mode="json")
    except NotFoundError as e:
        raise ResourceError(str(e)) from e
    except Exception as e:
        logger.exception("Error in patrons/{patron_id}/fines resource")
        raise ResourceError(f"Failed to retrieve patron fines: {e!s}") from e


@trace_resource("patrons.reservations")
async def patron_reservations_handler(patron_id: str) -> dict[str, Any]:
    patron_number = parse_positive_int(patron_id, "patron_id")
    try:
        with session_scope() as session:
            reservations = CirculationRepository(session).get_patron_reservations(patron_number)
            return {
                "patron_id": patron_number,
                "items": [reservation.model_dump(mode="json") for reservation in reservations],
            }
    except NotFoundError as e:
        raise ResourceError(str(e)) from e
    except Exception as e:
        logger.exception("Error in patrons/{patron_id}/reservations resource")
        raise ResourceError(f"Failed to retrieve patron reservations: {e!s}") from e


patron_resources: list[dict[str, Any]] = [
    {
        "uri": "library://patrons/users",
        "name": "User Accounts",
        "description": "Administrators, librarians and patrons, newest first",
        "mime_type": "application/json",
        "handler": list_users_handler,
    },
    {
        "uri": "library://patrons/search/{query}",
        "name": "Patron Search",
        "description": "Patrons whose name or e-mail matches, or whose id equals a number",
        "mime_type": "application/json",
        "handler": search_patrons_handler,
    },
    {
        "uri": "library://patrons/{patron_id}",
        "name": "Patron Profile",
        "description": "A patron account with its student or faculty profile",
        "mime_type": "application/json",
        "handler": get_patron_handler,
    },
    {
        "uri": "library://patrons/{patron_id}/loans",
        "name": "Patron Loans",
        "description": "A patron's open loans and borrowing history",
        "mime_type": "application/json",
        "handler": patron_loans_handler,
    },
    {
        "uri": "library://patrons/{patron_id}/fines",
        "name": "Patron Fines",
        "description": "Fines recorded on returned loans and accruing on overdue ones",
        "mime_type": "application/json",
        "handler": patron_fines_handler,
    },
    {
        "uri": "library://patrons/{patron_id}/reservations",
        "name": "Patron Reservations",
        "description": "A patron's reservations with queue positions",
        "mime_type": "application/json",
        "handler": patron_reservations_handler,
    },
]
