"""
Circulation tools for the Library Management MCP Server.

1. borrow_item: lend a copy to a patron
2. return_item: close a loan and charge any overdue fine
3. renew_loan: extend an open loan that is not overdue
4. reserve_item / cancel_reservation: queue for items with no copies left
5. collect_fine: record a fine payment

Each handler validates its arguments with a Pydantic schema, runs one
repository operation in its own session and converts library errors into
``{"success": False, "error": ...}`` results. Nothing is raised to the client.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..database.circulation_repository import CirculationRepository
from ..database.errors import LibraryError
from ..database.session import get_session
from ..observability import trace_tool
from .responses import (
    library_error_response,
    parse_arguments,
    success_response,
    unexpected_error_response,
)

logger = logging.getLogger(__name__)


# =============================================================================
# BORROW
# =============================================================================


class BorrowItemInput(BaseModel):
    """Input schema for the borrow_item tool."""

    patron_id: int = Field(..., description="Patron borrowing the item", ge=1, examples=[12])
    item_id: int = Field(..., description="Item to lend", ge=1, examples=[305])


@trace_tool("borrow_item")
async def borrow_item_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Lend one copy of an item.

    Fails when the patron is at the borrowing limit, when no copy is
    available, or when the patron already has the item.
    """
    params, error = parse_arguments(BorrowItemInput, arguments, "borrow")
    if error:
        return error

    try:
        with get_session() as session:
            loan = CirculationRepository(session).borrow_item(params.patron_id, params.item_id)
    except LibraryError as e:
        return library_error_response("Borrow", e)
    except Exception as e:
        return unexpected_error_response("borrow_item", e)

    message = (
        f"Item {loan.item_id} lent to patron {loan.patron_id}. "
        f"Due date: {loan.due_date.strftime('%B %d, %Y')}"
    )
    return success_response(message, {"transaction": loan.model_dump(mode="json")})


# =============================================================================
# RETURN
# =============================================================================


class ReturnItemInput(BaseModel):
    """Input schema for the return_item tool."""

    transaction_id: int = Field(..., description="Loan to close", ge=1, examples=[4021])


@trace_tool("return_item")
async def return_item_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Close a loan; the fine uses the fine rate configured at return time."""
    params, error = parse_arguments(ReturnItemInput, arguments, "return")
    if error:
        return error

    try:
        with get_session() as session:
            result = CirculationRepository(session).return_item(params.transaction_id)
    except LibraryError as e:
        return library_error_response("Return", e)
    except Exception as e:
        return unexpected_error_response("return_item", e)

    message = f"Transaction {params.transaction_id} returned."
    if result.fine > 0:
        message += (
            f" {result.days_overdue} days overdue, fine {result.fine:.2f} "
            f"({result.fine_per_day:.2f}/day)."
        )
    else:
        message += " Returned on time, no fine."
    return success_response(message, result.model_dump(mode="json"))


# =============================================================================
# RENEW
# =============================================================================


class RenewLoanInput(BaseModel):
    """Input schema for the renew_loan tool."""

    transaction_id: int = Field(..., description="Open loan to extend", ge=1)


@trace_tool("renew_loan")
async def renew_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(RenewLoanInput, arguments, "renew")
    if error:
        return error

    try:
        with get_session() as session:
            loan = CirculationRepository(session).renew_loan(params.transaction_id)
    except LibraryError as e:
        return library_error_response("Renewal", e)
    except Exception as e:
        return unexpected_error_response("renew_loan", e)

    return success_response(
        f"Transaction {loan.id} renewed. New due date: {loan.due_date.strftime('%B %d, %Y')}",
        {"transaction": loan.model_dump(mode="json")},
    )


# =============================================================================
# RESERVATIONS
# =============================================================================


class ReservationInput(BaseModel):
    """Input schema for reserve_item and cancel_reservation."""

    patron_id: int = Field(..., description="Patron holding the reservation", ge=1)
    item_id: int = Field(..., description="Reserved item", ge=1)


@trace_tool("reserve_item")
async def reserve_item_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Queue a patron for an item that has no copies available."""
    params, error = parse_arguments(ReservationInput, arguments, "reservation")
    if error:
        return error

    try:
        with get_session() as session:
            reservation = CirculationRepository(session).reserve_item(
                params.patron_id, params.item_id
            )
    except LibraryError as e:
        return library_error_response("Reservation", e)
    except Exception as e:
        return unexpected_error_response("reserve_item", e)

    return success_response(
        f"Item {reservation.item_id} reserved for patron {reservation.patron_id}. "
        f"Queue position: {reservation.queue_position}",
        {"reservation": reservation.model_dump(mode="json")},
    )


@trace_tool("cancel_reservation")
async def cancel_reservation_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params, error = parse_arguments(ReservationInput, arguments, "cancellation")
    if error:
        return error

    try:
        with get_session() as session:
            CirculationRepository(session).cancel_reservation(params.patron_id, params.item_id)
    except LibraryError as e:
        return library_error_response("Cancellation", e)
    except Exception as e:
        return unexpected_error_response("cancel_reservation", e)

    return success_response(
        f"Reservation of item {params.item_id} by patron {params.patron_id} cancelled",
        {"patron_id": params.patron_id, "item_id": params.item_id},
    )


# =============================================================================
# FINES
# =============================================================================


class CollectFineInput(BaseModel):
    """Input schema for the collect_fine tool."""

    transaction_id: int = Field(..., description="Loan the payment applies to", ge=1)
    amount: float = Field(..., description="Amount collected", examples=[3.5])


@trace_tool("collect_fine")
async def collect_fine_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Record a fine payment. Negative amounts are rejected by the repository."""
    params, error = parse_arguments(CollectFineInput, arguments, "fine collection")
    if error:
        return error

    try:
        with get_session() as session:
            loan = CirculationRepository(session).collect_fine(
                params.transaction_id, params.amount
            )
    except LibraryError as e:
        return library_error_response("Fine collection", e)
    except Exception as e:
        return unexpected_error_response("collect_fine", e)

    return success_response(
        f"Fine of {params.amount:.2f} recorded on transaction {loan.id}",
        {"transaction": loan.model_dump(mode="json")},
    )


# =============================================================================
# TOOL REGISTRATION
# =============================================================================

circulation_tools: list[dict[str, Any]] = [
    {
        "name": "borrow_item",
        "description": "Lend one copy of an item to a patron",
        "inputSchema": BorrowItemInput.model_json_schema(),
        "handler": borrow_item_handler,
    },
    {
        "name": "return_item",
        "description": "Return a borrowed item and charge any overdue fine",
        "inputSchema": ReturnItemInput.model_json_schema(),
        "handler": return_item_handler,
    },
    {
        "name": "renew_loan",
        "description": "Extend an open loan by one loan period (not allowed once overdue)",
        "inputSchema": RenewLoanInput.model_json_schema(),
        "handler": renew_loan_handler,
    },
    {
        "name": "reserve_item",
        "description": "Reserve an item that currently has no available copies",
        "inputSchema": ReservationInput.model_json_schema(),
        "handler": reserve_item_handler,
    },
    {
        "name": "cancel_reservation",
        "description": "Cancel a patron's reservation",
        "inputSchema": ReservationInput.model_json_schema(),
        "handler": cancel_reservation_handler,
    },
    {
        "name": "collect_fine",
        "description": "Record a fine payment against a loan",
        "inputSchema": CollectFineInput.model_json_schema(),
        "handler": collect_fine_handler,
    },
]
