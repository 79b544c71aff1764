"""Circulation Resources - open and overdue loans

Resources:
- library://circulation/active - Every open loan with its accruing fine
- library://circulation/overdue - Open loans past their due date, most overdue first
"""

import logging
from datetime import datetime
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.circulation_repository import CirculationRepository
from ..database.session import session_scope
from ..observability import trace_resource

logger = logging.getLogger(__name__)


@trace_resource("circulation.active")
async def active_loans_handler() -> dict[str, Any]:
    try:
        now = datetime.now()
        with session_scope() as session:
            loans = CirculationRepository(session).get_active_transactions(now)
            return {
                "as_of": now.isoformat(),
                "total": len(loans),
                "overdue": sum(1 for loan in loans if loan.is_overdue),
                "loans": [loan.model_dump(mode="json") for loan in loans],
            }
    except Exception as e:
        logger.exception("Error in circulation/active resource")
        raise ResourceError(f"Failed to retrieve active loans: {e!s}") from e


@trace_resource("circulation.overdue")
async def overdue_loans_handler() -> dict[str, Any]:
    """Overdue loans with the fine they would incur if returned now."""
    try:
        now = datetime.now()
        with session_scope() as session:
            loans = CirculationRepository(session).get_overdue_transactions(now)
            return {
                "as_of": now.isoformat(),
                "total": len(loans),
                "total_pending_fines": round(sum(loan.calculated_fine for loan in loans), 2),
                "loans": [loan.model_dump(mode="json") for loan in loans],
            }
    except Exception as e:
        logger.exception("Error in circulation/overdue resource")
        raise ResourceError(f"Failed to retrieve overdue loans: {e!s}") from e


circulation_resources: list[dict[str, Any]] = [
    {
        "uri": "library://circulation/active",
        "name": "Active Loans",
        "description": "All open loans with due dates, overdue flags and accruing fines",
        "mime_type": "application/json",
        "handler": active_loans_handler,
    },
    {
        "uri": "library://circulation/overdue",
        "name": "Overdue Loans",
        "description": "Open loans past their due date, ordered by due date",
        "mime_type": "application/json",
        "handler": overdue_loans_handler,
    },
]
