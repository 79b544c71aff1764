"""Report Resources - read-only analytics

Resources:
- library://reports/dashboard - Headline counts
- library://reports/popular/{limit} - Items ranked by loans + 0.5 x reservations
- library://reports/patron-activity - Loans and holds per patron
- library://reports/overdue - Overdue loans with contact details
- library://reports/monthly/{months} - Borrowed/returned per calendar month
- library://reports/subjects - Copies and circulation rate per subject
- library://reports/fines - Collected and pending fines
- library://reports/recent-activity - Latest borrows, returns and reservations
- library://reports/catalog - Catalogue composition
"""

import logging
from datetime import datetime
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.report_repository import ReportRepository
from ..database.session import session_scope
from ..observability import trace_resource
from .params import parse_positive_int

logger = logging.getLogger(__name__)

MAX_POPULAR_LIMIT = 100
MAX_MONTHS = 36


@trace_resource("reports.dashboard")
async def dashboard_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            return ReportRepository(session).dashboard_stats(datetime.now()).model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in reports/dashboard resource")
        raise ResourceError(f"Failed to build dashboard: {e!s}") from e


@trace_resource("reports.popular")
async def popular_items_handler(limit: str) -> dict[str, Any]:
    """Ties keep catalogue order."""
    count = parse_positive_int(limit, "limit", maximum=MAX_POPULAR_LIMIT)
    try:
        with session_scope() as session:
            items = ReportRepository(session).popular_items(count)
            return {"limit": count, "items": [item.model_dump(mode="json") for item in items]}
    except Exception as e:
        logger.exception("Error in reports/popular resource")
        raise ResourceError(f"Failed to rank popular items: {e!s}") from e


@trace_resource("reports.patron_activity")
async def patron_activity_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            rows = ReportRepository(session).patron_activity()
            return {"items": [row.model_dump(mode="json") for row in rows]}
    except Exception as e:
        logger.exception("Error in reports/patron-activity resource")
        raise ResourceError(f"Failed to build patron activity report: {e!s}") from e


@trace_resource("reports.overdue")
async def overdue_report_handler() -> dict[str, Any]:
    try:
        now = datetime.now()
        with session_scope() as session:
            loans = ReportRepository(session).overdue_report(now)
            return {
                "as_of": now.isoformat(),
                "loans": [loan.model_dump(mode="json") for loan in loans],
            }
    except Exception as e:
        logger.exception("Error in reports/overdue resource")
        raise ResourceError(f"Failed to build overdue report: {e!s}") from e


@trace_resource("reports.monthly")
async def monthly_circulation_handler(months: str) -> dict[str, Any]:
    """One row per month with loans, oldest first."""
    window = parse_positive_int(months, "months", maximum=MAX_MONTHS)
    try:
        with session_scope() as session:
            rows = ReportRepository(session).monthly_circulation(window, datetime.now())
            return {"months": window, "items": [row.model_dump(mode="json") for row in rows]}
    except Exception as e:
        logger.exception("Error in reports/monthly resource")
        raise ResourceError(f"Failed to build monthly circulation: {e!s}") from e


@trace_resource("reports.subjects")
async def subject_distribution_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            rows = ReportRepository(session).subject_distribution()
            return {"items": [row.model_dump(mode="json") for row in rows]}
    except Exception as e:
        logger.exception("Error in reports/subjects resource")
        raise ResourceError(f"Failed to build subject distribution: {e!s}") from e


@trace_resource("reports.fines")
async def fine_collection_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            return ReportRepository(session).fine_collection(datetime.now()).model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in reports/fines resource")
        raise ResourceError(f"Failed to build fine report: {e!s}") from e


@trace_resource("reports.recent_activity")
async def recent_activity_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            entries = ReportRepository(session).recent_activity()
            return {"items": [entry.model_dump(mode="json") for entry in entries]}
    except Exception as e:
        logger.exception("Error in reports/recent-activity resource")
        raise ResourceError(f"Failed to retrieve recent activity: {e!s}") from e


@trace_resource("reports.catalog")
async def catalog_statistics_handler() -> dict[str, Any]:
    try:
        with session_scope() as session:
            return ReportRepository(session).catalog_statistics().model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in reports/catalog resource")
        raise ResourceError(f"Failed to build catalogue statistics: {e!s}") from e


report_resources: list[dict[str, Any]] = [
    {
        "uri": "library://reports/dashboard",
        "name": "Dashboard",
        "description": "Headline counts: items, users, loans, overdue loans, fines",
        "mime_type": "application/json",
        "handler": dashboard_handler,
    },
    {
        "uri": "library://reports/popular/{limit}",
        "name": "Popular Items",
        "description": "Top items by loans plus half the number of reservations",
        "mime_type": "application/json",
        "handler": popular_items_handler,
    },
    {
        "uri": "library://reports/patron-activity",
        "name": "Patron Activity",
        "description": "Current loans, lifetime borrowings and reservations per patron",
        "mime_type": "application/json",
        "handler": patron_activity_handler,
    },
    {
        "uri": "library://reports/overdue",
        "name": "Overdue Report",
        "description": "Overdue loans with patron contact details and accrued fines",
        "mime_type": "application/json",
        "handler": overdue_report_handler,
    },
    {
        "uri": "library://reports/monthly/{months}",
        "name": "Monthly Circulation",
        "description": "Items borrowed and returned per month over the last N months",
        "mime_type": "application/json",
        "handler": monthly_circulation_handler,
    },
    {
        "uri": "library://reports/subjects",
        "name": "Subject Distribution",
        "description": "Items, copies and circulation rate per subject",
        "mime_type": "application/json",
        "handler": subject_distribution_handler,
    },
    {
        "uri": "library://reports/fines",
        "name": "Fine Collection",
        "description": "Fines collected on returned loans and pending on overdue loans",
        "mime_type": "application/json",
        "handler": fine_collection_handler,
    },
    {
        "uri": "library://reports/recent-activity",
        "name": "Recent Activity",
        "description": "Latest borrows, returns and reservations",
        "mime_type": "application/json",
        "handler": recent_activity_handler,
    },
    {
        "uri": "library://reports/catalog",
        "name": "Catalogue Statistics",
        "description": "Visible and hidden items, copies on loan, authors and item types",
        "mime_type": "application/json",
        "handler": catalog_statistics_handler,
    },
]
