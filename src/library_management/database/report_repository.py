"""
Report repository: read-only projections over the circulation tables.

Nothing here writes. Counts may be slightly stale relative to a concurrent
borrow or return; each report is computed from one session's view.
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from ..models.circulation import OverdueLoan, calculate_fine
from ..models.report import (
    ActivityEntry,
    CatalogStatistics,
    DashboardStats,
    FineCollection,
    FineRecord,
    MonthlyCirculation,
    PatronActivity,
    PopularItem,
    SubjectDistribution,
)
from .circulation_repository import CirculationRepository
from .schema import Admin as AdminDB
from .schema import Item as ItemDB
from .schema import Librarian as LibrarianDB
from .schema import Patron as PatronDB
from .schema import Reservation as ReservationDB
from .schema import Transaction as TransactionDB
from .session import safe_query
from .settings_repository import SettingsRepository

logger = logging.getLogger(__name__)

RESERVATION_WEIGHT = 0.5


def months_ago(now: datetime, months: int) -> datetime:
    """Same day-of-month ``months`` calendar months earlier (clamped to the 28th)."""
    total = now.year * 12 + (now.month - 1) - months
    year, month = divmod(total, 12)
    return now.replace(year=year, month=month + 1, day=min(now.day, 28))


class ReportRepository:
    """Aggregations for the dashboards and reports resources."""

    def __init__(self, session: Session):
        self.session = session

    def _scalar(self, query, error_msg: str):
        return safe_query(self.session, lambda s: s.execute(query).scalar(), error_msg)

    def _count(self, model, *conditions) -> int:
        query = select(func.count()).select_from(model)
        if conditions:
            query = query.where(*conditions)
        return self._scalar(query, f"Failed to count {model.__tablename__}") or 0

    def dashboard_stats(self, now: datetime | None = None) -> DashboardStats:
        now = now or datetime.now()
        patrons = self._count(PatronDB)
        admins = self._count(AdminDB)
        librarians = self._count(LibrarianDB)
        return DashboardStats(
            total_items=self._count(ItemDB),
            visible_items=self._count(ItemDB, ItemDB.is_visible.is_(True)),
            total_patrons=patrons,
            total_admins=admins,
            total_librarians=librarians,
            total_users=patrons + admins + librarians,
            total_transactions=self._count(TransactionDB),
            active_transactions=self._count(TransactionDB, TransactionDB.is_returned.is_(False)),
            overdue_transactions=self._count(
                TransactionDB, TransactionDB.is_returned.is_(False), TransactionDB.due_date < now
            ),
            total_reservations=self._count(ReservationDB),
            available_copies=self._scalar(
                select(func.coalesce(func.sum(ItemDB.available_copies), 0)).where(
                    ItemDB.is_visible.is_(True)
                ),
                "Failed to sum available copies",
            ),
            total_fines=round(
                float(
                    self._scalar(
                        select(func.coalesce(func.sum(TransactionDB.fine_paid), 0.0)),
                        "Failed to sum fines",
                    )
                ),
                2,
            ),
        )

    def popular_items(self, limit: int = 10) -> list[PopularItem]:
        """Visible items ranked by ``loans + 0.5 * reservations``, highest first."""
        loans = (
            select(TransactionDB.item_id, func.count(TransactionDB.id).label("n"))
            .group_by(TransactionDB.item_id)
            .subquery()
        )
        holds = (
            select(ReservationDB.item_id, func.count(ReservationDB.id).label("n"))
            .group_by(ReservationDB.item_id)
            .subquery()
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(
                    ItemDB,
                    func.coalesce(loans.c.n, 0).label("loan_count"),
                    func.coalesce(holds.c.n, 0).label("reservation_count"),
                )
                .outerjoin(loans, loans.c.item_id == ItemDB.id)
                .outerjoin(holds, holds.c.item_id == ItemDB.id)
                .where(ItemDB.is_visible.is_(True))
            ).all(),
            "Failed to compute popular items",
        )
        ranked = [
            PopularItem(
                item_id=item.id,
                title=item.title,
                author=item.author,
                subject=item.subject,
                item_type=item.item_type,
                loan_count=loan_count,
                reservation_count=reservation_count,
                popularity_score=loan_count + reservation_count * RESERVATION_WEIGHT,
            )
            for item, loan_count, reservation_count in rows
        ]
        # sorted() is stable: ties keep store order
        ranked = sorted(ranked, key=lambda p: p.popularity_score, reverse=True)
        return ranked[:limit]

    def patron_activity(self) -> list[PatronActivity]:
        current = (
            select(TransactionDB.patron_id, func.count(TransactionDB.id).label("n"))
            .where(TransactionDB.is_returned.is_(False))
            .group_by(TransactionDB.patron_id)
            .subquery()
        )
        total = (
            select(TransactionDB.patron_id, func.count(TransactionDB.id).label("n"))
            .group_by(TransactionDB.patron_id)
            .subquery()
        )
        holds = (
            select(ReservationDB.patron_id, func.count(ReservationDB.id).label("n"))
            .group_by(ReservationDB.patron_id)
            .subquery()
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(
                    PatronDB,
                    func.coalesce(current.c.n, 0),
                    func.coalesce(total.c.n, 0),
                    func.coalesce(holds.c.n, 0),
                )
                .outerjoin(current, current.c.patron_id == PatronDB.id)
                .outerjoin(total, total.c.patron_id == PatronDB.id)
                .outerjoin(holds, holds.c.patron_id == PatronDB.id)
            ).all(),
            "Failed to compute patron activity",
        )
        activity = [
            PatronActivity(
                patron_id=patron.id,
                name=patron.full_name,
                email=patron.email,
                patron_type="student"
                if patron.is_student
                else "faculty"
                if patron.is_faculty
                else "general",
                current_loans=current_loans,
                total_borrowings=total_borrowings,
                reservations=reservations,
            )
            for patron, current_loans, total_borrowings, reservations in rows
        ]
        return sorted(activity, key=lambda a: a.total_borrowings, reverse=True)

    def overdue_report(self, now: datetime | None = None) -> list[OverdueLoan]:
        return CirculationRepository(self.session).get_overdue_transactions(now)

    def monthly_circulation(
        self, months: int = 6, now: datetime | None = None
    ) -> list[MonthlyCirculation]:
        """Loans borrowed in the last ``months`` months, bucketed by YYYY-MM of borrow date."""
        now = now or datetime.now()
        start = months_ago(now, months)
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(TransactionDB.borrowed_at, TransactionDB.is_returned).where(
                    TransactionDB.borrowed_at >= start, TransactionDB.borrowed_at <= now
                )
            ).all(),
            "Failed to compute monthly circulation",
        )
        buckets: dict[str, MonthlyCirculation] = {}
        for borrowed_at, is_returned in rows:
            key = borrowed_at.strftime("%Y-%m")
            bucket = buckets.setdefault(key, MonthlyCirculation(month=key, borrowed=0, returned=0))
            bucket.borrowed += 1
            if is_returned:
                bucket.returned += 1
        return [buckets[key] for key in sorted(buckets)]

    def subject_distribution(self) -> list[SubjectDistribution]:
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(
                    ItemDB.subject,
                    func.count(ItemDB.id),
                    func.coalesce(func.sum(ItemDB.total_copies), 0),
                    func.coalesce(func.sum(ItemDB.available_copies), 0),
                )
                .where(ItemDB.is_visible.is_(True), ItemDB.subject.is_not(None))
                .group_by(ItemDB.subject)
            ).all(),
            "Failed to compute subject distribution",
        )
        distribution = [
            SubjectDistribution(
                subject=subject,
                item_count=count,
                total_copies=total,
                available_copies=available,
                circulation_rate=round((total - available) / (total or 1) * 100, 2),
            )
            for subject, count, total, available in rows
        ]
        return sorted(distribution, key=lambda d: d.item_count, reverse=True)

    def fine_collection(self, now: datetime | None = None) -> FineCollection:
        """Recorded fines plus fines accruing on open overdue loans."""
        now = now or datetime.now()
        fine_per_day = SettingsRepository(self.session).get_or_create().fine_per_day
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(TransactionDB)
                .options(joinedload(TransactionDB.item), joinedload(TransactionDB.patron))
                .where(
                    or_(
                        TransactionDB.fine_paid > 0,
                        (TransactionDB.is_returned.is_(False)) & (TransactionDB.due_date < now),
                    )
                )
                .order_by(TransactionDB.id)
            )
            .scalars()
            .all(),
            "Failed to compute fine collection",
        )

        records = []
        collected = pending = 0.0
        for row in rows:
            fine_collected = row.fine_paid or 0.0
            fine_pending = 0.0
            if not row.is_returned and row.due_date < now:
                fine_pending = calculate_fine(row.due_date, fine_per_day, now)
            collected += fine_collected
            pending += fine_pending
            records.append(
                FineRecord(
                    transaction_id=row.id,
                    patron_name=row.patron.full_name,
                    item_title=row.item.title,
                    due_date=row.due_date,
                    fine_collected=fine_collected,
                    fine_pending=fine_pending,
                    status="Returned" if row.is_returned else "Active",
                )
            )
        return FineCollection(
            collected=round(collected, 2),
            pending=round(pending, 2),
            total=round(collected + pending, 2),
            records=records,
        )

    def recent_activity(self, limit: int = 10) -> list[ActivityEntry]:
        """Latest loans and reservations merged, newest first."""
        per_source = max(limit, 1)
        transactions = safe_query(
            self.session,
            lambda s: s.execute(
                select(TransactionDB)
                .options(joinedload(TransactionDB.item), joinedload(TransactionDB.patron))
                .order_by(TransactionDB.borrowed_at.desc())
                .limit(per_source)
            )
            .scalars()
            .all(),
            "Failed to load recent transactions",
        )
        reservations = safe_query(
            self.session,
            lambda s: s.execute(
                select(ReservationDB)
                .options(joinedload(ReservationDB.item), joinedload(ReservationDB.patron))
                .order_by(ReservationDB.reserved_at.desc())
                .limit(per_source)
            )
            .scalars()
            .all(),
            "Failed to load recent reservations",
        )

        entries = [
            ActivityEntry(
                reference=f"transaction-{t.id}",
                action="returned" if t.is_returned else "borrowed",
                timestamp=t.returned_at if t.is_returned and t.returned_at else t.borrowed_at,
                patron_name=t.patron.full_name,
                item_title=t.item.title,
                status="completed" if t.is_returned else "active",
            )
            for t in transactions
        ]
        entries.extend(
            ActivityEntry(
                reference=f"reservation-{r.id}",
                action="reserved",
                timestamp=r.reserved_at,
                patron_name=r.patron.full_name,
                item_title=r.item.title,
                status="pending",
            )
            for r in reservations
        )
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    def catalog_statistics(self) -> CatalogStatistics:
        total_copies, available_copies, unique_authors = safe_query(
            self.session,
            lambda s: s.execute(
                select(
                    func.coalesce(func.sum(ItemDB.total_copies), 0),
                    func.coalesce(func.sum(ItemDB.available_copies), 0),
                    func.count(func.distinct(ItemDB.author)),
                )
            ).one(),
            "Failed to compute catalogue totals",
        )
        by_type = safe_query(
            self.session,
            lambda s: s.execute(
                select(ItemDB.item_type, func.count(ItemDB.id))
                .group_by(ItemDB.item_type)
                .order_by(func.count(ItemDB.id).desc())
            ).all(),
            "Failed to count items by type",
        )
        total_items = self._count(ItemDB)
        visible_items = self._count(ItemDB, ItemDB.is_visible.is_(True))
        return CatalogStatistics(
            total_items=total_items,
            visible_items=visible_items,
            hidden_items=total_items - visible_items,
            total_copies=total_copies,
            available_copies=available_copies,
            borrowed_copies=total_copies - available_copies,
            unique_authors=unique_authors,
            items_by_type={item_type: count for item_type, count in by_type},
        )

    def table_counts(self) -> dict[str, int]:
        """Row counts per table, shown alongside backups."""
        counts = {
            "patrons": self._count(PatronDB),
            "items": self._count(ItemDB),
            "transactions": self._count(TransactionDB),
            "reservations": self._count(ReservationDB),
            "admins": self._count(AdminDB),
            "librarians": self._count(LibrarianDB),
        }
        counts["total_records"] = sum(counts.values())
        return counts
