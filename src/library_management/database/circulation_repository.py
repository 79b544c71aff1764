"""
Circulation repository for the Library Management MCP Server.

Handles the state changes of lending:
- borrow_item: open a loan, taking one copy off the shelf
- return_item: close a loan, putting the copy back and charging any fine
- renew_loan: push the due date of an open, not yet overdue loan
- reserve_item / cancel_reservation: queue for items with no copies left
- collect_fine: record a payment against a loan

Each write runs in a single store transaction. The copy count is changed
only by conditional UPDATEs (``available_copies > 0`` on borrow,
``available_copies < total_copies`` on return) so two sessions racing for
the last copy cannot both succeed, whatever their in-memory view of the item.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.orm import joinedload

from ..models.circulation import (
    ActiveLoan,
    OverdueLoan,
    PatronFines,
    Reservation,
    ReturnResult,
    Transaction,
    calculate_fine,
    days_overdue,
    days_until_due,
)
from .errors import (
    AlreadyReturnedError,
    CapacityError,
    ConflictError,
    DuplicateError,
    LibraryError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import Item as ItemDB
from .schema import Patron as PatronDB
from .schema import Reservation as ReservationDB
from .schema import Transaction as TransactionDB
from .session import safe_query
from .settings_repository import SettingsRepository

logger = logging.getLogger(__name__)


class CirculationRepository(BaseRepository[TransactionDB, Transaction]):
    """Repository for loans, returns, renewals, reservations and fines."""

    @property
    def model_class(self):
        return TransactionDB

    @property
    def response_schema(self):
        return Transaction

    # ------------------------------------------------------------------
    # Lending
    # ------------------------------------------------------------------

    def borrow_item(self, patron_id: int, item_id: int) -> Transaction:
        """
        Lend one copy of ``item_id`` to ``patron_id``.

        The due date is ``now + loan_period_days`` using the settings in
        effect at borrow time. A reservation the patron held on the item is
        fulfilled (removed).

        Raises:
            NotFoundError: Unknown patron or item
            ConflictError: Inactive patron, or the patron already has this item
            LimitExceededError: Patron is at the borrowing limit
            CapacityError: Item hidden or no copy available
        """
        settings = SettingsRepository(self.session).get_or_create()
        borrowing_limit = settings.borrowing_limit
        loan_period_days = settings.loan_period_days

        try:
            # Lock the patron row so concurrent borrows by the same patron
            # serialise on the limit check (no-op on SQLite)
            patron = safe_query(
                self.session,
                lambda s: s.execute(
                    select(PatronDB).where(PatronDB.id == patron_id).with_for_update()
                ).scalar_one_or_none(),
                "Failed to load patron",
            )
            if patron is None:
                raise NotFoundError(f"Patron {patron_id} not found")
            if not patron.is_active:
                raise ConflictError(f"Patron {patron_id} is inactive")

            item = safe_query(
                self.session, lambda s: s.get(ItemDB, item_id), "Failed to load item"
            )
            if item is None:
                raise NotFoundError(f"Item {item_id} not found")
            if not item.is_visible:
                raise CapacityError(f"Item {item_id} is not available for borrowing")

            open_loans = self._count_open_loans(patron_id)
            if open_loans >= borrowing_limit:
                raise LimitExceededError(
                    f"Patron {patron_id} has reached the borrowing limit of {borrowing_limit}"
                )

            if self._count_open_loans(patron_id, item_id) > 0:
                raise ConflictError(f"Patron {patron_id} has already borrowed item {item_id}")

            result = self.session.execute(
                update(ItemDB)
                .where(
                    ItemDB.id == item_id,
                    ItemDB.available_copies > 0,
                    ItemDB.is_visible.is_(True),
                )
                .values(available_copies=ItemDB.available_copies - 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise CapacityError(f"No available copies of item {item_id}")

            now = datetime.now()
            transaction = TransactionDB(
                item_id=item_id,
                patron_id=patron_id,
                borrowed_at=now,
                due_date=now + timedelta(days=loan_period_days),
                is_returned=False,
                fine_paid=None,
            )
            self.session.add(transaction)

            fulfilled = self.session.execute(
                delete(ReservationDB)
                .where(ReservationDB.item_id == item_id, ReservationDB.patron_id == patron_id)
                .execution_options(synchronize_session=False)
            )

            self._commit("borrow item")
        except LibraryError:
            self.session.rollback()
            raise

        if fulfilled.rowcount:
            logger.info("Reservation of item %s by patron %s fulfilled", item_id, patron_id)
        logger.info(
            "Item %s lent to patron %s (transaction %s, due %s)",
            item_id,
            patron_id,
            transaction.id,
            transaction.due_date.isoformat(),
        )
        return self._to_response_model(transaction)

    def return_item(self, transaction_id: int) -> ReturnResult:
        """
        Close an open loan.

        The fine is ``days_overdue * fine_per_day`` where the rate is the
        one configured *now*, not the one in effect when the loan was issued.

        Raises:
            NotFoundError: Unknown transaction
            AlreadyReturnedError: The loan is already closed (copy count unchanged)
        """
        fine_per_day = SettingsRepository(self.session).get_or_create().fine_per_day

        try:
            transaction = self._get_db_object(transaction_id)
            if transaction.is_returned:
                raise AlreadyReturnedError(f"Transaction {transaction_id} is already returned")

            now = datetime.now()
            overdue_days = days_overdue(transaction.due_date, now)
            fine = calculate_fine(transaction.due_date, fine_per_day, now)

            closed = self.session.execute(
                update(TransactionDB)
                .where(TransactionDB.id == transaction_id, TransactionDB.is_returned.is_(False))
                .values(is_returned=True, returned_at=now, fine_paid=fine if fine > 0 else None)
                .execution_options(synchronize_session=False)
            )
            if closed.rowcount == 0:
                # Another session closed it between our read and our update
                raise AlreadyReturnedError(f"Transaction {transaction_id} is already returned")

            restocked = self.session.execute(
                update(ItemDB)
                .where(
                    ItemDB.id == transaction.item_id,
                    ItemDB.available_copies < ItemDB.total_copies,
                )
                .values(available_copies=ItemDB.available_copies + 1)
                .execution_options(synchronize_session=False)
            )
            if restocked.rowcount == 0:
                logger.warning(
                    "Item %s already at total copies, return of transaction %s not restocked",
                    transaction.item_id,
                    transaction_id,
                )

            self._commit("return item")
        except LibraryError:
            self.session.rollback()
            raise

        self.session.refresh(transaction)
        logger.info(
            "Transaction %s returned (%d days overdue, fine %.2f)",
            transaction_id,
            overdue_days,
            fine,
        )
        return ReturnResult(
            transaction=self._to_response_model(transaction),
            days_overdue=overdue_days,
            fine=fine,
            fine_per_day=fine_per_day,
        )

    def renew_loan(self, transaction_id: int) -> Transaction:
        """
        Extend an open loan by the current loan period.

        Raises:
            NotFoundError: Unknown transaction
            AlreadyReturnedError: The loan is closed
            ConflictError: The loan is overdue
        """
        loan_period_days = SettingsRepository(self.session).get_or_create().loan_period_days

        try:
            transaction = self._get_db_object(transaction_id)
            if transaction.is_returned:
                raise AlreadyReturnedError(
                    f"Transaction {transaction_id} is returned and cannot be renewed"
                )
            if datetime.now() > transaction.due_date:
                raise ConflictError(
                    f"Transaction {transaction_id} is overdue and cannot be renewed"
                )

            transaction.due_date = transaction.due_date + timedelta(days=loan_period_days)
            self._commit("renew loan")
        except LibraryError:
            self.session.rollback()
            raise

        logger.info("Transaction %s renewed until %s", transaction_id, transaction.due_date)
        return self._to_response_model(transaction)

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve_item(self, patron_id: int, item_id: int) -> Reservation:
        """
        Queue ``patron_id`` for ``item_id``.

        Raises:
            NotFoundError: Unknown patron or item
            ConflictError: Inactive patron, hidden item, or copies are available
            DuplicateError: The patron already holds a reservation for the item
        """
        try:
            patron = self._get_patron(patron_id)
            if not patron.is_active:
                raise ConflictError(f"Patron {patron_id} is inactive")

            item = safe_query(
                self.session, lambda s: s.get(ItemDB, item_id), "Failed to load item"
            )
            if item is None:
                raise NotFoundError(f"Item {item_id} not found")
            if not item.is_visible:
                raise ConflictError(f"Item {item_id} is not available for reservation")
            if item.available_copies > 0:
                raise ConflictError(
                    f"Item {item_id} has {item.available_copies} copies available, "
                    "no need to reserve"
                )

            existing = safe_query(
                self.session,
                lambda s: s.execute(
                    select(ReservationDB.id).where(
                        ReservationDB.item_id == item_id, ReservationDB.patron_id == patron_id
                    )
                ).scalar_one_or_none(),
                "Failed to check existing reservation",
            )
            if existing is not None:
                raise DuplicateError(f"Patron {patron_id} has already reserved item {item_id}")

            reservation = ReservationDB(
                item_id=item_id, patron_id=patron_id, reserved_at=datetime.now()
            )
            self.session.add(reservation)
            try:
                self._commit("reserve item")
            except ConflictError as e:
                raise DuplicateError(
                    f"Patron {patron_id} has already reserved item {item_id}"
                ) from e
        except LibraryError:
            self.session.rollback()
            raise

        logger.info("Patron %s reserved item %s", patron_id, item_id)
        result = Reservation.model_validate(reservation, from_attributes=True)
        result.queue_position = self._queue_position(reservation)
        return result

    def cancel_reservation(self, patron_id: int, item_id: int) -> None:
        """
        Remove a patron's reservation.

        Raises:
            NotFoundError: No such reservation
        """
        result = self.session.execute(
            delete(ReservationDB)
            .where(ReservationDB.item_id == item_id, ReservationDB.patron_id == patron_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError(f"No reservation of item {item_id} by patron {patron_id}")
        self._commit("cancel reservation")
        logger.info("Reservation of item %s by patron %s cancelled", item_id, patron_id)

    def get_reservation_queue(self, item_id: int) -> list[Reservation]:
        """Reservations for an item, first come first served."""
        if safe_query(self.session, lambda s: s.get(ItemDB, item_id), "Failed to load item") is None:
            raise NotFoundError(f"Item {item_id} not found")

        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(ReservationDB)
                .options(joinedload(ReservationDB.patron), joinedload(ReservationDB.item))
                .where(ReservationDB.item_id == item_id)
                .order_by(ReservationDB.reserved_at, ReservationDB.id)
            )
            .scalars()
            .all(),
            "Failed to get reservation queue",
        )
        return [
            self._reservation_to_model(row, queue_position=position)
            for position, row in enumerate(rows, start=1)
        ]

    def get_patron_reservations(self, patron_id: int) -> list[Reservation]:
        """A patron's reservations, newest first."""
        self._get_patron(patron_id)
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(ReservationDB)
                .options(joinedload(ReservationDB.patron), joinedload(ReservationDB.item))
                .where(ReservationDB.patron_id == patron_id)
                .order_by(ReservationDB.reserved_at.desc(), ReservationDB.id.desc())
            )
            .scalars()
            .all(),
            "Failed to get patron reservations",
        )
        return [self._reservation_to_model(row, self._queue_position(row)) for row in rows]

    # ------------------------------------------------------------------
    # Fines
    # ------------------------------------------------------------------

    def collect_fine(self, transaction_id: int, amount: float) -> Transaction:
        """
        Record a fine payment against a loan.

        Raises:
            ValidationError: Negative amount
            NotFoundError: Unknown transaction
        """
        if amount < 0:
            raise ValidationError("Fine amount cannot be negative")

        transaction = self._get_db_object(transaction_id)
        transaction.fine_paid = amount
        self._commit("collect fine")
        logger.info("Fine of %.2f collected on transaction %s", amount, transaction_id)
        return self._to_response_model(transaction)

    def get_patron_fines(self, patron_id: int, now: datetime | None = None) -> PatronFines:
        """
        Recorded fines plus fines accruing on the patron's open overdue loans.

        A fine recorded on a loan, returned or not, replaces the accruing
        figure for that loan.
        """
        self._get_patron(patron_id)
        now = now or datetime.now()
        fine_per_day = SettingsRepository(self.session).get_or_create().fine_per_day

        recorded = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.coalesce(func.sum(TransactionDB.fine_paid), 0.0)).where(
                    TransactionDB.patron_id == patron_id, TransactionDB.fine_paid > 0
                )
            ).scalar(),
            "Failed to sum recorded fines",
        )
        overdue = safe_query(
            self.session,
            lambda s: s.execute(
                select(TransactionDB).where(
                    TransactionDB.patron_id == patron_id,
                    TransactionDB.is_returned.is_(False),
                    TransactionDB.due_date < now,
                )
            )
            .scalars()
            .all(),
            "Failed to load overdue loans",
        )
        pending = round(
            sum(calculate_fine(t.due_date, fine_per_day, now) for t in overdue if not t.fine_paid),
            2,
        )
        recorded = round(float(recorded or 0.0), 2)
        return PatronFines(
            patron_id=patron_id,
            recorded_fines=recorded,
            pending_fines=pending,
            total_fines=round(recorded + pending, 2),
            overdue_loans=len(overdue),
        )

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def get_active_transactions(self, now: datetime | None = None) -> list[ActiveLoan]:
        """Open loans, newest first, annotated with overdue status and fine so far."""
        now = now or datetime.now()
        fine_per_day = SettingsRepository(self.session).get_or_create().fine_per_day
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(TransactionDB)
                .options(joinedload(TransactionDB.item), joinedload(TransactionDB.patron))
                .where(TransactionDB.is_returned.is_(False))
                .order_by(TransactionDB.borrowed_at.desc(), TransactionDB.id.desc())
            )
            .scalars()
            .all(),
            "Failed to get active transactions",
        )
        return [
            ActiveLoan.model_validate(
                {
                    **self._transaction_fields(row),
                    "item_title": row.item.title,
                    "patron_name": row.patron.full_name,
                    "is_overdue": now > row.due_date,
                    "calculated_fine": calculate_fine(row.due_date, fine_per_day, now),
                    "days_until_due": days_until_due(row.due_date, now),
                }
            )
            for row in rows
        ]

    def get_overdue_transactions(self, now: datetime | None = None) -> list[OverdueLoan]:
        """
        Open loans past their due date, oldest due date first.

        Pure read: nothing is written, fines are computed at the current rate.
        """
        now = now or datetime.now()
        fine_per_day = SettingsRepository(self.session).get_or_create().fine_per_day
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(TransactionDB)
                .options(joinedload(TransactionDB.item), joinedload(TransactionDB.patron))
                .where(TransactionDB.is_returned.is_(False), TransactionDB.due_date < now)
                .order_by(TransactionDB.due_date.asc(), TransactionDB.id.asc())
            )
            .scalars()
            .all(),
            "Failed to get overdue transactions",
        )
        return [
            OverdueLoan.model_validate(
                {
                    **self._transaction_fields(row),
                    "item_title": row.item.title,
                    "item_author": row.item.author,
                    "patron_name": row.patron.full_name,
                    "patron_email": row.patron.email,
                    "days_overdue": days_overdue(row.due_date, now),
                    "calculated_fine": calculate_fine(row.due_date, fine_per_day, now),
                }
            )
            for row in rows
        ]

    def get_patron_history(
        self, patron_id: int, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[Transaction]:
        """All of a patron's loans, newest first."""
        self._get_patron(patron_id)
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        where = TransactionDB.patron_id == patron_id
        total = safe_query(
            self.session,
            lambda s: s.execute(select(func.count(TransactionDB.id)).where(where)).scalar(),
            "Failed to count patron history",
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(TransactionDB)
                .where(where)
                .order_by(TransactionDB.borrowed_at.desc(), TransactionDB.id.desc())
                .offset(pagination.offset)
                .limit(pagination.page_size)
            )
            .scalars()
            .all(),
            "Failed to get patron history",
        )
        return PaginatedResponse.build(
            [self._to_response_model(row) for row in rows], total or 0, pagination
        )

    def get_current_loans(self, patron_id: int) -> list[Transaction]:
        """A patron's open loans, newest first."""
        self._get_patron(patron_id)
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(TransactionDB)
                .where(
                    and_(TransactionDB.patron_id == patron_id, TransactionDB.is_returned.is_(False))
                )
                .order_by(TransactionDB.borrowed_at.desc(), TransactionDB.id.desc())
            )
            .scalars()
            .all(),
            "Failed to get current loans",
        )
        return [self._to_response_model(row) for row in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_patron(self, patron_id: int) -> PatronDB:
        patron = safe_query(
            self.session, lambda s: s.get(PatronDB, patron_id), "Failed to load patron"
        )
        if patron is None:
            raise NotFoundError(f"Patron {patron_id} not found")
        return patron

    def _count_open_loans(self, patron_id: int, item_id: int | None = None) -> int:
        query = select(func.count(TransactionDB.id)).where(
            TransactionDB.patron_id == patron_id, TransactionDB.is_returned.is_(False)
        )
        if item_id is not None:
            query = query.where(TransactionDB.item_id == item_id)
        return safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count open loans"
        ) or 0

    def _queue_position(self, reservation: ReservationDB) -> int:
        ahead = safe_query(
            self.session,
            lambda s: s.execute(
                select(func.count(ReservationDB.id)).where(
                    ReservationDB.item_id == reservation.item_id,
                    (ReservationDB.reserved_at < reservation.reserved_at)
                    | (
                        (ReservationDB.reserved_at == reservation.reserved_at)
                        & (ReservationDB.id < reservation.id)
                    ),
                )
            ).scalar(),
            "Failed to compute queue position",
        )
        return (ahead or 0) + 1

    @staticmethod
    def _transaction_fields(row: TransactionDB) -> dict:
        return Transaction.model_validate(row, from_attributes=True).model_dump()

    @staticmethod
    def _reservation_to_model(row: ReservationDB, queue_position: int | None = None) -> Reservation:
        return Reservation(
            id=row.id,
            item_id=row.item_id,
            patron_id=row.patron_id,
            reserved_at=row.reserved_at,
            item_title=row.item.title if row.item else None,
            patron_name=row.patron.full_name if row.patron else None,
            queue_position=queue_position,
        )
