"""
Tests for the circulation repository.

Covers lending limits, the last-copy race, fines at return, renewals,
reservations and the copy-count invariant.
"""

import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from library_management.database import (
    AlreadyReturnedError,
    CapacityError,
    CirculationRepository,
    ConflictError,
    DuplicateError,
    LimitExceededError,
    NotFoundError,
    PaginationParams,
    SettingsRepository,
    ValidationError,
)
from library_management.database.schema import Item as ItemDB
from library_management.database.schema import Reservation as ReservationDB
from library_management.database.schema import Transaction as TransactionDB


def _open_loans(session, patron_id: int) -> int:
    return len(
        session.execute(
            select(TransactionDB).where(
                TransactionDB.patron_id == patron_id, TransactionDB.is_returned.is_(False)
            )
        )
        .scalars()
        .all()
    )


class TestBorrowItem:
    def test_borrow_creates_loan_and_takes_copy(self, session, make_item, make_patron):
        item = make_item(total_copies=3)
        patron = make_patron()

        loan = CirculationRepository(session).borrow_item(patron.id, item.id)

        session.refresh(item)
        assert item.available_copies == 2
        assert loan.patron_id == patron.id
        assert loan.item_id == item.id
        assert loan.is_returned is False
        assert loan.fine_paid is None
        assert loan.due_date - loan.borrowed_at == timedelta(days=14)

    def test_due_date_uses_configured_loan_period(
        self, session, make_item, make_patron, library_settings
    ):
        library_settings(loan_period_days=7)
        loan = CirculationRepository(session).borrow_item(make_patron().id, make_item().id)
        assert loan.due_date - loan.borrowed_at == timedelta(days=7)

    def test_sixth_borrow_exceeds_default_limit(self, session, make_item, make_patron):
        patron = make_patron()
        repo = CirculationRepository(session)
        for _ in range(5):
            repo.borrow_item(patron.id, make_item(total_copies=2).id)

        extra = make_item(total_copies=2)
        with pytest.raises(LimitExceededError):
            repo.borrow_item(patron.id, extra.id)

        session.refresh(extra)
        assert extra.available_copies == 2
        assert _open_loans(session, patron.id) == 5

    def test_limit_exceeded_is_a_capacity_error(
        self, session, make_item, make_patron, library_settings
    ):
        library_settings(borrowing_limit=1)
        patron = make_patron()
        repo = CirculationRepository(session)
        repo.borrow_item(patron.id, make_item().id)

        with pytest.raises(CapacityError):
            repo.borrow_item(patron.id, make_item().id)

    def test_no_available_copies(self, session, make_item, make_patron):
        item = make_item(total_copies=1, available_copies=0)
        with pytest.raises(CapacityError):
            CirculationRepository(session).borrow_item(make_patron().id, item.id)

    def test_hidden_item_cannot_be_borrowed(self, session, make_item, make_patron):
        item = make_item(is_visible=False)
        with pytest.raises(CapacityError):
            CirculationRepository(session).borrow_item(make_patron().id, item.id)

    def test_same_item_twice_is_a_conflict(self, session, make_item, make_patron):
        item = make_item(total_copies=3)
        patron = make_patron()
        repo = CirculationRepository(session)
        repo.borrow_item(patron.id, item.id)

        with pytest.raises(ConflictError):
            repo.borrow_item(patron.id, item.id)

        session.refresh(item)
        assert item.available_copies == 2

    def test_inactive_patron_cannot_borrow(self, session, make_item, make_patron):
        patron = make_patron(is_active=False)
        with pytest.raises(ConflictError):
            CirculationRepository(session).borrow_item(patron.id, make_item().id)

    @pytest.mark.parametrize("missing", ["patron", "item"])
    def test_unknown_patron_or_item(self, session, make_item, make_patron, missing):
        patron_id = 9999 if missing == "patron" else make_patron().id
        item_id = 9999 if missing == "item" else make_item().id
        with pytest.raises(NotFoundError):
            CirculationRepository(session).borrow_item(patron_id, item_id)

    def test_borrow_fulfils_own_reservation(
        self, session, make_item, make_patron, make_reservation
    ):
        item = make_item(total_copies=1)
        patron = make_patron()
        make_reservation(item, patron)

        CirculationRepository(session).borrow_item(patron.id, item.id)

        remaining = session.execute(select(ReservationDB)).scalars().all()
        assert remaining == []

    def test_last_copy_race_between_sessions(self, db_manager, make_item, make_patron):
        """Two sessions that both saw one copy: only the first borrow succeeds."""
        item = make_item(total_copies=1)
        first, second = make_patron(), make_patron()

        session_a = db_manager.create_session()
        session_b = db_manager.create_session()
        try:
            stale = session_b.get(ItemDB, item.id)
            assert stale.available_copies == 1

            CirculationRepository(session_a).borrow_item(first.id, item.id)

            with pytest.raises(CapacityError):
                CirculationRepository(session_b).borrow_item(second.id, item.id)
        finally:
            session_a.close()
            session_b.close()

        with db_manager.session_scope() as check:
            assert check.get(ItemDB, item.id).available_copies == 0
            loans = check.execute(select(TransactionDB)).scalars().all()
            assert [loan.patron_id for loan in loans] == [first.id]

    def test_concurrent_borrows_of_last_copy(self, session, db_manager, make_item, make_patron):
        """Two threads borrow the last copy at once: exactly one succeeds."""
        item_id = make_item(total_copies=1).id
        patron_ids = [make_patron().id, make_patron().id]
        SettingsRepository(session).get_settings()
        session.commit()

        barrier = threading.Barrier(len(patron_ids))
        outcomes: list[object] = []
        lock = threading.Lock()

        def borrow(patron_id: int) -> None:
            thread_session = db_manager.create_session()
            try:
                barrier.wait(timeout=5)
                try:
                    CirculationRepository(thread_session).borrow_item(patron_id, item_id)
                    outcome: object = "borrowed"
                except CapacityError as e:
                    outcome = e
                with lock:
                    outcomes.append(outcome)
            finally:
                thread_session.close()

        threads = [threading.Thread(target=borrow, args=(patron_id,)) for patron_id in patron_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(outcomes) == 2
        assert outcomes.count("borrowed") == 1
        assert sum(isinstance(o, CapacityError) for o in outcomes) == 1

        with db_manager.session_scope() as check:
            assert check.get(ItemDB, item_id).available_copies == 0
            assert len(check.execute(select(TransactionDB)).scalars().all()) == 1


class TestReturnItem:
    def test_on_time_return_has_no_fine(self, session, make_item, make_patron):
        item = make_item(total_copies=2)
        repo = CirculationRepository(session)
        loan = repo.borrow_item(make_patron().id, item.id)

        result = repo.return_item(loan.id)

        session.refresh(item)
        assert item.available_copies == 2
        assert result.fine == 0.0
        assert result.days_overdue == 0
        assert result.transaction.is_returned is True
        assert result.transaction.returned_at is not None
        assert result.transaction.fine_paid is None

    def test_ten_days_overdue_at_default_rate(self, session, make_item, make_patron, make_loan):
        item = make_item()
        loan = make_loan(item, make_patron(), borrowed_days_ago=24, due_in_days=-10)

        result = CirculationRepository(session).return_item(loan.id)

        assert result.days_overdue == 10
        assert result.fine == 10.0
        assert result.transaction.fine_paid == 10.0

    def test_fine_uses_rate_configured_at_return(
        self, session, make_item, make_patron, make_loan, library_settings
    ):
        loan = make_loan(make_item(), make_patron(), due_in_days=-3)
        library_settings(fine_per_day=2.5)

        result = CirculationRepository(session).return_item(loan.id)

        assert result.fine_per_day == 2.5
        assert result.fine == 7.5

    def test_partial_day_overdue_is_not_fined(self, session, make_item, make_patron):
        item = make_item()
        repo = CirculationRepository(session)
        loan = repo.borrow_item(make_patron().id, item.id)
        row = session.get(TransactionDB, loan.id)
        row.due_date = datetime.now() - timedelta(hours=20)
        session.commit()

        result = repo.return_item(loan.id)
        assert result.days_overdue == 0
        assert result.fine == 0.0

    def test_double_return_leaves_copies_unchanged(self, session, make_item, make_patron):
        item = make_item(total_copies=2)
        repo = CirculationRepository(session)
        loan = repo.borrow_item(make_patron().id, item.id)
        repo.return_item(loan.id)

        with pytest.raises(AlreadyReturnedError) as excinfo:
            repo.return_item(loan.id)

        assert isinstance(excinfo.value, NotFoundError)
        assert isinstance(excinfo.value, ConflictError)
        session.refresh(item)
        assert item.available_copies == 2

    def test_unknown_transaction(self, session):
        with pytest.raises(NotFoundError):
            CirculationRepository(session).return_item(424242)

    def test_return_never_exceeds_total(self, session, make_item, make_patron, make_loan):
        item = make_item(total_copies=1)
        loan = make_loan(item, make_patron())
        # Copies were written back by hand while the loan was open
        item.available_copies = 1
        session.commit()

        CirculationRepository(session).return_item(loan.id)

        session.refresh(item)
        assert item.available_copies == 1


class TestRenewLoan:
    def test_renew_extends_by_loan_period(self, session, make_item, make_patron):
        repo = CirculationRepository(session)
        loan = repo.borrow_item(make_patron().id, make_item().id)

        renewed = repo.renew_loan(loan.id)
        assert renewed.due_date - loan.due_date == timedelta(days=14)

    def test_overdue_loan_cannot_be_renewed(self, session, make_item, make_patron, make_loan):
        loan = make_loan(make_item(), make_patron(), due_in_days=-1)
        with pytest.raises(ConflictError):
            CirculationRepository(session).renew_loan(loan.id)

    def test_returned_loan_cannot_be_renewed(self, session, make_item, make_patron):
        repo = CirculationRepository(session)
        loan = repo.borrow_item(make_patron().id, make_item().id)
        repo.return_item(loan.id)
        with pytest.raises(AlreadyReturnedError):
            repo.renew_loan(loan.id)


class TestReservations:
    def test_reserve_unavailable_item(self, session, make_item, make_patron):
        item = make_item(total_copies=1, available_copies=0)
        reservation = CirculationRepository(session).reserve_item(make_patron().id, item.id)
        assert reservation.item_id == item.id
        assert reservation.queue_position == 1

    def test_cannot_reserve_available_item(self, session, make_item, make_patron):
        with pytest.raises(ConflictError):
            CirculationRepository(session).reserve_item(make_patron().id, make_item().id)

    def test_duplicate_reservation(self, session, make_item, make_patron):
        item = make_item(total_copies=1, available_copies=0)
        patron = make_patron()
        repo = CirculationRepository(session)
        repo.reserve_item(patron.id, item.id)

        with pytest.raises(DuplicateError):
            repo.reserve_item(patron.id, item.id)

    def test_queue_is_first_come_first_served(
        self, session, make_item, make_patron, make_reservation
    ):
        item = make_item(total_copies=1, available_copies=0)
        early, late = make_patron(), make_patron()
        make_reservation(item, late, minutes_ago=5)
        make_reservation(item, early, minutes_ago=30)

        queue = CirculationRepository(session).get_reservation_queue(item.id)

        assert [(r.patron_id, r.queue_position) for r in queue] == [(early.id, 1), (late.id, 2)]

    def test_cancel_reservation(self, session, make_item, make_patron, make_reservation):
        item = make_item(total_copies=1, available_copies=0)
        patron = make_patron()
        make_reservation(item, patron)
        repo = CirculationRepository(session)

        repo.cancel_reservation(patron.id, item.id)

        assert repo.get_patron_reservations(patron.id) == []
        with pytest.raises(NotFoundError):
            repo.cancel_reservation(patron.id, item.id)


class TestFinesAndListings:
    def test_collect_fine(self, session, make_item, make_patron, make_loan):
        loan = make_loan(make_item(), make_patron(), returned=True)
        updated = CirculationRepository(session).collect_fine(loan.id, 4.0)
        assert updated.fine_paid == 4.0

    def test_negative_fine_rejected(self, session, make_item, make_patron, make_loan):
        loan = make_loan(make_item(), make_patron(), returned=True)
        with pytest.raises(ValidationError):
            CirculationRepository(session).collect_fine(loan.id, -1.0)

    def test_patron_fines_include_pending(self, session, make_item, make_patron, make_loan):
        patron = make_patron()
        make_loan(make_item(), patron, returned=True, fine_paid=3.0)
        make_loan(make_item(), patron, due_in_days=-2)

        fines = CirculationRepository(session).get_patron_fines(patron.id)

        assert fines.recorded_fines == 3.0
        assert fines.pending_fines == 2.0
        assert fines.total_fines == 5.0
        assert fines.overdue_loans == 1

    def test_fine_collected_on_open_loan_counts_as_recorded(
        self, session, make_item, make_patron, make_loan
    ):
        patron = make_patron()
        loan = make_loan(make_item(), patron, due_in_days=-3)
        repo = CirculationRepository(session)
        repo.collect_fine(loan.id, 2.5)

        fines = repo.get_patron_fines(patron.id)

        assert fines.recorded_fines == 2.5
        assert fines.pending_fines == 0.0
        assert fines.total_fines == 2.5
        assert fines.overdue_loans == 1

    def test_overdue_listing_includes_same_day(self, session, make_item, make_patron):
        repo = CirculationRepository(session)
        loan = repo.borrow_item(make_patron().id, make_item().id)
        row = session.get(TransactionDB, loan.id)
        row.due_date = datetime.now() - timedelta(hours=2)
        session.commit()

        overdue = repo.get_overdue_transactions()

        assert [o.id for o in overdue] == [loan.id]
        assert overdue[0].days_overdue == 0
        assert overdue[0].calculated_fine == 0.0

    def test_overdue_sorted_by_due_date(self, session, make_item, make_patron, make_loan):
        patron = make_patron()
        recent = make_loan(make_item(), patron, due_in_days=-1)
        oldest = make_loan(make_item(), patron, due_in_days=-9)
        make_loan(make_item(), patron, due_in_days=5)

        overdue = CirculationRepository(session).get_overdue_transactions()

        assert [o.id for o in overdue] == [oldest.id, recent.id]
        assert overdue[0].calculated_fine == 9.0

    def test_active_transactions_flag_overdue(self, session, make_item, make_patron, make_loan):
        patron = make_patron()
        late = make_loan(make_item(), patron, due_in_days=-4)
        make_loan(make_item(), patron, due_in_days=3)

        loans = {loan.id: loan for loan in CirculationRepository(session).get_active_transactions()}

        assert len(loans) == 2
        assert loans[late.id].is_overdue is True
        assert loans[late.id].calculated_fine == 4.0

    def test_patron_history_paginates(self, session, make_item, make_patron, make_loan):
        patron = make_patron()
        for days in range(3):
            make_loan(make_item(), patron, borrowed_days_ago=days + 1, returned=True)

        page = CirculationRepository(session).get_patron_history(
            patron.id, PaginationParams(page=1, page_size=2)
        )

        assert page.total == 3
        assert len(page.items) == 2
        assert page.has_next is True


def test_copy_invariant_holds_through_a_cycle(session, make_item, make_patron):
    item = make_item(total_copies=2)
    patrons = [make_patron() for _ in range(3)]
    repo = CirculationRepository(session)

    loans = [repo.borrow_item(p.id, item.id) for p in patrons[:2]]
    with pytest.raises(CapacityError):
        repo.borrow_item(patrons[2].id, item.id)
    for loan in loans:
        repo.return_item(loan.id)

    session.refresh(item)
    assert 0 <= item.available_copies <= item.total_copies
    assert item.available_copies == 2
