"""Tests for catalogue maintenance and search."""

import pytest

from library_management.database import (
    ConflictError,
    ItemCreateSchema,
    ItemRepository,
    ItemSearchParams,
    ItemUpdateSchema,
    NotFoundError,
    PaginationParams,
    ValidationError,
    reconcile_available,
)
from library_management.database.schema import Item as ItemDB
from library_management.models import ConditionStatus, ItemStatus


@pytest.mark.parametrize(
    ("total", "available", "new_total", "expected"),
    [
        (5, 1, 2, 0),  # 4 borrowed, shrinking below the borrowed count
        (5, 5, 3, 3),
        (2, 0, 6, 4),
        (3, 1, 3, 1),
    ],
)
def test_reconcile_available(total, available, new_total, expected):
    assert reconcile_available(total, available, new_total) == expected


class TestCreateAndUpdate:
    def test_create_puts_every_copy_on_shelf(self, session):
        item = ItemRepository(session).create(
            ItemCreateSchema(title="  Dune ", author="Frank Herbert", total_copies=4)
        )
        assert item.title == "Dune"
        assert item.available_copies == 4
        assert item.is_visible is True
        assert item.is_available is True

    def test_blank_title_rejected(self):
        with pytest.raises(ValueError):
            ItemCreateSchema(title="   ", author="Someone")

    def test_update_copies_below_borrowed(self, session, make_item):
        item = make_item(total_copies=5, available_copies=1)

        updated = ItemRepository(session).update_copies(item.id, 2)

        assert updated.total_copies == 2
        assert updated.available_copies == 0

    def test_negative_copies_rejected(self, session, make_item):
        with pytest.raises(ValidationError):
            ItemRepository(session).update_copies(make_item().id, -1)

    def test_update_fields_and_total(self, session, make_item):
        item = make_item(total_copies=2, available_copies=1)

        updated = ItemRepository(session).update(
            item.id, ItemUpdateSchema(subject="History", total_copies=4)
        )

        assert updated.subject == "History"
        assert updated.total_copies == 4
        assert updated.available_copies == 3

    def test_update_unknown_item(self, session):
        with pytest.raises(NotFoundError):
            ItemRepository(session).update(999, ItemUpdateSchema(title="x"))


class TestStatusAndVisibility:
    def test_toggle_visibility(self, session, make_item):
        repo = ItemRepository(session)
        item = make_item()
        assert repo.toggle_visibility(item.id).is_visible is False
        assert repo.toggle_visibility(item.id).is_visible is True

    def test_withdrawn_hides_item(self, session, make_item):
        item = ItemRepository(session).update_status(make_item().id, ConditionStatus.WITHDRAWN)
        assert item.is_visible is False

    @pytest.mark.parametrize("status", ["lost", "damaged"])
    def test_lost_or_damaged_removes_copies(self, session, make_item, status):
        item = ItemRepository(session).update_status(make_item(total_copies=3).id, status)
        assert item.available_copies == 0
        assert item.total_copies == 3

    def test_invalid_status(self, session, make_item):
        with pytest.raises(ValidationError):
            ItemRepository(session).update_status(make_item().id, "stolen")

    def test_derived_status(self, session, make_item, make_patron, make_loan, make_reservation):
        repo = ItemRepository(session)
        available = make_item(total_copies=2)
        issued = make_item(total_copies=2)
        reserved = make_item(total_copies=1, available_copies=0)
        hidden = make_item(is_visible=False)
        patron = make_patron()
        make_loan(issued, patron)
        make_reservation(reserved, patron)

        assert repo.get_with_status(available.id).status == ItemStatus.AVAILABLE
        assert repo.get_with_status(issued.id).status == ItemStatus.ISSUED
        assert repo.get_with_status(reserved.id).status == ItemStatus.RESERVED
        assert repo.get_with_status(hidden.id).status == ItemStatus.WITHDRAWN


class TestDelete:
    def test_delete_without_history(self, session, make_item):
        item = make_item()
        assert ItemRepository(session).delete(item.id) is True
        assert session.get(ItemDB, item.id) is None

    def test_item_with_history_is_hidden(self, session, make_item, make_patron, make_loan):
        item = make_item()
        make_loan(item, make_patron(), returned=True)

        assert ItemRepository(session).delete(item.id) is False
        session.refresh(item)
        assert item.is_visible is False

    def test_item_on_loan_cannot_be_deleted(self, session, make_item, make_patron, make_loan):
        item = make_item(total_copies=2)
        make_loan(item, make_patron())
        with pytest.raises(ConflictError):
            ItemRepository(session).delete(item.id)

    def test_reserved_item_cannot_be_deleted(
        self, session, make_item, make_patron, make_reservation
    ):
        item = make_item(total_copies=1, available_copies=0)
        make_reservation(item, make_patron())
        with pytest.raises(ConflictError):
            ItemRepository(session).delete(item.id)


class TestSearch:
    def test_search_excludes_hidden_items(self, session, make_item):
        make_item(title="Python Tricks")
        make_item(title="Python Internals", is_visible=False)

        result = ItemRepository(session).search(ItemSearchParams(query="python"))

        assert [item.title for item in result.items] == ["Python Tricks"]
        assert result.total == 1

    def test_search_by_author_only(self, session, make_item):
        make_item(title="Emma", author="Jane Austen")
        make_item(title="Austen Biography", author="Claire Tomalin")

        result = ItemRepository(session).search(
            ItemSearchParams(query="austen", search_type="author")
        )

        assert [item.title for item in result.items] == ["Emma"]

    def test_availability_filter(self, session, make_item):
        make_item(title="On Shelf", total_copies=1)
        make_item(title="All Out", total_copies=1, available_copies=0)

        result = ItemRepository(session).search(ItemSearchParams(availability="unavailable"))

        assert [item.title for item in result.items] == ["All Out"]

    def test_results_ordered_by_title_and_paginated(self, session, make_item):
        for title in ("Charlie", "Alpha", "Bravo"):
            make_item(title=title)

        page = ItemRepository(session).search(
            ItemSearchParams(), PaginationParams(page=1, page_size=2)
        )

        assert [item.title for item in page.items] == ["Alpha", "Bravo"]
        assert page.total_pages == 2

    def test_invalid_search_type(self):
        with pytest.raises(ValueError):
            ItemSearchParams(search_type="publisher")

    def test_unique_subjects(self, session, make_item):
        make_item(subject="Physics")
        make_item(subject="Art")
        make_item(subject="Physics")
        make_item(subject="Hidden", is_visible=False)

        assert ItemRepository(session).unique_subjects() == ["Art", "Physics"]
