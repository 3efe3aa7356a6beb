"""Tests for ItemStore CRUD operations."""

import pytest

from grocery_bot.db import ItemStore
from grocery_bot.errors import StoreError
from grocery_bot.models import (
    CONFIRMING,
    FOUND,
    NOT_FOUND,
    PENDING,
    SELECTED,
    ParsedItem,
)


@pytest.fixture
def store(tmp_path):
    s = ItemStore(tmp_path / "test.db")
    yield s
    s.close()


def _parsed(name, quantity=1, category="Épicerie"):
    return ParsedItem(name=name, quantity=quantity, category=category)


class TestAddAndGet:
    def test_add_items_returns_stored_rows(self, store):
        items = store.add_items(
            [_parsed("lait", 2, "Produits laitiers"), _parsed("pain", 1, "Boulangerie")],
            status=CONFIRMING,
            batch_id="abcd1234",
        )
        assert [i.name for i in items] == ["lait", "pain"]
        assert items[0].quantity == 2
        assert items[0].status == CONFIRMING
        assert items[0].batch_id == "abcd1234"
        assert items[0].id != items[1].id

    def test_quantity_clamped_to_one(self, store):
        (item,) = store.add_items([_parsed("riz", 0)], status=PENDING)
        assert item.quantity == 1

    def test_oversized_quantity_raises_store_error(self, store):
        (item,) = store.add_items([_parsed("riz")], status=PENDING)
        with pytest.raises(StoreError):
            store.update_item(item.id, category="Épicerie", quantity=2**70, note=None)

    def test_get_missing(self, store):
        assert store.get(999) is None


class TestFindByName:
    def test_case_insensitive(self, store):
        store.add_items([_parsed("Lait")], status=PENDING)
        found = store.find_by_name("lait")
        assert found is not None
        assert found.name == "Lait"

    def test_ignores_confirming_items(self, store):
        store.add_items([_parsed("lait")], status=CONFIRMING)
        assert store.find_by_name("lait") is None

    def test_excludes_given_id(self, store):
        (item,) = store.add_items([_parsed("lait")], status=PENDING)
        assert store.find_by_name("lait", exclude_id=item.id) is None

    def test_prefers_active_over_found(self, store):
        found, active = store.add_items([_parsed("pain"), _parsed("pain")], status=PENDING)
        store.update_status(found.id, FOUND)
        match = store.find_by_name("pain")
        assert match.id == active.id

    def test_matches_found_when_nothing_else(self, store):
        (item,) = store.add_items([_parsed("pain")], status=FOUND)
        assert store.find_by_name("pain").id == item.id


class TestListing:
    def test_list_all_in_creation_order(self, store):
        store.add_items([_parsed("a"), _parsed("b"), _parsed("c")], status=PENDING)
        assert [i.name for i in store.list_all()] == ["a", "b", "c"]

    def test_list_by_batch(self, store):
        store.add_items([_parsed("a"), _parsed("b")], status=CONFIRMING, batch_id="b1")
        store.add_items([_parsed("c")], status=CONFIRMING, batch_id="b2")
        assert [i.name for i in store.list_by_batch("b1")] == ["a", "b"]

    def test_list_by_batch_with_status(self, store):
        a, b = store.add_items([_parsed("a"), _parsed("b")], status=CONFIRMING, batch_id="b1")
        store.update_status(a.id, PENDING)
        assert [i.id for i in store.list_by_batch("b1", status=CONFIRMING)] == [b.id]


class TestUpdates:
    def test_update_item_keeps_status_when_not_given(self, store):
        (item,) = store.add_items([_parsed("lait")], status=SELECTED)
        assert store.update_item(
            item.id, category="Produits laitiers", quantity=4, note="demi-écrémé"
        )
        updated = store.get(item.id)
        assert updated.category == "Produits laitiers"
        assert updated.quantity == 4
        assert updated.note == "demi-écrémé"
        assert updated.status == SELECTED

    def test_update_item_sets_status_and_batch(self, store):
        (item,) = store.add_items([_parsed("lait")], status=FOUND, batch_id="old")
        store.update_item(
            item.id, category="X", quantity=1, note=None, status=PENDING, batch_id="new"
        )
        updated = store.get(item.id)
        assert updated.status == PENDING
        assert updated.batch_id == "new"

    def test_update_item_missing(self, store):
        assert store.update_item(42, category="X", quantity=1, note=None) is False

    def test_reset_status(self, store):
        items = store.add_items([_parsed("a"), _parsed("b"), _parsed("c")], status=SELECTED)
        store.update_status(items[2].id, NOT_FOUND)
        assert store.reset_status(SELECTED, PENDING) == 2
        assert [i.status for i in store.list_all()] == [PENDING, PENDING, NOT_FOUND]


class TestDeletes:
    def test_delete_item(self, store):
        (item,) = store.add_items([_parsed("a")], status=PENDING)
        assert store.delete_item(item.id) is True
        assert store.delete_item(item.id) is False

    def test_delete_by_status(self, store):
        a, b = store.add_items([_parsed("a"), _parsed("b")], status=FOUND)
        store.update_status(b.id, PENDING)
        assert store.delete_by_status(FOUND) == 1
        assert [i.id for i in store.list_all()] == [b.id]

    def test_delete_batch_only_confirming(self, store):
        a, b = store.add_items([_parsed("a"), _parsed("b")], status=CONFIRMING, batch_id="b1")
        store.update_status(a.id, PENDING)
        assert store.delete_batch("b1", status=CONFIRMING) == 1
        assert [i.id for i in store.list_all()] == [a.id]

    def test_delete_committed_keeps_confirming(self, store):
        store.add_items([_parsed("a"), _parsed("b")], status=PENDING)
        (waiting,) = store.add_items([_parsed("c")], status=CONFIRMING, batch_id="b1")
        assert store.delete_committed() == 2
        assert [i.id for i in store.list_all()] == [waiting.id]
