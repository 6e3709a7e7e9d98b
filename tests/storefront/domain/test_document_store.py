"""Tests for the in-memory document store and its subscriptions."""

import pytest

from storefront.documents import (
    DocumentStoreError,
    InMemoryDocumentStore,
    get_document_store,
    reset_document_store,
    set_document_store,
)


@pytest.fixture()
def store():
    return InMemoryDocumentStore()


class TestReadsAndWrites:
    def test_get_missing_document(self, store):
        assert store.get("carts", "nobody") is None

    def test_get_returns_a_copy(self, store):
        store.set("carts", "u1", {"items": [{"product_id": "A"}]})
        store.get("carts", "u1")["items"].clear()
        assert store.get("carts", "u1")["items"] == [{"product_id": "A"}]

    def test_unavailable_store_raises(self, store):
        store.configure(available=False, failure_reason="offline")
        with pytest.raises(DocumentStoreError, match="offline"):
            store.set("carts", "u1", {})
        with pytest.raises(DocumentStoreError):
            store.get("carts", "u1")

    def test_dropped_write_is_acknowledged_but_not_stored(self, store):
        store.drop_next_writes(1)
        store.set("carts", "u1", {"revision": 1})
        assert store.get("carts", "u1") is None

    def test_delete_missing_document_is_not_an_error(self, store):
        store.delete("carts", "nobody")


class TestSubscriptions:
    def test_subscribe_delivers_current_document_immediately(self, store):
        store.set("carts", "u1", {"revision": 1})
        received = []

        store.subscribe("carts", "u1", received.append)

        assert received == [{"revision": 1}]

    def test_changes_are_pushed_until_cancelled(self, store):
        received = []
        subscription = store.subscribe("carts", "u1", received.append)

        store.set("carts", "u1", {"revision": 1})
        subscription.cancel()
        subscription.cancel()
        store.set("carts", "u1", {"revision": 2})

        assert received == [None, {"revision": 1}]
        assert subscription.active is False

    def test_delete_pushes_none(self, store):
        store.set("carts", "u1", {"revision": 1})
        received = []
        store.subscribe("carts", "u1", received.append)

        store.delete("carts", "u1")

        assert received[-1] is None

    def test_held_pushes_are_delivered_in_order(self, store):
        received = []
        store.subscribe("carts", "u1", received.append)
        store.hold_pushes()

        store.set("carts", "u1", {"revision": 1})
        store.set("carts", "u1", {"revision": 2})
        assert received == [None]

        assert store.release_pushes() == 2
        assert received == [None, {"revision": 1}, {"revision": 2}]

    def test_failing_subscriber_does_not_block_others(self, store):
        received = []

        def broken(_):
            raise RuntimeError("boom")

        store.subscribe("carts", "u1", broken)
        store.subscribe("carts", "u1", received.append)
        store.set("carts", "u1", {"revision": 1})

        assert received[-1] == {"revision": 1}

    def test_subscribe_where_matches_field(self, store):
        store.set("carts", "u1", {"user_id": "u1", "status": "open"})
        store.set("carts", "u2", {"user_id": "u2", "status": "closed"})
        received = []

        store.subscribe_where("carts", "status", "open", received.append)
        store.set("carts", "u2", {"user_id": "u2", "status": "open"})

        assert [doc["id"] for doc in received[0]] == ["u1"]
        assert sorted(doc["id"] for doc in received[-1]) == ["u1", "u2"]


class TestFactory:
    def test_default_is_in_memory(self):
        reset_document_store()
        assert isinstance(get_document_store(), InMemoryDocumentStore)

    def test_override(self, store):
        set_document_store(store)
        assert get_document_store() is store
