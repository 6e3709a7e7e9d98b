"""Tests for CartStore — optimistic mutations, subscriptions and stale pushes."""

from unittest.mock import patch

import pytest
from protean.exceptions import ValidationError

from storefront.cart.lines import CartLine, cart_document, line_key
from storefront.cart.local import load_guest_lines, save_guest_lines
from storefront.cart.store import CARTS, CartStore
from storefront.session.identity import SessionIdentity

USER = SessionIdentity.user("user-1")


def _remote_items(documents, user_id="user-1"):
    document = documents.get(CARTS, user_id)
    return [(item["product_id"], item["quantity"]) for item in document["items"]]


class TestAnonymousCart:
    def test_add_item_persists_to_local_storage(self, make_cart, local_storage, tshirt):
        cart = make_cart()
        cart.add_item(tshirt, 2)

        stored = load_guest_lines(local_storage)
        assert [(line.product_id, line.quantity) for line in stored] == [("prod-tshirt", 2)]

    def test_loads_existing_guest_cart(self, make_cart, local_storage, tshirt):
        save_guest_lines(local_storage, [CartLine.from_product(tshirt, 3)])

        cart = make_cart()

        assert cart.count() == 3
        assert cart.loading is False

    def test_no_remote_writes_while_anonymous(self, make_cart, documents, tshirt):
        cart = make_cart()
        cart.add_item(tshirt)
        assert not [call for call in documents.calls if call["method"] == "set"]


class TestMutations:
    def test_same_key_accumulates(self, make_cart, documents, tshirt):
        cart = make_cart(USER)
        cart.add_item(tshirt, 1)
        cart.add_item(tshirt, 2)

        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 3
        assert _remote_items(documents) == [("prod-tshirt", 3)]

    def test_variants_are_separate_lines(self, make_cart, tshirt):
        cart = make_cart(USER)
        cart.add_item(tshirt, 1, {"size": "M"})
        cart.add_item(tshirt, 1, {"size": "L"})
        assert len(cart.lines) == 2

    def test_zero_quantity_add_rejected(self, make_cart, tshirt):
        cart = make_cart(USER)
        with pytest.raises(ValidationError):
            cart.add_item(tshirt, 0)
        assert cart.lines == ()

    def test_update_quantity_below_one_removes(self, make_cart, documents, tshirt, mug):
        cart = make_cart(USER)
        cart.add_item(tshirt)
        cart.add_item(mug)

        cart.update_quantity(line_key("prod-tshirt"), 0)

        assert [line.product_id for line in cart.lines] == ["prod-mug"]
        assert _remote_items(documents) == [("prod-mug", 1)]

    def test_update_quantity_sets_value(self, make_cart, tshirt):
        cart = make_cart(USER)
        cart.add_item(tshirt)
        cart.update_quantity(line_key("prod-tshirt"), 5)
        assert cart.count() == 5

    def test_unknown_key_is_a_no_op(self, make_cart, documents, tshirt):
        cart = make_cart(USER)
        cart.add_item(tshirt)
        writes = len(documents.calls)

        cart.update_quantity(line_key("prod-missing"), 4)
        cart.remove_item(line_key("prod-missing"))

        assert len(documents.calls) == writes
        assert cart.count() == 1

    def test_clear_persists_empty_cart(self, make_cart, documents, tshirt):
        cart = make_cart(USER)
        cart.add_item(tshirt)
        cart.clear()

        assert cart.lines == ()
        assert documents.get(CARTS, "user-1")["items"] == []

    def test_total_and_count(self, make_cart, tshirt, mug):
        cart = make_cart(USER)
        cart.add_item(tshirt, 2)
        cart.add_item(mug, 1)

        assert cart.total() == 4000.0
        assert cart.count() == 3

    def test_repeated_zero_update_is_a_no_op(self, make_cart, documents, tshirt, mug):
        cart = make_cart(USER)
        cart.add_item(tshirt)
        cart.add_item(mug)

        cart.update_quantity(line_key("prod-tshirt"), 0)
        writes = len(documents.calls)
        cart.update_quantity(line_key("prod-tshirt"), 0)

        assert len(documents.calls) == writes
        assert [line.product_id for line in cart.lines] == ["prod-mug"]

    def test_total_and_count_after_mixed_changes(self, make_cart, tshirt, mug):
        cart = make_cart(USER)
        cart.add_item(tshirt, 2)
        cart.add_item(mug, 1)
        cart.add_item(tshirt, 1, {"size": "M"})

        cart.update_quantity(line_key("prod-tshirt"), 3)
        cart.remove_item(line_key("prod-mug"))
        cart.update_quantity(line_key("prod-tshirt", {"size": "M"}), 0)

        assert cart.count() == 3
        assert cart.total() == 4500.0

        cart.add_item(mug, 2)

        assert cart.count() == 5
        assert cart.total() == 6500.0

    def test_revision_increases_with_each_write(self, make_cart, documents, tshirt):
        cart = make_cart(USER)
        cart.add_item(tshirt)
        cart.add_item(tshirt)
        assert documents.get(CARTS, "user-1")["revision"] == 2
        assert cart.revision == 2


class TestSnapshot:
    def test_snapshot_is_decoupled_from_cart(self, make_cart, tshirt):
        cart = make_cart(USER)
        cart.add_item(tshirt, 1, {"size": "M"})

        snapshot = cart.snapshot()
        cart.add_item(tshirt, 4, {"size": "M"})
        snapshot[0]["selected_variant"]["size"] = "XL"

        assert snapshot[0]["quantity"] == 1
        assert cart.lines[0].selected_variant == {"size": "M"}


class TestSubscriptions:
    def test_one_subscription_per_authenticated_identity(self, make_cart, documents):
        cart = make_cart(USER)
        assert documents.subscriber_count(CARTS) == 1

        cart.initialize(SessionIdentity.user("user-2"))

        assert documents.subscriber_count(CARTS) == 1
        assert documents.subscriber_count(CARTS, "user-1") == 0
        assert documents.subscriber_count(CARTS, "user-2") == 1

    def test_switching_to_anonymous_cancels_subscription(self, make_cart, documents):
        cart = make_cart(USER)
        cart.initialize(SessionIdentity.anonymous())
        assert documents.subscriber_count(CARTS) == 0

    def test_loading_until_first_push(self, make_cart, documents):
        documents.hold_pushes()
        cart = make_cart(USER)
        assert cart.loading is True

        documents.release_pushes()
        assert cart.loading is False

    def test_remote_push_replaces_lines(self, make_cart, documents, tshirt, mug):
        cart = make_cart(USER)
        cart.add_item(tshirt)

        other_device = [CartLine.from_product(mug, 2)]
        documents.set(CARTS, "user-1", cart_document("user-1", other_device, revision=cart.revision + 1))

        assert [(line.product_id, line.quantity) for line in cart.lines] == [("prod-mug", 2)]

    def test_push_from_superseded_subscription_is_discarded(self, make_cart, documents, tshirt):
        cart = make_cart(USER)

        documents.hold_pushes()
        documents.set(CARTS, "user-1", cart_document("user-1", [CartLine.from_product(tshirt, 1)], revision=1))
        cart.initialize(SessionIdentity.anonymous())
        generation = cart.generation

        with patch("storefront.cart.store.logger") as mock_logger:
            assert documents.release_pushes() == 1

        assert cart.lines == ()
        assert cart.generation == generation
        mock_logger.debug.assert_called_once()
        assert "superseded" in mock_logger.debug.call_args.args[0]

    def test_stale_revision_push_is_discarded(self, make_cart, documents, tshirt):
        cart = make_cart(USER)
        cart.add_item(tshirt)
        cart.add_item(tshirt)

        documents.set(CARTS, "user-1", cart_document("user-1", [], revision=1))

        assert cart.count() == 2
        assert cart.revision == 2

    def test_late_push_does_not_overwrite_newer_local_edit(self, make_cart, documents, tshirt, mug):
        cart = make_cart(USER)
        cart.add_item(tshirt)

        documents.hold_pushes()
        cart.add_item(mug)
        documents.set(CARTS, "user-1", cart_document("user-1", [CartLine.from_product(tshirt, 1)], revision=1))
        documents.release_pushes()

        assert {line.product_id for line in cart.lines} == {"prod-tshirt", "prod-mug"}

    def test_change_before_first_push_is_replayed_on_loaded_cart(self, make_cart, documents, tshirt, mug):
        documents.set(CARTS, "user-1", cart_document("user-1", [CartLine.from_product(tshirt, 4)], revision=5))
        documents.hold_pushes()
        cart = make_cart(USER)

        cart.add_item(mug)

        assert documents.get(CARTS, "user-1")["revision"] == 5
        documents.release_pushes()

        assert [(line.product_id, line.quantity) for line in cart.lines] == [("prod-tshirt", 4), ("prod-mug", 1)]
        assert _remote_items(documents) == [("prod-tshirt", 4), ("prod-mug", 1)]
        assert documents.get(CARTS, "user-1")["revision"] == 6
        assert cart.revision == 6

    def test_clear_before_first_push_empties_loaded_cart(self, make_cart, documents, tshirt):
        documents.set(CARTS, "user-1", cart_document("user-1", [CartLine.from_product(tshirt, 2)], revision=2))
        documents.hold_pushes()
        cart = make_cart(USER)

        cart.clear()
        documents.release_pushes()

        assert cart.lines == ()
        assert documents.get(CARTS, "user-1")["items"] == []
        assert documents.get(CARTS, "user-1")["revision"] == 3


class TestBackgroundWrites:
    def test_failed_write_is_logged_not_raised(self, make_cart, documents, tshirt):
        cart = make_cart(USER)
        documents.configure(available=False, failure_reason="network down")

        with patch("storefront.cart.store.logger") as mock_logger:
            line = cart.add_item(tshirt)

        assert line.product_id == "prod-tshirt"
        assert cart.count() == 1
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["error"] == "network down"

    def test_thread_pool_writer_flushes(self, documents, local_storage, tshirt):
        cart = CartStore(documents, local_storage, identity=USER)
        try:
            cart.add_item(tshirt, 2)
            assert cart.flush(timeout=5) is True
            assert _remote_items(documents) == [("prod-tshirt", 2)]
        finally:
            cart.close()

    def test_close_cancels_subscription(self, make_cart, documents):
        cart = make_cart(USER)
        cart.close()
        assert documents.subscriber_count(CARTS) == 0

    def test_write_after_close_is_logged_not_raised(self, documents, local_storage, tshirt):
        cart = CartStore(documents, local_storage, identity=USER)
        cart.close()
        cart.initialize(USER)
        try:
            with patch("storefront.cart.store.logger") as mock_logger:
                cart.add_item(tshirt)

            assert cart.count() == 1
            mock_logger.error.assert_called_once()
            assert mock_logger.error.call_args.args[0] == "Background cart save rejected"
        finally:
            cart.close()
