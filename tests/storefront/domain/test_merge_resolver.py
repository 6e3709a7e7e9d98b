"""Tests for MergeResolver — folding the guest cart into the user's cart at login."""

import pytest

from storefront.cart.lines import CartLine, cart_document
from storefront.cart.local import load_guest_lines, save_guest_lines
from storefront.cart.merge import CartMergeError, MergeResolver
from storefront.cart.store import CARTS
from storefront.session.identity import SessionIdentity


def _line(product_id, quantity):
    return CartLine(
        product_id=product_id,
        name=f"Product {product_id}",
        unit_price=500.0,
        original_unit_price=500.0,
        quantity=quantity,
    )


def _quantities(lines):
    return [(line.product_id, line.quantity) for line in lines]


@pytest.fixture()
def remote_cart(documents):
    documents.set(CARTS, "user-1", cart_document("user-1", [_line("A", 1)], revision=3))


class TestResolve:
    def test_sums_shared_keys_and_appends_new_ones(self, documents, local_storage, merge_resolver, remote_cart):
        save_guest_lines(local_storage, [_line("A", 2), _line("B", 1)])

        merged = merge_resolver.resolve("user-1")

        assert _quantities(merged) == [("A", 3), ("B", 1)]
        stored = documents.get(CARTS, "user-1")
        assert [(item["product_id"], item["quantity"]) for item in stored["items"]] == [("A", 3), ("B", 1)]
        assert stored["revision"] == 4

    def test_guest_cart_cleared_after_merge(self, local_storage, merge_resolver, remote_cart):
        save_guest_lines(local_storage, [_line("B", 1)])
        merge_resolver.resolve("user-1")
        assert load_guest_lines(local_storage) == []

    def test_empty_guest_cart_does_nothing(self, documents, merge_resolver, remote_cart):
        writes = len(documents.calls)
        assert merge_resolver.resolve("user-1") is None
        assert len(documents.calls) == writes

    def test_merge_into_missing_remote_cart(self, documents, local_storage, merge_resolver):
        save_guest_lines(local_storage, [_line("B", 2)])

        merged = merge_resolver.resolve("user-9")

        assert _quantities(merged) == [("B", 2)]
        assert documents.get(CARTS, "user-9")["revision"] == 1

    def test_updates_attached_cart_store(self, documents, local_storage, make_cart, remote_cart):
        save_guest_lines(local_storage, [_line("A", 2)])
        cart = make_cart(SessionIdentity.user("user-1"))
        resolver = MergeResolver(documents, local_storage, cart_store=cart)

        resolver.resolve("user-1")

        assert _quantities(cart.lines) == [("A", 3)]
        assert cart.revision == 4


class TestVerification:
    def test_unconfirmed_write_is_retried(self, documents, local_storage, merge_resolver, remote_cart):
        save_guest_lines(local_storage, [_line("B", 1)])
        documents.drop_next_writes(2)

        merged = merge_resolver.resolve("user-1")

        assert _quantities(merged) == [("A", 1), ("B", 1)]
        assert len([c for c in documents.calls if c["method"] == "set"]) == 4  # fixture write + 3 attempts
        assert load_guest_lines(local_storage) == []

    def test_persistent_failure_keeps_guest_cart(self, documents, local_storage, merge_resolver, remote_cart):
        save_guest_lines(local_storage, [_line("B", 1)])
        documents.drop_next_writes(3)

        with pytest.raises(CartMergeError):
            merge_resolver.resolve("user-1")

        assert _quantities(load_guest_lines(local_storage)) == [("B", 1)]
        assert len(documents.get(CARTS, "user-1")["items"]) == 1

    def test_unavailable_store_raises_merge_error(self, documents, local_storage, remote_cart):
        save_guest_lines(local_storage, [_line("B", 1)])
        resolver = MergeResolver(documents, local_storage, max_attempts=2)
        documents.configure(available=False)

        with pytest.raises(CartMergeError):
            resolver.resolve("user-1")

        assert load_guest_lines(local_storage) != []
