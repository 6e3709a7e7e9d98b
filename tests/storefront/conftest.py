from concurrent.futures import Executor, Future

import pytest
from protean.integrations.pytest import DomainFixture

from storefront.cart.local import InMemoryLocalStorage
from storefront.cart.merge import MergeResolver
from storefront.cart.store import CartStore
from storefront.config import reset_settings
from storefront.documents import InMemoryDocumentStore, reset_document_store
from storefront.session.identity import SessionIdentity


class InlineExecutor(Executor):
    """Runs submitted work on the calling thread, so background writes finish before submit() returns."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Cleanup infrastructure after every test"""
    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    current_domain.event_store.store._data_reset()

    reset_settings()
    reset_document_store()


# ---------------------------------------------------------------------------
# Cart fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def documents():
    return InMemoryDocumentStore()


@pytest.fixture()
def local_storage():
    return InMemoryLocalStorage()


@pytest.fixture()
def make_cart(documents, local_storage):
    carts = []

    def _make(identity=None, executor=None):
        cart = CartStore(
            documents,
            local_storage,
            identity=identity or SessionIdentity.anonymous(),
            executor=executor or InlineExecutor(),
        )
        carts.append(cart)
        return cart

    yield _make

    for cart in carts:
        cart.close()


@pytest.fixture()
def merge_resolver(documents, local_storage):
    return MergeResolver(documents, local_storage)


# ---------------------------------------------------------------------------
# Catalogue products as the cart receives them
# ---------------------------------------------------------------------------
@pytest.fixture()
def tshirt():
    return {
        "id": "prod-tshirt",
        "name": "Cotton T-Shirt",
        "price": 1500.0,
        "vendor_id": "vendor-threads",
        "vendor_name": "Threads LK",
        "images": ["https://cdn.example.com/tshirt.jpg"],
    }


@pytest.fixture()
def mug():
    return {
        "id": "prod-mug",
        "name": "Clay Mug",
        "price": 1200.0,
        "sale_price": 1000.0,
        "vendor_id": "vendor-kiln",
        "vendor_name": "Kiln & Co",
    }
