"""Shared BDD fixtures and step definitions for the Storefront."""

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

from storefront.cart.merge import MergeResolver
from storefront.order.order import Order, OrderPermissionError, OrderPricing
from storefront.session.cart_session import CartSession
from storefront.session.identity import SessionProvider


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def customer_id():
    return "cust-001"


@pytest.fixture()
def error():
    """Container for the exception a When step captured."""
    return {"exc": None}


@pytest.fixture()
def catalogue(tshirt, mug):
    return {"T-Shirt": tshirt, "Mug": mug}


@pytest.fixture()
def cart_session(documents, local_storage, make_cart):
    provider = SessionProvider()
    cart = make_cart(provider.current)
    session = CartSession(provider, cart, MergeResolver(documents, local_storage, cart_store=cart))
    yield session
    session.stop()


# ---------------------------------------------------------------------------
# Given steps — Cart session
# ---------------------------------------------------------------------------
@given("a shopper browsing as a guest", target_fixture="session")
def guest_session(cart_session):
    cart_session.start()
    return cart_session


# ---------------------------------------------------------------------------
# Given steps — Order
# ---------------------------------------------------------------------------
@given("a pending cash on delivery order", target_fixture="order")
def pending_order(customer_id):
    order = Order.place(
        customer_id=customer_id,
        lines=[
            {
                "product_id": "prod-tshirt",
                "name": "Cotton T-Shirt",
                "unit_price": 1500.0,
                "quantity": 2,
                "vendor_id": "vendor-threads",
                "vendor_name": "Threads LK",
            }
        ],
        shipping_address={"name": "Nimal Perera", "phone": "+94771234567", "street": "12 Galle Road", "city": "Colombo"},
        payment_method="cod",
        pricing=OrderPricing(subtotal=3000.0, shipping_cost=350.0, discount=0.0, total_amount=3350.0),
    )
    order._events.clear()
    return order


# ---------------------------------------------------------------------------
# Then steps — shared
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert order.order_status == status


@then(parsers.cfparse("the order progress is {progress:d}%"))
def order_progress_is(order, progress):
    assert order.progress == progress


@then("the action fails with a validation error")
def action_fails_with_validation_error(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then("the action is not permitted")
def action_not_permitted(error):
    assert isinstance(error["exc"], OrderPermissionError)
