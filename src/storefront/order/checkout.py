"""Checkout — turn the session's cart into an order.

Each step is awaited in turn: snapshot the cart, place the order, then clear
the cart. If placement fails the cart is left untouched and the error
propagates to the caller.
"""

import json

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from storefront.cart.store import CartStore
from storefront.order.placement import PlaceOrder

logger = structlog.get_logger(__name__)


def place_order(
    cart: CartStore,
    shipping_address: dict,
    payment_method: str,
    coupon_code: str | None = None,
    customer_name: str | None = None,
    customer_email: str | None = None,
    notes: str | None = None,
) -> str:
    """Place an order for everything in ``cart`` and empty it. Returns the order id."""
    identity = cart.identity
    if identity is None or not identity.authenticated:
        raise ValidationError({"customer": ["Sign in to place an order"]})

    snapshot = cart.snapshot()
    if not snapshot:
        raise ValidationError({"items": ["Your cart is empty"]})

    order_id = current_domain.process(
        PlaceOrder(
            customer_id=identity.user_id,
            items=json.dumps(snapshot),
            shipping_address=json.dumps(shipping_address),
            payment_method=payment_method,
            coupon_code=coupon_code or None,
            customer_name=customer_name,
            customer_email=customer_email,
            notes=notes,
        ),
        asynchronous=False,
    )

    cart.clear()
    logger.info("Checkout complete", order_id=order_id, user_id=identity.user_id, item_count=len(snapshot))
    return order_id
