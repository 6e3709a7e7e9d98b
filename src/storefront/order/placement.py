"""Order placement — command and handler.

The coupon is re-validated here, against the server-side subtotal, and its
usage is recorded in the same unit of work that persists the order.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.config import get_settings
from storefront.coupon.coupon import Coupon
from storefront.coupon.validation import round_money, validate_coupon
from storefront.domain import storefront
from storefront.order.order import Order, calculate_pricing

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of cart line dicts
    shipping_address = Text(required=True)  # JSON: address dict
    payment_method = String(required=True, max_length=20)
    coupon_code = String(max_length=50)
    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    notes = Text()


def _load(raw):
    return json.loads(raw) if isinstance(raw, str) else raw


@storefront.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        lines = _load(command.items) or []
        if not lines:
            raise ValidationError({"items": ["Cannot place an order without items"]})
        shipping_address = _load(command.shipping_address)

        subtotal = round_money(sum(float(line["unit_price"]) * int(line["quantity"]) for line in lines))

        coupon = None
        discount = 0.0
        if command.coupon_code:
            result = validate_coupon(command.coupon_code, subtotal, customer_id=command.customer_id)
            if not result.valid:
                raise ValidationError({"coupon_code": [result.message]})
            coupon, discount = result.coupon, result.discount

        settings = get_settings()
        pricing = calculate_pricing(subtotal, discount, settings)
        order = Order.place(
            customer_id=command.customer_id,
            lines=lines,
            shipping_address=shipping_address,
            payment_method=command.payment_method,
            pricing=pricing,
            customer_name=command.customer_name,
            customer_email=command.customer_email,
            coupon_code=coupon.code if coupon else None,
            notes=command.notes,
            settings=settings,
        )
        current_domain.repository_for(Order).add(order)

        if coupon is not None:
            coupon.record_usage(command.customer_id)
            current_domain.repository_for(Coupon).add(coupon)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            customer_id=str(command.customer_id),
            total_amount=pricing.total_amount,
            coupon_code=order.coupon_code,
        )
        return str(order.id)
