"""Domain events for the Order aggregate.

These are the extension points for systems outside the storefront core:
payment capture, inventory reservation and notifications react to them.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """A shopper checked out a cart."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    vendor_ids = Text()  # JSON: list of vendor ids
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    shipping_cost = Float(required=True)
    discount = Float(default=0.0)
    total_amount = Float(required=True)
    coupon_code = String()
    payment_method = String(required=True)
    payment_status = String(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_by = String()
    tracking_number = String()
    carrier = String()
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled before it left the warehouse."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String()
    cancelled_by = String(required=True)
    coupon_code = String()
    cancelled_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentStatusUpdated:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String()
    payment_status = String(required=True)
    transaction_id = String()
    updated_at = DateTime(required=True)


@storefront.event(part_of="Order")
class VendorOrderStatusUpdated:
    """One vendor's slice of the order moved on."""

    __version__ = 1

    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    tracking_number = String()
    carrier = String()
    updated_at = DateTime(required=True)


@storefront.event(part_of="Order")
class ReturnRequested:
    """The customer asked to send back one item of a delivered order."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    reason = String(required=True)
    requested_at = DateTime(required=True)
