"""Domain events for the Coupon aggregate."""

from protean.fields import Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Coupon")
class CouponCreated:
    """A discount code was issued."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    discount_type = String(required=True)
    discount_value = Float(required=True)


@storefront.event(part_of="Coupon")
class CouponUpdated:
    """Coupon terms were changed by an administrator."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)


@storefront.event(part_of="Coupon")
class CouponDeactivated:
    """A coupon was withdrawn. It stays on record for historical orders."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)


@storefront.event(part_of="Coupon")
class CouponUsed:
    """An order redeemed the coupon."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    customer_id = Identifier(required=True)
    used_count = Integer(required=True)
