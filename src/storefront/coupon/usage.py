"""Coupon redemption — records that an order used a coupon."""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from storefront.coupon.coupon import Coupon
from storefront.domain import storefront


@storefront.command(part_of="Coupon")
class RecordCouponUsage:
    coupon_id = Identifier(required=True)
    customer_id = Identifier(required=True)


@storefront.command_handler(part_of=Coupon)
class CouponUsageHandler:
    @handle(RecordCouponUsage)
    def record_usage(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(command.coupon_id)
        coupon.record_usage(command.customer_id)
        repo.add(coupon)
