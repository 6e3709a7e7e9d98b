"""Coupon administration — issue, amend, withdraw and reinstate discount codes."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from storefront.coupon.coupon import Coupon, normalize_code
from storefront.domain import storefront


@storefront.command(part_of="Coupon")
class CreateCoupon:
    code = String(required=True, max_length=50)
    description = String(max_length=500)
    discount_type = String(required=True, max_length=20)
    discount_value = Float(required=True)
    min_order_amount = Float(default=0.0)
    max_discount = Float()
    usage_limit = Integer()
    per_user_limit = Integer(default=1)
    start_date = DateTime()
    expiry_date = DateTime()
    is_public = Boolean(default=True)


@storefront.command(part_of="Coupon")
class UpdateCoupon:
    """Change coupon terms. Omitted fields keep their current value."""

    coupon_id = Identifier(required=True)
    description = String(max_length=500)
    discount_type = String(max_length=20)
    discount_value = Float()
    min_order_amount = Float()
    max_discount = Float()
    usage_limit = Integer()
    per_user_limit = Integer()
    start_date = DateTime()
    expiry_date = DateTime()
    is_public = Boolean()


@storefront.command(part_of="Coupon")
class DeactivateCoupon:
    coupon_id = Identifier(required=True)


@storefront.command(part_of="Coupon")
class ReactivateCoupon:
    coupon_id = Identifier(required=True)


@storefront.command_handler(part_of=Coupon)
class ManageCouponHandler:
    @handle(CreateCoupon)
    def create_coupon(self, command):
        code = normalize_code(command.code)
        repo = current_domain.repository_for(Coupon)
        if repo._dao.query.filter(code=code).all().items:
            raise ValidationError({"code": [f"Coupon code {code} already exists"]})

        coupon = Coupon.create(
            code=code,
            discount_type=command.discount_type,
            discount_value=command.discount_value,
            description=command.description,
            min_order_amount=command.min_order_amount,
            max_discount=command.max_discount,
            usage_limit=command.usage_limit,
            per_user_limit=command.per_user_limit,
            start_date=command.start_date,
            expiry_date=command.expiry_date,
            is_public=command.is_public if command.is_public is not None else True,
        )
        repo.add(coupon)
        return str(coupon.id)

    @handle(UpdateCoupon)
    def update_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(command.coupon_id)
        coupon.update_terms(
            description=command.description,
            discount_type=command.discount_type,
            discount_value=command.discount_value,
            min_order_amount=command.min_order_amount,
            max_discount=command.max_discount,
            usage_limit=command.usage_limit,
            per_user_limit=command.per_user_limit,
            start_date=command.start_date,
            expiry_date=command.expiry_date,
            is_public=command.is_public,
        )
        repo.add(coupon)

    @handle(DeactivateCoupon)
    def deactivate_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(command.coupon_id)
        coupon.deactivate()
        repo.add(coupon)

    @handle(ReactivateCoupon)
    def reactivate_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(command.coupon_id)
        coupon.activate()
        repo.add(coupon)
