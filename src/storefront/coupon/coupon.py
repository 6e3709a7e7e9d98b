"""Coupon aggregate — a discount code with usage limits.

Codes are case-insensitive and stored upper-case. A coupon is never deleted
while orders may reference it; deactivation is the soft delete.
``used_by`` records one entry per redemption, so a customer who redeemed twice
appears twice.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String, Text

from storefront.coupon.events import CouponCreated, CouponDeactivated, CouponUpdated, CouponUsed
from storefront.domain import storefront


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CouponStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


# Fields an administrator may change after issue
_EDITABLE_FIELDS = (
    "description",
    "discount_type",
    "discount_value",
    "min_order_amount",
    "max_discount",
    "usage_limit",
    "per_user_limit",
    "start_date",
    "expiry_date",
    "is_public",
)


@storefront.aggregate
class Coupon:
    code = String(required=True, max_length=50)
    description = String(max_length=500)
    discount_type = String(required=True, choices=DiscountType)
    discount_value = Float(required=True, min_value=0.0)
    min_order_amount = Float(default=0.0, min_value=0.0)
    max_discount = Float(min_value=0.0)
    usage_limit = Integer(min_value=1)
    per_user_limit = Integer(default=1, min_value=1)
    used_count = Integer(default=0, min_value=0)
    used_by = Text()  # JSON array of customer ids, one entry per redemption
    start_date = DateTime()
    expiry_date = DateTime()
    status = String(choices=CouponStatus, default=CouponStatus.ACTIVE.value)
    is_public = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def percentage_cannot_exceed_one_hundred(self):
        if self.discount_type == DiscountType.PERCENTAGE.value and (self.discount_value or 0) > 100:
            raise ValidationError({"discount_value": ["A percentage discount cannot exceed 100"]})

    @invariant.post
    def expiry_must_follow_start(self):
        if self.start_date and self.expiry_date and self.expiry_date < self.start_date:
            raise ValidationError({"expiry_date": ["Expiry date must be after the start date"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        code,
        discount_type,
        discount_value,
        description=None,
        min_order_amount=0.0,
        max_discount=None,
        usage_limit=None,
        per_user_limit=1,
        start_date=None,
        expiry_date=None,
        is_public=True,
    ):
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError({"code": ["Coupon code is required"]})

        now = datetime.now(UTC)
        coupon = cls(
            code=normalized,
            description=description,
            discount_type=discount_type,
            discount_value=discount_value,
            min_order_amount=min_order_amount or 0.0,
            max_discount=max_discount,
            usage_limit=usage_limit,
            per_user_limit=per_user_limit or 1,
            used_count=0,
            used_by=json.dumps([]),
            start_date=start_date,
            expiry_date=expiry_date,
            status=CouponStatus.ACTIVE.value,
            is_public=is_public,
            created_at=now,
            updated_at=now,
        )
        coupon.raise_(
            CouponCreated(
                coupon_id=str(coupon.id),
                code=coupon.code,
                discount_type=coupon.discount_type,
                discount_value=coupon.discount_value,
            )
        )
        return coupon

    # -------------------------------------------------------------------
    # Usage
    # -------------------------------------------------------------------
    @property
    def redemptions(self) -> list[str]:
        return json.loads(self.used_by) if self.used_by else []

    def times_used_by(self, customer_id) -> int:
        """Linear scan of the redemption list."""
        return sum(1 for used in self.redemptions if used == str(customer_id))

    def record_usage(self, customer_id):
        """Record one redemption by ``customer_id``.

        No idempotency guard here: callers invoke this exactly once per order
        that used the coupon.
        """
        self.used_by = json.dumps([*self.redemptions, str(customer_id)])
        self.used_count = (self.used_count or 0) + 1
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CouponUsed(
                coupon_id=str(self.id),
                code=self.code,
                customer_id=str(customer_id),
                used_count=self.used_count,
            )
        )

    # -------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------
    def update_terms(self, **changes):
        """Apply the provided changes; keys left out (or None) keep their value."""
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError({"coupon": [f"Cannot update fields: {', '.join(sorted(unknown))}"]})

        with atomic_change(self):
            for field_name, value in changes.items():
                if value is not None:
                    setattr(self, field_name, value)
            self.updated_at = datetime.now(UTC)

        self.raise_(CouponUpdated(coupon_id=str(self.id), code=self.code))

    def deactivate(self):
        if CouponStatus(self.status) == CouponStatus.INACTIVE:
            raise ValidationError({"status": ["Coupon is already inactive"]})

        self.status = CouponStatus.INACTIVE.value
        self.updated_at = datetime.now(UTC)

        self.raise_(CouponDeactivated(coupon_id=str(self.id), code=self.code))

    def activate(self):
        if CouponStatus(self.status) == CouponStatus.ACTIVE:
            raise ValidationError({"status": ["Coupon is already active"]})

        self.status = CouponStatus.ACTIVE.value
        self.updated_at = datetime.now(UTC)

        self.raise_(CouponUpdated(coupon_id=str(self.id), code=self.code))
