"""Tests for the Coupon aggregate — creation, usage and administration."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from storefront.coupon.coupon import Coupon, CouponStatus, normalize_code
from storefront.coupon.events import CouponCreated, CouponDeactivated, CouponUpdated, CouponUsed


def _coupon(**overrides):
    data = {"code": "save10", "discount_type": "percentage", "discount_value": 10.0}
    data.update(overrides)
    return Coupon.create(**data)


class TestCreate:
    def test_code_is_normalized(self):
        coupon = _coupon(code="  save10 ")
        assert coupon.code == "SAVE10"
        assert normalize_code("Welcome") == "WELCOME"

    def test_defaults(self):
        coupon = _coupon()
        assert coupon.status == CouponStatus.ACTIVE.value
        assert coupon.used_count == 0
        assert coupon.redemptions == []
        assert coupon.per_user_limit == 1
        assert coupon.min_order_amount == 0.0
        assert coupon.is_public is True

    def test_raises_created_event(self):
        coupon = _coupon()
        assert len(coupon._events) == 1
        event = coupon._events[0]
        assert isinstance(event, CouponCreated)
        assert event.code == "SAVE10"

    def test_blank_code_rejected(self):
        with pytest.raises(ValidationError):
            _coupon(code="   ")

    def test_unknown_discount_type_rejected(self):
        with pytest.raises(ValidationError):
            _coupon(discount_type="bogo")

    def test_percentage_above_one_hundred_rejected(self):
        with pytest.raises(ValidationError):
            _coupon(discount_value=150.0)

    def test_fixed_amount_above_one_hundred_allowed(self):
        coupon = _coupon(discount_type="fixed", discount_value=750.0)
        assert coupon.discount_value == 750.0

    def test_expiry_before_start_rejected(self):
        now = datetime.now(UTC)
        with pytest.raises(ValidationError):
            _coupon(start_date=now, expiry_date=now - timedelta(days=1))


class TestUsage:
    def test_record_usage_appends_and_counts(self):
        coupon = _coupon()
        coupon._events.clear()

        coupon.record_usage("cust-1")
        coupon.record_usage("cust-1")

        assert coupon.used_count == 2
        assert coupon.redemptions == ["cust-1", "cust-1"]
        assert coupon.times_used_by("cust-1") == 2
        assert coupon.times_used_by("cust-2") == 0
        assert all(isinstance(e, CouponUsed) for e in coupon._events)
        assert coupon._events[-1].used_count == 2


class TestAdministration:
    def test_update_terms(self):
        coupon = _coupon()
        coupon._events.clear()

        coupon.update_terms(discount_value=15.0, description=None, usage_limit=100)

        assert coupon.discount_value == 15.0
        assert coupon.usage_limit == 100
        assert isinstance(coupon._events[-1], CouponUpdated)

    def test_switching_type_and_value_together(self):
        coupon = _coupon(discount_type="fixed", discount_value=500.0)
        coupon.update_terms(discount_type="percentage", discount_value=20.0)
        assert coupon.discount_type == "percentage"
        assert coupon.discount_value == 20.0

    def test_update_rejects_unknown_fields(self):
        coupon = _coupon()
        with pytest.raises(ValidationError):
            coupon.update_terms(used_count=0)

    def test_deactivate_is_a_soft_delete(self):
        coupon = _coupon()
        coupon._events.clear()

        coupon.deactivate()

        assert coupon.status == CouponStatus.INACTIVE.value
        assert isinstance(coupon._events[-1], CouponDeactivated)

    def test_deactivate_twice_rejected(self):
        coupon = _coupon()
        coupon.deactivate()
        with pytest.raises(ValidationError):
            coupon.deactivate()

    def test_reactivate(self):
        coupon = _coupon()
        coupon.deactivate()
        coupon.activate()
        assert coupon.status == CouponStatus.ACTIVE.value
