"""Coupon validation and discount computation.

``check_coupon`` is pure: given a coupon record, a subtotal and a customer it
decides whether the coupon applies and what it is worth. Rules run in a fixed
order and the first failing rule supplies the message. Failures are results,
never exceptions, so checkout screens can show the message as-is.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

import structlog
from protean.utils.globals import current_domain

from storefront.config import get_settings
from storefront.coupon.coupon import Coupon, CouponStatus, DiscountType, normalize_code

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CouponValidation:
    valid: bool
    message: str
    coupon: Coupon | None = None
    discount: float = 0.0


def round_money(amount: float) -> float:
    """Round half-up to two decimal places."""
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_amount(amount: float) -> str:
    """Whole amounts print without decimals; anything else with two."""
    return str(int(amount)) if float(amount).is_integer() else f"{amount:.2f}"


def compute_discount(coupon: Coupon, subtotal: float) -> float:
    if DiscountType(coupon.discount_type) == DiscountType.PERCENTAGE:
        discount = subtotal * coupon.discount_value / 100
        if coupon.max_discount:
            discount = min(discount, coupon.max_discount)
    else:
        discount = coupon.discount_value
    return round_money(discount)


def _as_utc(moment: datetime | None) -> datetime | None:
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=UTC)


def check_coupon(
    coupon: Coupon | None,
    subtotal: float,
    customer_id: str | None = None,
    now: datetime | None = None,
) -> CouponValidation:
    """Apply the coupon rules to ``coupon`` for a cart worth ``subtotal``."""
    if coupon is None or CouponStatus(coupon.status) != CouponStatus.ACTIVE:
        return CouponValidation(valid=False, message="Invalid coupon code")

    now = _as_utc(now) or datetime.now(UTC)
    expiry_date = _as_utc(coupon.expiry_date)
    start_date = _as_utc(coupon.start_date)

    if expiry_date and expiry_date < now:
        return CouponValidation(valid=False, message="Coupon has expired", coupon=coupon)

    if start_date and start_date > now:
        return CouponValidation(valid=False, message="Coupon is not yet active", coupon=coupon)

    symbol = get_settings().currency_symbol
    min_order_amount = coupon.min_order_amount or 0.0
    if subtotal < min_order_amount:
        return CouponValidation(
            valid=False,
            message=f"Minimum order amount is {symbol} {format_amount(min_order_amount)}",
            coupon=coupon,
        )

    if coupon.usage_limit and (coupon.used_count or 0) >= coupon.usage_limit:
        return CouponValidation(valid=False, message="Coupon usage limit reached", coupon=coupon)

    if customer_id and coupon.times_used_by(customer_id) >= (coupon.per_user_limit or 1):
        return CouponValidation(valid=False, message="You have already used this coupon", coupon=coupon)

    discount = compute_discount(coupon, subtotal)
    return CouponValidation(
        valid=True,
        message=f"Coupon applied! You save {symbol} {discount:.2f}",
        coupon=coupon,
        discount=discount,
    )


def find_coupon(code: str) -> Coupon | None:
    normalized = normalize_code(code)
    if not normalized:
        return None
    repo = current_domain.repository_for(Coupon)
    matches = repo._dao.query.filter(code=normalized).all().items
    return matches[0] if matches else None


def validate_coupon(
    code: str,
    subtotal: float,
    customer_id: str | None = None,
    now: datetime | None = None,
) -> CouponValidation:
    """Look up ``code`` and check it against the cart."""
    result = check_coupon(find_coupon(code), subtotal, customer_id, now)
    logger.debug(
        "Coupon validated",
        code=normalize_code(code),
        valid=result.valid,
        discount=result.discount,
        reason=None if result.valid else result.message,
    )
    return result


def active_public_coupons(now: datetime | None = None) -> list[Coupon]:
    """Coupons a shopper may browse: active, public, inside their date window and not used up."""
    now = _as_utc(now) or datetime.now(UTC)
    repo = current_domain.repository_for(Coupon)
    coupons = repo._dao.query.filter(status=CouponStatus.ACTIVE.value).all().items

    visible = []
    for coupon in coupons:
        if not coupon.is_public:
            continue
        if coupon.start_date and _as_utc(coupon.start_date) > now:
            continue
        if coupon.expiry_date and _as_utc(coupon.expiry_date) < now:
            continue
        if coupon.usage_limit and (coupon.used_count or 0) >= coupon.usage_limit:
            continue
        visible.append(coupon)
    return sorted(visible, key=lambda c: c.code)


def all_coupons() -> list[Coupon]:
    """Every coupon regardless of status, newest first. For administrators."""
    coupons = current_domain.repository_for(Coupon)._dao.query.all().items
    epoch = datetime.min.replace(tzinfo=UTC)
    return sorted(coupons, key=lambda c: _as_utc(c.created_at) or epoch, reverse=True)
