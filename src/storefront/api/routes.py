"""FastAPI routes for the Storefront — coupons and orders.

The caller's identity arrives in the ``X-Actor-Id`` and ``X-Actor-Role``
headers, set by the gateway after authentication.
"""

import json

from fastapi import APIRouter, Header, HTTPException
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    CancelOrderRequest,
    CouponAdminResponse,
    CouponIdResponse,
    CouponResponse,
    CouponValidationResponse,
    CreateCouponRequest,
    OrderIdResponse,
    OrderItemResponse,
    OrderResponse,
    PlaceOrderRequest,
    RequestReturnRequest,
    ReturnResponse,
    StatusResponse,
    TimelineEntryResponse,
    TransitionOrderRequest,
    UpdateCouponRequest,
    UpdatePaymentStatusRequest,
    UpdateVendorOrderStatusRequest,
    ValidateCouponRequest,
    VendorOrderResponse,
)
from storefront.coupon.management import CreateCoupon, DeactivateCoupon, ReactivateCoupon, UpdateCoupon
from storefront.coupon.validation import active_public_coupons, all_coupons, validate_coupon
from storefront.order.order import ActorRole, Order, OrderPermissionError
from storefront.order.payment import UpdatePaymentStatus
from storefront.order.placement import PlaceOrder
from storefront.order.queries import get_order, orders_by_status, orders_for_customer, orders_for_vendor
from storefront.order.returns import RequestReturn
from storefront.order.transitions import CancelOrder, TransitionOrder
from storefront.order.vendors import UpdateVendorOrderStatus


def _require_admin(role: str) -> None:
    if role != ActorRole.ADMIN.value:
        raise HTTPException(status_code=403, detail="Administrator access required")


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.get("", response_model=list[CouponResponse])
async def list_active_coupons() -> list[CouponResponse]:
    return [
        CouponResponse(
            coupon_id=str(coupon.id),
            code=coupon.code,
            description=coupon.description,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            min_order_amount=coupon.min_order_amount or 0.0,
            max_discount=coupon.max_discount,
            expiry_date=coupon.expiry_date,
        )
        for coupon in active_public_coupons()
    ]


@coupon_router.get("/all", response_model=list[CouponAdminResponse])
async def list_all_coupons(
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> list[CouponAdminResponse]:
    _require_admin(x_actor_role)
    return [
        CouponAdminResponse(
            coupon_id=str(coupon.id),
            code=coupon.code,
            description=coupon.description,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            min_order_amount=coupon.min_order_amount or 0.0,
            max_discount=coupon.max_discount,
            expiry_date=coupon.expiry_date,
            status=coupon.status,
            is_public=bool(coupon.is_public),
            usage_limit=coupon.usage_limit,
            used_count=coupon.used_count or 0,
            per_user_limit=coupon.per_user_limit or 1,
            start_date=coupon.start_date,
            created_at=coupon.created_at,
        )
        for coupon in all_coupons()
    ]


@coupon_router.post("", status_code=201, response_model=CouponIdResponse)
async def create_coupon(
    body: CreateCouponRequest,
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> CouponIdResponse:
    _require_admin(x_actor_role)
    command = CreateCoupon(**body.model_dump())
    result = current_domain.process(command, asynchronous=False)
    return CouponIdResponse(coupon_id=result)


@coupon_router.put("/{coupon_id}", response_model=StatusResponse)
async def update_coupon(
    coupon_id: str,
    body: UpdateCouponRequest,
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> StatusResponse:
    _require_admin(x_actor_role)
    command = UpdateCoupon(coupon_id=coupon_id, **body.model_dump(exclude_none=True))
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@coupon_router.delete("/{coupon_id}", response_model=StatusResponse)
async def deactivate_coupon(
    coupon_id: str,
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> StatusResponse:
    _require_admin(x_actor_role)
    current_domain.process(DeactivateCoupon(coupon_id=coupon_id), asynchronous=False)
    return StatusResponse()


@coupon_router.post("/{coupon_id}/activate", response_model=StatusResponse)
async def reactivate_coupon(
    coupon_id: str,
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> StatusResponse:
    _require_admin(x_actor_role)
    current_domain.process(ReactivateCoupon(coupon_id=coupon_id), asynchronous=False)
    return StatusResponse()


@coupon_router.post("/validate", response_model=CouponValidationResponse)
async def validate(
    body: ValidateCouponRequest,
    x_actor_id: str | None = Header(default=None),
) -> CouponValidationResponse:
    result = validate_coupon(body.code, body.subtotal, customer_id=body.customer_id or x_actor_id)
    return CouponValidationResponse(
        valid=result.valid,
        message=result.message,
        code=result.coupon.code if result.coupon else None,
        discount=result.discount,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        customer_id=str(order.customer_id),
        order_status=order.order_status,
        progress=order.progress,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        subtotal=order.pricing.subtotal,
        shipping_cost=order.pricing.shipping_cost,
        discount=order.pricing.discount,
        total_amount=order.pricing.total_amount,
        currency=order.pricing.currency,
        coupon_code=order.coupon_code,
        tracking_number=order.tracking_number,
        carrier=order.carrier,
        items=[
            OrderItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                name=item.name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
                vendor_id=str(item.vendor_id) if item.vendor_id else None,
                vendor_name=item.vendor_name,
                selected_variant=item.variant or None,
            )
            for item in order.items
        ],
        vendor_orders=[
            VendorOrderResponse(
                vendor_id=str(vendor.vendor_id),
                vendor_name=vendor.vendor_name,
                subtotal=vendor.subtotal,
                item_count=vendor.item_count,
                status=vendor.status,
                tracking_number=vendor.tracking_number,
                carrier=vendor.carrier,
            )
            for vendor in order.vendor_orders
        ],
        timeline=[
            TimelineEntryResponse(description=entry.description, status=entry.status, occurred_at=entry.occurred_at)
            for entry in order.history
        ],
        returns=[
            ReturnResponse(
                item_id=str(entry.item_id),
                product_id=str(entry.product_id),
                reason=entry.reason,
                status=entry.status,
                requested_at=entry.requested_at,
            )
            for entry in sorted(order.returns, key=lambda r: r.requested_at)
        ],
        created_at=order.created_at,
    )


def _assert_can_view(order: Order, actor_id: str | None, actor_role: str) -> None:
    if actor_role == ActorRole.ADMIN.value:
        return
    if actor_role == ActorRole.VENDOR.value and any(str(v.vendor_id) == actor_id for v in order.vendor_orders):
        return
    if actor_id is not None and str(order.customer_id) == actor_id:
        return
    raise OrderPermissionError(f"Not allowed to view order {order.id}")


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(
    body: PlaceOrderRequest,
    x_actor_id: str | None = Header(default=None),
) -> OrderIdResponse:
    if not x_actor_id:
        raise HTTPException(status_code=401, detail="Sign in to place an order")

    command = PlaceOrder(
        customer_id=x_actor_id,
        items=json.dumps([item.model_dump(exclude_none=True) for item in body.items]),
        shipping_address=json.dumps(body.shipping_address.model_dump(exclude_none=True)),
        payment_method=body.payment_method,
        coupon_code=body.coupon_code,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
        notes=body.notes,
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)


@order_router.get("", response_model=list[OrderResponse])
async def list_orders(
    status: str | None = None,
    limit: int = 50,
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> list[OrderResponse]:
    _require_admin(x_actor_role)
    return [_order_response(order) for order in orders_by_status(status, limit=limit)]


@order_router.get("/customer/{customer_id}", response_model=list[OrderResponse])
async def list_customer_orders(
    customer_id: str,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> list[OrderResponse]:
    if x_actor_role != ActorRole.ADMIN.value and x_actor_id != customer_id:
        raise OrderPermissionError(f"Not allowed to list orders of {customer_id}")
    return [_order_response(order) for order in orders_for_customer(customer_id)]


@order_router.get("/vendor/{vendor_id}", response_model=list[OrderResponse])
async def list_vendor_orders(
    vendor_id: str,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> list[OrderResponse]:
    if x_actor_role != ActorRole.ADMIN.value and not (
        x_actor_role == ActorRole.VENDOR.value and x_actor_id == vendor_id
    ):
        raise OrderPermissionError(f"Not allowed to list orders of vendor {vendor_id}")
    return [_order_response(order) for order in orders_for_vendor(vendor_id)]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def read_order(
    order_id: str,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> OrderResponse:
    order = get_order(order_id)
    _assert_can_view(order, x_actor_id, x_actor_role)
    return _order_response(order)


@order_router.post("/{order_id}/status", response_model=StatusResponse)
async def transition_order(
    order_id: str,
    body: TransitionOrderRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> StatusResponse:
    command = TransitionOrder(
        order_id=order_id,
        new_status=body.status,
        actor_role=x_actor_role,
        actor_id=x_actor_id,
        note=body.note,
        tracking_number=body.tracking_number,
        carrier=body.carrier,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> StatusResponse:
    command = CancelOrder(
        order_id=order_id,
        actor_role=x_actor_role,
        actor_id=x_actor_id,
        reason=body.reason,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/payment", response_model=StatusResponse)
async def update_payment_status(
    order_id: str,
    body: UpdatePaymentStatusRequest,
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> StatusResponse:
    command = UpdatePaymentStatus(
        order_id=order_id,
        payment_status=body.payment_status,
        actor_role=x_actor_role,
        transaction_id=body.transaction_id,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/vendors/{vendor_id}/status", response_model=StatusResponse)
async def update_vendor_order_status(
    order_id: str,
    vendor_id: str,
    body: UpdateVendorOrderStatusRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> StatusResponse:
    command = UpdateVendorOrderStatus(
        order_id=order_id,
        vendor_id=vendor_id,
        status=body.status,
        actor_role=x_actor_role,
        actor_id=x_actor_id,
        tracking_number=body.tracking_number,
        carrier=body.carrier,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/returns", status_code=201, response_model=StatusResponse)
async def request_return(
    order_id: str,
    body: RequestReturnRequest,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str = Header(default=ActorRole.CUSTOMER.value),
) -> StatusResponse:
    command = RequestReturn(
        order_id=order_id,
        item_id=body.item_id,
        reason=body.reason,
        actor_role=x_actor_role,
        actor_id=x_actor_id,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()
