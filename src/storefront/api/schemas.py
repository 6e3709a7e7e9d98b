"""Pydantic request/response schemas for the Storefront API.

These are external contracts — separate from internal Protean commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    name: str
    phone: str
    street: str
    city: str
    state: str | None = None
    postal_code: str | None = None
    country: str = "Sri Lanka"


class CartLineSchema(BaseModel):
    product_id: str
    name: str
    unit_price: float = Field(ge=0)
    original_unit_price: float | None = Field(default=None, ge=0)
    quantity: int = Field(ge=1)
    vendor_id: str | None = None
    vendor_name: str | None = None
    image: str | None = None
    selected_variant: dict[str, str] | None = None
    added_at: str | None = None


# ---------------------------------------------------------------------------
# Coupon schemas
# ---------------------------------------------------------------------------
class CreateCouponRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    description: str | None = None
    discount_type: str
    discount_value: float = Field(ge=0)
    min_order_amount: float = Field(default=0.0, ge=0)
    max_discount: float | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    per_user_limit: int = Field(default=1, ge=1)
    start_date: datetime | None = None
    expiry_date: datetime | None = None
    is_public: bool = True

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "code": "SAVE10",
                    "description": "10% off orders over Rs. 1000",
                    "discount_type": "percentage",
                    "discount_value": 10,
                    "min_order_amount": 1000,
                    "max_discount": 500,
                }
            ]
        }
    }


class UpdateCouponRequest(BaseModel):
    description: str | None = None
    discount_type: str | None = None
    discount_value: float | None = Field(default=None, ge=0)
    min_order_amount: float | None = Field(default=None, ge=0)
    max_discount: float | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    per_user_limit: int | None = Field(default=None, ge=1)
    start_date: datetime | None = None
    expiry_date: datetime | None = None
    is_public: bool | None = None


class ValidateCouponRequest(BaseModel):
    code: str
    subtotal: float = Field(ge=0)
    customer_id: str | None = None


class CouponValidationResponse(BaseModel):
    valid: bool
    message: str
    code: str | None = None
    discount: float = 0.0


class CouponResponse(BaseModel):
    coupon_id: str
    code: str
    description: str | None = None
    discount_type: str
    discount_value: float
    min_order_amount: float = 0.0
    max_discount: float | None = None
    expiry_date: datetime | None = None


class CouponAdminResponse(CouponResponse):
    status: str
    is_public: bool = True
    usage_limit: int | None = None
    used_count: int = 0
    per_user_limit: int = 1
    start_date: datetime | None = None
    created_at: datetime | None = None


class CouponIdResponse(BaseModel):
    coupon_id: str


# ---------------------------------------------------------------------------
# Order schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    items: list[CartLineSchema] = Field(min_length=1)
    shipping_address: AddressSchema
    payment_method: str
    coupon_code: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    notes: str | None = None


class TransitionOrderRequest(BaseModel):
    status: str
    note: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class UpdatePaymentStatusRequest(BaseModel):
    payment_status: str
    transaction_id: str | None = None


class UpdateVendorOrderStatusRequest(BaseModel):
    status: str
    tracking_number: str | None = None
    carrier: str | None = None


class RequestReturnRequest(BaseModel):
    item_id: str
    reason: str = Field(min_length=1, max_length=500)


class OrderIdResponse(BaseModel):
    order_id: str


class OrderItemResponse(BaseModel):
    item_id: str
    product_id: str
    name: str
    unit_price: float
    quantity: int
    line_total: float
    vendor_id: str | None = None
    vendor_name: str | None = None
    selected_variant: dict[str, str] | None = None


class VendorOrderResponse(BaseModel):
    vendor_id: str
    vendor_name: str | None = None
    subtotal: float
    item_count: int
    status: str
    tracking_number: str | None = None
    carrier: str | None = None


class ReturnResponse(BaseModel):
    item_id: str
    product_id: str
    reason: str
    status: str
    requested_at: datetime


class TimelineEntryResponse(BaseModel):
    description: str
    status: str | None = None
    occurred_at: datetime


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    order_status: str
    progress: int
    payment_method: str
    payment_status: str
    subtotal: float
    shipping_cost: float
    discount: float
    total_amount: float
    currency: str
    coupon_code: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    items: list[OrderItemResponse]
    vendor_orders: list[VendorOrderResponse]
    timeline: list[TimelineEntryResponse]
    returns: list[ReturnResponse] = []
    created_at: datetime | None = None


class StatusResponse(BaseModel):
    status: str = "ok"
