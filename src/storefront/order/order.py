"""Order aggregate — a checked-out cart and its lifecycle.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    PENDING → PROCESSING (admin approval shortcut)
    CANCELLED (from PENDING or CONFIRMED)

DELIVERED and CANCELLED are terminal. Only administrators move an order
through the machine; a customer may cancel their own order while it is still
pending. Each delivered item can be returned once. Every change appends to
the order's timeline.
"""

import json
import secrets
import string
import time
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from storefront.config import StorefrontSettings, get_settings
from storefront.coupon.validation import round_money
from storefront.domain import storefront
from storefront.order.events import (
    OrderCancelled,
    OrderPlaced,
    OrderStatusChanged,
    PaymentStatusUpdated,
    ReturnRequested,
    VendorOrderStatusUpdated,
)


class OrderPermissionError(Exception):
    """The acting user may not perform this change on the order."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    COD = "cod"
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"


class PaymentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ActorRole(Enum):
    ADMIN = "admin"
    VENDOR = "vendor"
    CUSTOMER = "customer"


class ReturnStatus(Enum):
    REQUESTED = "requested"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

_TIMELINE_DESCRIPTIONS = {
    OrderStatus.PENDING: "Order placed",
    OrderStatus.CONFIRMED: "Order confirmed",
    OrderStatus.PROCESSING: "Order is being processed",
    OrderStatus.SHIPPED: "Order shipped",
    OrderStatus.DELIVERED: "Order delivered",
    OrderStatus.CANCELLED: "Order cancelled",
}

ORDER_PROGRESS = {
    OrderStatus.PENDING: 5,
    OrderStatus.CONFIRMED: 25,
    OrderStatus.PROCESSING: 50,
    OrderStatus.SHIPPED: 75,
    OrderStatus.DELIVERED: 100,
}


def progress_for(status: str) -> int:
    """Percentage shown on the order tracking bar."""
    try:
        return ORDER_PROGRESS.get(OrderStatus(status), 0)
    except ValueError:
        return 0


def allowed_transitions(status: str) -> list[str]:
    return sorted(s.value for s in _VALID_TRANSITIONS.get(OrderStatus(status), set()))


_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(number: int) -> str:
    digits = []
    while True:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
        if number == 0:
            return "".join(reversed(digits))


def generate_order_id(prefix: str | None = None) -> str:
    """Human-readable order number: prefix, base-36 timestamp, five random characters."""
    prefix = get_settings().order_id_prefix if prefix is None else prefix
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"{prefix}{timestamp}{suffix}".upper()


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class ShippingAddress:
    """Where the order goes, captured at checkout and never changed afterwards."""

    name = String(required=True, max_length=255)
    phone = String(required=True, max_length=30)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=100, default="Sri Lanka")


@storefront.value_object(part_of="Order")
class OrderPricing:
    """Amounts locked at checkout. ``discount`` never exceeds ``subtotal``."""

    subtotal = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    discount = Float(default=0.0)
    total_amount = Float(default=0.0)
    currency = String(max_length=3, default="LKR")


def calculate_pricing(
    subtotal: float,
    discount: float = 0.0,
    settings: StorefrontSettings | None = None,
) -> OrderPricing:
    settings = settings or get_settings()
    subtotal = round_money(subtotal)
    discount = round_money(min(max(discount or 0.0, 0.0), subtotal))
    shipping_cost = settings.shipping_cost_for(subtotal)
    return OrderPricing(
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        discount=discount,
        total_amount=round_money(subtotal + shipping_cost - discount),
        currency=settings.currency,
    )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    """A cart line as it was at checkout."""

    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    original_unit_price = Float(min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    vendor_id = Identifier()
    vendor_name = String(max_length=255)
    image = String(max_length=1000)
    selected_variant = Text()  # JSON: flat variant mapping

    @property
    def line_total(self) -> float:
        return round_money(self.unit_price * self.quantity)

    @property
    def variant(self) -> dict:
        return json.loads(self.selected_variant) if self.selected_variant else {}


@storefront.entity(part_of="Order")
class VendorOrder:
    """The slice of an order one vendor fulfils."""

    vendor_id = Identifier(required=True)
    vendor_name = String(max_length=255)
    subtotal = Float(default=0.0)
    item_count = Integer(default=0)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    updated_at = DateTime()


@storefront.entity(part_of="Order")
class TimelineEvent:
    sequence = Integer(required=True, min_value=0)
    description = String(required=True, max_length=500)
    status = String(max_length=50)
    occurred_at = DateTime(required=True)


@storefront.entity(part_of="Order")
class ItemReturn:
    """A customer's request to send one delivered item back."""

    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    status = String(choices=ReturnStatus, default=ReturnStatus.REQUESTED.value)
    requested_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    customer_id = Identifier(required=True)
    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    items = HasMany(OrderItem)
    vendor_orders = HasMany(VendorOrder)
    shipping_address = ValueObject(ShippingAddress)
    pricing = ValueObject(OrderPricing)
    coupon_code = String(max_length=50)
    payment_method = String(required=True, choices=PaymentMethod)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    transaction_id = String(max_length=255)
    paid_at = DateTime()
    order_status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    timeline = HasMany(TimelineEvent)
    returns = HasMany(ItemReturn)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    notes = Text()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id,
        lines,
        shipping_address,
        payment_method,
        pricing,
        order_id=None,
        customer_name=None,
        customer_email=None,
        coupon_code=None,
        notes=None,
        settings=None,
    ):
        """Create an order from a cart snapshot.

        Args:
            customer_id: The authenticated shopper.
            lines: Cart line dicts (``CartLine.to_document()`` shape).
            shipping_address: Dict with name, phone, street, city, state,
                postal_code, country.
            payment_method: One of ``PaymentMethod``.
            pricing: ``OrderPricing`` computed for this cart.
        """
        if not lines:
            raise ValidationError({"items": ["Cannot place an order without items"]})

        settings = settings or get_settings()
        now = datetime.now(UTC)
        payment_status = (
            PaymentStatus.PENDING if settings.is_pay_on_delivery(payment_method) else PaymentStatus.PROCESSING
        )

        order = cls(
            id=order_id or generate_order_id(settings.order_id_prefix),
            customer_id=str(customer_id),
            customer_name=customer_name,
            customer_email=customer_email,
            shipping_address=ShippingAddress(**shipping_address),
            pricing=pricing,
            coupon_code=coupon_code,
            payment_method=payment_method,
            payment_status=payment_status.value,
            order_status=OrderStatus.PENDING.value,
            notes=notes,
            created_at=now,
            updated_at=now,
        )

        for line in lines:
            variant = line.get("selected_variant")
            order.add_items(
                OrderItem(
                    product_id=str(line["product_id"]),
                    name=line.get("name") or "",
                    unit_price=float(line["unit_price"]),
                    original_unit_price=line.get("original_unit_price"),
                    quantity=int(line["quantity"]),
                    vendor_id=line.get("vendor_id"),
                    vendor_name=line.get("vendor_name"),
                    image=line.get("image"),
                    selected_variant=json.dumps(variant, sort_keys=True) if variant else None,
                )
            )

        for vendor_order in _group_by_vendor(order.items, now):
            order.add_vendor_orders(vendor_order)

        order._append_timeline(_TIMELINE_DESCRIPTIONS[OrderStatus.PENDING], OrderStatus.PENDING, now)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=str(order.customer_id),
                vendor_ids=json.dumps([v.vendor_id for v in order.vendor_orders]),
                item_count=sum(item.quantity for item in order.items),
                subtotal=pricing.subtotal,
                shipping_cost=pricing.shipping_cost,
                discount=pricing.discount,
                total_amount=pricing.total_amount,
                coupon_code=coupon_code,
                payment_method=payment_method,
                payment_status=order.payment_status,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Timeline
    # -------------------------------------------------------------------
    @property
    def history(self) -> list:
        """Timeline entries, oldest first."""
        return sorted(self.timeline, key=lambda entry: entry.sequence)

    @property
    def progress(self) -> int:
        return progress_for(self.order_status)

    def _append_timeline(self, description, status, occurred_at):
        self.add_timeline(
            TimelineEvent(
                sequence=len(self.timeline),
                description=description,
                status=status.value if isinstance(status, Enum) else status,
                occurred_at=occurred_at,
            )
        )

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.order_status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError(
                {"order_status": [f"Cannot transition from {current.value} to {target_status.value}"]}
            )

    @staticmethod
    def _parse_status(status):
        try:
            return OrderStatus(status)
        except ValueError:
            raise ValidationError({"order_status": [f"Unknown order status {status}"]}) from None

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def transition(self, new_status, actor_role, actor_id=None, note=None, tracking_number=None, carrier=None):
        """Move the order to ``new_status`` on behalf of an administrator."""
        if actor_role != ActorRole.ADMIN.value:
            raise OrderPermissionError(f"Role {actor_role} may not change the status of order {self.id}")

        target = self._parse_status(new_status)
        if target == OrderStatus.CANCELLED:
            return self.cancel(reason=note, actor_role=actor_role, actor_id=actor_id)
        self._assert_can_transition(target)

        previous = OrderStatus(self.order_status)
        now = datetime.now(UTC)
        self.order_status = target.value
        if target == OrderStatus.SHIPPED:
            self.tracking_number = tracking_number or self.tracking_number
            self.carrier = carrier or self.carrier
        self.updated_at = now

        description = _TIMELINE_DESCRIPTIONS[target]
        if note:
            description = f"{description}: {note}"
        self._append_timeline(description, target, now)

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous.value,
                new_status=target.value,
                changed_by=actor_id,
                tracking_number=self.tracking_number,
                carrier=self.carrier,
                changed_at=now,
            )
        )

    def cancel(self, reason=None, actor_role=ActorRole.CUSTOMER.value, actor_id=None):
        """Cancel the order.

        Administrators may cancel anything not yet processing. The customer who
        placed the order may cancel it while it is still pending.
        """
        current = OrderStatus(self.order_status)
        if actor_role == ActorRole.CUSTOMER.value:
            if actor_id is None or str(actor_id) != str(self.customer_id):
                raise OrderPermissionError(f"Only the customer who placed order {self.id} may cancel it")
            if current != OrderStatus.PENDING:
                raise ValidationError({"order_status": ["Only pending orders can be cancelled by the customer"]})
        elif actor_role != ActorRole.ADMIN.value:
            raise OrderPermissionError(f"Role {actor_role} may not cancel order {self.id}")

        self._assert_can_transition(OrderStatus.CANCELLED)

        now = datetime.now(UTC)
        self.order_status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = actor_role
        self.updated_at = now
        for vendor_order in self.vendor_orders:
            vendor_order.status = OrderStatus.CANCELLED.value
            vendor_order.updated_at = now

        description = _TIMELINE_DESCRIPTIONS[OrderStatus.CANCELLED]
        if reason:
            description = f"{description}: {reason}"
        self._append_timeline(description, OrderStatus.CANCELLED, now)

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=current.value,
                reason=reason,
                cancelled_by=actor_role,
                coupon_code=self.coupon_code,
                cancelled_at=now,
            )
        )

    def update_payment_status(self, payment_status, actor_role, transaction_id=None):
        if actor_role != ActorRole.ADMIN.value:
            raise OrderPermissionError(f"Role {actor_role} may not update payment of order {self.id}")
        try:
            target = PaymentStatus(payment_status)
        except ValueError:
            raise ValidationError({"payment_status": [f"Unknown payment status {payment_status}"]}) from None

        previous = self.payment_status
        now = datetime.now(UTC)
        self.payment_status = target.value
        if transaction_id:
            self.transaction_id = transaction_id
        if target == PaymentStatus.COMPLETED:
            self.paid_at = now
        self.updated_at = now

        self._append_timeline(f"Payment {target.value}", self.order_status, now)

        self.raise_(
            PaymentStatusUpdated(
                order_id=str(self.id),
                previous_status=previous,
                payment_status=target.value,
                transaction_id=self.transaction_id,
                updated_at=now,
            )
        )

    def update_vendor_status(
        self, vendor_id, new_status, actor_role, actor_id=None, tracking_number=None, carrier=None
    ):
        """Advance one vendor's slice of the order along the same state machine."""
        if actor_role == ActorRole.VENDOR.value:
            if actor_id is None or str(actor_id) != str(vendor_id):
                raise OrderPermissionError(f"Vendor {actor_id} may not update another vendor's items")
        elif actor_role != ActorRole.ADMIN.value:
            raise OrderPermissionError(f"Role {actor_role} may not update vendor orders")

        vendor_order = next((v for v in self.vendor_orders if str(v.vendor_id) == str(vendor_id)), None)
        if vendor_order is None:
            raise ValidationError({"vendor_id": [f"Order {self.id} has no items from vendor {vendor_id}"]})

        target = self._parse_status(new_status)
        previous = OrderStatus(vendor_order.status)
        if target not in _VALID_TRANSITIONS.get(previous, set()):
            raise ValidationError(
                {"status": [f"Cannot transition vendor order from {previous.value} to {target.value}"]}
            )

        now = datetime.now(UTC)
        vendor_order.status = target.value
        if tracking_number:
            vendor_order.tracking_number = tracking_number
        if carrier:
            vendor_order.carrier = carrier
        vendor_order.updated_at = now
        self.updated_at = now

        label = vendor_order.vendor_name or vendor_order.vendor_id
        self._append_timeline(f"{label}: {_TIMELINE_DESCRIPTIONS[target].lower()}", target, now)

        self.raise_(
            VendorOrderStatusUpdated(
                order_id=str(self.id),
                vendor_id=str(vendor_id),
                previous_status=previous.value,
                new_status=target.value,
                tracking_number=vendor_order.tracking_number,
                carrier=vendor_order.carrier,
                updated_at=now,
            )
        )

    def request_return(self, item_id, reason, actor_role, actor_id=None):
        """Record a return request for one item of a delivered order.

        ``item_id`` is the order item's identity; the product id is accepted too.
        Each item can be returned once.
        """
        if actor_role == ActorRole.CUSTOMER.value:
            if actor_id is None or str(actor_id) != str(self.customer_id):
                raise OrderPermissionError(f"Only the customer who placed order {self.id} may return its items")
        elif actor_role != ActorRole.ADMIN.value:
            raise OrderPermissionError(f"Role {actor_role} may not request returns")

        if OrderStatus(self.order_status) != OrderStatus.DELIVERED:
            raise ValidationError({"order_status": ["Returns can only be requested for delivered orders"]})
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A reason is required to request a return"]})

        item = next(
            (i for i in self.items if str(i.id) == str(item_id) or str(i.product_id) == str(item_id)),
            None,
        )
        if item is None:
            raise ValidationError({"item_id": [f"Order {self.id} has no item {item_id}"]})
        if any(str(r.item_id) == str(item.id) for r in self.returns):
            raise ValidationError({"item_id": [f"A return was already requested for {item.name}"]})

        now = datetime.now(UTC)
        self.add_returns(
            ItemReturn(
                item_id=str(item.id),
                product_id=str(item.product_id),
                reason=reason.strip(),
                status=ReturnStatus.REQUESTED.value,
                requested_at=now,
            )
        )
        self.updated_at = now
        self._append_timeline(f"Return requested: {item.name}", self.order_status, now)

        self.raise_(
            ReturnRequested(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                item_id=str(item.id),
                product_id=str(item.product_id),
                reason=reason.strip(),
                requested_at=now,
            )
        )


def _group_by_vendor(items, now) -> list[VendorOrder]:
    """One VendorOrder per vendor, in first-seen order. Lines without a vendor are skipped."""
    groups: dict[str, dict] = {}
    for item in items:
        if not item.vendor_id:
            continue
        group = groups.setdefault(
            str(item.vendor_id),
            {"vendor_name": item.vendor_name, "subtotal": 0.0, "item_count": 0},
        )
        group["subtotal"] += item.unit_price * item.quantity
        group["item_count"] += item.quantity

    return [
        VendorOrder(
            vendor_id=vendor_id,
            vendor_name=group["vendor_name"],
            subtotal=round_money(group["subtotal"]),
            item_count=group["item_count"],
            status=OrderStatus.PENDING.value,
            updated_at=now,
        )
        for vendor_id, group in groups.items()
    ]
