"""Order lookups for customers, vendors and administrators."""

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from storefront.order.order import Order, OrderStatus


def _newest_first(orders):
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


def get_order(order_id: str) -> Order:
    """Raises ObjectNotFoundError when there is no such order."""
    return current_domain.repository_for(Order).get(order_id)


def orders_for_customer(customer_id: str) -> list[Order]:
    repo = current_domain.repository_for(Order)
    return _newest_first(repo._dao.query.filter(customer_id=str(customer_id)).all().items)


def orders_by_status(status: str | None = None, limit: int = 50) -> list[Order]:
    """Admin listing, newest first. ``status=None`` lists every order."""
    repo = current_domain.repository_for(Order)
    if status is None:
        orders = repo._dao.query.all().items
    else:
        try:
            OrderStatus(status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status {status}"]}) from None
        orders = repo._dao.query.filter(order_status=status).all().items
    return _newest_first(orders)[:limit]


def orders_for_vendor(vendor_id: str) -> list[Order]:
    """Orders containing at least one item from ``vendor_id``."""
    orders = current_domain.repository_for(Order)._dao.query.all().items
    return _newest_first(o for o in orders if any(str(v.vendor_id) == str(vendor_id) for v in o.vendor_orders))
