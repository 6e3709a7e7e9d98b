"""Storefront bounded context — carts, coupons and orders.

Keeps a shopper's cart consistent across anonymous and authenticated sessions,
validates and prices discount codes, and advances orders through a controlled
lifecycle. Coupons and orders are Protean aggregates; carts live in a document
store with push subscriptions.
"""

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)
