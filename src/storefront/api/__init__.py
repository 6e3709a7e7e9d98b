"""Storefront API package."""

from storefront.api.errors import register_exception_handlers
from storefront.api.routes import coupon_router, order_router

__all__ = ["coupon_router", "order_router", "register_exception_handlers"]
