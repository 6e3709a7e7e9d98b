"""Business settings for the storefront.

Protean's own configuration lives in ``domain.toml``. The values here are
storefront rules (shipping, payment, order numbering) read from ``STOREFRONT_*``
environment variables, with defaults matching the Sri Lankan storefront.

Provides get_settings() / set_settings() so tests can swap values.
"""

import os
from dataclasses import dataclass, field


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_list(name: str, default: tuple[str, ...]) -> frozenset[str]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return frozenset(default)
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class StorefrontSettings:
    """Shipping, payment and numbering rules applied at checkout."""

    free_shipping_threshold: float = 5000.0
    flat_shipping_rate: float = 350.0
    pay_on_delivery_methods: frozenset[str] = field(default_factory=lambda: frozenset({"cod"}))
    order_id_prefix: str = "SF"
    currency: str = "LKR"
    currency_symbol: str = "Rs."

    @classmethod
    def from_env(cls) -> "StorefrontSettings":
        return cls(
            free_shipping_threshold=_env_float("STOREFRONT_FREE_SHIPPING_THRESHOLD", 5000.0),
            flat_shipping_rate=_env_float("STOREFRONT_FLAT_SHIPPING_RATE", 350.0),
            pay_on_delivery_methods=_env_list("STOREFRONT_PAY_ON_DELIVERY_METHODS", ("cod",)),
            order_id_prefix=os.getenv("STOREFRONT_ORDER_ID_PREFIX", "SF"),
            currency=os.getenv("STOREFRONT_CURRENCY", "LKR"),
            currency_symbol=os.getenv("STOREFRONT_CURRENCY_SYMBOL", "Rs."),
        )

    def shipping_cost_for(self, subtotal: float) -> float:
        """Flat rate below the free-shipping threshold, free at or above it."""
        return 0.0 if subtotal >= self.free_shipping_threshold else self.flat_shipping_rate

    def is_pay_on_delivery(self, payment_method: str) -> bool:
        return (payment_method or "").lower() in self.pay_on_delivery_methods


_current_settings: StorefrontSettings | None = None


def get_settings() -> StorefrontSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = StorefrontSettings.from_env()
    return _current_settings


def set_settings(settings: StorefrontSettings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    """Drop overrides so the next get_settings() re-reads the environment."""
    global _current_settings
    _current_settings = None
