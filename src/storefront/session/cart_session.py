"""CartSession — keeps one CartStore in step with the session identity.

On every identity transition the cart is re-initialized for the new identity.
A transition from anonymous to authenticated additionally runs the guest cart
merge, once, after the cart has switched to the user's remote document.
"""

import structlog

from storefront.cart.merge import MergeResolver
from storefront.cart.store import CartStore
from storefront.session.identity import SessionIdentity, SessionProvider

logger = structlog.get_logger(__name__)


class CartSession:
    def __init__(self, provider: SessionProvider, cart_store: CartStore, merge_resolver: MergeResolver) -> None:
        self.provider = provider
        self.cart = cart_store
        self._merge_resolver = merge_resolver
        self._unsubscribe = None

    def start(self) -> None:
        self.cart.initialize(self.provider.current)
        self._unsubscribe = self.provider.add_listener(self._on_identity_changed)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.cart.close()

    def _on_identity_changed(self, previous: SessionIdentity, current: SessionIdentity) -> None:
        self.cart.initialize(current)

        if current.authenticated and not previous.authenticated:
            merged = self._merge_resolver.resolve(current.user_id)
            if merged is not None:
                logger.info("Guest cart carried over at login", user_id=current.user_id, item_count=len(merged))
