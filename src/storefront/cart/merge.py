"""Guest cart merging — folds the anonymous cart into the user's cart at login.

The merge is a two-phase intent: write the merged document, read it back to
confirm the write landed, and only then clear the guest cart. A write that
fails or cannot be confirmed is retried; when every attempt fails the guest
cart stays on the device and CartMergeError is raised.
"""

import structlog

from storefront.cart.lines import CartLine, cart_document, lines_from_document, merge_lines
from storefront.cart.local import LocalStorage, clear_guest_lines, load_guest_lines
from storefront.cart.store import CARTS, CartStore
from storefront.documents.port import Document, DocumentStore, DocumentStoreError

logger = structlog.get_logger(__name__)


class CartMergeError(Exception):
    """The merged cart could not be written and confirmed."""


class MergeResolver:
    def __init__(
        self,
        documents: DocumentStore,
        local_storage: LocalStorage,
        cart_store: CartStore | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._documents = documents
        self._local_storage = local_storage
        self._cart_store = cart_store
        self._max_attempts = max(1, max_attempts)

    def resolve(self, user_id: str) -> list[CartLine] | None:
        """Merge the guest cart into ``user_id``'s cart.

        Returns the merged lines, or None when there was no guest cart to merge.
        """
        guest_lines = load_guest_lines(self._local_storage)
        if not guest_lines:
            return None

        try:
            remote = self._documents.get(CARTS, user_id)
        except DocumentStoreError as exc:
            raise CartMergeError(f"Could not read the cart of {user_id}") from exc

        merged = merge_lines(lines_from_document(remote), guest_lines)
        revision = int(remote.get("revision", 0)) + 1 if remote else 1
        document = cart_document(user_id, merged, revision)

        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                self._documents.set(CARTS, user_id, document)
                stored = self._documents.get(CARTS, user_id)
            except DocumentStoreError as exc:
                last_error = exc
                logger.warning("Guest cart merge write failed", user_id=user_id, attempt=attempt, error=str(exc))
                continue

            if _confirmed(stored, document):
                break
            last_error = None
            logger.warning("Guest cart merge write not confirmed", user_id=user_id, attempt=attempt)
        else:
            raise CartMergeError(
                f"Could not confirm merged cart for {user_id} after {self._max_attempts} attempts"
            ) from last_error

        clear_guest_lines(self._local_storage)
        if self._cart_store is not None:
            self._cart_store.replace_items(merged, revision=revision)

        logger.info(
            "Merged guest cart",
            user_id=user_id,
            guest_item_count=len(guest_lines),
            merged_item_count=len(merged),
        )
        return merged


def _confirmed(stored: Document | None, written: Document) -> bool:
    """The stored document is ours, or a newer revision written on top of it."""
    if stored is None:
        return False
    stored_revision = int(stored.get("revision", 0))
    if stored_revision > written["revision"]:
        return True
    return stored_revision == written["revision"] and stored.get("items") == written["items"]
