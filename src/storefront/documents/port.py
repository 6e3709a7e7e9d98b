"""Document store port (abstract interface).

The durable home of remote carts: documents addressed by collection and id,
read and replaced whole, with push subscriptions that deliver the current
document every time it changes. No joins, ranges or multi-document
transactions.
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

Document = dict[str, Any]
DocumentCallback = Callable[[Document | None], None]
QueryCallback = Callable[[list[Document]], None]


class DocumentStoreError(Exception):
    """The store could not complete a read or write (unavailable, rejected)."""


class Subscription:
    """Handle for a push subscription. Cancelling is idempotent."""

    def __init__(self, on_cancel: Callable[["Subscription"], None] | None = None) -> None:
        self._on_cancel = on_cancel
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        if self._on_cancel is not None:
            self._on_cancel(self)


class DocumentStore(ABC):
    """Abstract document store interface."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Document | None:
        """Return a copy of the document, or None when it does not exist."""
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or replace the document."""
        ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete the document. Deleting a missing document is not an error."""
        ...

    @abstractmethod
    def subscribe(self, collection: str, doc_id: str, callback: DocumentCallback) -> Subscription:
        """Push the current document now and after every change to it."""
        ...

    @abstractmethod
    def subscribe_where(self, collection: str, field: str, value: Any, callback: QueryCallback) -> Subscription:
        """Push every document whose ``field`` equals ``value``, now and after each change."""
        ...
