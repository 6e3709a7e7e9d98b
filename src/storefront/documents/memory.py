"""In-memory document store for development and testing.

Behaves like a hosted document database seen from one process:

- subscribers receive the current document immediately and after each write;
- pushes already in flight when a subscription is cancelled are still
  delivered, the way a network feed would;
- callbacks run outside the store's lock, so a subscriber may call back into
  the store.

It can be configured at runtime to fail or to silently drop writes, and pushes
can be held and released to stage races between local edits and remote
snapshots.
"""

import copy
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from storefront.documents.port import (
    Document,
    DocumentCallback,
    DocumentStore,
    DocumentStoreError,
    QueryCallback,
    Subscription,
)

logger = structlog.get_logger(__name__)


@dataclass
class _Watcher:
    collection: str
    subscription: Subscription
    callback: Callable[[Any], None]
    doc_id: str | None = None
    field: str | None = None
    value: Any = None

    def matches(self, collection: str, doc_id: str, before: Document | None, after: Document | None) -> bool:
        if collection != self.collection:
            return False
        if self.doc_id is not None:
            return doc_id == self.doc_id
        return any(doc is not None and doc.get(self.field) == self.value for doc in (before, after))


class InMemoryDocumentStore(DocumentStore):
    """Configurable in-memory document store."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._watchers: list[_Watcher] = []
        self._lock = threading.RLock()
        self._held: list[tuple[Callable[[Any], None], Any]] | None = None
        self.available: bool = True
        self.failure_reason: str = "Document store unavailable"
        self._writes_to_drop: int = 0
        self.calls: list[dict] = []

    # -------------------------------------------------------------------
    # Runtime configuration
    # -------------------------------------------------------------------
    def configure(self, available: bool, failure_reason: str = "Document store unavailable") -> None:
        """Make every read and write succeed or raise DocumentStoreError."""
        self.available = available
        self.failure_reason = failure_reason

    def drop_next_writes(self, count: int = 1) -> None:
        """Acknowledge the next ``count`` writes without storing them."""
        self._writes_to_drop = count

    def hold_pushes(self) -> None:
        """Queue pushes instead of delivering them."""
        with self._lock:
            if self._held is None:
                self._held = []

    def release_pushes(self) -> int:
        """Deliver queued pushes in order and resume immediate delivery."""
        with self._lock:
            pending, self._held = self._held or [], None
        self._deliver(pending)
        return len(pending)

    def subscriber_count(self, collection: str, doc_id: str | None = None) -> int:
        with self._lock:
            return sum(
                1
                for w in self._watchers
                if w.collection == collection and (doc_id is None or w.doc_id == doc_id)
            )

    # -------------------------------------------------------------------
    # DocumentStore
    # -------------------------------------------------------------------
    def get(self, collection: str, doc_id: str) -> Document | None:
        self.calls.append({"method": "get", "collection": collection, "doc_id": doc_id})
        self._ensure_available()
        with self._lock:
            document = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(document)

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        self.calls.append({"method": "set", "collection": collection, "doc_id": doc_id})
        self._ensure_available()
        with self._lock:
            if self._writes_to_drop > 0:
                self._writes_to_drop -= 1
                logger.debug("Dropped document write", collection=collection, doc_id=doc_id)
                return
            documents = self._collections.setdefault(collection, {})
            before = documents.get(doc_id)
            documents[doc_id] = copy.deepcopy(data)
            pushes = self._pushes_for(collection, doc_id, before, documents[doc_id])
        self._dispatch(pushes)

    def delete(self, collection: str, doc_id: str) -> None:
        self.calls.append({"method": "delete", "collection": collection, "doc_id": doc_id})
        self._ensure_available()
        with self._lock:
            before = self._collections.get(collection, {}).pop(doc_id, None)
            if before is None:
                return
            pushes = self._pushes_for(collection, doc_id, before, None)
        self._dispatch(pushes)

    def subscribe(self, collection: str, doc_id: str, callback: DocumentCallback) -> Subscription:
        self._ensure_available()
        subscription = Subscription(on_cancel=self._forget)
        with self._lock:
            self._watchers.append(
                _Watcher(collection=collection, subscription=subscription, callback=callback, doc_id=doc_id)
            )
            current = copy.deepcopy(self._collections.get(collection, {}).get(doc_id))
        self._dispatch([(callback, current)])
        return subscription

    def subscribe_where(self, collection: str, field: str, value: Any, callback: QueryCallback) -> Subscription:
        self._ensure_available()
        subscription = Subscription(on_cancel=self._forget)
        watcher = _Watcher(
            collection=collection,
            subscription=subscription,
            callback=callback,
            field=field,
            value=value,
        )
        with self._lock:
            self._watchers.append(watcher)
            matches = self._query(watcher)
        self._dispatch([(callback, matches)])
        return subscription

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _ensure_available(self) -> None:
        if not self.available:
            raise DocumentStoreError(self.failure_reason)

    def _forget(self, subscription: Subscription) -> None:
        with self._lock:
            self._watchers = [w for w in self._watchers if w.subscription is not subscription]

    def _query(self, watcher: _Watcher) -> list[Document]:
        return [
            {"id": doc_id, **copy.deepcopy(document)}
            for doc_id, document in self._collections.get(watcher.collection, {}).items()
            if document.get(watcher.field) == watcher.value
        ]

    def _pushes_for(self, collection, doc_id, before, after) -> list[tuple[Callable[[Any], None], Any]]:
        """Snapshot the payload for every watcher affected by a change (lock held)."""
        pushes = []
        for watcher in self._watchers:
            if not watcher.matches(collection, doc_id, before, after):
                continue
            if watcher.doc_id is not None:
                pushes.append((watcher.callback, copy.deepcopy(after)))
            else:
                pushes.append((watcher.callback, self._query(watcher)))
        return pushes

    def _dispatch(self, pushes: list[tuple[Callable[[Any], None], Any]]) -> None:
        with self._lock:
            if self._held is not None:
                self._held.extend(pushes)
                return
        self._deliver(pushes)

    def _deliver(self, pushes: list[tuple[Callable[[Any], None], Any]]) -> None:
        for callback, payload in pushes:
            try:
                callback(payload)
            except Exception as exc:
                # One failing subscriber must not starve the others
                logger.error("Subscriber callback failed", error=str(exc))
