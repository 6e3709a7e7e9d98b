"""CartStore — the in-memory cart of one session.

Anonymous sessions keep their cart in local storage. Authenticated sessions
hold exactly one push subscription to the remote cart document and write to it
in the background:

- Mutations are optimistic. In-memory state changes before the call returns;
  the durable write runs on a single-worker executor and a failure is logged,
  not raised.
- Each push replaces the whole in-memory collection (last write wins at
  document granularity), unless it carries a revision older than the one
  already applied locally.
- Changes made before the first push arrives are held and replayed on top of
  the loaded lines, so the first write never overwrites items already stored.
- Switching identity bumps a generation token before the old subscription is
  cancelled. A callback still in flight from the old subscription carries the
  old generation and is discarded.
"""

import threading
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from datetime import UTC, datetime
from functools import partial
from typing import Any

import structlog

from storefront.cart.lines import (
    CartLine,
    LineKey,
    cart_count,
    cart_document,
    cart_total,
    lines_from_document,
)
from storefront.cart.local import LocalStorage, load_guest_lines, save_guest_lines
from storefront.documents.port import Document, DocumentStore, Subscription
from storefront.session.identity import SessionIdentity

logger = structlog.get_logger(__name__)

CARTS = "carts"

Mutation = Callable[[list[CartLine]], list[CartLine] | None]


class CartStore:
    def __init__(
        self,
        documents: DocumentStore,
        local_storage: LocalStorage,
        identity: SessionIdentity | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._documents = documents
        self._local_storage = local_storage
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="cart-writer")

        self._lock = threading.RLock()
        self._lines: list[CartLine] = []
        self._identity: SessionIdentity | None = None
        self._subscription: Subscription | None = None
        self._generation = 0
        self._revision = 0
        self._loading = True
        self._pending: set[Future] = set()
        self._deferred: list[Mutation] = []
        self.last_modified: datetime | None = None

        if identity is not None:
            self.initialize(identity)

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------
    @property
    def identity(self) -> SessionIdentity | None:
        return self._identity

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def lines(self) -> tuple[CartLine, ...]:
        with self._lock:
            return tuple(self._lines)

    def total(self) -> float:
        with self._lock:
            return cart_total(self._lines)

    def count(self) -> int:
        with self._lock:
            return cart_count(self._lines)

    def snapshot(self) -> list[dict[str, Any]]:
        """Deep copy of the current lines, decoupled from later cart changes."""
        with self._lock:
            return [line.to_document() for line in self._lines]

    # -------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------
    def initialize(self, identity: SessionIdentity) -> None:
        """Bind the cart to ``identity``, dropping whatever the previous identity held."""
        with self._lock:
            previous = self._subscription
            self._subscription = None
            self._generation += 1
            generation = self._generation
            self._identity = identity
            self._lines = []
            self._revision = 0
            self._loading = True
            self._deferred = []

        if previous is not None:
            previous.cancel()

        if identity.authenticated:
            subscription = self._documents.subscribe(
                CARTS,
                identity.user_id,
                partial(self._on_remote_snapshot, generation),
            )
            with self._lock:
                if generation == self._generation:
                    self._subscription = subscription
                    logger.debug("Subscribed to remote cart", user_id=identity.user_id, generation=generation)
                    return
            # Another initialize() won the race while we were subscribing
            subscription.cancel()
            return

        lines = load_guest_lines(self._local_storage)
        with self._lock:
            if generation == self._generation:
                self._lines = lines
                self._loading = False

    def _on_remote_snapshot(self, generation: int, document: Document | None) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug(
                    "Discarded push from superseded subscription",
                    generation=generation,
                    current_generation=self._generation,
                )
                return

            self._loading = False
            revision = int(document.get("revision", 0)) if document else 0
            if revision < self._revision:
                logger.debug("Discarded stale cart push", revision=revision, local_revision=self._revision)
                return

            self._lines = lines_from_document(document)
            self._revision = revision
            self._replay_deferred()

    def replace_items(self, lines: Iterable[CartLine], revision: int | None = None) -> None:
        """Replace in-memory lines wholesale.

        Nothing is written unless changes made before the cart loaded are
        waiting to be replayed on top of ``lines``.
        """
        with self._lock:
            self._lines = list(lines)
            if revision is not None:
                self._revision = max(self._revision, revision)
            self._loading = False
            self.last_modified = datetime.now(UTC)
            self._replay_deferred()

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add_item(
        self,
        product: Mapping[str, Any],
        quantity: int = 1,
        variant: Mapping[str, Any] | None = None,
    ) -> CartLine:
        """Add ``quantity`` of ``product``; an existing line with the same key accumulates."""
        candidate = CartLine.from_product(product, quantity, variant)

        def apply(lines):
            existing = next((line for line in lines if line.key == candidate.key), None)
            if existing is None:
                return [*lines, candidate]
            return [
                line.with_quantity(line.quantity + quantity) if line.key == candidate.key else line for line in lines
            ]

        with self._lock:
            self._mutate(apply)
            return self._find(candidate.key)

    def update_quantity(self, key: LineKey, new_quantity: int) -> None:
        """Set a line's quantity; anything below 1 removes the line."""
        if new_quantity < 1:
            self.remove_item(key)
            return

        def apply(lines):
            if not any(line.key == key for line in lines):
                return None
            return [line.with_quantity(new_quantity) if line.key == key else line for line in lines]

        with self._lock:
            self._mutate(apply)

    def remove_item(self, key: LineKey) -> None:
        def apply(lines):
            remaining = [line for line in lines if line.key != key]
            return None if len(remaining) == len(lines) else remaining

        with self._lock:
            self._mutate(apply)

    def clear(self) -> None:
        with self._lock:
            self._mutate(lambda lines: [])

    def _find(self, key: LineKey) -> CartLine | None:
        return next((line for line in self._lines if line.key == key), None)

    def _mutate(self, apply: Mutation) -> None:
        """Apply ``apply`` to the in-memory lines and persist the result (lock held).

        Before the first push of an authenticated cart arrives, the change is
        applied locally and kept; it is replayed on top of the remote lines
        once they load, and only then written.
        """
        lines = apply(self._lines)
        if lines is None:
            return

        identity = self._identity
        if self._loading and identity is not None and identity.authenticated:
            self._lines = lines
            self.last_modified = datetime.now(UTC)
            self._deferred.append(apply)
            logger.debug("Deferred cart change until the remote cart loads", user_id=identity.user_id)
            return

        self._commit(lines)

    def _replay_deferred(self) -> None:
        """Re-apply changes made before the remote cart loaded, then write once (lock held)."""
        if not self._deferred:
            return
        deferred, self._deferred = self._deferred, []
        lines = self._lines
        for apply in deferred:
            result = apply(lines)
            if result is not None:
                lines = result
        logger.debug("Replayed deferred cart changes", count=len(deferred), revision=self._revision)
        self._commit(lines)

    def _commit(self, lines: list[CartLine]) -> None:
        """Apply ``lines`` locally and persist them for the current identity (lock held)."""
        self._lines = lines
        self.last_modified = datetime.now(UTC)

        identity = self._identity
        if identity is None:
            return
        if not identity.authenticated:
            save_guest_lines(self._local_storage, lines)
            return

        self._revision += 1
        document = cart_document(identity.user_id, lines, self._revision, now=self.last_modified)
        try:
            future = self._executor.submit(self._documents.set, CARTS, identity.user_id, document)
        except RuntimeError as exc:
            # The writer has been shut down by close()
            logger.error(
                "Background cart save rejected",
                user_id=identity.user_id,
                revision=self._revision,
                error=str(exc),
            )
            return
        self._pending.add(future)
        future.add_done_callback(partial(self._on_write_done, identity.user_id, self._revision))

    def _on_write_done(self, user_id: str, revision: int, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            logger.warning("Background cart save cancelled", user_id=user_id, revision=revision)
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Background cart save failed",
                user_id=user_id,
                revision=revision,
                error=str(exc),
            )

    # -------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------
    def flush(self, timeout: float | None = None) -> bool:
        """Wait for pending background writes; True when all of them finished."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        """Cancel the subscription and stop the background writer."""
        with self._lock:
            subscription, self._subscription = self._subscription, None
            self._generation += 1
        if subscription is not None:
            subscription.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
