"""Ephemeral local storage for the anonymous (guest) cart.

The guest cart lives on the shopper's device, under a single key, as a JSON
list of line documents. LocalStorage is the port; InMemoryLocalStorage backs
development and tests.
"""

import json
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable

import structlog

from storefront.cart.lines import CartLine

logger = structlog.get_logger(__name__)

GUEST_CART_KEY = "guestCart"


class LocalStorage(ABC):
    """Abstract key/value store scoped to one device."""

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove_item(self, key: str) -> None: ...


class InMemoryLocalStorage(LocalStorage):
    def __init__(self) -> None:
        self._items: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


def load_guest_lines(storage: LocalStorage) -> list[CartLine]:
    raw = storage.get_item(GUEST_CART_KEY)
    if not raw:
        return []
    try:
        return [CartLine.from_document(item) for item in json.loads(raw)]
    except (ValueError, KeyError, TypeError) as exc:
        logger.warning("Ignoring unreadable guest cart", error=str(exc))
        return []


def save_guest_lines(storage: LocalStorage, lines: Iterable[CartLine]) -> None:
    storage.set_item(GUEST_CART_KEY, json.dumps([line.to_document() for line in lines]))


def clear_guest_lines(storage: LocalStorage) -> None:
    storage.remove_item(GUEST_CART_KEY)
