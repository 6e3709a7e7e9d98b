"""Document store factory.

Provides get_document_store() / set_document_store() to swap implementations.
InMemoryDocumentStore is the default for development and testing; a hosted
adapter implements the same DocumentStore port.
"""

from storefront.documents.memory import InMemoryDocumentStore
from storefront.documents.port import DocumentStore, DocumentStoreError, Subscription

__all__ = [
    "DocumentStore",
    "DocumentStoreError",
    "InMemoryDocumentStore",
    "Subscription",
    "get_document_store",
    "reset_document_store",
    "set_document_store",
]

_current_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    """Return the current document store. Defaults to InMemoryDocumentStore."""
    global _current_store
    if _current_store is None:
        _current_store = InMemoryDocumentStore()
    return _current_store


def set_document_store(store: DocumentStore) -> None:
    """Override the active document store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_document_store() -> None:
    """Reset to the default document store."""
    global _current_store
    _current_store = None
