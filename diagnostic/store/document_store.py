"""Document store interface selecting Firestore or a local JSON backend.

The core only needs a handful of document operations, modeled on
Firestore semantics:

  - ``get`` / ``set(merge=True)`` / ``update`` on ``collection/id`` paths
  - ``add`` to a collection with an auto id
  - ordered, limited listing of a collection
  - single-field equality / array-contains queries

Timestamps are assigned by the store: put ``SERVER_TIMESTAMP`` in a
field and the backend replaces it with its own clock on write.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import diagnostic.settings as settings
from diagnostic.errors import ConfigurationError

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel replaced with the store's clock on write."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

Document = tuple[str, dict[str, Any]]


class DocumentStore(ABC):
    """Minimal document database used by the interview repository."""

    @abstractmethod
    def get(self, path: str) -> dict[str, Any] | None:
        """Return the document at ``path`` or ``None``."""

    @abstractmethod
    def set(self, path: str, data: dict[str, Any], *, merge: bool = True) -> None:
        """Create or partially update a document."""

    @abstractmethod
    def update(self, path: str, data: dict[str, Any]) -> None:
        """Replace the given top-level fields of an existing document."""

    @abstractmethod
    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with an auto id and return the id."""

    @abstractmethod
    def list(
        self,
        collection: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Return ``(id, data)`` pairs of a collection."""

    @abstractmethod
    def where(self, collection: str, field: str, op: str, value: Any) -> list[Document]:
        """Return documents whose ``field`` matches (``==`` or ``array_contains``)."""


def doc_path(*segments: str) -> str:
    """Join path segments, rejecting empty ids and embedded slashes."""
    for segment in segments:
        if not segment or "/" in segment:
            raise ValueError(f"Invalid document path segment: {segment!r}")
    return "/".join(segments)


def build_store() -> DocumentStore:
    """Construct the backend named by ``STORE_BACKEND``.

    ``firestore`` requires credentials and fails fast without them;
    ``local`` is the explicit development backend.
    """
    backend = settings.STORE_BACKEND
    if backend == "firestore":
        from diagnostic.store.firestore_store import FirestoreDocumentStore

        return FirestoreDocumentStore.from_settings()

    if backend == "local":
        from diagnostic.paths import LOCAL_STORE_PATH
        from diagnostic.store.local_store import LocalDocumentStore

        path = Path(settings.LOCAL_STORE_PATH) if settings.LOCAL_STORE_PATH else LOCAL_STORE_PATH
        logger.warning("[dev] Using local JSON document store at %s", path)
        return LocalDocumentStore(path)

    raise ConfigurationError(
        f"Unsupported STORE_BACKEND {backend!r}; expected 'firestore' or 'local'."
    )
