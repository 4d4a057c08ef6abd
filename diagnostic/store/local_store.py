"""Local JSON-based document store — development backend.

Provides the same interface as firestore_store.py but keeps documents in
memory, optionally mirrored to a single JSON file.  This lets the system
run with zero infrastructure (just an OpenAI key).
"""

from __future__ import annotations

import copy
import json
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from diagnostic.store.document_store import SERVER_TIMESTAMP, Document, DocumentStore

_DATETIME_TAG = "__datetime__"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if set(obj) == {_DATETIME_TAG}:
        return datetime.fromisoformat(obj[_DATETIME_TAG])
    return obj


def _sort_key(value: Any) -> tuple[int, Any]:
    # Missing values sort first, like Firestore's null ordering.
    if value is None:
        return (0, 0)
    return (1, value)


class LocalDocumentStore(DocumentStore):
    """In-memory document store with optional JSON persistence.

    Server timestamps are strictly increasing within one store, so two
    writes in the same microsecond still order deterministically.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._docs: dict[str, dict[str, Any]] = {}
        self._last_ts: datetime | None = None
        if path is not None and path.exists():
            with open(path, encoding="utf-8") as f:
                self._docs = json.load(f, object_hook=_decode)

    # ── helpers ───────────────────────────────────────────────────────

    def _now(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now

    def _stamp(self, data: dict[str, Any]) -> dict[str, Any]:
        stamped = copy.deepcopy(
            {k: v for k, v in data.items() if v is not SERVER_TIMESTAMP}
        )
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                stamped[key] = self._now()
        return stamped

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._docs, f, indent=2, ensure_ascii=False, default=_encode)
        tmp.replace(self._path)

    def _children(self, collection: str) -> list[Document]:
        prefix = collection.rstrip("/") + "/"
        return [
            (path[len(prefix):], copy.deepcopy(data))
            for path, data in self._docs.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]

    # ── DocumentStore API ─────────────────────────────────────────────

    def get(self, path: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self._docs.get(path)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, path: str, data: dict[str, Any], *, merge: bool = True) -> None:
        with self._lock:
            stamped = self._stamp(data)
            if merge and path in self._docs:
                self._docs[path].update(stamped)
            else:
                self._docs[path] = stamped
            self._flush()

    def update(self, path: str, data: dict[str, Any]) -> None:
        with self._lock:
            if path not in self._docs:
                raise KeyError(f"No document at {path}")
            self._docs[path].update(self._stamp(data))
            self._flush()

    def add(self, collection: str, data: dict[str, Any]) -> str:
        with self._lock:
            doc_id = uuid.uuid4().hex[:20]
            self._docs[f"{collection.rstrip('/')}/{doc_id}"] = self._stamp(data)
            self._flush()
            return doc_id

    def list(
        self,
        collection: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        with self._lock:
            docs = self._children(collection)
        if order_by is not None:
            docs.sort(key=lambda d: _sort_key(d[1].get(order_by)), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def where(self, collection: str, field: str, op: str, value: Any) -> list[Document]:
        with self._lock:
            docs = self._children(collection)
        if op == "==":
            return [d for d in docs if d[1].get(field) == value]
        if op == "array_contains":
            return [d for d in docs if value in (d[1].get(field) or [])]
        raise ValueError(f"Unsupported query operator: {op}")
