"""Firestore document store backed by ``firebase-admin``."""

from __future__ import annotations

import logging
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore_v1.base_query import FieldFilter

import diagnostic.settings as settings
from diagnostic.errors import ConfigurationError
from diagnostic.store.document_store import SERVER_TIMESTAMP, Document, DocumentStore

logger = logging.getLogger(__name__)

_APP_NAME = "diagnostic"


def _translate(data: dict[str, Any]) -> dict[str, Any]:
    return {
        key: firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value
        for key, value in data.items()
    }


def get_firebase_app() -> firebase_admin.App:
    """Return the process's Firebase app, initializing it on first use.

    Reads ``FIREBASE_CREDENTIALS`` (service-account JSON path) or falls
    back to application default credentials when only
    ``FIREBASE_PROJECT_ID`` is set.
    """
    try:
        return firebase_admin.get_app(_APP_NAME)
    except ValueError:
        pass

    cred_path = settings.FIREBASE_CREDENTIALS
    project_id = settings.FIREBASE_PROJECT_ID
    if not cred_path and not project_id:
        raise ConfigurationError(
            "Firestore backend selected but neither FIREBASE_CREDENTIALS nor "
            "FIREBASE_PROJECT_ID is set."
        )

    cred = credentials.Certificate(cred_path) if cred_path else credentials.ApplicationDefault()
    options = {"projectId": project_id} if project_id else None
    logger.info("[store] Initializing Firebase app (project=%s)", project_id or "from credentials")
    return firebase_admin.initialize_app(cred, options, name=_APP_NAME)


class FirestoreDocumentStore(DocumentStore):
    """Thin adapter from the store interface to a Firestore client."""

    def __init__(self, client: Any) -> None:
        self._db = client

    @classmethod
    def from_settings(cls) -> FirestoreDocumentStore:
        return cls(firestore.client(app=get_firebase_app()))

    def get(self, path: str) -> dict[str, Any] | None:
        snap = self._db.document(path).get()
        return snap.to_dict() if snap.exists else None

    def set(self, path: str, data: dict[str, Any], *, merge: bool = True) -> None:
        self._db.document(path).set(_translate(data), merge=merge)

    def update(self, path: str, data: dict[str, Any]) -> None:
        self._db.document(path).update(_translate(data))

    def add(self, collection: str, data: dict[str, Any]) -> str:
        _, ref = self._db.collection(collection).add(_translate(data))
        return ref.id

    def list(
        self,
        collection: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        query = self._db.collection(collection)
        if order_by is not None:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return [(snap.id, snap.to_dict()) for snap in query.stream()]

    def where(self, collection: str, field: str, op: str, value: Any) -> list[Document]:
        if op not in ("==", "array_contains"):
            raise ValueError(f"Unsupported query operator: {op}")
        query = self._db.collection(collection).where(filter=FieldFilter(field, op, value))
        return [(snap.id, snap.to_dict()) for snap in query.stream()]
