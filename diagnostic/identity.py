"""Identity resolution for interview participants.

A participant acts either through a signed-in account or through an
invitation link whose ``u`` parameter carries their contact identifier in
URL-safe base64.  The encoding only keeps addresses out of plain sight in
links; it proves nothing about who holds the link.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    """A verified, signed-in account."""

    uid: str
    email: str


@dataclass(frozen=True)
class Identity:
    """The acting participant for a request.

    ``contact`` is the normalized contact identifier the participant acts
    as; ``account_id`` is set only when the request carried a verified
    account.
    """

    contact: str
    account_id: str | None = None


def normalize_contact(contact: str | None) -> str:
    """Lower-case and trim a contact identifier ("" for missing)."""
    return (contact or "").strip().lower()


def encode_identifier(contact: str) -> str:
    """Encode a contact identifier for use in an invitation URL."""
    if not contact:
        return ""
    raw = base64.urlsafe_b64encode(contact.encode("utf-8")).decode("ascii")
    return raw.rstrip("=")


def decode_identifier(token: str | None) -> str | None:
    """Decode an invitation token; ``None`` when missing or undecodable."""
    if not token:
        return None
    padded = token.strip() + "=" * (-len(token.strip()) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        logger.info("Ignoring undecodable guest token: %s", e)
        return None
    # Printable, non-blank identifiers only.
    if not decoded.strip() or not decoded.isprintable():
        return None
    return decoded


def resolve_identity(
    account: Account | None,
    guest_token: str | None = None,
) -> Identity | None:
    """Return the acting identity, or ``None`` (fail closed).

    A decodable guest token wins over the signed-in account's own address,
    so an owner can open a teammate's invitation link on a shared device.
    """
    guest = decode_identifier(guest_token)
    account_id = account.uid if account else None
    if guest:
        return Identity(contact=normalize_contact(guest), account_id=account_id)
    if account and account.email:
        return Identity(contact=normalize_contact(account.email), account_id=account_id)
    return None


# ── Account verification boundary ─────────────────────────────────────────


class AccountVerifier(Protocol):
    def verify(self, bearer_token: str) -> Account | None: ...


class FirebaseAccountVerifier:
    """Verify Firebase Authentication ID tokens with ``firebase_admin``."""

    def __init__(self, app: Any = None) -> None:
        self._app = app

    def verify(self, bearer_token: str) -> Account | None:
        from firebase_admin import auth

        try:
            claims = auth.verify_id_token(bearer_token, app=self._app)
        except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, ValueError) as e:
            logger.info("Rejected ID token: %s", e)
            return None
        email = claims.get("email") or ""
        return Account(uid=claims["uid"], email=normalize_contact(email))


class DevAccountVerifier:
    """Development-only verifier accepting ``uid:email`` bearer tokens."""

    def verify(self, bearer_token: str) -> Account | None:
        uid, sep, email = bearer_token.partition(":")
        if not sep or not uid.strip() or not email.strip():
            return None
        logger.warning("[dev] Trusting unverified development account %s", uid)
        return Account(uid=uid.strip(), email=normalize_contact(email))
