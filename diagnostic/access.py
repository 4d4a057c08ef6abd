"""Access control for interview views and participation.

Fail closed: anything not explicitly allowed is denied.
"""

from __future__ import annotations

import logging
from enum import Enum

from diagnostic.errors import AccessDeniedError
from diagnostic.identity import Identity, normalize_contact
from diagnostic.models.state import Interview

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


def authorize(
    viewer: Identity | None,
    interview: Interview,
    requested_participant: str | None = None,
) -> Decision:
    """May ``viewer`` see ``interview`` (or one participant's session of it)?

    1. The owner may see everything.
    2. A participant may see their own individual session.
    3. Everyone else is denied.
    """
    if viewer is None:
        return Decision.DENY
    if viewer.account_id and viewer.account_id == interview.owner_id:
        return Decision.ALLOW
    requested = normalize_contact(requested_participant)
    if (
        requested
        and interview.is_multi
        and interview.participant(requested) is not None
        and normalize_contact(viewer.contact) == requested
    ):
        return Decision.ALLOW
    logger.info(
        "Denied %s access to interview %s (requested=%s)",
        viewer.contact,
        interview.id,
        requested or "<aggregate>",
    )
    return Decision.DENY


def authorize_participation(identity: Identity | None, interview: Interview) -> Decision:
    """May ``identity`` take part in (speak in) ``interview``?

    Solo interviews belong to their owner; multi-participant interviews
    accept only planned participants.
    """
    if identity is None:
        return Decision.DENY
    if not interview.is_multi:
        if identity.account_id and identity.account_id == interview.owner_id:
            return Decision.ALLOW
        return Decision.DENY
    if interview.participant(identity.contact) is not None:
        return Decision.ALLOW
    return Decision.DENY


def require(decision: Decision, message: str = "Access denied") -> None:
    if decision is not Decision.ALLOW:
        raise AccessDeniedError(message)
