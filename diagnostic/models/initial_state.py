"""Factory helpers for creating fresh interview and session documents."""

from __future__ import annotations

from typing import Any

from diagnostic.identity import normalize_contact
from diagnostic.models.state import InterviewKind, Participant, Status
from diagnostic.store.document_store import SERVER_TIMESTAMP


def new_solo_interview(owner_id: str, owner_contact: str) -> dict[str, Any]:
    """Return the document for a solo diagnostic the owner just started."""
    return {
        "owner_id": owner_id,
        "owner_contact": normalize_contact(owner_contact),
        "kind": InterviewKind.SOLO.value,
        "status": Status.ACTIVE.value,
        "progress": 0,
        "forced_complete": False,
        "created_at": SERVER_TIMESTAMP,
    }


def new_team_interview(
    owner_id: str,
    owner_contact: str,
    participants: list[Participant],
    company_name: str = "",
) -> dict[str, Any]:
    """Return the document for a multi-participant diagnostic.

    Participants are de-duplicated by contact; every entry starts
    ``pending`` at 0%.
    """
    planned: list[dict[str, Any]] = []
    seen: set[str] = set()
    for p in participants:
        contact = normalize_contact(p.contact)
        if not contact or contact in seen:
            continue
        seen.add(contact)
        planned.append(
            Participant(name=p.name.strip(), role=p.role.strip(), contact=contact).to_doc()
        )

    return {
        "owner_id": owner_id,
        "owner_contact": normalize_contact(owner_contact),
        "kind": InterviewKind.MULTI_PARTICIPANT.value,
        "status": Status.PENDING.value,
        "progress": 0,
        "created_at": SERVER_TIMESTAMP,
        "company_name": company_name.strip(),
        "participants": planned,
        "participant_contacts": [p["contact"] for p in planned],
    }
