"""Record types for interviews, participant sessions and turns.

Documents in the store are plain dicts; these dataclasses are the typed
view the core works with.  ``from_doc`` tolerates missing fields because
documents are written with merge-style partial updates from several
places.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class InterviewKind(str, Enum):
    SOLO = "solo"
    MULTI_PARTICIPANT = "multi_participant"


class Status(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class Speaker(str, Enum):
    PARTICIPANT = "participant"
    AGENT = "agent"


def _status(value: Any) -> Status:
    try:
        return Status(value)
    except ValueError:
        return Status.PENDING


@dataclass
class Participant:
    """A planned participant of a multi-participant interview.

    ``status`` and ``progress`` are a read-optimized copy of the
    participant's Session document.
    """

    name: str
    role: str
    contact: str
    status: Status = Status.PENDING
    progress: float = 0.0

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Participant:
        return cls(
            name=doc.get("name", ""),
            role=doc.get("role", ""),
            contact=doc.get("contact", ""),
            status=_status(doc.get("status", "pending")),
            progress=float(doc.get("progress") or 0),
        )

    def to_doc(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role,
            "contact": self.contact,
            "status": self.status.value,
            "progress": self.progress,
        }


@dataclass
class Interview:
    """One diagnostic engagement (solo or multi-participant)."""

    id: str
    owner_id: str
    owner_contact: str
    kind: InterviewKind
    status: Status = Status.PENDING
    progress: float = 0.0
    created_at: datetime | None = None
    participants: list[Participant] = field(default_factory=list)
    company_name: str = ""
    report: dict[str, Any] | None = None
    report_generated_at: str | None = None
    # Solo interviews double as their own session.
    forced_complete: bool = False

    @property
    def is_multi(self) -> bool:
        return self.kind is InterviewKind.MULTI_PARTICIPANT

    def participant(self, contact: str) -> Participant | None:
        """Return the planned participant with this contact, if any."""
        wanted = contact.strip().lower()
        for p in self.participants:
            if p.contact.strip().lower() == wanted:
                return p
        return None

    @classmethod
    def from_doc(cls, interview_id: str, doc: dict[str, Any]) -> Interview:
        return cls(
            id=interview_id,
            owner_id=doc.get("owner_id", ""),
            owner_contact=doc.get("owner_contact", ""),
            kind=InterviewKind(doc.get("kind", InterviewKind.SOLO.value)),
            status=_status(doc.get("status", "pending")),
            progress=float(doc.get("progress") or 0),
            created_at=doc.get("created_at"),
            participants=[Participant.from_doc(p) for p in doc.get("participants") or []],
            company_name=doc.get("company_name", ""),
            report=doc.get("report"),
            report_generated_at=doc.get("report_generated_at"),
            forced_complete=bool(doc.get("forced_complete", False)),
        )

    def summary(self) -> dict[str, Any]:
        """Dashboard-friendly view without the report body."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "progress": self.progress,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "company_name": self.company_name,
            "has_report": self.report is not None,
            "participants": [p.to_doc() for p in self.participants],
        }


@dataclass
class Session:
    """One participant's progress within a multi-participant interview."""

    interview_id: str
    participant: str
    role: str = ""
    status: Status = Status.PENDING
    progress: float = 0.0
    forced_complete: bool = False
    account_id: str | None = None
    last_active: datetime | None = None
    report: dict[str, Any] | None = None
    report_generated_at: str | None = None

    @classmethod
    def from_doc(cls, interview_id: str, participant: str, doc: dict[str, Any]) -> Session:
        return cls(
            interview_id=interview_id,
            participant=participant,
            role=doc.get("role", ""),
            status=_status(doc.get("status", "pending")),
            progress=float(doc.get("progress") or 0),
            forced_complete=bool(doc.get("forced_complete", False)),
            account_id=doc.get("account_id"),
            last_active=doc.get("last_active"),
            report=doc.get("report"),
            report_generated_at=doc.get("report_generated_at"),
        )


@dataclass(frozen=True)
class Turn:
    """One persisted utterance."""

    speaker: Speaker
    text: str
    timestamp: datetime | None = None
    synthetic: bool = False
    id: str = ""

    @classmethod
    def from_doc(cls, turn_id: str, doc: dict[str, Any]) -> Turn:
        return cls(
            speaker=Speaker(doc.get("speaker", Speaker.PARTICIPANT.value)),
            text=doc.get("text", ""),
            timestamp=doc.get("timestamp"),
            synthetic=bool(doc.get("synthetic", False)),
            id=turn_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "speaker": self.speaker.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
