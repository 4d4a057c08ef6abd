"""Interview repository — typed access to interviews, sessions and turns.

Layout in the document store::

    interviews/{id}                                     Interview
    interviews/{id}/messages/{auto}                     Turn (solo)
    interviews/{id}/sessions/{participant}              Session
    interviews/{id}/sessions/{participant}/messages/{auto}  Turn (team)

Every write is a merge-style partial update so concurrent writers never
clobber each other's sibling fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from diagnostic.errors import InterviewNotFoundError
from diagnostic.identity import Account, normalize_contact
from diagnostic.models.initial_state import new_solo_interview, new_team_interview
from diagnostic.models.state import Interview, Participant, Session, Speaker, Status, Turn
from diagnostic.store.document_store import SERVER_TIMESTAMP, DocumentStore, doc_path

logger = logging.getLogger(__name__)

INTERVIEWS = "interviews"


@dataclass(frozen=True)
class SessionScope:
    """Addresses either a participant session or the interview itself.

    ``participant=None`` means the interview document: the session of a
    solo interview, or the aggregate of a multi-participant one.
    """

    interview_id: str
    participant: str | None = None

    @classmethod
    def for_participant(cls, interview: Interview, contact: str) -> SessionScope:
        if interview.is_multi:
            return cls(interview.id, normalize_contact(contact))
        return cls(interview.id)

    @property
    def document(self) -> str:
        if self.participant is None:
            return doc_path(INTERVIEWS, self.interview_id)
        return doc_path(INTERVIEWS, self.interview_id, "sessions", self.participant)

    @property
    def messages(self) -> str:
        return f"{self.document}/messages"


class InterviewRepository:
    """Reads and writes interview state through a ``DocumentStore``."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # ── interviews ────────────────────────────────────────────────────

    def create_solo(self, owner: Account) -> Interview:
        interview_id = self.store.add(INTERVIEWS, new_solo_interview(owner.uid, owner.email))
        logger.info("Created solo interview %s for %s", interview_id, owner.uid)
        return self.get_interview(interview_id)

    def create_team(
        self,
        owner: Account,
        participants: list[Participant],
        company_name: str = "",
    ) -> Interview:
        doc = new_team_interview(owner.uid, owner.email, participants, company_name)
        if not doc["participants"]:
            raise ValueError("A team interview needs at least one participant with a contact.")
        interview_id = self.store.add(INTERVIEWS, doc)
        logger.info(
            "Created team interview %s with %d participants",
            interview_id,
            len(doc["participants"]),
        )
        return self.get_interview(interview_id)

    def get_interview(self, interview_id: str) -> Interview:
        try:
            doc = self.store.get(doc_path(INTERVIEWS, interview_id))
        except ValueError:
            doc = None
        if doc is None:
            raise InterviewNotFoundError(interview_id)
        return Interview.from_doc(interview_id, doc)

    def update_interview(self, interview_id: str, fields: dict[str, Any]) -> None:
        self.store.set(doc_path(INTERVIEWS, interview_id), fields, merge=True)

    def list_owned(self, owner_id: str) -> list[Interview]:
        docs = self.store.where(INTERVIEWS, "owner_id", "==", owner_id)
        return [Interview.from_doc(i, d) for i, d in docs]

    def list_invited(self, contact: str) -> list[Interview]:
        docs = self.store.where(
            INTERVIEWS, "participant_contacts", "array_contains", normalize_contact(contact)
        )
        return [Interview.from_doc(i, d) for i, d in docs]

    def list_for_dashboard(self, account: Account) -> list[Interview]:
        """Owned and invited interviews, newest first, without duplicates."""
        found: dict[str, Interview] = {i.id: i for i in self.list_owned(account.uid)}
        if account.email:
            for interview in self.list_invited(account.email):
                found.setdefault(interview.id, interview)
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(found.values(), key=lambda i: i.created_at or epoch, reverse=True)

    # ── sessions ──────────────────────────────────────────────────────

    def open_session(
        self,
        interview: Interview,
        participant: str,
        account_id: str | None = None,
    ) -> None:
        """Upsert the participant's session and mark it active.

        A completed session (or solo interview) is never reopened.
        """
        scope = SessionScope.for_participant(interview, participant)
        if not interview.is_multi:
            if interview.status is not Status.COMPLETED:
                self.update_interview(interview.id, {"status": Status.ACTIVE.value})
            return

        existing = self.get_session(interview.id, scope.participant or "")
        planned = interview.participant(participant)
        fields: dict[str, Any] = {
            "participant": scope.participant,
            "role": planned.role if planned else "",
            "last_active": SERVER_TIMESTAMP,
        }
        if account_id:
            fields["account_id"] = account_id
        if existing is None or existing.status is not Status.COMPLETED:
            fields["status"] = Status.ACTIVE.value
        self.store.set(scope.document, fields, merge=True)

    def get_session(self, interview_id: str, participant: str) -> Session | None:
        scope = SessionScope(interview_id, normalize_contact(participant))
        doc = self.store.get(scope.document)
        if doc is None:
            return None
        return Session.from_doc(interview_id, scope.participant or "", doc)

    def list_sessions(self, interview_id: str) -> dict[str, Session]:
        collection = f"{doc_path(INTERVIEWS, interview_id)}/sessions"
        return {
            participant: Session.from_doc(interview_id, participant, doc)
            for participant, doc in self.store.list(collection)
        }

    def update_session(self, scope: SessionScope, fields: dict[str, Any]) -> None:
        self.store.set(scope.document, fields, merge=True)

    # ── turns ─────────────────────────────────────────────────────────

    def append_turn(
        self,
        scope: SessionScope,
        speaker: Speaker,
        text: str,
        *,
        synthetic: bool = False,
    ) -> str:
        return self.store.add(
            scope.messages,
            {
                "speaker": speaker.value,
                "text": text,
                "synthetic": synthetic,
                "timestamp": SERVER_TIMESTAMP,
            },
        )

    def list_turns(self, scope: SessionScope, *, include_synthetic: bool = True) -> list[Turn]:
        """All turns of one session in chronological order."""
        docs = self.store.list(scope.messages, order_by="timestamp")
        turns = [Turn.from_doc(i, d) for i, d in docs]
        if include_synthetic:
            return turns
        return [t for t in turns if not t.synthetic]

    def recent_turns(self, scope: SessionScope, limit: int) -> list[Turn]:
        """The most recent ``limit`` visible turns, oldest first."""
        if limit <= 0:
            return []
        # Over-fetch by one to leave room for the hidden primer.
        docs = self.store.list(scope.messages, order_by="timestamp", descending=True, limit=limit + 1)
        turns = [t for t in (Turn.from_doc(i, d) for i, d in docs) if not t.synthetic]
        return list(reversed(turns[:limit]))

    def count_turns(self, scope: SessionScope) -> int:
        """Number of visible (non-synthetic) turns in a session."""
        return len(self.list_turns(scope, include_synthetic=False))

    # ── reports ───────────────────────────────────────────────────────

    def save_report(self, scope: SessionScope, report: dict[str, Any]) -> None:
        """Attach a report to the session or interview, replacing any previous one."""
        self.store.update(
            scope.document,
            {
                "report": report,
                "report_generated_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    def get_report(self, scope: SessionScope) -> dict[str, Any] | None:
        doc = self.store.get(scope.document)
        return (doc or {}).get("report")
