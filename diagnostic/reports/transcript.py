"""Transcript assembly for report compilation.

Synthetic turns (the hidden primer) never reach a report.
"""

from __future__ import annotations

from diagnostic.identity import normalize_contact
from diagnostic.models.state import Interview, Speaker, Turn
from diagnostic.repository import InterviewRepository, SessionScope

SPEAKER_LABELS = {
    Speaker.PARTICIPANT: "Participant",
    Speaker.AGENT: "Consultant",
}


def render_turns(turns: list[Turn]) -> str:
    return "\n".join(f"{SPEAKER_LABELS[t.speaker]}: {t.text}" for t in turns if not t.synthetic)


def build_transcript(
    repository: InterviewRepository,
    interview: Interview,
    participant: str | None = None,
) -> str:
    """Return the text a report is compiled from ("" when nothing was said).

    - solo: the interview's own messages;
    - ``participant`` given: that participant's session only;
    - otherwise: every session, each under a header with name and role.
    """
    if not interview.is_multi:
        return render_turns(repository.list_turns(SessionScope(interview.id), include_synthetic=False))

    if participant is not None:
        scope = SessionScope(interview.id, normalize_contact(participant))
        return render_turns(repository.list_turns(scope, include_synthetic=False))

    blocks = []
    for contact, session in sorted(repository.list_sessions(interview.id).items()):
        text = render_turns(
            repository.list_turns(SessionScope(interview.id, contact), include_synthetic=False)
        )
        if not text:
            continue
        planned = interview.participant(contact)
        name = planned.name if planned and planned.name else contact
        role = session.role or (planned.role if planned else "") or "unspecified"
        blocks.append(f"--- Interview with {name} (Role: {role}) ---\n{text}")
    return "\n\n".join(blocks)
