"""Interviewer agent — conducts the spoken digital-maturity interview.

The agent asks one question at a time across the seven maturity
dimensions, adapting language to a solo (small business) or team
(enterprise) diagnostic.  Replies are read aloud, so the prompt forbids
markdown.

For team interviews each call also carries the participant's role, the
rest of the team, and a short excerpt of what the other participants
said recently, so the agent can cross-check instead of re-asking.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from diagnostic.errors import CollaboratorError
from diagnostic.models.state import Speaker, Turn

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I could not come up with a response. Could you repeat that?"

SYSTEM_PROMPT = """\
You are a senior AI strategy consultant running a professional digital
maturity interview. Your goal is to help the organization adopt AI in a
way that is aligned with its business goals.

RULES — follow strictly:
1. Open with a short professional introduction: explain the purpose of
   the diagnostic and ask the participant to agree to confidentiality.
2. Ask ONE question at a time; this is a spoken conversation.
3. Listen actively. Ask follow-up questions when an answer is not enough
   to place the organization on a maturity level.
4. Do NOT offer technical solutions during the interview; you only
   gather information.
5. When every dimension is covered, summarize the main findings back to
   the participant and thank them.
6. Plain text only: no markdown, lists, asterisks or special symbols.

ASSESSMENT FRAMEWORK (seven dimensions):
- Strategy: business strategy and AI vision, alignment with commercial goals.
- Culture: people, digital culture, talent, openness to change, training.
- Processes: operations, bottlenecks, manual work.
- Data: quality, storage, access and data governance.
- Analytics: how data drives decisions (descriptive vs. predictive).
- Technology: infrastructure, cloud usage, scalability.
- Governance: ethics, security, privacy, bias and legal compliance.

PROFILE:
- Small business / solo (default): simple, direct, pragmatic language;
  look for quick wins and immediate time savings; aim for 20-30 minutes.
- Enterprise team: corporate and technical language (governance,
  compliance, architecture); long-term vision, innovation budgets, AI
  committees, information silos; 30-45 minutes per participant.

Final objective: place the organization's maturity as Initial, Basic,
Intermediate or Advanced.
"""

TEAM_CONTEXT = """\

TEAM INTERVIEW CONTEXT:
You are interviewing {participant}, whose role is {role}.
The rest of the team: {team}.
{focus}
"""

FOCUS_SOLE_MEMBER = "They are the only member, so assess ALL seven dimensions."
FOCUS_TEAM = (
    "There are several members, so focus on the dimensions and questions most "
    "relevant to a {role}. Do not try to cover everything; trust the other "
    "members to cover other areas."
)

SHARED_CONTEXT = """\

SHARED CONTEXT (what other team members said recently):
{excerpts}
Use this to contrast or go deeper; do not re-ask what is already covered.
"""


@dataclass
class ParticipantContext:
    """Per-turn metadata for team interviews."""

    participant: str
    role: str
    team: list[str] = field(default_factory=list)
    excerpts: dict[str, list[Turn]] = field(default_factory=dict)

    def render(self) -> str:
        focus = FOCUS_TEAM.format(role=self.role or "participant") if self.team else FOCUS_SOLE_MEMBER
        text = TEAM_CONTEXT.format(
            participant=self.participant,
            role=self.role or "unspecified",
            team=", ".join(self.team) or "none",
            focus=focus,
        )
        blocks = []
        for other, turns in self.excerpts.items():
            if not turns:
                continue
            lines = "\n".join(f"{t.speaker.value}: {t.text}" for t in turns)
            blocks.append(f"--- Participant: {other} ---\n{lines}")
        if blocks:
            text += SHARED_CONTEXT.format(excerpts="\n".join(blocks))
        return text


def _response_text(content: Any) -> str:
    """Normalize LangChain message content into a text string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            p.get("text", "") if isinstance(p, dict) else str(p)
            for p in content
        ]
        return "\n".join(p for p in parts if p)
    return json.dumps(content)


def build_messages(
    history: Sequence[Turn],
    text: str,
    context: ParticipantContext | None = None,
) -> list[BaseMessage]:
    """System prompt + full history replay + the new participant text."""
    system_text = SYSTEM_PROMPT + (context.render() if context else "")
    messages: list[BaseMessage] = [SystemMessage(content=system_text)]
    for turn in history:
        if turn.speaker is Speaker.AGENT:
            messages.append(AIMessage(content=turn.text))
        else:
            messages.append(HumanMessage(content=turn.text))
    messages.append(HumanMessage(content=text))
    return messages


class InterviewerAgent:
    """Chat collaborator: ``reply(history, text, context) -> str``."""

    def __init__(self, llm: ChatOpenAI) -> None:
        self._llm = llm

    def reply(
        self,
        history: Sequence[Turn],
        text: str,
        context: ParticipantContext | None = None,
    ) -> str:
        messages = build_messages(history, text, context)
        try:
            response = self._llm.invoke(messages)
        except Exception as e:  # noqa: BLE001 — any provider failure aborts the turn
            logger.warning("Interviewer LLM call failed: %s", e)
            raise CollaboratorError("chat", str(e)) from e

        reply = _response_text(response.content).strip()
        return reply or FALLBACK_REPLY
