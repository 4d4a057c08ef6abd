"""Interview turn-cycle state machine.

One machine drives one participant's conversation:

    NOT_STARTED → LISTENING → TRANSCRIBING → AWAITING_REPLY → SPEAKING → LISTENING …
                        ↘ (typed text) ↗
    any phase   → FINISHED   (explicit confirmation)

The machine is pure: ``advance(event)`` validates the transition,
updates the phase and queues the commands the driver must run (call a
collaborator, persist a turn, update progress).  Results of those
commands come back in as new events.  Nothing here does I/O, so every
transition is unit-testable without speech or LLM access.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum

from diagnostic.errors import InvalidTransitionError, SessionFinishedError
from diagnostic.models.state import Speaker
from diagnostic.settings import READY_MESSAGE


class Phase(str, Enum):
    NOT_STARTED = "not_started"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    AWAITING_REPLY = "awaiting_reply"
    SPEAKING = "speaking"
    FINISHED = "finished"


# ── Events ────────────────────────────────────────────────────────────────


class Event:
    """Base class for state machine inputs."""


@dataclass(frozen=True)
class Started(Event):
    pass


@dataclass(frozen=True)
class RecordingStopped(Event):
    audio: bytes


@dataclass(frozen=True)
class TextSubmitted(Event):
    text: str
    synthetic: bool = False


@dataclass(frozen=True)
class Transcribed(Event):
    text: str


@dataclass(frozen=True)
class ReplyReceived(Event):
    text: str


@dataclass(frozen=True)
class PlaybackEnded(Event):
    pass


@dataclass(frozen=True)
class CollaboratorFailed(Event):
    stage: str
    error: str = ""


@dataclass(frozen=True)
class FinishConfirmed(Event):
    pass


# ── Commands ──────────────────────────────────────────────────────────────


class Command:
    """Base class for work the driver performs on the machine's behalf."""


@dataclass(frozen=True)
class SubmitText(Command):
    text: str
    synthetic: bool = False


@dataclass(frozen=True)
class Transcribe(Command):
    audio: bytes


@dataclass(frozen=True)
class PersistTurn(Command):
    speaker: Speaker
    text: str
    synthetic: bool = False


@dataclass(frozen=True)
class RequestReply(Command):
    text: str


@dataclass(frozen=True)
class Synthesize(Command):
    text: str


@dataclass(frozen=True)
class UpdateProgress(Command):
    forced: bool = False


@dataclass(frozen=True)
class CompileReports(Command):
    pass


_IN_FLIGHT = (Phase.TRANSCRIBING, Phase.AWAITING_REPLY, Phase.SPEAKING)


class InterviewStateMachine:
    """Explicit turn-cycle state for one participant session."""

    def __init__(self, phase: Phase = Phase.NOT_STARTED) -> None:
        self.phase = phase
        self._commands: deque[Command] = deque()
        self.last_error: str | None = None

    @property
    def finished(self) -> bool:
        return self.phase is Phase.FINISHED

    @property
    def busy(self) -> bool:
        """True while a turn is in flight (no new recording allowed)."""
        return self.phase in _IN_FLIGHT

    def pending_commands(self) -> list[Command]:
        """Drain and return the queued commands in order."""
        commands = list(self._commands)
        self._commands.clear()
        return commands

    def next_command(self) -> Command | None:
        return self._commands.popleft() if self._commands else None

    def advance(self, event: Event) -> Phase:
        """Apply ``event`` and return the new phase."""
        if isinstance(event, FinishConfirmed):
            return self._finish()

        if self.phase is Phase.FINISHED:
            raise SessionFinishedError("The interview is finished; no further turns are accepted.")

        if isinstance(event, Started):
            self._expect(event, Phase.NOT_STARTED)
            self.phase = Phase.LISTENING
            self._commands.append(SubmitText(READY_MESSAGE, synthetic=True))

        elif isinstance(event, RecordingStopped):
            self._expect(event, Phase.LISTENING)
            self.phase = Phase.TRANSCRIBING
            self._commands.append(Transcribe(event.audio))

        elif isinstance(event, TextSubmitted):
            self._expect(event, Phase.LISTENING)
            self._participant_said(event.text, synthetic=event.synthetic)

        elif isinstance(event, Transcribed):
            self._expect(event, Phase.TRANSCRIBING)
            self._participant_said(event.text)

        elif isinstance(event, ReplyReceived):
            self._expect(event, Phase.AWAITING_REPLY)
            self.phase = Phase.SPEAKING
            self._commands.extend(
                [
                    PersistTurn(Speaker.AGENT, event.text),
                    UpdateProgress(forced=False),
                    Synthesize(event.text),
                ]
            )

        elif isinstance(event, PlaybackEnded):
            self._expect(event, Phase.SPEAKING)
            self.phase = Phase.LISTENING

        elif isinstance(event, CollaboratorFailed):
            if self.phase not in _IN_FLIGHT:
                raise InvalidTransitionError(
                    f"{type(event).__name__} is not valid in phase {self.phase.value}"
                )
            # Abort only this turn; anything already persisted stays.
            self._commands.clear()
            self.last_error = f"{event.stage}: {event.error}" if event.error else event.stage
            self.phase = Phase.LISTENING

        else:
            raise InvalidTransitionError(f"Unknown event {event!r}")

        return self.phase

    def _participant_said(self, text: str, synthetic: bool = False) -> None:
        self.phase = Phase.AWAITING_REPLY
        self.last_error = None
        self._commands.extend(
            [
                PersistTurn(Speaker.PARTICIPANT, text, synthetic=synthetic),
                RequestReply(text),
            ]
        )

    def _finish(self) -> Phase:
        if self.phase is Phase.FINISHED:
            return self.phase
        self._commands.clear()
        self.phase = Phase.FINISHED
        self._commands.extend([UpdateProgress(forced=True), CompileReports()])
        return self.phase

    def _expect(self, event: Event, *phases: Phase) -> None:
        if self.phase not in phases:
            raise InvalidTransitionError(
                f"{type(event).__name__} is not valid in phase {self.phase.value}"
            )
