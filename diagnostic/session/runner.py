"""Session driver — runs the state machine's commands against the world.

``InterviewSession`` owns one participant's ``InterviewStateMachine``.
Each public call feeds one event in, then drains the command queue:
collaborator calls (transcribe, reply, synthesize), persistence through
the repository, and progress updates through the aggregator.  A
``CollaboratorError`` aborts only the current turn: the machine returns
to LISTENING and the caller gets ``status="retry"``.

``SessionRegistry`` keeps one live session per (interview, participant)
for the web process and rebuilds it from the store on a miss.
"""

from __future__ import annotations

import base64
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from diagnostic.agents.interviewer import InterviewerAgent, ParticipantContext
from diagnostic.errors import CollaboratorError, InvalidTransitionError, TurnLimitReachedError
from diagnostic.identity import normalize_contact
from diagnostic.models.state import Interview, Speaker, Status, Turn
from diagnostic.progress import ProgressAggregator, ProgressSnapshot
from diagnostic.repository import InterviewRepository, SessionScope
from diagnostic.session.machine import (
    CollaboratorFailed,
    Command,
    CompileReports,
    FinishConfirmed,
    InterviewStateMachine,
    PersistTurn,
    Phase,
    PlaybackEnded,
    RecordingStopped,
    ReplyReceived,
    RequestReply,
    Started,
    SubmitText,
    Synthesize,
    TextSubmitted,
    Transcribe,
    Transcribed,
    UpdateProgress,
)
from diagnostic.settings import READY_MESSAGE
from diagnostic.speech.synthesizer import Synthesizer
from diagnostic.speech.transcriber import Transcriber
from diagnostic.workflow import ReportService

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """What one call into the session produced."""

    phase: Phase
    status: str = "ok"  # "ok" | "retry" | "finished"
    transcript: str | None = None
    reply: str | None = None
    audio: bytes | None = None
    progress: float | None = None
    aggregate_progress: float | None = None
    error: str | None = None
    # Report targets to compile: None is the interview itself, a contact
    # is that participant's individual report.
    report_targets: list[str | None] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "status": self.status,
            "transcript": self.transcript,
            "reply": self.reply,
            "audio": base64.b64encode(self.audio).decode("ascii") if self.audio else None,
            "progress": self.progress,
            "aggregate_progress": self.aggregate_progress,
            "error": self.error,
        }


class InterviewSession:
    """One participant's live conversation."""

    def __init__(
        self,
        interview: Interview,
        participant: str,
        *,
        repository: InterviewRepository,
        aggregator: ProgressAggregator,
        agent: InterviewerAgent,
        transcriber: Transcriber | None = None,
        synthesizer: Synthesizer | None = None,
        reports: ReportService | None = None,
        machine: InterviewStateMachine | None = None,
        history: list[Turn] | None = None,
        max_turns: int = 60,
        context_window: int = 5,
        auto_report: bool = True,
    ) -> None:
        self.interview = interview
        self.participant = normalize_contact(participant)
        self.scope = SessionScope.for_participant(interview, self.participant)
        self.repository = repository
        self.aggregator = aggregator
        self.agent = agent
        self.transcriber = transcriber
        self.synthesizer = synthesizer
        self.reports = reports
        self.machine = machine or InterviewStateMachine()
        self.history: list[Turn] = list(history or [])
        self.max_turns = max_turns
        self.context_window = context_window
        self.auto_report = auto_report
        self._snapshot: ProgressSnapshot | None = None
        self._lock = threading.Lock()

    @classmethod
    def resume(cls, interview: Interview, participant: str, **kwargs: Any) -> InterviewSession:
        """Rebuild a session from persisted state.

        Completed → FINISHED; any persisted turns → LISTENING with the
        history replayed in timestamp order; otherwise NOT_STARTED.
        """
        repository: InterviewRepository = kwargs["repository"]
        scope = SessionScope.for_participant(interview, participant)

        if interview.is_multi:
            session = repository.get_session(interview.id, scope.participant or "")
            completed = session is not None and session.status is Status.COMPLETED
        else:
            completed = interview.status is Status.COMPLETED

        history = repository.list_turns(scope)
        if completed:
            phase = Phase.FINISHED
        elif history:
            phase = Phase.LISTENING
        else:
            phase = Phase.NOT_STARTED
        logger.debug(
            "Resumed session %s/%s in phase %s with %d turns",
            interview.id,
            scope.participant,
            phase.value,
            len(history),
        )
        return cls(
            interview,
            participant,
            machine=InterviewStateMachine(phase),
            history=history,
            **kwargs,
        )

    # ── public operations ─────────────────────────────────────────────

    @property
    def phase(self) -> Phase:
        return self.machine.phase

    @property
    def participant_turns(self) -> int:
        return sum(1 for t in self.history if t.speaker is Speaker.PARTICIPANT and not t.synthetic)

    def visible_history(self) -> list[Turn]:
        return [t for t in self.history if not t.synthetic]

    def start(self, account_id: str | None = None) -> TurnResult:
        """Open the session and prime the agent with the hidden ready message.

        On an already-started session this returns the last agent reply
        without calling any collaborator.
        """
        with self._exclusive():
            self.repository.open_session(self.interview, self.participant, account_id)
            if self.machine.finished:
                return TurnResult(phase=self.phase, status="finished")
            if self.phase is Phase.NOT_STARTED:
                logger.info("Starting session %s/%s", self.interview.id, self.scope.participant)
                self.machine.advance(Started())
                return self._drain(TurnResult(phase=self.phase))

            last = next(
                (t.text for t in reversed(self.history) if t.speaker is Speaker.AGENT),
                None,
            )
            if last is None and self.phase is Phase.LISTENING:
                # The greeting failed earlier; prime the agent again.
                self.machine.advance(TextSubmitted(READY_MESSAGE, synthetic=True))
                return self._drain(TurnResult(phase=self.phase))
            return TurnResult(phase=self.phase, reply=last)

    def submit_audio(self, audio: bytes) -> TurnResult:
        with self._exclusive():
            self._check_turn_limit()
            self.machine.advance(RecordingStopped(audio))
            return self._drain(TurnResult(phase=self.phase))

    def submit_text(self, text: str) -> TurnResult:
        with self._exclusive():
            self._check_turn_limit()
            self.machine.advance(TextSubmitted(text))
            return self._drain(TurnResult(phase=self.phase, transcript=text))

    def playback_ended(self) -> TurnResult:
        with self._exclusive():
            self.machine.advance(PlaybackEnded())
            return TurnResult(phase=self.phase)

    def finish(self, *, run_reports: bool = True) -> TurnResult:
        """Confirm the end of the interview (idempotent).

        With ``run_reports=False`` the report targets are returned for the
        caller to compile later via ``compile_reports``.
        """
        with self._exclusive():
            if self.machine.finished:
                return TurnResult(phase=self.phase, status="finished", progress=100)
            self.machine.advance(FinishConfirmed())
            result = self._drain(TurnResult(phase=self.phase, status="finished"))
        if run_reports:
            self.compile_reports(result.report_targets)
        return result

    def compile_reports(self, targets: list[str | None]) -> None:
        """Generate the given reports; failures are logged, never raised."""
        if self.reports is None:
            return
        for target in targets:
            try:
                self.reports.generate(self.interview.id, target)
            except Exception:  # noqa: BLE001 — auto reports never fail the finish
                logger.exception(
                    "Automatic report failed for interview %s (participant=%s)",
                    self.interview.id,
                    target,
                )

    # ── command execution ─────────────────────────────────────────────

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise InvalidTransitionError("A turn is already in flight for this session.")
        try:
            yield
        finally:
            self._lock.release()

    def _check_turn_limit(self) -> None:
        if self.machine.finished:
            return
        if self.participant_turns >= self.max_turns:
            raise TurnLimitReachedError(
                f"Turn limit of {self.max_turns} reached; finish the interview to continue."
            )

    def _drain(self, result: TurnResult) -> TurnResult:
        while True:
            command = self.machine.next_command()
            if command is None:
                break
            try:
                self._execute(command, result)
            except CollaboratorError as e:
                logger.warning(
                    "Turn aborted for %s/%s at %s: %s",
                    self.interview.id,
                    self.scope.participant,
                    e.stage,
                    e,
                )
                self.machine.advance(CollaboratorFailed(e.stage, str(e)))
                result.status = "retry"
                result.error = str(e)
        result.phase = self.phase
        return result

    def _execute(self, command: Command, result: TurnResult) -> None:
        if isinstance(command, SubmitText):
            self.machine.advance(TextSubmitted(command.text, synthetic=command.synthetic))

        elif isinstance(command, Transcribe):
            if self.transcriber is None:
                raise CollaboratorError("transcribe", "no transcriber configured")
            text = self.transcriber.transcribe(command.audio)
            result.transcript = text
            self.machine.advance(Transcribed(text))

        elif isinstance(command, PersistTurn):
            turn_id = self.repository.append_turn(
                self.scope, command.speaker, command.text, synthetic=command.synthetic
            )
            self.history.append(
                Turn(speaker=command.speaker, text=command.text, synthetic=command.synthetic, id=turn_id)
            )

        elif isinstance(command, RequestReply):
            # The participant turn was persisted just before this command.
            prior = self.history[:-1]
            reply = self.agent.reply(prior, command.text, self._participant_context())
            result.reply = reply
            self.machine.advance(ReplyReceived(reply))

        elif isinstance(command, UpdateProgress):
            count = self.repository.count_turns(self.scope)
            self._snapshot = self.aggregator.record(
                self.interview.id, self.scope, count, forced=command.forced
            )
            result.progress = self._snapshot.progress
            if self._snapshot.aggregate is not None:
                result.aggregate_progress = self._snapshot.aggregate.progress

        elif isinstance(command, Synthesize):
            if self.synthesizer is None:
                # Text-only client: nothing to play back.
                self.machine.advance(PlaybackEnded())
            else:
                result.audio = self.synthesizer.synthesize(command.text)

        elif isinstance(command, CompileReports):
            result.report_targets = self._report_targets()

    def _report_targets(self) -> list[str | None]:
        snapshot = self._snapshot
        if not self.auto_report or snapshot is None:
            return []
        targets: list[str | None] = []
        if not self.interview.is_multi:
            if snapshot.completed_now and self.repository.get_report(self.scope) is None:
                targets.append(None)
            return targets
        if snapshot.completed_now and self.repository.get_report(self.scope) is None:
            targets.append(self.scope.participant)
        if snapshot.aggregate_completed_now and (
            self.repository.get_report(SessionScope(self.interview.id)) is None
        ):
            targets.append(None)
        return targets

    def _participant_context(self) -> ParticipantContext | None:
        if not self.interview.is_multi:
            return None

        me = self.interview.participant(self.participant)
        others = [
            p for p in self.interview.participants
            if normalize_contact(p.contact) != self.scope.participant
        ]
        excerpts: dict[str, list[Turn]] = {}
        if self.context_window > 0:
            try:
                for other in others:
                    scope = SessionScope(self.interview.id, normalize_contact(other.contact))
                    turns = self.repository.recent_turns(scope, self.context_window)
                    if turns:
                        excerpts[other.name or other.contact] = turns
            except Exception as e:  # noqa: BLE001 — shared context is best effort
                logger.warning(
                    "Could not load team context for interview %s: %s", self.interview.id, e
                )
                excerpts = {}

        return ParticipantContext(
            participant=me.name if me and me.name else self.participant,
            role=me.role if me else "",
            team=[f"{p.name} ({p.role})" for p in others],
            excerpts=excerpts,
        )


SessionFactory = Callable[[Interview, str], InterviewSession]


class SessionRegistry:
    """Process-local map of live sessions keyed by (interview, participant)."""

    def __init__(self, factory: SessionFactory) -> None:
        self._factory = factory
        self._sessions: dict[tuple[str, str], InterviewSession] = {}
        self._lock = threading.Lock()

    def get(self, interview: Interview, participant: str) -> InterviewSession:
        key = (interview.id, normalize_contact(participant))
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                session = self._factory(interview, participant)
                self._sessions[key] = session
            return session

    def discard(self, interview_id: str, participant: str) -> None:
        with self._lock:
            self._sessions.pop((interview_id, normalize_contact(participant)), None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
