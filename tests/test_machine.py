"""Tests for the pure interview state machine (no I/O)."""

from __future__ import annotations

import pytest

from diagnostic.errors import InvalidTransitionError, SessionFinishedError
from diagnostic.models.state import Speaker
from diagnostic.session.machine import (
    CollaboratorFailed,
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


def _listening() -> InterviewStateMachine:
    return InterviewStateMachine(Phase.LISTENING)


class TestStart:
    def test_start_queues_hidden_ready_message(self):
        m = InterviewStateMachine()
        assert m.advance(Started()) is Phase.LISTENING
        assert m.pending_commands() == [SubmitText(READY_MESSAGE, synthetic=True)]

    def test_start_twice_is_invalid(self):
        m = _listening()
        with pytest.raises(InvalidTransitionError):
            m.advance(Started())


class TestTurnCycle:
    def test_full_voice_turn(self):
        m = _listening()

        assert m.advance(RecordingStopped(b"audio")) is Phase.TRANSCRIBING
        assert m.pending_commands() == [Transcribe(b"audio")]

        assert m.advance(Transcribed("We sell online.")) is Phase.AWAITING_REPLY
        assert m.pending_commands() == [
            PersistTurn(Speaker.PARTICIPANT, "We sell online."),
            RequestReply("We sell online."),
        ]

        assert m.advance(ReplyReceived("How many staff?")) is Phase.SPEAKING
        assert m.pending_commands() == [
            PersistTurn(Speaker.AGENT, "How many staff?"),
            UpdateProgress(forced=False),
            Synthesize("How many staff?"),
        ]

        assert m.advance(PlaybackEnded()) is Phase.LISTENING

    def test_empty_transcription_does_not_block(self):
        m = InterviewStateMachine(Phase.TRANSCRIBING)
        assert m.advance(Transcribed("")) is Phase.AWAITING_REPLY
        assert RequestReply("") in m.pending_commands()

    def test_typed_text_skips_transcription(self):
        m = _listening()
        assert m.advance(TextSubmitted("Hello")) is Phase.AWAITING_REPLY

    def test_recording_while_turn_in_flight_is_invalid(self):
        for phase in (Phase.TRANSCRIBING, Phase.AWAITING_REPLY, Phase.SPEAKING):
            m = InterviewStateMachine(phase)
            assert m.busy
            with pytest.raises(InvalidTransitionError):
                m.advance(RecordingStopped(b"more"))


class TestFailures:
    @pytest.mark.parametrize(
        "phase", [Phase.TRANSCRIBING, Phase.AWAITING_REPLY, Phase.SPEAKING]
    )
    def test_collaborator_failure_returns_to_listening(self, phase):
        m = InterviewStateMachine(phase)
        m._commands.append(Synthesize("pending"))

        assert m.advance(CollaboratorFailed("chat", "timeout")) is Phase.LISTENING
        assert m.pending_commands() == []
        assert m.last_error == "chat: timeout"

    def test_failure_outside_a_turn_is_invalid(self):
        with pytest.raises(InvalidTransitionError):
            _listening().advance(CollaboratorFailed("chat"))


class TestFinish:
    def test_finish_from_any_phase(self):
        for phase in Phase:
            m = InterviewStateMachine(phase)
            assert m.advance(FinishConfirmed()) is Phase.FINISHED

    def test_finish_queues_forced_progress_and_reports(self):
        m = _listening()
        m.advance(FinishConfirmed())
        assert m.pending_commands() == [UpdateProgress(forced=True), CompileReports()]

    def test_finish_is_idempotent(self):
        m = _listening()
        m.advance(FinishConfirmed())
        m.pending_commands()

        assert m.advance(FinishConfirmed()) is Phase.FINISHED
        assert m.pending_commands() == []

    def test_turns_after_finish_are_rejected(self):
        m = InterviewStateMachine(Phase.FINISHED)
        with pytest.raises(SessionFinishedError):
            m.advance(RecordingStopped(b"late"))
        with pytest.raises(SessionFinishedError):
            m.advance(TextSubmitted("late"))
