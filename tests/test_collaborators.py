"""Tests for the interviewer agent and speech collaborators.

All OpenAI calls are mocked — no API key required.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from diagnostic.agents.interviewer import (
    FALLBACK_REPLY,
    InterviewerAgent,
    ParticipantContext,
    build_messages,
)
from diagnostic.errors import CollaboratorError
from diagnostic.models.state import Speaker, Turn
from diagnostic.speech.synthesizer import Synthesizer, strip_markup
from diagnostic.speech.transcriber import Transcriber


def _mock_llm_response(content) -> MagicMock:
    mock_llm = MagicMock()
    mock_llm.invoke.return_value = AIMessage(content=content)
    return mock_llm


def _api_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com"))


HISTORY = [
    Turn(Speaker.PARTICIPANT, "ready", synthetic=True),
    Turn(Speaker.AGENT, "Welcome"),
    Turn(Speaker.PARTICIPANT, "We make chairs"),
]


class TestBuildMessages:
    def test_history_replayed_in_order(self):
        messages = build_messages(HISTORY, "About 20 people")

        assert isinstance(messages[0], SystemMessage)
        assert [type(m) for m in messages[1:]] == [HumanMessage, AIMessage, HumanMessage, HumanMessage]
        assert messages[-1].content == "About 20 people"

    def test_sole_member_covers_everything(self):
        context = ParticipantContext(participant="Ana", role="CEO")
        system = build_messages([], "hi", context)[0].content
        assert "ALL seven dimensions" in system

    def test_team_member_focuses_on_role_and_sees_others(self):
        context = ParticipantContext(
            participant="Ben",
            role="CTO",
            team=["Ana (CEO)"],
            excerpts={"Ana": [Turn(Speaker.PARTICIPANT, "Our data lives in spreadsheets")]},
        )
        system = build_messages([], "hi", context)[0].content

        assert "relevant to a CTO" in system
        assert "Ana (CEO)" in system
        assert "Our data lives in spreadsheets" in system


class TestInterviewerAgent:
    def test_returns_reply_text(self):
        agent = InterviewerAgent(_mock_llm_response("  How many people work there?  "))
        assert agent.reply(HISTORY, "hi") == "How many people work there?"

    def test_list_content_is_flattened(self):
        agent = InterviewerAgent(_mock_llm_response([{"type": "text", "text": "Hello"}]))
        assert agent.reply([], "hi") == "Hello"

    def test_empty_reply_uses_fallback(self):
        agent = InterviewerAgent(_mock_llm_response(""))
        assert agent.reply([], "hi") == FALLBACK_REPLY

    def test_provider_failure_is_collaborator_error(self):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("rate limited")
        with pytest.raises(CollaboratorError) as exc:
            InterviewerAgent(llm).reply([], "hi")
        assert exc.value.stage == "chat"


class TestTranscriber:
    def test_transcribes_audio(self):
        client = MagicMock()
        client.audio.transcriptions.create.return_value = SimpleNamespace(text=" Hola \n")

        text = Transcriber(client, "whisper-test", language="es").transcribe(b"data")

        assert text == "Hola"
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-test"
        assert kwargs["language"] == "es"
        assert kwargs["file"] == ("answer.webm", b"data")

    def test_empty_audio_is_empty_text(self):
        client = MagicMock()
        assert Transcriber(client, "m").transcribe(b"") == ""
        client.audio.transcriptions.create.assert_not_called()

    def test_provider_failure(self):
        client = MagicMock()
        client.audio.transcriptions.create.side_effect = _api_error()
        with pytest.raises(CollaboratorError) as exc:
            Transcriber(client, "m").transcribe(b"data")
        assert exc.value.stage == "transcribe"


class TestSynthesizer:
    def test_markup_stripped_before_synthesis(self):
        client = MagicMock()
        client.audio.speech.create.return_value = SimpleNamespace(content=b"mp3")

        audio = Synthesizer(client, "tts", "alloy").synthesize("**Great**, tell me about `data`_")

        assert audio == b"mp3"
        kwargs = client.audio.speech.create.call_args.kwargs
        assert kwargs["input"] == "Great, tell me about data"
        assert kwargs["voice"] == "alloy"

    def test_strip_markup(self):
        assert strip_markup("# Title *bold* _it_ `code`") == " Title bold it code"

    def test_nothing_to_say(self):
        with pytest.raises(CollaboratorError):
            Synthesizer(MagicMock(), "tts", "alloy").synthesize("***")

    def test_provider_failure(self):
        client = MagicMock()
        client.audio.speech.create.side_effect = _api_error()
        with pytest.raises(CollaboratorError) as exc:
            Synthesizer(client, "tts", "alloy").synthesize("Hello")
        assert exc.value.stage == "synthesize"
