"""Shared fixtures: local store, repository and fake collaborators.

No API key or network access is needed by any test.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from diagnostic.errors import CollaboratorError
from diagnostic.identity import Account
from diagnostic.models.state import Participant
from diagnostic.progress import ProgressAggregator
from diagnostic.repository import InterviewRepository
from diagnostic.session.runner import InterviewSession
from diagnostic.settings import DIMENSION_KEYS
from diagnostic.store.local_store import LocalDocumentStore

OWNER = Account(uid="owner-1", email="owner@acme.test")

TEAM = [
    Participant(name="Ana", role="CEO", contact="ana@acme.test"),
    Participant(name="Ben", role="CTO", contact="ben@acme.test"),
    Participant(name="Cruz", role="COO", contact="cruz@acme.test"),
]


def sample_report(score: int = 3, **overrides: Any) -> dict[str, Any]:
    """A clean, canonical model payload with every dimension at ``score``."""
    report: dict[str, Any] = {
        "overall_score": float(score),
        "strongest_area": "strategy",
        "main_opportunity": "data",
        "executive_summary": "A solid base with clear gaps.",
        "dimensions": {
            key: {
                "score": score,
                "level": "Intermediate",
                "analysis": f"{key} analysis",
                "recommendation": f"{key} recommendation",
            }
            for key in DIMENSION_KEYS
        },
        "roadmap": {
            "short_term": [
                {
                    "title": "Data inventory",
                    "impact": "High",
                    "description": "Map every data source.",
                    "objective": "One catalogue of sources.",
                    "steps": ["List systems", "Assign owners"],
                }
            ],
            "medium_term": [],
            "long_term": [],
        },
    }
    report.update(overrides)
    return report


@dataclass
class FakeAgent:
    replies: list[str] = field(default_factory=lambda: ["Welcome! What does your company do?"])
    fail: bool = False
    calls: list[dict[str, Any]] = field(default_factory=list)

    def reply(self, history, text, context=None) -> str:
        self.calls.append({"history": list(history), "text": text, "context": context})
        if self.fail:
            raise CollaboratorError("chat", "provider down")
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        return self.replies[index]


@dataclass
class FakeTranscriber:
    text: str = "We sell furniture online."
    fail: bool = False

    def transcribe(self, audio: bytes) -> str:
        if self.fail:
            raise CollaboratorError("transcribe", "bad audio")
        return self.text if audio else ""


@dataclass
class FakeSynthesizer:
    fail: bool = False

    def synthesize(self, text: str) -> bytes:
        if self.fail:
            raise CollaboratorError("synthesize", "tts down")
        return b"mp3:" + text.encode("utf-8")


@dataclass
class FakeReports:
    report: dict[str, Any] = field(default_factory=sample_report)
    repository: InterviewRepository | None = None
    fail: bool = False
    calls: list[tuple[str, str | None]] = field(default_factory=list)

    def generate(self, interview_id: str, participant: str | None = None):
        from diagnostic.repository import SessionScope

        self.calls.append((interview_id, participant))
        if self.fail:
            raise RuntimeError("report model down")
        if self.repository is not None:
            self.repository.save_report(SessionScope(interview_id, participant), self.report)
        return self.report


@pytest.fixture
def store() -> LocalDocumentStore:
    return LocalDocumentStore()


@pytest.fixture
def repository(store) -> InterviewRepository:
    return InterviewRepository(store)


@pytest.fixture
def aggregator(repository) -> ProgressAggregator:
    return ProgressAggregator(repository)


@pytest.fixture
def agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def reports(repository) -> FakeReports:
    return FakeReports(repository=repository)


@pytest.fixture
def make_session(repository, aggregator, agent, reports):
    """Build a resumed ``InterviewSession`` wired to fakes."""

    def _make(interview, participant, **overrides) -> InterviewSession:
        kwargs = {
            "repository": repository,
            "aggregator": aggregator,
            "agent": agent,
            "transcriber": FakeTranscriber(),
            "synthesizer": FakeSynthesizer(),
            "reports": reports,
            "max_turns": 60,
            "context_window": 5,
            "auto_report": True,
        }
        kwargs.update(overrides)
        return InterviewSession.resume(repository.get_interview(interview.id), participant, **kwargs)

    return _make
