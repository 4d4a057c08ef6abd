"""API tests for the FastAPI web entrypoint."""

from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

import web.app as web_app
from diagnostic.errors import CollaboratorError, ReportGenerationError
from diagnostic.identity import DevAccountVerifier, encode_identifier
from diagnostic.invitations import InvitationSender
from diagnostic.services import Services

from conftest import OWNER, TEAM, FakeAgent, FakeReports, FakeTranscriber, sample_report

OWNER_AUTH = {"Authorization": f"Bearer {OWNER.uid}:{OWNER.email}"}
ANA_AUTH = {"Authorization": "Bearer ana-uid:ana@acme.test"}
BEN_AUTH = {"Authorization": "Bearer ben-uid:ben@acme.test"}
MALLORY_AUTH = {"Authorization": "Bearer m-uid:mallory@evil.test"}


class FailingReports:
    def generate(self, interview_id, participant=None):
        raise ReportGenerationError("bad payload")


class FailingInvitations:
    def send(self, interview):
        raise CollaboratorError("invite", "connection refused")


@pytest.fixture
def services(repository, aggregator, reports):
    return Services(
        repository=repository,
        aggregator=aggregator,
        agent=FakeAgent(replies=["Welcome!", "Tell me more."]),
        reports=reports,
        transcriber=FakeTranscriber(),
        synthesizer=None,
        invitations=InvitationSender("https://diag.test", None, dry_run=True),
        verifier=DevAccountVerifier(),
    )


@pytest.fixture
def client(services, monkeypatch):
    monkeypatch.setattr(web_app.app.state, "services", services, raising=False)
    return TestClient(web_app.app)


@pytest.fixture
def solo_id(client):
    return client.post("/api/interviews", headers=OWNER_AUTH).json()["id"]


@pytest.fixture
def team_id(client):
    body = {
        "company_name": "Acme",
        "participants": [{"name": p.name, "role": p.role, "contact": p.contact} for p in TEAM],
    }
    return client.post("/api/interviews/team", json=body, headers=OWNER_AUTH).json()["interview"]["id"]


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}
    assert res.headers["X-Request-ID"]


class TestInterviews:
    def test_create_requires_account(self, client):
        assert client.post("/api/interviews").status_code == 401

    def test_create_solo(self, client):
        res = client.post("/api/interviews", headers=OWNER_AUTH)
        assert res.status_code == 200
        assert res.json()["kind"] == "solo"

    def test_create_team_reports_dry_run(self, client):
        body = {
            "company_name": "Acme",
            "participants": [{"name": p.name, "role": p.role, "contact": p.contact} for p in TEAM],
        }
        res = client.post("/api/interviews/team", json=body, headers=OWNER_AUTH)
        data = res.json()

        assert res.status_code == 200
        assert data["invitations"]["dry_run"] is True
        assert set(data["invitations"]["links"]) == {p.contact for p in TEAM}
        assert len(data["interview"]["participants"]) == 3

    def test_create_team_validates_participants(self, client):
        res = client.post("/api/interviews/team", json={"participants": []}, headers=OWNER_AUTH)
        assert res.status_code == 422

    def test_dashboard_lists_invited(self, client, team_id, solo_id):
        res = client.get("/api/interviews", headers=ANA_AUTH)
        assert [i["id"] for i in res.json()["interviews"]] == [team_id]

        res = client.get("/api/interviews", headers=OWNER_AUTH)
        assert [i["id"] for i in res.json()["interviews"]] == [solo_id, team_id]

    def test_unknown_interview_is_denied(self, client):
        res = client.post("/api/interviews/nope/start", headers=OWNER_AUTH, follow_redirects=False)
        assert res.status_code == 303
        assert res.headers["location"] == "/dashboard"

    def test_unknown_and_forbidden_look_the_same(self, client, team_id):
        for path in ("report", "transcript", "progress", "consensus"):
            forbidden = client.get(
                f"/api/interviews/{team_id}/{path}", headers=MALLORY_AUTH, follow_redirects=False
            )
            unknown = client.get(
                f"/api/interviews/does-not-exist/{path}", headers=MALLORY_AUTH, follow_redirects=False
            )
            assert forbidden.status_code == unknown.status_code == 303
            assert forbidden.headers["location"] == unknown.headers["location"]

    def test_invitation_failure_still_returns_interview(self, client, services):
        services.invitations = FailingInvitations()
        body = {
            "company_name": "Acme",
            "participants": [{"name": p.name, "role": p.role, "contact": p.contact} for p in TEAM],
        }

        res = client.post("/api/interviews/team", json=body, headers=OWNER_AUTH)
        data = res.json()

        assert res.status_code == 200
        assert data["invitations"]["dry_run"] is False
        assert data["invitations"]["sent"] == []
        assert set(data["invitations"]["failed"]) == {p.contact for p in TEAM}
        listed = client.get("/api/interviews", headers=OWNER_AUTH).json()["interviews"]
        assert [i["id"] for i in listed] == [data["interview"]["id"]]


class TestParticipation:
    def test_solo_text_flow(self, client, solo_id):
        start = client.post(f"/api/interviews/{solo_id}/start", headers=OWNER_AUTH)
        assert start.status_code == 200
        assert start.json()["reply"] == "Welcome!"

        turn = client.post(
            f"/api/interviews/{solo_id}/respond",
            json={"message": "We sell bread."},
            headers=OWNER_AUTH,
        )
        data = turn.json()
        assert data["status"] == "ok"
        assert data["reply"] == "Tell me more."
        assert data["progress"] == 8

    def test_audio_turn(self, client, solo_id):
        client.post(f"/api/interviews/{solo_id}/start", headers=OWNER_AUTH)
        audio = base64.b64encode(b"webm").decode("ascii")

        res = client.post(f"/api/interviews/{solo_id}/turn", json={"audio": audio}, headers=OWNER_AUTH)

        assert res.status_code == 200
        assert res.json()["transcript"] == "We sell furniture online."

    def test_audio_must_be_base64(self, client, solo_id):
        res = client.post(
            f"/api/interviews/{solo_id}/turn", json={"audio": "not base64!"}, headers=OWNER_AUTH
        )
        assert res.status_code == 400

    def test_empty_message_rejected(self, client, solo_id):
        res = client.post(
            f"/api/interviews/{solo_id}/respond", json={"message": "   "}, headers=OWNER_AUTH
        )
        assert res.status_code == 400
        assert "cannot be empty" in res.json()["detail"].lower()

    def test_guest_link_joins_team_interview(self, client, team_id):
        token = encode_identifier("ben@acme.test")
        res = client.post(f"/api/interviews/{team_id}/start", params={"u": token})
        assert res.status_code == 200
        assert res.json()["reply"] == "Welcome!"

    def test_outsider_is_redirected(self, client, team_id, solo_id):
        for interview_id in (team_id, solo_id):
            res = client.post(
                f"/api/interviews/{interview_id}/start",
                headers=MALLORY_AUTH,
                follow_redirects=False,
            )
            assert res.status_code == 303
            assert res.headers["location"] == "/dashboard"

    def test_chat_failure_asks_for_retry(self, client, services, solo_id):
        client.post(f"/api/interviews/{solo_id}/start", headers=OWNER_AUTH)
        services.agent.fail = True

        res = client.post(
            f"/api/interviews/{solo_id}/respond", json={"message": "hello"}, headers=OWNER_AUTH
        )

        assert res.status_code == 200
        assert res.json()["status"] == "retry"
        assert res.json()["phase"] == "listening"

    def test_finish_is_idempotent_and_closes_session(self, client, reports, solo_id):
        client.post(f"/api/interviews/{solo_id}/start", headers=OWNER_AUTH)

        first = client.post(f"/api/interviews/{solo_id}/finish", headers=OWNER_AUTH)
        second = client.post(f"/api/interviews/{solo_id}/finish", headers=OWNER_AUTH)

        assert first.json()["progress"] == 100
        assert second.status_code == 200
        assert reports.calls == [(solo_id, None)]

        late = client.post(
            f"/api/interviews/{solo_id}/respond", json={"message": "one more"}, headers=OWNER_AUTH
        )
        assert late.status_code == 409

    def test_finish_releases_live_session(self, client, services, solo_id):
        client.post(f"/api/interviews/{solo_id}/start", headers=OWNER_AUTH)
        interview = services.repository.get_interview(solo_id)
        live = services.sessions.get(interview, OWNER.email)

        client.post(f"/api/interviews/{solo_id}/finish", headers=OWNER_AUTH)

        rebuilt = services.sessions.get(services.repository.get_interview(solo_id), OWNER.email)
        assert rebuilt is not live
        assert rebuilt.phase.value == "finished"


class TestViews:
    def _finish_member(self, client, team_id, contact):
        token = encode_identifier(contact)
        client.post(f"/api/interviews/{team_id}/start", params={"u": token})
        client.post(f"/api/interviews/{team_id}/respond", params={"u": token}, json={"message": f"I am {contact}"})
        client.post(f"/api/interviews/{team_id}/finish", params={"u": token})

    def test_participant_reads_own_report_only(self, client, team_id):
        self._finish_member(client, team_id, "ana@acme.test")
        self._finish_member(client, team_id, "ben@acme.test")

        own = client.get(
            f"/api/interviews/{team_id}/report",
            params={"u": encode_identifier("ben@acme.test")},
            headers=BEN_AUTH,
        )
        other = client.get(
            f"/api/interviews/{team_id}/report",
            params={"u": encode_identifier("ana@acme.test")},
            headers=BEN_AUTH,
            follow_redirects=False,
        )
        aggregate = client.get(
            f"/api/interviews/{team_id}/report", headers=BEN_AUTH, follow_redirects=False
        )

        assert own.status_code == 200
        assert own.json()["report"]["overall_score"] == 3.0
        assert other.status_code == 303
        assert aggregate.status_code == 303

    def test_participant_token_case_does_not_matter(self, client, services, team_id):
        self._finish_member(client, team_id, "ana@acme.test")
        lower = encode_identifier("ana@acme.test")
        mixed = encode_identifier("Ana@Acme.TEST")

        generated = client.post(
            f"/api/interviews/{team_id}/report", params={"u": mixed}, headers=OWNER_AUTH
        )
        by_lower = client.get(f"/api/interviews/{team_id}/report", params={"u": lower}, headers=OWNER_AUTH)
        by_mixed = client.get(f"/api/interviews/{team_id}/report", params={"u": mixed}, headers=OWNER_AUTH)

        assert generated.status_code == 200
        assert by_lower.status_code == 200
        assert by_mixed.status_code == 200
        assert (team_id, "ana@acme.test") in services.reports.calls

    def test_owner_transcript_has_every_session(self, client, team_id):
        self._finish_member(client, team_id, "ana@acme.test")
        res = client.get(f"/api/interviews/{team_id}/transcript", headers=OWNER_AUTH)

        sessions = res.json()["sessions"]
        assert [t["text"] for t in sessions["ana@acme.test"]][1] == "I am ana@acme.test"

    def test_transcript_hides_primer(self, client, solo_id):
        client.post(f"/api/interviews/{solo_id}/start", headers=OWNER_AUTH)
        res = client.get(f"/api/interviews/{solo_id}/transcript", headers=OWNER_AUTH)
        assert [t["speaker"] for t in res.json()["turns"]] == ["agent"]

    def test_progress_for_members(self, client, team_id):
        self._finish_member(client, team_id, "ana@acme.test")
        res = client.get(f"/api/interviews/{team_id}/progress", headers=BEN_AUTH)
        assert res.status_code == 200
        assert res.json()["progress"] == pytest.approx(33.33)

    def test_report_missing_is_404(self, client, solo_id):
        res = client.get(f"/api/interviews/{solo_id}/report", headers=OWNER_AUTH)
        assert res.status_code == 404

    def test_report_failure_is_502(self, client, services, solo_id):
        client.post(f"/api/interviews/{solo_id}/start", headers=OWNER_AUTH)
        services.reports = FailingReports()
        res = client.post(f"/api/interviews/{solo_id}/report", headers=OWNER_AUTH)
        assert res.status_code == 502

    def test_consensus_for_owner(self, client, services, team_id):
        services.reports = FakeReports(report=sample_report(2), repository=services.repository)
        self._finish_member(client, team_id, "ana@acme.test")
        services.reports = FakeReports(report=sample_report(5), repository=services.repository)
        self._finish_member(client, team_id, "ben@acme.test")

        res = client.get(f"/api/interviews/{team_id}/consensus", headers=OWNER_AUTH)

        assert res.status_code == 200
        assert set(res.json()["divergent"]) == {d["dimension"] for d in res.json()["dimensions"]}
        denied = client.get(
            f"/api/interviews/{team_id}/consensus", headers=ANA_AUTH, follow_redirects=False
        )
        assert denied.status_code == 303
