"""FastAPI backend for the voice-driven maturity diagnostic."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import time
import uuid
from typing import Any

from dotenv import load_dotenv
from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

import diagnostic.settings as settings
from diagnostic.access import Decision, authorize, authorize_participation, require
from diagnostic.errors import (
    AccessDeniedError,
    CollaboratorError,
    ConfigurationError,
    InterviewNotFoundError,
    InvalidTransitionError,
    ReportGenerationError,
)
from diagnostic.identity import (
    Account,
    Identity,
    decode_identifier,
    normalize_contact,
    resolve_identity,
)
from diagnostic.invitations import DryRunInvitations, SentInvitations
from diagnostic.logging_config import setup_logging
from diagnostic.models.state import Interview, Participant
from diagnostic.reports.consensus import analyze_consensus
from diagnostic.repository import SessionScope
from diagnostic.services import Services, build_services
from diagnostic.session.runner import InterviewSession, TurnResult

load_dotenv()
setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(title="AI Digital Maturity Diagnostic", version="0.1.0")
MAX_MESSAGE_CHARS = 4000
# Upload limit of the transcription endpoint.
MAX_AUDIO_BYTES = 25 * 1024 * 1024
DASHBOARD_URL = "/dashboard"


def get_services() -> Services:
    """Build the service graph on first use and keep it on ``app.state``."""
    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services(accounts=True)
        app.state.services = services
    return services


# ── Request logging middleware ────────────────────────────────────────────

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with method, path, and response time."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s -> %s (%.0fms) [rid=%s]",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request_id,
    )
    response.headers["X-Request-ID"] = request_id
    return response


# ── Error mapping ─────────────────────────────────────────────────────────

@app.exception_handler(AccessDeniedError)
def _access_denied(_request: Request, _exc: AccessDeniedError) -> RedirectResponse:
    return RedirectResponse(DASHBOARD_URL, status_code=303)


@app.exception_handler(InterviewNotFoundError)
def _not_found(_request: Request, exc: InterviewNotFoundError) -> JSONResponse:
    return JSONResponse({"detail": f"Interview {exc} not found."}, status_code=404)


@app.exception_handler(InvalidTransitionError)
def _conflict(_request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return JSONResponse({"detail": str(exc)}, status_code=409)


@app.exception_handler(ReportGenerationError)
def _report_failed(_request: Request, exc: ReportGenerationError) -> JSONResponse:
    logger.warning("Report generation failed: %s", exc)
    return JSONResponse(
        {"detail": "The report could not be generated. Please try again."},
        status_code=502,
    )


@app.exception_handler(ConfigurationError)
def _misconfigured(_request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error: %s", exc)
    return JSONResponse({"detail": "The service is not configured."}, status_code=503)


# ── Identity dependencies ─────────────────────────────────────────────────

def current_account(
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> Account | None:
    """The verified account behind the bearer token, if any."""
    if not authorization or services.verifier is None:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return services.verifier.verify(token.strip())


def require_account(account: Account | None = Depends(current_account)) -> Account:
    if account is None:
        raise HTTPException(status_code=401, detail="Sign in to continue.")
    return account


def _viewer(account: Account) -> Identity:
    return Identity(contact=account.email, account_id=account.uid)


def _load_interview(interview_id: str, services: Services) -> Interview:
    """Load an interview for an access-controlled route.

    An unknown id is denied exactly like a forbidden one so the response
    never reveals which interviews exist.
    """
    try:
        return services.repository.get_interview(interview_id)
    except InterviewNotFoundError:
        logger.info("Access check on unknown interview %s", interview_id)
        raise AccessDeniedError("Interview not available") from None


# ── Health check ──────────────────────────────────────────────────────────

@app.get("/health")
def health_check() -> JSONResponse:
    """Lightweight health probe for deployment platforms."""
    return JSONResponse({"status": "ok"})


# ── Request / response models ─────────────────────────────────────────────

class ParticipantIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    role: str = Field(default="", max_length=120)
    contact: str = Field(..., min_length=3, max_length=254)


class CreateTeamRequest(BaseModel):
    company_name: str = Field(default="", max_length=200)
    participants: list[ParticipantIn] = Field(..., min_length=1, max_length=50)


class TurnRequest(BaseModel):
    audio: str = Field(..., min_length=1, description="base64-encoded recording")


class RespondRequest(BaseModel):
    message: str


class TurnResponse(BaseModel):
    phase: str
    status: str
    transcript: str | None = None
    reply: str | None = None
    audio: str | None = None
    progress: float | None = None
    aggregate_progress: float | None = None
    error: str | None = None


def _turn_response(result: TurnResult) -> TurnResponse:
    return TurnResponse(**result.to_dict())


# ── Interviews ────────────────────────────────────────────────────────────

@app.post("/api/interviews")
def create_solo_interview(
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Create a solo interview owned by the signed-in account."""
    interview = services.repository.create_solo(account)
    return interview.summary()


@app.post("/api/interviews/team")
def create_team_interview(
    req: CreateTeamRequest,
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Create a multi-participant interview and send the invitations."""
    if services.invitations is None:
        raise ConfigurationError("No invitation sender configured.")
    participants = [Participant(name=p.name, role=p.role, contact=p.contact) for p in req.participants]
    try:
        interview = services.repository.create_team(account, participants, req.company_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    try:
        outcome = services.invitations.send(interview)
    except CollaboratorError as e:
        # The interview exists; report every invitation as undelivered.
        logger.warning("Invitations for interview %s not sent: %s", interview.id, e)
        outcome = SentInvitations(failed={p.contact: str(e) for p in interview.participants})
    if isinstance(outcome, DryRunInvitations):
        invitations: dict[str, Any] = {"dry_run": True, "links": outcome.links}
    else:
        invitations = {"dry_run": False, "sent": outcome.sent, "failed": outcome.failed}
    return {"interview": interview.summary(), "invitations": invitations}


@app.get("/api/interviews")
def dashboard(
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Owned and invited interviews, newest first."""
    interviews = services.repository.list_for_dashboard(account)
    return {"interviews": [i.summary() for i in interviews]}


# ── Participation (one live session per participant) ──────────────────────

def _participant_session(
    interview_id: str,
    account: Account | None,
    guest_token: str | None,
    services: Services,
) -> tuple[InterviewSession, Identity]:
    interview = _load_interview(interview_id, services)
    identity = resolve_identity(account, guest_token)
    require(authorize_participation(identity, interview))
    return services.sessions.get(interview, identity.contact), identity


@app.post("/api/interviews/{interview_id}/start", response_model=TurnResponse)
def start_interview(
    interview_id: str,
    u: str | None = Query(default=None),
    account: Account | None = Depends(current_account),
    services: Services = Depends(get_services),
) -> TurnResponse:
    """Open the participant's session and return the agent's greeting."""
    session, identity = _participant_session(interview_id, account, u, services)
    return _turn_response(session.start(account_id=identity.account_id))


@app.post("/api/interviews/{interview_id}/turn", response_model=TurnResponse)
def audio_turn(
    interview_id: str,
    req: TurnRequest,
    u: str | None = Query(default=None),
    account: Account | None = Depends(current_account),
    services: Services = Depends(get_services),
) -> TurnResponse:
    """Submit one recorded answer; returns transcript, reply and reply audio."""
    try:
        audio = base64.b64decode(req.audio, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Audio must be base64-encoded.") from None
    if len(audio) > MAX_AUDIO_BYTES:
        raise HTTPException(status_code=413, detail="Recording is too large.")

    session, _ = _participant_session(interview_id, account, u, services)
    return _turn_response(session.submit_audio(audio))


@app.post("/api/interviews/{interview_id}/respond", response_model=TurnResponse)
def text_turn(
    interview_id: str,
    req: RespondRequest,
    u: str | None = Query(default=None),
    account: Account | None = Depends(current_account),
    services: Services = Depends(get_services),
) -> TurnResponse:
    """Submit one typed answer."""
    message = req.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message cannot be empty.")
    if len(message) > MAX_MESSAGE_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Message too long. Maximum length is {MAX_MESSAGE_CHARS} characters.",
        )
    session, _ = _participant_session(interview_id, account, u, services)
    return _turn_response(session.submit_text(message))


@app.post("/api/interviews/{interview_id}/playback-ended", response_model=TurnResponse)
def playback_ended(
    interview_id: str,
    u: str | None = Query(default=None),
    account: Account | None = Depends(current_account),
    services: Services = Depends(get_services),
) -> TurnResponse:
    session, _ = _participant_session(interview_id, account, u, services)
    return _turn_response(session.playback_ended())


@app.post("/api/interviews/{interview_id}/finish", response_model=TurnResponse)
def finish_interview(
    interview_id: str,
    background_tasks: BackgroundTasks,
    u: str | None = Query(default=None),
    account: Account | None = Depends(current_account),
    services: Services = Depends(get_services),
) -> TurnResponse:
    """Confirm the end of the interview; reports compile in the background."""
    session, _ = _participant_session(interview_id, account, u, services)
    result = session.finish(run_reports=False)
    # A finished session is rebuilt from the store if it is asked for again.
    services.sessions.discard(interview_id, session.participant)
    if result.report_targets:
        background_tasks.add_task(session.compile_reports, result.report_targets)
    return _turn_response(result)


# ── Views (access-controlled) ─────────────────────────────────────────────

def _authorized_view(
    interview_id: str,
    account: Account,
    requested_token: str | None,
    services: Services,
) -> tuple[Interview, str | None]:
    interview = _load_interview(interview_id, services)
    requested = decode_identifier(requested_token) if requested_token else None
    if requested_token and requested is None:
        raise AccessDeniedError("Undecodable participant")
    require(authorize(_viewer(account), interview, requested))
    if not interview.is_multi or requested is None:
        return interview, None
    # Session documents are keyed by the normalized contact.
    return interview, normalize_contact(requested)


@app.get("/api/interviews/{interview_id}/transcript")
def transcript(
    interview_id: str,
    u: str | None = Query(default=None),
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Visible turns of one session, or of every session for the owner."""
    repository = services.repository
    interview, participant = _authorized_view(interview_id, account, u, services)

    if not interview.is_multi or participant:
        scope = SessionScope.for_participant(interview, participant or "")
        turns = repository.list_turns(scope, include_synthetic=False)
        return {"turns": [t.to_dict() for t in turns]}

    sessions = {
        contact: [
            t.to_dict()
            for t in repository.list_turns(SessionScope(interview.id, contact), include_synthetic=False)
        ]
        for contact in repository.list_sessions(interview.id)
    }
    return {"sessions": sessions}


@app.get("/api/interviews/{interview_id}/progress")
def progress(
    interview_id: str,
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Per-participant and aggregate progress."""
    interview = _load_interview(interview_id, services)
    viewer = _viewer(account)
    if (
        authorize(viewer, interview) is not Decision.ALLOW
        and authorize_participation(viewer, interview) is not Decision.ALLOW
    ):
        raise AccessDeniedError("Not a member of this interview")
    return {
        "progress": interview.progress,
        "status": interview.status.value,
        "participants": [p.to_doc() for p in interview.participants],
    }


@app.post("/api/interviews/{interview_id}/report")
def generate_report(
    interview_id: str,
    u: str | None = Query(default=None),
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Generate (or regenerate) a report on demand."""
    interview, participant = _authorized_view(interview_id, account, u, services)
    report = services.reports.generate(interview.id, participant)
    if report is None:
        raise HTTPException(status_code=409, detail="Nothing has been said yet; no report to compile.")
    return {"report": report}


@app.get("/api/interviews/{interview_id}/report")
def read_report(
    interview_id: str,
    u: str | None = Query(default=None),
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """The aggregate report, or with ``?u=`` one participant's report."""
    interview, participant = _authorized_view(interview_id, account, u, services)
    report = services.repository.get_report(SessionScope(interview.id, participant))
    if report is None:
        raise HTTPException(status_code=404, detail="No report has been generated yet.")
    return {"report": report}


@app.get("/api/interviews/{interview_id}/consensus")
def consensus(
    interview_id: str,
    account: Account = Depends(require_account),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Where participants' individual reports agree and diverge (owner only)."""
    interview = _load_interview(interview_id, services)
    require(authorize(_viewer(account), interview))
    if not interview.is_multi:
        raise HTTPException(status_code=400, detail="Consensus needs a multi-participant interview.")
    reports = {
        contact: session.report
        for contact, session in services.repository.list_sessions(interview.id).items()
        if session.report
    }
    return analyze_consensus(reports, settings.DIVERGENCE_SPREAD).to_dict()


def run() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    print(f"Starting web interface on http://localhost:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
