"""Dependency wiring — builds every collaborator once from settings.

Entry points call ``build_services()`` and pass the result down; core
modules never reach for module-level handles.  Tests construct
``Services`` directly with fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import diagnostic.settings as settings
from diagnostic.agents.interviewer import InterviewerAgent
from diagnostic.identity import AccountVerifier, DevAccountVerifier, FirebaseAccountVerifier
from diagnostic.invitations import InvitationSender, SmtpConfig
from diagnostic.llm import get_audio_client, get_chat_llm, get_report_llm
from diagnostic.models.state import Interview
from diagnostic.progress import ProgressAggregator
from diagnostic.reports.compiler import ReportCompiler
from diagnostic.repository import InterviewRepository
from diagnostic.session.runner import InterviewSession, SessionRegistry
from diagnostic.speech.synthesizer import Synthesizer
from diagnostic.speech.transcriber import Transcriber
from diagnostic.store.document_store import DocumentStore, build_store
from diagnostic.workflow import ReportService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    repository: InterviewRepository
    aggregator: ProgressAggregator
    agent: InterviewerAgent
    reports: ReportService
    transcriber: Transcriber | None = None
    synthesizer: Synthesizer | None = None
    invitations: InvitationSender | None = None
    verifier: AccountVerifier | None = None
    max_turns: int = 60
    context_window: int = 5
    auto_report: bool = True
    sessions: SessionRegistry = field(init=False)

    def __post_init__(self) -> None:
        self.sessions = SessionRegistry(self.new_session)

    def new_session(self, interview: Interview, participant: str) -> InterviewSession:
        return InterviewSession.resume(
            interview,
            participant,
            repository=self.repository,
            aggregator=self.aggregator,
            agent=self.agent,
            transcriber=self.transcriber,
            synthesizer=self.synthesizer,
            reports=self.reports,
            max_turns=self.max_turns,
            context_window=self.context_window,
            auto_report=self.auto_report,
        )


def build_verifier() -> AccountVerifier:
    if settings.AUTH_DEV_MODE:
        logger.warning("[dev] AUTH_DEV_MODE is on; bearer tokens are not verified")
        return DevAccountVerifier()
    from diagnostic.store.firestore_store import get_firebase_app

    return FirebaseAccountVerifier(get_firebase_app())


def build_invitation_sender() -> InvitationSender:
    smtp = SmtpConfig(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        user=settings.SMTP_USER,
        password=settings.SMTP_PASSWORD,
        use_tls=settings.SMTP_USE_TLS,
        sender_name=settings.INVITE_SENDER_NAME,
    )
    return InvitationSender(settings.APP_URL, smtp, dry_run=settings.INVITE_DRY_RUN)


def build_services(
    store: DocumentStore | None = None,
    *,
    voice: bool = True,
    accounts: bool = False,
) -> Services:
    """Build the production object graph.

    ``voice=False`` skips the speech collaborators (terminal client);
    ``accounts=True`` adds the account verifier and invitation sender
    the web app needs.
    Missing credentials raise ``ConfigurationError`` here, at startup.
    """
    repository = InterviewRepository(store or build_store())
    audio_client = get_audio_client() if voice else None
    services = Services(
        repository=repository,
        aggregator=ProgressAggregator(repository),
        agent=InterviewerAgent(get_chat_llm()),
        reports=ReportService(repository, ReportCompiler(get_report_llm())),
        transcriber=(
            Transcriber(
                audio_client,
                settings.TRANSCRIBE_MODEL_NAME,
                language=settings.INTERVIEW_LANGUAGE,
            )
            if audio_client
            else None
        ),
        synthesizer=(
            Synthesizer(audio_client, settings.TTS_MODEL_NAME, settings.TTS_VOICE)
            if audio_client
            else None
        ),
        max_turns=settings.MAX_TURNS,
        context_window=settings.CONTEXT_WINDOW,
        auto_report=settings.AUTO_REPORT,
    )
    if accounts:
        services.verifier = build_verifier()
        services.invitations = build_invitation_sender()
    logger.info(
        "Services ready (store=%s, chat=%s, report=%s, voice=%s)",
        type(repository.store).__name__,
        settings.LLM_MODEL_NAME,
        settings.REPORT_MODEL_NAME,
        voice,
    )
    return services
