"""Invitation emails for multi-participant interviews.

Each planned participant gets a personal link::

    {APP_URL}/interview?id={interview_id}&u={encoded contact}

Delivery goes through SMTP.  Dry-run mode is an explicit setting
(``INVITE_DRY_RUN``) with its own result type; real mode without SMTP
credentials is a configuration error, never a silent simulation.
"""

from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import urlencode

from diagnostic.errors import CollaboratorError, ConfigurationError
from diagnostic.identity import encode_identifier
from diagnostic.models.state import Interview, Participant

logger = logging.getLogger(__name__)

SUBJECT = "Invitation: AI Digital Maturity Diagnostic{company}"

BODY = """\
<html>
  <body style="font-family: Arial, sans-serif; color: #1f2937;">
    <h2>Hello {name},</h2>
    <p>You have been invited to take part in the AI digital maturity
    diagnostic{company} as <strong>{role}</strong>.</p>
    <p>The interview is a spoken conversation with an AI consultant and
    takes about 30 minutes. Your answers stay confidential.</p>
    <p><a href="{link}" style="background:#2563eb;color:#fff;padding:10px 18px;
    border-radius:6px;text-decoration:none;">Start the interview</a></p>
    <p style="font-size:12px;color:#6b7280;">If the button does not work, open
    this link: {link}</p>
  </body>
</html>
"""


def build_invitation_link(app_url: str, interview_id: str, contact: str) -> str:
    query = urlencode({"id": interview_id, "u": encode_identifier(contact)})
    return f"{app_url.rstrip('/')}/interview?{query}"


@dataclass
class SentInvitations:
    sent: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    dry_run: bool = False


@dataclass
class DryRunInvitations:
    """Nothing was delivered; ``links`` holds what would have been sent."""

    links: dict[str, str] = field(default_factory=dict)
    dry_run: bool = True


@dataclass
class SmtpConfig:
    host: str
    port: int
    user: str
    password: str
    use_tls: bool = True
    sender_name: str = "Maturity Diagnostic"


class InvitationSender:
    def __init__(self, app_url: str, smtp: SmtpConfig | None, *, dry_run: bool = False) -> None:
        if not dry_run and (smtp is None or not smtp.user or not smtp.password):
            raise ConfigurationError(
                "SMTP_USER and SMTP_PASSWORD are required to send invitations "
                "(set INVITE_DRY_RUN=true for development)."
            )
        self.app_url = app_url
        self.smtp = smtp
        self.dry_run = dry_run

    def compose(self, interview: Interview, participant: Participant) -> MIMEMultipart:
        company = f" for {interview.company_name}" if interview.company_name else ""
        link = build_invitation_link(self.app_url, interview.id, participant.contact)
        msg = MIMEMultipart()
        sender = self.smtp.user if self.smtp else ""
        sender_name = self.smtp.sender_name if self.smtp else ""
        msg["From"] = f"{sender_name} <{sender}>" if sender_name else sender
        msg["To"] = participant.contact
        msg["Subject"] = SUBJECT.format(company=company)
        msg.attach(
            MIMEText(
                BODY.format(
                    name=html.escape(participant.name or participant.contact),
                    role=html.escape(participant.role or "participant"),
                    company=html.escape(company),
                    link=html.escape(link),
                ),
                "html",
            )
        )
        return msg

    def send(self, interview: Interview) -> SentInvitations | DryRunInvitations:
        participants = [p for p in interview.participants if p.contact]
        if self.dry_run:
            links = {
                p.contact: build_invitation_link(self.app_url, interview.id, p.contact)
                for p in participants
            }
            for contact, link in links.items():
                logger.warning("[dry-run] Invitation for %s not sent: %s", contact, link)
            return DryRunInvitations(links=links)

        result = SentInvitations()
        try:
            server = smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=30)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Could not connect to SMTP server %s: %s", self.smtp.host, e)
            raise CollaboratorError("invite", str(e)) from e

        try:
            if self.smtp.use_tls:
                server.starttls()
            server.login(self.smtp.user, self.smtp.password)
            for participant in participants:
                try:
                    server.send_message(self.compose(interview, participant))
                except smtplib.SMTPException as e:
                    logger.error("Failed to send invitation to %s: %s", participant.contact, e)
                    result.failed[participant.contact] = str(e)
                else:
                    logger.info("Invitation sent to %s", participant.contact)
                    result.sent.append(participant.contact)
        except smtplib.SMTPException as e:
            logger.error("SMTP session failed: %s", e)
            raise CollaboratorError("invite", str(e)) from e
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                pass
        return result
