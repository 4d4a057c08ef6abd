"""Exception hierarchy shared by the core and the HTTP layer."""

from __future__ import annotations


class DiagnosticError(Exception):
    """Base class for every error raised by the diagnostic core."""


class ConfigurationError(DiagnosticError):
    """A collaborator, store or sender is missing credentials or settings."""


class CollaboratorError(DiagnosticError):
    """An external capability (speech, chat, synthesis) failed.

    ``stage`` names the capability so the state machine can report which
    part of the turn was aborted.
    """

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class ReportGenerationError(DiagnosticError):
    """Report compilation failed or returned an unusable payload."""


class AccessDeniedError(DiagnosticError):
    """The acting identity may not see or act on the requested interview."""


class InterviewNotFoundError(DiagnosticError):
    """No interview document exists for the given id."""


class InvalidTransitionError(DiagnosticError):
    """An event arrived in a phase that does not accept it."""


class SessionFinishedError(InvalidTransitionError):
    """The session is finished; no further turns are accepted."""


class TurnLimitReachedError(InvalidTransitionError):
    """The session hit ``MAX_TURNS``; the participant has to finish it."""
