"""Speech-to-text using the OpenAI audio transcription endpoint."""

from __future__ import annotations

import logging

from openai import OpenAI, OpenAIError

from diagnostic.errors import CollaboratorError

logger = logging.getLogger(__name__)


class Transcriber:
    """Transcribe one recorded answer.

    Best effort: silence or unintelligible audio yields ``""``, which is a
    valid result.  Provider failures raise ``CollaboratorError``.
    """

    def __init__(
        self,
        client: OpenAI,
        model: str,
        language: str | None = None,
        filename: str = "answer.webm",
    ) -> None:
        self._client = client
        self._model = model
        self._language = language or None
        self._filename = filename

    def transcribe(self, audio: bytes) -> str:
        if not audio:
            return ""
        try:
            result = self._client.audio.transcriptions.create(
                model=self._model,
                file=(self._filename, audio),
                language=self._language,
            )
        except OpenAIError as e:
            logger.warning("Transcription failed: %s", e)
            raise CollaboratorError("transcribe", str(e)) from e

        text = getattr(result, "text", "") or ""
        return text.strip()
