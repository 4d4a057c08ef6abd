"""Text-to-speech using the OpenAI speech endpoint."""

from __future__ import annotations

import logging
import re

from openai import OpenAI, OpenAIError

from diagnostic.errors import CollaboratorError

logger = logging.getLogger(__name__)

_MARKUP = re.compile(r"[*#`_]")


def strip_markup(text: str) -> str:
    """Remove markdown emphasis, heading and code characters."""
    return _MARKUP.sub("", text)


class Synthesizer:
    """Render an agent reply as MP3 audio."""

    def __init__(self, client: OpenAI, model: str, voice: str) -> None:
        self._client = client
        self._model = model
        self._voice = voice

    def synthesize(self, text: str) -> bytes:
        clean = strip_markup(text).strip()
        if not clean:
            raise CollaboratorError("synthesize", "nothing to say")
        try:
            response = self._client.audio.speech.create(
                model=self._model,
                voice=self._voice,
                input=clean,
                response_format="mp3",
            )
        except OpenAIError as e:
            logger.warning("Speech synthesis failed: %s", e)
            raise CollaboratorError("synthesize", str(e)) from e

        audio = response.content
        if not audio:
            raise CollaboratorError("synthesize", "no audio content returned")
        return audio
