"""Shared LLM / audio client factories.

Every module that needs an OpenAI chat model or the raw OpenAI client
(speech endpoints) should import from here instead of constructing its
own client, ensuring consistent model selection, temperature, and
timeout configuration.
"""

from __future__ import annotations

import os

from langchain_openai import ChatOpenAI
from openai import OpenAI

import diagnostic.settings as settings
from diagnostic.errors import ConfigurationError

# Default network timeout (seconds) for all OpenAI requests.
_REQUEST_TIMEOUT: int = 30
# Report compilation produces a long JSON document.
_REPORT_TIMEOUT: int = 120


def require_openai_key() -> str:
    """Return the OpenAI API key or fail fast with a descriptive error."""
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        raise ConfigurationError(
            "OPENAI_API_KEY is not set; the chat, report, transcription and "
            "speech collaborators cannot be created."
        )
    return key


def get_chat_llm(
    *,
    temperature: float = 0.7,
    request_timeout: int = _REQUEST_TIMEOUT,
) -> ChatOpenAI:
    """Return a configured ChatOpenAI instance for the interviewer."""
    return ChatOpenAI(
        model=settings.LLM_MODEL_NAME,
        temperature=temperature,
        request_timeout=request_timeout,
        api_key=require_openai_key(),
    )


def get_report_llm(
    *,
    request_timeout: int = _REPORT_TIMEOUT,
) -> ChatOpenAI:
    """Return a ChatOpenAI instance constrained to JSON-object output."""
    return ChatOpenAI(
        model=settings.REPORT_MODEL_NAME,
        temperature=0.0,
        request_timeout=request_timeout,
        api_key=require_openai_key(),
        model_kwargs={"response_format": {"type": "json_object"}},
    )


def get_audio_client(*, request_timeout: int = _REQUEST_TIMEOUT) -> OpenAI:
    """Return the raw OpenAI client used for transcription and speech."""
    return OpenAI(api_key=require_openai_key(), timeout=request_timeout)
