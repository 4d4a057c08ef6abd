"""Project-wide settings and shared interview constants.

All environment-dependent values are read **lazily** on first access
(not at import time) and cached via ``functools.lru_cache``.  Call
``reset()`` in tests to clear the cache after changing env vars —
no ``importlib.reload`` required.
"""

from __future__ import annotations

import functools
import os
from typing import TYPE_CHECKING, Final


def _float_env(name: str, default: float) -> float:
    """Parse float environment values with a safe fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    """Parse integer environment values with a safe fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _str_env(name: str, default: str = "") -> str:
    # Hosting dashboards sometimes keep trailing whitespace after copy/paste.
    return os.getenv(name, default).strip()


# ── Constants (never change at runtime) ──────────────────────────────────
PROGRESS_CAP: Final[int] = 95
PROGRESS_PER_EXCHANGE: Final[int] = 5

READY_MESSAGE: Final[str] = (
    "Hello, I am ready for the diagnostic. Please begin following the protocol."
)

DIMENSION_KEYS: Final[tuple[str, ...]] = (
    "strategy",
    "culture",
    "processes",
    "data",
    "analytics",
    "technology",
    "governance",
)

LEVEL_LABELS: Final[dict[int, str]] = {
    1: "Initial",
    2: "Basic",
    3: "Intermediate",
    4: "Advanced",
    5: "Optimized",
}

HORIZON_KEYS: Final[tuple[str, ...]] = ("short_term", "medium_term", "long_term")


# ── Lazy settings cache ──────────────────────────────────────────────────

@functools.lru_cache(maxsize=1)
def _load_settings() -> dict[str, object]:
    """Read env-dependent settings once and cache the result."""
    chat_model = _str_env("OPENAI_CHAT_MODEL", "gpt-5.2")
    return {
        "LLM_MODEL_NAME": chat_model,
        "REPORT_MODEL_NAME": _str_env("OPENAI_REPORT_MODEL", chat_model),
        "TRANSCRIBE_MODEL_NAME": _str_env(
            "OPENAI_TRANSCRIBE_MODEL", "gpt-4o-mini-transcribe"
        ),
        "TTS_MODEL_NAME": _str_env("OPENAI_TTS_MODEL", "gpt-4o-mini-tts"),
        "TTS_VOICE": _str_env("OPENAI_TTS_VOICE", "alloy"),
        "INTERVIEW_LANGUAGE": _str_env("INTERVIEW_LANGUAGE", "es"),
        "STORE_BACKEND": _str_env("STORE_BACKEND", "local").lower(),
        "LOCAL_STORE_PATH": _str_env("LOCAL_STORE_PATH"),
        "FIREBASE_CREDENTIALS": _str_env("FIREBASE_CREDENTIALS"),
        "FIREBASE_PROJECT_ID": _str_env("FIREBASE_PROJECT_ID"),
        "APP_URL": _str_env("APP_URL", "http://localhost:3000").rstrip("/"),
        "INVITE_DRY_RUN": _bool_env("INVITE_DRY_RUN", False),
        "SMTP_HOST": _str_env("SMTP_HOST", "smtp.gmail.com"),
        "SMTP_PORT": _int_env("SMTP_PORT", 587),
        "SMTP_USER": _str_env("SMTP_USER"),
        "SMTP_PASSWORD": _str_env("SMTP_PASSWORD"),
        "SMTP_USE_TLS": _bool_env("SMTP_USE_TLS", True),
        "INVITE_SENDER_NAME": _str_env("INVITE_SENDER_NAME", "Maturity Diagnostic"),
        "AUTH_DEV_MODE": _bool_env("AUTH_DEV_MODE", False),
        "MAX_TURNS": max(1, _int_env("MAX_TURNS", 60)),
        "CONTEXT_WINDOW": max(0, _int_env("CONTEXT_WINDOW", 5)),
        "AUTO_REPORT": _bool_env("AUTO_REPORT", True),
        "DIVERGENCE_SPREAD": _float_env("DIVERGENCE_SPREAD", 2.0),
    }


def reset() -> None:
    """Clear the cached settings — call from tests after monkeypatching env vars."""
    _load_settings.cache_clear()


# Type declarations for static analysis (not set at runtime so
# ``__getattr__`` is invoked on attribute access).
if TYPE_CHECKING:
    LLM_MODEL_NAME: str
    REPORT_MODEL_NAME: str
    TRANSCRIBE_MODEL_NAME: str
    TTS_MODEL_NAME: str
    TTS_VOICE: str
    INTERVIEW_LANGUAGE: str
    STORE_BACKEND: str
    LOCAL_STORE_PATH: str
    FIREBASE_CREDENTIALS: str
    FIREBASE_PROJECT_ID: str
    APP_URL: str
    INVITE_DRY_RUN: bool
    SMTP_HOST: str
    SMTP_PORT: int
    SMTP_USER: str
    SMTP_PASSWORD: str
    SMTP_USE_TLS: bool
    INVITE_SENDER_NAME: str
    AUTH_DEV_MODE: bool
    MAX_TURNS: int
    CONTEXT_WINDOW: int
    AUTO_REPORT: bool
    DIVERGENCE_SPREAD: float


def __getattr__(name: str) -> object:
    """PEP 562 module-level ``__getattr__`` — provides lazy env reads."""
    settings = _load_settings()
    if name in settings:
        return settings[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


# ── Public helpers ────────────────────────────────────────────────────────


def level_for_score(score: int) -> str:
    """Map an integer 1–5 maturity score to its level label."""
    return LEVEL_LABELS[max(1, min(5, int(score)))]
