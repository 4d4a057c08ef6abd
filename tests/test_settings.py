"""Tests for shared settings and level labels."""

from __future__ import annotations

import diagnostic.settings as settings


def test_level_for_score_uses_labels():
    assert settings.level_for_score(1) == "Initial"
    assert settings.level_for_score(3) == "Intermediate"
    assert settings.level_for_score(5) == "Optimized"


def test_level_for_score_clamps_out_of_range():
    assert settings.level_for_score(0) == "Initial"
    assert settings.level_for_score(9) == "Optimized"


def test_invalid_numeric_env_falls_back(monkeypatch):
    monkeypatch.setenv("MAX_TURNS", "lots")
    monkeypatch.setenv("DIVERGENCE_SPREAD", "wide")
    settings.reset()

    assert settings.MAX_TURNS == 60
    assert settings.DIVERGENCE_SPREAD == 2.0

    monkeypatch.delenv("MAX_TURNS")
    monkeypatch.delenv("DIVERGENCE_SPREAD")
    settings.reset()


def test_lazy_model_name(monkeypatch):
    """Model names are read lazily — monkeypatch works without reload."""
    monkeypatch.setenv("OPENAI_CHAT_MODEL", "gpt-test-model")
    monkeypatch.delenv("OPENAI_REPORT_MODEL", raising=False)
    settings.reset()

    assert settings.LLM_MODEL_NAME == "gpt-test-model"
    # The report model follows the chat model unless set explicitly.
    assert settings.REPORT_MODEL_NAME == "gpt-test-model"

    monkeypatch.delenv("OPENAI_CHAT_MODEL", raising=False)
    settings.reset()


def test_string_settings_are_trimmed(monkeypatch):
    monkeypatch.setenv("APP_URL", "  https://diag.example.com/  ")
    monkeypatch.setenv("INVITE_DRY_RUN", "yes")
    settings.reset()

    assert settings.APP_URL == "https://diag.example.com"
    assert settings.INVITE_DRY_RUN is True

    monkeypatch.delenv("APP_URL")
    monkeypatch.delenv("INVITE_DRY_RUN")
    settings.reset()
