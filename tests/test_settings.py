"""Tests for system prompt loading."""

from __future__ import annotations

import os

import pytest

from telence import settings


@pytest.fixture(autouse=True)
def _fresh_cache(monkeypatch):
    monkeypatch.delenv("SYSTEM_PROMPT_FILE", raising=False)
    settings.clear_system_prompt_cache()
    yield
    settings.clear_system_prompt_cache()


def test_fallback_prompt_is_rendered():
    prompt = settings.render_system_prompt("Ada", 12)
    assert "You are Ada" in prompt
    assert "last 12 messages" in prompt
    assert "{bot_name}" not in prompt


def test_prompt_file_override(monkeypatch, temp_dir):
    path = temp_dir / "prompt.txt"
    path.write_text("I am {bot_name}, I see {context_size} messages.", encoding="utf-8")
    monkeypatch.setenv("SYSTEM_PROMPT_FILE", str(path))

    assert settings.render_system_prompt("Ada", 5) == "I am Ada, I see 5 messages."


def test_unreadable_override_falls_back(monkeypatch, temp_dir):
    monkeypatch.setenv("SYSTEM_PROMPT_FILE", str(temp_dir / "missing.txt"))
    assert settings.get_default_system_prompt() == settings._FALLBACK_SYSTEM_PROMPT


def test_override_is_reread_when_modified(monkeypatch, temp_dir):
    path = temp_dir / "prompt.txt"
    path.write_text("first", encoding="utf-8")
    os.utime(path, (1_000_000, 1_000_000))
    monkeypatch.setenv("SYSTEM_PROMPT_FILE", str(path))
    assert settings.get_default_system_prompt() == "first"

    path.write_text("second", encoding="utf-8")
    os.utime(path, (2_000_000, 2_000_000))
    assert settings.get_default_system_prompt() == "second"
