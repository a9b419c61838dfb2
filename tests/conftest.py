"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from telence.message_db import MessageRecord, MessageStore, format_timestamp
from telence.text_generators import GenerationSuccess, TextGeneratorAPI

T0 = datetime(2024, 1, 2, 12, 0, 0, tzinfo=timezone.utc)


def make_record(
    text: str,
    *,
    at: datetime = T0,
    sender_id: int = 42,
    sender_name: str = "alice",
    conversation_id: int = 1,
) -> MessageRecord:
    return MessageRecord(
        conversation_id=conversation_id,
        sender_id=sender_id,
        sender_name=sender_name,
        text=text,
        timestamp=format_timestamp(at),
    )


class FakeTransport:
    """Stands in for HttpTransport; replays queued responses or errors."""

    def __init__(self, responses: list[Any] | None = None):
        self.responses = list(responses or [])
        self.calls: list[tuple[str, dict[str, Any], dict[str, str] | None]] = []
        self.closed = False

    async def _next(self) -> Any:
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def post_json(self, url, payload, *, headers=None):
        self.calls.append((url, payload, headers))
        return await self._next()

    async def post_form(self, url, data, *, headers=None):
        self.calls.append((url, data, headers))
        return await self._next()

    async def close(self):
        self.closed = True


class FakeGenerator(TextGeneratorAPI):
    """Generator that records windows and returns canned results."""

    provider = "fake"

    def __init__(self, result=None):
        super().__init__("fake-model", FakeTransport())
        self.result = result if result is not None else GenerationSuccess("hi there", 7)
        self.windows = []

    async def build_request(self, window):  # pragma: no cover - generate is overridden
        raise NotImplementedError

    def parse_response(self, data):  # pragma: no cover - generate is overridden
        raise NotImplementedError

    async def generate(self, window):
        self.windows.append(window)
        return self.result


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db(temp_dir):
    """Create a temporary database file."""
    db_file = temp_dir / "test.db"
    yield str(db_file)


@pytest.fixture
def store(temp_db):
    """An initialized message store on a temporary database."""
    message_store = MessageStore(temp_db)
    message_store.init_db()
    return message_store


@pytest.fixture
def populated_store(store):
    """Store with three messages in conversation 1: t0, t0+30s, t0+3h."""
    for offset, name, text in (
        (timedelta(0), "alice", "hello"),
        (timedelta(seconds=30), "bob", "hi alice"),
        (timedelta(hours=3), "alice", "anyone around?"),
    ):
        store.insert_message(1, 42 if name == "alice" else 43, name, text, format_timestamp(T0 + offset))
    return store


@pytest.fixture
def mock_discord_channel():
    """Create a mock Discord channel."""
    channel = MagicMock()
    channel.id = 123456789
    channel.name = "test-channel"
    channel.send = AsyncMock()
    typing_cm = MagicMock()
    typing_cm.__aenter__ = AsyncMock(return_value=None)
    typing_cm.__aexit__ = AsyncMock(return_value=False)
    channel.typing = MagicMock(return_value=typing_cm)
    return channel


@pytest.fixture
def mock_discord_message(mock_discord_channel):
    """Create a mock Discord message."""
    message = MagicMock()
    message.id = 987654321
    message.content = "Test message content"
    message.clean_content = "Test message content"
    message.author = MagicMock()
    message.author.id = 111222333
    message.author.name = "TestUser"
    message.author.nick = None
    message.author.global_name = None
    message.author.bot = False
    message.channel = mock_discord_channel
    message.guild = None
    message.mentions = []
    return message


@pytest.fixture
def mock_discord_ctx(mock_discord_channel):
    """Create a mock Discord command context."""
    ctx = MagicMock()
    ctx.author = MagicMock()
    ctx.author.id = 111222333
    ctx.author.name = "TestUser"
    ctx.channel = mock_discord_channel
    ctx.send = AsyncMock()
    ctx.reply = AsyncMock()
    return ctx


@pytest.fixture
def mock_bot():
    """Create a mock Discord bot."""
    bot = MagicMock()
    bot.user = MagicMock()
    bot.user.id = 999888777
    bot.user.name = "TestBot"
    bot.loop = MagicMock()
    return bot
