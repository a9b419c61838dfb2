"""Per-message request pipeline between the chat transport and the generator.

This is the boundary where generation results become user-facing text:
every failure below it is turned into a short message, so nothing raised
while handling a chat message can take the bot down.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

from telence.config import BotConfig
from telence.context.window import ContextWindowBuilder, CountSelector, TimeSelector, parse_selector
from telence.errors import AuthenticationError, ValidationError
from telence.message_db import ASSISTANT_SENDER_ID, MessageStore, utc_now
from telence.settings import SUMMARY_PROMPT, render_system_prompt
from telence.text_generators import (
    GenerationFailure,
    GenerationResult,
    GenerationSuccess,
    NoContent,
    TextGeneratorAPI,
)

_LOG = logging.getLogger(__name__)

T = TypeVar("T")

TROUBLE_REPLY = "I'm having trouble processing that request."
AUTH_FAILURE_REPLY = "I couldn't authenticate with the language model provider. Please try again later."
NO_CONTENT_REPLY = "Error generating response."
SUMMARY_USAGE = "Usage: !summary <number of messages | time period (e.g., 1h)>"
INVALID_TIME_REPLY = "Invalid time format. Use a positive number followed by 'h' (e.g., 1h)."
INVALID_COUNT_REPLY = "Invalid number of messages. Use a positive number (e.g., !summary 20)."
NOTHING_TO_SUMMARIZE = "No messages found to summarize."
RESET_REPLY = "Memory has been reset for this chat."


class SummaryStatus(enum.Enum):
    OK = "ok"
    USAGE = "usage"
    INVALID = "invalid"
    EMPTY = "empty"


@dataclass(frozen=True)
class SummaryOutcome:
    status: SummaryStatus
    text: str


def present(result: GenerationResult) -> str:
    """Turn a generation result into the text shown to the user."""
    if isinstance(result, GenerationSuccess):
        return result.text
    if isinstance(result, NoContent):
        return NO_CONTENT_REPLY
    if isinstance(result.error, AuthenticationError):
        return AUTH_FAILURE_REPLY
    return TROUBLE_REPLY


class ConversationPipeline:
    """Store inbound messages, build windows and produce replies."""

    def __init__(
        self,
        store: MessageStore,
        generator: TextGeneratorAPI,
        *,
        bot_name: str = "Telence",
        context_size: int = 20,
        max_messages: int = 100,
        relative_time_threshold: float = 600,
    ) -> None:
        self.store = store
        self.generator = generator
        self.bot_name = bot_name
        self.context_size = context_size
        self.builder = ContextWindowBuilder(
            store,
            max_messages=max_messages,
            relative_time_threshold=relative_time_threshold,
        )
        self._accepting = True
        self._in_flight: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: BotConfig,
        store: MessageStore,
        generator: TextGeneratorAPI,
    ) -> "ConversationPipeline":
        return cls(
            store,
            generator,
            bot_name=config.bot_name,
            context_size=config.context_size,
            max_messages=config.max_messages,
            relative_time_threshold=config.relative_time_threshold_seconds,
        )

    @property
    def accepting(self) -> bool:
        return self._accepting

    # ------------------------------------------------------------------ messages
    def record_message(self, conversation_id: int, sender_id: int, sender_name: str, text: str) -> None:
        self.store.insert_message(conversation_id, sender_id, sender_name, text, utc_now())

    async def respond(self, conversation_id: int) -> str | None:
        """Generate a reply from the recent history; None while shutting down."""
        if not self._accepting:
            return None
        window = self.builder.build(
            conversation_id,
            CountSelector(self.context_size),
            render_system_prompt(self.bot_name, self.context_size),
            annotate_gaps=True,
        )
        result = await self._track(self.generator.generate(window))
        self._record_usage(conversation_id, result)
        reply = present(result)
        if isinstance(result, GenerationSuccess):
            self.store.insert_message(conversation_id, ASSISTANT_SENDER_ID, self.bot_name, reply, utc_now())
        return reply

    # ------------------------------------------------------------------ commands
    async def summarize(self, conversation_id: int, argument: str | None) -> SummaryOutcome:
        if not argument or not argument.strip():
            return SummaryOutcome(SummaryStatus.USAGE, SUMMARY_USAGE)
        argument = argument.split()[0]
        try:
            selector = parse_selector(argument)
        except ValidationError as exc:
            _LOG.info("Rejected summary argument: %s", exc)
            text = INVALID_TIME_REPLY if argument.endswith("h") else INVALID_COUNT_REPLY
            return SummaryOutcome(SummaryStatus.INVALID, text)

        window = self.builder.build(conversation_id, selector, SUMMARY_PROMPT)
        if window.is_empty:
            _LOG.info("No messages found for summary in chat %s", conversation_id)
            return SummaryOutcome(SummaryStatus.EMPTY, NOTHING_TO_SUMMARIZE)

        kind = "period" if isinstance(selector, TimeSelector) else "count"
        _LOG.info(
            "Generating summary (%s) for %d messages in chat %s",
            kind,
            len(window.history),
            conversation_id,
        )
        result = await self._track(self.generator.generate(window))
        self._record_usage(conversation_id, result)
        return SummaryOutcome(SummaryStatus.OK, present(result))

    def reset(self, conversation_id: int) -> str:
        removed = self.store.delete_messages(conversation_id)
        _LOG.info("Cleared %d stored messages for chat %s", removed, conversation_id)
        return RESET_REPLY

    # ------------------------------------------------------------------ lifecycle
    async def _track(self, awaitable: Awaitable[T]) -> T:
        task = asyncio.ensure_future(awaitable)
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return await task

    def _record_usage(self, conversation_id: int, result: GenerationResult) -> None:
        if isinstance(result, GenerationFailure) or result.tokens_used is None:
            return
        self.store.record_usage(conversation_id, result.tokens_used, self.generator.model, utc_now())

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Stop taking new work, give running generations ``timeout`` seconds, release HTTP resources."""
        self._accepting = False
        pending = set(self._in_flight)
        if pending:
            _LOG.info("Waiting for %d in-flight generation(s)", len(pending))
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                _LOG.warning("Abandoned %d generation(s) at shutdown", len(still_running))
        await self.generator.transport.close()
