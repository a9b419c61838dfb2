"""Bounded context-window assembly.

History is selected either by message count (``/summary 20``) or by a time
period (``/summary 3h``). Both paths are capped at ``max_messages`` so a
single request can never send an unbounded prompt.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol, Union

from telence.context.temporal import annotate
from telence.context.turns import ChatTurn, turn_from_record
from telence.errors import ValidationError
from telence.message_db import MessageRecord, format_timestamp

_LOG = logging.getLogger(__name__)

MAX_MESSAGES = 100
EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class HistoryStore(Protocol):
    """The part of the message store the window builder reads from."""

    def query_recent(self, conversation_id: int, limit: int) -> list[MessageRecord]:
        ...

    def query_recent_since(self, conversation_id: int, since_timestamp: str) -> list[MessageRecord]:
        ...


@dataclass(frozen=True)
class CountSelector:
    count: int


@dataclass(frozen=True)
class TimeSelector:
    duration: timedelta


Selector = Union[CountSelector, TimeSelector]


def parse_duration(token: str) -> timedelta:
    """Parse ``<number>h`` into a duration.

    Raises:
        ValidationError: if the suffix is missing or the number is not a
            positive finite value.
    """
    token = token.strip()
    if not token.endswith("h"):
        raise ValidationError(f"Invalid time format: {token!r}")
    try:
        hours = float(token[:-1])
    except ValueError as exc:
        raise ValidationError(f"Invalid time format: {token!r}") from exc
    if not math.isfinite(hours) or hours <= 0:
        raise ValidationError(f"Invalid time format: {token!r}")
    try:
        return timedelta(hours=hours)
    except OverflowError as exc:
        raise ValidationError(f"Time period too large: {token!r}") from exc


def parse_selector(token: str) -> Selector:
    """Interpret a user argument as a time period (``1.5h``) or a message count (``20``)."""
    token = token.strip()
    if token.endswith("h"):
        return TimeSelector(parse_duration(token))
    try:
        count = int(token)
    except ValueError as exc:
        raise ValidationError(f"Invalid message count: {token!r}") from exc
    if count <= 0:
        raise ValidationError(f"Invalid message count: {token!r}")
    return CountSelector(count)


@dataclass(frozen=True)
class ContextWindow:
    """One leading system turn followed by history, oldest first."""

    system: ChatTurn
    history: tuple[ChatTurn, ...] = ()

    @property
    def turns(self) -> list[ChatTurn]:
        return [self.system, *self.history]

    @property
    def is_empty(self) -> bool:
        """True when no history matched; callers treat this as 'nothing to do'."""
        return not self.history

    def __len__(self) -> int:
        return 1 + len(self.history)

    def to_payload(self) -> list[dict[str, str]]:
        return [turn.to_payload() for turn in self.turns]


class ContextWindowBuilder:
    """Select a bounded slice of stored history and turn it into a prompt."""

    def __init__(
        self,
        store: HistoryStore,
        *,
        max_messages: int = MAX_MESSAGES,
        relative_time_threshold: float = 600,
    ) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be positive")
        self.store = store
        self.max_messages = max_messages
        self.relative_time_threshold = relative_time_threshold

    def select(
        self,
        conversation_id: int,
        selector: Selector,
        *,
        now: datetime | None = None,
    ) -> list[MessageRecord]:
        """Fetch the records a selector refers to, capped at ``max_messages``."""
        if isinstance(selector, CountSelector):
            limit = selector.count
            if limit > self.max_messages:
                _LOG.info(
                    "Message limit exceeded: requested %d, limiting to %d",
                    limit,
                    self.max_messages,
                )
                limit = self.max_messages
            return self.store.query_recent(conversation_id, limit)

        now = now or datetime.now(timezone.utc)
        try:
            since = format_timestamp(now - selector.duration)
        except OverflowError:
            # Periods reaching past year 1 cover the whole history.
            since = format_timestamp(EARLIEST)
        records = self.store.query_recent_since(conversation_id, since)
        if len(records) > self.max_messages:
            _LOG.info(
                "Too many messages found (%d), limiting to %d",
                len(records),
                self.max_messages,
            )
            records = records[-self.max_messages:]
        return records

    def build(
        self,
        conversation_id: int,
        selector: Selector,
        system_prompt: str,
        *,
        annotate_gaps: bool = False,
        now: datetime | None = None,
    ) -> ContextWindow:
        records = self.select(conversation_id, selector, now=now)
        return self.assemble(records, system_prompt, annotate_gaps=annotate_gaps)

    def assemble(
        self,
        records: Sequence[MessageRecord],
        system_prompt: str,
        *,
        annotate_gaps: bool = False,
    ) -> ContextWindow:
        if annotate_gaps:
            history = annotate(records, self.relative_time_threshold)
        else:
            history = [turn_from_record(r) for r in records]
        return ContextWindow(
            system=ChatTurn(role="system", content=system_prompt),
            history=tuple(history),
        )
