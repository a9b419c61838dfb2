"""Relative-time markers for gaps in a conversation.

A marker such as ``(3 hours ago; 2024-01-02 15:04)`` is prefixed to a turn
whenever the pause since the previous message reaches the configured
threshold, so the model can tell a fresh topic from a continuing one.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from telence.context.turns import ChatTurn, turn_from_record
from telence.message_db import MessageRecord

_LOG = logging.getLogger(__name__)

_ABSOLUTE_FORMAT = "%Y-%m-%d %H:%M"


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO-8601 timestamp; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def elapsed_unit(seconds: float) -> tuple[int, str]:
    """Return ``(value, unit)`` for a gap: minutes below an hour, hours below a day, else days."""
    minutes = seconds / 60
    if minutes < 60:
        return _round_half_up(minutes), "minute"
    hours = minutes / 60
    if hours < 24:
        return _round_half_up(hours), "hour"
    return _round_half_up(hours / 24), "day"


def format_relative_time(
    previous: datetime,
    current: datetime,
    threshold_seconds: float,
) -> str | None:
    """Return the marker for the gap between two messages, or None below the threshold."""
    gap = (current - previous).total_seconds()
    if gap < threshold_seconds:
        return None

    value, unit = elapsed_unit(gap)
    stamp = current.strftime(_ABSOLUTE_FORMAT)
    if unit == "day" and value == 1 and previous.date() == current.date() - timedelta(days=1):
        return f"(Yesterday; {stamp})"
    suffix = "s" if value > 1 else ""
    return f"({value} {unit}{suffix} ago; {stamp})"


def annotate(records: Sequence[MessageRecord], threshold_seconds: float) -> list[ChatTurn]:
    """Convert records to turns, prefixing a marker wherever a long pause precedes a message.

    Pure: performs no I/O. The first record never gets a marker.
    """
    turns: list[ChatTurn] = []
    previous: datetime | None = None
    for record in records:
        turn = turn_from_record(record)
        try:
            current: datetime | None = parse_timestamp(record.timestamp)
        except ValueError:
            _LOG.debug("Unparseable timestamp %r; not annotating", record.timestamp)
            current = None

        if previous is not None and current is not None:
            marker = format_relative_time(previous, current, threshold_seconds)
            if marker:
                turn = ChatTurn(role=turn.role, content=f"{marker} {turn.content}")

        turns.append(turn)
        previous = current
    return turns
