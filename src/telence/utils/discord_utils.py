"""Discord utility functions."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import discord
    from discord.abc import Messageable

_LOG = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 4000


def get_display_name(user: discord.User | discord.Member) -> str:
    """Get user's display name with proper fallback hierarchy.

    Priority: server nickname > global display name > username
    """
    if hasattr(user, "nick") and user.nick:
        return user.nick

    if hasattr(user, "global_name") and user.global_name:
        return user.global_name

    return user.name


def split_message(message: str, max_length: int = DEFAULT_MAX_LENGTH) -> list[str]:
    """Split ``message`` into ``max_length`` slices.

    When more than one slice is needed each gets a `` [i/total]`` suffix.
    Empty or whitespace-only messages produce no parts.
    """
    if max_length < 1:
        raise ValueError("max_length must be positive")
    if not message or not message.strip():
        return []

    total = math.ceil(len(message) / max_length)
    parts = [message[i * max_length:(i + 1) * max_length] for i in range(total)]
    if total == 1:
        return parts
    return [f"{part} [{i}/{total}]" for i, part in enumerate(parts, start=1)]


async def send_long_message(
    channel: Messageable,
    message: str,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> int:
    """Send ``message`` as ordered parts; returns the number of parts sent."""
    parts = split_message(message, max_length)
    if not parts:
        _LOG.warning("send_long_message: attempted to send an empty message")
        return 0
    for part in parts:
        await channel.send(part)
    return len(parts)
