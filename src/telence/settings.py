"""System prompts for conversation and summary mode.

These are non-secret, stable texts better tracked in source control than
environment variables. The conversation prompt can be overridden with a
file; ``{bot_name}`` and ``{context_size}`` placeholders are filled in at
render time.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

_LOG = logging.getLogger(__name__)


# --------------------- System prompt (conversation) ---------------------

# Fallback default (used if no file is provided or readable).
_FALLBACK_SYSTEM_PROMPT: str = (
    "You are {bot_name}, a friendly and intelligent chat bot integrated into group and private chats. "
    "In group chats, you respond only when explicitly mentioned (e.g., '@{bot_name}'). "
    "You have access to the last {context_size} messages of the conversation, including both user "
    "messages and your own previous responses. Use this context to generate helpful, accurate, and "
    "context-aware answers.\n\n"
    "What you are given\n"
    "• User turns are prefixed with the author's name, like `name: message`.\n"
    "• Some turns start with a marker such as (3 hours ago; 2024-01-02 15:04) or "
    "(Yesterday; 2024-01-02 15:04) showing a pause in the conversation. They are for your reference only.\n\n"
    "Behavior\n"
    "• When referring to other users, mention them by name.\n"
    "• Keep the conversation natural and engaging, but keep it cool.\n"
    "• Don't add timestamps to your messages unless you're asked to do so.\n"
)

# --------------------- System prompt (summary) ---------------------

SUMMARY_PROMPT: str = (
    "You are a brilliant premium assistant with attention to details. Summarize the following "
    "chat conversation into bullet points. Each bullet point should represent a key topic or "
    "decision, focusing on the most valuable information."
)


_PROMPT_OVERRIDE_ENV = "SYSTEM_PROMPT_FILE"

# (path, mtime, text) of the last override file read
_cached_override: Optional[tuple[Path, float, str]] = None


def _override_path() -> Optional[Path]:
    raw = os.getenv(_PROMPT_OVERRIDE_ENV, "").strip()
    return Path(raw).expanduser() if raw else None


def get_default_system_prompt() -> str:
    """Return the conversation prompt template.

    The file named by ``SYSTEM_PROMPT_FILE`` wins when it is readable and is
    re-read only after its mtime changes. Otherwise the built-in template is
    used.
    """
    global _cached_override  # noqa: PLW0603

    path = _override_path()
    if path is None:
        return _FALLBACK_SYSTEM_PROMPT
    try:
        mtime = path.stat().st_mtime
        if _cached_override is not None and _cached_override[:2] == (path, mtime):
            return _cached_override[2]
        text = path.read_text(encoding="utf-8")
    except OSError:
        _LOG.warning("Could not read %s=%s, using the built-in prompt", _PROMPT_OVERRIDE_ENV, path)
        return _FALLBACK_SYSTEM_PROMPT
    _cached_override = (path, mtime, text)
    return text


def clear_system_prompt_cache() -> None:
    global _cached_override  # noqa: PLW0603
    _cached_override = None


def render_system_prompt(bot_name: str, context_size: int) -> str:
    template = get_default_system_prompt()
    return template.replace("{bot_name}", bot_name).replace("{context_size}", str(context_size))
