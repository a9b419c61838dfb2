"""Prompt assembly: turns, relative-time markers and bounded windows."""

from .temporal import annotate, format_relative_time
from .turns import ChatTurn, turn_from_record
from .window import (
    MAX_MESSAGES,
    ContextWindow,
    ContextWindowBuilder,
    CountSelector,
    TimeSelector,
    parse_duration,
    parse_selector,
)

__all__ = [
    "MAX_MESSAGES",
    "ChatTurn",
    "ContextWindow",
    "ContextWindowBuilder",
    "CountSelector",
    "TimeSelector",
    "annotate",
    "format_relative_time",
    "parse_duration",
    "parse_selector",
    "turn_from_record",
]
