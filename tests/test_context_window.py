"""Tests for selector parsing and window assembly."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from conftest import T0, make_record
from telence.context.window import (
    MAX_MESSAGES,
    ContextWindowBuilder,
    CountSelector,
    TimeSelector,
    parse_duration,
    parse_selector,
)
from telence.errors import ValidationError
from telence.message_db import format_timestamp


class ListStore:
    """In-memory history store with the same ordering contract as MessageStore."""

    def __init__(self, records):
        self.records = list(records)
        self.calls = []

    def query_recent(self, conversation_id, limit):
        self.calls.append(("recent", conversation_id, limit))
        return self.records[-limit:] if limit else []

    def query_recent_since(self, conversation_id, since_timestamp):
        self.calls.append(("since", conversation_id, since_timestamp))
        return [r for r in self.records if r.timestamp >= since_timestamp]


def _history(count, *, start=T0, step=timedelta(seconds=10)):
    return [make_record(f"message {i}", at=start + i * step) for i in range(count)]


class TestParseDuration:
    def test_rejects_overflowing_period(self):
        with pytest.raises(ValidationError):
            parse_duration("1e12h")

    def test_hours(self):
        assert parse_duration("2h") == timedelta(hours=2)

    def test_fractional_hours(self):
        assert parse_duration("1.5h") == timedelta(minutes=90)

    @pytest.mark.parametrize("token", ["h", "0h", "-1h", "abch", "infh", "nanh", "2", "2m", "1e400h"])
    def test_rejects_malformed(self, token):
        with pytest.raises(ValidationError):
            parse_duration(token)


class TestParseSelector:
    def test_count(self):
        assert parse_selector("20") == CountSelector(20)

    def test_period(self):
        assert parse_selector("3h") == TimeSelector(timedelta(hours=3))

    @pytest.mark.parametrize("token", ["0", "-5", "ten", "1.5", "", "0h", "xh"])
    def test_rejects_malformed(self, token):
        with pytest.raises(ValidationError):
            parse_selector(token)


class TestCountSelector:
    @pytest.mark.parametrize("requested", [1, MAX_MESSAGES, MAX_MESSAGES + 1, 10 * MAX_MESSAGES])
    def test_never_exceeds_ceiling(self, requested):
        store = ListStore(_history(10 * MAX_MESSAGES + 5))
        builder = ContextWindowBuilder(store, max_messages=MAX_MESSAGES)
        window = builder.build(1, CountSelector(requested), "system")
        assert len(window.history) == min(requested, MAX_MESSAGES)
        assert store.calls == [("recent", 1, min(requested, MAX_MESSAGES))]

    def test_keeps_most_recent_oldest_first(self):
        store = ListStore(_history(10))
        window = ContextWindowBuilder(store).build(1, CountSelector(3), "system")
        assert [t.content for t in window.history] == [
            "alice: message 7",
            "alice: message 8",
            "alice: message 9",
        ]


class TestTimeSelector:
    def test_drops_oldest_beyond_ceiling(self):
        now = T0 + timedelta(hours=1)
        records = _history(150, start=T0 + timedelta(minutes=30))
        builder = ContextWindowBuilder(ListStore(records), max_messages=100)
        selected = builder.select(1, TimeSelector(timedelta(hours=1)), now=now)
        assert len(selected) == 100
        assert selected == records[50:]

    def test_only_messages_inside_period(self):
        now = T0 + timedelta(hours=3)
        records = [
            make_record("old", at=T0),
            make_record("recent", at=T0 + timedelta(hours=2, minutes=30)),
        ]
        store = ListStore(records)
        window = ContextWindowBuilder(store).build(1, TimeSelector(timedelta(hours=1)), "system", now=now)
        assert [t.content for t in window.history] == ["alice: recent"]
        assert store.calls == [("since", 1, format_timestamp(now - timedelta(hours=1)))]

    def test_period_longer_than_the_calendar_covers_everything(self):
        records = _history(3)
        store = ListStore(records)
        selected = ContextWindowBuilder(store).select(1, parse_selector("30000000h"), now=T0)
        assert selected == records
        assert store.calls == [("since", 1, "0001-01-01T00:00:00.000+00:00")]


class TestWindowShape:
    def test_exactly_one_leading_system_turn(self):
        window = ContextWindowBuilder(ListStore(_history(5))).build(1, CountSelector(5), "be nice")
        turns = window.turns
        assert turns[0].role == "system"
        assert turns[0].content == "be nice"
        assert all(t.role != "system" for t in turns[1:])
        assert len(window) == 6

    def test_empty_history_is_only_system_turn(self):
        window = ContextWindowBuilder(ListStore([])).build(1, CountSelector(20), "summarize")
        assert window.is_empty
        assert window.to_payload() == [{"role": "system", "content": "summarize"}]

    def test_summary_mode_has_no_markers(self):
        records = [make_record("a", at=T0), make_record("b", at=T0 + timedelta(days=2))]
        window = ContextWindowBuilder(ListStore(records)).build(1, CountSelector(5), "s")
        assert window.history[1].content == "alice: b"

    def test_conversation_mode_annotates(self):
        records = [make_record("a", at=T0), make_record("b", at=T0 + timedelta(days=2))]
        window = ContextWindowBuilder(ListStore(records), relative_time_threshold=600).build(
            1, CountSelector(5), "s", annotate_gaps=True
        )
        assert window.history[1].content == "(2 days ago; 2024-01-04 12:00) alice: b"

    def test_role_mapping(self):
        records = [
            make_record("question", sender_id=7, sender_name="carol"),
            make_record("answer", sender_id=0, sender_name="Telence"),
        ]
        window = ContextWindowBuilder(ListStore(records)).build(1, CountSelector(5), "s")
        assert window.to_payload()[1:] == [
            {"role": "user", "content": "carol: question"},
            {"role": "assistant", "content": "answer"},
        ]


def test_invalid_selector_never_touches_storage():
    store = MagicMock()
    with pytest.raises(ValidationError):
        selector = parse_selector("-3h")
        ContextWindowBuilder(store).build(1, selector, "s")
    store.query_recent.assert_not_called()
    store.query_recent_since.assert_not_called()


def test_builder_rejects_nonpositive_ceiling():
    with pytest.raises(ValueError):
        ContextWindowBuilder(ListStore([]), max_messages=0)


def test_real_store_integration(populated_store):
    builder = ContextWindowBuilder(populated_store, max_messages=2)
    window = builder.build(1, CountSelector(50), "s", annotate_gaps=True)
    assert [t.content for t in window.history] == [
        "bob: hi alice",
        "(3 hours ago; 2024-01-02 15:00) alice: anyone around?",
    ]
