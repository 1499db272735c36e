"""Tests for the log buffer and its destructive filters."""

import pytest

from nrqlctl.tui.logbuffer import LogBuffer, correlation_token


@pytest.fixture
def buffer():
    logs = LogBuffer()
    logs.ingest({
        "2024-01-01T00:00:01.000Z": ["ERROR payment declined", "retrying"],
        "2024-01-01T00:00:02.000Z": ["INFO request ok"],
        "2024-01-01T00:00:03.000Z": ["WARN upstream timeout after 30s"],
        "2024-01-01T00:00:04.000Z": ["DEBUG cache hit"],
    })
    return logs


class TestFilters:

    def test_filter_retains_only_matching_entries(self, buffer):
        dropped = buffer.add_filter("ERROR")

        assert dropped == 3
        assert len(buffer) == 1
        # The whole entry survives, including its non-matching lines
        assert buffer.get("2024-01-01T00:00:01.000Z") == ["ERROR payment declined", "retrying"]

    def test_second_filter_never_restores_dropped_entries(self, buffer):
        buffer.add_filter("ERROR")
        buffer.add_filter("timeout")

        # "timeout" would have matched, but that entry is already gone
        assert len(buffer) == 1
        assert "2024-01-01T00:00:03.000Z" not in buffer

    def test_filters_accumulate_as_any_match(self):
        logs = LogBuffer()
        logs.add_filter("ERROR")
        logs.add_filter("timeout")

        logs.ingest({
            "k1": ["ERROR x"],
            "k2": ["connect timeout"],
            "k3": ["INFO y"],
        })

        assert sorted(key for key, _ in logs.lines()) == ["k1", "k2"]

    def test_new_entries_are_filtered_on_arrival(self, buffer):
        buffer.add_filter("ERROR")

        accepted = buffer.ingest({"2024-01-01T00:00:05.000Z": ["INFO fine"]})

        assert accepted == 0
        assert len(buffer) == 1

    def test_clear_filters_does_not_restore(self, buffer):
        buffer.add_filter("ERROR")
        buffer.clear_filters()

        assert len(buffer) == 1
        buffer.ingest({"2024-01-01T00:00:05.000Z": ["INFO fine"]})
        assert len(buffer) == 2

    def test_empty_filter_is_ignored(self, buffer):
        assert buffer.add_filter("") == 0
        assert buffer.filters == set()
        assert len(buffer) == 4


class TestCursor:

    def test_lines_are_in_timestamp_order(self, buffer):
        keys = [key for key, _ in buffer.lines()]

        assert keys == sorted(keys)
        assert len(keys) == 5

    def test_navigation_wraps(self, buffer):
        buffer.select_previous()
        assert buffer.cursor == 0

        buffer.select_previous()
        assert buffer.cursor == 4

        buffer.select_next()
        assert buffer.cursor == 0

    def test_cursor_clamped_after_filter(self, buffer):
        for _ in range(5):
            buffer.select_next()
        assert buffer.cursor == 4

        buffer.add_filter("ERROR")

        assert buffer.cursor == 1
        assert buffer.selected_line() == ("2024-01-01T00:00:01.000Z", "retrying")

    def test_empty_buffer_has_no_selection(self):
        logs = LogBuffer()
        logs.select_next()

        assert logs.cursor is None
        assert logs.selected_line() is None

    def test_refresh_replaces_lines_of_a_key(self, buffer):
        buffer.ingest({"2024-01-01T00:00:02.000Z": ["INFO request ok"]})

        assert len(buffer.lines()) == 5


@pytest.mark.parametrize("line, token", [
    ("payment failed for order 8812-ab.", "8812-ab"),
    ("upstream timeout after 30s", "30s"),
    ("trace=abc123;", "trace=abc123"),
    ("done!!!", "done"),
    ("   ", ""),
    ("...", ""),
])
def test_correlation_token(line, token):
    assert correlation_token(line) == token
