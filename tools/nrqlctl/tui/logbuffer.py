"""
Log lines shown on the Logs tab.

Queries that select a textual attribute (for example `message` from Log)
produce log lines instead of points. The acquisition workers key those
lines by timestamp and the UI thread ingests them here.

Design Decisions:
    - Entries are ordered by their timestamp key (ISO-8601 UTC sorts
      lexically), so the list reads oldest to newest
    - A refresh replaces the lines of a key rather than appending to them;
      the backend returns the same recent window on every fetch
    - Filters are destructive: entries that match none of the active
      filters are deleted, not hidden, and new entries are checked on
      arrival, so a dropped entry stays dropped
"""

from __future__ import annotations

import string
from typing import Dict, List, Optional, Set, Tuple


def correlation_token(line: str) -> str:
    """
    Extract the token a correlation query is built from.

    Returns the last whitespace-delimited token of `line` with trailing
    punctuation stripped, or "" when there is none.

    Example:
        >>> correlation_token("payment failed for order 8812-ab.")
        '8812-ab'
    """
    tokens = line.split()
    if not tokens:
        return ""
    return tokens[-1].rstrip(string.punctuation)


class LogBuffer:
    """
    Timestamp key -> log lines, with substring filters and a list cursor.

    Attributes:
        filters: Active substring filters.
        cursor: Index into lines(), or None when nothing is selected.
    """

    def __init__(self):
        self._entries: Dict[str, List[str]] = {}
        self.filters: Set[str] = set()
        self.cursor: Optional[int] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[List[str]]:
        return self._entries.get(key)

    def _matches(self, lines: List[str]) -> bool:
        if not self.filters:
            return True
        return any(pattern in line for line in lines for pattern in self.filters)

    def ingest(self, logs: Dict[str, List[str]]) -> int:
        """
        Merge a payload's log lines into the buffer.

        Returns:
            int: Number of entries accepted.
        """
        accepted = 0
        for key, lines in logs.items():
            if not self._matches(lines):
                continue
            self._entries[key] = list(lines)
            accepted += 1
        self._clamp_cursor()
        return accepted

    def add_filter(self, pattern: str) -> int:
        """
        Add a substring filter and drop every entry that no longer matches.

        An entry survives when any of its lines contains any active filter.
        Filters accumulate; dropped entries are gone for the session.

        Returns:
            int: Number of entries dropped.
        """
        if not pattern:
            return 0
        self.filters.add(pattern)
        doomed = [key for key, lines in self._entries.items() if not self._matches(lines)]
        for key in doomed:
            del self._entries[key]
        self._clamp_cursor()
        return len(doomed)

    def clear_filters(self) -> None:
        """Stop filtering new entries. Entries already dropped stay dropped."""
        self.filters.clear()

    # ------------------------------------------------------------------
    # list view
    # ------------------------------------------------------------------
    def lines(self) -> List[Tuple[str, str]]:
        """Every (timestamp key, line) pair in display order."""
        return [
            (key, line)
            for key in sorted(self._entries)
            for line in self._entries[key]
        ]

    def _clamp_cursor(self) -> None:
        total = len(self.lines())
        if total == 0:
            self.cursor = None
        elif self.cursor is not None and self.cursor >= total:
            self.cursor = total - 1

    def select_next(self) -> None:
        total = len(self.lines())
        if total == 0:
            return
        if self.cursor is None or self.cursor >= total - 1:
            self.cursor = 0
        else:
            self.cursor += 1

    def select_previous(self) -> None:
        total = len(self.lines())
        if total == 0:
            return
        if self.cursor is None:
            self.cursor = 0
        elif self.cursor == 0:
            self.cursor = total - 1
        else:
            self.cursor -= 1

    def selected_line(self) -> Optional[Tuple[str, str]]:
        if self.cursor is None:
            return None
        lines = self.lines()
        if not 0 <= self.cursor < len(lines):
            return None
        return lines[self.cursor]
