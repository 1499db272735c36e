"""
In-memory store of query results shown by the dashboard.

This module holds the latest data, alias and list selection for every
query, and the process-wide facet colour table.

Purpose:
    The UI thread applies every drained Payload here and reads from here
    when drawing. Data refreshes and operator renames touch different
    fields of the same QueryEntry and never clobber each other.

Design Decisions:
    - Entries are kept in canonical-text order; that order is also the
      visual list order, so list indices resolve to keys deterministically
    - The selection is tracked by key, not index, so the cursor stays on
      the same query when other queries appear or disappear
    - Removal records a tombstone generation; payloads from workers started
      at or before it are stale and dropped, so a late payload can never
      resurrect a removed query
"""

from __future__ import annotations

import random
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .model import Bounds, Payload, QueryEntry


class Datasets:
    """
    Mapping of canonical query text to QueryEntry.

    Attributes:
        on_remove: Called with the key of every removed entry; the app
                   wires it to AcquisitionManager.cancel.

    Example:
        >>> datasets = Datasets()
        >>> generation = datasets.register(text)
        >>> datasets.upsert(payload)
        True
        >>> datasets.rename(text, "checkout rate")
    """

    def __init__(self, on_remove: Optional[Callable[[str], object]] = None):
        self._entries: Dict[str, QueryEntry] = {}
        self._tombstones: Dict[str, int] = {}
        self._current: Dict[str, int] = {}
        self._generation = 0
        self._selected_key: Optional[str] = None
        self.on_remove = on_remove

    # ------------------------------------------------------------------
    # container protocol
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __getitem__(self, key: str) -> QueryEntry:
        return self._entries[key]

    def is_empty(self) -> bool:
        return not self._entries

    def keys(self) -> List[str]:
        """Entry keys in visual list order."""
        return sorted(self._entries)

    def items(self) -> Iterator[Tuple[str, QueryEntry]]:
        for key in self.keys():
            yield key, self._entries[key]

    # ------------------------------------------------------------------
    # generations
    # ------------------------------------------------------------------
    def register(self, query_text: str) -> int:
        """
        Issue a generation for a newly started acquisition of `query_text`.

        Generations increase monotonically across all queries, so a query
        that is removed and then added again outranks its own tombstone.
        The newest generation per query is remembered; payloads from a
        worker it replaced are stale.
        """
        self._generation += 1
        self._current[query_text] = self._generation
        return self._generation

    def is_stale(self, payload: Payload) -> bool:
        if payload.generation < self._current.get(payload.query, 0):
            return True
        tombstone = self._tombstones.get(payload.query)
        return tombstone is not None and payload.generation <= tombstone

    # ------------------------------------------------------------------
    # mutation
    # ------------------------------------------------------------------
    def upsert(self, payload: Payload) -> bool:
        """
        Apply a payload to its entry, creating the entry if needed.

        Alias and selection are preserved on update. Applying the same
        payload twice leaves the entry as if it was applied once.

        Returns:
            bool: False when the payload was stale and dropped.
        """
        if self.is_stale(payload):
            return False

        entry = self._entries.get(payload.query)
        if entry is None:
            entry = QueryEntry()
            self._entries[payload.query] = entry

        entry.series = payload.series
        entry.bounds = payload.bounds
        entry.generation = payload.generation
        entry.has_data = True
        return True

    def rename(self, query_text: str, alias: str) -> None:
        """
        Set the display alias of `query_text`.

        A rename issued before any data arrived creates a placeholder entry
        (has_data=False) so the alias shows up immediately.
        """
        entry = self._entries.get(query_text)
        if entry is None:
            entry = QueryEntry(bounds=Bounds())
            self._entries[query_text] = entry
        entry.alias = alias

    def remove(self, index: int) -> Optional[str]:
        """
        Remove the entry at visual position `index`.

        The selection is clamped back into range afterwards. Out-of-range
        indices are ignored.

        Returns:
            The removed key, or None if nothing was removed.
        """
        keys = self.keys()
        if index is None or not 0 <= index < len(keys):
            return None

        key = keys[index]
        del self._entries[key]
        # Every worker started so far for this key is now stale
        self._tombstones[key] = self._generation

        if self.on_remove is not None:
            self.on_remove(key)

        if key == self._selected_key or self._selected_key not in self._entries:
            self._selected_key = None
            if self._entries:
                self._select(min(index, len(self._entries) - 1))
        return key

    # ------------------------------------------------------------------
    # selection
    # ------------------------------------------------------------------
    @property
    def selected_key(self) -> Optional[str]:
        return self._selected_key

    @property
    def selected_index(self) -> Optional[int]:
        if self._selected_key is None:
            return None
        return self.keys().index(self._selected_key)

    def selected(self) -> Optional[QueryEntry]:
        if self._selected_key is None:
            return None
        return self._entries[self._selected_key]

    def _select(self, index: int) -> None:
        if self._selected_key in self._entries:
            self._entries[self._selected_key].selected = False
        key = self.keys()[index]
        self._entries[key].selected = True
        self._selected_key = key

    def select_next(self) -> None:
        """Move the cursor down, wrapping from the last entry to the first."""
        if not self._entries:
            return
        current = self.selected_index
        if current is None or current >= len(self._entries) - 1:
            self._select(0)
        else:
            self._select(current + 1)

    def select_previous(self) -> None:
        """Move the cursor up, wrapping from the first entry to the last."""
        if not self._entries:
            return
        current = self.selected_index
        if current is None:
            self._select(0)
        elif current == 0:
            self._select(len(self._entries) - 1)
        else:
            self._select(current - 1)

    def ensure_selection(self) -> None:
        if self._selected_key is None and self._entries:
            self._select(0)

    # ------------------------------------------------------------------
    # session support
    # ------------------------------------------------------------------
    def mapping_for_session(self) -> Dict[str, str]:
        """
        Alias (or the query itself when unaliased) -> canonical query text.

        When two entries share an alias, the later one in list order is
        stored under its own query text so no query is lost on save.
        """
        mapping: Dict[str, str] = {}
        for key, entry in self.items():
            label = entry.label(key)
            if label in mapping:
                label = key
            mapping[label] = key
        return mapping

    def shadowed_aliases(self) -> List[str]:
        """Keys whose alias is already used by an earlier entry."""
        seen = set()
        shadowed = []
        for key, entry in self.items():
            label = entry.label(key)
            if label in seen:
                shadowed.append(key)
            seen.add(label)
        return shadowed


class FacetColours:
    """
    Process-wide facet -> RGB colour table.

    A facet gets its colour the first time it is seen and keeps it for the
    rest of the process, so a series never changes colour between refreshes.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._colours: Dict[str, Tuple[int, int, int]] = {}

    def __contains__(self, facet: str) -> bool:
        return facet in self._colours

    def __len__(self) -> int:
        return len(self._colours)

    def get(self, facet: str) -> Optional[Tuple[int, int, int]]:
        return self._colours.get(facet)

    def _fresh_colour(self) -> Tuple[int, int, int]:
        used = set(self._colours.values())
        while True:
            colour = (self._rng.randrange(256), self._rng.randrange(256), self._rng.randrange(256))
            if colour not in used:
                return colour

    def assign(self, facets) -> List[str]:
        """
        Give every facet not seen before a colour.

        Returns:
            List[str]: The facets that were newly assigned.
        """
        added = []
        for facet in facets:
            if facet in self._colours:
                continue
            self._colours[facet] = self._fresh_colour()
            added.append(facet)
        return added
