"""
Data models for the dashboard TUI.

This module defines data structures shared between the acquisition
workers, the dataset store, the state machine and the curses views.

Purpose:
    Acquisition workers run on background threads and hand their results
    to the UI thread through a queue. Payload is that contract; QueryEntry
    is what the UI keeps per query; UIState is the single piece of focus
    state the control loop owns.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

# A (timestamp, value) pair.
Point = Tuple[float, float]


@dataclass
class Bounds:
    """
    Axis bounds of a payload.

    Attributes:
        mins: (time, value) minimums.
        maxes: (time, value) maximums.
    """
    mins: Tuple[float, float] = (0.0, 0.0)
    maxes: Tuple[float, float] = (0.0, 0.0)

    @classmethod
    def seeded(cls) -> "Bounds":
        """Starting point for folding rows: mins at +inf, maxes at 0."""
        return cls(mins=(math.inf, math.inf), maxes=(0.0, 0.0))

    def fold(self, timestamp: float, value: float) -> None:
        self.mins = (min(self.mins[0], timestamp), min(self.mins[1], value))
        self.maxes = (max(self.maxes[0], timestamp), max(self.maxes[1], value))

    @property
    def is_empty(self) -> bool:
        """True when nothing was folded into seeded bounds."""
        return math.isinf(self.mins[0]) or math.isinf(self.mins[1])


@dataclass
class Payload:
    """
    One refresh result for a query, produced by an acquisition worker.

    Attributes:
        query: Canonical query text (the dataset key).
        generation: Generation the worker was started with; used to drop
                    late payloads for removed queries.
        series: Group key -> points in response order.
        bounds: Time/value bounds across every numeric row.
        facets: Distinct group keys, in first-seen order.
        logs: Timestamp key -> log lines, for rows with textual values.
    """
    query: str
    generation: int
    series: Dict[str, List[Point]] = field(default_factory=dict)
    bounds: Bounds = field(default_factory=Bounds.seeded)
    facets: List[str] = field(default_factory=list)
    logs: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class QueryEntry:
    """
    The dataset store's record for one query.

    Attributes:
        alias: Operator-supplied display name, if any.
        series: Latest group key -> points.
        bounds: Latest axis bounds.
        has_data: False until the first payload arrives.
        selected: Marker for the entry under the list cursor.
        generation: Generation of the payload last applied.
    """
    alias: Optional[str] = None
    series: Dict[str, List[Point]] = field(default_factory=dict)
    bounds: Bounds = field(default_factory=Bounds)
    has_data: bool = False
    selected: bool = False
    generation: int = 0

    def label(self, query: str) -> str:
        return self.alias or query


class Focus(Enum):
    """Which panel receives input and what gets drawn."""
    QUERY_INPUT = "query_input"
    RENAME = "rename"
    DASHBOARD = "dashboard"
    SESSION_LOAD = "session_load"
    SESSION_SAVE = "session_save"
    DEFAULT = "default"
    LOG_LIST = "log_list"
    LOG_DETAIL = "log_detail"
    SEARCH = "search"


# Panels whose text buffer captures keystrokes in Input mode.
INPUT_PANELS = frozenset({
    Focus.QUERY_INPUT,
    Focus.RENAME,
    Focus.SESSION_LOAD,
    Focus.SESSION_SAVE,
    Focus.SEARCH,
})


class InputMode(Enum):
    NORMAL = "normal"
    INPUT = "input"


class Tab(Enum):
    GRAPH = "graph"
    LOGS = "logs"


@dataclass
class UIState:
    """The control loop's cursor; owned exclusively by App."""
    panel: Focus = Focus.DEFAULT
    input_mode: InputMode = InputMode.NORMAL
    tab: Tab = Tab.LOGS
    loading: bool = False


@dataclass
class Frame:
    """
    Declarative description of one frame for the render target.

    Attributes:
        panels: Panel names to draw, in drawing order.
        status: Message for the status line (may be empty).
        loading: Whether a loading indicator should be shown.
    """
    panels: List[str]
    status: str = ""
    loading: bool = False
