"""
Curses-based views for the query dashboard.

This module contains the main rendering loop of the TUI. It reads keys,
hands them to App.step() and draws whatever App.frame() describes.

Purpose:
    App decides *what* is on screen; this module decides *where* and
    *how*. Nothing here mutates dashboard state.

Architecture:
    - Background threads: QueryWorkers fetch and publish Payloads
    - Main thread: this loop draws a frame, reads one key (50ms timeout)
      and calls App.step(), which routes the key and drains payloads
"""

import curses
from collections import namedtuple
from typing import Dict, List

from .app import App
from .logbuffer import correlation_token
from .model import Focus, Tab

# Input poll timeout, in milliseconds
INPUT_TIMEOUT_MS = 50

Area = namedtuple("Area", "y x h w")

# curses base colours facet RGB values are matched against
_BASE_COLOURS = [
    (curses.COLOR_RED, (205, 49, 49)),
    (curses.COLOR_GREEN, (13, 188, 121)),
    (curses.COLOR_YELLOW, (229, 229, 16)),
    (curses.COLOR_BLUE, (36, 114, 200)),
    (curses.COLOR_MAGENTA, (188, 63, 188)),
    (curses.COLOR_CYAN, (17, 168, 205)),
]
# Colour pair used for highlighted chrome (focus, selection)
_FOCUS_PAIR = len(_BASE_COLOURS) + 1

HELP_GRAPH = "e query  j/k move  r rename  x delete  d dashboard  Tab logs  q quit"
HELP_LOGS = "e query  j/k move  Enter detail  / filter  c clear filters  Tab graph  q quit"


def _put(win, y: int, x: int, text: str, attr: int = 0) -> None:
    """Write clipped text, ignoring writes that fall off the window."""
    h, w = win.getmaxyx()
    if y < 0 or y >= h or x >= w:
        return
    try:
        win.addstr(y, x, text[: max(0, w - x - 1)], attr)
    except curses.error:
        pass


def _box(win, area: Area, title: str, focused: bool = False) -> None:
    if area.h < 2 or area.w < 2:
        return
    attr = curses.color_pair(_FOCUS_PAIR) if focused else 0
    _put(win, area.y, area.x, "┌" + "─" * (area.w - 2) + "┐", attr)
    for row in range(area.y + 1, area.y + area.h - 1):
        _put(win, row, area.x, "│", attr)
        _put(win, row, area.x + area.w - 1, "│", attr)
    _put(win, area.y + area.h - 1, area.x, "└" + "─" * (area.w - 2) + "┘", attr)
    _put(win, area.y, area.x + 2, f" {title} ", attr | curses.A_BOLD)


def _init_colours() -> None:
    try:
        curses.start_color()
        curses.use_default_colors()
        for pair, (colour, _rgb) in enumerate(_BASE_COLOURS, start=1):
            curses.init_pair(pair, colour, -1)
        curses.init_pair(_FOCUS_PAIR, curses.COLOR_CYAN, -1)
    except curses.error:
        # Monochrome terminal; colour_pair() falls back to plain text
        pass


def facet_attr(rgb) -> int:
    """Colour pair attribute of the base colour nearest to `rgb`."""
    if rgb is None:
        return 0
    best = min(
        range(len(_BASE_COLOURS)),
        key=lambda i: sum((a - b) ** 2 for a, b in zip(rgb, _BASE_COLOURS[i][1])),
    )
    return curses.color_pair(best + 1)


# ============================================================
# Layout
# ============================================================

def layout(h: int, w: int) -> Dict[str, Area]:
    """
    Split the screen into named areas.

    Row 0 holds the tab bar, rows 1-3 the query box, the last row the
    status line. The body is split into a query list (15%, at least 20
    columns) and the main panel.
    """
    body_h = max(0, h - 5)
    list_w = min(w, max(20, w * 15 // 100))
    return {
        "tabs": Area(0, 0, 1, w),
        "query_box": Area(1, 0, 3, w),
        "list": Area(4, 0, body_h, list_w),
        "main": Area(4, list_w, body_h, max(0, w - list_w)),
        "body": Area(4, 0, body_h, w),
        "full": Area(0, 0, max(0, h - 1), w),
        "status": Area(h - 1, 0, 1, w),
    }


# ============================================================
# Panels
# ============================================================

def draw_tabs(win, app: App, areas: Dict[str, Area]) -> None:
    area = areas["tabs"]
    x = 1
    for tab in Tab:
        label = f" {tab.value.title()} "
        attr = curses.A_REVERSE if app.state.tab is tab else 0
        _put(win, area.y, x, label, attr)
        x += len(label) + 1
    if app.state.loading:
        _put(win, area.y, x + 1, "loading…", curses.A_DIM)


def _draw_input(win, area: Area, title: str, buffer, focused: bool) -> None:
    _box(win, area, title, focused)
    inner = max(0, area.w - 4)
    # Scroll so the cursor stays visible
    offset = max(0, buffer.cursor - inner + 1)
    _put(win, area.y + 1, area.x + 2, buffer.value[offset: offset + inner])
    if focused:
        try:
            win.move(area.y + 1, area.x + 2 + buffer.cursor - offset)
        except curses.error:
            pass


def draw_query_box(win, app: App, areas: Dict[str, Area]) -> None:
    focused = app.state.panel is Focus.QUERY_INPUT
    _draw_input(win, areas["query_box"], "Query (e)", app.inputs[Focus.QUERY_INPUT], focused)


def draw_query_list(win, app: App, areas: Dict[str, Area]) -> None:
    area = areas["list"]
    _box(win, area, "Queries")
    for row, (key, entry) in enumerate(app.datasets.items()):
        if row >= area.h - 2:
            break
        attr = curses.A_REVERSE if entry.selected else 0
        marker = " " if entry.has_data else "…"
        _put(win, area.y + 1 + row, area.x + 1, f"{marker}{entry.label(key)}"[: area.w - 2], attr)


def _plot(win, area: Area, app: App, key: str, entry) -> None:
    """Scatter every facet's points into `area`, scaled to the entry bounds."""
    _box(win, area, entry.label(key))
    if area.h < 4 or area.w < 6:
        return

    bounds = entry.bounds
    if bounds.is_empty:
        _put(win, area.y + 1, area.x + 2, "no data", curses.A_DIM)
        return

    (x_min, y_min), (x_max, y_max) = bounds.mins, bounds.maxes
    plot_h, plot_w = area.h - 3, area.w - 2
    x_span = (x_max - x_min) or 1.0
    y_span = (y_max - y_min) or 1.0

    # Legend on the first inner row
    legend_x = area.x + 1
    for facet in entry.series:
        label = facet or "value"
        _put(win, area.y + 1, legend_x, f"■ {label} ", facet_attr(app.colours.get(facet)))
        legend_x += len(label) + 3

    for facet, points in entry.series.items():
        attr = facet_attr(app.colours.get(facet))
        for timestamp, value in points:
            col = int((timestamp - x_min) / x_span * (plot_w - 1))
            row = int((value - y_min) / y_span * (plot_h - 1))
            _put(win, area.y + 1 + plot_h - row, area.x + 1 + col, "•", attr)

    _put(win, area.y + 2, area.x + 1, f"{y_max:g}", curses.A_DIM)
    _put(win, area.y + area.h - 2, area.x + 1, f"{y_min:g}", curses.A_DIM)


def draw_graph(win, app: App, areas: Dict[str, Area]) -> None:
    key = app.datasets.selected_key
    if key is not None:
        _plot(win, areas["main"], app, key, app.datasets[key])


def draw_loading(win, app: App, areas: Dict[str, Area]) -> None:
    area = areas["main"]
    key = app.datasets.selected_key
    _box(win, area, app.datasets[key].label(key) if key else "")
    _put(win, area.y + area.h // 2, area.x + max(1, area.w // 2 - 5), "Loading…")


def draw_splash(win, app: App, areas: Dict[str, Area]) -> None:
    area = areas["main"]
    _box(win, area, "nrqlctl")
    lines = [
        "No query selected.",
        "",
        "Press e and type a query, e.g.",
        "FROM Transaction SELECT count(*) WHERE appName='web'",
        "FACET host SINCE 30 minutes ago UNTIL now LIMIT 100 TIMESERIES",
    ]
    for i, line in enumerate(lines):
        _put(win, area.y + 2 + i, area.x + 2, line)


def draw_rename_dialog(win, app: App, areas: Dict[str, Area]) -> None:
    main = areas["main"]
    area = Area(main.y + max(0, main.h // 2 - 1), main.x + 2, 3, max(0, main.w - 4))
    _draw_input(win, area, f"Rename: {app.datasets.selected_key or ''}", app.inputs[Focus.RENAME], True)


def draw_dashboard(win, app: App, areas: Dict[str, Area]) -> None:
    """Tile a small chart for every query across the whole screen."""
    area = areas["full"]
    entries = list(app.datasets.items())
    if not entries:
        _box(win, area, "Dashboard")
        _put(win, area.y + 2, area.x + 2, "No queries yet. Press d to go back.")
        return

    cols = 2 if len(entries) > 1 else 1
    rows = (len(entries) + cols - 1) // cols
    cell_w = area.w // cols
    cell_h = max(4, area.h // rows)
    for i, (key, entry) in enumerate(entries):
        cell = Area(area.y + (i // cols) * cell_h, area.x + (i % cols) * cell_w, cell_h, cell_w)
        if cell.y + cell.h > area.y + area.h:
            break
        if entry.has_data:
            _plot(win, cell, app, key, entry)
        else:
            _box(win, cell, entry.label(key))
            _put(win, cell.y + 1, cell.x + 2, "Loading…", curses.A_DIM)


def _prompt(win, app: App, areas: Dict[str, Area], panel: Focus, question: str) -> None:
    full = areas["full"]
    area = Area(max(0, full.h // 2 - 2), max(0, full.w // 4), 4, max(10, full.w // 2))
    _box(win, area, "Session", True)
    _put(win, area.y + 1, area.x + 2, question)
    _put(win, area.y + 2, area.x + 2, "> " + app.inputs[panel].value)


def draw_load_session(win, app: App, areas: Dict[str, Area]) -> None:
    _prompt(win, app, areas, Focus.SESSION_LOAD, f"Load previous session from {app.session.path}? (y/n)")


def draw_save_session(win, app: App, areas: Dict[str, Area]) -> None:
    _prompt(win, app, areas, Focus.SESSION_SAVE, f"Save session to {app.session.path} before quitting? (y/n)")


def draw_log_list(win, app: App, areas: Dict[str, Area]) -> None:
    area = areas["body"]
    title = "Logs"
    if app.logs.filters:
        title += " [" + ", ".join(sorted(app.logs.filters)) + "]"
    _box(win, area, title, app.state.panel is Focus.LOG_LIST)

    lines = app.logs.lines()
    visible = max(0, area.h - 2)
    cursor = app.logs.cursor if app.logs.cursor is not None else len(lines) - 1
    # Keep the cursor on screen, otherwise follow the tail
    start = max(0, min(cursor - visible + 1, len(lines) - visible)) if lines else 0
    for row, (key, line) in enumerate(lines[start: start + visible]):
        attr = curses.A_REVERSE if start + row == app.logs.cursor else 0
        _put(win, area.y + 1 + row, area.x + 1, f"{key} {line}", attr)


def draw_log_detail(win, app: App, areas: Dict[str, Area]) -> None:
    area = areas["body"]
    _box(win, area, "Log detail (Enter correlate, Esc back)", True)
    selected = app.logs.selected_line()
    if selected is None:
        return
    key, line = selected
    width = max(1, area.w - 4)
    wrapped: List[str] = [line[i: i + width] for i in range(0, len(line), width)] or [""]
    _put(win, area.y + 1, area.x + 2, key, curses.A_BOLD)
    for i, chunk in enumerate(wrapped[: max(0, area.h - 5)]):
        _put(win, area.y + 2 + i, area.x + 2, chunk)
    _put(win, area.y + area.h - 2, area.x + 2, f"correlation token: {correlation_token(line)!r}", curses.A_DIM)


def draw_search_box(win, app: App, areas: Dict[str, Area]) -> None:
    body = areas["body"]
    area = Area(body.y + body.h - 3, body.x + 1, 3, max(0, body.w - 2))
    _draw_input(win, area, "Filter (destructive)", app.inputs[Focus.SEARCH], True)


PANELS = {
    "tabs": draw_tabs,
    "query_box": draw_query_box,
    "query_list": draw_query_list,
    "graph": draw_graph,
    "loading": draw_loading,
    "splash": draw_splash,
    "rename_dialog": draw_rename_dialog,
    "dashboard": draw_dashboard,
    "load_session": draw_load_session,
    "save_session": draw_save_session,
    "log_list": draw_log_list,
    "log_detail": draw_log_detail,
    "search_box": draw_search_box,
}


def draw(stdscr, app: App) -> None:
    """Render one frame."""
    frame = app.frame()
    stdscr.erase()
    h, w = stdscr.getmaxyx()
    areas = layout(h, w)

    for name in frame.panels:
        PANELS[name](stdscr, app, areas)

    status = frame.status or (HELP_LOGS if app.state.tab is Tab.LOGS else HELP_GRAPH)
    _put(stdscr, areas["status"].y, 0, status, curses.A_DIM)
    stdscr.refresh()


def read_key(stdscr):
    """Wait up to INPUT_TIMEOUT_MS for one key; None if nothing was pressed."""
    try:
        return stdscr.get_wch()
    except curses.error:
        return None


def run_dashboard(stdscr, app: App) -> None:
    """
    Run the interactive dashboard until the operator quits.

    Args:
        stdscr: The curses standard screen object (provided by curses.wrapper).
        app: The state machine to drive.

    Note:
        This function should be called via curses.wrapper() to ensure
        proper terminal setup and cleanup.
    """
    try:
        curses.curs_set(1)
    except curses.error:
        pass
    # Bounded wait so payloads keep draining while no key is pressed
    stdscr.timeout(INPUT_TIMEOUT_MS)
    # Esc should be delivered immediately, not after the default 1s delay
    curses.set_escdelay(25)
    _init_colours()

    try:
        while True:
            draw(stdscr, app)
            if not app.step(read_key(stdscr)):
                break
    finally:
        app.shutdown()
