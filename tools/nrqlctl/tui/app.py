"""
Dashboard state machine.

This module owns everything the control loop mutates: the focus state,
the text inputs, the dataset store, the facet colours, the log buffer and
the acquisition workers.

Purpose:
    The curses loop in views.py only draws and reads keys. Everything it
    reads a key *for* happens here, in App.step(), which keeps the whole
    interaction model testable without a terminal.

Architecture:
    - Background threads: one QueryWorker per query (acquisition.py)
    - Main thread: App.step() routes one key and drains the result queue
    - Communication: workers -> App through a Queue of Payloads,
      App -> workers through cancellation events
"""

import curses
import time
from queue import Empty, Queue
from typing import Optional, Union

from ..nrql import ParseError, StructuredQuery, correlation_query, parse, render, strip_render_artifacts
from ..utils.applog import AppLogger
from .acquisition import AcquisitionManager
from .datasets import Datasets, FacetColours
from .inputs import Inputs
from .logbuffer import LogBuffer, correlation_token
from .model import INPUT_PANELS, Focus, Frame, InputMode, Tab, UIState
from .session import Session, SessionError

# --- Key codes ---
KEY_ENTER = (10, 13, curses.KEY_ENTER)
KEY_BACKSPACE = (8, 127, curses.KEY_BACKSPACE)
KEY_ESC = 27
KEY_TAB = 9

# Control characters get_wch() delivers as str
CONTROL_CHARS = {
    "\n": 10,
    "\r": 13,
    "\b": 8,
    "\x7f": 127,
    "\t": KEY_TAB,
    "\x1b": KEY_ESC,
}

Key = Union[int, str]


class App:
    """
    The dashboard's single-threaded state machine.

    Attributes:
        state: Focus, input mode, tab and loading flag.
        session: The session file being offered for load / saved on quit.
        datasets: Query results keyed by canonical text.
        colours: Facet colour table.
        logs: Log lines for the Logs tab.
        inputs: Text buffers of the input panels.
        results: Queue the acquisition workers publish to.
        acquisition: Worker lifecycle manager.
        status: One-line message for the operator (errors, confirmations).

    Example:
        >>> app = App(client, Session(path))
        >>> while app.step(read_key()):
        ...     draw(app.frame())
    """

    def __init__(
        self,
        client,
        session: Session,
        *,
        logger: Optional[AppLogger] = None,
        results: Optional[Queue] = None,
        acquisition: Optional[AcquisitionManager] = None,
        colours: Optional[FacetColours] = None,
        clock=time.time,
    ):
        self.logger = logger or AppLogger()
        self.session = session
        self.results = results if results is not None else Queue(maxsize=2000)
        self.acquisition = acquisition or AcquisitionManager(client, self.results, self.logger, clock)
        self.datasets = Datasets(on_remove=self.acquisition.cancel)
        self.colours = colours or FacetColours()
        self.logs = LogBuffer()
        self.inputs = Inputs()
        self.status = ""

        if session.is_loaded:
            self.state = UIState(Focus.DEFAULT, InputMode.NORMAL, Tab.LOGS)
        else:
            # A previous session exists; ask before anything else
            self.state = UIState(Focus.SESSION_LOAD, InputMode.INPUT, Tab.GRAPH)

    # ------------------------------------------------------------------
    # frame
    # ------------------------------------------------------------------
    def step(self, key: Optional[Key] = None) -> bool:
        """
        Advance the state machine by one frame.

        Order matters and follows the control loop:
        1. Force the session prompt while the session is unresolved
        2. Route the key, if one was read
        3. Drain every payload queued at this instant
        4. Recompute the loading flag

        Args:
            key: Key read this frame (curses int or wide char), or None.

        Returns:
            bool: False when the control loop must exit.
        """
        if not self.session.is_loaded:
            self._focus(Focus.SESSION_LOAD, InputMode.INPUT)

        keep_running = True
        if key is not None and key != -1:
            keep_running = self.handle_key(key)

        self.drain_payloads()
        self._refresh_loading()
        return keep_running

    def frame(self) -> Frame:
        """Describe what the render target should draw for the current state."""
        panel = self.state.panel

        if panel is Focus.SESSION_SAVE:
            panels = ["save_session"]
        elif panel is Focus.SESSION_LOAD:
            panels = ["load_session"]
        elif panel is Focus.DASHBOARD:
            panels = ["dashboard"]
        elif self.state.tab is Tab.LOGS:
            panels = ["tabs", "query_box"]
            panels.append("log_detail" if panel is Focus.LOG_DETAIL else "log_list")
            if panel is Focus.SEARCH:
                panels.append("search_box")
        else:
            panels = ["tabs", "query_box", "query_list"]
            selected = self.datasets.selected()
            if panel is Focus.RENAME:
                panels.append("rename_dialog")
            elif selected is None:
                panels.append("splash")
            elif selected.has_data:
                panels.append("graph")
            else:
                panels.append("loading")

        return Frame(panels=panels, status=self.status, loading=self.state.loading)

    # ------------------------------------------------------------------
    # event routing
    # ------------------------------------------------------------------
    def handle_key(self, key: Key) -> bool:
        """
        Route one key press by input mode and panel.

        Strings are typed characters and ints are curses key codes. The
        control characters get_wch() returns as strings are mapped to their
        codes; every other character stays a character, so text such as
        'ć' (U+0107) is never mistaken for KEY_BACKSPACE (263).
        """
        if isinstance(key, str):
            if len(key) != 1:
                return True
            key = CONTROL_CHARS.get(key, key)

        if self.state.input_mode is InputMode.INPUT:
            return self._handle_input_key(key)
        self._handle_normal_key(key)
        return True

    def _handle_normal_key(self, key: Key) -> None:
        panel = self.state.panel
        on_logs = self.state.tab is Tab.LOGS and panel is not Focus.DASHBOARD

        if key == "q":
            self._focus(Focus.SESSION_SAVE, InputMode.INPUT)
        elif key == "e":
            self._focus(Focus.QUERY_INPUT, InputMode.INPUT)
        elif key in ("j", curses.KEY_DOWN):
            if on_logs:
                self.logs.select_next()
                self._enter_log_list()
            else:
                self.datasets.select_next()
        elif key in ("k", curses.KEY_UP):
            if on_logs:
                self.logs.select_previous()
                self._enter_log_list()
            else:
                self.datasets.select_previous()
        elif key == "x":
            if not on_logs:
                self.delete_selected()
        elif key == "r":
            # The rename dialog is drawn on the Graph tab only
            if not on_logs and panel not in INPUT_PANELS and not self.datasets.is_empty():
                self.datasets.ensure_selection()
                self._focus(Focus.RENAME, InputMode.INPUT)
        elif key == "d":
            if panel is Focus.DASHBOARD:
                self._focus(Focus.DEFAULT)
            else:
                self._focus(Focus.DASHBOARD)
        elif key == KEY_TAB:
            self.switch_tab()
        elif key == "/" and on_logs:
            self._focus(Focus.SEARCH, InputMode.INPUT)
        elif key == "c" and on_logs:
            self.logs.clear_filters()
            self.status = "Log filters cleared (dropped lines are not restored)"
        elif key in KEY_ENTER and on_logs:
            if panel is Focus.LOG_DETAIL:
                self.submit_correlation()
            elif self.logs.selected_line() is not None:
                self._focus(Focus.LOG_DETAIL)
        elif key == KEY_ESC:
            if panel is Focus.LOG_DETAIL:
                self._focus(Focus.LOG_LIST)
            elif panel is Focus.DASHBOARD:
                self._focus(Focus.DEFAULT)

    def _handle_input_key(self, key: Key) -> bool:
        panel = self.state.panel
        buffer = self.inputs[panel] if panel in INPUT_PANELS else None

        if key in KEY_ENTER:
            return self._commit(panel)

        if key == KEY_ESC:
            # The load prompt has to be answered
            if panel is not Focus.SESSION_LOAD:
                self.inputs.clear(panel)
                self._focus(Focus.DEFAULT, InputMode.NORMAL)
            return True

        if buffer is None:
            return True

        if key in KEY_BACKSPACE:
            buffer.delete_char()
        elif key == curses.KEY_LEFT:
            buffer.move_cursor_left()
        elif key == curses.KEY_RIGHT:
            buffer.move_cursor_right()
        elif isinstance(key, str) and key.isprintable():
            buffer.enter_char(key)
        return True

    def _commit(self, panel: Focus) -> bool:
        """Apply the Enter key for the active input panel."""
        text = self.inputs.get(panel)

        if panel is Focus.QUERY_INPUT:
            try:
                self.add_query(parse(text))
            except ParseError:
                # Malformed input is simply not added
                pass
        elif panel is Focus.RENAME:
            if text.strip():
                self.rename_selected(text.strip())
        elif panel is Focus.SEARCH:
            dropped = self.logs.add_filter(text)
            if text:
                self.status = f"Filter {text!r} dropped {dropped} log entries"
        elif panel is Focus.SESSION_LOAD:
            if text in ("y", "Y"):
                self.load_session()
            self.session.is_loaded = True
        elif panel is Focus.SESSION_SAVE:
            if text in ("y", "Y") and not self.save_session():
                # Stay up so the operator can retry or quit without saving
                self.inputs.clear(panel)
                self._focus(Focus.DEFAULT, InputMode.NORMAL)
                return True
            return False

        self.inputs.clear(panel)
        self._focus(Focus.DEFAULT, InputMode.NORMAL)
        return True

    def _focus(self, panel: Focus, mode: Optional[InputMode] = None) -> None:
        self.state.panel = panel
        if mode is not None:
            self.state.input_mode = mode

    def _enter_log_list(self) -> None:
        if self.state.panel is Focus.DEFAULT:
            self._focus(Focus.LOG_LIST)

    def switch_tab(self) -> None:
        if self.state.tab is Tab.GRAPH:
            self.state.tab = Tab.LOGS
            self._focus(Focus.LOG_LIST)
        else:
            self.state.tab = Tab.GRAPH
            self._focus(Focus.DEFAULT)

    # ------------------------------------------------------------------
    # dataset operations
    # ------------------------------------------------------------------
    def add_query(self, query: StructuredQuery) -> str:
        """Start acquisition for `query` and return its canonical text."""
        text = render(query)
        generation = self.datasets.register(text)
        self.acquisition.start(query, generation)
        self.logger.info("app", f"Added query: {text}")
        return text

    def rename_selected(self, alias: str) -> None:
        key = self.datasets.selected_key
        if key is None:
            return
        self.datasets.rename(key, alias)

    def delete_selected(self) -> Optional[str]:
        """Remove the entry under the cursor; its worker is cancelled by the store."""
        removed = self.datasets.remove(self.datasets.selected_index)
        if removed is not None:
            self.logger.info("app", f"Removed query: {removed}")
        return removed

    def submit_correlation(self) -> Optional[str]:
        """
        Add a query correlating the selected log line's last token.

        Returns:
            The canonical text of the new query, or None if no token.
        """
        selected = self.logs.selected_line()
        if selected is None:
            return None
        token = correlation_token(selected[1])
        if not token:
            self.status = "No token to correlate in the selected line"
            return None

        text = self.add_query(correlation_query(token))
        self.state.tab = Tab.GRAPH
        self._focus(Focus.DEFAULT, InputMode.NORMAL)
        self.status = f"Correlating {token!r}"
        return text

    def drain_payloads(self) -> int:
        """
        Apply every payload queued at this instant, in arrival order.

        Stale payloads (for removed queries) are dropped without touching
        colours or logs.

        Returns:
            int: Number of payloads applied.
        """
        applied = 0
        for _ in range(self.results.qsize()):
            try:
                payload = self.results.get_nowait()
            except Empty:
                break

            if not self.datasets.upsert(payload):
                continue
            self.colours.assign(payload.facets)
            if payload.logs:
                self.logs.ingest(payload.logs)
            applied += 1
        return applied

    def _refresh_loading(self) -> None:
        self.state.loading = any(
            key not in self.datasets or not self.datasets[key].has_data
            for key in self.acquisition.active_queries()
        )

    # ------------------------------------------------------------------
    # session
    # ------------------------------------------------------------------
    def load_session(self) -> int:
        """
        Import the queries of the saved session.

        Entries whose text no longer parses are skipped. A file that cannot
        be read or decoded is treated as no session at all.

        Returns:
            int: Number of queries imported.
        """
        try:
            mapping = self.session.read()
        except SessionError as exc:
            self.logger.warn("session", f"Session not loaded: {exc}")
            self.status = f"Session not loaded: {exc}"
            self.session.is_loaded = True
            return 0

        loaded = 0
        for alias, raw in mapping.items():
            try:
                query = parse(strip_render_artifacts(raw))
            except ParseError:
                self.logger.info("session", f"Skipped unparseable entry {alias!r}")
                continue

            text = self.add_query(query)
            # Unaliased queries are saved under their own text
            if alias != raw:
                self.datasets.rename(text, alias)
            loaded += 1

        self.session.is_loaded = True
        self.logger.info("session", f"Loaded {loaded} queries from {self.session.path}")
        return loaded

    def save_session(self) -> bool:
        """Write the current queries to the session file."""
        try:
            self.session.write(self.datasets.mapping_for_session())
        except SessionError as exc:
            self.logger.error("session", f"Session not saved: {exc}")
            self.status = f"Save failed: {exc}"
            return False
        self.logger.info("session", f"Saved {len(self.datasets)} queries to {self.session.path}")

        shadowed = self.datasets.shadowed_aliases()
        if shadowed:
            self.logger.warn("session", f"Duplicate aliases saved under their query text: {shadowed}")
            self.status = f"{len(shadowed)} duplicate alias(es) saved under the query text"
        return True

    def shutdown(self) -> None:
        self.acquisition.shutdown()
