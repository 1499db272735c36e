"""
Background acquisition of query results.

This module keeps every query the operator has added refreshed on a
fixed cadence without blocking the curses loop.

Purpose:
    Each query gets its own worker thread. The worker polls a cadence gate,
    fetches the query from the remote client when the gate fires, reduces
    the rows to per-facet point series and pushes a Payload onto a queue
    shared by all workers. The UI thread drains that queue once per frame.

Design Decisions:
    - One daemon thread per query, started and stopped by AcquisitionManager
    - Cooperative cancellation: workers wait on a threading.Event between
      gate checks, so a cancel is observed within POLL_INTERVAL
    - Remote failures are logged and treated as an empty result set
    - Every payload carries the generation its worker was started with so
      the store can drop payloads that arrive after a query was removed
"""

import datetime
import threading
import time
from queue import Full, Queue
from typing import Callable, Dict, List, Tuple

from ..client import RemoteFetchError
from ..nrql import StructuredQuery, render
from ..utils.applog import AppLogger
from .model import Bounds, Payload, Point

# Fetch when the wall-clock second is a multiple of this.
CADENCE_SECONDS = 5
# How long a worker sleeps between gate checks.
POLL_INTERVAL = 0.02


def timestamp_key(timestamp: float) -> str:
    """Format an epoch timestamp as a sortable UTC key for the log buffer."""
    return (
        datetime.datetime.fromtimestamp(timestamp, datetime.timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def reduce_rows(rows) -> Tuple[Dict[str, List[Point]], Bounds, List[str], Dict[str, List[str]]]:
    """
    Reduce response rows into series, bounds, facets and log lines.

    Rows are grouped by facet; within a facet the response order is kept
    as time order. Bounds are folded over every numeric row regardless of
    facet, starting from seeded bounds. Rows with a textual value are log
    lines and do not contribute to series or bounds.

    Args:
        rows: Iterable of TelemetryRow.

    Returns:
        (series, bounds, facets, logs)
    """
    series: Dict[str, List[Point]] = {}
    bounds = Bounds.seeded()
    facets: List[str] = []
    logs: Dict[str, List[str]] = {}

    for row in rows:
        if isinstance(row.value, str):
            line = f"{row.facet} {row.value}" if row.facet else row.value
            logs.setdefault(timestamp_key(row.timestamp), []).append(line)
            continue

        if row.facet not in series:
            series[row.facet] = []
            facets.append(row.facet)
        series[row.facet].append((row.timestamp, row.value))
        bounds.fold(row.timestamp, row.value)

    return series, bounds, facets, logs


class QueryWorker:
    """
    Keep one query refreshed and push a Payload for every fetch.

    Attributes:
        query: The query being refreshed.
        text: Its canonical text (sent to the client, used as payload key).
        generation: Generation tag copied into every payload.
        stop: Event that cancels the worker.

    Example:
        >>> worker = QueryWorker(query, 1, client, queue, logger)
        >>> worker.start()
        >>> worker.cancel()
    """

    def __init__(
        self,
        query: StructuredQuery,
        generation: int,
        client,
        out_queue: Queue,
        logger: AppLogger,
        clock: Callable[[], float] = time.time,
    ):
        self.query = query
        self.text = render(query)
        self.generation = generation
        self.client = client
        self.out_queue = out_queue
        self.logger = logger
        self.clock = clock
        self.stop = threading.Event()
        # Last wall-clock second the gate fired in, so it fires once per second
        self._last_fired = None
        self._thread = None

    def due(self) -> bool:
        """
        Check the cadence gate.

        Fires when the current wall-clock second is a multiple of
        CADENCE_SECONDS, at most once within that second.
        """
        second = int(self.clock())
        if second % CADENCE_SECONDS != 0 or second == self._last_fired:
            return False
        self._last_fired = second
        return True

    def fetch(self) -> Payload:
        """Query the client once and reduce the response to a Payload."""
        try:
            rows = self.client.query(self.text)
        except RemoteFetchError as exc:
            # An unreachable backend looks like "no data yet" on screen
            self.logger.warn("acquisition", f"Fetch failed for {self.text!r}: {exc}")
            rows = []
        return self._payload(rows)

    def _payload(self, rows) -> Payload:
        series, bounds, facets, logs = reduce_rows(rows)
        return Payload(
            query=self.text,
            generation=self.generation,
            series=series,
            bounds=bounds,
            facets=facets,
            logs=logs,
        )

    def run(self) -> None:
        """Worker loop: gate, fetch, publish, until cancelled."""
        while not self.stop.is_set():
            if self.due():
                try:
                    payload = self.fetch()
                except Exception as exc:
                    # A dead worker would leave its query loading forever
                    self.logger.error("acquisition", f"Refresh failed for {self.text!r}: {exc!r}")
                    payload = self._payload([])
                if self.stop.is_set():
                    break
                try:
                    # Never block the worker on a slow UI
                    self.out_queue.put_nowait(payload)
                except Full:
                    self.logger.warn("acquisition", f"Result queue full, dropped payload for {self.text!r}")
            self.stop.wait(POLL_INTERVAL)

    def start(self) -> None:
        # Daemon thread so a stuck fetch never keeps the process alive
        self._thread = threading.Thread(
            target=self.run,
            name=f"acquire-{self.generation}",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        self.stop.set()

    def join(self, timeout: float = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


class AcquisitionManager:
    """
    Own the acquisition workers for every active query.

    Attributes:
        client: Remote telemetry client shared by all workers.
        out_queue: Queue every worker publishes Payloads to.
        workers: Canonical query text -> running QueryWorker.

    Example:
        >>> results = Queue()
        >>> manager = AcquisitionManager(client, results)
        >>> manager.start(query, generation=1)
        >>> manager.cancel(render(query))
    """

    def __init__(self, client, out_queue: Queue, logger: AppLogger = None, clock: Callable[[], float] = time.time):
        self.client = client
        self.out_queue = out_queue
        self.logger = logger or AppLogger()
        self.clock = clock
        self.workers: Dict[str, QueryWorker] = {}

    def start(self, query: StructuredQuery, generation: int) -> QueryWorker:
        """
        Start refreshing `query`.

        Adding a query that is already active replaces its worker so there
        is never more than one fetch loop per canonical text.
        """
        worker = QueryWorker(query, generation, self.client, self.out_queue, self.logger, self.clock)
        previous = self.workers.get(worker.text)
        if previous is not None:
            previous.cancel()

        self.workers[worker.text] = worker
        worker.start()
        self.logger.info("acquisition", f"Started generation {generation}: {worker.text}")
        return worker

    def cancel(self, query_text: str) -> bool:
        """
        Signal the worker for `query_text` to stop.

        Cancellation is cooperative: the worker may still finish a fetch
        that is already in flight.

        Returns:
            bool: True if a worker was found.
        """
        worker = self.workers.pop(query_text, None)
        if worker is None:
            return False
        worker.cancel()
        self.logger.info("acquisition", f"Cancelled generation {worker.generation}: {query_text}")
        return True

    def active_queries(self) -> List[str]:
        return list(self.workers)

    def shutdown(self, timeout: float = 0.1) -> None:
        """Cancel every worker and give each a moment to exit."""
        workers = list(self.workers.values())
        self.workers.clear()
        for worker in workers:
            worker.cancel()
        for worker in workers:
            worker.join(timeout)
