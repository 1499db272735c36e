"""Tests for the acquisition workers and row reduction."""

import math
from queue import Queue

import httpx
import pytest

from nrqlctl.client import NewRelicClient, TelemetryRow
from nrqlctl.nrql import parse, render
from nrqlctl.tui.acquisition import (
    CADENCE_SECONDS,
    AcquisitionManager,
    QueryWorker,
    reduce_rows,
    timestamp_key,
)
from nrqlctl.utils.applog import AppLogger

from conftest import FakeClient


class FixedClock:
    """Clock whose time is set by the test."""

    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def query(sample_query_text):
    return parse(sample_query_text)


@pytest.fixture
def logger():
    return AppLogger()


class TestReduceRows:

    def test_groups_by_facet_in_response_order(self, region_rows):
        series, bounds, facets, logs = reduce_rows(region_rows)

        assert facets == ["us-east", "eu-west"]
        assert series["us-east"] == [(100.0, 3.0), (160.0, 5.0)]
        assert series["eu-west"] == [(100.0, 7.0), (160.0, 1.0)]
        assert logs == {}

    def test_bounds_fold_across_all_groups(self, region_rows):
        _, bounds, _, _ = reduce_rows(region_rows)

        assert bounds.mins == (100.0, 1.0)
        assert bounds.maxes == (160.0, 7.0)

    def test_empty_result_keeps_seeded_bounds(self):
        series, bounds, facets, logs = reduce_rows([])

        assert series == {} and facets == [] and logs == {}
        assert bounds.mins == (math.inf, math.inf)
        assert bounds.maxes == (0.0, 0.0)
        assert bounds.is_empty

    def test_missing_facet_is_single_default_group(self):
        series, _, facets, _ = reduce_rows([TelemetryRow("", 1.0, 2.0), TelemetryRow("", 2.0, 4.0)])

        assert facets == [""]
        assert series == {"": [(1.0, 2.0), (2.0, 4.0)]}

    def test_textual_values_become_log_lines(self):
        rows = [
            TelemetryRow("", 1700000000.0, "ERROR payment declined"),
            TelemetryRow("web-1", 1700000000.0, "WARN slow"),
        ]

        series, bounds, facets, logs = reduce_rows(rows)

        assert series == {}
        assert bounds.is_empty
        assert logs == {timestamp_key(1700000000.0): ["ERROR payment declined", "web-1 WARN slow"]}

    def test_timestamp_key_is_sortable_utc(self):
        assert timestamp_key(0) == "1970-01-01T00:00:00.000Z"
        assert timestamp_key(1.0) < timestamp_key(2.5)


class TestQueryWorker:

    def test_cadence_gate_fires_once_per_qualifying_second(self, query, fake_client, logger):
        clock = FixedClock(CADENCE_SECONDS * 100 + 0.1)
        worker = QueryWorker(query, 1, fake_client, Queue(), logger, clock)

        assert worker.due() is True
        clock.now += 0.5
        assert worker.due() is False
        clock.now += 1
        assert worker.due() is False
        clock.now = CADENCE_SECONDS * 101
        assert worker.due() is True

    def test_fetch_builds_payload_for_canonical_text(self, query, fake_client, logger):
        worker = QueryWorker(query, 7, fake_client, Queue(), logger)

        payload = worker.fetch()

        assert fake_client.queries == [render(query)]
        assert payload.query == render(query)
        assert payload.generation == 7
        assert payload.facets == ["us-east", "eu-west"]

    def test_fetch_failure_is_an_empty_result(self, query, failing_client, logger):
        worker = QueryWorker(query, 1, failing_client, Queue(), logger)

        payload = worker.fetch()

        assert payload.series == {}
        assert payload.facets == []
        assert "Fetch failed" in logger.path.read_text(encoding="utf-8")

    def test_worker_publishes_and_stops_on_cancel(self, query, fake_client, logger):
        results = Queue()
        worker = QueryWorker(query, 3, fake_client, results, logger, FixedClock(CADENCE_SECONDS * 10))

        worker.start()
        payload = results.get(timeout=2)
        worker.cancel()
        worker.join(2)

        assert payload.generation == 3
        assert not worker._thread.is_alive()
        # The gate fired exactly once for the single (frozen) second
        assert fake_client.queries == [render(query)]

    def test_malformed_response_is_an_empty_result_and_worker_survives(self, query, logger):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"actor": {"account": {"nrql": {
                "results": [{"endTimeSeconds": None, "value": 1}],
            }}}}})

        client = NewRelicClient("NRAK-TEST", 1, http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        results = Queue()
        worker = QueryWorker(query, 1, client, results, logger, FixedClock(CADENCE_SECONDS * 10))

        worker.start()
        try:
            payload = results.get(timeout=2)
            assert worker._thread.is_alive()
        finally:
            worker.cancel()
            worker.join(2)

        assert payload.series == {}
        assert payload.generation == 1
        assert "malformed nrql result row" in logger.path.read_text(encoding="utf-8")

    def test_unexpected_error_does_not_end_the_loop(self, query, logger):
        clock = FixedClock(CADENCE_SECONDS * 10)
        results = Queue()
        worker = QueryWorker(query, 1, FakeClient(error=KeyError("results")), results, logger, clock)

        worker.start()
        try:
            first = results.get(timeout=2)
            clock.now = CADENCE_SECONDS * 11
            second = results.get(timeout=2)
            assert worker._thread.is_alive()
        finally:
            worker.cancel()
            worker.join(2)

        assert first.series == {} and second.series == {}
        assert "Refresh failed" in logger.path.read_text(encoding="utf-8")


class TestAcquisitionManager:

    def test_start_and_cancel(self, query, logger):
        # Clock never on the cadence, so no fetches happen
        manager = AcquisitionManager(FakeClient(), Queue(), logger, FixedClock(1.0))

        worker = manager.start(query, 1)
        assert manager.active_queries() == [render(query)]

        assert manager.cancel(render(query)) is True
        worker.join(2)
        assert not worker._thread.is_alive()
        assert manager.active_queries() == []
        assert manager.cancel(render(query)) is False

    def test_restarting_a_query_replaces_its_worker(self, query, logger):
        manager = AcquisitionManager(FakeClient(), Queue(), logger, FixedClock(1.0))

        first = manager.start(query, 1)
        second = manager.start(query, 2)

        first.join(2)
        assert first.stop.is_set()
        assert not second.stop.is_set()
        assert manager.workers[render(query)] is second
        manager.shutdown()
        assert second.stop.is_set()
