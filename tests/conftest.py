"""Pytest configuration and fixtures for nrqlctl tests."""

import pytest

from nrqlctl.client import RemoteFetchError, TelemetryRow


# =============================================================================
# ENVIRONMENT
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_paths(tmp_path, monkeypatch):
    """Keep logs and session files inside the test's temporary directory."""
    monkeypatch.setenv("NRQLCTL_LOG_ROOT", str(tmp_path / "logs"))
    monkeypatch.setenv("NRQLCTL_SESSION", str(tmp_path / "session.yaml"))
    return tmp_path


# =============================================================================
# QUERY FIXTURES
# =============================================================================

@pytest.fixture
def sample_query_text() -> str:
    """Query with every mandatory clause and no FACET."""
    return (
        "FROM Transaction SELECT count(*) WHERE appName='x' "
        "SINCE 10 minutes ago UNTIL now LIMIT 100 TIMESERIES"
    )


@pytest.fixture
def faceted_query_text() -> str:
    """Query with a FACET clause."""
    return (
        "FROM Transaction SELECT average(duration) WHERE appName='web' "
        "FACET region SINCE 1 hour ago UNTIL now LIMIT MAX TIMESERIES"
    )


# =============================================================================
# CLIENT FIXTURES
# =============================================================================

class FakeClient:
    """Stand-in for NewRelicClient that returns canned rows."""

    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.queries = []
        self.closed = False

    def query(self, nrql):
        self.queries.append(nrql)
        if self.error is not None:
            raise self.error
        return list(self.rows)

    def close(self):
        self.closed = True


@pytest.fixture
def region_rows():
    return [
        TelemetryRow("us-east", 100.0, 3.0),
        TelemetryRow("eu-west", 100.0, 7.0),
        TelemetryRow("us-east", 160.0, 5.0),
        TelemetryRow("eu-west", 160.0, 1.0),
    ]


@pytest.fixture
def fake_client(region_rows):
    return FakeClient(rows=region_rows)


@pytest.fixture
def failing_client():
    return FakeClient(error=RemoteFetchError("boom"))
