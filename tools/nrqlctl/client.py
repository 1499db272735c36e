"""Remote telemetry client for the New Relic NerdGraph NRQL endpoint."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Union

import httpx


NERDGRAPH_ENDPOINTS = {
    "US": "https://api.newrelic.com/graphql",
    "EU": "https://api.eu.newrelic.com/graphql",
}

_NRQL_DOCUMENT = """
query ($accountId: Int!, $nrql: Nrql!) {
  actor {
    account(id: $accountId) {
      nrql(query: $nrql) {
        results
      }
    }
  }
}
"""


class RemoteFetchError(RuntimeError):
    """Raised when the remote service cannot answer a query."""


@dataclass(frozen=True)
class TelemetryRow:
    """
    One result row.

    `value` is a float for numeric results and the raw string otherwise
    (event queries selecting a message attribute).
    """
    facet: str
    timestamp: float
    value: Union[float, str]


class NewRelicClient:
    """Client for NRQL queries over the NerdGraph GraphQL API."""

    def __init__(
        self,
        api_key: str,
        account_id: int,
        *,
        region: str = "US",
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        endpoint = NERDGRAPH_ENDPOINTS.get(region.upper())
        if endpoint is None:
            raise ValueError(f"unknown region: {region}")

        self._api_key = api_key
        self._account_id = int(account_id)
        self._endpoint = endpoint
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _facet_of(result: dict[str, Any]) -> str:
        facet = result.get("facet")
        if facet is None:
            return ""
        if isinstance(facet, list):
            return ", ".join(str(part) for part in facet)
        return str(facet)

    @staticmethod
    def _timestamp_of(result: dict[str, Any]) -> float:
        if "endTimeSeconds" in result:
            return float(result["endTimeSeconds"])
        if "timestamp" in result:
            # Event timestamps are epoch milliseconds
            return float(result["timestamp"]) / 1000.0
        if "beginTimeSeconds" in result:
            return float(result["beginTimeSeconds"])
        return 0.0

    @staticmethod
    def _value_of(result: dict[str, Any]) -> Union[float, str]:
        value = result.get("value")
        if isinstance(value, bool) or value is None:
            return "" if value is None else str(value)
        if isinstance(value, (int, float)):
            number = float(value)
            return number if math.isfinite(number) else str(value)
        if isinstance(value, dict):
            # Aggregates such as percentile() nest their number one level down
            for nested in value.values():
                if isinstance(nested, (int, float)) and not isinstance(nested, bool):
                    return float(nested)
        return str(value)

    def _rows_from(self, body: Any) -> list[TelemetryRow]:
        if not isinstance(body, dict):
            raise RemoteFetchError("response body is not a JSON object")

        errors = body.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            message = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in errors
                if err
            )
            raise RemoteFetchError(message or "NerdGraph returned errors")

        try:
            results = body["data"]["actor"]["account"]["nrql"]["results"]
        except (KeyError, TypeError) as exc:
            raise RemoteFetchError("response is missing nrql results") from exc

        if results is None:
            return []
        if not isinstance(results, list):
            raise RemoteFetchError("nrql results are not a list")

        try:
            return [
                TelemetryRow(
                    facet=self._facet_of(result),
                    timestamp=self._timestamp_of(result),
                    value=self._value_of(result),
                )
                for result in results
                if isinstance(result, dict)
            ]
        except (TypeError, ValueError, AttributeError) as exc:
            raise RemoteFetchError(f"malformed nrql result row: {exc}") from exc

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def query(self, nrql: str) -> list[TelemetryRow]:
        """Run one NRQL query and return its rows in response order."""

        payload = {
            "query": _NRQL_DOCUMENT,
            "variables": {"accountId": self._account_id, "nrql": nrql},
        }
        headers = {"API-Key": self._api_key, "Content-Type": "application/json"}

        try:
            response = self._client.post(self._endpoint, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise RemoteFetchError(f"request failed: {exc}") from exc
        except ValueError as exc:
            raise RemoteFetchError("response is not valid JSON") from exc

        return self._rows_from(body)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
