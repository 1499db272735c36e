"""
NRQL query model: structured queries and their canonical text form.

This module converts between the text an operator types into the query box
and the structured form the rest of nrqlctl works with.

Purpose:
    The remote query language requires its clauses in a fixed order. Rather
    than accept arbitrary NRQL, nrqlctl recognises exactly one clause grammar:

        FROM <source> SELECT <projection> WHERE <filter> [FACET <grouping>]
        SINCE <start> UNTIL <end> LIMIT <limit> TIMESERIES|TABLE

    parse() turns text into a StructuredQuery and render() turns it back
    into the canonical text that is sent to the backend and used as the
    dataset key.

Design Decisions:
    - A small hand-written scanner over clause boundaries, no regex grammar
    - Keywords are uppercase and matched as whole words only
    - FACET is the only optional clause; everything else is mandatory
    - render() binds the projection "as value" so every result row exposes
      its number under the same name
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


# Annotation appended to the projection by render().
RESULT_BINDING = "as value"

# Source and window used for correlation queries built from a log line.
CORRELATION_SOURCE = "Log"
CORRELATION_SINCE = "30 minutes ago"


class QueryMode(Enum):
    """Trailing mode keyword of a query."""
    TIMESERIES = "TIMESERIES"
    TABLE = "TABLE"


class ParseError(ValueError):
    """Raised when text does not match the clause grammar."""


class MissingClause(ParseError):
    """
    Raised when a mandatory clause is absent from its expected position.

    Attributes:
        clause: Name of the first missing clause in scan order
                (e.g. "WHERE", or "MODE" for the trailing keyword).
    """

    def __init__(self, clause: str):
        super().__init__(f"missing clause: {clause}")
        self.clause = clause


@dataclass(frozen=True)
class StructuredQuery:
    """
    A parsed NRQL query.

    Attributes:
        source: Event type queried (FROM).
        projection: Selected expression (SELECT), without the result binding.
        filter: Filter expression (WHERE).
        grouping: Facet expression (FACET); empty string when absent.
        window_start: Start of the time window (SINCE).
        window_end: End of the time window (UNTIL).
        limit: Row limit (LIMIT), kept as text so "MAX" round-trips.
        mode: Timeseries or table output.
    """
    source: str
    projection: str
    filter: str
    grouping: str
    window_start: str
    window_end: str
    limit: str
    mode: QueryMode = QueryMode.TIMESERIES


# Scan table: (clause keyword, keywords that may terminate its body).
# Terminators are tried in order, mirroring the remote grammar: a WHERE body
# runs up to FACET when one follows, otherwise up to SINCE.
_CLAUSES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("FROM", ("SELECT",)),
    ("SELECT", ("WHERE",)),
    ("WHERE", ("FACET", "SINCE")),
    ("FACET", ("SINCE",)),
    ("SINCE", ("UNTIL",)),
    ("UNTIL", ("LIMIT",)),
    ("LIMIT", ("TIMESERIES", "TABLE")),
)

# Clause reported missing when a body has no terminator.
_NEXT_REQUIRED = {
    "FROM": "SELECT",
    "SELECT": "WHERE",
    "WHERE": "SINCE",
    "FACET": "SINCE",
    "SINCE": "UNTIL",
    "UNTIL": "LIMIT",
    "LIMIT": "MODE",
}

_OPTIONAL = {"FACET"}


def _keyword_at(text: str, pos: int, keyword: str) -> bool:
    """True when `keyword` starts at `pos` as a whole word."""
    if not text.startswith(keyword, pos):
        return False
    end = pos + len(keyword)
    return end == len(text) or not (text[end].isalnum() or text[end] == "_")


def _find_keyword(text: str, pos: int, keyword: str) -> Optional[int]:
    """Index of the next whole-word occurrence of `keyword` at or after `pos`."""
    match = re.compile(rf"(?<![\w]){keyword}(?![\w])").search(text, pos)
    return match.start() if match else None


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def parse(text: str) -> StructuredQuery:
    """
    Parse operator input into a StructuredQuery.

    Clauses are scanned in strict order. Each clause starts at its keyword
    and its body extends to the next expected keyword. No recovery or
    reordering is attempted.

    Args:
        text: Raw query text, e.g.
              "FROM Transaction SELECT count(*) WHERE appName='x'
               SINCE 10 minutes ago UNTIL now LIMIT 100 TIMESERIES"

    Returns:
        StructuredQuery: The parsed query with trimmed clause bodies.

    Raises:
        MissingClause: When a mandatory clause is absent, naming the first
                       missing clause in scan order.
    """
    bodies = {}
    pos = _skip_ws(text, 0)

    for keyword, terminators in _CLAUSES:
        pos = _skip_ws(text, pos)

        if not _keyword_at(text, pos, keyword):
            # FACET may be left out entirely
            if keyword in _OPTIONAL:
                bodies[keyword] = ""
                continue
            raise MissingClause(keyword)

        start = pos + len(keyword)
        end = None
        for terminator in terminators:
            end = _find_keyword(text, start, terminator)
            if end is not None:
                break

        if end is None:
            raise MissingClause(_NEXT_REQUIRED[keyword])

        bodies[keyword] = text[start:end].strip()
        pos = end

    # Trailing mode keyword; anything after it is ignored
    pos = _skip_ws(text, pos)
    for mode in QueryMode:
        if _keyword_at(text, pos, mode.value):
            break
    else:
        raise MissingClause("MODE")

    return StructuredQuery(
        source=bodies["FROM"],
        projection=bodies["SELECT"],
        filter=bodies["WHERE"],
        grouping=bodies["FACET"],
        window_start=bodies["SINCE"],
        window_end=bodies["UNTIL"],
        limit=bodies["LIMIT"],
        mode=mode,
    )


def render(query: StructuredQuery) -> str:
    """
    Render a StructuredQuery as canonical NRQL text.

    The projection always gains the RESULT_BINDING suffix and the FACET
    segment is emitted only when a grouping is set.

    Returns:
        str: Canonical query text, used both as the request body sent to
             the backend and as the dataset key.
    """
    parts = [
        f"FROM {query.source}",
        f"SELECT {query.projection} {RESULT_BINDING}",
        f"WHERE {query.filter}",
    ]
    if query.grouping:
        parts.append(f"FACET {query.grouping}")
    parts.extend([
        f"SINCE {query.window_start}",
        f"UNTIL {query.window_end}",
        f"LIMIT {query.limit}",
        query.mode.value,
    ])
    return " ".join(parts)


_BINDING_RE = re.compile(rf"\s+{re.escape(RESULT_BINDING)}(?=\s+WHERE(?![\w]))")


def strip_render_artifacts(text: str) -> str:
    """
    Remove text that render() adds so canonical text can be re-parsed.

    Only the result binding at the end of the SELECT clause is removed; an
    "as value" appearing elsewhere in the query is left alone.
    """
    return _BINDING_RE.sub("", text, count=1).strip()


def correlation_query(token: str) -> StructuredQuery:
    """
    Build the query submitted from the log detail view.

    Counts log lines mentioning `token` over the last half hour so the
    operator can see how often a value seen in one log line recurs.
    """
    escaped = token.replace("\\", "\\\\").replace("'", "\\'")
    return StructuredQuery(
        source=CORRELATION_SOURCE,
        projection="count(*)",
        filter=f"message LIKE '%{escaped}%'",
        grouping="",
        window_start=CORRELATION_SINCE,
        window_end="now",
        limit="MAX",
        mode=QueryMode.TIMESERIES,
    )
