"""Tests for the NRQL query model: parse, render and their round trip."""

import pytest

from nrqlctl.nrql import (
    RESULT_BINDING,
    MissingClause,
    ParseError,
    QueryMode,
    StructuredQuery,
    correlation_query,
    parse,
    render,
    strip_render_artifacts,
)


class TestParse:
    """Tests for parse()."""

    def test_parses_reference_query(self, sample_query_text):
        query = parse(sample_query_text)

        assert query == StructuredQuery(
            source="Transaction",
            projection="count(*)",
            filter="appName='x'",
            grouping="",
            window_start="10 minutes ago",
            window_end="now",
            limit="100",
            mode=QueryMode.TIMESERIES,
        )

    def test_parses_facet(self, faceted_query_text):
        query = parse(faceted_query_text)

        assert query.filter == "appName='web'"
        assert query.grouping == "region"
        assert query.limit == "MAX"

    def test_parses_table_mode(self):
        query = parse("FROM Log SELECT message WHERE level='error' SINCE 5 minutes ago UNTIL now LIMIT 50 TABLE")

        assert query.mode is QueryMode.TABLE
        assert query.limit == "50"

    def test_trims_clause_bodies(self):
        query = parse("  FROM   Transaction   SELECT  count(*)  WHERE  true   SINCE 1 day ago   UNTIL now  LIMIT  5  TIMESERIES  ")

        assert query.source == "Transaction"
        assert query.projection == "count(*)"
        assert query.filter == "true"
        assert query.window_start == "1 day ago"

    def test_keyword_inside_identifier_is_not_a_boundary(self):
        query = parse("FROM Transaction SELECT count(*) WHERE name='FACETED' SINCE 1 hour ago UNTIL now LIMIT 10 TIMESERIES")

        assert query.filter == "name='FACETED'"
        assert query.grouping == ""

    @pytest.mark.parametrize("text, missing", [
        ("SELECT count(*) WHERE true SINCE 1 hour ago UNTIL now LIMIT 1 TIMESERIES", "FROM"),
        ("FROM Transaction WHERE true SINCE 1 hour ago UNTIL now LIMIT 1 TIMESERIES", "SELECT"),
        ("FROM Transaction SELECT count(*) SINCE 1 hour ago UNTIL now LIMIT 1 TIMESERIES", "WHERE"),
        ("FROM Transaction SELECT count(*) WHERE true UNTIL now LIMIT 1 TIMESERIES", "SINCE"),
        ("FROM Transaction SELECT count(*) WHERE true FACET host UNTIL now LIMIT 1 TIMESERIES", "SINCE"),
        ("FROM Transaction SELECT count(*) WHERE true SINCE 1 hour ago LIMIT 1 TIMESERIES", "UNTIL"),
        ("FROM Transaction SELECT count(*) WHERE true SINCE 1 hour ago UNTIL now TIMESERIES", "LIMIT"),
        ("FROM Transaction SELECT count(*) WHERE true SINCE 1 hour ago UNTIL now LIMIT 1", "MODE"),
    ])
    def test_missing_clause_is_named(self, text, missing):
        with pytest.raises(MissingClause) as excinfo:
            parse(text)

        assert excinfo.value.clause == missing

    def test_first_missing_clause_in_scan_order_wins(self):
        with pytest.raises(MissingClause) as excinfo:
            parse("FROM Transaction SELECT count(*) LIMIT 1")

        assert excinfo.value.clause == "WHERE"

    def test_lowercase_keywords_fail(self):
        with pytest.raises(ParseError):
            parse("from Transaction select count(*) where true since 1 hour ago until now limit 1 timeseries")

    def test_empty_input_fails(self):
        with pytest.raises(MissingClause) as excinfo:
            parse("   ")

        assert excinfo.value.clause == "FROM"


class TestRender:
    """Tests for render() and the round trip."""

    def test_render_adds_result_binding(self, sample_query_text):
        text = render(parse(sample_query_text))

        assert text == (
            "FROM Transaction SELECT count(*) as value WHERE appName='x' "
            "SINCE 10 minutes ago UNTIL now LIMIT 100 TIMESERIES"
        )

    def test_render_emits_facet_only_when_set(self, faceted_query_text, sample_query_text):
        assert "FACET region" in render(parse(faceted_query_text))
        assert "FACET" not in render(parse(sample_query_text))

    @pytest.mark.parametrize("text", [
        "FROM Transaction SELECT count(*) WHERE appName='x' SINCE 10 minutes ago UNTIL now LIMIT 100 TIMESERIES",
        "FROM  Log   SELECT message WHERE level = 'error'  SINCE 5 minutes ago UNTIL now LIMIT 50 TABLE",
        "FROM Transaction SELECT percentile(duration, 95) WHERE true FACET host, region SINCE 1 day ago UNTIL 1 hour ago LIMIT MAX TIMESERIES",
    ])
    def test_round_trip_modulo_whitespace_and_binding(self, text):
        rendered = render(parse(text))

        assert " ".join(strip_render_artifacts(rendered).split()) == " ".join(text.split())

    def test_reparse_of_rendered_text_keeps_fields(self, faceted_query_text):
        query = parse(faceted_query_text)
        reparsed = parse(strip_render_artifacts(render(query)))

        assert reparsed == query

    def test_strip_only_touches_projection_binding(self):
        text = "FROM Log SELECT count(*) as value WHERE message = 'stored as value' SINCE 1 hour ago UNTIL now LIMIT 1 TABLE"

        stripped = strip_render_artifacts(text)

        assert stripped.startswith("FROM Log SELECT count(*) WHERE")
        assert "'stored as value'" in stripped
        assert RESULT_BINDING in stripped


class TestCorrelationQuery:
    def test_builds_log_count_query(self):
        query = correlation_query("order-42")

        assert query.source == "Log"
        assert query.filter == "message LIKE '%order-42%'"
        assert query.mode is QueryMode.TIMESERIES
        # Must itself be a valid, re-parseable query
        assert parse(strip_render_artifacts(render(query))) == query

    def test_escapes_quotes(self):
        query = correlation_query("o'brien")

        assert query.filter == "message LIKE '%o\\'brien%'"
