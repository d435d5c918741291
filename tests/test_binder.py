"""Tests for litebridge.binder: placeholder parsing and parameter binding."""

from __future__ import annotations

import pytest

from litebridge.binder import bind, parse_placeholders, to_values
from litebridge.core.errors import ErrorKind, ParameterMismatchError, TypeMismatchError
from litebridge.core.values import NULL, Integer, Text


class TestParsePlaceholders:
    def test_no_placeholders(self):
        parsed = parse_placeholders("SELECT 1")
        assert parsed.parameter_count == 0
        assert parsed.sql == "SELECT 1"

    def test_dollar_numbered_rewritten(self):
        parsed = parse_placeholders("INSERT INTO post (title, author) VALUES ($1, $2)")
        assert parsed.parameter_count == 2
        assert parsed.numbered
        assert parsed.sql == "INSERT INTO post (title, author) VALUES (?1, ?2)"

    def test_question_numbered(self):
        parsed = parse_placeholders("SELECT ?1, ?2")
        assert parsed.parameter_count == 2
        assert parsed.sql == "SELECT ?1, ?2"

    def test_numbered_count_is_highest(self):
        assert parse_placeholders("SELECT $3").parameter_count == 3

    def test_repeated_number_counts_once(self):
        parsed = parse_placeholders("SELECT $1 WHERE $1 > $2 OR $1 < 0")
        assert parsed.parameter_count == 2

    def test_anonymous(self):
        parsed = parse_placeholders("SELECT ?, ?, ?")
        assert parsed.parameter_count == 3
        assert not parsed.numbered

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT '$1', '?'",
            'SELECT "?" FROM t',
            "SELECT [$1] FROM t",
            "SELECT `?` FROM t",
            "SELECT 'it''s $1'",
            "SELECT 1 -- where a = $1",
            "SELECT 1 /* ? and $2 */",
        ],
    )
    def test_quotes_and_comments_skipped(self, sql):
        parsed = parse_placeholders(sql)
        assert parsed.parameter_count == 0
        assert parsed.sql == sql

    def test_marker_after_literal_counted(self):
        parsed = parse_placeholders("SELECT 'a''b', $1")
        assert parsed.parameter_count == 1
        assert parsed.sql == "SELECT 'a''b', ?1"

    @pytest.mark.parametrize("sql", ["SELECT a$1 FROM t", "SELECT col$2, _x$3 FROM t$1"])
    def test_dollar_inside_identifier_is_not_a_marker(self, sql):
        parsed = parse_placeholders(sql)
        assert parsed.parameter_count == 0
        assert parsed.sql == sql

    def test_marker_after_identifier_separator_counted(self):
        parsed = parse_placeholders("SELECT a FROM t WHERE a=$1 AND ($2)")
        assert parsed.parameter_count == 2
        assert parsed.sql == "SELECT a FROM t WHERE a=?1 AND (?2)"

    def test_bind_ignores_identifier_dollar(self):
        bound = bind("SELECT a$1 FROM t WHERE a$1 = $1", [5])
        assert bound.sql == "SELECT a$1 FROM t WHERE a$1 = ?1"
        assert bound.parameters == (5,)

    def test_mixing_forms_rejected(self):
        with pytest.raises(ParameterMismatchError, match="cannot mix"):
            parse_placeholders("SELECT ?, $1")

    def test_zero_rejected(self):
        with pytest.raises(ParameterMismatchError, match="numbering starts at 1"):
            parse_placeholders("SELECT $0")


class TestToValues:
    def test_none_is_empty(self):
        assert to_values(None) == ()

    def test_converts_each(self):
        assert to_values(["a", 1, None]) == (Text("a"), Integer(1), NULL)

    def test_string_is_not_a_parameter_list(self):
        with pytest.raises(ParameterMismatchError):
            to_values("abc")


class TestBind:
    def test_post_insert(self):
        bound = bind(
            "INSERT INTO post (title, author) VALUES ($1, $2)",
            ["first post", None],
        )
        assert bound.sql == "INSERT INTO post (title, author) VALUES (?1, ?2)"
        assert bound.parameters == ("first post", None)
        assert bound.values == (Text("first post"), NULL)
        assert bound.parameter_count == 2

    def test_too_few(self):
        with pytest.raises(ParameterMismatchError) as exc_info:
            bind("INSERT INTO t VALUES ($1, $2)", [1])
        err = exc_info.value
        assert err.kind == ErrorKind.PARAMETER_MISMATCH
        assert err.expected == 2
        assert err.supplied == 1
        assert err.context.sql == "INSERT INTO t VALUES ($1, $2)"

    def test_too_many(self):
        with pytest.raises(ParameterMismatchError) as exc_info:
            bind("SELECT ?", [1, 2])
        assert exc_info.value.expected == 1
        assert exc_info.value.supplied == 2

    def test_none_params_for_plain_statement(self):
        assert bind("SELECT 1", None).parameters == ()

    def test_bool_bound_as_integer(self):
        assert bind("SELECT ?", [True]).parameters == (1,)

    def test_unsupported_parameter(self):
        with pytest.raises(TypeMismatchError):
            bind("SELECT ?", [object()])
