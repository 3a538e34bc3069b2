# tests/test_render.py
from unittest.mock import Mock

import pytest

from dbbulk.bulk.render import render_query
from dbbulk.bulk.sinks import ExecuteSink, DebugSink, make_sink
from dbbulk.utils import sql_literal


class TestRenderQuery:
    """Test value substitution for display."""

    def test_in_order(self):
        sql = "INSERT INTO t (a, b) VALUES (?, ?), (?, ?)"

        rendered = render_query(sql, [1, 'x', None, 2.5], sql_literal)

        assert rendered == "INSERT INTO t (a, b) VALUES (1, 'x'), (NULL, 2.5)"

    def test_question_marks_in_values_are_kept(self):
        rendered = render_query("DELETE FROM t WHERE (a = ?) OR (a = ?)", ['why?', 'who'], sql_literal)

        assert rendered == "DELETE FROM t WHERE (a = 'why?') OR (a = 'who')"

    def test_backslashes_kept(self):
        rendered = render_query("SELECT ?", ['C:\\new\\1'], sql_literal)

        assert rendered == "SELECT 'C:\\new\\1'"

    def test_custom_quote(self):
        assert render_query("SELECT ?, ?", [1, 2], lambda v: f'<{v}>') == "SELECT <1>, <2>"

    @pytest.mark.parametrize('values', [[], [1], [1, 2, 3]])
    def test_count_mismatch(self, values):
        with pytest.raises(ValueError, match='2 placeholders'):
            render_query("SELECT ?, ?", values, sql_literal)


class TestSinks:
    """Test execute and debug sinks."""

    def test_execute_with_prepared_statement(self, mock_connection):
        statement = Mock()
        statement.execute.return_value = 3

        affected = ExecuteSink(mock_connection).write("SQL ?", [1], statement)

        assert affected == 3
        statement.execute.assert_called_once_with([1])
        statement.close.assert_not_called()
        mock_connection.prepare.assert_not_called()

    def test_execute_prepares_and_closes(self, mock_connection):
        affected = ExecuteSink(mock_connection).write("INSERT INTO t (a, b) VALUES (?, ?)", [1, 2])

        assert affected == 1
        mock_connection.prepare.assert_called_once_with("INSERT INTO t (a, b) VALUES (?, ?)")

    def test_execute_closes_on_failure(self):
        statement = Mock()
        statement.execute.side_effect = RuntimeError('boom')
        connection = Mock()
        connection.prepare.return_value = statement

        with pytest.raises(RuntimeError):
            ExecuteSink(connection).write("SELECT ?", [1])
        statement.close.assert_called_once()

    def test_debug_records_query(self, mock_connection):
        sink = DebugSink(mock_connection)

        assert sink.write("INSERT INTO t (a) VALUES (?), (?)", ['Zuko', 'Iroh']) == 0
        assert sink.queries == ["INSERT INTO t (a) VALUES ('Zuko'), ('Iroh')"]
        mock_connection.prepare.assert_not_called()

    def test_debug_ignores_statement(self, mock_connection):
        statement = Mock()

        DebugSink(mock_connection).write("SELECT ?", [1], statement)

        statement.execute.assert_not_called()

    def test_debug_reset(self, mock_connection):
        sink = DebugSink(mock_connection)
        sink.write("SELECT ?", [1])

        sink.reset()

        assert sink.queries == []

    def test_make_sink(self, mock_connection):
        assert isinstance(make_sink(mock_connection, True), DebugSink)
        assert isinstance(make_sink(mock_connection, False), ExecuteSink)
        assert isinstance(make_sink(mock_connection, None), ExecuteSink)

    def test_execute_sink_has_no_queries(self, mock_connection):
        sink = ExecuteSink(mock_connection)
        sink.write("INSERT INTO t (a, b) VALUES (?, ?)", [1, 2])

        assert sink.queries == []
