# tests/test_database.py
import datetime as dt
import sqlite3
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

import dbbulk
from dbbulk.database import (Database, PreparedStatement, get_drivers_for_database,
                             validate_connection_params, register_user_drivers, _user_drivers)
from dbbulk.errors import StatementError, ExecutionError
from dbbulk.utils import ParamStyle, sql_literal, quote_identifier


class DriverError(Exception):
    pass


def fake_interface(paramstyle='format', name='pymysql'):
    """A DB-API module stand-in with its own Error class."""
    return SimpleNamespace(__name__=name, paramstyle=paramstyle, Error=DriverError)


class TestParamStyle:
    """Test placeholder conversion."""

    def test_qmark_unchanged(self):
        sql = "INSERT INTO t (a, b) VALUES (?, ?)"

        assert ParamStyle.convert(sql, 'qmark') == sql

    @pytest.mark.parametrize('style', ['format', 'pyformat'])
    def test_format(self, style):
        sql = "DELETE FROM t WHERE (a = ?) OR (a = ?)"

        assert ParamStyle.convert(sql, style) == "DELETE FROM t WHERE (a = %s) OR (a = %s)"

    @pytest.mark.parametrize('style', ['numeric', 'named'])
    def test_numbered(self, style):
        sql = "INSERT INTO t (a, b) VALUES (?, ?), (?, ?)"

        assert ParamStyle.convert(sql, style) == "INSERT INTO t (a, b) VALUES (:1, :2), (:3, :4)"

    def test_unknown_style(self):
        with pytest.raises(ValueError, match='Unsupported paramstyle'):
            ParamStyle.convert("SELECT ?", 'dollar')

    def test_values(self):
        assert set(ParamStyle.values()) == {'qmark', 'numeric', 'named', 'format', 'pyformat'}


class TestSqlLiteral:
    """Test rendering values for debug output."""

    @pytest.mark.parametrize('value,expected', [
        (None, 'NULL'),
        (True, '1'),
        (False, '0'),
        (42, '42'),
        (-3.5, '-3.5'),
        ('Aang', "'Aang'"),
        ("Sozin's Comet", "'Sozin''s Comet'"),
        (b'\x01\xff', "X'01FF'"),
        (dt.date(2024, 3, 1), "'2024-03-01'"),
        (dt.datetime(2024, 3, 1, 12, 30), "'2024-03-01 12:30:00'"),
        (float('nan'), "'NaN'"),
        (float('inf'), "'Infinity'"),
        (float('-inf'), "'-Infinity'"),
    ])
    def test_literals(self, value, expected):
        assert sql_literal(value) == expected

    def test_quote_identifier(self):
        assert quote_identifier('monks') == 'monks'
        assert quote_identifier('Monks') == '"Monks"'
        assert quote_identifier('air.MONKS') == 'air.MONKS'
        assert quote_identifier('air.Monks', '`') == 'air.`Monks`'


class TestPreparedStatement:
    """Test preparing and executing against a fake driver."""

    @pytest.fixture
    def fake_db(self):
        raw_cursor = Mock()
        raw_cursor.rowcount = 2
        connection = Mock()
        connection.cursor.return_value = raw_cursor
        return Database(connection, fake_interface())

    def test_converts_paramstyle(self, fake_db):
        statement = fake_db.prepare("INSERT INTO t (a) VALUES (?), (?)")

        assert statement.query == "INSERT INTO t (a) VALUES (?), (?)"
        assert statement.sql == "INSERT INTO t (a) VALUES (%s), (%s)"
        assert statement.num_params == 2

    def test_execute_returns_rowcount(self, fake_db):
        statement = fake_db.prepare("INSERT INTO t (a) VALUES (?), (?)")

        assert statement.execute([1, 2]) == 2
        fake_db.cursor.return_value.execute.assert_called_once_with(
            "INSERT INTO t (a) VALUES (%s), (%s)", (1, 2))

    def test_reusable(self, fake_db):
        statement = fake_db.prepare("INSERT INTO t (a) VALUES (?)")

        statement.execute([1])
        statement.execute([2])

        assert fake_db.cursor.call_count == 1
        assert fake_db.cursor.return_value.execute.call_count == 2

    @pytest.mark.parametrize('rowcount', [-1, None])
    def test_unknown_rowcount(self, fake_db, rowcount):
        fake_db.cursor.return_value.rowcount = rowcount
        statement = fake_db.prepare("INSERT INTO t (a) VALUES (?)")

        assert statement.execute([1]) == 0

    def test_parameter_count_mismatch(self, fake_db):
        statement = fake_db.prepare("INSERT INTO t (a) VALUES (?), (?)")

        with pytest.raises(ExecutionError, match='expects 2 parameters, got 3'):
            statement.execute([1, 2, 3])
        fake_db.cursor.return_value.execute.assert_not_called()

    def test_driver_error(self, fake_db):
        fake_db.cursor.return_value.execute.side_effect = DriverError('Duplicate entry')
        statement = fake_db.prepare("INSERT INTO t (a) VALUES (?)")

        with pytest.raises(ExecutionError, match='Duplicate entry') as excinfo:
            statement.execute([1])
        assert isinstance(excinfo.value.__cause__, DriverError)

    def test_cursor_failure(self, fake_db):
        fake_db.cursor.side_effect = DriverError('server has gone away')

        with pytest.raises(StatementError, match='server has gone away'):
            fake_db.prepare("INSERT INTO t (a) VALUES (?)")

    @pytest.mark.parametrize('sql', ['', '   '])
    def test_empty_sql(self, fake_db, sql):
        with pytest.raises(StatementError):
            fake_db.prepare(sql)


class TestDatabase:
    """Test the connection wrapper."""

    def test_sqlite(self, sqlite_db):
        assert sqlite_db.server_type == 'sqlite'
        assert sqlite_db.paramstyle == 'qmark'
        assert sqlite_db.interface is sqlite3
        assert str(sqlite_db) == 'Database(:memory::sqlite)'

    def test_named_connection(self, sqlite_db):
        sqlite_db.name = 'ba_sing_se'

        assert str(sqlite_db) == 'Database(ba_sing_se:sqlite)'

    def test_delegates_to_connection(self, sqlite_db):
        assert sqlite_db.in_transaction is False
        sqlite_db.execute("CREATE TABLE t (a INTEGER)")
        sqlite_db.execute("INSERT INTO t VALUES (1)")
        assert sqlite_db.in_transaction is True
        sqlite_db.commit()
        assert sqlite_db.in_transaction is False

    def test_prepare_and_execute(self, sqlite_db, cursor):
        cursor.execute("CREATE TABLE t (a INTEGER, b TEXT)")
        statement = sqlite_db.prepare("INSERT INTO t (a, b) VALUES (?, ?), (?, ?)")

        assert isinstance(statement, PreparedStatement)
        assert statement.execute([1, 'x', 2, None]) == 2
        cursor.execute("SELECT a, b FROM t ORDER BY a")
        assert cursor.fetchall() == [(1, 'x'), (2, None)]

    def test_prepare_on_closed_connection(self):
        db = dbbulk.sqlite(':memory:')
        db.close()

        with pytest.raises(StatementError):
            db.prepare("INSERT INTO t (a) VALUES (?)")

    def test_quote(self, sqlite_db):
        assert sqlite_db.quote("Ty Lee") == "'Ty Lee'"
        assert sqlite_db.quote(None) == 'NULL'

    def test_context_manager_closes(self):
        with dbbulk.sqlite(':memory:') as db:
            db.execute("SELECT 1")

        with pytest.raises(sqlite3.ProgrammingError):
            db.execute("SELECT 1")

    def test_create_sqlite(self, tmp_path):
        path = tmp_path / 'omashu.db'

        db = Database.create('sqlite', database=str(path))

        assert db.server_type == 'sqlite'
        assert db.database_name == 'omashu.db'
        db.close()

    def test_create_unknown_driver(self):
        with pytest.raises(ValueError, match='Unknown driver'):
            Database.create('postgres', driver='not_a_driver')

    def test_create_incompatible_driver(self):
        with pytest.raises(ValueError, match='not compatible'):
            Database.create('mysql', driver='sqlite3', database='x')


class TestDrivers:
    """Test driver lookup and connection parameters."""

    def test_sqlite_always_available(self):
        assert get_drivers_for_database('sqlite') == ['sqlite3']

    def test_all_postgres_drivers(self):
        assert get_drivers_for_database('postgres', valid_only=False) == ['psycopg2', 'psycopg']

    def test_param_map(self):
        params = validate_connection_params('pymysql', host='localhost', database='omashu',
                                            user='bumi', password='secret', flavor='cabbage')

        assert params == {'host': 'localhost', 'db': 'omashu', 'user': 'bumi',
                          'passwd': 'secret', 'port': 3306}

    def test_missing_required(self):
        with pytest.raises(ValueError, match='Missing required parameters'):
            validate_connection_params('psycopg2', host='localhost')

    def test_user_driver_wins_tie(self):
        register_user_drivers({'mysql_fast': {'database_type': 'mysql', 'priority': 11,
                                              'required_params': [{'host'}]}})
        try:
            assert get_drivers_for_database('mysql', valid_only=False)[0] == 'mysql_fast'
        finally:
            _user_drivers.clear()
