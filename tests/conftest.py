# tests/conftest.py
"""
Shared test fixtures and configuration for pytest.
"""

import copy
import pytest
from pathlib import Path
from unittest.mock import Mock

import dbbulk
from dbbulk.defaults import settings
from dbbulk.utils import sql_literal


@pytest.fixture(autouse=True)
def restore_settings():
    """Config files merge into the global settings; put them back after each test."""
    saved = copy.deepcopy(settings)
    yield
    settings.clear()
    settings.update(saved)


@pytest.fixture
def test_config_file():
    """Path to test config file."""
    return Path(__file__).parent / 'test.yml'


@pytest.fixture
def mock_connection():
    """
    Mock connection for [id, name] operators.

    Each prepared statement is a Mock whose execute() reports one affected
    row per record (two values).
    """
    connection = Mock()
    connection.quote.side_effect = sql_literal

    def prepare(sql):
        statement = Mock()
        statement.query = sql
        statement.execute.side_effect = lambda values: len(values) // 2
        return statement

    connection.prepare.side_effect = prepare
    return connection


@pytest.fixture
def sqlite_db():
    """Create in-memory SQLite database."""
    db = dbbulk.sqlite(':memory:')
    yield db
    db.close()


@pytest.fixture
def cursor(sqlite_db):
    """Raw cursor on the SQLite database, for setup and verification."""
    return sqlite_db.raw_cursor()


@pytest.fixture
def earth_kingdom_schema(cursor):
    """Create Earth Kingdom census table schema."""
    cursor.execute("""
                   CREATE TABLE earth_kingdom_census
                   (
                       citizen_id         TEXT PRIMARY KEY,
                       name               TEXT NOT NULL,
                       city               TEXT NOT NULL,
                       earthbending_skill REAL
                   )
                   """)
    return 'earth_kingdom_census'


@pytest.fixture
def pro_bending_schema(cursor):
    """Create pro-bending roster table with a composite key."""
    cursor.execute("""
                   CREATE TABLE pro_bending_roster
                   (
                       team    TEXT    NOT NULL,
                       season  INTEGER NOT NULL,
                       player  TEXT    NOT NULL,
                       element TEXT,
                       PRIMARY KEY (team, season, player)
                   )
                   """)
    return 'pro_bending_roster'


@pytest.fixture
def citizen_records():
    """Sample Earth Kingdom census records."""
    return [
        {'citizen_id': 'TOPH001', 'name': 'Toph Beifong', 'city': 'Gaoling', 'earthbending_skill': 10.0},
        {'citizen_id': 'BUMI001', 'name': 'King Bumi', 'city': 'Omashu', 'earthbending_skill': 9.5},
        {'citizen_id': 'HARU001', 'name': 'Haru', 'city': 'Fire Nation occupied village',
         'earthbending_skill': 6.0},
        {'citizen_id': 'KYOSHI01', 'name': 'Kyoshi', 'city': 'Kyoshi Island', 'earthbending_skill': None},
        {'citizen_id': 'LONG001', 'name': 'Long Feng', 'city': 'Ba Sing Se', 'earthbending_skill': 8.0},
    ]


@pytest.fixture
def row_count(cursor):
    """Count the rows of a table."""
    def count(table: str) -> int:
        cursor.execute(f"SELECT COUNT(*) FROM {table}")
        return cursor.fetchone()[0]
    return count
