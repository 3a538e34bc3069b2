# dbbulk/utils.py
"""
Utility functions for dbbulk.
"""

import math
import re
import datetime as dt
from typing import Any, List, Iterable, Sequence
from .defaults import settings

MIDNIGHT = dt.time(0, 0, 0)
PLACEHOLDER = '?'

# identifier quote character per server type, double quotes otherwise
IDENTIFIER_QUOTES = {
    'mysql': '`',
}


class ParamStyle:
    """
    SQL parameter placeholder styles for different database drivers.

    Statements are always built with question mark placeholders and converted
    to the driver's style once, when they are prepared:

    - QMARK: Question mark placeholders (?, ?) - SQLite, ODBC
    - NUMERIC: Numeric placeholders (:1, :2) - Oracle
    - NAMED: Named placeholders, used positionally as :1, :2 - Oracle, psycopg2
    - FORMAT: Printf-style (%s, %s) - MySQL (MySQLdb, pymysql)
    - PYFORMAT: Python format, used positionally as %s - psycopg2, pymysql

    Example
    -------
    ::
        >>> ParamStyle.convert('VALUES (?, ?)', 'numeric')
        'VALUES (:1, :2)'
        >>> ParamStyle.convert('VALUES (?, ?)', 'format')
        'VALUES (%s, %s)'
    """
    QMARK = 'qmark'         # id = ?
    NUMERIC = 'numeric'     # id = :1
    NAMED = 'named'         # id = :id  also :1 for positional
    FORMAT = 'format'       # id = %s
    PYFORMAT = 'pyformat'   # id = %(id)s also %s for positional
    DEFAULT = QMARK

    @classmethod
    def values(cls):
        return [getattr(cls, attr) for attr in dir(cls)
                if not attr.startswith('_') and isinstance(getattr(cls, attr), str)]

    @classmethod
    def convert(cls, sql: str, paramstyle: str) -> str:
        """Rewrite ``?`` placeholders in sql for the given paramstyle."""
        if paramstyle == cls.QMARK:
            return sql
        elif paramstyle in (cls.FORMAT, cls.PYFORMAT):
            # literal percent signs must be doubled for printf-style drivers
            return sql.replace('%', '%%').replace(PLACEHOLDER, '%s')
        elif paramstyle in (cls.NUMERIC, cls.NAMED):
            counter = iter(range(1, sql.count(PLACEHOLDER) + 1))
            return re.sub(r'\?', lambda m: f':{next(counter)}', sql)
        raise ValueError(f"Unsupported paramstyle: {paramstyle}")


def count_placeholders(sql: str) -> int:
    """Number of ``?`` placeholders in a statement built by dbbulk."""
    return sql.count(PLACEHOLDER)


def to_string(obj: Any) -> str:
    """
    Convert a value to string representation.

    Dates and times use the formats from settings.

    Args:
        obj: Value to convert

    Returns:
        String representation
    """
    if isinstance(obj, dt.datetime):
        if obj.microsecond:
            fmt = settings.get('timestamp_format', '%Y-%m-%d %H:%M:%S.%f')
        elif obj.time() == MIDNIGHT and not obj.tzinfo:
            return obj.strftime(settings.get('date_format', '%Y-%m-%d'))
        else:
            fmt = settings.get('datetime_format', '%Y-%m-%d %H:%M:%S')
        if obj.tzinfo:
            fmt += settings.get('tz_suffix', '%z')
        return obj.strftime(fmt)
    elif isinstance(obj, dt.date):
        return obj.strftime(settings.get('date_format', '%Y-%m-%d'))
    elif isinstance(obj, dt.time):
        fmt = settings.get('time_format', '%H:%M:%S')
        if obj.microsecond:
            fmt += '.%f'
        return obj.strftime(fmt)
    elif hasattr(obj, 'read'):
        # Handle LOB objects
        return str(obj.read())
    return str(obj)


def sql_literal(value: Any) -> str:
    """
    Render a Python value as a SQL literal for display.

    Only used to build human readable SQL; statements sent to the database
    always use bind parameters.
    """
    if value is None:
        return 'NULL'
    elif isinstance(value, bool):
        return '1' if value else '0'
    elif isinstance(value, float) and not math.isfinite(value):
        # no literal syntax; PostgreSQL accepts these spellings for floats
        if math.isnan(value):
            return "'NaN'"
        return "'Infinity'" if value > 0 else "'-Infinity'"
    elif isinstance(value, (int, float)):
        return repr(value)
    elif isinstance(value, (bytes, bytearray, memoryview)):
        return f"X'{bytes(value).hex().upper()}'"
    text = to_string(value)
    return "'" + text.replace("'", "''") + "'"


def validate_identifier(identifier: str, max_length: int = 64) -> str:
    """
    Validate that an identifier is safe for use (even if it needs quoting).
    Returns the identifier if valid, raises ValueError if invalid.
    """
    if not isinstance(identifier, str):
        raise ValueError(f"Invalid identifier: must be a string, got {type(identifier).__name__}")
    if '.' in identifier:
        # Split and recursively validate each part
        parts = identifier.split('.')
        validated_parts = [validate_identifier(part, max_length) for part in parts]
        return '.'.join(validated_parts)

    # Single identifier validation
    if not identifier:
        raise ValueError("Invalid identifier: cannot be empty")
    if not (identifier[0].isalpha() or identifier[0] == '_'):
        raise ValueError(f"Invalid identifier: must start with a letter or underscore: {identifier}")
    if len(identifier) > max_length:
        raise ValueError(f"Invalid identifier: exceeds max length of {max_length}")

    # Placeholders must never appear outside bind positions
    dangerous_patterns = ['\x00', '\n', '\r', '"', "'", '`', ';', '?', '%', '\x1a', '--', '/*', '*/']
    for pattern in dangerous_patterns:
        if pattern in identifier:
            raise ValueError(f"Invalid identifier: contains dangerous pattern '{pattern}': {identifier}")

    if identifier.endswith(' '):
        raise ValueError(f"Invalid identifier: has trailing spaces: {identifier}")

    return identifier


def identifier_needs_quoting(identifier: str) -> bool:
    """Check if identifier needs quoting."""
    return not re.match(r'^([a-z_][a-z0-9_]*|[A-Z_][A-Z0-9_]*)$', identifier)


def quote_identifier(identifier: str, quote_char: str = '"') -> str:
    """
    Quote identifier, handling qualified names by splitting on dots.

    MySQL reads double quoted names as strings unless ANSI_QUOTES is set;
    pass the dialect's quote character from IDENTIFIER_QUOTES.
    """
    if '.' in identifier:
        return '.'.join(quote_identifier(part, quote_char) for part in identifier.split('.'))

    if identifier_needs_quoting(identifier):
        return f'{quote_char}{identifier}{quote_char}'
    else:
        return identifier


def flatten(rows: Iterable[Sequence[Any]]) -> List[Any]:
    """Flatten buffered rows record-major, field-minor."""
    return [value for row in rows for value in row]
