# dbbulk/bulk/builders.py
"""
Multi-row SQL generation for the bulk operators.

Every builder turns a record count into one statement with ``?`` placeholders,
numFields x numRecords of them, filled record by record.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

from ..errors import InvalidConfiguration
from ..utils import IDENTIFIER_QUOTES, quote_identifier, validate_identifier

logger = logging.getLogger(__name__)

UPSERT_DIALECTS = ('mysql', 'postgres', 'sqlite')


class StatementBuilder(ABC):
    """
    Builds the SQL for a batch of records against a fixed table and field list.

    Args:
        table: Table name, optionally schema qualified
        fields: Ordered, non-empty list of field (column) names
        dialect: Server type (mysql, postgres, sqlite) used to pick the
            identifier quote character; None quotes with double quotes
    """

    operation = None

    def __init__(self, table: str, fields: Sequence[str], dialect: Optional[str] = None):
        if not fields:
            raise InvalidConfiguration('The field list is empty.')
        if len(set(fields)) != len(fields):
            raise InvalidConfiguration(f'The field list contains duplicates: {list(fields)}')
        try:
            validate_identifier(table)
            for field in fields:
                validate_identifier(field)
        except ValueError as e:
            raise InvalidConfiguration(str(e)) from e

        self.table = table
        self.fields: Tuple[str, ...] = tuple(fields)
        self.dialect = dialect
        self._quote_char = IDENTIFIER_QUOTES.get(dialect, '"')
        self._table_sql = self._quote(table)
        self._field_sql = tuple(self._quote(f) for f in self.fields)

    def _quote(self, identifier: str) -> str:
        return quote_identifier(identifier, self._quote_char)

    @property
    def num_fields(self) -> int:
        return len(self.fields)

    def build(self, num_records: int) -> str:
        """Return the SQL for a batch of ``num_records`` records."""
        if num_records < 1:
            raise ValueError(f'num_records must be 1 or more, got {num_records}')
        sql = self._build(num_records)
        logger.debug(f"Generated {self.operation} SQL for {self.table} x {num_records}")
        return sql

    @abstractmethod
    def _build(self, num_records: int) -> str:
        """Build the statement; num_records is already validated."""

    def _values_clause(self, num_records: int) -> str:
        group = '(' + ', '.join('?' * self.num_fields) + ')'
        return ', '.join([group] * num_records)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.table!r}, {list(self.fields)!r})"


class InsertBuilder(StatementBuilder):
    """INSERT INTO table (f1, f2) VALUES (?, ?), (?, ?)"""

    operation = 'insert'

    def _build(self, num_records: int) -> str:
        cols_str = ', '.join(self._field_sql)
        return f"INSERT INTO {self._table_sql} ({cols_str}) VALUES {self._values_clause(num_records)}"


class UpsertBuilder(InsertBuilder):
    """
    Insert that overwrites conflicting rows with the incoming values.

    MySQL (the default dialect) gets ``ON DUPLICATE KEY UPDATE f = VALUES(f)``
    for every field. PostgreSQL and SQLite get
    ``ON CONFLICT (keys) DO UPDATE SET f = excluded.f`` for every non-key field,
    which needs the conflict target in ``key_fields``.
    """

    operation = 'upsert'

    def __init__(self, table: str, fields: Sequence[str], dialect: str = 'mysql',
                 key_fields: Optional[Sequence[str]] = None):
        super().__init__(table, fields, dialect)
        if dialect not in UPSERT_DIALECTS:
            raise InvalidConfiguration(
                f"Unsupported upsert dialect '{dialect}'. Must be one of: {UPSERT_DIALECTS}")
        key_fields = tuple(key_fields or ())
        if dialect != 'mysql' and not key_fields:
            raise InvalidConfiguration(f"The {dialect} upsert dialect requires key_fields.")
        unknown = [k for k in key_fields if k not in self.fields]
        if unknown:
            raise InvalidConfiguration(f"Key fields not in the field list: {unknown}")
        self.key_fields = key_fields

    def _update_clause(self) -> str:
        if self.dialect == 'mysql':
            assignments = ', '.join(f"{col} = VALUES({col})" for col in self._field_sql)
            return f" ON DUPLICATE KEY UPDATE {assignments}"

        keys_str = ', '.join(self._quote(k) for k in self.key_fields)
        update_cols = [self._quote(f) for f in self.fields if f not in self.key_fields]
        if not update_cols:
            return f" ON CONFLICT ({keys_str}) DO NOTHING"
        assignments = ', '.join(f"{col} = excluded.{col}" for col in update_cols)
        return f" ON CONFLICT ({keys_str}) DO UPDATE SET {assignments}"

    def _build(self, num_records: int) -> str:
        return super()._build(num_records) + self._update_clause()


class DeleteBuilder(StatementBuilder):
    """DELETE FROM table WHERE (k1 = ? AND k2 = ?) OR (k1 = ? AND k2 = ?)"""

    operation = 'delete'

    def _build(self, num_records: int) -> str:
        group = '(' + ' AND '.join(f"{col} = ?" for col in self._field_sql) + ')'
        conditions = ' OR '.join([group] * num_records)
        return f"DELETE FROM {self._table_sql} WHERE {conditions}"
