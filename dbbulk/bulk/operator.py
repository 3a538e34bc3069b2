# dbbulk/bulk/operator.py

"""
Buffered bulk write operations.

Provides BulkOperator and its insert, upsert and delete flavours. Records are
queued one at a time and written as multi-row statements, batch_size records
per statement.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .builders import StatementBuilder, InsertBuilder, UpsertBuilder, DeleteBuilder, UPSERT_DIALECTS
from .render import render_query
from .sinks import make_sink
from ..defaults import settings
from ..errors import InvalidConfiguration, MissingField, PendingBatchError
from ..utils import flatten

logger = logging.getLogger(__name__)


def server_type(connection) -> Optional[str]:
    """The connection's server type (mysql, postgres, sqlite), or None if unknown."""
    value = getattr(connection, 'server_type', None)
    return value if isinstance(value, str) else None


@dataclass
class BufferState:
    """Mutable bookkeeping owned by a single BulkOperator."""
    rows: List[tuple] = field(default_factory=list)
    total_operations: int = 0
    affected_rows: int = 0

    @property
    def pending(self) -> int:
        return len(self.rows)

    def clear_buffer(self) -> None:
        self.rows = []


class BulkOperator:
    """
    Accumulates records and writes them in batches of ``batch_size``.

    The statement for a full batch is prepared once, when the operator is
    created, and reused for every full batch. ``queue()`` writes a batch as
    soon as the buffer is full; ``flush()`` writes whatever is left and must
    be called once after the last record, or the pending records are lost.

    Note: operators are not thread safe. Use one operator per thread.

    Example
    -------
    ::

        db = dbbulk.sqlite('warehouse.db')
        inserter = BulkInserter(db, 'users', ['id', 'name'], batch_size=500)
        for row in reader:
            if inserter.queue(row):
                print(f"{inserter.flushed_operations:,} users written")
        inserter.flush()
        db.commit()

    Args:
        connection: Database (or anything with prepare() and quote())
        builder: StatementBuilder that generates the SQL for a batch
        batch_size: Number of records per statement (default from settings, 100)
        debug: If True nothing is written; the rendered SQL is collected
            and available from ``debug_queries``
    """

    def __init__(self, connection, builder: StatementBuilder,
                 batch_size: Optional[int] = None, debug: bool = False):
        if batch_size is None:
            batch_size = settings.get('default_batch_size', 100)
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
            raise InvalidConfiguration('The number of operations per query must be 1 or more.')

        self.connection = connection
        self.builder = builder
        self.batch_size = batch_size
        self.debug = debug
        self._sink = make_sink(connection, debug)
        self._state = BufferState()

        self._batch_sql = builder.build(batch_size)
        self._prepared_statement = connection.prepare(self._batch_sql)
        logger.debug(f"{self} prepared full batch statement")

    @property
    def table(self) -> str:
        return self.builder.table

    @property
    def fields(self) -> tuple:
        return self.builder.fields

    def queue(self, record: Mapping[str, Any]) -> bool:
        """
        Queue one record.

        Only the configured fields are read, in order; other keys are ignored.
        A present field with a None value is valid.

        Returns:
            True if the queued record completed a batch that was written,
            which can be used to display progress.

        Raises:
            MissingField: If a configured field is absent. Nothing is queued.
            PendingBatchError: If a failed full batch is still waiting to be flushed.
        """
        for name in self.fields:
            if name not in record:
                raise MissingField(name)
        if self._state.pending >= self.batch_size:
            raise PendingBatchError(
                f"{self.pending_operations} operations from a failed batch are pending on "
                f"{self.table}; call flush() to retry or reset() to discard them.")

        self._state.rows.append(tuple(record[name] for name in self.fields))
        self._state.total_operations += 1

        if self._state.pending < self.batch_size:
            return False

        self._write(self._batch_sql, self._prepared_statement)
        return True

    def queue_many(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Queue each record in turn. Returns the number of batches written."""
        return sum(1 for record in records if self.queue(record))

    def flush(self) -> None:
        """
        Write the pending records to the database.

        Call this once after the last ``queue()``; pending records are
        otherwise never written. Does nothing if the buffer is empty.
        """
        if not self._state.pending:
            return
        self._write(self.builder.build(self._state.pending))

    def _write(self, sql: str, statement=None) -> None:
        """Send the buffer to the sink. The buffer is kept if the sink fails."""
        num_records = self._state.pending
        values = flatten(self._state.rows)
        try:
            affected = self._sink.write(sql, values, statement)
        except Exception as e:
            logger.error(f"{self.builder.operation.capitalize()} batch of {num_records} "
                         f"failed for {self.table}: {e}")
            raise
        self._state.affected_rows += affected
        self._state.clear_buffer()
        logger.debug(f"{self.builder.operation.capitalize()} batch of {num_records} "
                     f"written to {self.table}, {affected} rows affected")

    def reset(self) -> None:
        """
        Discard pending operations and zero the counters and debug log.

        The prepared full batch statement is kept.
        """
        self._state = BufferState()
        self._sink.reset()

    @property
    def total_operations(self) -> int:
        """Operations queued so far, flushed and pending."""
        return self._state.total_operations

    @property
    def flushed_operations(self) -> int:
        """Operations written to the database (or the debug log)."""
        return self._state.total_operations - self._state.pending

    @property
    def pending_operations(self) -> int:
        """Operations waiting in the buffer."""
        return self._state.pending

    @property
    def affected_rows(self) -> int:
        """
        Rows affected by the flushed operations, as reported by the driver.

        For BulkInserter this equals flushed_operations. MySQL reports 2 for
        every upserted row that was updated.
        """
        return self._state.affected_rows

    @property
    def debug_queries(self) -> List[str]:
        """Rendered SQL of each batch written in debug mode."""
        return list(self._sink.queries)

    def show_queued_query(self) -> str:
        """Render the statement that would flush the current buffer; '' if empty."""
        if not self._state.pending:
            return ''
        sql = self.builder.build(self._state.pending)
        return render_query(sql, flatten(self._state.rows), self.connection.quote)

    def close(self) -> None:
        """
        Close the prepared full batch statement. Pending operations are not flushed.

        Later full batches prepare a statement per batch, like flush() does.
        """
        if self._prepared_statement is not None:
            self._prepared_statement.close()
            self._prepared_statement = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                self.flush()
                logger.info(
                    f"{self.__class__.__name__} [{self.builder.operation.upper()}]: "
                    f"{self.flushed_operations:,} operations, {self.affected_rows:,} rows affected → {self.table}"
                )
            elif self.pending_operations:
                logger.warning(f"{self.pending_operations:,} pending operations on {self.table} "
                               f"were not flushed because of {exc_type.__name__}")
        finally:
            self.close()
        return None

    def __repr__(self) -> str:
        mode = ', debug' if self.debug else ''
        return f"{self.__class__.__name__}({self.table!r}, batch_size={self.batch_size}{mode})"


class BulkInserter(BulkOperator):
    """Inserts rows into a database table in bulk."""

    def __init__(self, connection, table: str, fields: Sequence[str],
                 batch_size: Optional[int] = None, debug: bool = False):
        builder = InsertBuilder(table, fields, dialect=server_type(connection))
        super().__init__(connection, builder, batch_size, debug)


class BulkUpserter(BulkOperator):
    """
    Upserts rows into a database table in bulk.

    Conflicting rows are overwritten with the incoming values of every field.
    The ``mysql`` dialect uses ON DUPLICATE KEY UPDATE; the ``postgres`` and
    ``sqlite`` dialects use ON CONFLICT and need key_fields. Without a dialect
    the connection's server type is used when it has one, otherwise mysql.
    """

    def __init__(self, connection, table: str, fields: Sequence[str],
                 batch_size: Optional[int] = None, debug: bool = False,
                 dialect: Optional[str] = None, key_fields: Optional[Sequence[str]] = None):
        if dialect is None:
            dialect = server_type(connection)
            if dialect not in UPSERT_DIALECTS:
                dialect = 'mysql'
        builder = UpsertBuilder(table, fields, dialect=dialect, key_fields=key_fields)
        super().__init__(connection, builder, batch_size, debug)


class BulkDeleter(BulkOperator):
    """
    Deletes rows from a database table in bulk.

    The fields are the key used to match rows; a record matches a row when
    every field is equal. NULL never matches.
    """

    def __init__(self, connection, table: str, fields: Sequence[str],
                 batch_size: Optional[int] = None, debug: bool = False):
        builder = DeleteBuilder(table, fields, dialect=server_type(connection))
        super().__init__(connection, builder, batch_size, debug)


OPERATORS = {
    'insert': BulkInserter,
    'upsert': BulkUpserter,
    'delete': BulkDeleter,
}
