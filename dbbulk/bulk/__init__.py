# dbbulk/bulk/__init__.py
"""
Buffered multi-row write operations.

- BulkInserter, BulkUpserter, BulkDeleter: queue records, write batch_size at a time
- BulkOperator: the shared engine, usable with any StatementBuilder
- InsertBuilder, UpsertBuilder, DeleteBuilder: SQL generation for a batch

Example
-------
::

    from dbbulk.bulk import BulkUpserter

    upserter = BulkUpserter(db, 'users', ['id', 'name'], batch_size=500,
                            dialect='sqlite', key_fields=['id'])
    upserter.queue_many(records)
    upserter.flush()
"""

from .builders import StatementBuilder, InsertBuilder, UpsertBuilder, DeleteBuilder
from .operator import BulkOperator, BulkInserter, BulkUpserter, BulkDeleter, OPERATORS
from .render import render_query
from .sinks import Sink, ExecuteSink, DebugSink

__all__ = ['BulkOperator', 'BulkInserter', 'BulkUpserter', 'BulkDeleter', 'OPERATORS',
           'StatementBuilder', 'InsertBuilder', 'UpsertBuilder', 'DeleteBuilder',
           'Sink', 'ExecuteSink', 'DebugSink', 'render_query']
