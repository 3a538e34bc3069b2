# dbbulk/__init__.py
"""
dbbulk - buffered bulk writes for DB-API databases

Queues row-level inserts, upserts and deletes and writes them as multi-row
statements, batch_size records at a time:

- BulkInserter, BulkUpserter, BulkDeleter built on one BulkOperator engine
- Debug mode that renders the SQL instead of executing it
- Uniform wrapper over sqlite3, MySQL and PostgreSQL drivers
- YAML-based configuration of connections and operators, with password encryption

Basic usage::

    import dbbulk

    db = dbbulk.sqlite('warehouse.db')
    inserter = dbbulk.BulkInserter(db, 'users', ['id', 'name'], batch_size=500)
    for user in users:
        inserter.queue(user)
    inserter.flush()
    db.commit()

From YAML config::

    with dbbulk.bulk_operator('orders_upsert') as upserter:
        upserter.queue_many(orders)
"""

__version__ = '0.3.0'

from .database import Database, sqlite, mysql, postgres
from .config import connect, set_config_file, bulk_operator
from .bulk import BulkOperator, BulkInserter, BulkUpserter, BulkDeleter
from .errors import (BulkError, InvalidConfiguration, MissingField, PendingBatchError,
                     StatementError, ExecutionError)
from .logging_utils import setup_logging, errors_logged

__all__ = [
    'connect',
    'set_config_file',
    'bulk_operator',
    'Database',
    'sqlite',
    'mysql',
    'postgres',
    'BulkOperator',
    'BulkInserter',
    'BulkUpserter',
    'BulkDeleter',
    'BulkError',
    'InvalidConfiguration',
    'MissingField',
    'PendingBatchError',
    'StatementError',
    'ExecutionError',
    'setup_logging',
    'errors_logged',
]
