# dbbulk/bulk/sinks.py
"""
Where a completed batch goes.

The operator picks one sink at construction: ExecuteSink sends batches to the
database, DebugSink only renders them so the SQL can be reviewed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from .render import render_query

logger = logging.getLogger(__name__)


class Sink(ABC):
    """
    Receives each batch as SQL text plus flattened values.

    ``queries`` holds the rendered SQL of each batch; it stays empty for
    sinks that execute.
    """

    def __init__(self, connection):
        self.connection = connection
        self.queries: List[str] = []

    @abstractmethod
    def write(self, sql: str, values: Sequence[Any], statement=None) -> int:
        """
        Handle one batch.

        Args:
            sql: Statement with ``?`` placeholders
            values: Values flattened record-major, field-minor
            statement: Already prepared statement for sql, if there is one

        Returns:
            Number of affected rows
        """

    def reset(self) -> None:
        """Forget anything recorded so far."""
        self.queries = []


class ExecuteSink(Sink):
    """Executes batches through the driver adapter."""

    def write(self, sql: str, values: Sequence[Any], statement=None) -> int:
        if statement is None:
            statement = self.connection.prepare(sql)
            try:
                return statement.execute(values)
            finally:
                statement.close()
        return statement.execute(values)


class DebugSink(Sink):
    """Renders batches into a query log instead of touching the database."""

    def write(self, sql: str, values: Sequence[Any], statement=None) -> int:
        query = render_query(sql, values, self.connection.quote)
        self.queries.append(query)
        logger.debug(f"Debug mode, query not executed:\n{query}")
        return 0


def make_sink(connection, debug: Optional[bool] = False) -> Sink:
    """Pick the sink for the debug flag."""
    return DebugSink(connection) if debug else ExecuteSink(connection)
