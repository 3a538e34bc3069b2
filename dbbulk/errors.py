# dbbulk/errors.py
"""
Exceptions raised by dbbulk.

InvalidConfiguration and MissingField also subclass the builtin exception a
caller would naturally catch (ValueError, KeyError).
"""


class BulkError(Exception):
    """Base exception for dbbulk errors."""


class InvalidConfiguration(BulkError, ValueError):
    """Operator configuration is unusable (batch size, fields, identifiers)."""


class MissingField(BulkError, KeyError):
    """A queued record lacks one of the configured fields."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f'The value for the field "{field}" is missing.')

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class PendingBatchError(BulkError):
    """A failed full batch is still pending; flush() or reset() first."""


class StatementError(BulkError):
    """The driver could not prepare a statement."""


class ExecutionError(BulkError):
    """The driver failed to execute a prepared statement."""
