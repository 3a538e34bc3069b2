# dbbulk/bulk/render.py
"""Substitute bound values into ``?`` placeholders for human readable SQL."""

import re
from typing import Any, Callable, Sequence

_PLACEHOLDER_RE = re.compile(r'\?')


def render_query(sql: str, values: Sequence[Any], quote: Callable[[Any], str]) -> str:
    """
    Render sql with each placeholder replaced by ``quote(value)``, in order.

    Args:
        sql: Statement built with ``?`` placeholders
        values: Flat list of values, one per placeholder
        quote: Function producing a SQL literal, usually ``Database.quote``

    Raises:
        ValueError: If the number of placeholders and values differ
    """
    expected = sql.count('?')
    if expected != len(values):
        raise ValueError(f"Query has {expected} placeholders but {len(values)} values were given")

    literals = iter([quote(value) for value in values])
    # a callable replacement keeps backslashes in literals intact
    return _PLACEHOLDER_RE.sub(lambda m: next(literals), sql)
