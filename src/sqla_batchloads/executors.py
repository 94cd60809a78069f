from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .query import ParameterizedQuery


class QueryExecutor(Protocol):
    """The single I/O boundary: run a parameterized query, return its rows.

    Failures must surface as exceptions from the awaited call.
    """

    async def __call__(self, query: ParameterizedQuery) -> Sequence[Mapping[str, Any]]: ...


class FetchConnection(Protocol):
    async def fetch(self, query: str, *args: Any) -> Sequence[Any]: ...


def connection_executor(connection: FetchConnection) -> QueryExecutor:
    """Adapt a driver connection with ``fetch(text, *values)`` (e.g. asyncpg).

    Records are converted to plain dicts so rows can be copied and extended
    with loaded relations.

    Example::

        conn = await asyncpg.connect(dsn)
        leagues = await ModelQuery(League).include("posts").fetch(connection_executor(conn))
    """

    async def _execute(query: ParameterizedQuery) -> Sequence[Mapping[str, Any]]:
        records = await connection.fetch(query.text, *query.values)
        return [dict(record) for record in records]

    return _execute
