from __future__ import annotations

import asyncio
import re
from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Final

import pytest

from sqla_batchloads import ModelRegistry, ParameterizedQuery, clear_models

from .models import TABLES, build_registry


_FROM_TABLE: Final[re.Pattern[str]] = re.compile(r"FROM (\w+)")


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="none",
        choices=["none", "postgres"],
        help="Database backend for integration tests",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--db") == "postgres":
        return

    skip = pytest.mark.skip(reason="needs --db postgres")
    for item in items:
        if item.get_closest_marker("postgres"):
            item.add_marker(skip)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


class RecordingExecutor:
    """Fake executor that records every query and answers with canned rows.

    With *tables*, rows are picked by the first ``FROM <table>`` of the query;
    otherwise every call returns *rows*.  Each call yields to the event loop
    for *delay* seconds.  Rows are copied on each call, the way
    a driver hands out fresh records.
    """

    def __init__(
        self,
        rows: Sequence[Mapping[str, Any]] = (),
        *,
        tables: Mapping[str, Sequence[Mapping[str, Any]]] | None = None,
        error: BaseException | None = None,
        delay: float = 0,
    ) -> None:
        self.rows = rows
        self.tables = tables
        self.error = error
        self.delay = delay
        self.queries: list[ParameterizedQuery] = []

    @property
    def calls(self) -> int:
        return len(self.queries)

    def queries_for(self, table: str) -> list[ParameterizedQuery]:
        return [q for q in self.queries if _table_of(q) == table]

    async def __call__(self, query: ParameterizedQuery) -> list[dict[str, Any]]:
        self.queries.append(query)
        await asyncio.sleep(self.delay)

        if self.error is not None:
            raise self.error

        if self.tables is not None:
            return [dict(row) for row in self.tables.get(_table_of(query), ())]

        return [dict(row) for row in self.rows]


def _table_of(query: ParameterizedQuery) -> str:
    match = _FROM_TABLE.search(query.text)
    assert match, query.text
    return match.group(1)


@pytest.fixture
def registry() -> ModelRegistry:
    return build_registry()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor(tables=TABLES)


@pytest.fixture
def clean_default_registry() -> Iterator[None]:
    clear_models()
    yield
    clear_models()
