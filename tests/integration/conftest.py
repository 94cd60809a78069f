from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from typing import Any, Final

import pytest
import sqlalchemy as sa
from sqlalchemy.schema import CreateTable

from sqla_batchloads import QueryExecutor, connection_executor
from sqla_batchloads.query import DIALECT

from ..models import COMMENTS, COUNTRIES, LEAGUES, POSTS, TEAMS_WITH_LEAGUE, USERS


metadata: Final[sa.MetaData] = sa.MetaData()

TABLES: Final[tuple[sa.Table, ...]] = (
    sa.Table(
        "countries",
        metadata,
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
    ),
    sa.Table(
        "leagues",
        metadata,
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("country_id", sa.Text, sa.ForeignKey("countries.id")),
        sa.Column("status", sa.Text, nullable=False),
    ),
    sa.Table(
        "users",
        metadata,
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
    ),
    sa.Table(
        "posts",
        metadata,
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("league_id", sa.Text, sa.ForeignKey("leagues.id")),
        sa.Column("author_id", sa.Text, sa.ForeignKey("users.id")),
        sa.Column("status", sa.Text, nullable=False),
    ),
    sa.Table(
        "comments",
        metadata,
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("post_id", sa.Text, sa.ForeignKey("posts.id")),
        sa.Column("author_id", sa.Text, sa.ForeignKey("users.id")),
        sa.Column("text", sa.Text, nullable=False),
    ),
    sa.Table(
        "teams",
        metadata,
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
    ),
    sa.Table(
        "league_teams",
        metadata,
        sa.Column("league_id", sa.Text, sa.ForeignKey("leagues.id"), primary_key=True),
        sa.Column("team_id", sa.Text, sa.ForeignKey("teams.id"), primary_key=True),
    ),
)


def _seed() -> dict[str, list[dict[str, Any]]]:
    teams = {row["id"]: {"id": row["id"], "name": row["name"]} for row in TEAMS_WITH_LEAGUE}
    return {
        "countries": COUNTRIES,
        "leagues": LEAGUES,
        "users": USERS,
        "posts": POSTS,
        "comments": COMMENTS,
        "teams": list(teams.values()),
        "league_teams": [
            {"league_id": row["league_id"], "team_id": row["id"]} for row in TEAMS_WITH_LEAGUE
        ],
    }


def _literal(statement: sa.Executable) -> str:
    return str(statement.compile(dialect=DIALECT, compile_kwargs={"literal_binds": True}))


@pytest.fixture(scope="session")
def postgres_dsn() -> Iterator[str]:
    from testcontainers.postgres import PostgresContainer

    pg = PostgresContainer(image="postgres:latest")
    if os.name == "nt":
        pg.get_container_host_ip = lambda: "127.0.0.1"
    with pg:
        host = pg.get_container_host_ip()
        yield (
            f"postgresql://{pg.username}:{pg.password}"
            f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
        )


@pytest.fixture
async def pg_connection(postgres_dsn: str) -> AsyncIterator[Any]:
    import asyncpg

    conn = await asyncpg.connect(postgres_dsn)
    trans = conn.transaction()
    await trans.start()
    try:
        seed = _seed()
        for table in TABLES:
            await conn.execute(str(CreateTable(table).compile(dialect=DIALECT)))
            await conn.execute(_literal(sa.insert(table).values(seed[table.name])))
        yield conn
    finally:
        await trans.rollback()
        await conn.close()


@pytest.fixture
def pg_executor(pg_connection: Any) -> QueryExecutor:
    return connection_executor(pg_connection)
