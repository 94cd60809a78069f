"""Basic sqla-batchloads usage examples.

Demonstrates relation loaders, eager includes with filters,
nested includes, and loading relations onto existing rows.

NOTE: This file is illustrative, it won't run standalone
without a Postgres database and seeded data.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import asyncpg

from sqla_batchloads import (
    ModelQuery,
    QueryExecutor,
    RelationLoader,
    connection_executor,
    create_relation_loaders,
    load_relation,
)

from .models import League, Post


# ── 1. Connect once, wrap the connection ─────────────────────────────


async def connect(dsn: str) -> QueryExecutor:
    conn = await asyncpg.connect(dsn)
    return connection_executor(conn)


# ── 2. Relation loaders (one query per event loop turn) ─────────────


async def posts_for_leagues(executor: QueryExecutor) -> list[list[dict[str, Any]]]:
    posts = RelationLoader(League, "posts", executor)

    # both keys end up in: SELECT posts.* FROM posts WHERE posts.league_id IN ($1, $2)
    return await asyncio.gather(posts.load("L1"), posts.load("L2"))


async def authors_for_posts(
    executor: QueryExecutor, post_rows: list[dict[str, Any]]
) -> list[dict[str, Any] | None]:
    loaders = create_relation_loaders(Post, executor)

    return await loaders["author"].load_many(row["author_id"] for row in post_rows)


# ── 3. Includes ──────────────────────────────────────────────────────


async def active_leagues(executor: QueryExecutor) -> list[dict[str, Any]]:
    query = (
        ModelQuery(League)
        .where(status="active")
        .order_by("name")
        .include("posts", lambda q: q.where(status="published").order_by("-id"))
        .include("country")
        .include("teams")
    )
    return await query.fetch(executor)


# ── 4. Nested includes ───────────────────────────────────────────────


async def leagues_with_discussion(executor: QueryExecutor) -> list[dict[str, Any]]:
    # dotted path and filter-recorded include are equivalent
    by_path = ModelQuery(League).include("posts.comments.author")
    by_filter = ModelQuery(League).include(
        "posts", lambda q: q.include("comments", lambda c: c.include("author"))
    )
    assert len(by_path.include_queries()) == len(by_filter.include_queries())

    return await by_path.fetch(executor)


# ── 5. Loading onto rows fetched elsewhere ──────────────────────────


async def attach_authors(
    executor: QueryExecutor, post_rows: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    return await load_relation(post_rows, Post, "author", executor)


async def main(dsn: str) -> None:
    logging.basicConfig(level=logging.DEBUG)
    executor = await connect(dsn)

    for league in await active_leagues(executor):
        print(league["name"], len(league["posts"]), league["country"])

