from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


if sys.version_info >= (3, 11):
    from typing import TypedDict, Unpack
else:
    from typing_extensions import TypedDict, Unpack

from .batch import BatchLoadConfig, build_batch_config
from .datastructures import Row, group_by_key
from .executors import QueryExecutor
from .include import IncludeFilter, TrackedInclude, merge_includes
from .registry import ModelDefinition, ModelRegistry, get_registry
from .relations import Cardinality


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _LoaderOptions:
    registry: ModelRegistry = field(default_factory=get_registry)
    filter: IncludeFilter | None = field(default=None)
    includes: tuple[TrackedInclude, ...] = field(default=())
    cache: bool = field(default=True)
    cache_key_fn: Callable[[Any], Hashable] = field(default=str)


class _LoaderOptionsType(TypedDict, total=False):
    registry: ModelRegistry
    filter: IncludeFilter | None
    includes: tuple[TrackedInclude, ...]
    cache: bool
    cache_key_fn: Callable[[Any], Hashable]


@dataclass(slots=True)
class _PendingBatch:
    """Keys collected during one event loop turn, in request order."""

    entries: list[tuple[Any, asyncio.Future[Any]]] = field(default_factory=list)


def pick(bucket: Sequence[Row] | None, cardinality: Cardinality) -> Any:
    """Turn a group bucket into the value handed to one caller.

    Single cardinality takes the first row in executor order, or ``None``;
    multiple cardinality takes the whole bucket, or an empty list.
    """
    if cardinality is Cardinality.SINGLE:
        return bucket[0] if bucket else None

    return list(bucket) if bucket else []


class RelationLoader:
    """Coalesces ``load(key)`` calls for one relation into batched queries.

    Every ``load()`` issued before the event loop gets back control lands in
    the same batch.  The first ``load()`` of a batch schedules a flush with
    ``loop.call_soon``, so batching adds no timer latency.  On flush the
    buffered keys are deduplicated, one query is built for the unique keys and
    the executor runs exactly once; each buffered caller is then resolved with
    its own slice of the rows, in request order.

    Resolved keys are memoized per instance (keyed by ``cache_key_fn(key)``,
    ``str`` by default), so loading the same key again never reaches the
    executor.  A failed batch rejects all of its callers with the executor's
    exception and drops their cache entries; nothing is retried.

    Loaders are cheap and meant to live for one unit of work (a request, a
    ``fetch()``); the cache is never invalidated.

    Example::

        posts = RelationLoader(League, "posts", executor)
        l1_posts, l2_posts = await asyncio.gather(posts.load("L1"), posts.load("L2"))
    """

    __slots__ = (
        "_batch",
        "_cache",
        "_tasks",
        "config",
        "executor",
        "model",
        "options",
        "relation",
    )

    def __init__(
        self,
        model: ModelDefinition,
        relation: str,
        executor: QueryExecutor,
        **options: Unpack[_LoaderOptionsType],
    ) -> None:
        self.model = model
        self.relation = relation
        self.config = model.relation(relation)
        self.executor = executor
        self.options = _LoaderOptions(**options)
        self._batch: _PendingBatch | None = None
        self._cache: dict[Hashable, asyncio.Future[Any]] = {}
        self._tasks: dict[asyncio.Task[None], _PendingBatch] = {}

    @property
    def cardinality(self) -> Cardinality:
        return self.config.cardinality

    def load(self, key: Any) -> asyncio.Future[Any]:
        """Request the related rows for *key*.

        Must be called while an event loop is running.  The key is buffered
        immediately; the returned future resolves once its batch completes.
        Cancelling the returned future only detaches this caller.
        """
        loop = asyncio.get_running_loop()
        cache_key = self.options.cache_key_fn(key)

        shared = self._cache.get(cache_key) if self.options.cache else None
        if shared is None or shared.cancelled():
            shared = loop.create_future()
            if self._batch is None:
                self._batch = _PendingBatch()
                loop.call_soon(self._flush, self._batch)

            self._batch.entries.append((key, shared))
            if self.options.cache:
                self._cache[cache_key] = shared

        # one future per caller; cancelling it never reaches `shared`
        return asyncio.shield(shared)

    def load_many(self, keys: Iterable[Any]) -> asyncio.Future[list[Any]]:
        """Request several keys at once; results follow the order of *keys*."""
        return asyncio.gather(*[self.load(key) for key in keys])

    def cancel(self) -> None:
        """Abort the pending batch and every batch in flight.

        Their callers are cancelled and their keys leave the cache.
        """
        pending = [self._batch] if self._batch is not None else []
        self._batch = None
        for task, batch in list(self._tasks.items()):
            task.cancel()
            pending.append(batch)

        for batch in pending:
            for _, future in batch.entries:
                future.cancel()
            self._evict(batch)

    def _flush(self, batch: _PendingBatch) -> None:
        if self._batch is batch:
            self._batch = None

        if all(future.done() for _, future in batch.entries):
            return

        task = asyncio.get_running_loop().create_task(self._dispatch(batch))
        self._tasks[task] = batch
        task.add_done_callback(self._discard_task)

    def _discard_task(self, task: asyncio.Task[None]) -> None:
        self._tasks.pop(task, None)

    def _unique_keys(self, batch: _PendingBatch) -> list[Any]:
        seen: dict[Hashable, Any] = {}
        for key, _ in batch.entries:
            seen.setdefault(self.options.cache_key_fn(key), key)

        return list(seen.values())

    async def _dispatch(self, batch: _PendingBatch) -> None:
        keys = self._unique_keys(batch)
        logger.debug(
            "Loading %s.%s for %d key(s) (%d requested)",
            self.model.name,
            self.relation,
            len(keys),
            len(batch.entries),
        )

        try:
            config = build_batch_config(
                self.model,
                self.config,
                keys,
                filter=self.options.filter,
                registry=self.options.registry,
            )
            rows = await self._fetch(config)
        except asyncio.CancelledError:
            for _, future in batch.entries:
                future.cancel()
            self._evict(batch)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.debug("Batch for %s.%s failed: %r", self.model.name, self.relation, exc)
            for _, future in batch.entries:
                if not future.done():
                    future.set_exception(exc)
            self._evict(batch)
            return

        self._resolve(batch, config, rows)

    async def _fetch(self, config: BatchLoadConfig) -> Sequence[Row]:
        rows = await self.executor(config.query)
        includes = merge_includes(self.options.includes, config.includes)
        if includes and rows:
            rows = await load_includes(
                rows, config.target, includes, self.executor, registry=self.options.registry
            )

        return rows

    def _resolve(self, batch: _PendingBatch, config: BatchLoadConfig, rows: Sequence[Row]) -> None:
        key_fn = self.options.cache_key_fn
        grouped = group_by_key(rows, config.batch_key, key_fn)
        logger.debug(
            "Loaded %d row(s) for %s.%s into %d group(s)",
            len(rows),
            self.model.name,
            self.relation,
            len(grouped),
        )

        for key, future in batch.entries:
            if future.done():
                continue

            bucket = grouped.get(key_fn(key))
            if config.cardinality is Cardinality.SINGLE and bucket and len(bucket) > 1:
                logger.debug(
                    "%s.%s matched %d rows for key %r, using the first",
                    self.model.name,
                    self.relation,
                    len(bucket),
                    key,
                )

            future.set_result(pick(bucket, config.cardinality))

    def _evict(self, batch: _PendingBatch) -> None:
        for key, future in batch.entries:
            cache_key = self.options.cache_key_fn(key)
            if self._cache.get(cache_key) is future:
                del self._cache[cache_key]


def create_relation_loaders(
    model: ModelDefinition,
    executor: QueryExecutor,
    **options: Unpack[_LoaderOptionsType],
) -> dict[str, RelationLoader]:
    """Create one ``RelationLoader`` per relation declared on *model*."""
    return {
        relation: RelationLoader(model, relation, executor, **options)
        for relation in model.relations
    }


async def _load_include(
    rows: Sequence[Mapping[str, Any]],
    model: ModelDefinition,
    include: TrackedInclude,
    executor: QueryExecutor,
    registry: ModelRegistry,
) -> list[Any]:
    loader = RelationLoader(
        model,
        include.relation,
        executor,
        registry=registry,
        filter=include.filter,
        includes=include.nested,
    )
    parent_key = include.config.parent_key
    futures = [
        loader.load(row[parent_key]) if row.get(parent_key) is not None else None
        for row in rows
    ]
    try:
        results = await asyncio.gather(*(f for f in futures if f is not None))
    except asyncio.CancelledError:
        loader.cancel()
        raise

    loaded = iter(results)

    return [
        next(loaded) if future is not None else pick(None, loader.cardinality)
        for future in futures
    ]


async def load_includes(
    rows: Iterable[Mapping[str, Any]],
    model: ModelDefinition,
    includes: Sequence[TrackedInclude],
    executor: QueryExecutor,
    *,
    registry: ModelRegistry | None = None,
) -> list[dict[str, Any]]:
    """Attach every include in *includes* to copies of *rows*.

    Each include gets its own loader, so all parents share one query per
    relation.  Relations are loaded concurrently; if any of them fails the
    others are cancelled and the exception propagates, so no rows are
    returned.  Parents whose key column is ``NULL`` get ``None`` / ``[]``
    without being queried.
    """
    registry = registry or get_registry()
    result = [dict(row) for row in rows]
    if not includes or not result:
        return result

    tasks = [
        asyncio.ensure_future(_load_include(result, model, include, executor, registry))
        for include in includes
    ]
    try:
        loaded = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    for include, values in zip(includes, loaded):
        for row, value in zip(result, values):
            row[include.relation] = value

    return result


async def load_relation(
    rows: Iterable[Mapping[str, Any]],
    model: ModelDefinition,
    relation: str,
    executor: QueryExecutor,
    *,
    registry: ModelRegistry | None = None,
    filter: IncludeFilter | None = None,
) -> list[dict[str, Any]]:
    """Load a single *relation* onto already fetched *rows*.

    Raises:
        RelationNotFoundError: If *relation* is not declared on *model*.
    """
    include = TrackedInclude(relation=relation, config=model.relation(relation), filter=filter)

    return await load_includes(rows, model, (include,), executor, registry=registry)
