from __future__ import annotations

import sys
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


if sys.version_info >= (3, 11):
    from typing import assert_never
else:
    from typing_extensions import assert_never

from .include import IncludeFilter, ModelQuery, TrackedInclude, apply_filter
from .query import ParameterizedQuery
from .registry import ModelDefinition, ModelRegistry, get_registry
from .relations import BelongsTo, Cardinality, HasMany, HasManyThrough, HasOne, RelationConfig


@dataclass(frozen=True, slots=True)
class BatchLoadConfig:
    """Everything needed to fetch one relation for a batch of parent keys.

    Attributes:
        query: The single parameterized query for the whole batch.
        batch_key: Column of the returned rows holding the parent key.
        cardinality: ``SINGLE`` resolves each key to a row or ``None``,
            ``MULTIPLE`` to a list.
        target: Model of the related rows, used to load nested includes.
        includes: Includes the filter callback recorded on the sub-query.
    """

    query: ParameterizedQuery
    batch_key: str
    cardinality: Cardinality
    target: ModelDefinition
    includes: tuple[TrackedInclude, ...] = ()


def get_batch_key(relation: RelationConfig) -> str:
    """Column used to group fetched rows back to their parent key."""
    match relation:
        case BelongsTo():
            return relation.primary_key
        case HasOne() | HasMany() | HasManyThrough():
            return relation.foreign_key
        case _:
            assert_never(relation)


def build_batch_config(
    model: ModelDefinition,
    relation: RelationConfig,
    keys: Sequence[Any],
    *,
    filter: IncludeFilter | None = None,
    registry: ModelRegistry | None = None,
) -> BatchLoadConfig:
    """Build the one query that fetches *relation* for every key in *keys*.

    * ``BelongsTo``: ``target WHERE primary_key IN keys``
    * ``HasOne`` / ``HasMany``: ``target WHERE foreign_key IN keys``
    * ``HasManyThrough``: ``target JOIN through ON target.through_primary_key =
      through.through_foreign_key WHERE through.foreign_key IN keys``, also
      selecting ``through.foreign_key`` so rows can be grouped by it.

    *filter* runs once against a fresh ``ModelQuery`` for the target table
    before the key condition is added.

    Args:
        model: Model that owns *relation* (the parent side).
        relation: Relation config to load.
        keys: Parent key values, already deduplicated.
        filter: Optional include filter callback.
        registry: Registry used to scope the sub-query. Defaults to the
            default registry.

    Returns:
        The ``BatchLoadConfig`` for this batch.
    """
    registry = registry or get_registry()
    target = registry.model_for_table(relation.target)
    scoped = ModelQuery(target, registry)
    query = apply_filter(scoped, filter)
    includes = tuple(query.get_includes()) if isinstance(query, ModelQuery) else ()
    keys = list(keys)

    match relation:
        case BelongsTo():
            query.where_in(relation.primary_key, keys)
        case HasOne() | HasMany():
            query.where_in(relation.foreign_key, keys)
        case HasManyThrough():
            through_key = f"{relation.through}.{relation.foreign_key}"
            query.join(
                relation.through,
                query.col(f"{relation.target}.{relation.through_primary_key}")
                == query.col(f"{relation.through}.{relation.through_foreign_key}"),
            )
            query.add_columns(through_key)
            query.where_in(through_key, keys)
        case _:
            assert_never(relation)

    return BatchLoadConfig(
        query=query.to_param(),
        batch_key=get_batch_key(relation),
        cardinality=relation.cardinality,
        target=target,
        includes=includes,
    )
