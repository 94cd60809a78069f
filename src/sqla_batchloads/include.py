from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, NamedTuple, Optional


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

from .query import ParameterizedQuery, QueryComposer
from .registry import ModelDefinition, ModelRegistry, get_registry
from .relations import RelationConfig, RelationType


if TYPE_CHECKING:
    from .executors import QueryExecutor

logger = logging.getLogger(__name__)

IncludeFilter = Callable[["ModelQuery"], Optional[QueryComposer]]


@dataclass(frozen=True, slots=True)
class TrackedInclude:
    """One pending relation fetch recorded by ``ModelQuery.include``.

    ``filter`` is kept unevaluated until the batch query for the relation is
    built.  ``nested`` holds includes that should be loaded onto the related
    rows themselves (from dotted paths such as ``"posts.comments"``).
    """

    relation: str
    config: RelationConfig
    filter: IncludeFilter | None = None
    nested: tuple[TrackedInclude, ...] = ()


class IncludeQuery(NamedTuple):
    relation: str
    type: RelationType
    query: ParameterizedQuery
    foreign_key: str
    primary_key: str


def apply_filter(query: ModelQuery, filter: IncludeFilter | None) -> QueryComposer:
    """Run *filter* against *query*; callbacks may mutate in place and return ``None``."""
    if filter is None:
        return query

    result = filter(query)
    return query if result is None else result


def _merge_include(includes: list[TrackedInclude], include: TrackedInclude) -> None:
    for idx, existing in enumerate(includes):
        if existing.relation != include.relation:
            continue

        nested = list(existing.nested)
        for child in include.nested:
            _merge_include(nested, child)

        includes[idx] = replace(
            existing,
            filter=existing.filter if include.filter is None else include.filter,
            nested=tuple(nested),
        )
        return

    includes.append(include)


def merge_includes(*groups: Iterable[TrackedInclude]) -> list[TrackedInclude]:
    """Combine include lists, merging entries that name the same relation."""
    merged: list[TrackedInclude] = []
    for group in groups:
        for include in group:
            _merge_include(merged, include)

    return merged


class ModelQuery(QueryComposer):
    """A ``QueryComposer`` bound to a model that can eager-load relations.

    ``include()`` only records what to load; nothing runs until ``fetch()``,
    which executes the base query and then issues one batched query per
    included relation, whatever the number of parent rows.

    Example::

        league_query = (
            ModelQuery(League)
            .where(status="active")
            .include("posts", lambda q: q.where(status="published").include("comments"))
            .include("country")
        )
        leagues = await league_query.fetch(executor)
    """

    __slots__ = ("_includes", "model", "registry")

    def __init__(self, model: ModelDefinition, registry: ModelRegistry | None = None) -> None:
        super().__init__(model.table)
        self.model = model
        self.registry = registry or get_registry()
        self._includes: list[TrackedInclude] = []

    def include(self, relation: str, filter: IncludeFilter | None = None) -> Self:
        """Record *relation* for eager loading.

        Including a relation again merges into the existing entry: nested
        includes are combined and a new *filter* replaces the previous one.

        Args:
            relation: Relation name on this model, or a dotted path
                (``"posts.comments"``) walking through target models.
            filter: Optional callback receiving a fresh ``ModelQuery`` scoped
                to the relation's target table.  For dotted paths it applies
                to the last segment.  It is evaluated once per batch, not here.

        Returns:
            ``self`` for chaining.

        Raises:
            RelationNotFoundError: Immediately, if any segment of *relation*
                is not declared on its model.
        """
        head, _, rest = relation.partition(".")
        config = self.model.relation(head)
        nested = tuple(self.scoped(config).include(rest, filter).get_includes()) if rest else ()

        _merge_include(
            self._includes,
            TrackedInclude(
                relation=head, config=config, filter=None if rest else filter, nested=nested
            ),
        )
        return self

    def get_includes(self) -> list[TrackedInclude]:
        """Return a copy of the tracked includes."""
        return list(self._includes)

    def get_model(self) -> ModelDefinition:
        return self.model

    def scoped(self, config: RelationConfig) -> ModelQuery:
        """Return a fresh query against *config*'s target table."""
        return ModelQuery(self.registry.model_for_table(config.target), self.registry)

    def include_queries(self) -> list[IncludeQuery]:
        """Preview the unbatched query of every include (filters are applied)."""
        return [
            IncludeQuery(
                relation=include.relation,
                type=include.config.type,
                query=apply_filter(self.scoped(include.config), include.filter).to_param(),
                foreign_key=include.config.foreign_key,
                primary_key=include.config.primary_key,
            )
            for include in self._includes
        ]

    async def fetch(self, executor: QueryExecutor) -> list[dict[str, Any]]:
        """Execute the base query and attach every included relation.

        Each included relation is attached under its name: a row (or ``None``)
        for single-cardinality relations, a list for the others.  If any
        query fails the whole fetch fails; no partially populated rows are
        returned.
        """
        from .loader import load_includes

        rows = await executor(self.to_param())
        logger.debug(
            "Fetched %d %s row(s), loading includes %s",
            len(rows),
            self.model.name,
            [include.relation for include in self._includes],
        )

        return await load_includes(
            rows, self.model, self._includes, executor, registry=self.registry
        )

    async def fetch_first(self, executor: QueryExecutor) -> dict[str, Any] | None:
        rows = await self.clone().limit(1).fetch(executor)
        return rows[0] if rows else None

    def clone(self) -> ModelQuery:
        """Copy this query; the include list is copied, its entries are shared."""
        cloned = ModelQuery(self.model, self.registry)
        self._copy_state(cloned)
        cloned._includes = list(self._includes)
        return cloned

    def __repr__(self) -> str:
        includes = [include.relation for include in self._includes]
        return f"<{type(self).__name__} model={self.model.name!r} includes={includes!r}>"


def create_model_query(model: ModelDefinition, registry: ModelRegistry | None = None) -> ModelQuery:
    return ModelQuery(model, registry)
