from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Final, final

from .errors import RelationNotFoundError
from .relations import DEFAULT_PRIMARY_KEY, RelationConfig, is_relation


@dataclass(frozen=True, slots=True)
class ModelDefinition:
    """A named table with its primary key and declared relations.

    ``relations`` is a read-only view over a private copy of the mapping
    passed to ``define``.
    """

    name: str
    table: str
    primary_key: str = DEFAULT_PRIMARY_KEY
    relations: Mapping[str, RelationConfig] = field(
        default_factory=lambda: MappingProxyType({}), hash=False
    )

    def relation(self, name: str) -> RelationConfig:
        """Look up relation *name*, raising ``RelationNotFoundError`` if absent."""
        try:
            return self.relations[name]
        except KeyError:
            raise RelationNotFoundError(name, self.name) from None


@final
class ModelRegistry:
    """Table of model definitions keyed by model name.

    The registry is plain mutable state with no locking; it is meant to be
    populated once at startup and read from a single event loop afterwards.
    Applications that need isolated model sets (tests, multi-tenant setups)
    create their own instance instead of using ``get_registry()``.
    """

    __slots__ = ("_models",)

    def __init__(self) -> None:
        self._models: dict[str, ModelDefinition] = {}

    def define(
        self,
        name: str,
        table: str,
        *,
        primary_key: str = DEFAULT_PRIMARY_KEY,
        relations: Mapping[str, RelationConfig] | None = None,
    ) -> ModelDefinition:
        """Register a model and return the stored definition.

        Re-defining an existing *name* replaces the previous definition.

        Args:
            name: Unique model name.
            table: Table the model reads from.
            primary_key: Primary key column. Defaults to ``"id"``.
            relations: Mapping of relation name to relation config.

        Returns:
            The stored ``ModelDefinition``; ``get(name)`` returns the same object.

        Raises:
            TypeError: If a relation value is not a relation config.

        Example:
            >>> registry = ModelRegistry()
            >>> league = registry.define(
            ...     "League",
            ...     "leagues",
            ...     relations={"posts": has_many("posts", foreign_key="league_id")},
            ... )
        """
        relations = relations or {}
        for relation_name, config in relations.items():
            if not is_relation(config):
                raise TypeError(
                    f"Relation '{relation_name}' on model '{name}' must be a relation config, "
                    f"got {type(config).__name__}"
                )

        model = ModelDefinition(
            name=name,
            table=table,
            primary_key=primary_key,
            relations=MappingProxyType(dict(relations)),
        )
        self._models[name] = model

        return model

    def get(self, name: str) -> ModelDefinition | None:
        return self._models.get(name)

    def __getitem__(self, name: str) -> ModelDefinition:
        """Look up *name*, raising ``KeyError`` if not registered."""
        return self._models[name]

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)

    def get_by_table(self, table: str) -> ModelDefinition | None:
        """Return the most recently defined model reading from *table*."""
        for model in reversed(self._models.values()):
            if model.table == table:
                return model

        return None

    def model_for_table(self, table: str) -> ModelDefinition:
        """Like ``get_by_table`` but falls back to a bare model with no relations."""
        return self.get_by_table(table) or ModelDefinition(name=table, table=table)

    @staticmethod
    def has_relation(model: ModelDefinition, name: str) -> bool:
        return name in model.relations

    @staticmethod
    def get_relation(model: ModelDefinition, name: str) -> RelationConfig | None:
        return model.relations.get(name)

    @staticmethod
    def relation_names(model: ModelDefinition) -> tuple[str, ...]:
        return tuple(model.relations)

    def models(self) -> dict[str, ModelDefinition]:
        """Return a copy of the name-to-definition mapping."""
        return dict(self._models)

    def clear(self) -> None:
        """Forget every model (primarily for tests).

        Definitions handed out earlier remain usable; they are just no
        longer discoverable by name.
        """
        self._models.clear()


_default_registry: Final[ModelRegistry] = ModelRegistry()


def get_registry() -> ModelRegistry:
    """Return the process-wide default registry."""
    return _default_registry


def define_model(
    name: str,
    table: str,
    *,
    primary_key: str = DEFAULT_PRIMARY_KEY,
    relations: Mapping[str, RelationConfig] | None = None,
) -> ModelDefinition:
    """Define a model on the default registry. See ``ModelRegistry.define``."""
    return _default_registry.define(name, table, primary_key=primary_key, relations=relations)


def get_model(name: str) -> ModelDefinition | None:
    return _default_registry.get(name)


def has_relation(model: ModelDefinition, name: str) -> bool:
    return ModelRegistry.has_relation(model, name)


def get_relation(model: ModelDefinition, name: str) -> RelationConfig | None:
    return ModelRegistry.get_relation(model, name)


def get_relation_names(model: ModelDefinition) -> tuple[str, ...]:
    return ModelRegistry.relation_names(model)


def get_all_models() -> dict[str, ModelDefinition]:
    return _default_registry.models()


def clear_models() -> None:
    _default_registry.clear()
