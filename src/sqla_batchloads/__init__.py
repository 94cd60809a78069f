"""Batched relation loading for parameterized PostgreSQL queries.

sqla_batchloads composes ``SELECT`` queries with SQLAlchemy Core and loads
declared relations without N+1 queries.  Define models with their relations
once at startup, build a query with ``ModelQuery(model).include(...)`` and
``fetch()`` it with any async executor -- every included relation costs one
query, however many parent rows came back.
"""

from ._version import __version__, __version_tuple__
from .batch import BatchLoadConfig, build_batch_config, get_batch_key
from .datastructures import group_by_key
from .errors import InvalidColumnError, QueryComposerError, RelationNotFoundError
from .executors import QueryExecutor, connection_executor
from .include import IncludeQuery, ModelQuery, TrackedInclude, create_model_query
from .loader import (
    RelationLoader,
    create_relation_loaders,
    load_includes,
    load_relation,
    pick,
)
from .query import ParameterizedQuery, QueryComposer, compile_query
from .registry import (
    ModelDefinition,
    ModelRegistry,
    clear_models,
    define_model,
    get_all_models,
    get_model,
    get_registry,
    get_relation,
    get_relation_names,
    has_relation,
)
from .relations import (
    BelongsTo,
    Cardinality,
    HasMany,
    HasManyThrough,
    HasOne,
    RelationConfig,
    RelationType,
    belongs_to,
    has_many,
    has_many_through,
    has_one,
)


__all__ = (
    "BatchLoadConfig",
    "BelongsTo",
    "Cardinality",
    "HasMany",
    "HasManyThrough",
    "HasOne",
    "IncludeQuery",
    "InvalidColumnError",
    "ModelDefinition",
    "ModelQuery",
    "ModelRegistry",
    "ParameterizedQuery",
    "QueryComposer",
    "QueryComposerError",
    "QueryExecutor",
    "RelationConfig",
    "RelationLoader",
    "RelationNotFoundError",
    "RelationType",
    "TrackedInclude",
    "__version__",
    "__version_tuple__",
    "belongs_to",
    "build_batch_config",
    "clear_models",
    "compile_query",
    "connection_executor",
    "create_model_query",
    "create_relation_loaders",
    "define_model",
    "get_all_models",
    "get_batch_key",
    "get_model",
    "get_registry",
    "get_relation",
    "get_relation_names",
    "group_by_key",
    "has_many",
    "has_many_through",
    "has_one",
    "has_relation",
    "load_includes",
    "load_relation",
    "pick",
)
