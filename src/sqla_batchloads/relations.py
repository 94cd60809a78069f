from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Final, Union


DEFAULT_PRIMARY_KEY: Final[str] = "id"


class RelationType(str, enum.Enum):
    BELONGS_TO = "belongsTo"
    HAS_ONE = "hasOne"
    HAS_MANY = "hasMany"
    HAS_MANY_THROUGH = "hasManyThrough"


class Cardinality(str, enum.Enum):
    """How many related rows a single parent key resolves to."""

    SINGLE = "single"
    MULTIPLE = "multiple"


@dataclass(frozen=True, slots=True)
class BelongsTo:
    """N:1 -- this table holds ``foreign_key`` pointing at ``target.primary_key``.

    Example::

        # posts.author_id -> users.id
        author = BelongsTo(target="users", foreign_key="author_id")
    """

    target: str
    foreign_key: str
    primary_key: str = DEFAULT_PRIMARY_KEY

    @property
    def type(self) -> RelationType:
        return RelationType.BELONGS_TO

    @property
    def cardinality(self) -> Cardinality:
        return Cardinality.SINGLE

    @property
    def parent_key(self) -> str:
        """Column read from parent rows to produce the batch key."""
        return self.foreign_key


@dataclass(frozen=True, slots=True)
class HasOne:
    """1:1 -- ``target.foreign_key`` points back at this table's ``primary_key``.

    Example::

        # profiles.user_id -> users.id
        profile = HasOne(target="profiles", foreign_key="user_id")
    """

    target: str
    foreign_key: str
    primary_key: str = DEFAULT_PRIMARY_KEY

    @property
    def type(self) -> RelationType:
        return RelationType.HAS_ONE

    @property
    def cardinality(self) -> Cardinality:
        return Cardinality.SINGLE

    @property
    def parent_key(self) -> str:
        return self.primary_key


@dataclass(frozen=True, slots=True)
class HasMany:
    """1:N -- any number of ``target`` rows reference this table.

    Example::

        # posts.league_id -> leagues.id
        posts = HasMany(target="posts", foreign_key="league_id")
    """

    target: str
    foreign_key: str
    primary_key: str = DEFAULT_PRIMARY_KEY

    @property
    def type(self) -> RelationType:
        return RelationType.HAS_MANY

    @property
    def cardinality(self) -> Cardinality:
        return Cardinality.MULTIPLE

    @property
    def parent_key(self) -> str:
        return self.primary_key


@dataclass(frozen=True, slots=True)
class HasManyThrough:
    """N:M through a junction table.

    ``foreign_key`` and ``through_foreign_key`` both live on ``through``;
    the first points at this table, the second at ``target``.

    Example::

        # leagues.id <- league_teams.league_id
        # league_teams.team_id -> teams.id
        teams = HasManyThrough(
            target="teams",
            through="league_teams",
            foreign_key="league_id",
            through_foreign_key="team_id",
        )
    """

    target: str
    through: str
    foreign_key: str
    through_foreign_key: str
    primary_key: str = DEFAULT_PRIMARY_KEY
    through_primary_key: str = DEFAULT_PRIMARY_KEY

    @property
    def type(self) -> RelationType:
        return RelationType.HAS_MANY_THROUGH

    @property
    def cardinality(self) -> Cardinality:
        return Cardinality.MULTIPLE

    @property
    def parent_key(self) -> str:
        return self.primary_key


RelationConfig = Union[BelongsTo, HasOne, HasMany, HasManyThrough]
RELATION_CLASSES: Final[tuple[type, ...]] = (BelongsTo, HasOne, HasMany, HasManyThrough)


def is_relation(value: object) -> bool:
    return isinstance(value, RELATION_CLASSES)


def belongs_to(target: str, foreign_key: str, primary_key: str = DEFAULT_PRIMARY_KEY) -> BelongsTo:
    return BelongsTo(target=target, foreign_key=foreign_key, primary_key=primary_key)


def has_one(target: str, foreign_key: str, primary_key: str = DEFAULT_PRIMARY_KEY) -> HasOne:
    return HasOne(target=target, foreign_key=foreign_key, primary_key=primary_key)


def has_many(target: str, foreign_key: str, primary_key: str = DEFAULT_PRIMARY_KEY) -> HasMany:
    return HasMany(target=target, foreign_key=foreign_key, primary_key=primary_key)


def has_many_through(
    target: str,
    through: str,
    foreign_key: str,
    through_foreign_key: str,
    primary_key: str = DEFAULT_PRIMARY_KEY,
    through_primary_key: str = DEFAULT_PRIMARY_KEY,
) -> HasManyThrough:
    return HasManyThrough(
        target=target,
        through=through,
        foreign_key=foreign_key,
        through_foreign_key=through_foreign_key,
        primary_key=primary_key,
        through_primary_key=through_primary_key,
    )
