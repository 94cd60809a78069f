from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping
from typing import Any, Final, NamedTuple


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql.base import PGDialect

from .errors import InvalidColumnError


# PostgreSQL placeholders ($1, $2, ...) as expected by asyncpg-style drivers.
DIALECT: Final[PGDialect] = PGDialect(paramstyle="numeric_dollar")

_SEQUENCE_TYPES: Final[tuple[type, ...]] = (list, tuple, set, frozenset)


class ParameterizedQuery(NamedTuple):
    """SQL text with ``$n`` placeholders and the positional values that fill them."""

    text: str
    values: list[Any]


def compile_query(query: sa.Select[Any]) -> ParameterizedQuery:
    """Compile *query* for PostgreSQL into ``(text, values)``.

    ``IN`` lists are expanded into one placeholder per value, and the
    values list follows placeholder numbering.
    """
    compiled = query.compile(dialect=DIALECT, compile_kwargs={"render_postcompile": True})
    params = compiled.params

    return ParameterizedQuery(
        compiled.string, [params[name] for name in compiled.positiontup or ()]
    )


def split_column(ref: str, default_table: str) -> tuple[str, str]:
    """Split ``"table.column"`` (or bare ``"column"``) into ``(table, column)``."""
    table, sep, column = ref.rpartition(".")
    if not sep:
        table = default_table

    if not column or not table:
        raise InvalidColumnError(ref, "expected 'column' or 'table.column'")

    if "." in table:
        raise InvalidColumnError(ref, "schema-qualified references are not supported")

    return table, column


class QueryComposer:
    """Incremental builder for a parameterized ``SELECT`` against one table.

    Conditions, joins and ordering are recorded as SQLAlchemy Core
    expressions over lightweight ``sa.table`` / ``sa.column`` constructs, so
    no metadata or reflection is needed.  Every table name maps to exactly
    one ``TableClause`` per query, which keeps columns referenced from
    conditions, joins and the select list pointing at the same FROM entry.

    Example::

        qc = (
            QueryComposer("posts")
            .where(status="published")
            .where_in("league_id", ["L1", "L2"])
            .order_by("-created_at")
            .limit(10)
        )
        text, values = qc.to_param()
    """

    __slots__ = (
        "_columns",
        "_conditions",
        "_joins",
        "_limit",
        "_offset",
        "_order_by",
        "_tables",
        "table",
    )

    def __init__(self, table: str) -> None:
        self.table = table
        self._tables: dict[str, sa.TableClause] = {}
        self._columns: list[sa.ColumnElement[Any]] = []
        self._conditions: list[sa.ColumnElement[bool]] = []
        self._joins: list[tuple[str, sa.ColumnElement[bool], bool]] = []
        self._order_by: list[sa.ColumnElement[Any]] = []
        self._limit: int | None = None
        self._offset: int | None = None

    def table_clause(self, name: str | None = None) -> sa.TableClause:
        """Return the ``TableClause`` used for *name* (defaults to the base table)."""
        name = name or self.table
        if (table := self._tables.get(name)) is None:
            table = self._tables[name] = sa.table(name)

        return table

    def col(self, ref: str) -> sa.ColumnClause[Any]:
        """Resolve ``"column"`` or ``"table.column"`` to a bound column.

        Bare names resolve against the base table.
        """
        table_name, column_name = split_column(ref, self.table)
        table = self.table_clause(table_name)
        if column_name not in table.c:
            table.append_column(sa.column(column_name))

        return table.c[column_name]

    def where(self, filters: Mapping[str, Any] | None = None, /, **kw: Any) -> Self:
        """Add equality filters, ANDed together.

        ``None`` compiles to ``IS NULL`` and list/tuple/set values to ``IN``.
        Use the mapping form for dotted ``table.column`` keys.
        """
        for ref, value in {**(filters or {}), **kw}.items():
            column = self.col(ref)
            if value is None:
                self._conditions.append(column.is_(None))
            elif isinstance(value, _SEQUENCE_TYPES):
                self._conditions.append(column.in_(list(value)))
            else:
                self._conditions.append(column == value)

        return self

    def where_in(self, column: str, values: Iterable[Any]) -> Self:
        self._conditions.append(self.col(column).in_(list(values)))
        return self

    def where_not_in(self, column: str, values: Iterable[Any]) -> Self:
        self._conditions.append(self.col(column).not_in(list(values)))
        return self

    def where_clause(self, *clauses: sa.ColumnElement[bool]) -> Self:
        """Add raw SQLAlchemy boolean expressions (build columns with ``col()``)."""
        self._conditions.extend(clauses)
        return self

    def join(self, table: str, on: sa.ColumnElement[bool] | str) -> Self:
        """Inner-join *table*; *on* is an expression or a raw SQL string."""
        self._joins.append((table, _on_clause(on), False))
        return self

    def left_join(self, table: str, on: sa.ColumnElement[bool] | str) -> Self:
        self._joins.append((table, _on_clause(on), True))
        return self

    def select(self, *columns: str) -> Self:
        """Replace the select list (``table.*`` when empty)."""
        self._columns = [self.col(column) for column in columns]
        return self

    def add_columns(self, *columns: str | sa.ColumnElement[Any]) -> Self:
        """Append columns to the select list, keeping the default ``table.*``."""
        if not self._columns:
            self._columns.append(self._star())

        self._columns.extend(
            self.col(column) if isinstance(column, str) else column for column in columns
        )
        return self

    def order_by(self, *fields: str) -> Self:
        """Order by *fields*; a leading ``-`` sorts descending."""
        for field in fields:
            if field.startswith("-"):
                self._order_by.append(self.col(field[1:]).desc())
            else:
                self._order_by.append(self.col(field).asc())

        return self

    def clear_order(self) -> Self:
        self._order_by = []
        return self

    def limit(self, limit: int | None) -> Self:
        self._limit = limit
        return self

    def offset(self, offset: int | None) -> Self:
        self._offset = offset
        return self

    @property
    def conditions(self) -> tuple[sa.ColumnElement[bool], ...]:
        return tuple(self._conditions)

    @property
    def joined_tables(self) -> tuple[str, ...]:
        return tuple(table for table, _, _ in self._joins)

    def to_select(self) -> sa.Select[Any]:
        """Build the ``sa.Select`` for the recorded state."""
        from_: sa.FromClause = self.table_clause()
        for table, on, outer in self._joins:
            from_ = from_.join(self.table_clause(table), on, isouter=outer)

        query = sa.select(*(self._columns or [self._star()])).select_from(from_)
        if self._conditions:
            query = query.where(*self._conditions)
        if self._order_by:
            query = query.order_by(*self._order_by)
        if self._limit is not None:
            query = query.limit(self._limit)
        if self._offset is not None:
            query = query.offset(self._offset)

        return query

    def to_param(self) -> ParameterizedQuery:
        return compile_query(self.to_select())

    def to_sql(self) -> str:
        """Render with values inlined. For logging and debugging only."""
        return str(
            self.to_select().compile(dialect=DIALECT, compile_kwargs={"literal_binds": True})
        )

    def _copy_state(self, other: QueryComposer) -> None:
        other._tables = dict(self._tables)
        other._columns = list(self._columns)
        other._conditions = list(self._conditions)
        other._joins = list(self._joins)
        other._order_by = list(self._order_by)
        other._limit = self._limit
        other._offset = self._offset

    def clone(self) -> QueryComposer:
        """Copy this query; further changes on either side stay independent."""
        cloned = QueryComposer(self.table)
        self._copy_state(cloned)
        return cloned

    def _star(self) -> sa.ColumnElement[Any]:
        return sa.literal_column(f"{self.table}.*")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} table={self.table!r} conditions={len(self._conditions)}>"


def _on_clause(on: sa.ColumnElement[bool] | str) -> sa.ColumnElement[bool]:
    return sa.text(on) if isinstance(on, str) else on  # type: ignore[return-value]
