"""Immutable, chainable query builder.

Every chained call returns a new builder with one more recorded operation;
nothing touches the data until the builder is awaited (or ``execute()`` is
awaited), at which point the owning database runs the whole plan against a
fresh snapshot of the table.
"""

from collections.abc import Generator, Iterable, Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

from job_tracker.database.filters import ColumnFilter, Filter, OrFilter, Order
from job_tracker.schema import QueryResult, Session

if TYPE_CHECKING:
    from job_tracker.database.store import MockDatabase

Action: TypeAlias = Literal["select", "insert", "update", "delete"]
Cardinality: TypeAlias = Literal["many", "single", "maybe_single"]


@dataclass(frozen=True)
class QueryBuilder:
    database: "MockDatabase"
    table: str
    session: Session | None = None
    action: Action = "select"
    payload: Any = None
    columns: str = "*"
    filters: tuple[Filter, ...] = ()
    orders: tuple[Order, ...] = ()
    offset: int = 0
    row_limit: int | None = None
    cardinality: Cardinality = "many"

    # ── Actions ────────────────────────────────────────────────────────────────

    def select(self, columns: str = "*") -> "QueryBuilder":
        """Choose returned columns; on a fresh builder this is a read."""
        return replace(self, columns=columns)

    def insert(self, records: Mapping[str, Any] | Iterable[Mapping[str, Any]]) -> "QueryBuilder":
        if isinstance(records, Mapping):
            payload: Any = dict(records)
        else:
            payload = [dict(r) if isinstance(r, Mapping) else r for r in records]
        return replace(self, action="insert", payload=payload)

    def update(self, changes: Mapping[str, Any]) -> "QueryBuilder":
        return replace(self, action="update", payload=dict(changes))

    def delete(self) -> "QueryBuilder":
        return replace(self, action="delete")

    # ── Filters ────────────────────────────────────────────────────────────────

    def _filter(self, f: Filter) -> "QueryBuilder":
        return replace(self, filters=(*self.filters, f))

    def eq(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "eq", value))

    def neq(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "neq", value))

    def gt(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "gt", value))

    def gte(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "gte", value))

    def lt(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "lt", value))

    def lte(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "lte", value))

    def like(self, column: str, pattern: str) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "like", pattern))

    def ilike(self, column: str, pattern: str) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "ilike", pattern))

    def is_(self, column: str, value: bool | None) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "is", value))

    def in_(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        return self._filter(ColumnFilter(column, "in", list(values)))

    def not_(self, column: str, op: str, value: Any) -> "QueryBuilder":
        """Negated filter, e.g. ``not_("status", "in", ["rejected", "ghosted"])``."""
        return self._filter(ColumnFilter(column, op, value, negate=True))

    def or_(self, expression: str) -> "QueryBuilder":
        """PostgREST-style disjunction, e.g. ``"status.eq.applied,job_title.ilike.%python%"``."""
        return self._filter(OrFilter(expression))

    # ── Shaping ────────────────────────────────────────────────────────────────

    def order(self, column: str, *, desc: bool = False, nulls_first: bool = False) -> "QueryBuilder":
        return replace(self, orders=(*self.orders, Order(column, desc, nulls_first)))

    def range(self, start: int, end: int) -> "QueryBuilder":
        """Inclusive on both ends, like SQL OFFSET/LIMIT pagination in PostgREST."""
        return replace(self, offset=max(start, 0), row_limit=max(end - start + 1, 0))

    def limit(self, count: int) -> "QueryBuilder":
        return replace(self, row_limit=max(count, 0))

    def single(self) -> "QueryBuilder":
        return replace(self, cardinality="single")

    def maybe_single(self) -> "QueryBuilder":
        return replace(self, cardinality="maybe_single")

    # ── Resolution ─────────────────────────────────────────────────────────────

    async def execute(self) -> QueryResult:
        return await self.database.execute(self)

    def __await__(self) -> Generator[Any, None, QueryResult]:
        return self.execute().__await__()
