"""In-memory tables with row-level security, constraints and change events."""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from loguru import logger
from pydantic import ValidationError

from job_tracker.database.filters import Row, SelectClause, parse_select, sort_rows
from job_tracker.database.query import QueryBuilder
from job_tracker.database.tables import TABLES, TableSpec, referencing
from job_tracker.exceptions import DatabaseError
from job_tracker.schema import EventType, QueryError, QueryResult, RlsPolicy, Session
from job_tracker.utils import MonotonicClock, SimulatedLatency

if TYPE_CHECKING:
    from job_tracker.realtime import RealtimeHarness

SCHEMA = "public"
# Columns an update payload may never change.
_IMMUTABLE = frozenset({"id", "created_at", "updated_at"})


def constraint_error(table: str, exc: ValidationError) -> QueryError:
    """Map the first pydantic validation error onto a Postgres-style error code."""
    err = exc.errors()[0]
    column = ".".join(str(part) for part in err["loc"]) or "?"
    if err["type"] == "missing" or err.get("input", ...) is None:
        return QueryError(
            code="23502",
            message=f'null value in column "{column}" of relation "{table}" violates not-null constraint',
        )
    if err["type"] == "enum":
        return QueryError(
            code="22P02",
            message=f'invalid input value for enum {table}.{column}: "{err["input"]}"',
            hint=err["msg"],
        )
    return QueryError(
        code="22P02",
        message=f'invalid input syntax for column "{column}" of relation "{table}"',
        details=err["msg"],
    )


class MockDatabase:
    """One dict per table, keyed by record id.

    Every operation runs synchronously once its simulated latency has elapsed,
    so the maps are never observed half-written. Failures never escape
    ``execute``: they come back as ``QueryResult(error=...)``.
    """

    def __init__(
        self,
        realtime: "RealtimeHarness | None" = None,
        latency: float = 0.0,
        rls_policy: RlsPolicy = RlsPolicy.silent,
        jitter: float = 0.0,
    ):
        self._tables: dict[str, dict[str, Row]] = {name: {} for name in TABLES}
        self.realtime = realtime
        self.latency = SimulatedLatency(latency, jitter=jitter)
        self.rls_policy = rls_policy
        self.clock = MonotonicClock()
        self.network_error = False

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def table(self, name: str, session: Session | None = None) -> QueryBuilder:
        return QueryBuilder(database=self, table=name, session=session)

    async def execute(self, query: QueryBuilder) -> QueryResult:
        await self.latency.wait()
        if self.network_error:
            return QueryResult(error=QueryError(code="FETCH_ERROR", message="Network request failed"))
        try:
            data = self._run(query)
        except DatabaseError as e:
            logger.debug(f"{query.action} on {query.table} failed: {e}")
            return QueryResult(error=e.error)
        return QueryResult(data=data)

    # ------------------------------------------------------------------
    # Fixture access (no RLS, no events)
    # ------------------------------------------------------------------

    def rows(self, name: str) -> list[Row]:
        """Copies of every row in a table, in insertion order."""
        return [dict(r) for r in self._store(self._spec(name)).values()]

    def get(self, name: str, record_id: str) -> Row | None:
        row = self._store(self._spec(name)).get(record_id)
        return dict(row) if row is not None else None

    def put(self, name: str, record: Mapping[str, Any]) -> Row:
        """Validate and write a row directly, keeping any id/timestamps it carries.

        Raises:
            DatabaseError if the record violates the table's constraints
        """
        spec = self._spec(name)
        now = self.clock.now()
        created_at = record.get("created_at") or now
        row = self._validate(spec, {
            **record,
            "id": record.get("id") or str(uuid4()),
            "created_at": created_at,
            "updated_at": record.get("updated_at") or created_at,
        })
        self._store(spec)[row["id"]] = row
        return dict(row)

    def reset(self) -> None:
        for table in self._tables.values():
            table.clear()
        self.network_error = False
        self.latency.reset()

    # ------------------------------------------------------------------
    # Plan execution
    # ------------------------------------------------------------------

    def _spec(self, name: str) -> TableSpec:
        spec = TABLES.get(name)
        if spec is None:
            raise DatabaseError(QueryError(
                code="42P01", message=f'relation "{SCHEMA}.{name}" does not exist'
            ))
        return spec

    def _store(self, spec: TableSpec) -> dict[str, Row]:
        return self._tables[spec.name]

    def _run(self, query: QueryBuilder) -> Any:
        spec = self._spec(query.table)
        session = query.session if query.session is not None and not query.session.is_expired else None
        try:
            clause = parse_select(query.columns)
        except ValueError as e:
            raise DatabaseError(QueryError(
                code="PGRST100", message="failed to parse select parameter", details=str(e)
            )) from e

        match query.action:
            case "select":
                rows = self._matching(spec, query, self._visible(spec, self.rows(spec.name), session))
            case "insert":
                rows = self._insert(spec, query.payload, session)
            case "update":
                rows = self._update(spec, query, session)
            case "delete":
                rows = self._delete(spec, query, session)

        rows = sort_rows(rows, query.orders)
        end = None if query.row_limit is None else query.offset + query.row_limit
        rows = rows[query.offset:end]
        rows = [self._shape(spec, row, clause, session) for row in rows]
        return self._resolve(rows, query)

    @staticmethod
    def _resolve(rows: list[Row], query: QueryBuilder) -> Any:
        if query.cardinality == "many":
            return rows
        if len(rows) > 1:
            raise DatabaseError(QueryError(
                code="PGRST116",
                message="JSON object requested, multiple rows returned",
                details=f"The result contains {len(rows)} rows",
            ))
        if rows:
            return rows[0]
        if query.cardinality == "maybe_single":
            return None
        raise DatabaseError(QueryError(
            code="PGRST116", message="No rows found", details="The result contains 0 rows"
        ))

    def _matching(self, spec: TableSpec, query: QueryBuilder, rows: list[Row]) -> list[Row]:
        for f in query.filters:
            predicate = f.compile()
            if predicate is not None:
                rows = [r for r in rows if predicate(r)]
        return rows

    # ------------------------------------------------------------------
    # Row-level security
    # ------------------------------------------------------------------

    @staticmethod
    def _owns(spec: TableSpec, row: Mapping[str, Any], session: Session | None) -> bool:
        return session is not None and row.get(spec.owner_column) == session.user.id

    def _visible(self, spec: TableSpec, rows: list[Row], session: Session | None) -> list[Row]:
        if spec.owner_column is None:
            return rows
        return [r for r in rows if self._owns(spec, r, session)]

    def _authorize(self, spec: TableSpec, rows: list[Row], session: Session | None, verb: str) -> list[Row]:
        """Keep the rows the session may write; the rest are skipped or rejected per policy."""
        if spec.owner_column is None:
            return rows
        owned = [r for r in rows if self._owns(spec, r, session)]
        denied = len(rows) - len(owned)
        if denied:
            if self.rls_policy is RlsPolicy.strict:
                reason = "not authenticated" if session is None else "rows are owned by another user"
                raise DatabaseError(QueryError(
                    code="42501",
                    message=f'permission denied to {verb} {denied} row(s) of "{spec.name}": {reason}',
                ))
            logger.debug(f"RLS skipped {denied} row(s) on {verb} {spec.name}")
        return owned

    def _check_new_row(self, spec: TableSpec, row: Row, session: Session | None) -> None:
        if spec.owner_column is not None and not self._owns(spec, row, session):
            raise DatabaseError(QueryError(
                code="42501",
                message=f'new row violates row-level security policy for table "{spec.name}"',
            ))

    # ------------------------------------------------------------------
    # Constraints
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(spec: TableSpec, row: Mapping[str, Any]) -> Row:
        try:
            return spec.model.model_validate(dict(row)).model_dump(mode="json")
        except ValidationError as e:
            raise DatabaseError(constraint_error(spec.name, e)) from e

    def _check_foreign_keys(self, spec: TableSpec, row: Row) -> None:
        for fk in spec.foreign_keys:
            value = row.get(fk.column)
            if value is not None and value not in self._tables[fk.target]:
                raise DatabaseError(QueryError(
                    code="23503",
                    message=(
                        f'insert or update on table "{spec.name}" violates foreign key '
                        f'constraint "{spec.name}_{fk.column}_fkey"'
                    ),
                    details=f'Key ({fk.column})=({value}) is not present in table "{fk.target}".',
                ))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _insert(self, spec: TableSpec, payload: Any, session: Session | None) -> list[Row]:
        records = payload if isinstance(payload, list) else [payload]
        table = self._store(spec)
        prepared: list[Row] = []
        for record in records:
            if not isinstance(record, Mapping):
                raise DatabaseError(QueryError(code="PGRST102", message="Invalid body: expected an object"))
            now = self.clock.now()
            row = self._validate(spec, {
                **record,
                "id": record.get("id") or str(uuid4()),
                "created_at": now,
                "updated_at": now,
            })
            self._check_foreign_keys(spec, row)
            self._check_new_row(spec, row, session)
            if row["id"] in table or any(p["id"] == row["id"] for p in prepared):
                raise DatabaseError(QueryError(
                    code="23505",
                    message=f'duplicate key value violates unique constraint "{spec.name}_pkey"',
                    details=f"Key (id)=({row['id']}) already exists.",
                ))
            prepared.append(row)

        for row in prepared:
            table[row["id"]] = row
            self._publish(EventType.INSERT, spec.name, row)
        logger.debug(f"Inserted {len(prepared)} row(s) into {spec.name}")
        return [dict(r) for r in prepared]

    def _update(self, spec: TableSpec, query: QueryBuilder, session: Session | None) -> list[Row]:
        locked = _IMMUTABLE | {spec.owner_column}
        changes = {k: v for k, v in query.payload.items() if k not in locked}
        targets = self._authorize(spec, self._matching(spec, query, self.rows(spec.name)), session, "update")

        updated: list[Row] = []
        for row in targets:
            merged = self._validate(spec, {**row, **changes, "updated_at": self.clock.now()})
            self._check_foreign_keys(spec, merged)
            self._check_new_row(spec, merged, session)
            updated.append(merged)

        table = self._store(spec)
        for row in updated:
            table[row["id"]] = row
            self._publish(EventType.UPDATE, spec.name, row)
        logger.debug(f"Updated {len(updated)} row(s) in {spec.name}")
        return [dict(r) for r in updated]

    def _delete(self, spec: TableSpec, query: QueryBuilder, session: Session | None) -> list[Row]:
        targets = self._authorize(spec, self._matching(spec, query, self.rows(spec.name)), session, "delete")
        for row in targets:
            self._remove(spec, row)
        logger.debug(f"Deleted {len(targets)} row(s) from {spec.name}")
        return targets

    def _remove(self, spec: TableSpec, row: Row) -> None:
        """Delete one row, then apply ON DELETE actions of every table pointing at it."""
        if self._store(spec).pop(row["id"], None) is None:
            return
        self._publish(EventType.DELETE, spec.name, row)
        for child_spec, fk in referencing(spec.name):
            children = [c for c in self.rows(child_spec.name) if c.get(fk.column) == row["id"]]
            for child in children:
                if fk.on_delete == "cascade":
                    self._remove(child_spec, child)
                else:
                    nulled = {**child, fk.column: None, "updated_at": self.clock.now()}
                    self._store(child_spec)[child["id"]] = nulled
                    self._publish(EventType.UPDATE, child_spec.name, nulled)
            if children:
                logger.debug(f"{fk.on_delete} {len(children)} {child_spec.name} row(s) of {spec.name} {row['id']}")

    def _publish(self, event: EventType, table: str, row: Row) -> None:
        if self.realtime is not None:
            self.realtime.simulate_event({"event": event, "schema": SCHEMA, "table": table, "payload": dict(row)})

    # ------------------------------------------------------------------
    # Output shaping
    # ------------------------------------------------------------------

    def _shape(self, spec: TableSpec, row: Row, clause: SelectClause, session: Session | None) -> Row:
        shaped = self._project(spec, row, clause.columns)
        for name, columns in clause.embeds.items():
            shaped[name] = self._embed(spec, row, name, columns, session)
        return shaped

    def _project(self, spec: TableSpec, row: Row, columns: tuple[str, ...] | None) -> Row:
        if columns is None:
            return dict(row)
        for column in columns:
            if column not in row and column not in spec.model.model_fields:
                raise DatabaseError(QueryError(
                    code="42703", message=f"column {spec.name}.{column} does not exist"
                ))
        return {c: row.get(c) for c in columns}

    def _embed(
        self,
        spec: TableSpec,
        row: Row,
        name: str,
        columns: tuple[str, ...] | None,
        session: Session | None,
    ) -> Row | list[Row] | None:
        target = TABLES.get(name)
        if target is not None and (fk := spec.foreign_key_to(name)) is not None:
            parent = self.get(name, row.get(fk.column)) if row.get(fk.column) else None
            if parent is None or not self._visible(target, [parent], session):
                return None
            return self._project(target, parent, columns)
        if target is not None and (fk := target.foreign_key_to(spec.name)) is not None:
            children = [c for c in self.rows(name) if c.get(fk.column) == row["id"]]
            return [self._project(target, c, columns) for c in self._visible(target, children, session)]
        raise DatabaseError(QueryError(
            code="PGRST200",
            message=f"Could not find a relationship between '{spec.name}' and '{name}' in the schema cache",
        ))
