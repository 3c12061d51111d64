"""Table catalogue: record model, owner column and foreign keys per table.

Relations are declared here explicitly; embedding (``select("*, companies(*)")``)
and cascading deletes both resolve through ``TABLES`` rather than guessing
column names from table names.
"""

from dataclasses import dataclass
from typing import Literal, TypeAlias

from job_tracker.schema import (
    Application,
    ApplicationActivity,
    AuthUser,
    Company,
    Job,
    Record,
    UserProfile,
)

OnDelete: TypeAlias = Literal["cascade", "set_null"]


@dataclass(frozen=True)
class ForeignKey:
    column: str
    target: str
    on_delete: OnDelete = "cascade"


@dataclass(frozen=True)
class TableSpec:
    name: str
    model: type[Record]
    # Column compared with the session user id for row-level security; None = shared table.
    owner_column: str | None = None
    foreign_keys: tuple[ForeignKey, ...] = ()

    def foreign_key_to(self, target: str) -> ForeignKey | None:
        return next((fk for fk in self.foreign_keys if fk.target == target), None)


TABLES: dict[str, TableSpec] = {
    spec.name: spec
    for spec in (
        TableSpec("users", AuthUser, owner_column="id"),
        TableSpec(
            "user_profiles",
            UserProfile,
            owner_column="id",
            foreign_keys=(ForeignKey("id", "users"),),
        ),
        TableSpec("companies", Company),
        TableSpec("jobs", Job),
        TableSpec(
            "applications",
            Application,
            owner_column="created_by",
            foreign_keys=(
                ForeignKey("created_by", "users"),
                ForeignKey("company_id", "companies", on_delete="set_null"),
            ),
        ),
        TableSpec(
            "application_activities",
            ApplicationActivity,
            owner_column="created_by",
            foreign_keys=(
                ForeignKey("application_id", "applications"),
                ForeignKey("created_by", "users"),
            ),
        ),
    )
}


def referencing(table: str) -> list[tuple[TableSpec, ForeignKey]]:
    """Every (child table, foreign key) pair that points at *table*."""
    return [
        (spec, fk)
        for spec in TABLES.values()
        for fk in spec.foreign_keys
        if fk.target == table
    ]
