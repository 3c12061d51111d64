"""In-memory database: table catalogue, query builder and executor."""

from job_tracker.database.query import QueryBuilder
from job_tracker.database.store import MockDatabase
from job_tracker.database.tables import TABLES, ForeignKey, TableSpec

__all__ = ["TABLES", "ForeignKey", "MockDatabase", "QueryBuilder", "TableSpec"]
