"""Kanban board: columns, drop rules and the persisted column layout."""

from job_tracker.board.columns import (
    DEFAULT_COLUMNS,
    Column,
    ColumnColor,
    build_board,
    column_for_status,
    status_for_drop,
    transition,
)
from job_tracker.board.layout import LayoutStore

__all__ = [
    "DEFAULT_COLUMNS",
    "Column",
    "ColumnColor",
    "LayoutStore",
    "build_board",
    "column_for_status",
    "status_for_drop",
    "transition",
]
