"""YAML-backed column layout: the five core columns plus user-defined ones."""

import re
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

import yaml
from loguru import logger
from pydantic import BaseModel, Field

from job_tracker.board.columns import CORE_COLUMN_IDS, Column, ColumnColor, default_columns
from job_tracker.schema import ApplicationStatus


class Layout(BaseModel):
    columns: list[Column] = Field(default_factory=default_columns)
    updated_at: str | None = None


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_") or "column"


class LayoutStore:
    """Column layout persisted to a YAML file.

    Core columns are always present and cannot be removed or edited, only
    moved. Every change is written to disk immediately.
    """

    def __init__(self, path: Path):
        self.path = path
        self.layout = self._load()

    def _load(self) -> Layout:
        """Read the file, falling back to the default columns if it is missing."""
        if not self.path.exists():
            return Layout()
        with open(self.path) as f:
            stored = Layout.model_validate(yaml.safe_load(f) or {})

        by_id = {c.id: c for c in stored.columns}
        columns = []
        for core in default_columns():
            if core.id in by_id:
                core.order = by_id[core.id].order
            columns.append(core)
        columns += [c for c in stored.columns if c.is_custom and c.id not in CORE_COLUMN_IDS]
        return Layout(columns=self._reindex(columns), updated_at=stored.updated_at)

    def _save(self) -> None:
        """Write the layout atomically (write tmp, then rename)."""
        self.layout.updated_at = datetime.now(UTC).isoformat()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.path.with_suffix(".yaml.tmp")
        with open(tmp_file, "w") as f:
            yaml.dump(
                self.layout.model_dump(mode="json"),
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
        tmp_file.replace(self.path)

    @staticmethod
    def _reindex(columns: list[Column]) -> list[Column]:
        columns = sorted(columns, key=lambda c: c.order)
        for index, column in enumerate(columns):
            column.order = index
        return columns

    def columns(self) -> list[Column]:
        return [c.model_copy(deep=True) for c in self.layout.columns]

    def get(self, column_id: str) -> Column | None:
        return next((c for c in self.layout.columns if c.id == column_id), None)

    def _custom(self, column_id: str) -> Column:
        if column_id in CORE_COLUMN_IDS:
            raise ValueError(f"Core column {column_id} cannot be changed")
        column = self.get(column_id)
        if column is None:
            raise KeyError(column_id)
        return column

    def add_column(
        self,
        name: str,
        description: str | None = None,
        color: ColumnColor | None = None,
        statuses: Iterable[ApplicationStatus] = (),
    ) -> Column:
        base = f"custom_{_slug(name)}"
        column_id, n = base, 2
        while self.get(column_id) is not None:
            column_id, n = f"{base}_{n}", n + 1
        column = Column(
            id=column_id,
            name=name,
            description=description,
            color=color,
            order=len(self.layout.columns),
            is_custom=True,
            statuses=list(statuses),
        )
        self.layout.columns.append(column)
        self._save()
        logger.info(f"Added column {column_id}")
        return column.model_copy()

    def update_column(
        self,
        column_id: str,
        name: str | None = None,
        description: str | None = None,
        color: ColumnColor | None = None,
    ) -> Column:
        """
        Raises:
            ValueError for core columns
            KeyError if no such column exists
        """
        column = self._custom(column_id)
        if name is not None:
            column.name = name
        if description is not None:
            column.description = description
        if color is not None:
            column.color = ColumnColor(color)
        self._save()
        return column.model_copy()

    def remove_column(self, column_id: str) -> bool:
        """Delete a custom column; False if it does not exist.

        Raises:
            ValueError for core columns
        """
        try:
            column = self._custom(column_id)
        except KeyError:
            return False
        self.layout.columns.remove(column)
        self.layout.columns = self._reindex(self.layout.columns)
        self._save()
        logger.info(f"Removed column {column_id}")
        return True

    def reorder(self, column_ids: list[str]) -> list[Column]:
        """Put the named columns first, in the given order; unknown ids are ignored."""
        position = {cid: i for i, cid in enumerate(column_ids)}
        ordered = sorted(
            self.layout.columns,
            key=lambda c: (0, position[c.id]) if c.id in position else (1, c.order),
        )
        for index, column in enumerate(ordered):
            column.order = index
        self.layout.columns = ordered
        self._save()
        return self.columns()

    def reset(self) -> None:
        self.layout = Layout()
        self._save()
