"""Kanban columns and the status rules behind drag-and-drop."""

from collections.abc import Iterable, Mapping, Sequence
from enum import StrEnum
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, Field

from job_tracker.schema import ApplicationStatus

Direction: TypeAlias = Literal["forward", "backward", "lateral"]

STATUS_ORDER: list[ApplicationStatus] = list(ApplicationStatus)


class ColumnColor(StrEnum):
    blue = "blue"
    purple = "purple"
    pink = "pink"
    red = "red"
    orange = "orange"
    yellow = "yellow"
    green = "green"
    teal = "teal"
    indigo = "indigo"
    slate = "slate"


class Column(BaseModel):
    id: str
    name: str
    description: str | None = None
    color: ColumnColor | None = None
    order: int = 0
    is_custom: bool = False
    statuses: list[ApplicationStatus] = Field(default_factory=list)


DEFAULT_COLUMNS: tuple[Column, ...] = (
    Column(
        id="saved",
        name="Saved",
        description="Wishlist and saved positions",
        color=ColumnColor.slate,
        order=0,
        statuses=[ApplicationStatus.wishlist],
    ),
    Column(
        id="applied",
        name="Applied",
        description="Applications submitted",
        color=ColumnColor.blue,
        order=1,
        statuses=[ApplicationStatus.applied],
    ),
    Column(
        id="interview",
        name="Interview",
        description="Phone screens, technical interviews, final rounds",
        color=ColumnColor.purple,
        order=2,
        statuses=[
            ApplicationStatus.phone_screen,
            ApplicationStatus.assessment,
            ApplicationStatus.take_home,
            ApplicationStatus.interviewing,
            ApplicationStatus.final_round,
        ],
    ),
    Column(
        id="offers",
        name="Offers",
        description="Received offers",
        color=ColumnColor.green,
        order=3,
        statuses=[ApplicationStatus.offered, ApplicationStatus.accepted],
    ),
    Column(
        id="closed",
        name="Closed",
        description="Rejected, withdrawn, ghosted",
        color=ColumnColor.red,
        order=4,
        statuses=[ApplicationStatus.rejected, ApplicationStatus.withdrawn, ApplicationStatus.ghosted],
    ),
)
CORE_COLUMN_IDS = frozenset(c.id for c in DEFAULT_COLUMNS)


def default_columns() -> list[Column]:
    return [c.model_copy(deep=True) for c in DEFAULT_COLUMNS]


def column_for_status(status: ApplicationStatus | str, columns: Iterable[Column] = DEFAULT_COLUMNS) -> str | None:
    """Id of the first column holding *status*, or None."""
    return next((c.id for c in columns if status in c.statuses), None)


def status_for_drop(
    current: ApplicationStatus | str,
    column_id: str,
    columns: Iterable[Column] = DEFAULT_COLUMNS,
) -> ApplicationStatus | None:
    """Status an application gets when dropped on a column.

    The current status is kept if the column accepts it; otherwise the column's
    first status is used. None means the drop is not allowed.
    """
    column = next((c for c in columns if c.id == column_id), None)
    if column is None or not column.statuses:
        return None
    if current in column.statuses:
        return ApplicationStatus(current)
    return column.statuses[0]


def transition(from_status: ApplicationStatus | str, to_status: ApplicationStatus | str) -> Direction:
    try:
        start = STATUS_ORDER.index(ApplicationStatus(from_status))
        end = STATUS_ORDER.index(ApplicationStatus(to_status))
    except ValueError:
        return "lateral"
    if end > start:
        return "forward"
    if end < start:
        return "backward"
    return "lateral"


def build_board(
    applications: Iterable[Mapping[str, Any]],
    columns: Sequence[Column] = DEFAULT_COLUMNS,
) -> dict[str, list[dict[str, Any]]]:
    """Group applications by column id, newest ``updated_at`` first.

    Every column is present, even empty ones. Applications whose status has no
    column are left out.
    """
    board: dict[str, list[dict[str, Any]]] = {c.id: [] for c in sorted(columns, key=lambda c: c.order)}
    for app in applications:
        column_id = column_for_status(app.get("status"), columns)
        if column_id is not None:
            board[column_id].append(dict(app))
    for cards in board.values():
        cards.sort(key=lambda a: a.get("updated_at") or "", reverse=True)
    return board
