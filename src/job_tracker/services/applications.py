"""Application CRUD, status changes and the activity timeline for the signed-in user."""

from collections import Counter
from collections.abc import Sequence
from typing import Any

from loguru import logger

from job_tracker.board import DEFAULT_COLUMNS, Column, build_board, status_for_drop, transition
from job_tracker.client import MockClient
from job_tracker.exceptions import ApplicationNotFound, DatabaseError, NotAuthenticated
from job_tracker.schema import ActivityType, ApplicationStatus, QueryResult

DETAIL_COLUMNS = "*, companies(*), application_activities(*)"


class ApplicationService:
    """Every call works on the signed-in user's applications only.

    Raises ``NotAuthenticated`` without a session and ``DatabaseError`` when a
    query comes back with an error.
    """

    def __init__(self, client: MockClient, columns: Sequence[Column] = DEFAULT_COLUMNS):
        self.client = client
        self.columns = columns

    def _user_id(self) -> str:
        session = self.client.auth.current_session
        if session is None:
            raise NotAuthenticated("No authenticated user found, sign in and try again")
        return session.user.id

    @staticmethod
    def _unwrap(result: QueryResult, action: str) -> Any:
        if result.error is not None:
            logger.warning(f"Failed to {action}: [{result.error.code}] {result.error.message}")
            raise DatabaseError(result.error)
        return result.data

    async def _fetch(self, application_id: str, columns: str = "*") -> dict[str, Any]:
        user_id = self._user_id()
        result = await (
            self.client.from_("applications")
            .select(columns)
            .eq("id", application_id)
            .eq("created_by", user_id)
            .maybe_single()
        )
        row = self._unwrap(result, "fetch application")
        if row is None:
            raise ApplicationNotFound(application_id)
        return row

    async def list_applications(
        self,
        status: ApplicationStatus | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> list[dict[str, Any]]:
        """Newest first; *search* matches company name or job title, case-insensitively."""
        query = self.client.from_("applications").select("*").eq("created_by", self._user_id())
        if status is not None:
            query = query.eq("status", status)
        if search:
            term = search.replace('"', "")
            query = query.or_(f'company_name.ilike."%{term}%",job_title.ilike."%{term}%"')
        start = (max(page, 1) - 1) * page_size
        query = query.order("created_at", desc=True).range(start, start + page_size - 1)
        return self._unwrap(await query, "list applications")

    async def get_application(self, application_id: str) -> dict[str, Any]:
        """The application with its company and activity timeline embedded."""
        return await self._fetch(application_id, DETAIL_COLUMNS)

    async def create_application(self, **fields: Any) -> dict[str, Any]:
        user_id = self._user_id()
        result = await (
            self.client.from_("applications")
            .insert({**fields, "created_by": user_id})
            .select()
            .single()
        )
        row = self._unwrap(result, "create application")
        logger.info(f"Created application {row['job_title']} at {row['company_name']}")
        return row

    async def update_application(self, application_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Apply *changes*; a status change is also written to the activity timeline."""
        previous = await self._fetch(application_id)
        result = await (
            self.client.from_("applications")
            .update(changes)
            .eq("id", application_id)
            .select()
            .maybe_single()
        )
        row = self._unwrap(result, "update application")
        if row is None:
            raise ApplicationNotFound(application_id)

        old_status, new_status = previous["status"], row["status"]
        if old_status != new_status:
            direction = transition(old_status, new_status)
            await self.add_activity(
                application_id,
                ActivityType.status_change,
                description=f"Status changed from {old_status} to {new_status}",
                metadata={"from": old_status, "to": new_status, "direction": direction},
            )
            logger.info(f"Application {application_id}: {old_status} -> {new_status} ({direction})")
        return row

    async def move_to_column(self, application_id: str, column_id: str) -> dict[str, Any]:
        """Kanban drop: keep the status if the column accepts it, else take the column's first status.

        Raises:
            ValueError if the column takes no applications
        """
        current = await self._fetch(application_id)
        status = status_for_drop(current["status"], column_id, self.columns)
        if status is None:
            raise ValueError(f"Column {column_id} does not accept applications")
        if status == current["status"]:
            return current
        return await self.update_application(application_id, {"status": status})

    async def delete_application(self, application_id: str) -> bool:
        """Delete an application (its activities go with it); False if nothing was deleted."""
        result = await self.client.from_("applications").delete().eq("id", application_id)
        deleted = self._unwrap(result, "delete application")
        return bool(deleted)

    async def add_activity(
        self,
        application_id: str,
        activity_type: ActivityType,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        result = await (
            self.client.from_("application_activities")
            .insert({
                "application_id": application_id,
                "activity_type": activity_type,
                "description": description,
                "metadata": metadata or {},
                "created_by": self._user_id(),
            })
            .select()
            .single()
        )
        return self._unwrap(result, "add activity")

    async def list_activities(self, application_id: str) -> list[dict[str, Any]]:
        result = await (
            self.client.from_("application_activities")
            .select("*")
            .eq("application_id", application_id)
            .order("created_at", desc=True)
        )
        return self._unwrap(result, "list activities")

    async def _all(self) -> list[dict[str, Any]]:
        result = await self.client.from_("applications").select("*").eq("created_by", self._user_id())
        return self._unwrap(result, "list applications")

    async def status_counts(self) -> dict[ApplicationStatus, int]:
        """Count per status, every status included."""
        counts = Counter(ApplicationStatus(row["status"]) for row in await self._all())
        return {status: counts.get(status, 0) for status in ApplicationStatus}

    async def board(self) -> dict[str, list[dict[str, Any]]]:
        return build_board(await self._all(), self.columns)
