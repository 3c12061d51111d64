"""Helpers that populate a client with users and rows for tests, demos and the CLI."""

from typing import Any
from uuid import uuid4

from loguru import logger

from job_tracker.client import MockClient
from job_tracker.config.settings import Seed
from job_tracker.schema import ActivityType, ApplicationStatus, AuthUser

DEFAULT_PASSWORD = "test-password-123"


class Fixtures:
    """Writes go straight to the tables (validated, but no RLS and no realtime
    events); users are created through the normal sign-up flow.
    """

    def __init__(self, client: MockClient):
        self.client = client
        self._passwords: dict[str, str] = {}

    async def create_user(
        self,
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        name: str | None = None,
        **metadata: Any,
    ) -> AuthUser:
        """Sign up a user; the client is left signed in as them."""
        email = email or f"user-{uuid4().hex[:8]}@example.com"
        result = await self.client.auth.sign_up(email=email, password=password, name=name or "Test User", **metadata)
        if result.error:
            raise RuntimeError(f"Could not create user {email}: {result.error.message}")
        self._passwords[result.data.user.id] = password
        return result.data.user

    async def sign_in_as(self, user: AuthUser) -> None:
        result = await self.client.auth.sign_in_with_password(email=user.email, password=self._passwords[user.id])
        if result.error:
            raise RuntimeError(f"Could not sign in as {user.email}: {result.error.message}")

    def create_company(self, **fields: Any) -> dict[str, Any]:
        return self.client.database.put("companies", {"name": "Test Company", **fields})

    def create_job(self, **fields: Any) -> dict[str, Any]:
        return self.client.database.put("jobs", {"title": "Software Engineer", **fields})

    def create_application(self, user_id: str, **fields: Any) -> dict[str, Any]:
        return self.client.database.put("applications", {
            "company_name": "Test Company",
            "job_title": "Software Engineer",
            "status": ApplicationStatus.applied,
            **fields,
            "created_by": user_id,
        })

    def create_activity(
        self,
        application_id: str,
        user_id: str,
        activity_type: ActivityType = ActivityType.note_added,
        **fields: Any,
    ) -> dict[str, Any]:
        return self.client.database.put("application_activities", {
            "description": "Test activity",
            **fields,
            "application_id": application_id,
            "activity_type": activity_type,
            "created_by": user_id,
        })

    async def load_seed(self, seed: Seed) -> dict[str, AuthUser]:
        """Create every user and row of a seed; returns users by lowercased email.

        Applications are linked to a seeded company of the same name when there
        is one. The client ends up signed out.
        """
        users: dict[str, AuthUser] = {}
        for seed_user in seed.users:
            users[seed_user.email.lower()] = await self.create_user(
                seed_user.email, seed_user.password, seed_user.name
            )

        companies: dict[str, str] = {}
        for company in seed.companies:
            row = self.create_company(**company)
            companies[row["name"]] = row["id"]
        for job in seed.jobs:
            self.create_job(**job)

        for app in seed.applications:
            owner = users.get(app.owner.lower())
            if owner is None:
                raise ValueError(f"Seed application {app.job_title} at {app.company_name} names unknown owner {app.owner}")
            fields = app.model_dump(mode="json", exclude={"owner"})
            fields.setdefault("company_id", companies.get(app.company_name))
            self.create_application(owner.id, **fields)

        await self.client.auth.sign_out()
        logger.info(
            f"Seeded {len(users)} users, {len(companies)} companies, "
            f"{len(seed.jobs)} jobs, {len(seed.applications)} applications"
        )
        return users

    def reset(self) -> None:
        self.client.reset()
        self._passwords.clear()
