import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ApplicationStatus(StrEnum):
    wishlist = "wishlist"
    applied = "applied"
    phone_screen = "phone_screen"
    assessment = "assessment"
    take_home = "take_home"
    interviewing = "interviewing"
    final_round = "final_round"
    offered = "offered"
    accepted = "accepted"
    rejected = "rejected"
    withdrawn = "withdrawn"
    ghosted = "ghosted"


class ActivityType(StrEnum):
    status_change = "status_change"
    note_added = "note_added"
    interview_scheduled = "interview_scheduled"
    document_uploaded = "document_uploaded"
    reminder_set = "reminder_set"


class EventType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RlsPolicy(StrEnum):
    """What happens when a write targets rows owned by someone else."""

    silent = "silent"
    strict = "strict"


# ── Table records ──────────────────────────────────────────────────────────────

class Record(BaseModel):
    """Base row: free-form columns are kept next to the declared ones."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class UserMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None


class AuthUser(Record):
    id: str
    email: str
    user_metadata: UserMetadata = Field(default_factory=UserMetadata)
    email_verified: bool = True


class UserProfile(Record):
    id: str
    email: str | None = None
    name: str | None = None
    bio: str | None = None
    avatar_url: str | None = None


class Company(Record):
    name: str
    industry: str | None = None
    size: str | None = None
    website: str | None = None
    description: str | None = None
    location: str | None = None


class Application(Record):
    company_name: str
    job_title: str
    created_by: str
    status: ApplicationStatus = ApplicationStatus.applied
    company_id: str | None = None
    date_applied: str | None = None
    location: str | None = None
    salary_range: str | None = None
    job_url: str | None = None
    notes: str | None = None


class ApplicationActivity(Record):
    application_id: str
    activity_type: ActivityType
    created_by: str
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Job(Record):
    title: str
    description: str | None = None
    requirements: list[str] = Field(default_factory=list)


# ── Result shapes ──────────────────────────────────────────────────────────────

class QueryError(BaseModel):
    code: str | None = None
    message: str
    details: str | None = None
    hint: str | None = None


class QueryResult(BaseModel):
    data: Any = None
    error: QueryError | None = None


class Session(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: int
    token_type: str = "bearer"
    user: AuthUser

    @property
    def is_expired(self) -> bool:
        return time.time() >= self.expires_at


class AuthError(BaseModel):
    message: str
    code: str | None = None
    status: int = 400


class AuthData(BaseModel):
    user: AuthUser | None = None
    session: Session | None = None
    url: str | None = None


class AuthResult(BaseModel):
    data: AuthData = Field(default_factory=AuthData)
    error: AuthError | None = None


class RealtimeEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    event: EventType
    schema_name: str = Field(default="public", alias="schema")
    table: str
    commit_timestamp: str
    payload: dict[str, Any] = Field(default_factory=dict)


class StorageError(BaseModel):
    message: str
    status_code: int
    error: str


class StorageResult(BaseModel):
    data: Any = None
    error: StorageError | None = None
