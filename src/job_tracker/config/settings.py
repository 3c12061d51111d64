"""Application settings and configuration."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from job_tracker.schema import ApplicationStatus, RlsPolicy


class SeedUser(BaseModel):
    email: str
    password: str
    name: str | None = None


class SeedApplication(BaseModel):
    """Application row in a seed file; ``owner`` is the email of a seeded user."""

    model_config = ConfigDict(extra="allow")

    owner: str
    company_name: str
    job_title: str
    status: ApplicationStatus = ApplicationStatus.applied


class Seed(BaseModel):
    users: list[SeedUser] = Field(default_factory=list)
    companies: list[dict[str, Any]] = Field(default_factory=list)
    jobs: list[dict[str, Any]] = Field(default_factory=list)
    applications: list[SeedApplication] = Field(default_factory=list)

    @field_validator("users", "companies", "jobs", "applications", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]
DOCUMENT_TYPES = [
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
]


class BucketConfig(BaseModel):
    """A bucket created with every fresh client.

    With ``owner_folders`` set, objects must live under a folder named after
    the uploading user's id, and only that user may write them (or read them,
    unless the bucket is public).
    """

    name: str
    public: bool = True
    file_size_limit: int | None = None
    allowed_mime_types: list[str] | None = None
    owner_folders: bool = False


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Minimum level for the console sink")
    log_file: Path | None = Field(default=None, description="Optional DEBUG-level log file, rotated at 5 MB")

    # Sentry
    sentry_dsn: str = Field(default="", description="Sentry DSN, empty string disables Sentry")
    sentry_environment: str = Field(default="development", description="Sentry environment tag (e.g. production, development)")

    # Simulated backend
    network_latency: float = Field(default=0.0, ge=0, description="Seconds awaited before every simulated round trip")
    network_jitter: float = Field(default=0.0, ge=0, description="Extra random delay of up to this many seconds per round trip")
    rls_policy: RlsPolicy = Field(default=RlsPolicy.silent, description="Writes on rows owned by someone else: silent no-op or explicit error")
    min_password_length: int = Field(default=6, ge=1)

    # Auth tokens
    jwt_secret: str = Field(default="job-tracker-local-secret", description="HMAC key for session JWTs")
    jwt_algorithm: str = Field(default="HS256")
    session_ttl: int = Field(default=3600, gt=0, description="Access token lifetime in seconds")
    refresh_token_ttl: int = Field(default=7 * 24 * 3600, gt=0, description="Refresh token lifetime past the access token, in seconds")
    password_hash_rounds: int = Field(default=12, ge=4, le=31, description="bcrypt cost factor")

    # Realtime
    connect_delay: float = Field(default=0.1, ge=0, description="Seconds to establish the realtime connection")
    reconnect_delay: float = Field(default=0.1, ge=0, description="Fixed delay per reconnection attempt")
    max_reconnect_attempts: int = Field(default=5, ge=1)

    # Storage
    storage_url: str = Field(default="https://mock.supabase.co", description="Base URL used for public object URLs")
    default_buckets: list[BucketConfig] = Field(default_factory=lambda: [
        BucketConfig(
            name="documents",
            public=False,
            file_size_limit=10 * 1024 * 1024,
            allowed_mime_types=DOCUMENT_TYPES,
            owner_folders=True,
        ),
        BucketConfig(name="avatars", file_size_limit=2 * 1024 * 1024, allowed_mime_types=IMAGE_TYPES),
    ])
    max_upload_size: int = Field(default=10 * 1024 * 1024, gt=0, description="Bytes, applies when a bucket sets no limit")

    # Paths
    seed_file: Path = Field(default=Path("seed.yaml"), description="Path to the YAML seed file")
    layout_file: Path = Field(default=Path("data/board_layout.yaml"), description="Path to the Kanban column layout")

    def load_seed(self, path: Path | None = None) -> Seed:
        """Load seed data (users, companies, jobs, applications) from a YAML file."""
        seed_file = path or self.seed_file
        if not seed_file.exists():
            raise FileNotFoundError(f"Seed file not found: {seed_file}")

        with open(seed_file) as f:
            data = yaml.safe_load(f)
            return Seed.model_validate(data or {})


settings = Settings()
