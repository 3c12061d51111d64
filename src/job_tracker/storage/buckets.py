"""Object storage buckets held in memory."""

import mimetypes
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, Field

from job_tracker.config.settings import BucketConfig
from job_tracker.schema import Session, StorageError, StorageResult

if TYPE_CHECKING:
    from job_tracker.auth import MockAuth
    from job_tracker.database import MockDatabase

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class StoredObject(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    path: str
    content_type: str
    size: int
    owner: str
    created_at: str
    updated_at: str
    data: bytes = Field(repr=False)

    def metadata(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.path,
            "owner": self.owner,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "metadata": {"size": self.size, "mimetype": self.content_type},
        }


class Bucket(BaseModel):
    id: str
    name: str
    public: bool = True
    file_size_limit: int | None = None
    allowed_mime_types: list[str] | None = None
    owner_folders: bool = False
    created_at: str
    objects: dict[str, StoredObject] = Field(default_factory=dict, repr=False)

    def summary(self) -> dict[str, Any]:
        return self.model_dump(exclude={"objects"})


def _error(message: str, status_code: int, error: str) -> StorageResult:
    return StorageResult(error=StorageError(message=message, status_code=status_code, error=error))


def _normalize(path: str) -> str:
    return path.strip("/")


def _owner_folder(path: str) -> str | None:
    """First folder of *path*; objects at the bucket root have none."""
    folder, sep, _ = _normalize(path).partition("/")
    return folder if sep else None


class MockStorage:
    """Buckets of uploaded objects.

    Writes need a signed-in user; reads from a private bucket do too. In
    buckets with ``owner_folders`` users are also confined to the folder
    named after their id. The caller's session is taken from the attached
    auth when ``from_`` is called.
    """

    def __init__(
        self,
        database: "MockDatabase",
        auth: "MockAuth",
        storage_url: str = "https://mock.supabase.co",
        max_upload_size: int = 10 * 1024 * 1024,
        default_buckets: Iterable[BucketConfig] = (),
    ):
        self.database = database
        self.auth = auth
        self.storage_url = storage_url.rstrip("/")
        self.max_upload_size = max_upload_size
        self.default_buckets = list(default_buckets)
        self._buckets: dict[str, Bucket] = {}
        self._create_defaults()

    def _create_defaults(self) -> None:
        for config in self.default_buckets:
            self._buckets[config.name] = Bucket(id=config.name, created_at=self.database.clock.now(), **config.model_dump())

    def reset(self) -> None:
        self._buckets.clear()
        self._create_defaults()

    def bucket(self, name: str) -> Bucket | None:
        return self._buckets.get(name)

    async def _round_trip(self) -> StorageResult | None:
        await self.database.latency.wait()
        if self.database.network_error:
            return _error("Network request failed", 0, "FETCH_ERROR")
        return None

    # ── Buckets ────────────────────────────────────────────────────────────────

    async def create_bucket(
        self,
        name: str,
        public: bool = True,
        file_size_limit: int | None = None,
        allowed_mime_types: list[str] | None = None,
        owner_folders: bool = False,
    ) -> StorageResult:
        if failure := await self._round_trip():
            return failure
        if name in self._buckets:
            return _error(f"Bucket {name} already exists", 409, "Duplicate")
        self._buckets[name] = Bucket(
            id=name,
            name=name,
            public=public,
            file_size_limit=file_size_limit,
            allowed_mime_types=allowed_mime_types,
            owner_folders=owner_folders,
            created_at=self.database.clock.now(),
        )
        logger.debug(f"Created bucket {name} (public={public})")
        return StorageResult(data={"name": name})

    async def list_buckets(self) -> StorageResult:
        if failure := await self._round_trip():
            return failure
        return StorageResult(data=[b.summary() for b in self._buckets.values()])

    async def empty_bucket(self, name: str) -> StorageResult:
        if failure := await self._round_trip():
            return failure
        bucket = self._buckets.get(name)
        if bucket is None:
            return _error("Bucket not found", 404, "Not found")
        removed = len(bucket.objects)
        bucket.objects.clear()
        logger.debug(f"Emptied bucket {name} ({removed} objects)")
        return StorageResult(data={"message": "Successfully emptied"})

    def from_(self, bucket: str) -> "BucketClient":
        return BucketClient(self, bucket, self.auth.current_session)


class BucketClient:
    def __init__(self, storage: MockStorage, bucket: str, session: Session | None):
        self.storage = storage
        self.bucket_name = bucket
        self.session = session

    def _confined(self, bucket: Bucket, write: bool) -> bool:
        return bucket.owner_folders and (write or not bucket.public)

    def _owns(self, path: str) -> bool:
        return self.session is not None and _owner_folder(path) == self.session.user.id

    async def _open(self, *, write: bool, paths: Iterable[str] = ()) -> tuple[Bucket | None, StorageResult | None]:
        if failure := await self.storage._round_trip():
            return None, failure
        bucket = self.storage.bucket(self.bucket_name)
        if bucket is None:
            return None, _error(f"Bucket {self.bucket_name} not found", 404, "Bucket not found")
        if (write or not bucket.public) and self.session is None:
            return None, _error("Not authenticated", 401, "Unauthorized")
        if self._confined(bucket, write):
            foreign = [p for p in paths if not self._owns(p)]
            if foreign:
                logger.warning(f"{self.session.user.email} denied access to {bucket.name}/{foreign[0]}")
                return None, _error("new row violates row-level security policy", 403, "Unauthorized")
        return bucket, None

    async def upload(
        self,
        path: str,
        file: bytes | str,
        content_type: str | None = None,
        upsert: bool = False,
    ) -> StorageResult:
        bucket, failure = await self._open(write=True, paths=[path])
        if failure:
            return failure
        path = _normalize(path)
        data = file.encode() if isinstance(file, str) else bytes(file)
        content_type = content_type or mimetypes.guess_type(path)[0] or DEFAULT_CONTENT_TYPE

        limit = bucket.file_size_limit or self.storage.max_upload_size
        if len(data) > limit:
            return _error(
                f"The object exceeded the maximum allowed size ({len(data)} > {limit} bytes)",
                413,
                "Payload too large",
            )
        if bucket.allowed_mime_types is not None and content_type not in bucket.allowed_mime_types:
            return _error(f"mime type {content_type} is not supported", 415, "invalid_mime_type")

        existing = bucket.objects.get(path)
        if existing is not None and not upsert:
            return _error("The resource already exists", 409, "Duplicate")

        now = self.storage.database.clock.now()
        obj = StoredObject(
            path=path,
            content_type=content_type,
            size=len(data),
            owner=self.session.user.id,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            data=data,
        )
        bucket.objects[path] = obj
        logger.debug(f"Uploaded {bucket.name}/{path} ({obj.size} bytes)")
        return StorageResult(data={"id": obj.id, "path": path, "fullPath": f"{bucket.name}/{path}"})

    async def download(self, path: str) -> StorageResult:
        bucket, failure = await self._open(write=False, paths=[path])
        if failure:
            return failure
        obj = bucket.objects.get(_normalize(path))
        if obj is None:
            return _error("Object not found", 404, "not_found")
        return StorageResult(data=obj.data)

    async def remove(self, paths: list[str]) -> StorageResult:
        """Delete the given objects; paths that do not exist are skipped.

        Nothing is removed if any path lies outside the caller's folder.
        """
        bucket, failure = await self._open(write=True, paths=paths)
        if failure:
            return failure
        removed = []
        for path in paths:
            obj = bucket.objects.pop(_normalize(path), None)
            if obj is not None:
                removed.append(obj.metadata())
        logger.debug(f"Removed {len(removed)}/{len(paths)} objects from {bucket.name}")
        return StorageResult(data=removed)

    async def list(self, prefix: str = "") -> StorageResult:
        """Entries directly under *prefix*; deeper paths show up as folder entries with no id.

        Objects the caller may not read are left out.
        """
        bucket, failure = await self._open(write=False)
        if failure:
            return failure
        confined = self._confined(bucket, write=False)
        folder = _normalize(prefix)
        start = f"{folder}/" if folder else ""
        entries: dict[str, dict[str, Any]] = {}
        for path, obj in sorted(bucket.objects.items()):
            if not path.startswith(start):
                continue
            if confined and not self._owns(path):
                continue
            name, sep, _ = path[len(start):].partition("/")
            if sep:
                entries.setdefault(name, {"name": name, "id": None, "metadata": None})
            else:
                entries[name] = {**obj.metadata(), "name": name}
        return StorageResult(data=list(entries.values()))

    def get_public_url(self, path: str) -> StorageResult:
        url = f"{self.storage.storage_url}/storage/v1/object/public/{self.bucket_name}/{_normalize(path)}"
        return StorageResult(data={"publicUrl": url})
