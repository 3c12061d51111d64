"""Documents (CVs, cover letters) attached to applications."""

import re
from typing import Any

from loguru import logger

from job_tracker.client import MockClient
from job_tracker.exceptions import StorageOperationError
from job_tracker.schema import ActivityType, StorageResult
from job_tracker.services.applications import ApplicationService

BUCKET = "documents"
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}
MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_NAME_LENGTH = 50


def sanitize_filename(name: str) -> str:
    """Keep letters, digits, dots and dashes; everything else becomes ``_``."""
    return re.sub(r"[^a-zA-Z0-9.-]", "_", name)[:MAX_NAME_LENGTH]


class DocumentService:
    """Files live at ``<user id>/<application id>/<file name>`` in the documents bucket."""

    def __init__(self, client: MockClient):
        self.client = client
        self.applications = ApplicationService(client)

    @staticmethod
    def _unwrap(result: StorageResult, action: str) -> Any:
        if result.error is not None:
            logger.warning(f"Failed to {action}: {result.error.message} ({result.error.status_code})")
            raise StorageOperationError(f"Failed to {action}: {result.error.message}")
        return result.data

    def _folder(self, application_id: str) -> str:
        return f"{self.applications._user_id()}/{application_id}"

    async def upload_document(
        self,
        application_id: str,
        filename: str,
        content: bytes,
        content_type: str = "application/pdf",
    ) -> dict[str, Any]:
        """Store a file and log a ``document_uploaded`` activity on the application.

        Raises:
            StorageOperationError for unsupported types, oversized files or storage failures
            ApplicationNotFound if the application is not the user's
        """
        if content_type not in ALLOWED_MIME_TYPES:
            raise StorageOperationError("Unsupported file type, only PDF, DOCX and TXT files are allowed")
        if len(content) > MAX_FILE_SIZE:
            raise StorageOperationError("File size exceeds 10MB limit")
        await self.applications.get_application(application_id)

        path = f"{self._folder(application_id)}/{sanitize_filename(filename)}"
        result = await self.client.storage.from_(BUCKET).upload(path, content, content_type=content_type)
        uploaded = self._unwrap(result, "upload document")

        await self.applications.add_activity(
            application_id,
            ActivityType.document_uploaded,
            description=f"Uploaded {filename}",
            metadata={"path": uploaded["path"], "size": len(content), "content_type": content_type},
        )
        logger.info(f"Uploaded {uploaded['path']} ({len(content)} bytes)")
        return uploaded

    async def list_documents(self, application_id: str) -> list[dict[str, Any]]:
        result = await self.client.storage.from_(BUCKET).list(self._folder(application_id))
        return self._unwrap(result, "list documents")

    async def download_document(self, application_id: str, filename: str) -> bytes:
        path = f"{self._folder(application_id)}/{sanitize_filename(filename)}"
        return self._unwrap(await self.client.storage.from_(BUCKET).download(path), "download document")

    async def remove_document(self, application_id: str, filename: str) -> bool:
        path = f"{self._folder(application_id)}/{sanitize_filename(filename)}"
        removed = self._unwrap(await self.client.storage.from_(BUCKET).remove([path]), "remove document")
        return bool(removed)
