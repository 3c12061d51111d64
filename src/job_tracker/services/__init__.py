"""Application-level operations on top of the client."""

from job_tracker.services.applications import ApplicationService
from job_tracker.services.documents import DocumentService

__all__ = ["ApplicationService", "DocumentService"]
