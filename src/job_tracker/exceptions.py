"""Exceptions raised by the tracker.

The simulated backend reports almost every failure as data (an error model next
to a null ``data`` field). The classes here cover the few cases that are raised
on purpose, plus the errors the service layer raises for its callers.
"""

from job_tracker.schema import QueryError


class AuthArgumentError(ValueError):
    """Required auth arguments (email, password, provider...) were not supplied."""


class HarnessNotConnected(RuntimeError):
    """A realtime operation needs a connected harness."""


class ReconnectionFailed(RuntimeError):
    """The realtime harness ran out of reconnection attempts."""


class NotAuthenticated(Exception):
    """No signed-in user for an operation that needs one."""


class ApplicationNotFound(Exception):
    pass


class StorageOperationError(Exception):
    pass


class DatabaseError(Exception):
    """Wraps a structured QueryError.

    Used inside the database to abort an operation (converted back to a
    QueryResult at the boundary) and by the services to surface query errors.
    """

    def __init__(self, error: QueryError):
        super().__init__(f"[{error.code}] {error.message}" if error.code else error.message)
        self.error = error
