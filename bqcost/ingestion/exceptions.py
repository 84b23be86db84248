"""
Exception classes for the ingestion pipeline.
"""

from typing import Iterable


class IngestionError(Exception):
    """Base exception for all ingestion errors."""

    pass


class ApiError(IngestionError):
    """Error response from the remote listing API.

    `reasons` holds the machine-readable reason codes of the error body
    (e.g. "accessDenied", "backendError"); it may be empty.
    """

    def __init__(self, status_code: int, message: str, reasons: Iterable[str] = ()):
        self.status_code = status_code
        self.message = message
        self.reasons = tuple(reasons)
        super().__init__(f"googleapi: Error {status_code}: {message}")


class ResourceLimitError(IngestionError):
    """A listing grew past its configured ceiling."""

    def __init__(self, kind: str, limit: int, project_id: str):
        self.kind = kind
        self.limit = limit
        self.project_id = project_id
        super().__init__(f"projectId:{project_id} exceeded max {kind}:{limit}")


class Cancelled(IngestionError):
    """The run context was cancelled."""

    def __init__(self, message: str = "context canceled"):
        super().__init__(message)


class DeadlineExceeded(Cancelled):
    """The run context's deadline passed."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)


class StateError(IngestionError):
    """A load state transition was requested from the wrong state."""

    pass


class PersistenceError(IngestionError):
    """Database read or write failed."""

    pass


class PaginationError(IngestionError):
    """A listing kept returning page tokens without making progress."""

    pass


class LoaderUnavailable(IngestionError):
    """The background loader cannot accept new runs."""

    pass
