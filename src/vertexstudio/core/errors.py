"""Exception hierarchy for Vertex Studio.

Every error the service raises on purpose derives from :class:`StudioError`,
which carries the HTTP status the API layer should answer with and an
optional ``details`` payload.  The API layer registers a single exception
handler for the base class, so route handlers and the orchestration layer
never build error responses themselves.

Hierarchy
---------
StudioError
├── ValidationError           400  bad or missing request input
├── NotFoundError             404  referenced artifact is missing
├── ConfigurationError        500  missing project, region or credentials
├── AuthenticationError       500  no access token could be obtained
├── StorageError              500  local read/write failure
└── RemoteServiceError        500  any failure of the remote service
    ├── UpstreamError               non-2xx response or transport failure
    ├── EmptyResultError            success status but nothing usable
    ├── OperationStartError         long-running operation had no handle
    ├── GenerationFailedError       operation reported an explicit error
    ├── ContentFilteredError        output suppressed by safety filters
    ├── UnsupportedStorageError     output delivered to external storage
    └── PollTimeoutError            operation never finished in time
"""

from __future__ import annotations

from typing import Any


class StudioError(Exception):
    """Base class for all expected service failures."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Return the JSON error body for this exception."""
        details = self.details
        if details is None:
            details = f"{type(self).__name__}: {self.message}"
        return {"error": self.message, "details": details}


class ValidationError(StudioError):
    status_code = 400


class NotFoundError(StudioError):
    status_code = 404


class ConfigurationError(StudioError):
    pass


class AuthenticationError(StudioError):
    pass


class StorageError(StudioError):
    pass


class RemoteServiceError(StudioError):
    pass


class UpstreamError(RemoteServiceError):
    """The remote call did not return a success status."""

    def __init__(self, message: str, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class EmptyResultError(RemoteServiceError):
    pass


class OperationStartError(RemoteServiceError):
    pass


class GenerationFailedError(RemoteServiceError):
    """The long-running operation finished with an explicit error payload."""

    def __init__(self, error: Any) -> None:
        super().__init__(f"Video generation failed: {error}", details=error)
        self.error = error


class ContentFilteredError(RemoteServiceError):
    def __init__(self, filtered_count: int) -> None:
        super().__init__(
            f"Video generation filtered by safety policies. Filtered count: {filtered_count}"
        )
        self.filtered_count = filtered_count


class UnsupportedStorageError(RemoteServiceError):
    def __init__(self, uri: str) -> None:
        super().__init__(
            "Video stored in GCS. Please configure storageUri or download from GCS.",
            details={"gcsUri": uri},
        )
        self.uri = uri


class PollTimeoutError(RemoteServiceError):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"Video generation timed out after {attempts} status checks")
        self.attempts = attempts
