"""Custom application exceptions.

Every failure the scheduling engine reports to its caller is one of the classes below.
The HTTP layer turns them into JSON error bodies; ``extra()`` carries any structured
payload (for example conflict remediation) that belongs in that body.
"""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    def extra(self) -> dict[str, Any]:
        """Additional fields to include in the error response body."""
        return {}


class ValidationError(AppException):
    """Malformed or missing input; the caller must correct the request."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class AuthorizationError(AppException):
    """The actor does not own the resource or has the wrong role."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class SchedulingConflict(AppException):
    """The requested slot is already claimed.

    ``next_available`` is always present in the response body, either as a slot
    suggestion or as an explicit ``None``.
    """

    def __init__(
        self,
        message: str = "Doctor already has an appointment at this time. Choose another slot.",
        next_available: dict[str, Any] | None = None,
        alternatives: list[dict[str, Any]] | None = None,
    ):
        """Initialize with 409 status code and remediation data."""
        super().__init__(message, status_code=409)
        self.next_available = next_available
        self.alternatives = alternatives or []

    def extra(self) -> dict[str, Any]:
        """Expose remediation in the response body."""
        return {
            "next_available": self.next_available,
            "alternatives": self.alternatives,
        }


class PolicyViolation(AppException):
    """The action is not permitted in the appointment's current state."""

    def __init__(self, message: str = "Action not permitted"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class TransientStoreError(AppException):
    """I/O failure or timeout talking to the persistence layer."""

    def __init__(self, message: str = "Appointment store unavailable", retryable: bool = False):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)
        self.retryable = retryable

    def extra(self) -> dict[str, Any]:
        """Tell the caller whether repeating the request is safe."""
        return {"retryable": self.retryable}
