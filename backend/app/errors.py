# error taxonomy for the callable endpoints
# every service raises one of these; main.py renders them as {"detail", "code", "details"}

from typing import Any, Optional


class ServiceError(Exception):
    """base class for errors that surface to the caller"""

    code: str = "unknown"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class Unauthenticated(ServiceError):
    code = "unauthenticated"
    status_code = 401


class InvalidArgument(ServiceError):
    code = "invalid-argument"
    status_code = 400


class PermissionDenied(ServiceError):
    code = "permission-denied"
    status_code = 403


class NotFound(ServiceError):
    code = "not-found"
    status_code = 404


class FailedPrecondition(ServiceError):
    code = "failed-precondition"
    status_code = 412


class ResourceExhausted(ServiceError):
    code = "resource-exhausted"
    status_code = 429


class Unavailable(ServiceError):
    code = "unavailable"
    status_code = 503


class Unknown(ServiceError):
    code = "unknown"
    status_code = 500


class Internal(ServiceError):
    code = "internal"
    status_code = 500
